"""
CLI for inspecting doclite stores.

Usage:
    doclite init
    doclite collections
    doclite find User "age>=18&&name=~Jo" --limit 10
    doclite get User V1StGXR8_Z5jdHi6B-myT
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .config import CONFIG_FILENAME, get_store_path, load_or_create_config
from .database import Database
from .errors import FilterSyntaxError
from .filters import compile_filter
from .logging_config import configure_quiet_mode, enable_debug_mode

# Set DOCLITE_VERBOSE=1 to enable debug mode via environment
if os.environ.get("DOCLITE_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"doclite {version('doclite')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_store_override: Optional[Path] = None


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


def _get_store_path() -> Path:
    return _store_override if _store_override is not None else get_store_path()


app = typer.Typer(
    name="doclite",
    help="Typed JSON document collections on SQLite.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="DOCLITE_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Typed JSON document collections on SQLite."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _open_store() -> Database:
    """Open the existing store, or exit if there is none."""
    path = _get_store_path()
    if not (path / CONFIG_FILENAME).exists():
        typer.echo(f"Error: No store at {path} (run 'doclite init')", err=True)
        raise typer.Exit(1)
    return Database(path)


def _require_collection(db: Database, name: str) -> None:
    if not db.engine.has_collection(name):
        typer.echo(f"Error: No collection named {name!r}", err=True)
        raise typer.Exit(1)


def _compile(filter: Optional[str]):
    if filter is None:
        return None
    try:
        return compile_filter(filter)
    except FilterSyntaxError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

LimitOption = Annotated[int, typer.Option(
    "--limit", "-n",
    min=0,
    help="Maximum number of documents (0 for all)",
)]


@app.command()
def init():
    """Create a store with a default configuration."""
    path = _get_store_path()
    config = load_or_create_config(path)
    Database(path, config=config).close()
    typer.echo(f"Store: {path}")
    typer.echo(f"Database: {config.database}")


@app.command()
def collections():
    """List collections and their document counts."""
    db = _open_store()
    try:
        for name in db.list_collections():
            typer.echo(f"{name}\t{db.engine.count(name)}")
    finally:
        db.close()


@app.command()
def find(
    name: Annotated[str, typer.Argument(help="Collection name")],
    filter: Annotated[Optional[str], typer.Argument(
        help="Filter expression, e.g. 'age>=18&&name=~Jo'"
    )] = None,
    limit: LimitOption = 0,
    offset: Annotated[int, typer.Option(
        "--offset",
        min=0,
        help="Number of matching documents to skip",
    )] = 0,
    pretty: Annotated[bool, typer.Option(
        "--pretty", "-p",
        help="Indent the JSON output",
    )] = False,
):
    """
    Print matching documents as a JSON array.

    \b
    Examples:
        doclite find User                        # All documents
        doclite find User "age>=18" -n 10        # First 10 adults
        doclite find User "(role=admin||role=owner)&&active=1"
    """
    db = _open_store()
    try:
        _require_collection(db, name)
        where = _compile(filter)
        result = db.engine.select_json(name, where, limit=limit, offset=offset)
    finally:
        db.close()
    if pretty:
        result = json.dumps(json.loads(result), indent=2, ensure_ascii=False)
    typer.echo(result)


@app.command()
def get(
    name: Annotated[str, typer.Argument(help="Collection name")],
    key: Annotated[str, typer.Argument(help="Document key")],
):
    """Print one document by key."""
    db = _open_store()
    try:
        _require_collection(db, name)
        document = db.engine.get(name, key)
    finally:
        db.close()
    if document is None:
        typer.echo(f"Error: No document {key!r} in {name}", err=True)
        raise typer.Exit(1)
    typer.echo(document)


@app.command()
def count(
    name: Annotated[str, typer.Argument(help="Collection name")],
    filter: Annotated[Optional[str], typer.Argument(help="Filter expression")] = None,
):
    """Count documents, optionally only those matching a filter."""
    db = _open_store()
    try:
        _require_collection(db, name)
        total = db.engine.count(name, _compile(filter))
    finally:
        db.close()
    typer.echo(str(total))


@app.command("del")
def del_cmd(
    name: Annotated[str, typer.Argument(help="Collection name")],
    key: Annotated[str, typer.Argument(help="Document key")],
):
    """Delete one document by key."""
    db = _open_store()
    try:
        _require_collection(db, name)
        deleted = db.engine.delete(name, key)
    finally:
        db.close()
    if not deleted:
        typer.echo(f"Error: No document {key!r} in {name}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted {name}/{key}")


@app.command("delete", hidden=True)
def delete(
    name: Annotated[str, typer.Argument(help="Collection name")],
    key: Annotated[str, typer.Argument(help="Document key")],
):
    """Delete one document by key (alias for 'del')."""
    del_cmd(name=name, key=key)


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="doclite CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
