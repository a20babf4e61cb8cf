"""
Configuration management for doclite stores.

The configuration is stored as a TOML file in the store directory.
It names the database file and the SQLite and key-generation settings.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# tomli_w for writing TOML (tomllib is read-only)
import tomli_w

from .types import DEFAULT_KEY_SIZE


CONFIG_FILENAME = "doclite.toml"
DATABASE_FILENAME = "doclite.db"
CONFIG_VERSION = 1

JOURNAL_MODES = frozenset({"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"})


@dataclass
class StoreConfig:
    """Complete store configuration. A path of None means in-memory."""
    path: Optional[Path] = None
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # SQLite settings
    filename: str = DATABASE_FILENAME
    journal_mode: str = "WAL"
    busy_timeout: int = 5000

    # Generated key length
    key_size: int = DEFAULT_KEY_SIZE

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        if self.path is None:
            raise ValueError("In-memory stores have no config file")
        return self.path / CONFIG_FILENAME

    @property
    def database(self) -> str:
        """Database argument for sqlite3.connect()."""
        if self.path is None:
            return ":memory:"
        return str(self.path / self.filename)

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.path is not None and self.config_path.exists()


def get_store_path() -> Path:
    """Default store directory: DOCLITE_STORE_PATH, else ~/.doclite."""
    env = os.environ.get("DOCLITE_STORE_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".doclite"


def _validate(config: StoreConfig) -> StoreConfig:
    if config.journal_mode.upper() not in JOURNAL_MODES:
        raise ValueError(f"Unknown journal_mode: {config.journal_mode!r}")
    if config.busy_timeout < 0:
        raise ValueError(f"busy_timeout must not be negative: {config.busy_timeout}")
    if config.key_size <= 0:
        raise ValueError(f"keys.size must be positive: {config.key_size}")
    return config


def load_config(store_path: Path) -> StoreConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    store = data.get("store", {})
    sqlite = data.get("sqlite", {})
    keys = data.get("keys", {})

    # Validate version
    version = store.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    return _validate(StoreConfig(
        path=store_path,
        version=version,
        created=store.get("created", ""),
        filename=sqlite.get("filename", DATABASE_FILENAME),
        journal_mode=sqlite.get("journal_mode", "WAL"),
        busy_timeout=sqlite.get("busy_timeout", 5000),
        key_size=keys.get("size", DEFAULT_KEY_SIZE),
    ))


def save_config(config: StoreConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    # Ensure directory exists
    config.config_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "sqlite": {
            "filename": config.filename,
            "journal_mode": config.journal_mode,
            "busy_timeout": config.busy_timeout,
        },
        "keys": {
            "size": config.key_size,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> StoreConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = StoreConfig(path=store_path)
        save_config(config)
        return config
