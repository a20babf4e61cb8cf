"""
Exceptions and error logging for doclite.

All errors raised by the store derive from DocliteError so callers can
catch the whole family at once. log_exception() writes full stack traces
for debugging while the CLI shows clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class DocliteError(Exception):
    """Base class for all doclite errors."""


class TypeMismatch(DocliteError):
    """A record's runtime type differs from the collection's bound type."""


class SchemaMismatch(DocliteError):
    """The key field of a record type cannot be resolved or assigned."""


class SerializationFailure(DocliteError):
    """A record could not be encoded to, or decoded from, JSON."""


class StorageFailure(DocliteError):
    """The underlying SQLite engine rejected a statement."""


class FilterSyntaxError(DocliteError, ValueError):
    """A filter expression could not be compiled."""

    def __init__(self, message: str, position: Optional[int] = None):
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)
        self.position = position


def _error_log_path() -> Path:
    """Resolve error log path, respecting DOCLITE_STORE_PATH."""
    store = os.environ.get("DOCLITE_STORE_PATH")
    if store:
        return Path(store) / "doclite-errors.log"
    return Path.home() / ".doclite" / "doclite-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write(f" {type(exc).__name__}: {exc}\n")
            f.write("".join(traceback.format_exception(exc)))
    except OSError:
        pass  # Can't write error log — don't crash over it
    return log_path
