"""
Database: the entry point that owns the connection and its collections.
"""

import logging
import threading
from pathlib import Path
from typing import Optional, TypeVar

from .collection import Collection
from .config import StoreConfig, load_or_create_config
from .storage import SQLiteEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Database:
    """
    A doclite store.

    Opens the store directory's SQLite database (or an in-memory database
    when no path is given) and hands out one Collection per record type.

    Example::

        with Database(Path("~/.myapp").expanduser()) as db:
            users = db.collection(User)
            users.save(User(name="John", age=20))
            adults = users.find("age>=18")
    """

    def __init__(self, path: Optional[Path] = None, *, config: Optional[StoreConfig] = None):
        """
        Args:
            path: Store directory (created with a default config if needed)
            config: Explicit configuration, used instead of the store's file
        """
        if config is None:
            config = load_or_create_config(Path(path)) if path is not None else StoreConfig()
        self.config = config

        self._ops_log_handler = None
        if config.path is not None:
            config.path.mkdir(parents=True, exist_ok=True)
            from .logging_config import configure_ops_log
            self._ops_log_handler = configure_ops_log(config.path)

        self.engine = SQLiteEngine(
            config.database,
            journal_mode=config.journal_mode,
            busy_timeout=config.busy_timeout,
        )
        self._collections: dict[tuple[type, str], Collection] = {}
        self._lock = threading.Lock()
        logger.info("Opened store %s", config.database)

    def collection(self, record_type: type[T], *, name: Optional[str] = None) -> Collection[T]:
        """
        Get the collection for a record type, creating its table if needed.

        Repeated calls return the same Collection, so watchers registered on
        it see every write made through this database.

        Raises:
            SchemaMismatch: If the record type has no resolvable key field
                or its type hints cannot be resolved
        """
        table = name or record_type.__name__
        with self._lock:
            coll = self._collections.get((record_type, table))
            if coll is None:
                coll = Collection(
                    self.engine, record_type, name=table, key_size=self.config.key_size,
                )
                self._collections[(record_type, table)] = coll
            return coll

    def list_collections(self) -> list[str]:
        """List the names of all collection tables in the database."""
        return self.engine.list_collections()

    def close(self) -> None:
        """Close the connection and detach the operations log."""
        if self._ops_log_handler is not None:
            logger.info("Closed store %s", self.config.database)
            logging.getLogger("doclite").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None
        self.engine.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
