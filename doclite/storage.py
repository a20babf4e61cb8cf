"""
SQLite storage engine for JSON documents.

Each collection is a table of (key, value) rows where value is a JSON
document. Reads use SQLite's JSON functions: json_extract() for filtering
and json_group_array() to return matches as a single JSON array.

The connection runs with manual transaction control. Single statements
commit on their own; multi-statement writes go through transaction(),
which yields a handle scoped to that one unit of work. A re-entrant lock
serializes access to the shared connection, so a batch in flight cannot
interleave with other callers.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

from .errors import StorageFailure
from .filters import CompiledFilter

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def quote_identifier(name: str) -> str:
    """Quote a table name for use in SQL text."""
    if not name or "\x00" in name:
        raise StorageFailure(f"Invalid collection name: {name!r}")
    return '"' + name.replace('"', '""') + '"'


def _upsert_sql(table: str) -> str:
    return f"""
        INSERT INTO {table} (key, value) VALUES (?, json(?))
        ON CONFLICT(key) DO UPDATE SET value = json(excluded.value)
    """


def _window(limit: int, offset: int) -> tuple[str, list[int]]:
    """LIMIT/OFFSET clause; limit 0 means unbounded."""
    if limit < 0 or offset < 0:
        raise ValueError("limit and offset must not be negative")
    if limit == 0 and offset == 0:
        return "", []
    return " LIMIT ? OFFSET ?", [limit if limit else -1, offset]


class Transaction:
    """Write handle valid only inside SQLiteEngine.transaction()."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn
        self.writes = 0

    def upsert(self, collection: str, key: str, document: str) -> None:
        self._conn.execute(_upsert_sql(quote_identifier(collection)), (key, document))
        self.writes += 1

    def delete(self, collection: str, key: str) -> bool:
        cursor = self._conn.execute(
            f"DELETE FROM {quote_identifier(collection)} WHERE key = ?", (key,)
        )
        self.writes += 1
        return cursor.rowcount > 0


class SQLiteEngine:
    """
    SQLite-backed document tables.

    One engine wraps one connection, shared by every collection opened
    against it.
    """

    def __init__(
        self,
        database: str = MEMORY,
        *,
        journal_mode: str = "WAL",
        busy_timeout: int = 5000,
    ):
        """
        Args:
            database: Path to SQLite database file, or ":memory:"
            journal_mode: SQLite journal mode (ignored for in-memory databases)
            busy_timeout: Milliseconds to wait for locks held by other processes
        """
        self.database = database
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        try:
            # isolation_level=None gives us manual transaction control
            self._conn = sqlite3.connect(
                database, check_same_thread=False, isolation_level=None,
            )
            if database != MEMORY:
                self._conn.execute(f"PRAGMA journal_mode={journal_mode}")
            self._conn.execute(f"PRAGMA busy_timeout={int(busy_timeout)}")
        except sqlite3.Error as e:
            raise StorageFailure(f"Cannot open database {database}: {e}") from e

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageFailure("Database is closed")
        return self._conn

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement, returning the affected row count."""
        with self._lock:
            try:
                return self.conn.execute(sql, params).rowcount
            except sqlite3.Error as e:
                raise StorageFailure(str(e)) from e

    def _query(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        """Run a read statement, returning all rows."""
        with self._lock:
            try:
                return self.conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StorageFailure(str(e)) from e

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    def ensure_collection(self, collection: str) -> None:
        """Create the backing table for a collection if it is absent."""
        self._execute(f"""
            CREATE TABLE IF NOT EXISTS {quote_identifier(collection)} (
                key TEXT PRIMARY KEY NOT NULL,
                value JSON NOT NULL
            )
        """)

    def list_collections(self) -> list[str]:
        """List document tables (those with the key/value layout)."""
        rows = self._query("""
            SELECT name FROM sqlite_master
            WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
            ORDER BY name
        """)
        names = []
        for (name,) in rows:
            columns = [row[1] for row in self._query(
                f"PRAGMA table_info({quote_identifier(name)})"
            )]
            if columns == ["key", "value"]:
                names.append(name)
        return names

    def has_collection(self, collection: str) -> bool:
        return collection in self.list_collections()

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def upsert(self, collection: str, key: str, document: str) -> None:
        """Insert a document, or replace the value stored under its key."""
        self._execute(_upsert_sql(quote_identifier(collection)), (key, document))

    def delete(self, collection: str, key: str) -> bool:
        """
        Delete the document stored under a key.

        Returns:
            True if a row existed and was deleted
        """
        deleted = self._execute(
            f"DELETE FROM {quote_identifier(collection)} WHERE key = ?", (key,)
        )
        return deleted > 0

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Run several writes as one atomic unit.

        Commits when the block exits normally. Any exception rolls back
        every write made through the handle and is re-raised; SQLite
        errors are re-raised as StorageFailure.
        """
        with self._lock:
            conn = self.conn
            try:
                # BEGIN IMMEDIATE takes the write lock up front
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageFailure(f"Cannot begin transaction: {e}") from e

            tx = Transaction(conn)
            try:
                yield tx
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                logger.warning("Rolled back transaction after %d writes: %s", tx.writes, e)
                raise StorageFailure(str(e)) from e
            except BaseException:
                conn.rollback()
                logger.warning("Rolled back transaction after %d writes", tx.writes)
                raise

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, collection: str, key: str) -> Optional[str]:
        """Get the JSON document stored under a key, or None."""
        rows = self._query(
            f"SELECT value FROM {quote_identifier(collection)} WHERE key = ? LIMIT 1",
            (key,),
        )
        return rows[0][0] if rows else None

    def exists(self, collection: str, key: str) -> bool:
        rows = self._query(
            f"SELECT 1 FROM {quote_identifier(collection)} WHERE key = ?", (key,)
        )
        return bool(rows)

    def select_json(
        self,
        collection: str,
        where: Optional[CompiledFilter] = None,
        limit: int = 0,
        offset: int = 0,
    ) -> str:
        """
        Select matching documents as one JSON array text.

        Documents come back in insertion order. No match yields "[]".
        """
        sql = f"SELECT value FROM {quote_identifier(collection)}"
        params: list[Any] = []
        if where is not None:
            sql += f" WHERE {where.where}"
            params.extend(where.parameters())
        sql += " ORDER BY rowid"
        window, window_params = _window(limit, offset)
        sql += window
        params.extend(window_params)

        rows = self._query(
            f"SELECT json_group_array(json(value)) FROM ({sql})", params
        )
        return rows[0][0] if rows and rows[0][0] is not None else "[]"

    def count(self, collection: str, where: Optional[CompiledFilter] = None) -> int:
        """Count documents, optionally only those matching a filter."""
        sql = f"SELECT COUNT(*) FROM {quote_identifier(collection)}"
        params: list[Any] = []
        if where is not None:
            sql += f" WHERE {where.where}"
            params.extend(where.parameters())
        return self._query(sql, params)[0][0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
