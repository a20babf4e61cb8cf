"""
Typed collections of JSON documents.

A Collection binds one record dataclass to one table. It assigns keys,
serializes records, compiles filters, and tells registered watchers about
every committed write.
"""

import logging
from typing import Generic, Iterable, Optional, TypeVar

from .errors import TypeMismatch
from .filters import CompiledFilter, compile_filter
from .keys import KeyAccessor
from .serializer import Serializer
from .storage import SQLiteEngine
from .types import DEFAULT_KEY_SIZE, DELETE, SAVE, WatchEvent, WatchHandler

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Collection(Generic[T]):
    """
    Documents of one record type, stored one row per key.

    Created through Database.collection(); the backing table is created
    on construction if it does not exist.
    """

    def __init__(
        self,
        engine: SQLiteEngine,
        record_type: type[T],
        *,
        name: Optional[str] = None,
        key_size: int = DEFAULT_KEY_SIZE,
    ):
        """
        Args:
            engine: Storage engine holding the shared connection
            record_type: Dataclass stored in this collection
            name: Table name (defaults to the record type's name)
            key_size: Length of generated keys

        Raises:
            SchemaMismatch: If the record type has no resolvable key field
                or its type hints cannot be resolved
        """
        self.record_type = record_type
        self.name = name or record_type.__name__
        self._engine = engine
        self._keys = KeyAccessor(record_type, key_size=key_size)
        self._serializer = Serializer(record_type)
        self._watchers: list[WatchHandler] = []

        engine.ensure_collection(self.name)
        logger.debug("Opened collection %s (key field: %s)", self.name, self.key_field)

    @property
    def key_field(self) -> str:
        return self._keys.field_name

    def __repr__(self) -> str:
        return f"Collection({self.record_type.__name__}, name={self.name!r})"

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def _check_type(self, record: object) -> None:
        if type(record) is not self.record_type:
            logger.warning(
                "Rejected '%s' record for collection %s",
                type(record).__name__, self.name,
            )
            raise TypeMismatch(
                f"'{type(record).__name__}' cannot be saved in a "
                f"'{self.record_type.__name__}' collection"
            )

    def save(self, record: T) -> T:
        """
        Insert or replace one record.

        A missing key is generated and written into the record before it
        is stored. If the write fails the key is cleared again.

        Returns:
            The same record, with its key set

        Raises:
            TypeMismatch: If the record is not of the collection's type
            SerializationFailure: If the record cannot be encoded
            StorageFailure: If the write fails
        """
        self._check_type(record)
        previous = getattr(record, self.key_field, None)
        key = self._keys.assign(record)
        try:
            self._engine.upsert(self.name, key, self._serializer.dumps(record))
        except Exception:
            if key != previous:
                setattr(record, self.key_field, previous)
            raise
        logger.debug("Saved %s/%s", self.name, key)
        self._notify(WatchEvent(self.name, SAVE, (record,)))
        return record

    def save_many(self, records: Iterable[T]) -> list[T]:
        """
        Insert or replace several records atomically.

        Either every record is stored or none is. Watchers receive a single
        event carrying the whole batch once it has committed. Only the first
        record's type is checked; a later record of another type fails
        during key assignment or encoding, which rolls the batch back.
        Keys generated for a batch that rolls back are cleared again.

        Returns:
            The records, with their keys set
        """
        records = list(records)
        if not records:
            return records
        self._check_type(records[0])

        generated = []
        try:
            with self._engine.transaction() as tx:
                for record in records:
                    previous = getattr(record, self.key_field, None)
                    key = self._keys.assign(record)
                    if key != previous:
                        generated.append((record, previous))
                    tx.upsert(self.name, key, self._serializer.dumps(record))
        except Exception:
            for record, previous in generated:
                setattr(record, self.key_field, previous)
            raise

        logger.debug("Saved %d records to %s", len(records), self.name)
        self._notify(WatchEvent(self.name, SAVE, tuple(records)))
        return records

    def delete(self, record: T) -> bool:
        """
        Delete the stored document for a record's key.

        Watchers receive a delete event only when a row was removed.

        Returns:
            True if the document existed and was deleted
        """
        self._check_type(record)
        key = self._keys.get(record)
        if key is None or not self._engine.delete(self.name, key):
            return False
        logger.debug("Deleted %s/%s", self.name, key)
        self._notify(WatchEvent(self.name, DELETE, (record,)))
        return True

    def delete_by_id(self, key: str) -> bool:
        """
        Delete the document stored under a key.

        Watchers receive a delete event carrying the removed record.
        """
        record = self.find_by_id(key)
        if record is None:
            return False
        return self.delete(record)

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def _compile(self, filter: Optional[str]) -> Optional[CompiledFilter]:
        if filter is None:
            return None
        return compile_filter(filter)

    def find_as_json(
        self,
        filter: Optional[str] = None,
        limit: int = 0,
        offset: int = 0,
    ) -> str:
        """
        Find documents as a JSON array text.

        Args:
            filter: Filter expression, e.g. "age>=18&&name=~Jo" (None for all)
            limit: Maximum number of documents (0 for all)
            offset: Number of matching documents to skip

        Raises:
            FilterSyntaxError: If the filter is malformed
        """
        return self._engine.select_json(
            self.name, self._compile(filter), limit=limit, offset=offset
        )

    def find(
        self,
        filter: Optional[str] = None,
        limit: int = 0,
        offset: int = 0,
    ) -> list[T]:
        """Find records; see find_as_json() for arguments."""
        return self._serializer.loads_many(self.find_as_json(filter, limit, offset))

    def find_by_id(self, key: str) -> Optional[T]:
        """Get the record stored under a key, or None if there is none."""
        document = self._engine.get(self.name, key)
        if document is None:
            return None
        return self._serializer.loads(document)

    def exists(self, key: str) -> bool:
        return self._engine.exists(self.name, key)

    def count(self, filter: Optional[str] = None) -> int:
        """Count stored documents, optionally only those matching a filter."""
        return self._engine.count(self.name, self._compile(filter))

    # -------------------------------------------------------------------------
    # Watchers
    # -------------------------------------------------------------------------

    def watch(self, handler: WatchHandler) -> WatchHandler:
        """
        Register a handler for every later save/delete on this collection.

        Handlers run synchronously, in registration order, after the write
        commits. Returns the handler so this can be used as a decorator.
        """
        self._watchers.append(handler)
        return handler

    def _notify(self, event: WatchEvent) -> None:
        for handler in list(self._watchers):
            handler(event)
