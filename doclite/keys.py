"""
Key assignment for record types.

A record type is a dataclass with exactly one key field. The key field is
the one tagged with key_field(), or else the field literally named "id".
Resolution happens once per record type, when a collection is opened;
per-record work is reduced to a getattr/setattr pair on KeyAccessor.
"""

import dataclasses
import logging
from typing import Any, Optional

from .errors import SchemaMismatch
from .types import DEFAULT_KEY_SIZE, generate_key

logger = logging.getLogger(__name__)

KEY_METADATA = "doclite.key"
DEFAULT_KEY_FIELD = "id"


def key_field(*, default: Optional[str] = None, **kwargs: Any) -> Any:
    """
    Declare the key field of a record dataclass.

    Example::

        @dataclass
        class User:
            email: Optional[str] = key_field()
            name: str = ""
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[KEY_METADATA] = True
    return dataclasses.field(default=default, metadata=metadata, **kwargs)


def resolve_key_field(record_type: type) -> str:
    """
    Find the name of the key field for a record type.

    Raises:
        SchemaMismatch: If the type is not a dataclass, or has neither a
            tagged field nor an "id" field
    """
    if not (isinstance(record_type, type) and dataclasses.is_dataclass(record_type)):
        raise SchemaMismatch(f"{record_type!r} is not a dataclass record type")

    fields = dataclasses.fields(record_type)
    tagged = [f.name for f in fields if f.metadata.get(KEY_METADATA)]
    if len(tagged) > 1:
        raise SchemaMismatch(
            f"'{record_type.__name__}' declares more than one key field: {tagged}"
        )
    if tagged:
        return tagged[0]

    if any(f.name == DEFAULT_KEY_FIELD for f in fields):
        return DEFAULT_KEY_FIELD

    raise SchemaMismatch(
        f"'{record_type.__name__}' has no key field "
        f"(tag one with key_field() or add an '{DEFAULT_KEY_FIELD}' field)"
    )


class KeyAccessor:
    """Get, set and assign the key of records of one type."""

    def __init__(self, record_type: type, key_size: int = DEFAULT_KEY_SIZE):
        self.record_type = record_type
        self.field_name = resolve_key_field(record_type)
        self.key_size = key_size
        self._frozen = record_type.__dataclass_params__.frozen

    def get(self, record: Any) -> Optional[str]:
        """Current key of a record, or None when absent (None or empty)."""
        try:
            value = getattr(record, self.field_name)
        except AttributeError:
            raise SchemaMismatch(
                f"'{type(record).__name__}' has no key field '{self.field_name}'"
            ) from None
        if value is None or value == "":
            return None
        if not isinstance(value, str):
            raise SchemaMismatch(
                f"Key field '{self.field_name}' must be a string, "
                f"got {type(value).__name__}"
            )
        return value

    def set(self, record: Any, key: str) -> None:
        if self._frozen:
            raise SchemaMismatch(
                f"Cannot assign key to frozen record '{type(record).__name__}'"
            )
        setattr(record, self.field_name, key)

    def assign(self, record: Any) -> str:
        """
        Return the record's key, generating one first if absent.

        The generated key is written back into the record, so callers
        observe it after save.
        """
        key = self.get(record)
        if key is None:
            key = generate_key(self.key_size)
            self.set(record, key)
            logger.debug("Generated key %s for %s", key, type(record).__name__)
        return key
