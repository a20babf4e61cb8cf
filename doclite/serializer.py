"""
JSON serialization for record dataclasses.

Encoding uses dataclasses.asdict(); decoding rebuilds the dataclass from
its type hints, recursing into nested dataclasses, lists, tuples, dicts
and optionals. Unknown fields in stored JSON are ignored, so documents
written by an older or wider version of a record type still load.
"""

import dataclasses
import functools
import json
import types
import typing
from typing import Any, Generic, TypeVar, Union

from .errors import SchemaMismatch, SerializationFailure

T = TypeVar("T")


@functools.lru_cache(maxsize=None)
def _type_hints(tp: type) -> dict[str, Any]:
    """
    Resolved type hints of a dataclass.

    Names are looked up in the defining module, plus the class itself so
    self-referencing records resolve. A hint left as a string could not
    be decoded, so it is an error.
    """
    try:
        return typing.get_type_hints(tp, localns={tp.__name__: tp})
    except (NameError, TypeError) as e:
        raise SchemaMismatch(
            f"Cannot resolve type hints of '{tp.__name__}': {e}"
        ) from e


def _check_hints(tp: Any, seen: set) -> None:
    """Resolve hints of tp and every dataclass reachable from it."""
    if isinstance(tp, type) and dataclasses.is_dataclass(tp):
        if tp in seen:
            return
        seen.add(tp)
        for hint in _type_hints(tp).values():
            _check_hints(hint, seen)
        return
    for arg in typing.get_args(tp):
        _check_hints(arg, seen)


def _decode(tp: Any, value: Any) -> Any:
    """Convert a decoded JSON value into an instance of type hint tp."""
    if value is None:
        return None

    if isinstance(tp, type) and dataclasses.is_dataclass(tp):
        if not isinstance(value, dict):
            raise SerializationFailure(
                f"Expected a JSON object for '{tp.__name__}', got {type(value).__name__}"
            )
        hints = _type_hints(tp)
        kwargs = {}
        for f in dataclasses.fields(tp):
            if f.init and f.name in value:
                kwargs[f.name] = _decode(hints.get(f.name, Any), value[f.name])
        try:
            return tp(**kwargs)
        except TypeError as e:
            raise SerializationFailure(f"Cannot build '{tp.__name__}': {e}") from e

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)

    if origin is Union or origin is types.UnionType:
        arms = [a for a in args if a is not type(None)]
        if len(arms) == 1:
            return _decode(arms[0], value)
        return value

    if origin in (list, set, frozenset) and args:
        return origin(_decode(args[0], v) for v in value)

    if origin is tuple and args:
        if len(args) == 2 and args[1] is Ellipsis:
            return tuple(_decode(args[0], v) for v in value)
        return tuple(_decode(a, v) for a, v in zip(args, value))

    if origin is dict and len(args) == 2:
        return {k: _decode(args[1], v) for k, v in value.items()}

    return value


class Serializer(Generic[T]):
    """Encode and decode records of one dataclass type."""

    def __init__(self, record_type: type[T]):
        if not (isinstance(record_type, type) and dataclasses.is_dataclass(record_type)):
            raise SchemaMismatch(f"{record_type!r} is not a dataclass record type")
        _check_hints(record_type, set())
        self.record_type = record_type

    def dumps(self, record: T) -> str:
        try:
            return json.dumps(dataclasses.asdict(record), ensure_ascii=False, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise SerializationFailure(
                f"Cannot encode '{type(record).__name__}': {e}"
            ) from e

    def loads(self, text: str) -> T:
        return self.from_dict(self._parse(text))

    def loads_many(self, text: str) -> list[T]:
        """Decode a JSON array of documents."""
        data = self._parse(text)
        if not isinstance(data, list):
            raise SerializationFailure(
                f"Expected a JSON array, got {type(data).__name__}"
            )
        return [self.from_dict(item) for item in data]

    def from_dict(self, data: Any) -> T:
        return _decode(self.record_type, data)

    @staticmethod
    def _parse(text: str) -> Any:
        try:
            return json.loads(text)
        except (json.JSONDecodeError, TypeError) as e:
            raise SerializationFailure(f"Invalid JSON document: {e}") from e
