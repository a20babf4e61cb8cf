"""
doclite: typed JSON document collections on SQLite.

Records are dataclasses stored one JSON document per key, queried with a
compact filter language::

    from dataclasses import dataclass
    from typing import Optional
    from doclite import Database

    @dataclass
    class User:
        id: Optional[str] = None
        name: str = ""
        age: int = 0

    db = Database()
    users = db.collection(User)
    users.save(User(name="John", age=20))
    users.find("age>=18&&name=~Jo")
"""

from .collection import Collection
from .database import Database
from .errors import (
    DocliteError,
    FilterSyntaxError,
    SchemaMismatch,
    SerializationFailure,
    StorageFailure,
    TypeMismatch,
)
from .filters import CompiledFilter, compile_filter
from .keys import key_field
from .types import DELETE, SAVE, WatchEvent, generate_key

__version__ = "0.3.0"

__all__ = [
    "Collection",
    "CompiledFilter",
    "Database",
    "DELETE",
    "DocliteError",
    "FilterSyntaxError",
    "SAVE",
    "SchemaMismatch",
    "SerializationFailure",
    "StorageFailure",
    "TypeMismatch",
    "WatchEvent",
    "compile_filter",
    "generate_key",
    "key_field",
]
