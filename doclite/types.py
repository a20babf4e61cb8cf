"""
Data types shared across the store.
"""

import secrets
from dataclasses import dataclass
from typing import Any, Callable

# Operation tags carried by WatchEvent
SAVE = "save"
DELETE = "delete"

# URL-safe alphabet for generated keys (64 symbols, same as nanoid)
KEY_ALPHABET = "_-0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
DEFAULT_KEY_SIZE = 21


def generate_key(size: int = DEFAULT_KEY_SIZE) -> str:
    """Generate a random, fixed-length, URL-safe document key."""
    if size <= 0:
        raise ValueError(f"Key size must be positive, got {size}")
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(size))


@dataclass(frozen=True)
class WatchEvent:
    """
    A committed write on a collection.

    Emitted once per logical write: a batch save produces a single event
    carrying every record in the batch, in batch order.
    """
    collection: str
    operation: str
    records: tuple[Any, ...]

    def __len__(self) -> int:
        return len(self.records)


WatchHandler = Callable[[WatchEvent], None]
