"""Local cache backends for herd-sync."""

from herd_sync.storage.base import CacheTransaction, LocalCache
from herd_sync.storage.memory_store import InMemoryCache
from herd_sync.storage.sqlite_store import SQLiteCache

__all__ = [
    "CacheTransaction",
    "LocalCache",
    "InMemoryCache",
    "SQLiteCache",
]
