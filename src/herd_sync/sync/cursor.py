"""Per-table sync cursors: the last time each table synced successfully."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING

from herd_sync.utils.timeutils import NEVER, is_never

if TYPE_CHECKING:
    from herd_sync.storage.sqlite_store import SQLiteCache

logger = logging.getLogger(__name__)


class SyncCursorStore(ABC):
    """
    Durable map of table name -> last successful sync time.

    ``get`` never fails for an unknown table: it returns NEVER, which
    makes the next sync of that table a full sync.
    """

    @abstractmethod
    async def get(self, table_name: str) -> datetime:
        """Cursor for a table, or NEVER."""
        ...

    @abstractmethod
    async def set(self, table_name: str, when: datetime) -> None:
        """Record a successful sync."""
        ...

    @abstractmethod
    async def clear(self, table_name: str) -> None:
        """Forget a table's cursor so its next sync is a full sync."""
        ...

    @abstractmethod
    async def clear_all(self) -> None: ...

    @abstractmethod
    async def all(self) -> dict[str, datetime]:
        """Every stored cursor."""
        ...


class InMemoryCursorStore(SyncCursorStore):
    """Cursor store held in a dict; lost when the process exits."""

    def __init__(self, initial: dict[str, datetime] | None = None) -> None:
        self._cursors: dict[str, datetime] = dict(initial or {})

    async def get(self, table_name: str) -> datetime:
        return self._cursors.get(table_name, NEVER)

    async def set(self, table_name: str, when: datetime) -> None:
        self._cursors[table_name] = when

    async def clear(self, table_name: str) -> None:
        self._cursors.pop(table_name, None)

    async def clear_all(self) -> None:
        self._cursors.clear()

    async def all(self) -> dict[str, datetime]:
        return dict(self._cursors)


class SQLiteCursorStore(SyncCursorStore):
    """Cursor store sharing the SQLite cache connection (``sync_cursors``)."""

    def __init__(self, cache: SQLiteCache) -> None:
        self._cache = cache

    async def get(self, table_name: str) -> datetime:
        stored = await self._cache.get_sync_cursor(table_name)
        return NEVER if stored is None else stored

    async def set(self, table_name: str, when: datetime) -> None:
        if is_never(when):
            await self._cache.clear_sync_cursor(table_name)
            return
        await self._cache.save_sync_cursor(table_name, when)

    async def clear(self, table_name: str) -> None:
        await self._cache.clear_sync_cursor(table_name)

    async def clear_all(self) -> None:
        await self._cache.clear_all_sync_cursors()

    async def all(self) -> dict[str, datetime]:
        stored = await self._cache.list_sync_cursors()
        result: dict[str, datetime] = {}
        for table_name, when in stored.items():
            if when is None:
                logger.warning("Ignoring unreadable cursor for %s", table_name)
                continue
            result[table_name] = when
        return result
