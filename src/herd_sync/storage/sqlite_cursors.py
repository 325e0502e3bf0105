"""SQLite mixin for per-table sync cursor persistence."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from herd_sync.utils.timeutils import parse_timestamp, to_iso

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)


class SQLiteCursorMixin:
    """Mixin: persist the last successful sync time per remote table."""

    def _ensure_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    def _ensure_read_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    def _write_lock(self) -> asyncio.Lock:
        raise NotImplementedError

    async def get_sync_cursor(self, table_name: str) -> datetime | None:
        """Load the cursor for a table.

        Returns:
            The stored timestamp, or None when unset or unreadable
        """
        conn = self._ensure_read_conn()
        async with conn.execute(
            "SELECT last_sync_at FROM sync_cursors WHERE table_name = ?", (table_name,)
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None

        parsed = parse_timestamp(row["last_sync_at"])
        if parsed is None:
            logger.warning(
                "Corrupt last_sync_at in sync_cursors for %s: %r",
                table_name,
                row["last_sync_at"],
            )
        return parsed

    async def save_sync_cursor(self, table_name: str, when: datetime) -> None:
        """Persist a cursor. Uses INSERT OR REPLACE for upsert semantics."""
        conn = self._ensure_conn()
        async with self._write_lock():
            await conn.execute(
                "INSERT OR REPLACE INTO sync_cursors (table_name, last_sync_at) VALUES (?, ?)",
                (table_name, to_iso(when)),
            )
            await conn.commit()

    async def clear_sync_cursor(self, table_name: str) -> None:
        conn = self._ensure_conn()
        async with self._write_lock():
            await conn.execute("DELETE FROM sync_cursors WHERE table_name = ?", (table_name,))
            await conn.commit()

    async def clear_all_sync_cursors(self) -> None:
        conn = self._ensure_conn()
        async with self._write_lock():
            await conn.execute("DELETE FROM sync_cursors")
            await conn.commit()

    async def list_sync_cursors(self) -> dict[str, datetime | None]:
        """All stored cursors; unreadable values map to None."""
        conn = self._ensure_read_conn()
        async with conn.execute(
            "SELECT table_name, last_sync_at FROM sync_cursors ORDER BY table_name"
        ) as cursor:
            rows = await cursor.fetchall()
        return {row["table_name"]: parse_timestamp(row["last_sync_at"]) for row in rows}
