"""SQLite mixin for the offline push queue."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from herd_sync.storage.sqlite_row_mappers import push_operation_to_params, row_to_push_operation

if TYPE_CHECKING:
    import aiosqlite

    from herd_sync.core.push_operation import PushOperation


class SQLitePushQueueMixin:
    """Mixin: persist queued push operations across restarts."""

    def _ensure_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    def _ensure_read_conn(self) -> aiosqlite.Connection:
        raise NotImplementedError

    def _write_lock(self) -> asyncio.Lock:
        raise NotImplementedError

    async def save_push_operation(self, operation: PushOperation) -> None:
        conn = self._ensure_conn()
        async with self._write_lock():
            await conn.execute(
                """INSERT OR REPLACE INTO push_queue
                   (id, entity_type, entity_id, operation, created_at,
                    retry_count, last_attempt, error)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                push_operation_to_params(operation),
            )
            await conn.commit()

    async def list_push_operations(self) -> list[PushOperation]:
        conn = self._ensure_read_conn()
        async with conn.execute("SELECT * FROM push_queue ORDER BY created_at, id") as cursor:
            rows = await cursor.fetchall()
        return [row_to_push_operation(row) for row in rows]

    async def delete_push_operation(self, operation_id: str) -> bool:
        conn = self._ensure_conn()
        async with self._write_lock():
            cursor = await conn.execute("DELETE FROM push_queue WHERE id = ?", (operation_id,))
            await conn.commit()
        return cursor.rowcount > 0
