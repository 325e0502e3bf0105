"""SQLite cache backend for persistent offline data."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from herd_sync.core.entity import CachedEntity
from herd_sync.storage.base import CacheTransaction, LocalCache
from herd_sync.storage.read_pool import ReadPool
from herd_sync.storage.sqlite_cursors import SQLiteCursorMixin
from herd_sync.storage.sqlite_push_queue import SQLitePushQueueMixin
from herd_sync.storage.sqlite_row_mappers import entity_to_params, row_to_entity
from herd_sync.storage.sqlite_schema import SCHEMA, SCHEMA_VERSION
from herd_sync.sync.errors import CommitError

logger = logging.getLogger(__name__)


class SQLiteTransaction(CacheTransaction):
    """Writes executed inside an open ``BEGIN IMMEDIATE`` transaction."""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self._writes = 0
        self._committed = False

    @property
    def committed(self) -> bool:
        return self._committed

    async def find(self, entity_type: str, entity_id: str) -> CachedEntity | None:
        async with self._conn.execute(
            """SELECT * FROM cached_entities
               WHERE entity_type = ? AND entity_id = ?
               ORDER BY local_key LIMIT 1""",
            (entity_type, entity_id),
        ) as cursor:
            row = await cursor.fetchone()
        return row_to_entity(row) if row else None

    async def find_all_by_id(self, entity_type: str, entity_id: str) -> list[CachedEntity]:
        async with self._conn.execute(
            """SELECT * FROM cached_entities
               WHERE entity_type = ? AND entity_id = ?
               ORDER BY local_key""",
            (entity_type, entity_id),
        ) as cursor:
            rows = await cursor.fetchall()
        return [row_to_entity(r) for r in rows]

    async def find_active_ids(self, entity_type: str, farm_id: str | None = None) -> set[str]:
        sql = "SELECT entity_id FROM cached_entities WHERE entity_type = ? AND deleted_at IS NULL"
        params: list[str] = [entity_type]
        if farm_id is not None:
            sql += " AND farm_id = ?"
            params.append(farm_id)
        async with self._conn.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return {r["entity_id"] for r in rows}

    async def create(self, entity: CachedEntity) -> CachedEntity:
        cursor = await self._conn.execute(
            """INSERT INTO cached_entities
               (entity_type, entity_id, farm_id, updated_at, deleted_at, fields, links)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            entity_to_params(entity),
        )
        self._writes += 1
        return entity.with_changes(local_key=cursor.lastrowid)

    async def update(self, entity: CachedEntity) -> bool:
        if entity.local_key is None:
            raise KeyError(f"{entity.entity_type} {entity.id} has no local key")
        async with self._conn.execute(
            "SELECT * FROM cached_entities WHERE local_key = ?", (entity.local_key,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise KeyError(f"No cached entity with local key {entity.local_key}")
        if row_to_entity(row).same_content(entity):
            return False
        await self._conn.execute(
            """UPDATE cached_entities
               SET entity_type = ?, entity_id = ?, farm_id = ?, updated_at = ?,
                   deleted_at = ?, fields = ?, links = ?
               WHERE local_key = ?""",
            (*entity_to_params(entity), entity.local_key),
        )
        self._writes += 1
        return True

    async def delete(self, entity: CachedEntity) -> None:
        if entity.local_key is None:
            return
        cursor = await self._conn.execute(
            "DELETE FROM cached_entities WHERE local_key = ?", (entity.local_key,)
        )
        if cursor.rowcount:
            self._writes += 1

    @property
    def has_pending_changes(self) -> bool:
        return self._writes > 0

    async def commit(self) -> None:
        try:
            await self._conn.commit()
        except sqlite3.Error as e:
            raise CommitError(f"SQLite commit failed: {e}") from e
        self._committed = True


class SQLiteCache(SQLiteCursorMixin, SQLitePushQueueMixin, LocalCache):
    """SQLite-backed cache that survives restarts.

    One writer connection is shared by entity transactions, cursors and the
    push queue; an asyncio lock keeps their writes from interleaving. Reads
    outside a transaction use a separate ReadPool and see committed data only.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path).resolve()
        self._conn: aiosqlite.Connection | None = None
        self._read_pool: ReadPool | None = None
        self._lock = asyncio.Lock()

    @property
    def db_path(self) -> Path:
        return self._db_path

    async def initialize(self) -> None:
        """Open the connection and create the schema if needed."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA synchronous=NORMAL")
        await self._conn.executescript(SCHEMA)

        async with self._conn.execute("SELECT version FROM schema_version") as cursor:
            row = await cursor.fetchone()
        if row is None:
            await self._conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
            )
            await self._conn.commit()
        elif row["version"] > SCHEMA_VERSION:
            logger.warning(
                "Cache schema version %d is newer than supported %d",
                row["version"],
                SCHEMA_VERSION,
            )

        self._read_pool = ReadPool(self._db_path)
        await self._read_pool.initialize()

    async def close(self) -> None:
        """Close the writer connection and reader pool."""
        if self._read_pool:
            await self._read_pool.close()
            self._read_pool = None
        if self._conn:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> SQLiteCache:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _ensure_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("SQLiteCache not initialized. Call initialize() first.")
        return self._conn

    def _ensure_read_conn(self) -> aiosqlite.Connection:
        if self._read_pool is None:
            raise RuntimeError("SQLiteCache not initialized. Call initialize() first.")
        return self._read_pool.acquire()

    def _write_lock(self) -> asyncio.Lock:
        return self._lock

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteTransaction]:
        conn = self._ensure_conn()
        async with self._lock:
            await conn.execute("BEGIN IMMEDIATE")
            tx = SQLiteTransaction(conn)
            try:
                yield tx
            finally:
                if not tx.committed:
                    # Also reached on CancelledError; nothing staged may survive.
                    await conn.rollback()

    async def get(self, entity_type: str, entity_id: str) -> CachedEntity | None:
        conn = self._ensure_read_conn()
        async with conn.execute(
            """SELECT * FROM cached_entities
               WHERE entity_type = ? AND entity_id = ?
               ORDER BY local_key LIMIT 1""",
            (entity_type, entity_id),
        ) as cursor:
            row = await cursor.fetchone()
        return row_to_entity(row) if row else None

    async def list_active(
        self, entity_type: str, farm_id: str | None = None
    ) -> list[CachedEntity]:
        conn = self._ensure_read_conn()
        sql = "SELECT * FROM cached_entities WHERE entity_type = ? AND deleted_at IS NULL"
        params: list[str] = [entity_type]
        if farm_id is not None:
            sql += " AND farm_id = ?"
            params.append(farm_id)
        sql += " ORDER BY local_key"
        async with conn.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [row_to_entity(r) for r in rows]

    async def count(self, entity_type: str, *, include_deleted: bool = False) -> int:
        conn = self._ensure_read_conn()
        sql = "SELECT COUNT(*) AS cnt FROM cached_entities WHERE entity_type = ?"
        if not include_deleted:
            sql += " AND deleted_at IS NULL"
        async with conn.execute(sql, (entity_type,)) as cursor:
            row = await cursor.fetchone()
        return row["cnt"] if row else 0
