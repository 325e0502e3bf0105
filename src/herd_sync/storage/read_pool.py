"""Read-only SQLite connections for the cache.

Under WAL a reader on its own connection only ever sees committed data,
while the writer connection may be holding a staged sync batch inside
``BEGIN IMMEDIATE``. All public reads on SQLiteCache go through here.
"""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 2


class ReadPool:
    """Round-robin pool of ``query_only`` connections to one database file."""

    def __init__(self, db_path: Path, pool_size: int = DEFAULT_POOL_SIZE) -> None:
        self._db_path = db_path
        self._pool_size = max(1, pool_size)
        self._connections: list[aiosqlite.Connection] = []
        self._index = 0

    async def initialize(self) -> None:
        for _ in range(self._pool_size):
            conn = await aiosqlite.connect(self._db_path)
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("PRAGMA query_only=ON")
            self._connections.append(conn)

        logger.debug("ReadPool: opened %d reader connections", self._pool_size)

    def acquire(self) -> aiosqlite.Connection:
        """Next reader connection.

        Raises:
            RuntimeError: If the pool has not been initialized.
        """
        if not self._connections:
            raise RuntimeError("ReadPool not initialized. Call initialize() first.")
        conn = self._connections[self._index % self._pool_size]
        self._index += 1
        return conn

    @property
    def size(self) -> int:
        return len(self._connections)

    async def close(self) -> None:
        for conn in self._connections:
            try:
                await conn.close()
            except Exception:
                logger.debug("ReadPool: error closing connection", exc_info=True)
        self._connections.clear()
        self._index = 0
