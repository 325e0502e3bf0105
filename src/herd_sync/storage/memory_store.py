"""In-memory cache backend for tests and offline demos."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager

from herd_sync.core.entity import CachedEntity
from herd_sync.core.push_operation import PushOperation
from herd_sync.storage.base import CacheTransaction, LocalCache
from herd_sync.sync.errors import CommitError

logger = logging.getLogger(__name__)


class InMemoryTransaction(CacheTransaction):
    """Staged overlay over the committed rows of an InMemoryCache.

    ``_staged`` maps local key -> new entity, or None for a removal.
    """

    def __init__(self, cache: InMemoryCache) -> None:
        self._cache = cache
        self._staged: dict[int, CachedEntity | None] = {}
        self._committed = False

    @property
    def committed(self) -> bool:
        return self._committed

    def _current(self, local_key: int) -> CachedEntity | None:
        if local_key in self._staged:
            return self._staged[local_key]
        return self._cache._rows.get(local_key)

    def _view(self, entity_type: str) -> Iterator[CachedEntity]:
        keys = set(self._cache._rows) | set(self._staged)
        for key in sorted(keys):
            entity = self._current(key)
            if entity is not None and entity.entity_type == entity_type:
                yield entity

    async def find(self, entity_type: str, entity_id: str) -> CachedEntity | None:
        for entity in self._view(entity_type):
            if entity.id == entity_id:
                return entity
        return None

    async def find_all_by_id(self, entity_type: str, entity_id: str) -> list[CachedEntity]:
        return [e for e in self._view(entity_type) if e.id == entity_id]

    async def find_active_ids(self, entity_type: str, farm_id: str | None = None) -> set[str]:
        return {
            e.id
            for e in self._view(entity_type)
            if e.is_active and (farm_id is None or e.farm_id == farm_id)
        }

    async def create(self, entity: CachedEntity) -> CachedEntity:
        key = self._cache._allocate_key()
        created = entity.with_changes(local_key=key)
        self._staged[key] = created
        return created

    async def update(self, entity: CachedEntity) -> bool:
        if entity.local_key is None:
            raise KeyError(f"{entity.entity_type} {entity.id} has no local key")
        current = self._current(entity.local_key)
        if current is None:
            raise KeyError(f"No cached entity with local key {entity.local_key}")
        if current.same_content(entity):
            return False
        self._staged[entity.local_key] = entity
        return True

    async def delete(self, entity: CachedEntity) -> None:
        if entity.local_key is None:
            return
        if entity.local_key in self._cache._rows:
            self._staged[entity.local_key] = None
        else:
            self._staged.pop(entity.local_key, None)

    @property
    def has_pending_changes(self) -> bool:
        return bool(self._staged)

    async def commit(self) -> None:
        if self._cache._fail_next_commit:
            self._cache._fail_next_commit = False
            raise CommitError("Injected commit failure")
        for key, entity in self._staged.items():
            if entity is None:
                self._cache._rows.pop(key, None)
            else:
                self._cache._rows[key] = entity
        self._cache.commit_count += 1
        self._staged.clear()
        self._committed = True


class InMemoryCache(LocalCache):
    """Dict-backed cache keyed by surrogate local keys.

    Duplicate rows for one remote id are representable, which keeps the
    duplicate-healing path testable. Data is lost when the process exits.
    """

    def __init__(self) -> None:
        self._rows: dict[int, CachedEntity] = {}
        self._next_key = 1
        self._lock = asyncio.Lock()
        self._fail_next_commit = False
        self._queue: dict[str, PushOperation] = {}
        self.commit_count = 0

    def _allocate_key(self) -> int:
        key = self._next_key
        self._next_key += 1
        return key

    def fail_next_commit(self) -> None:
        """Make the next ``commit()`` raise CommitError."""
        self._fail_next_commit = True

    def seed(self, *entities: CachedEntity) -> list[CachedEntity]:
        """Insert committed entities directly, bypassing transactions."""
        seeded = []
        for entity in entities:
            key = self._allocate_key()
            stored = entity.with_changes(local_key=key)
            self._rows[key] = stored
            seeded.append(stored)
        return seeded

    def snapshot(self) -> list[CachedEntity]:
        """Committed rows ordered by local key."""
        return [self._rows[k] for k in sorted(self._rows)]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryTransaction]:
        async with self._lock:
            tx = InMemoryTransaction(self)
            try:
                yield tx
            finally:
                if not tx.committed and tx.has_pending_changes:
                    logger.debug("Discarding uncommitted in-memory transaction")

    async def get(self, entity_type: str, entity_id: str) -> CachedEntity | None:
        for entity in self.snapshot():
            if entity.entity_type == entity_type and entity.id == entity_id:
                return entity
        return None

    async def list_active(
        self, entity_type: str, farm_id: str | None = None
    ) -> list[CachedEntity]:
        return [
            e
            for e in self.snapshot()
            if e.entity_type == entity_type
            and e.is_active
            and (farm_id is None or e.farm_id == farm_id)
        ]

    async def count(self, entity_type: str, *, include_deleted: bool = False) -> int:
        return sum(
            1
            for e in self._rows.values()
            if e.entity_type == entity_type and (include_deleted or e.is_active)
        )

    # ========== Push queue persistence ==========

    async def save_push_operation(self, operation: PushOperation) -> None:
        self._queue[operation.id] = operation

    async def list_push_operations(self) -> list[PushOperation]:
        return sorted(self._queue.values(), key=lambda op: op.created_at)

    async def delete_push_operation(self, operation_id: str) -> bool:
        return self._queue.pop(operation_id, None) is not None
