"""Abstract interfaces for the local entity cache."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from herd_sync.core.entity import CachedEntity
    from herd_sync.core.push_operation import PushOperation


class CacheTransaction(ABC):
    """
    A batch of staged cache writes committed all-or-nothing.

    Reads made through the transaction see its own staged writes.
    Leaving the owning ``transaction()`` block without calling
    ``commit()`` discards everything that was staged.
    """

    @abstractmethod
    async def find(self, entity_type: str, entity_id: str) -> CachedEntity | None:
        """
        Point lookup by remote id.

        When duplicates exist the one with the lowest local key is returned.
        """
        ...

    @abstractmethod
    async def find_all_by_id(self, entity_type: str, entity_id: str) -> list[CachedEntity]:
        """All entities sharing a remote id, ordered by local key."""
        ...

    @abstractmethod
    async def find_active_ids(self, entity_type: str, farm_id: str | None = None) -> set[str]:
        """
        Remote ids of entities that are not soft-deleted.

        Args:
            entity_type: Table to scan
            farm_id: Restrict to one tenant scope; None scans every row
        """
        ...

    @abstractmethod
    async def create(self, entity: CachedEntity) -> CachedEntity:
        """Stage a new entity and return it with its assigned local key."""
        ...

    @abstractmethod
    async def update(self, entity: CachedEntity) -> bool:
        """
        Stage new content for an existing entity (matched by local key).

        Returns:
            False when the content equals what is stored, in which case
            nothing is staged

        Raises:
            KeyError: If no entity with that local key exists
        """
        ...

    @abstractmethod
    async def delete(self, entity: CachedEntity) -> None:
        """Stage permanent removal of an entity (matched by local key)."""
        ...

    @property
    @abstractmethod
    def has_pending_changes(self) -> bool:
        """Whether anything has been staged since the transaction began."""
        ...

    @abstractmethod
    async def commit(self) -> None:
        """
        Make every staged write visible at once.

        Raises:
            CommitError: If the cache refused the batch; nothing is applied
        """
        ...


class LocalCache(ABC):
    """
    Abstract interface for the on-device entity cache.

    Besides entities, caches persist the push queue so that offline
    writes survive restarts.
    """

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[CacheTransaction]:
        """Open a write transaction (async context manager)."""
        ...

    @abstractmethod
    async def get(self, entity_type: str, entity_id: str) -> CachedEntity | None:
        """Committed entity by remote id, or None."""
        ...

    @abstractmethod
    async def list_active(
        self, entity_type: str, farm_id: str | None = None
    ) -> list[CachedEntity]:
        """Committed entities that are not soft-deleted."""
        ...

    @abstractmethod
    async def count(self, entity_type: str, *, include_deleted: bool = False) -> int:
        """Number of committed entities of a type."""
        ...

    # ========== Push queue persistence ==========

    @abstractmethod
    async def save_push_operation(self, operation: PushOperation) -> None:
        """Insert or replace a queued operation (keyed by its id)."""
        ...

    @abstractmethod
    async def list_push_operations(self) -> list[PushOperation]:
        """All queued operations, oldest first."""
        ...

    @abstractmethod
    async def delete_push_operation(self, operation_id: str) -> bool:
        """Remove a queued operation. Returns False if it did not exist."""
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources. No-op by default."""
