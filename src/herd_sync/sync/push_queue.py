"""Persistent queue of offline writes and the processor that drains it."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING

from herd_sync.core.push_operation import (
    DEFAULT_RETRY_POLICY,
    PushOperation,
    PushOperationType,
    RetryPolicy,
)
from herd_sync.sync.errors import NotAuthenticatedError, SyncError
from herd_sync.sync.protocol import QueueReport
from herd_sync.utils.timeutils import utcnow

if TYPE_CHECKING:
    from herd_sync.storage.base import LocalCache
    from herd_sync.sync.coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


class PushQueue:
    """
    Queue of local changes waiting for the remote store.

    Operations are persisted through the local cache so they survive
    restarts. Enqueuing an operation that matches a queued one on
    (entity_type, entity_id, operation) replaces it in place with fresh
    retry state.
    """

    def __init__(self, cache: LocalCache, policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> None:
        self._cache = cache
        self._policy = policy

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def enqueue(
        self,
        entity_type: str,
        entity_id: str,
        operation: PushOperationType | str,
    ) -> PushOperation:
        new_op = PushOperation.create(entity_type, entity_id, operation)
        for existing in await self._cache.list_push_operations():
            if existing.dedup_key == new_op.dedup_key:
                new_op = replace(new_op, id=existing.id, created_at=existing.created_at)
                logger.debug(
                    "Replaced queued %s of %s %s", new_op.operation, entity_type, entity_id
                )
                break
        await self._cache.save_push_operation(new_op)
        return new_op

    async def all(self) -> list[PushOperation]:
        return await self._cache.list_push_operations()

    async def pending(self, now: datetime | None = None) -> list[PushOperation]:
        """Operations that may be attempted now."""
        now = now or utcnow()
        ops = await self._cache.list_push_operations()
        return [op for op in ops if op.can_retry_now(now, self._policy)]

    async def failed(self) -> list[PushOperation]:
        """Operations that exhausted their retries."""
        ops = await self._cache.list_push_operations()
        return [op for op in ops if not op.should_retry(self._policy)]

    async def pending_entity_ids(self, entity_type: str) -> set[str]:
        """Ids with queued creates/updates that still may be pushed."""
        return {
            op.entity_id
            for op in await self._cache.list_push_operations()
            if op.entity_type == entity_type
            and op.operation != PushOperationType.DELETE
            and op.should_retry(self._policy)
        }

    async def remove(self, operation: PushOperation) -> None:
        await self._cache.delete_push_operation(operation.id)

    async def record_failure(
        self, operation: PushOperation, error: str, when: datetime | None = None
    ) -> PushOperation:
        failed = operation.with_failure(error, when)
        await self._cache.save_push_operation(failed)
        if failed.should_retry(self._policy):
            logger.warning(
                "Push of %s %s failed (attempt %d/%d): %s",
                operation.entity_type,
                operation.entity_id,
                failed.retry_count,
                self._policy.max_retries,
                error,
            )
        else:
            logger.error(
                "Push of %s %s failed permanently after %d attempts: %s",
                operation.entity_type,
                operation.entity_id,
                failed.retry_count,
                error,
            )
        return failed

    async def clear_failed(self) -> int:
        removed = 0
        for op in await self.failed():
            if await self._cache.delete_push_operation(op.id):
                removed += 1
        return removed

    async def clear(self) -> int:
        removed = 0
        for op in await self._cache.list_push_operations():
            if await self._cache.delete_push_operation(op.id):
                removed += 1
        return removed

    async def counts(self) -> dict[str, int]:
        ops = await self._cache.list_push_operations()
        failed = sum(1 for op in ops if not op.should_retry(self._policy))
        return {"total": len(ops), "pending": len(ops) - failed, "failed": failed}


class PushQueueProcessor:
    """Runs queued operations through the coordinator's push path."""

    def __init__(self, queue: PushQueue, coordinator: SyncCoordinator) -> None:
        self._queue = queue
        self._coordinator = coordinator
        self._lock = asyncio.Lock()

    @property
    def is_processing(self) -> bool:
        return self._lock.locked()

    async def process(self) -> QueueReport:
        """Attempt every operation that is due; successes leave the queue."""
        async with self._lock:
            now = utcnow()
            everything = await self._queue.all()
            due = [op for op in everything if op.can_retry_now(now, self._queue.policy)]
            deferred = sum(
                1 for op in everything if op.should_retry(self._queue.policy) and op not in due
            )

            succeeded = 0
            failed = 0
            errors: list[str] = []
            for op in due:
                try:
                    await self._run(op)
                except NotAuthenticatedError:
                    raise
                except SyncError as e:
                    failed += 1
                    errors.append(f"{op.entity_type} {op.entity_id}: {e}")
                    await self._queue.record_failure(op, str(e), now)
                    continue
                await self._queue.remove(op)
                succeeded += 1

            if due:
                logger.info(
                    "Push queue processed %d operations (%d ok, %d failed)",
                    len(due),
                    succeeded,
                    failed,
                )
            return QueueReport(
                processed=len(due),
                succeeded=succeeded,
                failed=failed,
                deferred=deferred,
                errors=tuple(errors),
            )

    async def _run(self, op: PushOperation) -> None:
        if op.operation == PushOperationType.DELETE:
            await self._coordinator.delete_remote(op.entity_type, op.entity_id)
        else:
            await self._coordinator.push(op.entity_type, op.entity_id)
