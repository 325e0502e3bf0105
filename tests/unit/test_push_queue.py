"""Tests for PushOperation retry math, PushQueue and PushQueueProcessor."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from factories import FARM_ID, T0, cattle_row, uid
from herd_sync.core.entity import CachedEntity
from herd_sync.core.push_operation import PushOperation, PushOperationType, RetryPolicy
from herd_sync.remote.memory_remote import InMemoryRemote
from herd_sync.storage.memory_store import InMemoryCache
from herd_sync.sync.coordinator import SyncCoordinator
from herd_sync.sync.errors import (
    EntityNotFoundError,
    NotAuthenticatedError,
    RemoteUnavailableError,
)
from herd_sync.sync.push_queue import PushQueue, PushQueueProcessor

# ── PushOperation ─────────────────────────────────────────────────────────────


class TestPushOperation:
    def test_backoff_doubles_and_caps(self) -> None:
        op = PushOperation.create("cattle", uid(1), "update")
        delays = []
        for _ in range(8):
            delays.append(op.next_retry_delay())
            op = op.with_failure("boom", T0)
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 60.0, 60.0]

    def test_retries_exhaust_after_five_failures(self) -> None:
        op = PushOperation.create("cattle", uid(1), PushOperationType.CREATE)
        for _ in range(4):
            op = op.with_failure("boom", T0)
        assert op.should_retry()
        op = op.with_failure("boom", T0)
        assert not op.should_retry()
        assert op.retry_count == 5
        assert op.error == "boom"

    def test_can_retry_now_waits_for_backoff(self) -> None:
        op = PushOperation.create("cattle", uid(1), "update").with_failure("boom", T0)

        assert not op.can_retry_now(T0 + timedelta(seconds=1))
        assert op.can_retry_now(T0 + timedelta(seconds=2))

    def test_fresh_operation_is_due(self) -> None:
        assert PushOperation.create("cattle", uid(1), "delete").can_retry_now()

    def test_dict_round_trip(self) -> None:
        op = PushOperation.create("cattle", uid(1), "update").with_failure("boom", T0)
        assert PushOperation.from_dict(op.to_dict()) == op

    def test_unknown_operation_rejected(self) -> None:
        with pytest.raises(ValueError):
            PushOperation.create("cattle", uid(1), "upsert")


# ── PushQueue ─────────────────────────────────────────────────────────────────


class TestPushQueue:
    async def test_enqueue_same_change_replaces_in_place(self) -> None:
        queue = PushQueue(InMemoryCache())
        first = await queue.enqueue("cattle", uid(1), "update")
        failed = await queue.record_failure(first, "offline", T0)

        second = await queue.enqueue("cattle", uid(1), "update")

        ops = await queue.all()
        assert len(ops) == 1
        assert second.id == first.id
        assert second.created_at == first.created_at
        assert failed.retry_count == 1
        assert ops[0].retry_count == 0

    async def test_different_operations_are_kept(self) -> None:
        queue = PushQueue(InMemoryCache())
        await queue.enqueue("cattle", uid(1), "create")
        await queue.enqueue("cattle", uid(1), "update")
        await queue.enqueue("cattle", uid(2), "update")

        assert len(await queue.all()) == 3

    async def test_pending_and_failed(self) -> None:
        queue = PushQueue(InMemoryCache(), RetryPolicy(max_retries=1))
        ok = await queue.enqueue("cattle", uid(1), "update")
        doomed = await queue.enqueue("cattle", uid(2), "update")
        await queue.record_failure(doomed, "rejected", T0)

        assert [op.id for op in await queue.pending()] == [ok.id]
        assert [op.id for op in await queue.failed()] == [doomed.id]
        assert await queue.counts() == {"total": 2, "pending": 1, "failed": 1}

        assert await queue.clear_failed() == 1
        assert [op.id for op in await queue.all()] == [ok.id]

    async def test_pending_entity_ids_skip_deletes_and_dead_ops(self) -> None:
        queue = PushQueue(InMemoryCache(), RetryPolicy(max_retries=1))
        await queue.enqueue("cattle", uid(1), "create")
        await queue.enqueue("cattle", uid(2), "delete")
        dead = await queue.enqueue("cattle", uid(3), "update")
        await queue.record_failure(dead, "rejected", T0)
        await queue.enqueue("health_records", uid(4), "update")

        assert await queue.pending_entity_ids("cattle") == {uid(1)}

    async def test_clear(self) -> None:
        queue = PushQueue(InMemoryCache())
        await queue.enqueue("cattle", uid(1), "update")
        await queue.enqueue("cattle", uid(2), "update")

        assert await queue.clear() == 2
        assert await queue.all() == []


# ── PushQueueProcessor ────────────────────────────────────────────────────────


class TestPushQueueProcessor:
    async def test_successful_pushes_leave_the_queue(
        self,
        coordinator: SyncCoordinator,
        push_queue: PushQueue,
        remote: InMemoryRemote,
        cache: InMemoryCache,
    ) -> None:
        await coordinator.record_local_change(
            CachedEntity("cattle", uid(1), farm_id=FARM_ID, fields={"tag_number": "Q-1"})
        )

        report = await PushQueueProcessor(push_queue, coordinator).process()

        assert report.processed == 1
        assert report.succeeded == 1
        assert await push_queue.all() == []
        [row] = remote.rows("cattle")
        assert row["tag_number"] == "Q-1"

    async def test_delete_operations_use_remote_delete(
        self,
        coordinator: SyncCoordinator,
        push_queue: PushQueue,
        remote: InMemoryRemote,
        cache: InMemoryCache,
    ) -> None:
        remote.seed("cattle", cattle_row(1))
        cache.seed(CachedEntity("cattle", uid(1), farm_id=FARM_ID))
        await push_queue.enqueue("cattle", uid(1), "delete")

        report = await PushQueueProcessor(push_queue, coordinator).process()

        assert report.succeeded == 1
        [row] = remote.rows("cattle")
        assert row["deleted_at"] is not None

    async def test_failures_are_recorded_and_deferred(
        self, coordinator: SyncCoordinator, push_queue: PushQueue
    ) -> None:
        await push_queue.enqueue("cattle", uid(1), "update")
        processor = PushQueueProcessor(push_queue, coordinator)

        report = await processor.process()

        assert report.failed == 1
        assert "not found" in report.errors[0]
        [op] = await push_queue.all()
        assert op.retry_count == 1

        # Backing off: the next run defers it.
        again = await processor.process()
        assert again.processed == 0
        assert again.deferred == 1

    async def test_not_authenticated_propagates(self, push_queue: PushQueue) -> None:
        coordinator = MagicMock()
        coordinator.push = AsyncMock(side_effect=NotAuthenticatedError())
        await push_queue.enqueue("cattle", uid(1), "update")

        with pytest.raises(NotAuthenticatedError):
            await PushQueueProcessor(push_queue, coordinator).process()

        [op] = await push_queue.all()
        assert op.retry_count == 0

    async def test_dispatches_by_operation(self, push_queue: PushQueue) -> None:
        coordinator = MagicMock()
        coordinator.push = AsyncMock()
        coordinator.delete_remote = AsyncMock(side_effect=RemoteUnavailableError("offline"))
        await push_queue.enqueue("cattle", uid(1), "create")
        await push_queue.enqueue("cattle", uid(2), "delete")

        report = await PushQueueProcessor(push_queue, coordinator).process()

        coordinator.push.assert_awaited_once_with("cattle", uid(1))
        coordinator.delete_remote.assert_awaited_once_with("cattle", uid(2))
        assert report.succeeded == 1
        assert report.failed == 1

    async def test_missing_entity_counts_as_failure(self, push_queue: PushQueue) -> None:
        coordinator = MagicMock()
        coordinator.push = AsyncMock(side_effect=EntityNotFoundError("cattle", uid(1)))
        await push_queue.enqueue("cattle", uid(1), "update")

        report = await PushQueueProcessor(push_queue, coordinator).process()

        assert report.failed == 1
