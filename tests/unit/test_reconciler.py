"""Tests for DeletionReconciler planning and application."""

from __future__ import annotations

import pytest

from factories import FARM_ID, T0, cattle_row, later, uid
from herd_sync.core.entity import CachedEntity
from herd_sync.storage.memory_store import InMemoryCache
from herd_sync.sync.entities import CATTLE
from herd_sync.sync.mapper import EntityMapper
from herd_sync.sync.protocol import DeletedRecordMarker, SyncMode
from herd_sync.sync.reconciler import DeletionReconciler


@pytest.fixture
def mapper() -> EntityMapper:
    return EntityMapper(CATTLE)


@pytest.fixture
def reconciler(mapper: EntityMapper) -> DeletionReconciler:
    return DeletionReconciler(mapper)


def _cached(n: int, tag: str | None = None, **changes: object) -> CachedEntity:
    entity = CachedEntity(
        entity_type="cattle",
        id=uid(n),
        farm_id=FARM_ID,
        updated_at=T0,
        fields={"tag_number": tag or f"T-{n}"},
    )
    return entity.with_changes(**changes) if changes else entity


# ── plan ──────────────────────────────────────────────────────────────────────


class TestPlan:
    def test_incremental_never_plans_hard_deletes(
        self, reconciler: DeletionReconciler, mapper: EntityMapper
    ) -> None:
        records = [mapper.map_row(cattle_row(1))]

        plan = reconciler.plan(
            records, [], mode=SyncMode.INCREMENTAL, local_active_ids={uid(1), uid(2)}
        )

        assert plan.hard_deletes == frozenset()

    def test_full_plans_orphans(self, reconciler: DeletionReconciler, mapper: EntityMapper) -> None:
        records = [mapper.map_row(cattle_row(1))]
        markers = [DeletedRecordMarker(uid(3), later(5))]

        plan = reconciler.plan(
            records, markers, mode=SyncMode.FULL, local_active_ids={uid(1), uid(2), uid(3)}
        )

        assert plan.hard_deletes == frozenset({uid(2)})
        assert [m.id for m in plan.soft_deletes] == [uid(3)]

    def test_duplicate_rows_last_wins(
        self, reconciler: DeletionReconciler, mapper: EntityMapper
    ) -> None:
        records = [
            mapper.map_row(cattle_row(1, "first")),
            mapper.map_row(cattle_row(2)),
            mapper.map_row(cattle_row(1, "second")),
        ]

        plan = reconciler.plan(records, [], mode=SyncMode.INCREMENTAL)

        assert [r.id for r in plan.upserts] == [uid(1), uid(2)]
        assert plan.upserts[0].fields["tag_number"] == "second"


# ── apply ─────────────────────────────────────────────────────────────────────


class TestApply:
    async def test_creates_and_updates(
        self, reconciler: DeletionReconciler, mapper: EntityMapper
    ) -> None:
        cache = InMemoryCache()
        cache.seed(_cached(1, "old"))
        records = [mapper.map_row(cattle_row(1, "new")), mapper.map_row(cattle_row(2))]
        plan = reconciler.plan(records, [], mode=SyncMode.INCREMENTAL)

        async with cache.transaction() as tx:
            result = await reconciler.apply(tx, plan)
            await tx.commit()

        assert result.created == 1
        assert result.updated == 1
        stored = await cache.get("cattle", uid(1))
        assert stored is not None
        assert stored.fields["tag_number"] == "new"

    async def test_reapplying_identical_batch_changes_nothing(
        self, reconciler: DeletionReconciler, mapper: EntityMapper
    ) -> None:
        cache = InMemoryCache()
        plan = reconciler.plan([mapper.map_row(cattle_row(1))], [], mode=SyncMode.INCREMENTAL)
        async with cache.transaction() as tx:
            await reconciler.apply(tx, plan)
            await tx.commit()

        async with cache.transaction() as tx:
            result = await reconciler.apply(tx, plan)
            assert not tx.has_pending_changes

        assert result.unchanged == 1
        assert result.created == result.updated == 0

    async def test_soft_delete_marks_without_removing(
        self, reconciler: DeletionReconciler
    ) -> None:
        cache = InMemoryCache()
        cache.seed(_cached(1))
        plan = reconciler.plan(
            [], [DeletedRecordMarker(uid(1), later(10))], mode=SyncMode.INCREMENTAL
        )

        async with cache.transaction() as tx:
            result = await reconciler.apply(tx, plan)
            await tx.commit()

        assert result.soft_deleted == 1
        stored = await cache.get("cattle", uid(1))
        assert stored is not None
        assert stored.deleted_at == later(10)
        assert await cache.list_active("cattle") == []

    async def test_marker_for_unknown_id_is_ignored(
        self, reconciler: DeletionReconciler
    ) -> None:
        cache = InMemoryCache()
        plan = reconciler.plan(
            [], [DeletedRecordMarker(uid(9), later(10))], mode=SyncMode.INCREMENTAL
        )

        async with cache.transaction() as tx:
            result = await reconciler.apply(tx, plan)
            assert not tx.has_pending_changes

        assert result.soft_deleted == 0

    async def test_marker_wins_over_active_row_in_same_run(
        self, reconciler: DeletionReconciler, mapper: EntityMapper
    ) -> None:
        cache = InMemoryCache()
        cache.seed(_cached(1))
        plan = reconciler.plan(
            [mapper.map_row(cattle_row(1, "edited"))],
            [DeletedRecordMarker(uid(1), later(10))],
            mode=SyncMode.INCREMENTAL,
        )

        async with cache.transaction() as tx:
            result = await reconciler.apply(tx, plan)
            await tx.commit()

        stored = await cache.get("cattle", uid(1))
        assert stored is not None
        assert stored.deleted_at == later(10)
        assert stored.fields["tag_number"] == "edited"
        assert result.soft_deleted == 1

    async def test_hard_delete_removes_every_copy(self, reconciler: DeletionReconciler) -> None:
        cache = InMemoryCache()
        cache.seed(_cached(1), _cached(2), _cached(2))
        plan = reconciler.plan(
            [], [], mode=SyncMode.FULL, local_active_ids={uid(1), uid(2)}
        )

        async with cache.transaction() as tx:
            result = await reconciler.apply(tx, plan)
            await tx.commit()

        assert result.hard_deleted == 2
        assert cache.snapshot() == []

    async def test_duplicates_healed_keeping_lowest_key(
        self, reconciler: DeletionReconciler, mapper: EntityMapper
    ) -> None:
        cache = InMemoryCache()
        first, _second = cache.seed(_cached(1, "a"), _cached(1, "b"))
        plan = reconciler.plan([mapper.map_row(cattle_row(1, "c"))], [], mode=SyncMode.INCREMENTAL)

        async with cache.transaction() as tx:
            result = await reconciler.apply(tx, plan)
            await tx.commit()

        assert result.duplicates_removed == 1
        rows = cache.snapshot()
        assert len(rows) == 1
        assert rows[0].local_key == first.local_key
        assert rows[0].fields["tag_number"] == "c"
