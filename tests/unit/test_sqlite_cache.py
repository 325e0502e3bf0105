"""Tests for the SQLite cache backend."""

from __future__ import annotations

import asyncio
from datetime import date
from pathlib import Path

import pytest

from factories import FARM_ID, OTHER_FARM_ID, T0, later, uid
from herd_sync.core.entity import CachedEntity
from herd_sync.core.push_operation import PushOperation
from herd_sync.storage.sqlite_store import SQLiteCache


def _cow(n: int, farm_id: str = FARM_ID, **fields: object) -> CachedEntity:
    return CachedEntity(
        entity_type="cattle",
        id=uid(n),
        farm_id=farm_id,
        updated_at=T0,
        fields={"tag_number": f"T-{n}", **fields},
        links={"dam": None},
    )


# ── transactions ──────────────────────────────────────────────────────────────


class TestTransactions:
    async def test_commit_persists(self, sqlite_cache: SQLiteCache) -> None:
        async with sqlite_cache.transaction() as tx:
            created = await tx.create(_cow(1))
            await tx.commit()

        assert created.local_key is not None
        stored = await sqlite_cache.get("cattle", uid(1))
        assert stored is not None
        assert stored.same_content(_cow(1))

    async def test_uncommitted_writes_roll_back(self, sqlite_cache: SQLiteCache) -> None:
        async with sqlite_cache.transaction() as tx:
            await tx.create(_cow(1))

        assert await sqlite_cache.get("cattle", uid(1)) is None

    async def test_exception_rolls_back(self, sqlite_cache: SQLiteCache) -> None:
        with pytest.raises(RuntimeError):
            async with sqlite_cache.transaction() as tx:
                await tx.create(_cow(1))
                raise RuntimeError("boom")

        assert await sqlite_cache.count("cattle") == 0

    async def test_open_transaction_is_invisible_to_readers(
        self, sqlite_cache: SQLiteCache
    ) -> None:
        staged = asyncio.Event()
        release = asyncio.Event()

        async def abandon_after_staging() -> None:
            with pytest.raises(RuntimeError):
                async with sqlite_cache.transaction() as tx:
                    await tx.create(_cow(9))
                    staged.set()
                    await release.wait()
                    raise RuntimeError("abort")

        writer = asyncio.create_task(abandon_after_staging())
        await staged.wait()

        seen = await sqlite_cache.get("cattle", uid(9))
        counted = await sqlite_cache.count("cattle")
        listed = await sqlite_cache.list_active("cattle")
        release.set()
        await writer

        assert seen is None
        assert counted == 0
        assert listed == []
        assert await sqlite_cache.get("cattle", uid(9)) is None

    async def test_identical_update_is_not_a_write(self, sqlite_cache: SQLiteCache) -> None:
        async with sqlite_cache.transaction() as tx:
            created = await tx.create(_cow(1))
            await tx.commit()

        async with sqlite_cache.transaction() as tx:
            changed = await tx.update(_cow(1).with_changes(local_key=created.local_key))
            assert not changed
            assert not tx.has_pending_changes

    async def test_update_and_delete(self, sqlite_cache: SQLiteCache) -> None:
        async with sqlite_cache.transaction() as tx:
            created = await tx.create(_cow(1))
            await tx.commit()

        async with sqlite_cache.transaction() as tx:
            assert await tx.update(created.with_changes(deleted_at=later(5)))
            await tx.commit()

        assert await sqlite_cache.list_active("cattle") == []
        assert await sqlite_cache.count("cattle", include_deleted=True) == 1

        async with sqlite_cache.transaction() as tx:
            await tx.delete(created)
            await tx.commit()

        assert await sqlite_cache.count("cattle", include_deleted=True) == 0

    async def test_duplicates_are_visible_to_healing(self, sqlite_cache: SQLiteCache) -> None:
        async with sqlite_cache.transaction() as tx:
            first = await tx.create(_cow(1))
            await tx.create(_cow(1))
            await tx.commit()

        async with sqlite_cache.transaction() as tx:
            copies = await tx.find_all_by_id("cattle", uid(1))
            found = await tx.find("cattle", uid(1))

        assert len(copies) == 2
        assert found is not None
        assert found.local_key == first.local_key

    async def test_find_active_ids_by_farm(self, sqlite_cache: SQLiteCache) -> None:
        async with sqlite_cache.transaction() as tx:
            await tx.create(_cow(1))
            await tx.create(_cow(2, OTHER_FARM_ID))
            await tx.create(_cow(3).with_changes(deleted_at=later(1)))
            await tx.commit()

        async with sqlite_cache.transaction() as tx:
            assert await tx.find_active_ids("cattle", FARM_ID) == {uid(1)}
            assert await tx.find_active_ids("cattle") == {uid(1), uid(2)}


# ── field encoding ────────────────────────────────────────────────────────────


class TestFields:
    async def test_dates_and_timestamps_keep_their_types(
        self, sqlite_cache: SQLiteCache
    ) -> None:
        cow = _cow(1, birth_date=date(2024, 4, 2), weighed_at=later(30), weight_kg=412.5)
        async with sqlite_cache.transaction() as tx:
            await tx.create(cow)
            await tx.commit()

        stored = await sqlite_cache.get("cattle", uid(1))

        assert stored is not None
        assert stored.fields["birth_date"] == date(2024, 4, 2)
        assert stored.fields["weighed_at"] == later(30)
        assert stored.fields["weight_kg"] == 412.5
        assert stored.links == {"dam": None}

    async def test_list_active_filters_farm(self, sqlite_cache: SQLiteCache) -> None:
        async with sqlite_cache.transaction() as tx:
            await tx.create(_cow(1))
            await tx.create(_cow(2, OTHER_FARM_ID))
            await tx.commit()

        active = await sqlite_cache.list_active("cattle", FARM_ID)

        assert [e.id for e in active] == [uid(1)]


# ── push queue and persistence ────────────────────────────────────────────────


class TestPersistence:
    async def test_push_operations_round_trip(self, sqlite_cache: SQLiteCache) -> None:
        op = PushOperation.create("cattle", uid(1), "update").with_failure("offline", T0)

        await sqlite_cache.save_push_operation(op)
        assert await sqlite_cache.list_push_operations() == [op]

        assert await sqlite_cache.delete_push_operation(op.id)
        assert not await sqlite_cache.delete_push_operation(op.id)
        assert await sqlite_cache.list_push_operations() == []

    async def test_data_survives_reopen(self, tmp_path: Path) -> None:
        db_path = tmp_path / "reopen.db"
        op = PushOperation.create("cattle", uid(1), "create")

        async with SQLiteCache(db_path) as cache:
            async with cache.transaction() as tx:
                await tx.create(_cow(1))
                await tx.commit()
            await cache.save_push_operation(op)
            await cache.save_sync_cursor("cattle", T0)

        async with SQLiteCache(db_path) as cache:
            assert await cache.count("cattle") == 1
            assert [o.id for o in await cache.list_push_operations()] == [op.id]
            assert await cache.get_sync_cursor("cattle") == T0

    async def test_requires_initialize(self, tmp_path: Path) -> None:
        cache = SQLiteCache(tmp_path / "never.db")

        with pytest.raises(RuntimeError, match="not initialized"):
            await cache.count("cattle")
