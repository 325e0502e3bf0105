"""Three-way reconciliation of fetched rows against the local cache."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from herd_sync.sync.protocol import (
    DeletedRecordMarker,
    MappedRecord,
    ReconcilePlan,
    ReconcileResult,
    SyncMode,
)

if TYPE_CHECKING:
    from herd_sync.core.entity import CachedEntity
    from herd_sync.storage.base import CacheTransaction
    from herd_sync.sync.mapper import EntityMapper

logger = logging.getLogger(__name__)


class DeletionReconciler:
    """
    Decides what to upsert, soft-delete and hard-delete for one sync run.

    Orphan hard-deletes are only planned for full syncs. An incremental
    fetch only returns rows changed inside the window, so a local id
    missing from it says nothing about whether the row still exists.
    """

    def __init__(self, mapper: EntityMapper) -> None:
        self._mapper = mapper
        self._config = mapper.config

    def plan(
        self,
        records: list[MappedRecord],
        markers: list[DeletedRecordMarker],
        *,
        mode: SyncMode,
        local_active_ids: set[str] | frozenset[str] = frozenset(),
    ) -> ReconcilePlan:
        """Build the plan. Pure; ``local_active_ids`` only matters for full syncs."""
        # Later rows for the same id win; first-seen order is kept.
        upserts: dict[str, MappedRecord] = {}
        for record in records:
            upserts[record.id] = record
        soft_deletes: dict[str, DeletedRecordMarker] = {}
        for marker in markers:
            soft_deletes[marker.id] = marker

        orphans: frozenset[str] = frozenset()
        if mode == SyncMode.FULL:
            orphans = frozenset(set(local_active_ids) - upserts.keys() - soft_deletes.keys())

        return ReconcilePlan(
            upserts=tuple(upserts.values()),
            soft_deletes=tuple(soft_deletes.values()),
            hard_deletes=orphans,
            mode=mode,
        )

    async def apply(self, tx: CacheTransaction, plan: ReconcilePlan) -> ReconcileResult:
        """Stage the plan: upserts, then soft-deletes, then hard-deletes."""
        result = ReconcileResult()
        markers = {m.id: m for m in plan.soft_deletes}
        entity_type = self._config.entity_type

        for record in plan.upserts:
            existing = await self._heal_duplicates(tx, record.id, result)
            desired = self._mapper.apply(record, existing)
            # A deletion marker from the same run wins over the active row.
            marker = markers.get(record.id)
            if marker is not None and desired.deleted_at is None:
                desired = desired.with_changes(deleted_at=marker.deleted_at)
                if existing is None or existing.is_active:
                    result.soft_deleted += 1

            if existing is None:
                await tx.create(desired)
                result.created += 1
                logger.debug("Created %s %s", entity_type, record.id)
            elif await tx.update(desired):
                result.updated += 1
                logger.debug("Updated %s %s", entity_type, record.id)
            else:
                result.unchanged += 1

        upserted = {r.id for r in plan.upserts}
        for marker in plan.soft_deletes:
            if marker.id in upserted:
                continue
            entity = await self._heal_duplicates(tx, marker.id, result)
            if entity is None or not entity.is_active:
                continue
            await tx.update(entity.with_changes(deleted_at=marker.deleted_at))
            result.soft_deleted += 1
            logger.debug("Soft-deleted %s %s", entity_type, marker.id)

        for orphan_id in sorted(plan.hard_deletes):
            doomed = await tx.find_all_by_id(entity_type, orphan_id)
            for entity in doomed:
                await tx.delete(entity)
            if doomed:
                result.hard_deleted += 1
                logger.debug("Hard-deleted orphaned %s %s", entity_type, orphan_id)

        if plan.mode == SyncMode.INCREMENTAL:
            logger.debug("Skipped orphan detection for %s (incremental sync)", entity_type)
        elif result.hard_deleted:
            logger.info(
                "Hard-deleted %d orphaned %s (full sync)", result.hard_deleted, entity_type
            )
        return result

    async def _heal_duplicates(
        self, tx: CacheTransaction, entity_id: str, result: ReconcileResult
    ) -> CachedEntity | None:
        """Return the surviving entity for an id, deleting any extra copies."""
        matches = await tx.find_all_by_id(self._config.entity_type, entity_id)
        if not matches:
            return None
        keep, extras = matches[0], matches[1:]
        for extra in extras:
            await tx.delete(extra)
            result.duplicates_removed += 1
        if extras:
            logger.warning(
                "Removed %d duplicate %s rows for id %s",
                len(extras),
                self._config.entity_type,
                entity_id,
            )
        return keep
