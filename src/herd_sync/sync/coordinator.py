"""Per-table sync orchestration and the push path."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from herd_sync.core.push_operation import PushOperationType
from herd_sync.remote.base import TableQuery
from herd_sync.sync.entities import SYNC_ORDER
from herd_sync.sync.errors import (
    EntityNotFoundError,
    InvalidDataError,
    NotAuthenticatedError,
    RemoteRequestError,
    SyncError,
    UnknownEntityTypeError,
)
from herd_sync.sync.mapper import EntityMapper
from herd_sync.sync.protocol import (
    DeletedRecordMarker,
    FullSyncReport,
    MappedRecord,
    PushOutcome,
    SyncMode,
    SyncSummary,
    TableFailure,
)
from herd_sync.sync.reconciler import DeletionReconciler
from herd_sync.sync.resolver import RelationshipResolver
from herd_sync.utils.timeutils import NEVER, is_never, to_iso, utcnow

if TYPE_CHECKING:
    from datetime import datetime

    from herd_sync.core.entity import CachedEntity
    from herd_sync.remote.base import RemoteTableClient
    from herd_sync.storage.base import LocalCache
    from herd_sync.sync.cursor import SyncCursorStore
    from herd_sync.sync.entity_config import EntityConfig
    from herd_sync.sync.push_queue import PushQueue
    from herd_sync.sync.session import SessionContext

logger = logging.getLogger(__name__)

DEFAULT_MAX_INVALID_ROWS = 5


class SyncCoordinator:
    """
    Generic sync engine driven by EntityConfig values.

    ``sync()`` runs fetch -> reconcile -> resolve -> commit -> advance
    cursor for one table. Syncs of the same table are serialized; different
    tables may run concurrently.
    """

    def __init__(
        self,
        remote: RemoteTableClient,
        cache: LocalCache,
        cursors: SyncCursorStore,
        session: SessionContext,
        *,
        configs: Iterable[EntityConfig] = SYNC_ORDER,
        push_queue: PushQueue | None = None,
        max_invalid_rows: int = DEFAULT_MAX_INVALID_ROWS,
    ) -> None:
        self._remote = remote
        self._cache = cache
        self._cursors = cursors
        self._session = session
        self._configs: dict[str, EntityConfig] = {c.entity_type: c for c in configs}
        self._push_queue = push_queue
        self._max_invalid_rows = max_invalid_rows
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def session(self) -> SessionContext:
        return self._session

    @property
    def cursors(self) -> SyncCursorStore:
        return self._cursors

    @property
    def push_queue(self) -> PushQueue | None:
        return self._push_queue

    def attach_push_queue(self, push_queue: PushQueue) -> None:
        self._push_queue = push_queue

    def config_for(self, entity_type: str) -> EntityConfig:
        config = self._configs.get(entity_type)
        if config is None:
            for candidate in self._configs.values():
                if candidate.table_name == entity_type:
                    return candidate
            raise UnknownEntityTypeError(entity_type)
        return config

    @property
    def entity_types(self) -> list[str]:
        return list(self._configs)

    # ── Pull ────────────────────────────────────────────────────

    async def sync(self, entity_type: str, *, full: bool = False) -> SyncSummary:
        """
        Sync one table from the remote store into the local cache.

        Args:
            entity_type: Registry name (or table name) of the table
            full: Ignore the stored cursor and sweep the whole table

        Returns:
            Counts describing what changed

        Raises:
            NotAuthenticatedError: No active session
            NoFarmAssociationError: Farm-scoped table without a farm
            RemoteUnavailableError: Fetch failed; cursor untouched
            InvalidDataError: Too many malformed rows; nothing written
            CommitError: Local commit failed; cursor untouched
        """
        config = self.config_for(entity_type)
        async with self._locks[config.table_name]:
            return await self._sync_locked(config, full=full)

    async def _sync_locked(self, config: EntityConfig, *, full: bool) -> SyncSummary:
        self._session.require_authenticated()
        farm_id = await self._session.farm_id(self._remote) if config.farm_scoped else None

        last_sync = NEVER if full else await self._cursors.get(config.table_name)
        mode = SyncMode.FULL if is_never(last_sync) else SyncMode.INCREMENTAL
        # Captured before fetching so rows changed mid-sync fall in the next window.
        started_at = utcnow()
        logger.info(
            "Syncing %s (%s, since %s)",
            config.table_name,
            mode.value,
            "never" if mode == SyncMode.FULL else last_sync.isoformat(),
        )

        rows = await self._remote.execute(self._changed_query(config, farm_id, last_sync, mode))
        marker_rows: list[dict[str, Any]] = []
        if config.supports_deletes:
            marker_rows = await self._remote.execute(self._deleted_query(config, farm_id, last_sync))

        mapper = EntityMapper(config)
        records, raw_by_id, unreadable = self._map_rows(mapper, rows)
        markers, unreadable_markers = self._map_markers(mapper, marker_rows)
        skipped = len(unreadable) + len(unreadable_markers)
        # Malformed rows were still observed remotely, so they are never orphans.
        seen_unreadable = {i for i in (*unreadable, *unreadable_markers) if i is not None}
        if skipped > self._max_invalid_rows:
            raise InvalidDataError(
                f"{config.table_name}: {skipped} malformed rows exceed the limit of "
                f"{self._max_invalid_rows}"
            )

        reconciler = DeletionReconciler(mapper)
        resolver = RelationshipResolver(config)
        protected = await self._pending_push_ids(config) if mode == SyncMode.FULL else set()

        async with self._cache.transaction() as tx:
            local_active: set[str] = set()
            if mode == SyncMode.FULL:
                local_active = await tx.find_active_ids(config.entity_type, farm_id)
                local_active -= protected | seen_unreadable
            plan = reconciler.plan(records, markers, mode=mode, local_active_ids=local_active)
            result = await reconciler.apply(tx, plan)

            upserted_ids = [r.id for r in plan.upserts]
            links = await resolver.resolve_batch(
                tx, [raw_by_id[i] for i in upserted_ids], upserted_ids
            )
            links_cleared = 0
            if result.hard_deleted:
                links_cleared = await resolver.unlink_dependents(
                    tx, self._configs.values(), plan.hard_deletes, farm_id
                )
            # Only newly cached rows can satisfy references left unset earlier.
            if result.created:
                links += await resolver.relink_dependents(tx, self._configs.values(), farm_id)

            committed = False
            if tx.has_pending_changes:
                await tx.commit()
                committed = True

        await self._cursors.set(config.table_name, started_at)

        summary = SyncSummary(
            entity_type=config.entity_type,
            table_name=config.table_name,
            mode=mode,
            fetched=len(rows),
            deletion_markers=len(marker_rows),
            created=result.created,
            updated=result.updated,
            unchanged=result.unchanged,
            soft_deleted=result.soft_deleted,
            hard_deleted=result.hard_deleted,
            duplicates_removed=result.duplicates_removed,
            links_resolved=links,
            links_cleared=links_cleared,
            skipped=skipped,
            committed=committed,
            cursor=started_at,
        )
        logger.info(
            "Synced %s: %d created, %d updated, %d soft-deleted, %d hard-deleted, %d skipped",
            config.table_name,
            summary.created,
            summary.updated,
            summary.soft_deleted,
            summary.hard_deleted,
            summary.skipped,
        )
        return summary

    def _changed_query(
        self,
        config: EntityConfig,
        farm_id: str | None,
        last_sync: datetime,
        mode: SyncMode,
    ) -> TableQuery:
        query = self._remote.query(config.table_name)
        if farm_id is not None:
            query = query.eq("farm_id", farm_id)
        if config.supports_deletes:
            query = query.is_(config.deleted_at_field, None)
        # A full sweep must also return rows that never had updated_at set.
        if mode == SyncMode.INCREMENTAL:
            query = query.gte(config.updated_at_field, last_sync)
        if config.order_by:
            query = query.order(config.order_by)
        return query

    def _deleted_query(
        self, config: EntityConfig, farm_id: str | None, last_sync: datetime
    ) -> TableQuery:
        query = self._remote.query(config.table_name).select(
            config.id_field, config.deleted_at_field
        )
        if farm_id is not None:
            query = query.eq("farm_id", farm_id)
        return query.gt(config.deleted_at_field, last_sync)

    def _map_rows(
        self, mapper: EntityMapper, rows: list[dict[str, Any]]
    ) -> tuple[list[MappedRecord], dict[str, dict[str, Any]], list[str | None]]:
        """Map fetched rows; malformed rows are reported by id (None if unreadable)."""
        records: list[MappedRecord] = []
        raw_by_id: dict[str, dict[str, Any]] = {}
        unreadable: list[str | None] = []
        for row in rows:
            try:
                record = mapper.map_row(row)
            except InvalidDataError as e:
                unreadable.append(_observed_id(mapper, row))
                logger.warning(
                    "Skipping malformed %s row: %s", mapper.config.table_name, e, exc_info=True
                )
                continue
            records.append(record)
            raw_by_id[record.id] = row
        return records, raw_by_id, unreadable

    def _map_markers(
        self, mapper: EntityMapper, rows: list[dict[str, Any]]
    ) -> tuple[list[DeletedRecordMarker], list[str | None]]:
        markers: list[DeletedRecordMarker] = []
        unreadable: list[str | None] = []
        for row in rows:
            try:
                markers.append(mapper.map_deletion_marker(row))
            except InvalidDataError as e:
                unreadable.append(_observed_id(mapper, row))
                logger.warning(
                    "Skipping malformed %s deletion marker: %s",
                    mapper.config.table_name,
                    e,
                    exc_info=True,
                )
        return markers, unreadable

    async def _pending_push_ids(self, config: EntityConfig) -> set[str]:
        if self._push_queue is None:
            return set()
        return await self._push_queue.pending_entity_ids(config.entity_type)

    async def sync_all(self, entity_types: Iterable[str] | None = None) -> FullSyncReport:
        """
        Sync several tables in dependency order.

        A failing table is logged and recorded without stopping the rest;
        NotAuthenticatedError aborts the whole run.
        """
        if entity_types is None:
            targets = list(self._configs.values())
        else:
            wanted = {self.config_for(t).entity_type for t in entity_types}
            targets = [c for c in self._configs.values() if c.entity_type in wanted]

        self._session.require_authenticated()
        summaries: list[SyncSummary] = []
        failures: list[TableFailure] = []
        for config in targets:
            try:
                summaries.append(await self.sync(config.entity_type))
            except NotAuthenticatedError:
                raise
            except SyncError as e:
                logger.warning("Sync of %s failed: %s", config.table_name, e, exc_info=True)
                failures.append(TableFailure(config.entity_type, str(e), e.retryable))

        logger.info(
            "Full sync finished: %d tables synced, %d failed", len(summaries), len(failures)
        )
        return FullSyncReport(summaries=tuple(summaries), failures=tuple(failures))

    async def reset_cursor(self, entity_type: str) -> None:
        """Force the next sync of a table to be a full sync."""
        config = self.config_for(entity_type)
        async with self._locks[config.table_name]:
            await self._cursors.clear(config.table_name)
        logger.info("Cleared sync cursor for %s", config.table_name)

    async def reset_all_cursors(self) -> None:
        await self._cursors.clear_all()
        logger.info("Cleared all sync cursors")

    # ── Push ────────────────────────────────────────────────────

    async def push(self, entity_type: str, entity_id: str) -> PushOutcome:
        """
        Push a cached entity to the remote store, creating or updating it.

        An explicit existence check decides between update and create, so
        a transient failure is never mistaken for a missing row. An update
        answered with 404/406 (row vanished after the check) falls back to
        create.
        """
        config = self.config_for(entity_type)
        self._session.require_authenticated()
        entity = await self._cache.get(config.entity_type, entity_id)
        if entity is None:
            raise EntityNotFoundError(config.entity_type, entity_id)

        farm_id = await self._session.farm_id(self._remote) if config.farm_scoped else None
        row = EntityMapper(config).to_remote_row(entity, farm_id)

        if not entity.id:
            await self._remote.insert(config.table_name, row)
            return PushOutcome.CREATED

        existing = await self._remote.fetch_by_id(config.table_name, entity.id)
        if existing is None:
            await self._remote.insert(config.table_name, row)
            logger.debug("Pushed new %s %s", config.table_name, entity.id)
            return PushOutcome.CREATED

        values = {k: v for k, v in row.items() if k != config.id_field}
        try:
            await self._remote.update(config.table_name, values, entity.id)
        except RemoteRequestError as e:
            if not e.is_not_found:
                raise
            logger.info(
                "%s %s disappeared before update, creating it", config.table_name, entity.id
            )
            await self._remote.insert(config.table_name, row)
            return PushOutcome.CREATED
        logger.debug("Pushed update to %s %s", config.table_name, entity.id)
        return PushOutcome.UPDATED

    async def delete_remote(self, entity_type: str, entity_id: str) -> PushOutcome:
        """Delete remotely, then mark (or remove) the local entity."""
        config = self.config_for(entity_type)
        self._session.require_authenticated()
        now = utcnow()

        if config.supports_deletes:
            try:
                await self._remote.update(
                    config.table_name, {config.deleted_at_field: to_iso(now)}, entity_id
                )
            except RemoteRequestError as e:
                if not e.is_not_found:
                    raise
                logger.debug(
                    "%s %s was never pushed; deleting locally only", config.table_name, entity_id
                )
        else:
            await self._remote.delete(config.table_name, entity_id)

        async with self._cache.transaction() as tx:
            for entity in await tx.find_all_by_id(config.entity_type, entity_id):
                if not config.supports_deletes:
                    await tx.delete(entity)
                elif entity.is_active:
                    await tx.update(entity.with_changes(deleted_at=now))
            if tx.has_pending_changes:
                await tx.commit()
        return PushOutcome.DELETED

    async def record_local_change(
        self,
        entity: CachedEntity,
        operation: PushOperationType | str | None = None,
    ) -> CachedEntity:
        """
        Write a locally edited entity to the cache and queue it for push.

        An entity without an id gets a new UUID and is queued as a create.
        A delete soft-deletes locally and queues the remote delete.
        """
        config = self.config_for(entity.entity_type)
        op = PushOperationType(operation) if operation is not None else None
        if not entity.id:
            entity = entity.with_changes(id=str(uuid4()))
            op = op or PushOperationType.CREATE
        if op == PushOperationType.DELETE and entity.deleted_at is None:
            entity = entity.with_changes(deleted_at=utcnow())

        async with self._cache.transaction() as tx:
            existing = await tx.find(config.entity_type, entity.id)
            if existing is None:
                stored = await tx.create(entity)
                op = op or PushOperationType.CREATE
            else:
                stored = entity.with_changes(local_key=existing.local_key)
                await tx.update(stored)
                op = op or PushOperationType.UPDATE
            if tx.has_pending_changes:
                await tx.commit()

        if self._push_queue is not None:
            await self._push_queue.enqueue(config.entity_type, stored.id, op)
        return stored


def _observed_id(mapper: EntityMapper, row: dict[str, Any]) -> str | None:
    try:
        return mapper.extract_id(row)
    except InvalidDataError:
        return None
