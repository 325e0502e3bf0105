"""Second-pass resolution of cross-table references."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from herd_sync.sync.mapper import parse_reference_id

if TYPE_CHECKING:
    from herd_sync.core.entity import CachedEntity
    from herd_sync.storage.base import CacheTransaction
    from herd_sync.sync.entity_config import EntityConfig, ReferenceSpec

logger = logging.getLogger(__name__)


class RelationshipResolver:
    """
    Links freshly upserted entities to their cached parents.

    Resolution always runs after the whole batch is upserted, so parents
    and children arriving in the same payload (including self references
    such as dam/sire) link regardless of fetch order. A reference whose
    target is not cached yet is left unset; ``relink_dependents`` picks
    it up once the target table has synced.
    """

    def __init__(self, config: EntityConfig) -> None:
        self._config = config

    async def resolve(
        self,
        tx: CacheTransaction,
        entity: CachedEntity,
        row: Mapping[str, Any],
    ) -> CachedEntity:
        """Return ``entity`` with links (and copied scope fields) set from ``row``.

        Only columns present in the row are considered. Nothing is staged.
        """
        resolved = entity
        for ref in self._config.references:
            if ref.column not in row:
                continue
            resolved = await self._resolve_one(tx, resolved, ref, row.get(ref.column))
        return resolved

    async def resolve_batch(
        self,
        tx: CacheTransaction,
        rows: Iterable[Mapping[str, Any]],
        entity_ids: Iterable[str],
    ) -> int:
        """Resolve every upserted entity of a batch; returns links set."""
        if not self._config.references:
            return 0
        resolved_links = 0
        for entity_id, row in zip(entity_ids, rows, strict=True):
            entity = await tx.find(self._config.entity_type, entity_id)
            if entity is None:
                continue
            linked = await self.resolve(tx, entity, row)
            if await tx.update(linked):
                resolved_links += _count_new_links(entity, linked)
        return resolved_links

    async def relink_dependents(
        self,
        tx: CacheTransaction,
        configs: Iterable[EntityConfig],
        farm_id: str | None = None,
    ) -> int:
        """Resolve dangling references in other tables that point at this one.

        Uses the reference ids kept in each child's fields, so no remote
        rows are needed.
        """
        relinked = 0
        for child_config in configs:
            refs = [r for r in child_config.references if r.target == self._config.entity_type]
            if not refs:
                continue
            scope = farm_id if child_config.farm_scoped else None
            for child_id in sorted(await tx.find_active_ids(child_config.entity_type, scope)):
                child = await tx.find(child_config.entity_type, child_id)
                if child is None:
                    continue
                updated = child
                for ref in refs:
                    if updated.links.get(ref.relation) is not None:
                        continue
                    stored_id = updated.fields.get(ref.column)
                    if stored_id is None:
                        continue
                    updated = await self._resolve_one(tx, updated, ref, stored_id)
                if updated is not child and await tx.update(updated):
                    relinked += _count_new_links(child, updated)
        if relinked:
            logger.debug(
                "Relinked %d references to %s", relinked, self._config.entity_type
            )
        return relinked

    async def unlink_dependents(
        self,
        tx: CacheTransaction,
        configs: Iterable[EntityConfig],
        removed_ids: Iterable[str],
        farm_id: str | None = None,
    ) -> int:
        """Unset links in other tables that point at hard-deleted entities.

        The reference id stays in the child's fields, so the link is
        restored by ``relink_dependents`` if the parent comes back.
        """
        removed = set(removed_ids)
        if not removed:
            return 0
        cleared = 0
        for child_config in configs:
            refs = [r for r in child_config.references if r.target == self._config.entity_type]
            if not refs:
                continue
            scope = farm_id if child_config.farm_scoped else None
            for child_id in sorted(await tx.find_active_ids(child_config.entity_type, scope)):
                child = await tx.find(child_config.entity_type, child_id)
                if child is None:
                    continue
                updated = child
                for ref in refs:
                    if updated.links.get(ref.relation) in removed:
                        updated = updated.with_link(ref.relation, None)
                        cleared += 1
                if updated is not child:
                    await tx.update(updated)
        if cleared:
            logger.debug(
                "Cleared %d links to removed %s", cleared, self._config.entity_type
            )
        return cleared

    async def _resolve_one(
        self,
        tx: CacheTransaction,
        entity: CachedEntity,
        ref: ReferenceSpec,
        raw_id: Any,
    ) -> CachedEntity:
        target_id = parse_reference_id(raw_id)
        if target_id is None:
            return entity.with_link(ref.relation, None)

        parent = await tx.find(ref.target, target_id)
        if parent is None:
            logger.debug(
                "%s %s: %s %s not cached yet",
                entity.entity_type,
                entity.id,
                ref.relation,
                target_id,
            )
            return entity.with_link(ref.relation, None)

        linked = entity.with_link(ref.relation, parent.id)
        for name in ref.copy_fields:
            if name == "farm_id":
                if parent.farm_id is not None:
                    linked = linked.with_changes(farm_id=parent.farm_id)
            elif parent.fields.get(name) is not None:
                linked = linked.with_changes(fields={**linked.fields, name: parent.fields[name]})
        return linked


def _count_new_links(before: CachedEntity, after: CachedEntity) -> int:
    return sum(
        1
        for relation, target in after.links.items()
        if target is not None and before.links.get(relation) != target
    )
