"""Locally cached entity - the unit the sync engine reads and writes."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class CachedEntity:
    """
    A local mirror of one remote row.

    Every synced table is stored with the same shape; the per-table
    differences live in ``fields`` (typed column values) and ``links``
    (resolved relationships).

    Attributes:
        entity_type: Registry name of the table, e.g. "cattle"
        id: Stable remote identifier (UUID string)
        farm_id: Tenant scope, None for global reference tables
        updated_at: Remote last-modified timestamp
        deleted_at: Remote soft-delete timestamp, None while active
        fields: Typed column values keyed by local attribute name
        links: Relation name -> id of the resolved local entity, or None
            when the reference is unset or not cached yet
        local_key: Surrogate key assigned by the local cache
    """

    entity_type: str
    id: str
    farm_id: str | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None
    fields: dict[str, Any] = field(default_factory=dict)
    links: dict[str, str | None] = field(default_factory=dict)
    local_key: int | None = None

    @property
    def is_active(self) -> bool:
        """True while the entity has not been soft-deleted."""
        return self.deleted_at is None

    def with_changes(self, **changes: Any) -> CachedEntity:
        """Return a copy with the given attributes replaced."""
        return replace(self, **changes)

    def with_link(self, relation: str, target_id: str | None) -> CachedEntity:
        return replace(self, links={**self.links, relation: target_id})

    def same_content(self, other: CachedEntity) -> bool:
        """Compare everything except the surrogate key."""
        return (
            self.entity_type == other.entity_type
            and self.id == other.id
            and self.farm_id == other.farm_id
            and self.updated_at == other.updated_at
            and self.deleted_at == other.deleted_at
            and self.fields == other.fields
            and self.links == other.links
        )
