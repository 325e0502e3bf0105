"""Value types exchanged between the sync engine's components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class SyncMode(StrEnum):
    """Whether a run swept the whole table or only a cursor window."""

    FULL = "full"
    INCREMENTAL = "incremental"


class PushOutcome(StrEnum):
    """What the push path ended up doing remotely."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class MappedRecord:
    """A remote row converted into typed values.

    ``references`` holds the raw reference ids read from the row (relation
    name -> remote id or None); they are only turned into links by the
    relationship resolver.
    """

    id: str
    farm_id: str | None
    has_farm_id: bool
    updated_at: datetime | None
    deleted_at: datetime | None
    fields: dict[str, Any] = field(default_factory=dict)
    references: dict[str, str | None] = field(default_factory=dict)


@dataclass(frozen=True)
class DeletedRecordMarker:
    """A remote row observed with ``deleted_at`` set inside the sync window."""

    id: str
    deleted_at: datetime


@dataclass(frozen=True)
class ReconcilePlan:
    """Three-way reconciliation computed for one sync run."""

    upserts: tuple[MappedRecord, ...] = ()
    soft_deletes: tuple[DeletedRecordMarker, ...] = ()
    hard_deletes: frozenset[str] = frozenset()
    mode: SyncMode = SyncMode.INCREMENTAL


@dataclass
class ReconcileResult:
    """Counters filled while a plan is applied to a cache transaction."""

    created: int = 0
    updated: int = 0
    unchanged: int = 0
    soft_deleted: int = 0
    hard_deleted: int = 0
    duplicates_removed: int = 0


@dataclass(frozen=True)
class SyncSummary:
    """Outcome of one successful table sync."""

    entity_type: str
    table_name: str
    mode: SyncMode
    fetched: int = 0
    deletion_markers: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    soft_deleted: int = 0
    hard_deleted: int = 0
    duplicates_removed: int = 0
    links_resolved: int = 0
    links_cleared: int = 0
    skipped: int = 0
    committed: bool = False
    cursor: datetime | None = None

    @property
    def changed(self) -> int:
        return (
            self.created
            + self.updated
            + self.soft_deleted
            + self.hard_deleted
            + self.duplicates_removed
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "table_name": self.table_name,
            "mode": self.mode.value,
            "fetched": self.fetched,
            "deletion_markers": self.deletion_markers,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "soft_deleted": self.soft_deleted,
            "hard_deleted": self.hard_deleted,
            "duplicates_removed": self.duplicates_removed,
            "links_resolved": self.links_resolved,
            "links_cleared": self.links_cleared,
            "skipped": self.skipped,
            "committed": self.committed,
            "cursor": self.cursor.isoformat() if self.cursor else None,
        }


@dataclass(frozen=True)
class TableFailure:
    """A table that failed during a multi-table sync."""

    entity_type: str
    error: str
    retryable: bool


@dataclass(frozen=True)
class FullSyncReport:
    """Result of ``sync_all``: per-table summaries plus recorded failures."""

    summaries: tuple[SyncSummary, ...] = ()
    failures: tuple[TableFailure, ...] = ()

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "summaries": [s.to_dict() for s in self.summaries],
            "failures": [
                {"entity_type": f.entity_type, "error": f.error, "retryable": f.retryable}
                for f in self.failures
            ],
        }


@dataclass(frozen=True)
class QueueReport:
    """Result of draining the push queue once."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    deferred: int = 0
    errors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "deferred": self.deferred,
            "errors": list(self.errors),
        }
