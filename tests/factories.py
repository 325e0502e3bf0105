"""Row and id factories shared by the test suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

FARM_ID = "f0000000-0000-4000-8000-000000000001"
OTHER_FARM_ID = "f0000000-0000-4000-8000-000000000002"
USER_ID = "user-1"

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def uid(n: int, prefix: str = "c") -> str:
    """Deterministic UUID string, e.g. uid(1) -> 'c0000000-...-000000000001'."""
    head = (prefix * 8)[:8]
    return f"{head}-0000-4000-8000-{n:012d}"


def iso(moment: datetime) -> str:
    return moment.isoformat()


def cattle_row(
    n: int,
    tag: str | None = None,
    *,
    updated: datetime = T0,
    farm_id: str = FARM_ID,
    **extra: Any,
) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": uid(n),
        "farm_id": farm_id,
        "tag_number": tag or f"T-{n}",
        "sex": "female",
        "updated_at": iso(updated),
        "deleted_at": None,
    }
    row.update(extra)
    return row


def health_row(
    n: int,
    cattle_n: int | None,
    *,
    updated: datetime = T0,
    farm_id: str = FARM_ID,
    **extra: Any,
) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": uid(n, "a"),
        "farm_id": farm_id,
        "cattle_id": uid(cattle_n) if cattle_n is not None else None,
        "record_type": "vaccination",
        "date": "2026-02-10",
        "updated_at": iso(updated),
        "deleted_at": None,
    }
    row.update(extra)
    return row


def deleted(row: dict[str, Any], when: datetime) -> dict[str, Any]:
    """Same row, soft-deleted remotely at ``when``."""
    return {**row, "deleted_at": iso(when), "updated_at": iso(when)}


def later(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)

