"""Timestamp helpers shared by the remote, cache and cursor layers.

Remote timestamps travel as ISO-8601 strings. Everything inside the
package works with timezone-aware UTC datetimes.
"""

from __future__ import annotations

from datetime import UTC, date, datetime

# "Never synced" sentinel for sync cursors.
NEVER = datetime.min.replace(tzinfo=UTC)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def is_never(value: datetime | None) -> bool:
    """True for the never-synced sentinel (or a missing value)."""
    return value is None or value <= NEVER


def to_iso(value: datetime) -> str:
    """Format a datetime as a fixed-zone ISO-8601 string.

    Naive datetimes are assumed to already be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def parse_timestamp(raw: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 timestamp (or date-only string) into aware UTC.

    Returns None for empty or unparseable input.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.astimezone(UTC) if raw.tzinfo else raw.replace(tzinfo=UTC)
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        parsed = datetime.fromisoformat(raw.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def parse_date(raw: str | date | None) -> date | None:
    """Parse a date-only string (``YYYY-MM-DD``) or the date part of a timestamp."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None
    text = raw.strip()
    if len(text) == 10:
        try:
            return date.fromisoformat(text)
        except ValueError:
            return None
    stamp = parse_timestamp(text)
    return stamp.date() if stamp else None
