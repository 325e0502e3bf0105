"""Row-to-model conversion functions for SQLite storage."""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from herd_sync.core.entity import CachedEntity
from herd_sync.core.push_operation import PushOperation, PushOperationType
from herd_sync.utils.timeutils import parse_timestamp, to_iso, utcnow

if TYPE_CHECKING:
    import aiosqlite

# Dates and timestamps are tagged so they come back as the same types.
_DATE_TAG = "$date"
_TS_TAG = "$ts"


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_TS_TAG: to_iso(value)}
    if isinstance(value, date):
        return {_DATE_TAG: value.isoformat()}
    if isinstance(value, dict):
        return {k: _encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode_value(v) for v in value]
    return value


def _decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if len(value) == 1 and _TS_TAG in value:
            return parse_timestamp(value[_TS_TAG])
        if len(value) == 1 and _DATE_TAG in value:
            return date.fromisoformat(value[_DATE_TAG])
        return {k: _decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode_value(v) for v in value]
    return value


def encode_fields(values: dict[str, Any]) -> str:
    return json.dumps(_encode_value(values), sort_keys=True)


def decode_fields(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    decoded = _decode_value(json.loads(raw))
    return decoded if isinstance(decoded, dict) else {}


def entity_to_params(entity: CachedEntity) -> tuple[Any, ...]:
    """Column values in cached_entities order (without local_key)."""
    return (
        entity.entity_type,
        entity.id,
        entity.farm_id,
        to_iso(entity.updated_at) if entity.updated_at else None,
        to_iso(entity.deleted_at) if entity.deleted_at else None,
        encode_fields(entity.fields),
        json.dumps(entity.links, sort_keys=True),
    )


def row_to_entity(row: aiosqlite.Row) -> CachedEntity:
    """Convert database row to CachedEntity."""
    return CachedEntity(
        entity_type=row["entity_type"],
        id=row["entity_id"],
        farm_id=row["farm_id"],
        updated_at=parse_timestamp(row["updated_at"]),
        deleted_at=parse_timestamp(row["deleted_at"]),
        fields=decode_fields(row["fields"]),
        links=json.loads(row["links"]) if row["links"] else {},
        local_key=row["local_key"],
    )


def push_operation_to_params(op: PushOperation) -> tuple[Any, ...]:
    return (
        op.id,
        op.entity_type,
        op.entity_id,
        op.operation.value,
        to_iso(op.created_at),
        op.retry_count,
        to_iso(op.last_attempt) if op.last_attempt else None,
        op.error,
    )


def row_to_push_operation(row: aiosqlite.Row) -> PushOperation:
    """Convert database row to PushOperation."""
    return PushOperation(
        id=row["id"],
        entity_type=row["entity_type"],
        entity_id=row["entity_id"],
        operation=PushOperationType(row["operation"]),
        created_at=parse_timestamp(row["created_at"]) or utcnow(),
        retry_count=row["retry_count"] or 0,
        last_attempt=parse_timestamp(row["last_attempt"]),
        error=row["error"],
    )
