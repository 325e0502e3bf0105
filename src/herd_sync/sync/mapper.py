"""Pure translation between remote rows and cached entities."""

from __future__ import annotations

import logging
import math
import uuid
from datetime import date, datetime
from typing import Any

from herd_sync.core.entity import CachedEntity
from herd_sync.sync.entity_config import EntityConfig, FieldKind, FieldSpec
from herd_sync.sync.errors import InvalidDataError
from herd_sync.sync.protocol import DeletedRecordMarker, MappedRecord
from herd_sync.utils.timeutils import parse_date, parse_timestamp, to_iso

logger = logging.getLogger(__name__)

_TRUE_STRINGS = frozenset({"true", "t", "yes", "1"})
_FALSE_STRINGS = frozenset({"false", "f", "no", "0"})


def _parse_uuid(value: Any) -> str:
    if isinstance(value, uuid.UUID):
        return str(value)
    if not isinstance(value, str):
        raise TypeError(f"expected UUID string, got {type(value).__name__}")
    return str(uuid.UUID(value.strip()))


def _parse_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise TypeError(f"expected text, got {type(value).__name__}")


def _parse_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("boolean is not an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise TypeError(f"expected integer, got {type(value).__name__}")


def _parse_decimal(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        result = float(value.strip())
    else:
        raise TypeError(f"expected number, got {type(value).__name__}")
    if not math.isfinite(result):
        raise ValueError(f"non-finite number: {value!r}")
    return result


def _parse_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"expected boolean, got {value!r}")


def _parse_date(value: Any) -> date:
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"unparseable date: {value!r}")
    return parsed


def _parse_timestamp(value: Any) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"unparseable timestamp: {value!r}")
    return parsed


def _parse_text_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return list(value)
    raise TypeError(f"expected list of strings, got {value!r}")


def _parse_json(value: Any) -> Any:
    if isinstance(value, (dict, list, str, int, float, bool)):
        return value
    raise TypeError(f"not a JSON value: {type(value).__name__}")


_PARSERS = {
    FieldKind.TEXT: _parse_text,
    FieldKind.INTEGER: _parse_integer,
    FieldKind.DECIMAL: _parse_decimal,
    FieldKind.BOOLEAN: _parse_boolean,
    FieldKind.DATE: _parse_date,
    FieldKind.TIMESTAMP: _parse_timestamp,
    FieldKind.UUID: _parse_uuid,
    FieldKind.TEXT_LIST: _parse_text_list,
    FieldKind.JSON: _parse_json,
}


def parse_reference_id(value: Any) -> str | None:
    """Normalized UUID string, or None when absent or malformed."""
    if value is None:
        return None
    try:
        return _parse_uuid(value)
    except (TypeError, ValueError):
        return None


def _to_remote_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


class EntityMapper:
    """
    Converts raw rows of one table into typed records and back.

    The mapper never touches the network or the cache. Missing optional
    values become None; a missing or unparseable id or required value
    raises InvalidDataError so the caller can skip the row.
    """

    def __init__(self, config: EntityConfig) -> None:
        self._config = config

    @property
    def config(self) -> EntityConfig:
        return self._config

    def extract_id(self, row: dict[str, Any]) -> str:
        """Return the normalized remote id of a row."""
        raw = row.get(self._config.id_field)
        if raw is None:
            raise InvalidDataError(
                f"{self._config.table_name}: row without {self._config.id_field}"
            )
        try:
            return _parse_uuid(raw)
        except (TypeError, ValueError) as e:
            raise InvalidDataError(
                f"{self._config.table_name}: invalid id {raw!r}", row_id=str(raw)
            ) from e

    def map_row(self, row: dict[str, Any]) -> MappedRecord:
        """Translate one active row into a MappedRecord."""
        if not isinstance(row, dict):
            raise InvalidDataError(f"{self._config.table_name}: row is not an object")

        entity_id = self.extract_id(row)
        values: dict[str, Any] = {}
        for spec in self._config.fields:
            values[spec.name] = self._read_field(row, spec, entity_id)

        references: dict[str, str | None] = {}
        for ref in self._config.references:
            ref_spec = FieldSpec(column=ref.column, kind=FieldKind.UUID, required=ref.required)
            ref_id = self._read_field(row, ref_spec, entity_id)
            references[ref.relation] = ref_id
            values[ref.column] = ref_id

        has_farm_id = "farm_id" in row
        farm_id = None
        if has_farm_id:
            farm_id = self._read_field(row, FieldSpec("farm_id", FieldKind.UUID), entity_id)

        return MappedRecord(
            id=entity_id,
            farm_id=farm_id,
            has_farm_id=has_farm_id,
            updated_at=self._read_field(
                row, FieldSpec(self._config.updated_at_field, FieldKind.TIMESTAMP), entity_id
            ),
            deleted_at=self._read_field(
                row, FieldSpec(self._config.deleted_at_field, FieldKind.TIMESTAMP), entity_id
            ),
            fields=values,
            references=references,
        )

    def map_deletion_marker(self, row: dict[str, Any]) -> DeletedRecordMarker:
        """Translate an ``id, deleted_at`` row into a marker."""
        if not isinstance(row, dict):
            raise InvalidDataError(f"{self._config.table_name}: marker is not an object")
        entity_id = self.extract_id(row)
        deleted_at = parse_timestamp(row.get(self._config.deleted_at_field))
        if deleted_at is None:
            raise InvalidDataError(
                f"{self._config.table_name}: marker {entity_id} without deleted_at",
                row_id=entity_id,
            )
        return DeletedRecordMarker(id=entity_id, deleted_at=deleted_at)

    def apply(self, record: MappedRecord, existing: CachedEntity | None) -> CachedEntity:
        """Field transform for an upsert: remote values win over local ones.

        Links and, when the row does not carry one, the farm id are kept
        from the existing entity; the relationship resolver owns both.
        """
        farm_id = record.farm_id
        if not record.has_farm_id:
            farm_id = existing.farm_id if existing is not None else None
        links = dict(existing.links) if existing is not None else {}
        for ref in self._config.references:
            links.setdefault(ref.relation, None)
        return CachedEntity(
            entity_type=self._config.entity_type,
            id=record.id,
            farm_id=farm_id,
            updated_at=record.updated_at,
            deleted_at=record.deleted_at,
            fields=dict(record.fields),
            links=links,
            local_key=existing.local_key if existing is not None else None,
        )

    def to_remote_row(self, entity: CachedEntity, farm_id: str | None = None) -> dict[str, Any]:
        """Serialize a cached entity back into a remote row for push."""
        row: dict[str, Any] = {self._config.id_field: entity.id}
        for spec in self._config.fields:
            if spec.name in entity.fields:
                row[spec.column] = _to_remote_value(entity.fields[spec.name])
        for ref in self._config.references:
            if ref.column in entity.fields:
                row[ref.column] = entity.fields[ref.column]
            elif entity.links.get(ref.relation) is not None:
                row[ref.column] = entity.links[ref.relation]
        if self._config.farm_scoped:
            row["farm_id"] = farm_id or entity.farm_id
        if self._config.supports_deletes:
            row[self._config.deleted_at_field] = (
                to_iso(entity.deleted_at) if entity.deleted_at is not None else None
            )
        return row

    def _read_field(self, row: dict[str, Any], spec: FieldSpec, entity_id: str) -> Any:
        raw = row.get(spec.column)
        if raw is None:
            if spec.required:
                raise InvalidDataError(
                    f"{self._config.table_name} {entity_id}: missing required {spec.column}",
                    row_id=entity_id,
                )
            return None
        try:
            return _PARSERS[spec.kind](raw)
        except (TypeError, ValueError) as e:
            if spec.required:
                raise InvalidDataError(
                    f"{self._config.table_name} {entity_id}: invalid {spec.column} {raw!r}",
                    row_id=entity_id,
                ) from e
            logger.debug(
                "Dropping unparseable %s.%s on %s: %r",
                self._config.table_name,
                spec.column,
                entity_id,
                raw,
            )
            return None
