"""Tests for EntityMapper row translation."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from factories import FARM_ID, T0, cattle_row, uid
from herd_sync.core.entity import CachedEntity
from herd_sync.sync.entities import (
    CATTLE,
    HEALTH_RECORD_TYPES,
    PREGNANCY_RECORDS,
    SALE_RECORDS,
)
from herd_sync.sync.errors import InvalidDataError
from herd_sync.sync.mapper import EntityMapper, parse_reference_id


@pytest.fixture
def mapper() -> EntityMapper:
    return EntityMapper(CATTLE)


# ── extract_id ────────────────────────────────────────────────────────────────


class TestExtractId:
    def test_normalizes_uuid_case(self, mapper: EntityMapper) -> None:
        row = {"id": uid(1).upper()}
        assert mapper.extract_id(row) == uid(1)

    def test_missing_id_is_invalid(self, mapper: EntityMapper) -> None:
        with pytest.raises(InvalidDataError):
            mapper.extract_id({"tag_number": "T-1"})

    def test_garbage_id_is_invalid(self, mapper: EntityMapper) -> None:
        with pytest.raises(InvalidDataError) as exc_info:
            mapper.extract_id({"id": "not-a-uuid"})
        assert exc_info.value.row_id == "not-a-uuid"

    def test_non_string_id_is_invalid(self, mapper: EntityMapper) -> None:
        with pytest.raises(InvalidDataError):
            mapper.extract_id({"id": 42})


# ── map_row ───────────────────────────────────────────────────────────────────


class TestMapRow:
    def test_typed_fields(self, mapper: EntityMapper) -> None:
        row = cattle_row(
            1,
            "A-100",
            date_of_birth="2024-04-02",
            current_weight="512.5",
            location=["north", "barn"],
        )

        record = mapper.map_row(row)

        assert record.id == uid(1)
        assert record.farm_id == FARM_ID
        assert record.has_farm_id is True
        assert record.updated_at == T0
        assert record.deleted_at is None
        assert record.fields["tag_number"] == "A-100"
        assert record.fields["date_of_birth"] == date(2024, 4, 2)
        assert record.fields["current_weight"] == 512.5
        assert record.fields["location"] == ["north", "barn"]

    def test_missing_optional_fields_are_none(self, mapper: EntityMapper) -> None:
        record = mapper.map_row({"id": uid(1), "tag_number": "A-1"})

        assert record.fields["name"] is None
        assert record.fields["date_of_birth"] is None
        assert record.updated_at is None

    def test_unparseable_optional_field_becomes_none(self, mapper: EntityMapper) -> None:
        row = cattle_row(1, current_weight="heavy", date_of_birth="spring 2024")

        record = mapper.map_row(row)

        assert record.fields["current_weight"] is None
        assert record.fields["date_of_birth"] is None

    def test_missing_required_field_is_invalid(self, mapper: EntityMapper) -> None:
        row = cattle_row(1)
        del row["tag_number"]
        with pytest.raises(InvalidDataError) as exc_info:
            mapper.map_row(row)
        assert exc_info.value.row_id == uid(1)

    def test_non_object_row_is_invalid(self, mapper: EntityMapper) -> None:
        with pytest.raises(InvalidDataError):
            mapper.map_row(["not", "a", "row"])  # type: ignore[arg-type]

    def test_reference_ids_kept_in_references_and_fields(self, mapper: EntityMapper) -> None:
        row = cattle_row(3, dam_id=uid(1).upper(), sire_id=None, breed_id="garbage")

        record = mapper.map_row(row)

        assert record.references["dam"] == uid(1)
        assert record.references["sire"] is None
        assert record.references["breed"] is None
        assert record.references["pasture"] is None
        assert record.fields["dam_id"] == uid(1)

    def test_required_reference_missing_is_invalid(self) -> None:
        mapper = EntityMapper(PREGNANCY_RECORDS)
        with pytest.raises(InvalidDataError):
            mapper.map_row({"id": uid(9, "b"), "farm_id": FARM_ID, "status": "open"})

    def test_row_without_farm_column(self) -> None:
        mapper = EntityMapper(SALE_RECORDS)
        record = mapper.map_row(
            {"id": uid(5, "d"), "cattle_id": uid(1), "sale_price": 1450, "sale_date": "2026-02-01"}
        )

        assert record.has_farm_id is False
        assert record.farm_id is None
        assert record.fields["sale_price"] == 1450.0

    def test_mapping_is_pure(self, mapper: EntityMapper) -> None:
        row = cattle_row(1, dam_id=uid(2))
        snapshot = dict(row)

        assert mapper.map_row(row) == mapper.map_row(row)
        assert row == snapshot


# ── map_deletion_marker ───────────────────────────────────────────────────────


class TestDeletionMarker:
    def test_marker(self, mapper: EntityMapper) -> None:
        marker = mapper.map_deletion_marker(
            {"id": uid(1), "deleted_at": "2026-03-01T13:00:00+01:00"}
        )
        assert marker.id == uid(1)
        assert marker.deleted_at == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def test_marker_without_deleted_at_is_invalid(self, mapper: EntityMapper) -> None:
        with pytest.raises(InvalidDataError):
            mapper.map_deletion_marker({"id": uid(1), "deleted_at": None})


# ── apply / to_remote_row ─────────────────────────────────────────────────────


class TestApply:
    def test_new_entity_has_unset_links(self, mapper: EntityMapper) -> None:
        entity = mapper.apply(mapper.map_row(cattle_row(1)), None)

        assert entity.entity_type == "cattle"
        assert entity.local_key is None
        assert entity.links == {"breed": None, "dam": None, "sire": None, "pasture": None}

    def test_existing_links_and_key_survive(self, mapper: EntityMapper) -> None:
        existing = CachedEntity(
            entity_type="cattle",
            id=uid(3),
            farm_id=FARM_ID,
            fields={"tag_number": "old"},
            links={"dam": uid(1)},
            local_key=7,
        )

        entity = mapper.apply(mapper.map_row(cattle_row(3, "new")), existing)

        assert entity.local_key == 7
        assert entity.links["dam"] == uid(1)
        assert entity.fields["tag_number"] == "new"

    def test_farm_kept_when_row_has_none(self) -> None:
        mapper = EntityMapper(SALE_RECORDS)
        existing = CachedEntity("sale_records", uid(5, "d"), farm_id=FARM_ID, local_key=1)
        record = mapper.map_row({"id": uid(5, "d"), "cattle_id": uid(1)})

        assert mapper.apply(record, existing).farm_id == FARM_ID


class TestToRemoteRow:
    def test_round_trips_values(self, mapper: EntityMapper) -> None:
        entity = mapper.apply(
            mapper.map_row(cattle_row(1, date_of_birth="2024-04-02", dam_id=uid(2))), None
        )

        row = mapper.to_remote_row(entity, FARM_ID)

        assert row["id"] == uid(1)
        assert row["farm_id"] == FARM_ID
        assert row["date_of_birth"] == "2024-04-02"
        assert row["dam_id"] == uid(2)
        assert row["deleted_at"] is None

    def test_global_table_without_deletes(self) -> None:
        mapper = EntityMapper(HEALTH_RECORD_TYPES)
        entity = CachedEntity("health_record_types", uid(1, "b"), fields={"name": "Vaccine"})

        row = mapper.to_remote_row(entity, FARM_ID)

        assert "farm_id" not in row
        assert "deleted_at" not in row
        assert row["name"] == "Vaccine"


class TestParseReferenceId:
    @pytest.mark.parametrize("value", [None, "", "nope", 12])
    def test_invalid_values(self, value: object) -> None:
        assert parse_reference_id(value) is None

    def test_valid_value(self) -> None:
        assert parse_reference_id(f"  {uid(4)}  ") == uid(4)
