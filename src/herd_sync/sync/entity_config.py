"""Per-table configuration consumed by the generic sync engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class FieldKind(StrEnum):
    """How a remote column value is parsed into a local value."""

    TEXT = "text"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"
    UUID = "uuid"
    TEXT_LIST = "text_list"
    JSON = "json"


@dataclass(frozen=True)
class FieldSpec:
    """Maps one remote column onto one local attribute."""

    column: str
    kind: FieldKind = FieldKind.TEXT
    required: bool = False
    attribute: str | None = None

    @property
    def name(self) -> str:
        """Local attribute name (defaults to the column name)."""
        return self.attribute or self.column


@dataclass(frozen=True)
class ReferenceSpec:
    """A foreign reference transmitted remotely as a bare id.

    Attributes:
        relation: Local relationship name, e.g. "dam"
        column: Remote column holding the referenced id, e.g. "dam_id"
        target: Entity type of the referenced table
        copy_fields: Scoping attributes copied from the resolved parent
            onto the child ("farm_id" is the only entity-level one;
            anything else is read from and written to ``fields``)
        required: Whether a row without this id is malformed
    """

    relation: str
    column: str
    target: str
    copy_fields: tuple[str, ...] = ()
    required: bool = False


@dataclass(frozen=True)
class EntityConfig:
    """Everything the engine needs to know about one synced table."""

    entity_type: str
    table_name: str
    fields: tuple[FieldSpec, ...] = ()
    references: tuple[ReferenceSpec, ...] = ()
    farm_scoped: bool = True
    supports_deletes: bool = True
    id_field: str = "id"
    order_by: str | None = None
    updated_at_field: str = "updated_at"
    deleted_at_field: str = "deleted_at"

    def reference(self, relation: str) -> ReferenceSpec | None:
        for ref in self.references:
            if ref.relation == relation:
                return ref
        return None

    @property
    def is_self_referential(self) -> bool:
        return any(ref.target == self.entity_type for ref in self.references)
