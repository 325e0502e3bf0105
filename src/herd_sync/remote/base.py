"""Abstract remote table capability and its query builder."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from enum import StrEnum
from typing import Any

from herd_sync.utils.timeutils import to_iso


class FilterOp(StrEnum):
    """Filter operators understood by every remote client."""

    EQ = "eq"
    GTE = "gte"
    GT = "gt"
    IS = "is"
    IN = "in"


@dataclass(frozen=True)
class Filter:
    column: str
    op: FilterOp
    value: Any


def _normalize(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    return value


@dataclass(frozen=True)
class TableQuery:
    """
    Immutable description of a filtered table read.

    Each builder method returns a new query, so partially built queries
    can be shared:

        base = TableQuery("cattle").eq("farm_id", farm_id)
        active = base.is_("deleted_at", None)
        deleted = base.gt("deleted_at", since).select("id", "deleted_at")
    """

    table: str
    filters: tuple[Filter, ...] = ()
    ordering: tuple[tuple[str, bool], ...] = ()
    row_limit: int | None = None
    columns: tuple[str, ...] = ()

    def _with_filter(self, column: str, op: FilterOp, value: Any) -> TableQuery:
        return replace(self, filters=(*self.filters, Filter(column, op, _normalize(value))))

    def eq(self, column: str, value: Any) -> TableQuery:
        return self._with_filter(column, FilterOp.EQ, value)

    def gte(self, column: str, value: Any) -> TableQuery:
        return self._with_filter(column, FilterOp.GTE, value)

    def gt(self, column: str, value: Any) -> TableQuery:
        return self._with_filter(column, FilterOp.GT, value)

    def is_(self, column: str, value: bool | None) -> TableQuery:
        if value not in (None, True, False):
            raise ValueError("is_ only accepts None, True or False")
        return self._with_filter(column, FilterOp.IS, value)

    def in_(self, column: str, values: list[Any] | tuple[Any, ...]) -> TableQuery:
        return self._with_filter(column, FilterOp.IN, tuple(_normalize(v) for v in values))

    def order(self, column: str, *, ascending: bool = True) -> TableQuery:
        return replace(self, ordering=(*self.ordering, (column, ascending)))

    def limit(self, count: int) -> TableQuery:
        if count < 0:
            raise ValueError("limit must be non-negative")
        return replace(self, row_limit=count)

    def select(self, *columns: str) -> TableQuery:
        return replace(self, columns=tuple(columns))


class RemoteTableClient(ABC):
    """
    Abstract capability over the remote relational store.

    Rows are JSON-like dicts, ids are UUID strings and timestamps are
    ISO-8601 strings. Implementations raise RemoteUnavailableError for
    transport failures and RemoteRequestError for rejected requests.
    """

    def query(self, table: str) -> TableQuery:
        """Start a query against a table."""
        return TableQuery(table)

    @abstractmethod
    async def execute(self, query: TableQuery) -> list[dict[str, Any]]:
        """Run a query and return matching rows."""
        ...

    @abstractmethod
    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """
        Insert a row.

        Returns:
            The row as stored remotely
        """
        ...

    @abstractmethod
    async def update(self, table: str, values: dict[str, Any], row_id: str) -> dict[str, Any]:
        """
        Update the row with the given id.

        Raises:
            RemoteRequestError: status 404 if no row has that id
        """
        ...

    @abstractmethod
    async def delete(self, table: str, row_id: str) -> None:
        """Permanently delete a row."""
        ...

    async def fetch_by_id(self, table: str, row_id: str) -> dict[str, Any] | None:
        """Single row by id, or None if it does not exist."""
        rows = await self.execute(self.query(table).eq("id", row_id).limit(1))
        return rows[0] if rows else None

    async def close(self) -> None:  # noqa: B027
        """Release network resources. No-op by default."""
