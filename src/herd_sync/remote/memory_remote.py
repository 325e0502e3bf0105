"""In-process remote table store for tests and the offline demo."""

from __future__ import annotations

import copy
from typing import Any
from uuid import uuid4

from herd_sync.remote.base import Filter, FilterOp, RemoteTableClient, TableQuery
from herd_sync.sync.errors import RemoteRequestError
from herd_sync.utils.timeutils import parse_timestamp, to_iso, utcnow


def _compare_key(value: Any) -> Any:
    if isinstance(value, str):
        stamp = parse_timestamp(value)
        if stamp is not None:
            return (0, stamp)
        return (1, value)
    return (2, value)


def _matches(row: dict[str, Any], flt: Filter) -> bool:
    actual = row.get(flt.column)
    if flt.op == FilterOp.IS:
        return actual is flt.value
    if flt.op == FilterOp.EQ:
        return actual is not None and actual == flt.value
    if flt.op == FilterOp.IN:
        return actual is not None and actual in flt.value
    if actual is None:
        return False
    try:
        left, right = _compare_key(actual), _compare_key(flt.value)
        if flt.op == FilterOp.GTE:
            return left >= right
        return left > right
    except TypeError:
        return False


class InMemoryRemote(RemoteTableClient):
    """
    Evaluates TableQuery filters against dict tables held in memory.

    Writes stamp ``updated_at`` the way the real database triggers do.
    ``fail_next()`` queues exceptions raised by upcoming calls, and
    ``calls`` records every operation for assertions.
    """

    def __init__(self, *, touch_updated_at: bool = True) -> None:
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}
        self._failures: list[Exception] = []
        self._touch_updated_at = touch_updated_at
        self.calls: list[tuple[str, str]] = []

    def seed(self, table: str, *rows: dict[str, Any]) -> None:
        """Store rows verbatim (no timestamp stamping)."""
        store = self._tables.setdefault(table, {})
        for row in rows:
            store[str(row["id"])] = copy.deepcopy(row)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._tables.get(table, {}).values()]

    def remove(self, table: str, row_id: str) -> None:
        """Hard-delete a row without recording a call."""
        self._tables.get(table, {}).pop(row_id, None)

    def fail_next(self, *errors: Exception) -> None:
        self._failures.extend(errors)

    def _record(self, method: str, table: str) -> None:
        self.calls.append((method, table))
        if self._failures:
            raise self._failures.pop(0)

    async def execute(self, query: TableQuery) -> list[dict[str, Any]]:
        self._record("select", query.table)
        rows = [
            r
            for r in self._tables.get(query.table, {}).values()
            if all(_matches(r, f) for f in query.filters)
        ]
        for column, ascending in reversed(query.ordering):
            rows.sort(
                key=lambda r, c=column: (r.get(c) is None, _compare_key(r.get(c))),
                reverse=not ascending,
            )
        if query.row_limit is not None:
            rows = rows[: query.row_limit]
        if query.columns:
            return [{c: copy.deepcopy(r.get(c)) for c in query.columns} for r in rows]
        return [copy.deepcopy(r) for r in rows]

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        self._record("insert", table)
        store = self._tables.setdefault(table, {})
        stored = copy.deepcopy(row)
        row_id = str(stored.get("id") or uuid4())
        if row_id in store:
            raise RemoteRequestError(f"duplicate key {row_id} in {table}", status_code=409)
        stored["id"] = row_id
        if self._touch_updated_at:
            stored["updated_at"] = to_iso(utcnow())
        store[row_id] = stored
        return copy.deepcopy(stored)

    async def update(self, table: str, values: dict[str, Any], row_id: str) -> dict[str, Any]:
        self._record("update", table)
        store = self._tables.get(table, {})
        if row_id not in store:
            raise RemoteRequestError(f"{table} row {row_id} not found", status_code=404)
        merged = {**store[row_id], **copy.deepcopy(values), "id": row_id}
        if self._touch_updated_at:
            merged["updated_at"] = to_iso(utcnow())
        store[row_id] = merged
        return copy.deepcopy(merged)

    async def delete(self, table: str, row_id: str) -> None:
        self._record("delete", table)
        self._tables.get(table, {}).pop(row_id, None)
