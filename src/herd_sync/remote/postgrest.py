"""Supabase/PostgREST remote table client over aiohttp."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from herd_sync.remote.base import Filter, FilterOp, RemoteTableClient, TableQuery
from herd_sync.sync.errors import RemoteRequestError, RemoteUnavailableError

logger = logging.getLogger(__name__)

_RESERVED = set(',()"')


def _format_scalar(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    return str(value)


def _format_list_item(value: Any) -> str:
    text = _format_scalar(value)
    if any(ch in _RESERVED for ch in text) or text != text.strip():
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def _format_filter(flt: Filter) -> str:
    if flt.op == FilterOp.IN:
        return "in.(" + ",".join(_format_list_item(v) for v in flt.value) + ")"
    return f"{flt.op.value}.{_format_scalar(flt.value)}"


def build_query_params(query: TableQuery) -> list[tuple[str, str]]:
    """Encode a TableQuery as PostgREST query-string parameters.

    Order is stable: select, filters in builder order, order, limit.
    """
    params: list[tuple[str, str]] = [
        ("select", ",".join(query.columns) if query.columns else "*")
    ]
    params.extend((flt.column, _format_filter(flt)) for flt in query.filters)
    if query.ordering:
        params.append(
            (
                "order",
                ",".join(f"{col}.{'asc' if asc else 'desc'}" for col, asc in query.ordering),
            )
        )
    if query.row_limit is not None:
        params.append(("limit", str(query.row_limit)))
    return params


class PostgrestClient(RemoteTableClient):
    """
    Remote table client speaking the PostgREST dialect used by Supabase.

    Usage:
        async with PostgrestClient(url, api_key) as remote:
            rows = await remote.execute(remote.query("cattle").eq("farm_id", fid))
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: str | None = None,
        timeout: float = 30.0,
        page_size: int | None = 1000,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Project URL, e.g. "https://xyz.supabase.co"
            api_key: Project anon/service key sent as ``apikey``
            access_token: User JWT; the API key is used as bearer if omitted
            timeout: Request timeout in seconds
            page_size: Rows per page for unbounded reads (None disables paging)
        """
        self._rest_url = base_url.rstrip("/") + "/rest/v1"
        self._api_key = api_key
        self._access_token = access_token
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._page_size = page_size
        self._session: aiohttp.ClientSession | None = None

    @property
    def rest_url(self) -> str:
        return self._rest_url

    def set_access_token(self, token: str | None) -> None:
        self._access_token = token

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> PostgrestClient:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    def _get_headers(self, *, write: bool = False) -> dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._access_token or self._api_key}",
            "Accept": "application/json",
        }
        if write:
            headers["Content-Type"] = "application/json"
            headers["Prefer"] = "return=representation"
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: list[tuple[str, str]] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        if self._session is None:
            await self.connect()
        assert self._session is not None

        url = f"{self._rest_url}/{table}"
        try:
            async with self._session.request(
                method,
                url,
                params=params,
                json=json_data,
                headers=self._get_headers(write=method != "GET"),
            ) as response:
                if response.status >= 400:
                    text = await response.text()
                    if response.status >= 500 or response.status == 429:
                        raise RemoteUnavailableError(
                            f"{method} {table}: HTTP {response.status}: {text}",
                            status_code=response.status,
                        )
                    raise RemoteRequestError(
                        f"{method} {table}: HTTP {response.status}: {text}",
                        status_code=response.status,
                    )
                if response.status == 204:
                    return None
                return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise RemoteUnavailableError(f"Connection error: {e}") from e
        except asyncio.TimeoutError as e:
            raise RemoteUnavailableError(f"Timed out: {method} {table}") from e

    async def execute(self, query: TableQuery) -> list[dict[str, Any]]:
        params = build_query_params(query)
        if query.row_limit is not None or not self._page_size:
            return list(await self._request("GET", query.table, params=params) or [])

        if not query.ordering:
            params.append(("order", "id.asc"))
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            page = await self._request(
                "GET",
                query.table,
                params=[*params, ("limit", str(self._page_size)), ("offset", str(offset))],
            )
            page = list(page or [])
            rows.extend(page)
            if len(page) < self._page_size:
                break
            offset += self._page_size
            logger.debug("Fetched %d rows from %s so far", len(rows), query.table)
        return rows

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        result = await self._request("POST", table, json_data=row)
        if isinstance(result, list):
            return result[0] if result else dict(row)
        return result or dict(row)

    async def update(self, table: str, values: dict[str, Any], row_id: str) -> dict[str, Any]:
        result = await self._request(
            "PATCH", table, params=[("id", f"eq.{row_id}")], json_data=values
        )
        if not result:
            raise RemoteRequestError(f"{table} row {row_id} not found", status_code=404)
        return result[0] if isinstance(result, list) else result

    async def delete(self, table: str, row_id: str) -> None:
        await self._request("DELETE", table, params=[("id", f"eq.{row_id}")])
