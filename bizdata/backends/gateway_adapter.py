"""
Remote-gateway adapter: QuerySpec → PostgREST request.

The gateway understands equality, in, ilike, or-groups, range comparators
and null checks. It cannot compare two columns of a row, so ColumnCompare
predicates are applied in memory after fetching every row that matches the
rest of the query, and the total is recounted from what survives.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import httpx

from bizdata.backends.base import (
    BackendAdapter,
    Row,
    apply_predicates,
    effective_sort,
    like_pattern,
    substring_pattern,
    validate_columns,
    validate_spec,
)
from bizdata.backends.entities import EntityDescriptor
from bizdata.config import settings
from bizdata.errors import BackendError, BackendUnavailable, InvalidQuery, PermissionDenied
from bizdata.models.page import PageResult
from bizdata.models.query import AnyOf, Equals, IsNull, Pattern, QuerySpec, Range

logger = logging.getLogger(__name__)

Params = list[tuple[str, str]]

_RETURN_ROWS = {"Prefer": "return=representation"}
_COUNT_EXACT = {"Prefer": "count=exact"}


def encode_value(value: Any) -> str:
    """Render a filter value the way PostgREST expects it in a query string."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime | date):
        return value.isoformat()
    return str(value)


def quote_value(value: Any) -> str:
    """Double-quote a value for use inside in.(...) or or=(...)."""
    text = encode_value(value)
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def gateway_pattern(like: str) -> str:
    """
    Convert an escaped LIKE pattern to PostgREST syntax.

    Unescaped % becomes *, which PostgREST turns back into %; escaped
    characters are passed through with their backslash.
    """
    out: list[str] = []
    chars = iter(like)
    for ch in chars:
        if ch == "\\":
            out.append(ch + next(chars, ""))
        elif ch == "%":
            out.append("*")
        else:
            out.append(ch)
    return "".join(out)


def to_json(value: Any) -> Any:
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    return value


def compile_filters(spec: QuerySpec, entity: EntityDescriptor) -> Params:
    """Filters and search as PostgREST query parameters (AND-composed)."""
    params: Params = []

    for name, value in spec.filters.items():
        column = entity.check_field(name)
        if isinstance(value, Equals):
            params.append((column, "is.null" if value.value is None else f"eq.{encode_value(value.value)}"))
        elif isinstance(value, Pattern):
            params.append((column, f"ilike.{gateway_pattern(like_pattern(value.pattern))}"))
        elif isinstance(value, AnyOf):
            params.append((column, "in.(" + ",".join(quote_value(v) for v in value.values) + ")"))
        elif isinstance(value, Range):
            params.extend((column, f"{op}.{encode_value(bound)}") for op, bound in value.bounds())
        elif isinstance(value, IsNull):
            params.append((column, "is.null" if value.is_null else "not.is.null"))

    if spec.search is not None and spec.search.active:
        pattern = gateway_pattern(substring_pattern(spec.search.term))
        fields = [entity.check_field(f) for f in spec.search.fields]
        if len(fields) == 1:
            params.append((fields[0], f"ilike.{pattern}"))
        else:
            params.append(("or", "(" + ",".join(f"{f}.ilike.{quote_value(pattern)}" for f in fields) + ")"))

    return params


def compile_order(spec: QuerySpec, entity: EntityDescriptor) -> tuple[str, str]:
    parts = [
        f"{key.field}.desc.nullsfirst" if key.descending else f"{key.field}.asc.nullslast"
        for key in effective_sort(spec, entity)
    ]
    return ("order", ",".join(parts))


def key_params(entity: EntityDescriptor, key: Any) -> Params:
    return [(column, f"eq.{encode_value(value)}") for column, value in entity.key_values(key).items()]


def parse_total(response: httpx.Response) -> int | None:
    """Total from a Content-Range header such as '0-19/93' or '*/0'."""
    content_range = response.headers.get("content-range", "")
    _, _, total = content_range.partition("/")
    if not total or total == "*":
        return None
    try:
        return int(total)
    except ValueError:
        return None


def map_gateway_error(response: httpx.Response) -> BackendError:
    """Translate an HTTP error into the taxonomy. The PostgREST code is only logged."""
    code = ""
    message = response.reason_phrase
    try:
        body = response.json()
        if isinstance(body, dict):
            code = body.get("code") or ""
            message = body.get("message") or message
    except ValueError:
        pass

    logger.warning("gateway: HTTP %s %s (%s)", response.status_code, message, code or "no code")

    status = response.status_code
    if status >= 500 or status in (408, 429):
        return BackendUnavailable(f"gateway unavailable (HTTP {status})")
    if status in (401, 403):
        return PermissionDenied(f"gateway refused the request (HTTP {status})")
    return InvalidQuery(f"gateway rejected the query: {message}")


class GatewayAdapter(BackendAdapter):
    """
    Backend adapter for a PostgREST-style HTTP gateway.

    Usage:
        async with GatewayAdapter("https://db.example.com/rest/v1", api_key) as adapter:
            page = await adapter.execute(QuerySpec(), CUSTOMERS)
    """

    name = "gateway"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        batch_size: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.GATEWAY_URL).rstrip("/")
        if not self.base_url:
            raise RuntimeError("GATEWAY_URL is required for the gateway backend")
        self.batch_size = batch_size or settings.GATEWAY_BATCH_SIZE

        api_key = api_key if api_key is not None else settings.GATEWAY_API_KEY
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout if timeout is not None else settings.BACKEND_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        table: str,
        params: Params,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        logger.debug("gateway: %s /%s %r", method, table, params)
        try:
            response = await self._client.request(method, f"/{table}", params=params, json=json, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("gateway: %s /%s timed out", method, table)
            raise BackendUnavailable(f"gateway request to /{table} timed out") from e
        except httpx.TransportError as e:
            logger.warning("gateway: %s /%s failed: %s", method, table, e)
            raise BackendUnavailable(f"gateway unreachable: {e}") from e

        if response.is_error:
            raise map_gateway_error(response)
        return response

    @staticmethod
    def _rows(response: httpx.Response) -> list[Row]:
        body = response.json() if response.content else []
        if isinstance(body, dict):
            return [body]
        return list(body)

    async def _fetch_all_matching(self, spec: QuerySpec, entity: EntityDescriptor) -> list[Row]:
        """Every row matching the server-expressible part of spec, in sort order."""
        base = [*compile_filters(spec, entity), compile_order(spec, entity)]
        rows: list[Row] = []
        offset = 0
        while True:
            response = await self._request(
                "GET",
                entity.table,
                [*base, ("offset", str(offset)), ("limit", str(self.batch_size))],
            )
            batch = self._rows(response)
            rows.extend(batch)
            if len(batch) < self.batch_size:
                return rows
            offset += self.batch_size

    # ------------------------------------------------------------------
    # BackendAdapter
    # ------------------------------------------------------------------

    async def execute(self, spec: QuerySpec, entity: EntityDescriptor) -> PageResult[Row]:
        validate_spec(spec, entity)
        pagination = spec.pagination

        if spec.predicates:
            matching = apply_predicates(await self._fetch_all_matching(spec, entity), spec.predicates)
            page_rows = matching[pagination.offset : pagination.offset + pagination.limit]
            return PageResult.build(page_rows, len(matching), pagination)

        params = [
            *compile_filters(spec, entity),
            compile_order(spec, entity),
            ("offset", str(pagination.offset)),
            ("limit", str(pagination.limit)),
        ]
        response = await self._request("GET", entity.table, params, headers=_COUNT_EXACT)
        rows = self._rows(response)
        total = parse_total(response)
        if total is None:
            total = pagination.offset + len(rows)
        return PageResult.build(rows, total, pagination)

    async def count(self, spec: QuerySpec, entity: EntityDescriptor) -> int:
        validate_spec(spec, entity)
        if spec.predicates:
            return len(apply_predicates(await self._fetch_all_matching(spec, entity), spec.predicates))

        response = await self._request("HEAD", entity.table, compile_filters(spec, entity), headers=_COUNT_EXACT)
        total = parse_total(response)
        if total is None:
            raise BackendUnavailable(f"gateway did not report a count for /{entity.table}")
        return total

    async def get(self, entity: EntityDescriptor, key: Any) -> Row | None:
        response = await self._request("GET", entity.table, [*key_params(entity, key), ("limit", "1")])
        rows = self._rows(response)
        return rows[0] if rows else None

    async def insert(self, entity: EntityDescriptor, values: Row) -> Row:
        validate_columns(entity, values)
        response = await self._request(
            "POST",
            entity.table,
            [],
            json={k: to_json(v) for k, v in values.items()},
            headers=_RETURN_ROWS,
        )
        rows = self._rows(response)
        if not rows:
            raise InvalidQuery(f"gateway returned no row for insert into {entity.table}")
        return rows[0]

    async def update(self, entity: EntityDescriptor, key: Any, values: Row) -> Row | None:
        validate_columns(entity, values)
        response = await self._request(
            "PATCH",
            entity.table,
            key_params(entity, key),
            json={k: to_json(v) for k, v in values.items()},
            headers=_RETURN_ROWS,
        )
        rows = self._rows(response)
        return rows[0] if rows else None

    async def delete(self, entity: EntityDescriptor, key: Any) -> bool:
        response = await self._request("DELETE", entity.table, key_params(entity, key), headers=_RETURN_ROWS)
        return len(self._rows(response)) > 0
