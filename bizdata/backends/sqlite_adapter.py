"""
Embedded-engine adapter: QuerySpec → parameterized SQLite SQL.

Values are always bound with ? placeholders. Column and table names are
interpolated only after validation against the entity descriptor.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import aiosqlite

from bizdata.backends.base import (
    BackendAdapter,
    Row,
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

_RANGE_SQL = {"gt": ">", "gte": ">=", "lt": "<", "lte": "<="}
_COMPARE_SQL = {"eq": "=", "ne": "<>", "lt": "<", "le": "<=", "gt": ">", "ge": ">="}

# sqlite3 error names (Error.sqlite_errorname) by taxonomy; matched as prefixes
# so extended codes like SQLITE_BUSY_TIMEOUT map with their primary code.
_UNAVAILABLE_CODES = ("SQLITE_BUSY", "SQLITE_LOCKED", "SQLITE_CANTOPEN", "SQLITE_IOERR", "SQLITE_FULL", "SQLITE_PROTOCOL")
_DENIED_CODES = ("SQLITE_AUTH", "SQLITE_PERM", "SQLITE_READONLY")


def quote_ident(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def to_param(value: Any) -> Any:
    """Convert a Python value to something sqlite3 binds without adapters."""
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    return value


def compile_where(spec: QuerySpec, entity: EntityDescriptor) -> tuple[str, list[Any]]:
    """
    Build ' WHERE ...' and its parameters.

    Filters and predicates are AND-composed. A multi-field search becomes one
    parenthesized OR group so it composes safely with the AND chain.
    """
    conditions: list[str] = []
    params: list[Any] = []

    for name, value in spec.filters.items():
        column = quote_ident(entity.check_field(name))
        if isinstance(value, Equals):
            if value.value is None:
                conditions.append(f"{column} IS NULL")
            else:
                conditions.append(f"{column} = ?")
                params.append(to_param(value.value))
        elif isinstance(value, Pattern):
            conditions.append(f"{column} LIKE ? ESCAPE '\\'")
            params.append(like_pattern(value.pattern))
        elif isinstance(value, AnyOf):
            if not value.values:
                # IN () is not valid SQL; an empty set matches nothing
                conditions.append("0 = 1")
            else:
                placeholders = ", ".join("?" for _ in value.values)
                conditions.append(f"{column} IN ({placeholders})")
                params.extend(to_param(v) for v in value.values)
        elif isinstance(value, Range):
            for op, bound in value.bounds():
                conditions.append(f"{column} {_RANGE_SQL[op]} ?")
                params.append(to_param(bound))
        elif isinstance(value, IsNull):
            conditions.append(f"{column} IS NULL" if value.is_null else f"{column} IS NOT NULL")

    for predicate in spec.predicates:
        left = quote_ident(entity.check_field(predicate.left))
        right = quote_ident(entity.check_field(predicate.right))
        conditions.append(f"{left} {_COMPARE_SQL[predicate.op]} {right}")

    if spec.search is not None and spec.search.active:
        pattern = substring_pattern(spec.search.term)
        parts = [f"CAST({quote_ident(entity.check_field(f))} AS TEXT) LIKE ? ESCAPE '\\'" for f in spec.search.fields]
        params.extend(pattern for _ in parts)
        conditions.append(parts[0] if len(parts) == 1 else "(" + " OR ".join(parts) + ")")

    if not conditions:
        return "", params
    return " WHERE " + " AND ".join(conditions), params


def compile_order(spec: QuerySpec, entity: EntityDescriptor) -> str:
    # NULLS LAST ascending / FIRST descending matches PostgreSQL's default
    clauses = [
        f"{quote_ident(key.field)} DESC NULLS FIRST" if key.descending else f"{quote_ident(key.field)} ASC NULLS LAST"
        for key in effective_sort(spec, entity)
    ]
    return " ORDER BY " + ", ".join(clauses)


def map_sqlite_error(exc: Exception) -> BackendError:
    """Translate a driver error into the taxonomy. The driver code is only logged."""
    code = getattr(exc, "sqlite_errorname", None) or ""
    message = str(exc)
    if isinstance(exc, sqlite3.ProgrammingError) and "closed" in message.lower():
        return BackendUnavailable("embedded database connection is closed")
    if code.startswith(_UNAVAILABLE_CODES):
        return BackendUnavailable(f"embedded database unavailable: {message}")
    if code.startswith(_DENIED_CODES):
        return PermissionDenied(f"embedded database refused the operation: {message}")
    return InvalidQuery(f"embedded database rejected the query: {message}")


class SqliteAdapter(BackendAdapter):
    """
    Backend adapter for a local SQLite database through aiosqlite.

    Usage:
        async with await SqliteAdapter.connect("shop.db") as adapter:
            page = await adapter.execute(QuerySpec(), CUSTOMERS)
    """

    name = "embedded"

    def __init__(self, path: str | None = None, timeout: float | None = None):
        self.path = path or settings.SQLITE_PATH
        self.timeout = timeout if timeout is not None else settings.BACKEND_TIMEOUT_SECONDS
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @classmethod
    async def connect(cls, path: str | None = None, timeout: float | None = None) -> SqliteAdapter:
        adapter = cls(path, timeout)
        await adapter.open()
        return adapter

    async def open(self) -> None:
        """Open the connection. Called once before first use."""
        if self._conn is not None:
            return
        try:
            self._conn = await aiosqlite.connect(self.path)
        except (sqlite3.Error, OSError) as e:
            logger.warning("sqlite: failed to open %s: %s", self.path, e)
            raise BackendUnavailable(f"cannot open embedded database {self.path}") from e
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA foreign_keys = ON")

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise BackendUnavailable("embedded database is not open. Call open() first.")
        return self._conn

    # ------------------------------------------------------------------
    # Low-level execution
    # ------------------------------------------------------------------

    async def _run(self, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except TimeoutError as e:
            raise BackendUnavailable(f"embedded database call exceeded {self.timeout}s") from e
        except sqlite3.Error as e:
            mapped = map_sqlite_error(e)
            logger.warning("sqlite: %s (%s)", mapped, getattr(e, "sqlite_errorname", type(e).__name__))
            raise mapped from e

    async def _fetch(self, sql: str, params: list[Any]) -> list[Row]:
        logger.debug("sqlite: %s %r", sql, params)
        conn = self.connection

        async def run() -> list[Row]:
            async with conn.execute(sql, params) as cursor:
                return [dict(row) for row in await cursor.fetchall()]

        return await self._run(run())

    async def _write(self, sql: str, params: list[Any]) -> tuple[list[Row], int]:
        """Execute one write statement and commit. Returns (returned rows, rowcount)."""
        logger.debug("sqlite: %s %r", sql, params)
        conn = self.connection

        async def run() -> tuple[list[Row], int]:
            try:
                async with conn.execute(sql, params) as cursor:
                    rows = [dict(row) for row in await cursor.fetchall()]
                    rowcount = cursor.rowcount
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise
            return rows, rowcount

        async with self._write_lock:
            return await self._run(run())

    # ------------------------------------------------------------------
    # BackendAdapter
    # ------------------------------------------------------------------

    async def execute(self, spec: QuerySpec, entity: EntityDescriptor) -> PageResult[Row]:
        validate_spec(spec, entity)
        table = quote_ident(entity.table)
        where, params = compile_where(spec, entity)
        order = compile_order(spec, entity)

        total_rows = await self._fetch(f"SELECT COUNT(*) AS total FROM {table}{where}", params)  # nosec B608
        total = int(total_rows[0]["total"]) if total_rows else 0

        rows = await self._fetch(
            f"SELECT * FROM {table}{where}{order} LIMIT ? OFFSET ?",  # nosec B608
            [*params, spec.pagination.limit, spec.pagination.offset],
        )
        return PageResult.build(rows, total, spec.pagination)

    async def count(self, spec: QuerySpec, entity: EntityDescriptor) -> int:
        validate_spec(spec, entity)
        where, params = compile_where(spec, entity)
        rows = await self._fetch(f"SELECT COUNT(*) AS total FROM {quote_ident(entity.table)}{where}", params)  # nosec B608
        return int(rows[0]["total"]) if rows else 0

    def _key_clause(self, entity: EntityDescriptor, key: Any) -> tuple[str, list[Any]]:
        values = entity.key_values(key)
        clause = " AND ".join(f"{quote_ident(column)} = ?" for column in values)
        return clause, [to_param(v) for v in values.values()]

    async def get(self, entity: EntityDescriptor, key: Any) -> Row | None:
        clause, params = self._key_clause(entity, key)
        rows = await self._fetch(f"SELECT * FROM {quote_ident(entity.table)} WHERE {clause} LIMIT 1", params)  # nosec B608
        return rows[0] if rows else None

    async def insert(self, entity: EntityDescriptor, values: Row) -> Row:
        validate_columns(entity, values)
        columns = ", ".join(quote_ident(c) for c in values)
        placeholders = ", ".join("?" for _ in values)
        rows, _ = await self._write(
            f"INSERT INTO {quote_ident(entity.table)} ({columns}) VALUES ({placeholders}) RETURNING *",  # nosec B608
            [to_param(v) for v in values.values()],
        )
        return rows[0]

    async def update(self, entity: EntityDescriptor, key: Any, values: Row) -> Row | None:
        validate_columns(entity, values)
        set_clause = ", ".join(f"{quote_ident(c)} = ?" for c in values)
        key_clause, key_params = self._key_clause(entity, key)
        rows, _ = await self._write(
            f"UPDATE {quote_ident(entity.table)} SET {set_clause} WHERE {key_clause} RETURNING *",  # nosec B608
            [*(to_param(v) for v in values.values()), *key_params],
        )
        return rows[0] if rows else None

    async def delete(self, entity: EntityDescriptor, key: Any) -> bool:
        clause, params = self._key_clause(entity, key)
        _, rowcount = await self._write(f"DELETE FROM {quote_ident(entity.table)} WHERE {clause}", params)  # nosec B608
        return rowcount > 0

    async def executescript(self, script: str) -> None:
        """Run a multi-statement script (schema setup in tests and tooling)."""
        async with self._write_lock:
            await self._run(self.connection.executescript(script))
