"""
Backend adapter interface.

One interface, two implementations: SqliteAdapter (embedded engine) and
GatewayAdapter (remote PostgREST gateway). Everything entity-specific lives
above this layer, so swapping backends never touches repositories or
analytics.
"""

from __future__ import annotations

import operator
from collections.abc import Iterable
from typing import Any

from bizdata.backends.entities import EntityDescriptor
from bizdata.errors import InvalidQuery
from bizdata.models.page import PageResult
from bizdata.models.query import ColumnCompare, QuerySpec, SortKey

Row = dict[str, Any]

LIKE_ESCAPE = "\\"

_COMPARATORS = {
    "eq": operator.eq,
    "ne": operator.ne,
    "lt": operator.lt,
    "le": operator.le,
    "gt": operator.gt,
    "ge": operator.ge,
}


class BackendAdapter:
    """
    Abstract backend interface.
    Implement per storage backend; select one at construction time.
    """

    name: str = "abstract"

    async def execute(self, spec: QuerySpec, entity: EntityDescriptor) -> PageResult[Row]:
        """One page of rows matching spec, plus the total of the filtered set."""
        raise NotImplementedError

    async def count(self, spec: QuerySpec, entity: EntityDescriptor) -> int:
        """Number of rows matching spec's filters, predicates and search."""
        raise NotImplementedError

    async def get(self, entity: EntityDescriptor, key: Any) -> Row | None:
        """Fetch one row by primary key. Returns None if not found."""
        raise NotImplementedError

    async def insert(self, entity: EntityDescriptor, values: Row) -> Row:
        """Insert a row and return it as stored."""
        raise NotImplementedError

    async def update(self, entity: EntityDescriptor, key: Any, values: Row) -> Row | None:
        """Update a row by primary key. Returns None if not found."""
        raise NotImplementedError

    async def delete(self, entity: EntityDescriptor, key: Any) -> bool:
        """Delete a row by primary key. Returns False if not found."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release connections."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


# ---------------------------------------------------------------------------
# Helpers shared by both adapters
# ---------------------------------------------------------------------------


def validate_spec(spec: QuerySpec, entity: EntityDescriptor) -> None:
    """
    Reject any field the entity does not have.

    Column names are interpolated into SQL and gateway parameters, so this
    check runs before anything is built.

    Raises:
        InvalidQuery: on an unknown filter, predicate, search, or sort field
    """
    for name in spec.filters:
        entity.check_field(name)
    for predicate in spec.predicates:
        entity.check_field(predicate.left)
        entity.check_field(predicate.right)
    if spec.search is not None:
        for name in spec.search.fields:
            entity.check_field(name)
    for key in spec.sort:
        entity.check_field(key.field)


def validate_columns(entity: EntityDescriptor, values: Row) -> None:
    """Reject a write payload that names unknown columns or is empty."""
    if not values:
        raise InvalidQuery(f"{entity.table}: nothing to write")
    for name in values:
        entity.check_field(name)


def effective_sort(spec: QuerySpec, entity: EntityDescriptor) -> list[SortKey]:
    """
    Sort keys as both backends apply them.

    Absent sort means primary key ascending. Key columns not already named
    are appended as final tie-breakers so repeated calls page identically.
    """
    keys = list(spec.sort)
    named = {key.field for key in keys}
    for column in entity.key_fields:
        if column not in named:
            keys.append(SortKey(field=column, direction="ASC"))
    return keys


def escape_like(term: str) -> str:
    """Escape LIKE metacharacters so term matches literally."""
    return term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", LIKE_ESCAPE + "%").replace("_", LIKE_ESCAPE + "_")


def like_pattern(pattern: str) -> str:
    """Escape everything in a Pattern filter except its % wildcards."""
    return pattern.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("_", LIKE_ESCAPE + "_")


def substring_pattern(term: str) -> str:
    """%term% with the term's own metacharacters escaped."""
    return f"%{escape_like(term.strip())}%"


def predicate_matches(row: Row, predicate: ColumnCompare) -> bool:
    """Evaluate a column comparison in memory. NULL on either side is no match."""
    left = row.get(predicate.left)
    right = row.get(predicate.right)
    if left is None or right is None:
        return False
    return _COMPARATORS[predicate.op](left, right)


def apply_predicates(rows: Iterable[Row], predicates: Iterable[ColumnCompare]) -> list[Row]:
    predicates = list(predicates)
    return [row for row in rows if all(predicate_matches(row, p) for p in predicates)]
