"""Backend-neutral query description: filters, search, sort, pagination."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from bizdata.config import settings
from bizdata.errors import InvalidQuery
from bizdata.utils.pagination import page_offset

WILDCARD = "%"


class Equals(BaseModel):
    """field = value"""

    model_config = {"frozen": True, "extra": "forbid"}

    op: Literal["eq"] = "eq"
    value: Any


class Pattern(BaseModel):
    """Case-insensitive pattern match. `%` matches any run of characters."""

    model_config = {"frozen": True, "extra": "forbid"}

    op: Literal["ilike"] = "ilike"
    pattern: str


class AnyOf(BaseModel):
    """field IN (values)"""

    model_config = {"frozen": True, "extra": "forbid"}

    op: Literal["in"] = "in"
    values: tuple[Any, ...]

    @model_validator(mode="after")
    def _no_null_member(self) -> AnyOf:
        # IN never matches NULL; IsNull says that explicitly
        if any(value is None for value in self.values):
            raise ValueError("AnyOf cannot contain None, filter with IsNull instead")
        return self


class Range(BaseModel):
    """Any combination of gt / gte / lt / lte bounds."""

    model_config = {"frozen": True, "extra": "forbid"}

    op: Literal["range"] = "range"
    gt: Any = None
    gte: Any = None
    lt: Any = None
    lte: Any = None

    @model_validator(mode="after")
    def _at_least_one_bound(self) -> Range:
        if all(bound is None for bound in (self.gt, self.gte, self.lt, self.lte)):
            raise ValueError("Range needs at least one bound")
        return self

    def bounds(self) -> list[tuple[str, Any]]:
        """Set bounds as (operator, value) pairs, in a fixed order."""
        return [(name, getattr(self, name)) for name in ("gt", "gte", "lt", "lte") if getattr(self, name) is not None]


class IsNull(BaseModel):
    """field IS NULL (or IS NOT NULL when is_null is False)."""

    model_config = {"frozen": True, "extra": "forbid"}

    op: Literal["is_null"] = "is_null"
    is_null: bool = True


FilterValue = Annotated[Union[Equals, Pattern, AnyOf, Range, IsNull], Field(discriminator="op")]

CompareOp = Literal["eq", "ne", "lt", "le", "gt", "ge"]


class ColumnCompare(BaseModel):
    """
    Compare two columns of the same row: left <op> right.

    A NULL on either side never matches. The remote gateway cannot express
    this server-side, so it is evaluated in memory there.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    left: str
    op: CompareOp
    right: str


class Search(BaseModel):
    """Substring search across one or more fields (OR-combined)."""

    model_config = {"frozen": True, "extra": "forbid"}

    fields: tuple[str, ...] = ()
    term: str = ""

    @property
    def active(self) -> bool:
        return bool(self.term.strip()) and bool(self.fields)


class SortKey(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    field: str
    direction: Literal["ASC", "DESC"] = "ASC"

    @property
    def descending(self) -> bool:
        return self.direction == "DESC"


class Pagination(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    page: int = Field(default=1, ge=1)
    limit: int = Field(default_factory=lambda: settings.DEFAULT_PAGE_SIZE, ge=1)

    @property
    def offset(self) -> int:
        return page_offset(self.page, self.limit)


class QuerySpec(BaseModel):
    """
    What every caller builds to read a page of rows.

    filters and predicates are AND-composed. search is one OR group.
    sort order is tie-break precedence, first entry highest.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    filters: dict[str, FilterValue] = Field(default_factory=dict)
    predicates: tuple[ColumnCompare, ...] = ()
    search: Search | None = None
    sort: tuple[SortKey, ...] = ()
    pagination: Pagination = Field(default_factory=Pagination)

    def merged(
        self,
        filters: dict[str, FilterValue] | None = None,
        predicates: tuple[ColumnCompare, ...] | list[ColumnCompare] = (),
    ) -> QuerySpec:
        """
        Copy with extra filters and predicates AND-ed onto this query.

        A filter on a field this query already filters is intersected with
        the existing condition, see intersect_filters().

        Raises:
            InvalidQuery: if two conditions on one field cannot be combined
        """
        combined = dict(self.filters)
        for name, value in (filters or {}).items():
            combined[name] = intersect_filters(name, combined[name], value) if name in combined else value
        return self.model_copy(
            update={
                "filters": combined,
                "predicates": (*self.predicates, *predicates),
            }
        )

    @classmethod
    def from_wire(cls, payload: dict[str, Any] | None) -> QuerySpec:
        """
        Build a QuerySpec from the JSON shape UI code sends:

            {"filters": {...}, "search": {"fields": [...], "query": "..."},
             "sort": [{"field": ..., "direction": "ASC"}],
             "pagination": {"page": 1, "limit": 20}}

        Raw filter values are tagged here and nowhere else: lists become
        AnyOf, strings containing % become Pattern, dicts with an "op" key
        are parsed as that variant, other scalars become Equals. None and ""
        are dropped.

        Raises:
            InvalidQuery: if the payload does not have this shape
        """
        payload = payload or {}
        if not isinstance(payload, dict):
            raise InvalidQuery("query payload must be an object")

        try:
            filters = {
                name: tag_filter_value(value)
                for name, value in (payload.get("filters") or {}).items()
                if value is not None and value != ""
            }

            search = None
            raw_search = payload.get("search")
            if raw_search:
                search = Search(
                    fields=tuple(raw_search.get("fields") or ()),
                    term=raw_search.get("query") or raw_search.get("term") or "",
                )

            sort = tuple(SortKey(**item) for item in payload.get("sort") or ())

            raw_pagination = payload.get("pagination") or {}
            pagination = Pagination(**{k: v for k, v in raw_pagination.items() if k in ("page", "limit") and v})

            return cls(filters=filters, search=search, sort=sort, pagination=pagination)
        except (ValidationError, TypeError, AttributeError) as e:
            raise InvalidQuery(f"malformed query: {e}") from e


def tag_filter_value(value: Any) -> Equals | Pattern | AnyOf | Range | IsNull:
    """Turn an untagged wire value into an explicit filter variant."""
    if isinstance(value, (Equals, Pattern, AnyOf, Range, IsNull)):
        return value
    if isinstance(value, dict) and "op" in value:
        op = value["op"]
        variants = {"eq": Equals, "ilike": Pattern, "in": AnyOf, "range": Range, "is_null": IsNull}
        if op not in variants:
            raise InvalidQuery(f"unknown filter operator {op!r}")
        return variants[op](**value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return AnyOf(values=tuple(value))
    if isinstance(value, str) and WILDCARD in value:
        return Pattern(pattern=value)
    return Equals(value=value)


NOTHING = AnyOf(values=())

_TIGHTER = {"gt": max, "gte": max, "lt": min, "lte": min}


def _matches_null(value: FilterValue) -> bool:
    return (isinstance(value, IsNull) and value.is_null) or (isinstance(value, Equals) and value.value is None)


def _in_range(candidate: Any, bounds: Range) -> bool:
    if candidate is None:
        return False
    checks = {
        "gt": lambda bound: candidate > bound,
        "gte": lambda bound: candidate >= bound,
        "lt": lambda bound: candidate < bound,
        "lte": lambda bound: candidate <= bound,
    }
    return all(checks[op](bound) for op, bound in bounds.bounds())


def intersect_filters(name: str, first: FilterValue, second: FilterValue) -> FilterValue:
    """
    One filter matching exactly the rows both conditions match.

    Ranges combine bound by bound, keeping the tighter value. Equals and AnyOf
    are narrowed against the other condition in memory. Conditions that can
    never hold together become an empty AnyOf, which matches nothing.
    A Pattern only combines with itself or with IS NOT NULL.

    Raises:
        InvalidQuery: for a Pattern against a different condition, or
            bounds of types that do not compare
    """
    if first == second:
        return first

    try:
        if _matches_null(first) or _matches_null(second):
            # a NULL never satisfies any other condition
            return first if _matches_null(first) and _matches_null(second) else NOTHING

        # both sides now exclude NULL; IS NOT NULL adds nothing to the other side
        if isinstance(first, IsNull):
            return second
        if isinstance(second, IsNull):
            return first

        if isinstance(first, Pattern) or isinstance(second, Pattern):
            raise InvalidQuery(f"cannot combine {first.op} and {second.op} filters on {name!r}")

        if isinstance(first, Range) and isinstance(second, Range):
            bounds = {}
            for op, pick in _TIGHTER.items():
                values = [getattr(side, op) for side in (first, second) if getattr(side, op) is not None]
                if values:
                    bounds[op] = pick(values)
            return Range(**bounds)

        # at least one side is a finite set of values; narrow it by the other
        if isinstance(second, (Equals, AnyOf)) and not isinstance(first, (Equals, AnyOf)):
            first, second = second, first
        candidates = (first.value,) if isinstance(first, Equals) else first.values
        if isinstance(second, Range):
            kept = tuple(v for v in candidates if _in_range(v, second))
        else:
            allowed = (second.value,) if isinstance(second, Equals) else second.values
            kept = tuple(v for v in candidates if v in allowed)
    except TypeError as e:
        raise InvalidQuery(f"cannot combine filters on {name!r}: {e}") from e

    if isinstance(first, Equals) and kept:
        return first
    return AnyOf(values=kept)
