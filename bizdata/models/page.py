"""Page Result: one immutable page of rows plus the filtered total."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field, model_validator

from bizdata.models.query import Pagination
from bizdata.utils.pagination import total_pages

T = TypeVar("T")
U = TypeVar("U")


class PageResult(BaseModel, Generic[T]):
    """
    A snapshot of one page. Re-query for fresh data; nothing is live-bound.

    total counts the whole filtered set, not just the rows on this page.
    """

    model_config = {"frozen": True}

    rows: list[T] = Field(default_factory=list)
    total: int = Field(ge=0)
    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    total_pages: int = Field(ge=0)

    @model_validator(mode="after")
    def _page_fits_limit(self) -> PageResult[T]:
        if len(self.rows) > self.limit:
            raise ValueError(f"page holds {len(self.rows)} rows, limit is {self.limit}")
        return self

    @classmethod
    def build(cls, rows: list[Any], total: int, pagination: Pagination) -> PageResult:
        return cls(
            rows=rows,
            total=total,
            page=pagination.page,
            limit=pagination.limit,
            total_pages=total_pages(total, pagination.limit),
        )

    def map(self, convert: Callable[[T], U]) -> PageResult[U]:
        """Same page with every row converted."""
        return PageResult[Any](
            rows=[convert(row) for row in self.rows],
            total=self.total,
            page=self.page,
            limit=self.limit,
            total_pages=self.total_pages,
        )

    def to_wire(self) -> dict[str, Any]:
        """The JSON shape UI code consumes: {data, total, page, limit, totalPages}."""
        rows = [row.model_dump(mode="json") if isinstance(row, BaseModel) else row for row in self.rows]
        return {
            "data": rows,
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "totalPages": self.total_pages,
        }
