"""Generic entity repository over a backend adapter."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from bizdata.backends.base import BackendAdapter, Row
from bizdata.backends.entities import EntityDescriptor
from bizdata.config import settings
from bizdata.models.page import PageResult
from bizdata.models.query import (
    ColumnCompare,
    FilterValue,
    Pagination,
    QuerySpec,
    Search,
    SortKey,
    tag_filter_value,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

MutationHook = Callable[[str], Awaitable[None] | None]


def normalize_filters(filters: dict[str, Any] | None) -> dict[str, FilterValue]:
    """Tag raw filter values; None and "" mean "no filter" and are dropped."""
    return {
        name: tag_filter_value(value) for name, value in (filters or {}).items() if value is not None and value != ""
    }


class Repository(Generic[T]):
    """
    find/create/update/delete/count for one entity.

    Takes its adapter and descriptor as constructor arguments; there are no
    shared instances. on_mutation is called with the table name after every
    successful write so a caller-side cache can drop stale pages.
    """

    def __init__(
        self,
        adapter: BackendAdapter,
        entity: EntityDescriptor,
        model: type[T],
        on_mutation: MutationHook | None = None,
    ):
        self.adapter = adapter
        self.entity = entity
        self.model = model
        self.on_mutation = on_mutation

    def _to_model(self, row: Row) -> T:
        return self.model.model_validate(row)

    @staticmethod
    def _payload(data: BaseModel | dict[str, Any]) -> dict[str, Any]:
        # exclude_unset drops fields the caller never provided; an explicit None survives as a clear
        if isinstance(data, BaseModel):
            return data.model_dump(exclude_unset=True)
        return dict(data)

    async def _notify(self) -> None:
        if self.on_mutation is None:
            return
        result = self.on_mutation(self.entity.table)
        if inspect.isawaitable(result):
            await result

    async def find_all(self, spec: QuerySpec | None = None) -> PageResult[T]:
        """
        One page of entities.

        Args:
            spec: filters, search, sort and pagination; defaults to page 1

        Returns:
            PageResult with typed rows and the total of the filtered set
        """
        page = await self.adapter.execute(spec or QuerySpec(), self.entity)
        return page.map(self._to_model)

    def with_default_search(self, spec: QuerySpec | None, term: str | None = None) -> QuerySpec:
        """
        Fill in this entity's default search fields.

        term, when given, replaces the query's search term. A search without
        fields gets the entity's search_fields.
        """
        spec = spec or QuerySpec()
        search = spec.search or Search()
        if term is not None:
            search = search.model_copy(update={"term": term})
        if not search.fields:
            search = search.model_copy(update={"fields": self.entity.search_fields})
        return spec.model_copy(update={"search": search})

    async def search(self, spec: QuerySpec | None = None, term: str | None = None) -> PageResult[T]:
        """find_all() searching the entity's default fields."""
        return await self.find_all(self.with_default_search(spec, term))

    async def find_by_id(self, key: Any) -> T | None:
        """Fetch by primary key. None when there is no such row."""
        row = await self.adapter.get(self.entity, key)
        return self._to_model(row) if row is not None else None

    async def exists(self, key: Any) -> bool:
        return await self.adapter.get(self.entity, key) is not None

    async def create(self, data: BaseModel | dict[str, Any]) -> T:
        """Insert and return the stored entity. Failures are raised, never retried."""
        row = await self.adapter.insert(self.entity, self._payload(data))
        await self._notify()
        return self._to_model(row)

    async def update(self, key: Any, data: BaseModel | dict[str, Any]) -> T | None:
        """
        Apply a partial update.

        An empty update issues no write and returns the current entity.

        Returns:
            The updated entity, or None if the key does not exist
        """
        values = self._payload(data)
        if not values:
            return await self.find_by_id(key)

        row = await self.adapter.update(self.entity, key, values)
        if row is None:
            return None
        await self._notify()
        return self._to_model(row)

    async def delete(self, key: Any) -> bool:
        """Delete by primary key. False (not an error) when it does not exist."""
        deleted = await self.adapter.delete(self.entity, key)
        if deleted:
            await self._notify()
        return deleted

    async def count(self, filters: dict[str, Any] | None = None) -> int:
        return await self.adapter.count(QuerySpec(filters=normalize_filters(filters)), self.entity)

    async def fetch_all(
        self,
        filters: dict[str, Any] | None = None,
        predicates: Iterable[ColumnCompare] = (),
        sort: Iterable[SortKey] = (),
    ) -> list[T]:
        """
        Every matching entity, walking pages of FETCH_ALL_PAGE_SIZE.

        Used for aggregation driving sets and client-side joins.
        """
        limit = settings.FETCH_ALL_PAGE_SIZE
        base = QuerySpec(filters=normalize_filters(filters), predicates=tuple(predicates), sort=tuple(sort))
        rows: list[T] = []
        page_number = 1
        while True:
            spec = base.model_copy(update={"pagination": Pagination(page=page_number, limit=limit)})
            page = await self.find_all(spec)
            rows.extend(page.rows)
            if page_number >= page.total_pages:
                return rows
            page_number += 1
