"""Repository for customers."""

from __future__ import annotations

from bizdata.backends.base import BackendAdapter
from bizdata.backends.entities import CUSTOMERS
from bizdata.models.customer import Customer
from bizdata.models.page import PageResult
from bizdata.models.query import Equals, QuerySpec
from bizdata.repos.base_repo import MutationHook, Repository


class CustomerRepo(Repository[Customer]):
    """All customer reads and writes."""

    def __init__(self, adapter: BackendAdapter, on_mutation: MutationHook | None = None):
        super().__init__(adapter, CUSTOMERS, Customer, on_mutation)

    async def search_customers(self, spec: QuerySpec | None = None, term: str | None = None) -> PageResult[Customer]:
        """Search company, contact, city and country unless the query names other fields."""
        return await self.search(spec, term)

    async def find_by_country(self, country: str, spec: QuerySpec | None = None) -> PageResult[Customer]:
        return await self.find_all((spec or QuerySpec()).merged({"country": Equals(value=country)}))

    async def find_by_city(self, city: str, spec: QuerySpec | None = None) -> PageResult[Customer]:
        return await self.find_all((spec or QuerySpec()).merged({"city": Equals(value=city)}))
