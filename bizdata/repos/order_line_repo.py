"""Repository for order lines (the order_details table)."""

from __future__ import annotations

from collections.abc import Iterable

from bizdata.backends.base import BackendAdapter
from bizdata.backends.entities import ORDER_LINES
from bizdata.models.order import OrderLine
from bizdata.models.query import AnyOf, Equals, SortKey
from bizdata.repos.base_repo import MutationHook, Repository

_BY_PRODUCT = (SortKey(field="product_id"),)


class OrderLineRepo(Repository[OrderLine]):
    """
    Order lines, keyed by (order_id, product_id).

    find_by_id / update / delete take the key as a tuple.
    """

    def __init__(self, adapter: BackendAdapter, on_mutation: MutationHook | None = None):
        super().__init__(adapter, ORDER_LINES, OrderLine, on_mutation)

    async def find_for_order(self, order_id: int) -> list[OrderLine]:
        return await self.fetch_all({"order_id": Equals(value=order_id)}, sort=_BY_PRODUCT)

    async def find_for_orders(self, order_ids: Iterable[int]) -> list[OrderLine]:
        ids = tuple(dict.fromkeys(order_ids))
        if not ids:
            return []
        return await self.fetch_all({"order_id": AnyOf(values=ids)})

    async def find_for_product(self, product_id: int) -> list[OrderLine]:
        return await self.fetch_all({"product_id": Equals(value=product_id)})

    async def find_for_products(self, product_ids: Iterable[int]) -> list[OrderLine]:
        ids = tuple(dict.fromkeys(product_ids))
        if not ids:
            return []
        return await self.fetch_all({"product_id": AnyOf(values=ids)})
