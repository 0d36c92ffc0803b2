"""Repository for orders."""

from __future__ import annotations

import logging
from datetime import datetime

from bizdata.backends.base import BackendAdapter
from bizdata.backends.entities import CUSTOMERS, EMPLOYEES, ORDERS, PRODUCTS
from bizdata.models.customer import Customer
from bizdata.models.employee import Employee
from bizdata.models.order import Order, OrderLineDetail, OrderWithDetails
from bizdata.models.page import PageResult
from bizdata.models.product import Product
from bizdata.models.query import AnyOf, Equals, FilterValue, IsNull, QuerySpec, Range, SortKey
from bizdata.repos.base_repo import MutationHook, Repository
from bizdata.repos.order_line_repo import OrderLineRepo
from bizdata.services.financial import line_total_of, order_subtotal

logger = logging.getLogger(__name__)

NEWEST_FIRST = (SortKey(field="order_id", direction="DESC"),)


def date_range(date_from: datetime | None = None, date_to: datetime | None = None) -> Range | None:
    """Inclusive order_date bounds; None when neither end is given."""
    if date_from is None and date_to is None:
        return None
    return Range(gte=date_from, lte=date_to)


class OrderRepo(Repository[Order]):
    """
    All order reads and writes.

    Listing defaults to newest first (order_id descending) when the caller
    gives no sort.
    """

    def __init__(self, adapter: BackendAdapter, on_mutation: MutationHook | None = None):
        super().__init__(adapter, ORDERS, Order, on_mutation)
        self.lines = OrderLineRepo(adapter, on_mutation)

    async def find_all(self, spec: QuerySpec | None = None) -> PageResult[Order]:
        spec = spec or QuerySpec()
        if not spec.sort:
            spec = spec.model_copy(update={"sort": NEWEST_FIRST})
        return await super().find_all(spec)

    async def search_orders(
        self,
        spec: QuerySpec | None = None,
        term: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        shipped: bool | None = None,
    ) -> PageResult[Order]:
        """
        Search ship name, city, country and customer id.

        Args:
            spec: base query; its filters are kept
            term: search term, replaces spec.search.term when given
            date_from: earliest order_date, inclusive
            date_to: latest order_date, inclusive
            shipped: True for shipped orders, False for pending ones

        Returns:
            PageResult of orders, newest first unless spec sorts otherwise
        """
        filters: dict[str, FilterValue] = {}
        order_dates = date_range(date_from, date_to)
        if order_dates is not None:
            filters["order_date"] = order_dates
        if shipped is not None:
            filters["shipped_date"] = IsNull(is_null=not shipped)
        return await self.find_all(self.with_default_search(spec, term).merged(filters))

    async def find_by_customer(self, customer_id: str, spec: QuerySpec | None = None) -> PageResult[Order]:
        return await self.find_all((spec or QuerySpec()).merged({"customer_id": Equals(value=customer_id)}))

    async def find_by_employee(self, employee_id: int, spec: QuerySpec | None = None) -> PageResult[Order]:
        return await self.find_all((spec or QuerySpec()).merged({"employee_id": Equals(value=employee_id)}))

    async def find_pending(self, spec: QuerySpec | None = None) -> PageResult[Order]:
        """Orders with no shipped_date."""
        return await self.find_all((spec or QuerySpec()).merged({"shipped_date": IsNull()}))

    async def find_by_date_range(
        self,
        date_from: datetime | None,
        date_to: datetime | None,
        spec: QuerySpec | None = None,
    ) -> PageResult[Order]:
        spec = spec or QuerySpec()
        order_dates = date_range(date_from, date_to)
        if order_dates is not None:
            spec = spec.merged({"order_date": order_dates})
        return await self.find_all(spec)

    async def find_with_details(self, order_id: int) -> OrderWithDetails | None:
        """
        One order with its customer name, employee name and lines.

        Lines come back sorted by product_id, each with its product name and
        exact line total. total_amount is the sum of the line totals and does
        not include freight.

        Returns:
            OrderWithDetails, or None if the order does not exist
        """
        order = await self.find_by_id(order_id)
        if order is None:
            return None

        customer_name = None
        if order.customer_id is not None:
            customer = await Repository(self.adapter, CUSTOMERS, Customer).find_by_id(order.customer_id)
            if customer is not None:
                customer_name = customer.company_name

        employee_name = None
        if order.employee_id is not None:
            employee = await Repository(self.adapter, EMPLOYEES, Employee).find_by_id(order.employee_id)
            if employee is not None:
                employee_name = employee.full_name

        lines = await self.lines.find_for_order(order_id)

        product_names: dict[int, str] = {}
        product_ids = tuple(dict.fromkeys(line.product_id for line in lines))
        if product_ids:
            products = Repository(self.adapter, PRODUCTS, Product)
            for product in await products.fetch_all({"product_id": AnyOf(values=product_ids)}):
                product_names[product.product_id] = product.product_name

        details = [
            OrderLineDetail(
                **line.model_dump(),
                product_name=product_names.get(line.product_id),
                line_total=line_total_of(line),
            )
            for line in lines
        ]
        logger.debug("order %s: %s lines", order_id, len(details))

        return OrderWithDetails(
            **order.model_dump(),
            customer_name=customer_name,
            employee_name=employee_name,
            order_details=details,
            total_amount=order_subtotal(lines),
        )
