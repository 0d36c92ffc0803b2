"""
Aggregation engine: cross-entity business metrics.

Neither backend can join or GROUP BY for us (the gateway has no server-side
joins), so every aggregate follows the same shape:

1. fetch the driving set (customers, products, categories, or orders in a
   date window); a failure here is fatal and propagates
2. fan out one dependent query per driving row, bounded by
   AGGREGATION_CONCURRENCY; a failed dependent counts as zero and is
   reported in AggregateResult.warnings
3. reduce lines through the financial calculator into per-key accumulators
4. rank and truncate

This is N+1 by construction. The cost is one dependent round-trip per
driving row, so aggregates over large driving sets should be given a date
window.

Usage:
    analytics = AnalyticsService(adapter)
    result = await analytics.top_customers(limit=5)
    for row in result.value:
        ...
    if result.partial:
        ...  # some customers were counted as zero
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal

from bizdata.backends.base import BackendAdapter
from bizdata.config import settings
from bizdata.errors import BackendError
from bizdata.models.analytics import (
    AggregateResult,
    BusinessMetrics,
    CategoryRevenue,
    CustomerLifetimeValue,
    CustomerMetrics,
    CustomerOrderStats,
    CustomerRetention,
    CustomerSegment,
    InventoryAlert,
    InventoryValuation,
    OrderStats,
    ProductPerformance,
    ProductSales,
    ProductSalesStats,
    ReorderAlert,
    SalesTrendPoint,
)
from bizdata.models.customer import Customer
from bizdata.models.order import Order, OrderLine
from bizdata.models.query import AnyOf, Equals, FilterValue, SortKey
from bizdata.repos.base_repo import Repository
from bizdata.repos.category_repo import CategoryRepo
from bizdata.repos.customer_repo import CustomerRepo
from bizdata.repos.order_line_repo import OrderLineRepo
from bizdata.repos.order_repo import OrderRepo, date_range
from bizdata.repos.product_repo import ProductRepo
from bizdata.repos.supplier_repo import SupplierRepo
from bizdata.services.fanout import FanOutResult, fan_out
from bizdata.services.financial import (
    CENT,
    HUNDRED,
    ONE,
    ZERO,
    average_order_value,
    line_total_of,
    order_subtotal,
    to_decimal,
)

logger = logging.getLogger(__name__)

GroupBy = Literal["day", "week", "month"]

# Fixed English month names so bucket labels do not depend on the locale
MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

UNKNOWN = "Unknown"

# Three-year projection for estimated lifetime value
LIFETIME_PROJECTION_DAYS = 365 * 3

# (name, description, test) in priority order; a customer lands in the first match
SEGMENTS = (
    (
        "VIP Customers",
        "High-value customers (>$5000 and >10 orders)",
        lambda m: m.total_spent > 5000 and m.order_count > 10,
    ),
    (
        "Loyal Customers",
        "Frequent buyers (>5 orders but <$5000)",
        lambda m: m.order_count > 5,
    ),
    (
        "High-Value Customers",
        "Big spenders (<5 orders but >$3000)",
        lambda m: m.total_spent > 3000,
    ),
    (
        "Regular Customers",
        "Moderate activity (2-5 orders, $500-$3000)",
        lambda m: m.order_count >= 2 and m.total_spent > 500,
    ),
    (
        "New Customers",
        "Recent or low activity (1-2 orders, <$500)",
        lambda m: True,
    ),
)


@dataclass
class Accumulator:
    """Per-key running totals for one aggregation call. Never shared."""

    quantity_sum: int = 0
    revenue_sum: Decimal = ZERO
    order_ids: set[int] = field(default_factory=set)

    def add(self, line: OrderLine) -> None:
        self.quantity_sum += line.quantity
        self.revenue_sum += line_total_of(line)
        self.order_ids.add(line.order_id)


@dataclass
class TrendBucket:
    label: str
    start: date
    sales: Decimal = ZERO
    orders: int = 0
    customers: set[str] = field(default_factory=set)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def naive_utc(value: datetime | None) -> datetime | None:
    """Drop tzinfo after converting to UTC. The embedded engine stores naive timestamps."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def order_window(date_from: datetime | None = None, date_to: datetime | None = None) -> dict[str, FilterValue]:
    """Filter on order_date, inclusive at both ends. Empty when unbounded."""
    window = date_range(naive_utc(date_from), naive_utc(date_to))
    return {"order_date": window} if window is not None else {}


def _day_label(day: date) -> str:
    return f"{MONTHS[day.month - 1]} {day.day}"


def week_start(day: date) -> date:
    """The Sunday on or before day."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def bucket_for(day: date, group_by: GroupBy) -> tuple[str, str, date]:
    """
    (key, label, start) of the bucket holding day.

    Keys sort chronologically as strings:
        day    "1996-07-04"  "Jul 4"
        week   "1996-06-30"  "Jun 30 - Jul 6"
        month  "1996-07"     "Jul 1996"
    """
    if group_by == "day":
        return day.isoformat(), _day_label(day), day
    if group_by == "week":
        start = week_start(day)
        end = start + timedelta(days=6)
        return start.isoformat(), f"{_day_label(start)} - {_day_label(end)}", start
    if group_by == "month":
        start = day.replace(day=1)
        return f"{day.year:04d}-{day.month:02d}", f"{MONTHS[day.month - 1]} {day.year}", start
    raise ValueError(f"group_by must be 'day', 'week' or 'month', got {group_by!r}")


def customer_totals(customer: Customer, orders: list[Order], lines: list[OrderLine]) -> CustomerMetrics:
    """CustomerMetrics from one customer's orders and their lines."""
    total = order_subtotal(lines)
    dates = [naive_utc(order.order_date) for order in orders if order.order_date is not None]
    return CustomerMetrics(
        customer_id=customer.customer_id,
        company_name=customer.company_name,
        order_count=len(orders),
        total_spent=total,
        average_order_value=average_order_value(total, len(orders)),
        first_order_date=min(dates) if dates else None,
        last_order_date=max(dates) if dates else None,
    )


def segment_customers(metrics: Iterable[CustomerMetrics]) -> list[CustomerSegment]:
    """Bucket customers into SEGMENTS. Empty segments are left out."""
    members: dict[str, list[CustomerMetrics]] = {name: [] for name, _, _ in SEGMENTS}
    for m in metrics:
        for name, _, test in SEGMENTS:
            if test(m):
                members[name].append(m)
                break

    segments = []
    for name, description, _ in SEGMENTS:
        group = members[name]
        if not group:
            continue
        segments.append(
            CustomerSegment(
                segment=name,
                description=description,
                count=len(group),
                total_spent=sum((m.total_spent for m in group), ZERO),
                average_order_value=sum((m.average_order_value for m in group), ZERO) / len(group),
            )
        )
    return segments


def sales_stats(lines: list[OrderLine]) -> ProductSalesStats:
    quantity = sum(line.quantity for line in lines)
    times_ordered = len(lines)
    return ProductSalesStats(
        total_quantity_sold=quantity,
        total_revenue=order_subtotal(lines),
        average_order_quantity=Decimal(quantity) / times_ordered if times_ordered else ZERO,
        times_ordered=times_ordered,
    )


def average_discount_percent(lines: list[OrderLine]) -> Decimal:
    """Mean line discount as a percentage, two decimals."""
    if not lines:
        return ZERO
    mean = sum((to_decimal(line.discount) for line in lines), ZERO) / len(lines)
    return (mean * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def suggested_order_quantity(units_in_stock: int, reorder_level: int) -> int:
    """Enough to reach twice the reorder level, and never less than one reorder level."""
    return max(reorder_level * 2 - units_in_stock, reorder_level)


def _previous_month_start(month_start: datetime) -> datetime:
    return (month_start - timedelta(days=1)).replace(day=1)


# ---------------------------------------------------------------------------
# AnalyticsService
# ---------------------------------------------------------------------------


class AnalyticsService:
    """
    Every business aggregate, over one backend adapter.

    Each operation returns AggregateResult; check .partial (or call
    .raise_for_partial()) when zero-substituted dependents matter. Every
    fan-out operation accepts a cancel event that stops new dependent
    fetches and returns what was collected so far.
    """

    def __init__(self, adapter: BackendAdapter, concurrency: int | None = None):
        self.adapter = adapter
        self.concurrency = concurrency or settings.AGGREGATION_CONCURRENCY
        self.customers = CustomerRepo(adapter)
        self.products = ProductRepo(adapter)
        self.orders = OrderRepo(adapter)
        self.lines = OrderLineRepo(adapter)
        self.categories = CategoryRepo(adapter)
        self.suppliers = SupplierRepo(adapter)

    # -- plumbing -----------------------------------------------------------

    @staticmethod
    def _result(value: Any, *outcomes: FanOutResult) -> AggregateResult:
        return AggregateResult(
            value=value,
            warnings=sum(outcome.warnings for outcome in outcomes),
            cancelled=any(outcome.cancelled for outcome in outcomes),
        )

    async def _fan_out(self, keys, fetch, label: str, cancel: asyncio.Event | None) -> FanOutResult:
        return await fan_out(keys, fetch, label=label, concurrency=self.concurrency, cancel=cancel)

    async def _names(
        self,
        repo: Repository,
        key_field: str,
        name_field: str,
        ids: Iterable[Any],
    ) -> FanOutResult:
        """
        Batched id -> name lookup for display columns.

        A failed lookup is a dependent failure: names fall back to UNKNOWN
        and the result carries one warning.
        """
        outcome = FanOutResult()
        unique_ids = tuple(dict.fromkeys(i for i in ids if i is not None))
        if not unique_ids:
            return outcome
        try:
            rows = await repo.fetch_all({key_field: AnyOf(values=unique_ids)})
        except BackendError as e:
            outcome.warnings += 1
            logger.warning("analytics: %s name lookup failed, using %r: %s", repo.entity.table, UNKNOWN, e)
            return outcome
        outcome.results = {getattr(row, key_field): getattr(row, name_field) for row in rows}
        return outcome

    async def _order_revenues(self, orders: list[Order], cancel: asyncio.Event | None) -> FanOutResult:
        """order_id -> exact subtotal, one line fetch per order."""

        async def revenue(order_id: int) -> Decimal:
            return order_subtotal(await self.lines.find_for_order(order_id))

        return await self._fan_out((order.order_id for order in orders), revenue, "order lines", cancel)

    async def _customer_totals(
        self,
        date_from: datetime | None,
        date_to: datetime | None,
        cancel: asyncio.Event | None,
    ) -> tuple[list[CustomerMetrics], FanOutResult]:
        """CustomerMetrics for every customer, zero-valued where a customer has no orders."""
        customers = await self.customers.fetch_all()
        window = order_window(date_from, date_to)

        async def orders_and_lines(customer_id: str) -> tuple[list[Order], list[OrderLine]]:
            orders = await self.orders.fetch_all({"customer_id": Equals(value=customer_id), **window})
            lines = await self.lines.find_for_orders(order.order_id for order in orders)
            return orders, lines

        fetched = await self._fan_out(
            (customer.customer_id for customer in customers), orders_and_lines, "customer orders", cancel
        )
        metrics = [
            customer_totals(customer, *fetched.results.get(customer.customer_id, ([], [])))
            for customer in customers
        ]
        logger.debug("analytics: totals for %s customers", len(metrics))
        return metrics, fetched

    # -- customers ----------------------------------------------------------

    async def customer_metrics(
        self,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AggregateResult[list[CustomerMetrics]]:
        """
        Order count and spend for every customer, in customer_id order.

        Customers without orders in the window are included with zeros.
        """
        metrics, fetched = await self._customer_totals(date_from, date_to, cancel)
        return self._result(metrics, fetched)

    async def top_customers(
        self,
        limit: int = 10,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AggregateResult[list[CustomerMetrics]]:
        """Customers with at least one order, by total spent, highest first."""
        metrics, fetched = await self._customer_totals(date_from, date_to, cancel)
        ranked = sorted(
            (m for m in metrics if m.order_count > 0),
            key=lambda m: (-m.total_spent, m.customer_id),
        )
        return self._result(ranked[:limit], fetched)

    async def customer_order_stats(
        self,
        customer_id: str,
        cancel: asyncio.Event | None = None,
    ) -> AggregateResult[CustomerOrderStats]:
        """Order count, spend and last order date for one customer."""
        orders = await self.orders.fetch_all({"customer_id": Equals(value=customer_id)})
        order_ids = [order.order_id for order in orders]

        async def lines_for(_customer_id: str) -> list[OrderLine]:
            return await self.lines.find_for_orders(order_ids)

        fetched = await self._fan_out((customer_id,), lines_for, "customer order lines", cancel)
        total = order_subtotal(fetched.results.get(customer_id, []))
        dates = [naive_utc(order.order_date) for order in orders if order.order_date is not None]
        stats = CustomerOrderStats(
            total_orders=len(orders),
            total_amount=total,
            average_order_value=average_order_value(total, len(orders)),
            last_order_date=max(dates) if dates else None,
        )
        return self._result(stats, fetched)

    async def customer_segmentation(
        self,
        cancel: asyncio.Event | None = None,
    ) -> AggregateResult[list[CustomerSegment]]:
        """
        Customers grouped by spend and order count.

        Segments are tested in order (VIP, Loyal, High-Value, Regular, New);
        segments with no members are omitted.
        """
        metrics, fetched = await self._customer_totals(None, None, cancel)
        return self._result(segment_customers(metrics), fetched)

    async def customer_lifetime_value(
        self,
        limit: int = 20,
        now: datetime | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AggregateResult[list[CustomerLifetimeValue]]:
        """
        Estimated three-year value per customer, highest first.

        estimate = max(round(total_spent / days_since_first_order * 365 * 3), total_spent)
        Customers without orders are left out.
        """
        now = naive_utc(now or datetime.now(timezone.utc))
        metrics, fetched = await self._customer_totals(None, None, cancel)

        rows = []
        for m in metrics:
            if m.order_count == 0:
                continue
            days = max((now - m.first_order_date).days, 0) if m.first_order_date else 0
            rate = m.total_spent / days if days > 0 else ZERO
            projected = (rate * LIFETIME_PROJECTION_DAYS).quantize(ONE, rounding=ROUND_HALF_UP)
            rows.append(
                CustomerLifetimeValue(
                    customer_id=m.customer_id,
                    company_name=m.company_name,
                    order_count=m.order_count,
                    total_spent=m.total_spent,
                    average_order_value=m.average_order_value,
                    days_since_first_order=days,
                    estimated_lifetime_value=max(projected, m.total_spent),
                )
            )
        rows.sort(key=lambda r: (-r.estimated_lifetime_value, r.customer_id))
        return self._result(rows[:limit], fetched)

    async def customer_retention(self, now: datetime | None = None) -> AggregateResult[CustomerRetention]:
        """
        Month-over-month retention.

        active     customers with an order this calendar month
        returning  active this month and also last month
        churned    active last month but not this month
        new        first order ever placed this month
        retention_rate = returning / active last month * 100
        """
        now = naive_utc(now or datetime.now(timezone.utc))
        this_month = datetime(now.year, now.month, 1)
        last_month = _previous_month_start(this_month)

        total_customers = await self.customers.count()
        orders = await self.orders.fetch_all()

        first_order: dict[str, datetime] = {}
        active_this: set[str] = set()
        active_last: set[str] = set()
        for order in orders:
            if not order.customer_id or order.order_date is None:
                continue
            placed = naive_utc(order.order_date)
            previous = first_order.get(order.customer_id)
            if previous is None or placed < previous:
                first_order[order.customer_id] = placed
            if placed >= this_month:
                active_this.add(order.customer_id)
            elif placed >= last_month:
                active_last.add(order.customer_id)

        returning = len(active_this & active_last)
        rate = ZERO
        if active_last:
            rate = (Decimal(returning) / len(active_last) * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)

        retention = CustomerRetention(
            total_customers=total_customers,
            active_customers=len(active_this),
            new_customers_this_month=sum(1 for placed in first_order.values() if placed >= this_month),
            returning_customers=returning,
            churned_customers=len(active_last - active_this),
            retention_rate=rate,
        )
        return self._result(retention)

    # -- sales --------------------------------------------------------------

    async def sales_trend(
        self,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        group_by: GroupBy = "month",
        cancel: asyncio.Event | None = None,
    ) -> AggregateResult[list[SalesTrendPoint]]:
        """
        Revenue, order count and distinct customers per time bucket.

        Each order lands in exactly one bucket by its own order_date. Weeks
        start on Sunday. Buckets are returned oldest first; empty buckets
        are not generated.
        """
        if group_by not in ("day", "week", "month"):
            raise ValueError(f"group_by must be 'day', 'week' or 'month', got {group_by!r}")

        orders = await self.orders.fetch_all(order_window(date_from, date_to), sort=(SortKey(field="order_date"),))
        revenues = await self._order_revenues(orders, cancel)

        buckets: dict[str, TrendBucket] = {}
        for order in orders:
            if order.order_date is None:
                continue
            key, label, start = bucket_for(naive_utc(order.order_date).date(), group_by)
            bucket = buckets.get(key)
            if bucket is None:
                bucket = buckets[key] = TrendBucket(label=label, start=start)
            bucket.sales += revenues.results.get(order.order_id, ZERO)
            bucket.orders += 1
            if order.customer_id:
                bucket.customers.add(order.customer_id)

        points = [
            SalesTrendPoint(
                period=key,
                label=bucket.label,
                start=bucket.start,
                sales=bucket.sales,
                orders=bucket.orders,
                customers=len(bucket.customers),
            )
            for key, bucket in sorted(buckets.items())
        ]
        return self._result(points, revenues)

    async def revenue_by_category(
        self,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AggregateResult[list[CategoryRevenue]]:
        """Revenue per category, highest first. Categories with no revenue are left out."""
        categories = await self.categories.fetch_all()
        window = order_window(date_from, date_to)

        async def category_sales(category_id: int) -> tuple[int, Accumulator]:
            products = await self.products.fetch_all({"category_id": Equals(value=category_id)})
            lines = await self.lines.find_for_products(product.product_id for product in products)
            if window and lines:
                order_ids = tuple(dict.fromkeys(line.order_id for line in lines))
                in_window = await self.orders.fetch_all({"order_id": AnyOf(values=order_ids), **window})
                kept = {order.order_id for order in in_window}
                lines = [line for line in lines if line.order_id in kept]
            accumulator = Accumulator()
            for line in lines:
                accumulator.add(line)
            return len(products), accumulator

        fetched = await self._fan_out(
            (category.category_id for category in categories), category_sales, "category sales", cancel
        )

        rows = []
        for category in categories:
            product_count, accumulator = fetched.results.get(category.category_id, (0, Accumulator()))
            if accumulator.revenue_sum <= 0:
                continue
            rows.append(
                CategoryRevenue(
                    category_id=category.category_id,
                    category_name=category.category_name,
                    revenue=accumulator.revenue_sum,
                    order_count=len(accumulator.order_ids),
                    product_count=product_count,
                )
            )
        rows.sort(key=lambda r: (-r.revenue, r.category_id))
        return self._result(rows, fetched)

    async def top_selling_products(
        self,
        limit: int = 10,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AggregateResult[list[ProductSales]]:
        """Products by revenue over orders in the window, highest first."""
        orders = await self.orders.fetch_all(order_window(date_from, date_to))
        fetched = await self._fan_out(
            (order.order_id for order in orders), self.lines.find_for_order, "order lines", cancel
        )

        accumulators: dict[int, Accumulator] = {}
        for lines in fetched.results.values():
            for line in lines:
                accumulators.setdefault(line.product_id, Accumulator()).add(line)

        ranked = sorted(accumulators.items(), key=lambda item: (-item[1].revenue_sum, item[0]))[:limit]
        names = await self._names(self.products, "product_id", "product_name", (pid for pid, _ in ranked))

        rows = [
            ProductSales(
                product_id=product_id,
                product_name=names.results.get(product_id),
                total_quantity=accumulator.quantity_sum,
                total_revenue=accumulator.revenue_sum,
                order_count=len(accumulator.order_ids),
            )
            for product_id, accumulator in ranked
        ]
        return self._result(rows, fetched, names)

    async def order_stats(
        self,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AggregateResult[OrderStats]:
        """Order counts and revenue for the window. average_order_value is per order."""
        orders = await self.orders.fetch_all(order_window(date_from, date_to))
        revenues = await self._order_revenues(orders, cancel)
        total = sum(revenues.results.values(), ZERO)
        shipped = sum(1 for order in orders if order.shipped)
        stats = OrderStats(
            total_orders=len(orders),
            total_revenue=total,
            average_order_value=average_order_value(total, len(orders)),
            pending_orders=len(orders) - shipped,
            shipped_orders=shipped,
        )
        return self._result(stats, revenues)

    async def business_metrics(
        self,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        cancel: asyncio.Event | None = None,
    ) -> AggregateResult[BusinessMetrics]:
        """
        Dashboard headline numbers.

        Customer and product counts ignore the window; order figures and
        revenue respect it. Low stock uses the inventory-alert rule.
        """
        total_customers = await self.customers.count()
        products = await self.products.fetch_all()
        orders_result = await self.order_stats(date_from, date_to, cancel)
        stats = orders_result.value

        default_level = settings.DEFAULT_REORDER_LEVEL
        low_stock = sum(
            1 for product in products if (product.units_in_stock or 0) < (product.reorder_level or default_level)
        )

        metrics = BusinessMetrics(
            total_customers=total_customers,
            total_orders=stats.total_orders,
            total_products=len(products),
            total_revenue=stats.total_revenue,
            average_order_value=stats.average_order_value,
            pending_orders=stats.pending_orders,
            shipped_orders=stats.shipped_orders,
            low_stock_products=low_stock,
        )
        return AggregateResult(value=metrics, warnings=orders_result.warnings, cancelled=orders_result.cancelled)

    # -- products -----------------------------------------------------------

    async def product_sales_stats(self, product_id: int) -> AggregateResult[ProductSalesStats]:
        """Units sold, revenue and line count for one product."""
        lines = await self.lines.find_for_product(product_id)
        return self._result(sales_stats(lines))

    async def product_performance(
        self,
        limit: int = 20,
        cancel: asyncio.Event | None = None,
    ) -> AggregateResult[list[ProductPerformance]]:
        """Products with sales, by revenue, highest first, with their mean discount."""
        products = await self.products.fetch_all()
        fetched = await self._fan_out(
            (product.product_id for product in products), self.lines.find_for_product, "product sales", cancel
        )

        rows = []
        for product in products:
            lines = fetched.results.get(product.product_id, [])
            stats = sales_stats(lines)
            if stats.total_revenue <= 0:
                continue
            rows.append((product, stats, average_discount_percent(lines)))
        rows.sort(key=lambda row: (-row[1].total_revenue, row[0].product_id))
        rows = rows[:limit]

        categories = await self._names(
            self.categories, "category_id", "category_name", (product.category_id for product, _, _ in rows)
        )
        performance = [
            ProductPerformance(
                product_id=product.product_id,
                product_name=product.product_name,
                category_name=categories.results.get(product.category_id, UNKNOWN),
                unit_price=to_decimal(product.unit_price),
                total_revenue=stats.total_revenue,
                total_quantity_sold=stats.total_quantity_sold,
                order_count=stats.times_ordered,
                average_discount=discount,
            )
            for product, stats, discount in rows
        ]
        return self._result(performance, fetched, categories)

    # -- inventory ----------------------------------------------------------

    async def _with_names(self, products) -> tuple[FanOutResult, FanOutResult]:
        categories = await self._names(
            self.categories, "category_id", "category_name", (product.category_id for product in products)
        )
        suppliers = await self._names(
            self.suppliers, "supplier_id", "company_name", (product.supplier_id for product in products)
        )
        return categories, suppliers

    async def inventory_alerts(self) -> AggregateResult[list[InventoryAlert]]:
        """
        Products below their reorder level, lowest stock first.

        A product with no reorder level uses DEFAULT_REORDER_LEVEL.
        """
        default_level = settings.DEFAULT_REORDER_LEVEL
        products = await self.products.fetch_all(sort=(SortKey(field="units_in_stock"),))
        low = [p for p in products if (p.units_in_stock or 0) < (p.reorder_level or default_level)]
        categories, suppliers = await self._with_names(low)

        alerts = [
            InventoryAlert(
                product_id=product.product_id,
                product_name=product.product_name,
                units_in_stock=product.units_in_stock or 0,
                reorder_level=product.reorder_level or default_level,
                category_name=categories.results.get(product.category_id, UNKNOWN),
                supplier_name=suppliers.results.get(product.supplier_id, UNKNOWN),
            )
            for product in low
        ]
        return self._result(alerts, categories, suppliers)

    async def reorder_alerts(self) -> AggregateResult[list[ReorderAlert]]:
        """
        Products whose stock plus units on order is at or below the reorder level.

        suggested_order_quantity = max(2 * reorder_level - units_in_stock, reorder_level)
        Sorted by units in stock, lowest first.
        """
        default_level = settings.DEFAULT_REORDER_LEVEL
        products = await self.products.fetch_all()
        due = [
            p
            for p in products
            if (p.units_in_stock or 0) + (p.units_on_order or 0) <= (p.reorder_level or default_level)
        ]
        due.sort(key=lambda p: (p.units_in_stock or 0, p.product_id))
        categories, suppliers = await self._with_names(due)

        alerts = []
        for product in due:
            stock = product.units_in_stock or 0
            level = product.reorder_level or default_level
            alerts.append(
                ReorderAlert(
                    product_id=product.product_id,
                    product_name=product.product_name,
                    units_in_stock=stock,
                    reorder_level=level,
                    category_name=categories.results.get(product.category_id, UNKNOWN),
                    supplier_name=suppliers.results.get(product.supplier_id, UNKNOWN),
                    units_on_order=product.units_on_order or 0,
                    unit_price=to_decimal(product.unit_price),
                    suggested_order_quantity=suggested_order_quantity(stock, level),
                )
            )
        return self._result(alerts, categories, suppliers)

    async def inventory_valuation(self) -> AggregateResult[InventoryValuation]:
        """
        Stock value and stock-level counts.

        out of stock  units_in_stock == 0
        low           below reorder level
        overstock     above three times the reorder level
        """
        default_level = settings.DEFAULT_REORDER_LEVEL
        products = await self.products.fetch_all()

        total_value = ZERO
        total_units = 0
        low = out = over = 0
        for product in products:
            stock = product.units_in_stock or 0
            level = product.reorder_level or default_level
            total_value += to_decimal(product.unit_price) * stock
            total_units += stock
            if stock == 0:
                out += 1
            elif stock < level:
                low += 1
            elif stock > level * 3:
                over += 1

        valuation = InventoryValuation(
            total_products=len(products),
            total_value=total_value,
            average_value=total_value / len(products) if products else ZERO,
            low_stock_count=low,
            out_of_stock_count=out,
            overstock_count=over,
            total_units=total_units,
        )
        return self._result(valuation)
