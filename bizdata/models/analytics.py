"""
Aggregate result models.

Money fields hold exact Decimals. They are rounded to cents only when
dumped for display (model_dump(mode="json")), never while summing.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Generic, TypeVar

from pydantic import BaseModel, PlainSerializer

from bizdata.errors import PartialAggregationFailure
from bizdata.services.financial import round_currency

T = TypeVar("T")


def _money_json(value: Decimal) -> float:
    return float(round_currency(value))


Money = Annotated[Decimal, PlainSerializer(_money_json, return_type=float, when_used="json")]


class AggregateResult(BaseModel, Generic[T]):
    """
    The value of one aggregate plus how complete it is.

    warnings counts dependent fetches that failed and were counted as zero.
    cancelled is set when a cancellation signal stopped the fan-out early.
    """

    model_config = {"frozen": True}

    value: T
    warnings: int = 0
    cancelled: bool = False

    @property
    def partial(self) -> bool:
        return self.warnings > 0 or self.cancelled

    def raise_for_partial(self) -> T:
        """
        Return value, or raise if any dependent was zero-substituted or skipped.

        Raises:
            PartialAggregationFailure: if the result is partial
        """
        if self.partial:
            raise PartialAggregationFailure(self.warnings, cancelled=self.cancelled)
        return self.value


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


class CustomerMetrics(BaseModel):
    """Order totals for one customer. Customers without orders carry zeros."""

    customer_id: str
    company_name: str
    order_count: int = 0
    total_spent: Money = Decimal("0")
    average_order_value: Money = Decimal("0")
    first_order_date: datetime | None = None
    last_order_date: datetime | None = None


class CustomerOrderStats(BaseModel):
    total_orders: int = 0
    total_amount: Money = Decimal("0")
    average_order_value: Money = Decimal("0")
    last_order_date: datetime | None = None


class CustomerSegment(BaseModel):
    """
    A customer segment.

    average_order_value is the mean of the members' own average order values.
    """

    segment: str
    description: str
    count: int
    total_spent: Money
    average_order_value: Money


class CustomerLifetimeValue(BaseModel):
    customer_id: str
    company_name: str
    order_count: int
    total_spent: Money
    average_order_value: Money
    days_since_first_order: int
    estimated_lifetime_value: Money


class CustomerRetention(BaseModel):
    total_customers: int
    active_customers: int
    new_customers_this_month: int
    returning_customers: int
    churned_customers: int
    retention_rate: Decimal  # percent, two decimals


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------


class SalesTrendPoint(BaseModel):
    """
    One time bucket.

    period is the sortable bucket key: YYYY-MM-DD for day and week buckets
    (a week is keyed by its Sunday), YYYY-MM for month buckets.
    """

    period: str
    label: str
    start: date
    sales: Money
    orders: int
    customers: int


class CategoryRevenue(BaseModel):
    category_id: int
    category_name: str
    revenue: Money
    order_count: int
    product_count: int


class ProductSales(BaseModel):
    product_id: int
    product_name: str | None = None
    total_quantity: int
    total_revenue: Money
    order_count: int


class ProductSalesStats(BaseModel):
    total_quantity_sold: int = 0
    total_revenue: Money = Decimal("0")
    average_order_quantity: Decimal = Decimal("0")
    times_ordered: int = 0


class ProductPerformance(BaseModel):
    product_id: int
    product_name: str
    category_name: str
    unit_price: Money
    total_revenue: Money
    total_quantity_sold: int
    order_count: int
    average_discount: Decimal  # percent, two decimals


class OrderStats(BaseModel):
    total_orders: int
    total_revenue: Money
    average_order_value: Money
    pending_orders: int
    shipped_orders: int


class BusinessMetrics(BaseModel):
    total_customers: int
    total_orders: int
    total_products: int
    total_revenue: Money
    average_order_value: Money
    pending_orders: int
    shipped_orders: int
    low_stock_products: int


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------


class InventoryAlert(BaseModel):
    product_id: int
    product_name: str
    units_in_stock: int
    reorder_level: int
    category_name: str
    supplier_name: str


class ReorderAlert(InventoryAlert):
    units_on_order: int
    unit_price: Money
    suggested_order_quantity: int


class InventoryValuation(BaseModel):
    total_products: int
    total_value: Money
    average_value: Money
    low_stock_count: int
    out_of_stock_count: int
    overstock_count: int
    total_units: int
