"""Order and order line models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class Order(BaseModel):
    """A row in the orders table."""

    model_config = {"frozen": True}

    order_id: int
    customer_id: str | None = None
    employee_id: int | None = None
    order_date: datetime | None = None
    required_date: datetime | None = None
    shipped_date: datetime | None = None
    ship_via: int | None = None
    freight: Decimal | None = None
    ship_name: str | None = None
    ship_address: str | None = None
    ship_city: str | None = None
    ship_region: str | None = None
    ship_postal_code: str | None = None
    ship_country: str | None = None

    @property
    def shipped(self) -> bool:
        return self.shipped_date is not None


class OrderCreate(BaseModel):
    model_config = {"extra": "forbid"}

    customer_id: str | None = None
    employee_id: int | None = None
    order_date: datetime | None = None
    required_date: datetime | None = None
    shipped_date: datetime | None = None
    ship_via: int | None = None
    freight: Decimal | None = Field(default=None, ge=0)
    ship_name: str | None = None
    ship_address: str | None = None
    ship_city: str | None = None
    ship_region: str | None = None
    ship_postal_code: str | None = None
    ship_country: str | None = None


class OrderUpdate(BaseModel):
    """Partial update. Unset fields are left alone; None clears a field."""

    model_config = {"extra": "forbid"}

    customer_id: str | None = None
    employee_id: int | None = None
    order_date: datetime | None = None
    required_date: datetime | None = None
    shipped_date: datetime | None = None
    ship_via: int | None = None
    freight: Decimal | None = Field(default=None, ge=0)
    ship_name: str | None = None
    ship_address: str | None = None
    ship_city: str | None = None
    ship_region: str | None = None
    ship_postal_code: str | None = None
    ship_country: str | None = None


class OrderLine(BaseModel):
    """
    A row in the order_details table.

    discount is a fraction in [0, 1), never a percentage.
    """

    model_config = {"frozen": True}

    order_id: int
    product_id: int
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1)
    discount: Decimal = Field(default=Decimal("0"), ge=0, lt=1)


class OrderLineUpdate(BaseModel):
    model_config = {"extra": "forbid"}

    unit_price: Decimal | None = Field(default=None, ge=0)
    quantity: int | None = Field(default=None, ge=1)
    discount: Decimal | None = Field(default=None, ge=0, lt=1)


class OrderLineDetail(OrderLine):
    """An order line with its product name and computed line total."""

    product_name: str | None = None
    line_total: Decimal


class OrderWithDetails(Order):
    """An order with related names and its materialized order_details list."""

    customer_name: str | None = None
    employee_name: str | None = None
    order_details: list[OrderLineDetail] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")
