"""Product models."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class Product(BaseModel):
    """A row in the products table."""

    model_config = {"frozen": True}

    product_id: int
    product_name: str
    supplier_id: int | None = None
    category_id: int | None = None
    quantity_per_unit: str | None = None
    unit_price: Decimal | None = None
    units_in_stock: int | None = None
    units_on_order: int | None = None
    reorder_level: int | None = None
    discontinued: bool = False


class ProductWithDetails(Product):
    """Product plus the names of its category and supplier, joined client-side."""

    category_name: str | None = None
    supplier_name: str | None = None


class ProductCreate(BaseModel):
    model_config = {"extra": "forbid"}

    product_name: str = Field(min_length=1, max_length=40)
    supplier_id: int | None = None
    category_id: int | None = None
    quantity_per_unit: str | None = None
    unit_price: Decimal | None = Field(default=None, ge=0)
    units_in_stock: int | None = Field(default=None, ge=0)
    units_on_order: int | None = Field(default=None, ge=0)
    reorder_level: int | None = Field(default=None, ge=0)
    discontinued: bool = False


class ProductUpdate(BaseModel):
    """Partial update. Unset fields are left alone; None clears a field."""

    model_config = {"extra": "forbid"}

    product_name: str | None = Field(default=None, min_length=1, max_length=40)
    supplier_id: int | None = None
    category_id: int | None = None
    quantity_per_unit: str | None = None
    unit_price: Decimal | None = Field(default=None, ge=0)
    units_in_stock: int | None = Field(default=None, ge=0)
    units_on_order: int | None = Field(default=None, ge=0)
    reorder_level: int | None = Field(default=None, ge=0)
    discontinued: bool | None = None
