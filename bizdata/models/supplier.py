"""Supplier models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Supplier(BaseModel):
    """A row in the suppliers table."""

    model_config = {"frozen": True}

    supplier_id: int
    company_name: str
    contact_name: str | None = None
    contact_title: str | None = None
    address: str | None = None
    city: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None
    phone: str | None = None
    fax: str | None = None
    home_page: str | None = None


class SupplierCreate(BaseModel):
    model_config = {"extra": "forbid"}

    company_name: str = Field(min_length=1, max_length=40)
    contact_name: str | None = None
    contact_title: str | None = None
    address: str | None = None
    city: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None
    phone: str | None = None
    fax: str | None = None
    home_page: str | None = None


class SupplierUpdate(BaseModel):
    model_config = {"extra": "forbid"}

    company_name: str | None = Field(default=None, min_length=1, max_length=40)
    contact_name: str | None = None
    contact_title: str | None = None
    address: str | None = None
    city: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None
    phone: str | None = None
    fax: str | None = None
    home_page: str | None = None
