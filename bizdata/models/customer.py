"""Customer models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Customer(BaseModel):
    """A row in the customers table."""

    model_config = {"frozen": True}

    customer_id: str
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


class CustomerCreate(BaseModel):
    """Fields accepted when creating a customer. The id is caller-chosen."""

    model_config = {"extra": "forbid"}

    customer_id: str = Field(min_length=1, max_length=5)
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


class CustomerUpdate(BaseModel):
    """Partial update. Unset fields are left alone; None clears a field."""

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
