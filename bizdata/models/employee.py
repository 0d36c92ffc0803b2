"""Employee models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class Employee(BaseModel):
    """A row in the employees table."""

    model_config = {"frozen": True}

    employee_id: int
    last_name: str
    first_name: str
    title: str | None = None
    title_of_courtesy: str | None = None
    birth_date: datetime | None = None
    hire_date: datetime | None = None
    address: str | None = None
    city: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None
    home_phone: str | None = None
    extension: str | None = None
    notes: str | None = None
    reports_to: int | None = None
    photo_path: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class EmployeeCreate(BaseModel):
    model_config = {"extra": "forbid"}

    last_name: str = Field(min_length=1, max_length=20)
    first_name: str = Field(min_length=1, max_length=10)
    title: str | None = None
    title_of_courtesy: str | None = None
    birth_date: datetime | None = None
    hire_date: datetime | None = None
    address: str | None = None
    city: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None
    home_phone: str | None = None
    extension: str | None = None
    notes: str | None = None
    reports_to: int | None = None
    photo_path: str | None = None


class EmployeeUpdate(BaseModel):
    model_config = {"extra": "forbid"}

    last_name: str | None = Field(default=None, min_length=1, max_length=20)
    first_name: str | None = Field(default=None, min_length=1, max_length=10)
    title: str | None = None
    title_of_courtesy: str | None = None
    birth_date: datetime | None = None
    hire_date: datetime | None = None
    address: str | None = None
    city: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None
    home_phone: str | None = None
    extension: str | None = None
    notes: str | None = None
    reports_to: int | None = None
    photo_path: str | None = None
