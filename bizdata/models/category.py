"""Category models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Category(BaseModel):
    """A row in the categories table."""

    model_config = {"frozen": True}

    category_id: int
    category_name: str
    description: str | None = None
    picture: str | None = None


class CategoryCreate(BaseModel):
    model_config = {"extra": "forbid"}

    category_name: str = Field(min_length=1, max_length=15)
    description: str | None = None
    picture: str | None = None


class CategoryUpdate(BaseModel):
    model_config = {"extra": "forbid"}

    category_name: str | None = Field(default=None, min_length=1, max_length=15)
    description: str | None = None
    picture: str | None = None
