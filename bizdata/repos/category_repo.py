"""Repository for categories."""

from __future__ import annotations

from bizdata.backends.base import BackendAdapter
from bizdata.backends.entities import CATEGORIES
from bizdata.models.category import Category
from bizdata.repos.base_repo import MutationHook, Repository


class CategoryRepo(Repository[Category]):
    """All category reads and writes."""

    def __init__(self, adapter: BackendAdapter, on_mutation: MutationHook | None = None):
        super().__init__(adapter, CATEGORIES, Category, on_mutation)
