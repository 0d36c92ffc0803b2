"""Repository for suppliers."""

from __future__ import annotations

from bizdata.backends.base import BackendAdapter
from bizdata.backends.entities import SUPPLIERS
from bizdata.models.supplier import Supplier
from bizdata.repos.base_repo import MutationHook, Repository


class SupplierRepo(Repository[Supplier]):
    """All supplier reads and writes."""

    def __init__(self, adapter: BackendAdapter, on_mutation: MutationHook | None = None):
        super().__init__(adapter, SUPPLIERS, Supplier, on_mutation)
