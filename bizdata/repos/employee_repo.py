"""Repository for employees."""

from __future__ import annotations

from bizdata.backends.base import BackendAdapter
from bizdata.backends.entities import EMPLOYEES
from bizdata.models.employee import Employee
from bizdata.repos.base_repo import MutationHook, Repository


class EmployeeRepo(Repository[Employee]):
    """All employee reads and writes."""

    def __init__(self, adapter: BackendAdapter, on_mutation: MutationHook | None = None):
        super().__init__(adapter, EMPLOYEES, Employee, on_mutation)
