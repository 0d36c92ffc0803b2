"""
Repository layer for bizdata.

All backend access goes through here. Each repository takes its adapter as
a constructor argument; there are no shared instances.
"""

from bizdata.repos.base_repo import Repository
from bizdata.repos.category_repo import CategoryRepo
from bizdata.repos.customer_repo import CustomerRepo
from bizdata.repos.employee_repo import EmployeeRepo
from bizdata.repos.order_line_repo import OrderLineRepo
from bizdata.repos.order_repo import OrderRepo
from bizdata.repos.product_repo import ProductRepo
from bizdata.repos.supplier_repo import SupplierRepo

__all__ = [
    "Repository",
    "CustomerRepo",
    "ProductRepo",
    "OrderRepo",
    "OrderLineRepo",
    "CategoryRepo",
    "SupplierRepo",
    "EmployeeRepo",
]
