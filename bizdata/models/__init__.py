"""
Pydantic models for bizdata.

All data shapes defined here. No imports from backends, repos, or services
except the financial calculator used to round money for display.
"""

from bizdata.models.analytics import AggregateResult
from bizdata.models.category import Category, CategoryCreate, CategoryUpdate
from bizdata.models.customer import Customer, CustomerCreate, CustomerUpdate
from bizdata.models.employee import Employee, EmployeeCreate, EmployeeUpdate
from bizdata.models.order import (
    Order,
    OrderCreate,
    OrderLine,
    OrderLineDetail,
    OrderLineUpdate,
    OrderUpdate,
    OrderWithDetails,
)
from bizdata.models.page import PageResult
from bizdata.models.product import Product, ProductCreate, ProductUpdate, ProductWithDetails
from bizdata.models.query import (
    AnyOf,
    ColumnCompare,
    Equals,
    IsNull,
    Pagination,
    Pattern,
    QuerySpec,
    Range,
    Search,
    SortKey,
)
from bizdata.models.supplier import Supplier, SupplierCreate, SupplierUpdate

__all__ = [
    # Query models
    "QuerySpec",
    "Equals",
    "Pattern",
    "AnyOf",
    "Range",
    "IsNull",
    "ColumnCompare",
    "Search",
    "SortKey",
    "Pagination",
    # Results
    "PageResult",
    "AggregateResult",
    # Customer models
    "Customer",
    "CustomerCreate",
    "CustomerUpdate",
    # Product models
    "Product",
    "ProductCreate",
    "ProductUpdate",
    "ProductWithDetails",
    # Order models
    "Order",
    "OrderCreate",
    "OrderUpdate",
    "OrderLine",
    "OrderLineUpdate",
    "OrderLineDetail",
    "OrderWithDetails",
    # Reference data
    "Category",
    "CategoryCreate",
    "CategoryUpdate",
    "Supplier",
    "SupplierCreate",
    "SupplierUpdate",
    "Employee",
    "EmployeeCreate",
    "EmployeeUpdate",
]
