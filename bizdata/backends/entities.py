"""
Entity descriptors: what an adapter needs to know about a table.

These are immutable constants. Repositories receive one as a constructor
argument; nothing looks them up by name at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from bizdata.errors import InvalidQuery


@dataclass(frozen=True)
class EntityDescriptor:
    """
    Table name, primary key, allowed columns, and default search columns.

    primary_key is a column name, or a tuple of names for composite keys
    (order_details is keyed by order_id + product_id).
    """

    table: str
    primary_key: str | tuple[str, ...]
    fields: frozenset[str]
    search_fields: tuple[str, ...] = ()

    @property
    def key_fields(self) -> tuple[str, ...]:
        if isinstance(self.primary_key, str):
            return (self.primary_key,)
        return tuple(self.primary_key)

    def key_values(self, key: Any) -> dict[str, Any]:
        """
        Map a key (scalar, or tuple for composite keys) to {column: value}.

        Raises:
            InvalidQuery: if the key does not match the key columns
        """
        columns = self.key_fields
        if len(columns) == 1:
            if isinstance(key, (tuple, list)):
                raise InvalidQuery(f"{self.table}: expected a single key value, got {key!r}")
            return {columns[0]: key}
        if not isinstance(key, (tuple, list)) or len(key) != len(columns):
            raise InvalidQuery(f"{self.table}: key must be a tuple of {', '.join(columns)}")
        return dict(zip(columns, key, strict=True))

    def check_field(self, name: str) -> str:
        """Return name if it is a column of this entity, else raise InvalidQuery."""
        if name not in self.fields:
            raise InvalidQuery(f"{self.table}: unknown field {name!r}")
        return name


CUSTOMERS = EntityDescriptor(
    table="customers",
    primary_key="customer_id",
    fields=frozenset(
        {
            "customer_id",
            "company_name",
            "contact_name",
            "contact_title",
            "address",
            "city",
            "region",
            "postal_code",
            "country",
            "phone",
            "fax",
        }
    ),
    search_fields=("company_name", "contact_name", "city", "country"),
)

PRODUCTS = EntityDescriptor(
    table="products",
    primary_key="product_id",
    fields=frozenset(
        {
            "product_id",
            "product_name",
            "supplier_id",
            "category_id",
            "quantity_per_unit",
            "unit_price",
            "units_in_stock",
            "units_on_order",
            "reorder_level",
            "discontinued",
        }
    ),
    search_fields=("product_name", "quantity_per_unit"),
)

CATEGORIES = EntityDescriptor(
    table="categories",
    primary_key="category_id",
    fields=frozenset({"category_id", "category_name", "description", "picture"}),
    search_fields=("category_name", "description"),
)

SUPPLIERS = EntityDescriptor(
    table="suppliers",
    primary_key="supplier_id",
    fields=frozenset(
        {
            "supplier_id",
            "company_name",
            "contact_name",
            "contact_title",
            "address",
            "city",
            "region",
            "postal_code",
            "country",
            "phone",
            "fax",
            "home_page",
        }
    ),
    search_fields=("company_name", "contact_name", "city", "country"),
)

EMPLOYEES = EntityDescriptor(
    table="employees",
    primary_key="employee_id",
    fields=frozenset(
        {
            "employee_id",
            "last_name",
            "first_name",
            "title",
            "title_of_courtesy",
            "birth_date",
            "hire_date",
            "address",
            "city",
            "region",
            "postal_code",
            "country",
            "home_phone",
            "extension",
            "notes",
            "reports_to",
            "photo_path",
        }
    ),
    search_fields=("first_name", "last_name", "title", "city"),
)

ORDERS = EntityDescriptor(
    table="orders",
    primary_key="order_id",
    fields=frozenset(
        {
            "order_id",
            "customer_id",
            "employee_id",
            "order_date",
            "required_date",
            "shipped_date",
            "ship_via",
            "freight",
            "ship_name",
            "ship_address",
            "ship_city",
            "ship_region",
            "ship_postal_code",
            "ship_country",
        }
    ),
    search_fields=("ship_name", "ship_city", "ship_country", "customer_id"),
)

ORDER_LINES = EntityDescriptor(
    table="order_details",
    primary_key=("order_id", "product_id"),
    fields=frozenset({"order_id", "product_id", "unit_price", "quantity", "discount"}),
)
