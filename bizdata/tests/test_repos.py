"""Repository tests. Every test runs once per backend via the `adapter` fixture."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from bizdata.config import settings
from bizdata.errors import InvalidQuery
from bizdata.models.customer import CustomerCreate, CustomerUpdate
from bizdata.models.order import OrderLineUpdate
from bizdata.models.product import ProductCreate, ProductUpdate
from bizdata.models.query import Equals, IsNull, Pagination, Pattern, QuerySpec, Range, Search, SortKey
from bizdata.repos import (
    CategoryRepo,
    CustomerRepo,
    EmployeeRepo,
    OrderLineRepo,
    OrderRepo,
    ProductRepo,
    SupplierRepo,
)

pytestmark = pytest.mark.asyncio(loop_scope="session")


def ids(page, field):
    return [getattr(row, field) for row in page.rows]


# ===========================================================================
# Generic CRUD
# ===========================================================================


async def test_create_find_update_delete(adapter):
    repo = CustomerRepo(adapter)
    created = await repo.create(CustomerCreate(customer_id="NEWCO", company_name="New Co", city="Oslo", country="Norway"))
    assert created.customer_id == "NEWCO"
    assert created.contact_name is None

    found = await repo.find_by_id("NEWCO")
    assert found == created

    updated = await repo.update("NEWCO", CustomerUpdate(contact_name="Kari Nordmann"))
    assert updated.contact_name == "Kari Nordmann"
    assert updated.city == "Oslo"

    assert await repo.delete("NEWCO") is True
    assert await repo.find_by_id("NEWCO") is None


async def test_explicit_none_clears_and_unset_is_kept(adapter):
    repo = CustomerRepo(adapter)
    updated = await repo.update("ALFKI", CustomerUpdate(city=None))
    assert updated.city is None
    assert updated.country == "Germany"
    assert updated.contact_name == "Maria Anders"


async def test_empty_update_issues_no_write(adapter, monkeypatch):
    repo = CustomerRepo(adapter)
    spy = AsyncMock()
    monkeypatch.setattr(adapter, "update", spy)

    current = await repo.update("ALFKI", CustomerUpdate())
    assert current.company_name == "Alfreds Futterkiste"
    assert await repo.update("ALFKI", {}) == current
    spy.assert_not_awaited()


async def test_missing_rows_are_not_errors(adapter):
    repo = CustomerRepo(adapter)
    assert await repo.find_by_id("NOPE") is None
    assert await repo.update("NOPE", CustomerUpdate(city="Rome")) is None
    assert await repo.delete("NOPE") is False
    assert await repo.exists("NOPE") is False
    assert await repo.exists("ALFKI") is True


async def test_create_assigns_integer_key(adapter):
    repo = ProductRepo(adapter)
    product = await repo.create(
        ProductCreate(product_name="Tofu", category_id=4, unit_price=Decimal("23.25"), units_in_stock=35, discontinued=False)
    )
    assert product.product_id == 10
    assert product.unit_price == Decimal("23.25")
    assert product.discontinued is False

    updated = await repo.update(product.product_id, ProductUpdate(discontinued=True, units_in_stock=0))
    assert updated.discontinued is True
    assert updated.units_in_stock == 0


async def test_duplicate_key_is_invalid_query(adapter):
    with pytest.raises(InvalidQuery):
        await CustomerRepo(adapter).create(CustomerCreate(customer_id="ALFKI", company_name="Again"))


async def test_unknown_sort_field_is_invalid_query(adapter):
    with pytest.raises(InvalidQuery):
        await CustomerRepo(adapter).find_all(QuerySpec(sort=(SortKey(field="credit_limit"),)))


async def test_mutation_hook_sync(adapter):
    touched = []
    repo = CustomerRepo(adapter, on_mutation=touched.append)

    await repo.create(CustomerCreate(customer_id="HOOK1", company_name="Hook"))
    await repo.update("HOOK1", CustomerUpdate(city="Bern"))
    await repo.update("HOOK1", CustomerUpdate())
    await repo.delete("HOOK1")
    await repo.delete("HOOK1")
    assert touched == ["customers", "customers", "customers"]


async def test_mutation_hook_async(adapter):
    touched = []

    async def invalidate(table: str) -> None:
        touched.append(table)

    repo = OrderLineRepo(adapter, on_mutation=invalidate)
    updated = await repo.update((10248, 2), OrderLineUpdate(quantity=3))
    assert updated.quantity == 3
    assert touched == ["order_details"]


async def test_count(adapter):
    repo = CustomerRepo(adapter)
    assert await repo.count() == 6
    assert await repo.count({"country": "Germany"}) == 2
    assert await repo.count({"country": ["Germany", "Spain"]}) == 3
    # None and "" mean no filter
    assert await repo.count({"city": None, "region": ""}) == 6


async def test_fetch_all_walks_pages(adapter, monkeypatch):
    monkeypatch.setattr(settings, "FETCH_ALL_PAGE_SIZE", 2)
    customers = await CustomerRepo(adapter).fetch_all()
    assert [c.customer_id for c in customers] == ["ALFKI", "ANATR", "ANTON", "BERGS", "BLAUS", "BOLID"]

    products = await ProductRepo(adapter).fetch_all(sort=(SortKey(field="unit_price", direction="DESC"),))
    assert [p.product_id for p in products][:3] == [7, 6, 4]


async def test_wire_spec_through_repo(adapter):
    spec = QuerySpec.from_wire(
        {
            "filters": {"company_name": "A%"},
            "sort": [{"field": "company_name", "direction": "DESC"}],
            "pagination": {"page": 1, "limit": 2},
        }
    )
    page = await CustomerRepo(adapter).find_all(spec)
    assert page.total == 3
    assert page.total_pages == 2
    assert ids(page, "customer_id") == ["ANTON", "ANATR"]


# ===========================================================================
# Customers, categories, suppliers, employees
# ===========================================================================


async def test_customer_search_defaults_to_its_fields(adapter):
    page = await CustomerRepo(adapter).search_customers(term="mexico")
    assert ids(page, "customer_id") == ["ANATR", "ANTON"]


async def test_customer_search_honours_given_fields(adapter):
    spec = QuerySpec(search=Search(fields=("contact_name",), term="ann"))
    page = await CustomerRepo(adapter).search_customers(spec)
    assert ids(page, "customer_id") == ["BLAUS"]


async def test_customers_by_country_and_city(adapter):
    repo = CustomerRepo(adapter)
    assert ids(await repo.find_by_country("Mexico"), "customer_id") == ["ANATR", "ANTON"]
    assert ids(await repo.find_by_city("Berlin"), "customer_id") == ["ALFKI"]


async def test_lookup_repos(adapter):
    assert (await CategoryRepo(adapter).find_by_id(3)).category_name == "Seafood"
    assert (await SupplierRepo(adapter).find_by_id(2)).company_name == "New Orleans Cajun Delights"
    employee = await EmployeeRepo(adapter).find_by_id(1)
    assert employee.full_name == "Nancy Davolio"
    assert ids(await EmployeeRepo(adapter).search(term="sales"), "employee_id") == [1, 2]


# ===========================================================================
# Products
# ===========================================================================


async def test_low_stock_products(adapter):
    page = await ProductRepo(adapter).search_products(low_stock=True)
    assert ids(page, "product_id") == [2, 3, 7]
    assert page.total == 3


async def test_low_stock_total_spans_pages(adapter):
    spec = QuerySpec(pagination=Pagination(page=2, limit=2))
    page = await ProductRepo(adapter).find_low_stock(spec)
    assert ids(page, "product_id") == [7]
    assert page.total == 3
    assert page.total_pages == 2


async def test_stock_state_filters(adapter):
    repo = ProductRepo(adapter)
    assert ids(await repo.search_products(in_stock=False), "product_id") == [5]
    assert (await repo.search_products(in_stock=True)).total == 8
    assert (await repo.search_products(in_stock=False, low_stock=True)).total == 0
    assert ids(await repo.find_in_stock(QuerySpec(filters={})), "product_id") == [1, 2, 3, 4, 6, 7, 8, 9]


async def test_product_search_with_stock_filter(adapter):
    page = await ProductRepo(adapter).search_products(term="chef", in_stock=True)
    assert ids(page, "product_id") == [4]


async def test_product_search_treats_underscore_literally(adapter):
    page = await ProductRepo(adapter).search_products(term="t_j")
    assert ids(page, "product_id") == [9]


async def test_stock_flags_keep_caller_filters(adapter):
    repo = ProductRepo(adapter)
    spec = QuerySpec(filters={"units_in_stock": Range(gte=10)})
    page = await repo.search_products(spec, low_stock=True)
    assert ids(page, "product_id") == [2, 3]
    assert page.total == 2
    assert all(product.units_in_stock >= 10 for product in page.rows)

    assert (await repo.find_low_stock(spec)).total == 2
    assert ids(await repo.find_in_stock(QuerySpec(filters={"units_in_stock": Range(lt=20)})), "product_id") == [2, 3, 7]
    assert (await repo.search_products(QuerySpec(filters={"units_in_stock": Equals(value=0)}), in_stock=True)).total == 0


async def test_products_by_relation(adapter):
    repo = ProductRepo(adapter)
    assert (await repo.find_by_category(2)).total == 4
    assert ids(await repo.find_by_supplier(2), "product_id") == [4, 5, 6, 8]
    assert ids(await repo.find_discontinued(), "product_id") == [5]


async def test_products_with_details(adapter):
    page = await ProductRepo(adapter).find_with_details(QuerySpec(pagination=Pagination(limit=9)))
    by_id = {product.product_id: product for product in page.rows}
    assert page.total == 9
    assert by_id[1].category_name == "Beverages"
    assert by_id[1].supplier_name == "Exotic Liquids"
    assert by_id[7].category_name == "Seafood"
    assert by_id[7].supplier_name is None


# ===========================================================================
# Orders
# ===========================================================================


async def test_orders_default_newest_first(adapter):
    page = await OrderRepo(adapter).find_all()
    assert ids(page, "order_id") == [10253, 10252, 10251, 10250, 10249, 10248]


async def test_orders_explicit_sort_wins(adapter):
    page = await OrderRepo(adapter).find_all(QuerySpec(sort=(SortKey(field="order_date"),)))
    assert ids(page, "order_id")[0] == 10248


async def test_search_orders(adapter):
    repo = OrderRepo(adapter)
    assert ids(await repo.search_orders(term="mexico"), "order_id") == [10253, 10251, 10249]
    assert ids(await repo.search_orders(shipped=False), "order_id") == [10252, 10250]
    assert (await repo.search_orders(shipped=True)).total == 4

    window = await repo.search_orders(date_from=datetime(1996, 7, 5), date_to=datetime(1996, 7, 8))
    assert ids(window, "order_id") == [10251, 10250, 10249]

    combined = await repo.search_orders(term="mexico", date_from=datetime(1996, 7, 6), shipped=True)
    assert ids(combined, "order_id") == [10253, 10251]


async def test_orders_by_relation(adapter):
    repo = OrderRepo(adapter)
    assert ids(await repo.find_by_customer("ALFKI"), "order_id") == [10250, 10248]
    assert ids(await repo.find_by_employee(2), "order_id") == [10251, 10249]
    assert ids(await repo.find_pending(), "order_id") == [10252, 10250]
    assert ids(await repo.find_by_date_range(datetime(1996, 8, 1), None), "order_id") == [10253, 10252]


async def test_order_flags_keep_caller_filters(adapter):
    repo = OrderRepo(adapter)
    spec = QuerySpec(filters={"order_date": Range(lt=datetime(1996, 7, 8))})
    assert ids(await repo.search_orders(spec, date_from=datetime(1996, 7, 5)), "order_id") == [10249]
    assert ids(await repo.find_by_date_range(datetime(1996, 7, 5), None, spec), "order_id") == [10249]

    pending = QuerySpec(filters={"shipped_date": IsNull()})
    assert (await repo.search_orders(pending, shipped=True)).total == 0
    assert ids(await repo.find_by_customer("ALFKI", pending), "order_id") == [10250]
    assert (await repo.find_by_customer("ALFKI", QuerySpec(filters={"customer_id": Equals(value="ANATR")}))).total == 0


async def test_order_flag_against_pattern_is_invalid_query(adapter):
    spec = QuerySpec(filters={"ship_city": Pattern(pattern="B%")})
    assert ids(await OrderRepo(adapter).find_pending(spec), "order_id") == [10250]
    with pytest.raises(InvalidQuery):
        await OrderRepo(adapter).search_orders(
            QuerySpec(filters={"order_date": Pattern(pattern="1996%")}), date_from=datetime(1996, 7, 5)
        )


async def test_order_with_details(adapter):
    order = await OrderRepo(adapter).find_with_details(10248)
    assert order.customer_name == "Alfreds Futterkiste"
    assert order.employee_name == "Nancy Davolio"
    assert [line.product_id for line in order.order_details] == [1, 2]
    assert [line.product_name for line in order.order_details] == ["Chai", "Chang"]
    assert [line.line_total for line in order.order_details] == [Decimal("32.40"), Decimal("19.00")]
    # freight is not part of total_amount
    assert order.total_amount == Decimal("51.40")


async def test_order_with_details_without_employee(adapter):
    order = await OrderRepo(adapter).find_with_details(10253)
    assert order.employee_name is None
    assert order.customer_name == "Ana Trujillo Emparedados y helados"
    assert order.total_amount == Decimal("73.00")


async def test_order_with_details_missing(adapter):
    assert await OrderRepo(adapter).find_with_details(99999) is None


async def test_order_lines(adapter):
    lines = OrderLineRepo(adapter)
    assert [line.product_id for line in await lines.find_for_order(10249)] == [3, 6]
    assert len(await lines.find_for_orders([10248, 10249, 10248])) == 4
    assert await lines.find_for_orders([]) == []
    assert [line.order_id for line in await lines.find_for_product(6)] == [10249, 10253]

    line = await lines.find_by_id((10249, 6))
    assert line.discount == Decimal("0.25")
