"""
Pytest configuration and fixtures for bizdata tests.

Both backends are seeded with the same small Northwind-style dataset:

- embedded: an in-memory SQLite database built from SCHEMA
- gateway: FakeGateway, an in-memory PostgREST stand-in served through
  httpx.MockTransport

The `adapter` fixture is parametrized over both, so any test using it runs
once per backend.
"""

from __future__ import annotations

import json
import os
import re
from typing import Any

import httpx
import pytest
import pytest_asyncio

os.environ.setdefault("BIZDATA_BACKEND", "embedded")

from bizdata.backends.entities import (  # noqa: E402
    CATEGORIES,
    CUSTOMERS,
    EMPLOYEES,
    ORDER_LINES,
    ORDERS,
    PRODUCTS,
    SUPPLIERS,
    EntityDescriptor,
)
from bizdata.backends.gateway_adapter import GatewayAdapter  # noqa: E402
from bizdata.backends.sqlite_adapter import SqliteAdapter  # noqa: E402

GATEWAY_URL = "http://gateway.test/rest/v1"

SCHEMA = """
CREATE TABLE customers (
    customer_id TEXT PRIMARY KEY,
    company_name TEXT NOT NULL,
    contact_name TEXT,
    contact_title TEXT,
    address TEXT,
    city TEXT,
    region TEXT,
    postal_code TEXT,
    country TEXT,
    phone TEXT,
    fax TEXT
);

CREATE TABLE categories (
    category_id INTEGER PRIMARY KEY,
    category_name TEXT NOT NULL,
    description TEXT,
    picture BLOB
);

CREATE TABLE suppliers (
    supplier_id INTEGER PRIMARY KEY,
    company_name TEXT NOT NULL,
    contact_name TEXT,
    contact_title TEXT,
    address TEXT,
    city TEXT,
    region TEXT,
    postal_code TEXT,
    country TEXT,
    phone TEXT,
    fax TEXT,
    home_page TEXT
);

CREATE TABLE employees (
    employee_id INTEGER PRIMARY KEY,
    last_name TEXT NOT NULL,
    first_name TEXT NOT NULL,
    title TEXT,
    title_of_courtesy TEXT,
    birth_date TEXT,
    hire_date TEXT,
    address TEXT,
    city TEXT,
    region TEXT,
    postal_code TEXT,
    country TEXT,
    home_phone TEXT,
    extension TEXT,
    notes TEXT,
    reports_to INTEGER REFERENCES employees (employee_id),
    photo_path TEXT
);

CREATE TABLE products (
    product_id INTEGER PRIMARY KEY,
    product_name TEXT NOT NULL,
    supplier_id INTEGER REFERENCES suppliers (supplier_id),
    category_id INTEGER REFERENCES categories (category_id),
    quantity_per_unit TEXT,
    unit_price REAL,
    units_in_stock INTEGER,
    units_on_order INTEGER,
    reorder_level INTEGER,
    discontinued INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE orders (
    order_id INTEGER PRIMARY KEY,
    customer_id TEXT REFERENCES customers (customer_id),
    employee_id INTEGER REFERENCES employees (employee_id),
    order_date TEXT,
    required_date TEXT,
    shipped_date TEXT,
    ship_via INTEGER,
    freight REAL,
    ship_name TEXT,
    ship_address TEXT,
    ship_city TEXT,
    ship_region TEXT,
    ship_postal_code TEXT,
    ship_country TEXT
);

CREATE TABLE order_details (
    order_id INTEGER NOT NULL REFERENCES orders (order_id),
    product_id INTEGER NOT NULL REFERENCES products (product_id),
    unit_price REAL NOT NULL,
    quantity INTEGER NOT NULL,
    discount REAL NOT NULL DEFAULT 0,
    PRIMARY KEY (order_id, product_id)
);
"""

# ---------------------------------------------------------------------------
# Seed data (JSON-typed: floats for money, bools, ISO strings for dates)
# ---------------------------------------------------------------------------

SEED_CATEGORIES = [
    {"category_id": 1, "category_name": "Beverages", "description": "Soft drinks, coffees, teas, beers, and ales"},
    {"category_id": 2, "category_name": "Condiments", "description": "Sweet and savory sauces, relishes, spreads"},
    {"category_id": 3, "category_name": "Seafood", "description": "Seaweed and fish"},
    {"category_id": 4, "category_name": "Produce", "description": "Dried fruit and bean curd"},
]

SEED_SUPPLIERS = [
    {"supplier_id": 1, "company_name": "Exotic Liquids", "contact_name": "Charlotte Cooper", "city": "London", "country": "UK"},
    {
        "supplier_id": 2,
        "company_name": "New Orleans Cajun Delights",
        "contact_name": "Shelley Burke",
        "city": "New Orleans",
        "country": "USA",
    },
]

SEED_EMPLOYEES = [
    {
        "employee_id": 1,
        "last_name": "Davolio",
        "first_name": "Nancy",
        "title": "Sales Representative",
        "city": "Seattle",
        "hire_date": "1992-05-01T00:00:00",
    },
    {
        "employee_id": 2,
        "last_name": "Fuller",
        "first_name": "Andrew",
        "title": "Vice President, Sales",
        "city": "Tacoma",
        "hire_date": "1992-08-14T00:00:00",
    },
]

SEED_CUSTOMERS = [
    {"customer_id": "ALFKI", "company_name": "Alfreds Futterkiste", "contact_name": "Maria Anders", "city": "Berlin", "country": "Germany"},
    {
        "customer_id": "ANATR",
        "company_name": "Ana Trujillo Emparedados y helados",
        "contact_name": "Ana Trujillo",
        "city": "Mexico D.F.",
        "country": "Mexico",
    },
    {
        "customer_id": "ANTON",
        "company_name": "Antonio Moreno Taqueria",
        "contact_name": "Antonio Moreno",
        "city": "Mexico D.F.",
        "country": "Mexico",
    },
    {"customer_id": "BERGS", "company_name": "Berglunds snabbkop", "contact_name": "Christina Berglund", "city": "Lulea", "country": "Sweden"},
    {"customer_id": "BLAUS", "company_name": "Blauer See Delikatessen", "contact_name": "Hanna Moos", "city": "Mannheim", "country": "Germany"},
    {"customer_id": "BOLID", "company_name": "Bolido Comidas preparadas", "contact_name": "Martin Sommer", "city": None, "country": "Spain"},
]


def _product(pid, name, supplier, category, qpu, price, stock, on_order, level, discontinued=False):
    return {
        "product_id": pid,
        "product_name": name,
        "supplier_id": supplier,
        "category_id": category,
        "quantity_per_unit": qpu,
        "unit_price": price,
        "units_in_stock": stock,
        "units_on_order": on_order,
        "reorder_level": level,
        "discontinued": discontinued,
    }


SEED_PRODUCTS = [
    _product(1, "Chai", 1, 1, "10 boxes x 20 bags", 18.0, 39, 0, 10),
    _product(2, "Chang", 1, 1, "24 - 12 oz bottles", 19.0, 17, 40, 25),
    _product(3, "Aniseed Syrup", 1, 2, "12 - 550 ml bottles", 10.0, 13, 70, 25),
    _product(4, "Chef Anton's Cajun Seasoning", 2, 2, "48 - 6 oz jars", 22.0, 53, 0, 0),
    _product(5, "Chef Anton's Gumbo Mix", 2, 2, "36 boxes", 21.35, 0, 0, 0, discontinued=True),
    _product(6, "Grandma's Boysenberry Spread", 2, 2, "12 - 8 oz jars", 25.0, 120, 0, 25),
    _product(7, "Ikura", None, 3, "12 - 200 ml jars", 31.0, 5, 0, 5),
    _product(8, "Konbu", 2, 3, "2 kg box", 6.0, 24, 0, None),
    _product(9, "Fruit_Juice 100%", 1, 1, "12 cartons", 4.5, 60, 0, 15),
]


def _order(oid, customer, employee, ordered, shipped, freight, ship_name, ship_city, ship_country):
    return {
        "order_id": oid,
        "customer_id": customer,
        "employee_id": employee,
        "order_date": ordered,
        "shipped_date": shipped,
        "freight": freight,
        "ship_name": ship_name,
        "ship_city": ship_city,
        "ship_country": ship_country,
    }


SEED_ORDERS = [
    _order(10248, "ALFKI", 1, "1996-07-04T00:00:00", "1996-07-16T00:00:00", 32.38, "Alfreds Futterkiste", "Berlin", "Germany"),
    _order(10249, "ANATR", 2, "1996-07-05T00:00:00", "1996-07-10T00:00:00", 11.61, "Ana Trujillo", "Mexico D.F.", "Mexico"),
    _order(10250, "ALFKI", 1, "1996-07-08T00:00:00", None, 65.83, "Alfreds Futterkiste", "Berlin", "Germany"),
    _order(10251, "ANTON", 2, "1996-07-08T00:00:00", "1996-07-15T00:00:00", 41.34, "Antonio Moreno", "Mexico D.F.", "Mexico"),
    _order(10252, "BERGS", 1, "1996-08-01T00:00:00", None, 51.30, "Berglunds snabbkop", "Lulea", "Sweden"),
    _order(10253, "ANATR", None, "1996-08-14T00:00:00", "1996-08-20T00:00:00", 58.17, "Ana Trujillo", "Mexico D.F.", "Mexico"),
]


def _line(oid, pid, price, quantity, discount):
    return {"order_id": oid, "product_id": pid, "unit_price": price, "quantity": quantity, "discount": discount}


SEED_ORDER_LINES = [
    _line(10248, 1, 18.0, 2, 0.10),  # 32.40
    _line(10248, 2, 19.0, 1, 0.0),  # 19.00
    _line(10249, 3, 10.0, 5, 0.0),  # 50.00
    _line(10249, 6, 25.0, 2, 0.25),  # 37.50
    _line(10250, 1, 18.0, 10, 0.15),  # 153.00
    _line(10250, 4, 22.0, 3, 0.0),  # 66.00
    _line(10251, 2, 19.0, 4, 0.05),  # 72.20
    _line(10252, 7, 31.0, 2, 0.0),  # 62.00
    _line(10252, 9, 4.5, 3, 0.0),  # 13.50
    _line(10253, 6, 25.0, 1, 0.0),  # 25.00
    _line(10253, 8, 6.0, 10, 0.2),  # 48.00
]

# Insertion order respects foreign keys
SEED: list[tuple[EntityDescriptor, list[dict[str, Any]]]] = [
    (CATEGORIES, SEED_CATEGORIES),
    (SUPPLIERS, SEED_SUPPLIERS),
    (EMPLOYEES, SEED_EMPLOYEES),
    (CUSTOMERS, SEED_CUSTOMERS),
    (PRODUCTS, SEED_PRODUCTS),
    (ORDERS, SEED_ORDERS),
    (ORDER_LINES, SEED_ORDER_LINES),
]


# ---------------------------------------------------------------------------
# FakeGateway: a PostgREST stand-in
# ---------------------------------------------------------------------------


class UnknownColumn(Exception):
    pass


def split_top_level(text: str) -> list[str]:
    """Split on commas outside double quotes, removing quotes and resolving backslash escapes inside them."""
    parts: list[str] = []
    current: list[str] = []
    in_quotes = False
    chars = iter(text)
    for ch in chars:
        if in_quotes:
            if ch == "\\":
                current.append(next(chars, ""))
            elif ch == '"':
                in_quotes = False
            else:
                current.append(ch)
        elif ch == '"':
            in_quotes = True
        elif ch == ",":
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return parts


def ilike_regex(pattern: str) -> re.Pattern:
    out: list[str] = []
    chars = iter(pattern)
    for ch in chars:
        if ch == "\\":
            out.append(re.escape(next(chars, "")))
        elif ch in "*%":
            out.append(".*")
        else:
            out.append(re.escape(ch))
    return re.compile("".join(out), re.IGNORECASE | re.DOTALL)


def coerce(raw: str, sample: Any) -> Any:
    """Parse a query-string value as the type of the stored value it is compared with."""
    if isinstance(sample, bool):
        return raw == "true"
    if isinstance(sample, int):
        return int(raw) if re.fullmatch(r"-?\d+", raw) else float(raw)
    if isinstance(sample, float):
        return float(raw)
    return raw


class FakeGateway:
    """
    In-memory PostgREST. Supports the operators the gateway adapter emits:
    eq, ilike, in, gt/gte/lt/lte, is.null, not.is.null, or=(...), order,
    offset/limit, Prefer: count=exact, and POST/PATCH/DELETE with
    return=representation.

    Set `fail` to a callable(request) returning a Response (or raising an
    httpx exception) to inject failures; return None to pass through.
    """

    def __init__(self, seed=SEED):
        self.entities = {entity.table: entity for entity, _ in seed}
        self.tables: dict[str, list[dict[str, Any]]] = {
            entity.table: [dict(row) for row in rows] for entity, rows in seed
        }
        for entity, _ in seed:
            for row in self.tables[entity.table]:
                for column in entity.fields:
                    row.setdefault(column, None)
        self.requests: list[httpx.Request] = []
        self.fail = None

    # -- filtering ----------------------------------------------------------

    def _check(self, table: str, column: str) -> None:
        if column not in self.entities[table].fields:
            raise UnknownColumn(column)

    def _matches(self, table: str, row: dict, column: str, expr: str) -> bool:
        self._check(table, column)
        value = row.get(column)
        if expr == "is.null":
            return value is None
        if expr == "not.is.null":
            return value is not None
        op, _, raw = expr.partition(".")
        if value is None:
            return False
        if op == "eq":
            return value == coerce(raw, value)
        if op == "ilike":
            return ilike_regex(raw).fullmatch(str(value)) is not None
        if op == "in":
            inner = raw[1:-1]
            return bool(inner) and value in [coerce(item, value) for item in split_top_level(inner)]
        if op in ("gt", "gte", "lt", "lte"):
            bound = coerce(raw, value)
            return {
                "gt": value > bound,
                "gte": value >= bound,
                "lt": value < bound,
                "lte": value <= bound,
            }[op]
        raise UnknownColumn(f"operator {op}")

    def _or_group(self, table: str, row: dict, group: str) -> bool:
        for condition in split_top_level(group[1:-1]):
            column, _, expr = condition.partition(".")
            if self._matches(table, row, column, expr):
                return True
        return False

    def _select(self, table: str, params: list[tuple[str, str]]) -> tuple[list[dict], int, int | None]:
        rows = list(self.tables[table])
        offset, limit = 0, None
        order = ""
        for name, expr in params:
            if name == "offset":
                offset = int(expr)
            elif name == "limit":
                limit = int(expr)
            elif name == "order":
                order = expr
            elif name == "or":
                rows = [row for row in rows if self._or_group(table, row, expr)]
            else:
                rows = [row for row in rows if self._matches(table, row, name, expr)]

        for part in reversed([p for p in order.split(",") if p]):
            column, direction, nulls = part.split(".")
            self._check(table, column)
            if direction == "asc":
                rows.sort(key=lambda r, c=column: (0, r[c]) if r[c] is not None else (1, 0))
            else:
                rows.sort(key=lambda r, c=column: (1, r[c]) if r[c] is not None else (2, 0), reverse=True)
        return rows, offset, limit

    # -- transport ----------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail is not None:
            injected = self.fail(request)
            if injected is not None:
                return injected

        table = request.url.path.rsplit("/", 1)[-1]
        if table not in self.tables:
            return httpx.Response(404, json={"code": "42P01", "message": f'relation "{table}" does not exist'})

        try:
            rows, offset, limit = self._select(table, request.url.params.multi_items())
            if request.method in ("GET", "HEAD"):
                return self._read(request, rows, offset, limit)
            if request.method == "POST":
                return self._insert(table, json.loads(request.content))
            if request.method == "PATCH":
                return self._update(table, rows, json.loads(request.content))
            if request.method == "DELETE":
                return self._delete(table, rows)
        except UnknownColumn as e:
            return httpx.Response(400, json={"code": "42703", "message": f"column {e} does not exist"})
        return httpx.Response(405)

    def _read(self, request: httpx.Request, rows: list[dict], offset: int, limit: int | None) -> httpx.Response:
        total = len(rows)
        page = rows[offset : offset + limit if limit is not None else None]
        counted = "count=exact" in request.headers.get("prefer", "")
        span = f"{offset}-{offset + len(page) - 1}" if page else "*"
        headers = {"content-range": f"{span}/{total if counted else '*'}"}
        if request.method == "HEAD":
            return httpx.Response(200, headers=headers)
        return httpx.Response(200, json=page, headers=headers)

    def _insert(self, table: str, values: dict) -> httpx.Response:
        entity = self.entities[table]
        for column in values:
            self._check(table, column)
        row = {column: None for column in entity.fields}
        row.update(values)
        if isinstance(entity.primary_key, str) and row[entity.primary_key] is None:
            row[entity.primary_key] = max((r[entity.primary_key] for r in self.tables[table]), default=0) + 1
        key = tuple(row[c] for c in entity.key_fields)
        if any(tuple(r[c] for c in entity.key_fields) == key for r in self.tables[table]):
            return httpx.Response(409, json={"code": "23505", "message": "duplicate key value"})
        self.tables[table].append(row)
        return httpx.Response(201, json=[row])

    def _update(self, table: str, rows: list[dict], values: dict) -> httpx.Response:
        for column in values:
            self._check(table, column)
        for row in rows:
            row.update(values)
        return httpx.Response(200, json=rows)

    def _delete(self, table: str, rows: list[dict]) -> httpx.Response:
        doomed = {id(row) for row in rows}
        self.tables[table] = [row for row in self.tables[table] if id(row) not in doomed]
        return httpx.Response(200, json=rows)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


async def seeded_sqlite() -> SqliteAdapter:
    adapter = await SqliteAdapter.connect(":memory:", timeout=5)
    await adapter.executescript(SCHEMA)
    for entity, rows in SEED:
        for row in rows:
            await adapter.insert(entity, row)
    return adapter


def gateway_for(fake: FakeGateway, batch_size: int = 3) -> GatewayAdapter:
    return GatewayAdapter(
        GATEWAY_URL,
        api_key="test-key",
        timeout=5,
        batch_size=batch_size,
        transport=httpx.MockTransport(fake.handle),
    )


@pytest_asyncio.fixture(loop_scope="session")
async def sqlite_adapter():
    """Seeded in-memory SQLite adapter."""
    adapter = await seeded_sqlite()
    yield adapter
    await adapter.close()


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest_asyncio.fixture(loop_scope="session")
async def gateway_adapter(fake_gateway):
    """Gateway adapter over FakeGateway. Batch size 3 so residual fetches span several requests."""
    adapter = gateway_for(fake_gateway)
    yield adapter
    await adapter.close()


@pytest_asyncio.fixture(loop_scope="session", params=["embedded", "gateway"])
async def adapter(request):
    """Each seeded backend in turn."""
    if request.param == "embedded":
        backend = await seeded_sqlite()
    else:
        backend = gateway_for(FakeGateway())
    yield backend
    await backend.close()
