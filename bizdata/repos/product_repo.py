"""Repository for products, including stock-state filters."""

from __future__ import annotations

from bizdata.backends.base import BackendAdapter
from bizdata.backends.entities import CATEGORIES, PRODUCTS, SUPPLIERS
from bizdata.models.category import Category
from bizdata.models.page import PageResult
from bizdata.models.product import Product, ProductWithDetails
from bizdata.models.query import AnyOf, ColumnCompare, Equals, FilterValue, QuerySpec, Range
from bizdata.models.supplier import Supplier
from bizdata.repos.base_repo import MutationHook, Repository

# units_in_stock <= reorder_level needs two columns of the same row, which the
# gateway evaluates in memory. Both backends return the same rows.
LOW_STOCK_PREDICATE = ColumnCompare(left="units_in_stock", op="le", right="reorder_level")


def stock_conditions(
    in_stock: bool | None = None,
    low_stock: bool | None = None,
) -> tuple[dict[str, FilterValue], tuple[ColumnCompare, ...]]:
    """
    Filters and predicates for the stock-state flags.

    in_stock=True   units_in_stock > 0
    in_stock=False  units_in_stock = 0
    low_stock=True  0 < units_in_stock <= reorder_level
    low_stock False or None adds nothing.
    """
    filters: dict[str, FilterValue] = {}
    predicates: tuple[ColumnCompare, ...] = ()

    if in_stock is True:
        filters["units_in_stock"] = Range(gt=0)
    elif in_stock is False:
        filters["units_in_stock"] = Equals(value=0)

    if low_stock:
        if in_stock is False:
            # out of stock and low stock cannot both hold
            filters["units_in_stock"] = AnyOf(values=())
        else:
            filters["units_in_stock"] = Range(gt=0)
            predicates = (LOW_STOCK_PREDICATE,)

    return filters, predicates


class ProductRepo(Repository[Product]):
    """All product reads and writes."""

    def __init__(self, adapter: BackendAdapter, on_mutation: MutationHook | None = None):
        super().__init__(adapter, PRODUCTS, Product, on_mutation)

    async def search_products(
        self,
        spec: QuerySpec | None = None,
        term: str | None = None,
        in_stock: bool | None = None,
        low_stock: bool | None = None,
    ) -> PageResult[Product]:
        """
        Search name and quantity-per-unit, optionally by stock state.

        Stock filters give the same rows and totals on both backends.
        """
        filters, predicates = stock_conditions(in_stock, low_stock)
        return await self.find_all(self.with_default_search(spec, term).merged(filters, predicates))

    async def find_by_category(self, category_id: int, spec: QuerySpec | None = None) -> PageResult[Product]:
        return await self.find_all((spec or QuerySpec()).merged({"category_id": Equals(value=category_id)}))

    async def find_by_supplier(self, supplier_id: int, spec: QuerySpec | None = None) -> PageResult[Product]:
        return await self.find_all((spec or QuerySpec()).merged({"supplier_id": Equals(value=supplier_id)}))

    async def find_low_stock(self, spec: QuerySpec | None = None) -> PageResult[Product]:
        filters, predicates = stock_conditions(low_stock=True)
        return await self.find_all((spec or QuerySpec()).merged(filters, predicates))

    async def find_in_stock(self, spec: QuerySpec | None = None) -> PageResult[Product]:
        filters, predicates = stock_conditions(in_stock=True)
        return await self.find_all((spec or QuerySpec()).merged(filters, predicates))

    async def find_discontinued(self, spec: QuerySpec | None = None) -> PageResult[Product]:
        return await self.find_all((spec or QuerySpec()).merged({"discontinued": Equals(value=True)}))

    async def find_with_details(self, spec: QuerySpec | None = None) -> PageResult[ProductWithDetails]:
        """
        A page of products with category and supplier names.

        The names are joined client-side with one batched lookup per table.
        """
        page = await self.find_all(spec)

        category_ids = tuple({p.category_id for p in page.rows if p.category_id is not None})
        supplier_ids = tuple({p.supplier_id for p in page.rows if p.supplier_id is not None})

        category_names: dict[int, str] = {}
        if category_ids:
            categories = Repository(self.adapter, CATEGORIES, Category)
            for category in await categories.fetch_all({"category_id": AnyOf(values=category_ids)}):
                category_names[category.category_id] = category.category_name

        supplier_names: dict[int, str] = {}
        if supplier_ids:
            suppliers = Repository(self.adapter, SUPPLIERS, Supplier)
            for supplier in await suppliers.fetch_all({"supplier_id": AnyOf(values=supplier_ids)}):
                supplier_names[supplier.supplier_id] = supplier.company_name

        return page.map(
            lambda product: ProductWithDetails(
                **product.model_dump(),
                category_name=category_names.get(product.category_id),
                supplier_name=supplier_names.get(product.supplier_id),
            )
        )
