"""
Product catalog stores

Read side of the products service: listing, filtering, categories and
search. Stock is read here but only ever written by the stock ledger
(storefront.services.stock_ledger), which shares the same records.
"""
import asyncio
import dataclasses
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from storefront.core.database import ping as db_ping
from storefront.core.exceptions import CategoryNotFoundError, ProductNotFoundError
from storefront.core.ids import SequenceIdGenerator
from storefront.core.money import quantize_price
from storefront.core.utils import utcnow
from storefront.models import Category, Product

logger = logging.getLogger(__name__)

SORT_FIELDS = ("created_at", "price", "name", "sale_count", "view_count")


@dataclass
class CategoryRecord:
    id: int
    name: str
    description: Optional[str] = None
    product_count: int = 0
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ProductRecord:
    id: int
    name: str
    price: Decimal
    stock_quantity: int
    description: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    sku: Optional[str] = None
    image_url: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    low_stock_threshold: int = 5
    is_active: bool = True
    is_featured: bool = False
    view_count: int = 0
    sale_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @property
    def in_stock(self) -> bool:
        return self.stock_quantity > 0

    @property
    def low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold


@dataclass
class ProductQuery:
    category_id: Optional[int] = None
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    search: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    is_featured: Optional[bool] = None
    sort_by: str = "created_at"
    sort_order: str = "desc"
    offset: int = 0
    limit: int = 20

    def normalized(self) -> "ProductQuery":
        """Unknown sort values fall back to created_at desc."""
        sort_by = self.sort_by if self.sort_by in SORT_FIELDS else "created_at"
        sort_order = self.sort_order.lower() if self.sort_order else "desc"
        if sort_order not in ("asc", "desc"):
            sort_order = "desc"
        return dataclasses.replace(self, sort_by=sort_by, sort_order=sort_order)


def search_rank(product: ProductRecord, term: str) -> int:
    """0 means no match."""
    term = term.lower()
    name = product.name.lower()
    if name.startswith(term):
        return 3
    if term in name:
        return 2
    if term in (product.description or "").lower() or term in [t.lower() for t in product.tags]:
        return 1
    return 0


class ProductStore(ABC):
    @abstractmethod
    async def list_products(self, query: ProductQuery) -> Tuple[List[ProductRecord], int]:
        ...

    @abstractmethod
    async def get_product(self, product_id: int, include_inactive: bool = False) -> ProductRecord:
        """Raises ProductNotFoundError."""

    @abstractmethod
    async def record_view(self, product_id: int) -> None:
        ...

    @abstractmethod
    async def list_categories(self) -> List[CategoryRecord]:
        ...

    @abstractmethod
    async def get_category(self, category_id: int) -> CategoryRecord:
        ...

    @abstractmethod
    async def search(self, term: str, limit: int = 20) -> List[ProductRecord]:
        ...

    @abstractmethod
    async def ping(self) -> None:
        ...


class InMemoryProductStore(ProductStore):
    """
    Catalog kept in process memory.

    Records handed out are copies; the live records are only mutated by
    this store (view counts) and by InMemoryStockLedger under its product
    lock.
    """

    def __init__(self, id_generator: Optional[SequenceIdGenerator] = None):
        self._products: Dict[int, ProductRecord] = {}
        self._categories: Dict[int, CategoryRecord] = {}
        self._ids = id_generator or SequenceIdGenerator()
        self._category_ids = SequenceIdGenerator()
        self._lock = asyncio.Lock()

    # -- loading -------------------------------------------------------

    def add_category(self, name: str, description: Optional[str] = None) -> CategoryRecord:
        category = CategoryRecord(id=self._category_ids.next_int(), name=name, description=description)
        self._categories[category.id] = category
        return category

    def add_product(self, name: str, price, stock_quantity: int, **fields) -> ProductRecord:
        """Synchronous insert used for seeding and tests."""
        if stock_quantity < 0:
            raise ValueError("stock_quantity must be >= 0")
        product = ProductRecord(
            id=self._ids.next_int(),
            name=name,
            price=quantize_price(price),
            stock_quantity=stock_quantity,
            **fields,
        )
        self._products[product.id] = product
        return product

    def live_record(self, product_id: int) -> Optional[ProductRecord]:
        """The mutable record itself. Only the stock ledger should use this."""
        return self._products.get(product_id)

    # -- reads ---------------------------------------------------------

    def _copy(self, product: ProductRecord) -> ProductRecord:
        category = self._categories.get(product.category_id) if product.category_id else None
        return dataclasses.replace(
            product,
            tags=list(product.tags),
            category_name=category.name if category else None,
        )

    def _matches(self, product: ProductRecord, query: ProductQuery) -> bool:
        if not product.is_active:
            return False
        if query.category_id is not None and product.category_id != query.category_id:
            return False
        if query.min_price is not None and product.price < query.min_price:
            return False
        if query.max_price is not None and product.price > query.max_price:
            return False
        if query.is_featured is not None and product.is_featured != query.is_featured:
            return False
        if query.search:
            term = query.search.lower()
            if term not in product.name.lower() and term not in (product.description or "").lower():
                return False
        if query.tags and not set(query.tags) & set(product.tags):
            return False
        return True

    async def list_products(self, query: ProductQuery) -> Tuple[List[ProductRecord], int]:
        query = query.normalized()
        async with self._lock:
            matched = [p for p in self._products.values() if self._matches(p, query)]
            matched.sort(
                key=lambda p: (getattr(p, query.sort_by), p.id),
                reverse=query.sort_order == "desc",
            )
            page = matched[query.offset:query.offset + query.limit]
            return [self._copy(p) for p in page], len(matched)

    async def get_product(self, product_id: int, include_inactive: bool = False) -> ProductRecord:
        async with self._lock:
            product = self._products.get(product_id)
            if product is None or (not product.is_active and not include_inactive):
                raise ProductNotFoundError(product_id)
            return self._copy(product)

    async def record_view(self, product_id: int) -> None:
        async with self._lock:
            product = self._products.get(product_id)
            if product is not None:
                product.view_count += 1

    async def list_categories(self) -> List[CategoryRecord]:
        async with self._lock:
            result = []
            for category in sorted(self._categories.values(), key=lambda c: c.name):
                count = sum(
                    1 for p in self._products.values()
                    if p.category_id == category.id and p.is_active
                )
                result.append(dataclasses.replace(category, product_count=count))
            return result

    async def get_category(self, category_id: int) -> CategoryRecord:
        for category in await self.list_categories():
            if category.id == category_id:
                return category
        raise CategoryNotFoundError(f"Category {category_id} not found", details={"category_id": category_id})

    async def search(self, term: str, limit: int = 20) -> List[ProductRecord]:
        async with self._lock:
            ranked = []
            for product in self._products.values():
                if not product.is_active:
                    continue
                rank = search_rank(product, term)
                if rank:
                    ranked.append((rank, product))
            ranked.sort(key=lambda item: (item[0], item[1].sale_count), reverse=True)
            return [self._copy(p) for _, p in ranked[:limit]]

    async def ping(self) -> None:
        return None


def _to_record(product: Product, category_name: Optional[str] = None) -> ProductRecord:
    return ProductRecord(
        id=product.id,
        name=product.name,
        description=product.description,
        price=quantize_price(product.price),
        category_id=product.category_id,
        category_name=category_name,
        sku=product.sku,
        image_url=product.image_url,
        tags=list(product.tags or []),
        stock_quantity=product.stock_quantity,
        low_stock_threshold=product.low_stock_threshold,
        is_active=product.is_active,
        is_featured=product.is_featured,
        view_count=product.view_count,
        sale_count=product.sale_count,
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


class SqlProductStore(ProductStore):
    """PostgreSQL catalog via SQLAlchemy async sessions."""

    def __init__(self, sessionmaker: async_sessionmaker):
        self._sessionmaker = sessionmaker

    def _base_select(self):
        return (
            select(Product, Category.name)
            .outerjoin(Category, Product.category_id == Category.id)
        )

    async def list_products(self, query: ProductQuery) -> Tuple[List[ProductRecord], int]:
        query = query.normalized()
        conditions = [Product.is_active.is_(True)]
        if query.category_id is not None:
            conditions.append(Product.category_id == query.category_id)
        if query.min_price is not None:
            conditions.append(Product.price >= query.min_price)
        if query.max_price is not None:
            conditions.append(Product.price <= query.max_price)
        if query.is_featured is not None:
            conditions.append(Product.is_featured.is_(query.is_featured))
        if query.search:
            pattern = f"%{query.search}%"
            conditions.append(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
        if query.tags:
            conditions.append(Product.tags.overlap(query.tags))

        sort_column = getattr(Product, query.sort_by)
        order = sort_column.asc() if query.sort_order == "asc" else sort_column.desc()

        async with self._sessionmaker() as session:
            total = (await session.execute(
                select(func.count(Product.id)).where(*conditions)
            )).scalar_one()
            rows = (await session.execute(
                self._base_select()
                .where(*conditions)
                .order_by(order, Product.id)
                .offset(query.offset)
                .limit(query.limit)
            )).all()
        return [_to_record(product, category_name) for product, category_name in rows], total

    async def get_product(self, product_id: int, include_inactive: bool = False) -> ProductRecord:
        stmt = self._base_select().where(Product.id == product_id)
        if not include_inactive:
            stmt = stmt.where(Product.is_active.is_(True))
        async with self._sessionmaker() as session:
            row = (await session.execute(stmt)).first()
        if row is None:
            raise ProductNotFoundError(product_id)
        return _to_record(row[0], row[1])

    async def record_view(self, product_id: int) -> None:
        async with self._sessionmaker() as session:
            await session.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(view_count=Product.view_count + 1)
            )
            await session.commit()

    async def list_categories(self) -> List[CategoryRecord]:
        stmt = (
            select(Category, func.count(Product.id))
            .outerjoin(Product, (Product.category_id == Category.id) & Product.is_active.is_(True))
            .group_by(Category.id)
            .order_by(Category.name)
        )
        async with self._sessionmaker() as session:
            rows = (await session.execute(stmt)).all()
        return [
            CategoryRecord(
                id=category.id,
                name=category.name,
                description=category.description,
                product_count=count,
                created_at=category.created_at,
            )
            for category, count in rows
        ]

    async def get_category(self, category_id: int) -> CategoryRecord:
        for category in await self.list_categories():
            if category.id == category_id:
                return category
        raise CategoryNotFoundError(f"Category {category_id} not found", details={"category_id": category_id})

    async def search(self, term: str, limit: int = 20) -> List[ProductRecord]:
        lowered = term.lower()
        name = func.lower(Product.name)
        rank = case(
            (name.startswith(lowered), 3),
            (name.contains(lowered), 2),
            else_=1,
        )
        pattern = f"%{term}%"
        stmt = (
            self._base_select()
            .where(
                Product.is_active.is_(True),
                or_(
                    Product.name.ilike(pattern),
                    Product.description.ilike(pattern),
                    Product.tags.overlap([term]),
                ),
            )
            .order_by(rank.desc(), Product.sale_count.desc())
            .limit(limit)
        )
        async with self._sessionmaker() as session:
            rows = (await session.execute(stmt)).all()
        return [_to_record(product, category_name) for product, category_name in rows]

    async def ping(self) -> None:
        await db_ping(self._sessionmaker)
