"""
Demo data for the in-memory stores and empty databases

Two accounts (admin@ecommerce.com / admin123, customer@example.com /
customer123), four categories and five products.
"""
import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from storefront.core.database import get_db_session
from storefront.core.security import get_password_hash
from storefront.models import Category, Product, User
from storefront.stores.products import InMemoryProductStore
from storefront.stores.users import InMemoryUserStore

logger = logging.getLogger(__name__)

DEMO_USERS = [
    {
        "email": "admin@ecommerce.com",
        "password": "admin123",
        "first_name": "Admin",
        "last_name": "User",
        "role": "admin",
    },
    {
        "email": "customer@example.com",
        "password": "customer123",
        "first_name": "John",
        "last_name": "Doe",
        "role": "customer",
    },
]

DEMO_CATEGORIES = [
    ("Electronics", "Electronic devices and gadgets"),
    ("Clothing", "Fashion and clothing items"),
    ("Books", "Books and publications"),
    ("Home & Garden", "Home improvement and garden items"),
]

DEMO_PRODUCTS = [
    {
        "name": "Laptop Dell XPS 13",
        "description": "High-performance ultrabook with Intel Core i7 processor",
        "price": Decimal("1299.99"),
        "category": "Electronics",
        "stock_quantity": 25,
        "sku": "DELL-XPS13-001",
        "tags": ["laptop", "dell", "ultrabook"],
        "is_featured": True,
    },
    {
        "name": "Wireless Mouse Logitech MX Master 3",
        "description": "Professional wireless mouse with advanced features",
        "price": Decimal("99.99"),
        "category": "Electronics",
        "stock_quantity": 50,
        "sku": "LOGI-MXM3-001",
        "tags": ["mouse", "logitech", "wireless"],
        "is_featured": False,
    },
    {
        "name": "T-Shirt Cotton Blue",
        "description": "Comfortable cotton t-shirt in blue color",
        "price": Decimal("24.99"),
        "category": "Clothing",
        "stock_quantity": 100,
        "sku": "TSHIRT-BLUE-M",
        "tags": ["t-shirt", "cotton", "blue"],
        "is_featured": False,
    },
    {
        "name": "JavaScript: The Definitive Guide",
        "description": "Comprehensive guide to JavaScript programming",
        "price": Decimal("49.99"),
        "category": "Books",
        "stock_quantity": 30,
        "sku": "BOOK-JS-GUIDE",
        "tags": ["javascript", "programming", "book"],
        "is_featured": True,
    },
    {
        "name": "Garden Hose 50ft",
        "description": "Durable 50-foot garden hose for outdoor use",
        "price": Decimal("35.99"),
        "category": "Home & Garden",
        "stock_quantity": 20,
        "sku": "HOSE-50FT",
        "tags": ["garden", "hose", "outdoor"],
        "is_featured": False,
    },
]


def _product_fields(entry: dict) -> dict:
    return {k: v for k, v in entry.items() if k != "category"}


def seed_memory_users(store: InMemoryUserStore) -> None:
    for entry in DEMO_USERS:
        fields = dict(entry)
        password = fields.pop("password")
        store.add_user(password_hash=get_password_hash(password), **fields)
    logger.info("Seeded %d demo users", len(DEMO_USERS))


def seed_memory_catalog(store: InMemoryProductStore) -> None:
    category_ids = {name: store.add_category(name, description).id for name, description in DEMO_CATEGORIES}
    for entry in DEMO_PRODUCTS:
        fields = _product_fields(entry)
        store.add_product(
            fields.pop("name"),
            fields.pop("price"),
            fields.pop("stock_quantity"),
            category_id=category_ids[entry["category"]],
            **fields,
        )
    logger.info("Seeded %d categories and %d products", len(DEMO_CATEGORIES), len(DEMO_PRODUCTS))


async def seed_sql_users(sessionmaker: async_sessionmaker) -> None:
    async with get_db_session(sessionmaker) as session:
        if (await session.execute(select(func.count(User.id)))).scalar_one():
            return
        for entry in DEMO_USERS:
            fields = dict(entry)
            password = fields.pop("password")
            session.add(User(password_hash=get_password_hash(password), is_active=True, **fields))
    logger.info("Seeded %d demo users", len(DEMO_USERS))


async def seed_sql_catalog(sessionmaker: async_sessionmaker) -> None:
    async with get_db_session(sessionmaker) as session:
        if (await session.execute(select(func.count(Product.id)))).scalar_one():
            return
        categories = {name: Category(name=name, description=description) for name, description in DEMO_CATEGORIES}
        session.add_all(categories.values())
        await session.flush()
        for entry in DEMO_PRODUCTS:
            session.add(Product(category_id=categories[entry["category"]].id, **_product_fields(entry)))
    logger.info("Seeded %d categories and %d products", len(DEMO_CATEGORIES), len(DEMO_PRODUCTS))
