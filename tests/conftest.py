"""
Pytest configuration and fixtures for storefront tests.
"""
import os
from decimal import Decimal
from typing import Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment before importing storefront modules
os.environ["ENVIRONMENT"] = "development"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests-only"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["INTERNAL_API_TOKEN"] = ""
os.environ["DATABASE_URL"] = ""

from storefront.services.identity_client import TokenClaims  # noqa: E402


class StaticIdentity:
    """IdentityVerifier double: a fixed token -> claims table."""

    def __init__(self, tokens: Optional[Dict[str, TokenClaims]] = None):
        self.tokens = dict(tokens or {})

    async def verify_token(self, token: str) -> Optional[TokenClaims]:
        return self.tokens.get(token)


class AsyncContext:
    """Minimal async context manager yielding a fixed value."""

    def __init__(self, value):
        self.value = value

    async def __aenter__(self):
        return self.value

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest.fixture
def customer() -> TokenClaims:
    return TokenClaims(user_id=1, email="buyer@example.com", role="customer")


@pytest.fixture
def other_customer() -> TokenClaims:
    return TokenClaims(user_id=2, email="other@example.com", role="customer")


@pytest.fixture
def admin() -> TokenClaims:
    return TokenClaims(user_id=99, email="admin@example.com", role="admin")


@pytest.fixture
def identity(customer, other_customer, admin) -> StaticIdentity:
    return StaticIdentity({
        "customer-token": customer,
        "other-token": other_customer,
        "admin-token": admin,
    })


@pytest.fixture
def product_store():
    """Two products: Widget (10.00, stock 5) and Gadget (2.50, stock 1)."""
    from storefront.stores.products import InMemoryProductStore

    store = InMemoryProductStore()
    category = store.add_category("Tools", "Hand tools")
    store.add_product("Widget", Decimal("10.00"), 5, category_id=category.id, tags=["tool"])
    store.add_product("Gadget", Decimal("2.50"), 1, category_id=category.id, tags=["gizmo"])
    return store


@pytest.fixture
def ledger(product_store):
    from storefront.services.stock_ledger import InMemoryStockLedger

    return InMemoryStockLedger(product_store)


@pytest.fixture
def coordinator(ledger):
    from storefront.services.reservation_service import ReservationCoordinator

    return ReservationCoordinator(ledger)


@pytest.fixture
def catalog(product_store):
    from storefront.services.catalog_client import LocalProductCatalog

    return LocalProductCatalog(product_store)


@pytest.fixture
def cart_store():
    from storefront.stores.carts import InMemoryCartStore

    return InMemoryCartStore()


@pytest.fixture
def order_store():
    from storefront.stores.orders import InMemoryOrderStore

    return InMemoryOrderStore()


@pytest.fixture
def mock_db() -> MagicMock:
    """Mock AsyncSession whose begin() works as an async context manager."""
    db = MagicMock()
    db.begin = MagicMock(return_value=AsyncContext(db))
    db.add = MagicMock()
    db.flush = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.execute = AsyncMock()
    return db


@pytest.fixture
def mock_sessionmaker(mock_db) -> MagicMock:
    return MagicMock(side_effect=lambda: AsyncContext(mock_db))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
