"""
Products service (default port 8080)

Owns the catalog, the stock ledger and the reservation coordinator.

    uvicorn storefront.apps.products:create_app --factory --port 8080
"""
from typing import Optional

from fastapi import FastAPI

from storefront.api.routes import categories, inventory, products, search
from storefront.apps.base import build_app, build_lifespan
from storefront.core.config import settings
from storefront.core.database import get_sessionmaker
from storefront.core.http_client import ServiceClient
from storefront.models import PRODUCTS_TABLES
from storefront.seed import seed_memory_catalog, seed_sql_catalog
from storefront.services.identity_client import HttpIdentityClient, IdentityVerifier
from storefront.services.reservation_service import ReservationCoordinator
from storefront.services.stock_ledger import InMemoryStockLedger, SqlStockLedger, StockLedger
from storefront.stores.products import InMemoryProductStore, ProductStore, SqlProductStore


def create_app(
    product_store: Optional[ProductStore] = None,
    ledger: Optional[StockLedger] = None,
    identity: Optional[IdentityVerifier] = None,
    internal_token: Optional[str] = None,
    seed: Optional[bool] = None,
) -> FastAPI:
    """
    product_store and ledger must share storage: pass both, or neither.
    identity defaults to the users service over HTTP.
    """
    seed = settings.SEED_DEMO_DATA if seed is None else seed
    startup, shutdown = [], []

    if product_store is None:
        if settings.uses_database:
            product_store = SqlProductStore(get_sessionmaker())
            ledger = ledger or SqlStockLedger(get_sessionmaker())
            if seed:
                startup.append(lambda: seed_sql_catalog(get_sessionmaker()))
        else:
            product_store = InMemoryProductStore()
            if seed:
                seed_memory_catalog(product_store)
    if ledger is None:
        if not isinstance(product_store, InMemoryProductStore):
            raise ValueError("A ledger must be supplied together with a custom product store")
        ledger = InMemoryStockLedger(product_store)

    if identity is None:
        identity = HttpIdentityClient(ServiceClient(
            settings.USERS_SERVICE_URL,
            timeout=settings.SERVICE_TIMEOUT_SECONDS,
            service_name="users",
        ))
    if hasattr(identity, "close"):
        shutdown.append(identity.close)

    storage = "postgres" if isinstance(product_store, SqlProductStore) else "memory"
    app = build_app(
        "products",
        "Storefront Products Service",
        [
            (products.router, "/products", "Products"),
            (inventory.router, "/products", "Inventory"),
            (categories.router, "/categories", "Categories"),
            (search.router, "", "Search"),
        ],
        lifespan=build_lifespan(PRODUCTS_TABLES, startup=startup, shutdown=shutdown),
        storage_backend=storage,
    )

    app.state.product_store = product_store
    app.state.ledger = ledger
    app.state.coordinator = ReservationCoordinator(ledger)
    app.state.identity = identity
    app.state.internal_token = settings.INTERNAL_API_TOKEN if internal_token is None else internal_token
    app.state.health_checks.append(product_store.ping)
    return app
