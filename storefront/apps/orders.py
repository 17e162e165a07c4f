"""
Orders service (default port 8083)

Carts, orders and the checkout orchestrator. Catalog, inventory and
identity live in the other two services and are reached over HTTP unless
replacements are injected.

    uvicorn storefront.apps.orders:create_app --factory --port 8083
"""
from typing import Optional

from fastapi import FastAPI

from storefront.api.routes import cart, orders
from storefront.apps.base import build_app, build_lifespan
from storefront.core.config import settings
from storefront.core.database import get_sessionmaker
from storefront.core.http_client import ServiceClient
from storefront.core.ids import IdGenerator
from storefront.models import ORDERS_TABLES
from storefront.services.cart_service import CartService
from storefront.services.catalog_client import HttpProductCatalog, ProductCatalog
from storefront.services.checkout_service import CheckoutOrchestrator
from storefront.services.identity_client import HttpIdentityClient, IdentityVerifier
from storefront.services.inventory_client import HttpInventoryClient
from storefront.services.reservation_service import StockReserver
from storefront.stores.carts import CartStore, InMemoryCartStore, SqlCartStore
from storefront.stores.orders import InMemoryOrderStore, OrderStore, SqlOrderStore


def _client(base_url: str, name: str, internal: bool = False) -> ServiceClient:
    return ServiceClient(
        base_url,
        timeout=settings.SERVICE_TIMEOUT_SECONDS,
        internal_token=settings.INTERNAL_API_TOKEN if internal else None,
        service_name=name,
    )


def create_app(
    cart_store: Optional[CartStore] = None,
    order_store: Optional[OrderStore] = None,
    catalog: Optional[ProductCatalog] = None,
    reserver: Optional[StockReserver] = None,
    identity: Optional[IdentityVerifier] = None,
    id_generator: Optional[IdGenerator] = None,
    timeout: Optional[float] = None,
) -> FastAPI:
    if cart_store is None:
        cart_store = SqlCartStore(get_sessionmaker()) if settings.uses_database else InMemoryCartStore()
    if order_store is None:
        order_store = SqlOrderStore(get_sessionmaker()) if settings.uses_database else InMemoryOrderStore()

    if catalog is None:
        catalog = HttpProductCatalog(_client(settings.PRODUCTS_SERVICE_URL, "products"))
    if reserver is None:
        reserver = HttpInventoryClient(_client(settings.PRODUCTS_SERVICE_URL, "products", internal=True))
    if identity is None:
        identity = HttpIdentityClient(_client(settings.USERS_SERVICE_URL, "users"))

    shutdown = [c.close for c in (catalog, reserver, identity) if hasattr(c, "close")]

    storage = "postgres" if isinstance(order_store, SqlOrderStore) else "memory"
    app = build_app(
        "orders",
        "Storefront Orders Service",
        [(cart.router, "/cart", "Cart"), (orders.router, "/orders", "Orders")],
        lifespan=build_lifespan(ORDERS_TABLES, shutdown=shutdown),
        storage_backend=storage,
    )

    app.state.cart_store = cart_store
    app.state.order_store = order_store
    app.state.cart_service = CartService(cart_store, catalog)
    app.state.checkout = CheckoutOrchestrator(
        cart_store,
        order_store,
        catalog,
        reserver,
        id_generator=id_generator,
        timeout=timeout,
    )
    app.state.identity = identity
    app.state.health_checks.extend([cart_store.ping, order_store.ping])
    return app
