"""
Product Catalog capability used by carts and checkout

get_product returns a snapshot of price, name and current stock for one
product. Snapshots are advisory; only the reservation coordinator decides
whether stock is really there.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from storefront.core.exceptions import ProductNotFoundError, ServiceUnavailableError
from storefront.core.http_client import ServiceClient
from storefront.core.money import quantize_price
from storefront.stores.products import ProductStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: int
    name: str
    price: Decimal
    stock_quantity: int
    is_active: bool = True


class ProductCatalog(Protocol):
    async def get_product(self, product_id: int) -> ProductSnapshot:
        """Raises ProductNotFoundError for unknown or inactive products."""


class LocalProductCatalog:
    """Catalog reading straight from a product store (same process)."""

    def __init__(self, store: ProductStore):
        self.store = store

    async def get_product(self, product_id: int) -> ProductSnapshot:
        product = await self.store.get_product(product_id)
        return ProductSnapshot(
            product_id=product.id,
            name=product.name,
            price=product.price,
            stock_quantity=product.stock_quantity,
            is_active=product.is_active,
        )


class HttpProductCatalog:
    """Catalog backed by GET /products/{id} on the products service."""

    def __init__(self, client: ServiceClient):
        self.client = client

    async def get_product(self, product_id: int) -> ProductSnapshot:
        response = await self.client.get(f"/products/{product_id}", params={"track_view": "false"})
        if response.status_code == 404:
            raise ProductNotFoundError(product_id)
        if response.status_code != 200:
            logger.error("Unexpected %d fetching product %s", response.status_code, product_id)
            raise ServiceUnavailableError(
                "products service returned an unexpected response",
                details={"status": response.status_code, "product_id": product_id},
            )
        body = response.json()
        return ProductSnapshot(
            product_id=int(body["id"]),
            name=body["name"],
            price=quantize_price(body["price"]),
            stock_quantity=int(body["stock_quantity"]),
            is_active=bool(body.get("is_active", True)),
        )

    async def close(self) -> None:
        await self.client.close()
