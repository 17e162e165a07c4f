"""
Cart operations (orders service)

Adds and quantity changes are checked against the catalog's current stock.
That check is advisory only; checkout reserves stock for real.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from storefront.core.exceptions import (
    CartItemNotFoundError,
    InsufficientStockError,
    InvalidRequestError,
    ProductNotFoundError,
)
from storefront.core.money import cents_to_decimal, line_subtotal_cents
from storefront.services.catalog_client import ProductCatalog, ProductSnapshot
from storefront.stores.carts import CartLine, CartStore

logger = logging.getLogger(__name__)


@dataclass
class CartView:
    line: CartLine
    current_price: Optional[Decimal]
    in_stock: bool
    available: bool

    @property
    def subtotal(self) -> Decimal:
        return cents_to_decimal(line_subtotal_cents(self.line.price_at_add, self.line.quantity))


@dataclass
class CartSummary:
    user_id: int
    items: List[CartView]

    @property
    def total_amount(self) -> Decimal:
        return cents_to_decimal(
            sum(line_subtotal_cents(v.line.price_at_add, v.line.quantity) for v in self.items)
        )

    @property
    def item_count(self) -> int:
        return sum(v.line.quantity for v in self.items)


def _check_quantity(quantity: int, minimum: int = 1) -> None:
    if not isinstance(quantity, int) or quantity < minimum:
        raise InvalidRequestError(
            f"Quantity must be an integer >= {minimum}", details={"quantity": quantity}
        )


def _require_stock(product: ProductSnapshot, wanted: int) -> None:
    if product.stock_quantity < wanted:
        raise InsufficientStockError(product.product_id, wanted, product.stock_quantity, product.name)


class CartService:
    def __init__(self, store: CartStore, catalog: ProductCatalog):
        self.store = store
        self.catalog = catalog

    async def get_cart(self, user_id: int) -> CartSummary:
        views = []
        for line in await self.store.get_cart(user_id):
            try:
                product = await self.catalog.get_product(line.product_id)
            except ProductNotFoundError:
                views.append(CartView(line, None, in_stock=False, available=False))
                continue
            views.append(CartView(
                line,
                current_price=product.price,
                in_stock=product.stock_quantity >= line.quantity,
                available=True,
            ))
        return CartSummary(user_id=user_id, items=views)

    async def add_item(self, user_id: int, product_id: int, quantity: int = 1) -> CartLine:
        _check_quantity(quantity)
        product = await self.catalog.get_product(product_id)
        existing = await self.store.get_line(user_id, product_id)
        _require_stock(product, quantity + (existing.quantity if existing else 0))
        line = await self.store.add_item(user_id, product_id, quantity, product.price, product.name)
        logger.info("Cart %s: +%d of product %s", user_id, quantity, product_id)
        return line

    async def update_item(self, user_id: int, product_id: int, quantity: int) -> Optional[CartLine]:
        """quantity == 0 removes the line and returns None."""
        _check_quantity(quantity, minimum=0)
        if quantity == 0:
            await self.store.remove_item(user_id, product_id)
            return None
        if await self.store.get_line(user_id, product_id) is None:
            raise CartItemNotFoundError("Item not found in cart", details={"product_id": product_id})
        product = await self.catalog.get_product(product_id)
        _require_stock(product, quantity)
        return await self.store.set_quantity(user_id, product_id, quantity)

    async def remove_item(self, user_id: int, product_id: int) -> None:
        await self.store.remove_item(user_id, product_id)

    async def clear(self, user_id: int) -> int:
        return await self.store.clear_cart(user_id)
