"""
Checkout Orchestrator

Turns a user's cart into an order:

    validate -> price/stock pre-check -> reserve each line -> persist order -> clear cart

Reservations are made in cart order. If any reservation fails, or the order
cannot be persisted, every line reserved in this attempt is released again
and the original error is raised. An aborted checkout leaves no order, the
cart untouched and stock exactly as before.

Every collaborator call is bounded by a timeout. A reserve call that times
out or loses its connection has an unknown outcome, so its line is released
too. Release only ever credits what was actually reserved for the order,
and it voids the order on that product so a reserve still in flight is
refused when it lands.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Dict, List, Optional, Tuple

from storefront.core.config import settings
from storefront.core.exceptions import (
    CollaboratorTimeoutError,
    InsufficientStockError,
    InternalError,
    InvalidRequestError,
    PermissionDeniedError,
    ProductNotFoundError,
    ServiceUnavailableError,
    StorefrontError,
)
from storefront.core.ids import IdGenerator, OrderNumberGenerator
from storefront.core.money import cents_to_decimal, line_subtotal_cents
from storefront.core.utils import utcnow
from storefront.services.catalog_client import ProductCatalog
from storefront.services.identity_client import TokenClaims
from storefront.services.reservation_service import StockReserver
from storefront.stores.carts import CartLine, CartStore
from storefront.stores.orders import OrderLine, OrderRecord, OrderStore

logger = logging.getLogger(__name__)

REQUIRED_ADDRESS_FIELDS = ("street", "city")
ADDRESS_FIELDS = ("street", "city", "state", "zip_code", "country")


@dataclass
class CheckoutResult:
    order_id: str
    items: List[OrderLine]
    total_amount: Decimal
    status: str
    order: OrderRecord


def normalize_address(shipping_address: Optional[Dict[str, Any]]) -> Dict[str, str]:
    if not isinstance(shipping_address, dict):
        raise InvalidRequestError("Shipping address is required", details={"field": "shipping_address"})
    address = {}
    for key in ADDRESS_FIELDS:
        value = shipping_address.get(key)
        if value is not None:
            address[key] = str(value).strip()
    missing = [key for key in REQUIRED_ADDRESS_FIELDS if not address.get(key)]
    if missing:
        raise InvalidRequestError(
            "Shipping address must include street and city",
            details={"missing": missing},
        )
    return address


class CheckoutOrchestrator:
    def __init__(
        self,
        cart_store: CartStore,
        order_store: OrderStore,
        catalog: ProductCatalog,
        reserver: StockReserver,
        id_generator: Optional[IdGenerator] = None,
        timeout: Optional[float] = None,
    ):
        self.carts = cart_store
        self.orders = order_store
        self.catalog = catalog
        self.reserver = reserver
        self.ids = id_generator or OrderNumberGenerator()
        self.timeout = timeout if timeout is not None else settings.SERVICE_TIMEOUT_SECONDS

    async def _call(self, operation: str, awaitable: Awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.warning("Timed out after %.2fs: %s", self.timeout, operation)
            raise CollaboratorTimeoutError(operation, self.timeout) from e

    # -- steps -------------------------------------------------------------

    async def _price_lines(self, cart: List[CartLine]) -> List[OrderLine]:
        """Pre-check: every product exists and currently has enough stock."""
        lines = []
        for item in cart:
            product = await self._call(
                f"catalog.get_product({item.product_id})",
                self.catalog.get_product(item.product_id),
            )
            if not product.is_active:
                raise ProductNotFoundError(item.product_id)
            if product.stock_quantity < item.quantity:
                raise InsufficientStockError(
                    item.product_id, item.quantity, product.stock_quantity, product.name,
                )
            subtotal = line_subtotal_cents(product.price, item.quantity)
            lines.append(OrderLine(
                product_id=item.product_id,
                product_name=product.name,
                price=product.price,
                quantity=item.quantity,
                subtotal=cents_to_decimal(subtotal),
            ))
        return lines

    async def _reserve_all(self, order_id: str, lines: List[OrderLine]) -> List[Tuple[int, int]]:
        reserved: List[Tuple[int, int]] = []
        for line in lines:
            claim = (line.product_id, line.quantity)
            try:
                await self._call(
                    f"inventory.reserve({line.product_id})",
                    self.reserver.reserve(line.product_id, line.quantity, order_id),
                )
            except (CollaboratorTimeoutError, ServiceUnavailableError):
                await self._compensate(order_id, reserved + [claim])
                raise
            except StorefrontError:
                await self._compensate(order_id, reserved)
                raise
            except Exception as e:
                logger.exception("Unexpected error reserving product %s for %s", line.product_id, order_id)
                await self._compensate(order_id, reserved)
                raise InternalError("Failed to reserve stock", details={"order_id": order_id}) from e
            reserved.append(claim)
        return reserved

    async def _compensate(self, order_id: str, reserved: List[Tuple[int, int]]) -> List[int]:
        """
        Release reservations in reverse order. Never raises; returns the
        product ids whose release failed so they can be reconciled by hand.
        """
        failed = []
        for product_id, quantity in reversed(reserved):
            try:
                await self._call(
                    f"inventory.release({product_id})",
                    self.reserver.release(product_id, quantity, order_id),
                )
            except Exception as e:
                failed.append(product_id)
                logger.error(
                    "COMPENSATION_FAILED order=%s product=%s quantity=%d: %s",
                    order_id, product_id, quantity, e,
                )
        if reserved:
            logger.info(
                "Compensated order %s: released %d line(s), %d failure(s)",
                order_id, len(reserved) - len(failed), len(failed),
            )
        return failed

    # -- public operations -------------------------------------------------

    async def checkout(
        self,
        user: TokenClaims,
        shipping_address: Optional[Dict[str, Any]],
        payment_method: Optional[str] = "cod",
    ) -> CheckoutResult:
        started = time.perf_counter()
        address = normalize_address(shipping_address)
        payment_method = (payment_method or "").strip() or "cod"

        cart = await self._call("cart.get_cart", self.carts.get_cart(user.user_id))
        if not cart:
            raise InvalidRequestError("Cart is empty")

        try:
            lines = await self._price_lines(cart)
        except StorefrontError as e:
            self._log_metric("precheck_failed", user, None, started, error=e.code)
            raise

        order_id = self.ids.next_id()
        try:
            reserved = await self._reserve_all(order_id, lines)
        except StorefrontError as e:
            self._log_metric("reservation_failed", user, order_id, started, error=e.code)
            raise

        total = cents_to_decimal(sum(line_subtotal_cents(l.price, l.quantity) for l in lines))
        order = OrderRecord(
            id=order_id,
            user_id=user.user_id,
            user_email=user.email,
            status="pending",
            total_amount=total,
            shipping_address=address,
            payment_method=payment_method,
            items=lines,
            created_at=utcnow(),
        )

        try:
            await self._call("orders.create_order", self.orders.create_order(order))
        except Exception as e:
            logger.error("Persisting order %s failed, releasing stock: %s", order_id, e)
            await self._compensate(order_id, reserved)
            self._log_metric("persist_failed", user, order_id, started, error=type(e).__name__)
            if isinstance(e, StorefrontError):
                raise
            raise InternalError("Failed to create order", details={"order_id": order_id}) from e

        try:
            await self._call("cart.clear_cart", self.carts.clear_cart(user.user_id))
        except Exception as e:
            # the order stands; a stale cart is only an inconvenience
            logger.error("Order %s created but clearing cart of user %s failed: %s", order_id, user.user_id, e)

        self._log_metric("success", user, order_id, started, items=len(lines), total=str(total))
        return CheckoutResult(
            order_id=order_id,
            items=lines,
            total_amount=total,
            status=order.status,
            order=order,
        )

    async def cancel_order(self, user: TokenClaims, order_id: str) -> OrderRecord:
        """
        Cancel a pending order and put its stock back.

        Stock is released before the status flips, so a failed release
        leaves the order pending and the cancel can simply be retried.
        """
        order = await self._call("orders.get_order", self.orders.get_order(order_id))
        if order.user_id != user.user_id and not user.is_admin:
            raise PermissionDeniedError("Access denied", details={"order_id": order_id})
        if order.status != "pending":
            raise InvalidRequestError(
                f"Only pending orders can be cancelled (order is {order.status})",
                details={"order_id": order_id, "status": order.status},
            )

        for item in order.items:
            await self._call(
                f"inventory.release({item.product_id})",
                self.reserver.release(item.product_id, item.quantity, order_id),
            )

        order = await self._call(
            "orders.update_status",
            self.orders.update_status(order_id, "cancelled", expected_status="pending"),
        )
        logger.info("CHECKOUT_METRIC: order_cancelled order_id=%s user_id=%s", order_id, user.user_id)
        return order

    @staticmethod
    def _log_metric(outcome: str, user: TokenClaims, order_id: Optional[str], started: float, **fields):
        elapsed_ms = (time.perf_counter() - started) * 1000
        extra = " ".join(f"{k}={v}" for k, v in fields.items())
        logger.info(
            "CHECKOUT_METRIC: %s user_id=%s order_id=%s duration_ms=%.1f %s",
            outcome, user.user_id, order_id, elapsed_ms, extra,
        )
