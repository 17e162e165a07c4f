"""
Reservation Coordinator

reserve() and release() are the only operations checkout uses to move
stock. Both run inside a ledger transaction, so operations on the same
product are serialized while different products proceed in parallel.

release() is idempotent per (order_id, product_id): it credits back at most
what the movement log says is still outstanding for that pair.
Once released, the pair is void and no later reserve can take stock for it.
"""
import logging
from dataclasses import dataclass
from typing import List, Protocol

from storefront.core.exceptions import InsufficientStockError, InvalidRequestError, ReservationVoidedError
from storefront.services.stock_ledger import MovementRecord, MovementType, StockLedger

logger = logging.getLogger(__name__)


@dataclass
class ReservationResult:
    product_id: int
    order_id: str
    quantity: int
    remaining_stock: int
    movement_id: int


@dataclass
class ReleaseResult:
    product_id: int
    order_id: str
    released_quantity: int
    remaining_stock: int

    @property
    def was_noop(self) -> bool:
        return self.released_quantity == 0


class StockReserver(Protocol):
    """What checkout needs from inventory, in-process or over HTTP."""

    async def reserve(self, product_id: int, quantity: int, order_id: str) -> ReservationResult:
        ...

    async def release(self, product_id: int, quantity: int, order_id: str) -> ReleaseResult:
        ...


def _validate(quantity: int, order_id: str) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise InvalidRequestError("Quantity must be a positive integer", details={"quantity": quantity})
    if not order_id or not str(order_id).strip():
        raise InvalidRequestError("order_id is required")


def outstanding_quantity(movements: List[MovementRecord]) -> int:
    """Units reserved for an order and not yet released."""
    reserved = -sum(m.delta for m in movements if m.movement_type == MovementType.SALE)
    released = sum(m.delta for m in movements if m.movement_type == MovementType.RELEASE)
    return max(reserved - released, 0)


class ReservationCoordinator:
    def __init__(self, ledger: StockLedger):
        self.ledger = ledger

    async def reserve(self, product_id: int, quantity: int, order_id: str) -> ReservationResult:
        """
        Take `quantity` units of a product for an order.

        Stock is re-checked under the product lock; whatever a caller saw
        earlier is irrelevant.

        Raises:
            InvalidRequestError: quantity <= 0 or missing order id
            ProductNotFoundError: unknown product
            InsufficientStockError: fewer than `quantity` units available
            ReservationVoidedError: the order was already released for this
                product, e.g. by checkout compensation after a timeout
        """
        _validate(quantity, order_id)
        async with self.ledger.locked(product_id) as txn:
            if await txn.is_voided(order_id):
                logger.warning("Reserve refused: order %s already released for product %s", order_id, product_id)
                raise ReservationVoidedError(product_id, order_id)
            if txn.stock < quantity:
                logger.info(
                    "Reserve refused: product=%s requested=%d available=%d order=%s",
                    product_id, quantity, txn.stock, order_id,
                )
                raise InsufficientStockError(product_id, quantity, txn.stock, txn.product_name)
            movement = await txn.apply(
                -quantity,
                MovementType.SALE,
                reference_id=order_id,
                note=f"Reserved for order {order_id}",
            )
            remaining = txn.stock

        logger.info("Reserved %d of product %s for order %s (%d left)", quantity, product_id, order_id, remaining)
        return ReservationResult(
            product_id=product_id,
            order_id=order_id,
            quantity=quantity,
            remaining_stock=remaining,
            movement_id=movement.id,
        )

    async def release(self, product_id: int, quantity: int, order_id: str) -> ReleaseResult:
        """
        Return reserved units to stock.

        Credits min(quantity, outstanding) where outstanding is what this
        order reserved minus what was already released. Repeated calls and
        calls for pairs that never reserved credit nothing.

        Every release also voids the pair, so a reserve for the same order
        that lands afterwards is refused.
        """
        _validate(quantity, order_id)
        async with self.ledger.locked(product_id) as txn:
            outstanding = outstanding_quantity(await txn.movements_for(order_id))
            credit = min(quantity, outstanding)
            if credit > 0:
                await txn.apply(
                    credit,
                    MovementType.RELEASE,
                    reference_id=order_id,
                    note=f"Released from order {order_id}",
                )
            await txn.void(order_id)
            remaining = txn.stock

        if credit:
            logger.info("Released %d of product %s from order %s", credit, product_id, order_id)
        else:
            logger.info("Release no-op for product %s order %s (nothing outstanding)", product_id, order_id)
        return ReleaseResult(
            product_id=product_id,
            order_id=order_id,
            released_quantity=credit,
            remaining_stock=remaining,
        )
