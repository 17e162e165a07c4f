"""
Order stores (orders service)

Orders are written once by checkout; afterwards only their status changes.
"""
import asyncio
import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from storefront.core.database import ping as db_ping
from storefront.core.exceptions import ConflictError, InvalidRequestError, OrderNotFoundError
from storefront.core.utils import utcnow
from storefront.models import Order, OrderItem

ORDER_STATUSES = ("pending", "cancelled")


@dataclass
class OrderLine:
    product_id: int
    product_name: str
    price: Decimal
    quantity: int
    subtotal: Decimal


@dataclass
class OrderRecord:
    id: str
    user_id: int
    status: str
    total_amount: Decimal
    shipping_address: Dict[str, Any]
    payment_method: str
    items: List[OrderLine]
    user_email: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


def _order_not_found(order_id: str) -> OrderNotFoundError:
    return OrderNotFoundError(f"Order {order_id} not found", details={"order_id": order_id})


def _status_conflict(order_id: str, expected: str, actual: str) -> InvalidRequestError:
    return InvalidRequestError(
        f"Order {order_id} is {actual}, expected {expected}",
        details={"order_id": order_id, "status": actual},
    )


def _copy(order: OrderRecord) -> OrderRecord:
    return dataclasses.replace(
        order,
        items=[dataclasses.replace(i) for i in order.items],
        shipping_address=dict(order.shipping_address),
    )


class OrderStore(ABC):
    @abstractmethod
    async def create_order(self, order: OrderRecord) -> str:
        """Persist a new order and its lines; returns the order id."""

    @abstractmethod
    async def get_order(self, order_id: str) -> OrderRecord:
        ...

    @abstractmethod
    async def list_orders(
        self, user_id: Optional[int] = None, offset: int = 0, limit: int = 20,
    ) -> Tuple[List[OrderRecord], int]:
        """Newest first. user_id=None lists every order."""

    @abstractmethod
    async def update_status(
        self, order_id: str, status: str, expected_status: Optional[str] = None,
    ) -> OrderRecord:
        """Compare-and-set when expected_status is given."""

    @abstractmethod
    async def ping(self) -> None:
        ...


class InMemoryOrderStore(OrderStore):
    def __init__(self):
        self._orders: Dict[str, OrderRecord] = {}
        self._lock = asyncio.Lock()

    async def create_order(self, order: OrderRecord) -> str:
        async with self._lock:
            if order.id in self._orders:
                raise ConflictError(f"Order {order.id} already exists", details={"order_id": order.id})
            self._orders[order.id] = _copy(order)
            return order.id

    async def get_order(self, order_id: str) -> OrderRecord:
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise _order_not_found(order_id)
            return _copy(order)

    async def list_orders(self, user_id=None, offset=0, limit=20):
        async with self._lock:
            # dict order is insertion order, so reversing it breaks created_at ties
            orders = [
                o for o in reversed(list(self._orders.values()))
                if user_id is None or o.user_id == user_id
            ]
            orders.sort(key=lambda o: o.created_at, reverse=True)
            return [_copy(o) for o in orders[offset:offset + limit]], len(orders)

    async def update_status(self, order_id, status, expected_status=None) -> OrderRecord:
        if status not in ORDER_STATUSES:
            raise InvalidRequestError(f"Unknown order status {status!r}")
        async with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                raise _order_not_found(order_id)
            if expected_status is not None and order.status != expected_status:
                raise _status_conflict(order_id, expected_status, order.status)
            order.status = status
            order.updated_at = utcnow()
            return _copy(order)

    async def ping(self) -> None:
        return None


def _record(order: Order) -> OrderRecord:
    return OrderRecord(
        id=order.id,
        user_id=order.user_id,
        user_email=order.user_email,
        status=order.status,
        total_amount=order.total_amount,
        shipping_address=dict(order.shipping_address or {}),
        payment_method=order.payment_method,
        items=[
            OrderLine(
                product_id=item.product_id,
                product_name=item.product_name,
                price=item.price,
                quantity=item.quantity,
                subtotal=item.subtotal,
            )
            for item in order.items
        ],
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


class SqlOrderStore(OrderStore):
    def __init__(self, sessionmaker: async_sessionmaker):
        self._sessionmaker = sessionmaker

    async def create_order(self, order: OrderRecord) -> str:
        row = Order(
            id=order.id,
            user_id=order.user_id,
            user_email=order.user_email,
            status=order.status,
            total_amount=order.total_amount,
            shipping_address=order.shipping_address,
            payment_method=order.payment_method,
            created_at=order.created_at,
            items=[
                OrderItem(
                    product_id=line.product_id,
                    product_name=line.product_name,
                    price=line.price,
                    quantity=line.quantity,
                    subtotal=line.subtotal,
                )
                for line in order.items
            ],
        )
        async with self._sessionmaker() as session:
            async with session.begin():
                session.add(row)
        return order.id

    async def get_order(self, order_id: str) -> OrderRecord:
        async with self._sessionmaker() as session:
            order = await session.get(Order, order_id)
            if order is None:
                raise _order_not_found(order_id)
            return _record(order)

    async def list_orders(self, user_id=None, offset=0, limit=20):
        conditions = [] if user_id is None else [Order.user_id == user_id]
        async with self._sessionmaker() as session:
            total = (await session.execute(select(func.count(Order.id)).where(*conditions))).scalar_one()
            result = await session.execute(
                select(Order)
                .where(*conditions)
                .order_by(Order.created_at.desc(), Order.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return [_record(o) for o in result.scalars().all()], total

    async def update_status(self, order_id, status, expected_status=None) -> OrderRecord:
        if status not in ORDER_STATUSES:
            raise InvalidRequestError(f"Unknown order status {status!r}")
        async with self._sessionmaker() as session:
            async with session.begin():
                result = await session.execute(
                    select(Order).where(Order.id == order_id).with_for_update()
                )
                order = result.scalar_one_or_none()
                if order is None:
                    raise _order_not_found(order_id)
                if expected_status is not None and order.status != expected_status:
                    raise _status_conflict(order_id, expected_status, order.status)
                order.status = status
                order.updated_at = utcnow()
                await session.flush()
                return _record(order)

    async def ping(self) -> None:
        await db_ping(self._sessionmaker)
