"""
Cart stores (orders service)

One line per (user, product); adding a product already in the cart merges
quantities.
"""
import asyncio
import dataclasses
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from storefront.core.database import ping as db_ping
from storefront.core.exceptions import CartItemNotFoundError
from storefront.core.money import quantize_price
from storefront.core.utils import utcnow
from storefront.models import CartItem

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    user_id: int
    product_id: int
    quantity: int
    price_at_add: Decimal
    product_name: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


def _not_in_cart(user_id: int, product_id: int) -> CartItemNotFoundError:
    return CartItemNotFoundError(
        "Item not found in cart",
        details={"user_id": user_id, "product_id": product_id},
    )


class CartStore(ABC):
    @abstractmethod
    async def get_cart(self, user_id: int) -> List[CartLine]:
        """Lines in the order they were first added."""

    @abstractmethod
    async def get_line(self, user_id: int, product_id: int) -> Optional[CartLine]:
        ...

    @abstractmethod
    async def add_item(
        self, user_id: int, product_id: int, quantity: int, price, product_name: Optional[str] = None,
    ) -> CartLine:
        ...

    @abstractmethod
    async def set_quantity(self, user_id: int, product_id: int, quantity: int) -> CartLine:
        ...

    @abstractmethod
    async def remove_item(self, user_id: int, product_id: int) -> None:
        ...

    @abstractmethod
    async def clear_cart(self, user_id: int) -> int:
        ...

    @abstractmethod
    async def ping(self) -> None:
        ...


class InMemoryCartStore(CartStore):
    def __init__(self):
        # user_id -> product_id -> line; dicts keep insertion order
        self._carts: Dict[int, Dict[int, CartLine]] = {}
        self._lock = asyncio.Lock()

    async def get_cart(self, user_id: int) -> List[CartLine]:
        async with self._lock:
            return [dataclasses.replace(line) for line in self._carts.get(user_id, {}).values()]

    async def get_line(self, user_id: int, product_id: int) -> Optional[CartLine]:
        async with self._lock:
            line = self._carts.get(user_id, {}).get(product_id)
            return dataclasses.replace(line) if line else None

    async def add_item(self, user_id, product_id, quantity, price, product_name=None) -> CartLine:
        async with self._lock:
            cart = self._carts.setdefault(user_id, {})
            line = cart.get(product_id)
            if line is None:
                line = CartLine(
                    user_id=user_id,
                    product_id=product_id,
                    quantity=quantity,
                    price_at_add=quantize_price(price),
                    product_name=product_name,
                )
                cart[product_id] = line
            else:
                line.quantity += quantity
                line.updated_at = utcnow()
            return dataclasses.replace(line)

    async def set_quantity(self, user_id: int, product_id: int, quantity: int) -> CartLine:
        async with self._lock:
            line = self._carts.get(user_id, {}).get(product_id)
            if line is None:
                raise _not_in_cart(user_id, product_id)
            line.quantity = quantity
            line.updated_at = utcnow()
            return dataclasses.replace(line)

    async def remove_item(self, user_id: int, product_id: int) -> None:
        async with self._lock:
            cart = self._carts.get(user_id, {})
            if product_id not in cart:
                raise _not_in_cart(user_id, product_id)
            del cart[product_id]

    async def clear_cart(self, user_id: int) -> int:
        async with self._lock:
            return len(self._carts.pop(user_id, {}))

    async def ping(self) -> None:
        return None


def _line(item: CartItem) -> CartLine:
    return CartLine(
        user_id=item.user_id,
        product_id=item.product_id,
        quantity=item.quantity,
        price_at_add=quantize_price(item.price_at_add),
        product_name=item.product_name,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


class SqlCartStore(CartStore):
    def __init__(self, sessionmaker: async_sessionmaker):
        self._sessionmaker = sessionmaker

    def _select_line(self, user_id: int, product_id: int):
        return select(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)

    async def get_cart(self, user_id: int) -> List[CartLine]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(CartItem).where(CartItem.user_id == user_id).order_by(CartItem.id)
            )
            return [_line(item) for item in result.scalars().all()]

    async def get_line(self, user_id: int, product_id: int) -> Optional[CartLine]:
        async with self._sessionmaker() as session:
            item = (await session.execute(self._select_line(user_id, product_id))).scalar_one_or_none()
            return _line(item) if item else None

    async def add_item(self, user_id, product_id, quantity, price, product_name=None) -> CartLine:
        try:
            return await self._insert_or_merge(user_id, product_id, quantity, price, product_name)
        except IntegrityError:
            # a concurrent first add inserted the line; it is visible now and gets merged
            logger.info("Cart line user=%s product=%s added concurrently, merging", user_id, product_id)
            return await self._insert_or_merge(user_id, product_id, quantity, price, product_name)

    async def _insert_or_merge(self, user_id, product_id, quantity, price, product_name) -> CartLine:
        async with self._sessionmaker() as session:
            async with session.begin():
                item = (await session.execute(
                    self._select_line(user_id, product_id).with_for_update()
                )).scalar_one_or_none()
                if item is None:
                    item = CartItem(
                        user_id=user_id,
                        product_id=product_id,
                        quantity=quantity,
                        price_at_add=quantize_price(price),
                        product_name=product_name,
                    )
                    session.add(item)
                else:
                    item.quantity = item.quantity + quantity
                await session.flush()
                await session.refresh(item)
                return _line(item)

    async def set_quantity(self, user_id: int, product_id: int, quantity: int) -> CartLine:
        async with self._sessionmaker() as session:
            async with session.begin():
                item = (await session.execute(
                    self._select_line(user_id, product_id).with_for_update()
                )).scalar_one_or_none()
                if item is None:
                    raise _not_in_cart(user_id, product_id)
                item.quantity = quantity
                await session.flush()
                await session.refresh(item)
                return _line(item)

    async def remove_item(self, user_id: int, product_id: int) -> None:
        async with self._sessionmaker() as session:
            result = await session.execute(
                delete(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
            )
            await session.commit()
        if result.rowcount == 0:
            raise _not_in_cart(user_id, product_id)

    async def clear_cart(self, user_id: int) -> int:
        async with self._sessionmaker() as session:
            result = await session.execute(delete(CartItem).where(CartItem.user_id == user_id))
            await session.commit()
            return result.rowcount

    async def ping(self) -> None:
        await db_ping(self._sessionmaker)
