"""
Stock Ledger

Single source of truth for available quantity per product. Every change to
stock_quantity goes through a ledger transaction that

1. holds the product's exclusive lock (asyncio lock in memory,
   SELECT ... FOR UPDATE in PostgreSQL),
2. refuses to drive stock below zero,
3. appends an immutable StockMovement in the same unit of work.

Hence for every product: initial stock + sum(movement deltas) == stock.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Dict, List, Optional, Set, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.core.exceptions import InsufficientStockError, InvalidRequestError, ProductNotFoundError
from storefront.core.ids import SequenceIdGenerator
from storefront.core.locks import KeyedLockManager
from storefront.core.utils import utcnow
from storefront.models import Product, ReservationVoid, StockMovement
from storefront.stores.products import InMemoryProductStore, ProductRecord

logger = logging.getLogger(__name__)


class MovementType(str, Enum):
    SALE = "sale"
    RELEASE = "release"
    RESTOCK = "restock"
    ADJUSTMENT = "adjustment"


@dataclass
class MovementRecord:
    id: int
    product_id: int
    delta: int
    movement_type: MovementType
    reference_id: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


class LedgerTransaction(ABC):
    """Handle on one product while its lock is held."""

    product_id: int
    product_name: Optional[str]

    @property
    @abstractmethod
    def stock(self) -> int:
        ...

    @abstractmethod
    async def movements_for(self, reference_id: str) -> List[MovementRecord]:
        ...

    @abstractmethod
    async def is_voided(self, reference_id: str) -> bool:
        """True once a release has been recorded for this reference on this product."""

    @abstractmethod
    async def void(self, reference_id: str) -> None:
        """Record a void marker; repeated calls are no-ops."""

    @abstractmethod
    async def _write(self, new_stock: int, movement: MovementRecord) -> MovementRecord:
        ...

    async def apply(
        self,
        delta: int,
        movement_type: MovementType,
        reference_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> MovementRecord:
        if not isinstance(delta, int) or delta == 0:
            raise InvalidRequestError("Movement delta must be a non-zero integer", details={"delta": delta})
        movement_type = MovementType(movement_type)
        new_stock = self.stock + delta
        if new_stock < 0:
            raise InsufficientStockError(self.product_id, -delta, self.stock, self.product_name)
        movement = MovementRecord(
            id=0,
            product_id=self.product_id,
            delta=delta,
            movement_type=movement_type,
            reference_id=reference_id,
            note=note,
        )
        movement = await self._write(new_stock, movement)
        logger.debug(
            "Stock %s product=%s delta=%+d stock=%d ref=%s",
            movement_type.value, self.product_id, delta, new_stock, reference_id,
        )
        return movement


def sale_count_delta(movement_type: MovementType, delta: int) -> int:
    """Sales count what left the shelf; releases give it back."""
    if movement_type in (MovementType.SALE, MovementType.RELEASE):
        return -delta
    return 0


class StockLedger(ABC):
    @abstractmethod
    async def get_stock(self, product_id: int) -> int:
        """Raises ProductNotFoundError."""

    @abstractmethod
    def locked(self, product_id: int):
        """Async context manager yielding a LedgerTransaction under the product lock."""

    @abstractmethod
    async def list_movements(self, product_id: int, limit: int = 50) -> List[MovementRecord]:
        """Newest first."""

    @abstractmethod
    async def movement_total(self, product_id: int) -> int:
        ...

    async def apply_movement(
        self,
        product_id: int,
        delta: int,
        movement_type: MovementType,
        reference_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> MovementRecord:
        """Atomically change stock and record the movement."""
        async with self.locked(product_id) as txn:
            return await txn.apply(delta, movement_type, reference_id, note)


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class _MemoryTransaction(LedgerTransaction):
    def __init__(self, ledger: "InMemoryStockLedger", product: ProductRecord):
        self._ledger = ledger
        self._product = product
        self.product_id = product.id
        self.product_name = product.name

    @property
    def stock(self) -> int:
        return self._product.stock_quantity

    async def movements_for(self, reference_id: str) -> List[MovementRecord]:
        return [
            m for m in self._ledger._movements.get(self.product_id, [])
            if m.reference_id == reference_id
        ]

    async def is_voided(self, reference_id: str) -> bool:
        return (self.product_id, reference_id) in self._ledger._voids

    async def void(self, reference_id: str) -> None:
        self._ledger._voids.add((self.product_id, reference_id))

    async def _write(self, new_stock: int, movement: MovementRecord) -> MovementRecord:
        # no await between the check in apply() and these writes
        movement.id = self._ledger._ids.next_int()
        self._product.stock_quantity = new_stock
        self._product.sale_count += sale_count_delta(movement.movement_type, movement.delta)
        self._product.updated_at = movement.created_at
        self._ledger._movements.setdefault(self.product_id, []).append(movement)
        return movement


class InMemoryStockLedger(StockLedger):
    """Ledger over the records of an InMemoryProductStore, one asyncio lock per product."""

    def __init__(self, store: InMemoryProductStore, locks: Optional[KeyedLockManager] = None):
        self._store = store
        self._locks = locks or KeyedLockManager()
        self._movements: Dict[int, List[MovementRecord]] = {}
        self._voids: Set[Tuple[int, str]] = set()
        self._ids = SequenceIdGenerator()

    def _product(self, product_id: int) -> ProductRecord:
        product = self._store.live_record(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    async def get_stock(self, product_id: int) -> int:
        return self._product(product_id).stock_quantity

    @asynccontextmanager
    async def locked(self, product_id: int) -> AsyncIterator[LedgerTransaction]:
        self._product(product_id)
        async with self._locks.hold(product_id):
            yield _MemoryTransaction(self, self._product(product_id))

    async def list_movements(self, product_id: int, limit: int = 50) -> List[MovementRecord]:
        self._product(product_id)
        return list(reversed(self._movements.get(product_id, [])))[:limit]

    async def movement_total(self, product_id: int) -> int:
        self._product(product_id)
        return sum(m.delta for m in self._movements.get(product_id, []))


# ---------------------------------------------------------------------------
# PostgreSQL
# ---------------------------------------------------------------------------


def _movement_record(row: StockMovement) -> MovementRecord:
    return MovementRecord(
        id=row.id,
        product_id=row.product_id,
        delta=row.delta,
        movement_type=MovementType(row.movement_type),
        reference_id=row.reference_id,
        note=row.note,
        created_at=row.created_at,
    )


class _SqlTransaction(LedgerTransaction):
    def __init__(self, session: AsyncSession, product: Product):
        self._session = session
        self._product = product
        self.product_id = product.id
        self.product_name = product.name

    @property
    def stock(self) -> int:
        return self._product.stock_quantity

    async def movements_for(self, reference_id: str) -> List[MovementRecord]:
        result = await self._session.execute(
            select(StockMovement)
            .where(StockMovement.product_id == self.product_id, StockMovement.reference_id == reference_id)
            .order_by(StockMovement.id)
        )
        return [_movement_record(row) for row in result.scalars().all()]

    async def is_voided(self, reference_id: str) -> bool:
        result = await self._session.execute(
            select(ReservationVoid.id).where(
                ReservationVoid.product_id == self.product_id,
                ReservationVoid.reference_id == reference_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def void(self, reference_id: str) -> None:
        # the product row lock serializes writers for this product
        if await self.is_voided(reference_id):
            return
        self._session.add(ReservationVoid(product_id=self.product_id, reference_id=reference_id))
        await self._session.flush()

    async def _write(self, new_stock: int, movement: MovementRecord) -> MovementRecord:
        self._product.stock_quantity = new_stock
        self._product.sale_count = self._product.sale_count + sale_count_delta(
            movement.movement_type, movement.delta
        )
        row = StockMovement(
            product_id=self.product_id,
            delta=movement.delta,
            movement_type=movement.movement_type.value,
            reference_id=movement.reference_id,
            note=movement.note,
            created_at=movement.created_at,
        )
        self._session.add(row)
        await self._session.flush()
        movement.id = row.id
        return movement


class SqlStockLedger(StockLedger):
    """
    Ledger over the products table.

    locked() opens a transaction and takes a row lock on the product with
    SELECT ... FOR UPDATE; it commits when the block exits normally and
    rolls back (stock and movement together) on any exception.
    """

    def __init__(self, sessionmaker: async_sessionmaker):
        self._sessionmaker = sessionmaker

    async def get_stock(self, product_id: int) -> int:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(Product.stock_quantity).where(Product.id == product_id)
            )
            stock = result.scalar_one_or_none()
        if stock is None:
            raise ProductNotFoundError(product_id)
        return stock

    @asynccontextmanager
    async def locked(self, product_id: int) -> AsyncIterator[LedgerTransaction]:
        async with self._sessionmaker() as session:
            async with session.begin():
                result = await session.execute(
                    select(Product).where(Product.id == product_id).with_for_update()
                )
                product = result.scalar_one_or_none()
                if product is None:
                    raise ProductNotFoundError(product_id)
                yield _SqlTransaction(session, product)

    async def _require_product(self, session: AsyncSession, product_id: int) -> None:
        exists = (await session.execute(select(Product.id).where(Product.id == product_id))).scalar_one_or_none()
        if exists is None:
            raise ProductNotFoundError(product_id)

    async def list_movements(self, product_id: int, limit: int = 50) -> List[MovementRecord]:
        async with self._sessionmaker() as session:
            await self._require_product(session, product_id)
            result = await session.execute(
                select(StockMovement)
                .where(StockMovement.product_id == product_id)
                .order_by(StockMovement.id.desc())
                .limit(limit)
            )
            return [_movement_record(row) for row in result.scalars().all()]

    async def movement_total(self, product_id: int) -> int:
        async with self._sessionmaker() as session:
            await self._require_product(session, product_id)
            result = await session.execute(
                select(func.coalesce(func.sum(StockMovement.delta), 0))
                .where(StockMovement.product_id == product_id)
            )
            return int(result.scalar_one())
