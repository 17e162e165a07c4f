"""
Reservation coordinator: oversell prevention and idempotent release.
"""
import asyncio

import pytest

from storefront.core.exceptions import (
    InsufficientStockError,
    InvalidRequestError,
    ProductNotFoundError,
    ReservationVoidedError,
)
from storefront.services.stock_ledger import MovementType


@pytest.mark.asyncio
async def test_reserve_decrements_and_logs_sale(coordinator, ledger):
    result = await coordinator.reserve(1, 2, "ORD-A")

    assert result.quantity == 2
    assert result.remaining_stock == 3
    movements = await ledger.list_movements(1)
    assert len(movements) == 1
    assert movements[0].movement_type == MovementType.SALE
    assert movements[0].delta == -2
    assert movements[0].reference_id == "ORD-A"
    assert movements[0].id == result.movement_id


@pytest.mark.asyncio
async def test_reserve_insufficient_names_product_and_quantities(coordinator, ledger):
    with pytest.raises(InsufficientStockError) as exc_info:
        await coordinator.reserve(2, 3, "ORD-A")

    err = exc_info.value
    assert err.details == {"product_id": 2, "product_name": "Gadget", "requested": 3, "available": 1}
    assert await ledger.get_stock(2) == 1
    assert await ledger.list_movements(2) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -1])
async def test_reserve_rejects_non_positive_quantity(coordinator, quantity):
    with pytest.raises(InvalidRequestError):
        await coordinator.reserve(1, quantity, "ORD-A")


@pytest.mark.asyncio
async def test_reserve_requires_order_id(coordinator):
    with pytest.raises(InvalidRequestError):
        await coordinator.reserve(1, 1, "  ")


@pytest.mark.asyncio
async def test_reserve_unknown_product(coordinator):
    with pytest.raises(ProductNotFoundError):
        await coordinator.reserve(404, 1, "ORD-A")


@pytest.mark.asyncio
async def test_concurrent_reserves_never_oversell(coordinator, ledger):
    results = await asyncio.gather(
        *(coordinator.reserve(1, 1, f"ORD-{i}") for i in range(20)),
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, InsufficientStockError)]
    assert len(successes) == 5
    assert len(failures) == 15
    assert await ledger.get_stock(1) == 0
    assert await ledger.movement_total(1) == -5


@pytest.mark.asyncio
async def test_release_restores_stock(coordinator, ledger):
    await coordinator.reserve(1, 3, "ORD-A")

    result = await coordinator.release(1, 3, "ORD-A")

    assert result.released_quantity == 3
    assert result.remaining_stock == 5
    assert await ledger.get_stock(1) == 5


@pytest.mark.asyncio
async def test_release_twice_credits_once(coordinator, ledger):
    await coordinator.reserve(1, 3, "ORD-A")

    first = await coordinator.release(1, 3, "ORD-A")
    second = await coordinator.release(1, 3, "ORD-A")

    assert first.released_quantity == 3
    assert second.released_quantity == 0
    assert second.was_noop
    assert await ledger.get_stock(1) == 5
    release_rows = [m for m in await ledger.list_movements(1) if m.movement_type == MovementType.RELEASE]
    assert len(release_rows) == 1


@pytest.mark.asyncio
async def test_concurrent_duplicate_releases_credit_once(coordinator, ledger):
    await coordinator.reserve(1, 4, "ORD-A")

    results = await asyncio.gather(*(coordinator.release(1, 4, "ORD-A") for _ in range(5)))

    assert sum(r.released_quantity for r in results) == 4
    assert await ledger.get_stock(1) == 5


@pytest.mark.asyncio
async def test_release_without_reservation_is_noop(coordinator, ledger):
    result = await coordinator.release(1, 2, "ORD-NEVER")

    assert result.released_quantity == 0
    assert await ledger.get_stock(1) == 5
    assert await ledger.list_movements(1) == []


@pytest.mark.asyncio
async def test_release_is_capped_at_outstanding(coordinator, ledger):
    await coordinator.reserve(1, 2, "ORD-A")
    await coordinator.reserve(1, 1, "ORD-B")

    result = await coordinator.release(1, 5, "ORD-A")

    assert result.released_quantity == 2
    # ORD-B's unit is still taken
    assert await ledger.get_stock(1) == 4


@pytest.mark.asyncio
async def test_partial_releases_add_up(coordinator, ledger):
    await coordinator.reserve(1, 3, "ORD-A")

    assert (await coordinator.release(1, 1, "ORD-A")).released_quantity == 1
    assert (await coordinator.release(1, 5, "ORD-A")).released_quantity == 2
    assert await ledger.get_stock(1) == 5


@pytest.mark.asyncio
async def test_reserve_after_release_is_refused(coordinator, ledger):
    await coordinator.release(1, 2, "ORD-LATE")

    with pytest.raises(ReservationVoidedError) as exc_info:
        await coordinator.reserve(1, 2, "ORD-LATE")

    assert exc_info.value.status_code == 409
    assert exc_info.value.details == {"product_id": 1, "order_id": "ORD-LATE"}
    assert await ledger.get_stock(1) == 5
    assert await ledger.movement_total(1) == 0


@pytest.mark.asyncio
async def test_void_is_per_product(coordinator, ledger):
    await coordinator.release(1, 1, "ORD-A")

    result = await coordinator.reserve(2, 1, "ORD-A")

    assert result.quantity == 1


@pytest.mark.asyncio
async def test_disjoint_products_do_not_block_each_other(coordinator, ledger):
    # hold product 1's lock while reserving product 2
    async with ledger.locked(1):
        result = await asyncio.wait_for(coordinator.reserve(2, 1, "ORD-A"), timeout=1)
    assert result.remaining_stock == 0
