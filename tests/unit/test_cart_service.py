"""
Cart service: advisory stock checks and live pricing.
"""
from decimal import Decimal

import pytest

from storefront.core.exceptions import (
    CartItemNotFoundError,
    InsufficientStockError,
    InvalidRequestError,
    ProductNotFoundError,
)
from storefront.services.cart_service import CartService


@pytest.fixture
def carts(cart_store, catalog):
    return CartService(cart_store, catalog)


@pytest.mark.asyncio
async def test_add_item_snapshots_price_and_name(carts):
    line = await carts.add_item(1, 1, 2)

    assert line.quantity == 2
    assert line.price_at_add == Decimal("10.00")
    assert line.product_name == "Widget"


@pytest.mark.asyncio
async def test_add_item_merges_and_checks_combined_quantity(carts):
    await carts.add_item(1, 1, 3)
    line = await carts.add_item(1, 1, 2)
    assert line.quantity == 5

    with pytest.raises(InsufficientStockError) as exc_info:
        await carts.add_item(1, 1, 1)
    assert exc_info.value.requested_qty == 6
    assert exc_info.value.available_qty == 5


@pytest.mark.asyncio
async def test_add_item_rejects_bad_quantity_and_unknown_product(carts):
    with pytest.raises(InvalidRequestError):
        await carts.add_item(1, 1, 0)
    with pytest.raises(ProductNotFoundError):
        await carts.add_item(1, 404, 1)


@pytest.mark.asyncio
async def test_get_cart_totals_use_price_at_add(carts, product_store):
    await carts.add_item(1, 1, 2)
    await carts.add_item(1, 2, 1)
    product_store.live_record(1).price = Decimal("12.00")

    summary = await carts.get_cart(1)

    assert summary.item_count == 3
    assert summary.total_amount == Decimal("22.50")
    widget = next(v for v in summary.items if v.line.product_id == 1)
    assert widget.current_price == Decimal("12.00")
    assert widget.subtotal == Decimal("20.00")


@pytest.mark.asyncio
async def test_get_cart_flags_unavailable_and_short_lines(carts, product_store):
    await carts.add_item(1, 1, 4)
    await carts.add_item(1, 2, 1)
    product_store.live_record(1).stock_quantity = 3
    product_store.live_record(2).is_active = False

    views = {v.line.product_id: v for v in (await carts.get_cart(1)).items}

    assert views[1].available and not views[1].in_stock
    assert not views[2].available
    assert views[2].current_price is None


@pytest.mark.asyncio
async def test_update_item(carts):
    await carts.add_item(1, 1, 1)

    line = await carts.update_item(1, 1, 4)
    assert line.quantity == 4

    with pytest.raises(InsufficientStockError):
        await carts.update_item(1, 1, 6)

    assert await carts.update_item(1, 1, 0) is None
    assert (await carts.get_cart(1)).items == []


@pytest.mark.asyncio
async def test_update_missing_line(carts):
    with pytest.raises(CartItemNotFoundError):
        await carts.update_item(1, 1, 2)


@pytest.mark.asyncio
async def test_carts_are_per_user_and_clear(carts):
    await carts.add_item(1, 1, 1)
    await carts.add_item(2, 2, 1)

    assert await carts.clear(1) == 1
    assert (await carts.get_cart(1)).items == []
    assert len((await carts.get_cart(2)).items) == 1
