"""
SqlCartStore against a mocked AsyncSession: insert, merge, and two first
adds of the same product racing on the unique line constraint.
"""
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from storefront.models import CartItem
from storefront.stores.carts import SqlCartStore


def scalar_result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def duplicate_line() -> IntegrityError:
    return IntegrityError(
        "INSERT INTO cart_items",
        {},
        Exception('duplicate key value violates unique constraint "uq_cart_user_product"'),
    )


@pytest.fixture
def store(mock_db, mock_sessionmaker):
    mock_db.refresh = AsyncMock()
    return SqlCartStore(mock_sessionmaker)


@pytest.mark.asyncio
async def test_first_add_inserts_line(store, mock_db):
    mock_db.execute.return_value = scalar_result(None)

    line = await store.add_item(1, 2, 3, "2.50", "Gadget")

    added = mock_db.add.call_args.args[0]
    assert isinstance(added, CartItem)
    assert (added.user_id, added.product_id, added.quantity) == (1, 2, 3)
    assert line.price_at_add == Decimal("2.50")


@pytest.mark.asyncio
async def test_add_merges_into_existing_line(store, mock_db):
    existing = CartItem(user_id=1, product_id=2, quantity=1, price_at_add=Decimal("2.50"), product_name="Gadget")
    mock_db.execute.return_value = scalar_result(existing)

    line = await store.add_item(1, 2, 3, "2.50")

    assert line.quantity == 4
    mock_db.add.assert_not_called()


@pytest.mark.asyncio
async def test_concurrent_first_add_is_merged(store, mock_db):
    winner = CartItem(user_id=1, product_id=2, quantity=1, price_at_add=Decimal("2.50"), product_name="Gadget")
    mock_db.execute.side_effect = [scalar_result(None), scalar_result(winner)]
    mock_db.flush.side_effect = [duplicate_line(), None]

    line = await store.add_item(1, 2, 2, "2.50", "Gadget")

    assert line.quantity == 3
    assert winner.quantity == 3
    assert mock_db.begin.call_count == 2


@pytest.mark.asyncio
async def test_integrity_error_on_retry_propagates(store, mock_db):
    mock_db.execute.return_value = scalar_result(None)
    mock_db.flush.side_effect = [duplicate_line(), duplicate_line()]

    with pytest.raises(IntegrityError):
        await store.add_item(1, 2, 1, "2.50")
