"""
Money helpers

All arithmetic is done in integer cents. Decimal amounts are converted with
ROUND_HALF_UP and only turned back into two-decimal values for presentation.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

Amount = Union[Decimal, int, float, str]

CENTS = Decimal("0.01")


def to_cents(amount: Amount) -> int:
    """
    Convert an amount in currency units to integer cents.

    Floats go through str() first so 0.1 is treated as "0.1".
    """
    if amount is None:
        return 0
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_decimal(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENTS, rounding=ROUND_HALF_UP)


def quantize_price(amount: Amount) -> Decimal:
    return cents_to_decimal(to_cents(amount))


def line_subtotal_cents(unit_price: Amount, quantity: int) -> int:
    return to_cents(unit_price) * quantity
