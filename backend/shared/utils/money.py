"""
Monetary helpers.

Amounts are Decimal end to end. Discounts are persisted with four decimal
places; rounding to cents happens once, when a value leaves the service in a
response DTO.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from shared.config.constants import Limits

ZERO = Decimal("0")


def to_decimal(value: Decimal | int | float | str | None) -> Decimal:
    """Coerce a numeric column value to Decimal (None -> 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # str() keeps floats from dragging binary noise into the amount
    return Decimal(str(value))


def quantize_discount(amount: Decimal) -> Decimal:
    """Precision used for persisted CartCoupon/CouponUsage discounts."""
    return amount.quantize(Limits.DISCOUNT_PLACES, rounding=ROUND_HALF_UP)


def round_money(amount: Decimal | int | float | str | None) -> Decimal:
    """Round to cents, half up. Only used at the response boundary."""
    return to_decimal(amount).quantize(Limits.MONEY_PLACES, rounding=ROUND_HALF_UP)


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return to_decimal(unit_price) * quantity


def sum_amounts(amounts: Iterable[Decimal]) -> Decimal:
    return sum((to_decimal(a) for a in amounts), ZERO)
