"""Money rounding helpers.

Pesos are persisted as whole units; internal arithmetic keeps full Decimal
precision until a value is stored or reported.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

PESO = Decimal("1")
ZERO = Decimal("0")
DAYS_PER_MONTH = Decimal("30")


def round_pesos(amount: Decimal) -> Decimal:
    """Round to the nearest whole peso, half up."""
    return amount.quantize(PESO, rounding=ROUND_HALF_UP)


def to_decimal(value: object) -> Decimal:
    """Coerce ints, strings and Decimals; floats go through str to avoid binary noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)  # type: ignore[arg-type]


def daily_amount(monthly: Decimal) -> Decimal:
    """Daily equivalent of a monthly amount (commercial 30-day month)."""
    return monthly / DAYS_PER_MONTH


def prorate(monthly: Decimal, days: int | Decimal) -> Decimal:
    """Monthly amount prorated to ``days`` of a 30-day month, rounded."""
    return round_pesos(daily_amount(monthly) * Decimal(days))


def total(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)
