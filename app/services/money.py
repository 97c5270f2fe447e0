"""Decimal rounding rules shared by every persisted amount and rate."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
RATE_PLACES = Decimal("0.0001")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, str]


def to_money(value: Number) -> Decimal:
    """Round an amount to 2 decimal places."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_rate(value: Number) -> Decimal:
    """Round an exchange rate to 4 decimal places."""
    return Decimal(value).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)
