"""
Fixed-point money helpers.

Amounts enter the balance pipeline as ``Decimal`` and are carried as integer
minor units (paise, cents) until projection, so sums stay exact.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from .config import config

MAX_MINOR_UNITS = 2 ** 63 - 1


class AmountOverflowError(ArithmeticError):
    pass


def _digits(digits: Optional[int]) -> int:
    return config.MINOR_UNIT_DIGITS if digits is None else digits


def to_minor_units(amount: Decimal, digits: Optional[int] = None) -> int:
    if not amount.is_finite():
        raise ValueError(f"Cannot convert non-finite amount {amount}")
    places = _digits(digits)
    try:
        quantized = amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    except InvalidOperation as e:
        raise AmountOverflowError(f"Amount {amount} exceeds the supported precision") from e
    return check_range(int(quantized.scaleb(places)))


def from_minor_units(value: int, digits: Optional[int] = None) -> Decimal:
    return Decimal(value).scaleb(-_digits(digits))


def check_range(value: int) -> int:
    if abs(value) > MAX_MINOR_UNITS:
        raise AmountOverflowError(f"{value} minor units is outside the supported range")
    return value
