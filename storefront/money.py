"""Conversions between decimal major-unit prices and integer minor units.

Everything past the HTTP boundary works in integer minor units (cents, fils).
This module is the only place a decimal amount becomes an integer.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

MINOR_UNITS_PER_MAJOR = 100

Amount = Union[int, float, str, Decimal]


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_minor_units(amount: Amount) -> int:
    """Convert a major-unit amount (e.g. ``49.99``) into minor units (``4999``).

    Floats go through ``str`` first so ``19.99`` stays ``19.99`` instead of
    its binary approximation.
    """
    if isinstance(amount, bool):
        raise ValueError("amount must be numeric")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {amount!r}") from exc
    if not value.is_finite():
        raise ValueError(f"invalid amount: {amount!r}")
    return round_half_up(value * MINOR_UNITS_PER_MAJOR)


def to_major_units(minor: int) -> Decimal:
    return (Decimal(minor) / MINOR_UNITS_PER_MAJOR).quantize(Decimal("0.01"))


def format_amount(minor: int, currency: str) -> str:
    """``format_amount(2000, "aed") -> "AED 20.00"``"""
    return f"{currency.upper()} {to_major_units(minor)}"
