"""Decimal normalization helpers for share and money amounts."""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal
from typing import Any, Optional

SHARES_SCALE = Decimal("0.0001")
PRICE_SCALE = Decimal("0.000001")
MONEY_SCALE = Decimal("0.01")


def normalize_decimal(value: Decimal, scale: Decimal = SHARES_SCALE) -> Decimal:
    """Quantize decimals to column precision."""
    return value.quantize(scale, rounding=ROUND_HALF_EVEN)


def as_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def as_decimal_or_zero(value: Any) -> Decimal:
    """Treat missing share counts as zero."""
    if value is None:
        return Decimal("0")
    try:
        result = as_decimal(value)
    except ArithmeticError:
        return Decimal("0")
    if result.is_nan():
        return Decimal("0")
    return result


def as_optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return as_decimal(value)


def decimal_to_str(value: Decimal) -> str:
    """Canonical decimal serialization."""
    return format(value.normalize(), "f") if value != 0 else "0"
