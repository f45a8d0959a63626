"""
Domain: money helpers.

Amounts are carried as Decimal end to end. Floats coming from JSON payloads or
the database are converted through str() so 29.99 stays 29.99 instead of
29.989999999999998436805981327779591083526611328125.

Rounding to cents happens only at the edges (HTTP responses, storefront
display); the evaluator works with exact values.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")


def to_decimal(value: Any, *, name: str = "amount") -> Decimal:
    """Convert an int/float/str/Decimal into a Decimal, rejecting bools and NaN."""

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValueError(f"{name} must be a number, got {value!r}")
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"{name} must be a number, got {value!r}") from None
    else:
        raise ValueError(f"{name} must be a number, got {type(value).__name__}")

    if not result.is_finite():
        raise ValueError(f"{name} must be finite")
    return result


def round_money(value: Decimal) -> Decimal:
    """Quantize to cents (half-up)."""

    return value.quantize(CENT, rounding=ROUND_HALF_UP)
