"""
Storefront display calculations.

The theme extension shows a product's discounted price and a short savings
message. Prices arrive from Liquid in cents; fixed discount values are stored
in dollars. The savings themselves come from calculate_discount_amount() so
the storefront never promises more than checkout will give.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from domain.discount import DiscountKind, DiscountRule
from domain.evaluation import calculate_discount_amount

_CENTS_PER_DOLLAR = Decimal("100")


def format_money(cents: int) -> str:
    """
    Format an amount in cents as a dollar string.

    Example:
        format_money(1999)  # "$19.99"
    """
    if isinstance(cents, bool) or not isinstance(cents, int):
        raise ValueError("cents must be an integer")
    sign = "-" if cents < 0 else ""
    return f"{sign}${abs(cents) // 100}.{abs(cents) % 100:02d}"


@dataclass(frozen=True, slots=True)
class DisplayPrice:
    """
    Storefront price breakdown, all amounts in cents.
    """
    original_cents: int
    discount_cents: int
    discounted_cents: int
    savings_percentage: int


def _to_cents(amount: Decimal) -> int:
    return int((amount * _CENTS_PER_DOLLAR).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_display_price(original_cents: int, rule: DiscountRule) -> DisplayPrice:
    """
    Compute what the storefront shows for a product price.

    Args:
        original_cents: Product price in cents (>= 0)
        rule: Discount to preview

    Raises:
        ValueError: negative or non-integer price
    """
    if isinstance(original_cents, bool) or not isinstance(original_cents, int) or original_cents < 0:
        raise ValueError("original_cents must be a non-negative integer")

    price = Decimal(original_cents) / _CENTS_PER_DOLLAR
    discount_cents = _to_cents(calculate_discount_amount(rule, price))

    savings_percentage = 0
    if original_cents > 0:
        savings_percentage = int(
            (Decimal(discount_cents) * 100 / Decimal(original_cents)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        )

    return DisplayPrice(
        original_cents=original_cents,
        discount_cents=discount_cents,
        discounted_cents=original_cents - discount_cents,
        savings_percentage=savings_percentage,
    )


def discount_message(rule: DiscountRule, discount_cents: int) -> str:
    """
    Short savings message for the product page.

    Example:
        discount_message(percentage_rule, 500)  # "Save 20% today!"
        discount_message(fixed_rule, 500)       # "Save $5.00 today!"
    """
    if rule.kind is DiscountKind.PERCENTAGE:
        return f"Save {rule.value.normalize():f}% today!"
    if rule.kind is DiscountKind.FIXED_AMOUNT:
        return f"Save {format_money(discount_cents)} today!"
    raise ValueError(f"Unhandled discount kind: {rule.kind!r}")


__all__ = [
    "DisplayPrice",
    "calculate_display_price",
    "discount_message",
    "format_money",
]
