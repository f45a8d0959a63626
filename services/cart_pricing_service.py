"""
Per-line cart pricing.

Automatic product discounts are applied line by line: each line's unit price is
evaluated against the rules scoped to that line's product (plus store-wide
rules), and the per-unit savings are multiplied by the quantity. This is the
same evaluation the Shopify Function performs at checkout, so the preview the
admin sees matches what the customer gets.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from domain.cart import CartLine, CartSnapshot
from domain.discount import DiscountRule
from domain.evaluation import evaluate
from domain.time import utc_now
from repositories.discount_repository import list_active_discounts


@dataclass(frozen=True, slots=True)
class LinePricing:
    """
    Pricing breakdown for a single cart line.
    """
    line: CartLine
    discount: Optional[DiscountRule]
    amount_per_item: Decimal
    total_discount: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.line.line_total

    @property
    def discounted_unit_price(self) -> Decimal:
        return self.line.unit_price - self.amount_per_item

    @property
    def line_final_total(self) -> Decimal:
        return self.line_total - self.total_discount


@dataclass(frozen=True, slots=True)
class CartPricing:
    """
    Complete cart pricing with itemized breakdown.
    """
    lines: List[LinePricing]
    subtotal: Decimal
    total_discount: Decimal

    @property
    def total(self) -> Decimal:
        return self.subtotal - self.total_discount

    @property
    def discounts_applied(self) -> int:
        return sum(1 for line in self.lines if line.discount is not None)


def price_cart(cart: CartSnapshot, rules: Iterable[DiscountRule], now: datetime) -> CartPricing:
    """
    Apply the best product discount to every line of a cart.

    Args:
        cart: Cart to price
        rules: Candidate rules
        now: Evaluation time (UTC-aware)

    Returns:
        CartPricing with per-line results and totals
    """
    candidates = list(rules)
    priced: List[LinePricing] = []
    total_discount = Decimal("0")

    for line in cart.lines:
        result = evaluate(line.unit_price, candidates, now, product_ids=[line.product_id])
        line_discount = result.savings * line.quantity

        priced.append(LinePricing(
            line=line,
            discount=result.selected_rule,
            amount_per_item=result.savings,
            total_discount=line_discount,
        ))
        total_discount += line_discount

    return CartPricing(lines=priced, subtotal=cart.subtotal, total_discount=total_discount)


def price_cart_for_shop(
    cart: CartSnapshot,
    shop: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CartPricing:
    """price_cart() against the shop's active rules."""
    return price_cart(cart, list_active_discounts(shop=shop), now or utc_now())


__all__ = [
    "CartPricing",
    "LinePricing",
    "price_cart",
    "price_cart_for_shop",
]
