"""
Discount lookup service.

Loads candidate rules from the Rule Store and hands them to the evaluator.
Used by the automatic "best discount for this cart" endpoint and by the
storefront product proxy. No usage is consumed here.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from domain.cart import CartLine, CartSnapshot
from domain.discount import DiscountRule
from domain.evaluation import EvaluationResult, evaluate_cart, is_eligible
from domain.time import utc_now
from repositories.discount_repository import list_active_discounts


def find_best_discount(
    cart: CartSnapshot,
    shop: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EvaluationResult:
    """
    Find the best automatic discount for a cart.

    Args:
        cart: Cart snapshot (subtotal and product scoping come from its lines)
        shop: Restrict candidates to this shop's rules
        now: Evaluation time (defaults to the current UTC time)

    Example:
        result = find_best_discount(cart)
        if result.applied:
            print(f"{result.selected_rule.code} saves ${result.savings}")
    """
    rules = list_active_discounts(shop=shop)
    return evaluate_cart(cart, rules, now or utc_now())


def find_product_discount(
    product_id: str,
    unit_price: Decimal,
    shop: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EvaluationResult:
    """
    Best discount for a single unit of one product (storefront display).

    Equivalent to evaluating a one-line cart with quantity 1.
    """
    cart = CartSnapshot(lines=(CartLine(product_id=product_id, unit_price=unit_price, quantity=1),))
    return find_best_discount(cart, shop=shop, now=now)


def find_product_rule(
    product_id: str,
    shop: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[DiscountRule]:
    """
    Highest-priority rule that currently covers a product, when no price is known.

    Without a price there are no savings to compare, so rules are ranked by
    priority and then by lowest discount_id. Rules with a minimum purchase are
    skipped because a single unit of unknown price cannot be shown to meet it.
    """
    now = now or utc_now()
    covering: List[DiscountRule] = [
        rule
        for rule in list_active_discounts(shop=shop)
        if is_eligible(rule, Decimal("0"), now, product_ids=[product_id])
    ]
    if not covering:
        return None
    return min(covering, key=lambda rule: (-rule.priority, rule.discount_id))


__all__ = [
    "find_best_discount",
    "find_product_discount",
    "find_product_rule",
]
