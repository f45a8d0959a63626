"""
Domain: Discount evaluation.

The single implementation of discount resolution. Every caller (HTTP routes,
the Shopify Function runner, storefront display) goes through this module.

Evaluation is filter -> score -> select:

- Eligibility (all must hold):
  1. active
  2. start_date is None or start_date <= now
  3. end_date is None or end_date >= now
  4. usage_limit is None or usage_count < usage_limit
  5. min_purchase_amount is None or cart_subtotal >= min_purchase_amount
  6. when product ids are supplied: the rule is store-wide or scoped to one of them
- Savings:
  - percentage: cart_subtotal * value / 100
  - fixed: value
  - clamped: min(raw, max_discount_amount or raw, cart_subtotal)
- Selection: greatest savings; ties go to the higher priority, then to the
  lexicographically lowest discount_id. Input order never matters.

Everything here is pure: `now` is passed explicitly, rules are never mutated
and nothing is persisted. Usage counting belongs to the application recorder.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from .cart import CartSnapshot
from .discount import DiscountKind, DiscountRule, normalize_product_ids
from .time import require_utc_timestamp

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

REASON_INACTIVE = "Discount is not active"
REASON_NOT_STARTED = "Discount is not yet active"
REASON_EXPIRED = "Discount has expired"
REASON_USAGE_LIMIT = "Discount has reached usage limit"
REASON_OUT_OF_SCOPE = "Discount does not apply to any product in the cart"


def minimum_purchase_reason(min_purchase_amount: Decimal) -> str:
    return f"Minimum purchase amount of ${min_purchase_amount} required"


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """
    Outcome of evaluating a cart against candidate rules.

    selected_rule is None when nothing applies; savings is then 0 and
    final_total equals cart_subtotal.
    """

    selected_rule: Optional[DiscountRule]
    savings: Decimal
    final_total: Decimal
    cart_subtotal: Decimal

    @property
    def applied(self) -> bool:
        return self.selected_rule is not None


def _require_subtotal(cart_subtotal: Decimal) -> None:
    if not isinstance(cart_subtotal, Decimal):
        raise ValueError(f"cart_subtotal must be a Decimal, got {type(cart_subtotal).__name__}")
    if cart_subtotal < 0:
        raise ValueError("cart_subtotal must be >= 0")


def calculate_discount_amount(rule: DiscountRule, cart_subtotal: Decimal) -> Decimal:
    """
    Compute the savings a rule produces on a subtotal, ignoring eligibility.

    Never negative, never above max_discount_amount, never above the subtotal.

    Raises:
        ValueError: negative subtotal or a kind this function does not handle
    """

    _require_subtotal(cart_subtotal)

    if rule.kind is DiscountKind.PERCENTAGE:
        raw = cart_subtotal * rule.value / _HUNDRED
    elif rule.kind is DiscountKind.FIXED_AMOUNT:
        raw = rule.value
    else:
        raise ValueError(f"Unhandled discount kind: {rule.kind!r}")

    cap = rule.max_discount_amount if rule.max_discount_amount is not None else raw
    return max(_ZERO, min(raw, cap, cart_subtotal))


def validate_discount(
    rule: DiscountRule,
    cart_subtotal: Decimal,
    now: datetime,
    product_ids: Optional[Iterable[str]] = None,
) -> ValidationResult:
    """
    User-facing check for an explicitly supplied code.

    Returns the first failing condition, in this fixed order:
    inactive -> not yet started -> expired -> usage limit reached ->
    minimum purchase not met -> (product ids given) out of scope.
    """

    _require_subtotal(cart_subtotal)
    require_utc_timestamp("now", now)

    if not rule.active:
        return ValidationResult(valid=False, reason=REASON_INACTIVE)

    if rule.start_date is not None and rule.start_date > now:
        return ValidationResult(valid=False, reason=REASON_NOT_STARTED)

    if rule.end_date is not None and rule.end_date < now:
        return ValidationResult(valid=False, reason=REASON_EXPIRED)

    if rule.usage_exhausted():
        return ValidationResult(valid=False, reason=REASON_USAGE_LIMIT)

    if rule.min_purchase_amount is not None and cart_subtotal < rule.min_purchase_amount:
        return ValidationResult(valid=False, reason=minimum_purchase_reason(rule.min_purchase_amount))

    if product_ids is not None and not rule.applies_to_any(normalize_product_ids(product_ids)):
        return ValidationResult(valid=False, reason=REASON_OUT_OF_SCOPE)

    return ValidationResult(valid=True)


def is_eligible(
    rule: DiscountRule,
    cart_subtotal: Decimal,
    now: datetime,
    product_ids: Optional[Iterable[str]] = None,
) -> bool:
    return validate_discount(rule, cart_subtotal, now, product_ids).valid


def _selection_key(candidate: Tuple[DiscountRule, Decimal]) -> Tuple[Decimal, int, str]:
    rule, savings = candidate
    return (-savings, -rule.priority, rule.discount_id)


def evaluate(
    cart_subtotal: Decimal,
    candidate_rules: Iterable[DiscountRule],
    now: datetime,
    product_ids: Optional[Iterable[str]] = None,
) -> EvaluationResult:
    """
    Pick the single best applicable discount for a subtotal.

    Args:
        cart_subtotal: cart subtotal (>= 0)
        candidate_rules: rules to consider, in any order (may be empty)
        now: evaluation timestamp (UTC-aware)
        product_ids: cart product ids; enables per-product scoping when given

    Returns:
        EvaluationResult with the winning rule, or no rule and zero savings
    """

    _require_subtotal(cart_subtotal)
    require_utc_timestamp("now", now)

    scope = normalize_product_ids(product_ids) if product_ids is not None else None

    candidates: List[Tuple[DiscountRule, Decimal]] = []
    for rule in candidate_rules:
        if not is_eligible(rule, cart_subtotal, now, scope):
            continue
        savings = calculate_discount_amount(rule, cart_subtotal)
        if savings > 0:
            candidates.append((rule, savings))

    if not candidates:
        return EvaluationResult(
            selected_rule=None,
            savings=_ZERO,
            final_total=cart_subtotal,
            cart_subtotal=cart_subtotal,
        )

    best_rule, best_savings = min(candidates, key=_selection_key)
    return EvaluationResult(
        selected_rule=best_rule,
        savings=best_savings,
        final_total=cart_subtotal - best_savings,
        cart_subtotal=cart_subtotal,
    )


def evaluate_cart(
    cart: CartSnapshot,
    candidate_rules: Iterable[DiscountRule],
    now: datetime,
) -> EvaluationResult:
    """evaluate() on a full cart: subtotal from its lines, scoping by its products."""

    return evaluate(cart.subtotal, candidate_rules, now, product_ids=cart.product_ids)


__all__ = [
    "EvaluationResult",
    "ValidationResult",
    "REASON_EXPIRED",
    "REASON_INACTIVE",
    "REASON_NOT_STARTED",
    "REASON_OUT_OF_SCOPE",
    "REASON_USAGE_LIMIT",
    "calculate_discount_amount",
    "evaluate",
    "evaluate_cart",
    "is_eligible",
    "minimum_purchase_reason",
]
