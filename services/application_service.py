"""
Application service for customer-entered discount codes.

Handles:
- Code lookup (case-insensitive)
- User-facing validation with ordered reasons
- Savings calculation through the shared evaluator
- Atomic usage consumption via increment_discount_usage()
- Audit record of the application

Validation here is advisory: the usage limit is only truly enforced by the
atomic increment. If two customers race for the last use, both may pass
validate_discount(), but only one increment succeeds; the other is reported
as "Discount has reached usage limit".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from domain.cart import CartLine
from domain.discount import DiscountRule
from domain.evaluation import REASON_USAGE_LIMIT, calculate_discount_amount, validate_discount
from domain.time import require_utc_timestamp, utc_now
from repositories.discount_repository import get_discount_by_code
from repositories.usage_repository import (
    NOT_FOUND as RPC_NOT_FOUND,
    USAGE_LIMIT_REACHED as RPC_USAGE_LIMIT_REACHED,
    increment_usage_atomic,
    record_usage,
)

logger = logging.getLogger(__name__)

# Error codes surfaced to callers
INVALID_REQUEST = "INVALID_REQUEST"
NOT_FOUND = "NOT_FOUND"
INVALID_DISCOUNT = "INVALID_DISCOUNT"
USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"

REASON_NO_SAVINGS = "Discount does not reduce this cart total"


@dataclass(frozen=True, slots=True)
class ApplyDiscountRequest:
    """
    Request to apply a discount code to a cart.

    cart_items is optional; when present it enables the product scope check.
    """
    discount_code: str
    cart_total: Decimal
    cart_items: List[CartLine] = field(default_factory=list)
    customer_id: Optional[str] = None
    cart_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ApplyDiscountResult:
    """
    Result of an application attempt.

    success: True if the discount was applied and its use recorded
    discount: The applied rule (None on failure)
    discount_amount: Amount taken off the cart
    final_total: cart_total - discount_amount
    error_code/error_message: Set when success is False
    """
    success: bool
    discount: Optional[DiscountRule] = None
    discount_amount: Decimal = Decimal("0")
    final_total: Optional[Decimal] = None
    usage_count: Optional[int] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


def _failure(code: str, message: str) -> ApplyDiscountResult:
    return ApplyDiscountResult(success=False, error_code=code, error_message=message)


def apply_discount_code(request: ApplyDiscountRequest, now: Optional[datetime] = None) -> ApplyDiscountResult:
    """
    Apply a discount code and consume one use of it.

    Process:
    1. Look up the discount by its normalized code
    2. Validate it against the cart (first failing reason wins)
    3. Calculate the savings; a code that saves nothing is rejected unconsumed
    4. Atomically consume one use (conditional increment)
    5. Record the usage audit row

    Args:
        request: ApplyDiscountRequest with code, cart total and context
        now: Evaluation time (defaults to the current UTC time)

    Returns:
        ApplyDiscountResult describing success or the failure reason

    Example:
        result = apply_discount_code(ApplyDiscountRequest(discount_code="SAVE20", cart_total=Decimal("100")))
        if result.success:
            print(f"Saved ${result.discount_amount}, pay ${result.final_total}")
        else:
            print(f"Rejected: {result.error_message}")
    """
    now = now or utc_now()
    require_utc_timestamp("now", now)

    if not request.discount_code or not request.discount_code.strip():
        return _failure(INVALID_REQUEST, "Discount code is required")
    if request.cart_total < 0:
        return _failure(INVALID_REQUEST, "Cart total must be >= 0")

    # 1. Look up
    rule = get_discount_by_code(request.discount_code)
    if rule is None:
        logger.warning("Unknown discount code", extra={"discount_code": request.discount_code})
        return _failure(NOT_FOUND, "Invalid discount code")

    # 2. Validate
    product_ids = [line.product_id for line in request.cart_items] if request.cart_items else None
    validation = validate_discount(rule, request.cart_total, now, product_ids)
    if not validation.valid:
        logger.info(
            "Discount code rejected",
            extra={"discount_id": rule.discount_id, "reason": validation.reason},
        )
        return _failure(INVALID_DISCOUNT, validation.reason or "Discount is not valid")

    # 3. Savings
    discount_amount = calculate_discount_amount(rule, request.cart_total)
    final_total = request.cart_total - discount_amount
    if discount_amount <= 0:
        logger.info("Discount code saves nothing", extra={"discount_id": rule.discount_id})
        return _failure(INVALID_DISCOUNT, REASON_NO_SAVINGS)

    # 4. Consume one use. The database decides; the earlier read is not trusted.
    increment = increment_usage_atomic(rule.discount_id)
    if not increment.success:
        if increment.error_code == RPC_USAGE_LIMIT_REACHED:
            logger.warning(
                "Usage limit reached at increment time",
                extra={"discount_id": rule.discount_id, "usage_limit": rule.usage_limit},
            )
            return _failure(USAGE_LIMIT_REACHED, REASON_USAGE_LIMIT)
        if increment.error_code == RPC_NOT_FOUND:
            return _failure(NOT_FOUND, "Invalid discount code")
        raise RuntimeError(
            f"Failed to consume discount usage: {increment.error_code} {increment.error_message}"
        )

    # 5. Audit
    record_usage(
        discount_id=rule.discount_id,
        applied_at=now,
        order_value=request.cart_total,
        discount_amount=discount_amount,
        customer_id=request.customer_id,
        cart_id=request.cart_id,
    )

    logger.info(
        "Discount applied",
        extra={
            "discount_id": rule.discount_id,
            "code": rule.code,
            "discount_amount": str(discount_amount),
            "usage_count": increment.usage_count,
        },
    )

    return ApplyDiscountResult(
        success=True,
        discount=rule,
        discount_amount=discount_amount,
        final_total=final_total,
        usage_count=increment.usage_count,
    )


__all__ = [
    "ApplyDiscountRequest",
    "ApplyDiscountResult",
    "INVALID_DISCOUNT",
    "INVALID_REQUEST",
    "NOT_FOUND",
    "REASON_NO_SAVINGS",
    "USAGE_LIMIT_REACHED",
    "apply_discount_code",
]
