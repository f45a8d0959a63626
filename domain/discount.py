"""
Domain: Discount rules.

A DiscountRule is one configured discount (percentage or fixed amount) plus the
constraints that decide when it may be applied:

- kind/value: percentage points in [0, 100], or a currency amount >= 0
- scope_product_ids: products the rule is restricted to; empty means store-wide
- min_purchase_amount: cart subtotal must meet or exceed it
- max_discount_amount: cap on the computed savings
- start_date/end_date: optional window, end_date None is open-ended
- usage_limit/usage_count: optional cap and running counter
- active: inactive rules are never eligible
- priority: higher is scanned first and wins ties on equal savings

Codes are matched case-insensitively and stored upper-cased.

This module contains only pure domain entities: no I/O, no database, no frameworks.
All timestamps must be UTC-aware.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from .time import require_utc_timestamp

_SHOPIFY_PRODUCT_GID_PREFIX = "gid://shopify/Product/"
_MAX_PERCENTAGE = Decimal("100")
# Matches NUMERIC(12, 4) on discounts.value
_VALUE_PLACES = 4


class DiscountKind(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed"


def normalize_code(code: Optional[str]) -> Optional[str]:
    """Strip and upper-case a discount code. Blank codes become None."""

    if code is None:
        return None
    normalized = code.strip().upper()
    return normalized or None


def normalize_product_id(product_id: str) -> str:
    """
    Reduce a Shopify product GID to its numeric id.

    "gid://shopify/Product/123" -> "123"; plain ids are returned stripped.
    """

    value = str(product_id).strip()
    if not value:
        raise ValueError("product_id must not be empty")
    if value.startswith(_SHOPIFY_PRODUCT_GID_PREFIX):
        value = value.rsplit("/", 1)[-1]
    return value


def normalize_product_ids(product_ids: Iterable[str]) -> FrozenSet[str]:
    return frozenset(normalize_product_id(pid) for pid in product_ids)


def _require_non_negative(name: str, value: Optional[Decimal]) -> None:
    if value is None:
        return
    if not isinstance(value, Decimal):
        raise ValueError(f"{name} must be a Decimal, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0")


def _require_int(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")


@dataclass(frozen=True, slots=True)
class DiscountRule:
    """
    Immutable discount configuration.

    Construction validates the rule so that the evaluator can rely on a
    well-formed input:
    - kind must be a DiscountKind (unknown kinds fail fast)
    - value, min_purchase_amount, max_discount_amount must be >= 0
    - percentage values must not exceed 100
    - value carries at most four decimal places
    - priority, usage_count and usage_limit are ints, active is a bool
    - start_date <= end_date when both are set
    - usage_count >= 0, usage_limit >= 0

    code is normalized to upper-case and scope_product_ids to a frozenset of
    numeric product ids.
    """

    discount_id: str
    kind: DiscountKind
    value: Decimal
    code: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    shop: Optional[str] = None
    scope_product_ids: FrozenSet[str] = field(default_factory=frozenset)
    min_purchase_amount: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    usage_limit: Optional[int] = None
    usage_count: int = 0
    active: bool = True
    priority: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.discount_id:
            raise ValueError("discount_id is required")
        if not isinstance(self.kind, DiscountKind):
            raise ValueError(f"Unknown discount kind: {self.kind!r}")

        if not isinstance(self.value, Decimal):
            raise ValueError(f"value must be a Decimal, got {type(self.value).__name__}")
        if not self.value.is_finite():
            raise ValueError("value must be a finite number")
        if self.value.as_tuple().exponent < -_VALUE_PLACES:
            raise ValueError(f"value supports at most {_VALUE_PLACES} decimal places")
        if not isinstance(self.active, bool):
            raise ValueError("active must be a boolean")
        _require_int("priority", self.priority)
        _require_int("usage_count", self.usage_count)
        if self.usage_limit is not None:
            _require_int("usage_limit", self.usage_limit)

        _require_non_negative("value", self.value)
        _require_non_negative("min_purchase_amount", self.min_purchase_amount)
        _require_non_negative("max_discount_amount", self.max_discount_amount)
        if self.kind is DiscountKind.PERCENTAGE and self.value > _MAX_PERCENTAGE:
            raise ValueError("Percentage value must be between 0 and 100")

        if self.start_date is not None:
            require_utc_timestamp("start_date", self.start_date)
        if self.end_date is not None:
            require_utc_timestamp("end_date", self.end_date)
        if self.start_date is not None and self.end_date is not None and self.start_date > self.end_date:
            raise ValueError("start_date must be <= end_date")
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

        if self.usage_count < 0:
            raise ValueError("usage_count must be >= 0")
        if self.usage_limit is not None and self.usage_limit < 0:
            raise ValueError("usage_limit must be >= 0")

        # frozen: normalized values are written through object.__setattr__
        object.__setattr__(self, "code", normalize_code(self.code))
        object.__setattr__(self, "scope_product_ids", normalize_product_ids(self.scope_product_ids))

    @property
    def is_store_wide(self) -> bool:
        return not self.scope_product_ids

    def applies_to_any(self, product_ids: Iterable[str]) -> bool:
        """True if the rule is store-wide or scoped to at least one of product_ids."""

        if self.is_store_wide:
            return True
        return any(pid in self.scope_product_ids for pid in product_ids)

    def usage_exhausted(self) -> bool:
        return self.usage_limit is not None and self.usage_count >= self.usage_limit


__all__ = [
    "DiscountKind",
    "DiscountRule",
    "normalize_code",
    "normalize_product_id",
    "normalize_product_ids",
]
