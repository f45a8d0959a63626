"""
Discount repository (persistence).

This module provides *only* persistence operations for the DiscountRule domain
entity. It contains no eligibility or scoring rules; it enforces simple
persistence constraints (code uniqueness, immutable usage_count on edits) and
converts rows to and from domain objects. Validation of the rule itself
happens in the DiscountRule constructor.

usage_count is never written from here. It is incremented only through the
atomic RPC in repositories/usage_repository.py.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional
from uuid import uuid4

from domain.discount import DiscountKind, DiscountRule, normalize_code
from domain.money import to_decimal
from domain.time import parse_utc_datetime, to_iso_utc, utc_now
from repositories.client import get_supabase

logger = logging.getLogger(__name__)

# Supabase table name for discount rules.
# Keep this aligned with migrations/001_discounts.sql.
_DISCOUNTS_TABLE: str = "discounts"

_UNIQUE_VIOLATION = "23505"

# Fields an admin edit may touch. usage_count belongs to the recorder.
_UPDATABLE_FIELDS = frozenset({
    "kind",
    "value",
    "code",
    "name",
    "description",
    "shop",
    "scope_product_ids",
    "min_purchase_amount",
    "max_discount_amount",
    "start_date",
    "end_date",
    "usage_limit",
    "active",
    "priority",
})


def _rows(response: Any, action: str) -> List[Mapping[str, Any]]:
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None) or []


def _optional_decimal(value: Any, name: str) -> Optional[Decimal]:
    if value is None:
        return None
    return to_decimal(value, name=name)


def _optional_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    return parse_utc_datetime(value)


def _parse_product_ids(value: Any) -> List[str]:
    """product_ids is a jsonb array; legacy rows hold a JSON-encoded string."""

    if value is None:
        return []
    if isinstance(value, str):
        value = json.loads(value) if value.strip() else []
    return [str(pid) for pid in value]


def _row_to_discount(row: Mapping[str, Any]) -> DiscountRule:
    """Convert a Supabase row into a DiscountRule."""

    return DiscountRule(
        discount_id=str(row["discount_id"]),
        kind=DiscountKind(str(row["discount_type"])),
        value=to_decimal(row["value"], name="value"),
        code=row.get("code"),
        name=row.get("name"),
        description=row.get("description"),
        shop=row.get("shop"),
        scope_product_ids=frozenset(_parse_product_ids(row.get("product_ids"))),
        min_purchase_amount=_optional_decimal(row.get("min_purchase_amount"), "min_purchase_amount"),
        max_discount_amount=_optional_decimal(row.get("max_discount_amount"), "max_discount_amount"),
        start_date=_optional_timestamp(row.get("start_date_utc")),
        end_date=_optional_timestamp(row.get("end_date_utc")),
        usage_limit=row.get("usage_limit"),
        usage_count=int(row.get("usage_count") or 0),
        active=bool(row.get("active", True)),
        priority=int(row.get("priority") or 0),
        created_at=_optional_timestamp(row.get("created_at_utc")),
        updated_at=_optional_timestamp(row.get("updated_at_utc")),
    )


def _discount_to_row(rule: DiscountRule) -> dict[str, Any]:
    """Serialize a DiscountRule into a Supabase payload."""

    def _money(value: Optional[Decimal]) -> Optional[str]:
        return str(value) if value is not None else None

    def _ts(value: Optional[datetime], name: str) -> Optional[str]:
        return to_iso_utc(value, name=name) if value is not None else None

    return {
        "discount_id": rule.discount_id,
        "discount_type": rule.kind.value,
        "value": str(rule.value),
        "code": rule.code,
        "name": rule.name,
        "description": rule.description,
        "shop": rule.shop,
        "product_ids": sorted(rule.scope_product_ids),
        "min_purchase_amount": _money(rule.min_purchase_amount),
        "max_discount_amount": _money(rule.max_discount_amount),
        "start_date_utc": _ts(rule.start_date, "start_date"),
        "end_date_utc": _ts(rule.end_date, "end_date"),
        "usage_limit": rule.usage_limit,
        "usage_count": rule.usage_count,
        "active": rule.active,
        "priority": rule.priority,
        "created_at_utc": _ts(rule.created_at, "created_at"),
        "updated_at_utc": _ts(rule.updated_at, "updated_at"),
    }


def _ensure_code_available(code: Optional[str], *, exclude_discount_id: Optional[str] = None) -> None:
    if code is None:
        return

    response = (
        get_supabase().table(_DISCOUNTS_TABLE)
        .select("discount_id")
        .eq("code", code)
        .limit(1)
        .execute()
    )
    rows = _rows(response, "check discount code uniqueness")
    if rows and str(rows[0]["discount_id"]) != exclude_discount_id:
        raise ValueError(f"Discount code already exists: {code}")


def create_discount(
    *,
    kind: DiscountKind,
    value: Decimal,
    code: Optional[str] = None,
    name: Optional[str] = None,
    description: Optional[str] = None,
    shop: Optional[str] = None,
    scope_product_ids: Iterable[str] = (),
    min_purchase_amount: Optional[Decimal] = None,
    max_discount_amount: Optional[Decimal] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    usage_limit: Optional[int] = None,
    active: bool = True,
    priority: int = 0,
) -> DiscountRule:
    """
    Insert a new discount rule.

    Enforces:
    - Rule validity (via the DiscountRule constructor)
    - Uniqueness of the normalized code, when present

    Returns:
        The stored DiscountRule with its generated discount_id

    Raises:
        ValueError: invalid rule or duplicate code
        RuntimeError: Supabase failure
    """

    now = utc_now()
    rule = DiscountRule(
        discount_id=str(uuid4()),
        kind=kind,
        value=value,
        code=code,
        name=name,
        description=description,
        shop=shop,
        scope_product_ids=frozenset(scope_product_ids),
        min_purchase_amount=min_purchase_amount,
        max_discount_amount=max_discount_amount,
        start_date=start_date,
        end_date=end_date,
        usage_limit=usage_limit,
        usage_count=0,
        active=active,
        priority=priority,
        created_at=now,
        updated_at=now,
    )

    # Proactive check for a clean, domain-friendly error.
    _ensure_code_available(rule.code)

    response = get_supabase().table(_DISCOUNTS_TABLE).insert(_discount_to_row(rule)).execute()
    error = getattr(response, "error", None)
    if error:
        # If the DB also enforces uniqueness, surface it as a ValueError.
        if str(getattr(error, "code", None)) == _UNIQUE_VIOLATION:
            raise ValueError(f"Discount code already exists: {rule.code}") from None
        raise RuntimeError(f"Failed to create discount: {error}")

    logger.info(
        "Discount created",
        extra={"discount_id": rule.discount_id, "code": rule.code, "kind": rule.kind.value},
    )
    return rule


def get_discount_by_id(discount_id: str) -> Optional[DiscountRule]:
    """
    Retrieve a single discount by its ID.

    Returns:
        DiscountRule or None if not found
    """

    response = (
        get_supabase().table(_DISCOUNTS_TABLE)
        .select("*")
        .eq("discount_id", discount_id)
        .limit(1)
        .execute()
    )
    rows = _rows(response, "get discount")
    if not rows:
        return None
    return _row_to_discount(rows[0])


def get_discount_by_code(code: str) -> Optional[DiscountRule]:
    """Retrieve a discount by its code (case-insensitive)."""

    normalized = normalize_code(code)
    if normalized is None:
        return None

    response = (
        get_supabase().table(_DISCOUNTS_TABLE)
        .select("*")
        .eq("code", normalized)
        .limit(1)
        .execute()
    )
    rows = _rows(response, "get discount by code")
    if not rows:
        return None
    return _row_to_discount(rows[0])


def list_discounts(skip: int = 0, take: int = 100, kind: Optional[DiscountKind] = None) -> List[DiscountRule]:
    """
    List discounts, newest first.

    Args:
        skip: Number of records to skip
        take: Number of records to return
        kind: Only return discounts of this kind
    """

    if skip < 0 or take <= 0:
        raise ValueError("skip must be >= 0 and take must be > 0")

    query = get_supabase().table(_DISCOUNTS_TABLE).select("*")
    if kind is not None:
        query = query.eq("discount_type", kind.value)

    response = query.order("created_at_utc", desc=True).range(skip, skip + take - 1).execute()
    return [_row_to_discount(row) for row in _rows(response, "list discounts")]


def list_active_discounts(shop: Optional[str] = None) -> List[DiscountRule]:
    """
    Candidate rules for evaluation: active only, highest priority first.

    Date windows, usage limits and thresholds are left to the evaluator so
    there is exactly one place that decides eligibility.
    """

    query = get_supabase().table(_DISCOUNTS_TABLE).select("*").eq("active", True)
    if shop is not None:
        query = query.eq("shop", shop)

    response = query.order("priority", desc=True).execute()
    return [_row_to_discount(row) for row in _rows(response, "list active discounts")]


def count_discounts() -> int:
    response = get_supabase().table(_DISCOUNTS_TABLE).select("discount_id", count="exact").execute()
    _rows(response, "count discounts")
    count = getattr(response, "count", None)
    return int(count or 0)


def update_discount(discount_id: str, changes: Mapping[str, Any]) -> Optional[DiscountRule]:
    """
    Apply an admin edit to a discount.

    The merged rule is rebuilt through the DiscountRule constructor, so an edit
    that would produce an invalid rule is rejected before anything is written.
    usage_count is never part of the update payload.

    Returns:
        The updated DiscountRule, or None if the discount does not exist

    Raises:
        ValueError: unknown/forbidden field, invalid result, or duplicate code
    """

    unknown = set(changes) - _UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    existing = get_discount_by_id(discount_id)
    if existing is None:
        return None

    updated = replace(existing, **dict(changes), updated_at=utc_now())
    if updated.code != existing.code:
        _ensure_code_available(updated.code, exclude_discount_id=discount_id)

    payload = _discount_to_row(updated)
    for key in ("discount_id", "usage_count", "created_at_utc"):
        payload.pop(key)

    response = (
        get_supabase().table(_DISCOUNTS_TABLE)
        .update(payload)
        .eq("discount_id", discount_id)
        .execute()
    )
    rows = _rows(response, "update discount")
    if not rows:
        return None

    logger.info("Discount updated", extra={"discount_id": discount_id, "fields": sorted(changes)})
    return _row_to_discount(rows[0])


def delete_discount(discount_id: str) -> bool:
    """Delete a discount. Returns False if it did not exist."""

    response = (
        get_supabase().table(_DISCOUNTS_TABLE)
        .delete()
        .eq("discount_id", discount_id)
        .execute()
    )
    rows = _rows(response, "delete discount")
    if rows:
        logger.info("Discount deleted", extra={"discount_id": discount_id})
    return bool(rows)


__all__ = [
    "count_discounts",
    "create_discount",
    "delete_discount",
    "get_discount_by_code",
    "get_discount_by_id",
    "list_active_discounts",
    "list_discounts",
    "update_discount",
]
