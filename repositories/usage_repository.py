"""
Discount usage repository (persistence).

Two operations back the application recorder:

- increment_usage_atomic(): calls the increment_discount_usage() PostgreSQL
  function, which performs "increment if usage_count < usage_limit" as a single
  conditional UPDATE. There is no read-then-write here; if two requests race
  for the last use, exactly one of them sees success.
- record_usage(): inserts the audit row for an application that went through.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional
from uuid import UUID, uuid4

from postgrest.exceptions import APIError

from domain.money import to_decimal
from domain.time import parse_utc_datetime, to_iso_utc
from domain.usage import DiscountUsage
from repositories.client import get_supabase

logger = logging.getLogger(__name__)

_USAGE_TABLE: str = "discount_usage"
_INCREMENT_RPC: str = "increment_discount_usage"

USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
NOT_FOUND = "NOT_FOUND"
RPC_ERROR = "RPC_ERROR"


@dataclass(frozen=True, slots=True)
class AtomicUsageResult:
    """Result from the increment_discount_usage PostgreSQL function."""
    success: bool
    usage_count: Optional[int]
    error_code: Optional[str]
    error_message: Optional[str]


def _result_from_payload(payload: Mapping[str, Any]) -> AtomicUsageResult:
    if payload.get("success"):
        count = payload.get("usage_count")
        return AtomicUsageResult(
            success=True,
            usage_count=int(count) if count is not None else None,
            error_code=None,
            error_message=None,
        )
    return AtomicUsageResult(
        success=False,
        usage_count=None,
        error_code=payload.get("error", RPC_ERROR),
        error_message=payload.get("message"),
    )


def increment_usage_atomic(discount_id: str) -> AtomicUsageResult:
    """
    Atomically consume one use of a discount.

    The database function locks nothing up front; it runs
        UPDATE discounts SET usage_count = usage_count + 1
        WHERE discount_id = p_discount_id
          AND (usage_limit IS NULL OR usage_count < usage_limit)
    and reports USAGE_LIMIT_REACHED when no row matched (NOT_FOUND when the
    discount does not exist at all).
    """

    try:
        response = get_supabase().rpc(_INCREMENT_RPC, {"p_discount_id": discount_id}).execute()
    except APIError as e:
        # supabase-py raises APIError when a PostgreSQL function returns a bare
        # JSON object, for success and error payloads alike.
        try:
            error_data = e.json() if callable(getattr(e, "json", None)) else {}
        except (TypeError, ValueError):
            error_data = {}

        if error_data.get("success") is not None:
            return _result_from_payload(error_data)

        logger.error(
            "Usage increment RPC failed",
            extra={"discount_id": discount_id, "error": str(e)},
        )
        return AtomicUsageResult(
            success=False,
            usage_count=None,
            error_code=RPC_ERROR,
            error_message=str(e),
        )

    error = getattr(response, "error", None)
    if error:
        return AtomicUsageResult(
            success=False,
            usage_count=None,
            error_code=RPC_ERROR,
            error_message=str(error),
        )

    data = getattr(response, "data", None)
    if isinstance(data, list):
        data = data[0] if data else {}
    return _result_from_payload(data or {})


def _row_to_usage(row: Mapping[str, Any]) -> DiscountUsage:
    """Convert a Supabase row into a DiscountUsage."""

    return DiscountUsage(
        usage_id=UUID(str(row["usage_id"])),
        discount_id=str(row["discount_id"]),
        applied_at=parse_utc_datetime(row["applied_at_utc"]),
        order_value=to_decimal(row["order_value"], name="order_value"),
        discount_amount=to_decimal(row.get("discount_amount", 0), name="discount_amount"),
        customer_id=row.get("customer_id"),
        cart_id=row.get("cart_id"),
    )


def record_usage(
    discount_id: str,
    applied_at: datetime,
    order_value: Decimal,
    discount_amount: Decimal,
    customer_id: Optional[str] = None,
    cart_id: Optional[str] = None,
) -> DiscountUsage:
    """
    Insert the audit record for one successful application.

    Returns:
        DiscountUsage domain model with the recorded usage
    """

    usage = DiscountUsage(
        usage_id=uuid4(),
        discount_id=discount_id,
        applied_at=applied_at,
        order_value=order_value,
        discount_amount=discount_amount,
        customer_id=customer_id,
        cart_id=cart_id,
    )

    payload: dict[str, Any] = {
        "usage_id": str(usage.usage_id),
        "discount_id": discount_id,
        "customer_id": customer_id,
        "cart_id": cart_id,
        "applied_at_utc": to_iso_utc(applied_at, name="applied_at"),
        "order_value": str(order_value),
        "discount_amount": str(discount_amount),
    }

    response = get_supabase().table(_USAGE_TABLE).insert(payload).execute()
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to record discount usage: {error}")

    return usage


def list_usage_by_discount(discount_id: str) -> List[DiscountUsage]:
    """
    Retrieve all usage records for a discount, most recent first.

    Returns:
        List[DiscountUsage] (possibly empty)
    """

    response = (
        get_supabase().table(_USAGE_TABLE)
        .select("*")
        .eq("discount_id", discount_id)
        .order("applied_at_utc", desc=True)
        .execute()
    )
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to list discount usage: {error}")

    rows = getattr(response, "data", None) or []
    return [_row_to_usage(row) for row in rows]


__all__ = [
    "AtomicUsageResult",
    "NOT_FOUND",
    "USAGE_LIMIT_REACHED",
    "increment_usage_atomic",
    "list_usage_by_discount",
    "record_usage",
]
