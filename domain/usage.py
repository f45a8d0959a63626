"""
Domain: Discount usage events.

A DiscountUsage is written once per successful application of a discount
(not per evaluation). Incrementing the rule's usage_count is a separate atomic
step performed by the storage layer; this module only captures the audit event.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class DiscountUsage:
    """
    Immutable audit record of one discount application.

    Captures:
    - Which rule was applied (discount_id)
    - Who applied it and where (customer_id, cart_id), when known
    - When it was applied (applied_at)
    - Cart value before the discount (order_value) and the amount taken off
    """

    usage_id: UUID
    discount_id: str
    applied_at: datetime
    order_value: Decimal
    discount_amount: Decimal
    customer_id: Optional[str] = None
    cart_id: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("applied_at", self.applied_at)
        if self.order_value < 0:
            raise ValueError("order_value must be >= 0")
        if self.discount_amount < 0:
            raise ValueError("discount_amount must be >= 0")
