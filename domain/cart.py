"""
Domain: Cart snapshots.

A CartSnapshot is ephemeral input to discount evaluation. It is never persisted
and never mutated by the evaluator.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import FrozenSet, Tuple

from .discount import normalize_product_id


@dataclass(frozen=True, slots=True)
class CartLine:
    """One cart line: product, unit price (>= 0) and quantity (> 0)."""

    product_id: str
    unit_price: Decimal
    quantity: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "product_id", normalize_product_id(self.product_id))
        if not isinstance(self.unit_price, Decimal):
            raise ValueError("unit_price must be a Decimal")
        if self.unit_price < 0:
            raise ValueError("unit_price must be >= 0")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValueError("quantity must be a positive integer")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True, slots=True)
class CartSnapshot:
    lines: Tuple[CartLine, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))

    @property
    def subtotal(self) -> Decimal:
        """Sum of unit_price * quantity over all lines."""

        return sum((line.line_total for line in self.lines), Decimal("0"))

    @property
    def product_ids(self) -> FrozenSet[str]:
        return frozenset(line.product_id for line in self.lines)

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)


__all__ = ["CartLine", "CartSnapshot"]
