"""
Tests for `domain/discount.py`, `domain/cart.py` and `domain/money.py`.

Covers contract rules:
- DiscountRule validates kind, amounts, percentage range and date window.
- Codes are normalized to upper-case; product scope to numeric ids.
- DiscountRule is immutable (frozen).
- Cart subtotal is the sum of unit_price * quantity.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.cart import CartLine, CartSnapshot
from domain.discount import DiscountKind, DiscountRule, normalize_code, normalize_product_id
from domain.money import round_money, to_decimal


def _rule(**overrides) -> DiscountRule:
    fields = dict(discount_id="d-1", kind=DiscountKind.PERCENTAGE, value=Decimal("20"))
    fields.update(overrides)
    return DiscountRule(**fields)


def test_code_is_normalized_to_upper_case() -> None:
    assert _rule(code="  save20 ").code == "SAVE20"
    assert _rule(code="   ").code is None
    assert normalize_code(None) is None


def test_shopify_product_gid_is_reduced_to_numeric_id() -> None:
    assert normalize_product_id("gid://shopify/Product/123") == "123"
    assert normalize_product_id(" 456 ") == "456"

    rule = _rule(scope_product_ids=frozenset({"gid://shopify/Product/1", "2"}))
    assert rule.scope_product_ids == frozenset({"1", "2"})

    with pytest.raises(ValueError):
        normalize_product_id("  ")


def test_unknown_kind_is_rejected() -> None:
    with pytest.raises(ValueError):
        _rule(kind="bogo")


def test_percentage_over_100_is_rejected() -> None:
    with pytest.raises(ValueError):
        _rule(value=Decimal("100.01"))

    assert _rule(value=Decimal("100")).value == Decimal("100")
    # Fixed amounts have no upper bound.
    assert _rule(kind=DiscountKind.FIXED_AMOUNT, value=Decimal("250")).value == Decimal("250")


def test_negative_amounts_are_rejected() -> None:
    with pytest.raises(ValueError):
        _rule(value=Decimal("-1"))
    with pytest.raises(ValueError):
        _rule(min_purchase_amount=Decimal("-0.01"))
    with pytest.raises(ValueError):
        _rule(max_discount_amount=Decimal("-5"))


def test_float_amounts_are_rejected() -> None:
    with pytest.raises(ValueError):
        _rule(value=20.0)


@pytest.mark.parametrize("overrides", [
    {"value": None},
    {"priority": None},
    {"priority": "5"},
    {"priority": True},
    {"active": None},
    {"active": "yes"},
    {"usage_count": None},
    {"usage_limit": 1.5},
])
def test_wrongly_typed_fields_are_rejected(overrides) -> None:
    with pytest.raises(ValueError):
        _rule(**overrides)


def test_value_precision_is_limited_to_four_places() -> None:
    assert _rule(value=Decimal("12.3456")).value == Decimal("12.3456")

    with pytest.raises(ValueError):
        _rule(value=Decimal("12.34567"))
    with pytest.raises(ValueError):
        _rule(value=Decimal("NaN"))


def test_start_date_after_end_date_is_rejected() -> None:
    start = datetime(2025, 6, 1, tzinfo=timezone.utc)

    with pytest.raises(ValueError):
        _rule(start_date=start, end_date=start - timedelta(seconds=1))

    rule = _rule(start_date=start, end_date=start)
    assert rule.start_date == rule.end_date


def test_dates_must_be_utc() -> None:
    with pytest.raises(ValueError):
        _rule(start_date=datetime(2025, 1, 1))

    with pytest.raises(ValueError):
        _rule(end_date=datetime(2025, 1, 1, tzinfo=timezone(timedelta(hours=2))))


def test_usage_counters_must_be_non_negative() -> None:
    with pytest.raises(ValueError):
        _rule(usage_count=-1)
    with pytest.raises(ValueError):
        _rule(usage_limit=-1)


def test_usage_exhausted() -> None:
    assert not _rule().usage_exhausted()
    assert not _rule(usage_limit=2, usage_count=1).usage_exhausted()
    assert _rule(usage_limit=2, usage_count=2).usage_exhausted()
    assert _rule(usage_limit=0).usage_exhausted()


def test_store_wide_rule_applies_to_any_product() -> None:
    store_wide = _rule()
    scoped = _rule(scope_product_ids=frozenset({"1"}))

    assert store_wide.is_store_wide
    assert store_wide.applies_to_any(["99"])
    assert scoped.applies_to_any(["99", "1"])
    assert not scoped.applies_to_any(["99"])
    assert not scoped.applies_to_any([])


def test_discount_rule_is_immutable() -> None:
    rule = _rule()

    with pytest.raises(FrozenInstanceError):
        rule.value = Decimal("50")  # type: ignore[misc]


def test_cart_subtotal_sums_lines() -> None:
    cart = CartSnapshot(lines=[
        CartLine(product_id="gid://shopify/Product/1", unit_price=Decimal("29.99"), quantity=2),
        CartLine(product_id="2", unit_price=Decimal("49.99"), quantity=1),
    ])

    assert cart.subtotal == Decimal("109.97")
    assert cart.product_ids == frozenset({"1", "2"})
    assert cart.total_quantity == 3
    assert isinstance(cart.lines, tuple)


def test_empty_cart_has_zero_subtotal() -> None:
    assert CartSnapshot().subtotal == Decimal("0")


def test_cart_line_validation() -> None:
    with pytest.raises(ValueError):
        CartLine(product_id="1", unit_price=Decimal("-1"), quantity=1)
    with pytest.raises(ValueError):
        CartLine(product_id="1", unit_price=Decimal("1"), quantity=0)
    with pytest.raises(ValueError):
        CartLine(product_id="1", unit_price=Decimal("1"), quantity=True)


def test_to_decimal_goes_through_str() -> None:
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal("19.99") == Decimal("19.99")
    assert to_decimal(5) == Decimal("5")

    for bad in (None, True, "abc", float("nan"), float("inf")):
        with pytest.raises(ValueError):
            to_decimal(bad)


def test_round_money_rounds_half_up_to_cents() -> None:
    assert round_money(Decimal("2.345")) == Decimal("2.35")
    assert round_money(Decimal("2.344")) == Decimal("2.34")
    assert round_money(Decimal("5")) == Decimal("5.00")
