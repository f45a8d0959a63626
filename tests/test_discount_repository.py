"""
Tests for `repositories/discount_repository.py` and `repositories/usage_repository.py`.

Runs against the in-memory Supabase stand-in from conftest.py.

Covers contract rules:
- Codes are stored normalized and must be unique.
- Rows round-trip into DiscountRule with Decimal amounts and UTC timestamps.
- usage_count cannot be edited and is only moved by the atomic increment.
- The increment refuses to go past usage_limit.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from domain.discount import DiscountKind
from repositories import usage_repository
from repositories.discount_repository import (
    count_discounts,
    create_discount,
    delete_discount,
    get_discount_by_code,
    get_discount_by_id,
    list_active_discounts,
    list_discounts,
    update_discount,
)
from repositories.usage_repository import (
    NOT_FOUND,
    RPC_ERROR,
    USAGE_LIMIT_REACHED,
    increment_usage_atomic,
    list_usage_by_discount,
    record_usage,
)


def test_create_and_fetch_by_code_is_case_insensitive(fake_supabase) -> None:
    created = create_discount(
        kind=DiscountKind.PERCENTAGE,
        value=Decimal("20"),
        code="save20",
        scope_product_ids=["gid://shopify/Product/7"],
        max_discount_amount=Decimal("5.50"),
    )

    stored = fake_supabase.tables["discounts"][0]
    assert stored["code"] == "SAVE20"
    assert stored["product_ids"] == ["7"]
    assert stored["value"] == "20"
    assert stored["usage_count"] == 0

    fetched = get_discount_by_code("  Save20 ")
    assert fetched is not None
    assert fetched.discount_id == created.discount_id
    assert fetched.max_discount_amount == Decimal("5.50")
    assert fetched.scope_product_ids == frozenset({"7"})
    assert fetched.created_at is not None and fetched.created_at.tzinfo is not None


def test_duplicate_code_is_rejected(fake_supabase) -> None:
    create_discount(kind=DiscountKind.FIXED_AMOUNT, value=Decimal("5"), code="WELCOME")

    with pytest.raises(ValueError):
        create_discount(kind=DiscountKind.FIXED_AMOUNT, value=Decimal("10"), code="welcome")

    assert len(fake_supabase.tables["discounts"]) == 1


def test_invalid_rule_is_not_written(fake_supabase) -> None:
    with pytest.raises(ValueError):
        create_discount(kind=DiscountKind.PERCENTAGE, value=Decimal("150"))

    assert fake_supabase.tables.get("discounts", []) == []


def test_unknown_code_returns_none(fake_supabase) -> None:
    assert get_discount_by_code("NOPE") is None
    assert get_discount_by_code("   ") is None
    assert get_discount_by_id("missing") is None


def test_legacy_json_string_product_ids_are_parsed(fake_supabase) -> None:
    fake_supabase.tables["discounts"] = [{
        "discount_id": "legacy",
        "discount_type": "fixed",
        "value": 5,
        "code": "OLD",
        "product_ids": '["1", "2"]',
        "start_date_utc": "2025-01-01T00:00:00Z",
        "usage_count": 0,
        "active": True,
        "priority": 0,
    }]

    rule = get_discount_by_id("legacy")

    assert rule.scope_product_ids == frozenset({"1", "2"})
    assert rule.value == Decimal("5")
    assert rule.start_date == datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_list_active_discounts_filters_and_orders(fake_supabase) -> None:
    create_discount(kind=DiscountKind.FIXED_AMOUNT, value=Decimal("1"), name="low", priority=1)
    create_discount(kind=DiscountKind.FIXED_AMOUNT, value=Decimal("2"), name="high", priority=9)
    create_discount(kind=DiscountKind.FIXED_AMOUNT, value=Decimal("3"), name="off", active=False)
    create_discount(kind=DiscountKind.FIXED_AMOUNT, value=Decimal("4"), name="other shop", shop="b.myshopify.com")

    assert [rule.name for rule in list_active_discounts()] == ["high", "low", "other shop"]
    assert [rule.name for rule in list_active_discounts(shop="b.myshopify.com")] == ["other shop"]


def test_list_discounts_pages_and_filters_by_kind(fake_supabase) -> None:
    for i in range(3):
        create_discount(kind=DiscountKind.FIXED_AMOUNT, value=Decimal(i + 1))
    create_discount(kind=DiscountKind.PERCENTAGE, value=Decimal("10"))

    assert len(list_discounts(skip=0, take=2)) == 2
    assert len(list_discounts(skip=2, take=10)) == 2
    assert [rule.kind for rule in list_discounts(kind=DiscountKind.PERCENTAGE)] == [DiscountKind.PERCENTAGE]
    assert count_discounts() == 4

    with pytest.raises(ValueError):
        list_discounts(skip=-1)


def test_update_discount_rebuilds_and_validates(fake_supabase) -> None:
    rule = create_discount(kind=DiscountKind.PERCENTAGE, value=Decimal("10"), code="TEN")

    updated = update_discount(rule.discount_id, {"value": Decimal("15"), "code": "fifteen"})

    assert updated.value == Decimal("15")
    assert updated.code == "FIFTEEN"
    assert get_discount_by_code("TEN") is None

    with pytest.raises(ValueError):
        update_discount(rule.discount_id, {"value": Decimal("101")})

    assert get_discount_by_id(rule.discount_id).value == Decimal("15")


def test_update_cannot_touch_usage_count(fake_supabase) -> None:
    rule = create_discount(kind=DiscountKind.FIXED_AMOUNT, value=Decimal("5"))

    with pytest.raises(ValueError):
        update_discount(rule.discount_id, {"usage_count": 0})


def test_update_rejects_taken_code(fake_supabase) -> None:
    create_discount(kind=DiscountKind.FIXED_AMOUNT, value=Decimal("5"), code="TAKEN")
    other = create_discount(kind=DiscountKind.FIXED_AMOUNT, value=Decimal("5"), code="MINE")

    with pytest.raises(ValueError):
        update_discount(other.discount_id, {"code": "taken"})


def test_update_unknown_discount_returns_none(fake_supabase) -> None:
    assert update_discount("missing", {"active": False}) is None


def test_delete_discount(fake_supabase) -> None:
    rule = create_discount(kind=DiscountKind.FIXED_AMOUNT, value=Decimal("5"))

    assert delete_discount(rule.discount_id) is True
    assert delete_discount(rule.discount_id) is False
    assert get_discount_by_id(rule.discount_id) is None


def test_supabase_error_is_raised(monkeypatch) -> None:
    client = MagicMock()
    client.table.return_value.select.return_value.eq.return_value.limit.return_value.execute.return_value = (
        MagicMock(error="connection refused", data=None)
    )
    monkeypatch.setattr("repositories.discount_repository.get_supabase", lambda: client)

    with pytest.raises(RuntimeError):
        get_discount_by_id("d-1")


# ============================================================================
# Usage
# ============================================================================

def test_increment_stops_at_usage_limit(fake_supabase) -> None:
    rule = create_discount(kind=DiscountKind.FIXED_AMOUNT, value=Decimal("5"), usage_limit=2)

    first = increment_usage_atomic(rule.discount_id)
    second = increment_usage_atomic(rule.discount_id)
    third = increment_usage_atomic(rule.discount_id)

    assert (first.success, first.usage_count) == (True, 1)
    assert (second.success, second.usage_count) == (True, 2)
    assert not third.success
    assert third.error_code == USAGE_LIMIT_REACHED
    assert get_discount_by_id(rule.discount_id).usage_count == 2


def test_increment_unknown_discount(fake_supabase) -> None:
    result = increment_usage_atomic("missing")

    assert not result.success
    assert result.error_code == NOT_FOUND


def test_increment_reads_payload_from_api_error(monkeypatch) -> None:
    client = MagicMock()
    client.rpc.return_value.execute.side_effect = APIError({"success": True, "usage_count": 3})
    monkeypatch.setattr(usage_repository, "get_supabase", lambda: client)

    result = increment_usage_atomic("d-1")

    assert result.success
    assert result.usage_count == 3


def test_increment_reports_rpc_failure(monkeypatch) -> None:
    client = MagicMock()
    client.rpc.return_value.execute.side_effect = APIError({"message": "function does not exist", "code": "42883"})
    monkeypatch.setattr(usage_repository, "get_supabase", lambda: client)

    result = increment_usage_atomic("d-1")

    assert not result.success
    assert result.error_code == RPC_ERROR


def test_record_and_list_usage(fake_supabase) -> None:
    applied_at = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    usage = record_usage(
        discount_id="d-1",
        applied_at=applied_at,
        order_value=Decimal("100.00"),
        discount_amount=Decimal("20.00"),
        customer_id="c-1",
        cart_id="cart-1",
    )

    stored = fake_supabase.tables["discount_usage"][0]
    assert stored["order_value"] == "100.00"
    assert stored["applied_at_utc"] == "2025-06-01T12:00:00+00:00"

    usages = list_usage_by_discount("d-1")
    assert len(usages) == 1
    assert usages[0].usage_id == usage.usage_id
    assert usages[0].discount_amount == Decimal("20.00")
    assert usages[0].customer_id == "c-1"
    assert list_usage_by_discount("d-2") == []
