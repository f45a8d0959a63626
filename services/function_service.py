"""
Shopify Function runner for automatic product discounts.

At checkout Shopify runs the product discount function with the cart lines
and the function's configuration metafield. The configuration holds a list of
discount rules in the admin's camelCase shape:

    {"discounts": [{"id": "...", "name": "Summer", "type": "percentage",
                    "value": 20, "productIds": ["123"], "priority": 1}]}

Each ProductVariant line is evaluated on its unit price through the shared
evaluator, and the result is expressed the way Shopify expects it: a
percentage off the targeted cart line.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from domain.discount import DiscountKind, DiscountRule, normalize_product_id
from domain.evaluation import evaluate
from domain.money import to_decimal
from domain.time import parse_utc_datetime, utc_now

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Product Discount"
_PERCENT_PLACES = Decimal("0.0001")


def _optional_amount(entry: Mapping[str, Any], key: str) -> Optional[Decimal]:
    value = entry.get(key)
    if value is None:
        return None
    return to_decimal(value, name=key)


def _rule_from_config(entry: Mapping[str, Any], index: int) -> DiscountRule:
    """Build a DiscountRule from one configuration entry."""

    if not isinstance(entry, Mapping):
        raise ValueError(f"Discount configuration #{index} must be an object")

    try:
        kind = DiscountKind(entry.get("type"))
    except ValueError:
        raise ValueError(
            f"Discount configuration #{index} has invalid type {entry.get('type')!r}; "
            f"expected 'percentage' or 'fixed'"
        ) from None

    if "value" not in entry:
        raise ValueError(f"Discount configuration #{index} is missing 'value'")

    start = entry.get("startDate")
    end = entry.get("endDate")

    return DiscountRule(
        discount_id=str(entry.get("id") or f"config-{index}"),
        kind=kind,
        value=to_decimal(entry["value"], name="value"),
        code=entry.get("code"),
        name=entry.get("name"),
        scope_product_ids=frozenset(str(pid) for pid in entry.get("productIds") or ()),
        min_purchase_amount=_optional_amount(entry, "minPurchaseAmount"),
        max_discount_amount=_optional_amount(entry, "maxDiscountAmount"),
        start_date=parse_utc_datetime(start) if start else None,
        end_date=parse_utc_datetime(end) if end else None,
        active=bool(entry.get("active", True)),
        priority=int(entry.get("priority") or 0),
    )


def parse_function_configuration(function_input: Mapping[str, Any]) -> List[DiscountRule]:
    """
    Read the discount rules from discountNode.metafield.value.

    A missing metafield means "no discounts configured" and yields an empty list.
    """

    metafield = ((function_input.get("discountNode") or {}).get("metafield") or {})
    raw = metafield.get("value") or "{}"

    if not isinstance(raw, str):
        raise ValueError("Function configuration must be a JSON string")
    try:
        configuration = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Function configuration is not valid JSON: {e}") from None

    if not isinstance(configuration, Mapping):
        raise ValueError("Function configuration must be a JSON object")
    entries = configuration.get("discounts") or []
    if not isinstance(entries, list):
        raise ValueError("Function configuration 'discounts' must be a list")
    return [_rule_from_config(entry, index) for index, entry in enumerate(entries)]


def _variant_product_and_price(line: Mapping[str, Any], merchandise: Mapping[str, Any]):
    try:
        product_id = merchandise["product"]["id"]
        amount = merchandise["price"]["amount"]
    except (KeyError, TypeError):
        raise ValueError(f"Cart line {line.get('id')!r} is missing its product id or price") from None
    if "id" not in line:
        raise ValueError("Cart line is missing its id")
    return normalize_product_id(product_id), to_decimal(amount, name="price")


def _percentage_of(price: Decimal, amount: Decimal) -> str:
    percentage = (amount / price * 100).quantize(_PERCENT_PLACES).normalize()
    return format(percentage, "f")


def run_product_discount_function(
    function_input: Mapping[str, Any],
    now: Optional[datetime] = None,
) -> Dict[str, List[Any]]:
    """
    Compute the Shopify Function output for a cart.

    Args:
        function_input: Function input (cart lines + discountNode metafield)
        now: Evaluation time (defaults to the current UTC time)

    Returns:
        {"discounts": [...]} with one percentage discount per discounted line
    """
    rules = parse_function_configuration(function_input)
    if not rules:
        logger.info("No discounts configured")
        return {"discounts": []}

    now = now or utc_now()
    discounts: List[Dict[str, Any]] = []

    for line in (function_input.get("cart") or {}).get("lines") or []:
        if not isinstance(line, Mapping):
            raise ValueError("Cart line must be an object")
        merchandise = line.get("merchandise") or {}
        if merchandise.get("__typename") != "ProductVariant":
            continue

        product_id, price = _variant_product_and_price(line, merchandise)
        if price <= 0:
            continue

        result = evaluate(price, rules, now, product_ids=[product_id])
        if not result.applied:
            continue

        discounts.append({
            "targets": [{"cartLine": {"id": line["id"]}}],
            "value": {"percentage": {"value": _percentage_of(price, result.savings)}},
            "message": result.selected_rule.name or DEFAULT_MESSAGE,
        })

    return {"discounts": discounts}


__all__ = [
    "parse_function_configuration",
    "run_product_discount_function",
]
