"""
Discount Admin API Endpoints.

CRUD over discount rules for the merchant admin. Usage counts are read-only
here; they only move when a code is applied at checkout.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Response

from api.models import (
    DiscountCreateRequest,
    DiscountListResponse,
    DiscountResponse,
    DiscountUpdateRequest,
    DiscountUsageResponse,
)
from domain.discount import DiscountKind, DiscountRule
from domain.time import parse_utc_datetime
from repositories.discount_repository import (
    count_discounts,
    create_discount,
    delete_discount,
    get_discount_by_id,
    list_discounts,
    update_discount,
)
from repositories.usage_repository import list_usage_by_discount

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(rule: DiscountRule) -> DiscountResponse:
    return DiscountResponse(
        id=rule.discount_id,
        kind=rule.kind.value,
        value=rule.value,
        code=rule.code,
        name=rule.name,
        description=rule.description,
        shop=rule.shop,
        product_ids=sorted(rule.scope_product_ids),
        min_purchase_amount=rule.min_purchase_amount,
        max_discount_amount=rule.max_discount_amount,
        start_date=rule.start_date,
        end_date=rule.end_date,
        usage_limit=rule.usage_limit,
        usage_count=rule.usage_count,
        active=rule.active,
        priority=rule.priority,
        created_at=rule.created_at,
        updated_at=rule.updated_at,
    )


def _domain_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Map request field names onto DiscountRule field names."""

    if "product_ids" in fields:
        fields["scope_product_ids"] = frozenset(fields.pop("product_ids") or ())
    for key in ("start_date", "end_date"):
        if fields.get(key) is not None:
            fields[key] = parse_utc_datetime(fields[key])
    return fields


def _get_or_404(discount_id: str) -> DiscountRule:
    rule = get_discount_by_id(discount_id)
    if rule is None:
        raise HTTPException(status_code=404, detail=f"Discount {discount_id} not found")
    return rule


@router.get(
    "/discounts",
    response_model=DiscountListResponse,
    summary="List Discounts",
    description="List discount rules, newest first."
)
def get_discounts(
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    take: int = Query(100, gt=0, le=500, description="Number of records to return"),
    kind: Optional[DiscountKind] = Query(None, alias="type", description="Filter by discount type"),
):
    """
    List discount rules.

    **Example usage:**
    - `GET /api/v1/discounts`
    - `GET /api/v1/discounts?type=percentage&skip=0&take=20`
    """
    try:
        rules = list_discounts(skip=skip, take=take, kind=kind)
        total = count_discounts()
    except Exception as e:
        logger.exception("Failed to list discounts")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch discounts: {str(e)}"
        )

    return DiscountListResponse(
        discounts=[_to_response(rule) for rule in rules],
        count=len(rules),
        total=total,
    )


@router.post(
    "/discounts",
    response_model=DiscountResponse,
    status_code=201,
    summary="Create Discount",
    description="Create a percentage or fixed-amount discount rule."
)
def post_discount(request: DiscountCreateRequest):
    """
    Create a discount rule.

    Codes are stored uppercase and must be unique. An empty `productIds` list
    makes the discount store-wide.

    **Error codes:**
    - 400: invalid rule (e.g. percentage over 100, start after end) or duplicate code
    - 500: database failure
    """
    try:
        rule = create_discount(**_domain_fields(request.model_dump()))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to create discount")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to create discount: {str(e)}"
        )

    return _to_response(rule)


@router.get(
    "/discounts/{discount_id}",
    response_model=DiscountResponse,
    summary="Get Discount"
)
def get_discount(discount_id: str):
    try:
        rule = _get_or_404(discount_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to fetch discount", extra={"discount_id": discount_id})
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch discount: {str(e)}"
        )

    return _to_response(rule)


@router.patch(
    "/discounts/{discount_id}",
    response_model=DiscountResponse,
    summary="Update Discount",
    description="Partially update a discount rule. usageCount cannot be changed."
)
def patch_discount(discount_id: str, request: DiscountUpdateRequest):
    """
    Update the fields present in the request body.

    **Error codes:**
    - 400: the edit would make the rule invalid, or the code is taken
    - 404: unknown discount
    """
    changes = _domain_fields(request.model_dump(exclude_unset=True))

    try:
        rule = update_discount(discount_id, changes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to update discount", extra={"discount_id": discount_id})
        raise HTTPException(
            status_code=500,
            detail=f"Failed to update discount: {str(e)}"
        )

    if rule is None:
        raise HTTPException(status_code=404, detail=f"Discount {discount_id} not found")

    return _to_response(rule)


@router.delete(
    "/discounts/{discount_id}",
    status_code=204,
    summary="Delete Discount"
)
def remove_discount(discount_id: str):
    try:
        deleted = delete_discount(discount_id)
    except Exception as e:
        logger.exception("Failed to delete discount", extra={"discount_id": discount_id})
        raise HTTPException(
            status_code=500,
            detail=f"Failed to delete discount: {str(e)}"
        )

    if not deleted:
        raise HTTPException(status_code=404, detail=f"Discount {discount_id} not found")

    return Response(status_code=204)


@router.get(
    "/discounts/{discount_id}/usage",
    response_model=List[DiscountUsageResponse],
    summary="Discount Usage History",
    description="Applications recorded for a discount, newest first."
)
def get_discount_usage(discount_id: str):
    try:
        _get_or_404(discount_id)
        usages = list_usage_by_discount(discount_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Failed to fetch discount usage", extra={"discount_id": discount_id})
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch usage: {str(e)}"
        )

    return [
        DiscountUsageResponse(
            id=str(usage.usage_id),
            discount_id=usage.discount_id,
            customer_id=usage.customer_id,
            cart_id=usage.cart_id,
            applied_at=usage.applied_at,
            order_value=usage.order_value,
            discount_amount=usage.discount_amount,
        )
        for usage in usages
    ]
