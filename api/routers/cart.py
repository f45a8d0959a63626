"""
Cart Discount API Endpoints.

Storefront/checkout-facing endpoints: apply a discount code, find the best
automatic discount, price cart lines, and the product discount proxy.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from api.models import (
    ApplyDiscountRequest as APIApplyDiscountRequest,
    ApplyDiscountResponse,
    AvailableDiscount,
    AvailableDiscountRequest,
    AvailableDiscountResponse,
    CartItem,
    CartLineResponse,
    CartPricingRequest,
    CartPricingResponse,
    CartTotals,
    DiscountSummary,
    DisplayPriceResponse,
    LineDiscount,
    ProductDiscountResponse,
)
from domain.cart import CartLine, CartSnapshot
from domain.discount import DiscountRule
from domain.money import round_money
from services.application_service import (
    NOT_FOUND,
    ApplyDiscountRequest,
    apply_discount_code,
)
from services.cart_pricing_service import price_cart_for_shop
from services.discount_service import find_best_discount, find_product_discount, find_product_rule
from services.display_service import calculate_display_price, discount_message

logger = logging.getLogger(__name__)

router = APIRouter()

_NO_CONTENT_HEADERS = {
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "86400",
}


def _preflight() -> Response:
    return Response(status_code=204, headers=_NO_CONTENT_HEADERS)


def _to_cart(items: List[CartItem]) -> CartSnapshot:
    try:
        return CartSnapshot(lines=tuple(
            CartLine(product_id=item.product_id, unit_price=item.price, quantity=item.quantity)
            for item in items
        ))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid cart: {str(e)}")


def _summary(rule: DiscountRule) -> DiscountSummary:
    return DiscountSummary(
        id=rule.discount_id,
        code=rule.code,
        kind=rule.kind.value,
        value=rule.value,
        name=rule.name,
        description=rule.description,
    )


def _json(status_code: int, body: ApplyDiscountResponse) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


@router.options("/discounts/apply", include_in_schema=False)
def apply_discount_preflight():
    return _preflight()


@router.post(
    "/discounts/apply",
    response_model=ApplyDiscountResponse,
    summary="Apply Discount Code",
    description="Validate a customer-entered discount code, apply it to the cart total and record its use."
)
def apply_discount(request: APIApplyDiscountRequest):
    """
    Apply a discount code to a cart.

    **Status codes:**
    - 200: applied
    - 400: inactive, not started, expired, usage limit reached, or minimum purchase not met
    - 404: unknown code
    - 500: unexpected failure

    **Example request:**
    ```json
    {"discountCode": "save20", "cartTotal": 100.00, "customerId": "c-1", "cartId": "cart-1"}
    ```

    **Success response:**
    ```json
    {
      "success": true,
      "discount": {"id": "d-1", "code": "SAVE20", "type": "percentage", "value": "20"},
      "discountAmount": "20.00",
      "originalTotal": "100.00",
      "finalTotal": "80.00"
    }
    ```
    """
    try:
        result = apply_discount_code(ApplyDiscountRequest(
            discount_code=request.discount_code,
            cart_total=request.cart_total,
            cart_items=[
                CartLine(product_id=item.product_id, unit_price=item.price, quantity=item.quantity)
                for item in request.cart_items
            ],
            customer_id=request.customer_id,
            cart_id=request.cart_id,
        ))
    except ValueError as e:
        return _json(400, ApplyDiscountResponse(success=False, error=str(e)))
    except Exception:
        logger.exception("Failed to apply discount", extra={"discount_code": request.discount_code})
        return _json(500, ApplyDiscountResponse(success=False, error="Failed to apply discount"))

    if not result.success:
        status_code = 404 if result.error_code == NOT_FOUND else 400
        return _json(status_code, ApplyDiscountResponse(success=False, error=result.error_message))

    return _json(200, ApplyDiscountResponse(
        success=True,
        discount=_summary(result.discount),
        discount_amount=round_money(result.discount_amount),
        original_total=round_money(request.cart_total),
        final_total=round_money(result.final_total),
    ))


@router.options("/discounts/available", include_in_schema=False)
def available_discount_preflight():
    return _preflight()


@router.post(
    "/discounts/available",
    response_model=AvailableDiscountResponse,
    summary="Best Available Discount",
    description="Find the automatic discount that saves the most on the given cart. Does not consume usage."
)
def available_discount(request: AvailableDiscountRequest):
    """
    Return the best automatic discount for a cart, or `null`.

    Ties on savings go to the higher priority, then to the lowest discount id.
    """
    cart = _to_cart(request.cart_lines)

    try:
        result = find_best_discount(cart, shop=request.shop)
    except Exception as e:
        logger.exception("Failed to fetch available discounts")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch discounts: {str(e)}"
        )

    if not result.applied:
        return AvailableDiscountResponse(discount=None)

    rule = result.selected_rule
    return AvailableDiscountResponse(discount=AvailableDiscount(
        id=rule.discount_id,
        code=rule.code,
        kind=rule.kind.value,
        value=rule.value,
        name=rule.name,
        description=rule.description,
        savings=round_money(result.savings),
    ))


@router.options("/cart/apply-discount", include_in_schema=False)
def cart_apply_discount_preflight():
    return _preflight()


@router.post(
    "/cart/apply-discount",
    response_model=CartPricingResponse,
    summary="Price Cart Lines",
    description="Apply the best product discount to each cart line and return the itemized totals."
)
def apply_cart_discounts(request: CartPricingRequest):
    """
    Price every cart line with its best product discount.

    **Example request:**
    ```json
    {
      "items": [
        {"productId": "gid://shopify/Product/123", "quantity": 2, "price": 29.99},
        {"productId": "gid://shopify/Product/456", "quantity": 1, "price": 49.99}
      ]
    }
    ```
    """
    cart = _to_cart(request.items)

    try:
        pricing = price_cart_for_shop(cart, shop=request.shop)
    except Exception as e:
        logger.exception("Failed to apply cart discounts")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to apply discounts: {str(e)}"
        )

    items = []
    for priced in pricing.lines:
        rule = priced.discount
        items.append(CartLineResponse(
            product_id=priced.line.product_id,
            quantity=priced.line.quantity,
            price=round_money(priced.line.unit_price),
            line_total=round_money(priced.line_total),
            discount=LineDiscount(
                id=rule.discount_id,
                name=rule.name,
                kind=rule.kind.value,
                value=rule.value,
                amount_per_item=round_money(priced.amount_per_item),
                total_amount=round_money(priced.total_discount),
            ) if rule is not None else None,
            discounted_price=round_money(priced.discounted_unit_price),
            line_final_price=round_money(priced.line_final_total),
        ))

    return CartPricingResponse(
        success=True,
        cart=CartTotals(
            items=items,
            subtotal=round_money(pricing.subtotal),
            total_discount=round_money(pricing.total_discount),
            total=round_money(pricing.total),
            discounts_applied=pricing.discounts_applied,
        ),
    )


@router.options("/proxy/product-discount", include_in_schema=False)
def product_discount_preflight():
    return _preflight()


@router.get(
    "/proxy/product-discount",
    response_model=ProductDiscountResponse,
    summary="Product Discount (storefront proxy)",
    description="Best discount for a single product, with an optional price preview in cents."
)
def product_discount(
    response: Response,
    product_id: Optional[str] = Query(None, alias="productId", description="Shopify product ID or GID"),
    price: Optional[int] = Query(None, ge=0, description="Variant price in cents, enables the price preview"),
    shop: Optional[str] = Query(None, description="Shop domain"),
):
    """
    Storefront app proxy endpoint.

    **Example usage:**
    - `GET /api/v1/proxy/product-discount?productId=123`
    - `GET /api/v1/proxy/product-discount?productId=123&price=2999`
    """
    if not product_id:
        raise HTTPException(status_code=400, detail="Product ID is required")

    try:
        if price is not None:
            rule = find_product_discount(product_id, Decimal(price) / 100, shop=shop).selected_rule
        else:
            rule = find_product_rule(product_id, shop=shop)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Failed to fetch product discount", extra={"product_id": product_id})
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch discount data: {str(e)}"
        )

    response.headers["Cache-Control"] = "public, max-age=300"

    if rule is None:
        return ProductDiscountResponse(success=True, product_id=product_id)

    display = None
    if price is not None:
        preview = calculate_display_price(price, rule)
        display = DisplayPriceResponse(
            original_price=preview.original_cents,
            discount_amount=preview.discount_cents,
            discounted_price=preview.discounted_cents,
            savings_percentage=preview.savings_percentage,
            message=discount_message(rule, preview.discount_cents),
        )

    return ProductDiscountResponse(
        success=True,
        product_id=product_id,
        discount=_summary(rule),
        display=display,
    )
