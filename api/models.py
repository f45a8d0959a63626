"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.

The storefront and admin clients speak camelCase JSON; fields are snake_case in
Python and aliased with to_camel. Money is serialized as a decimal string
rounded to cents.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from domain.discount import DiscountKind


class CamelModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ============================================================================
# Cart Models
# ============================================================================

class CartItem(CamelModel):
    """Single cart line in a request."""
    product_id: str = Field(..., min_length=1, description="Product ID or Shopify product GID")
    price: Decimal = Field(..., ge=0, description="Unit price")
    quantity: int = Field(1, gt=0, description="Quantity")


class DiscountSummary(CamelModel):
    """Public view of a discount attached to cart responses."""
    id: str
    code: Optional[str] = None
    kind: str = Field(..., alias="type")
    value: Decimal
    name: Optional[str] = None
    description: Optional[str] = None


# ============================================================================
# Apply Discount Code Models
# ============================================================================

class ApplyDiscountRequest(CamelModel):
    """Request to apply a customer-entered discount code."""
    discount_code: str = Field(..., min_length=1, description="Discount code (case-insensitive)")
    cart_total: Decimal = Field(..., ge=0, description="Cart subtotal before discounts")
    cart_items: List[CartItem] = Field(default_factory=list, description="Cart lines, enables product scoping")
    customer_id: Optional[str] = None
    cart_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "discountCode": "SAVE20",
                "cartTotal": 100.00,
                "cartItems": [
                    {"productId": "gid://shopify/Product/123", "price": 50.00, "quantity": 2}
                ],
                "customerId": "customer-1",
                "cartId": "cart-1"
            }
        }


class ApplyDiscountResponse(CamelModel):
    """Response after applying a discount code."""
    success: bool
    discount: Optional[DiscountSummary] = None
    discount_amount: Optional[Decimal] = None
    original_total: Optional[Decimal] = None
    final_total: Optional[Decimal] = None
    error: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "discount": {"id": "d-1", "code": "SAVE20", "type": "percentage", "value": "20"},
                "discountAmount": "20.00",
                "originalTotal": "100.00",
                "finalTotal": "80.00"
            }
        }


# ============================================================================
# Automatic Discount Models
# ============================================================================

class AvailableDiscountRequest(CamelModel):
    """Request for the best automatic discount on a cart."""
    cart_lines: List[CartItem] = Field(default_factory=list)
    shop: Optional[str] = None


class AvailableDiscount(DiscountSummary):
    savings: Decimal
    currency: str = "USD"


class AvailableDiscountResponse(CamelModel):
    discount: Optional[AvailableDiscount] = None


class CartPricingRequest(CamelModel):
    """Request to price every cart line with product discounts."""
    items: List[CartItem] = Field(..., min_length=1)
    shop: Optional[str] = None


class LineDiscount(CamelModel):
    id: str
    name: Optional[str] = None
    kind: str = Field(..., alias="type")
    value: Decimal
    amount_per_item: Decimal
    total_amount: Decimal


class CartLineResponse(CamelModel):
    product_id: str
    quantity: int
    price: Decimal
    line_total: Decimal
    discount: Optional[LineDiscount] = None
    discounted_price: Decimal
    line_final_price: Decimal


class CartTotals(CamelModel):
    items: List[CartLineResponse]
    subtotal: Decimal
    total_discount: Decimal
    total: Decimal
    discounts_applied: int


class CartPricingResponse(CamelModel):
    success: bool
    cart: CartTotals


class DisplayPriceResponse(CamelModel):
    """Storefront price preview, amounts in cents."""
    original_price: int
    discount_amount: int
    discounted_price: int
    savings_percentage: int
    message: str


class ProductDiscountResponse(CamelModel):
    success: bool
    product_id: str
    discount: Optional[DiscountSummary] = None
    display: Optional[DisplayPriceResponse] = None


# ============================================================================
# Admin Models
# ============================================================================

class DiscountCreateRequest(CamelModel):
    """Request to create a discount rule."""
    kind: DiscountKind = Field(..., alias="type")
    value: Decimal = Field(..., ge=0)
    code: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    shop: Optional[str] = None
    product_ids: List[str] = Field(default_factory=list, description="Empty means store-wide")
    min_purchase_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=0)
    active: bool = True
    priority: int = 0

    class Config:
        json_schema_extra = {
            "example": {
                "type": "percentage",
                "value": 20,
                "code": "SUMMER20",
                "name": "Summer sale",
                "productIds": ["123", "456"],
                "minPurchaseAmount": 50,
                "maxDiscountAmount": 25,
                "startDate": "2025-06-01T00:00:00Z",
                "endDate": "2025-08-31T23:59:59Z",
                "usageLimit": 500,
                "priority": 10
            }
        }


class DiscountUpdateRequest(CamelModel):
    """Partial update; only fields present in the body are changed."""
    kind: Optional[DiscountKind] = Field(None, alias="type")
    value: Optional[Decimal] = Field(None, ge=0)
    code: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    shop: Optional[str] = None
    product_ids: Optional[List[str]] = None
    min_purchase_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=0)
    active: Optional[bool] = None
    priority: Optional[int] = None

    @field_validator("kind", "value", "active", "priority", mode="before")
    @classmethod
    def _not_null(cls, v, info):
        # Omitting these is fine, clearing them is not
        if v is None:
            raise ValueError(f"{info.field_name} may not be null")
        return v


class DiscountResponse(CamelModel):
    """Full admin view of a discount rule."""
    id: str
    kind: str = Field(..., alias="type")
    value: Decimal
    code: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    shop: Optional[str] = None
    product_ids: List[str]
    min_purchase_amount: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    usage_limit: Optional[int] = None
    usage_count: int
    active: bool
    priority: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DiscountListResponse(CamelModel):
    success: bool = True
    discounts: List[DiscountResponse]
    count: int
    total: int


class DiscountUsageResponse(CamelModel):
    id: str
    discount_id: str
    customer_id: Optional[str] = None
    cart_id: Optional[str] = None
    applied_at: datetime
    order_value: Decimal
    discount_amount: Decimal


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": False,
                "error": "Invalid request data",
                "detail": "cartTotal: Input should be greater than or equal to 0"
            }
        }
