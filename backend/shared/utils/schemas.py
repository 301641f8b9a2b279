"""
Shared Pydantic schemas used across the application.

Monetary fields are Decimal and already rounded to cents by the service layer.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from shared.config.constants import Limits


# =============================================================================
# Common Types
# =============================================================================

CartStatusLiteral = Literal["active", "checked_out"]
DiscountTypeLiteral = Literal["fixed", "percentage"]


# =============================================================================
# Cart Requests
# =============================================================================


class AddItemRequest(BaseModel):
    """Request to add a product to the cart."""

    product_id: int
    # Range is enforced by the cart service so that it answers 400, not 422
    quantity: int


class UpdateItemRequest(BaseModel):
    """Request to set the quantity of a cart line."""

    quantity: int


class ApplyCouponRequest(BaseModel):
    """Request to apply a coupon code to the active cart."""

    code: str = Field(min_length=1, max_length=Limits.MAX_COUPON_CODE_LENGTH)


# =============================================================================
# Cart Outputs
# =============================================================================


class CartItemOutput(BaseModel):
    """A cart line as shown to the user."""

    id: int
    product_id: int
    product_name: str
    quantity: int
    price_at_addition: Decimal
    subtotal: Decimal


class AppliedCouponOutput(BaseModel):
    """A coupon attached to the cart."""

    id: int
    coupon_id: int
    code: str
    description: str | None = None
    discount_type: DiscountTypeLiteral
    discount_amount: Decimal
    is_auto_applied: bool
    applied_at: datetime | None = None


class RemovedCouponOutput(BaseModel):
    """A coupon detached because it stopped qualifying."""

    code: str
    reason: str
    message: str


class CartSummaryOutput(BaseModel):
    """Cart totals."""

    subtotal: Decimal
    total_discount: Decimal
    final_amount: Decimal
    item_count: int


class CartOutput(BaseModel):
    """Full cart view returned by every cart operation."""

    id: int
    user_id: int
    status: CartStatusLiteral
    items: list[CartItemOutput]
    applied_coupons: list[AppliedCouponOutput]
    removed_coupons: list[RemovedCouponOutput] = Field(default_factory=list)
    summary: CartSummaryOutput


class CouponOutput(BaseModel):
    """Public view of a coupon."""

    id: int
    code: str
    description: str | None = None
    discount_type: DiscountTypeLiteral
    discount_value: Decimal
    max_discount_amount: Decimal | None = None


class ApplyCouponOutput(BaseModel):
    """Result of applying a coupon by code."""

    coupon: CouponOutput
    discount_amount: Decimal
    cart: CartOutput


# =============================================================================
# Checkout Outputs
# =============================================================================


class ConsumedCouponOutput(BaseModel):
    """A coupon consumed by a checkout."""

    coupon_id: int
    code: str
    discount_amount: Decimal


class CheckoutOutput(BaseModel):
    """Result of a successful checkout."""

    cart_id: int
    user_id: int
    status: CartStatusLiteral
    checked_out_at: datetime
    items: list[CartItemOutput]
    coupons: list[ConsumedCouponOutput]
    summary: CartSummaryOutput


# =============================================================================
# Error Schemas
# =============================================================================


class ErrorResponse(BaseModel):
    """Standard error response body."""

    detail: str
    reason: str | None = None
