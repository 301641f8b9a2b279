"""
Cart router.
Thin router delegating to CartService and CheckoutService.

The caller is identified by the X-User-Id header, set by the upstream
gateway after authentication.
"""

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from shared.utils.schemas import (
    AddItemRequest,
    ApplyCouponOutput,
    ApplyCouponRequest,
    CartOutput,
    CheckoutOutput,
    ErrorResponse,
    UpdateItemRequest,
)
from cart_api.services.domain import CartService, CheckoutService

router = APIRouter(
    prefix="/api/cart",
    tags=["cart"],
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)


def current_user_id(x_user_id: int = Header(gt=0, alias="X-User-Id")) -> int:
    """Authenticated user id forwarded by the gateway."""
    return x_user_id


def _get_service(db: Session) -> CartService:
    return CartService(db)


@router.get("", response_model=CartOutput)
def get_cart(
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> CartOutput:
    """Get the caller's active cart, creating it if needed."""
    return _get_service(db).get_cart(user_id)


@router.post("/items", response_model=CartOutput)
def add_item(
    body: AddItemRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> CartOutput:
    """Add a product, or top up its quantity if already in the cart."""
    return _get_service(db).add_item(user_id, body.product_id, body.quantity)


@router.patch("/items/{item_id}", response_model=CartOutput)
def update_item(
    item_id: int,
    body: UpdateItemRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> CartOutput:
    return _get_service(db).update_item(user_id, item_id, body.quantity)


@router.delete("/items/{item_id}", response_model=CartOutput)
def remove_item(
    item_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> CartOutput:
    return _get_service(db).remove_item(user_id, item_id)


@router.post("/coupons", response_model=ApplyCouponOutput)
def apply_coupon(
    body: ApplyCouponRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> ApplyCouponOutput:
    """
    Apply a coupon code. Rejections answer 400 with a `reason`
    (inactive, not_started, expired, usage_limit, minimum_not_met,
    product_restricted) or 404 for an unknown code.
    """
    return _get_service(db).apply_coupon(user_id, body.code)


@router.delete("/coupons/{code}", response_model=CartOutput)
def remove_coupon(
    code: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> CartOutput:
    return _get_service(db).remove_coupon(user_id, code)


@router.post("/checkout", response_model=CheckoutOutput)
def checkout(
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
) -> CheckoutOutput:
    """
    Check out the active cart.

    409 when stock or a coupon cap ran out, 503 (with Retry-After) when the
    transaction lost a race or timed out and should be retried.
    """
    return CheckoutService(db).checkout(user_id)
