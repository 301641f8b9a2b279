"""
Coupon Domain Service.

Decides whether a coupon applies to a cart and how much it takes off.
The discount arithmetic lives in plain functions so it can be exercised
without a database.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy.orm import Session

from shared.config.constants import CouponRejection, DiscountType, Limits
from shared.config.logging import get_logger
from shared.utils.exceptions import CouponNotFoundError, EligibilityError
from shared.utils.money import ZERO, line_total, quantize_discount, sum_amounts, to_decimal
from cart_api.models import Cart, CartItem, Coupon
from cart_api.repositories import CouponRepository

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; they are stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# Discount arithmetic
# =============================================================================


def eligible_items(coupon: Coupon, items: Iterable[CartItem]) -> list[CartItem]:
    """All items for an unrestricted coupon, else only the restricted products."""
    restricted = coupon.restricted_product_ids
    if not restricted:
        return list(items)
    return [item for item in items if item.product_id in restricted]


def eligible_subtotal(coupon: Coupon, items: Iterable[CartItem]) -> Decimal:
    return sum_amounts(
        line_total(item.price_at_addition, item.quantity)
        for item in eligible_items(coupon, items)
    )


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """
    Discount a coupon grants on an eligible subtotal.

    fixed      -> discount_value
    percentage -> subtotal * discount_value / 100
    Either is capped at max_discount_amount when set, then clamped to
    [0, subtotal].
    """
    value = to_decimal(coupon.discount_value)

    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = subtotal * value / Limits.PERCENT_BASE
    else:
        discount = value

    if coupon.max_discount_amount is not None:
        discount = min(discount, to_decimal(coupon.max_discount_amount))

    discount = min(discount, subtotal)
    return quantize_discount(max(ZERO, discount))


@dataclass
class CouponEvaluation:
    """A coupon that passed validation and what it is worth on the cart."""

    coupon: Coupon
    discount_amount: Decimal
    eligible_subtotal: Decimal


# =============================================================================
# Service
# =============================================================================


class CouponService:
    """
    Domain service for coupon eligibility.

    Rejections raise EligibilityError carrying a CouponRejection reason.
    Callers choose whether to surface them (manual apply) or swallow them
    (auto-apply scan, cart revalidation).
    """

    def __init__(self, db: Session):
        self._db = db
        self._repo = CouponRepository(db)

    def check_availability(self, coupon: Coupon | None, now: datetime | None = None) -> Coupon:
        """
        Existence, active flag and activity window.
        Shared by validate() and the checkout re-check.
        """
        now = now or utc_now()

        if coupon is None:
            raise EligibilityError(CouponRejection.NOT_FOUND, "Coupon not found")

        if not coupon.is_active:
            raise EligibilityError(
                CouponRejection.INACTIVE, "Coupon is not active", code=coupon.code
            )

        if now < as_utc(coupon.start_time):
            raise EligibilityError(
                CouponRejection.NOT_STARTED, "Coupon is not yet valid", code=coupon.code
            )

        if now > as_utc(coupon.expiry_time):
            raise EligibilityError(
                CouponRejection.EXPIRED, "Coupon has expired", code=coupon.code
            )

        return coupon

    def validate(
        self,
        coupon: Coupon | None,
        user_id: int,
        cart: Cart,
        now: datetime | None = None,
    ) -> CouponEvaluation:
        """
        Run every eligibility rule, in order, stopping at the first failure.

        Returns:
            CouponEvaluation with the discount for the current cart contents

        Raises:
            EligibilityError: the coupon does not apply
        """
        coupon = self.check_availability(coupon, now)

        if (
            coupon.max_total_uses is not None
            and coupon.current_total_uses >= coupon.max_total_uses
        ):
            raise EligibilityError(
                CouponRejection.USAGE_LIMIT, "Coupon usage limit reached", code=coupon.code
            )

        if coupon.max_uses_per_user is not None:
            used = self._repo.count_user_usages(coupon.id, user_id)
            if used >= coupon.max_uses_per_user:
                raise EligibilityError(
                    CouponRejection.USAGE_LIMIT,
                    "You have reached the usage limit for this coupon",
                    code=coupon.code,
                    user_id=user_id,
                )

        item_count = sum(item.quantity for item in cart.items)
        if item_count < (coupon.min_cart_items or 0):
            raise EligibilityError(
                CouponRejection.MINIMUM_NOT_MET,
                f"Minimum {coupon.min_cart_items} items required in cart",
                code=coupon.code,
                item_count=item_count,
            )

        subtotal = eligible_subtotal(coupon, cart.items)
        min_total = to_decimal(coupon.min_total_price)
        if subtotal < min_total:
            raise EligibilityError(
                CouponRejection.MINIMUM_NOT_MET,
                f"Minimum cart value of {min_total} required",
                code=coupon.code,
                subtotal=subtotal,
            )

        if coupon.restricted_product_ids and not eligible_items(coupon, cart.items):
            raise EligibilityError(
                CouponRejection.PRODUCT_RESTRICTED,
                "Coupon is not applicable to products in your cart",
                code=coupon.code,
            )

        return CouponEvaluation(
            coupon=coupon,
            discount_amount=compute_discount(coupon, subtotal),
            eligible_subtotal=subtotal,
        )

    def validate_code(self, code: str, user_id: int, cart: Cart) -> CouponEvaluation:
        """Resolve a coupon by code, then validate it against the cart."""
        coupon = self._repo.find_by_code(code)
        if coupon is None:
            raise CouponNotFoundError(code, user_id=user_id)
        return self.validate(coupon, user_id, cart)

    def get_eligible_auto_apply_coupons(
        self,
        user_id: int,
        cart: Cart,
        exclude_ids: Iterable[int] = (),
    ) -> Sequence[Coupon]:
        """
        Auto-apply coupons that pass validation for this cart, oldest first.
        Ineligible coupons are skipped silently.
        """
        now = utc_now()
        excluded = set(exclude_ids)
        eligible: list[Coupon] = []

        for coupon in self._repo.list_auto_apply(now):
            if coupon.id in excluded:
                continue
            try:
                self.validate(coupon, user_id, cart, now=now)
            except EligibilityError as exc:
                logger.debug(
                    "Auto-apply coupon not eligible",
                    code=coupon.code,
                    cart_id=cart.id,
                    reason=exc.reason,
                )
                continue
            eligible.append(coupon)

        return eligible
