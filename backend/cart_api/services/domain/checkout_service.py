"""
Checkout Domain Service.

Turns the user's active cart into a checked out cart in one transaction:
stock is decremented, coupon usage is recorded and the cart is closed, or
nothing happens at all.

Rows are locked in a fixed order (cart, products by id, coupons by id) so two
checkouts touching the same rows queue instead of deadlocking. Counters are
bumped with conditional UPDATEs, so a cap can never be overrun even if the
isolation level were weaker than configured.
"""

import time
from datetime import datetime, timezone

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from shared.config.constants import CartStatus
from shared.config.logging import checkout_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import begin_isolated, is_transient_error, safe_commit
from shared.utils.exceptions import (
    AppException,
    CartEmptyError,
    ConflictError,
    CouponUsageLimitError,
    DatabaseError,
    InsufficientStockError,
    NotFoundError,
    TransientError,
)
from shared.utils.money import round_money
from shared.utils.schemas import CheckoutOutput, ConsumedCouponOutput
from cart_api.models import Cart
from cart_api.repositories import CartRepository, CouponRepository, ProductRepository
from .cart_service import build_item_outputs, build_summary
from .coupon_service import CouponService, utc_now


class CheckoutService:
    """
    Domain service for the checkout transaction.
    """

    def __init__(
        self,
        db: Session,
        isolation_level: str | None = None,
        timeout_seconds: float | None = None,
    ):
        self._db = db
        self._carts = CartRepository(db)
        self._products = ProductRepository(db)
        self._coupon_repo = CouponRepository(db)
        self._coupons = CouponService(db)
        self._isolation_level = isolation_level or settings.checkout_isolation_level
        self._timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.checkout_timeout_seconds
        )

    def checkout(self, user_id: int) -> CheckoutOutput:
        """
        Check out the user's active cart.

        Raises:
            NotFoundError: no active cart, or the cart is empty
            InsufficientStockError: a product no longer has enough stock
            EligibilityError: an attached coupon is gone, inactive or out of its window
            CouponUsageLimitError: an attached coupon hit its global or per-user cap
            TransientError: lost a serialization race or ran out of time; retry
            DatabaseError: any other database failure
        """
        deadline = time.monotonic() + self._timeout_seconds

        try:
            begin_isolated(self._db, self._isolation_level, self._timeout_seconds)
            result = self._run(user_id, deadline)
            self._check_deadline(deadline, user_id)
            safe_commit(self._db)
        except AppException:
            self._db.rollback()
            raise
        except DBAPIError as exc:
            self._db.rollback()
            if is_transient_error(exc):
                raise TransientError(
                    "Checkout",
                    retry_after=settings.checkout_retry_after_seconds,
                    user_id=user_id,
                    error=str(exc.orig),
                ) from exc
            if isinstance(exc, IntegrityError):
                raise ConflictError(
                    "Checkout conflicted with a concurrent change, please retry",
                    user_id=user_id,
                ) from exc
            logger.error("Checkout failed", user_id=user_id, exc_info=True)
            raise DatabaseError("checkout", user_id=user_id) from exc

        logger.info(
            "Cart checked out",
            cart_id=result.cart_id,
            user_id=user_id,
            final_amount=result.summary.final_amount,
            coupons=[c.code for c in result.coupons],
        )
        return result

    def _run(self, user_id: int, deadline: float) -> CheckoutOutput:
        now = utc_now()

        # 1. Cart
        cart = self._carts.find_active_cart_by_user(user_id, for_update=True)
        if cart is None:
            raise NotFoundError("Active cart", user_id=user_id)
        if not cart.items:
            raise CartEmptyError(cart.id, user_id=user_id)

        items = sorted(cart.items, key=lambda i: i.product_id)

        # 2. Products, locked and read fresh
        for item in items:
            product = self._products.lock_product(item.product_id)
            if product is None:
                raise NotFoundError("Product", item.product_id, cart_id=cart.id)
            if product.stock_quantity < item.quantity:
                raise InsufficientStockError(
                    product.name,
                    requested=item.quantity,
                    available=product.stock_quantity,
                    cart_id=cart.id,
                )
        self._check_deadline(deadline, user_id)

        # 3. Coupons, locked and read fresh
        consumed: list[ConsumedCouponOutput] = []
        for cart_coupon in sorted(cart.coupons, key=lambda c: c.coupon_id):
            coupon = self._coupons.check_availability(
                self._coupon_repo.lock_coupon(cart_coupon.coupon_id), now
            )

            if (
                coupon.max_total_uses is not None
                and coupon.current_total_uses >= coupon.max_total_uses
            ):
                raise CouponUsageLimitError(coupon.code, cart_id=cart.id)

            if coupon.max_uses_per_user is not None:
                used = self._coupon_repo.count_user_usages(coupon.id, user_id)
                if used >= coupon.max_uses_per_user:
                    raise CouponUsageLimitError(coupon.code, per_user=True, cart_id=cart.id)

            if not self._coupon_repo.increment_usage(coupon.id):
                raise CouponUsageLimitError(coupon.code, cart_id=cart.id)

            self._coupon_repo.record_usage(
                coupon.id, user_id, cart.id, cart_coupon.discount_amount
            )
            consumed.append(
                ConsumedCouponOutput(
                    coupon_id=coupon.id,
                    code=coupon.code,
                    discount_amount=round_money(cart_coupon.discount_amount),
                )
            )
        self._check_deadline(deadline, user_id)

        # 4. Stock
        for item in items:
            if not self._products.decrement_stock(item.product_id, item.quantity):
                raise InsufficientStockError(
                    item.product.name, requested=item.quantity, cart_id=cart.id
                )

        # Build the result before the coupon rows are dropped and the commit
        # expires the loaded objects
        result = self._build_output(cart, consumed, now)

        # 5. Close the cart
        self._carts.mark_checked_out(cart, now)

        return result

    def _build_output(
        self,
        cart: Cart,
        consumed: list[ConsumedCouponOutput],
        checked_out_at: datetime,
    ) -> CheckoutOutput:
        return CheckoutOutput(
            cart_id=cart.id,
            user_id=cart.user_id,
            status=CartStatus.CHECKED_OUT,
            checked_out_at=checked_out_at.astimezone(timezone.utc),
            items=build_item_outputs(cart.items),
            coupons=consumed,
            summary=build_summary(cart.items, cart.coupons),
        )

    def _check_deadline(self, deadline: float, user_id: int) -> None:
        if time.monotonic() > deadline:
            raise TransientError(
                "Checkout",
                retry_after=settings.checkout_retry_after_seconds,
                user_id=user_id,
                reason="timeout",
            )
