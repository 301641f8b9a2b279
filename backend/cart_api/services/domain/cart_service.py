"""
Cart Domain Service.

Orchestrates cart mutations and keeps attached coupons consistent with the
cart contents after each one. Every mutation locks the cart row first, so
concurrent requests against the same cart run one after the other.
"""

from typing import Iterable, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.config.constants import CartStatus, Limits
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import (
    ActiveCartConflictError,
    ConflictError,
    DuplicateEntityError,
    EligibilityError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from shared.utils.money import ZERO, line_total, round_money, sum_amounts
from shared.utils.schemas import (
    AppliedCouponOutput,
    ApplyCouponOutput,
    CartItemOutput,
    CartOutput,
    CartSummaryOutput,
    CouponOutput,
    RemovedCouponOutput,
)
from cart_api.models import Cart, CartCoupon, CartItem
from cart_api.repositories import CartRepository, ProductRepository
from .coupon_service import CouponService, compute_discount, eligible_subtotal

logger = get_logger(__name__)


# =============================================================================
# Cart view helpers
# =============================================================================


def build_summary(items: Iterable[CartItem], coupons: Iterable[CartCoupon]) -> CartSummaryOutput:
    """
    Totals for a cart. Arithmetic is exact; rounding happens here, once.
    """
    items = list(items)
    subtotal = sum_amounts(line_total(i.price_at_addition, i.quantity) for i in items)
    total_discount = sum_amounts(c.discount_amount for c in coupons)
    final_amount = max(ZERO, subtotal - total_discount)

    return CartSummaryOutput(
        subtotal=round_money(subtotal),
        total_discount=round_money(total_discount),
        final_amount=round_money(final_amount),
        item_count=sum(i.quantity for i in items),
    )


def build_item_outputs(items: Iterable[CartItem]) -> list[CartItemOutput]:
    return [
        CartItemOutput(
            id=item.id,
            product_id=item.product_id,
            product_name=item.product.name if item.product else "",
            quantity=item.quantity,
            price_at_addition=round_money(item.price_at_addition),
            subtotal=round_money(line_total(item.price_at_addition, item.quantity)),
        )
        for item in items
    ]


def build_cart_output(
    cart: Cart,
    removed_coupons: Sequence[RemovedCouponOutput] = (),
) -> CartOutput:
    return CartOutput(
        id=cart.id,
        user_id=cart.user_id,
        status=cart.status,
        items=build_item_outputs(cart.items),
        applied_coupons=[
            AppliedCouponOutput(
                id=cart_coupon.id,
                coupon_id=cart_coupon.coupon_id,
                code=cart_coupon.coupon.code,
                description=cart_coupon.coupon.description,
                discount_type=cart_coupon.coupon.discount_type,
                discount_amount=round_money(cart_coupon.discount_amount),
                is_auto_applied=cart_coupon.is_auto_applied,
                applied_at=cart_coupon.applied_at,
            )
            for cart_coupon in cart.coupons
        ],
        removed_coupons=list(removed_coupons),
        summary=build_summary(cart.items, cart.coupons),
    )


# =============================================================================
# Service
# =============================================================================


class CartService:
    """
    Domain service for the cart aggregate.

    After item changes, attached coupons are revalidated (failing ones are
    detached and reported), their discounts recomputed, and eligible
    auto-apply coupons attached.
    """

    def __init__(self, db: Session):
        self._db = db
        self._carts = CartRepository(db)
        self._products = ProductRepository(db)
        self._coupons = CouponService(db)

    # -------------------------------------------------------------------------
    # Cart lifecycle
    # -------------------------------------------------------------------------

    def get_or_create_cart(self, user_id: int, for_update: bool = False) -> Cart:
        """
        Return the user's active cart, creating it on first access.

        Raises:
            ActiveCartConflictError: a concurrent request created it first
        """
        cart = self._carts.find_active_cart_by_user(user_id, for_update=for_update)
        if cart is not None:
            return cart

        try:
            cart = self._carts.create_cart(user_id)
            safe_commit(self._db)
        except IntegrityError as exc:
            self._db.rollback()
            raise ActiveCartConflictError(user_id) from exc

        logger.info("Cart created", cart_id=cart.id, user_id=user_id)
        return self._carts.find_active_cart_by_user(user_id, for_update=for_update)

    def get_cart(self, user_id: int) -> CartOutput:
        cart = self.get_or_create_cart(user_id)
        return build_cart_output(cart)

    # -------------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------------

    def add_item(self, user_id: int, product_id: int, quantity: int) -> CartOutput:
        """
        Add a product to the cart, or top up its existing line.

        The stock check here is advisory; checkout re-checks against locked rows.
        """
        self._validate_quantity(quantity)

        product = self._products.find_product(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        if not product.is_active:
            raise ValidationError("Product is not available", product_id=product_id)
        if product.stock_quantity < quantity:
            raise ValidationError(
                "Insufficient stock",
                product_id=product_id,
                requested=quantity,
                available=product.stock_quantity,
            )

        cart = self.get_or_create_cart(user_id, for_update=True)

        try:
            self._carts.upsert_item(cart.id, product.id, quantity, product.price)
        except IntegrityError as exc:
            self._db.rollback()
            raise ConflictError(
                "Cart was modified concurrently, please retry",
                cart_id=cart.id,
                product_id=product_id,
            ) from exc

        removed = self._refresh_coupons(user_id, cart.id)
        self._auto_apply(user_id, cart.id)
        safe_commit(self._db)

        logger.info(
            "Item added to cart",
            cart_id=cart.id,
            user_id=user_id,
            product_id=product_id,
            quantity=quantity,
        )
        return self._cart_view(cart.id, removed)

    def update_item(self, user_id: int, item_id: int, quantity: int) -> CartOutput:
        """Set the quantity of a cart line."""
        self._validate_quantity(quantity)

        item, cart = self._load_owned_item(user_id, item_id)

        product = self._products.find_product(item.product_id)
        if product is None or product.stock_quantity < quantity:
            raise ValidationError(
                "Insufficient stock",
                product_id=item.product_id,
                requested=quantity,
                available=product.stock_quantity if product else 0,
            )

        self._carts.update_item_quantity(item, quantity)

        removed = self._refresh_coupons(user_id, cart.id)
        self._auto_apply(user_id, cart.id)
        safe_commit(self._db)

        logger.info("Cart item updated", cart_id=cart.id, item_id=item_id, quantity=quantity)
        return self._cart_view(cart.id, removed)

    def remove_item(self, user_id: int, item_id: int) -> CartOutput:
        """Delete a cart line. Coupons are revalidated but not auto-applied."""
        item, cart = self._load_owned_item(user_id, item_id)

        self._carts.delete_item(item)

        removed = self._refresh_coupons(user_id, cart.id)
        safe_commit(self._db)

        logger.info("Cart item removed", cart_id=cart.id, item_id=item_id)
        return self._cart_view(cart.id, removed)

    # -------------------------------------------------------------------------
    # Coupons
    # -------------------------------------------------------------------------

    def apply_coupon(self, user_id: int, code: str) -> ApplyCouponOutput:
        """
        Apply a coupon by code. Eligibility failures propagate to the caller.
        """
        code = (code or "").strip()
        if not code:
            raise ValidationError("Coupon code is required")

        cart = self._carts.find_active_cart_by_user(user_id, for_update=True)
        if cart is None:
            raise NotFoundError("Active cart", user_id=user_id)

        if any(cart_coupon.coupon.code == code for cart_coupon in cart.coupons):
            raise DuplicateEntityError("Coupon on this cart", code, cart_id=cart.id)

        evaluation = self._coupons.validate_code(code, user_id, cart)

        try:
            self._carts.attach_coupon(
                cart.id, evaluation.coupon.id, evaluation.discount_amount, is_auto_applied=False
            )
            safe_commit(self._db)
        except IntegrityError as exc:
            self._db.rollback()
            raise DuplicateEntityError("Coupon on this cart", code, cart_id=cart.id) from exc

        logger.info(
            "Coupon applied",
            cart_id=cart.id,
            user_id=user_id,
            code=code,
            discount_amount=evaluation.discount_amount,
        )

        coupon = evaluation.coupon
        return ApplyCouponOutput(
            coupon=CouponOutput(
                id=coupon.id,
                code=coupon.code,
                description=coupon.description,
                discount_type=coupon.discount_type,
                discount_value=coupon.discount_value,
                max_discount_amount=coupon.max_discount_amount,
            ),
            discount_amount=round_money(evaluation.discount_amount),
            cart=self._cart_view(cart.id),
        )

    def remove_coupon(self, user_id: int, code: str) -> CartOutput:
        """Detach a coupon from the active cart."""
        cart = self._carts.find_active_cart_by_user(user_id, for_update=True)
        if cart is None:
            raise NotFoundError("Active cart", user_id=user_id)

        cart_coupon = next(
            (cc for cc in cart.coupons if cc.coupon.code == code),
            None,
        )
        if cart_coupon is None:
            raise NotFoundError(f"Coupon '{code}' on this cart", cart_id=cart.id)

        self._carts.detach_coupon(cart_coupon)
        safe_commit(self._db)

        logger.info("Coupon removed", cart_id=cart.id, user_id=user_id, code=code)
        return self._cart_view(cart.id)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _validate_quantity(quantity: int) -> None:
        if quantity < Limits.MIN_QUANTITY:
            raise ValidationError(
                f"Quantity must be at least {Limits.MIN_QUANTITY}", quantity=quantity
            )
        if quantity > Limits.MAX_QUANTITY:
            raise ValidationError(
                f"Quantity cannot exceed {Limits.MAX_QUANTITY}", quantity=quantity
            )

    def _load_owned_item(self, user_id: int, item_id: int) -> tuple[CartItem, Cart]:
        """
        Fetch a cart item, check the caller owns its cart and that the cart is
        still open, and lock the cart.
        """
        item = self._carts.find_item_by_id(item_id)
        if item is None:
            raise NotFoundError("Cart item", item_id)

        if item.cart.user_id != user_id:
            raise ForbiddenError(user_id=user_id, item_id=item_id)

        cart = self._carts.lock_cart(item.cart_id)
        if cart is None:
            raise NotFoundError("Cart", item.cart_id)
        if not cart.is_active:
            raise InvalidStateError("Cart", cart.status, [CartStatus.ACTIVE], cart_id=cart.id)

        # The item may have been deleted while waiting for the lock
        locked_item = next((i for i in cart.items if i.id == item_id), None)
        if locked_item is None:
            raise NotFoundError("Cart item", item_id)

        return locked_item, cart

    def _reload(self, cart_id: int) -> Cart:
        return self._carts.find_cart_by_id(cart_id, populate_existing=True)

    def _refresh_coupons(self, user_id: int, cart_id: int) -> list[RemovedCouponOutput]:
        """
        Revalidate every attached coupon against the current contents.
        Failing coupons are detached and reported; the rest get their
        discount recomputed. A failing coupon never aborts the mutation.
        """
        cart = self._reload(cart_id)
        removed: list[RemovedCouponOutput] = []

        for cart_coupon in list(cart.coupons):
            try:
                evaluation = self._coupons.validate(cart_coupon.coupon, user_id, cart)
            except EligibilityError as exc:
                self._carts.detach_coupon(cart_coupon)
                removed.append(
                    RemovedCouponOutput(
                        code=cart_coupon.coupon.code,
                        reason=exc.reason,
                        message=exc.detail,
                    )
                )
                logger.info(
                    "Coupon detached from cart",
                    cart_id=cart_id,
                    code=cart_coupon.coupon.code,
                    reason=exc.reason,
                )
                continue

            if evaluation.discount_amount != cart_coupon.discount_amount:
                self._carts.update_coupon_discount(cart_coupon, evaluation.discount_amount)

        return removed

    def _auto_apply(self, user_id: int, cart_id: int) -> None:
        """Attach eligible auto-apply coupons that are not on the cart yet."""
        cart = self._reload(cart_id)
        attached = {cart_coupon.coupon_id for cart_coupon in cart.coupons}

        for coupon in self._coupons.get_eligible_auto_apply_coupons(
            user_id, cart, exclude_ids=attached
        ):
            discount = compute_discount(coupon, eligible_subtotal(coupon, cart.items))
            self._carts.attach_coupon(cart.id, coupon.id, discount, is_auto_applied=True)
            logger.info(
                "Coupon auto-applied",
                cart_id=cart.id,
                code=coupon.code,
                discount_amount=discount,
            )

    def _cart_view(
        self,
        cart_id: int,
        removed: Sequence[RemovedCouponOutput] = (),
    ) -> CartOutput:
        return build_cart_output(self._reload(cart_id), removed)
