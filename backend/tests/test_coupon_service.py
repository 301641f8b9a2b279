"""
Tests for CouponService and the discount arithmetic.
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from cart_api.models import CartItem, Coupon, CouponProduct, CouponUsage
from cart_api.services.domain.coupon_service import (
    CouponService,
    compute_discount,
    eligible_subtotal,
)
from shared.config.constants import CouponRejection, DiscountType
from shared.utils.exceptions import CouponNotFoundError, EligibilityError


def _coupon(**fields) -> Coupon:
    """Transient coupon for arithmetic tests (never persisted)."""
    fields.setdefault("discount_type", DiscountType.FIXED)
    fields.setdefault("discount_value", Decimal("10"))
    restricted = fields.pop("product_ids", [])
    coupon = Coupon(**fields)
    coupon.products = [CouponProduct(product_id=pid) for pid in restricted]
    return coupon


def _item(product_id: int, price: str, quantity: int) -> CartItem:
    return CartItem(product_id=product_id, price_at_addition=Decimal(price), quantity=quantity)


class TestComputeDiscount:
    """Discount arithmetic on an eligible subtotal."""

    def test_fixed_discount_is_discount_value(self):
        coupon = _coupon(discount_value=Decimal("20"))
        assert compute_discount(coupon, Decimal("200")) == Decimal("20")

    def test_fixed_discount_respects_cap(self):
        coupon = _coupon(discount_value=Decimal("20"), max_discount_amount=Decimal("12"))
        assert compute_discount(coupon, Decimal("200")) == Decimal("12")

    def test_percentage_discount_capped(self):
        """10% of 200 is 20, capped at 15."""
        coupon = _coupon(
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("10"),
            max_discount_amount=Decimal("15"),
        )
        assert compute_discount(coupon, Decimal("200")) == Decimal("15")

    def test_percentage_discount_uncapped(self):
        coupon = _coupon(discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("12.5"))
        assert compute_discount(coupon, Decimal("80")) == Decimal("10")

    def test_discount_never_exceeds_subtotal(self):
        coupon = _coupon(discount_value=Decimal("50"))
        assert compute_discount(coupon, Decimal("30")) == Decimal("30")

    def test_discount_zero_on_empty_subtotal(self):
        coupon = _coupon(discount_value=Decimal("50"))
        assert compute_discount(coupon, Decimal("0")) == Decimal("0")

    def test_percentage_keeps_sub_cent_precision(self):
        """Persisted discounts keep four places; rounding to cents is deferred."""
        coupon = _coupon(discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("15"))
        assert compute_discount(coupon, Decimal("33.33")) == Decimal("4.9995")


class TestEligibleSubtotal:
    """Eligible items follow the product restriction list."""

    def test_unrestricted_coupon_uses_all_items(self):
        coupon = _coupon()
        items = [_item(1, "10.00", 2), _item(2, "5.00", 1)]
        assert eligible_subtotal(coupon, items) == Decimal("25.00")

    def test_restricted_coupon_uses_matching_items_only(self):
        coupon = _coupon(product_ids=[2])
        items = [_item(1, "10.00", 2), _item(2, "5.00", 3)]
        assert eligible_subtotal(coupon, items) == Decimal("15.00")

    def test_percentage_applies_to_eligible_subtotal_not_cart(self):
        coupon = _coupon(
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("50"),
            product_ids=[2],
        )
        items = [_item(1, "100.00", 1), _item(2, "10.00", 1)]
        assert compute_discount(coupon, eligible_subtotal(coupon, items)) == Decimal("5")


class TestValidate:
    """Eligibility rules, checked in order."""

    @pytest.fixture
    def cart(self, make_cart, product):
        # product: 100.00, cart subtotal 200.00, 2 items
        return make_cart(user_id=1, lines=[(product, 2)])

    def _reason(self, db_session, coupon, cart, user_id=1):
        with pytest.raises(EligibilityError) as exc_info:
            CouponService(db_session).validate(coupon, user_id, cart)
        return exc_info.value.reason

    def test_valid_coupon_returns_discount(self, db_session, make_coupon, cart):
        coupon = make_coupon("SAVE20", discount_value="20")

        result = CouponService(db_session).validate(coupon, 1, cart)

        assert result.coupon.id == coupon.id
        assert result.discount_amount == Decimal("20")
        assert result.eligible_subtotal == Decimal("200")

    def test_missing_coupon(self, db_session, cart):
        assert self._reason(db_session, None, cart) == CouponRejection.NOT_FOUND

    def test_inactive_coupon(self, db_session, make_coupon, cart):
        coupon = make_coupon("OFF", is_active=False)
        assert self._reason(db_session, coupon, cart) == CouponRejection.INACTIVE

    def test_not_started_coupon(self, db_session, make_coupon, cart):
        now = datetime.now(timezone.utc)
        coupon = make_coupon(
            "LATER",
            start_time=now + timedelta(days=1),
            expiry_time=now + timedelta(days=2),
        )
        assert self._reason(db_session, coupon, cart) == CouponRejection.NOT_STARTED

    def test_expired_coupon(self, db_session, make_coupon, cart):
        now = datetime.now(timezone.utc)
        coupon = make_coupon(
            "OLD",
            start_time=now - timedelta(days=2),
            expiry_time=now - timedelta(days=1),
        )
        with pytest.raises(EligibilityError) as exc_info:
            CouponService(db_session).validate(coupon, 1, cart)
        assert exc_info.value.reason == CouponRejection.EXPIRED
        assert exc_info.value.detail == "Coupon has expired"

    def test_global_usage_cap(self, db_session, make_coupon, cart):
        coupon = make_coupon("ONCE", max_total_uses=3, current_total_uses=3)
        assert self._reason(db_session, coupon, cart) == CouponRejection.USAGE_LIMIT

    def test_per_user_usage_cap(self, db_session, make_coupon, make_cart, product, cart):
        coupon = make_coupon("MINE", max_uses_per_user=1)
        old_cart = make_cart(user_id=1, lines=[(product, 1)], status="checked_out")
        db_session.add(
            CouponUsage(coupon_id=coupon.id, user_id=1, cart_id=old_cart.id, discount_amount=Decimal("10"))
        )
        db_session.commit()

        assert self._reason(db_session, coupon, cart, user_id=1) == CouponRejection.USAGE_LIMIT
        # Another user is unaffected
        other_cart = make_cart(user_id=2, lines=[(product, 2)])
        assert CouponService(db_session).validate(coupon, 2, other_cart).discount_amount == Decimal("10")

    def test_minimum_item_count(self, db_session, make_coupon, cart):
        coupon = make_coupon("BULK", min_cart_items=3)
        assert self._reason(db_session, coupon, cart) == CouponRejection.MINIMUM_NOT_MET

    def test_minimum_total_price(self, db_session, make_coupon, cart):
        coupon = make_coupon("BIG", min_total_price=Decimal("250"))
        assert self._reason(db_session, coupon, cart) == CouponRejection.MINIMUM_NOT_MET

    def test_product_restriction_without_match(self, db_session, make_coupon, make_product, cart):
        other = make_product("Kettle", "59.00")
        coupon = make_coupon("KETTLE", product_ids=[other.id])
        assert self._reason(db_session, coupon, cart) == CouponRejection.PRODUCT_RESTRICTED

    def test_window_checked_before_usage_cap(self, db_session, make_coupon, cart):
        """Checks short-circuit in order: an expired, exhausted coupon reports expiry."""
        now = datetime.now(timezone.utc)
        coupon = make_coupon(
            "BOTH",
            start_time=now - timedelta(days=2),
            expiry_time=now - timedelta(days=1),
            max_total_uses=1,
            current_total_uses=1,
        )
        assert self._reason(db_session, coupon, cart) == CouponRejection.EXPIRED


class TestValidateCode:
    """Lookup by code."""

    def test_unknown_code_raises_not_found(self, db_session, make_cart, product):
        cart = make_cart(user_id=1, lines=[(product, 1)])

        with pytest.raises(CouponNotFoundError) as exc_info:
            CouponService(db_session).validate_code("NOPE", 1, cart)

        assert exc_info.value.status_code == 404
        assert exc_info.value.reason == CouponRejection.NOT_FOUND

    def test_known_code_validates(self, db_session, make_cart, make_coupon, product):
        make_coupon("SAVE5", discount_value="5")
        cart = make_cart(user_id=1, lines=[(product, 1)])

        result = CouponService(db_session).validate_code("SAVE5", 1, cart)

        assert result.discount_amount == Decimal("5")


class TestAutoApplyScan:
    """get_eligible_auto_apply_coupons."""

    def test_returns_only_eligible_auto_apply_coupons_in_creation_order(
        self, db_session, make_cart, make_coupon, product
    ):
        first = make_coupon("AUTO1", is_auto_applied=True)
        make_coupon("MANUAL", is_auto_applied=False)
        make_coupon("AUTO_BIG", is_auto_applied=True, min_total_price=Decimal("1000"))
        make_coupon("AUTO_OFF", is_auto_applied=True, is_active=False)
        second = make_coupon("AUTO2", is_auto_applied=True)
        cart = make_cart(user_id=1, lines=[(product, 1)])

        coupons = CouponService(db_session).get_eligible_auto_apply_coupons(1, cart)

        assert [c.code for c in coupons] == [first.code, second.code]

    def test_excludes_given_ids(self, db_session, make_cart, make_coupon, product):
        coupon = make_coupon("AUTO1", is_auto_applied=True)
        cart = make_cart(user_id=1, lines=[(product, 1)])

        coupons = CouponService(db_session).get_eligible_auto_apply_coupons(
            1, cart, exclude_ids=[coupon.id]
        )

        assert coupons == []

    def test_skips_coupons_outside_window(self, db_session, make_cart, make_coupon, product):
        now = datetime.now(timezone.utc)
        make_coupon(
            "AUTO_OLD",
            is_auto_applied=True,
            start_time=now - timedelta(days=3),
            expiry_time=now - timedelta(days=1),
        )
        cart = make_cart(user_id=1, lines=[(product, 1)])

        assert CouponService(db_session).get_eligible_auto_apply_coupons(1, cart) == []
