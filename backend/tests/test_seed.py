"""
Tests for the demo seed.
"""

from sqlalchemy import func, select

from cart_api.models import Coupon, Product
from cart_api.seed import DEMO_PRODUCTS, seed
from cart_api.services.domain import CartService


class TestSeed:
    """seed() fills an empty catalog once."""

    def test_seed_inserts_catalog(self, db_session):
        counts = seed(db_session)

        assert counts["products"] == len(DEMO_PRODUCTS)
        assert counts["coupons"] == 4
        assert db_session.scalar(select(func.count()).select_from(Product)) == len(DEMO_PRODUCTS)

    def test_seed_is_idempotent(self, db_session):
        seed(db_session)

        counts = seed(db_session)

        assert counts == {"products": 0, "coupons": 0}
        assert db_session.scalar(select(func.count()).select_from(Coupon)) == 4

    def test_seeded_coupons_are_usable(self, db_session):
        seed(db_session)
        beans = db_session.scalar(select(Product).where(Product.name == "Espresso Beans 1kg"))

        cart = CartService(db_session).add_item(1, beans.id, 5)
        result = CartService(db_session).apply_coupon(1, "SAVE20")

        assert cart.summary.subtotal > result.discount_amount
        assert result.cart.summary.total_discount >= result.discount_amount
