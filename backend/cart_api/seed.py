"""
Seed data for development and testing.
Creates a small demo catalog and one coupon of each kind.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import select

from cart_api.models import Coupon, CouponProduct, Product
from shared.config.constants import DiscountType
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit

logger = get_logger(__name__)


# =============================================================================
# Constants for seed data
# =============================================================================

# Demo coupons stay valid for a year from seeding
COUPON_VALIDITY_DAYS = 365

DEMO_PRODUCTS = [
    # (name, price, stock)
    ("Espresso Beans 1kg", Decimal("24.90"), 50),
    ("Ceramic Mug", Decimal("12.50"), 120),
    ("Pour-Over Kettle", Decimal("59.00"), 15),
    ("Paper Filters (100)", Decimal("6.75"), 300),
]


def seed(db: Session) -> dict[str, int]:
    """
    Insert demo products and coupons.
    Idempotent: does nothing if the catalog already has products.

    Returns:
        Counts of inserted rows
    """
    if db.scalar(select(Product.id).limit(1)):
        logger.info("Catalog already seeded, skipping")
        return {"products": 0, "coupons": 0}

    products = [
        Product(name=name, price=price, stock_quantity=stock, is_active=True)
        for name, price, stock in DEMO_PRODUCTS
    ]
    db.add_all(products)
    db.flush()

    now = datetime.now(timezone.utc)
    window = {
        "start_time": now - timedelta(minutes=1),
        "expiry_time": now + timedelta(days=COUPON_VALIDITY_DAYS),
    }

    kettle = products[2]

    coupons = [
        Coupon(
            code="SAVE20",
            description="20 off orders of 100 or more",
            discount_type=DiscountType.FIXED,
            discount_value=Decimal("20"),
            min_total_price=Decimal("100"),
            max_uses_per_user=1,
            **window,
        ),
        Coupon(
            code="TENOFF",
            description="10% off, up to 15",
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("10"),
            max_discount_amount=Decimal("15"),
            max_total_uses=100,
            **window,
        ),
        Coupon(
            code="WELCOME5",
            description="5% off any cart with 3 or more items",
            discount_type=DiscountType.PERCENTAGE,
            discount_value=Decimal("5"),
            min_cart_items=3,
            is_auto_applied=True,
            **window,
        ),
        Coupon(
            code="KETTLE10",
            description="10 off the pour-over kettle",
            discount_type=DiscountType.FIXED,
            discount_value=Decimal("10"),
            products=[CouponProduct(product_id=kettle.id)],
            **window,
        ),
    ]
    db.add_all(coupons)
    safe_commit(db)

    logger.info("Seed data created", products=len(products), coupons=len(coupons))
    return {"products": len(products), "coupons": len(coupons)}
