"""
SQLAlchemy ORM Models Package.

- base: Base class and TimestampMixin
- catalog: Product
- cart: Cart, CartItem, CartCoupon
- coupon: Coupon, CouponProduct, CouponUsage
"""

# Base classes
from .base import Base, TimestampMixin

# Catalog
from .catalog import Product

# Cart aggregate
from .cart import Cart, CartItem, CartCoupon

# Coupons
from .coupon import Coupon, CouponProduct, CouponUsage

__all__ = [
    "Base",
    "TimestampMixin",
    "Product",
    "Cart",
    "CartItem",
    "CartCoupon",
    "Coupon",
    "CouponProduct",
    "CouponUsage",
]
