"""
Repository Pattern implementation.
Centralizes data access with guaranteed eager loading.

Usage:
    from cart_api.repositories import CartRepository

    repo = CartRepository(db)
    cart = repo.find_active_cart_by_user(user_id, for_update=True)
"""

from .base import BaseRepository
from .product import ProductRepository
from .cart import CartRepository
from .coupon import CouponRepository

__all__ = [
    "BaseRepository",
    "ProductRepository",
    "CartRepository",
    "CouponRepository",
]
