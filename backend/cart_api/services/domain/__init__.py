"""
Domain Services - application layer.

Services contain business logic and orchestrate operations.
They use Repositories for data access and own the transaction (commit).

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    Repository (data access)
        ↓
    Model (entity)

Usage:
    from cart_api.services.domain import CartService

    # In router
    service = CartService(db)
    cart = service.add_item(user_id, product_id=3, quantity=2)
"""

from .coupon_service import CouponService, CouponEvaluation
from .cart_service import CartService
from .checkout_service import CheckoutService

__all__ = [
    "CouponService",
    "CouponEvaluation",
    "CartService",
    "CheckoutService",
]
