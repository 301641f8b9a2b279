"""
Services module for business logic.

- domain/: Application services (cart, coupons, checkout)

Usage:
    from cart_api.services.domain import CheckoutService
    service = CheckoutService(db)
    receipt = service.checkout(user_id)
"""
