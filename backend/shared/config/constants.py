"""
Centralized constants for the backend application.
Avoids magic strings for statuses, discount types and rejection reasons.

Usage:
    from shared.config.constants import CartStatus, DiscountType

    if cart.status == CartStatus.ACTIVE:
        ...
"""

from decimal import Decimal
from typing import Final


# =============================================================================
# Entity Status Constants
# =============================================================================


class CartStatus:
    """Cart status constants. ACTIVE -> CHECKED_OUT is the only transition."""

    ACTIVE: Final[str] = "active"
    CHECKED_OUT: Final[str] = "checked_out"

    ALL: Final[list[str]] = [ACTIVE, CHECKED_OUT]


class DiscountType:
    """Coupon discount type constants."""

    FIXED: Final[str] = "fixed"
    PERCENTAGE: Final[str] = "percentage"

    ALL: Final[list[str]] = [FIXED, PERCENTAGE]


class CouponRejection:
    """Reasons a coupon is not applicable to a cart."""

    NOT_FOUND: Final[str] = "not_found"
    INACTIVE: Final[str] = "inactive"
    NOT_STARTED: Final[str] = "not_started"
    EXPIRED: Final[str] = "expired"
    USAGE_LIMIT: Final[str] = "usage_limit"
    MINIMUM_NOT_MET: Final[str] = "minimum_not_met"
    PRODUCT_RESTRICTED: Final[str] = "product_restricted"


# =============================================================================
# Validation Limits
# =============================================================================


class Limits:
    """Validation limits and monetary precision."""

    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY: Final[int] = 999

    # Money
    MONEY_PLACES: Final[Decimal] = Decimal("0.01")  # Response boundary
    DISCOUNT_PLACES: Final[Decimal] = Decimal("0.0001")  # Persisted discounts
    PERCENT_BASE: Final[Decimal] = Decimal("100")

    MAX_COUPON_CODE_LENGTH: Final[int] = 64
