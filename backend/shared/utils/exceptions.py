"""
Centralized HTTP exceptions for consistent error handling.

Usage:
    from shared.utils.exceptions import NotFoundError, ForbiddenError, ValidationError

    raise NotFoundError("Product", product_id)
    raise ForbiddenError("modify this cart")
    raise ValidationError("Quantity must be at least 1")
"""

from fastapi import HTTPException, status
from typing import Any

from shared.config.constants import CouponRejection
from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        # Log the error with context
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Product", 123)
        raise NotFoundError("Active cart", user_id=user_id)
    """

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} with ID {entity_id} not found"
        else:
            detail = f"{entity} not found"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class CartEmptyError(NotFoundError):
    """Checkout was requested on a cart with no items."""

    def __init__(self, cart_id: int, **log_context: Any):
        AppException.__init__(
            self,
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Cart is empty",
            log_level="warning",
            cart_id=cart_id,
            **log_context,
        )


class CouponNotFoundError(NotFoundError):
    """No coupon exists with the given code."""

    reason = CouponRejection.NOT_FOUND

    def __init__(self, code: str, **log_context: Any):
        AppException.__init__(
            self,
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Coupon '{code}' not found",
            log_level="warning",
            code=code,
            **log_context,
        )


# =============================================================================
# 403 Forbidden Errors
# =============================================================================


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Usage:
        raise ForbiddenError("modify this cart item")
        raise ForbiddenError(user_id=user_id, item_id=item_id)
    """

    def __init__(self, action: str | None = None, **log_context: Any):
        if action:
            detail = f"Not authorized to {action}"
        else:
            detail = "Access denied"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            log_level="warning",
            action=action,
            **log_context,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("Quantity must be at least 1")
        raise ValidationError("Insufficient stock", field="quantity", value=5)
    """

    def __init__(self, detail: str, log_level: str = "warning", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level=log_level,
            **log_context,
        )


class InvalidStateError(ValidationError):
    """Entity is in an invalid state for the operation."""

    def __init__(self, entity: str, current_state: str, expected_states: list[str] | None = None, **log_context: Any):
        if expected_states:
            states_str = ", ".join(expected_states)
            detail = f"{entity} is in state '{current_state}', expected: {states_str}"
        else:
            detail = f"{entity} cannot be in state '{current_state}' for this operation"

        super().__init__(detail, entity=entity, current_state=current_state, **log_context)


class DuplicateEntityError(ValidationError):
    """Entity already exists."""

    def __init__(self, entity: str, identifier: str | None = None, **log_context: Any):
        if identifier:
            detail = f"{entity} with identifier '{identifier}' already exists"
        else:
            detail = f"{entity} already exists"

        super().__init__(detail, entity=entity, identifier=identifier, **log_context)


class EligibilityError(ValidationError):
    """
    A coupon rule rejected the cart (400).

    `reason` is one of CouponRejection. Auto-apply scans raise and swallow
    these routinely, so they are logged at debug level.

    Usage:
        raise EligibilityError(CouponRejection.EXPIRED, "Coupon has expired", code="SAVE10")
    """

    def __init__(self, reason: str, detail: str, **log_context: Any):
        self.reason = reason
        super().__init__(detail, log_level="debug", reason=reason, **log_context)


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    Resource conflict error (409). The caller may retry.

    Usage:
        raise ConflictError("Cart was modified concurrently")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class ActiveCartConflictError(ConflictError):
    """Another request created the user's active cart at the same time."""

    def __init__(self, user_id: int, **log_context: Any):
        super().__init__(
            "An active cart was created concurrently for this user, please retry",
            user_id=user_id,
            **log_context,
        )


class InsufficientStockError(ConflictError):
    """Product stock no longer covers the requested quantity."""

    def __init__(self, product_name: str, requested: int, available: int | None = None, **log_context: Any):
        super().__init__(
            f"Insufficient stock for product '{product_name}'",
            product_name=product_name,
            requested=requested,
            available=available,
            **log_context,
        )


class CouponUsageLimitError(ConflictError):
    """Coupon reached its global or per-user usage cap."""

    reason = CouponRejection.USAGE_LIMIT

    def __init__(self, code: str, per_user: bool = False, **log_context: Any):
        if per_user:
            detail = f"Coupon '{code}' usage limit per user reached"
        else:
            detail = f"Coupon '{code}' usage limit reached"

        super().__init__(detail, code=code, per_user=per_user, **log_context)


# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class InternalError(AppException):
    """
    Internal server error (500).

    Usage:
        raise InternalError("Failed to record coupon usage", cart_id=123)
    """

    def __init__(self, detail: str = "Internal server error", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            **log_context,
        )


class DatabaseError(InternalError):
    """Database operation failed."""

    def __init__(self, operation: str, **log_context: Any):
        detail = f"Database error during {operation}. Please try again."
        super().__init__(detail, operation=operation, **log_context)


# =============================================================================
# 503 Transient Errors
# =============================================================================


class TransientError(AppException):
    """
    The operation lost a race or ran out of time (503).
    Safe to retry the whole call after `retry_after` seconds.
    """

    def __init__(self, operation: str, retry_after: int = 1, **log_context: Any):
        detail = f"{operation} could not complete due to concurrent activity. Please retry."

        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            log_level="warning",
            headers={"Retry-After": str(retry_after)},
            operation=operation,
            retry_after=retry_after,
            **log_context,
        )
