"""
Utilities module: Exceptions, money helpers, schemas.
"""

from shared.utils.exceptions import (
    AppException,
    NotFoundError,
    ForbiddenError,
    ValidationError,
    ConflictError,
    EligibilityError,
    TransientError,
)
from shared.utils.money import round_money, quantize_discount
from shared.utils.schemas import ErrorResponse

__all__ = [
    # exceptions
    "AppException",
    "NotFoundError",
    "ForbiddenError",
    "ValidationError",
    "ConflictError",
    "EligibilityError",
    "TransientError",
    # money
    "round_money",
    "quantize_discount",
    # schemas
    "ErrorResponse",
]
