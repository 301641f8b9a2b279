"""
Shared module for cross-cutting concerns used by the cart API and CLI.

STRUCTURE:
- shared.infrastructure: Database and request tracing
  - db.py: SQLAlchemy engine and sessions, safe_commit(), begin_isolated()
  - correlation.py: X-Request-ID middleware and logging filter

- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: CartStatus, DiscountType, CouponRejection, Limits

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - money.py: Decimal helpers and rounding
  - schemas.py: Request and response Pydantic schemas

IMPORT EXAMPLES:
    from shared.infrastructure.db import get_db, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import CartStatus, CouponRejection
    from shared.utils.exceptions import NotFoundError, EligibilityError
"""
