"""
Structured logging for the cart service.

Log calls take keyword context that is carried on the record and rendered
by the formatters:

    logger.info("Coupon applied", cart_id=12, code="SAVE10")

Production emits one JSON object per line. Identifiers that tie a line to a
cart, a coupon or a shopper (see PROMOTED_FIELDS) are lifted to the top level
of that object so log queries can filter on them directly. Development gets
a coloured single-line format.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings

PROMOTED_FIELDS = ("cart_id", "user_id", "code", "coupon_id", "product_id")


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "context", None) or {}


class StructuredFormatter(logging.Formatter):
    """JSON lines for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        context = dict(_context(record))
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for attr in ("request_id", "user_id"):
            value = getattr(record, attr, "-")
            if value != "-":
                entry[attr] = value

        for key in PROMOTED_FIELDS:
            if key in context:
                entry[key] = context.pop(key)

        if context:
            entry["data"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if settings.debug:
            entry["source"] = f"{record.filename}:{record.lineno}"

        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Readable single-line output for a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        tags = [
            f"{label}{value[:8]}"
            for label, value in (
                ("req:", getattr(record, "request_id", "-")),
                ("user:", getattr(record, "user_id", "-")),
            )
            if value != "-"
        ]
        prefix = f"{self.DIM}[{' '.join(tags)}]{self.RESET} " if tags else ""

        line = f"{color}{clock} {record.levelname:8}{self.RESET} {prefix}{record.name}: {record.getMessage()}"

        context = _context(record)
        if context:
            line += " " + " ".join(f"{k}={v}" for k, v in context.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose level methods accept arbitrary keyword context.

    `exc_info` and `stack_info` keep their usual meaning. Everything else
    is attached to the record as `context`.
    """

    def _emit(self, level: int, msg: str, args: tuple, kwargs: dict[str, Any]) -> None:
        if not self.isEnabledFor(level):
            return
        exc_info = kwargs.pop("exc_info", None)
        stack_info = kwargs.pop("stack_info", False)
        self._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            stack_info=stack_info,
            extra={"context": kwargs},
            stacklevel=3,
        )

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.WARNING, msg, args, kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.ERROR, msg, args, kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._emit(logging.CRITICAL, msg, args, kwargs)


logging.setLoggerClass(StructuredLogger)


def setup_logging() -> None:
    """
    Install the stdout handler on the root logger.
    Call once at startup (API lifespan or CLI entry).
    """
    # Deferred: correlation imports FastAPI, which the settings module must not need
    from shared.infrastructure.correlation import CorrelationIdFilter

    level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(
        StructuredFormatter() if settings.environment == "production" else DevelopmentFormatter()
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.db_echo else logging.WARNING
    )


def get_logger(name: str) -> StructuredLogger:
    """
    Usage:
        from shared.config.logging import get_logger
        logger = get_logger(__name__)

        logger.info("Cart checked out", cart_id=123, user_id=7)
        logger.error("Checkout failed", cart_id=123, exc_info=True)
    """
    return logging.getLogger(name)  # type: ignore


cart_api_logger = get_logger("cart_api")
checkout_logger = get_logger("cart_api.checkout")
