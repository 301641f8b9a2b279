"""
Database configuration and session management.
Uses SQLAlchemy 2.0 patterns.
"""

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import sessionmaker, Session

from shared.config.settings import settings, DATABASE_URL

import os


# SQLSTATE codes that mean "retry the whole transaction"
TRANSIENT_SQLSTATES = frozenset({
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available (lock_timeout)
    "57014",  # query_canceled (statement_timeout)
})


def _calculate_pool_size() -> int:
    """
    Calculate pool size based on CPU cores.
    Formula: (2 * CPU cores) + 1, capped at the configured pool size.
    """
    cores = os.cpu_count() or 4
    return min(cores * 2 + 1, settings.db_pool_size)


def _engine_options(url: str) -> dict[str, Any]:
    """Engine keyword arguments for the configured backend."""
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,  # Verify connections before using
        "pool_size": _calculate_pool_size(),
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_recycle": 1800,  # Recycle connections after 30 minutes
        "connect_args": {"connect_timeout": 10},
    }


engine = create_engine(
    DATABASE_URL,
    echo=settings.db_echo,
    **_engine_options(DATABASE_URL),
)

# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.

    Usage:
        @router.get("/cart")
        def get_cart(db: Session = Depends(get_db)):
            ...

    The session is automatically closed after the request completes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            CartService(db).get_cart(user_id)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def safe_commit(db: Session) -> None:
    """
    Safe commit with automatic rollback on failure.

    Raises the original exception after rolling back.
    """
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise


def begin_isolated(db: Session, isolation_level: str, timeout_seconds: float | None = None) -> None:
    """
    Start a fresh transaction on `db` at the given isolation level.

    Any implicit transaction already open on the session is committed first,
    since the isolation level can only be set before the first statement.
    On PostgreSQL the timeout is applied as statement and lock timeouts local
    to the transaction.
    """
    if db.in_transaction():
        safe_commit(db)

    connection = db.connection(execution_options={"isolation_level": isolation_level})

    if timeout_seconds and connection.dialect.name == "postgresql":
        timeout_ms = int(timeout_seconds * 1000)
        connection.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
        connection.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))


def is_transient_error(exc: BaseException) -> bool:
    """
    True when a database error is worth retrying as a whole transaction:
    serialization failures, deadlocks, lock/statement timeouts and SQLite's
    "database is locked".
    """
    if not isinstance(exc, DBAPIError):
        return False

    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True

    return isinstance(exc, OperationalError) and "database is locked" in str(orig)
