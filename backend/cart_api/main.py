"""
Cart API main application.
Entry point for the FastAPI REST server.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from shared.config.settings import settings
from shared.config.logging import setup_logging, cart_api_logger as logger
from shared.infrastructure.correlation import CorrelationIdMiddleware
from shared.infrastructure.db import engine, SessionLocal
from shared.utils.exceptions import AppException
from cart_api.models import Base
from cart_api.routers.cart import router as cart_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    # Initialize logging
    setup_logging()

    config_errors = settings.validate_production()
    if config_errors:
        for error in config_errors:
            logger.error("Configuration error: %s", error)
        if settings.environment == "production":
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(config_errors)}. "
                "Server will not start with an unsafe configuration."
            )
        else:
            logger.warning("Running with unsafe defaults (acceptable for development only)")

    # Startup
    logger.info(
        "Starting Cart API",
        port=settings.api_port,
        env=settings.environment,
        checkout_isolation=settings.checkout_isolation_level,
    )

    if settings.create_schema_on_startup:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified")

    yield

    # Shutdown
    logger.info("Shutting down Cart API")
    engine.dispose()


# Create FastAPI application
app = FastAPI(
    title="Cart API",
    description="Shopping cart, coupons and checkout",
    version="0.1.0",
    lifespan=lifespan,
)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Render AppException like HTTPException, adding the coupon rejection
    `reason` when the error carries one.
    """
    content = {"detail": exc.detail}
    reason = getattr(exc, "reason", None)
    if reason:
        content["reason"] = reason
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


app.add_exception_handler(AppException, app_exception_handler)

# Correlation IDs for request tracing in logs
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/api/health")
def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "service": "cart-api",
        "environment": settings.environment,
    }


@app.get("/api/health/detailed")
def detailed_health_check():
    """
    Detailed health check that verifies database connectivity.
    Returns 503 when the database is unreachable.
    """
    checks = {
        "service": "cart-api",
        "environment": settings.environment,
        "dependencies": {},
    }

    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        checks["dependencies"]["database"] = {"status": "healthy"}
        checks["status"] = "healthy"
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        checks["dependencies"]["database"] = {"status": "unhealthy", "error": str(e)}
        checks["status"] = "degraded"
        return JSONResponse(content=checks, status_code=503)

    return checks


# =============================================================================
# Routers
# =============================================================================

app.include_router(cart_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cart_api.main:app",
        host="0.0.0.0",
        port=settings.api_port,
        reload=settings.debug,
    )
