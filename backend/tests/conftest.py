"""
Pytest configuration and fixtures for backend tests.
"""

import os

# Point the application engine at SQLite before anything imports settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CREATE_SCHEMA_ON_STARTUP", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cart_api.main import app
from cart_api.models import Base, Cart, CartItem, Coupon, CouponProduct, Product
from shared.config.constants import CartStatus, DiscountType
from shared.infrastructure.db import get_db


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    # Create all tables
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        # Drop all tables after test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """
    Create a test client with database session override.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_product(db_session):
    """Factory for catalog products."""

    def _make(
        name: str = "Test Product",
        price: str | Decimal = "100.00",
        stock: int = 10,
        is_active: bool = True,
    ) -> Product:
        product = Product(
            name=name,
            price=Decimal(str(price)),
            stock_quantity=stock,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product

    return _make


@pytest.fixture
def make_coupon(db_session):
    """
    Factory for coupons. Defaults to an active, unrestricted fixed coupon
    valid from an hour ago until tomorrow.
    """

    def _make(
        code: str,
        discount_type: str = DiscountType.FIXED,
        discount_value: str | Decimal = "10",
        product_ids: list[int] | None = None,
        **overrides,
    ) -> Coupon:
        now = datetime.now(timezone.utc)
        fields = {
            "start_time": now - timedelta(hours=1),
            "expiry_time": now + timedelta(days=1),
            "is_active": True,
            "is_auto_applied": False,
        }
        fields.update(overrides)
        coupon = Coupon(
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(str(discount_value)),
            products=[CouponProduct(product_id=pid) for pid in product_ids or []],
            **fields,
        )
        db_session.add(coupon)
        db_session.commit()
        db_session.refresh(coupon)
        return coupon

    return _make


@pytest.fixture
def make_cart(db_session):
    """
    Factory for a persisted cart with items, bypassing the service layer.
    `lines` is a list of (product, quantity).
    """

    def _make(user_id: int, lines: list[tuple[Product, int]] = (), status: str = CartStatus.ACTIVE) -> Cart:
        cart = Cart(user_id=user_id, status=status)
        db_session.add(cart)
        db_session.flush()
        for product, quantity in lines:
            db_session.add(
                CartItem(
                    cart_id=cart.id,
                    product_id=product.id,
                    quantity=quantity,
                    price_at_addition=product.price,
                )
            )
        db_session.commit()
        db_session.refresh(cart)
        return cart

    return _make


@pytest.fixture
def product(make_product):
    """A product priced 100.00 with 10 in stock."""
    return make_product("Coffee Grinder", "100.00", stock=10)
