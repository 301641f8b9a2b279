"""
Tests for request correlation and structured log output.
"""

import json
import logging
from decimal import Decimal

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from shared.config.logging import DevelopmentFormatter, StructuredFormatter, get_logger
from shared.infrastructure.correlation import (
    CorrelationIdFilter,
    CorrelationIdMiddleware,
    request_id_var,
    user_id_var,
)


def _record(msg: str = "Coupon applied", **context) -> logging.LogRecord:
    record = logging.LogRecord("cart_api.test", logging.INFO, __file__, 1, msg, (), None)
    record.context = context
    return record


class TestCorrelationIdMiddleware:
    """Request and user ids are bound per request."""

    @pytest.fixture
    def client(self):
        app = FastAPI()
        app.add_middleware(CorrelationIdMiddleware)

        @app.get("/probe")
        def probe():
            return {"request_id": request_id_var.get(), "user_id": user_id_var.get()}

        return TestClient(app)

    def test_generates_request_id(self, client):
        response = client.get("/probe")

        request_id = response.headers["X-Request-ID"]
        assert len(request_id) == 32
        assert response.json()["request_id"] == request_id

    def test_keeps_well_formed_request_id(self, client):
        response = client.get("/probe", headers={"X-Request-ID": "checkout-7f3a"})
        assert response.headers["X-Request-ID"] == "checkout-7f3a"

    def test_replaces_unsafe_request_id(self, client):
        response = client.get("/probe", headers={"X-Request-ID": "x" * 200})
        assert response.headers["X-Request-ID"] != "x" * 200

    def test_binds_user_id(self, client):
        response = client.get("/probe", headers={"X-User-Id": "42"})
        assert response.json()["user_id"] == "42"

    def test_context_reset_after_request(self, client):
        client.get("/probe", headers={"X-Request-ID": "abc", "X-User-Id": "42"})
        assert request_id_var.get() == ""
        assert user_id_var.get() == ""


class TestCorrelationIdFilter:
    """Filter copies the bound ids onto records."""

    def test_adds_bound_ids(self):
        request_token = request_id_var.set("req-1")
        user_token = user_id_var.set("7")
        try:
            record = _record()
            assert CorrelationIdFilter().filter(record) is True
            assert record.request_id == "req-1"
            assert record.user_id == "7"
        finally:
            user_id_var.reset(user_token)
            request_id_var.reset(request_token)

    def test_dash_when_unbound(self):
        record = _record()
        CorrelationIdFilter().filter(record)
        assert record.request_id == "-"
        assert record.user_id == "-"


class TestFormatters:
    """Keyword context reaches the rendered line."""

    def test_json_promotes_identifiers(self):
        record = _record(cart_id=12, code="SAVE10", discount=Decimal("2.50"))
        record.request_id = "req-1"
        record.user_id = "-"

        entry = json.loads(StructuredFormatter().format(record))

        assert entry["message"] == "Coupon applied"
        assert entry["cart_id"] == 12
        assert entry["code"] == "SAVE10"
        assert entry["request_id"] == "req-1"
        assert "user_id" not in entry
        assert entry["data"] == {"discount": "2.50"}

    def test_development_line_lists_context(self):
        record = _record(cart_id=12)
        record.request_id = "-"
        record.user_id = "7"

        line = DevelopmentFormatter().format(record)

        assert "Coupon applied" in line
        assert "cart_id=12" in line
        assert "user:7" in line

    def test_logger_accepts_keyword_context(self, caplog):
        logger = get_logger("cart_api.test")
        with caplog.at_level(logging.INFO, logger="cart_api.test"):
            logger.info("Cart checked out", cart_id=3, user_id=9)

        record = caplog.records[-1]
        assert record.getMessage() == "Cart checked out"
        assert record.context == {"cart_id": 3, "user_id": 9}
