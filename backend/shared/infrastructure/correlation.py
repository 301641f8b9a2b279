"""
Request correlation.

Every request gets a request id (taken from X-Request-ID when the caller
sends a usable one) and, when the gateway forwarded it, the acting user id.
Both live in context variables so any log line emitted while handling the
request can be tied back to the request and to the shopper.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"
USER_ID_HEADER = "X-User-Id"

# Incoming ids end up in logs and response headers
_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str] = ContextVar("user_id", default="")


def _incoming_request_id(request: Request) -> str:
    candidate = request.headers.get(REQUEST_ID_HEADER, "")
    if _SAFE_REQUEST_ID.match(candidate):
        return candidate
    return uuid.uuid4().hex


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Bind request and user ids for the duration of a request.

    The request id is echoed back in the X-Request-ID response header,
    including on error responses.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = _incoming_request_id(request)
        request.state.request_id = request_id

        request_token = request_id_var.set(request_id)
        user_token = user_id_var.set(request.headers.get(USER_ID_HEADER, "")[:20])
        try:
            response = await call_next(request)
        finally:
            user_id_var.reset(user_token)
            request_id_var.reset(request_token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class CorrelationIdFilter:
    """Copy the bound request and user ids onto each log record."""

    def filter(self, record) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.user_id = user_id_var.get() or "-"
        return True
