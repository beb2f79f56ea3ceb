"""Correlation ID middleware and log filter for request tracing."""

import logging
import uuid
from contextvars import ContextVar

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

HEADER = "X-Correlation-ID"

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")


def get_correlation_id() -> str:
    """Current request's correlation ID, "-" outside a request."""
    return correlation_id_var.get()


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:16]


class CorrelationIdFilter(logging.Filter):
    """Adds %(correlation_id)s to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        return True


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Reuses the caller's X-Correlation-ID or generates one, and echoes it back."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(HEADER) or generate_correlation_id()
        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
            response.headers[HEADER] = correlation_id
            return response
        finally:
            correlation_id_var.reset(token)
