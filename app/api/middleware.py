"""Middleware for request context."""

import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.tenant_context import clear_tenant_context

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_current_request_id() -> str | None:
    """Get the ID of the request being handled, if any."""
    return request_id_var.get()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns a request ID and resets the tenant context per request."""

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        """Process request with a fresh request context.

        Args:
            request: FastAPI request
            call_next: Next middleware/handler

        Returns:
            Response with an X-Request-Id header
        """
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        token = request_id_var.set(request_id)
        clear_tenant_context()
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-Id"] = request_id
        return response
