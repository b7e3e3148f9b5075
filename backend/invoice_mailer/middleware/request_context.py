"""
Request context middleware for log correlation.

WHAT: Middleware that assigns every request an id and makes it available
throughout the request lifecycle, including on every log record.

WHY: A single invoice send touches the database, object storage, the OAuth
token endpoint and an SMTP server. When one of them fails, the request id
ties the scattered log lines of that send together.

HOW: Uses contextvars for async-safe access to the request context from
anywhere in the codebase, and a logging.Filter that stamps `request_id`
onto each record (`-` outside a request).
"""

import logging
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass(frozen=True)
class RequestContext:
    """
    Request-scoped context data.

    Fields:
    - request_id: Unique identifier for the request (for log correlation)
    - path: Request path
    - method: HTTP method
    """

    request_id: str
    path: str
    method: str


# WHY: ContextVar gives each concurrent request its own isolated context
_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """Get the current request context, or None outside a request."""
    return _request_context.get()


def get_request_id() -> Optional[str]:
    """Get the current request id, or None outside a request."""
    ctx = _request_context.get()
    return ctx.request_id if ctx else None


class RequestIdLogFilter(logging.Filter):
    """Adds `request_id` to every log record passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that captures and stores request context.

    HOW: An incoming X-Request-ID is reused so ids propagate from a proxy
    or the frontend; otherwise a UUID4 is generated. The id is echoed on
    the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())

        context = RequestContext(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
        )
        request.state.context = context
        token = _request_context.set(context)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _request_context.reset(token)
