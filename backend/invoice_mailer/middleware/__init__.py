"""
Middleware package.

WHY: Middleware provides cross-cutting concerns that apply to all
requests: request correlation ids for logging.
"""

from invoice_mailer.middleware.request_context import (
    RequestContextMiddleware,
    RequestContext,
    RequestIdLogFilter,
    get_request_context,
    get_request_id,
)

__all__ = [
    "RequestContextMiddleware",
    "RequestContext",
    "RequestIdLogFilter",
    "get_request_context",
    "get_request_id",
]
