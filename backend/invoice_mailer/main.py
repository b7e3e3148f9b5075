"""
Main FastAPI application.

WHY: This is the entry point for the application. It configures logging,
middleware, routes, exception handlers, and the application-owned
transport cache.
"""

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from invoice_mailer.api import email, email_accounts, email_templates, invoices
from invoice_mailer.core.config import settings
from invoice_mailer.core.exception_handlers import (
    app_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from invoice_mailer.core.exceptions import AppException
from invoice_mailer.core.logging_config import configure_logging
from invoice_mailer.middleware import RequestContextMiddleware
from invoice_mailer.services.transport import TransportCache


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    WHY: Factory pattern gives each app instance (and each test) its own
    TransportCache, stored on app.state and injected into handlers.

    Returns:
        Configured FastAPI application instance
    """
    configure_logging()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Invoice email dispatch API",
        version=settings.VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.state.transport_cache = TransportCache()

    # Register exception handlers
    # WHY: Consistent {error, message, status_code, details} bodies with
    # secrets filtered out of details
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """Liveness check; does not touch the database or SMTP."""
        return {"status": "healthy", "version": settings.VERSION}

    app.include_router(email.router, prefix=settings.API_V1_PREFIX)
    app.include_router(email_accounts.router, prefix=settings.API_V1_PREFIX)
    app.include_router(invoices.router, prefix=settings.API_V1_PREFIX)
    app.include_router(email_templates.router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()
