"""
Logging configuration.

WHY: Every record carries the request id from RequestContextMiddleware so
the lines of one send can be followed across storage, OAuth and SMTP.
"""

import logging.config
from typing import Optional

from invoice_mailer.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Install the root handler with the request-id filter."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_id": {
                    "()": "invoice_mailer.middleware.request_context.RequestIdLogFilter",
                },
            },
            "formatters": {
                "default": {"format": LOG_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["request_id"],
                },
            },
            "root": {
                "handlers": ["console"],
                "level": (level or settings.LOG_LEVEL).upper(),
            },
            "loggers": {
                # SQL echo is controlled by DEBUG on the engine
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
