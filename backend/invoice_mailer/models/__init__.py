"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from invoice_mailer.models.base import Base, TimestampMixin, PrimaryKeyMixin
from invoice_mailer.models.user import User
from invoice_mailer.models.client import Client, Currency
from invoice_mailer.models.invoice import Invoice, InvoiceFile, InvoiceFileType
from invoice_mailer.models.email_template import EmailTemplate, EmailTemplateType
from invoice_mailer.models.email_account import EmailAccount, CREDENTIAL_FIELDS
from invoice_mailer.models.email_history import EmailHistory, EmailStatus, RecipientType
from invoice_mailer.models.setting import (
    Setting,
    ACCOUNTANT_EMAIL_KEY,
    GBP_TO_EUR_RATE_KEY,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "User",
    "Client",
    "Currency",
    "Invoice",
    "InvoiceFile",
    "InvoiceFileType",
    "EmailTemplate",
    "EmailTemplateType",
    "EmailAccount",
    "CREDENTIAL_FIELDS",
    "EmailHistory",
    "EmailStatus",
    "RecipientType",
    "Setting",
    "ACCOUNTANT_EMAIL_KEY",
    "GBP_TO_EUR_RATE_KEY",
]
