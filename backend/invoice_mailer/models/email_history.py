"""
Email history model.

WHAT: One row per invoice email attempt, successful or not.

WHY: Operators diagnose failed sends (revoked OAuth grants, SMTP
rejections, missing files) from this trail without re-triggering the send.

HOW: Append-only. EmailHistoryDAO refuses updates and deletes; rows are
removed only when the invoice itself is deleted.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import Mapped

from invoice_mailer.models.base import Base


class RecipientType(str, Enum):
    """Who an invoice email is addressed to."""

    CLIENT = "client"
    ACCOUNTANT = "accountant"


class EmailStatus(str, Enum):
    """Outcome of one send attempt."""

    SENT = "sent"
    FAILED = "failed"


class EmailHistory(Base):
    """
    Email history record.

    Attributes:
        invoice_id: Invoice the email was about
        template_id: Template rendered (null when the failure happened
            before a template resolved)
        recipient_email / recipient_name / recipient_type: Addressee
        subject / body: Rendered content (empty when rendering never ran)
        status: sent or failed
        error_message: Raw error for failed attempts
        message_id: SMTP Message-ID for successful attempts
        sent_at: Attempt time (UTC)
    """

    __tablename__ = "email_history"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    owner_id: Mapped[int] = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    invoice_id: Mapped[int] = Column(
        Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    template_id: Mapped[Optional[int]] = Column(
        Integer, ForeignKey("email_templates.id", ondelete="SET NULL"), nullable=True
    )

    recipient_email: Mapped[str] = Column(String(255), nullable=False, default="")
    recipient_name: Mapped[Optional[str]] = Column(String(255), nullable=True)
    recipient_type: Mapped[str] = Column(String(20), nullable=False)

    subject: Mapped[str] = Column(String(500), nullable=False, default="")
    body: Mapped[str] = Column(Text, nullable=False, default="")

    status: Mapped[str] = Column(String(20), nullable=False)
    error_message: Mapped[Optional[str]] = Column(Text, nullable=True)
    message_id: Mapped[Optional[str]] = Column(String(255), nullable=True)
    sent_at: Mapped[datetime] = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return (
            f"<EmailHistory(id={self.id}, invoice_id={self.invoice_id}, "
            f"recipient_type='{self.recipient_type}', status='{self.status}')>"
        )
