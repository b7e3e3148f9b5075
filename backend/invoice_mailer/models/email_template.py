"""
Email template model.

WHAT: Subject and body text with {{placeholder}} tokens.

WHY: Two kinds of template exist:
- to_client: scoped to one client; required for client sends
- to_accountant: one per owner; required for accountant sends
Neither falls back to the other.
"""

from enum import Enum
from typing import Optional
from sqlalchemy import Column, Integer, String, Text, ForeignKey
from sqlalchemy.orm import Mapped

from invoice_mailer.models.base import Base, TimestampMixin, PrimaryKeyMixin


class EmailTemplateType(str, Enum):
    """Template discriminator, matching the recipient it addresses."""

    TO_CLIENT = "to_client"
    TO_ACCOUNTANT = "to_accountant"


class EmailTemplate(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Email template.

    Attributes:
        owner_id: Owning user
        client_id: Client the template belongs to (to_client only)
        type: to_client or to_accountant
        subject: Subject with placeholders
        body: Plain-text body with placeholders; newlines become <br> in HTML
    """

    __tablename__ = "email_templates"

    owner_id: Mapped[int] = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id: Mapped[Optional[int]] = Column(
        Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=True, index=True
    )
    name = Column(String(255), nullable=True)
    type: Mapped[str] = Column(String(20), nullable=False, default=EmailTemplateType.TO_CLIENT.value)
    subject: Mapped[str] = Column(String(500), nullable=False)
    body: Mapped[str] = Column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<EmailTemplate(id={self.id}, type='{self.type}', client_id={self.client_id})>"
