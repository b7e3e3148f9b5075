"""
Client model.

WHAT: A customer who receives invoices.

WHY: The client decides three things about an invoice email:
- who receives it (email plus optional CC list)
- which attachments it carries (timesheets only when required)
- how the amount is formatted and whether an EUR equivalent is stored
  for the accountant (GBP clients)
"""

from enum import Enum
from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, JSON

from invoice_mailer.models.base import Base, TimestampMixin, PrimaryKeyMixin


class Currency(str, Enum):
    """Invoice currencies supported for clients."""

    EUR = "EUR"
    GBP = "GBP"


class Client(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Client model.

    Attributes:
        owner_id: User who owns this client
        name: Display name used in templates ({{clientName}})
        email: Primary recipient for client sends
        cc_emails: Additional recipients copied on client sends
        currency: EUR or GBP
        requires_timesheet: Whether timesheet files go out with client sends
        vat_number: Rendered as {{clientVat}}
        address: Rendered as {{clientAddress}}
    """

    __tablename__ = "clients"

    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    # WHY: JSON (not a separate table) because CC lists are small and only
    # ever read whole
    cc_emails = Column(JSON, nullable=False, default=list)

    # WHY: plain string column; the Currency enum validates at the API edge
    currency = Column(String(3), nullable=False, default=Currency.EUR.value)
    requires_timesheet = Column(Boolean, nullable=False, default=False)

    vat_number = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)

    @property
    def cc_list(self) -> list[str]:
        """Non-blank CC addresses, stripped."""
        return [
            address.strip()
            for address in (self.cc_emails or [])
            if isinstance(address, str) and address.strip()
        ]

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name='{self.name}', currency='{self.currency}')>"
