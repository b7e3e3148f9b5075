"""
Invoice model and its attached files.

WHAT: SQLAlchemy models for invoices and the files stored for them in
object storage.

WHY: An invoice moves through a two-stage send workflow:
1. Sent to the client (with invoice files and, when the client requires
   it, timesheets)
2. Sent to the accountant (invoice files only), which is only allowed
   after step 1

Payment received is tracked independently of that chain.

HOW: Each stage is a boolean flag with the timestamp it was set. The flags
are changed only through WorkflowStateMachine so the
sent_to_accountant => sent_to_client invariant holds on every path.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, TYPE_CHECKING
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    DateTime,
    Date,
    ForeignKey,
    Numeric,
    BigInteger,
    CheckConstraint,
)
from sqlalchemy.orm import relationship, Mapped

from invoice_mailer.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from invoice_mailer.models.client import Client


class InvoiceFileType(str, Enum):
    """
    Kind of file attached to an invoice.

    WHY: The file type drives attachment selection. Timesheets are never
    sent to the accountant.
    """

    INVOICE = "invoice"
    TIMESHEET = "timesheet"


class Invoice(Base, TimestampMixin):
    """
    Invoice model.

    Attributes:
        id: Primary key
        owner_id: Owning user
        client_id: Client billed (nullable; an invoice without a client
            cannot be emailed)
        invoice_number: Human-readable identifier ({{invoiceName}})
        invoice_amount: Amount in the client's currency
        invoice_amount_eur: EUR equivalent stored when a GBP invoice goes
            to the accountant
        month / year: Billing period

        Workflow:
        sent_to_client / sent_to_client_at
        sent_to_accountant / sent_to_accountant_at
        payment_received / payment_received_at
    """

    __tablename__ = "invoices"
    __table_args__ = (
        CheckConstraint(
            "NOT sent_to_accountant OR sent_to_client",
            name="ck_invoices_accountant_after_client",
        ),
    )

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)

    owner_id: Mapped[int] = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id: Mapped[Optional[int]] = Column(
        Integer, ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True
    )

    invoice_number: Mapped[str] = Column(String(100), nullable=False)

    # WHY: Numeric, not Float, so the GBP->EUR conversion is exact to the cent
    invoice_amount: Mapped[Optional[float]] = Column(Numeric(12, 2), nullable=True)
    invoice_amount_eur: Mapped[Optional[float]] = Column(Numeric(12, 2), nullable=True)

    month: Mapped[Optional[int]] = Column(Integer, nullable=True)
    year: Mapped[Optional[int]] = Column(Integer, nullable=True)
    due_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    sent_to_client: Mapped[bool] = Column(Boolean, nullable=False, default=False)
    sent_to_client_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    sent_to_accountant: Mapped[bool] = Column(Boolean, nullable=False, default=False)
    sent_to_accountant_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    payment_received: Mapped[bool] = Column(Boolean, nullable=False, default=False)
    payment_received_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)

    # WHY: selectin loading because lazy loads are not allowed on AsyncSession
    client: Mapped[Optional["Client"]] = relationship("Client", lazy="selectin")
    files: Mapped[List["InvoiceFile"]] = relationship(
        "InvoiceFile",
        back_populates="invoice",
        order_by="InvoiceFile.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<Invoice(id={self.id}, number='{self.invoice_number}', "
            f"sent_to_client={self.sent_to_client}, sent_to_accountant={self.sent_to_accountant})>"
        )


class InvoiceFile(Base):
    """
    A file stored in object storage for an invoice.

    Attributes:
        file_key: Object key in the bucket; its last path segment is the
            attachment filename
        file_type: invoice or timesheet
    """

    __tablename__ = "invoice_files"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    invoice_id: Mapped[int] = Column(
        Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_key: Mapped[str] = Column(String(1024), nullable=False)
    file_type: Mapped[str] = Column(String(20), nullable=False, default=InvoiceFileType.INVOICE.value)
    original_name: Mapped[Optional[str]] = Column(String(255), nullable=True)
    file_size = Column(BigInteger, nullable=True)
    uploaded_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="files")

    def __repr__(self) -> str:
        return f"<InvoiceFile(id={self.id}, key='{self.file_key}', type='{self.file_type}')>"
