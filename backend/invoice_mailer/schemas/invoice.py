"""
Invoice workflow and history schemas.

WHAT: Pydantic schemas for manual workflow overrides and the email
history of an invoice.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class InvoiceStateUpdate(BaseModel):
    """
    Schema for a manual workflow override.

    Omitted fields are left unchanged. Accepts camelCase or snake_case keys.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    sent_to_client: Optional[bool] = None
    sent_to_accountant: Optional[bool] = None
    payment_received: Optional[bool] = None
    invoice_amount_eur: Optional[Decimal] = Field(default=None, ge=0)


class InvoiceStateResponse(BaseModel):
    """Workflow state of an invoice after an update."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    sent_to_client: bool
    sent_to_client_at: Optional[datetime] = None
    sent_to_accountant: bool
    sent_to_accountant_at: Optional[datetime] = None
    payment_received: bool
    payment_received_at: Optional[datetime] = None
    invoice_amount_eur: Optional[Decimal] = None


class EmailHistoryResponse(BaseModel):
    """One email history record."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: int
    invoice_id: int
    template_id: Optional[int] = None
    recipient_email: str
    recipient_name: Optional[str] = None
    recipient_type: str
    subject: str
    body: str
    status: str
    error_message: Optional[str] = None
    message_id: Optional[str] = None
    sent_at: datetime


class EmailHistoryListResponse(BaseModel):
    """Email history of an invoice, newest first."""

    items: List[EmailHistoryResponse]
    total: int
