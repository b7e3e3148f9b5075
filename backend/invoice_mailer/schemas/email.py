"""
Email dispatch schemas for API request/response validation.

WHAT: Pydantic schemas for sending an invoice email and verifying the
mail transport.

HOW: Uses Pydantic v2 with camelCase aliases; the frontend speaks
camelCase while the services use snake_case. Both spellings are accepted
on input.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from invoice_mailer.models.email_history import RecipientType


class CamelModel(BaseModel):
    """Base schema serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendEmailRequest(CamelModel):
    """
    Schema for sending an invoice email.

    WHY: invoiceAmountEur lets the operator supply the EUR figure actually
    received for a GBP invoice instead of the configured conversion rate.
    """

    invoice_id: int = Field(..., gt=0, description="Invoice to send")
    recipient_type: RecipientType = Field(..., description="client or accountant")
    invoice_amount_eur: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="EUR amount for GBP invoices sent to the accountant",
    )
    account_id: Optional[int] = Field(
        default=None,
        gt=0,
        description="Email account to send from (owner's default when omitted)",
    )


class SendEmailResponse(CamelModel):
    """Successful send."""

    success: bool = True
    message_id: str


class VerifyResponse(CamelModel):
    """Transport verification outcome."""

    success: bool
    error: Optional[str] = None
