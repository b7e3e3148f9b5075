"""
Email dispatch API endpoints.

WHAT: Send an invoice email and verify the mail transport.

HOW: Thin handlers over InvoiceEmailService and TransportManager. Errors
are AppExceptions and are rendered by the app's exception handlers, so a
failed send returns 400/404/500/502 with the original message after its
failure has been written to the email history.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.core.deps import get_current_user, get_object_storage, get_transport_cache
from invoice_mailer.db.session import get_db
from invoice_mailer.models.user import User
from invoice_mailer.schemas.email import SendEmailRequest, SendEmailResponse, VerifyResponse
from invoice_mailer.services.attachments import AttachmentAssembler
from invoice_mailer.services.invoice_email_service import InvoiceEmailService
from invoice_mailer.services.storage import ObjectStorage
from invoice_mailer.services.transport import TransportCache, TransportManager


router = APIRouter(prefix="/email", tags=["email"])


@router.post(
    "/send",
    response_model=SendEmailResponse,
    status_code=status.HTTP_200_OK,
    summary="Send invoice email",
    description="Send an invoice to its client or to the accountant and advance its workflow",
)
async def send_invoice_email(
    data: SendEmailRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: TransportCache = Depends(get_transport_cache),
    storage: ObjectStorage = Depends(get_object_storage),
) -> SendEmailResponse:
    """
    Send an invoice email.

    Raises:
        ValidationError (400): Missing client, template, recipient or files,
            or accountant send before client send
        ResourceNotFoundError (404): Invoice, email account or attachment missing
        OAuthError (502): Token refresh failed; reconnect the account
        EmailTransportError (500): SMTP failure or no transport configured
    """
    service = InvoiceEmailService(
        db,
        TransportManager(db, cache),
        assembler=AttachmentAssembler(storage),
    )
    result = await service.send_invoice_email(
        invoice_id=data.invoice_id,
        recipient_type=data.recipient_type,
        owner_id=current_user.id,
        invoice_amount_eur=data.invoice_amount_eur,
        account_id=data.account_id,
    )
    return SendEmailResponse(message_id=result.message_id)


@router.get(
    "/verify",
    response_model=VerifyResponse,
    summary="Verify mail transport",
    description="Connect and authenticate with the resolved account without sending",
)
async def verify_transport(
    account_id: Optional[int] = Query(default=None, alias="accountId", gt=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: TransportCache = Depends(get_transport_cache),
) -> VerifyResponse:
    """Always 200; failures are reported as {success: false, error}."""
    result = await TransportManager(db, cache).verify(account_id=account_id, owner_id=current_user.id)
    return VerifyResponse(success=result.success, error=result.error)
