"""
Invoice workflow API endpoints.

WHAT: Manual workflow overrides and the email history of an invoice.

WHY: Operators sometimes send an invoice outside the app, or need to undo
a mistaken flag. Overrides go through WorkflowStateMachine so the
client-before-accountant rule holds on this path too.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.core.deps import get_current_user
from invoice_mailer.core.exceptions import InvoiceNotFoundError
from invoice_mailer.dao.invoice import InvoiceDAO
from invoice_mailer.db.session import get_db
from invoice_mailer.models.user import User
from invoice_mailer.schemas.invoice import (
    EmailHistoryListResponse,
    EmailHistoryResponse,
    InvoiceStateResponse,
    InvoiceStateUpdate,
)
from invoice_mailer.services.email_history import EmailHistoryRecorder
from invoice_mailer.services.workflow import WorkflowStateMachine, WorkflowUpdate


router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.patch(
    "/{invoice_id}/state",
    response_model=InvoiceStateResponse,
    summary="Update invoice workflow state",
)
async def update_invoice_state(
    invoice_id: int,
    data: InvoiceStateUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> InvoiceStateResponse:
    """
    Apply a manual workflow override.

    Raises:
        InvoiceNotFoundError (404): Invoice missing or not owned
        InvalidStateTransitionError (400): sent_to_accountant without sent_to_client
    """
    invoice = await InvoiceDAO(db).get_with_client(invoice_id, current_user.id)
    if invoice is None:
        raise InvoiceNotFoundError(invoice_id=invoice_id)

    update = WorkflowUpdate(**data.model_dump(exclude_unset=True))
    invoice = await WorkflowStateMachine(db).apply_manual_update(invoice, invoice.client, update)
    return InvoiceStateResponse.model_validate(invoice)


@router.get(
    "/{invoice_id}/email-history",
    response_model=EmailHistoryListResponse,
    summary="Invoice email history",
)
async def get_invoice_email_history(
    invoice_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> EmailHistoryListResponse:
    """Every send attempt for the invoice, newest first."""
    if not await InvoiceDAO(db).get_by_id_and_owner(invoice_id, current_user.id):
        raise InvoiceNotFoundError(invoice_id=invoice_id)

    records = await EmailHistoryRecorder(db).list_for_invoice(invoice_id, current_user.id)
    return EmailHistoryListResponse(
        items=[EmailHistoryResponse.model_validate(r) for r in records],
        total=len(records),
    )
