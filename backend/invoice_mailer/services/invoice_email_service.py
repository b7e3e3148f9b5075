"""
Invoice email dispatch.

WHAT: The send-invoice use case: one invoice, one recipient type, one
email.

WHY: Sending is where every part meets: workflow gate, template, recipient
lookup, attachments, transport and OAuth refresh, workflow update and
audit trail. Keeping the sequence in one place makes the failure policy
easy to see:
- any failure before or during the send leaves the workflow unchanged,
  writes a best-effort `failed` history record (when the invoice is
  known) and re-raises the original error
- a successful send advances the workflow and records `sent`

HOW: Collaborators are injected (with production defaults) so tests can
swap the transport factory, object storage and token endpoint.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.core.exceptions import (
    InvoiceNotFoundError,
    TemplateMissingError,
    ValidationError,
)
from invoice_mailer.dao.email_template import EmailTemplateDAO
from invoice_mailer.dao.invoice import InvoiceDAO
from invoice_mailer.dao.setting import SettingDAO
from invoice_mailer.models.client import Client
from invoice_mailer.models.email_history import EmailStatus, RecipientType
from invoice_mailer.models.email_template import EmailTemplate
from invoice_mailer.models.invoice import Invoice, InvoiceFileType
from invoice_mailer.models.setting import ACCOUNTANT_EMAIL_KEY
from invoice_mailer.services.attachments import AttachmentAssembler, select_files
from invoice_mailer.services.email_history import EmailHistoryRecorder, HistoryEntry
from invoice_mailer.services.email_layout import EmailLayout
from invoice_mailer.services.template_renderer import RenderedEmail, TemplateContext, TemplateRenderer
from invoice_mailer.services.transport import OutgoingEmail, TransportManager
from invoice_mailer.services.workflow import Amount, WorkflowStateMachine

logger = logging.getLogger(__name__)

ACCOUNTANT_RECIPIENT_NAME = "Accountant"


@dataclass(frozen=True)
class SendResult:
    """Outcome of a successful send."""

    message_id: str
    history_id: Optional[int] = None


@dataclass
class _Attempt:
    """What is known about a send attempt so far; feeds the failure record."""

    invoice: Optional[Invoice] = None
    template: Optional[EmailTemplate] = None
    rendered: Optional[RenderedEmail] = None
    recipient_email: str = ""
    recipient_name: Optional[str] = None


class InvoiceEmailService:
    """
    Sends an invoice to its client or to the owner's accountant.

    Example:
        service = InvoiceEmailService(session, transport_manager)
        result = await service.send_invoice_email(
            invoice_id=42, recipient_type=RecipientType.CLIENT, owner_id=user.id
        )
    """

    def __init__(
        self,
        session: AsyncSession,
        transport_manager: TransportManager,
        assembler: Optional[AttachmentAssembler] = None,
        renderer: Optional[TemplateRenderer] = None,
        layout: Optional[EmailLayout] = None,
        workflow: Optional[WorkflowStateMachine] = None,
        history: Optional[EmailHistoryRecorder] = None,
    ):
        """
        Initialize InvoiceEmailService.

        Args:
            session: Async database session shared by all collaborators
            transport_manager: Resolves and sends through the mail transport
            assembler: Fetches attachments (defaults to object storage)
            renderer: Placeholder renderer
            layout: HTML layout for the message body
            workflow: Invoice workflow state machine
            history: Email history recorder
        """
        self.session = session
        self.transport_manager = transport_manager
        self.assembler = assembler or AttachmentAssembler()
        self.renderer = renderer or TemplateRenderer()
        self.layout = layout or EmailLayout()
        self.workflow = workflow or WorkflowStateMachine(session)
        self.history = history or EmailHistoryRecorder(session)
        self.invoice_dao = InvoiceDAO(session)
        self.template_dao = EmailTemplateDAO(session)
        self.setting_dao = SettingDAO(session)

    async def send_invoice_email(
        self,
        invoice_id: int,
        recipient_type: RecipientType,
        owner_id: int,
        invoice_amount_eur: Optional[Amount] = None,
        account_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> SendResult:
        """
        Send an invoice email and advance the workflow.

        Args:
            invoice_id: Invoice to send
            recipient_type: client or accountant
            owner_id: Authenticated user; every lookup is scoped to them
            invoice_amount_eur: Operator's EUR amount for GBP accountant sends
            account_id: Email account to send from (default account otherwise)
            today: Date for {{currentDate}}

        Returns:
            SendResult with the Message-ID

        Raises:
            InvoiceNotFoundError: Invoice missing or owned by someone else
            ValidationError: No client, template, recipient or invoice files
            InvalidStateTransitionError: Accountant send before client send
            AttachmentNotFoundError / StorageError: Attachment fetch failed
            EmailAccountNotFoundError / EmailConfigurationError: No transport
            OAuthError: Token refresh failed
            EmailTransportError: SMTP failure
        """
        recipient_type = RecipientType(recipient_type)
        attempt = _Attempt()

        try:
            message_id = await self._send(
                attempt, invoice_id, recipient_type, owner_id, account_id, today
            )
        except Exception as e:
            logger.warning(
                f"Invoice email failed: {e}",
                extra={"invoice_id": invoice_id, "recipient_type": recipient_type.value},
            )
            if attempt.invoice is not None:
                await self.history.record_failure_best_effort(
                    self._history_entry(attempt, owner_id, recipient_type, EmailStatus.FAILED, error=e)
                )
            raise

        invoice = attempt.invoice
        if recipient_type == RecipientType.CLIENT:
            await self.workflow.mark_sent_to_client(invoice)
        else:
            await self.workflow.mark_sent_to_accountant(invoice, invoice.client, invoice_amount_eur)

        history_id = await self.history.record(
            self._history_entry(
                attempt, owner_id, recipient_type, EmailStatus.SENT, message_id=message_id
            )
        )
        logger.info(
            f"Invoice {invoice.id} sent to {recipient_type.value}",
            extra={"invoice_id": invoice.id, "message_id": message_id},
        )
        return SendResult(message_id=message_id, history_id=history_id)

    async def _send(
        self,
        attempt: _Attempt,
        invoice_id: int,
        recipient_type: RecipientType,
        owner_id: int,
        account_id: Optional[int],
        today: Optional[date],
    ) -> str:
        invoice = await self.invoice_dao.get_with_client(invoice_id, owner_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id=invoice_id)
        attempt.invoice = invoice

        client = invoice.client
        if client is None:
            raise ValidationError(message="Invoice has no associated client", invoice_id=invoice_id)

        attempt.template = await self._resolve_template(recipient_type, client, owner_id)
        attempt.rendered = self.renderer.render(
            attempt.template, TemplateContext.from_invoice(invoice, client, today=today)
        )

        if recipient_type == RecipientType.ACCOUNTANT:
            self.workflow.ensure_can_send_to_accountant(invoice)

        recipient_email, recipient_name, cc = await self._resolve_recipient(
            recipient_type, client, owner_id
        )
        attempt.recipient_email = recipient_email
        attempt.recipient_name = recipient_name

        file_refs = select_files(invoice.files, recipient_type, bool(client.requires_timesheet))
        if not any(ref.type == InvoiceFileType.INVOICE.value for ref in file_refs):
            raise ValidationError(message="No invoice files found", invoice_id=invoice_id)
        attachments = await self.assembler.assemble(file_refs)

        outgoing = OutgoingEmail(
            to=recipient_email,
            cc=cc,
            subject=attempt.rendered.subject,
            text_body=attempt.rendered.body,
            html_body=self.layout.render_html(attempt.rendered.subject, attempt.rendered.body),
            attachments=attachments,
        )
        return await self.transport_manager.send(outgoing, account_id=account_id, owner_id=owner_id)

    async def _resolve_template(
        self, recipient_type: RecipientType, client: Client, owner_id: int
    ) -> EmailTemplate:
        if recipient_type == RecipientType.CLIENT:
            template = await self.template_dao.get_for_client(client.id, owner_id)
            if template is None:
                raise TemplateMissingError(
                    message=(
                        "No email template found for client. Please create a template "
                        "for this client before sending emails."
                    ),
                    client_id=client.id,
                )
            return template

        template = await self.template_dao.get_for_accountant(owner_id)
        if template is None:
            raise TemplateMissingError(
                message=(
                    "No email template found for accountant. Please create a template "
                    "for the accountant before sending emails."
                ),
            )
        return template

    async def _resolve_recipient(
        self, recipient_type: RecipientType, client: Client, owner_id: int
    ) -> Tuple[str, Optional[str], List[str]]:
        """(to, display name, cc); CC only applies to client sends."""
        if recipient_type == RecipientType.CLIENT:
            email = (client.email or "").strip()
            if not email:
                raise ValidationError(message="Client email not found", client_id=client.id)
            return email, client.name, client.cc_list

        email = await self.setting_dao.get_value(owner_id, ACCOUNTANT_EMAIL_KEY)
        if not email:
            raise ValidationError(
                message="Accountant email not configured. Please set it in settings.",
                setting=ACCOUNTANT_EMAIL_KEY,
            )
        return email, ACCOUNTANT_RECIPIENT_NAME, []

    @staticmethod
    def _history_entry(
        attempt: _Attempt,
        owner_id: int,
        recipient_type: RecipientType,
        status: EmailStatus,
        message_id: Optional[str] = None,
        error: Optional[Exception] = None,
    ) -> HistoryEntry:
        return HistoryEntry(
            owner_id=owner_id,
            invoice_id=attempt.invoice.id,
            recipient_type=recipient_type,
            status=status,
            recipient_email=attempt.recipient_email,
            recipient_name=attempt.recipient_name,
            template_id=attempt.template.id if attempt.template else None,
            subject=attempt.rendered.subject if attempt.rendered else "",
            body=attempt.rendered.body if attempt.rendered else "",
            error_message=str(error) if error is not None else None,
            message_id=message_id,
        )
