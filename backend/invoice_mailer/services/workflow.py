"""
Invoice send-workflow state machine.

WHAT: The only code that changes an invoice's workflow flags.

WHY: An invoice goes Created -> SentToClient -> SentToAccountant, and the
accountant must never receive an invoice the client has not. Both the
email send path and the operator's manual override path go through this
class, so the gate cannot be bypassed.

HOW:
- Each transition sets the flag and its timestamp on the loaded invoice
  and flushes through the caller's session
- Sending a GBP invoice to the accountant stores its EUR equivalent,
  either the operator's figure or amount x gbp_to_eur_rate
- payment_received is independent of the send chain
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.core.config import settings
from invoice_mailer.core.exceptions import InvalidStateTransitionError, ValidationError
from invoice_mailer.dao.setting import SettingDAO
from invoice_mailer.models.client import Client, Currency
from invoice_mailer.models.invoice import Invoice
from invoice_mailer.models.setting import GBP_TO_EUR_RATE_KEY

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

Amount = Union[Decimal, float, int, str]


@dataclass
class WorkflowUpdate:
    """
    Operator override of an invoice's workflow state.

    None means "leave unchanged".
    """

    sent_to_client: Optional[bool] = None
    sent_to_accountant: Optional[bool] = None
    payment_received: Optional[bool] = None
    invoice_amount_eur: Optional[Amount] = None


def _to_decimal(value: Amount, field_name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(message=f"Invalid {field_name}: {value}", field=field_name)


class WorkflowStateMachine:
    """
    Enforces and persists invoice workflow transitions.

    Example:
        workflow = WorkflowStateMachine(session)
        workflow.ensure_can_send_to_accountant(invoice)
        await workflow.mark_sent_to_accountant(invoice, client)
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.setting_dao = SettingDAO(session)

    @staticmethod
    def ensure_can_send_to_accountant(invoice: Invoice) -> None:
        """
        The workflow gate.

        Raises:
            InvalidStateTransitionError: If the invoice has not been sent to
                the client
        """
        if not invoice.sent_to_client:
            raise InvalidStateTransitionError(invoice_id=invoice.id)

    async def mark_sent_to_client(self, invoice: Invoice) -> Invoice:
        """Record that the invoice went to the client. Always permitted."""
        invoice.sent_to_client = True
        invoice.sent_to_client_at = datetime.utcnow()
        await self.session.flush()
        logger.info(f"Invoice {invoice.id} marked as sent to client")
        return invoice

    async def mark_sent_to_accountant(
        self,
        invoice: Invoice,
        client: Optional[Client],
        manual_amount_eur: Optional[Amount] = None,
    ) -> Invoice:
        """
        Record that the invoice went to the accountant.

        Args:
            invoice: Invoice already sent to the client
            client: The invoice's client (its currency decides conversion)
            manual_amount_eur: Operator-supplied EUR amount for GBP invoices

        Raises:
            InvalidStateTransitionError: If the gate is not satisfied
        """
        self.ensure_can_send_to_accountant(invoice)

        amount_eur = await self.eur_amount_for(invoice, client, manual_amount_eur)
        if amount_eur is not None:
            invoice.invoice_amount_eur = amount_eur

        invoice.sent_to_accountant = True
        invoice.sent_to_accountant_at = datetime.utcnow()
        await self.session.flush()
        logger.info(
            f"Invoice {invoice.id} marked as sent to accountant",
            extra={"invoice_amount_eur": str(amount_eur) if amount_eur is not None else None},
        )
        return invoice

    async def eur_amount_for(
        self,
        invoice: Invoice,
        client: Optional[Client],
        manual_amount_eur: Optional[Amount] = None,
    ) -> Optional[Decimal]:
        """
        EUR equivalent to store for a GBP invoice, or None.

        WHY: The accountant books in EUR. The operator's figure wins over
        the configured rate because it reflects the rate actually received.
        """
        if client is None or client.currency != Currency.GBP.value:
            return None
        if invoice.invoice_amount is None:
            return None

        if manual_amount_eur is not None:
            return _to_decimal(manual_amount_eur, "invoice_amount_eur").quantize(CENT, rounding=ROUND_HALF_UP)

        rate = await self.gbp_to_eur_rate(invoice.owner_id)
        amount = _to_decimal(invoice.invoice_amount, "invoice_amount")
        return (amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)

    async def gbp_to_eur_rate(self, owner_id: int) -> Decimal:
        """The owner's gbp_to_eur_rate setting, or the configured default."""
        raw = await self.setting_dao.get_value(owner_id, GBP_TO_EUR_RATE_KEY)
        if raw is None:
            return settings.DEFAULT_GBP_TO_EUR_RATE
        try:
            rate = Decimal(raw)
        except InvalidOperation:
            logger.warning(f"Ignoring malformed {GBP_TO_EUR_RATE_KEY} setting for owner {owner_id}")
            return settings.DEFAULT_GBP_TO_EUR_RATE
        return rate if rate > 0 else settings.DEFAULT_GBP_TO_EUR_RATE

    async def apply_manual_update(
        self,
        invoice: Invoice,
        client: Optional[Client],
        update: WorkflowUpdate,
    ) -> Invoice:
        """
        Apply an operator override.

        HOW: sent_to_client is applied first and the accountant gate is then
        checked against the resulting state, so {sent_to_client: true,
        sent_to_accountant: true} in one request is accepted.

        Raises:
            InvalidStateTransitionError: If the update would leave
                sent_to_accountant set without sent_to_client
        """
        if update.sent_to_client is False and invoice.sent_to_accountant and update.sent_to_accountant is not False:
            raise InvalidStateTransitionError(
                message="Cannot unmark sent to client while the invoice is marked as sent to accountant",
                invoice_id=invoice.id,
            )

        if update.sent_to_accountant is False and invoice.sent_to_accountant:
            invoice.sent_to_accountant = False
            invoice.sent_to_accountant_at = None

        if update.sent_to_client is True and not invoice.sent_to_client:
            await self.mark_sent_to_client(invoice)
        elif update.sent_to_client is False and invoice.sent_to_client:
            invoice.sent_to_client = False
            invoice.sent_to_client_at = None

        if update.sent_to_accountant is True and not invoice.sent_to_accountant:
            await self.mark_sent_to_accountant(invoice, client, update.invoice_amount_eur)
        if update.invoice_amount_eur is not None:
            invoice.invoice_amount_eur = _to_decimal(
                update.invoice_amount_eur, "invoice_amount_eur"
            ).quantize(CENT, rounding=ROUND_HALF_UP)

        if update.payment_received is not None and update.payment_received != invoice.payment_received:
            invoice.payment_received = update.payment_received
            invoice.payment_received_at = datetime.utcnow() if update.payment_received else None

        await self.session.flush()
        return invoice
