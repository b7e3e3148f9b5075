"""
Workflow State Machine Tests.

WHAT: Unit tests for the client-before-accountant gate, GBP to EUR
conversion and manual overrides.

WHY: Both the email path and manual overrides go through this class; if
the gate fails here it fails everywhere.
"""

from decimal import Decimal

import pytest

from invoice_mailer.core.exceptions import InvalidStateTransitionError
from invoice_mailer.models.client import Currency
from invoice_mailer.models.setting import GBP_TO_EUR_RATE_KEY
from invoice_mailer.services.workflow import WorkflowStateMachine, WorkflowUpdate
from tests.factories import ClientFactory, InvoiceFactory, SettingFactory


@pytest.mark.asyncio
class TestGate:
    async def test_accountant_before_client_is_rejected(self, db_session, test_user):
        client = await ClientFactory.create(db_session, owner_id=test_user.id)
        invoice = await InvoiceFactory.create(db_session, owner_id=test_user.id, client=client)

        with pytest.raises(InvalidStateTransitionError):
            await WorkflowStateMachine(db_session).mark_sent_to_accountant(invoice, client)

        assert invoice.sent_to_accountant is False

    async def test_client_then_accountant(self, db_session, test_user):
        client = await ClientFactory.create(db_session, owner_id=test_user.id)
        invoice = await InvoiceFactory.create(db_session, owner_id=test_user.id, client=client)
        workflow = WorkflowStateMachine(db_session)

        await workflow.mark_sent_to_client(invoice)
        await workflow.mark_sent_to_accountant(invoice, client)

        assert invoice.sent_to_client and invoice.sent_to_client_at is not None
        assert invoice.sent_to_accountant and invoice.sent_to_accountant_at is not None
        assert invoice.invoice_amount_eur is None

    async def test_resending_to_client_is_allowed(self, db_session, test_user):
        client = await ClientFactory.create(db_session, owner_id=test_user.id)
        invoice = await InvoiceFactory.create(
            db_session, owner_id=test_user.id, client=client, sent_to_client=True
        )

        await WorkflowStateMachine(db_session).mark_sent_to_client(invoice)

        assert invoice.sent_to_client is True


@pytest.mark.asyncio
class TestGbpConversion:
    async def _gbp_invoice(self, db_session, owner_id, amount=Decimal("100.00")):
        client = await ClientFactory.create(db_session, owner_id=owner_id, currency=Currency.GBP)
        invoice = await InvoiceFactory.create(
            db_session, owner_id=owner_id, client=client, invoice_amount=amount, sent_to_client=True
        )
        return client, invoice

    async def test_default_rate(self, db_session, test_user):
        client, invoice = await self._gbp_invoice(db_session, test_user.id)

        await WorkflowStateMachine(db_session).mark_sent_to_accountant(invoice, client)

        assert invoice.invoice_amount_eur == Decimal("115.00")

    async def test_configured_rate(self, db_session, test_user):
        await SettingFactory.create(db_session, test_user.id, GBP_TO_EUR_RATE_KEY, "1.1712")
        client, invoice = await self._gbp_invoice(db_session, test_user.id, Decimal("250.00"))

        await WorkflowStateMachine(db_session).mark_sent_to_accountant(invoice, client)

        assert invoice.invoice_amount_eur == Decimal("292.80")

    @pytest.mark.parametrize("raw", ["not-a-number", "0", "-1.2"])
    async def test_unusable_rate_falls_back_to_default(self, db_session, test_user, raw):
        await SettingFactory.create(db_session, test_user.id, GBP_TO_EUR_RATE_KEY, raw)

        rate = await WorkflowStateMachine(db_session).gbp_to_eur_rate(test_user.id)

        assert rate == Decimal("1.15")

    async def test_manual_amount_wins(self, db_session, test_user):
        client, invoice = await self._gbp_invoice(db_session, test_user.id)

        await WorkflowStateMachine(db_session).mark_sent_to_accountant(
            invoice, client, manual_amount_eur="117.456"
        )

        assert invoice.invoice_amount_eur == Decimal("117.46")

    async def test_eur_client_stores_no_conversion(self, db_session, test_user):
        client = await ClientFactory.create(db_session, owner_id=test_user.id, currency=Currency.EUR)
        invoice = await InvoiceFactory.create(
            db_session, owner_id=test_user.id, client=client, sent_to_client=True
        )

        await WorkflowStateMachine(db_session).mark_sent_to_accountant(
            invoice, client, manual_amount_eur="999"
        )

        assert invoice.invoice_amount_eur is None


@pytest.mark.asyncio
class TestManualUpdate:
    async def test_accountant_without_client_is_rejected(self, db_session, test_user):
        client = await ClientFactory.create(db_session, owner_id=test_user.id)
        invoice = await InvoiceFactory.create(db_session, owner_id=test_user.id, client=client)

        with pytest.raises(InvalidStateTransitionError):
            await WorkflowStateMachine(db_session).apply_manual_update(
                invoice, client, WorkflowUpdate(sent_to_accountant=True)
            )

    async def test_both_flags_in_one_update(self, db_session, test_user):
        client = await ClientFactory.create(db_session, owner_id=test_user.id)
        invoice = await InvoiceFactory.create(db_session, owner_id=test_user.id, client=client)

        await WorkflowStateMachine(db_session).apply_manual_update(
            invoice, client, WorkflowUpdate(sent_to_client=True, sent_to_accountant=True)
        )

        assert invoice.sent_to_client and invoice.sent_to_accountant

    async def test_unmarking_client_while_accountant_set_is_rejected(self, db_session, test_user):
        client = await ClientFactory.create(db_session, owner_id=test_user.id)
        invoice = await InvoiceFactory.create(
            db_session, owner_id=test_user.id, client=client, sent_to_client=True, sent_to_accountant=True
        )

        with pytest.raises(InvalidStateTransitionError):
            await WorkflowStateMachine(db_session).apply_manual_update(
                invoice, client, WorkflowUpdate(sent_to_client=False)
            )

        assert invoice.sent_to_client is True

    async def test_unmarking_both(self, db_session, test_user):
        client = await ClientFactory.create(db_session, owner_id=test_user.id)
        invoice = await InvoiceFactory.create(
            db_session, owner_id=test_user.id, client=client, sent_to_client=True, sent_to_accountant=True
        )

        await WorkflowStateMachine(db_session).apply_manual_update(
            invoice, client, WorkflowUpdate(sent_to_client=False, sent_to_accountant=False)
        )

        assert invoice.sent_to_client is False and invoice.sent_to_client_at is None
        assert invoice.sent_to_accountant is False and invoice.sent_to_accountant_at is None

    async def test_payment_received_is_independent(self, db_session, test_user):
        client = await ClientFactory.create(db_session, owner_id=test_user.id)
        invoice = await InvoiceFactory.create(db_session, owner_id=test_user.id, client=client)
        workflow = WorkflowStateMachine(db_session)

        await workflow.apply_manual_update(invoice, client, WorkflowUpdate(payment_received=True))
        assert invoice.payment_received is True
        assert invoice.payment_received_at is not None
        assert invoice.sent_to_client is False

        await workflow.apply_manual_update(invoice, client, WorkflowUpdate(payment_received=False))
        assert invoice.payment_received_at is None

    async def test_eur_amount_override(self, db_session, test_user):
        client = await ClientFactory.create(db_session, owner_id=test_user.id, currency=Currency.GBP)
        invoice = await InvoiceFactory.create(
            db_session, owner_id=test_user.id, client=client, sent_to_client=True, sent_to_accountant=True
        )

        await WorkflowStateMachine(db_session).apply_manual_update(
            invoice, client, WorkflowUpdate(invoice_amount_eur=Decimal("120.5"))
        )

        assert invoice.invoice_amount_eur == Decimal("120.50")
