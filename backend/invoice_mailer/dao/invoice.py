"""
Invoice Data Access Object (DAO).

WHAT: Database operations for invoices.

WHY: The dispatch core reads an invoice together with its client and
files; only WorkflowStateMachine writes the workflow flags, through
the session it shares with this DAO.
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.dao.base import BaseDAO
from invoice_mailer.models.invoice import Invoice


class InvoiceDAO(BaseDAO[Invoice]):
    """Data Access Object for Invoice model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Invoice, session)

    async def get_with_client(self, invoice_id: int, owner_id: int) -> Optional[Invoice]:
        """
        Load an owned invoice with its client and files.

        WHY: client and files are selectin-loaded relationships, so a single
        call here gives the orchestrator everything it needs without lazy
        loads on the async session.
        """
        return await self.get_by_id_and_owner(invoice_id, owner_id)

