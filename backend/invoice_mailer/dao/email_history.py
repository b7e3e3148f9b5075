"""
Email History Data Access Object (DAO).

WHAT: Append and read operations for the email audit trail.

WHY: History is tamper-proof once written. Like the audit log it is
modelled on, this DAO does not extend BaseDAO so no generic update or
delete path exists; the explicit update/delete methods always raise.
"""

from typing import Any, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.core.exceptions import EmailHistoryImmutableError
from invoice_mailer.models.email_history import EmailHistory


class EmailHistoryDAO:
    """Data Access Object for EmailHistory model."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs: Any) -> EmailHistory:
        """
        Append a history record.

        Returns:
            The created record with its id populated
        """
        record = EmailHistory(**kwargs)
        self.session.add(record)
        await self.session.flush()
        await self.session.refresh(record)
        return record

    async def get_for_invoice(self, invoice_id: int, owner_id: int) -> List[EmailHistory]:
        """History of an invoice, newest first."""
        result = await self.session.execute(
            select(EmailHistory)
            .where(
                EmailHistory.invoice_id == invoice_id,
                EmailHistory.owner_id == owner_id,
            )
            .order_by(EmailHistory.sent_at.desc(), EmailHistory.id.desc())
        )
        return list(result.scalars().all())

    async def update(self, record_id: int, **kwargs: Any) -> None:
        """
        Attempt to update a history record (BLOCKED).

        Raises:
            EmailHistoryImmutableError: Always raised
        """
        raise EmailHistoryImmutableError(record_id=record_id)

    async def delete(self, record_id: int) -> None:
        """
        Attempt to delete a history record (BLOCKED).

        Raises:
            EmailHistoryImmutableError: Always raised
        """
        raise EmailHistoryImmutableError(
            "Email history records cannot be deleted",
            record_id=record_id,
        )
