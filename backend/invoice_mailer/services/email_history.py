"""
Email history recording.

WHAT: Appends one audit record per invoice email attempt and reads the
trail back.

WHY: Failed sends must leave a trace even though the request that
produced them fails. At the same time a broken history write must never
hide the error the user actually needs to see.

HOW:
- record() is the primary path for successful sends; errors propagate.
- record_failure_best_effort() runs inside a SAVEPOINT and commits on its
  own so the row survives the request's rollback. Any persistence error
  is logged and dropped; the caller re-raises the original error itself.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.dao.email_history import EmailHistoryDAO
from invoice_mailer.models.email_history import EmailHistory, EmailStatus, RecipientType

logger = logging.getLogger(__name__)


@dataclass
class HistoryEntry:
    """Fields of one history record."""

    owner_id: int
    invoice_id: int
    recipient_type: RecipientType
    status: EmailStatus
    recipient_email: str = ""
    recipient_name: Optional[str] = None
    template_id: Optional[int] = None
    subject: str = ""
    body: str = ""
    error_message: Optional[str] = None
    message_id: Optional[str] = None

    def as_row(self) -> dict:
        return {
            "owner_id": self.owner_id,
            "invoice_id": self.invoice_id,
            "template_id": self.template_id,
            "recipient_email": self.recipient_email or "",
            "recipient_name": self.recipient_name,
            "recipient_type": RecipientType(self.recipient_type).value,
            "subject": self.subject or "",
            "body": self.body or "",
            "status": EmailStatus(self.status).value,
            "error_message": self.error_message,
            "message_id": self.message_id,
        }


class EmailHistoryRecorder:
    """
    Append-only recorder for invoice email attempts.

    Example:
        recorder = EmailHistoryRecorder(session)
        await recorder.record(HistoryEntry(..., status=EmailStatus.SENT))
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.dao = EmailHistoryDAO(session)

    async def record(self, entry: HistoryEntry) -> int:
        """
        Append a record.

        Returns:
            The new record's id
        """
        record = await self.dao.create(**entry.as_row())
        return record.id

    async def list_for_invoice(self, invoice_id: int, owner_id: int) -> List[EmailHistory]:
        """History of an invoice, newest first."""
        return await self.dao.get_for_invoice(invoice_id, owner_id)

    async def record_failure_best_effort(self, entry: HistoryEntry) -> Optional[int]:
        """
        Append a failure record without ever raising.

        Returns:
            The new record's id, or None if it could not be written
        """
        try:
            async with self.session.begin_nested():
                record = await self.dao.create(**entry.as_row())
            record_id = record.id
            await self.session.commit()
            return record_id
        except Exception as e:
            # History must not replace the error being reported
            logger.error(
                f"Failed to record email failure for invoice {entry.invoice_id}: {e}",
                exc_info=True,
            )
            return None
