"""
Email Account Data Access Object (DAO).

WHAT: Lookups for SMTP accounts and the owner's default account.

WHY: The at-most-one-default rule is enforced here so every write path
(create, update) goes through the same reset.
"""

from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.dao.base import BaseDAO
from invoice_mailer.models.email_account import EmailAccount


class EmailAccountDAO(BaseDAO[EmailAccount]):
    """Data Access Object for EmailAccount model."""

    def __init__(self, session: AsyncSession):
        super().__init__(EmailAccount, session)

    async def get_default(self, owner_id: int) -> Optional[EmailAccount]:
        """Get the owner's default account, if one is flagged."""
        result = await self.session.execute(
            select(EmailAccount)
            .where(
                EmailAccount.owner_id == owner_id,
                EmailAccount.is_default.is_(True),
            )
            .order_by(EmailAccount.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def clear_default(self, owner_id: int, except_id: Optional[int] = None) -> None:
        """
        Unset the default flag on the owner's accounts.

        Args:
            owner_id: Owner whose accounts are reset
            except_id: Account that keeps its flag
        """
        stmt = (
            update(EmailAccount)
            .where(EmailAccount.owner_id == owner_id, EmailAccount.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )
        if except_id is not None:
            stmt = stmt.where(EmailAccount.id != except_id)
        await self.session.execute(stmt)
