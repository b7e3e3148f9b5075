"""
Email Template Data Access Object (DAO).

WHAT: Template lookups by recipient type.

WHY: Template resolution has no fallback: a client send uses the client's
own to_client template, an accountant send uses the owner's
to_accountant template.
"""

from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.dao.base import BaseDAO
from invoice_mailer.models.email_template import EmailTemplate, EmailTemplateType


class EmailTemplateDAO(BaseDAO[EmailTemplate]):
    """Data Access Object for EmailTemplate model."""

    def __init__(self, session: AsyncSession):
        super().__init__(EmailTemplate, session)

    async def get_for_client(self, client_id: int, owner_id: int) -> Optional[EmailTemplate]:
        """
        Get the to_client template of a client.

        WHY: When several exist the most recently created wins, matching
        the settings UI which shows the newest template.
        """
        result = await self.session.execute(
            select(EmailTemplate)
            .where(
                EmailTemplate.owner_id == owner_id,
                EmailTemplate.client_id == client_id,
                EmailTemplate.type == EmailTemplateType.TO_CLIENT.value,
            )
            .order_by(EmailTemplate.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_for_accountant(self, owner_id: int) -> Optional[EmailTemplate]:
        """Get the owner's to_accountant template."""
        result = await self.session.execute(
            select(EmailTemplate)
            .where(
                EmailTemplate.owner_id == owner_id,
                EmailTemplate.type == EmailTemplateType.TO_ACCOUNTANT.value,
            )
            .order_by(EmailTemplate.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
