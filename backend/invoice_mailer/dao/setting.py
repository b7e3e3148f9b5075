"""Setting Data Access Object (DAO)."""

from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.dao.base import BaseDAO
from invoice_mailer.models.setting import Setting


class SettingDAO(BaseDAO[Setting]):
    """Data Access Object for Setting model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Setting, session)

    async def get_value(self, owner_id: int, key: str) -> Optional[str]:
        """Get a setting value, or None when unset or blank."""
        result = await self.session.execute(
            select(Setting.value).where(Setting.owner_id == owner_id, Setting.key == key)
        )
        value = result.scalar_one_or_none()
        if value is None or not str(value).strip():
            return None
        return str(value).strip()

    async def set_value(self, owner_id: int, key: str, value: Optional[str]) -> Setting:
        """Create or overwrite a setting."""
        result = await self.session.execute(
            select(Setting).where(Setting.owner_id == owner_id, Setting.key == key)
        )
        setting = result.scalar_one_or_none()
        if setting is None:
            return await self.create(owner_id=owner_id, key=key, value=value)

        setting.value = value
        await self.session.flush()
        return setting
