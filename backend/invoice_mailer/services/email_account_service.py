"""
Email account management.

WHAT: Create, update, delete and OAuth-connect the SMTP accounts invoices
are sent from.

WHY: Account edits are where the transport cache can go stale. Every
write that touches credentials invalidates the account's cached transport
before returning, so the next send never authenticates with old
credentials.

HOW:
- Secrets (SMTP password, OAuth client secret and tokens) are encrypted
  with EncryptionService before they reach the DAO
- Setting is_default clears the flag on the owner's other accounts
- The OAuth connect flow signs {accountId, ownerId} into the state
  parameter and exchanges the callback code through OAuthTokenRefresher
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.core.auth import create_oauth_state, decode_oauth_state
from invoice_mailer.core.exceptions import EmailAccountNotFoundError, ValidationError
from invoice_mailer.dao.email_account import EmailAccountDAO
from invoice_mailer.models.email_account import CREDENTIAL_FIELDS, EmailAccount
from invoice_mailer.services.encryption_service import EncryptionService
from invoice_mailer.services.oauth_refresher import OAuthTokenRefresher, provider_for
from invoice_mailer.services.transport import TransportCache

logger = logging.getLogger(__name__)


# Plaintext input field -> encrypted column
SECRET_FIELDS = {
    "smtp_password": "smtp_password_encrypted",
    "oauth2_client_secret": "oauth2_client_secret_encrypted",
    "oauth2_refresh_token": "oauth2_refresh_token_encrypted",
    "oauth2_access_token": "oauth2_access_token_encrypted",
}

REQUIRED_FIELDS = ("name", "email", "smtp_host", "smtp_port", "smtp_user")


class EmailAccountService:
    """
    Service for managing email accounts.

    Example:
        service = EmailAccountService(session, cache)
        account = await service.create_account(owner_id, {...})
        url = await service.authorization_url(account.id, owner_id)
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: TransportCache,
        encryption: Optional[EncryptionService] = None,
        refresher: Optional[OAuthTokenRefresher] = None,
    ):
        self.session = session
        self.cache = cache
        self.encryption = encryption or EncryptionService()
        self.dao = EmailAccountDAO(session)
        self.refresher = refresher or OAuthTokenRefresher(session, self.encryption)

    # ========================================================================
    # Queries
    # ========================================================================

    async def list_accounts(self, owner_id: int) -> List[EmailAccount]:
        """Owner's accounts, default first."""
        accounts = await self.dao.get_by_owner(owner_id)
        return sorted(accounts, key=lambda a: (not a.is_default, a.id))

    async def get_account(self, account_id: int, owner_id: int) -> EmailAccount:
        """
        Get an owned account.

        Raises:
            EmailAccountNotFoundError: If it doesn't exist or isn't owned
        """
        account = await self.dao.get_by_id_and_owner(account_id, owner_id)
        if account is None:
            raise EmailAccountNotFoundError(account_id=account_id)
        return account

    # ========================================================================
    # Writes
    # ========================================================================

    async def create_account(self, owner_id: int, data: Dict[str, Any]) -> EmailAccount:
        """
        Create an account.

        Args:
            owner_id: Owning user
            data: Plaintext fields (smtp_password, oauth2_* secrets included)

        Raises:
            ValidationError: Missing required fields, or neither a password
                nor a complete OAuth2 credential set
        """
        missing = [f for f in REQUIRED_FIELDS if not data.get(f)]
        if missing:
            raise ValidationError(
                message="Name, email, SMTP host, port, and user are required",
                missing_fields=missing,
            )

        uses_oauth2 = all(
            data.get(f) for f in ("oauth2_client_id", "oauth2_client_secret", "oauth2_refresh_token")
        )
        # WHY: An account may be created with only client credentials and
        # connected through the OAuth flow afterwards
        awaiting_connect = bool(data.get("oauth2_client_id")) and bool(data.get("oauth2_client_secret"))
        if not uses_oauth2 and not awaiting_connect and not data.get("smtp_password"):
            raise ValidationError(
                message="SMTP password is required when not using OAuth2",
                field="smtp_password",
            )

        if data.get("is_default"):
            await self.dao.clear_default(owner_id)

        account = await self.dao.create(owner_id=owner_id, **self._columns(data))
        logger.info(f"Created email account {account.id}", extra={"owner_id": owner_id})
        return account

    async def update_account(
        self, account_id: int, owner_id: int, changes: Dict[str, Any]
    ) -> EmailAccount:
        """
        Update an account; credential changes invalidate its cached transport.

        Args:
            changes: Only the fields being changed (plaintext secrets)

        Raises:
            EmailAccountNotFoundError: If it doesn't exist or isn't owned
        """
        account = await self.get_account(account_id, owner_id)

        if changes.get("is_default") is True:
            await self.dao.clear_default(owner_id, except_id=account.id)

        account = await self.dao.update(account.id, **self._columns(changes))

        if CREDENTIAL_FIELDS.intersection(changes):
            self.cache.invalidate(account.id)
        return account

    async def delete_account(self, account_id: int, owner_id: int) -> None:
        """
        Delete an account and drop its cached transport.

        Raises:
            EmailAccountNotFoundError: If it doesn't exist or isn't owned
        """
        account = await self.get_account(account_id, owner_id)
        await self.dao.delete(account.id)
        self.cache.invalidate(account.id)
        logger.info(f"Deleted email account {account_id}", extra={"owner_id": owner_id})

    def _columns(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Map plaintext input to column values, encrypting secrets."""
        columns: Dict[str, Any] = {}
        for key, value in data.items():
            if key in SECRET_FIELDS:
                columns[SECRET_FIELDS[key]] = self.encryption.encrypt_optional(value or None)
                if key == "oauth2_access_token":
                    # Unknown expiry; refreshed before first use
                    columns["oauth2_token_expires_at"] = None
            elif hasattr(EmailAccount, key):
                columns[key] = value
        return columns

    # ========================================================================
    # OAuth connect flow
    # ========================================================================

    async def authorization_url(self, account_id: int, owner_id: int) -> str:
        """
        Provider consent URL for connecting an account.

        Raises:
            EmailAccountNotFoundError: If it doesn't exist or isn't owned
            OAuthError: If client credentials or the redirect URI are missing
        """
        account = await self.get_account(account_id, owner_id)
        state = create_oauth_state(account.id, owner_id)
        return self.refresher.build_authorization_url(account, state)

    async def complete_oauth(self, code: str, state: str) -> str:
        """
        Handle the provider callback.

        Returns:
            Provider name of the connected account

        Raises:
            OAuthStateError: Invalid or expired state
            EmailAccountNotFoundError: Account deleted since the flow started
            OAuthError: Code exchange failed
        """
        state_data = decode_oauth_state(state)
        account = await self.get_account(state_data["accountId"], state_data["ownerId"])

        await self.refresher.exchange_authorization_code(account, code)
        self.cache.invalidate(account.id)
        return provider_for(account.email, account.smtp_host).name
