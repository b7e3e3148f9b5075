"""
Email account variants and provider detection.

WHAT: Projects stored EmailAccount rows (or the environment SMTP settings)
into a tagged union, BasicAccountConfig | OAuth2AccountConfig.

WHY: Transport construction, authentication and token refresh branch on
the variant, never on which credential fields happen to be filled in.
Provider quirks (Microsoft 365 / Outlook, Gmail) are detected in one place.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from invoice_mailer.core.config import settings
from invoice_mailer.models.email_account import EmailAccount
from invoice_mailer.services.encryption_service import EncryptionService


MICROSOFT_SMTP_HOST = "smtp.office365.com"
GMAIL_SMTP_HOST = "smtp.gmail.com"


# ============================================================================
# Provider detection
# ============================================================================


def is_microsoft_account(email: Optional[str], smtp_host: Optional[str] = None) -> bool:
    """Outlook / Hotmail / Live / MSN addresses, or an Office 365 / Outlook host."""
    email_lower = (email or "").lower()
    host_lower = (smtp_host or "").lower()
    return (
        any(domain in email_lower for domain in ("@outlook.", "@hotmail.", "@live.", "@msn."))
        or "outlook." in host_lower
        or "office365" in host_lower
    )


def is_gmail_account(email: Optional[str], smtp_host: Optional[str] = None) -> bool:
    """Gmail / Googlemail addresses, or a Gmail SMTP host."""
    email_lower = (email or "").lower()
    host_lower = (smtp_host or "").lower()
    return (
        "@gmail." in email_lower
        or "@googlemail." in email_lower
        or "gmail." in host_lower
    )


def normalize_host(email: str, smtp_host: str) -> str:
    """
    Force the provider's SMTP host for Microsoft and Gmail mailboxes.

    WHY: Users frequently paste IMAP or web hostnames; consumer Microsoft
    and Gmail mailboxes only accept mail on their submission hosts.
    """
    host = smtp_host or ""
    if is_microsoft_account(email, host) and "office365" not in host and "outlook" not in host:
        host = MICROSOFT_SMTP_HOST
    if is_gmail_account(email, host) and "gmail.com" not in host:
        host = GMAIL_SMTP_HOST
    return host


# ============================================================================
# Account variants
# ============================================================================


@dataclass(frozen=True)
class BasicAccountConfig:
    """SMTP account authenticated with a username and password."""

    host: str
    port: int
    user: str
    password: str
    from_address: str
    account_id: Optional[int] = None

    @property
    def is_microsoft(self) -> bool:
        return is_microsoft_account(self.from_address, self.host)

    @property
    def is_gmail(self) -> bool:
        return is_gmail_account(self.from_address, self.host)


@dataclass(frozen=True)
class OAuth2AccountConfig:
    """SMTP account authenticated with an OAuth2 bearer token (XOAUTH2)."""

    host: str
    port: int
    user: str
    from_address: str
    client_id: str
    client_secret: str
    refresh_token: str
    # Tokens rotate on refresh; they never make a cached transport stale
    access_token: Optional[str] = field(default=None, repr=False, compare=False)
    access_token_expires_at: Optional[datetime] = field(default=None, compare=False)
    account_id: Optional[int] = None

    @property
    def is_microsoft(self) -> bool:
        return is_microsoft_account(self.from_address, self.host)

    @property
    def is_gmail(self) -> bool:
        return is_gmail_account(self.from_address, self.host)


AccountConfig = Union[BasicAccountConfig, OAuth2AccountConfig]


def account_config_from_model(account: EmailAccount, encryption: EncryptionService) -> AccountConfig:
    """
    Project a stored EmailAccount into its variant.

    WHY: OAuth2 is used when client id, client secret and refresh token
    are all stored; otherwise the account authenticates with its password.
    """
    if account.has_oauth2:
        return OAuth2AccountConfig(
            host=account.smtp_host,
            port=account.smtp_port,
            user=account.smtp_user,
            from_address=account.email,
            client_id=account.oauth2_client_id,
            client_secret=encryption.decrypt(account.oauth2_client_secret_encrypted),
            refresh_token=encryption.decrypt(account.oauth2_refresh_token_encrypted),
            access_token=encryption.decrypt_optional(account.oauth2_access_token_encrypted),
            access_token_expires_at=account.oauth2_token_expires_at,
            account_id=account.id,
        )

    return BasicAccountConfig(
        host=account.smtp_host,
        port=account.smtp_port,
        user=account.smtp_user,
        password=encryption.decrypt_optional(account.smtp_password_encrypted) or "",
        from_address=account.email,
        account_id=account.id,
    )


def account_config_from_settings(config=settings) -> Optional[AccountConfig]:
    """Environment fallback account, or None when it is not configured."""
    if not config.env_smtp_configured:
        return None

    from_address = config.SMTP_FROM or config.SMTP_USER
    if config.env_smtp_oauth2_configured:
        return OAuth2AccountConfig(
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            user=config.SMTP_USER,
            from_address=from_address,
            client_id=config.SMTP_OAUTH2_CLIENT_ID,
            client_secret=config.SMTP_OAUTH2_CLIENT_SECRET,
            refresh_token=config.SMTP_OAUTH2_REFRESH_TOKEN,
            access_token=config.SMTP_OAUTH2_ACCESS_TOKEN,
        )

    return BasicAccountConfig(
        host=config.SMTP_HOST,
        port=config.SMTP_PORT,
        user=config.SMTP_USER,
        password=config.SMTP_PASSWORD,
        from_address=from_address,
    )

