"""
Email account model.

WHAT: SMTP credentials for sending invoice emails from a user's mailbox.

WHY: Users send from their own address. An account authenticates either
with a password (basic SMTP auth) or with an OAuth2 credential set
(Microsoft 365 / Outlook, Google) using XOAUTH2.

HOW: All secrets are Fernet-encrypted at rest (see EncryptionService).
Only the OAuth token columns are written by the send path, when an access
token is refreshed. Editing any credential column must invalidate the
account's cached transport.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped

from invoice_mailer.models.base import Base, TimestampMixin, PrimaryKeyMixin


# WHY: Changing any of these columns makes a cached transport stale
CREDENTIAL_FIELDS = frozenset(
    {
        "email",
        "smtp_host",
        "smtp_port",
        "smtp_user",
        "smtp_password",
        "oauth2_client_id",
        "oauth2_client_secret",
        "oauth2_refresh_token",
        "oauth2_access_token",
    }
)


class EmailAccount(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Email account.

    Attributes:
        owner_id: Owning user
        name: Display name shown in settings
        email: From address
        smtp_host / smtp_port / smtp_user: SMTP connection settings
        smtp_password_encrypted: Basic-auth password (encrypted)
        oauth2_client_id: App registration client id
        oauth2_client_secret_encrypted: App registration secret (encrypted)
        oauth2_refresh_token_encrypted: Long-lived refresh token (encrypted)
        oauth2_access_token_encrypted: Cached access token (encrypted)
        oauth2_token_expires_at: Expiry of the cached access token (UTC)
        is_default: Used when a send names no account (one per owner)
    """

    __tablename__ = "email_accounts"

    owner_id: Mapped[int] = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = Column(String(255), nullable=False)
    email: Mapped[str] = Column(String(255), nullable=False)

    smtp_host: Mapped[str] = Column(String(255), nullable=False)
    smtp_port: Mapped[int] = Column(Integer, nullable=False, default=587)
    smtp_user: Mapped[str] = Column(String(255), nullable=False)
    smtp_password_encrypted: Mapped[Optional[str]] = Column(Text, nullable=True)

    oauth2_client_id: Mapped[Optional[str]] = Column(String(255), nullable=True)
    oauth2_client_secret_encrypted: Mapped[Optional[str]] = Column(Text, nullable=True)
    oauth2_refresh_token_encrypted: Mapped[Optional[str]] = Column(Text, nullable=True)
    oauth2_access_token_encrypted: Mapped[Optional[str]] = Column(Text, nullable=True)
    oauth2_token_expires_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)

    is_default: Mapped[bool] = Column(Boolean, nullable=False, default=False)

    @property
    def has_oauth2(self) -> bool:
        """Whether a full OAuth2 credential set is stored."""
        return bool(
            self.oauth2_client_id
            and self.oauth2_client_secret_encrypted
            and self.oauth2_refresh_token_encrypted
        )

    def __repr__(self) -> str:
        return f"<EmailAccount(id={self.id}, email='{self.email}', default={self.is_default})>"
