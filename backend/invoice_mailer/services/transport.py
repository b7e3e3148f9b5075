"""
Mail transport resolution, caching and sending.

WHAT: Turns "send from account X (or the default, or the environment)"
into a configured SMTP transport and sends messages through it.

WHY: Invoices go out from the user's own mailbox. Building a transport
involves decrypting credentials and normalising provider quirks, so the
result is cached per account and reused across sends.

HOW:
- Accounts arrive as the tagged union from account_config; transport
  construction and authentication branch on the variant.
- TransportManager tries an ordered list of resolvers (explicit account,
  owner default, environment); the first that resolves wins.
- TransportCache is an explicit object owned by the application (see
  main.create_app) and passed in. Account edits call invalidate()
  before the edit is acknowledged, and every lookup checks the entry
  against the config just read, so a transport built from a row read
  before the edit committed is rebuilt.
- Refreshed tokens of the environment account live on the cache, since
  it has no row to persist them on.
- MailTransport opens one aiosmtplib session per send/verify. The OAuth2
  access token is supplied per call, so a cached transport never holds a
  stale token.
"""

import base64
import logging
from dataclasses import dataclass, field, replace
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import aiosmtplib
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.core.config import settings
from invoice_mailer.core.exceptions import (
    AppException,
    EmailAccountNotFoundError,
    EmailConfigurationError,
    EmailTransportError,
)
from invoice_mailer.dao.email_account import EmailAccountDAO
from invoice_mailer.models.email_account import EmailAccount
from invoice_mailer.services.account_config import (
    AccountConfig,
    BasicAccountConfig,
    OAuth2AccountConfig,
    account_config_from_model,
    account_config_from_settings,
    normalize_host,
)
from invoice_mailer.services.attachments import Attachment
from invoice_mailer.services.encryption_service import EncryptionService
from invoice_mailer.services.oauth_refresher import OAuthTokenRefresher, TokenSet

logger = logging.getLogger(__name__)


MICROSOFT_OAUTH_REQUIRED_MESSAGE = (
    "Microsoft/Outlook accounts require OAuth2 authentication. Basic authentication "
    "has been disabled by Microsoft. Please configure OAuth2 credentials (Client ID "
    "and Client Secret) and connect your Microsoft account in your email account settings."
)

GMAIL_AUTH_FAILED_MESSAGE = (
    "Gmail authentication failed. If 2-Step Verification is enabled you must use "
    "an App Password (16 characters, no spaces) instead of your regular password, "
    "and the SMTP username must be your full Gmail address. Use host smtp.gmail.com "
    "with port 587 (STARTTLS) or 465 (SSL). "
    "See https://support.google.com/mail/answer/185833"
)


# ============================================================================
# Messages
# ============================================================================


@dataclass
class OutgoingEmail:
    """An email ready to be handed to a transport."""

    to: str
    subject: str
    text_body: str
    html_body: Optional[str] = None
    cc: List[str] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)


@dataclass(frozen=True)
class VerifyResult:
    """Outcome of a transport verification."""

    success: bool
    error: Optional[str] = None


def build_mime_message(email: OutgoingEmail, from_address: str) -> EmailMessage:
    """Build the MIME message with a fresh Message-ID."""
    message = EmailMessage()
    message["From"] = from_address
    message["To"] = email.to
    if email.cc:
        message["Cc"] = ", ".join(email.cc)
    message["Subject"] = email.subject

    domain = from_address.rsplit("@", 1)[-1] if "@" in from_address else None
    message["Message-ID"] = make_msgid(domain=domain)

    message.set_content(email.text_body or "")
    if email.html_body:
        message.add_alternative(email.html_body, subtype="html")

    for attachment in email.attachments:
        message.add_attachment(
            attachment.content,
            maintype=attachment.maintype,
            subtype=attachment.subtype,
            filename=attachment.filename,
        )
    return message


# ============================================================================
# Transport
# ============================================================================


class MailTransport:
    """
    SMTP transport for one account.

    HOW: Port 465 uses implicit TLS; Microsoft and Gmail on 587 must
    upgrade with STARTTLS. Other servers upgrade opportunistically.
    """

    def __init__(self, config: AccountConfig, timeout: Optional[float] = None):
        self.config = config
        self.host = normalize_host(config.from_address, config.host)
        self.port = config.port
        self.use_tls = config.port == 465
        if self.use_tls:
            self.start_tls: Optional[bool] = False
        elif (config.is_microsoft or config.is_gmail) and config.port == 587:
            self.start_tls = True
        else:
            self.start_tls = None
        self.timeout = timeout if timeout is not None else settings.SMTP_TIMEOUT_SECONDS

    def _client(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            use_tls=self.use_tls,
            start_tls=self.start_tls,
            timeout=self.timeout,
        )

    async def send(self, message: EmailMessage, access_token: Optional[str] = None) -> str:
        """
        Send a message.

        Args:
            message: MIME message (with Message-ID already set)
            access_token: Bearer token for OAuth2 accounts

        Returns:
            The message's Message-ID

        Raises:
            aiosmtplib.SMTPException / OSError: Passed through to the manager,
                which translates them
        """
        async with self._client() as smtp:
            await self._authenticate(smtp, access_token)
            await smtp.send_message(message)
        return message["Message-ID"]

    async def verify(self, access_token: Optional[str] = None) -> None:
        """Connect and authenticate without sending."""
        async with self._client() as smtp:
            await self._authenticate(smtp, access_token)

    async def _authenticate(self, smtp: aiosmtplib.SMTP, access_token: Optional[str]) -> None:
        if isinstance(self.config, OAuth2AccountConfig):
            if not access_token:
                raise aiosmtplib.SMTPAuthenticationError(530, "No OAuth2 access token available")
            await self._auth_xoauth2(smtp, self.config.user, access_token)
        else:
            await smtp.login(self.config.user, self.config.password)

    @staticmethod
    async def _auth_xoauth2(smtp: aiosmtplib.SMTP, user: str, access_token: str) -> None:
        """
        AUTH XOAUTH2 (Microsoft / Google SMTP).

        HOW: On failure the server answers 334 with a base64 JSON error and
        waits for an empty line before sending the final status.
        """
        if smtp.is_ehlo_or_helo_needed:
            await smtp.ehlo()

        auth_string = f"user={user}\x01auth=Bearer {access_token}\x01\x01"
        encoded = base64.b64encode(auth_string.encode())
        response = await smtp.execute_command(b"AUTH", b"XOAUTH2", encoded)

        if response.code == 334:
            response = await smtp.execute_command(b"")
        if response.code != 235:
            raise aiosmtplib.SMTPAuthenticationError(response.code, response.message)


class TransportCache:
    """
    Built transports keyed by account.

    Keys are `account-<id>` for stored accounts and `env` for the
    environment fallback. Each entry remembers the account config it was
    built from; a lookup with a different config drops the entry, so a
    transport built from a row read before an edit committed is never
    reused after it. Invalidation on edit is synchronous.

    The environment account has no row to store refreshed OAuth2 tokens
    on, so they are kept here instead.
    """

    ENV_KEY = "env"

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[MailTransport, Optional[AccountConfig]]] = {}
        self._tokens: Dict[str, TokenSet] = {}

    @classmethod
    def key_for(cls, account_id: Optional[int]) -> str:
        return f"account-{account_id}" if account_id is not None else cls.ENV_KEY

    def get(self, key: str, config: Optional[AccountConfig] = None) -> Optional[MailTransport]:
        """
        Return the cached transport for a key.

        With a config, an entry built from a different config is dropped
        and None is returned.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        transport, built_from = entry
        if config is not None and built_from is not None and built_from != config:
            self._entries.pop(key, None)
            logger.info(f"Dropped cached transport for {key}: account settings changed")
            return None
        return transport

    def put(
        self, key: str, transport: MailTransport, config: Optional[AccountConfig] = None
    ) -> None:
        if config is None:
            config = getattr(transport, "config", None)
        self._entries[key] = (transport, config)

    def remember_tokens(self, key: str, tokens: TokenSet) -> None:
        self._tokens[key] = tokens

    def remembered_tokens(self, key: str) -> Optional[TokenSet]:
        return self._tokens.get(key)

    def invalidate(self, account_id: int) -> None:
        """Drop the cached transport of one stored account."""
        if self._entries.pop(self.key_for(account_id), None) is not None:
            logger.info(f"Invalidated cached transport for email account {account_id}")

    def invalidate_key(self, key: str) -> None:
        self._entries.pop(key, None)
        self._tokens.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._tokens.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class ResolvedAccount:
    """Output of a resolver: the account variant and its row, if stored."""

    cache_key: str
    config: AccountConfig
    account: Optional[EmailAccount] = None


@dataclass
class ResolvedTransport:
    """Transport ready to send, with its from address and bearer token."""

    transport: MailTransport
    from_address: str
    config: AccountConfig
    cache_key: str
    access_token: Optional[str] = field(default=None, repr=False)


Resolver = Callable[[Optional[int], Optional[int]], Awaitable[Optional[ResolvedAccount]]]


class TransportManager:
    """
    Resolves, caches, verifies and sends through mail transports.

    Example:
        manager = TransportManager(session, cache)
        message_id = await manager.send(outgoing, owner_id=user.id)
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: TransportCache,
        encryption: Optional[EncryptionService] = None,
        refresher: Optional[OAuthTokenRefresher] = None,
        transport_factory: Callable[[AccountConfig], MailTransport] = MailTransport,
    ):
        """
        Initialize TransportManager.

        Args:
            session: Async database session
            cache: Application-owned transport cache
            encryption: Decrypts stored credentials
            refresher: OAuthTokenRefresher (built from the session if omitted)
            transport_factory: Builds a MailTransport from an account variant
        """
        self.session = session
        self.cache = cache
        self.encryption = encryption or EncryptionService()
        self.account_dao = EmailAccountDAO(session)
        self.refresher = refresher or OAuthTokenRefresher(session, self.encryption)
        self.transport_factory = transport_factory

        # WHY: First non-None wins; adding a fallback is a list change
        self.resolvers: List[Resolver] = [
            self._resolve_explicit_account,
            self._resolve_default_account,
            self._resolve_environment,
        ]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def _resolve_explicit_account(
        self, account_id: Optional[int], owner_id: Optional[int]
    ) -> Optional[ResolvedAccount]:
        if account_id is None or owner_id is None:
            return None
        account = await self.account_dao.get_by_id_and_owner(account_id, owner_id)
        if account is None:
            raise EmailAccountNotFoundError(
                message=f"Email account {account_id} not found",
                account_id=account_id,
            )
        return self._stored(account)

    async def _resolve_default_account(
        self, account_id: Optional[int], owner_id: Optional[int]
    ) -> Optional[ResolvedAccount]:
        if owner_id is None:
            return None
        account = await self.account_dao.get_default(owner_id)
        return self._stored(account) if account is not None else None

    async def _resolve_environment(
        self, account_id: Optional[int], owner_id: Optional[int]
    ) -> Optional[ResolvedAccount]:
        config = account_config_from_settings()
        if config is None:
            return None
        return ResolvedAccount(cache_key=TransportCache.ENV_KEY, config=config)

    def _stored(self, account: EmailAccount) -> ResolvedAccount:
        return ResolvedAccount(
            cache_key=TransportCache.key_for(account.id),
            config=account_config_from_model(account, self.encryption),
            account=account,
        )

    async def resolve_account(
        self, account_id: Optional[int] = None, owner_id: Optional[int] = None
    ) -> ResolvedAccount:
        """
        Run the resolvers in order.

        Raises:
            EmailAccountNotFoundError: If an explicitly named account doesn't exist
            EmailConfigurationError: If nothing resolves
        """
        for resolver in self.resolvers:
            resolved = await resolver(account_id, owner_id)
            if resolved is not None:
                return resolved
        raise EmailConfigurationError(owner_id=owner_id)

    async def get_transport(
        self, account_id: Optional[int] = None, owner_id: Optional[int] = None
    ) -> ResolvedTransport:
        """
        Resolve an account and return its (cached) transport.

        OAuth2 accounts get a valid access token, refreshed when needed.

        Raises:
            EmailAccountNotFoundError, EmailConfigurationError, OAuthError
        """
        return await self._prepare(await self.resolve_account(account_id, owner_id))

    async def _prepare(self, resolved: ResolvedAccount) -> ResolvedTransport:
        access_token = None
        config = resolved.config
        if isinstance(config, OAuth2AccountConfig):
            remembered = None
            if resolved.account is None:
                remembered = self.cache.remembered_tokens(resolved.cache_key)
            if remembered is not None:
                config = replace(
                    config,
                    access_token=remembered.access_token,
                    refresh_token=remembered.refresh_token or config.refresh_token,
                    access_token_expires_at=remembered.expires_at,
                )
            tokens = await self.refresher.ensure_valid_tokens(config, resolved.account)
            if resolved.account is None:
                self.cache.remember_tokens(resolved.cache_key, tokens)
            access_token = tokens.access_token

        transport = self.cache.get(resolved.cache_key, resolved.config)
        if transport is None:
            transport = self.transport_factory(resolved.config)
            self.cache.put(resolved.cache_key, transport, resolved.config)
            logger.debug(f"Built transport for {resolved.cache_key}")

        return ResolvedTransport(
            transport=transport,
            from_address=resolved.config.from_address,
            config=resolved.config,
            cache_key=resolved.cache_key,
            access_token=access_token,
        )

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(
        self,
        email: OutgoingEmail,
        account_id: Optional[int] = None,
        owner_id: Optional[int] = None,
    ) -> str:
        """
        Send an email through the resolved transport.

        Returns:
            Message-ID of the sent message

        Raises:
            EmailTransportError: SMTP connection, authentication or send failure
            plus the resolution errors of get_transport
        """
        resolved = await self.get_transport(account_id, owner_id)
        message = build_mime_message(email, resolved.from_address)

        try:
            message_id = await resolved.transport.send(message, resolved.access_token)
        except aiosmtplib.SMTPAuthenticationError as e:
            # WHY: The next attempt must rebuild from freshly loaded credentials
            self.cache.invalidate_key(resolved.cache_key)
            raise EmailTransportError(
                message=self._describe_auth_failure(resolved.config, e),
                smtp_code=e.code,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            raise EmailTransportError(
                message=f"Failed to send email: {e}",
                error_type=type(e).__name__,
            )

        logger.info(
            f"Sent email via {resolved.cache_key}",
            extra={"message_id": message_id, "recipient_count": 1 + len(email.cc)},
        )
        return message_id

    async def verify(
        self, account_id: Optional[int] = None, owner_id: Optional[int] = None
    ) -> VerifyResult:
        """
        Check that the resolved transport can connect and log in.

        Never raises for expected failures (missing configuration, missing
        account, OAuth or SMTP errors); they are reported in the result.
        """
        try:
            resolved = await self.resolve_account(account_id, owner_id)
            config = resolved.config
            if config.is_microsoft and not isinstance(config, OAuth2AccountConfig):
                return VerifyResult(success=False, error=MICROSOFT_OAUTH_REQUIRED_MESSAGE)

            prepared = await self._prepare(resolved)
            try:
                await prepared.transport.verify(prepared.access_token)
            except aiosmtplib.SMTPAuthenticationError as e:
                self.cache.invalidate_key(prepared.cache_key)
                return VerifyResult(success=False, error=self._describe_auth_failure(config, e))
            except (aiosmtplib.SMTPException, OSError) as e:
                return VerifyResult(success=False, error=str(e) or type(e).__name__)
        except AppException as e:
            return VerifyResult(success=False, error=e.message)

        return VerifyResult(success=True)

    @staticmethod
    def _describe_auth_failure(config: AccountConfig, error: Exception) -> str:
        """Actionable message for provider-specific authentication failures."""
        original = str(error)
        if config.is_microsoft and isinstance(config, BasicAccountConfig):
            return f"{MICROSOFT_OAUTH_REQUIRED_MESSAGE} Original error: {original}"
        if config.is_gmail and isinstance(config, BasicAccountConfig):
            return f"{GMAIL_AUTH_FAILED_MESSAGE} Original error: {original}"
        return f"SMTP authentication failed: {original}"
