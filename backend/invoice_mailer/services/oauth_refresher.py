"""
OAuth2 token refresh and account connection for SMTP accounts.

WHAT: Keeps OAuth2 email accounts supplied with a valid access token, and
runs the authorization-code flow that connects an account in the first
place.

WHY: Microsoft has disabled basic SMTP authentication for consumer
mailboxes, so those accounts send with short-lived bearer tokens that
must be refreshed from the stored refresh token.

HOW:
- Uses httpx for async HTTP requests to the provider token endpoint
- The provider (Microsoft identity platform or Google) is chosen from the
  account's address and SMTP host
- New tokens are encrypted and written back onto the EmailAccount row
- An invalid_grant or invalid_client rejection means the refresh token is
  dead; the caller gets OAuthReconnectRequiredError so the UI can prompt a
  reconnect. Outages and throttling stay plain OAuthErrors.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple
from urllib.parse import urlencode

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.core.config import settings
from invoice_mailer.core.exceptions import OAuthError, OAuthReconnectRequiredError
from invoice_mailer.dao.email_account import EmailAccountDAO
from invoice_mailer.models.email_account import EmailAccount
from invoice_mailer.services.account_config import (
    AccountConfig,
    OAuth2AccountConfig,
    is_gmail_account,
)
from invoice_mailer.services.encryption_service import EncryptionService

logger = logging.getLogger(__name__)


# Tokens this close to expiry are refreshed before use
TOKEN_EXPIRY_SKEW = timedelta(seconds=60)

# Microsoft omits expires_in on some responses
DEFAULT_TOKEN_LIFETIME_SECONDS = 3600

# Token endpoint answers that mean the stored grant is dead
REJECTED_GRANT_STATUSES = frozenset({400, 401})
REJECTED_GRANT_ERRORS = frozenset({"invalid_grant", "invalid_client"})


@dataclass(frozen=True)
class OAuthProvider:
    """Endpoints and policy for one OAuth2 identity provider."""

    name: str
    authorize_url: str
    token_url: str
    scopes: Tuple[str, ...]
    # WHY: Microsoft requires each tenant to register its own app
    allows_shared_client: bool
    extra_authorize_params: Tuple[Tuple[str, str], ...] = ()


MICROSOFT = OAuthProvider(
    name="microsoft",
    authorize_url="https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
    token_url="https://login.microsoftonline.com/common/oauth2/v2.0/token",
    scopes=("https://outlook.office365.com/SMTP.Send", "offline_access"),
    allows_shared_client=False,
    extra_authorize_params=(("response_mode", "query"),),
)

GOOGLE = OAuthProvider(
    name="google",
    authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
    token_url="https://oauth2.googleapis.com/token",
    scopes=("https://mail.google.com/",),
    allows_shared_client=True,
    extra_authorize_params=(("access_type", "offline"),),
)


def provider_for(email: Optional[str], smtp_host: Optional[str]) -> OAuthProvider:
    """Google for Gmail mailboxes, Microsoft for everything else."""
    return GOOGLE if is_gmail_account(email, smtp_host) else MICROSOFT


def needs_refresh(config: OAuth2AccountConfig, now: Optional[datetime] = None) -> bool:
    """
    Check if the cached access token must be refreshed before use.

    A token with no recorded expiry is treated as expired.
    """
    if not config.access_token or config.access_token_expires_at is None:
        return True
    now = now or datetime.utcnow()
    return config.access_token_expires_at - TOKEN_EXPIRY_SKEW <= now


@dataclass(frozen=True)
class TokenSet:
    """Tokens returned by a provider token endpoint."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def from_response(cls, data: dict) -> "TokenSet":
        expires_in = data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=datetime.utcnow() + timedelta(seconds=int(expires_in)),
        )


class OAuthTokenRefresher:
    """
    Refreshes and persists OAuth2 access tokens for email accounts.

    Example:
        refresher = OAuthTokenRefresher(session, EncryptionService())
        token = await refresher.ensure_valid_access_token(config, account)
    """

    def __init__(
        self,
        session: AsyncSession,
        encryption: Optional[EncryptionService] = None,
        http_client_factory: Callable[[], httpx.AsyncClient] = httpx.AsyncClient,
    ):
        """
        Initialize OAuthTokenRefresher.

        Args:
            session: Async database session (for persisting tokens)
            encryption: Encrypts tokens before storage
            http_client_factory: Builds the httpx client; tests pass a client
                wired to httpx.MockTransport
        """
        self.session = session
        self.encryption = encryption or EncryptionService()
        self.account_dao = EmailAccountDAO(session)
        self.http_client_factory = http_client_factory

    # ========================================================================
    # Refresh
    # ========================================================================

    async def ensure_valid_access_token(
        self,
        config: AccountConfig,
        account: Optional[EmailAccount] = None,
    ) -> Optional[str]:
        """
        Return an access token that is valid for at least the next minute.

        Args:
            config: Account variant; basic accounts need no token
            account: Stored row to persist refreshed tokens onto. The
                environment fallback account has none and is not persisted.

        Returns:
            Access token, or None for basic accounts

        Raises:
            OAuthError: Provider unreachable or no usable client credentials
            OAuthReconnectRequiredError: Provider rejected the refresh token
        """
        if not isinstance(config, OAuth2AccountConfig):
            return None
        tokens = await self.ensure_valid_tokens(config, account)
        return tokens.access_token

    async def ensure_valid_tokens(
        self,
        config: OAuth2AccountConfig,
        account: Optional[EmailAccount] = None,
    ) -> TokenSet:
        """
        Return the current token set, refreshing it when needed.

        WHY: Callers without a row to persist onto (the environment
        account) keep the returned expiry themselves.
        """
        if not needs_refresh(config):
            return TokenSet(
                access_token=config.access_token,
                refresh_token=config.refresh_token,
                expires_at=config.access_token_expires_at,
            )

        provider = provider_for(config.from_address, config.host)
        client_id, client_secret = self._client_credentials(
            provider, config.client_id, config.client_secret
        )

        logger.info(
            f"Refreshing OAuth2 access token for {provider.name} account",
            extra={"account_id": config.account_id},
        )
        data = await self._post_token_request(
            provider,
            {
                "client_id": client_id,
                "client_secret": client_secret,
                "refresh_token": config.refresh_token,
                "grant_type": "refresh_token",
                "scope": " ".join(provider.scopes),
            },
        )
        tokens = TokenSet.from_response(data)

        if account is not None:
            await self._persist(account, tokens)

        return tokens

    # ========================================================================
    # Connect flow
    # ========================================================================

    def build_authorization_url(self, account: EmailAccount, state: str) -> str:
        """
        Build the provider consent URL for connecting an account.

        WHY: prompt=consent forces the provider to issue a refresh token
        even when the user has consented before.

        Raises:
            OAuthError: If the redirect URI or client credentials are missing
        """
        provider = provider_for(account.email, account.smtp_host)
        client_id, _ = self._client_credentials(
            provider,
            account.oauth2_client_id,
            self.encryption.decrypt_optional(account.oauth2_client_secret_encrypted),
        )
        params = {
            "client_id": client_id,
            "response_type": "code",
            "redirect_uri": self._redirect_uri(),
            "scope": " ".join(provider.scopes),
            "state": state,
            "prompt": "consent",
        }
        params.update(dict(provider.extra_authorize_params))
        return f"{provider.authorize_url}?{urlencode(params)}"

    async def exchange_authorization_code(self, account: EmailAccount, code: str) -> TokenSet:
        """
        Exchange a callback code for tokens and store them on the account.

        Raises:
            OAuthError: Exchange failed or no refresh token was issued
        """
        provider = provider_for(account.email, account.smtp_host)
        client_id, client_secret = self._client_credentials(
            provider,
            account.oauth2_client_id,
            self.encryption.decrypt_optional(account.oauth2_client_secret_encrypted),
        )
        data = await self._post_token_request(
            provider,
            {
                "client_id": client_id,
                "client_secret": client_secret,
                "code": code,
                "redirect_uri": self._redirect_uri(),
                "grant_type": "authorization_code",
                "scope": " ".join(provider.scopes),
            },
            reconnect_on_rejection=False,
        )
        if not data.get("refresh_token"):
            raise OAuthError(
                message=f"No refresh token received from {provider.name.title()}. Please try connecting again.",
                provider=provider.name,
            )

        tokens = TokenSet.from_response(data)
        if not account.oauth2_client_id:
            # Shared app registration: remember which client issued the tokens
            await self.account_dao.update(
                account.id,
                oauth2_client_id=client_id,
                oauth2_client_secret_encrypted=self.encryption.encrypt(client_secret),
            )
        await self._persist(account, tokens)
        logger.info(
            f"Connected {provider.name} OAuth2 for email account {account.id}",
            extra={"account_id": account.id},
        )
        return tokens

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def _client_credentials(
        provider: OAuthProvider,
        client_id: Optional[str],
        client_secret: Optional[str],
    ) -> Tuple[str, str]:
        """
        Pick the account's own client credentials, or the shared ones.

        Raises:
            OAuthError: If neither is available for this provider
        """
        if client_id and client_secret:
            return client_id, client_secret
        if provider.allows_shared_client and settings.shared_oauth_configured:
            return settings.OAUTH_SHARED_CLIENT_ID, settings.OAUTH_SHARED_CLIENT_SECRET
        raise OAuthError(
            message=(
                f"{provider.name.title()} OAuth credentials not configured. Please provide "
                "Client ID and Client Secret in email account settings before connecting."
            ),
            provider=provider.name,
        )

    @staticmethod
    def _redirect_uri() -> str:
        if not settings.MICROSOFT_OAUTH_REDIRECT_URI:
            raise OAuthError(
                message="MICROSOFT_OAUTH_REDIRECT_URI environment variable is not configured.",
            )
        return settings.MICROSOFT_OAUTH_REDIRECT_URI

    async def _post_token_request(
        self,
        provider: OAuthProvider,
        data: dict,
        reconnect_on_rejection: bool = True,
    ) -> dict:
        """
        POST a form to the provider token endpoint.

        Raises:
            OAuthReconnectRequiredError: Refresh rejected by the provider
            OAuthError: Network failure, or a rejected code exchange
        """
        async with self.http_client_factory() as client:
            try:
                response = await client.post(provider.token_url, data=data)
            except httpx.RequestError as e:
                raise OAuthError(
                    message=f"Failed to connect to {provider.name.title()} OAuth",
                    provider=provider.name,
                    error=str(e),
                )

        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {}

        if response.status_code != 200 or "access_token" not in payload:
            error_code = payload.get("error", "unknown_error")
            description = payload.get("error_description") or f"HTTP {response.status_code}"
            logger.warning(
                f"{provider.name.title()} token endpoint rejected request: {error_code}",
                extra={"status_code": response.status_code},
            )
            if reconnect_on_rejection and self._is_dead_grant(response.status_code, error_code):
                raise OAuthReconnectRequiredError(
                    provider=provider.name,
                    error=error_code,
                    error_description=description,
                )
            if reconnect_on_rejection:
                # Outages and throttling: the stored grant may still be good
                raise OAuthError(
                    message=f"{provider.name.title()} token refresh failed: {description}",
                    provider=provider.name,
                    error=error_code,
                    provider_status=response.status_code,
                    action="retry_later",
                )
            raise OAuthError(
                message=f"Failed to exchange authorization code: {description}",
                provider=provider.name,
                error=error_code,
            )

        return payload

    @staticmethod
    def _is_dead_grant(status_code: int, error_code: str) -> bool:
        """Only a definite rejection of the grant or client means reconnect."""
        return status_code in REJECTED_GRANT_STATUSES and error_code in REJECTED_GRANT_ERRORS

    async def _persist(self, account: EmailAccount, tokens: TokenSet) -> None:
        fields = {
            "oauth2_access_token_encrypted": self.encryption.encrypt(tokens.access_token),
            "oauth2_token_expires_at": tokens.expires_at,
        }
        # WHY: Providers may rotate the refresh token; the old one stops working
        if tokens.refresh_token:
            fields["oauth2_refresh_token_encrypted"] = self.encryption.encrypt(tokens.refresh_token)
        await self.account_dao.update(account.id, **fields)
