"""
Email account API endpoints.

WHAT: CRUD for the SMTP accounts invoices are sent from, plus the OAuth2
connect flow for Microsoft/Google mailboxes.

WHY: Credential edits and deletes invalidate the account's cached
transport before the response is sent, so the next send never reuses a
transport built from old credentials.
"""

import logging
from typing import List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.core.config import settings
from invoice_mailer.core.deps import get_current_user, get_transport_cache
from invoice_mailer.core.exceptions import AppException
from invoice_mailer.db.session import get_db
from invoice_mailer.models.user import User
from invoice_mailer.schemas.email_account import (
    AuthorizationUrlResponse,
    EmailAccountCreate,
    EmailAccountResponse,
    EmailAccountUpdate,
)
from invoice_mailer.services.email_account_service import EmailAccountService
from invoice_mailer.services.transport import TransportCache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/email-accounts", tags=["email-accounts"])

SETTINGS_PAGE_PATH = "/settings/email-accounts"


@router.get("", response_model=List[EmailAccountResponse], summary="List email accounts")
async def list_email_accounts(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: TransportCache = Depends(get_transport_cache),
) -> List[EmailAccountResponse]:
    """Owner's accounts, default first."""
    accounts = await EmailAccountService(db, cache).list_accounts(current_user.id)
    return [EmailAccountResponse.from_model(a) for a in accounts]


@router.post(
    "",
    response_model=EmailAccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create email account",
)
async def create_email_account(
    data: EmailAccountCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: TransportCache = Depends(get_transport_cache),
) -> EmailAccountResponse:
    """
    Create an email account.

    Raises:
        ValidationError (400): Neither a password nor OAuth2 credentials given
    """
    account = await EmailAccountService(db, cache).create_account(
        current_user.id, data.model_dump()
    )
    return EmailAccountResponse.from_model(account)


@router.get(
    "/oauth/callback",
    summary="OAuth2 callback",
    description="Provider redirect target; stores tokens and redirects to the settings page",
    response_class=RedirectResponse,
)
async def oauth_callback(
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    error_description: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    cache: TransportCache = Depends(get_transport_cache),
) -> RedirectResponse:
    """
    Complete the connect flow.

    WHY: The browser arrives here from the provider without an
    Authorization header; the signed state identifies account and owner.
    Every outcome is a redirect back to the frontend.
    """
    if error:
        logger.warning(f"OAuth provider returned an error: {error}")
        return _settings_redirect(error=f"OAuth error: {error_description or error}")
    if not code:
        return _settings_redirect(error="No authorization code provided")
    if not state:
        return _settings_redirect(error="No state parameter provided")

    try:
        provider = await EmailAccountService(db, cache).complete_oauth(code, state)
    except AppException as e:
        logger.warning(f"OAuth connect failed: {e.message}")
        return _settings_redirect(error=e.message)

    return _settings_redirect(connected=provider)


def _settings_redirect(**params: str) -> RedirectResponse:
    url = f"{settings.FRONTEND_URL.rstrip('/')}{SETTINGS_PAGE_PATH}?{urlencode(params)}"
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


@router.get("/{account_id}", response_model=EmailAccountResponse, summary="Get email account")
async def get_email_account(
    account_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: TransportCache = Depends(get_transport_cache),
) -> EmailAccountResponse:
    account = await EmailAccountService(db, cache).get_account(account_id, current_user.id)
    return EmailAccountResponse.from_model(account)


@router.patch("/{account_id}", response_model=EmailAccountResponse, summary="Update email account")
async def update_email_account(
    account_id: int,
    data: EmailAccountUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: TransportCache = Depends(get_transport_cache),
) -> EmailAccountResponse:
    """Partial update; credential changes invalidate the cached transport."""
    account = await EmailAccountService(db, cache).update_account(
        account_id, current_user.id, data.model_dump(exclude_unset=True)
    )
    return EmailAccountResponse.from_model(account)


@router.delete(
    "/{account_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Delete email account",
)
async def delete_email_account(
    account_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: TransportCache = Depends(get_transport_cache),
) -> Response:
    await EmailAccountService(db, cache).delete_account(account_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{account_id}/oauth/authorize",
    response_model=AuthorizationUrlResponse,
    summary="Start OAuth2 connect",
)
async def authorize_email_account(
    account_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: TransportCache = Depends(get_transport_cache),
) -> AuthorizationUrlResponse:
    """
    Consent URL for connecting the account.

    Raises:
        OAuthError (502): Client credentials or redirect URI not configured
    """
    url = await EmailAccountService(db, cache).authorization_url(account_id, current_user.id)
    return AuthorizationUrlResponse(authorization_url=url)
