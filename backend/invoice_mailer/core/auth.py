"""
JWT utilities for API authentication and OAuth state.

WHY: This module provides:
1. JWT access token creation and verification for API callers
   (tokens are issued by the login service; creation is kept for tooling
   and tests)
2. Signed OAuth `state` values so the email-account OAuth callback can
   trust the `{accountId, ownerId}` pair it receives back from the provider
"""

from datetime import datetime, timedelta
from typing import Dict, Any, Optional
from jose import jwt, JWTError

from invoice_mailer.core.config import settings
from invoice_mailer.core.exceptions import (
    OAuthStateError,
    TokenExpiredError,
    TokenInvalidError,
)


OAUTH_STATE_PURPOSE = "email_account_oauth"


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Token includes:
    - User data (user_id)
    - exp: Expiration time (default: 24 hours)
    - iat: Issued at time
    - nbf: Not before time

    Args:
        data: Data to encode in token
        expires_delta: Optional custom expiration time

    Returns:
        JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)

    to_encode.update(
        {
            "exp": expire,
            "iat": datetime.utcnow(),
            "nbf": datetime.utcnow(),
        }
    )

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: JWT token string

    Returns:
        Decoded token payload

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is malformed or signature invalid
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )

    except jwt.ExpiredSignatureError:
        raise TokenExpiredError(message="Token has expired")

    except JWTError as e:
        raise TokenInvalidError(
            message="Invalid token",
            error=str(e),
        )


# ============================================================================
# OAuth State
# ============================================================================


def create_oauth_state(account_id: int, owner_id: int) -> str:
    """
    Encode the OAuth `state` for an email-account connect flow.

    WHAT: A short-lived signed JWT carrying `{accountId, ownerId}`.

    WHY: The state round-trips through the provider and the user's browser.
    Signing it means the callback can trust which account to store tokens
    on without a server-side state store.

    Args:
        account_id: Email account being connected
        owner_id: User who started the flow

    Returns:
        Signed state string
    """
    return create_access_token(
        {
            "accountId": account_id,
            "ownerId": owner_id,
            "purpose": OAUTH_STATE_PURPOSE,
        },
        expires_delta=timedelta(minutes=settings.OAUTH_STATE_EXPIRATION_MINUTES),
    )


def decode_oauth_state(state: str) -> Dict[str, int]:
    """
    Decode and validate an OAuth `state` value.

    Args:
        state: State string received on the callback

    Returns:
        Dict with integer `accountId` and `ownerId`

    Raises:
        OAuthStateError: If the state is expired, tampered with, or malformed
    """
    try:
        payload = verify_token(state)
    except (TokenExpiredError, TokenInvalidError) as e:
        raise OAuthStateError(reason=e.message)

    if payload.get("purpose") != OAUTH_STATE_PURPOSE:
        raise OAuthStateError(reason="wrong token purpose")

    try:
        return {
            "accountId": int(payload["accountId"]),
            "ownerId": int(payload["ownerId"]),
        }
    except (KeyError, TypeError, ValueError):
        raise OAuthStateError(reason="missing account or owner")
