"""
FastAPI dependencies for authentication and shared services.

WHY: Dependencies provide reusable authentication and service wiring that
can be injected into route handlers, and overridden in tests.
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from invoice_mailer.core.auth import verify_token
from invoice_mailer.core.exceptions import (
    AuthenticationError,
    TokenExpiredError,
    TokenInvalidError,
)
from invoice_mailer.dao.base import BaseDAO
from invoice_mailer.db.session import get_db
from invoice_mailer.models.user import User
from invoice_mailer.services.storage import ObjectStorage
from invoice_mailer.services.transport import TransportCache

# WHY: auto_error=False so a missing header raises AuthenticationError (401)
# through the app's handlers instead of FastAPI's own 403
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get current authenticated user from JWT token.

    Usage:
        @router.get("/protected")
        async def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": user.id}

    Raises:
        AuthenticationError: If the token is missing, invalid, expired, or
            the user no longer exists or is inactive
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError(message="Unauthorized")

    try:
        payload = verify_token(credentials.credentials)
    except (TokenExpiredError, TokenInvalidError) as e:
        raise AuthenticationError(message=str(e), status_code=e.status_code)

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError(message="Invalid token: missing user_id")

    user = await BaseDAO(User, db).get_by_id(user_id)
    if not user:
        raise AuthenticationError(message="User not found", user_id=user_id)

    if not user.is_active:
        raise AuthenticationError(message="User account is inactive", user_id=user_id)

    return user


def get_transport_cache(request: Request) -> TransportCache:
    """The application's transport cache (created in create_app)."""
    return request.app.state.transport_cache


def get_object_storage() -> ObjectStorage:
    """Object storage client for invoice files."""
    return ObjectStorage()
