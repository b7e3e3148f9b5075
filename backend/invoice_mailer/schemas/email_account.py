"""
Email account schemas for API request/response validation.

WHAT: Pydantic schemas for managing SMTP accounts.

WHY: Secrets are write-only. Responses report whether a password or OAuth
connection exists but never echo a credential back.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class EmailAccountCreate(BaseModel):
    """Schema for creating an email account."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    smtp_host: str = Field(..., min_length=1, max_length=255)
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_user: str = Field(..., min_length=1, max_length=255)
    smtp_password: Optional[str] = Field(default=None, description="Required unless OAuth2 is used")
    oauth2_client_id: Optional[str] = Field(default=None, max_length=255)
    oauth2_client_secret: Optional[str] = None
    oauth2_refresh_token: Optional[str] = None
    oauth2_access_token: Optional[str] = None
    is_default: bool = False


class EmailAccountUpdate(BaseModel):
    """
    Schema for updating an email account.

    WHY: Partial update; only the fields sent are changed, and changing any
    credential invalidates the cached transport.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    smtp_host: Optional[str] = Field(default=None, min_length=1, max_length=255)
    smtp_port: Optional[int] = Field(default=None, ge=1, le=65535)
    smtp_user: Optional[str] = Field(default=None, min_length=1, max_length=255)
    smtp_password: Optional[str] = None
    oauth2_client_id: Optional[str] = Field(default=None, max_length=255)
    oauth2_client_secret: Optional[str] = None
    oauth2_refresh_token: Optional[str] = None
    oauth2_access_token: Optional[str] = None
    is_default: Optional[bool] = None


class EmailAccountResponse(BaseModel):
    """Email account as returned by the API (no secrets)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    smtp_host: str
    smtp_port: int
    smtp_user: str
    oauth2_client_id: Optional[str] = None
    has_password: bool = False
    has_oauth2: bool = False
    oauth2_token_expires_at: Optional[datetime] = None
    is_default: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, account) -> "EmailAccountResponse":
        response = cls.model_validate(account)
        response.has_password = bool(account.smtp_password_encrypted)
        return response


class AuthorizationUrlResponse(BaseModel):
    """Provider consent URL for the OAuth connect flow."""

    model_config = ConfigDict(populate_by_name=True)

    authorization_url: str = Field(..., serialization_alias="authorizationUrl")
