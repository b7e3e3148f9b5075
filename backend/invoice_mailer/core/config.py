"""Application configuration"""

from decimal import Decimal
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "Invoice Mailer API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Security
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 1440  # 24 hours
    OAUTH_STATE_EXPIRATION_MINUTES: int = 10
    ENCRYPTION_KEY: str  # Fernet key for stored SMTP passwords and OAuth tokens

    # Database
    DATABASE_URL: str

    # URLs
    FRONTEND_URL: str = "http://localhost:3000"
    BACKEND_URL: str = "http://localhost:8000"

    # Object storage (Cloudflare R2 or any S3-compatible endpoint)
    S3_ENDPOINT: Optional[str] = None
    S3_ACCESS_KEY: Optional[str] = None
    S3_SECRET_KEY: Optional[str] = None
    S3_BUCKET: str = "invoice-files"
    S3_REGION: str = "auto"

    # Environment SMTP fallback
    # WHY: Used only when neither an explicit nor a default email account resolves
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM: Optional[str] = None
    SMTP_OAUTH2_CLIENT_ID: Optional[str] = None
    SMTP_OAUTH2_CLIENT_SECRET: Optional[str] = None
    SMTP_OAUTH2_REFRESH_TOKEN: Optional[str] = None
    SMTP_OAUTH2_ACCESS_TOKEN: Optional[str] = None
    SMTP_TIMEOUT_SECONDS: float = 30.0

    # OAuth2 for SMTP accounts
    MICROSOFT_OAUTH_REDIRECT_URI: Optional[str] = None  # e.g., http://localhost:8000/api/email-accounts/oauth/callback
    # WHY: Shared app registration is opt-in; accounts normally carry their own client id/secret
    OAUTH_SHARED_CLIENT_ID: Optional[str] = None
    OAUTH_SHARED_CLIENT_SECRET: Optional[str] = None

    # Currency conversion
    # WHY: Used when the gbp_to_eur_rate setting is absent for an owner
    DEFAULT_GBP_TO_EUR_RATE: Decimal = Decimal("1.15")

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    @property
    def env_smtp_configured(self) -> bool:
        """
        Check if the environment SMTP fallback is usable.

        WHY: Host and user are required together with either a password or
        a complete OAuth2 credential set; the from address falls back to
        the SMTP user.
        """
        return bool(self.SMTP_HOST and self.SMTP_USER) and (
            bool(self.SMTP_PASSWORD) or self.env_smtp_oauth2_configured
        )

    @property
    def env_smtp_oauth2_configured(self) -> bool:
        """Check if the environment fallback carries an OAuth2 credential set."""
        return all([
            self.SMTP_OAUTH2_CLIENT_ID,
            self.SMTP_OAUTH2_CLIENT_SECRET,
            self.SMTP_OAUTH2_REFRESH_TOKEN,
        ])

    @property
    def shared_oauth_configured(self) -> bool:
        """Check if a shared OAuth app registration is available."""
        return bool(self.OAUTH_SHARED_CLIENT_ID and self.OAUTH_SHARED_CLIENT_SECRET)

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")


settings = Settings()
