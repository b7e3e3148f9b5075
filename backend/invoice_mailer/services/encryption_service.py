"""
Encryption service for stored email credentials.

WHAT: Provides symmetric encryption using Fernet for SMTP passwords and
OAuth2 secrets/tokens at rest.

WHY: A leaked database dump must not hand out working mailbox
credentials.

HOW: Uses Fernet (from cryptography library) which provides:
- AES-128-CBC encryption
- HMAC-SHA256 authentication
- URL-safe base64 encoding
"""

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from invoice_mailer.core.config import settings
from invoice_mailer.core.exceptions import EncryptionError

logger = logging.getLogger(__name__)


class EncryptionService:
    """
    Service for encrypting and decrypting stored credentials.

    Security notes:
    - Never log plaintext values
    - Invalid tokens raise EncryptionError (no silent failures)

    Example:
        service = EncryptionService()
        encrypted = service.encrypt("smtp-password")
        decrypted = service.decrypt(encrypted)
    """

    def __init__(self, key: Optional[str] = None):
        """
        Initialize encryption service.

        Args:
            key: Optional Fernet key (base64-encoded). Defaults to settings.ENCRYPTION_KEY.

        Raises:
            EncryptionError: If key is missing or invalid.
        """
        encryption_key = key or settings.ENCRYPTION_KEY

        if not encryption_key:
            logger.error("Encryption key not configured")
            raise EncryptionError(
                message="Encryption key not configured",
                hint="Set ENCRYPTION_KEY environment variable",
            )

        try:
            self._fernet = Fernet(encryption_key.encode())
        except (ValueError, TypeError) as e:
            logger.error(f"Invalid encryption key format: {type(e).__name__}")
            raise EncryptionError(
                message="Invalid encryption key format",
                hint="Key must be 32 bytes, URL-safe base64-encoded",
            )

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a plaintext string.

        Raises:
            EncryptionError: If the value is empty.
        """
        if not plaintext:
            raise EncryptionError(message="Cannot encrypt empty value")

        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt an encrypted ciphertext.

        Raises:
            EncryptionError: If decryption fails (invalid token, wrong key).
        """
        if not ciphertext:
            raise EncryptionError(message="Cannot decrypt empty value")

        try:
            return self._fernet.decrypt(ciphertext.encode()).decode()
        except InvalidToken:
            logger.warning("Decryption failed: invalid token or wrong key")
            raise EncryptionError(
                message="Failed to decrypt stored credential",
                hint="Data may be corrupted or ENCRYPTION_KEY changed",
            )

    def encrypt_optional(self, plaintext: Optional[str]) -> Optional[str]:
        """Encrypt a value, passing None/empty through as None."""
        return self.encrypt(plaintext) if plaintext else None

    def decrypt_optional(self, ciphertext: Optional[str]) -> Optional[str]:
        """Decrypt a value, passing None/empty through as None."""
        return self.decrypt(ciphertext) if ciphertext else None

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet encryption key."""
        return Fernet.generate_key().decode()
