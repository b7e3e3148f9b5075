"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. HTTP status code mapping for FastAPI
2. Structured error responses with contextual data
3. No credential leaks in error messages
4. A single place to tell validation, not-found, OAuth and transport
   failures apart, which decides how an email send failure is reported

IMPORTANT: NEVER raise the base Exception class. Always use custom exceptions.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    WHY: Centralizing exception handling in a base class ensures consistent
    error responses, HTTP status code mapping, and prevents sensitive data
    leaks in error messages.

    All custom exceptions should inherit from this class.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        WHY: Context parameters allow including debugging information
        (invoice_id, account_id, etc.) without leaking sensitive data like
        passwords or tokens.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        sensitive_fields = {
            "password",
            "token",
            "secret",
            "key",
            "access_token",
            "refresh_token",
            "client_secret",
            "original_exception",
        }
        filtered_context = {
            k: v for k, v in self.context.items() if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Authentication
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when authentication fails.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    default_message = "Authentication failed"


class TokenExpiredError(AuthenticationError):
    """
    Raised when a JWT (session or OAuth state) has expired.

    HTTP Status: 401 Unauthorized
    """

    default_message = "Token has expired"


class TokenInvalidError(AuthenticationError):
    """
    Raised when a JWT is malformed or has an invalid signature.

    HTTP Status: 401 Unauthorized
    """

    default_message = "Token is invalid"


# ============================================================================
# Validation
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    WHY: Covers missing request fields, a missing template, a missing
    recipient address and an invoice without attachable files. None of these
    can be fixed by retrying, so they are reported synchronously.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"


class TemplateMissingError(ValidationError):
    """
    Raised when no email template exists for the recipient type.

    WHY: Client sends need a client-specific template and accountant sends
    need the accountant template. There is no generic fallback.

    HTTP Status: 400 Bad Request
    """

    default_message = "No email template found. Please create a template first."


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class InvoiceNotFoundError(ResourceNotFoundError):
    """Invoice not found."""

    default_message = "Invoice not found"


class ClientNotFoundError(ResourceNotFoundError):
    """Client not found."""

    default_message = "Client not found"


class EmailAccountNotFoundError(ResourceNotFoundError):
    """Email account not found (or not owned by the caller)."""

    default_message = "Email account not found"


class AttachmentNotFoundError(ResourceNotFoundError):
    """
    Raised when an attachment's file key is missing from object storage.

    WHY: Assembly is all-or-nothing; a single missing file fails the send.

    HTTP Status: 404 Not Found
    """

    default_message = "Attachment file not found in storage"


# ============================================================================
# Business Logic Exceptions
# ============================================================================


class BusinessRuleViolation(AppException):
    """
    Raised when an operation violates business rules.

    HTTP Status: 422 Unprocessable Entity
    """

    status_code = 422
    default_message = "Business rule violation"


class InvalidStateTransitionError(BusinessRuleViolation):
    """
    Raised when an invoice workflow transition is not allowed.

    WHY: An invoice must be sent to the client before it can be sent to the
    accountant. The gate is checked on the email path and on manual
    overrides alike.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Invoice must be sent to client before sending to accountant"


class EmailHistoryImmutableError(AppException):
    """
    Raised when attempting to modify or delete an email history record.

    WHY: Email history is an append-only audit trail.

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    default_message = "Email history records are immutable and cannot be modified"


# ============================================================================
# External Service Exceptions
# ============================================================================


class ExternalServiceError(AppException):
    """
    Raised when an external service (SMTP server, OAuth provider,
    object storage) fails.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "External service error"


class StorageError(ExternalServiceError):
    """Object storage (S3/R2) request failed for a reason other than a missing key."""

    default_message = "File storage error"


class OAuthError(ExternalServiceError):
    """
    Raised when an OAuth2 token refresh or code exchange fails.

    WHY: OAuth failures are surfaced as a prompt to reconnect the email
    account rather than a generic server error. The `action` context key
    tells the frontend which prompt to show.

    HTTP Status: 502 Bad Gateway
    """

    default_message = "OAuth authentication failed"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None, **context: Any):
        context.setdefault("action", "reconnect_account")
        super().__init__(message, status_code, **context)


class OAuthReconnectRequiredError(OAuthError):
    """
    Raised when the provider rejects the stored refresh token.

    WHY: A revoked or expired refresh token can only be fixed by the user
    connecting the account again.
    """

    default_message = (
        "The email account's OAuth authorization has expired or been revoked. "
        "Please reconnect the email account in settings."
    )


class OAuthStateError(OAuthError):
    """
    Raised when the OAuth callback state is invalid, expired, or belongs
    to another user.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Invalid OAuth state - please try again"


class EmailTransportError(AppException):
    """
    Raised when building a transport or sending through it fails.

    WHY: SMTP failures (connection refused, authentication rejected,
    recipient refused) are server-side failures from the caller's point of
    view and map to 500.

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    default_message = "Failed to send email"


class EmailConfigurationError(EmailTransportError):
    """
    Raised when no email account and no environment SMTP settings resolve.

    HTTP Status: 500 Internal Server Error
    """

    default_message = (
        "SMTP configuration missing. Please set SMTP_HOST, SMTP_PORT, SMTP_USER "
        "and SMTP_PASSWORD environment variables, or configure an email account "
        "in settings."
    )


# ============================================================================
# Security / Infrastructure
# ============================================================================


class EncryptionError(AppException):
    """
    Raised when encrypting or decrypting stored credentials fails.

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    default_message = "Encryption operation failed"


class DatabaseError(AppException):
    """
    Raised when a database operation fails.

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    default_message = "Database error"
