"""
Domain-level exceptions for the authentication service.

Every expected failure carries a stable machine-readable ``code``, the HTTP
status it maps to, and a message that is safe to show to the client.
The orchestration layer turns these into error envelopes; anything that is
not an ``AuthException`` is treated as an unexpected failure.
"""

from typing import Any


class AuthException(Exception):
    """Base exception for all expected authentication failures."""

    code = "AUTH_ERROR"
    http_status = 400
    default_message = "Authentication error"

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.details = details or {}


class ValidationFailedError(AuthException):
    """
    Raised when request input is malformed.

    Carries every field-level problem found, not just the first one.
    """

    code = "VALIDATION_ERROR"
    http_status = 400
    default_message = "Validation failed"

    def __init__(self, errors: list[dict[str, str]]) -> None:
        super().__init__(self.default_message, details={"errors": errors})
        self.errors = errors


class DuplicateAccountError(AuthException):
    """Raised when registering an email that already has an account."""

    code = "EMAIL_EXISTS"
    http_status = 409
    default_message = "Email already registered"


class InvalidCredentialsError(AuthException):
    """
    Raised on any failed login.

    The same message and code are used for unknown emails, wrong passwords
    and disabled accounts so responses cannot be used to enumerate accounts.
    """

    code = "INVALID_CREDENTIALS"
    http_status = 401
    default_message = "Invalid email or password"


class TokenNotFoundError(AuthException):
    """Raised when a single-use token does not exist or is no longer authoritative."""

    code = "TOKEN_NOT_FOUND"
    http_status = 400
    default_message = "Invalid or expired token"


class TokenExpiredError(AuthException):
    """Raised when a single-use token is past its deadline."""

    code = "TOKEN_EXPIRED"
    http_status = 400
    default_message = "Token has expired"


class TokenAlreadyUsedError(AuthException):
    """Raised when a single-use token has already been redeemed."""

    code = "TOKEN_ALREADY_USED"
    http_status = 400
    default_message = "Token has already been used"


class InvalidRefreshTokenError(AuthException):
    """Raised when a refresh token is unknown, revoked or expired."""

    code = "INVALID_REFRESH_TOKEN"
    http_status = 401
    default_message = "Invalid refresh token"


class RefreshTokenExpiredError(InvalidRefreshTokenError):
    """
    Raised when a refresh token is past its expiry.

    Shares code and message with ``InvalidRefreshTokenError`` so clients
    cannot tell which check failed.
    """


class TokenReuseDetectedError(AuthException):
    """Raised when a retired refresh token is presented again."""

    code = "TOKEN_REUSE_DETECTED"
    http_status = 401
    default_message = "Invalid refresh token"

    def __init__(self, chain_id: str | None = None, user_id: str | None = None) -> None:
        super().__init__(details={"chain_id": chain_id, "user_id": user_id})
        self.chain_id = chain_id
        self.user_id = user_id


class InvalidAccessTokenError(AuthException):
    """Raised when a bearer access token fails signature or expiry checks."""

    code = "INVALID_TOKEN"
    http_status = 401
    default_message = "Invalid or expired access token"


class TooManyAttemptsError(AuthException):
    """Raised by the abuse guard when a throttle limit is exceeded."""

    code = "AUTH_RATE_LIMIT_EXCEEDED"
    http_status = 429
    default_message = "Too many authentication attempts, please try again later"

    def __init__(
        self,
        message: str | None = None,
        retry_after: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message, details={"retry_after": retry_after})
        self.retry_after = retry_after
        if code:
            self.code = code


class StorageUnavailableError(AuthException):
    """
    Raised when the credential/session store or another dependency times out
    or cannot be reached. The failure is retryable and not caused by the client.
    """

    code = "SERVICE_UNAVAILABLE"
    http_status = 500
    default_message = "Service temporarily unavailable, please retry"
    retryable = True

    def __init__(self, message: str | None = None, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause
