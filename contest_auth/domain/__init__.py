"""
Domain layer: error taxonomy and value objects for authentication.
"""

from .exceptions import (
    AuthException,
    DuplicateAccountError,
    InvalidAccessTokenError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    RefreshTokenExpiredError,
    StorageUnavailableError,
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenNotFoundError,
    TokenReuseDetectedError,
    TooManyAttemptsError,
    ValidationFailedError,
)
from .value_objects import (
    AuthenticatedIdentity,
    EmailTemplate,
    SessionRevocationReason,
    TokenPair,
    TokenPurpose,
    normalize_email,
)

__all__ = [
    "AuthException",
    "DuplicateAccountError",
    "InvalidAccessTokenError",
    "InvalidCredentialsError",
    "InvalidRefreshTokenError",
    "RefreshTokenExpiredError",
    "StorageUnavailableError",
    "TokenAlreadyUsedError",
    "TokenExpiredError",
    "TokenNotFoundError",
    "TokenReuseDetectedError",
    "TooManyAttemptsError",
    "ValidationFailedError",
    "AuthenticatedIdentity",
    "EmailTemplate",
    "SessionRevocationReason",
    "TokenPair",
    "TokenPurpose",
    "normalize_email",
]
