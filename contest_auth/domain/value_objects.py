"""
Value objects shared across the authentication layers.
"""

from dataclasses import dataclass
from enum import Enum


class TokenPurpose(Enum):
    """What a single-use verification token may be redeemed for."""

    EMAIL_VERIFY = "email_verify"
    PASSWORD_RESET = "password_reset"


class EmailTemplate(Enum):
    """Template kinds understood by the email dispatcher."""

    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"

    @classmethod
    def for_purpose(cls, purpose: TokenPurpose) -> "EmailTemplate":
        if purpose is TokenPurpose.EMAIL_VERIFY:
            return cls.EMAIL_VERIFICATION
        return cls.PASSWORD_RESET


class SessionRevocationReason(Enum):
    """Why a refresh token stopped being valid."""

    ROTATED = "rotated"
    LOGOUT = "logout"
    REUSE_DETECTED = "reuse_detected"
    PASSWORD_RESET = "password_reset"
    ACCOUNT_DISABLED = "account_disabled"


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookups."""
    return email.strip().lower()


@dataclass(frozen=True)
class TokenPair:
    """Access/refresh token pair handed to a client after login or refresh."""

    access_token: str
    refresh_token: str
    expires_in: int
    session_id: str
    chain_id: str


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """Identity proven by a verified access token, passed explicitly down the call chain."""

    user_id: str
    token_id: str
    expires_at: int
