"""
Authentication services.

Storage-backed services used by the authentication use cases.
"""

from .credential_store import CredentialStore
from .password_service import PasswordHasher, PasswordService, PasswordValidator
from .token_service import TokenService, generate_token, hash_token
from .verification import VerificationFlowManager

__all__ = [
    "CredentialStore",
    "PasswordHasher",
    "PasswordService",
    "PasswordValidator",
    "TokenService",
    "VerificationFlowManager",
    "generate_token",
    "hash_token",
]
