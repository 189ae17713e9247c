"""
Authentication infrastructure.

Models, access token signing, the credential/session stores and the HTTP
transport of the authentication service.
"""

from .jwt_service import JWTService
from .models import AuthAuditLog, Base, User, UserSession, VerificationToken

__all__ = [
    "AuthAuditLog",
    "Base",
    "JWTService",
    "User",
    "UserSession",
    "VerificationToken",
]
