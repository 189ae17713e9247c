"""
Use cases of the authentication service.
"""

from .auth import (
    AuthOrchestrator,
    AuthServices,
    ForgotPasswordRequest,
    GetProfileRequest,
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    VerifyEmailRequest,
)
from .base import AuthResponse, UseCase, UseCaseRequest

__all__ = [
    "AuthOrchestrator",
    "AuthResponse",
    "AuthServices",
    "ForgotPasswordRequest",
    "GetProfileRequest",
    "LoginRequest",
    "LogoutRequest",
    "RefreshTokenRequest",
    "RegisterRequest",
    "ResendVerificationRequest",
    "ResetPasswordRequest",
    "UseCase",
    "UseCaseRequest",
    "VerifyEmailRequest",
]
