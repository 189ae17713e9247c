"""
Authentication API endpoints.

Thin transport over ``AuthOrchestrator``: request bodies are parsed
permissively so the orchestrator can report every field problem in its own
envelope, and the envelope's cookie instructions are applied to the response.
"""

import logging
from collections.abc import Generator
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session, sessionmaker

from contest_auth.application.config import AuthConfig
from contest_auth.application.interfaces.email import EmailDispatcher
from contest_auth.application.use_cases.auth import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    AuthOrchestrator,
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
from contest_auth.application.use_cases.base import AuthResponse
from contest_auth.domain.value_objects import AuthenticatedIdentity
from contest_auth.infrastructure.database import session_scope
from contest_auth.infrastructure.rate_limiting.guard import AbuseGuard

from .jwt_service import JWTService
from .middleware import AccessTokenBearer
from .services.password_service import PasswordService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/auth", tags=["Authentication"])


@dataclass
class AuthContainer:
    """Process-wide collaborators, built once by the application factory."""

    config: AuthConfig
    session_factory: sessionmaker[Session]
    password_service: PasswordService
    jwt_service: JWTService
    guard: AbuseGuard
    email_dispatcher: EmailDispatcher


# Request models
class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class RegisterBody(CamelModel):
    email: str | None = None
    password: str | None = None
    first_name: str | None = Field(None, alias="firstName")
    last_name: str | None = Field(None, alias="lastName")


class LoginBody(CamelModel):
    email: str | None = None
    password: str | None = None


class TokenBody(CamelModel):
    token: str | None = None


class EmailBody(CamelModel):
    email: str | None = None


class ResetPasswordBody(CamelModel):
    token: str | None = None
    password: str | None = None


class RefreshTokenBody(CamelModel):
    refresh_token: str | None = Field(None, alias="refreshToken")


# Dependency injection functions
def get_container(request: Request) -> AuthContainer:
    """Get the application's auth container."""
    return request.app.state.auth  # type: ignore[no-any-return]


def get_db(container: AuthContainer = Depends(get_container)) -> Generator[Session, None, None]:
    """Get database session for one request."""
    yield from session_scope(container.session_factory)


def get_orchestrator(
    container: AuthContainer = Depends(get_container), db: Session = Depends(get_db)
) -> AuthOrchestrator:
    """Get orchestrator bound to the request's database session."""
    return AuthOrchestrator.create(
        db,
        config=container.config,
        password_service=container.password_service,
        jwt_service=container.jwt_service,
        guard=container.guard,
        email_dispatcher=container.email_dispatcher,
    )


require_access_token = AccessTokenBearer(lambda request: get_container(request).jwt_service)


def _client_context(request: Request) -> dict[str, Any]:
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def render(result: AuthResponse, config: AuthConfig) -> JSONResponse:
    """Turn an envelope into an HTTP response, applying its cookie instructions."""
    response = JSONResponse(status_code=result.http_status, content=result.to_body())
    if result.retry_after is not None:
        response.headers["Retry-After"] = str(result.retry_after)

    cookies = config.cookies
    if not cookies.enabled:
        return response

    paths = {ACCESS_TOKEN_COOKIE: cookies.access_path, REFRESH_TOKEN_COOKIE: cookies.refresh_path}
    max_ages = {
        ACCESS_TOKEN_COOKIE: config.tokens.access_token_expire_minutes * 60,
        REFRESH_TOKEN_COOKIE: config.tokens.refresh_token_expire_days * 24 * 60 * 60,
    }

    for name, value in result.set_cookies.items():
        response.set_cookie(
            name,
            value,
            max_age=max_ages[name],
            path=paths[name],
            domain=cookies.domain,
            secure=cookies.secure,
            httponly=True,
            samesite=cookies.samesite,  # type: ignore[arg-type]
        )
    for name in result.clear_cookies:
        response.delete_cookie(
            name,
            path=paths[name],
            domain=cookies.domain,
            secure=cookies.secure,
            httponly=True,
            samesite=cookies.samesite,  # type: ignore[arg-type]
        )

    return response


# Public endpoints (no authentication required)
@router.post("/register", status_code=201)
@router.post("/signup", status_code=201, include_in_schema=False)
async def register(
    body: RegisterBody,
    request: Request,
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Register a new account and log it in."""
    result = await orchestrator.register(
        RegisterRequest(
            email=body.email or "",
            password=body.password or "",
            first_name=body.first_name,
            last_name=body.last_name,
            **_client_context(request),
        )
    )
    return render(result, orchestrator.services.config)


@router.post("/login")
async def login(
    body: LoginBody,
    request: Request,
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Authenticate with email and password."""
    result = await orchestrator.login(
        LoginRequest(
            email=body.email or "",
            password=body.password or "",
            **_client_context(request),
        )
    )
    return render(result, orchestrator.services.config)


@router.post("/verify-email")
async def verify_email(
    body: TokenBody,
    request: Request,
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Redeem an email verification token."""
    result = await orchestrator.verify_email(
        VerifyEmailRequest(token=body.token or "", **_client_context(request))
    )
    return render(result, orchestrator.services.config)


@router.post("/forgot-password")
async def forgot_password(
    body: EmailBody,
    request: Request,
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Request a password reset link."""
    result = await orchestrator.forgot_password(
        ForgotPasswordRequest(email=body.email or "", **_client_context(request))
    )
    return render(result, orchestrator.services.config)


@router.post("/reset-password")
async def reset_password(
    body: ResetPasswordBody,
    request: Request,
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Set a new password with a reset token."""
    result = await orchestrator.reset_password(
        ResetPasswordRequest(
            token=body.token or "",
            password=body.password or "",
            **_client_context(request),
        )
    )
    return render(result, orchestrator.services.config)


@router.post("/resend-verification")
async def resend_verification(
    body: EmailBody,
    request: Request,
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Send a new verification email."""
    result = await orchestrator.resend_verification(
        ResendVerificationRequest(email=body.email or "", **_client_context(request))
    )
    return render(result, orchestrator.services.config)


@router.post("/refresh")
async def refresh_token(
    request: Request,
    body: RefreshTokenBody | None = None,
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Exchange a refresh token (body or cookie) for a new token pair."""
    token = (body.refresh_token if body else None) or request.cookies.get(REFRESH_TOKEN_COOKIE)
    result = await orchestrator.refresh_token(
        RefreshTokenRequest(refresh_token=token, **_client_context(request))
    )
    return render(result, orchestrator.services.config)


@router.post("/logout")
async def logout(
    request: Request,
    body: RefreshTokenBody | None = None,
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Revoke the current session and clear the auth cookies."""
    token = (body.refresh_token if body else None) or request.cookies.get(REFRESH_TOKEN_COOKIE)
    result = await orchestrator.logout(
        LogoutRequest(refresh_token=token, **_client_context(request))
    )
    return render(result, orchestrator.services.config)


# Protected endpoints
@router.get("/me")
async def get_profile(
    request: Request,
    identity: AuthenticatedIdentity = Depends(require_access_token),
    orchestrator: AuthOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """Profile of the authenticated user."""
    result = await orchestrator.get_profile(
        GetProfileRequest(identity=identity, **_client_context(request))
    )
    return render(result, orchestrator.services.config)
