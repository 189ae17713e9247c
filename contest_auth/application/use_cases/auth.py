"""
Authentication Use Cases

One use case per public operation (register, login, email verification,
forgot/reset password, token refresh, logout, resend verification, profile)
and the ``AuthOrchestrator`` facade the transport calls. Each use case
validates its request shape, consults the abuse guard before touching
credentials, delegates to the stores and returns an ``AuthResponse``.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.orm import Session

from contest_auth.application.config import AuthConfig
from contest_auth.application.interfaces.email import EmailDispatcher
from contest_auth.domain.exceptions import (
    DuplicateAccountError,
    InvalidAccessTokenError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    StorageUnavailableError,
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenNotFoundError,
    TokenReuseDetectedError,
)
from contest_auth.domain.value_objects import (
    AuthenticatedIdentity,
    EmailTemplate,
    SessionRevocationReason,
    TokenPair,
    TokenPurpose,
)
from contest_auth.infrastructure.auth.jwt_service import JWTService
from contest_auth.infrastructure.auth.services.credential_store import CredentialStore
from contest_auth.infrastructure.auth.services.password_service import PasswordService
from contest_auth.infrastructure.auth.services.token_service import TokenService
from contest_auth.infrastructure.auth.services.verification import VerificationFlowManager
from contest_auth.infrastructure.rate_limiting.guard import AbuseGuard

from .base import AuthResponse, UseCase, UseCaseRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"
AUTH_COOKIES = [ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE]

NAME_MAX_LENGTH = 50

FORGOT_PASSWORD_MESSAGE = "If the email exists, a reset link has been sent. Please check your inbox."
RESEND_VERIFICATION_MESSAGE = (
    "If the account exists and is not yet verified, a verification email has been sent."
)


# Request DTOs
@dataclass(kw_only=True)
class RegisterRequest(UseCaseRequest):
    email: str
    password: str
    first_name: str | None = None
    last_name: str | None = None


@dataclass(kw_only=True)
class LoginRequest(UseCaseRequest):
    email: str
    password: str


@dataclass(kw_only=True)
class VerifyEmailRequest(UseCaseRequest):
    token: str


@dataclass(kw_only=True)
class ForgotPasswordRequest(UseCaseRequest):
    email: str


@dataclass(kw_only=True)
class ResetPasswordRequest(UseCaseRequest):
    token: str
    password: str


@dataclass(kw_only=True)
class RefreshTokenRequest(UseCaseRequest):
    refresh_token: str | None = None


@dataclass(kw_only=True)
class LogoutRequest(UseCaseRequest):
    refresh_token: str | None = None


@dataclass(kw_only=True)
class ResendVerificationRequest(UseCaseRequest):
    email: str


@dataclass(kw_only=True)
class GetProfileRequest(UseCaseRequest):
    identity: AuthenticatedIdentity


@dataclass
class AuthServices:
    """Collaborators of the authentication use cases, scoped to one request."""

    credentials: CredentialStore
    tokens: TokenService
    verification: VerificationFlowManager
    passwords: PasswordService
    guard: AbuseGuard
    email: EmailDispatcher
    config: AuthConfig


# Validation helpers
def _error(field: str, message: str) -> dict[str, str]:
    return {"field": field, "message": message}


def _check_email(value: str | None, errors: list[dict[str, str]]) -> None:
    if not value or not value.strip():
        errors.append(_error("email", "Email is required"))
        return
    try:
        validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError:
        errors.append(_error("email", "Valid email is required"))


def _check_required(
    value: str | None, field: str, message: str, errors: list[dict[str, str]]
) -> None:
    if not value or not value.strip():
        errors.append(_error(field, message))


def _check_name(value: str | None, field: str, label: str, errors: list[dict[str, str]]) -> None:
    # Optional, but a name that is sent must have content once trimmed
    if value is None:
        return
    if not 1 <= len(value.strip()) <= NAME_MAX_LENGTH:
        errors.append(_error(field, f"{label} must be between 1 and {NAME_MAX_LENGTH} characters"))


def _token_payload(pair: TokenPair) -> dict[str, Any]:
    return {
        "accessToken": pair.access_token,
        "refreshToken": pair.refresh_token,
        "expiresIn": pair.expires_in,
    }


def _token_cookies(pair: TokenPair) -> dict[str, str]:
    return {ACCESS_TOKEN_COOKIE: pair.access_token, REFRESH_TOKEN_COOKIE: pair.refresh_token}


class AuthUseCase(UseCase[Any]):
    """Common plumbing for the authentication use cases."""

    def __init__(self, services: AuthServices) -> None:
        super().__init__()
        self.services = services

    async def _blocking(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        # Store and counter calls are synchronous; keep them off the event loop
        return await asyncio.to_thread(func, *args, **kwargs)

    async def _audit(
        self,
        event_type: str,
        request: UseCaseRequest,
        user_id: str | None = None,
        success: bool = True,
        **event_data: Any,
    ) -> None:
        # The audit trail never decides the outcome of the operation
        try:
            await self._blocking(
                self.services.credentials.log_audit_event,
                event_type=event_type,
                user_id=user_id,
                event_data=event_data,
                ip_address=request.ip_address,
                user_agent=request.user_agent,
                success=success,
            )
        except StorageUnavailableError:
            self.logger.warning(f"Audit event {event_type} not recorded: store unavailable")

    async def _send_email(self, recipient: str, purpose: TokenPurpose, token: str) -> None:
        # Delivery problems are logged; the caller's response does not change
        try:
            await self.services.email.send(recipient, EmailTemplate.for_purpose(purpose), token)
        except Exception as e:
            self.logger.error(
                f"Email dispatch failed for {purpose.value}: {e}",
                extra={"purpose": purpose.value},
                exc_info=True,
            )


class RegisterUseCase(AuthUseCase):
    """Create an account, start its verification flow and log it in."""

    async def validate(self, request: RegisterRequest) -> list[dict[str, str]]:
        errors: list[dict[str, str]] = []
        _check_email(request.email, errors)
        if not request.password:
            errors.append(_error("password", "Password is required"))
        else:
            for message in self.services.passwords.validate_password(request.password):
                errors.append(_error("password", message))
        _check_name(request.first_name, "firstName", "First name", errors)
        _check_name(request.last_name, "lastName", "Last name", errors)
        return errors

    async def process(self, request: RegisterRequest) -> AuthResponse:
        services = self.services
        await self._blocking(services.guard.check_auth_attempts, request.email, request.ip_address)

        password_hash = await services.passwords.hash_password_async(request.password)
        try:
            user = await self._blocking(
                services.credentials.create_user,
                email=request.email,
                password_hash=password_hash,
                first_name=request.first_name.strip() if request.first_name is not None else None,
                last_name=request.last_name.strip() if request.last_name is not None else None,
            )
        except DuplicateAccountError:
            await self._blocking(
                services.guard.record_auth_failure, request.email, request.ip_address
            )
            raise

        user_id = str(user.id)
        verification_token = await self._blocking(
            services.verification.issue, user_id, TokenPurpose.EMAIL_VERIFY
        )
        await self._send_email(str(user.email), TokenPurpose.EMAIL_VERIFY, verification_token)

        pair = await self._blocking(
            services.tokens.issue_session, user_id, request.ip_address, request.user_agent
        )
        await self._audit("register", request, user_id=user_id)

        return AuthResponse.ok(
            "Registration successful. Please verify your email to unlock all features.",
            data={"user": user.to_public_dict(), **_token_payload(pair)},
            http_status=201,
            set_cookies=_token_cookies(pair),
        )


class LoginUseCase(AuthUseCase):
    """Verify credentials and open a new session."""

    async def validate(self, request: LoginRequest) -> list[dict[str, str]]:
        errors: list[dict[str, str]] = []
        _check_required(request.email, "email", "Email is required", errors)
        _check_required(request.password, "password", "Password is required", errors)
        return errors

    async def process(self, request: LoginRequest) -> AuthResponse:
        services = self.services
        await self._blocking(services.guard.check_auth_attempts, request.email, request.ip_address)

        user = await self._blocking(services.credentials.find_by_email, request.email)
        candidate_hash = str(user.password_hash) if user is not None and user.is_active else None

        # Unknown and disabled accounts are checked against a dummy hash
        valid = await services.passwords.verify_password_async(request.password, candidate_hash)
        if user is None or not valid:
            await self._blocking(
                services.guard.record_auth_failure, request.email, request.ip_address
            )
            await self._audit(
                "login_failed",
                request,
                user_id=str(user.id) if user is not None else None,
                success=False,
            )
            raise InvalidCredentialsError()

        user_id = str(user.id)
        if services.passwords.hasher.needs_rehash(str(user.password_hash)):
            new_hash = await services.passwords.hash_password_async(request.password)
            await self._blocking(services.credentials.update_password_hash, user_id, new_hash)

        await self._blocking(services.guard.reset_auth_attempts, request.email)
        await self._blocking(services.credentials.record_login, user_id, request.ip_address)
        pair = await self._blocking(
            services.tokens.issue_session, user_id, request.ip_address, request.user_agent
        )
        await self._audit("login_success", request, user_id=user_id, chain_id=pair.chain_id)

        return AuthResponse.ok(
            "Login successful",
            data={"user": user.to_public_dict(), **_token_payload(pair)},
            set_cookies=_token_cookies(pair),
        )


class VerifyEmailUseCase(AuthUseCase):
    """Redeem an email verification token."""

    async def validate(self, request: VerifyEmailRequest) -> list[dict[str, str]]:
        errors: list[dict[str, str]] = []
        _check_required(request.token, "token", "Token is required", errors)
        return errors

    async def process(self, request: VerifyEmailRequest) -> AuthResponse:
        user_id = await self._blocking(
            self.services.verification.redeem, request.token, TokenPurpose.EMAIL_VERIFY
        )
        await self._audit("email_verified", request, user_id=user_id)
        return AuthResponse.ok("Email verified successfully. You can now access all features.")


class ForgotPasswordUseCase(AuthUseCase):
    """Send a reset link if the account exists; the answer never says whether it does."""

    async def validate(self, request: ForgotPasswordRequest) -> list[dict[str, str]]:
        errors: list[dict[str, str]] = []
        _check_email(request.email, errors)
        return errors

    async def process(self, request: ForgotPasswordRequest) -> AuthResponse:
        services = self.services
        await self._blocking(services.guard.hit_email_request, request.email, request.ip_address)

        user = await self._blocking(services.credentials.find_by_email, request.email)
        if user is not None and user.is_active:
            token = await self._blocking(
                services.verification.issue, str(user.id), TokenPurpose.PASSWORD_RESET
            )
            await self._send_email(str(user.email), TokenPurpose.PASSWORD_RESET, token)
            await self._audit("password_reset_requested", request, user_id=str(user.id))

        return AuthResponse.ok(FORGOT_PASSWORD_MESSAGE)


class ResetPasswordUseCase(AuthUseCase):
    """Redeem a reset token and replace the password."""

    async def validate(self, request: ResetPasswordRequest) -> list[dict[str, str]]:
        errors: list[dict[str, str]] = []
        _check_required(request.token, "token", "Token is required", errors)
        if not request.password:
            errors.append(_error("password", "Password is required"))
        else:
            for message in self.services.passwords.validate_password(request.password):
                errors.append(_error("password", message))
        return errors

    async def process(self, request: ResetPasswordRequest) -> AuthResponse:
        services = self.services
        await self._blocking(services.guard.check_auth_attempts, None, request.ip_address)

        password_hash = await services.passwords.hash_password_async(request.password)
        try:
            user_id = await self._blocking(
                services.verification.redeem, request.token, TokenPurpose.PASSWORD_RESET
            )
        except (TokenNotFoundError, TokenExpiredError, TokenAlreadyUsedError):
            await self._blocking(services.guard.record_auth_failure, None, request.ip_address)
            raise

        await self._blocking(services.credentials.update_password_hash, user_id, password_hash)

        revoked = 0
        if services.config.security.revoke_sessions_on_password_reset:
            revoked = await self._blocking(
                services.tokens.revoke_all_for_user,
                user_id, SessionRevocationReason.PASSWORD_RESET
            )
        await self._audit("password_reset", request, user_id=user_id, sessions_revoked=revoked)

        return AuthResponse.ok(
            "Password reset successfully. You can now login with your new password.",
            clear_cookies=AUTH_COOKIES,
        )


class RefreshTokenUseCase(AuthUseCase):
    """Rotate a refresh token into a new token pair."""

    async def process(self, request: RefreshTokenRequest) -> AuthResponse:
        if not request.refresh_token:
            return self._rejected(InvalidRefreshTokenError("Refresh token is required"))

        try:
            pair = await self._blocking(
                self.services.tokens.rotate,
                request.refresh_token,
                request.ip_address,
                request.user_agent,
            )
        except TokenReuseDetectedError as e:
            await self._audit(
                "refresh_token_reuse",
                request,
                user_id=e.user_id,
                success=False,
                chain_id=e.chain_id,
            )
            return self._rejected(e)
        except InvalidRefreshTokenError as e:
            return self._rejected(e)

        return AuthResponse.ok(
            "Token refreshed successfully",
            data=_token_payload(pair),
            set_cookies=_token_cookies(pair),
        )

    def _rejected(self, error: InvalidRefreshTokenError | TokenReuseDetectedError) -> AuthResponse:
        self.logger.info(f"Refresh rejected: {error.code}")
        response = AuthResponse.from_exception(error)
        response.clear_cookies = list(AUTH_COOKIES)
        return response


class LogoutUseCase(AuthUseCase):
    """Revoke the presented session. Idempotent."""

    async def process(self, request: LogoutRequest) -> AuthResponse:
        if request.refresh_token:
            revoked = await self._blocking(self.services.tokens.revoke, request.refresh_token)
            if revoked:
                await self._audit("logout", request)

        return AuthResponse.ok("Logout successful", clear_cookies=AUTH_COOKIES)


class ResendVerificationUseCase(AuthUseCase):
    """Reissue the verification email; the answer never says whether the account exists."""

    async def validate(self, request: ResendVerificationRequest) -> list[dict[str, str]]:
        errors: list[dict[str, str]] = []
        _check_email(request.email, errors)
        return errors

    async def process(self, request: ResendVerificationRequest) -> AuthResponse:
        services = self.services
        await self._blocking(services.guard.hit_email_request, request.email, request.ip_address)

        user = await self._blocking(services.credentials.find_by_email, request.email)
        if user is not None and user.is_active and not user.email_verified:
            token = await self._blocking(
                services.verification.issue, str(user.id), TokenPurpose.EMAIL_VERIFY
            )
            await self._send_email(str(user.email), TokenPurpose.EMAIL_VERIFY, token)

        return AuthResponse.ok(RESEND_VERIFICATION_MESSAGE)


class GetProfileUseCase(AuthUseCase):
    """Return the profile of the authenticated user."""

    async def process(self, request: GetProfileRequest) -> AuthResponse:
        user = await self._blocking(
            self.services.credentials.find_by_id, request.identity.user_id
        )
        if user is None or not user.is_active:
            raise InvalidAccessTokenError()
        return AuthResponse.ok("Profile retrieved", data={"user": user.to_public_dict()})


class AuthOrchestrator:
    """
    Public operation set of the authentication service.

    Every method returns an ``AuthResponse``; none raises for expected or
    unexpected failures.
    """

    def __init__(self, services: AuthServices) -> None:
        self.services = services
        self._register = RegisterUseCase(services)
        self._login = LoginUseCase(services)
        self._verify_email = VerifyEmailUseCase(services)
        self._forgot_password = ForgotPasswordUseCase(services)
        self._reset_password = ResetPasswordUseCase(services)
        self._refresh_token = RefreshTokenUseCase(services)
        self._logout = LogoutUseCase(services)
        self._resend_verification = ResendVerificationUseCase(services)
        self._get_profile = GetProfileUseCase(services)

    @classmethod
    def create(
        cls,
        db_session: Session,
        *,
        config: AuthConfig,
        password_service: PasswordService,
        jwt_service: JWTService,
        guard: AbuseGuard,
        email_dispatcher: EmailDispatcher,
    ) -> "AuthOrchestrator":
        """Wire the per-request stores around ``db_session``."""
        return cls(
            AuthServices(
                credentials=CredentialStore(db_session),
                tokens=TokenService(db_session, jwt_service, config.tokens),
                verification=VerificationFlowManager(db_session, config.verification),
                passwords=password_service,
                guard=guard,
                email=email_dispatcher,
                config=config,
            )
        )

    async def register(self, request: RegisterRequest) -> AuthResponse:
        return await self._register.execute(request)

    async def login(self, request: LoginRequest) -> AuthResponse:
        return await self._login.execute(request)

    async def verify_email(self, request: VerifyEmailRequest) -> AuthResponse:
        return await self._verify_email.execute(request)

    async def forgot_password(self, request: ForgotPasswordRequest) -> AuthResponse:
        return await self._forgot_password.execute(request)

    async def reset_password(self, request: ResetPasswordRequest) -> AuthResponse:
        return await self._reset_password.execute(request)

    async def refresh_token(self, request: RefreshTokenRequest) -> AuthResponse:
        return await self._refresh_token.execute(request)

    async def logout(self, request: LogoutRequest) -> AuthResponse:
        return await self._logout.execute(request)

    async def resend_verification(self, request: ResendVerificationRequest) -> AuthResponse:
        return await self._resend_verification.execute(request)

    async def get_profile(self, request: GetProfileRequest) -> AuthResponse:
        return await self._get_profile.execute(request)
