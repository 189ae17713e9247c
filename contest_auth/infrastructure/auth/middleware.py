"""
Authentication middleware and dependencies for FastAPI.

The bearer dependency returns the verified ``AuthenticatedIdentity`` so route
handlers receive the caller's identity as an explicit argument.
"""

import logging
from collections.abc import Callable
from typing import Any

from fastapi import Request
from fastapi.responses import Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.middleware.base import BaseHTTPMiddleware

from contest_auth.domain.exceptions import InvalidAccessTokenError
from contest_auth.domain.value_objects import AuthenticatedIdentity
from contest_auth.infrastructure.monitoring.logging import request_context

from .jwt_service import JWTService

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "accessToken"


class AccessTokenBearer(HTTPBearer):
    """
    Access token authentication.

    Accepts ``Authorization: Bearer <token>`` or the ``accessToken`` cookie.
    """

    def __init__(self, jwt_service_getter: Callable[[Request], JWTService]):
        """
        Args:
            jwt_service_getter: Resolves the application's JWT service from the request
        """
        super().__init__(auto_error=False)
        self.jwt_service_getter = jwt_service_getter

    async def __call__(self, request: Request) -> AuthenticatedIdentity:  # type: ignore[override]
        """
        Validate the access token of the request.

        Raises:
            InvalidAccessTokenError: If no token is presented or it does not verify
        """
        credentials: HTTPAuthorizationCredentials | None = await super().__call__(request)

        token = None
        if credentials and credentials.scheme.lower() == "bearer":
            token = credentials.credentials
        if not token:
            token = request.cookies.get(ACCESS_TOKEN_COOKIE)
        if not token:
            raise InvalidAccessTokenError("Authorization required")

        return self.jwt_service_getter(request).identity_from_token(token)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Security headers middleware.

    Adds security headers to all responses.
    """

    def __init__(self, app: Any, hsts: bool = False) -> None:
        super().__init__(app)
        self.hsts = hsts

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        if self.hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response  # type: ignore[no-any-return]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID middleware.

    Puts the request id in the logging context and echoes it in the response.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        """Add request ID to the logging context and response."""
        with request_context(request.headers.get("X-Request-ID")) as request_id:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response  # type: ignore[no-any-return]
