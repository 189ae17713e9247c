"""
JWT access token service.

Access tokens are short-lived signed assertions verified purely by signature
and expiry; they are never stored or looked up. Refresh tokens are opaque
and live in the session table (see ``services.token_service``).
"""

import logging
import os
import secrets
from datetime import timedelta
from typing import Any

import jwt
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization

from contest_auth.application.config import TokenConfig
from contest_auth.domain.exceptions import InvalidAccessTokenError
from contest_auth.domain.value_objects import AuthenticatedIdentity

from .models import utcnow

logger = logging.getLogger(__name__)


class JWTService:
    """
    JWT service for creating and validating access tokens.

    Supports:
    - HMAC signing with a process-wide secret (default, HS256)
    - RSA signing with PEM key files (RS256)
    """

    def __init__(self, config: TokenConfig | None = None):
        """
        Initialize JWT service.

        Args:
            config: Token configuration (secret or key paths, issuer, lifetime)
        """
        self.config = config or TokenConfig()
        self.issuer = self.config.issuer
        self.algorithm = self.config.algorithm
        self.access_token_expire = timedelta(minutes=self.config.access_token_expire_minutes)

        if self.algorithm.startswith("RS"):
            if not self.config.private_key_path or not os.path.exists(
                self.config.private_key_path
            ):
                raise ValueError(
                    f"{self.algorithm} requires a private key file. "
                    "Use: openssl genrsa -out private_key.pem 2048"
                )
            if not self.config.public_key_path or not os.path.exists(self.config.public_key_path):
                raise ValueError(
                    f"{self.algorithm} requires a public key file. "
                    "Use: openssl rsa -in private_key.pem -pubout -out public_key.pem"
                )
            self._signing_key: Any = self._load_private_key(self.config.private_key_path)
            self._verifying_key: Any = self._load_public_key(self.config.public_key_path)
        else:
            self._signing_key = self.config.secret
            self._verifying_key = self.config.secret

    def _load_private_key(self, path: str) -> Any:
        """Load RSA private key from file."""
        with open(path, "rb") as key_file:
            return serialization.load_pem_private_key(
                key_file.read(), password=None, backend=default_backend()
            )

    def _load_public_key(self, path: str) -> Any:
        """Load RSA public key from file."""
        with open(path, "rb") as key_file:
            return serialization.load_pem_public_key(key_file.read(), backend=default_backend())

    @property
    def access_token_ttl_seconds(self) -> int:
        return int(self.access_token_expire.total_seconds())

    def create_access_token(self, user_id: str) -> str:
        """
        Create JWT access token.

        Args:
            user_id: User identifier (becomes the ``sub`` claim)

        Returns:
            Signed JWT access token
        """
        now = utcnow()
        payload = {
            "iss": self.issuer,
            "sub": user_id,
            "aud": self.issuer,
            "iat": now,
            "nbf": now,
            "exp": now + self.access_token_expire,
            "jti": secrets.token_urlsafe(16),
            "type": "access",
        }

        return jwt.encode(payload, self._signing_key, algorithm=self.algorithm)

    def verify_access_token(self, token: str) -> dict[str, Any]:
        """
        Verify and decode access token.

        Raises:
            InvalidAccessTokenError: If the signature, claims or expiry do not check out
        """
        try:
            payload = jwt.decode(
                token,
                self._verifying_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                audience=self.issuer,
                options={"require": ["exp", "iat", "sub", "jti"]},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidAccessTokenError()
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected access token: {e!s}")
            raise InvalidAccessTokenError()

        if payload.get("type") != "access":
            raise InvalidAccessTokenError()

        return dict(payload)

    def identity_from_token(self, token: str) -> AuthenticatedIdentity:
        """Verify ``token`` and return the identity it proves."""
        payload = self.verify_access_token(token)
        return AuthenticatedIdentity(
            user_id=str(payload["sub"]),
            token_id=str(payload["jti"]),
            expires_at=int(payload["exp"]),
        )
