"""
Abuse guard for the authentication endpoints.

Two fixed-window limits:

- failed authentication attempts (login, registration, password reset),
  counted per account and per client IP; successful attempts are not counted
  and a successful login clears the account counter
- outgoing email requests (forgot password, resend verification), counted on
  every request per account and per client IP

The guard is consulted before any credential check so a throttled client
never reaches password verification.
"""

import logging

from contest_auth.application.config import RateLimitConfig
from contest_auth.domain.exceptions import StorageUnavailableError, TooManyAttemptsError
from contest_auth.domain.value_objects import normalize_email

from .exceptions import RateLimitStorageError
from .storage import RateLimitStorage, create_storage

logger = logging.getLogger(__name__)

AUTH_LIMIT_MESSAGE = "Too many authentication attempts, please try again later"
EMAIL_LIMIT_MESSAGE = "Email limit reached, please try again later"
EMAIL_LIMIT_CODE = "EMAIL_LIMIT_EXCEEDED"


class AbuseGuard:
    """Throttles credential guessing and email flooding."""

    def __init__(self, config: RateLimitConfig, storage: RateLimitStorage | None = None):
        self.config = config
        self.storage = storage or create_storage(config)

    @staticmethod
    def _identifiers(kind: str, email: str | None, ip_address: str | None) -> list[str]:
        keys = []
        if email:
            keys.append(f"{kind}:account:{normalize_email(email)}")
        if ip_address:
            keys.append(f"{kind}:ip:{ip_address}")
        return keys

    def check_auth_attempts(self, email: str | None, ip_address: str | None) -> None:
        """
        Refuse the attempt if the account or the IP has too many recent failures.

        Raises:
            TooManyAttemptsError: The limit is reached
            StorageUnavailableError: The counter store cannot be reached
        """
        if not self.config.enabled:
            return

        for key in self._identifiers("auth", email, ip_address):
            count = self._call("get", key) or 0
            if count >= self.config.auth_attempt_limit:
                retry_after = self._retry_after(key, self.config.auth_attempt_window_seconds)
                logger.warning(
                    "Authentication attempts throttled",
                    extra={"limit_key": key.split(":")[1], "retry_after": retry_after},
                )
                raise TooManyAttemptsError(AUTH_LIMIT_MESSAGE, retry_after=retry_after)

    def record_auth_failure(self, email: str | None, ip_address: str | None) -> None:
        """Count a failed authentication attempt against the account and the IP."""
        if not self.config.enabled:
            return

        for key in self._identifiers("auth", email, ip_address):
            self._call(
                "increment", key, ttl=self.config.auth_attempt_window_seconds
            )

    def reset_auth_attempts(self, email: str) -> None:
        """Clear the account counter after a successful login."""
        if not self.config.enabled:
            return

        for key in self._identifiers("auth", email, None):
            self._call("delete", key)

    def hit_email_request(self, email: str | None, ip_address: str | None) -> None:
        """
        Count an email-sending request and refuse it past the limit.

        Raises:
            TooManyAttemptsError: With code ``EMAIL_LIMIT_EXCEEDED``
            StorageUnavailableError: The counter store cannot be reached
        """
        if not self.config.enabled:
            return

        for key in self._identifiers("email", email, ip_address):
            count = self._call("increment", key, ttl=self.config.email_request_window_seconds)
            if count > self.config.email_request_limit:
                retry_after = self._retry_after(key, self.config.email_request_window_seconds)
                logger.warning(
                    "Email requests throttled",
                    extra={"limit_key": key.split(":")[1], "retry_after": retry_after},
                )
                raise TooManyAttemptsError(
                    EMAIL_LIMIT_MESSAGE, retry_after=retry_after, code=EMAIL_LIMIT_CODE
                )

    def cleanup_expired(self) -> int:
        """Drop expired counters from the storage backend."""
        return self._call("cleanup_expired")

    def _retry_after(self, key: str, window: int) -> int:
        remaining = self._call("ttl", key)
        return remaining if remaining > 0 else window

    def _call(self, operation: str, *args, **kwargs):  # type: ignore[no-untyped-def]
        try:
            return getattr(self.storage, operation)(*args, **kwargs)
        except RateLimitStorageError as e:
            logger.error(
                f"Rate limit storage failure: {e}",
                extra={"storage_backend": e.storage_backend},
            )
            raise StorageUnavailableError(cause=e) from e
