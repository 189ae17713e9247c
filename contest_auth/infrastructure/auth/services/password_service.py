"""
Password management service.

Handles password hashing, verification and strength checking. bcrypt is
CPU-bound, so the async entry points run it on a bounded thread pool to keep
slow hashes from blocking the event loop that accepts requests.
"""

import asyncio
import logging
import re
from concurrent.futures import ThreadPoolExecutor

import bcrypt

from contest_auth.application.config import SecurityConfig
from contest_auth.domain.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

# bcrypt only reads this many bytes of input; newer releases reject anything longer
BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """Bcrypt password hashing utility."""

    def __init__(self, rounds: int = 12) -> None:
        """Initialize with bcrypt rounds (cost factor)."""
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """Hash a password using bcrypt with a fresh random salt."""
        salt = bcrypt.gensalt(rounds=self.rounds)
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash (constant-time comparison)."""
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError as e:
            logger.error(f"Password verification failed: {e}")
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        """Check if password needs rehashing with updated rounds."""
        hash_parts = password_hash.split("$")
        if len(hash_parts) >= 3 and hash_parts[2].isdigit():
            return int(hash_parts[2]) < self.rounds
        return False


class PasswordValidator:
    """Password strength validator."""

    SPECIAL_CHARACTERS = r"[@$!%*?&#^()_+\-=\[\]{}|;:,.<>~]"

    def __init__(
        self,
        min_length: int = 8,
        max_length: int = 128,
        require_complexity: bool = True,
    ) -> None:
        self.min_length = min_length
        self.max_length = max_length
        self.require_complexity = require_complexity

    def validate(self, password: str) -> list[str]:
        """
        Validate password strength.

        Returns:
            List of problems; empty when the password is acceptable
        """
        errors = []

        if len(password) < self.min_length or len(password) > self.max_length:
            errors.append(
                f"Password must be between {self.min_length} and {self.max_length} characters"
            )

        if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
            errors.append(f"Password must be at most {BCRYPT_MAX_BYTES} bytes long")

        if self.require_complexity and not (
            re.search(r"[a-z]", password)
            and re.search(r"[A-Z]", password)
            and re.search(r"\d", password)
            and re.search(self.SPECIAL_CHARACTERS, password)
        ):
            errors.append(
                "Password must contain uppercase, lowercase, number and special character"
            )

        return errors


class PasswordService:
    """Password management service."""

    def __init__(self, config: SecurityConfig | None = None) -> None:
        self.config = config or SecurityConfig()
        self.hasher = PasswordHasher(rounds=self.config.bcrypt_rounds)
        self.validator = PasswordValidator(
            min_length=self.config.min_password_length,
            max_length=self.config.max_password_length,
            require_complexity=self.config.require_password_complexity,
        )
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.hash_workers, thread_name_prefix="password-hash"
        )
        # Real hash with the configured cost so unknown-account logins take as long as real ones
        self._dummy_hash = self.hasher.hash("dummy-password-for-timing")

    def hash_password(self, password: str) -> str:
        """Hash a password."""
        return self.hasher.hash(password)

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against its hash."""
        return self.hasher.verify(password, password_hash)

    def validate_password(self, password: str) -> list[str]:
        """Validate password strength."""
        return self.validator.validate(password)

    async def hash_password_async(self, password: str) -> str:
        """Hash a password on the hashing pool."""
        return await self._run(self.hasher.hash, password)

    async def verify_password_async(self, password: str, password_hash: str | None) -> bool:
        """
        Verify a password on the hashing pool.

        A missing hash is checked against a dummy hash so the call costs the same
        whether or not the account exists, and always returns False.
        """
        if password_hash is None:
            await self._run(self.hasher.verify, password, self._dummy_hash)
            return False
        return bool(await self._run(self.hasher.verify, password, password_hash))

    async def _run(self, func, *args):  # type: ignore[no-untyped-def]
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._executor, func, *args),
                timeout=self.config.hash_timeout_seconds,
            )
        except TimeoutError as e:
            logger.error("Password hashing timed out; hashing pool saturated")
            raise StorageUnavailableError("Password hashing timed out") from e

    def shutdown(self) -> None:
        """Release the hashing pool."""
        self._executor.shutdown(wait=False)
