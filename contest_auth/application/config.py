"""
Application Configuration - Central configuration management.

This module provides configuration for the authentication service:
token lifetimes, password hashing cost, storage timeouts, throttle limits
and cookie attributes. Values come from environment variables (optionally
loaded from a ``.env`` file) with development-friendly defaults.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from dotenv import load_dotenv

DEFAULT_JWT_SECRET = "change-this-secret"


class Environment(Enum):
    """Application environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class TokenConfig:
    """Access/refresh token configuration."""

    secret: str = DEFAULT_JWT_SECRET
    algorithm: str = "HS256"
    issuer: str = "contest-draw-api"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    private_key_path: str | None = None
    public_key_path: str | None = None

    @classmethod
    def from_env(cls) -> "TokenConfig":
        """Create configuration from environment variables."""
        return cls(
            secret=os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET),
            algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            issuer=os.getenv("JWT_ISSUER", "contest-draw-api"),
            access_token_expire_minutes=int(os.getenv("JWT_ACCESS_EXPIRE_MINUTES", "15")),
            refresh_token_expire_days=int(os.getenv("JWT_REFRESH_EXPIRE_DAYS", "7")),
            private_key_path=os.getenv("JWT_PRIVATE_KEY_PATH") or None,
            public_key_path=os.getenv("JWT_PUBLIC_KEY_PATH") or None,
        )


@dataclass
class SecurityConfig:
    """Password hashing and credential policy."""

    bcrypt_rounds: int = 12
    hash_workers: int = 4
    hash_timeout_seconds: float = 10.0
    min_password_length: int = 8
    max_password_length: int = 128
    require_password_complexity: bool = True
    revoke_sessions_on_password_reset: bool = True

    @classmethod
    def from_env(cls) -> "SecurityConfig":
        """Create configuration from environment variables."""
        return cls(
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "12")),
            hash_workers=int(os.getenv("PASSWORD_HASH_WORKERS", "4")),
            hash_timeout_seconds=float(os.getenv("PASSWORD_HASH_TIMEOUT", "10")),
            min_password_length=int(os.getenv("PASSWORD_MIN_LENGTH", "8")),
            max_password_length=int(os.getenv("PASSWORD_MAX_LENGTH", "128")),
            require_password_complexity=_env_bool("PASSWORD_REQUIRE_COMPLEXITY", "true"),
            revoke_sessions_on_password_reset=_env_bool("REVOKE_SESSIONS_ON_RESET", "true"),
        )


@dataclass
class VerificationConfig:
    """Lifetimes of single-use tokens."""

    email_verification_hours: int = 24
    password_reset_minutes: int = 60

    @classmethod
    def from_env(cls) -> "VerificationConfig":
        """Create configuration from environment variables."""
        return cls(
            email_verification_hours=int(os.getenv("EMAIL_VERIFICATION_EXPIRE_HOURS", "24")),
            password_reset_minutes=int(os.getenv("PASSWORD_RESET_EXPIRE_MINUTES", "60")),
        )


@dataclass
class DatabaseConfig:
    """Credential/session store configuration."""

    url: str = "sqlite:///./auth.db"
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout_seconds: float = 5.0
    statement_timeout_ms: int = 5000
    echo: bool = False

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Create configuration from environment variables."""
        return cls(
            url=os.getenv("DATABASE_URL", "sqlite:///./auth.db"),
            pool_size=int(os.getenv("DB_POOL_SIZE", "10")),
            max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "20")),
            pool_timeout_seconds=float(os.getenv("DB_POOL_TIMEOUT", "5")),
            statement_timeout_ms=int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000")),
            echo=_env_bool("DB_ECHO", "false"),
        )


@dataclass
class RateLimitConfig:
    """Abuse guard limits and storage backend."""

    storage_backend: str = "memory"  # memory, redis
    redis_url: str | None = None
    redis_key_prefix: str = "auth_guard:"

    # Failed login/reset attempts per account and per IP
    auth_attempt_limit: int = 5
    auth_attempt_window_seconds: int = 15 * 60

    # Outgoing email requests (forgot password, resend verification)
    email_request_limit: int = 10
    email_request_window_seconds: int = 60 * 60

    # In-memory backend sweeps keys that expired without being read again
    cleanup_interval_seconds: int = 3600

    enabled: bool = True

    def __post_init__(self) -> None:
        if self.redis_url is None:
            self.redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    @classmethod
    def from_env(cls) -> "RateLimitConfig":
        """Create configuration from environment variables."""
        return cls(
            storage_backend=os.getenv("RATE_LIMIT_STORAGE_BACKEND", "memory"),
            redis_url=os.getenv("RATE_LIMIT_REDIS_URL") or os.getenv("REDIS_URL"),
            auth_attempt_limit=int(os.getenv("AUTH_ATTEMPT_LIMIT", "5")),
            auth_attempt_window_seconds=int(os.getenv("AUTH_ATTEMPT_WINDOW_SECONDS", "900")),
            email_request_limit=int(os.getenv("EMAIL_REQUEST_LIMIT", "10")),
            email_request_window_seconds=int(os.getenv("EMAIL_REQUEST_WINDOW_SECONDS", "3600")),
            cleanup_interval_seconds=int(os.getenv("RATE_LIMIT_CLEANUP_INTERVAL", "3600")),
            enabled=_env_bool("RATE_LIMIT_ENABLED", "true"),
        )


@dataclass
class CookieConfig:
    """Attributes of the ``accessToken`` and ``refreshToken`` cookies."""

    enabled: bool = True
    secure: bool = False
    samesite: str = "lax"
    domain: str | None = None
    access_path: str = "/api"
    refresh_path: str = "/api/auth"

    @classmethod
    def from_env(cls, environment: Environment = Environment.DEVELOPMENT) -> "CookieConfig":
        """Create configuration from environment variables."""
        secure_default = "true" if environment == Environment.PRODUCTION else "false"
        return cls(
            enabled=_env_bool("AUTH_COOKIES_ENABLED", "true"),
            secure=_env_bool("AUTH_COOKIE_SECURE", secure_default),
            samesite=os.getenv("AUTH_COOKIE_SAMESITE", "lax"),
            domain=os.getenv("AUTH_COOKIE_DOMAIN") or None,
            access_path=os.getenv("AUTH_COOKIE_ACCESS_PATH", "/api"),
            refresh_path=os.getenv("AUTH_COOKIE_REFRESH_PATH", "/api/auth"),
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    json: bool = True

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Create configuration from environment variables."""
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO"),
            json=_env_bool("LOG_JSON", "true"),
        )


@dataclass
class AuthConfig:
    """Main authentication service configuration."""

    environment: Environment = Environment.DEVELOPMENT
    tokens: TokenConfig = field(default_factory=TokenConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    cookies: CookieConfig = field(default_factory=CookieConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    frontend_url: str = "http://localhost:5173"
    # Purge of expired sessions, single-use tokens and counters; 0 disables
    housekeeping_interval_seconds: int = 3600

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """Create configuration from environment variables and ``.env``."""
        load_dotenv()
        environment = Environment(os.getenv("ENVIRONMENT", "development"))
        config = cls(
            environment=environment,
            tokens=TokenConfig.from_env(),
            security=SecurityConfig.from_env(),
            verification=VerificationConfig.from_env(),
            database=DatabaseConfig.from_env(),
            rate_limit=RateLimitConfig.from_env(),
            cookies=CookieConfig.from_env(environment),
            logging=LoggingConfig.from_env(),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:5173"),
            housekeeping_interval_seconds=int(os.getenv("HOUSEKEEPING_INTERVAL_SECONDS", "3600")),
        )
        config.validate()
        return config

    def validate(self) -> bool:
        """
        Validate the configuration.

        Returns:
            True if valid, raises exception otherwise
        """
        if self.environment == Environment.PRODUCTION:
            if self.tokens.secret == DEFAULT_JWT_SECRET:
                raise ValueError("JWT_SECRET must be set in production")
            if not self.cookies.secure:
                raise ValueError("Auth cookies must be secure in production")
            if self.database.echo:
                raise ValueError("Database echo should be disabled in production")

        if self.security.min_password_length < 8:
            raise ValueError("Minimum password length cannot be below 8")
        if not 4 <= self.security.bcrypt_rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        if self.tokens.access_token_expire_minutes <= 0:
            raise ValueError("Access token lifetime must be positive")
        if self.housekeeping_interval_seconds < 0:
            raise ValueError("Housekeeping interval cannot be negative")

        return True

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary, without secrets."""
        return {
            "environment": self.environment.value,
            "tokens": {
                "algorithm": self.tokens.algorithm,
                "issuer": self.tokens.issuer,
                "access_token_expire_minutes": self.tokens.access_token_expire_minutes,
                "refresh_token_expire_days": self.tokens.refresh_token_expire_days,
            },
            "security": {
                "bcrypt_rounds": self.security.bcrypt_rounds,
                "hash_workers": self.security.hash_workers,
                "min_password_length": self.security.min_password_length,
            },
            "database": {
                "pool_size": self.database.pool_size,
                "pool_timeout_seconds": self.database.pool_timeout_seconds,
                "statement_timeout_ms": self.database.statement_timeout_ms,
            },
            "rate_limit": {
                "storage_backend": self.rate_limit.storage_backend,
                "auth_attempt_limit": self.rate_limit.auth_attempt_limit,
                "email_request_limit": self.rate_limit.email_request_limit,
                "enabled": self.rate_limit.enabled,
            },
        }


# Global configuration singleton
_config: AuthConfig | None = None


def get_config() -> AuthConfig:
    """
    Get the configuration singleton.

    Returns:
        AuthConfig: The service configuration
    """
    global _config
    if _config is None:
        _config = AuthConfig.from_env()
    return _config


def set_config(config: AuthConfig) -> None:
    """Set the configuration singleton."""
    global _config
    _config = config


def reset_config() -> None:
    """Reset the configuration singleton."""
    global _config
    _config = None
