"""
Database models for authentication.

This module defines SQLAlchemy models for users, single-use verification
tokens, refresh-token sessions and the security audit trail.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import INET
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import String as SQLString
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in every DateTime column."""
    return datetime.now(UTC).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid4())


class IPAddress(TypeDecorator[str]):
    """Database-agnostic IP address field."""

    impl = SQLString
    cache_ok = True

    def load_dialect_impl(self, dialect: Any) -> Any:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(INET())
        else:
            return dialect.type_descriptor(SQLString(45))  # IPv6 max length


Base = declarative_base()


class User(Base):  # type: ignore[valid-type, misc]
    """User identity record. Email is stored lower-cased so uniqueness is case-insensitive."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    # Profile information
    first_name = Column(String(100))
    last_name = Column(String(100))

    email_verified = Column(Boolean, nullable=False, default=False)

    # Soft-disable; users are never hard-deleted
    is_active = Column(Boolean, nullable=False, default=True)
    disabled_at = Column(DateTime)

    last_login_at = Column(DateTime)
    last_login_ip = Column(IPAddress)
    password_changed_at = Column(DateTime)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    sessions = relationship("UserSession", back_populates="user")
    verification_tokens = relationship("VerificationToken", back_populates="user")
    audit_logs = relationship("AuthAuditLog", back_populates="user")

    def to_public_dict(self) -> dict[str, Any]:
        """Client-safe representation (no password hash)."""
        return {
            "id": self.id,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "emailVerified": bool(self.email_verified),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class VerificationToken(Base):  # type: ignore[valid-type, misc]
    """Single-use email verification or password reset token."""

    __tablename__ = "verification_tokens"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    purpose = Column(String(32), nullable=False)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)

    expires_at = Column(DateTime, nullable=False)
    consumed_at = Column(DateTime)
    superseded_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    user = relationship("User", back_populates="verification_tokens")

    __table_args__ = (Index("idx_verification_user_purpose", "user_id", "purpose"),)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if the token is past its deadline."""
        return bool((now or utcnow()) >= self.expires_at)

    def is_consumed(self) -> bool:
        return self.consumed_at is not None

    def is_superseded(self) -> bool:
        return self.superseded_at is not None


class UserSession(Base):  # type: ignore[valid-type, misc]
    """
    One refresh token of a logged-in device.

    Each rotation retires the row and inserts its successor with the same
    ``chain_id``; at most one row per chain is unrevoked.
    """

    __tablename__ = "user_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    chain_id = Column(String(36), nullable=False, index=True)
    replaced_by_id = Column(String(36))

    # Device info
    user_agent = Column(Text)
    ip_address = Column(IPAddress)

    issued_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)

    # Status
    revoked_at = Column(DateTime)
    revoked_reason = Column(String(32))

    # Relationships
    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index("idx_session_user", "user_id", "revoked_at"),
        Index("idx_session_chain", "chain_id", "revoked_at"),
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if session is expired."""
        return bool((now or utcnow()) >= self.expires_at)

    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_valid(self) -> bool:
        """Check if session is valid."""
        return not self.is_revoked() and not self.is_expired()


class AuthAuditLog(Base):  # type: ignore[valid-type, misc]
    """Audit log for security events."""

    __tablename__ = "auth_audit_log"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    event_type = Column(String(50), nullable=False, index=True)
    event_data = Column(JSON)
    ip_address = Column(IPAddress)
    user_agent = Column(Text)
    success = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    # Relationships
    user = relationship("User", back_populates="audit_logs")
