"""
Credential store.

Owns the ``users`` table: account creation, lookups and the few mutations
the authentication flows need. Email uniqueness is enforced by the database
unique constraint, not by a read-then-insert check, so concurrent
registrations for the same address cannot both succeed.
"""

import logging
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from contest_auth.domain.exceptions import DuplicateAccountError
from contest_auth.domain.value_objects import normalize_email
from contest_auth.infrastructure.database import storage_operation

from ..models import AuthAuditLog, User, utcnow

logger = logging.getLogger(__name__)


class CredentialStore:
    """Persistence for user identities and password hashes."""

    def __init__(self, db_session: Session):
        self.db = db_session

    @storage_operation
    def create_user(
        self,
        email: str,
        password_hash: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> User:
        """
        Create a new user.

        Raises:
            DuplicateAccountError: If the email is already registered
        """
        user = User(
            email=normalize_email(email),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            email_verified=False,
            is_active=True,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info("Registration rejected: email already registered")
            raise DuplicateAccountError()

        logger.info(f"User registered: {user.id}")
        return user

    @storage_operation
    def find_by_email(self, email: str) -> User | None:
        """Find user by email, case-insensitively."""
        return self.db.query(User).filter(User.email == normalize_email(email)).first()

    @storage_operation
    def find_by_id(self, user_id: str) -> User | None:
        """Find user by id."""
        return self.db.query(User).filter(User.id == user_id).first()

    @storage_operation
    def set_email_verified(self, user_id: str, verified: bool = True) -> bool:
        """Set the verification flag; returns False if the user does not exist."""
        result = self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(email_verified=verified, updated_at=utcnow())
        )
        self.db.commit()
        return bool(result.rowcount)

    @storage_operation
    def update_password_hash(self, user_id: str, password_hash: str) -> bool:
        """Replace the stored hash; returns False if the user does not exist."""
        now = utcnow()
        result = self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(password_hash=password_hash, password_changed_at=now, updated_at=now)
        )
        self.db.commit()
        return bool(result.rowcount)

    @storage_operation
    def disable_user(self, user_id: str) -> bool:
        """Soft-disable an account. Disabled users cannot log in or refresh."""
        now = utcnow()
        result = self.db.execute(
            update(User)
            .where(User.id == user_id, User.is_active.is_(True))
            .values(is_active=False, disabled_at=now, updated_at=now)
        )
        self.db.commit()
        return bool(result.rowcount)

    @storage_operation
    def record_login(self, user_id: str, ip_address: str | None = None) -> None:
        """Stamp the last successful login."""
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(last_login_at=utcnow(), last_login_ip=ip_address)
        )
        self.db.commit()

    @storage_operation
    def log_audit_event(
        self,
        event_type: str,
        user_id: str | None = None,
        event_data: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        success: bool = True,
    ) -> None:
        """Log audit event."""
        audit_log = AuthAuditLog(
            user_id=user_id,
            event_type=event_type,
            event_data=event_data or {},
            ip_address=ip_address,
            user_agent=user_agent,
            success=success,
        )
        self.db.add(audit_log)
        self.db.commit()
