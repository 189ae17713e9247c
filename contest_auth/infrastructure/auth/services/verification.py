"""
Verification and reset flow manager.

Single-use tokens for email verification and password reset. A token moves
from issued to exactly one of consumed, expired or superseded; issuing a new
token of the same purpose supersedes the previous one. Redemption is a
conditional UPDATE, so two concurrent redemptions of the same token cannot
both succeed.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from contest_auth.application.config import VerificationConfig
from contest_auth.domain.exceptions import (
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from contest_auth.domain.value_objects import TokenPurpose
from contest_auth.infrastructure.database import storage_operation

from ..models import User, VerificationToken, utcnow
from .token_service import generate_token, hash_token

logger = logging.getLogger(__name__)


class VerificationFlowManager:
    """Issues and redeems single-use verification and reset tokens."""

    def __init__(self, db_session: Session, config: VerificationConfig | None = None):
        self.db = db_session
        self.config = config or VerificationConfig()

    def lifetime(self, purpose: TokenPurpose) -> timedelta:
        if purpose is TokenPurpose.EMAIL_VERIFY:
            return timedelta(hours=self.config.email_verification_hours)
        return timedelta(minutes=self.config.password_reset_minutes)

    @storage_operation
    def issue(self, user_id: str, purpose: TokenPurpose) -> str:
        """
        Issue a fresh token, superseding any outstanding one of the same purpose.

        Returns:
            The raw token. Only its hash is stored.
        """
        now = utcnow()
        self.db.execute(
            update(VerificationToken)
            .where(
                VerificationToken.user_id == user_id,
                VerificationToken.purpose == purpose.value,
                VerificationToken.consumed_at.is_(None),
                VerificationToken.superseded_at.is_(None),
            )
            .values(superseded_at=now)
        )

        raw_token = generate_token()
        self.db.add(
            VerificationToken(
                user_id=user_id,
                purpose=purpose.value,
                token_hash=hash_token(raw_token),
                expires_at=now + self.lifetime(purpose),
                created_at=now,
            )
        )
        self.db.commit()

        logger.info(
            f"Issued {purpose.value} token for user {user_id}",
            extra={"user_id": user_id, "purpose": purpose.value},
        )
        return raw_token

    @storage_operation
    def redeem(self, token: str, purpose: TokenPurpose) -> str:
        """
        Consume a token.

        For email verification the user's ``email_verified`` flag is set in the
        same transaction as the consume.

        Returns:
            The id of the user the token was issued to

        Raises:
            TokenNotFoundError: Unknown, wrong purpose or superseded
            TokenExpiredError: Past its deadline
            TokenAlreadyUsedError: Already redeemed
        """
        now = utcnow()
        record = (
            self.db.query(VerificationToken)
            .filter(
                VerificationToken.token_hash == hash_token(token),
                VerificationToken.purpose == purpose.value,
            )
            .first()
        )

        if record is None or record.is_superseded():
            raise TokenNotFoundError()
        if record.is_consumed():
            raise TokenAlreadyUsedError()
        if record.is_expired(now):
            raise TokenExpiredError()

        user_id = str(record.user_id)
        result = self.db.execute(
            update(VerificationToken)
            .where(
                VerificationToken.id == record.id,
                VerificationToken.consumed_at.is_(None),
                VerificationToken.superseded_at.is_(None),
            )
            .values(consumed_at=now)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise TokenAlreadyUsedError()

        if purpose is TokenPurpose.EMAIL_VERIFY:
            self.db.execute(
                update(User).where(User.id == user_id).values(email_verified=True, updated_at=now)
            )

        self.db.commit()

        logger.info(
            f"Redeemed {purpose.value} token for user {user_id}",
            extra={"user_id": user_id, "purpose": purpose.value},
        )
        return user_id

    @storage_operation
    def purge_expired(self, before: datetime | None = None) -> int:
        """Delete tokens whose deadline passed before ``before``."""
        result = self.db.execute(
            delete(VerificationToken).where(VerificationToken.expires_at < (before or utcnow()))
        )
        self.db.commit()
        logger.info(f"Purged {result.rowcount} expired verification tokens")
        return int(result.rowcount)
