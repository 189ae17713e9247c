"""
Token service.

Issues access tokens and manages refresh-token sessions. Refresh tokens are
opaque random strings; only their SHA-256 digest is stored. Every refresh
rotates the token: the presented row is retired and a successor is inserted
in the same chain. Presenting a retired token again means it was copied, so
the whole chain and every other session of the user is revoked.
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from contest_auth.application.config import TokenConfig
from contest_auth.domain.exceptions import (
    InvalidRefreshTokenError,
    RefreshTokenExpiredError,
    TokenReuseDetectedError,
)
from contest_auth.domain.value_objects import (
    AuthenticatedIdentity,
    SessionRevocationReason,
    TokenPair,
)
from contest_auth.infrastructure.database import storage_operation

from ..jwt_service import JWTService
from ..models import User, UserSession, new_id, utcnow

logger = logging.getLogger(__name__)


def generate_token() -> str:
    """256-bit URL-safe random token."""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """SHA-256 hex digest used to store and look up opaque tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenService:
    """Access token issuance and refresh session lifecycle."""

    def __init__(
        self,
        db_session: Session,
        jwt_service: JWTService,
        config: TokenConfig | None = None,
    ):
        self.db = db_session
        self.jwt_service = jwt_service
        self.config = config or jwt_service.config
        self.refresh_token_expire = timedelta(days=self.config.refresh_token_expire_days)

    def issue_access_token(self, user_id: str) -> str:
        """Sign a short-lived access token for ``user_id``."""
        return self.jwt_service.create_access_token(user_id)

    def verify_access_token(self, token: str) -> AuthenticatedIdentity:
        """
        Verify an access token.

        Raises:
            InvalidAccessTokenError: If the token is malformed, forged or expired
        """
        return self.jwt_service.identity_from_token(token)

    @storage_operation
    def issue_session(
        self,
        user_id: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TokenPair:
        """Start a new rotation chain and return its first token pair."""
        refresh_token = generate_token()
        session = self._new_session(
            user_id=user_id,
            refresh_token=refresh_token,
            chain_id=new_id(),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.db.add(session)
        self.db.commit()

        logger.info(
            f"Session issued for user {user_id}",
            extra={"user_id": user_id, "chain_id": session.chain_id},
        )
        return self._pair(session, refresh_token)

    @storage_operation
    def rotate(
        self,
        refresh_token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        Raises:
            TokenReuseDetectedError: The token was already rotated; the chain is revoked
            RefreshTokenExpiredError: The token is past its expiry
            InvalidRefreshTokenError: The token is unknown, revoked or its user is disabled
        """
        now = utcnow()
        session = (
            self.db.query(UserSession)
            .filter(UserSession.token_hash == hash_token(refresh_token))
            .first()
        )
        if session is None:
            raise InvalidRefreshTokenError()

        if session.revoked_at is not None:
            if session.revoked_reason == SessionRevocationReason.ROTATED.value:
                self._handle_reuse(str(session.user_id), str(session.chain_id))
            raise InvalidRefreshTokenError()

        if session.is_expired(now):
            raise RefreshTokenExpiredError()

        user_id = str(session.user_id)
        chain_id = str(session.chain_id)
        user = self.db.get(User, session.user_id)
        if user is None or not user.is_active:
            self._revoke_where(
                UserSession.id == session.id, SessionRevocationReason.ACCOUNT_DISABLED
            )
            self.db.commit()
            raise InvalidRefreshTokenError()

        new_refresh_token = generate_token()
        successor = self._new_session(
            user_id=session.user_id,
            refresh_token=new_refresh_token,
            chain_id=session.chain_id,
            ip_address=ip_address or session.ip_address,
            user_agent=user_agent or session.user_agent,
        )

        # Exactly one concurrent caller can retire the row
        result = self.db.execute(
            update(UserSession)
            .where(UserSession.id == session.id, UserSession.revoked_at.is_(None))
            .values(
                revoked_at=now,
                revoked_reason=SessionRevocationReason.ROTATED.value,
                replaced_by_id=successor.id,
            )
        )
        if result.rowcount != 1:
            self.db.rollback()
            self._handle_reuse(user_id, chain_id)

        self.db.add(successor)
        self.db.commit()

        logger.info(
            f"Refresh token rotated for user {user_id}",
            extra={"user_id": user_id, "chain_id": chain_id},
        )
        return self._pair(successor, new_refresh_token)

    @storage_operation
    def revoke(self, refresh_token: str) -> bool:
        """
        Revoke the session of a refresh token (logout).

        Returns:
            True if a live session was revoked; False if it was unknown or already revoked
        """
        result = self._revoke_where(
            UserSession.token_hash == hash_token(refresh_token),
            SessionRevocationReason.LOGOUT,
        )
        self.db.commit()
        return result > 0

    @storage_operation
    def revoke_chain(self, chain_id: str, reason: SessionRevocationReason) -> int:
        """Revoke every live session of a rotation chain."""
        count = self._revoke_where(UserSession.chain_id == chain_id, reason)
        self.db.commit()
        return count

    @storage_operation
    def revoke_all_for_user(self, user_id: str, reason: SessionRevocationReason) -> int:
        """Revoke every live session of a user (password reset, disable, reuse)."""
        count = self._revoke_where(UserSession.user_id == user_id, reason)
        self.db.commit()
        if count:
            logger.info(
                f"Revoked {count} sessions for user {user_id} ({reason.value})",
                extra={"user_id": user_id, "reason": reason.value},
            )
        return count

    @storage_operation
    def purge_expired(self, before: datetime | None = None) -> int:
        """
        Delete sessions that expired before ``before``.

        Rotated rows are kept until they expire so a replayed token is still
        recognised as reuse rather than as an unknown token.
        """
        cutoff = before or utcnow()
        result = self.db.execute(
            delete(UserSession).where(UserSession.expires_at < cutoff)
        )
        self.db.commit()
        logger.info(f"Purged {result.rowcount} expired sessions")
        return int(result.rowcount)

    def _handle_reuse(self, user_id: str, chain_id: str) -> None:
        logger.warning(
            f"Refresh token reuse detected for user {user_id}; revoking all sessions",
            extra={"user_id": user_id, "chain_id": chain_id},
        )
        self._revoke_where(UserSession.chain_id == chain_id, SessionRevocationReason.REUSE_DETECTED)
        self._revoke_where(UserSession.user_id == user_id, SessionRevocationReason.REUSE_DETECTED)
        self.db.commit()
        raise TokenReuseDetectedError(chain_id=chain_id, user_id=user_id)

    def _revoke_where(self, criterion, reason: SessionRevocationReason) -> int:  # type: ignore[no-untyped-def]
        result = self.db.execute(
            update(UserSession)
            .where(criterion, UserSession.revoked_at.is_(None))
            .values(revoked_at=utcnow(), revoked_reason=reason.value)
        )
        return int(result.rowcount)

    def _new_session(
        self,
        user_id: str,
        refresh_token: str,
        chain_id: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> UserSession:
        now = utcnow()
        return UserSession(
            id=new_id(),
            user_id=user_id,
            token_hash=hash_token(refresh_token),
            chain_id=chain_id,
            ip_address=ip_address,
            user_agent=user_agent,
            issued_at=now,
            expires_at=now + self.refresh_token_expire,
        )

    def _pair(self, session: UserSession, refresh_token: str) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(str(session.user_id)),
            refresh_token=refresh_token,
            expires_in=self.jwt_service.access_token_ttl_seconds,
            session_id=str(session.id),
            chain_id=str(session.chain_id),
        )
