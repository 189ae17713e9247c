"""
Tests for refresh session issuance, rotation and revocation.
"""

from datetime import timedelta

import pytest

from contest_auth.domain.exceptions import (
    InvalidAccessTokenError,
    InvalidRefreshTokenError,
    RefreshTokenExpiredError,
    TokenReuseDetectedError,
)
from contest_auth.domain.value_objects import SessionRevocationReason
from contest_auth.infrastructure.auth.models import UserSession, utcnow
from contest_auth.infrastructure.auth.services.token_service import hash_token


@pytest.fixture
def user(credential_store):
    return credential_store.create_user("a@b.com", "hash")


def _session_for(db_session, refresh_token):
    return (
        db_session.query(UserSession)
        .filter(UserSession.token_hash == hash_token(refresh_token))
        .one()
    )


class TestIssueSession:
    def test_issue_session_returns_pair(self, token_service, user):
        pair = token_service.issue_session(user.id, "10.0.0.1", "pytest")

        assert pair.access_token
        assert pair.refresh_token
        assert pair.expires_in == 900
        assert token_service.verify_access_token(pair.access_token).user_id == user.id

    def test_refresh_token_stored_only_as_hash(self, token_service, user, db_session):
        pair = token_service.issue_session(user.id)

        stored = db_session.query(UserSession).one()
        assert stored.token_hash == hash_token(pair.refresh_token)
        assert stored.token_hash != pair.refresh_token
        assert stored.chain_id == pair.chain_id
        assert stored.expires_at - stored.issued_at == timedelta(days=7)

    def test_each_login_starts_new_chain(self, token_service, user):
        first = token_service.issue_session(user.id)
        second = token_service.issue_session(user.id)

        assert first.chain_id != second.chain_id
        assert first.refresh_token != second.refresh_token

    def test_verify_access_token_rejects_garbage(self, token_service):
        with pytest.raises(InvalidAccessTokenError):
            token_service.verify_access_token("garbage")


class TestRotate:
    def test_rotate_issues_successor_in_same_chain(self, token_service, user, db_session):
        original = token_service.issue_session(user.id)

        rotated = token_service.rotate(original.refresh_token)

        assert rotated.refresh_token != original.refresh_token
        assert rotated.chain_id == original.chain_id

        retired = _session_for(db_session, original.refresh_token)
        assert retired.revoked_reason == SessionRevocationReason.ROTATED.value
        assert retired.replaced_by_id == rotated.session_id

    def test_chain_has_one_live_token(self, token_service, user, db_session):
        pair = token_service.issue_session(user.id)
        for _ in range(3):
            pair = token_service.rotate(pair.refresh_token)

        live = (
            db_session.query(UserSession)
            .filter(UserSession.chain_id == pair.chain_id, UserSession.revoked_at.is_(None))
            .all()
        )
        assert [session.id for session in live] == [pair.session_id]

    def test_reuse_of_rotated_token_revokes_chain(self, token_service, user, db_session):
        t1 = token_service.issue_session(user.id)
        t2 = token_service.rotate(t1.refresh_token)

        with pytest.raises(TokenReuseDetectedError) as exc_info:
            token_service.rotate(t1.refresh_token)

        assert exc_info.value.user_id == user.id
        assert exc_info.value.chain_id == t1.chain_id

        db_session.expire_all()
        successor = _session_for(db_session, t2.refresh_token)
        assert successor.revoked_reason == SessionRevocationReason.REUSE_DETECTED.value

        with pytest.raises(InvalidRefreshTokenError):
            token_service.rotate(t2.refresh_token)

    def test_reuse_revokes_other_sessions_of_user(self, token_service, user):
        t1 = token_service.issue_session(user.id)
        other_device = token_service.issue_session(user.id)
        token_service.rotate(t1.refresh_token)

        with pytest.raises(TokenReuseDetectedError):
            token_service.rotate(t1.refresh_token)

        with pytest.raises(InvalidRefreshTokenError):
            token_service.rotate(other_device.refresh_token)

    def test_lost_rotation_race_is_treated_as_reuse(self, token_service, user, db_session):
        pair = token_service.issue_session(user.id)
        other_device = token_service.issue_session(user.id)
        row_id = _session_for(db_session, pair.refresh_token).id

        # A concurrent refresh retires the row between our read and our update
        original_get = db_session.get

        def get_then_rotate(*args, **kwargs):
            result = original_get(*args, **kwargs)
            db_session.connection().exec_driver_sql(
                "UPDATE user_sessions SET revoked_at = CURRENT_TIMESTAMP, "
                "revoked_reason = 'rotated' WHERE id = ?",
                (row_id,),
            )
            return result

        db_session.get = get_then_rotate
        try:
            with pytest.raises(TokenReuseDetectedError) as exc_info:
                token_service.rotate(pair.refresh_token)
        finally:
            del db_session.get

        assert exc_info.value.chain_id == pair.chain_id
        db_session.expire_all()
        chain = db_session.query(UserSession).filter(UserSession.chain_id == pair.chain_id).all()
        assert len(chain) == 1
        assert chain[0].revoked_reason == SessionRevocationReason.REUSE_DETECTED.value
        with pytest.raises(InvalidRefreshTokenError):
            token_service.rotate(other_device.refresh_token)

    def test_unknown_token_rejected(self, token_service):
        with pytest.raises(InvalidRefreshTokenError):
            token_service.rotate("unknown-token")

    def test_expired_token_rejected_as_invalid(self, token_service, user, db_session):
        pair = token_service.issue_session(user.id)
        session = _session_for(db_session, pair.refresh_token)
        session.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        with pytest.raises(RefreshTokenExpiredError) as exc_info:
            token_service.rotate(pair.refresh_token)

        assert isinstance(exc_info.value, InvalidRefreshTokenError)
        assert exc_info.value.code == "INVALID_REFRESH_TOKEN"

    def test_logged_out_token_is_invalid_not_reuse(self, token_service, user):
        pair = token_service.issue_session(user.id)
        token_service.revoke(pair.refresh_token)

        with pytest.raises(InvalidRefreshTokenError):
            token_service.rotate(pair.refresh_token)

    def test_disabled_user_cannot_refresh(self, token_service, credential_store, user):
        pair = token_service.issue_session(user.id)
        credential_store.disable_user(user.id)

        with pytest.raises(InvalidRefreshTokenError):
            token_service.rotate(pair.refresh_token)


class TestRevoke:
    def test_revoke_is_idempotent(self, token_service, user):
        pair = token_service.issue_session(user.id)

        assert token_service.revoke(pair.refresh_token) is True
        assert token_service.revoke(pair.refresh_token) is False
        assert token_service.revoke("never-issued") is False

    def test_revoke_chain(self, token_service, user):
        pair = token_service.issue_session(user.id)
        other = token_service.issue_session(user.id)

        assert token_service.revoke_chain(pair.chain_id, SessionRevocationReason.LOGOUT) == 1

        with pytest.raises(InvalidRefreshTokenError):
            token_service.rotate(pair.refresh_token)
        assert token_service.rotate(other.refresh_token)

    def test_revoke_all_for_user(self, token_service, user):
        pairs = [token_service.issue_session(user.id) for _ in range(3)]

        revoked = token_service.revoke_all_for_user(
            user.id, SessionRevocationReason.PASSWORD_RESET
        )

        assert revoked == 3
        for pair in pairs:
            with pytest.raises(InvalidRefreshTokenError):
                token_service.rotate(pair.refresh_token)

    def test_purge_expired(self, token_service, user, db_session):
        live = token_service.issue_session(user.id)
        stale = token_service.issue_session(user.id)
        session = _session_for(db_session, stale.refresh_token)
        session.expires_at = utcnow() - timedelta(days=1)
        db_session.commit()

        assert token_service.purge_expired() == 1
        assert db_session.query(UserSession).count() == 1
        assert token_service.rotate(live.refresh_token)
