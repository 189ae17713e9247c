"""
Tests for single-use verification and reset tokens.
"""

from datetime import timedelta

import pytest

from contest_auth.application.config import VerificationConfig
from contest_auth.domain.exceptions import (
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenNotFoundError,
)
from contest_auth.domain.value_objects import TokenPurpose
from contest_auth.infrastructure.auth.models import User, VerificationToken, utcnow
from contest_auth.infrastructure.auth.services.token_service import hash_token
from contest_auth.infrastructure.auth.services.verification import VerificationFlowManager


@pytest.fixture
def user(credential_store):
    return credential_store.create_user("a@b.com", "hash")


def _record(db_session, token):
    return (
        db_session.query(VerificationToken)
        .filter(VerificationToken.token_hash == hash_token(token))
        .one()
    )


class TestIssue:
    def test_raw_token_not_stored(self, verification_manager, user, db_session):
        token = verification_manager.issue(user.id, TokenPurpose.EMAIL_VERIFY)

        record = _record(db_session, token)
        assert record.token_hash != token
        assert record.purpose == "email_verify"

    def test_lifetimes(self, db_session, user):
        manager = VerificationFlowManager(
            db_session, VerificationConfig(email_verification_hours=24, password_reset_minutes=60)
        )

        verify = _record(db_session, manager.issue(user.id, TokenPurpose.EMAIL_VERIFY))
        reset = _record(db_session, manager.issue(user.id, TokenPurpose.PASSWORD_RESET))

        assert verify.expires_at - verify.created_at == timedelta(hours=24)
        assert reset.expires_at - reset.created_at == timedelta(hours=1)

    def test_new_token_supersedes_previous(self, verification_manager, user):
        first = verification_manager.issue(user.id, TokenPurpose.PASSWORD_RESET)
        second = verification_manager.issue(user.id, TokenPurpose.PASSWORD_RESET)

        with pytest.raises(TokenNotFoundError):
            verification_manager.redeem(first, TokenPurpose.PASSWORD_RESET)
        assert verification_manager.redeem(second, TokenPurpose.PASSWORD_RESET) == user.id

    def test_one_authoritative_token_per_purpose(self, verification_manager, user, db_session):
        for _ in range(3):
            verification_manager.issue(user.id, TokenPurpose.EMAIL_VERIFY)
        verification_manager.issue(user.id, TokenPurpose.PASSWORD_RESET)

        outstanding = (
            db_session.query(VerificationToken)
            .filter(
                VerificationToken.user_id == user.id,
                VerificationToken.consumed_at.is_(None),
                VerificationToken.superseded_at.is_(None),
            )
            .all()
        )
        assert sorted(record.purpose for record in outstanding) == [
            "email_verify",
            "password_reset",
        ]


class TestRedeem:
    def test_email_verify_sets_flag(self, verification_manager, user, db_session):
        token = verification_manager.issue(user.id, TokenPurpose.EMAIL_VERIFY)

        assert verification_manager.redeem(token, TokenPurpose.EMAIL_VERIFY) == user.id

        db_session.expire_all()
        assert db_session.get(User, user.id).email_verified is True

    def test_password_reset_does_not_verify_email(self, verification_manager, user, db_session):
        token = verification_manager.issue(user.id, TokenPurpose.PASSWORD_RESET)

        verification_manager.redeem(token, TokenPurpose.PASSWORD_RESET)

        db_session.expire_all()
        assert db_session.get(User, user.id).email_verified is False

    def test_second_redeem_fails(self, verification_manager, user):
        token = verification_manager.issue(user.id, TokenPurpose.EMAIL_VERIFY)
        verification_manager.redeem(token, TokenPurpose.EMAIL_VERIFY)

        with pytest.raises(TokenAlreadyUsedError):
            verification_manager.redeem(token, TokenPurpose.EMAIL_VERIFY)

    def test_expired_token(self, verification_manager, user, db_session):
        token = verification_manager.issue(user.id, TokenPurpose.PASSWORD_RESET)
        record = _record(db_session, token)
        record.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        with pytest.raises(TokenExpiredError):
            verification_manager.redeem(token, TokenPurpose.PASSWORD_RESET)

    def test_unknown_token(self, verification_manager):
        with pytest.raises(TokenNotFoundError):
            verification_manager.redeem("nope", TokenPurpose.EMAIL_VERIFY)

    def test_wrong_purpose(self, verification_manager, user):
        token = verification_manager.issue(user.id, TokenPurpose.EMAIL_VERIFY)

        with pytest.raises(TokenNotFoundError):
            verification_manager.redeem(token, TokenPurpose.PASSWORD_RESET)

    def test_lost_consume_race_reports_already_used(self, verification_manager, user, db_session):
        token = verification_manager.issue(user.id, TokenPurpose.EMAIL_VERIFY)
        record = _record(db_session, token)

        # Another request consumes the row between our read and our update
        original_query = db_session.query

        def query_then_consume(*args, **kwargs):
            result = original_query(*args, **kwargs)
            db_session.connection().exec_driver_sql(
                "UPDATE verification_tokens SET consumed_at = CURRENT_TIMESTAMP WHERE id = ?",
                (record.id,),
            )
            return result

        db_session.query = query_then_consume
        try:
            with pytest.raises(TokenAlreadyUsedError):
                verification_manager.redeem(token, TokenPurpose.EMAIL_VERIFY)
        finally:
            del db_session.query


class TestPurge:
    def test_purge_expired(self, verification_manager, user, db_session):
        stale = verification_manager.issue(user.id, TokenPurpose.PASSWORD_RESET)
        record = _record(db_session, stale)
        record.expires_at = utcnow() - timedelta(days=2)
        db_session.commit()
        fresh = verification_manager.issue(user.id, TokenPurpose.EMAIL_VERIFY)

        assert verification_manager.purge_expired() == 1
        assert verification_manager.redeem(fresh, TokenPurpose.EMAIL_VERIFY) == user.id
