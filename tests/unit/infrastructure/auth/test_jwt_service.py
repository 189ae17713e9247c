"""
Tests for access token signing and verification.
"""

from datetime import timedelta

import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from contest_auth.application.config import TokenConfig
from contest_auth.domain.exceptions import InvalidAccessTokenError
from contest_auth.infrastructure.auth.jwt_service import JWTService
from contest_auth.infrastructure.auth.models import utcnow


class TestJWTService:
    """Test JWT service functionality."""

    @pytest.fixture
    def config(self):
        return TokenConfig(secret="unit-test-secret", issuer="test-issuer")

    @pytest.fixture
    def jwt_service(self, config):
        return JWTService(config)

    def test_service_initialization(self, config):
        service = JWTService(config)

        assert service.issuer == "test-issuer"
        assert service.algorithm == "HS256"
        assert service.access_token_expire == timedelta(minutes=15)
        assert service.access_token_ttl_seconds == 900

    def test_access_token_claims(self, jwt_service):
        token = jwt_service.create_access_token("user-1")
        payload = jwt_service.verify_access_token(token)

        assert payload["sub"] == "user-1"
        assert payload["iss"] == "test-issuer"
        assert payload["aud"] == "test-issuer"
        assert payload["type"] == "access"
        assert payload["exp"] - payload["iat"] == 900
        assert payload["nbf"] == payload["iat"]
        assert payload["jti"]

    def test_each_token_has_unique_jti(self, jwt_service):
        first = jwt_service.verify_access_token(jwt_service.create_access_token("user-1"))
        second = jwt_service.verify_access_token(jwt_service.create_access_token("user-1"))

        assert first["jti"] != second["jti"]

    def test_identity_from_token(self, jwt_service):
        identity = jwt_service.identity_from_token(jwt_service.create_access_token("user-1"))

        assert identity.user_id == "user-1"
        assert identity.token_id
        assert identity.expires_at > 0

    def test_expired_token_rejected(self, jwt_service, config):
        now = utcnow()
        token = jwt.encode(
            {
                "iss": config.issuer,
                "aud": config.issuer,
                "sub": "user-1",
                "iat": now - timedelta(minutes=30),
                "exp": now - timedelta(minutes=15),
                "jti": "old",
                "type": "access",
            },
            config.secret,
            algorithm="HS256",
        )

        with pytest.raises(InvalidAccessTokenError):
            jwt_service.verify_access_token(token)

    def test_forged_signature_rejected(self, jwt_service):
        forged = JWTService(TokenConfig(secret="other-secret", issuer="test-issuer"))
        token = forged.create_access_token("user-1")

        with pytest.raises(InvalidAccessTokenError):
            jwt_service.verify_access_token(token)

    def test_wrong_issuer_rejected(self, jwt_service):
        other = JWTService(TokenConfig(secret="unit-test-secret", issuer="someone-else"))

        with pytest.raises(InvalidAccessTokenError):
            jwt_service.verify_access_token(other.create_access_token("user-1"))

    def test_non_access_token_rejected(self, jwt_service, config):
        now = utcnow()
        token = jwt.encode(
            {
                "iss": config.issuer,
                "aud": config.issuer,
                "sub": "user-1",
                "iat": now,
                "exp": now + timedelta(minutes=5),
                "jti": "x",
                "type": "refresh",
            },
            config.secret,
            algorithm="HS256",
        )

        with pytest.raises(InvalidAccessTokenError):
            jwt_service.verify_access_token(token)

    def test_garbage_rejected(self, jwt_service):
        with pytest.raises(InvalidAccessTokenError):
            jwt_service.verify_access_token("not.a.jwt")

    def test_load_keys_from_files(self, tmp_path):
        private_key = rsa.generate_private_key(
            public_exponent=65537, key_size=2048, backend=default_backend()
        )
        private_path = tmp_path / "private.pem"
        public_path = tmp_path / "public.pem"
        private_path.write_bytes(
            private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )
        public_path.write_bytes(
            private_key.public_key().public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        )

        service = JWTService(
            TokenConfig(
                algorithm="RS256",
                private_key_path=str(private_path),
                public_key_path=str(public_path),
            )
        )
        token = service.create_access_token("user-1")

        assert jwt.get_unverified_header(token)["alg"] == "RS256"
        assert service.identity_from_token(token).user_id == "user-1"

    def test_rsa_without_key_files_fails(self, tmp_path):
        with pytest.raises(ValueError, match="private key"):
            JWTService(TokenConfig(algorithm="RS256", private_key_path=str(tmp_path / "missing")))
