"""Global pytest configuration and fixtures."""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from contest_auth.app import create_app
from contest_auth.application.config import (
    AuthConfig,
    DatabaseConfig,
    Environment,
    LoggingConfig,
    RateLimitConfig,
    SecurityConfig,
)
from contest_auth.application.use_cases.auth import AuthOrchestrator
from contest_auth.infrastructure.auth.jwt_service import JWTService
from contest_auth.infrastructure.auth.models import Base
from contest_auth.infrastructure.auth.services.credential_store import CredentialStore
from contest_auth.infrastructure.auth.services.password_service import PasswordService
from contest_auth.infrastructure.auth.services.token_service import TokenService
from contest_auth.infrastructure.auth.services.verification import VerificationFlowManager
from contest_auth.infrastructure.database import create_db_engine, create_session_factory
from contest_auth.infrastructure.email import InMemoryEmailDispatcher
from contest_auth.infrastructure.rate_limiting.guard import AbuseGuard
from contest_auth.infrastructure.rate_limiting.storage import MemoryRateLimitStorage


@pytest.fixture
def test_config() -> AuthConfig:
    """Configuration with a cheap bcrypt cost and an in-memory database."""
    return AuthConfig(
        environment=Environment.TESTING,
        security=SecurityConfig(bcrypt_rounds=4, hash_workers=2),
        database=DatabaseConfig(url="sqlite:///:memory:"),
        rate_limit=RateLimitConfig(storage_backend="memory"),
        logging=LoggingConfig(level="DEBUG", json=False),
    )


@pytest.fixture
def engine(test_config: AuthConfig) -> Generator[Engine, None, None]:
    engine = create_db_engine(test_config.database)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine: Engine) -> Generator[Session, None, None]:
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def password_service(test_config: AuthConfig) -> Generator[PasswordService, None, None]:
    service = PasswordService(test_config.security)
    yield service
    service.shutdown()


@pytest.fixture
def jwt_service(test_config: AuthConfig) -> JWTService:
    return JWTService(test_config.tokens)


@pytest.fixture
def credential_store(db_session: Session) -> CredentialStore:
    return CredentialStore(db_session)


@pytest.fixture
def token_service(db_session: Session, jwt_service: JWTService) -> TokenService:
    return TokenService(db_session, jwt_service)


@pytest.fixture
def verification_manager(db_session: Session, test_config: AuthConfig) -> VerificationFlowManager:
    return VerificationFlowManager(db_session, test_config.verification)


@pytest.fixture
def rate_limit_storage() -> MemoryRateLimitStorage:
    return MemoryRateLimitStorage()


@pytest.fixture
def guard(test_config: AuthConfig, rate_limit_storage: MemoryRateLimitStorage) -> AbuseGuard:
    return AbuseGuard(test_config.rate_limit, storage=rate_limit_storage)


@pytest.fixture
def email_dispatcher() -> InMemoryEmailDispatcher:
    return InMemoryEmailDispatcher()


@pytest.fixture
def orchestrator(
    db_session: Session,
    test_config: AuthConfig,
    password_service: PasswordService,
    jwt_service: JWTService,
    guard: AbuseGuard,
    email_dispatcher: InMemoryEmailDispatcher,
) -> AuthOrchestrator:
    return AuthOrchestrator.create(
        db_session,
        config=test_config,
        password_service=password_service,
        jwt_service=jwt_service,
        guard=guard,
        email_dispatcher=email_dispatcher,
    )


@pytest.fixture
def app(test_config: AuthConfig, email_dispatcher: InMemoryEmailDispatcher):
    return create_app(test_config, email_dispatcher=email_dispatcher, configure_logging=False)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client
