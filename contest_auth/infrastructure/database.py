"""
Database engine and session management for the credential/session store.

Every storage call is bounded: the pool wait is limited by ``pool_timeout``,
new connections by the driver connect timeout, and on PostgreSQL each
statement by ``statement_timeout``. Timeouts and lost connections surface
as ``StorageUnavailableError`` so callers can answer with a retryable failure.
"""

import logging
from collections.abc import Callable, Generator
from functools import wraps
from typing import Any, TypeVar, cast

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from contest_auth.application.config import DatabaseConfig
from contest_auth.domain.exceptions import StorageUnavailableError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def create_db_engine(config: DatabaseConfig) -> Engine:
    """Create an engine with bounded waits for the configured database."""
    if config.url.startswith("sqlite"):
        connect_args: dict[str, Any] = {
            "check_same_thread": False,
            "timeout": config.pool_timeout_seconds,
        }
        if ":memory:" in config.url or config.url == "sqlite://":
            return create_engine(
                config.url, connect_args=connect_args, poolclass=StaticPool, echo=config.echo
            )
        return create_engine(config.url, connect_args=connect_args, echo=config.echo)

    return create_engine(
        config.url,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout_seconds,
        pool_pre_ping=True,
        echo=config.echo,
        connect_args={
            "connect_timeout": int(config.pool_timeout_seconds),
            "options": f"-c statement_timeout={config.statement_timeout_ms}",
        },
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to ``engine``."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Yield a session for one request and always close it."""
    db = factory()
    try:
        yield db
    finally:
        db.close()


def is_unavailable_error(error: Exception) -> bool:
    """Whether ``error`` means the store is unreachable or too slow, not that the data is bad."""
    if isinstance(error, (OperationalError, PoolTimeoutError)):
        return True
    return isinstance(error, DBAPIError) and bool(error.connection_invalidated)


def storage_operation(func: F) -> F:
    """
    Translate infrastructure failures of a store method into ``StorageUnavailableError``.

    The decorated method's instance must expose the SQLAlchemy session as ``self.db``;
    the session is rolled back before the error propagates.
    """

    @wraps(func)
    def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return func(self, *args, **kwargs)
        except Exception as e:
            if not is_unavailable_error(e):
                raise
            self.db.rollback()
            logger.error(
                f"Storage unavailable during {type(self).__name__}.{func.__name__}: {e}",
                extra={"operation": func.__name__},
            )
            raise StorageUnavailableError(cause=e) from e

    return cast(F, wrapper)
