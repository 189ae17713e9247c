"""
Application factory.

Builds the FastAPI app for the authentication service: storage, hashing
pool, token signing, abuse guard, email dispatcher, middleware and the
error handlers that keep every failure in the response envelope.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from contest_auth.application.config import AuthConfig, Environment, get_config
from contest_auth.application.interfaces.email import EmailDispatcher
from contest_auth.application.use_cases.base import AuthResponse
from contest_auth.domain.exceptions import AuthException, ValidationFailedError
from contest_auth.infrastructure.auth.endpoints import AuthContainer, router
from contest_auth.infrastructure.auth.jwt_service import JWTService
from contest_auth.infrastructure.auth.middleware import (
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
)
from contest_auth.infrastructure.auth.models import Base
from contest_auth.infrastructure.auth.services.password_service import PasswordService
from contest_auth.infrastructure.database import create_db_engine, create_session_factory
from contest_auth.infrastructure.email import LoggingEmailDispatcher
from contest_auth.infrastructure.housekeeping import housekeeping_loop
from contest_auth.infrastructure.monitoring.logging import setup_logging
from contest_auth.infrastructure.rate_limiting.guard import AbuseGuard
from contest_auth.infrastructure.rate_limiting.storage import RateLimitStorage

logger = logging.getLogger(__name__)


def create_app(
    config: AuthConfig | None = None,
    email_dispatcher: EmailDispatcher | None = None,
    rate_limit_storage: RateLimitStorage | None = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Create the authentication API.

    Args:
        config: Service configuration (defaults to the environment)
        email_dispatcher: Email hand-off (defaults to logging only)
        rate_limit_storage: Counter storage for the abuse guard (defaults per config)
        configure_logging: Install the structured log handler on the root logger
    """
    config = config or get_config()
    config.validate()

    if configure_logging:
        setup_logging(
            level=config.logging.level,
            format_type="json" if config.logging.json else "text",
        )

    engine = create_db_engine(config.database)
    Base.metadata.create_all(bind=engine)

    password_service = PasswordService(config.security)
    container = AuthContainer(
        config=config,
        session_factory=create_session_factory(engine),
        password_service=password_service,
        jwt_service=JWTService(config.tokens),
        guard=AbuseGuard(config.rate_limit, storage=rate_limit_storage),
        email_dispatcher=email_dispatcher or LoggingEmailDispatcher(config.frontend_url),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Authentication service starting",
            extra={"environment": config.environment.value},
        )
        housekeeping_task = None
        if config.housekeeping_interval_seconds > 0:
            housekeeping_task = asyncio.create_task(
                housekeeping_loop(container, config.housekeeping_interval_seconds)
            )

        yield

        if housekeeping_task is not None and not housekeeping_task.done():
            housekeeping_task.cancel()
            with suppress(asyncio.CancelledError):
                await housekeeping_task
        password_service.shutdown()
        engine.dispose()
        logger.info("Authentication service stopped")

    app = FastAPI(title="Contest Draw Auth API", lifespan=lifespan)
    app.state.auth = container

    app.add_middleware(
        SecurityHeadersMiddleware, hsts=config.environment == Environment.PRODUCTION
    )
    app.add_middleware(RequestIDMiddleware)

    @app.exception_handler(AuthException)
    async def auth_exception_handler(request: Request, exc: AuthException) -> JSONResponse:
        result = AuthResponse.from_exception(exc)
        return JSONResponse(status_code=result.http_status, content=result.to_body())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"] if part != "body"),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        result = AuthResponse.from_exception(ValidationFailedError(errors))
        return JSONResponse(status_code=result.http_status, content=result.to_body())

    @app.get("/health")
    def health() -> dict[str, str]:
        healthy = container.guard.storage.health_check()
        return {"status": "ok" if healthy else "degraded"}

    app.include_router(router, prefix="/api")

    return app
