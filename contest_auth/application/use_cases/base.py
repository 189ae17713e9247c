"""
Base Use Case

Provides the foundation for all use cases in the application layer.
Implements the common execution template: request validation, expected
failures returned as error envelopes, and a single boundary that turns
anything unexpected into a generic 500.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar
from uuid import UUID, uuid4

from contest_auth.domain.exceptions import (
    AuthException,
    StorageUnavailableError,
    TooManyAttemptsError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)

# Type variable for requests
TRequest = TypeVar("TRequest", bound="UseCaseRequest")

INTERNAL_ERROR_MESSAGE = "Internal server error"
INTERNAL_ERROR_CODE = "INTERNAL_ERROR"


@dataclass(kw_only=True)
class UseCaseRequest:
    """
    Base class for use case requests.

    Carries the client context the abuse guard and the audit trail need.
    """

    request_id: UUID = field(default_factory=uuid4)
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class AuthResponse:
    """
    Uniform result envelope of every authentication operation.

    ``to_body()`` is what the client sees; ``http_status`` and the cookie
    instructions are for the transport.
    """

    status: str
    message: str
    http_status: int = 200
    data: dict[str, Any] | None = None
    code: str | None = None
    errors: list[dict[str, str]] | None = None
    retry_after: int | None = None
    retryable: bool = False
    set_cookies: dict[str, str] = field(default_factory=dict)
    clear_cookies: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == "success"

    @classmethod
    def ok(
        cls,
        message: str,
        data: dict[str, Any] | None = None,
        http_status: int = 200,
        set_cookies: dict[str, str] | None = None,
        clear_cookies: list[str] | None = None,
    ) -> "AuthResponse":
        """Create a successful response."""
        return cls(
            status="success",
            message=message,
            http_status=http_status,
            data=data,
            set_cookies=set_cookies or {},
            clear_cookies=clear_cookies or [],
        )

    @classmethod
    def from_exception(cls, error: AuthException) -> "AuthResponse":
        """Create an error response from an expected failure."""
        response = cls(
            status="error",
            message=error.message,
            http_status=error.http_status,
            code=error.code,
        )
        if isinstance(error, ValidationFailedError):
            response.errors = error.errors
        elif isinstance(error, TooManyAttemptsError):
            response.retry_after = error.retry_after
        elif isinstance(error, StorageUnavailableError):
            response.retryable = True
        return response

    @classmethod
    def internal_error(cls) -> "AuthResponse":
        """Generic failure that reveals nothing about the cause."""
        return cls(
            status="error",
            message=INTERNAL_ERROR_MESSAGE,
            http_status=500,
            code=INTERNAL_ERROR_CODE,
        )

    def to_body(self) -> dict[str, Any]:
        """Client-facing JSON body."""
        body: dict[str, Any] = {"status": self.status, "message": self.message}
        if self.data is not None:
            body["data"] = self.data
        if self.code is not None:
            body["code"] = self.code
        if self.errors:
            body["errors"] = self.errors
        if self.retry_after is not None:
            body["retryAfter"] = self.retry_after
        if self.retryable:
            body["retryable"] = True
        return body


class UseCase(ABC, Generic[TRequest]):
    """
    Abstract base class for all use cases.

    Provides a consistent interface and common functionality for
    business logic orchestration.
    """

    def __init__(self, name: str | None = None) -> None:
        """
        Initialize use case.

        Args:
            name: Optional name for the use case (defaults to class name)
        """
        self.name = name or self.__class__.__name__
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    async def execute(self, request: TRequest) -> AuthResponse:
        """
        Execute the use case.

        Expected failures (``AuthException``) become error envelopes with their
        own code and status. Any other exception is logged with its traceback
        and answered with a generic 500.
        """
        self.logger.debug(
            f"Executing {self.name}",
            extra={"use_case": self.name},
        )

        try:
            errors = await self.validate(request)
            if errors:
                self.logger.info(
                    f"Validation failed for {self.name}",
                    extra={"fields": [error["field"] for error in errors]},
                )
                return AuthResponse.from_exception(ValidationFailedError(errors))

            response = await self.process(request)

            self.logger.debug(
                f"Executed {self.name}",
                extra={"http_status": response.http_status},
            )
            return response

        except StorageUnavailableError as e:
            self.logger.error(
                f"Dependency unavailable in {self.name}: {e.cause or e.message}",
                extra={"use_case": self.name},
            )
            return AuthResponse.from_exception(e)

        except AuthException as e:
            self.logger.info(
                f"{self.name} rejected: {e.code}",
                extra={"use_case": self.name, "code": e.code},
            )
            return AuthResponse.from_exception(e)

        except Exception as e:
            self.logger.error(
                f"Error executing {self.name}: {e}",
                extra={"use_case": self.name, "use_case_request_id": str(request.request_id)},
                exc_info=True,
            )
            return AuthResponse.internal_error()

    async def validate(self, request: TRequest) -> list[dict[str, str]]:
        """
        Validate the request.

        Returns:
            Every field-level problem found; empty when the request is well-formed
        """
        return []

    @abstractmethod
    async def process(self, request: TRequest) -> AuthResponse:
        """
        Process the request and execute business logic.

        Args:
            request: The validated request

        Returns:
            The response envelope
        """
        pass
