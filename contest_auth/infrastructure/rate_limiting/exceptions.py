"""
Abuse guard infrastructure errors.

These never reach the client as-is: the guard turns a storage failure into
``StorageUnavailableError`` and a bad backend name stops the service at startup.
"""


class RateLimitError(Exception):
    """Base exception for counter storage problems."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.key = key


class RateLimitConfigError(RateLimitError):
    """Raised when the guard is configured with an unusable setting."""

    def __init__(self, message: str, config_field: str) -> None:
        super().__init__(message)
        self.config_field = config_field


class RateLimitStorageError(RateLimitError):
    """Raised when the counter backend cannot be read or written."""

    def __init__(
        self,
        message: str,
        operation: str,
        storage_backend: str,
        key: str | None = None,
    ) -> None:
        super().__init__(message, key)
        self.operation = operation
        self.storage_backend = storage_backend

    def __str__(self) -> str:
        return f"{self.storage_backend} {self.operation} failed: {self.message}"
