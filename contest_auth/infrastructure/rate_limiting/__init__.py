"""
Rate limiting for the authentication endpoints.

Exports the abuse guard and its counter storage backends.
"""

from .exceptions import RateLimitConfigError, RateLimitError, RateLimitStorageError
from .guard import AbuseGuard
from .storage import (
    MemoryRateLimitStorage,
    RateLimitStorage,
    RedisRateLimitStorage,
    create_storage,
)

__all__ = [
    "AbuseGuard",
    "MemoryRateLimitStorage",
    "RateLimitConfigError",
    "RateLimitError",
    "RateLimitStorage",
    "RateLimitStorageError",
    "RedisRateLimitStorage",
    "create_storage",
]
