"""
Storage backends for the abuse guard.

Provides Redis and in-memory counter storage. Counters are fixed-window:
the TTL is set when a counter is created and is not extended by later
increments, so a window always ends ``ttl`` seconds after its first hit.
"""

import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import redis
from redis.exceptions import RedisError

from contest_auth.application.config import RateLimitConfig

from .exceptions import RateLimitConfigError, RateLimitStorageError


class RateLimitStorage(ABC):
    """Abstract base class for rate limit storage backends."""

    backend_name = "abstract"

    @abstractmethod
    def get(self, key: str) -> int | None:
        """Get counter value by key."""
        pass

    @abstractmethod
    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Atomically increment counter; ``ttl`` applies only when the key is created."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete key."""
        pass

    @abstractmethod
    def ttl(self, key: str) -> int:
        """Get TTL for key (-1 if no TTL, -2 if key doesn't exist)."""
        pass

    @abstractmethod
    def cleanup_expired(self) -> int:
        """Remove expired counters; returns how many were removed."""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """Check if storage backend is healthy."""
        pass


class MemoryRateLimitStorage(RateLimitStorage):
    """
    In-memory storage backend.

    Suitable for single-instance deployments or development.
    Data is lost when application restarts.
    """

    backend_name = "memory"

    def __init__(
        self, cleanup_interval: int = 3600, clock: Callable[[], float] = time.time
    ) -> None:
        self._store: dict[str, tuple[int, float | None]] = {}  # key -> (value, expires_at)
        self._lock = threading.RLock()
        self._clock = clock
        self.cleanup_interval = cleanup_interval
        self._last_cleanup = clock()

    def _cleanup_if_needed(self) -> None:
        """Sweep keys that expired without being read again."""
        current_time = self._clock()
        if current_time - self._last_cleanup >= self.cleanup_interval:
            self.cleanup_expired()
            self._last_cleanup = current_time

    def _is_expired(self, expires_at: float | None) -> bool:
        if expires_at is None:
            return False
        return self._clock() >= expires_at

    def _live_entry(self, key: str) -> tuple[int, float | None] | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._is_expired(entry[1]):
            del self._store[key]
            return None
        return entry

    def get(self, key: str) -> int | None:
        """Get counter value by key."""
        with self._lock:
            entry = self._live_entry(key)
            return entry[0] if entry else None

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Atomically increment counter."""
        with self._lock:
            self._cleanup_if_needed()
            entry = self._live_entry(key)
            if entry is None:
                expires_at = self._clock() + ttl if ttl is not None else None
                value = amount
            else:
                value = entry[0] + amount
                expires_at = entry[1]
            self._store[key] = (value, expires_at)
            return value

    def delete(self, key: str) -> bool:
        """Delete key."""
        with self._lock:
            return self._store.pop(key, None) is not None

    def ttl(self, key: str) -> int:
        """Get TTL for key."""
        with self._lock:
            entry = self._live_entry(key)
            if entry is None:
                return -2
            if entry[1] is None:
                return -1
            return max(0, int(entry[1] - self._clock()))

    def cleanup_expired(self) -> int:
        """Clean up expired keys."""
        with self._lock:
            expired_keys = [
                key for key, (_, expires_at) in self._store.items() if self._is_expired(expires_at)
            ]
            for key in expired_keys:
                del self._store[key]
            return len(expired_keys)

    def health_check(self) -> bool:
        """Memory storage is always healthy."""
        return True


class RedisRateLimitStorage(RateLimitStorage):
    """
    Redis storage backend.

    Shares counters across application instances, so limits hold for the
    whole deployment rather than per process.
    """

    backend_name = "redis"

    def __init__(self, config: RateLimitConfig, client: Any | None = None) -> None:
        self.config = config
        self.key_prefix = config.redis_key_prefix

        if client is not None:
            self.redis_client = client
            return

        try:
            self.redis_client = redis.from_url(
                config.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            self.redis_client.ping()
        except RedisError as e:
            raise RateLimitStorageError(
                f"Failed to connect to Redis: {e}", operation="connect", storage_backend="redis"
            ) from e

    def _make_key(self, key: str) -> str:
        """Create prefixed key."""
        return f"{self.key_prefix}{key}"

    def get(self, key: str) -> int | None:
        """Get counter value by key."""
        try:
            value = self.redis_client.get(self._make_key(key))
            return int(value) if value is not None else None
        except RedisError as e:
            raise RateLimitStorageError(
                str(e), operation="get", storage_backend=self.backend_name, key=key
            ) from e

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Atomically increment counter."""
        prefixed_key = self._make_key(key)
        try:
            with self.redis_client.pipeline() as pipe:
                pipe.multi()
                pipe.incrby(prefixed_key, amount)
                if ttl is not None:
                    # NX keeps the window anchored at the first hit
                    pipe.expire(prefixed_key, ttl, nx=True)
                results = pipe.execute()
                return int(results[0])
        except RedisError as e:
            raise RateLimitStorageError(
                str(e), operation="increment", storage_backend=self.backend_name, key=key
            ) from e

    def delete(self, key: str) -> bool:
        """Delete key."""
        try:
            return bool(self.redis_client.delete(self._make_key(key)))
        except RedisError as e:
            raise RateLimitStorageError(
                str(e), operation="delete", storage_backend=self.backend_name, key=key
            ) from e

    def ttl(self, key: str) -> int:
        """Get TTL for key."""
        try:
            return int(self.redis_client.ttl(self._make_key(key)))
        except RedisError as e:
            raise RateLimitStorageError(
                str(e), operation="ttl", storage_backend=self.backend_name, key=key
            ) from e

    def cleanup_expired(self) -> int:
        """Redis expires keys itself."""
        return 0

    def health_check(self) -> bool:
        """Check Redis connection health."""
        try:
            return bool(self.redis_client.ping())
        except RedisError:
            return False


def create_storage(config: RateLimitConfig) -> RateLimitStorage:
    """Factory function to create appropriate storage backend."""
    backend = config.storage_backend.lower()
    if backend == "redis":
        return RedisRateLimitStorage(config)
    elif backend == "memory":
        return MemoryRateLimitStorage(cleanup_interval=config.cleanup_interval_seconds)
    else:
        raise RateLimitConfigError(
            f"Unknown storage backend: {config.storage_backend}",
            config_field="storage_backend",
        )
