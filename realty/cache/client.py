"""Key-value client wrapping a single Redis session.

This module provides the low-level cache primitives used by the domain
cache service.

Features:
- Explicit lifecycle: construct -> connect -> operate -> disconnect
- get/set/delete/multi_get/multi_set/delete_by_pattern primitives
- Transport errors collapsed to miss/no-op, never raised
- Per-operation latency logging and hit/miss/error counters

Only two failures reach callers: a connection failure during connect(),
and any use of the client before connect() succeeded.
"""

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from realty.errors import CacheConnectionError, CacheNotInitializedError

logger = structlog.get_logger(__name__)

# Errors treated as a cache miss / no-op during steady-state operation.
CACHE_ERRORS: tuple[type[BaseException], ...] = (
    RedisError,
    OSError,
    asyncio.TimeoutError,
)

RedisFactory = Callable[..., Any]


@dataclass
class CacheEntry:
    """A key/value pair to write with its expiry.

    Attributes:
        key: Cache key.
        value: Serialized value.
        ttl: Expiry in seconds, must be positive.
    """

    key: str
    value: str
    ttl: int


@dataclass
class CacheMetrics:
    """Counters for cache performance.

    Attributes:
        hits: Number of keys found.
        misses: Number of keys not found.
        errors: Number of failed operations.
        total_latency_ms: Total latency of all operations in milliseconds.
        operations: Number of operations issued.
    """

    hits: int = 0
    misses: int = 0
    errors: int = 0
    total_latency_ms: float = 0.0
    operations: int = 0
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    @property
    def total_requests(self) -> int:
        """Total number of key lookups."""
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Cache hit rate as a percentage."""
        if self.total_requests == 0:
            return 0.0
        return (self.hits / self.total_requests) * 100

    @property
    def avg_latency_ms(self) -> float:
        """Average latency per operation."""
        if self.operations == 0:
            return 0.0
        return self.total_latency_ms / self.operations

    async def record(self, latency_ms: float, hits: int = 0, misses: int = 0) -> None:
        """Record a completed operation."""
        async with self._lock:
            self.operations += 1
            self.total_latency_ms += latency_ms
            self.hits += hits
            self.misses += misses

    async def record_error(self) -> None:
        """Record a failed operation."""
        async with self._lock:
            self.errors += 1

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "operations": self.operations,
            "total_requests": self.total_requests,
            "hit_rate": round(self.hit_rate, 2),
            "avg_latency_ms": round(self.avg_latency_ms, 2),
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self.hits = 0
        self.misses = 0
        self.errors = 0
        self.total_latency_ms = 0.0
        self.operations = 0


def redact_url(url: str) -> str:
    """Strip credentials from a connection URL for logging."""
    parts = urlsplit(url)
    if parts.password is None and parts.username is None:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 2)


class KeyValueClient:
    """Redis client with best-effort cache semantics.

    One instance owns one connection pool and is shared by all in-flight
    requests; no client-side locking is done because Redis serializes
    commands itself.

    Example:
        client = KeyValueClient("redis://localhost:6379")
        await client.connect()

        await client.set("property:42", '{"id": "42"}', ttl=3600)
        value = await client.get("property:42")

        await client.disconnect()
    """

    def __init__(
        self,
        url: str,
        *,
        socket_timeout: float = 2.0,
        connect_attempts: int = 3,
        redis_factory: RedisFactory | None = None,
    ) -> None:
        """Initialize the client without connecting.

        Args:
            url: Redis connection URL.
            socket_timeout: Timeout for connecting and for each command.
            connect_attempts: Attempts made by connect() before failing.
            redis_factory: Builds the Redis client from the URL. Defaults
                to Redis.from_url; tests inject a fake here.
        """
        self.url = url
        self.socket_timeout = socket_timeout
        self.connect_attempts = max(1, connect_attempts)
        self._redis_factory = redis_factory or Redis.from_url
        self._redis: Any | None = None
        self.metrics = CacheMetrics()
        self._logger = logger.bind(component="kv_client")

    @property
    def is_connected(self) -> bool:
        """Whether connect() has completed and disconnect() has not run."""
        return self._redis is not None

    @property
    def redis(self) -> Any:
        """The underlying Redis client.

        Raises:
            CacheNotInitializedError: If connect() has not succeeded.
        """
        if self._redis is None:
            raise CacheNotInitializedError()
        return self._redis

    async def connect(self) -> None:
        """Open the session and verify Redis answers a PING.

        Transient connection errors are retried with exponential backoff.

        Raises:
            CacheConnectionError: If Redis stays unreachable.
        """
        if self._redis is not None:
            return

        redis = self._redis_factory(
            self.url,
            decode_responses=True,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_timeout,
        )
        safe_url = redact_url(self.url)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.connect_attempts),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
                retry=retry_if_exception_type(CACHE_ERRORS),
                reraise=False,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        self._logger.warning(
                            "redis_connect_retry",
                            url=safe_url,
                            attempt=attempt.retry_state.attempt_number,
                        )
                    await redis.ping()
        except RetryError as e:
            cause = e.last_attempt.exception()
            self._logger.error(
                "redis_connect_failed",
                url=safe_url,
                attempts=self.connect_attempts,
                error=str(cause),
            )
            await self._close_quietly(redis)
            raise CacheConnectionError(
                f"Redis connection failed: {cause}",
                url=safe_url,
                attempts=self.connect_attempts,
            ) from cause

        self._redis = redis
        self._logger.info("redis_connected", url=safe_url)

    async def disconnect(self) -> None:
        """Release the session. Safe to call when already disconnected."""
        if self._redis is None:
            return
        redis, self._redis = self._redis, None
        await self._close_quietly(redis)
        self._logger.info("redis_disconnected")

    async def _close_quietly(self, redis: Any) -> None:
        try:
            await redis.aclose()
        except CACHE_ERRORS as e:
            self._logger.warning("redis_close_error", error=str(e))

    async def get(self, key: str) -> str | None:
        """Get a raw value.

        Args:
            key: Cache key.

        Returns:
            Stored string, or None when missing or on any Redis error.
        """
        redis = self.redis
        start = time.monotonic()
        try:
            value = await redis.get(key)
        except CACHE_ERRORS as e:
            await self.metrics.record_error()
            self._logger.error(
                "cache_get_error", key=key, error=str(e), elapsed_ms=_elapsed_ms(start)
            )
            return None

        elapsed = _elapsed_ms(start)
        hit = value is not None
        await self.metrics.record(elapsed, hits=int(hit), misses=int(not hit))
        self._logger.debug("cache_get", key=key, hit=hit, elapsed_ms=elapsed)
        return value

    async def set(self, key: str, value: str, ttl: int) -> bool:
        """Set a value with expiry, replacing any existing value.

        Args:
            key: Cache key.
            value: Serialized value.
            ttl: Expiry in seconds.

        Returns:
            True if written, False on Redis error.

        Raises:
            ValueError: If ttl is not positive.
        """
        if ttl <= 0:
            raise ValueError(f"Cache TTL must be positive, got {ttl}")

        redis = self.redis
        start = time.monotonic()
        try:
            await redis.set(key, value, ex=ttl)
        except CACHE_ERRORS as e:
            await self.metrics.record_error()
            self._logger.error(
                "cache_set_error", key=key, error=str(e), elapsed_ms=_elapsed_ms(start)
            )
            return False

        elapsed = _elapsed_ms(start)
        await self.metrics.record(elapsed)
        self._logger.debug("cache_set", key=key, ttl=ttl, elapsed_ms=elapsed)
        return True

    async def delete(self, *keys: str) -> int:
        """Delete one or more keys.

        Returns:
            Number of keys deleted, 0 on Redis error.
        """
        if not keys:
            return 0

        redis = self.redis
        start = time.monotonic()
        try:
            deleted = int(await redis.delete(*keys))
        except CACHE_ERRORS as e:
            await self.metrics.record_error()
            self._logger.error(
                "cache_delete_error",
                keys=list(keys),
                error=str(e),
                elapsed_ms=_elapsed_ms(start),
            )
            return 0

        elapsed = _elapsed_ms(start)
        await self.metrics.record(elapsed)
        self._logger.debug(
            "cache_delete", keys=list(keys), deleted=deleted, elapsed_ms=elapsed
        )
        return deleted

    async def multi_get(self, keys: Sequence[str]) -> list[str | None]:
        """Get many raw values in one round trip.

        Args:
            keys: Cache keys.

        Returns:
            Values in input order, None for each missing key. On Redis
            error every position is None. Never shorter than keys.
        """
        if not keys:
            return []

        redis = self.redis
        start = time.monotonic()
        try:
            values = list(await redis.mget(list(keys)))
        except CACHE_ERRORS as e:
            await self.metrics.record_error()
            self._logger.error(
                "cache_mget_error",
                key_count=len(keys),
                error=str(e),
                elapsed_ms=_elapsed_ms(start),
            )
            return [None] * len(keys)

        if len(values) != len(keys):
            await self.metrics.record_error()
            self._logger.error(
                "cache_mget_length_mismatch",
                expected=len(keys),
                received=len(values),
                elapsed_ms=_elapsed_ms(start),
            )
            return [None] * len(keys)

        elapsed = _elapsed_ms(start)
        hits = sum(1 for v in values if v is not None)
        await self.metrics.record(elapsed, hits=hits, misses=len(keys) - hits)
        self._logger.debug(
            "cache_mget",
            key_count=len(keys),
            hits=hits,
            misses=len(keys) - hits,
            elapsed_ms=elapsed,
        )
        return values

    async def multi_set(self, entries: Sequence[CacheEntry]) -> bool:
        """Write many values in one MULTI/EXEC pipeline.

        Failures are reported once for the whole batch.

        Returns:
            True if the pipeline executed, False on Redis error.

        Raises:
            ValueError: If any entry has a non-positive ttl.
        """
        if not entries:
            return True
        for entry in entries:
            if entry.ttl <= 0:
                raise ValueError(f"Cache TTL must be positive, got {entry.ttl} for {entry.key}")

        redis = self.redis
        start = time.monotonic()
        try:
            async with redis.pipeline(transaction=True) as pipe:
                for entry in entries:
                    pipe.set(entry.key, entry.value, ex=entry.ttl)
                await pipe.execute()
        except CACHE_ERRORS as e:
            await self.metrics.record_error()
            self._logger.error(
                "cache_mset_error",
                key_count=len(entries),
                error=str(e),
                elapsed_ms=_elapsed_ms(start),
            )
            return False

        elapsed = _elapsed_ms(start)
        await self.metrics.record(elapsed)
        self._logger.debug("cache_mset", key_count=len(entries), elapsed_ms=elapsed)
        return True

    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern.

        Keys are enumerated with SCAN and then removed with one DEL. The two
        steps are not atomic: a key written between them survives until its
        TTL expires.

        Args:
            pattern: Redis glob pattern (e.g., "favorites:42:*").

        Returns:
            Number of keys deleted, 0 on Redis error.
        """
        redis = self.redis
        start = time.monotonic()
        try:
            keys = [key async for key in redis.scan_iter(match=pattern, count=500)]
            deleted = int(await redis.delete(*keys)) if keys else 0
        except CACHE_ERRORS as e:
            await self.metrics.record_error()
            self._logger.error(
                "cache_delete_pattern_error",
                pattern=pattern,
                error=str(e),
                elapsed_ms=_elapsed_ms(start),
            )
            return 0

        elapsed = _elapsed_ms(start)
        await self.metrics.record(elapsed)
        self._logger.debug(
            "cache_delete_pattern",
            pattern=pattern,
            matched=len(keys),
            deleted=deleted,
            elapsed_ms=elapsed,
        )
        return deleted

    async def info(self, section: str) -> dict[str, Any] | None:
        """Fetch an INFO section from Redis.

        Returns:
            Parsed INFO fields, or None on Redis error.
        """
        redis = self.redis
        start = time.monotonic()
        try:
            info = dict(await redis.info(section))
        except CACHE_ERRORS as e:
            await self.metrics.record_error()
            self._logger.error(
                "cache_info_error",
                section=section,
                error=str(e),
                elapsed_ms=_elapsed_ms(start),
            )
            return None

        elapsed = _elapsed_ms(start)
        await self.metrics.record(elapsed)
        self._logger.debug("cache_info", section=section, elapsed_ms=elapsed)
        return info
