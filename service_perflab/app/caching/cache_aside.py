"""
Cache-aside store backed by Redis.

Reads check the cache first and populate it on a miss; writes invalidate
whole key prefixes rather than updating entries in place.
"""

import inspect
import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

import redis.asyncio as redis
from redis.exceptions import RedisError

from shared.errors import StoreUnavailableError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from .keys import KEY_SEPARATOR


ComputeFn = Callable[[], Union[Any, Awaitable[Any]]]

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class CacheOutcome(str, Enum):
    """How a read was served."""
    HIT = "hit"
    MISS = "miss"
    BYPASS = "bypass"


@dataclass
class CacheResult:
    """Value returned by a cache-aside read and how it was obtained."""
    value: Any
    outcome: CacheOutcome


class CacheAsideStore:
    """Get-or-compute wrapper around a Redis key/value store with TTLs."""

    def __init__(self, redis_client: redis.Redis, metrics: Optional[MetricsCollector] = None):
        self.redis = redis_client
        self.metrics = metrics
        self.logger = get_logger("perflab.cache")

    async def get_or_compute(self, key: str, ttl: float, compute_fn: ComputeFn) -> CacheResult:
        """Return the cached value for ``key`` or compute, store and return it.

        Compute failures propagate unchanged and leave the cache untouched.
        Store failures raise ``StoreUnavailableError``.

        Nothing serializes this read-compute-store sequence against
        ``invalidate_prefix``. A read that misses before an invalidation and
        stores after it puts pre-write data back into the cache until the TTL
        runs out. The service exists to measure that staleness window, so it is
        left open.
        """
        try:
            cached = await self.redis.get(key)
        except RedisError as exc:
            self._record("get", "error")
            self.logger.error("Cache fetch error", key=key, error=str(exc))
            raise StoreUnavailableError("get", str(exc)) from exc

        if cached is not None:
            self._record("get", "hit")
            return CacheResult(self._deserialize(cached), CacheOutcome.HIT)

        self._record("get", "miss")

        value = compute_fn()
        if inspect.isawaitable(value):
            value = await value

        payload = json.dumps(value, default=str)
        # Hand back what a later hit will return so both paths agree.
        stored_value = json.loads(payload)

        try:
            await self.redis.set(key, payload, px=self._ttl_ms(ttl))
        except RedisError as exc:
            self._record("set", "error")
            self.logger.error("Cache set error", key=key, error=str(exc))
            raise StoreUnavailableError("set", str(exc), value=stored_value) from exc

        self._record("set", "ok")
        self.logger.debug("Cached value", key=key, ttl=ttl)
        return CacheResult(stored_value, CacheOutcome.MISS)

    async def invalidate_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``; return how many were removed.

        The scan and the delete are separate round trips, and keys written
        between them survive.
        """
        pattern = _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        try:
            keys = await self.redis.keys(pattern)
            deleted = await self.redis.delete(*keys) if keys else 0
        except RedisError as exc:
            self._record("invalidate", "error")
            self.logger.error("Cache invalidation error", prefix=prefix, error=str(exc))
            raise StoreUnavailableError("invalidate", str(exc)) from exc

        self._record("invalidate", "ok")
        if self.metrics:
            self.metrics.record_counter(
                "cache_invalidated_keys_total",
                {"resource": prefix.split(KEY_SEPARATOR, 1)[0]},
                deleted,
            )
        if deleted:
            self.logger.info("Cleared cache prefix", prefix=prefix, keys_count=deleted)
        return deleted

    async def delete(self, key: str) -> bool:
        """Delete a single key."""
        try:
            deleted = await self.redis.delete(key)
        except RedisError as exc:
            self._record("delete", "error")
            self.logger.error("Cache delete error", key=key, error=str(exc))
            raise StoreUnavailableError("delete", str(exc)) from exc

        self._record("delete", "ok")
        if self.metrics and deleted:
            self.metrics.record_counter(
                "cache_invalidated_keys_total",
                {"resource": key.split(KEY_SEPARATOR, 1)[0]},
                deleted,
            )
        return bool(deleted)

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.redis.ping()
            return True
        except RedisError:
            return False

    @staticmethod
    def _ttl_ms(ttl: float) -> int:
        return max(1, int(ttl * 1000))

    @staticmethod
    def _deserialize(cached: Any) -> Any:
        if isinstance(cached, bytes):
            cached = cached.decode("utf-8")
        return json.loads(cached)

    def _record(self, operation: str, result: str) -> None:
        if self.metrics:
            self.metrics.record_counter(
                "cache_operations_total",
                {"operation": operation, "result": result},
            )
