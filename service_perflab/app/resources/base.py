"""
Shared plumbing for resource handlers.

Every handler operation follows the same path: start a timing, run the
requested bottleneck, read through the cache (or mutate and invalidate), and
record one duration sample and one counter sample keyed by operation,
resource kind and outcome.
"""

import inspect
from contextlib import contextmanager
from typing import Any, Awaitable, Callable, Iterable, Iterator, Optional

from shared.config import BaseConfig
from shared.errors import NotFoundError, StoreUnavailableError
from shared.logging import get_logger
from shared.metrics import MetricsCollector, RequestTiming

from ..bottlenecks import BottleneckInjector
from ..caching import CacheAsideStore, CacheOutcome, CacheResult
from ..persistence import InMemoryDatabase


class ResourceHandler:
    """Base class for per-resource read/write operations."""

    resource = ""

    def __init__(
        self,
        db: InMemoryDatabase,
        cache: CacheAsideStore,
        injector: BottleneckInjector,
        metrics: MetricsCollector,
        config: BaseConfig,
    ):
        self.db = db
        self.cache = cache
        self.injector = injector
        self.metrics = metrics
        self.config = config
        self.logger = get_logger(f"perflab.resources.{self.resource}")

    async def _inject(self, scenario: Optional[str], scenario_param: Optional[float]) -> None:
        if scenario:
            await self.injector.run(scenario, scenario_param)

    async def _cached_read(
        self,
        operation: str,
        key: str,
        ttl: float,
        compute_fn: Callable[[], Awaitable[Any]],
        scenario: Optional[str] = None,
        scenario_param: Optional[float] = None,
    ) -> CacheResult:
        """Read through the cache, failing open when the store is down."""
        timing = RequestTiming(operation, self.resource)
        outcome = "error"
        try:
            await self._inject(scenario, scenario_param)
            try:
                result = await self.cache.get_or_compute(key, ttl, compute_fn)
            except StoreUnavailableError as exc:
                result = await self._fail_open(exc, compute_fn)
            outcome = result.outcome.value
            return result
        except NotFoundError:
            outcome = "not_found"
            raise
        finally:
            self._record(timing, outcome)

    async def _fail_open(self, exc: StoreUnavailableError, compute_fn: Callable[[], Any]) -> CacheResult:
        self.logger.warning(
            "Cache unavailable, serving uncached",
            operation=exc.operation,
            error=exc.message,
        )
        if exc.has_value:
            return CacheResult(exc.value, CacheOutcome.BYPASS)
        value = compute_fn()
        if inspect.isawaitable(value):
            value = await value
        return CacheResult(value, CacheOutcome.BYPASS)

    async def _uncached_read(self, operation: str, compute_fn: Callable[[], Awaitable[Any]]) -> Any:
        timing = RequestTiming(operation, self.resource)
        outcome = "error"
        try:
            value = await compute_fn()
            outcome = "miss"
            return value
        finally:
            self._record(timing, outcome)

    async def _write(
        self,
        operation: str,
        mutate_fn: Callable[[], Awaitable[Any]],
        *,
        prefixes: Iterable[str] = (),
        keys: Iterable[str] = (),
        scenario: Optional[str] = None,
        scenario_param: Optional[float] = None,
    ) -> Any:
        """Apply a mutation, then invalidate the affected cache entries."""
        timing = RequestTiming(operation, self.resource)
        outcome = "error"
        try:
            await self._inject(scenario, scenario_param)
            result = await mutate_fn()
            await self._invalidate(prefixes, keys)
            outcome = "write"
            return result
        except NotFoundError:
            outcome = "not_found"
            raise
        finally:
            self._record(timing, outcome)

    async def _invalidate(self, prefixes: Iterable[str], keys: Iterable[str]) -> None:
        # Stale entries left here expire with their TTL
        for key in keys:
            try:
                await self.cache.delete(key)
            except StoreUnavailableError as exc:
                self.logger.warning("Cache key not invalidated", key=key, error=exc.message)
        for prefix in prefixes:
            try:
                await self.cache.invalidate_prefix(prefix)
            except StoreUnavailableError as exc:
                self.logger.warning("Cache prefix not invalidated", prefix=prefix, error=exc.message)

    @contextmanager
    def _query(self, operation: str, collection: Optional[str] = None) -> Iterator[None]:
        """Time one database query."""
        with self.metrics.time_operation(
            "db_query_duration_seconds",
            {"operation": operation, "collection": collection or self.resource},
        ):
            yield

    def _record(self, timing: RequestTiming, outcome: str) -> None:
        labels = {"operation": timing.operation, "resource": timing.resource, "outcome": outcome}
        self.metrics.record_counter("operations_total", labels)
        self.metrics.observe_duration("operation_duration_seconds", labels, timing.elapsed())
