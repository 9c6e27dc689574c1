"""
Deliberate bottlenecks for studying the service under load.

Each scenario consumes one kind of resource for a configurable amount:

- cpu-spin: repeated PBKDF2 hashing on the event loop thread
- memory-balloon: a large buffer allocated, touched and held briefly
- loop-block: a tight busy-wait on the event loop thread
- latency-inject: a pure delay that yields the loop
- resource-leak: a store connection opened and never closed

cpu-spin and loop-block run inline on the event loop and never await, so every
other request served by the same worker stalls until they finish. They must
not be moved to an executor; the stall is what they exist to produce.
"""

import asyncio
import hashlib
import math
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import redis.asyncio as redis

from shared.logging import get_logger, set_scenario
from shared.metrics import MetricsCollector


PBKDF2_ITERATIONS = 100_000
BALLOON_HOLD_SECONDS = 0.1


class Scenario(str, Enum):
    """Registered bottleneck scenarios."""
    CPU_SPIN = "cpu-spin"
    MEMORY_BALLOON = "memory-balloon"
    LOOP_BLOCK = "loop-block"
    LATENCY_INJECT = "latency-inject"
    RESOURCE_LEAK = "resource-leak"


# Names used by existing load scripts
SCENARIO_ALIASES = {
    "cpuIntensive": Scenario.CPU_SPIN,
    "memoryIntensive": Scenario.MEMORY_BALLOON,
    "blockEventLoop": Scenario.LOOP_BLOCK,
    "slowIO": Scenario.LATENCY_INJECT,
    "dbConnectionLeak": Scenario.RESOURCE_LEAK,
}

# Duration in ms, or size in MB for memory-balloon
DEFAULT_PARAMS = {
    Scenario.CPU_SPIN: 1000.0,
    Scenario.MEMORY_BALLOON: 50.0,
    Scenario.LOOP_BLOCK: 500.0,
    Scenario.LATENCY_INJECT: 2000.0,
    Scenario.RESOURCE_LEAK: 0.0,
}


def resolve_scenario(name: Optional[str]) -> Optional[Scenario]:
    """Map a requested name to a scenario, or None when nothing matches."""
    if not name:
        return None
    name = str(name).strip()
    if name in SCENARIO_ALIASES:
        return SCENARIO_ALIASES[name]
    try:
        return Scenario(name.replace("_", "-"))
    except ValueError:
        return None


@dataclass
class ScenarioReport:
    """What one scenario run consumed."""
    scenario: Scenario
    param: float
    outcome: str
    elapsed_seconds: float
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenario": self.scenario.value,
            "param": self.param,
            "outcome": self.outcome,
            "elapsed_ms": round(self.elapsed_seconds * 1000, 2),
            "detail": self.detail,
        }


HandleFactory = Callable[[], Awaitable[Any]]


class BottleneckInjector:
    """Runs named bottleneck scenarios on behalf of requests."""

    def __init__(
        self,
        metrics: Optional[MetricsCollector] = None,
        *,
        leak_target_url: str = "redis://localhost:6379/0",
        leak_factory: Optional[HandleFactory] = None,
        max_duration_ms: float = 30000,
        max_memory_mb: float = 1024,
    ):
        self.metrics = metrics
        self.logger = get_logger("perflab.bottlenecks")
        self.leak_target_url = leak_target_url
        self.max_duration_ms = max_duration_ms
        self.max_memory_mb = max_memory_mb
        self._leak_factory = leak_factory or self._open_store_connection

        # Never released
        self._leaked: List[Any] = []
        self._inflight: Set[asyncio.Task] = set()

        self._handlers: Dict[Scenario, Callable[[float], Awaitable[Dict[str, Any]]]] = {
            Scenario.CPU_SPIN: self._cpu_spin,
            Scenario.MEMORY_BALLOON: self._memory_balloon,
            Scenario.LOOP_BLOCK: self._loop_block,
            Scenario.LATENCY_INJECT: self._latency_inject,
            Scenario.RESOURCE_LEAK: self._resource_leak,
        }

    @property
    def leaked_handles(self) -> int:
        return len(self._leaked)

    async def run(self, scenario_name: Optional[str], param: Any = None) -> Optional[ScenarioReport]:
        """Run a scenario to completion.

        Unknown names return None without recording anything. The scenario
        task is shielded: if the awaiting request is cancelled the scenario
        still finishes and is recorded.
        """
        scenario = resolve_scenario(scenario_name)
        if scenario is None:
            self.logger.debug("Unknown bottleneck scenario ignored", scenario=scenario_name)
            return None

        value = self._normalize_param(scenario, param)
        task = asyncio.ensure_future(self._execute(scenario, value))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for scenarios whose callers went away."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    async def _execute(self, scenario: Scenario, value: float) -> ScenarioReport:
        set_scenario(scenario.value)
        start = time.perf_counter()
        outcome = "completed"

        try:
            detail = await self._handlers[scenario](value)
        except Exception as exc:
            outcome = "failed"
            detail = {"error": str(exc)}
            self.logger.warning("Bottleneck scenario failed", scenario=scenario.value, error=str(exc))

        elapsed = time.perf_counter() - start
        if self.metrics:
            self.metrics.record_counter(
                "bottleneck_runs_total",
                {"scenario": scenario.value, "outcome": outcome},
            )
            self.metrics.observe_duration(
                "bottleneck_duration_seconds",
                {"scenario": scenario.value},
                elapsed,
            )

        self.logger.info(
            "Bottleneck scenario finished",
            scenario=scenario.value,
            param=value,
            outcome=outcome,
            elapsed_ms=round(elapsed * 1000, 2),
        )
        return ScenarioReport(scenario, value, outcome, elapsed, detail)

    def _normalize_param(self, scenario: Scenario, param: Any) -> float:
        """Clamp the knob to [0, ceiling]; fall back to the default if unusable."""
        default = DEFAULT_PARAMS[scenario]
        try:
            value = default if param is None else float(param)
        except (TypeError, ValueError):
            value = default
        if not math.isfinite(value):
            value = default

        ceiling = self.max_memory_mb if scenario is Scenario.MEMORY_BALLOON else self.max_duration_ms
        return min(max(value, 0.0), ceiling)

    async def _cpu_spin(self, duration_ms: float) -> Dict[str, Any]:
        deadline = time.perf_counter() + duration_ms / 1000
        rounds = 0
        while time.perf_counter() < deadline:
            hashlib.pbkdf2_hmac("sha512", b"secret", b"salt", PBKDF2_ITERATIONS, dklen=64)
            rounds += 1
        return {"hash_rounds": rounds}

    async def _memory_balloon(self, size_mb: float) -> Dict[str, Any]:
        size = int(size_mb * 1024 * 1024)
        # Filled with a non-zero byte so every page is actually committed
        balloon = bytearray(b"\xa5") * size
        await asyncio.sleep(BALLOON_HOLD_SECONDS)
        allocated = len(balloon)
        del balloon
        return {"allocated_bytes": allocated}

    async def _loop_block(self, duration_ms: float) -> Dict[str, Any]:
        deadline = time.perf_counter() + duration_ms / 1000
        spins = 0
        while time.perf_counter() < deadline:
            math.sqrt(random.random())
            spins += 1
        return {"spins": spins}

    async def _latency_inject(self, delay_ms: float) -> Dict[str, Any]:
        await asyncio.sleep(delay_ms / 1000)
        return {"delay_ms": delay_ms}

    async def _resource_leak(self, _: float) -> Dict[str, Any]:
        handle = await self._leak_factory()
        self._leaked.append(handle)
        if self.metrics:
            self.metrics.set_gauge("leaked_resource_handles", len(self._leaked))
        return {"leaked_handles": len(self._leaked)}

    async def _open_store_connection(self) -> redis.Redis:
        """Open a dedicated store connection; the caller keeps it forever."""
        client = redis.from_url(self.leak_target_url, single_connection_client=True)
        await client.ping()
        return client
