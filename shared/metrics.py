"""
Shared metrics configuration for the PerfLab Access Layer.

Every metric a service records is declared up front as a ``MetricDefinition``
and registered when the ``MetricsCollector`` is built. Registration problems
(duplicate names, empty label value sets, unordered buckets) raise at
construction so they surface at process start, never in a request path.

Label values are restricted to the enumerated set declared for each label.
Anything outside that set is recorded under ``other`` so a stray value (a raw
id, an unexpected status code) can never grow the series count.

A collector that builds its own registry also exports the process, platform
and GC collectors, so CPU and memory pressure show up beside the declared
metrics.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from http import HTTPStatus
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    Gauge,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

from .errors import MetricRegistrationError
from .logging import get_logger


OTHER_LABEL_VALUE = "other"

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")
HTTP_STATUS_CODES = tuple(str(status.value) for status in HTTPStatus)
HTTP_DURATION_BUCKETS = (0.1, 0.3, 0.5, 0.7, 1, 3, 5, 7, 10)
UNMATCHED_ROUTE = "unmatched"


class MetricKind(str, Enum):
    """Kinds of metrics a collector can register."""
    COUNTER = "counter"
    HISTOGRAM = "histogram"
    GAUGE = "gauge"


@dataclass(frozen=True)
class MetricDefinition:
    """Declaration of a metric and the values each of its labels may take."""

    name: str
    kind: MetricKind
    help: str
    labels: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    buckets: Optional[Tuple[float, ...]] = None

    @property
    def label_names(self) -> Tuple[str, ...]:
        return tuple(self.labels)


@dataclass
class RequestTiming:
    """Start marker for one instrumented operation."""

    operation: str
    resource: str
    started_at: float = field(default_factory=time.perf_counter)

    def elapsed(self) -> float:
        return time.perf_counter() - self.started_at


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(
        self,
        definitions: Iterable[MetricDefinition],
        registry: Optional[CollectorRegistry] = None,
        *,
        strict: bool = False,
    ):
        if registry is None:
            registry = CollectorRegistry()
            ProcessCollector(registry=registry)
            PlatformCollector(registry=registry)
            GCCollector(registry=registry)
        self.registry = registry
        self.strict = strict
        self.logger = get_logger("shared.metrics")
        self._definitions: Dict[str, MetricDefinition] = {}
        self._metrics: Dict[str, Any] = {}

        for definition in definitions:
            self._register(definition)

    def _register(self, definition: MetricDefinition) -> None:
        """Validate a definition and create the underlying Prometheus metric."""
        if definition.name in self._definitions:
            raise MetricRegistrationError(
                f"Metric {definition.name} declared twice",
                {"metric": definition.name}
            )

        try:
            kind = MetricKind(definition.kind)
        except ValueError:
            raise MetricRegistrationError(
                f"Unknown metric kind {definition.kind!r}",
                {"metric": definition.name}
            )

        for label, allowed in definition.labels.items():
            if not allowed:
                raise MetricRegistrationError(
                    f"Label {label} of {definition.name} has no allowed values",
                    {"metric": definition.name, "label": label}
                )

        if kind is MetricKind.HISTOGRAM and definition.buckets is None:
            raise MetricRegistrationError(
                f"Histogram {definition.name} must declare buckets",
                {"metric": definition.name}
            )

        if definition.buckets is not None:
            if kind is not MetricKind.HISTOGRAM:
                raise MetricRegistrationError(
                    f"Only histograms take buckets ({definition.name})",
                    {"metric": definition.name}
                )
            buckets = list(definition.buckets)
            if not buckets or any(later <= earlier for earlier, later in zip(buckets, buckets[1:])):
                raise MetricRegistrationError(
                    f"Buckets of {definition.name} must be strictly increasing",
                    {"metric": definition.name, "buckets": buckets}
                )

        kwargs: Dict[str, Any] = {"registry": self.registry}
        if kind is MetricKind.HISTOGRAM:
            kwargs["buckets"] = definition.buckets

        metric_class = {
            MetricKind.COUNTER: Counter,
            MetricKind.HISTOGRAM: Histogram,
            MetricKind.GAUGE: Gauge,
        }[kind]

        try:
            metric = metric_class(definition.name, definition.help, definition.label_names, **kwargs)
        except ValueError as exc:
            raise MetricRegistrationError(str(exc), {"metric": definition.name})

        self._definitions[definition.name] = definition
        self._metrics[definition.name] = metric

    def _reject(self, message: str, **details) -> None:
        """Handle a metric used against its declaration."""
        if self.strict:
            raise MetricRegistrationError(message, details)
        self.logger.warning(message, **details)
        return None

    def _resolve(self, name: str, kind: MetricKind, labels: Optional[Mapping[str, Any]]):
        """Return the labelled child for a recording call, or None to drop it."""
        definition = self._definitions.get(name)
        if definition is None:
            return self._reject("Metric not registered", metric=name)

        if definition.kind is not kind:
            return self._reject(
                "Metric kind mismatch",
                metric=name,
                expected=definition.kind.value,
                used_as=kind.value,
            )

        labels = labels or {}
        if set(labels) != set(definition.labels):
            return self._reject(
                "Metric label names mismatch",
                metric=name,
                expected=sorted(definition.labels),
                received=sorted(labels),
            )

        metric = self._metrics[name]
        if not definition.labels:
            return metric

        values = {}
        for label, allowed in definition.labels.items():
            value = str(labels[label])
            if value not in allowed:
                value = OTHER_LABEL_VALUE
            values[label] = value
        return metric.labels(**values)

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def get_definition(self, name: str) -> Optional[MetricDefinition]:
        return self._definitions.get(name)

    def record_counter(self, name: str, labels: Optional[Mapping[str, Any]] = None, amount: float = 1.0) -> None:
        """Increment a counter for an enumerated label combination."""
        child = self._resolve(name, MetricKind.COUNTER, labels)
        if child is None:
            return
        try:
            child.inc(amount)
        except ValueError as exc:
            self._reject("Counter increment rejected", metric=name, error=str(exc))

    def observe_duration(self, name: str, labels: Optional[Mapping[str, Any]], seconds: float) -> None:
        """Add one observation, in seconds, to a histogram."""
        child = self._resolve(name, MetricKind.HISTOGRAM, labels)
        if child is None:
            return
        child.observe(seconds)

    def set_gauge(self, name: str, value: float, labels: Optional[Mapping[str, Any]] = None) -> None:
        """Set a gauge metric value."""
        child = self._resolve(name, MetricKind.GAUGE, labels)
        if child is not None:
            child.set(value)

    def inc_gauge(self, name: str, labels: Optional[Mapping[str, Any]] = None, amount: float = 1.0) -> None:
        child = self._resolve(name, MetricKind.GAUGE, labels)
        if child is not None:
            child.inc(amount)

    def dec_gauge(self, name: str, labels: Optional[Mapping[str, Any]] = None, amount: float = 1.0) -> None:
        child = self._resolve(name, MetricKind.GAUGE, labels)
        if child is not None:
            child.dec(amount)

    @contextmanager
    def time_operation(self, name: str, labels: Optional[Mapping[str, Any]] = None) -> Iterator[None]:
        """Context manager to time an operation into a histogram."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.observe_duration(name, labels, time.perf_counter() - start_time)

    def snapshot(self) -> str:
        """Render every registered metric in the Prometheus text format.

        Individual samples are read atomically; samples of different metrics
        may come from slightly different instants.
        """
        return generate_latest(self.registry).decode("utf-8")

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def sample_value(self, sample_name: str, labels: Optional[Mapping[str, str]] = None) -> Optional[float]:
        """Read the current value of one exported sample."""
        return self.registry.get_sample_value(sample_name, dict(labels or {}))


def http_metric_definitions(routes: Sequence[str]) -> List[MetricDefinition]:
    """Metric definitions every HTTP service records through its middleware."""
    route_values = tuple(routes) + (UNMATCHED_ROUTE,)
    http_labels = {
        "method": HTTP_METHODS,
        "route": route_values,
        "status": HTTP_STATUS_CODES,
    }
    return [
        MetricDefinition(
            "http_requests_total",
            MetricKind.COUNTER,
            "Total number of HTTP requests",
            http_labels,
        ),
        MetricDefinition(
            "http_request_duration_seconds",
            MetricKind.HISTOGRAM,
            "Duration of HTTP requests in seconds",
            http_labels,
            HTTP_DURATION_BUCKETS,
        ),
        MetricDefinition(
            "active_connections",
            MetricKind.GAUGE,
            "Number of in-flight HTTP requests",
        ),
        MetricDefinition(
            "health_check_total",
            MetricKind.COUNTER,
            "Total health check requests",
            {"status": ("ok", "error")},
        ),
    ]


def get_metrics_collector(
    definitions: Iterable[MetricDefinition],
    registry: Optional[CollectorRegistry] = None,
    strict: bool = False,
) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(definitions, registry, strict=strict)
