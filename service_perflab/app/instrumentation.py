"""
Metric declarations for the PerfLab service.

All names and label value sets live here so the collector can validate them
once at startup.
"""

from typing import List

from shared.metrics import MetricDefinition, MetricKind


RESOURCES = ("users", "products", "orders")
OPERATIONS = ("list", "get", "search", "create", "update")
OUTCOMES = ("hit", "miss", "bypass", "write", "not_found", "error")

SCENARIOS = ("cpu-spin", "memory-balloon", "loop-block", "latency-inject", "resource-leak")
SCENARIO_OUTCOMES = ("completed", "failed")

DB_OPERATIONS = ("find", "findById", "count", "insert", "search", "update")

ROUTE_TEMPLATES = (
    "/",
    "/api/users",
    "/api/users/search",
    "/api/products",
    "/api/products/{product_id}",
    "/api/orders",
    "/api/orders/{order_id}",
    "/api/orders/{order_id}/status",
    "/api/bottlenecks/{scenario}",
)

OPERATION_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10)
DB_QUERY_BUCKETS = (0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1, 2, 5)
BOTTLENECK_BUCKETS = (0.01, 0.05, 0.1, 0.5, 1, 2, 5, 10, 30)


def perflab_metric_definitions() -> List[MetricDefinition]:
    """Metrics recorded by the cache, the bottleneck harness and the handlers."""
    operation_labels = {
        "operation": OPERATIONS,
        "resource": RESOURCES,
        "outcome": OUTCOMES,
    }
    return [
        MetricDefinition(
            "operations_total",
            MetricKind.COUNTER,
            "Resource operations by outcome",
            operation_labels,
        ),
        MetricDefinition(
            "operation_duration_seconds",
            MetricKind.HISTOGRAM,
            "Resource operation duration in seconds",
            operation_labels,
            OPERATION_BUCKETS,
        ),
        MetricDefinition(
            "db_query_duration_seconds",
            MetricKind.HISTOGRAM,
            "Database query duration",
            {"operation": DB_OPERATIONS, "collection": RESOURCES},
            DB_QUERY_BUCKETS,
        ),
        MetricDefinition(
            "cache_operations_total",
            MetricKind.COUNTER,
            "Cache hit/miss rate",
            {
                "operation": ("get", "set", "delete", "invalidate"),
                "result": ("hit", "miss", "ok", "error"),
            },
        ),
        MetricDefinition(
            "cache_invalidated_keys_total",
            MetricKind.COUNTER,
            "Cache keys removed by invalidation",
            {"resource": RESOURCES + ("product", "order")},
        ),
        MetricDefinition(
            "bottleneck_runs_total",
            MetricKind.COUNTER,
            "Bottleneck scenario executions",
            {"scenario": SCENARIOS, "outcome": SCENARIO_OUTCOMES},
        ),
        MetricDefinition(
            "bottleneck_duration_seconds",
            MetricKind.HISTOGRAM,
            "Wall-clock time consumed by bottleneck scenarios",
            {"scenario": SCENARIOS},
            BOTTLENECK_BUCKETS,
        ),
        MetricDefinition(
            "leaked_resource_handles",
            MetricKind.GAUGE,
            "External handles acquired by the resource-leak scenario and never released",
        ),
        MetricDefinition(
            "potential_memory_leak_bytes",
            MetricKind.GAUGE,
            "Tracking potential memory leaks",
        ),
    ]
