"""
Unit tests for the shared MetricsCollector.
"""

import pytest
from prometheus_client import CollectorRegistry

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import MetricRegistrationError
from shared.metrics import (
    OTHER_LABEL_VALUE,
    UNMATCHED_ROUTE,
    MetricDefinition,
    MetricKind,
    MetricsCollector,
    http_metric_definitions,
)


def sample_definitions():
    return [
        MetricDefinition(
            "requests_total",
            MetricKind.COUNTER,
            "Requests served",
            {"route": ("/a", "/b"), "status": ("200", "500")},
        ),
        MetricDefinition(
            "latency_seconds",
            MetricKind.HISTOGRAM,
            "Request latency",
            {"route": ("/a", "/b")},
            (0.1, 0.5, 1.0),
        ),
        MetricDefinition("inflight", MetricKind.GAUGE, "Requests in flight"),
    ]


class TestMetricRegistration:
    """Declaration problems surface when the collector is built."""

    def test_duplicate_name_rejected(self):
        """Test the same name declared twice."""
        definitions = sample_definitions() + [
            MetricDefinition("inflight", MetricKind.GAUGE, "Again"),
        ]
        with pytest.raises(MetricRegistrationError) as exc_info:
            MetricsCollector(definitions)
        assert exc_info.value.details["metric"] == "inflight"

    def test_empty_label_values_rejected(self):
        """Test a label with no allowed values."""
        definition = MetricDefinition("bad_total", MetricKind.COUNTER, "Bad", {"route": ()})
        with pytest.raises(MetricRegistrationError):
            MetricsCollector([definition])

    @pytest.mark.parametrize("buckets", [(0.5, 0.1, 1.0), (0.1, 0.1, 1.0), ()])
    def test_unordered_buckets_rejected(self, buckets):
        """Test histogram buckets that are not strictly increasing."""
        definition = MetricDefinition("bad_seconds", MetricKind.HISTOGRAM, "Bad", {}, buckets)
        with pytest.raises(MetricRegistrationError):
            MetricsCollector([definition])

    def test_histogram_without_buckets_rejected(self):
        """Test a histogram must declare its bucket layout."""
        definition = MetricDefinition("bad_seconds", MetricKind.HISTOGRAM, "Bad", {"route": ("/a",)})
        with pytest.raises(MetricRegistrationError) as exc_info:
            MetricsCollector([definition])
        assert exc_info.value.details["metric"] == "bad_seconds"

    def test_buckets_on_counter_rejected(self):
        """Test buckets declared on a non-histogram."""
        definition = MetricDefinition("bad_total", MetricKind.COUNTER, "Bad", {}, (0.1, 1.0))
        with pytest.raises(MetricRegistrationError):
            MetricsCollector([definition])

    def test_collectors_do_not_share_registries(self):
        """Test two collectors declaring the same metrics."""
        first = MetricsCollector(sample_definitions())
        second = MetricsCollector(sample_definitions())

        first.record_counter("requests_total", {"route": "/a", "status": "200"})

        assert first.sample_value("requests_total", {"route": "/a", "status": "200"}) == 1.0
        assert second.sample_value("requests_total", {"route": "/a", "status": "200"}) is None

    def test_default_registry_exports_process_metrics(self):
        """Test a collector with its own registry reports process, platform and GC metrics."""
        text = MetricsCollector(sample_definitions()).snapshot()

        assert "process_resident_memory_bytes" in text
        assert "process_cpu_seconds_total" in text
        assert "python_info" in text
        assert "python_gc_collections_total" in text

    def test_supplied_registry_is_left_alone(self):
        """Test a caller-owned registry only receives the declared metrics."""
        registry = CollectorRegistry()
        collector = MetricsCollector(sample_definitions(), registry)

        assert collector.registry is registry
        assert "process_resident_memory_bytes" not in collector.snapshot()
        assert "python_info" not in collector.snapshot()


class TestMetricsCollector:
    """Test cases for recording through MetricsCollector."""

    @pytest.fixture
    def collector(self):
        """Create a lenient collector."""
        return MetricsCollector(sample_definitions())

    @pytest.fixture
    def strict_collector(self):
        """Create a strict collector."""
        return MetricsCollector(sample_definitions(), strict=True)

    def test_record_counter(self, collector):
        """Test counter increments accumulate per label combination."""
        collector.record_counter("requests_total", {"route": "/a", "status": "200"})
        collector.record_counter("requests_total", {"route": "/a", "status": "200"})
        collector.record_counter("requests_total", {"route": "/b", "status": "500"}, 3)

        assert collector.sample_value("requests_total", {"route": "/a", "status": "200"}) == 2.0
        assert collector.sample_value("requests_total", {"route": "/b", "status": "500"}) == 3.0

    def test_unknown_label_value_folds_to_other(self, collector):
        """Test a raw path is recorded under the catch-all value."""
        collector.record_counter("requests_total", {"route": "/a/12345", "status": "200"})
        collector.record_counter("requests_total", {"route": "/a/67890", "status": "200"})

        assert collector.sample_value(
            "requests_total", {"route": OTHER_LABEL_VALUE, "status": "200"}
        ) == 2.0
        assert "/a/12345" not in collector.snapshot()

    def test_unknown_label_value_folds_in_strict_mode(self, strict_collector):
        """Test strict mode still folds values rather than raising."""
        strict_collector.record_counter("requests_total", {"route": "/a", "status": "418"})

        assert strict_collector.sample_value(
            "requests_total", {"route": "/a", "status": OTHER_LABEL_VALUE}
        ) == 1.0

    def test_unregistered_metric_strict(self, strict_collector):
        """Test recording an undeclared metric raises in strict mode."""
        with pytest.raises(MetricRegistrationError):
            strict_collector.record_counter("nope_total", {})

    def test_unregistered_metric_lenient(self, collector):
        """Test recording an undeclared metric is dropped otherwise."""
        collector.record_counter("nope_total", {})

        assert "nope_total" not in collector.snapshot()

    def test_label_names_mismatch_strict(self, strict_collector):
        """Test a missing label key raises in strict mode."""
        with pytest.raises(MetricRegistrationError) as exc_info:
            strict_collector.record_counter("requests_total", {"route": "/a"})
        assert exc_info.value.details["expected"] == ["route", "status"]

    def test_label_names_mismatch_lenient(self, collector):
        """Test a missing label key drops the sample otherwise."""
        collector.record_counter("requests_total", {"route": "/a"})

        assert collector.sample_value("requests_total", {"route": "/a", "status": "200"}) is None

    def test_kind_mismatch_strict(self, strict_collector):
        """Test observing a counter raises in strict mode."""
        with pytest.raises(MetricRegistrationError):
            strict_collector.observe_duration("requests_total", {"route": "/a", "status": "200"}, 0.1)

    def test_negative_counter_increment(self, strict_collector, collector):
        """Test counters cannot go backwards."""
        with pytest.raises(MetricRegistrationError):
            strict_collector.record_counter("requests_total", {"route": "/a", "status": "200"}, -1)

        collector.record_counter("requests_total", {"route": "/a", "status": "200"}, -1)
        assert collector.sample_value("requests_total", {"route": "/a", "status": "200"}) == 0.0

    def test_histogram_buckets_are_cumulative(self, collector):
        """Test histogram bucket counts never decrease with the bound."""
        for seconds in (0.05, 0.3, 0.7, 2.0):
            collector.observe_duration("latency_seconds", {"route": "/a"}, seconds)

        counts = [
            collector.sample_value("latency_seconds_bucket", {"route": "/a", "le": le})
            for le in ("0.1", "0.5", "1.0", "+Inf")
        ]

        assert counts == [1.0, 2.0, 3.0, 4.0]
        assert collector.sample_value("latency_seconds_count", {"route": "/a"}) == 4.0
        assert collector.sample_value("latency_seconds_sum", {"route": "/a"}) == pytest.approx(3.05)

    def test_gauge_operations(self, collector):
        """Test gauge set, increment and decrement."""
        collector.set_gauge("inflight", 5)
        collector.inc_gauge("inflight")
        collector.dec_gauge("inflight", amount=2)

        assert collector.sample_value("inflight") == 4.0

    def test_time_operation_records_on_error(self, collector):
        """Test the timing context records even when the body raises."""
        with pytest.raises(RuntimeError):
            with collector.time_operation("latency_seconds", {"route": "/b"}):
                raise RuntimeError("boom")

        assert collector.sample_value("latency_seconds_count", {"route": "/b"}) == 1.0

    def test_snapshot_text_format(self, collector):
        """Test the exposition output."""
        collector.record_counter("requests_total", {"route": "/a", "status": "200"})

        text = collector.snapshot()

        assert "# HELP requests_total Requests served" in text
        assert "# TYPE requests_total counter" in text
        assert 'requests_total{route="/a",status="200"} 1.0' in text
        assert "# TYPE latency_seconds histogram" in text
        assert collector.content_type.startswith("text/plain")


class TestHttpMetricDefinitions:
    """Test cases for the middleware metric declarations."""

    def test_routes_include_unmatched(self):
        """Test the route label allows only templates plus the unmatched marker."""
        definitions = {d.name: d for d in http_metric_definitions(["/api/users"])}

        route_values = definitions["http_requests_total"].labels["route"]
        assert route_values == ("/api/users", UNMATCHED_ROUTE)
        assert definitions["http_request_duration_seconds"].kind is MetricKind.HISTOGRAM
        assert definitions["active_connections"].labels == {}

    def test_status_values_cover_http_codes(self):
        """Test every standard status code is an allowed label value."""
        definitions = {d.name: d for d in http_metric_definitions([])}
        statuses = definitions["http_requests_total"].labels["status"]

        for code in ("200", "201", "404", "500", "503"):
            assert code in statuses
