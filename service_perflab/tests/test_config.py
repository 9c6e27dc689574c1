"""
Unit tests for shared configuration and log context.
"""

import pytest
from unittest.mock import patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import get_config
from shared.logging import add_correlation_context, clear_context, set_request_id, set_scenario
from shared.test_helpers import test_environment


class TestConfig:
    """Test cases for service configuration."""

    def test_defaults(self):
        """Test default values."""
        config = get_config("perflab", 3000)

        assert config.service_name == "perflab"
        assert config.port == 3000
        assert config.users_list_ttl == 60
        assert config.products_list_ttl == 300
        assert config.product_detail_ttl == 600
        assert config.orders_list_ttl == 120
        assert config.order_detail_ttl == 300
        assert config.password_hash_rounds == 12
        assert config.n_plus_one_queries is True

    def test_environment_variables(self):
        """Test PERFLAB_ variables are read."""
        with patch.dict(os.environ, test_environment.get_mock_config()):
            config = get_config("perflab", 3000)

        assert config.env == "test"
        assert config.db_latency_ms == 0
        assert config.password_hash_rounds == 4

    @pytest.mark.parametrize("env,override,expected", [
        ("local", None, True),
        ("test", None, True),
        ("production", None, False),
        ("production", True, True),
        ("local", False, False),
    ])
    def test_metrics_strict(self, env, override, expected):
        """Test strict metrics follow the environment unless overridden."""
        config = get_config("perflab", 3000, env=env, strict_metrics=override)
        assert config.metrics_strict is expected

    def test_hash_rounds_lower_bound(self):
        """Test bcrypt cost below the library minimum is rejected."""
        with pytest.raises(ValueError):
            get_config("perflab", 3000, password_hash_rounds=2)


class TestLogContext:
    """Test cases for correlation context."""

    def teardown_method(self):
        clear_context()

    def test_request_id_generated(self):
        """Test a request id is generated when none is supplied."""
        assert set_request_id()
        assert set_request_id("req-1") == "req-1"

    def test_correlation_fields_added(self):
        """Test request id and scenario are attached to log events."""
        set_request_id("req-1")
        set_scenario("cpu-spin")

        event = add_correlation_context(None, "info", {"event": "x"})

        assert event["request_id"] == "req-1"
        assert event["scenario"] == "cpu-spin"

    def test_cleared_context(self):
        """Test cleared context adds nothing."""
        clear_context()

        assert add_correlation_context(None, "info", {"event": "x"}) == {"event": "x"}
