"""
Test helper functions and factory methods for the PerfLab Access Layer.
"""

from typing import Dict, Any, Optional, List
from dataclasses import dataclass

from shared.config import ServiceConfig, get_config


@dataclass
class TestUser:
    """Test user data."""
    username: str
    email: str
    location: str
    password: str = "password123"

    def to_payload(self, scenario: Optional[str] = None, scenario_param: Optional[float] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "username": self.username,
            "email": self.email,
            "password": self.password,
            "profile": {"age": 30, "location": self.location},
        }
        if scenario is not None:
            payload["scenario"] = scenario
        if scenario_param is not None:
            payload["scenario_param"] = scenario_param
        return payload


class TestDataFactory:
    """Factory for creating test data."""

    @staticmethod
    def create_test_users() -> List[TestUser]:
        """Create test users."""
        return [
            TestUser(username="john.doe", email="john.doe@example.com", location="Test City"),
            TestUser(username="jane.smith", email="jane.smith@example.com", location="Springfield"),
            TestUser(username="admin", email="admin@example.com", location="Test City"),
        ]

    @staticmethod
    def create_test_products() -> List[Dict[str, Any]]:
        """Create test product payloads."""
        return [
            {"name": "Laptop", "price": 1200.0, "category": "electronics", "stock": 5, "tags": ["computer"]},
            {"name": "Headphones", "price": 150.0, "category": "electronics", "stock": 40, "tags": ["audio"]},
            {"name": "Desk Chair", "price": 300.0, "category": "furniture", "stock": 12, "tags": []},
        ]

    @staticmethod
    def create_test_order(user_id: str, product_ids: List[str], quantity: int = 1) -> Dict[str, Any]:
        """Create an order payload for the given user and products."""
        return {
            "userId": user_id,
            "items": [{"productId": product_id, "quantity": quantity} for product_id in product_ids],
            "shippingAddress": {
                "street": "1 Main St",
                "city": "Test City",
                "zipCode": "12345",
                "country": "US",
            },
        }


class TestEnvironment:
    """Test environment configuration."""

    @staticmethod
    def get_mock_config() -> Dict[str, Any]:
        """Get mock environment variables."""
        return {
            "PERFLAB_ENV": "test",
            "PERFLAB_LOG_LEVEL": "debug",
            "PERFLAB_REDIS_URL": "redis://localhost:6379/0",
            "PERFLAB_DB_LATENCY_MS": "0",
            "PERFLAB_PASSWORD_HASH_ROUNDS": "4",
        }

    @staticmethod
    def get_test_config(**overrides) -> ServiceConfig:
        """Service configuration tuned for fast, deterministic tests."""
        settings: Dict[str, Any] = {
            "env": "test",
            "log_level": "warning",
            "db_latency_ms": 0,
            "password_hash_rounds": 4,
            "bottleneck_max_duration_ms": 2000,
            "bottleneck_max_memory_mb": 64,
        }
        settings.update(overrides)
        return get_config("perflab", 3000, **settings)


# Global instances for easy access
test_data_factory = TestDataFactory()
test_environment = TestEnvironment()
