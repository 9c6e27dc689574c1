"""
Shared configuration management for the PerfLab Access Layer.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PERFLAB_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Metrics
    strict_metrics: Optional[bool] = Field(default=None)

    # Cache TTLs (seconds)
    users_list_ttl: float = Field(default=60)
    products_list_ttl: float = Field(default=300)
    product_detail_ttl: float = Field(default=600)
    orders_list_ttl: float = Field(default=120)
    order_detail_ttl: float = Field(default=300)

    # Data access characteristics under study
    n_plus_one_queries: bool = Field(default=True)
    db_latency_ms: float = Field(default=2.0, ge=0)
    password_hash_rounds: int = Field(default=12, ge=4, le=31)
    simulate_request_leak: bool = Field(default=True)
    search_result_limit: int = Field(default=100, ge=1)

    # Bottleneck harness
    bottleneck_max_duration_ms: float = Field(default=30000, ge=0)
    bottleneck_max_memory_mb: float = Field(default=1024, ge=0)
    leak_target_url: Optional[str] = Field(default=None)

    @property
    def metrics_strict(self) -> bool:
        """Reject metric programming errors loudly outside deployed environments."""
        if self.strict_metrics is not None:
            return self.strict_metrics
        return self.env in ("local", "test")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
