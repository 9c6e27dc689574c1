"""
Shared utilities for the PerfLab Access Layer.

This package aggregates common building blocks consumed by all services:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Declared Prometheus metrics and the process-wide collector
- errors: Canonical error types and responses
- base_service: FastAPI service skeleton with timing middleware

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into shared/.
"""
