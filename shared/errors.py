"""
Shared error handling for the PerfLab Access Layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from .logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class PerfLabException(Exception):
    """Base exception for PerfLab services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(PerfLabException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(PerfLabException):
    """Requested entity does not exist."""

    status_code = 404

    def __init__(self, resource: str, entity_id: str):
        super().__init__(
            "NOT_FOUND",
            f"{resource.rstrip('s').title()} not found",
            {"resource": resource, "id": entity_id}
        )


class StoreUnavailableError(PerfLabException):
    """The cache backend could not be reached.

    When the failure happened while storing an already computed value, the
    value travels with the error so callers that fail open need not compute it
    twice.
    """

    status_code = 503
    _NO_VALUE = object()

    def __init__(self, operation: str, message: str = "Cache store unavailable", value: Any = _NO_VALUE):
        super().__init__("STORE_UNAVAILABLE", message, {"operation": operation})
        self.operation = operation
        self._value = value

    @property
    def has_value(self) -> bool:
        return self._value is not self._NO_VALUE

    @property
    def value(self) -> Any:
        if not self.has_value:
            raise AttributeError("no computed value attached")
        return self._value


class MetricRegistrationError(PerfLabException):
    """A metric was declared or used inconsistently with its definition."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("METRIC_REGISTRATION_ERROR", message, details)


class ServiceError(PerfLabException):
    """Service-related errors."""

    status_code = 500

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)
