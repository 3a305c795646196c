"""
Shared error handling for the render cache layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class RenderCacheException(Exception):
    """Base exception for the render cache layer."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(RenderCacheException):
    """Invalid caching configuration (bad key expression, unusable option)."""

    status_code = 500

    def __init__(self, message: str = "Invalid cache configuration", details: Optional[Dict[str, Any]] = None,
                 code: str = "CONFIGURATION_ERROR"):
        super().__init__(code, message, details)


class MissingCacheKeyError(ConfigurationError):
    """The cache key resolved to None."""

    def __init__(self, message: str = "The cache key cannot be nil.", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="MISSING_CACHE_KEY")


class ForgeryRejection(RenderCacheException):
    """Request failed cache-aware forgery verification."""

    status_code = 422

    def __init__(self, message: str = "Can't verify request origin", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_AUTHENTICITY_TOKEN", message, details)
