"""
Shared error handling for the docs renderer.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class DocsRendererException(Exception):
    """Base exception for docs renderer services."""

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


class ExternalServiceError(DocsRendererException):
    """External service errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)


class CacheBackendError(ExternalServiceError):
    """Raised by the page cache only when backend failures are not allowed."""

    def __init__(self, operation: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("page-cache", f"{operation} failed: {message}", details)
        self.code = "CACHE_BACKEND_ERROR"


class AlternateRendererError(ExternalServiceError):
    """The alternate renderer upstream could not produce a response."""

    def __init__(self, message: str = "Alternate renderer failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("alternate-renderer", message, details)
        self.code = "ALTERNATE_RENDERER_ERROR"
