"""
Shared error handling for the feature access service.

Every error carries a machine-readable code and the HTTP status a transport
layer should answer with; ``to_response`` renders the body.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from shared.logging import current_trace_id


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AccessLayerException(Exception):
    """Base exception for the feature access service."""

    status_code = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Error body tagged with the active trace, if any."""
        return ErrorResponse(
            trace_id=current_trace_id(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthorizationError(AccessLayerException):
    """The caller may not perform the action."""

    status_code = 403

    def __init__(
        self,
        message: str = "Authorization failed",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        super().__init__("AUTHORIZATION_ERROR", message, details, status_code)


class ExternalServiceError(AccessLayerException):
    """A backing service (store, identity, billing) failed."""

    status_code = 503

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details.setdefault("service", service)
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
        self.service = service
