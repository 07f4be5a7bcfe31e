"""
Shared error handling for the Cloud Save Backend.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}
    stack: Optional[str] = None


class CloudSaveException(Exception):
    """Base exception for Cloud Save services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 status_code: Optional[int] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self, stack: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details,
            stack=stack
        )


class AuthenticationError(CloudSaveException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class ValidationError(CloudSaveException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(CloudSaveException):
    """Resource missing or not owned by the caller."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class PayloadTooLargeError(CloudSaveException):
    """Request body exceeds the configured limit."""

    status_code = 413

    def __init__(self, message: str = "Payload too large", details: Optional[Dict[str, Any]] = None):
        super().__init__("PAYLOAD_TOO_LARGE", message, details)


class ServiceError(CloudSaveException):
    """Service-related errors."""

    status_code = 500

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)


class ExternalServiceError(CloudSaveException):
    """External service errors."""

    status_code = 500

    def __init__(self, service: str, message: str = "External service error",
                 details: Optional[Dict[str, Any]] = None, status: Optional[int] = None):
        self.service = service
        # Upstream HTTP status, None for transport failures
        self.status = status
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)

    @property
    def transient(self) -> bool:
        return self.status is None or self.status >= 500
