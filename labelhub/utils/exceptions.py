"""
Custom exception classes for LabelHub.
Provides structured error handling across the application.
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any


class LabelHubError(Exception):
    """Base exception class for LabelHub errors."""

    kind = "labelhub_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """Initialize exception with message and optional details."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """String representation of the exception."""
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.kind,
            "message": self.message,
            "details": self.details
        }


class ValidationError(LabelHubError):
    """Raised when caller input has the wrong shape, size or type."""

    kind = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None,
                 reason: Optional[str] = None, value: Optional[Any] = None,
                 details: Optional[Dict[str, Any]] = None):
        """Initialize validation error with optional field information."""
        super().__init__(message, details)
        self.field = field
        self.reason = reason or message
        self.value = value

        if field:
            self.details["field"] = field
        self.details["reason"] = self.reason
        if value is not None:
            self.details["invalid_value"] = str(value)


class NotFoundError(LabelHubError):
    """Raised when a dataset, image or blob does not exist."""

    kind = "not_found"

    def __init__(self, kind: str, id: Any, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{kind.capitalize()} '{id}' not found", details)
        self.resource_kind = kind
        self.id = str(id)
        self.details["kind"] = kind
        self.details["id"] = self.id


class DuplicateNameError(LabelHubError):
    """Raised when a dataset name is already taken."""

    kind = "duplicate_name"

    def __init__(self, name: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Dataset name '{name}' already exists", details)
        self.name = name
        self.details["name"] = name


class ConcurrentUpdateError(LabelHubError):
    """Raised when versioned writes keep conflicting after all retries."""

    kind = "concurrent_update"

    def __init__(self, id: Any, attempts: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Dataset '{id}' was modified concurrently, please retry", details)
        self.id = str(id)
        self.attempts = attempts
        self.details["id"] = self.id
        if attempts:
            self.details["attempts"] = attempts


class BlobStoreError(LabelHubError):
    """Raised when blob storage operations fail."""

    kind = "blob_store_error"

    def __init__(self, message: str, operation: Optional[str] = None,
                 blob_ref: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize storage error with optional operation details."""
        super().__init__(message, details)
        self.operation = operation
        self.blob_ref = blob_ref

        if operation:
            self.details["storage_operation"] = operation
        if blob_ref:
            self.details["blob_ref"] = blob_ref


class DatabaseError(LabelHubError):
    """Raised when database operations fail."""

    kind = "database_error"

    def __init__(self, message: str, operation: Optional[str] = None,
                 collection: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize database error with optional operation details."""
        super().__init__(message, details)
        self.operation = operation
        self.collection = collection

        if operation:
            self.details["db_operation"] = operation
        if collection:
            self.details["db_collection"] = collection


class AuthenticationError(LabelHubError):
    """Raised when an operation needs a caller identity and none was given."""

    kind = "authentication_error"


# Exception mapping for HTTP status codes
EXCEPTION_STATUS_MAP = {
    ValidationError: 400,
    AuthenticationError: 401,
    NotFoundError: 404,
    DuplicateNameError: 409,
    ConcurrentUpdateError: 409,
    BlobStoreError: 502,
    DatabaseError: 500,
    LabelHubError: 500
}


def get_http_status_code(exception: Exception) -> int:
    """Get appropriate HTTP status code for exception."""
    for exc_type, status_code in EXCEPTION_STATUS_MAP.items():
        if isinstance(exception, exc_type):
            return status_code
    return 500  # Default to internal server error


def format_exception_response(exception: LabelHubError, request_id: Optional[str] = None) -> Dict[str, Any]:
    """Format exception as standardized API error response."""
    response = exception.to_dict()
    response["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    if request_id:
        response["request_id"] = request_id

    return response
