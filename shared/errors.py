"""
Shared error handling for the catalog service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class CatalogException(Exception):
    """Base exception for catalog components."""

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


class NotFoundError(CatalogException):
    """Requested entity does not exist."""

    def __init__(self, message: str = "Entity not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class StoreUnavailableError(CatalogException):
    """Backing store unreachable or transaction failed."""

    def __init__(self, message: str = "Catalog store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_UNAVAILABLE", message, details)


class ValidationError(CatalogException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class CacheUnavailableError(CatalogException):
    """Cache facility failure. Never surfaced past the caching repository."""

    def __init__(self, message: str = "Cache unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_UNAVAILABLE", message, details)


HTTP_STATUS_BY_CODE: Dict[str, int] = {
    "NOT_FOUND": 404,
    "VALIDATION_ERROR": 422,
    "STORE_UNAVAILABLE": 503,
}


def http_status_for(exc: CatalogException) -> int:
    """Map an error code to an HTTP status code."""
    return HTTP_STATUS_BY_CODE.get(exc.code, 500)
