"""
Shared error handling for the products service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class AccessLayerException(Exception):
    """Base exception for service errors."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(AccessLayerException):
    """Requested entity does not exist."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class StoreError(AccessLayerException):
    """Record store failures (query, connectivity, constraints)."""

    status_code = 500

    def __init__(self, message: str = "Store error", details: Optional[Dict[str, Any]] = None, code: str = "STORE_ERROR"):
        super().__init__(code, message, details)


class StoreConnectionError(StoreError):
    """Record store unreachable or not started."""

    def __init__(self, message: str = "Store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="STORE_CONNECTION_ERROR")


class StoreConstraintError(StoreError):
    """Record store rejected a write on a constraint."""

    def __init__(self, message: str = "Store constraint violated", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="STORE_CONSTRAINT_ERROR")


class StoreQueryError(StoreError):
    """Record store rejected a query."""

    def __init__(self, message: str = "Store query failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="STORE_QUERY_ERROR")


class CacheError(AccessLayerException):
    """Cache connectivity failures."""

    status_code = 500

    def __init__(self, message: str = "Cache unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_ERROR", message, details)


class PostInsertVerificationError(AccessLayerException):
    """A freshly inserted row could not be read back from the store."""

    status_code = 500

    def __init__(self, product_id: Any, message: Optional[str] = None):
        self.product_id = product_id
        super().__init__(
            "POST_INSERT_VERIFICATION_FAILED",
            message or f"Product {product_id} not found after insert",
            {"product_id": product_id}
        )
