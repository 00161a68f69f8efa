"""
Custom exception classes for the application.

Every error carries a stable code so the frontend can react to it.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "IMPORT_LIST_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class UnauthorizedError(AppError):
    """Missing or invalid credentials (401)."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# REQUEST ERRORS
# ===================

class MissingFieldError(ValidationError):
    """A required request field was not supplied."""

    def __init__(self, field: str):
        super().__init__(
            code="MISSING_FIELD",
            message=f"Missing {field}",
            details={"field": field}
        )


# ===================
# IMPORT LIST ERRORS
# ===================

class ImportListNotFoundError(NotFoundError):
    """Import list not found."""

    def __init__(self, list_id: str):
        super().__init__(
            resource="Import list",
            identifier=list_id,
            code="IMPORT_LIST_NOT_FOUND"
        )


class InvalidStatusTransitionError(ValidationError):
    """Invalid status transition."""

    def __init__(self, current_status: str, new_status: str, terminal_status: str = "completed"):
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            message=f"Cannot transition from {current_status} to {new_status}",
            details={
                "current_status": current_status,
                "new_status": new_status,
                "reason": f"Status can only move forward, and {terminal_status} is terminal"
            }
        )


class AddressListParseError(ValidationError):
    """Uploaded address list could not be read."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="ADDRESS_LIST_PARSE_ERROR",
            message=message,
            details=details
        )


# ===================
# COLUMN MAPPING ERRORS
# ===================

class IncompleteMappingError(ValidationError):
    """Required semantic fields are not mapped to any column."""

    def __init__(self, missing_fields: list[str]):
        super().__init__(
            code="MAPPING_INCOMPLETE",
            message=f"Required fields not mapped: {', '.join(missing_fields)}",
            details={"missing_fields": missing_fields}
        )


class DuplicateFieldMappingError(ValidationError):
    """The same semantic field is assigned to more than one column."""

    def __init__(self, field: str, columns: list[str]):
        super().__init__(
            code="MAPPING_DUPLICATE_FIELD",
            message=f"Field '{field}' is mapped to more than one column",
            details={"field": field, "columns": columns}
        )


# ===================
# GEOCODING ERRORS
# ===================

class AddressNotFoundError(NotFoundError):
    """Address record not found."""

    def __init__(self, address_id: str):
        super().__init__(
            resource="Address",
            identifier=address_id,
            code="ADDRESS_NOT_FOUND"
        )


class GeocodingError(ExternalServiceError):
    """A geocoding service call failed or answered with a non-success status."""

    def __init__(self, service: str, message: str, details: Optional[dict] = None):
        super().__init__(
            service=service,
            message=message,
            details=details
        )


class AddressNotGeocodedError(NotFoundError):
    """Neither geocoding tier produced coordinates for an address."""

    def __init__(self, address: str, reason: Optional[str] = None):
        super().__init__(
            resource="Coordinates",
            identifier=address,
            code="ADDRESS_NOT_GEOCODED"
        )
        self.message = "Address not found"
        if reason:
            self.details["reason"] = reason
