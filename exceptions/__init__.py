"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    UnauthorizedError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Requests
    MissingFieldError,

    # Import lists
    ImportListNotFoundError,
    InvalidStatusTransitionError,
    AddressListParseError,

    # Column mapping
    IncompleteMappingError,
    DuplicateFieldMappingError,

    # Geocoding
    AddressNotFoundError,
    GeocodingError,
    AddressNotGeocodedError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "UnauthorizedError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Requests
    "MissingFieldError",

    # Import lists
    "ImportListNotFoundError",
    "InvalidStatusTransitionError",
    "AddressListParseError",

    # Column mapping
    "IncompleteMappingError",
    "DuplicateFieldMappingError",

    # Geocoding
    "AddressNotFoundError",
    "GeocodingError",
    "AddressNotGeocodedError",
]
