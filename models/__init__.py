"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
)
from models.column_mapping import (
    SemanticField,
    ColumnMapping,
    REQUIRED_FIELDS,
    HOUSE_NUMBER_FIELDS,
    MappingQuestion,
    SourceRow,
    AnalyzeRequest,
    AnalyzeResponse,
    SavedMapping,
    SaveMappingRequest,
)
from models.address import (
    Coordinates,
    NormalizedAddress,
    AddressValidationError,
    AddressResponse,
)
from models.import_list import (
    ImportListStatus,
    is_valid_import_list_transition,
    FailedAddress,
    ErrorDetails,
    ImportListCreate,
    ImportListResponse,
    ImportRowsRequest,
    ImportSummary,
)
from models.geocoding import (
    GeocodeRequest,
    GeocodeResult,
    GeocodeResponse,
    BatchGeocodeRequest,
    BatchGeocodeResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",
    # Column mapping
    "SemanticField",
    "ColumnMapping",
    "REQUIRED_FIELDS",
    "HOUSE_NUMBER_FIELDS",
    "MappingQuestion",
    "SourceRow",
    "AnalyzeRequest",
    "AnalyzeResponse",
    "SavedMapping",
    "SaveMappingRequest",
    # Address
    "Coordinates",
    "NormalizedAddress",
    "AddressValidationError",
    "AddressResponse",
    # Import list
    "ImportListStatus",
    "is_valid_import_list_transition",
    "FailedAddress",
    "ErrorDetails",
    "ImportListCreate",
    "ImportListResponse",
    "ImportRowsRequest",
    "ImportSummary",
    # Geocoding
    "GeocodeRequest",
    "GeocodeResult",
    "GeocodeResponse",
    "BatchGeocodeRequest",
    "BatchGeocodeResponse",
]
