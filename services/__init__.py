"""
Business logic services.

Each service handles one domain area.
"""

from services.column_mapping_service import (
    ColumnMappingService,
    get_column_mapping_service,
    classify_header,
    validate_mapping,
)
from services.import_list_service import ImportListService, get_import_list_service
from services.address_service import AddressService, get_address_service
from services.address_import_service import (
    AddressImportService,
    get_address_import_service,
    build_addresses,
)
from services.geocoding_service import GeocodingService, get_geocoding_service
from services.geocode_batch_service import (
    GeocodeBatchService,
    get_geocode_batch_service,
    run_geocode_batch_step,
)

__all__ = [
    "ColumnMappingService",
    "get_column_mapping_service",
    "classify_header",
    "validate_mapping",
    "ImportListService",
    "get_import_list_service",
    "AddressService",
    "get_address_service",
    "AddressImportService",
    "get_address_import_service",
    "build_addresses",
    "GeocodingService",
    "get_geocoding_service",
    "GeocodeBatchService",
    "get_geocode_batch_service",
    "run_geocode_batch_step",
]
