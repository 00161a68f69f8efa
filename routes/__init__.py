"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.column_mapping import router as column_mapping_router
from routes.imports import router as imports_router
from routes.geocoding import router as geocoding_router

__all__ = [
    "column_mapping_router",
    "imports_router",
    "geocoding_router",
]
