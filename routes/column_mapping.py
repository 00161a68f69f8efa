"""
Column mapping API routes.

Suggests a header -> field mapping for an upload and remembers confirmed
mappings per data provider.
"""

from fastapi import APIRouter, Depends
import structlog

from models.column_mapping import (
    AnalyzeRequest,
    AnalyzeResponse,
    SaveMappingRequest,
    SavedMapping,
)
from routes.dependencies import get_current_user_id, handle_error
from services.column_mapping_service import get_column_mapping_service

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/imports", tags=["Column Mapping"])


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_columns(
    data: AnalyzeRequest,
    user_id: str = Depends(get_current_user_id),
):
    """
    Suggest a column mapping for the headers of an upload.

    Reuses the provider's saved mapping when it covers at least 80% of the
    headers; otherwise classifies each header and lists the questions the
    user has to answer before importing.
    """
    try:
        logger.info("analyze_columns_requested", user_id=user_id, headers=len(data.csv_headers))

        service = get_column_mapping_service()
        return service.analyze(
            data.csv_headers,
            sample_rows=data.sample_rows,
            provider_id=data.provider_id,
            list_id=data.list_id,
        )

    except Exception as e:
        return handle_error(e)


@router.post("/mappings", response_model=SavedMapping, status_code=201)
async def save_mapping(
    data: SaveMappingRequest,
    user_id: str = Depends(get_current_user_id),
):
    """Remember a confirmed mapping for a provider."""
    try:
        service = get_column_mapping_service()
        return service.save_mapping(data.provider_id, data.column_mapping)

    except Exception as e:
        return handle_error(e)
