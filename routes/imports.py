"""
Import list API routes.

Lifecycle of one uploaded address file: create the list, import mapped
rows (as JSON or as the uploaded file itself) and review what failed.
"""

from fastapi import APIRouter, Depends, File, Form, UploadFile
from typing import Optional
import json
import structlog

from models.column_mapping import SemanticField, SourceRow
from models.import_list import (
    FailedAddress,
    ImportListCreate,
    ImportListResponse,
    ImportRowsRequest,
    ImportSummary,
)
from parsers import parse_address_list
from routes.dependencies import get_current_user_id, handle_error
from services.address_import_service import get_address_import_service
from services.import_list_service import get_import_list_service
from exceptions import ValidationError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/imports", tags=["Imports"])


def _json_form_field(name: str, raw: Optional[str]) -> dict:
    """Decode a JSON object sent as a multipart form field."""
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"{name} must be valid JSON", details={"field": name}) from e
    if not isinstance(value, dict):
        raise ValidationError(f"{name} must be a JSON object", details={"field": name})
    return value


def _mapping_form_field(raw: str) -> dict[str, SemanticField]:
    mapping = _json_form_field("columnMapping", raw)
    try:
        return {header: SemanticField(field) for header, field in mapping.items()}
    except ValueError as e:
        raise ValidationError(str(e), details={"field": "columnMapping"}) from e


# ===================
# LIST ROUTES
# ===================

@router.post("", response_model=ImportListResponse, status_code=201)
async def create_import_list(
    data: ImportListCreate,
    user_id: str = Depends(get_current_user_id),
):
    """Create an import list for a new upload (status pending)."""
    try:
        service = get_import_list_service()
        return service.create(data, created_by=user_id)

    except Exception as e:
        return handle_error(e)


@router.get("/{list_id}", response_model=ImportListResponse)
async def get_import_list(
    list_id: str,
    user_id: str = Depends(get_current_user_id),
):
    """Get an import list with its status and failure log."""
    try:
        service = get_import_list_service()
        return service.get_by_id(list_id)

    except Exception as e:
        return handle_error(e)


@router.get("/{list_id}/failed-addresses", response_model=list[FailedAddress])
async def get_failed_addresses(
    list_id: str,
    user_id: str = Depends(get_current_user_id),
):
    """Addresses that failed import or geocoding, oldest first."""
    try:
        service = get_import_list_service()
        return service.get_failed_addresses(list_id)

    except Exception as e:
        return handle_error(e)


# ===================
# IMPORT ROUTES
# ===================

@router.post("/parse")
async def parse_upload(
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
):
    """
    Parse an uploaded CSV/XLSX file into headers and rows.

    The result feeds column analysis and the mapping dialog.
    """
    try:
        contents = await file.read()
        parsed = parse_address_list(contents, file.filename or "")

        return {
            "headers": parsed.headers,
            "rows": parsed.rows,
            "sample_rows": parsed.sample_rows(),
            "total_rows": len(parsed.rows),
        }

    except Exception as e:
        return handle_error(e)


@router.post("/{list_id}/rows", response_model=ImportSummary)
async def import_rows(
    list_id: str,
    data: ImportRowsRequest,
    user_id: str = Depends(get_current_user_id),
):
    """
    Import mapped rows into a list.

    Rows failing validation are logged and skipped; duplicates are merged.
    Geocoding of the imported addresses is queued afterwards.
    """
    try:
        service = get_address_import_service()
        return service.import_rows(
            list_id,
            data.source_rows(),
            data.column_mapping,
            answers=data.question_answers,
            created_by=user_id,
        )

    except Exception as e:
        return handle_error(e)


@router.post("/{list_id}/upload", response_model=ImportSummary)
async def import_file(
    list_id: str,
    file: UploadFile = File(...),
    column_mapping: str = Form(..., alias="columnMapping"),
    question_answers: Optional[str] = Form(None, alias="questionAnswers"),
    user_id: str = Depends(get_current_user_id),
):
    """
    Import an uploaded file with a confirmed mapping.

    columnMapping and questionAnswers are JSON objects sent as form fields.
    """
    try:
        mapping = _mapping_form_field(column_mapping)
        answers = {
            str(column): str(answer)
            for column, answer in _json_form_field("questionAnswers", question_answers).items()
        }

        contents = await file.read()
        parsed = parse_address_list(contents, file.filename or "")

        logger.info(
            "import_file_received",
            list_id=list_id,
            file_name=file.filename,
            rows=len(parsed.rows),
        )

        service = get_address_import_service()
        return service.import_rows(
            list_id,
            [SourceRow.from_raw(row) for row in parsed.rows],
            mapping,
            answers=answers,
            created_by=user_id,
        )

    except Exception as e:
        return handle_error(e)
