"""
Import list schemas.

An import list is the job record of one uploaded address file. Its status
only ever moves forward; the failure log only ever grows.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema, TimestampMixin
from models.column_mapping import SemanticField, SourceRow


class ImportListStatus(str, Enum):
    """Import list status values."""
    PENDING = "pending"
    ANALYZING = "analyzing"
    MAPPING = "mapping"
    IMPORTING = "importing"
    COMPLETED = "completed"
    FAILED = "failed"


# Status order for transition validation (lower index = earlier in flow)
STATUS_ORDER = {
    ImportListStatus.PENDING: 0,
    ImportListStatus.ANALYZING: 1,
    ImportListStatus.MAPPING: 2,
    ImportListStatus.IMPORTING: 3,
    ImportListStatus.COMPLETED: 4,
}

TERMINAL_STATUSES = {ImportListStatus.COMPLETED, ImportListStatus.FAILED}


def is_valid_import_list_transition(current: ImportListStatus, new: ImportListStatus) -> bool:
    """
    Check if import list status transition is valid.

    Rules:
    - Can skip forward (pending → importing is OK)
    - Cannot go backward (importing → mapping is NOT OK)
    - Any non-terminal status may fail
    - completed and failed are terminal
    """
    if current in TERMINAL_STATUSES:
        return False

    if new == ImportListStatus.FAILED:
        return True

    return STATUS_ORDER[new] > STATUS_ORDER[current]


class FailedAddress(BaseModel):
    """One entry of the failure log."""
    address: str
    reason: str
    type: Literal["import", "geocoding"]


class ErrorDetails(BaseModel):
    """Failure log stored on the list row, camelCase as persisted."""
    model_config = ConfigDict(populate_by_name=True)

    failed_addresses: list[FailedAddress] = Field(default_factory=list, alias="failedAddresses")
    error: Optional[str] = None


# ===================
# IMPORT LIST SCHEMAS
# ===================

class ImportListCreate(BaseSchema):
    """Create a new import list for an upload."""
    project_id: str
    name: str = Field(min_length=1, max_length=255)
    file_name: Optional[str] = None
    provider_id: Optional[str] = None


class ImportListResponse(BaseSchema, TimestampMixin):
    """Import list returned by the API."""
    id: str
    project_id: Optional[str] = None
    name: str
    file_name: Optional[str] = None
    provider_id: Optional[str] = None
    status: ImportListStatus
    column_mapping: Optional[dict[str, SemanticField]] = None
    error_details: ErrorDetails = Field(default_factory=ErrorDetails)
    upload_stats: Optional[dict] = None
    last_progress_at: Optional[datetime] = None

    @property
    def failed_addresses(self) -> list[FailedAddress]:
        return self.error_details.failed_addresses


class ImportRowsRequest(BaseModel):
    """Confirmed mapping plus the rows to import."""
    model_config = ConfigDict(populate_by_name=True)

    rows: list[dict] = Field(alias="csvData")
    column_mapping: dict[str, SemanticField] = Field(alias="columnMapping")
    question_answers: dict[str, str] = Field(default_factory=dict, alias="questionAnswers")

    def source_rows(self) -> list[SourceRow]:
        return [SourceRow.from_raw(row) for row in self.rows]


class ImportSummary(BaseModel):
    """Outcome of importing the rows of one list."""
    list_id: str
    total_rows: int
    imported: int
    duplicates_merged: int
    failed: int
    geocoding_scheduled: bool = False
