"""
Import list service.

Owns the job record of an uploaded address file: status transitions,
column mapping and the append-only failure log.
"""

from typing import Optional
from datetime import datetime
import structlog

from config import get_supabase_client
from models.column_mapping import ColumnMapping
from models.import_list import (
    ErrorDetails,
    FailedAddress,
    ImportListCreate,
    ImportListResponse,
    ImportListStatus,
    STATUS_ORDER,
    TERMINAL_STATUSES,
    is_valid_import_list_transition,
)
from exceptions import (
    DatabaseError,
    ImportListNotFoundError,
    InvalidStatusTransitionError,
)

logger = structlog.get_logger(__name__)


APPEND_ATTEMPTS = 5


def _now() -> str:
    return datetime.utcnow().isoformat()


class ImportListService:
    """
    Import list management.

    Appends to the failure log are conditional on the row being unchanged
    since it was read, so overlapping batch steps never overwrite each
    other's entries.
    """

    def __init__(self, db=None):
        self.db = db or get_supabase_client()
        self.table = "project_address_lists"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, list_id: str) -> ImportListResponse:
        """
        Get a single import list by ID.

        Raises:
            ImportListNotFoundError: If list doesn't exist
        """
        return self._row_to_response(self._get_row(list_id))

    def exists(self, list_id: str) -> bool:
        try:
            self.get_by_id(list_id)
            return True
        except ImportListNotFoundError:
            return False

    def get_failed_addresses(self, list_id: str) -> list[FailedAddress]:
        """Failure log of a list, oldest entry first."""
        return self.get_by_id(list_id).failed_addresses

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, data: ImportListCreate, created_by: Optional[str] = None) -> ImportListResponse:
        """Create a new list in status pending."""
        logger.info("creating_import_list", project_id=data.project_id, name=data.name)

        row = {
            "project_id": data.project_id,
            "name": data.name,
            "file_name": data.file_name,
            "provider_id": data.provider_id,
            "status": ImportListStatus.PENDING.value,
            "error_details": {"failedAddresses": []},
            "last_progress_at": _now(),
        }
        if created_by:
            row["created_by"] = created_by

        try:
            result = self.db.table(self.table).insert(row).execute()
        except Exception as e:
            logger.error("create_import_list_failed", project_id=data.project_id, error=str(e))
            raise DatabaseError("insert", str(e))

        created = self._row_to_response(result.data[0])
        logger.info("import_list_created", list_id=created.id)
        return created

    def update_status(self, list_id: str, new_status: ImportListStatus) -> ImportListResponse:
        """
        Move a list forward.

        Moving to the current status is a no-op.

        Raises:
            ImportListNotFoundError: If list doesn't exist
            InvalidStatusTransitionError: If the move goes backward or leaves a terminal status
        """
        existing = self.get_by_id(list_id)
        current_status = existing.status

        if current_status == new_status:
            return existing

        if not is_valid_import_list_transition(current_status, new_status):
            raise InvalidStatusTransitionError(
                current_status=current_status.value,
                new_status=new_status.value,
            )

        self._update(list_id, {"status": new_status.value, "last_progress_at": _now()})

        logger.info(
            "import_list_status_updated",
            list_id=list_id,
            from_status=current_status.value,
            to_status=new_status.value
        )

        return self.get_by_id(list_id)

    def advance(self, list_id: str, new_status: ImportListStatus) -> ImportListResponse:
        """
        Move a list forward unless it is already at or past new_status.

        Lets a step run again (re-analysis, a repeated import) without
        tripping the backward-transition check.
        """
        existing = self.get_by_id(list_id)

        if (
            existing.status not in TERMINAL_STATUSES
            and new_status in STATUS_ORDER
            and STATUS_ORDER[existing.status] >= STATUS_ORDER[new_status]
        ):
            return existing

        return self.update_status(list_id, new_status)

    def mark_completed(self, list_id: str) -> ImportListResponse:
        """
        Mark a list completed.

        Safe to call repeatedly; a list that already completed stays as it is.
        A failed list is left failed.
        """
        existing = self.get_by_id(list_id)

        if existing.status == ImportListStatus.COMPLETED:
            return existing

        if existing.status == ImportListStatus.FAILED:
            logger.warning("import_list_failed_not_completing", list_id=list_id)
            return existing

        return self.update_status(list_id, ImportListStatus.COMPLETED)

    def mark_failed(self, list_id: str, error: str) -> ImportListResponse:
        """Fail a list, keeping its failure log and recording the error."""
        existing = self.get_by_id(list_id)

        if not is_valid_import_list_transition(existing.status, ImportListStatus.FAILED):
            raise InvalidStatusTransitionError(
                current_status=existing.status.value,
                new_status=ImportListStatus.FAILED.value,
            )

        details = existing.error_details.model_copy(update={"error": error})
        self._update(list_id, {
            "status": ImportListStatus.FAILED.value,
            "error_details": details.model_dump(by_alias=True),
            "last_progress_at": _now(),
        })

        logger.error("import_list_failed", list_id=list_id, error=error)
        return self.get_by_id(list_id)

    def set_column_mapping(self, list_id: str, mapping: ColumnMapping) -> None:
        """Store the mapping used (or suggested) for a list."""
        self._update(list_id, {
            "column_mapping": {header: field.value for header, field in mapping.items()},
        })

    def update_upload_stats(self, list_id: str, stats: dict) -> None:
        self._update(list_id, {"upload_stats": stats, "last_progress_at": _now()})

    def touch_progress(self, list_id: str) -> None:
        """Record that work happened on a list."""
        self._update(list_id, {"last_progress_at": _now()})

    def append_failed_addresses(self, list_id: str, entries: list[FailedAddress]) -> int:
        """
        Append entries to a list's failure log.

        Existing entries are never replaced or reordered. The write only
        lands when the row is unchanged since it was read; otherwise the log
        is read again and the append retried.

        Returns:
            Total number of entries after the append

        Raises:
            ImportListNotFoundError: If list doesn't exist
            DatabaseError: If the write fails or keeps losing to other writers
        """
        for attempt in range(1, APPEND_ATTEMPTS + 1):
            row = self._get_row(list_id)
            existing = self._row_to_response(row)
            failed = list(existing.failed_addresses)

            if not entries:
                return len(failed)

            failed.extend(entries)
            details = existing.error_details.model_copy(update={"failed_addresses": failed})
            now = _now()

            query = self.db.table(self.table).update({
                "error_details": details.model_dump(by_alias=True, exclude_none=True),
                "last_progress_at": now,
                "updated_at": now,
            }).eq("id", list_id)
            if row.get("updated_at") is None:
                query = query.is_("updated_at", "null")
            else:
                query = query.eq("updated_at", row["updated_at"])

            try:
                result = query.execute()
            except Exception as e:
                logger.error("append_failed_addresses_failed", list_id=list_id, error=str(e))
                raise DatabaseError("update", str(e), details={"list_id": list_id})

            if result.data:
                logger.info(
                    "failed_addresses_appended",
                    list_id=list_id,
                    added=len(entries),
                    total=len(failed),
                )
                return len(failed)

            logger.info("failed_addresses_append_conflict", list_id=list_id, attempt=attempt)

        raise DatabaseError(
            "update",
            "failure log kept changing during append",
            details={"list_id": list_id},
        )

    # ===================
    # HELPERS
    # ===================

    def _get_row(self, list_id: str) -> dict:
        logger.debug("getting_import_list", list_id=list_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", list_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_import_list_failed", list_id=list_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise ImportListNotFoundError(list_id)

        return result.data[0]

    def _update(self, list_id: str, values: dict) -> None:
        try:
            self.db.table(self.table).update(values).eq("id", list_id).execute()
        except Exception as e:
            logger.error("update_import_list_failed", list_id=list_id, error=str(e))
            raise DatabaseError("update", str(e), details={"list_id": list_id})

    def _row_to_response(self, row: dict) -> ImportListResponse:
        """Convert database row to ImportListResponse."""
        return ImportListResponse(
            id=row["id"],
            project_id=row.get("project_id"),
            name=row.get("name") or "",
            file_name=row.get("file_name"),
            provider_id=row.get("provider_id"),
            status=row["status"],
            column_mapping=row.get("column_mapping"),
            error_details=ErrorDetails.model_validate(row.get("error_details") or {}),
            upload_stats=row.get("upload_stats"),
            last_progress_at=row.get("last_progress_at"),
            created_at=row["created_at"],
            updated_at=row.get("updated_at"),
        )


# Singleton instance
_import_list_service: Optional[ImportListService] = None


def get_import_list_service() -> ImportListService:
    """Get or create ImportListService instance."""
    global _import_list_service
    if _import_list_service is None:
        _import_list_service = ImportListService()
    return _import_list_service
