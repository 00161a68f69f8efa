"""
Address import.

Turns mapped spreadsheet rows into canonical addresses, records the rows
that fail validation, merges duplicates and stores the rest without
coordinates. Geocoding is then handed to the batch driver via the task queue.
"""

from typing import Optional
import re
import structlog

from config import get_supabase_client
from models.address import NormalizedAddress
from models.column_mapping import ColumnMapping, SemanticField, SourceRow
from models.import_list import FailedAddress, ImportListStatus, ImportSummary
from services.column_mapping_service import is_affirmative, validate_mapping
from utils.address_normalization import build_normalized_address, consolidate_addresses
from utils.address_validation import describe_errors, validate_address
from exceptions import AppError

logger = structlog.get_logger(__name__)


_LEADING_INT = re.compile(r"^\s*(\d+)")
ADD_COMMERCIAL_MARKER = "addieren"


def parse_count(value: str) -> int:
    """Leading integer of a cell ("3", "3 WE", "3.0" -> 3); 0 when there is none."""
    match = _LEADING_INT.match(value or "")
    return int(match.group(1)) if match else 0


def adds_commercial_units(answer: Optional[str]) -> bool:
    """Unanswered or answered "addieren"/"Ja" means residential + commercial."""
    if not answer:
        return True
    return ADD_COMMERCIAL_MARKER in answer.lower() or is_affirmative(answer)


def unit_count(row: SourceRow, mapping: ColumnMapping, answers: dict[str, str]) -> int:
    """
    Number of units at an address, at least 1.

    An explicit unit count column wins. Otherwise residential and commercial
    units are added, or the larger one is taken when the user chose to keep
    them apart.
    """
    count = parse_count(row.value(SemanticField.UNIT_COUNT, mapping))
    if count:
        return count

    residential = parse_count(row.value(SemanticField.UNITS_RESIDENTIAL, mapping))
    commercial = parse_count(row.value(SemanticField.UNITS_COMMERCIAL, mapping))
    commercial_column = row.column_for(SemanticField.UNITS_COMMERCIAL, mapping)

    if adds_commercial_units(answers.get(commercial_column) if commercial_column else None):
        count = residential + commercial
    else:
        count = max(residential, commercial, 1)

    return count or 1


def unit_note(row: SourceRow, mapping: ColumnMapping, answers: dict[str, str]) -> Optional[str]:
    """Customer columns the user chose to keep, as "Header: value" notes."""
    notes = []
    for field in (SemanticField.CUSTOMER_NUMBER, SemanticField.CUSTOMER_NAME):
        column = row.column_for(field, mapping)
        if column is None or not is_affirmative(answers.get(column)):
            continue
        value = row.value(field, mapping)
        if value:
            notes.append(f"{column}: {value}")
    return "; ".join(notes) or None


def build_address(row: SourceRow, mapping: ColumnMapping, answers: dict[str, str]) -> NormalizedAddress:
    """Build one NormalizedAddress from a mapped row."""
    house_number = (
        row.value(SemanticField.HOUSE_NUMBER, mapping)
        or row.value(SemanticField.HOUSE_NUMBER_COMBINED, mapping)
    )

    return build_normalized_address(
        street=row.value(SemanticField.STREET, mapping),
        house_number=house_number,
        postal_code=row.value(SemanticField.POSTAL_CODE, mapping),
        city=row.value(SemanticField.CITY, mapping),
        locality=row.value(SemanticField.LOCALITY, mapping) or None,
        we_count=unit_count(row, mapping, answers),
        etage=row.value(SemanticField.FLOOR, mapping) or None,
        lage=row.value(SemanticField.POSITION, mapping) or None,
        unit_note=unit_note(row, mapping, answers),
    )


def build_addresses(
    rows: list[SourceRow],
    mapping: ColumnMapping,
    answers: Optional[dict[str, str]] = None
) -> list[NormalizedAddress]:
    """Build addresses for all rows, skipping rows with no cell content at all."""
    answers = answers or {}
    return [
        build_address(row, mapping, answers)
        for row in rows
        if any(cell.strip() for cell in row.cells.values())
    ]


class AddressImportService:
    """
    Imports the rows of an uploaded list.

    Collaborators are passed in; defaults share one database client.
    """

    def __init__(
        self,
        db=None,
        import_lists=None,
        addresses=None,
        mappings=None,
        scheduler=None,
    ):
        self.db = db or get_supabase_client()

        if import_lists is None:
            from services.import_list_service import ImportListService
            import_lists = ImportListService(db=self.db)
        if addresses is None:
            from services.address_service import AddressService
            addresses = AddressService(db=self.db)
        if mappings is None:
            from services.column_mapping_service import ColumnMappingService
            mappings = ColumnMappingService(db=self.db, import_list_service=import_lists)

        self.import_lists = import_lists
        self.addresses = addresses
        self.mappings = mappings
        self._scheduler = scheduler

    @property
    def scheduler(self):
        if self._scheduler is None:
            from integrations.task_queue import get_continuation_queue
            self._scheduler = get_continuation_queue()
        return self._scheduler

    def import_rows(
        self,
        list_id: str,
        rows: list[SourceRow],
        mapping: ColumnMapping,
        answers: Optional[dict[str, str]] = None,
        created_by: Optional[str] = None,
    ) -> ImportSummary:
        """
        Import mapped rows into a list.

        Rows failing validation are logged with type "import" and skipped;
        they never stop the other rows. The remaining addresses are merged
        by normalized key and stored without coordinates.

        Raises:
            IncompleteMappingError: If a required field is not mapped
            DuplicateFieldMappingError: If a field is mapped twice
            ImportListNotFoundError: If the list doesn't exist
            InvalidStatusTransitionError: If the list already finished
        """
        mapping = {header: SemanticField(field) for header, field in mapping.items()}
        validate_mapping(mapping)

        import_list = self.import_lists.get_by_id(list_id)
        self.import_lists.advance(list_id, ImportListStatus.IMPORTING)
        self.import_lists.set_column_mapping(list_id, mapping)

        logger.info("import_started", list_id=list_id, rows=len(rows))

        try:
            summary = self._import(import_list, rows, mapping, answers or {}, created_by)
        except AppError as e:
            self.import_lists.mark_failed(list_id, e.message)
            raise
        except Exception as e:
            self.import_lists.mark_failed(list_id, str(e))
            raise

        if import_list.provider_id:
            self.mappings.save_mapping(import_list.provider_id, mapping)

        summary.geocoding_scheduled = self._schedule_geocoding(list_id, summary.imported)

        logger.info(
            "import_complete",
            list_id=list_id,
            imported=summary.imported,
            duplicates_merged=summary.duplicates_merged,
            failed=summary.failed,
        )
        return summary

    def _import(
        self,
        import_list,
        rows: list[SourceRow],
        mapping: ColumnMapping,
        answers: dict[str, str],
        created_by: Optional[str],
    ) -> ImportSummary:
        list_id = import_list.id
        candidates = build_addresses(rows, mapping, answers)

        valid: list[NormalizedAddress] = []
        failures: list[FailedAddress] = []

        for address in candidates:
            errors = validate_address(address, candidates)
            if errors:
                failures.append(FailedAddress(
                    address=address.display,
                    reason=describe_errors(errors),
                    type="import",
                ))
            else:
                valid.append(address)

        consolidated = consolidate_addresses(valid)

        imported = 0
        for address in consolidated:
            try:
                self.addresses.create(list_id, import_list.project_id, address, created_by=created_by)
            except AppError as e:
                failures.append(FailedAddress(
                    address=address.display,
                    reason=e.message,
                    type="import",
                ))
                continue
            imported += 1

        if failures:
            self.import_lists.append_failed_addresses(list_id, failures)

        self.import_lists.update_upload_stats(list_id, {
            "total": len(candidates),
            "successful": imported,
            "failed": len(failures),
        })

        return ImportSummary(
            list_id=list_id,
            total_rows=len(candidates),
            imported=imported,
            duplicates_merged=len(valid) - len(consolidated),
            failed=len(failures),
        )

    def _schedule_geocoding(self, list_id: str, imported: int) -> bool:
        if imported == 0:
            self.import_lists.mark_completed(list_id)
            return False

        try:
            self.scheduler.schedule(list_id)
        except Exception as e:
            # Imported addresses stay; a batch step can still be started by hand
            logger.error("geocoding_schedule_failed", list_id=list_id, error=str(e))
            return False

        return True


# Singleton instance
_address_import_service: Optional[AddressImportService] = None


def get_address_import_service() -> AddressImportService:
    """Get or create AddressImportService instance."""
    global _address_import_service
    if _address_import_service is None:
        _address_import_service = AddressImportService()
    return _address_import_service
