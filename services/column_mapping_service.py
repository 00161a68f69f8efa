"""
Column mapping inference.

Classifies the headers of an uploaded address list into semantic fields
with an ordered table of pattern rules, or reuses a mapping confirmed
earlier for the same data provider.
"""

from dataclasses import dataclass
from typing import Callable, Optional
import re
import structlog

from config import get_supabase_client, settings
from models.column_mapping import (
    AnalyzeResponse,
    ColumnMapping,
    HOUSE_NUMBER_FIELDS,
    MappingQuestion,
    REQUIRED_FIELDS,
    SavedMapping,
    SemanticField,
)
from models.import_list import ImportListStatus
from exceptions import (
    DatabaseError,
    DuplicateFieldMappingError,
    IncompleteMappingError,
)

logger = structlog.get_logger(__name__)


# ===================
# QUESTIONS
# ===================

YES_PREFIX = "ja"


def _customer_note_question(header: str) -> MappingQuestion:
    return MappingQuestion(
        column=header,
        question=f'Soll "{header}" in das Notizfeld der Einheiten eingetragen werden?',
        options=["Ja, als System-Notiz", "Nein, ignorieren"],
    )


def _combined_house_number_question(header: str) -> MappingQuestion:
    return MappingQuestion(
        column=header,
        question=f'Enthält "{header}" Hausnummer und Zusatz zusammen (z.B. "12a")?',
        options=["Ja, Hausnummer mit Zusatz", "Nein, nur Hausnummer"],
    )


def _commercial_units_question(header: str) -> MappingQuestion:
    return MappingQuestion(
        column=header,
        question=f'Sollen die Gewerbeeinheiten aus "{header}" zu den Wohneinheiten addiert werden?',
        options=["Ja, WE und GE addieren", "Nein, getrennt zählen"],
    )


def is_affirmative(answer: Optional[str]) -> bool:
    """True for answers starting with "Ja"."""
    return bool(answer) and answer.strip().lower().startswith(YES_PREFIX)


# ===================
# RULE TABLE
# ===================

@dataclass(frozen=True)
class ClassificationRule:
    """One header pattern; the first matching rule in the table wins."""
    pattern: re.Pattern
    field: SemanticField
    question: Optional[Callable[[str], MappingQuestion]] = None

    def matches(self, header: str) -> bool:
        return bool(self.pattern.search(header))


def _rule(
    pattern: str,
    field: SemanticField,
    question: Optional[Callable[[str], MappingQuestion]] = None
) -> ClassificationRule:
    return ClassificationRule(re.compile(pattern, re.IGNORECASE), field, question)


# Headers are uppercased before matching, so "Straße" arrives as "STRASSE"
CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    # Administrative regions, totals and checksums carry no address data
    _rule(r"LANDKREIS|DISTRICT|KREIS|REGION|ZUSAMMEN|TOTAL|SUMME|ZEILENPRÜF|CHECKSUM|NICHT ÄNDERN|DO NOT CHANGE",
          SemanticField.IGNORE),
    _rule(r"STRASSE|STRAßE|STR\.|STREET|STRASSENNA", SemanticField.STREET),
    _rule(r"HN.*ZU|HAUS.*ZUSATZ|HNR.*ZU", SemanticField.HOUSE_NUMBER_COMBINED,
          _combined_house_number_question),
    _rule(r"^(HAUS|HN|HNR|NR|NUMMER|HOUSE|NO\.?|NUMBER|HAUSNR|HAUSNUMMER|HOUSE ?NUMBER)$",
          SemanticField.HOUSE_NUMBER),
    _rule(r"PLZ|POST|ZIP", SemanticField.POSTAL_CODE),
    _rule(r"^(ORT|CITY|STADT|ORTSNAME|GEMEINDE|WOHNORT)$", SemanticField.CITY),
    _rule(r"ORTSCHAFT|LOCALITY|TEILORT|ORTSTEIL", SemanticField.LOCALITY),
    _rule(r"^(WE|WOHNEINHEI|WOHNEINHEITEN|WOHNUNGEN|RESIDENTIAL)$", SemanticField.UNITS_RESIDENTIAL),
    _rule(r"^(GE|GEWERBE|GESCHÄFT|COMMERCIAL|GEWERBEEIN|GEWERBEEINHEITEN)$", SemanticField.UNITS_COMMERCIAL,
          _commercial_units_question),
    _rule(r"WEANZ|WE.*ANZ|ANZAHL.*WE", SemanticField.UNIT_COUNT),
    _rule(r"ETAGE|FLOOR|STOCK|^EG$|^OG$", SemanticField.FLOOR),
    _rule(r"LAGE|POSITION|SEITE", SemanticField.POSITION),
    _rule(r"KUNDEN.*NR|KUNDENNUMMER|CUSTOMER.*ID", SemanticField.CUSTOMER_NUMBER,
          _customer_note_question),
    _rule(r"KUNDEN.*NAME|KUNDENNAME|CUSTOMER.*NAME", SemanticField.CUSTOMER_NAME,
          _customer_note_question),
)


def classify_header(
    header: str,
    rules: tuple[ClassificationRule, ...] = CLASSIFICATION_RULES
) -> Optional[ClassificationRule]:
    """
    Find the rule for a header.

    Returns:
        First matching rule, or None when the header is unmapped
    """
    normalized = header.strip().upper()
    if not normalized:
        return None

    for rule in rules:
        if rule.matches(normalized):
            return rule
    return None


def validate_mapping(mapping: ColumnMapping) -> None:
    """
    Check that a mapping can be used for an import.

    Raises:
        DuplicateFieldMappingError: If a field other than ignore is used twice
        IncompleteMappingError: If a required field is not mapped
    """
    columns_by_field: dict[SemanticField, list[str]] = {}
    for header, field in mapping.items():
        columns_by_field.setdefault(SemanticField(field), []).append(header)

    for field, columns in columns_by_field.items():
        if field != SemanticField.IGNORE and len(columns) > 1:
            raise DuplicateFieldMappingError(field.value, columns)

    missing = [field.value for field in REQUIRED_FIELDS if field not in columns_by_field]
    if not any(field in columns_by_field for field in HOUSE_NUMBER_FIELDS):
        missing.insert(1, SemanticField.HOUSE_NUMBER.value)

    if missing:
        raise IncompleteMappingError(missing)


def example_data_for(headers: list[str], sample_rows: list[dict]) -> dict[str, str]:
    """First sample row's cell per header ("" when missing)."""
    if not sample_rows:
        return {}

    first_row = sample_rows[0] or {}
    example = {}
    for header in headers:
        value = first_row.get(header)
        example[header] = "" if value is None else str(value)
    return example


class ColumnMappingService:
    """
    Column mapping inference and saved provider mappings.
    """

    def __init__(self, db=None, import_list_service=None):
        self.db = db or get_supabase_client()
        self.table = "csv_column_mappings"
        self._import_list_service = import_list_service

    @property
    def import_list_service(self):
        if self._import_list_service is None:
            from services.import_list_service import ImportListService
            self._import_list_service = ImportListService(db=self.db)
        return self._import_list_service

    # ===================
    # INFERENCE
    # ===================

    def analyze(
        self,
        headers: list[str],
        sample_rows: Optional[list[dict]] = None,
        provider_id: Optional[str] = None,
        list_id: Optional[str] = None,
    ) -> AnalyzeResponse:
        """
        Suggest a mapping for the headers of an upload.

        A saved mapping of the provider is reused verbatim when enough of the
        current headers appear in it; otherwise every header is classified by
        the rule table.

        Args:
            headers: Header row in file order
            sample_rows: A few data rows (header -> cell)
            provider_id: Data provider the file came from
            list_id: Import list to move through analyzing -> mapping

        Returns:
            AnalyzeResponse
        """
        sample_rows = sample_rows or []

        logger.info(
            "analyzing_columns",
            headers=len(headers),
            sample_rows=len(sample_rows),
            provider_id=provider_id,
        )

        if list_id:
            self.import_list_service.advance(list_id, ImportListStatus.ANALYZING)

        response = self.suggest_mapping(headers, sample_rows)
        if provider_id:
            response = self._reuse_saved_mapping(headers, response, provider_id) or response

        if list_id:
            self.import_list_service.set_column_mapping(list_id, {
                header: SemanticField(field)
                for header, field in response.suggested_mapping.items()
            })
            self.import_list_service.advance(list_id, ImportListStatus.MAPPING)

        return response

    def suggest_mapping(
        self,
        headers: list[str],
        sample_rows: Optional[list[dict]] = None,
    ) -> AnalyzeResponse:
        """
        Classify every header with the rule table.

        A field already claimed by an earlier header leaves later headers
        unmapped. Confidence is the share of headers that got a field.
        """
        suggested: dict[str, str] = {}
        unmapped: list[str] = []
        questions: list[MappingQuestion] = []
        claimed: set[SemanticField] = set()

        for header in headers:
            rule = classify_header(header)

            if rule is None or (rule.field != SemanticField.IGNORE and rule.field in claimed):
                unmapped.append(header)
                continue

            suggested[header] = rule.field.value
            if rule.field != SemanticField.IGNORE:
                claimed.add(rule.field)
            if rule.question is not None:
                questions.append(rule.question(header))

        confidence = len(suggested) / len(headers) if headers else 0.0

        logger.info(
            "columns_classified",
            mapped=len(suggested),
            unmapped=len(unmapped),
            questions=len(questions),
            confidence=round(confidence, 2),
        )

        return AnalyzeResponse(
            suggested_mapping=suggested,
            confidence=confidence,
            has_saved_mapping=False,
            unmapped_columns=unmapped,
            questions=questions,
            example_data=example_data_for(headers, sample_rows or []),
        )

    def _reuse_saved_mapping(
        self,
        headers: list[str],
        heuristic: AnalyzeResponse,
        provider_id: str,
    ) -> Optional[AnalyzeResponse]:
        """
        Swap in the provider's saved mapping when it covers the headers.

        Unmapped columns and questions stay those of the rule table pass.
        """
        saved = self.get_best_saved_mapping(provider_id)
        if saved is None or not headers:
            return None

        saved_headers = set(saved.column_mapping)
        match_count = sum(1 for header in headers if header in saved_headers)
        match_pct = match_count / len(headers)

        if match_pct < settings.saved_mapping_match_threshold:
            logger.info(
                "saved_mapping_not_reused",
                provider_id=provider_id,
                mapping_id=saved.id,
                match_pct=round(match_pct, 2),
            )
            return None

        logger.info(
            "saved_mapping_reused",
            provider_id=provider_id,
            mapping_id=saved.id,
            match_pct=round(match_pct, 2),
        )

        return heuristic.model_copy(update={
            "suggested_mapping": {header: field.value for header, field in saved.column_mapping.items()},
            "confidence": settings.saved_mapping_confidence,
            "has_saved_mapping": True,
            "saved_mapping_id": saved.id,
        })

    # ===================
    # SAVED MAPPINGS
    # ===================

    def get_best_saved_mapping(self, provider_id: str) -> Optional[SavedMapping]:
        """Most used saved mapping of a provider, if any."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("provider_id", provider_id)
                .order("usage_count", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_saved_mapping_failed", provider_id=provider_id, error=str(e))
            raise DatabaseError("select", str(e), details={"provider_id": provider_id})

        if not result.data:
            return None

        return self._row_to_saved_mapping(result.data[0])

    def save_mapping(self, provider_id: str, mapping: ColumnMapping) -> SavedMapping:
        """
        Remember a confirmed mapping for a provider.

        An identical mapping already saved for the provider gets its usage
        count incremented instead of being stored twice.
        """
        mapping_values = {header: SemanticField(field).value for header, field in mapping.items()}

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("provider_id", provider_id)
                .execute()
            )
            for row in result.data or []:
                if row.get("column_mapping") == mapping_values:
                    usage_count = (row.get("usage_count") or 0) + 1
                    self.db.table(self.table).update({
                        "usage_count": usage_count,
                    }).eq("id", row["id"]).execute()
                    logger.info(
                        "saved_mapping_used_again",
                        provider_id=provider_id,
                        mapping_id=row["id"],
                        usage_count=usage_count,
                    )
                    return self._row_to_saved_mapping({**row, "usage_count": usage_count})

            inserted = self.db.table(self.table).insert({
                "provider_id": provider_id,
                "column_mapping": mapping_values,
                "usage_count": 1,
            }).execute()
        except Exception as e:
            logger.error("save_mapping_failed", provider_id=provider_id, error=str(e))
            raise DatabaseError("upsert", str(e), details={"provider_id": provider_id})

        saved = self._row_to_saved_mapping(inserted.data[0])
        logger.info("saved_mapping_created", provider_id=provider_id, mapping_id=saved.id)
        return saved

    def _row_to_saved_mapping(self, row: dict) -> SavedMapping:
        return SavedMapping(
            id=row["id"],
            provider_id=row["provider_id"],
            column_mapping=row.get("column_mapping") or {},
            usage_count=row.get("usage_count") or 0,
        )


# Singleton instance
_column_mapping_service: Optional[ColumnMappingService] = None


def get_column_mapping_service() -> ColumnMappingService:
    """Get or create ColumnMappingService instance."""
    global _column_mapping_service
    if _column_mapping_service is None:
        _column_mapping_service = ColumnMappingService()
    return _column_mapping_service
