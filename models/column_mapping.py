"""
Column mapping schemas.

A column mapping associates raw spreadsheet headers with semantic address
fields. Rows keep their original header text; lookups go through the mapping.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional
from enum import Enum


class SemanticField(str, Enum):
    """Canonical meaning of a spreadsheet column."""
    STREET = "street"
    HOUSE_NUMBER = "house_number"
    HOUSE_NUMBER_COMBINED = "house_number_combined"
    POSTAL_CODE = "postal_code"
    CITY = "city"
    LOCALITY = "locality"
    UNITS_RESIDENTIAL = "units_residential"
    UNITS_COMMERCIAL = "units_commercial"
    UNIT_COUNT = "unit_count"
    FLOOR = "floor"
    POSITION = "position"
    CUSTOMER_NUMBER = "customer_number"
    CUSTOMER_NAME = "customer_name"
    IGNORE = "ignore"


# Header text -> semantic field
ColumnMapping = dict[str, SemanticField]

# Every one of these must be mapped before an import may proceed.
# A house number is satisfied by either variant.
REQUIRED_FIELDS: tuple[SemanticField, ...] = (
    SemanticField.STREET,
    SemanticField.POSTAL_CODE,
    SemanticField.CITY,
)
HOUSE_NUMBER_FIELDS: tuple[SemanticField, ...] = (
    SemanticField.HOUSE_NUMBER,
    SemanticField.HOUSE_NUMBER_COMBINED,
)


class MappingQuestion(BaseModel):
    """Question the user has to answer before a mapping is final."""
    column: str
    question: str
    options: list[str]
    type: Literal["radio", "select"] = "radio"
    required: bool = True


class SourceRow(BaseModel):
    """
    One raw spreadsheet row.

    Cells stay keyed by their declared header text in file order.
    Semantic access goes through a ColumnMapping.
    """
    cells: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: dict) -> "SourceRow":
        """Build from an arbitrary header -> value dict (None becomes "")."""
        return cls(cells={
            str(header): "" if value is None else str(value)
            for header, value in raw.items()
        })

    def column_for(self, field: SemanticField, mapping: ColumnMapping) -> Optional[str]:
        """First header mapped to the given field, if any."""
        for header, mapped in mapping.items():
            if mapped == field:
                return header
        return None

    def value(self, field: SemanticField, mapping: ColumnMapping) -> str:
        """Trimmed cell text for a semantic field ("" when unmapped or empty)."""
        header = self.column_for(field, mapping)
        if header is None:
            return ""
        return self.cells.get(header, "").strip()


# ===================
# REQUEST / RESPONSE SCHEMAS
# ===================

class AnalyzeRequest(BaseModel):
    """
    Column analysis request, camelCase on the wire.

    Headers are kept verbatim (no whitespace stripping) so they still match
    the keys of the sample rows.
    """
    model_config = ConfigDict(populate_by_name=True)

    csv_headers: list[str] = Field(alias="csvHeaders")
    sample_rows: list[dict] = Field(default_factory=list, alias="sampleRows")
    provider_id: Optional[str] = Field(None, alias="providerId")
    list_id: Optional[str] = Field(
        None,
        alias="listId",
        description="Import list to move through analyzing -> mapping"
    )


class AnalyzeResponse(BaseModel):
    """Suggested mapping for a set of headers."""
    suggested_mapping: dict[str, str]
    confidence: float = Field(ge=0.0, le=1.0)
    has_saved_mapping: bool = False
    saved_mapping_id: Optional[str] = None
    unmapped_columns: list[str] = Field(default_factory=list)
    questions: list[MappingQuestion] = Field(default_factory=list)
    example_data: dict[str, str] = Field(default_factory=dict)


class SavedMapping(BaseModel):
    """Confirmed mapping remembered per data provider."""
    id: str
    provider_id: str
    column_mapping: dict[str, SemanticField]
    usage_count: int = 0


class SaveMappingRequest(BaseModel):
    """Remember a confirmed mapping for a provider."""
    model_config = ConfigDict(populate_by_name=True)

    provider_id: str = Field(alias="providerId")
    column_mapping: dict[str, SemanticField] = Field(alias="columnMapping")
