"""
Unit tests for column mapping inference.

Run: pytest tests/unit/test_column_mapping_service.py -v
"""

import pytest

from models.column_mapping import SemanticField
from services.column_mapping_service import (
    ColumnMappingService,
    classify_header,
    is_affirmative,
    validate_mapping,
)
from exceptions import DuplicateFieldMappingError, IncompleteMappingError
from tests.factories import ImportListFactory


@pytest.fixture
def service(mock_supabase):
    return ColumnMappingService(db=mock_supabase)


def saved_mapping_row(provider_id="provider-1", usage_count=3, headers=None, id="mapping-1"):
    headers = headers or ["Straße", "Hausnummer", "PLZ", "Ort"]
    fields = ["street", "house_number", "postal_code", "city"]
    mapping = {header: fields[i] if i < len(fields) else "ignore" for i, header in enumerate(headers)}
    return {
        "id": id,
        "provider_id": provider_id,
        "column_mapping": mapping,
        "usage_count": usage_count,
    }


# ===================
# HEADER CLASSIFICATION
# ===================

class TestClassifyHeader:
    """Tests for classify_header()"""

    @pytest.mark.parametrize("header, field", [
        ("Straße", SemanticField.STREET),
        ("strasse", SemanticField.STREET),
        ("Str.", SemanticField.STREET),
        ("Hausnummer", SemanticField.HOUSE_NUMBER),
        ("Nr", SemanticField.HOUSE_NUMBER),
        ("HNR-Zusatz", SemanticField.HOUSE_NUMBER_COMBINED),
        ("PLZ", SemanticField.POSTAL_CODE),
        ("Postleitzahl", SemanticField.POSTAL_CODE),
        ("Ort", SemanticField.CITY),
        ("Ortsteil", SemanticField.LOCALITY),
        ("WE", SemanticField.UNITS_RESIDENTIAL),
        ("GE", SemanticField.UNITS_COMMERCIAL),
        ("WE-Anzahl", SemanticField.UNIT_COUNT),
        ("Etage", SemanticField.FLOOR),
        ("Lage", SemanticField.POSITION),
        ("Kundennummer", SemanticField.CUSTOMER_NUMBER),
        ("Kundenname", SemanticField.CUSTOMER_NAME),
        ("Landkreis", SemanticField.IGNORE),
        ("Summe", SemanticField.IGNORE),
    ])
    def test_known_headers(self, header, field):
        assert classify_header(header).field == field

    def test_surrounding_whitespace_ignored(self):
        assert classify_header("  PLZ ").field == SemanticField.POSTAL_CODE

    def test_unknown_header(self):
        assert classify_header("Bemerkung") is None

    def test_empty_header(self):
        assert classify_header("   ") is None

    def test_city_is_anchored(self):
        """"Ortschaft" must not be taken for the city."""
        assert classify_header("Ortschaft").field == SemanticField.LOCALITY


class TestIsAffirmative:
    """Tests for is_affirmative()"""

    def test_yes_answers(self):
        assert is_affirmative("Ja, als System-Notiz") is True
        assert is_affirmative(" ja") is True

    def test_other_answers(self):
        assert is_affirmative("Nein, ignorieren") is False
        assert is_affirmative("") is False
        assert is_affirmative(None) is False


# ===================
# MAPPING VALIDATION
# ===================

class TestValidateMapping:
    """Tests for validate_mapping()"""

    def test_complete_mapping(self):
        validate_mapping({
            "Straße": SemanticField.STREET,
            "Nr": SemanticField.HOUSE_NUMBER,
            "PLZ": SemanticField.POSTAL_CODE,
            "Ort": SemanticField.CITY,
        })

    def test_combined_house_number_is_enough(self):
        validate_mapping({
            "Straße": SemanticField.STREET,
            "HNR-Zusatz": SemanticField.HOUSE_NUMBER_COMBINED,
            "PLZ": SemanticField.POSTAL_CODE,
            "Ort": SemanticField.CITY,
        })

    def test_missing_fields_listed_in_order(self):
        with pytest.raises(IncompleteMappingError) as exc_info:
            validate_mapping({"Summe": SemanticField.IGNORE})

        assert exc_info.value.details["missing_fields"] == [
            "street", "house_number", "postal_code", "city",
        ]

    def test_missing_city(self):
        with pytest.raises(IncompleteMappingError) as exc_info:
            validate_mapping({
                "Straße": SemanticField.STREET,
                "Nr": SemanticField.HOUSE_NUMBER,
                "PLZ": SemanticField.POSTAL_CODE,
            })

        assert exc_info.value.details["missing_fields"] == ["city"]

    def test_field_used_twice(self):
        with pytest.raises(DuplicateFieldMappingError) as exc_info:
            validate_mapping({
                "Straße": SemanticField.STREET,
                "Str.": SemanticField.STREET,
                "Nr": SemanticField.HOUSE_NUMBER,
                "PLZ": SemanticField.POSTAL_CODE,
                "Ort": SemanticField.CITY,
            })

        assert exc_info.value.details["columns"] == ["Straße", "Str."]

    def test_ignore_may_repeat(self):
        validate_mapping({
            "Straße": SemanticField.STREET,
            "Nr": SemanticField.HOUSE_NUMBER,
            "PLZ": SemanticField.POSTAL_CODE,
            "Ort": SemanticField.CITY,
            "Landkreis": SemanticField.IGNORE,
            "Summe": SemanticField.IGNORE,
        })

    def test_plain_strings_accepted(self):
        validate_mapping({
            "Straße": "street",
            "Nr": "house_number",
            "PLZ": "postal_code",
            "Ort": "city",
        })


# ===================
# SUGGESTION
# ===================

class TestSuggestMapping:
    """Tests for ColumnMappingService.suggest_mapping()"""

    def test_standard_german_headers(self, service):
        result = service.suggest_mapping(["Straße", "Hausnummer", "PLZ", "Ort"])

        assert result.suggested_mapping == {
            "Straße": "street",
            "Hausnummer": "house_number",
            "PLZ": "postal_code",
            "Ort": "city",
        }
        assert result.confidence == 1.0
        assert result.unmapped_columns == []
        assert result.has_saved_mapping is False

    def test_unknown_header_lowers_confidence(self, service):
        result = service.suggest_mapping(["Straße", "Hausnummer", "PLZ", "Bemerkung"])

        assert result.unmapped_columns == ["Bemerkung"]
        assert result.confidence == pytest.approx(0.75)

    def test_already_claimed_field_left_unmapped(self, service):
        result = service.suggest_mapping(["Straße", "Str.", "PLZ"])

        assert result.suggested_mapping == {"Straße": "street", "PLZ": "postal_code"}
        assert result.unmapped_columns == ["Str."]

    def test_ignored_columns_count_as_mapped(self, service):
        result = service.suggest_mapping(["Landkreis", "Summe"])

        assert result.suggested_mapping == {"Landkreis": "ignore", "Summe": "ignore"}
        assert result.confidence == 1.0

    def test_questions_for_ambiguous_columns(self, service):
        result = service.suggest_mapping(["Straße", "HNR-Zusatz", "PLZ", "Ort", "GE", "Kundenname"])

        assert [q.column for q in result.questions] == ["HNR-Zusatz", "GE", "Kundenname"]
        assert result.questions[1].options == ["Ja, WE und GE addieren", "Nein, getrennt zählen"]
        assert result.questions[2].options == ["Ja, als System-Notiz", "Nein, ignorieren"]

    def test_empty_headers(self, service):
        result = service.suggest_mapping([])

        assert result.confidence == 0.0
        assert result.suggested_mapping == {}

    def test_example_data_from_first_row(self, service):
        result = service.suggest_mapping(
            ["Straße", "PLZ"],
            [{"Straße": "Hauptstraße", "PLZ": "10115"}, {"Straße": "Nebenweg", "PLZ": "10117"}],
        )

        assert result.example_data == {"Straße": "Hauptstraße", "PLZ": "10115"}


class TestSavedMappingReuse:
    """Tests for saved provider mappings in ColumnMappingService.analyze()"""

    def test_reused_when_enough_headers_match(self, service, mock_supabase):
        saved_headers = [f"Spalte {i}" for i in range(9)]
        mock_supabase.set_table_data("csv_column_mappings", [
            saved_mapping_row(headers=saved_headers),
        ])

        result = service.analyze(saved_headers + ["Neu"], provider_id="provider-1")

        assert result.has_saved_mapping is True
        assert result.saved_mapping_id == "mapping-1"
        assert result.confidence == 0.95
        assert result.suggested_mapping["Spalte 0"] == "street"
        assert "Neu" not in result.suggested_mapping

    def test_reused_mapping_keeps_rule_table_unmapped_and_questions(self, service, mock_supabase):
        headers = ["Straße", "Hausnummer", "PLZ", "Ort", "Bemerkung", "GE"]
        mock_supabase.set_table_data("csv_column_mappings", [saved_mapping_row(headers=headers)])

        result = service.analyze(headers, provider_id="provider-1")

        assert result.has_saved_mapping is True
        assert result.suggested_mapping["Bemerkung"] == "ignore"
        assert result.unmapped_columns == ["Bemerkung"]
        assert [q.column for q in result.questions] == ["GE"]

    def test_not_reused_below_threshold(self, service, mock_supabase):
        mock_supabase.set_table_data("csv_column_mappings", [saved_mapping_row()])

        result = service.analyze(["Straße", "Hausnummer", "Kreis-Nr", "Bemerkung", "Notiz"],
                                 provider_id="provider-1")

        assert result.has_saved_mapping is False

    def test_most_used_mapping_wins(self, service, mock_supabase):
        mock_supabase.set_table_data("csv_column_mappings", [
            saved_mapping_row(id="rarely-used", usage_count=1),
            saved_mapping_row(id="often-used", usage_count=12),
        ])

        result = service.analyze(["Straße", "Hausnummer", "PLZ", "Ort"], provider_id="provider-1")

        assert result.saved_mapping_id == "often-used"

    def test_other_provider_ignored(self, service, mock_supabase):
        mock_supabase.set_table_data("csv_column_mappings", [
            saved_mapping_row(provider_id="provider-2"),
        ])

        result = service.analyze(["Straße", "Hausnummer", "PLZ", "Ort"], provider_id="provider-1")

        assert result.has_saved_mapping is False


class TestAnalyzeWithList:
    """Tests for list status handling in ColumnMappingService.analyze()"""

    def test_moves_list_to_mapping(self, service, mock_supabase):
        mock_supabase.set_table_data("project_address_lists", [
            ImportListFactory.create(id="list-1"),
        ])

        service.analyze(["Straße", "Hausnummer", "PLZ", "Ort"], list_id="list-1")

        row = mock_supabase.rows("project_address_lists")[0]
        assert row["status"] == "mapping"
        assert row["column_mapping"]["PLZ"] == "postal_code"

    def test_analyzing_again_is_allowed(self, service, mock_supabase):
        mock_supabase.set_table_data("project_address_lists", [
            ImportListFactory.create(id="list-1", status="mapping"),
        ])

        service.analyze(["Straße", "PLZ"], list_id="list-1")

        row = mock_supabase.rows("project_address_lists")[0]
        assert row["status"] == "mapping"
        assert row["column_mapping"] == {"Straße": "street", "PLZ": "postal_code"}


class TestSaveMapping:
    """Tests for ColumnMappingService.save_mapping()"""

    MAPPING = {
        "Straße": SemanticField.STREET,
        "Hausnummer": SemanticField.HOUSE_NUMBER,
        "PLZ": SemanticField.POSTAL_CODE,
        "Ort": SemanticField.CITY,
    }

    def test_new_mapping_inserted(self, service, mock_supabase):
        saved = service.save_mapping("provider-1", self.MAPPING)

        rows = mock_supabase.rows("csv_column_mappings")
        assert len(rows) == 1
        assert rows[0]["usage_count"] == 1
        assert rows[0]["column_mapping"]["Ort"] == "city"
        assert saved.usage_count == 1

    def test_identical_mapping_counted_again(self, service, mock_supabase):
        mock_supabase.set_table_data("csv_column_mappings", [saved_mapping_row(usage_count=3)])

        saved = service.save_mapping("provider-1", self.MAPPING)

        rows = mock_supabase.rows("csv_column_mappings")
        assert len(rows) == 1
        assert rows[0]["usage_count"] == 4
        assert saved.id == "mapping-1"

    def test_different_mapping_stored_separately(self, service, mock_supabase):
        mock_supabase.set_table_data("csv_column_mappings", [saved_mapping_row()])

        service.save_mapping("provider-1", {**self.MAPPING, "Etage": SemanticField.FLOOR})

        assert len(mock_supabase.rows("csv_column_mappings")) == 2
