"""
Unit tests for resumable batch geocoding.

Run: pytest tests/unit/test_geocode_batch_service.py -v
"""

import math

import pytest

from models.address import Coordinates
from models.geocoding import GeocodeResult
from services.address_service import AddressService
from services.geocode_batch_service import (
    COMPLETED_MESSAGE,
    GeocodeBatchService,
    failure_reason,
)
from exceptions import AddressNotGeocodedError, DatabaseError, ImportListNotFoundError, MissingFieldError
from tests.conftest import RecordingScheduler
from tests.factories import AddressRowFactory, ImportListFactory


class StubGeocoder:
    """Resolves every address except the house numbers listed in failing."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = 0

    def geocode(self, request):
        self.calls += 1
        if request.house_number in self.failing:
            raise AddressNotGeocodedError(request.display)
        return GeocodeResult(coordinates=Coordinates(lat=52.5, lng=13.4), source="overpass")


@pytest.fixture
def list_with_addresses(mock_supabase):
    def _setup(count, status="importing", **kwargs):
        mock_supabase.set_table_data("project_address_lists", [
            ImportListFactory.create(id="list-1", status=status),
        ])
        mock_supabase.set_table_data("addresses", AddressRowFactory.create_batch(count, list_id="list-1", **kwargs))
    return _setup


def make_service(mock_supabase, geocoder=None, scheduler=None, batch_size=50):
    return GeocodeBatchService(
        db=mock_supabase,
        geocoder=geocoder or StubGeocoder(),
        scheduler=scheduler or RecordingScheduler(),
        batch_size=batch_size,
        max_workers=8,
    )


def run_until_done(service, list_id="list-1", limit=20):
    """Run steps the way the continuation queue would; returns the step count."""
    for step in range(1, limit + 1):
        response = service.run_step(list_id)
        if response.remaining == 0:
            return step
    raise AssertionError("batch geocoding did not converge")


def stored_list(mock_supabase):
    return mock_supabase.rows("project_address_lists")[0]


class TestRunStep:
    """Tests for GeocodeBatchService.run_step()"""

    def test_single_step_completes_small_list(self, mock_supabase, list_with_addresses):
        list_with_addresses(3)
        scheduler = RecordingScheduler()

        response = make_service(mock_supabase, scheduler=scheduler).run_step("list-1")

        assert response.success is True
        assert response.remaining == 0
        assert response.geocoded == 3
        assert response.message == COMPLETED_MESSAGE
        assert scheduler.scheduled == []
        assert stored_list(mock_supabase)["status"] == "completed"
        assert all(row["coordinates"] == {"lat": 52.5, "lng": 13.4} for row in mock_supabase.rows("addresses"))

    def test_work_left_schedules_next_step(self, mock_supabase, list_with_addresses):
        list_with_addresses(70)
        scheduler = RecordingScheduler()

        response = make_service(mock_supabase, scheduler=scheduler).run_step("list-1")

        assert response.geocoded == 50
        assert response.remaining == 20
        assert response.message == "Processed 50 addresses, 20 remaining"
        assert scheduler.scheduled == ["list-1"]
        assert stored_list(mock_supabase)["status"] == "importing"

    def test_converges_in_expected_number_of_steps(self, mock_supabase, list_with_addresses):
        list_with_addresses(120)
        scheduler = RecordingScheduler()

        steps = run_until_done(make_service(mock_supabase, scheduler=scheduler))

        assert steps == math.ceil(120 / 50)
        assert len(scheduler.scheduled) == steps - 1
        assert stored_list(mock_supabase)["status"] == "completed"

    def test_addresses_with_coordinates_not_selected(self, mock_supabase, list_with_addresses):
        list_with_addresses(2)
        mock_supabase.rows("addresses").append(
            AddressRowFactory.create(list_id="list-1", coordinates={"lat": 50.0, "lng": 8.0})
        )
        geocoder = StubGeocoder()

        make_service(mock_supabase, geocoder=geocoder).run_step("list-1")

        assert geocoder.calls == 2

    def test_partial_coordinates_selected(self, mock_supabase, list_with_addresses):
        list_with_addresses(0)
        mock_supabase.rows("addresses").append(
            AddressRowFactory.create(list_id="list-1", coordinates={"lat": 50.0, "lng": None})
        )
        geocoder = StubGeocoder()

        make_service(mock_supabase, geocoder=geocoder).run_step("list-1")

        assert geocoder.calls == 1

    def test_empty_list_completes(self, mock_supabase, list_with_addresses):
        list_with_addresses(0)

        response = make_service(mock_supabase).run_step("list-1")

        assert response.remaining == 0
        assert response.message == COMPLETED_MESSAGE
        assert stored_list(mock_supabase)["status"] == "completed"

    def test_repeated_step_after_completion_is_harmless(self, mock_supabase, list_with_addresses):
        list_with_addresses(2)
        service = make_service(mock_supabase)

        service.run_step("list-1")
        response = service.run_step("list-1")

        assert response.remaining == 0
        assert stored_list(mock_supabase)["status"] == "completed"

    def test_missing_list_id(self, mock_supabase):
        with pytest.raises(MissingFieldError):
            make_service(mock_supabase).run_step(None)

    def test_unknown_list(self, mock_supabase):
        with pytest.raises(ImportListNotFoundError):
            make_service(mock_supabase).run_step("missing")


class TestFailures:
    """Failure logging across steps."""

    def test_each_failure_logged_once(self, mock_supabase, list_with_addresses):
        list_with_addresses(120)
        failing = {row["house_number"] for row in mock_supabase.rows("addresses")[::30]}
        service = make_service(mock_supabase, geocoder=StubGeocoder(failing=failing))

        run_until_done(service)
        # A late duplicate step must not log anything again
        service.run_step("list-1")

        log = stored_list(mock_supabase)["error_details"]["failedAddresses"]
        assert len(log) == len(failing) == 4
        assert all(entry["type"] == "geocoding" for entry in log)
        assert all(entry["reason"].startswith("Geocoding fehlgeschlagen") for entry in log)
        assert stored_list(mock_supabase)["status"] == "completed"

    def test_failed_addresses_flagged(self, mock_supabase, list_with_addresses):
        list_with_addresses(1, house_number="99")

        response = make_service(mock_supabase, geocoder=StubGeocoder(failing={"99"})).run_step("list-1")

        assert response.failed == 1
        assert response.remaining == 0
        address = mock_supabase.rows("addresses")[0]
        assert address["geocoding_failed"] is True
        assert address["coordinates"] is None

    def test_scheduler_failure_only_logged(self, mock_supabase, list_with_addresses):
        list_with_addresses(60)

        response = make_service(mock_supabase, scheduler=RecordingScheduler(fail=True)).run_step("list-1")

        assert response.success is True
        assert response.remaining == 10

    def test_existing_log_kept(self, mock_supabase, list_with_addresses):
        list_with_addresses(1, house_number="7")
        stored_list(mock_supabase)["error_details"] = {"failedAddresses": [
            {"address": "Alt 1", "reason": "Postleitzahl fehlt", "type": "import"},
        ]}

        make_service(mock_supabase, geocoder=StubGeocoder(failing={"7"})).run_step("list-1")

        log = stored_list(mock_supabase)["error_details"]["failedAddresses"]
        assert [entry["type"] for entry in log] == ["import", "geocoding"]


class FlakyAddressService(AddressService):
    """Address store whose first coordinate writes fail."""

    def __init__(self, db, failures=1):
        super().__init__(db=db)
        self.failures = failures

    def set_coordinates(self, address_id, lat, lng):
        if self.failures:
            self.failures -= 1
            raise DatabaseError("update", "connection reset")
        super().set_coordinates(address_id, lat, lng)


class TestStoreErrors:
    """A step that dies on a store error is retried without losing failures."""

    def test_retry_after_coordinate_write_error_logs_every_failure(self, mock_supabase, list_with_addresses):
        list_with_addresses(4)
        rows = mock_supabase.rows("addresses")
        failing = {rows[0]["house_number"], rows[1]["house_number"]}
        service = GeocodeBatchService(
            db=mock_supabase,
            addresses=FlakyAddressService(mock_supabase),
            geocoder=StubGeocoder(failing=failing),
            scheduler=RecordingScheduler(),
            batch_size=50,
            max_workers=4,
        )

        with pytest.raises(DatabaseError):
            service.run_step("list-1")
        run_until_done(service)

        log = stored_list(mock_supabase)["error_details"]["failedAddresses"]
        missing = [row for row in rows if row["coordinates"] is None]
        assert len(log) == len(missing) == 2
        assert stored_list(mock_supabase)["status"] == "completed"

    def test_failures_not_flagged_when_log_write_fails(self, mock_supabase, list_with_addresses):
        list_with_addresses(2, house_number="13")
        mock_supabase.fail_on("project_address_lists", "update")

        with pytest.raises(DatabaseError):
            make_service(mock_supabase, geocoder=StubGeocoder(failing={"13"})).run_step("list-1")

        assert not any(row["geocoding_failed"] for row in mock_supabase.rows("addresses"))


class TestFailureReason:
    """Tests for failure_reason()"""

    def test_not_found(self):
        assert failure_reason(AddressNotGeocodedError("Hauptstraße 3")) == \
            "Geocoding fehlgeschlagen: Address not found"

    def test_service_reason_preferred(self):
        error = AddressNotGeocodedError("Hauptstraße 3", reason="Nominatim request failed: timeout")

        assert failure_reason(error) == "Geocoding fehlgeschlagen: Nominatim request failed: timeout"

    def test_unexpected_error(self):
        assert failure_reason(RuntimeError("boom")) == "Geocoding fehlgeschlagen: boom"
