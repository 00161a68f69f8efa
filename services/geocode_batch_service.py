"""
Resumable batch geocoding.

One step geocodes up to batch_size addresses of a list that still lack
coordinates, logs the failures and, when work is left, schedules the next
step on the task queue. An address that fails is flagged once its log entry
is stored, so later steps skip it and each failure is logged once.

Steps keep no state of their own: every step selects its work from the
database again, so a step that dies on a store error can simply run again.
Overlapping steps for the same list may log an address twice but never drop
an entry.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Optional
import structlog

from config import get_supabase_client, settings
from models.address import AddressResponse
from models.geocoding import BatchGeocodeResponse, GeocodeRequest, GeocodeResult
from models.import_list import FailedAddress
from exceptions import AppError, MissingFieldError

logger = structlog.get_logger(__name__)


FAILURE_REASON_PREFIX = "Geocoding fehlgeschlagen"
COMPLETED_MESSAGE = "Geocoding completed"


def failure_reason(error: Exception) -> str:
    """Failure log text for an address that could not be geocoded."""
    if isinstance(error, AppError):
        detail = error.details.get("reason") or error.message
    else:
        detail = str(error) or type(error).__name__
    return f"{FAILURE_REASON_PREFIX}: {detail}"


class GeocodeBatchService:
    """
    Batch geocoding driver for import lists.

    Collaborators are passed in so a step can run against any store,
    resolver and scheduler; defaults are built from settings.
    """

    def __init__(
        self,
        db=None,
        import_lists=None,
        addresses=None,
        geocoder=None,
        scheduler=None,
        batch_size: Optional[int] = None,
        max_workers: Optional[int] = None,
    ):
        self.db = db or get_supabase_client()
        self.batch_size = batch_size or settings.geocode_batch_size
        self.max_workers = max_workers or settings.geocode_max_workers

        if import_lists is None:
            from services.import_list_service import ImportListService
            import_lists = ImportListService(db=self.db)
        if addresses is None:
            from services.address_service import AddressService
            addresses = AddressService(db=self.db)
        if geocoder is None:
            from services.geocoding_service import GeocodingService
            geocoder = GeocodingService()
        if scheduler is None:
            from integrations.task_queue import get_continuation_queue
            scheduler = get_continuation_queue()

        self.import_lists = import_lists
        self.addresses = addresses
        self.geocoder = geocoder
        self.scheduler = scheduler

    def run_step(self, list_id: Optional[str]) -> BatchGeocodeResponse:
        """
        Run one batch step for a list.

        Args:
            list_id: Import list to work on

        Returns:
            BatchGeocodeResponse with the count of addresses still missing
            coordinates

        Raises:
            MissingFieldError: If no list_id is given
            ImportListNotFoundError: If the list doesn't exist
            DatabaseError: If reading or writing the store fails
        """
        if not list_id:
            raise MissingFieldError("listId")

        # Raises for unknown lists before any work is selected
        self.import_lists.get_by_id(list_id)

        batch = self.addresses.get_missing_coordinates(list_id, self.batch_size)

        if not batch:
            self.import_lists.mark_completed(list_id)
            logger.info("geocode_batch_nothing_left", list_id=list_id)
            return BatchGeocodeResponse(
                success=True,
                message=COMPLETED_MESSAGE,
                remaining=0,
            )

        logger.info("geocode_batch_started", list_id=list_id, batch=len(batch))

        resolved, failures = self._geocode_batch(batch)

        for address, result in resolved:
            self.addresses.set_coordinates(
                address.id,
                result.coordinates.lat,
                result.coordinates.lng,
            )
        geocoded = len(resolved)

        if failures:
            # Flag only after the log append went through; a step that dies
            # before then leaves the failures selectable for the retry.
            self.import_lists.append_failed_addresses(list_id, [entry for _, entry in failures])
            for address, _ in failures:
                self.addresses.mark_geocoding_failed(address.id)
        else:
            self.import_lists.touch_progress(list_id)

        remaining = self.addresses.count_missing_coordinates(list_id)

        if remaining > 0:
            self._schedule_next_step(list_id)
            message = f"Processed {len(batch)} addresses, {remaining} remaining"
        else:
            self.import_lists.mark_completed(list_id)
            message = COMPLETED_MESSAGE

        logger.info(
            "geocode_batch_finished",
            list_id=list_id,
            geocoded=geocoded,
            failed=len(failures),
            remaining=remaining,
        )

        return BatchGeocodeResponse(
            success=True,
            message=message,
            remaining=remaining,
            geocoded=geocoded,
            failed=len(failures),
        )

    # ===================
    # HELPERS
    # ===================

    def _geocode_batch(
        self,
        batch: list[AddressResponse],
    ) -> tuple[list[tuple[AddressResponse, GeocodeResult]], list[tuple[AddressResponse, FailedAddress]]]:
        """
        Resolve all addresses of a batch concurrently.

        Nothing is written here, so a store error later in the step loses no
        failure. Failures are not retried.
        """
        resolved: list[tuple[AddressResponse, GeocodeResult]] = []
        failures: list[tuple[AddressResponse, FailedAddress]] = []
        workers = max(1, min(self.max_workers, len(batch)))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self._resolve, address): address
                for address in batch
            }
            for future in as_completed(futures):
                address = futures[future]
                try:
                    resolved.append((address, future.result()))
                except Exception as e:
                    logger.info(
                        "address_not_geocoded",
                        address_id=address.id,
                        address=address.display,
                        error=str(e),
                    )
                    failures.append((address, FailedAddress(
                        address=address.display,
                        reason=failure_reason(e),
                        type="geocoding",
                    )))

        return resolved, failures

    def _resolve(self, address: AddressResponse) -> GeocodeResult:
        request = GeocodeRequest(
            street=address.street,
            house_number=address.house_number,
            postal_code=address.postal_code or None,
            city=address.city or None,
        )
        return self.geocoder.geocode(request)

    def _schedule_next_step(self, list_id: str) -> None:
        try:
            job_id = self.scheduler.schedule(list_id)
        except Exception as e:
            # Committed work stays; the list shows up as stalled via last_progress_at
            logger.error("geocode_continuation_failed", list_id=list_id, error=str(e))
            return

        logger.info("geocode_continuation_scheduled", list_id=list_id, job_id=job_id)


def run_geocode_batch_step(list_id: str) -> dict:
    """
    Task queue entry point for one batch step.

    Runs outside any request, so it uses the service-role client.
    """
    from config import configure_logging, get_admin_client

    configure_logging()
    service = GeocodeBatchService(db=get_admin_client())
    return service.run_step(list_id).model_dump()


# Singleton instance
_geocode_batch_service: Optional[GeocodeBatchService] = None


def get_geocode_batch_service() -> GeocodeBatchService:
    """Get or create GeocodeBatchService instance."""
    global _geocode_batch_service
    if _geocode_batch_service is None:
        _geocode_batch_service = GeocodeBatchService()
    return _geocode_batch_service
