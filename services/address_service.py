"""
Address service.

Persists imported addresses and their units, and serves the geocoder's
work selection: addresses of a list that still lack coordinates and have
not already failed both geocoding tiers.
"""

from typing import Optional
import structlog

from config import get_supabase_client
from models.address import (
    AddressResponse,
    BLOCKED_ADDRESS_STATUS,
    BLOCKED_UNIT_STATUS,
    DEFAULT_ADDRESS_STATUS,
    NormalizedAddress,
)
from exceptions import AddressNotFoundError, DatabaseError

logger = structlog.get_logger(__name__)


# PostgREST filter: coordinates missing entirely or partially
MISSING_COORDINATES_FILTER = "coordinates.is.null,coordinates->lat.is.null,coordinates->lng.is.null"
# Addresses both geocoding tiers gave up on are left out of work selection
FAILED_FLAG = "geocoding_failed"
ADDRESS_COLUMNS = "id, list_id, project_id, street, house_number, postal_code, city, locality, coordinates, geocoding_failed, created_at"


class AddressService:
    """Address persistence for imports and geocoding."""

    def __init__(self, db=None):
        self.db = db or get_supabase_client()
        self.table = "addresses"
        self.units_table = "units"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, address_id: str) -> AddressResponse:
        """
        Get a single address.

        Raises:
            AddressNotFoundError: If address doesn't exist
        """
        try:
            result = (
                self.db.table(self.table)
                .select(ADDRESS_COLUMNS)
                .eq("id", address_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_address_failed", address_id=address_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise AddressNotFoundError(address_id)

        return self._row_to_response(result.data[0])

    def get_missing_coordinates(self, list_id: str, limit: int) -> list[AddressResponse]:
        """
        Addresses of a list without coordinates.

        Selection is by current state, not by offset, so repeated or
        overlapping calls always see the work that is actually left.
        """
        try:
            result = (
                self.db.table(self.table)
                .select(ADDRESS_COLUMNS)
                .eq("list_id", list_id)
                .or_(MISSING_COORDINATES_FILTER)
                .eq(FAILED_FLAG, False)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error("get_missing_coordinates_failed", list_id=list_id, error=str(e))
            raise DatabaseError("select", str(e), details={"list_id": list_id})

        return [self._row_to_response(row) for row in result.data or []]

    def count_missing_coordinates(self, list_id: str) -> int:
        """Number of addresses of a list without coordinates."""
        try:
            result = (
                self.db.table(self.table)
                .select("id", count="exact")
                .eq("list_id", list_id)
                .or_(MISSING_COORDINATES_FILTER)
                .eq(FAILED_FLAG, False)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("count_missing_coordinates_failed", list_id=list_id, error=str(e))
            raise DatabaseError("count", str(e), details={"list_id": list_id})

        return result.count or 0

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(
        self,
        list_id: str,
        project_id: Optional[str],
        address: NormalizedAddress,
        created_by: Optional[str] = None,
    ) -> AddressResponse:
        """
        Insert an address without coordinates, plus one unit per we_count.

        Raises:
            DatabaseError: If the address insert fails
        """
        row = {
            "list_id": list_id,
            "project_id": project_id,
            "street": address.street,
            "house_number": address.house_number,
            "postal_code": address.postal_code,
            "city": address.city,
            "locality": address.locality or "",
            "coordinates": None,
            FAILED_FLAG: False,
            "notiz": address.notiz_adresse or "",
            "normalized_key": address.normalized_key,
        }
        if created_by:
            row["created_by"] = created_by

        try:
            result = self.db.table(self.table).insert(row).execute()
        except Exception as e:
            logger.error(
                "create_address_failed",
                list_id=list_id,
                address=address.display,
                error=str(e),
            )
            raise DatabaseError("insert", str(e), details={"address": address.display})

        created = self._row_to_response(result.data[0])

        if address.we_count > 0:
            self._create_units(created.id, address)

        return created

    def set_coordinates(self, address_id: str, lat: float, lng: float) -> None:
        """
        Store resolved coordinates.

        Raises:
            DatabaseError: If the write fails
        """
        try:
            self.db.table(self.table).update({
                "coordinates": {"lat": lat, "lng": lng},
            }).eq("id", address_id).execute()
        except Exception as e:
            logger.error("set_coordinates_failed", address_id=address_id, error=str(e))
            raise DatabaseError("update", str(e), details={"address_id": address_id})

    def mark_geocoding_failed(self, address_id: str) -> None:
        """Take an address out of batch work selection after both tiers failed."""
        try:
            self.db.table(self.table).update({
                FAILED_FLAG: True,
            }).eq("id", address_id).execute()
        except Exception as e:
            logger.error("mark_geocoding_failed_failed", address_id=address_id, error=str(e))
            raise DatabaseError("update", str(e), details={"address_id": address_id})

    # ===================
    # HELPERS
    # ===================

    def _create_units(self, address_id: str, address: NormalizedAddress) -> None:
        blocked = address.status == BLOCKED_ADDRESS_STATUS
        units = [
            {
                "address_id": address_id,
                "etage": address.etage or "",
                "lage": address.lage or "",
                "notiz": address.notiz_we or "",
                "system_notes": address.unit_note or "",
                "marketable": not blocked,
                "status": BLOCKED_UNIT_STATUS if blocked else DEFAULT_ADDRESS_STATUS,
            }
            for _ in range(address.we_count)
        ]

        try:
            self.db.table(self.units_table).insert(units).execute()
        except Exception as e:
            # The address itself is usable without its units
            logger.error(
                "create_units_failed",
                address_id=address_id,
                count=len(units),
                error=str(e),
            )

    def _row_to_response(self, row: dict) -> AddressResponse:
        """Convert database row to AddressResponse."""
        coordinates = row.get("coordinates") or {}
        has_point = coordinates.get("lat") is not None and coordinates.get("lng") is not None

        return AddressResponse(
            id=row["id"],
            list_id=row["list_id"],
            project_id=row.get("project_id"),
            street=row.get("street") or "",
            house_number=row.get("house_number") or "",
            postal_code=row.get("postal_code") or "",
            city=row.get("city") or "",
            locality=row.get("locality"),
            coordinates=coordinates if has_point else None,
            created_at=row.get("created_at"),
        )


# Singleton instance
_address_service: Optional[AddressService] = None


def get_address_service() -> AddressService:
    """Get or create AddressService instance."""
    global _address_service
    if _address_service is None:
        _address_service = AddressService()
    return _address_service
