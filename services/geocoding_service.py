"""
Single-address geocoding.

Tier 1 asks Overpass for an object tagged with the exact address. When that
finds nothing or fails, tier 2 runs a free-text Nominatim search. Coordinates
are never guessed: if both tiers come up empty the address is not found.
"""

from typing import Optional
import structlog

from config import settings
from integrations.nominatim import NominatimClient
from integrations.overpass import OverpassClient
from models.address import Coordinates
from models.geocoding import GeocodeRequest, GeocodeResult
from exceptions import AddressNotGeocodedError, GeocodingError

logger = structlog.get_logger(__name__)


def build_search_query(request: GeocodeRequest, country: Optional[str] = None) -> str:
    """
    Free-text query for tier 2.

    "Hauptstraße 3, 12345 Berlin, Deutschland"
    """
    parts = [f"{request.street} {request.house_number}".strip()]
    locality = " ".join(p for p in (request.postal_code, request.city) if p)
    if locality:
        parts.append(locality)
    parts.append(country or settings.geocoding_country)
    return ", ".join(parts)


class GeocodingService:
    """
    Two-tier address resolver.

    Clients are built up front so every worker thread shares the same
    Nominatim rate limiter.
    """

    def __init__(
        self,
        overpass: Optional[OverpassClient] = None,
        nominatim: Optional[NominatimClient] = None,
    ):
        self.overpass = overpass or OverpassClient()
        self.nominatim = nominatim or NominatimClient()

    def geocode(self, request: GeocodeRequest) -> GeocodeResult:
        """
        Resolve coordinates for one address.

        Raises:
            AddressNotGeocodedError: If neither tier found the address
        """
        result = self._try_overpass(request)
        if result is not None:
            return result

        query = build_search_query(request)
        try:
            match = self.nominatim.search(query)
        except GeocodingError as e:
            logger.warning("geocode_failed", address=request.display, error=e.message)
            raise AddressNotGeocodedError(request.display, reason=e.message) from e

        if match is None:
            logger.info("geocode_not_found", address=request.display)
            raise AddressNotGeocodedError(request.display)

        source = "nominatim_polygon" if match.from_polygon else "nominatim"
        logger.debug("geocode_resolved", address=request.display, source=source)

        return GeocodeResult(
            coordinates=Coordinates(lat=match.lat, lng=match.lng),
            display_name=match.display_name,
            source=source,
        )

    def _try_overpass(self, request: GeocodeRequest) -> Optional[GeocodeResult]:
        try:
            match = self.overpass.find_address(
                request.street,
                request.house_number,
                postal_code=request.postal_code,
                city=request.city,
            )
        except GeocodingError as e:
            logger.info("overpass_failed_falling_back", address=request.display, error=e.message)
            return None

        if match is None:
            return None

        logger.debug(
            "geocode_resolved",
            address=request.display,
            source="overpass",
            element_type=match.element_type,
        )

        return GeocodeResult(
            coordinates=Coordinates(lat=match.lat, lng=match.lng),
            display_name=match.display_name or request.display,
            source="overpass",
        )


# Singleton instance
_geocoding_service: Optional[GeocodingService] = None


def get_geocoding_service() -> GeocodingService:
    """Get or create GeocodingService instance."""
    global _geocoding_service
    if _geocoding_service is None:
        _geocoding_service = GeocodingService()
    return _geocoding_service
