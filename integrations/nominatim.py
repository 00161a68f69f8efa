"""
Nominatim integration (geocoding tier 2).

Free-text address search through geopy. The outline of the top result is
requested as GeoJSON so areal results can be placed at their true centroid.
"""

from dataclasses import dataclass
from typing import Optional
import structlog

from geopy.exc import GeopyError
from geopy.extra.rate_limiter import RateLimiter
from geopy.geocoders import Nominatim

from config import settings
from exceptions import GeocodingError
from utils.geometry import geometry_centroid, is_areal

logger = structlog.get_logger(__name__)


SERVICE_NAME = "nominatim"
ERROR_WAIT_SECONDS = 5


@dataclass
class NominatimMatch:
    """Top-ranked search result."""
    lat: float
    lng: float
    display_name: str
    from_polygon: bool = False


class NominatimClient:
    """
    Free-text geocoder.

    Requests go through one geopy RateLimiter, so concurrent batch workers
    sharing a client keep to the service's request rate.
    """

    def __init__(
        self,
        geocoder: Optional[Nominatim] = None,
        country_code: Optional[str] = None,
        min_delay_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
    ):
        self.geocoder = geocoder or Nominatim(
            user_agent=settings.nominatim_user_agent,
            domain=settings.nominatim_domain,
            timeout=settings.geocoding_timeout_seconds,
        )
        self.country_code = country_code or settings.geocoding_country_code

        if min_delay_seconds is None:
            min_delay_seconds = settings.nominatim_min_delay_seconds
        if max_retries is None:
            max_retries = settings.nominatim_max_retries

        self.geocode = RateLimiter(
            self.geocoder.geocode,
            min_delay_seconds=min_delay_seconds,
            max_retries=max_retries,
            error_wait_seconds=max(ERROR_WAIT_SECONDS, min_delay_seconds),
            swallow_exceptions=False,
        )

    def search(self, query: str) -> Optional[NominatimMatch]:
        """
        Search for an address and take the top-ranked result.

        When the result carries a polygon outline, its shoelace centroid is
        used instead of the service's point.

        Returns:
            Match, or None when the search found nothing

        Raises:
            GeocodingError: If the service call fails
        """
        try:
            location = self.geocode(
                query,
                exactly_one=True,
                country_codes=self.country_code,
                geometry="geojson",
            )
        except GeopyError as e:
            logger.warning("nominatim_request_failed", query=query, error=str(e))
            raise GeocodingError(SERVICE_NAME, f"Nominatim request failed: {e}") from e

        if location is None:
            logger.debug("nominatim_no_result", query=query)
            return None

        raw = location.raw or {}
        display_name = raw.get("display_name") or location.address or query
        geometry = raw.get("geojson")

        if is_areal(geometry):
            centroid = geometry_centroid(geometry)
            if centroid is not None:
                lng, lat = centroid
                logger.debug(
                    "nominatim_polygon_centroid",
                    query=query,
                    geometry_type=geometry.get("type"),
                    service_lat=location.latitude,
                    service_lng=location.longitude,
                    lat=lat,
                    lng=lng,
                )
                return NominatimMatch(
                    lat=lat,
                    lng=lng,
                    display_name=display_name,
                    from_polygon=True,
                )

        return NominatimMatch(
            lat=float(location.latitude),
            lng=float(location.longitude),
            display_name=display_name,
        )
