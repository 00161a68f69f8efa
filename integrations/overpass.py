"""
Overpass API integration (geocoding tier 1).

Looks up OpenStreetMap objects tagged with an exact street and house number
inside the administrative area of the address's city.
"""

from dataclasses import dataclass
from typing import Optional
import requests
import structlog

from config import settings
from exceptions import GeocodingError

logger = structlog.get_logger(__name__)


SERVICE_NAME = "overpass"

# Lower rank wins: a tagged point beats the center of a way or relation
ELEMENT_PRECEDENCE = {
    "node": 0,
    "way": 1,
    "relation": 2,
}


@dataclass
class OverpassMatch:
    """Best element found for an address."""
    lat: float
    lng: float
    element_type: str
    display_name: str


def _escape(value: str) -> str:
    """Escape a value for use inside an Overpass QL string literal."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_address_query(
    street: str,
    house_number: str,
    postal_code: Optional[str] = None,
    city: Optional[str] = None,
    country_code: str = "DE",
    timeout: int = 25,
) -> str:
    """
    Build an Overpass QL query for one address.

    The search area is the city's administrative boundary, or the whole
    country when no city is known.
    """
    if city:
        area = f'area["name"="{_escape(city)}"]["boundary"="administrative"]->.searchArea;'
    else:
        area = f'area["ISO3166-1"="{_escape(country_code.upper())}"]["admin_level"="2"]->.searchArea;'

    filters = f'["addr:street"="{_escape(street)}"]["addr:housenumber"="{_escape(house_number)}"]'
    if postal_code:
        filters += f'["addr:postcode"="{_escape(postal_code)}"]'

    return (
        f"[out:json][timeout:{timeout}];"
        f"{area}"
        "("
        f"node{filters}(area.searchArea);"
        f"way{filters}(area.searchArea);"
        f"relation{filters}(area.searchArea);"
        ");"
        "out center;"
    )


def _element_point(element: dict) -> Optional[tuple[float, float]]:
    """(lat, lng) of an element: its own point for nodes, its center otherwise."""
    lat = element.get("lat")
    lng = element.get("lon")
    if lat is None or lng is None:
        center = element.get("center") or {}
        lat = center.get("lat")
        lng = center.get("lon")
    if lat is None or lng is None:
        return None
    try:
        return float(lat), float(lng)
    except (TypeError, ValueError):
        return None


def _display_name(tags: dict) -> str:
    street = f"{tags.get('addr:street', '')} {tags.get('addr:housenumber', '')}".strip()
    locality = f"{tags.get('addr:postcode', '')} {tags.get('addr:city', '')}".strip()
    return ", ".join(part for part in (street, locality) if part)


def pick_best_element(elements: list[dict]) -> Optional[OverpassMatch]:
    """
    Choose the element to use for an address.

    Precedence is node > way > relation; within a type the first element
    returned wins. Elements without a usable point are skipped.
    """
    best: Optional[OverpassMatch] = None
    best_rank = len(ELEMENT_PRECEDENCE)

    for element in elements:
        element_type = element.get("type", "")
        rank = ELEMENT_PRECEDENCE.get(element_type)
        if rank is None or rank >= best_rank:
            continue

        point = _element_point(element)
        if point is None:
            continue

        best = OverpassMatch(
            lat=point[0],
            lng=point[1],
            element_type=element_type,
            display_name=_display_name(element.get("tags") or {}),
        )
        best_rank = rank

    return best


class OverpassClient:
    """Structured address lookup against an Overpass interpreter."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[int] = None,
        country_code: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.url = url or settings.overpass_url
        self.timeout = timeout or settings.geocoding_timeout_seconds
        self.country_code = country_code or settings.geocoding_country_code
        self.session = session or requests.Session()

    def find_address(
        self,
        street: str,
        house_number: str,
        postal_code: Optional[str] = None,
        city: Optional[str] = None,
    ) -> Optional[OverpassMatch]:
        """
        Find an address by its exact tags.

        Returns:
            Best match, or None when nothing is tagged with this address

        Raises:
            GeocodingError: If the service is unreachable or answers with an error
        """
        query = build_address_query(
            street,
            house_number,
            postal_code=postal_code,
            city=city,
            country_code=self.country_code,
            timeout=self.timeout,
        )

        try:
            response = self.session.post(
                self.url,
                data={"data": query},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            logger.warning(
                "overpass_request_failed",
                street=street,
                house_number=house_number,
                error=str(e),
            )
            raise GeocodingError(SERVICE_NAME, f"Overpass request failed: {e}") from e
        except ValueError as e:
            raise GeocodingError(SERVICE_NAME, "Overpass returned invalid JSON") from e

        elements = payload.get("elements") or []
        match = pick_best_element(elements)

        logger.debug(
            "overpass_lookup_complete",
            street=street,
            house_number=house_number,
            candidates=len(elements),
            matched=match is not None,
        )

        return match
