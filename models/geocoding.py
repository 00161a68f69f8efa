"""
Geocoding request/response schemas.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional

from models.address import Coordinates


GeocodeSource = Literal["overpass", "nominatim", "nominatim_polygon"]


class GeocodeRequest(BaseModel):
    """Single address lookup, camelCase on the wire."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    street: str = Field(min_length=1)
    house_number: str = Field(alias="houseNumber")
    postal_code: Optional[str] = Field(None, alias="postalCode")
    city: Optional[str] = None

    @property
    def display(self) -> str:
        parts = [f"{self.street} {self.house_number}".strip()]
        locality = " ".join(p for p in (self.postal_code, self.city) if p)
        if locality:
            parts.append(locality)
        return ", ".join(parts)


class GeocodeResult(BaseModel):
    """Resolved coordinates for one address."""
    coordinates: Coordinates
    display_name: Optional[str] = None
    source: GeocodeSource


class GeocodeResponse(BaseModel):
    """API response; coordinates is null when nothing was found."""
    model_config = ConfigDict(populate_by_name=True)

    coordinates: Optional[Coordinates] = None
    display_name: Optional[str] = Field(None, serialization_alias="displayName")
    source: Optional[GeocodeSource] = None
    error: Optional[str] = None


class BatchGeocodeRequest(BaseModel):
    """One batch step for a list."""
    model_config = ConfigDict(populate_by_name=True)

    list_id: Optional[str] = Field(None, alias="listId")


class BatchGeocodeResponse(BaseModel):
    """Outcome of one batch step."""
    success: bool
    message: str
    remaining: Optional[int] = None
    geocoded: int = 0
    failed: int = 0
