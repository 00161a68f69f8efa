"""
Address schemas.

NormalizedAddress is the in-memory record produced by the import stage;
AddressResponse is the persisted row the geocoder works on.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from models.base import BaseSchema


DEFAULT_ADDRESS_STATUS = "Offen"
# Units of addresses with this status are imported as not marketable
BLOCKED_ADDRESS_STATUS = "Verbot"
BLOCKED_UNIT_STATUS = "Nicht vermarktbar"


class Coordinates(BaseModel):
    """WGS84 point."""
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class NormalizedAddress(BaseModel):
    """
    Canonical address built from one or more spreadsheet rows.

    normalized_key is derived from street, house number, postal code and
    city and is the only identity used for duplicate detection.
    """
    street: str = ""
    house_number: str = ""
    postal_code: str = ""
    city: str = ""
    locality: Optional[str] = None
    we_count: int = Field(default=1, ge=0)
    etage: Optional[str] = None
    lage: Optional[str] = None
    notiz_adresse: Optional[str] = None
    notiz_we: Optional[str] = None
    unit_note: Optional[str] = None
    status: str = DEFAULT_ADDRESS_STATUS
    normalized_key: str = ""

    @property
    def display(self) -> str:
        """Single-line form used in logs and failure entries."""
        return f"{self.street} {self.house_number}, {self.postal_code} {self.city}".strip()


class AddressValidationError(BaseModel):
    """Non-fatal problem with one address row."""
    field: str
    message: str
    suggestion: Optional[str] = None


class AddressResponse(BaseSchema):
    """Persisted address row."""
    id: str
    list_id: str
    project_id: Optional[str] = None
    street: str
    house_number: str = ""
    postal_code: str = ""
    city: str = ""
    locality: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    created_at: Optional[datetime] = None

    @property
    def display(self) -> str:
        return f"{self.street} {self.house_number}, {self.postal_code} {self.city}".strip()

    @property
    def has_coordinates(self) -> bool:
        return self.coordinates is not None
