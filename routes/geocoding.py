"""
Geocoding API routes.

Single-address lookups and the batch step that geocodes an import list.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import structlog

from models.geocoding import (
    BatchGeocodeRequest,
    BatchGeocodeResponse,
    GeocodeRequest,
    GeocodeResponse,
)
from routes.dependencies import handle_error
from services.geocode_batch_service import get_geocode_batch_service
from services.geocoding_service import get_geocoding_service
from exceptions import AddressNotGeocodedError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/geocode", tags=["Geocoding"])


@router.post("", response_model=GeocodeResponse, response_model_by_alias=True)
async def geocode_address(data: GeocodeRequest):
    """
    Resolve coordinates for one address.

    When neither tier finds the address the response is still 200, with
    coordinates null and an error message, so import flows keep going.
    """
    try:
        service = get_geocoding_service()
        result = service.geocode(data)

        return GeocodeResponse(
            coordinates=result.coordinates,
            display_name=result.display_name,
            source=result.source,
        )

    except AddressNotGeocodedError as e:
        return JSONResponse(
            status_code=200,
            content=GeocodeResponse(error=e.message).model_dump(by_alias=True),
        )
    except Exception as e:
        return handle_error(e)


@router.post("/batch", response_model=BatchGeocodeResponse)
async def geocode_batch(data: BatchGeocodeRequest):
    """
    Run one batch step for an import list.

    Geocodes up to one batch of addresses still missing coordinates and
    queues the next step when work is left.
    """
    try:
        service = get_geocode_batch_service()
        return service.run_step(data.list_id)

    except Exception as e:
        return handle_error(e)
