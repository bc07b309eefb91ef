"""
Solar API endpoints.

Coordinates default to the configured site location.
"""
from datetime import date as date_type
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from sunexposure.config import get_settings
from sunexposure.dependencies import ServiceContainer, get_container
from sunexposure.schemas.solar import SolarPositionResponse, SunTimesResponse

router = APIRouter(prefix="/api/solar", tags=["Solar"])


@router.get(
    "/position",
    response_model=SolarPositionResponse,
    summary="Get the solar position",
)
async def get_solar_position(
    timestamp: Optional[datetime] = Query(None, description="UTC instant, ISO 8601 (default now)"),
    latitude: Optional[float] = Query(None, description="Degrees north"),
    longitude: Optional[float] = Query(None, description="Degrees east"),
    container: ServiceContainer = Depends(get_container),
) -> SolarPositionResponse:
    settings = get_settings()
    position = container.solar_service.calculate_position(
        timestamp or container.clock(),
        settings.default_latitude if latitude is None else latitude,
        settings.default_longitude if longitude is None else longitude,
    )
    return SolarPositionResponse.model_validate(position.to_dict())


@router.get(
    "/sun-times",
    response_model=SunTimesResponse,
    summary="Get sunrise, sunset and solar noon",
)
async def get_sun_times(
    date: Optional[date_type] = Query(None, description="Calendar date (default today, UTC)"),
    latitude: Optional[float] = Query(None, description="Degrees north"),
    longitude: Optional[float] = Query(None, description="Degrees east"),
    container: ServiceContainer = Depends(get_container),
) -> SunTimesResponse:
    settings = get_settings()
    sun_times = container.solar_service.get_sun_times(
        date or container.clock().date(),
        settings.default_latitude if latitude is None else latitude,
        settings.default_longitude if longitude is None else longitude,
    )
    return SunTimesResponse.model_validate(sun_times.to_dict())
