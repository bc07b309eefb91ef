"""
Sun exposure API endpoints.

Point query per patio, batch query and the sunny-patios-near search.
Results are served through the multi-layer cache.
"""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from sunexposure.dependencies import ServiceContainer, get_container
from sunexposure.schemas.sun_exposure import (
    BatchSunExposureRequest,
    BatchSunExposureResponse,
    PatioSunExposureResponse,
    SunnyPatiosResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Sun Exposure"])


@router.get(
    "/patios/{patio_id}/sun-exposure",
    response_model=PatioSunExposureResponse,
    summary="Get sun exposure for a patio",
    description="Sunlit share, state and confidence of a patio at a UTC instant (default now).",
)
async def get_patio_sun_exposure(
    patio_id: UUID,
    timestamp: Optional[datetime] = Query(None, description="UTC instant, ISO 8601"),
    container: ServiceContainer = Depends(get_container),
) -> PatioSunExposureResponse:
    when = timestamp or container.clock()
    exposure = await container.cached_exposure_service.calculate_patio_sun_exposure(patio_id, when)
    return PatioSunExposureResponse.model_validate(exposure.to_dict())


@router.post(
    "/sun-exposure/batch",
    response_model=BatchSunExposureResponse,
    summary="Get sun exposure for many patios",
    description="One solar position and one shadow pass for up to 100 patios. Unknown ids are omitted.",
)
async def get_batch_sun_exposure(
    request: BatchSunExposureRequest,
    container: ServiceContainer = Depends(get_container),
) -> BatchSunExposureResponse:
    when = request.timestamp or container.clock()
    results = await container.cached_exposure_service.calculate_batch_sun_exposure(request.patio_ids, when)

    logger.info(f"Batch sun exposure: {len(results)}/{len(request.patio_ids)} patios resolved")

    return BatchSunExposureResponse(
        timestamp=when,
        results={
            pid: PatioSunExposureResponse.model_validate(exposure.to_dict())
            for pid, exposure in results.items()
        },
        requested=len(request.patio_ids),
        returned=len(results),
    )


@router.get(
    "/sun-exposure/sunny-near",
    response_model=SunnyPatiosResponse,
    summary="Find sunny patios near a point",
)
async def get_sunny_patios_near(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(1.0, description="Search radius in kilometres"),
    timestamp: Optional[datetime] = Query(None, description="UTC instant, ISO 8601"),
    container: ServiceContainer = Depends(get_container),
) -> SunnyPatiosResponse:
    when = timestamp or container.clock()
    sunny = await container.exposure_service.get_sunny_patios_near(latitude, longitude, radius_km, when)
    return SunnyPatiosResponse(
        latitude=latitude,
        longitude=longitude,
        radius_km=radius_km,
        timestamp=when,
        patios=[PatioSunExposureResponse.model_validate(e.to_dict()) for e in sunny],
    )
