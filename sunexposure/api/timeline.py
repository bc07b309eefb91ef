"""
Timeline API endpoints.

Sampled exposure over a time range and the best sun windows within it.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from sunexposure.dependencies import ServiceContainer, get_container
from sunexposure.schemas.timeline import (
    BestSunWindowsResponse,
    SunExposureTimelineResponse,
    SunWindowResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/patios", tags=["Timeline"])


@router.get(
    "/{patio_id}/timeline",
    response_model=SunExposureTimelineResponse,
    summary="Get a sun exposure timeline",
    description=(
        "Exposure sampled from start to end (inclusive). Range at most 48 hours, "
        "resolution at least 1 minute. Precomputed data is used where available."
    ),
)
async def get_patio_timeline(
    patio_id: UUID,
    start: datetime = Query(..., description="UTC start, ISO 8601"),
    end: datetime = Query(..., description="UTC end, ISO 8601"),
    resolution_minutes: Optional[int] = Query(None, description="Minutes between points (default 10)"),
    container: ServiceContainer = Depends(get_container),
) -> SunExposureTimelineResponse:
    resolution = timedelta(minutes=resolution_minutes) if resolution_minutes is not None else None
    timeline = await container.timeline_service.generate_timeline(patio_id, start, end, resolution)
    return SunExposureTimelineResponse.model_validate(timeline.to_dict())


@router.get(
    "/{patio_id}/sun-windows/best",
    response_model=BestSunWindowsResponse,
    summary="Get the best sun windows",
    description="Sun windows ranked by priority score, then average exposure.",
)
async def get_best_sun_windows(
    patio_id: UUID,
    start: datetime = Query(..., description="UTC start, ISO 8601"),
    end: datetime = Query(..., description="UTC end, ISO 8601"),
    max_windows: int = Query(3, description="Maximum windows to return"),
    container: ServiceContainer = Depends(get_container),
) -> BestSunWindowsResponse:
    windows = await container.timeline_service.get_best_sun_windows(patio_id, start, end, max_windows)
    return BestSunWindowsResponse(
        patio_id=patio_id,
        start=start,
        end=end,
        windows=[SunWindowResponse.model_validate(w.to_dict()) for w in windows],
    )
