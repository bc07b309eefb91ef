"""
Precomputation API endpoints.

Manual triggers for the daily precomputation run. The worker drives the
same service on a timer.
"""
import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status

from sunexposure.dependencies import ServiceContainer, get_container
from sunexposure.errors import SchedulerError
from sunexposure.schemas.precomputation import (
    DataIntegrityResponse,
    InvalidateRequest,
    InvalidateResponse,
    PrecomputationScheduleResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/precomputation", tags=["Precomputation"])


@router.post(
    "/invalidate",
    response_model=InvalidateResponse,
    summary="Invalidate precomputed data",
    description="Mark precomputed rows stale from a date (default today) and drop cached results.",
)
async def invalidate_precomputed(
    request: InvalidateRequest,
    container: ServiceContainer = Depends(get_container),
) -> InvalidateResponse:
    marked = await container.precomputation_service.invalidate_many(request.patio_ids, request.from_date)
    return InvalidateResponse(patio_ids=request.patio_ids, rows_invalidated=marked)


@router.post(
    "/{target_date}/schedule",
    response_model=PrecomputationScheduleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule precomputation for a date",
    description="Idempotent; returns the existing schedule when one exists.",
)
async def schedule_precomputation(
    target_date: date,
    container: ServiceContainer = Depends(get_container),
) -> PrecomputationScheduleResponse:
    schedule = await container.precomputation_service.schedule(target_date)
    return PrecomputationScheduleResponse.model_validate(schedule)


@router.post(
    "/{target_date}/execute",
    response_model=PrecomputationScheduleResponse,
    summary="Run precomputation for a date",
    description="Runs to completion and returns the final schedule state.",
)
async def execute_precomputation(
    target_date: date,
    container: ServiceContainer = Depends(get_container),
) -> PrecomputationScheduleResponse:
    try:
        schedule = await container.precomputation_service.execute(target_date)
    except SchedulerError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )
    return PrecomputationScheduleResponse.model_validate(schedule)


@router.get(
    "/{target_date}",
    response_model=PrecomputationScheduleResponse,
    summary="Get precomputation status for a date",
)
async def get_precomputation_status(
    target_date: date,
    container: ServiceContainer = Depends(get_container),
) -> PrecomputationScheduleResponse:
    schedule = await container.precomputation_service.get_status(target_date)
    if schedule is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No precomputation scheduled for {target_date}",
        )
    return PrecomputationScheduleResponse.model_validate(schedule)


@router.get(
    "/{target_date}/integrity",
    response_model=DataIntegrityResponse,
    summary="Validate precomputed data for a date",
)
async def get_data_integrity(
    target_date: date,
    container: ServiceContainer = Depends(get_container),
) -> DataIntegrityResponse:
    validation = await container.precomputation_service.validate_data_integrity(target_date)
    return DataIntegrityResponse.model_validate(validation.to_dict())
