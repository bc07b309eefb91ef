"""
Building height API endpoints.

Admin overrides take precedence over surveyed, OSM and heuristic heights.
Changing a height does not invalidate precomputed data on its own; call
the precomputation invalidate endpoint for affected patios.
"""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends

from sunexposure.dependencies import ServiceContainer, get_container
from sunexposure.schemas.sun_exposure import BuildingHeightOverrideRequest, BuildingHeightResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/buildings", tags=["Buildings"])


@router.get(
    "/{building_id}/height",
    response_model=BuildingHeightResponse,
    summary="Get the effective height of a building",
)
async def get_building_height(
    building_id: UUID,
    container: ServiceContainer = Depends(get_container),
) -> BuildingHeightResponse:
    info = await container.shadow_service.get_building_height_info(building_id)
    return BuildingHeightResponse(building_id=building_id, **info.to_dict())


@router.put(
    "/{building_id}/height",
    response_model=BuildingHeightResponse,
    summary="Override the height of a building",
    description="Height must be greater than 0 and at most 200 meters.",
)
async def override_building_height(
    building_id: UUID,
    request: BuildingHeightOverrideRequest,
    container: ServiceContainer = Depends(get_container),
) -> BuildingHeightResponse:
    info = await container.shadow_service.update_building_height(building_id, request.height_m)
    logger.info(f"Building {building_id} height overridden to {request.height_m}m")
    return BuildingHeightResponse(building_id=building_id, **info.to_dict())


@router.delete(
    "/{building_id}/height",
    response_model=BuildingHeightResponse,
    summary="Remove a building height override",
)
async def remove_building_height_override(
    building_id: UUID,
    container: ServiceContainer = Depends(get_container),
) -> BuildingHeightResponse:
    info = await container.shadow_service.remove_building_height_override(building_id)
    return BuildingHeightResponse(building_id=building_id, **info.to_dict())
