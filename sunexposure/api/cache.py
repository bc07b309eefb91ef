"""
Cache API endpoints.
"""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from sunexposure.dependencies import ServiceContainer, get_container
from sunexposure.schemas.cache import (
    CacheHealthResponse,
    CacheInvalidationResponse,
    CacheMetricsResponse,
)

router = APIRouter(prefix="/api/cache", tags=["Cache"])


@router.get(
    "/health",
    response_model=CacheHealthResponse,
    summary="Probe the cache tiers",
)
async def get_cache_health(
    container: ServiceContainer = Depends(get_container),
) -> CacheHealthResponse:
    health = await container.cache.health()
    return CacheHealthResponse.model_validate(health.to_dict())


@router.get(
    "/metrics",
    response_model=CacheMetricsResponse,
    summary="Get cache hit rates",
)
async def get_cache_metrics(
    container: ServiceContainer = Depends(get_container),
) -> CacheMetricsResponse:
    return CacheMetricsResponse.model_validate(container.cache.get_metrics().to_dict())


@router.delete(
    "/patios/{patio_id}",
    response_model=CacheInvalidationResponse,
    summary="Drop cached results for a patio",
    description="Removes the patio's entries for the given date (or today through the next two days).",
)
async def invalidate_patio_cache(
    patio_id: UUID,
    target_date: Optional[date] = Query(None, description="Single date to invalidate"),
    container: ServiceContainer = Depends(get_container),
) -> CacheInvalidationResponse:
    removed = await container.cache.invalidate(patio_id, target_date)
    return CacheInvalidationResponse(patio_id=patio_id, keys_removed=removed)
