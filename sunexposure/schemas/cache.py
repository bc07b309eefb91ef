"""
Pydantic schemas for cache endpoints.
"""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from sunexposure.services.cache_service import CacheHealthStatus


class CacheMetricsResponse(BaseModel):
    """Hit and miss counters since process start."""

    total_requests: int
    cache_hits: int
    cache_misses: int
    hit_rate: float = Field(..., description="Hits over requests, 0-1")
    hit_rate_by_layer: dict[str, float] = Field(..., description="Share of requests answered by each layer")
    tier_errors: int
    collected_at: datetime


class CacheLayerHealthResponse(BaseModel):
    is_available: bool
    response_time_ms: float
    status_message: str
    error_count: int = 0


class CacheHealthResponse(BaseModel):
    """Probe results for the memory and distributed tiers."""

    status: CacheHealthStatus
    memory: CacheLayerHealthResponse
    distributed: CacheLayerHealthResponse
    issues: list[str] = Field(default_factory=list)
    is_configured_correctly: bool


class CacheInvalidationResponse(BaseModel):
    patio_id: UUID
    keys_removed: int
