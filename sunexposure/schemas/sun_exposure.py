"""
Pydantic schemas for sun exposure endpoints.

Point and batch queries share PatioSunExposureResponse. Geometries are
not part of the wire format.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from sunexposure.services.entities import CalculationSource, ConfidenceCategory, ExposureState


# =============================================================================
# Nested
# =============================================================================

class ConfidenceFactorsResponse(BaseModel):
    """Confidence breakdown, every score 0-1."""

    building_data_quality: float
    geometry_precision: float
    solar_accuracy: float
    shadow_accuracy: float
    geometry_quality: float
    cloud_certainty: float
    overall_confidence: float
    category: ConfidenceCategory
    quality_issues: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)


class WeatherSnapshotResponse(BaseModel):
    """Weather slice used for cloud certainty."""

    timestamp: datetime
    cloud_cover: float = Field(..., description="Cloud cover percentage 0-100")
    precipitation_probability: float
    is_forecast: bool
    source: str
    created_at: datetime


# =============================================================================
# Exposure
# =============================================================================

class PatioSunExposureResponse(BaseModel):
    """Sun exposure of one patio at one instant."""

    patio_id: UUID
    timestamp: datetime
    local_time: datetime
    sun_exposure_percent: float = Field(..., description="Sunlit share of the patio area, 0-100")
    state: ExposureState
    confidence: float = Field(..., description="Display confidence 0-100")
    sunlit_area_m2: float
    shaded_area_m2: float
    solar_elevation: float
    solar_azimuth: float
    source: CalculationSource
    affecting_buildings_count: int = Field(..., description="Buildings whose shadow was considered")
    confidence_factors: Optional[ConfidenceFactorsResponse] = None
    weather: Optional[WeatherSnapshotResponse] = None
    calculation_duration_ms: float = 0.0


class BatchSunExposureRequest(BaseModel):
    """Request schema for a batch exposure query."""

    patio_ids: list[UUID] = Field(..., description="Patios to evaluate; unknown ids are omitted from the result")
    timestamp: Optional[datetime] = Field(None, description="UTC instant; defaults to now")


class BatchSunExposureResponse(BaseModel):
    """Batch exposure results keyed by patio id."""

    timestamp: datetime
    results: dict[UUID, PatioSunExposureResponse]
    requested: int
    returned: int


class SunnyPatiosResponse(BaseModel):
    """Sunny patios around a point, best first."""

    latitude: float
    longitude: float
    radius_km: float
    timestamp: datetime
    patios: list[PatioSunExposureResponse]


# =============================================================================
# Building heights
# =============================================================================

class BuildingHeightOverrideRequest(BaseModel):
    """Request schema for an admin height override."""

    height_m: float = Field(..., gt=0, description="Override height in meters")


class BuildingHeightResponse(BaseModel):
    """Effective height of a building and where it came from."""

    building_id: UUID
    effective_height_m: float
    original_height_m: float
    admin_override_m: Optional[float] = None
    height_source: str
    confidence: float
    can_cast_shadow: bool
    is_heuristic: bool
