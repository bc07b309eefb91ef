"""
Pydantic schemas for API request/response models.
"""
from sunexposure.schemas.cache import (
    CacheHealthResponse,
    CacheInvalidationResponse,
    CacheLayerHealthResponse,
    CacheMetricsResponse,
)
from sunexposure.schemas.precomputation import (
    DataIntegrityResponse,
    InvalidateRequest,
    InvalidateResponse,
    PrecomputationScheduleResponse,
)
from sunexposure.schemas.solar import (
    SolarPositionResponse,
    SunTimesResponse,
)
from sunexposure.schemas.sun_exposure import (
    BatchSunExposureRequest,
    BatchSunExposureResponse,
    BuildingHeightOverrideRequest,
    BuildingHeightResponse,
    ConfidenceFactorsResponse,
    PatioSunExposureResponse,
    SunnyPatiosResponse,
    WeatherSnapshotResponse,
)
from sunexposure.schemas.timeline import (
    BestSunWindowsResponse,
    SunExposureTimelineResponse,
    SunWindowResponse,
    TimelinePointResponse,
    TimelineSummaryResponse,
)

__all__ = [
    # Solar schemas
    "SolarPositionResponse",
    "SunTimesResponse",
    # Exposure schemas
    "PatioSunExposureResponse",
    "ConfidenceFactorsResponse",
    "WeatherSnapshotResponse",
    "BatchSunExposureRequest",
    "BatchSunExposureResponse",
    "SunnyPatiosResponse",
    "BuildingHeightOverrideRequest",
    "BuildingHeightResponse",
    # Timeline schemas
    "TimelinePointResponse",
    "SunWindowResponse",
    "TimelineSummaryResponse",
    "SunExposureTimelineResponse",
    "BestSunWindowsResponse",
    # Precomputation schemas
    "PrecomputationScheduleResponse",
    "DataIntegrityResponse",
    "InvalidateRequest",
    "InvalidateResponse",
    # Cache schemas
    "CacheMetricsResponse",
    "CacheLayerHealthResponse",
    "CacheHealthResponse",
    "CacheInvalidationResponse",
]
