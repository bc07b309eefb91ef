"""
Pydantic schemas for timeline and sun window endpoints.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from sunexposure.schemas.solar import SunTimesResponse
from sunexposure.services.entities import ExposureState, SunWindowQuality, TimelinePointSource


class TimelinePointResponse(BaseModel):
    """One tick of a timeline."""

    timestamp: datetime
    local_time: datetime
    sun_exposure_percent: float
    state: ExposureState
    confidence: float
    solar_elevation: float
    solar_azimuth: float
    source: TimelinePointSource = Field(..., description="precomputed, calculated or placeholder")


class SunWindowResponse(BaseModel):
    """A contiguous run of usable sun."""

    patio_id: UUID
    start: datetime
    end: datetime
    local_start: datetime
    local_end: datetime
    duration_minutes: float
    peak_exposure: float
    peak_time: datetime
    average_exposure: float = Field(..., description="Midpoint of min and max exposure")
    min_exposure: float
    max_exposure: float
    confidence: float
    point_count: int
    quality: SunWindowQuality
    priority_score: float
    is_recommended: bool
    recommendation_reason: str
    description: str = Field(..., description="Human readable label, e.g. 'Morning sun (good quality, 1.5 hours)'")


class TimelineSummaryResponse(BaseModel):
    """Aggregate statistics over a timeline."""

    average_exposure: float
    max_exposure: float
    min_exposure: float
    sunny_periods: int = Field(..., description="Count of maximal consecutive sunny runs")
    partial_periods: int
    shaded_periods: int
    no_sun_periods: int
    total_sunny_minutes: float
    total_partial_minutes: float
    total_shaded_minutes: float
    best_sun_period_start: Optional[datetime] = None
    best_sun_period_minutes: float


class SunExposureTimelineResponse(BaseModel):
    """Sampled exposure for one patio over a time range."""

    patio_id: UUID
    patio_name: str
    start: datetime
    end: datetime
    interval_minutes: float
    points: list[TimelinePointResponse]
    sun_windows: list[SunWindowResponse]
    summary: TimelineSummaryResponse
    average_confidence: float
    precomputed_points: int
    calculated_points: int
    generated_at: datetime
    sun_times: Optional[SunTimesResponse] = None


class BestSunWindowsResponse(BaseModel):
    """Best sun windows for a patio, highest priority first."""

    patio_id: UUID
    start: datetime
    end: datetime
    windows: list[SunWindowResponse]
