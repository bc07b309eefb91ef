"""
Engine data types.

These are plain dataclasses passed between the engine services. They never
hold ORM objects; repositories convert rows into these types.

Geometry fields hold whatever the active GeometryOps implementation
produces (shapely geometries for ShapelyGeometryOps).
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sunexposure.models.building import HeightSource


class ExposureState(str, Enum):
    """Classification of a patio's sunlit fraction."""
    NO_SUN = "no_sun"    # Sun below horizon
    SHADED = "shaded"    # < 30% sunlit
    PARTIAL = "partial"  # 30-70% sunlit
    SUNNY = "sunny"      # > 70% sunlit


class ConfidenceCategory(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SunWindowQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class CalculationSource(str, Enum):
    """Where a PatioSunExposure came from."""
    REALTIME = "realtime"
    REALTIME_BATCH = "realtime_batch"
    PRECOMPUTED = "precomputed"


class TimelinePointSource(str, Enum):
    PRECOMPUTED = "precomputed"
    CALCULATED = "calculated"
    PLACEHOLDER = "placeholder"


def classify_exposure(sun_exposure_percent: float, solar_elevation: float) -> ExposureState:
    """
    Map a sunlit percentage to an ExposureState.

    Boundaries are inclusive upwards: exactly 70% is sunny, exactly 30% is
    partial.
    """
    if solar_elevation <= 0:
        return ExposureState.NO_SUN
    if sun_exposure_percent >= 70.0:
        return ExposureState.SUNNY
    if sun_exposure_percent >= 30.0:
        return ExposureState.PARTIAL
    return ExposureState.SHADED


# =============================================================================
# Solar
# =============================================================================

@dataclass(frozen=True)
class SolarPosition:
    """Sun position for one place and UTC instant. Angles in degrees."""

    azimuth: float
    elevation: float
    declination: float
    hour_angle: float
    earth_distance_au: float
    timestamp: datetime
    local_time: datetime
    latitude: float
    longitude: float

    @property
    def is_above_horizon(self) -> bool:
        return self.elevation > 0

    def to_dict(self) -> dict:
        return {
            "azimuth": round(self.azimuth, 4),
            "elevation": round(self.elevation, 4),
            "declination": round(self.declination, 4),
            "hour_angle": round(self.hour_angle, 4),
            "earth_distance_au": round(self.earth_distance_au, 6),
            "timestamp": self.timestamp.isoformat(),
            "local_time": self.local_time.isoformat(),
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


@dataclass
class SunTimes:
    """Sunrise, sunset and solar noon for one date and place."""

    date: date
    latitude: float
    longitude: float
    sunrise_utc: datetime
    sunset_utc: datetime
    sunrise_local: datetime
    sunset_local: datetime
    solar_noon_utc: datetime
    solar_noon_local: datetime
    max_elevation: float

    @property
    def day_length(self) -> timedelta:
        return self.sunset_utc - self.sunrise_utc

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "sunrise_utc": self.sunrise_utc.isoformat(),
            "sunset_utc": self.sunset_utc.isoformat(),
            "sunrise_local": self.sunrise_local.isoformat(),
            "sunset_local": self.sunset_local.isoformat(),
            "solar_noon_utc": self.solar_noon_utc.isoformat(),
            "solar_noon_local": self.solar_noon_local.isoformat(),
            "max_elevation": round(self.max_elevation, 3),
            "day_length_hours": round(self.day_length.total_seconds() / 3600, 3),
        }


# =============================================================================
# Inputs from repositories
# =============================================================================

@dataclass
class BuildingFootprint:
    """A building that may cast a shadow."""

    id: UUID
    footprint: Any
    height_m: float
    height_source: HeightSource = HeightSource.HEURISTIC
    quality_score: float = 0.5
    admin_height_override_m: Optional[float] = None


@dataclass
class PatioFootprint:
    """A patio polygon. polygon_quality is the digitisation quality 0-1."""

    id: UUID
    name: str
    geometry: Any
    polygon_quality: float = 0.5
    venue_id: Optional[UUID] = None
    venue_name: Optional[str] = None


@dataclass
class WeatherSnapshot:
    timestamp: datetime
    cloud_cover: float
    precipitation_probability: float
    is_forecast: bool
    source: str
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "cloud_cover": self.cloud_cover,
            "precipitation_probability": self.precipitation_probability,
            "is_forecast": self.is_forecast,
            "source": self.source,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# Shadows
# =============================================================================

@dataclass
class ShadowProjection:
    """Ground shadow of one building for one solar position."""

    building_id: UUID
    geometry: Any
    length_m: float
    direction_deg: float
    building_height_m: float
    solar_position: SolarPosition
    confidence: float


@dataclass
class PatioShadowInfo:
    """
    Shadow coverage of a single patio.

    shadowed_area_percent + sunlit_area_percent is 100 within geometric
    tolerance. is_reliable is False for the low-sun estimate, which is
    not computed from geometry.
    """

    patio_id: UUID
    shadowed_area_percent: float
    sunlit_area_percent: float
    shadows: list[ShadowProjection]
    shadowed_geometry: Any
    sunlit_geometry: Any
    confidence: float
    solar_position: SolarPosition
    timestamp: datetime
    is_reliable: bool = True


# =============================================================================
# Confidence
# =============================================================================

@dataclass(frozen=True)
class ConfidenceFactors:
    """Confidence breakdown. All scores are 0-1."""

    building_data_quality: float
    geometry_precision: float
    solar_accuracy: float
    shadow_accuracy: float
    geometry_quality: float
    cloud_certainty: float
    overall_confidence: float
    category: ConfidenceCategory
    quality_issues: tuple[str, ...] = ()
    improvements: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "building_data_quality": round(self.building_data_quality, 4),
            "geometry_precision": round(self.geometry_precision, 4),
            "solar_accuracy": round(self.solar_accuracy, 4),
            "shadow_accuracy": round(self.shadow_accuracy, 4),
            "geometry_quality": round(self.geometry_quality, 4),
            "cloud_certainty": round(self.cloud_certainty, 4),
            "overall_confidence": round(self.overall_confidence, 4),
            "category": self.category.value,
            "quality_issues": list(self.quality_issues),
            "improvements": list(self.improvements),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConfidenceFactors":
        return cls(
            building_data_quality=data["building_data_quality"],
            geometry_precision=data["geometry_precision"],
            solar_accuracy=data["solar_accuracy"],
            shadow_accuracy=data["shadow_accuracy"],
            geometry_quality=data["geometry_quality"],
            cloud_certainty=data["cloud_certainty"],
            overall_confidence=data["overall_confidence"],
            category=ConfidenceCategory(data["category"]),
            quality_issues=tuple(data.get("quality_issues", ())),
            improvements=tuple(data.get("improvements", ())),
        )


# =============================================================================
# Exposure
# =============================================================================

@dataclass
class PatioSunExposure:
    """
    Sun exposure of a patio at one instant.

    confidence is the display value 0-100; confidence_factors keeps the
    0-1 breakdown. Geometries and shadows are only present on freshly
    computed results, not on results rebuilt from a cache tier.
    """

    patio_id: UUID
    timestamp: datetime
    local_time: datetime
    sun_exposure_percent: float
    state: ExposureState
    confidence: float
    sunlit_area_m2: float
    shaded_area_m2: float
    solar_elevation: float
    solar_azimuth: float
    source: CalculationSource
    solar_position: Optional[SolarPosition] = None
    sunlit_geometry: Any = None
    shaded_geometry: Any = None
    shadows: list[ShadowProjection] = field(default_factory=list)
    confidence_factors: Optional[ConfidenceFactors] = None
    weather: Optional[WeatherSnapshot] = None
    calculation_duration_ms: float = 0.0

    @property
    def affecting_buildings_count(self) -> int:
        return len(self.shadows)

    def to_dict(self) -> dict:
        """JSON-safe summary (no geometries)."""
        return {
            "patio_id": str(self.patio_id),
            "timestamp": self.timestamp.isoformat(),
            "local_time": self.local_time.isoformat(),
            "sun_exposure_percent": round(self.sun_exposure_percent, 2),
            "state": self.state.value,
            "confidence": self.confidence,
            "sunlit_area_m2": round(self.sunlit_area_m2, 3),
            "shaded_area_m2": round(self.shaded_area_m2, 3),
            "solar_elevation": round(self.solar_elevation, 4),
            "solar_azimuth": round(self.solar_azimuth, 4),
            "source": self.source.value,
            "affecting_buildings_count": self.affecting_buildings_count,
            "confidence_factors": (
                self.confidence_factors.to_dict() if self.confidence_factors else None
            ),
            "weather": self.weather.to_dict() if self.weather else None,
            "calculation_duration_ms": round(self.calculation_duration_ms, 3),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PatioSunExposure":
        factors = data.get("confidence_factors")
        weather = data.get("weather")
        return cls(
            patio_id=UUID(data["patio_id"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            local_time=datetime.fromisoformat(data["local_time"]),
            sun_exposure_percent=data["sun_exposure_percent"],
            state=ExposureState(data["state"]),
            confidence=data["confidence"],
            sunlit_area_m2=data["sunlit_area_m2"],
            shaded_area_m2=data["shaded_area_m2"],
            solar_elevation=data["solar_elevation"],
            solar_azimuth=data["solar_azimuth"],
            source=CalculationSource(data["source"]),
            confidence_factors=ConfidenceFactors.from_dict(factors) if factors else None,
            weather=WeatherSnapshot(
                timestamp=datetime.fromisoformat(weather["timestamp"]),
                cloud_cover=weather["cloud_cover"],
                precipitation_probability=weather["precipitation_probability"],
                is_forecast=weather["is_forecast"],
                source=weather["source"],
                created_at=datetime.fromisoformat(weather["created_at"]),
            ) if weather else None,
            calculation_duration_ms=data.get("calculation_duration_ms", 0.0),
        )


# =============================================================================
# Timeline
# =============================================================================

@dataclass
class TimelinePoint:
    timestamp: datetime
    local_time: datetime
    sun_exposure_percent: float
    state: ExposureState
    confidence: float
    solar_elevation: float
    solar_azimuth: float
    source: TimelinePointSource

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "local_time": self.local_time.isoformat(),
            "sun_exposure_percent": round(self.sun_exposure_percent, 2),
            "state": self.state.value,
            "confidence": self.confidence,
            "solar_elevation": round(self.solar_elevation, 3),
            "solar_azimuth": round(self.solar_azimuth, 3),
            "source": self.source.value,
        }


@dataclass
class SunWindow:
    """A contiguous run of usable sun on one patio."""

    patio_id: UUID
    start: datetime
    end: datetime
    local_start: datetime
    local_end: datetime
    peak_exposure: float
    peak_time: datetime
    average_exposure: float
    min_exposure: float
    max_exposure: float
    confidence: float
    point_count: int
    quality: SunWindowQuality = SunWindowQuality.POOR
    priority_score: float = 0.0
    is_recommended: bool = False
    recommendation_reason: str = ""
    description: str = ""

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def to_dict(self) -> dict:
        return {
            "patio_id": str(self.patio_id),
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "local_start": self.local_start.isoformat(),
            "local_end": self.local_end.isoformat(),
            "duration_minutes": round(self.duration.total_seconds() / 60, 1),
            "peak_exposure": round(self.peak_exposure, 2),
            "peak_time": self.peak_time.isoformat(),
            "average_exposure": round(self.average_exposure, 2),
            "min_exposure": round(self.min_exposure, 2),
            "max_exposure": round(self.max_exposure, 2),
            "confidence": round(self.confidence, 2),
            "point_count": self.point_count,
            "quality": self.quality.value,
            "priority_score": round(self.priority_score, 2),
            "is_recommended": self.is_recommended,
            "recommendation_reason": self.recommendation_reason,
            "description": self.description,
        }


@dataclass
class TimelineSummary:
    average_exposure: float = 0.0
    max_exposure: float = 0.0
    min_exposure: float = 0.0
    sunny_periods: int = 0
    partial_periods: int = 0
    shaded_periods: int = 0
    no_sun_periods: int = 0
    total_sunny_time: timedelta = timedelta(0)
    total_partial_time: timedelta = timedelta(0)
    total_shaded_time: timedelta = timedelta(0)
    best_sun_period_start: Optional[datetime] = None
    best_sun_period_duration: timedelta = timedelta(0)

    def to_dict(self) -> dict:
        return {
            "average_exposure": round(self.average_exposure, 2),
            "max_exposure": round(self.max_exposure, 2),
            "min_exposure": round(self.min_exposure, 2),
            "sunny_periods": self.sunny_periods,
            "partial_periods": self.partial_periods,
            "shaded_periods": self.shaded_periods,
            "no_sun_periods": self.no_sun_periods,
            "total_sunny_minutes": self.total_sunny_time.total_seconds() / 60,
            "total_partial_minutes": self.total_partial_time.total_seconds() / 60,
            "total_shaded_minutes": self.total_shaded_time.total_seconds() / 60,
            "best_sun_period_start": (
                self.best_sun_period_start.isoformat() if self.best_sun_period_start else None
            ),
            "best_sun_period_minutes": self.best_sun_period_duration.total_seconds() / 60,
        }


@dataclass
class SunExposureTimeline:
    patio_id: UUID
    patio_name: str
    start: datetime
    end: datetime
    interval: timedelta
    points: list[TimelinePoint]
    sun_windows: list[SunWindow]
    summary: TimelineSummary
    average_confidence: float
    precomputed_points: int
    calculated_points: int
    generated_at: datetime
    sun_times: Optional[SunTimes] = None

    def to_dict(self) -> dict:
        return {
            "patio_id": str(self.patio_id),
            "patio_name": self.patio_name,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "interval_minutes": self.interval.total_seconds() / 60,
            "points": [p.to_dict() for p in self.points],
            "sun_windows": [w.to_dict() for w in self.sun_windows],
            "summary": self.summary.to_dict(),
            "average_confidence": round(self.average_confidence, 2),
            "precomputed_points": self.precomputed_points,
            "calculated_points": self.calculated_points,
            "generated_at": self.generated_at.isoformat(),
            "sun_times": self.sun_times.to_dict() if self.sun_times else None,
        }
