"""
Confidence Scorer.

Two formulas:

- ``score`` (canonical): overall = geometry_quality * 0.6 + cloud_certainty * 0.4
  with caps for weather kind, missing weather and poor building data.
- ``score_legacy``: the earlier geometry-only weighted sum
  (building 0.40, polygon 0.25, solar 0.20, shadow 0.15). Kept for callers
  that compare against historical confidence values; new code should use
  ``score``.
"""
import logging
from datetime import timedelta
from typing import Optional

from sunexposure.services.clock import Clock, utc_now
from sunexposure.services.entities import (
    ConfidenceCategory,
    ConfidenceFactors,
    PatioFootprint,
    PatioShadowInfo,
    ShadowProjection,
    SolarPosition,
    WeatherSnapshot,
)
from sunexposure.services.geometry_ops import GeometryOps, get_geometry_ops

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 0.70
MEDIUM_CONFIDENCE = 0.40
SUFFICIENT_CONFIDENCE = 0.60

# Caps
FORECAST_CAP = 0.90
NOWCAST_CAP = 0.95
NO_WEATHER_CAP = 0.60
POOR_BUILDING_DATA_CAP = 0.70
POOR_BUILDING_DATA_THRESHOLD = 0.6

NO_WEATHER_CLOUD_CERTAINTY = 0.5
FORECAST_BASE = 0.90
NOWCAST_BASE = 0.95

# (age upper bound, factor); older than the last bound -> STALE_WEATHER_FACTOR
FRESHNESS_STEPS = [
    (timedelta(minutes=5), 1.0),
    (timedelta(minutes=15), 0.95),
    (timedelta(minutes=30), 0.90),
    (timedelta(minutes=60), 0.85),
    (timedelta(hours=2), 0.75),
    (timedelta(hours=6), 0.60),
]
STALE_WEATHER_FACTOR = 0.40

SOURCE_RELIABILITY = {
    "yr.no": 0.95,
    "metno": 0.95,
    "openweathermap": 0.85,
    "openweather": 0.85,
}
UNKNOWN_SOURCE_RELIABILITY = 0.80

SMALL_PATIO_M2 = 10.0
COMPLEX_SHADOW_COUNT = 5
LOW_QUALITY = 0.7


def confidence_category(overall: float) -> ConfidenceCategory:
    if overall >= HIGH_CONFIDENCE:
        return ConfidenceCategory.HIGH
    if overall >= MEDIUM_CONFIDENCE:
        return ConfidenceCategory.MEDIUM
    return ConfidenceCategory.LOW


def weather_freshness_factor(age: timedelta) -> float:
    """Step-wise decay, non-increasing in age."""
    for upper_bound, factor in FRESHNESS_STEPS:
        if age < upper_bound:
            return factor
    return STALE_WEATHER_FACTOR


def weather_source_reliability(source: Optional[str]) -> float:
    return SOURCE_RELIABILITY.get((source or "").lower(), UNKNOWN_SOURCE_RELIABILITY)


def building_data_quality(shadows: list[ShadowProjection]) -> float:
    """Mean shadow confidence; 1.0 when nothing casts a shadow."""
    if not shadows:
        return 1.0
    return sum(s.confidence for s in shadows) / len(shadows)


def solar_accuracy(elevation: float) -> float:
    if elevation > 30.0:
        return 0.98
    if elevation > 15.0:
        return 0.95
    if elevation > 5.0:
        return 0.85
    if elevation > 0.0:
        return 0.70
    return 0.50


def shadow_accuracy(shadow_info: PatioShadowInfo, elevation: float) -> float:
    complexity_penalty = min(len(shadow_info.shadows) * 0.03, 0.15)
    elevation_penalty = 0.10 if elevation < 10.0 else 0.0
    return max(shadow_info.confidence - complexity_penalty - elevation_penalty, 0.30)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class ConfidenceCalculator:
    """Scores how much a PatioSunExposure can be trusted."""

    def __init__(self, geometry_ops: Optional[GeometryOps] = None, clock: Clock = utc_now):
        self.geometry_ops = geometry_ops or get_geometry_ops()
        self.clock = clock

    def weather_age(self, weather: WeatherSnapshot) -> timedelta:
        return self.clock() - weather.created_at

    def cloud_certainty(self, weather: Optional[WeatherSnapshot]) -> float:
        if weather is None:
            return NO_WEATHER_CLOUD_CERTAINTY

        base = FORECAST_BASE if weather.is_forecast else NOWCAST_BASE
        freshness = weather_freshness_factor(self.weather_age(weather))
        reliability = weather_source_reliability(weather.source)
        return _clamp(base * freshness * reliability)

    @staticmethod
    def geometry_quality(patio: PatioFootprint, shadow_info: PatioShadowInfo) -> float:
        """Building data 50%, polygon precision 30%, shadow confidence 20%."""
        return _clamp(
            building_data_quality(shadow_info.shadows) * 0.5
            + patio.polygon_quality * 0.3
            + shadow_info.confidence * 0.2
        )

    @staticmethod
    def apply_caps(
        confidence: float,
        weather: Optional[WeatherSnapshot],
        building_quality: float,
    ) -> float:
        """Minimum of every applicable ceiling."""
        capped = confidence
        if weather is None:
            capped = min(capped, NO_WEATHER_CAP)
        elif weather.is_forecast:
            capped = min(capped, FORECAST_CAP)
        else:
            capped = min(capped, NOWCAST_CAP)

        if building_quality < POOR_BUILDING_DATA_THRESHOLD:
            capped = min(capped, POOR_BUILDING_DATA_CAP)
        return capped

    def score(
        self,
        patio: PatioFootprint,
        shadow_info: PatioShadowInfo,
        solar_position: SolarPosition,
        weather: Optional[WeatherSnapshot] = None,
    ) -> ConfidenceFactors:
        """Weather-aware confidence (canonical)."""
        bdq = building_data_quality(shadow_info.shadows)
        geometry_quality = self.geometry_quality(patio, shadow_info)
        cloud_certainty = self.cloud_certainty(weather)

        overall = geometry_quality * 0.6 + cloud_certainty * 0.4
        overall = _clamp(self.apply_caps(overall, weather, bdq))

        return self._build(
            patio,
            shadow_info,
            solar_position,
            overall=overall,
            geometry_quality=geometry_quality,
            cloud_certainty=cloud_certainty,
            weather=weather,
            weather_aware=True,
        )

    def score_legacy(
        self,
        patio: PatioFootprint,
        shadow_info: PatioShadowInfo,
        solar_position: SolarPosition,
    ) -> ConfidenceFactors:
        """Geometry-only weighted sum. Compatibility path, no weather terms."""
        overall = _clamp(
            building_data_quality(shadow_info.shadows) * 0.40
            + patio.polygon_quality * 0.25
            + solar_accuracy(solar_position.elevation) * 0.20
            + shadow_accuracy(shadow_info, solar_position.elevation) * 0.15
        )
        return self._build(
            patio,
            shadow_info,
            solar_position,
            overall=overall,
            geometry_quality=self.geometry_quality(patio, shadow_info),
            cloud_certainty=NO_WEATHER_CLOUD_CERTAINTY,
            weather=None,
            weather_aware=False,
        )

    def _build(
        self,
        patio: PatioFootprint,
        shadow_info: PatioShadowInfo,
        solar_position: SolarPosition,
        overall: float,
        geometry_quality: float,
        cloud_certainty: float,
        weather: Optional[WeatherSnapshot],
        weather_aware: bool,
    ) -> ConfidenceFactors:
        bdq = building_data_quality(shadow_info.shadows)
        precision = patio.polygon_quality

        issues = self._quality_issues(
            bdq, precision, overall, patio, shadow_info, solar_position, weather, weather_aware
        )
        improvements = self._improvements(bdq, precision, overall, shadow_info, weather, weather_aware)

        return ConfidenceFactors(
            building_data_quality=bdq,
            geometry_precision=precision,
            solar_accuracy=solar_accuracy(solar_position.elevation),
            shadow_accuracy=shadow_accuracy(shadow_info, solar_position.elevation),
            geometry_quality=geometry_quality,
            cloud_certainty=cloud_certainty,
            overall_confidence=overall,
            category=confidence_category(overall),
            quality_issues=tuple(issues),
            improvements=tuple(improvements),
        )

    def _quality_issues(
        self,
        bdq: float,
        precision: float,
        overall: float,
        patio: PatioFootprint,
        shadow_info: PatioShadowInfo,
        solar_position: SolarPosition,
        weather: Optional[WeatherSnapshot],
        weather_aware: bool,
    ) -> list[str]:
        issues = []
        elevation = solar_position.elevation

        if bdq < LOW_QUALITY:
            issues.append("Building height data has low reliability")
        if precision < LOW_QUALITY:
            issues.append("Patio polygon has low quality score")
        if 0 < elevation < 10.0:
            issues.append("Sun at low angle - shadow calculations less reliable")
        if elevation <= 0:
            issues.append("Sun below horizon - no direct sunlight")
        if len(shadow_info.shadows) > COMPLEX_SHADOW_COUNT:
            issues.append("Complex shadow environment with many buildings")
        if self.geometry_ops.area_m2(patio.geometry) < SMALL_PATIO_M2:
            issues.append("Very small patio - geometric precision more critical")
        if overall < MEDIUM_CONFIDENCE:
            issues.append("Multiple data quality factors reduce overall confidence")

        if weather_aware:
            if weather is None:
                issues.append("No weather data available - confidence capped at 60%")
            else:
                age_hours = self.weather_age(weather).total_seconds() / 3600
                if age_hours > 2:
                    issues.append(f"Weather data is {age_hours:.1f} hours old - reduced confidence")
                if weather.is_forecast:
                    issues.append("Using forecast data - confidence capped at 90%")
        return issues

    def _improvements(
        self,
        bdq: float,
        precision: float,
        overall: float,
        shadow_info: PatioShadowInfo,
        weather: Optional[WeatherSnapshot],
        weather_aware: bool,
    ) -> list[str]:
        improvements = []

        if bdq < LOW_QUALITY:
            improvements.append("Survey building heights for more accurate shadow calculations")
            improvements.append("Verify building data with local planning authorities")
        if precision < LOW_QUALITY:
            improvements.append("Refine patio boundary with higher precision GPS data")
            improvements.append("Use satellite imagery to improve patio polygon accuracy")
        if any(s.confidence < LOW_QUALITY for s in shadow_info.shadows):
            improvements.append("Update building height data for nearby structures")
        if overall < HIGH_CONFIDENCE:
            improvements.append("Consider multiple data sources for validation")
            improvements.append("Use time-averaged calculations to improve reliability")

        if weather_aware:
            if weather is None:
                improvements.append("Integrate weather data for higher confidence scores")
            elif self.weather_age(weather) > timedelta(hours=1):
                improvements.append("Refresh weather data for improved confidence")

        if not improvements:
            improvements.append("Data quality is good - confidence level is appropriate")
        return improvements

    @staticmethod
    def display_confidence(factors: ConfidenceFactors) -> float:
        """Overall confidence as a 0-100 value with one decimal."""
        return round(factors.overall_confidence * 100.0, 1)

    @staticmethod
    def is_sufficient(factors: ConfidenceFactors) -> bool:
        return factors.overall_confidence >= SUFFICIENT_CONFIDENCE
