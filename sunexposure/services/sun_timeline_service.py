"""
Sun exposure timelines and sun windows.

A timeline is one point per tick over [start, end]. Each tick prefers a
fresh precomputed row (within the precomputed tolerance, not stale) and
falls back to a realtime point query. A tick that fails becomes a
placeholder instead of failing the timeline.

Sun windows are contiguous runs of points with at least 20% exposure in a
Sunny or Partial state, lasting at least 15 minutes.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Protocol
from uuid import UUID

import numpy as np

from sunexposure.config import get_settings
from sunexposure.errors import InvalidArgumentError, NotFoundError
from sunexposure.models.precomputed_sun_exposure import PrecomputedSunExposure
from sunexposure.repositories.base import PatioRepository, PrecomputationRepository
from sunexposure.services.clock import Clock, utc_now
from sunexposure.services.entities import (
    ExposureState,
    PatioFootprint,
    PatioSunExposure,
    SunExposureTimeline,
    SunWindow,
    SunWindowQuality,
    TimelinePoint,
    TimelinePointSource,
    TimelineSummary,
)
from sunexposure.services.geometry_ops import GeometryOps, get_geometry_ops
from sunexposure.services.solar_calculation_service import (
    SolarCalculationService,
    validate_timeline_request,
    validate_utc_timestamp,
)

logger = logging.getLogger(__name__)

MIN_RESOLUTION = timedelta(minutes=1)

# Sun window detection
MIN_SUN_WINDOW_EXPOSURE = 20.0
MIN_SUN_WINDOW_DURATION = timedelta(minutes=15)
SUN_WINDOW_STATES = (ExposureState.SUNNY, ExposureState.PARTIAL)

# (min average exposure, min duration, min confidence) per tier, best first
QUALITY_THRESHOLDS = [
    (SunWindowQuality.EXCELLENT, 80.0, timedelta(hours=2), 80.0),
    (SunWindowQuality.GOOD, 60.0, timedelta(hours=1), 70.0),
    (SunWindowQuality.FAIR, 40.0, timedelta(minutes=30), 60.0),
]
QUALITY_BONUS = {
    SunWindowQuality.EXCELLENT: 20.0,
    SunWindowQuality.GOOD: 10.0,
    SunWindowQuality.FAIR: 5.0,
    SunWindowQuality.POOR: 0.0,
}
QUALITY_RANK = {
    SunWindowQuality.EXCELLENT: 3,
    SunWindowQuality.GOOD: 2,
    SunWindowQuality.FAIR: 1,
    SunWindowQuality.POOR: 0,
}
RECOMMENDED_QUALITIES = (SunWindowQuality.EXCELLENT, SunWindowQuality.GOOD)
RECOMMENDED_MIN_DURATION = timedelta(minutes=30)
RECOMMENDED_MIN_EXPOSURE = 50.0

# Best continuous period in the summary
GOOD_SUN_EXPOSURE = 60.0

# Timeline quality assessment
COMPLETENESS_TARGET = 95.0
LOW_POINT_CONFIDENCE = 60.0
CONFIDENCE_RELIABILITY_TARGET = 80.0

MAX_COMPARISON_RESULTS = 5
WINDOWS_PER_PATIO_IN_COMPARISON = 2

PLACEHOLDER_ELEVATION = -10.0


class ExposureSource(Protocol):
    """Anything that answers point queries (plain or cached orchestrator)."""

    async def calculate_patio_sun_exposure(self, patio_id: UUID, timestamp: datetime) -> PatioSunExposure:
        ...


@dataclass
class RecommendedTime:
    rank: int
    patio_id: UUID
    venue_name: str
    time: datetime
    sun_exposure: float
    confidence: float
    reason: str

    def to_dict(self) -> dict:
        return {
            "rank": self.rank,
            "patio_id": str(self.patio_id),
            "venue_name": self.venue_name,
            "time": self.time.isoformat(),
            "sun_exposure": round(self.sun_exposure, 2),
            "confidence": round(self.confidence, 2),
            "reason": self.reason,
        }


@dataclass
class TimelineComparison:
    timelines: list[SunExposureTimeline]
    best_times: list[RecommendedTime]
    best_patio_id: Optional[UUID]
    average_confidence: float
    total_sun_windows: int
    generated_at: datetime


@dataclass
class TimelineQualityAssessment:
    quality_score: float
    completeness_percent: float
    confidence_reliability: float
    precomputed_percent: float
    quality_issues: list[str] = field(default_factory=list)
    improvements: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "quality_score": round(self.quality_score, 2),
            "completeness_percent": round(self.completeness_percent, 2),
            "confidence_reliability": round(self.confidence_reliability, 2),
            "precomputed_percent": round(self.precomputed_percent, 2),
            "quality_issues": self.quality_issues,
            "improvements": self.improvements,
        }


# =============================================================================
# Sun window rules
# =============================================================================

def window_quality(average_exposure: float, duration: timedelta, confidence: float) -> SunWindowQuality:
    for quality, min_exposure, min_duration, min_confidence in QUALITY_THRESHOLDS:
        if average_exposure >= min_exposure and duration >= min_duration and confidence >= min_confidence:
            return quality
    return SunWindowQuality.POOR


def is_window_recommended(window: SunWindow) -> bool:
    return (
        window.quality in RECOMMENDED_QUALITIES
        and window.duration >= RECOMMENDED_MIN_DURATION
        and window.average_exposure >= RECOMMENDED_MIN_EXPOSURE
    )


def recommendation_reason(window: SunWindow) -> str:
    if not window.is_recommended:
        if window.duration < RECOMMENDED_MIN_DURATION:
            return "Too short duration for comfortable visit"
        if window.average_exposure < RECOMMENDED_MIN_EXPOSURE:
            return "Limited sun exposure during this period"
        return "Lower quality sun exposure"

    reasons = []
    if window.quality == SunWindowQuality.EXCELLENT:
        reasons.append("excellent sun exposure")
    elif window.quality == SunWindowQuality.GOOD:
        reasons.append("good sun exposure")

    if window.duration >= timedelta(hours=2):
        reasons.append("long duration")
    elif window.duration >= timedelta(hours=1):
        reasons.append("good duration")

    if window.average_exposure >= 80.0:
        reasons.append("high sun coverage")

    return ", ".join(reasons) if reasons else "Suitable sun exposure"


def time_of_day(hour: int) -> str:
    if 6 <= hour < 10:
        return "Morning"
    if 10 <= hour < 14:
        return "Midday"
    if 14 <= hour < 18:
        return "Afternoon"
    if 18 <= hour < 21:
        return "Evening"
    return "Late"


def window_description(window: SunWindow) -> str:
    """E.g. "Morning sun (good quality, 1.5 hours)"."""
    hours = window.duration.total_seconds() / 3600
    if hours > 1:
        duration = f"{hours:.1f} hours"
    else:
        duration = f"{window.duration.total_seconds() / 60:.0f} minutes"
    return f"{time_of_day(window.local_start.hour)} sun ({window.quality.value} quality, {duration})"


def window_priority(window: SunWindow) -> float:
    duration_score = min(window.duration.total_seconds() / 3600 * 25.0, 100.0)
    return (
        window.average_exposure * 0.4
        + duration_score * 0.3
        + window.confidence * 0.2
        + QUALITY_BONUS[window.quality] * 0.1
    )


def finalize_window(window: SunWindow, end: datetime, local_end: datetime) -> SunWindow:
    window.end = end
    window.local_end = local_end
    window.average_exposure = (window.min_exposure + window.max_exposure) / 2.0
    window.quality = window_quality(window.average_exposure, window.duration, window.confidence)
    window.description = window_description(window)
    window.is_recommended = is_window_recommended(window)
    window.recommendation_reason = recommendation_reason(window)
    window.priority_score = window_priority(window)
    return window


def identify_sun_windows(patio_id: UUID, points: list[TimelinePoint]) -> list[SunWindow]:
    """
    Segment a timeline into sun windows.

    A window ends at the first non-qualifying point, or at the last point
    when the run reaches the end of the timeline. Window confidence is a
    running pairwise mean, so later points weigh more.
    """
    windows: list[SunWindow] = []
    current: Optional[SunWindow] = None

    ordered = sorted(points, key=lambda p: p.timestamp)
    for point in ordered:
        significant = (
            point.sun_exposure_percent >= MIN_SUN_WINDOW_EXPOSURE
            and point.state in SUN_WINDOW_STATES
        )

        if significant:
            if current is None:
                current = SunWindow(
                    patio_id=patio_id,
                    start=point.timestamp,
                    end=point.timestamp,
                    local_start=point.local_time,
                    local_end=point.local_time,
                    peak_exposure=point.sun_exposure_percent,
                    peak_time=point.timestamp,
                    average_exposure=point.sun_exposure_percent,
                    min_exposure=point.sun_exposure_percent,
                    max_exposure=point.sun_exposure_percent,
                    confidence=point.confidence,
                    point_count=1,
                )
            else:
                if point.sun_exposure_percent > current.max_exposure:
                    current.max_exposure = point.sun_exposure_percent
                    current.peak_exposure = point.sun_exposure_percent
                    current.peak_time = point.timestamp
                current.min_exposure = min(current.min_exposure, point.sun_exposure_percent)
                current.confidence = (current.confidence + point.confidence) / 2.0
                current.point_count += 1
        elif current is not None:
            finalize_window(current, point.timestamp, point.local_time)
            if current.duration >= MIN_SUN_WINDOW_DURATION:
                windows.append(current)
            current = None

    if current is not None:
        last = ordered[-1]
        finalize_window(current, last.timestamp, last.local_time)
        if current.duration >= MIN_SUN_WINDOW_DURATION:
            windows.append(current)

    logger.debug(f"Identified {len(windows)} sun windows from {len(points)} timeline points")
    return windows


# =============================================================================
# Summary
# =============================================================================

def count_consecutive_periods(points: list[TimelinePoint], state: ExposureState) -> int:
    periods = 0
    in_period = False
    for point in points:
        if point.state == state:
            if not in_period:
                periods += 1
                in_period = True
        else:
            in_period = False
    return periods


def find_best_sun_period(
    points: list[TimelinePoint],
    interval: timedelta,
) -> tuple[Optional[datetime], timedelta]:
    """Longest run of points with >= 60% exposure, one interval per point."""
    best_start: Optional[datetime] = None
    best_duration = timedelta(0)
    current_start: Optional[datetime] = None
    current_duration = timedelta(0)

    for point in points:
        if point.sun_exposure_percent >= GOOD_SUN_EXPOSURE:
            if current_start is None:
                current_start = point.timestamp
                current_duration = interval
            else:
                current_duration += interval
        else:
            if current_start is not None and current_duration > best_duration:
                best_start, best_duration = current_start, current_duration
            current_start = None

    if current_start is not None and current_duration > best_duration:
        best_start, best_duration = current_start, current_duration
    return best_start, best_duration


def summarize_points(points: list[TimelinePoint], interval: timedelta) -> TimelineSummary:
    if not points:
        return TimelineSummary()

    ordered = sorted(points, key=lambda p: p.timestamp)
    exposures = np.array([p.sun_exposure_percent for p in ordered], dtype=float)
    states = [p.state for p in ordered]
    best_start, best_duration = find_best_sun_period(ordered, interval)

    return TimelineSummary(
        average_exposure=float(exposures.mean()),
        max_exposure=float(exposures.max()),
        min_exposure=float(exposures.min()),
        sunny_periods=count_consecutive_periods(ordered, ExposureState.SUNNY),
        partial_periods=count_consecutive_periods(ordered, ExposureState.PARTIAL),
        shaded_periods=count_consecutive_periods(ordered, ExposureState.SHADED),
        no_sun_periods=count_consecutive_periods(ordered, ExposureState.NO_SUN),
        total_sunny_time=interval * states.count(ExposureState.SUNNY),
        total_partial_time=interval * states.count(ExposureState.PARTIAL),
        total_shaded_time=interval * states.count(ExposureState.SHADED),
        best_sun_period_start=best_start,
        best_sun_period_duration=best_duration,
    )


# =============================================================================
# Service
# =============================================================================

class SunTimelineService:
    """
    Timeline query, sun windows and cross-patio comparison.

    The precomputation repository is optional; without it every tick is a
    realtime calculation.
    """

    def __init__(
        self,
        exposure_service: ExposureSource,
        patio_repository: PatioRepository,
        solar_service: SolarCalculationService,
        precomputation_repository: Optional[PrecomputationRepository] = None,
        geometry_ops: Optional[GeometryOps] = None,
        clock: Clock = utc_now,
    ):
        settings = get_settings()
        self.exposure_service = exposure_service
        self.patio_repository = patio_repository
        self.solar_service = solar_service
        self.precomputation_repository = precomputation_repository
        self.geometry_ops = geometry_ops or get_geometry_ops()
        self.clock = clock
        self.default_resolution = timedelta(minutes=settings.default_timeline_resolution_minutes)
        self.max_range = timedelta(hours=settings.max_timeline_hours)
        self.tolerance_minutes = settings.precomputed_tolerance_minutes

    def validate_request(self, start: datetime, end: datetime, resolution: timedelta) -> int:
        validate_utc_timestamp(start)
        validate_utc_timestamp(end)
        if end <= start:
            raise InvalidArgumentError("End time must be after start time")
        if end - start > self.max_range:
            raise InvalidArgumentError(
                f"Timeline range cannot exceed {self.max_range.total_seconds() / 3600:.0f} hours"
            )
        if resolution < MIN_RESOLUTION:
            raise InvalidArgumentError("Resolution cannot be less than 1 minute")
        return validate_timeline_request(start, end, resolution)

    async def _get_patio(self, patio_id: UUID) -> PatioFootprint:
        patio = await self.patio_repository.get_by_id(patio_id)
        if patio is None or self.geometry_ops.is_empty(patio.geometry):
            raise NotFoundError("Patio", patio_id)
        return patio

    async def generate_timeline(
        self,
        patio_id: UUID,
        start: datetime,
        end: datetime,
        resolution: Optional[timedelta] = None,
    ) -> SunExposureTimeline:
        """
        Exposure timeline for one patio, start and end inclusive.

        Raises:
            InvalidArgumentError: bad range, resolution or too many points
            NotFoundError: unknown patio
        """
        interval = self.default_resolution if resolution is None else resolution
        point_count = self.validate_request(start, end, interval)
        patio = await self._get_patio(patio_id)

        logger.debug(
            f"Generating timeline for patio {patio_id}: {point_count} points "
            f"from {start.isoformat()} to {end.isoformat()}"
        )

        points = []
        current = start
        while current <= end:
            points.append(await self._timeline_point(patio_id, current))
            current += interval

        lon, lat = self.geometry_ops.centroid(patio.geometry)
        sun_times = self.solar_service.get_sun_times(start.date(), lat, lon)

        precomputed = sum(1 for p in points if p.source == TimelinePointSource.PRECOMPUTED)
        calculated = sum(1 for p in points if p.source == TimelinePointSource.CALCULATED)

        timeline = SunExposureTimeline(
            patio_id=patio_id,
            patio_name=patio.name,
            start=start,
            end=end,
            interval=interval,
            points=points,
            sun_windows=identify_sun_windows(patio_id, points),
            summary=summarize_points(points, interval),
            average_confidence=float(np.mean([p.confidence for p in points])) if points else 0.0,
            precomputed_points=precomputed,
            calculated_points=calculated,
            generated_at=self.clock(),
            sun_times=sun_times,
        )
        logger.info(
            f"Generated timeline for patio {patio_id} with {len(points)} points "
            f"({precomputed} precomputed) and {len(timeline.sun_windows)} sun windows"
        )
        return timeline

    async def _timeline_point(self, patio_id: UUID, timestamp: datetime) -> TimelinePoint:
        try:
            row = await self._get_precomputed(patio_id, timestamp)
            if row is not None:
                return self._point_from_precomputed(row, timestamp)
            exposure = await self.exposure_service.calculate_patio_sun_exposure(patio_id, timestamp)
            return self._point_from_exposure(exposure, timestamp)
        except Exception as e:
            logger.warning(f"Failed to generate timeline point for patio {patio_id} at {timestamp}: {e}")
            return self._placeholder_point(timestamp)

    async def _get_precomputed(self, patio_id: UUID, timestamp: datetime) -> Optional[PrecomputedSunExposure]:
        if self.precomputation_repository is None:
            return None
        row = await self.precomputation_repository.get_precomputed(
            patio_id, timestamp, self.tolerance_minutes, now=self.clock()
        )
        if row is None or row.is_stale:
            return None
        return row

    def _point_from_precomputed(self, row: PrecomputedSunExposure, tick: datetime) -> TimelinePoint:
        """The row's values placed at the tick; the row may sit on a nearby slot."""
        return TimelinePoint(
            timestamp=tick,
            local_time=self.solar_service.to_local(tick),
            sun_exposure_percent=row.sun_exposure_percent,
            state=ExposureState(row.state),
            confidence=row.confidence,
            solar_elevation=row.solar_elevation,
            solar_azimuth=row.solar_azimuth,
            source=TimelinePointSource.PRECOMPUTED,
        )

    def _point_from_exposure(self, exposure: PatioSunExposure, tick: datetime) -> TimelinePoint:
        return TimelinePoint(
            timestamp=tick,
            local_time=self.solar_service.to_local(tick),
            sun_exposure_percent=exposure.sun_exposure_percent,
            state=exposure.state,
            confidence=exposure.confidence,
            solar_elevation=exposure.solar_elevation,
            solar_azimuth=exposure.solar_azimuth,
            source=TimelinePointSource.CALCULATED,
        )

    def _placeholder_point(self, timestamp: datetime) -> TimelinePoint:
        return TimelinePoint(
            timestamp=timestamp,
            local_time=self.solar_service.to_local(timestamp),
            sun_exposure_percent=0.0,
            state=ExposureState.NO_SUN,
            confidence=0.0,
            solar_elevation=PLACEHOLDER_ELEVATION,
            solar_azimuth=0.0,
            source=TimelinePointSource.PLACEHOLDER,
        )

    # -------------------------------------------------------------------------
    # Convenience queries
    # -------------------------------------------------------------------------

    def local_day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """UTC instants of local midnight at the start and end of ``day``."""
        start_local = datetime.combine(day, time.min, tzinfo=self.solar_service.local_tz)
        end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.solar_service.local_tz)
        return (
            start_local.astimezone(timezone.utc),
            end_local.astimezone(timezone.utc),
        )

    async def get_day_timeline(self, patio_id: UUID, day: date) -> SunExposureTimeline:
        start, end = self.local_day_bounds(day)
        return await self.generate_timeline(patio_id, start, end, self.default_resolution)

    async def get_best_sun_windows(
        self,
        patio_id: UUID,
        start: datetime,
        end: datetime,
        max_windows: int = 3,
    ) -> list[SunWindow]:
        """Top windows by priority score, then average exposure."""
        if max_windows < 1:
            raise InvalidArgumentError("max_windows must be at least 1")
        timeline = await self.generate_timeline(patio_id, start, end, self.default_resolution)
        ranked = sorted(
            timeline.sun_windows,
            key=lambda w: (w.priority_score, w.average_exposure),
            reverse=True,
        )
        return ranked[:max_windows]

    async def get_today_recommendations(self, patio_id: UUID) -> list[SunWindow]:
        today = self.solar_service.to_local(self.clock()).date()
        timeline = await self.get_day_timeline(patio_id, today)
        recommended = [w for w in timeline.sun_windows if w.is_recommended]
        recommended.sort(key=lambda w: (QUALITY_RANK[w.quality], w.priority_score), reverse=True)
        return recommended

    async def generate_batch_timelines(
        self,
        patio_ids: list[UUID],
        start: datetime,
        end: datetime,
        resolution: Optional[timedelta] = None,
    ) -> list[SunExposureTimeline]:
        """Timelines for many patios; a patio that fails is left out."""
        interval = self.default_resolution if resolution is None else resolution
        self.validate_request(start, end, interval)

        timelines = []
        for patio_id in patio_ids:
            try:
                timelines.append(await self.generate_timeline(patio_id, start, end, interval))
            except Exception as e:
                logger.warning(f"Failed to generate timeline for patio {patio_id} in batch operation: {e}")

        logger.info(f"Generated {len(timelines)}/{len(patio_ids)} timelines in batch operation")
        return timelines

    async def compare_patios(
        self,
        patio_ids: list[UUID],
        start: datetime,
        end: datetime,
    ) -> TimelineComparison:
        """
        Rank the best recommended windows across patios.

        Each patio contributes its two highest-priority recommended
        windows; the top five by peak exposure x confidence are returned.
        """
        timelines = await self.generate_batch_timelines(patio_ids, start, end)

        candidates = []
        for timeline in timelines:
            recommended = sorted(
                (w for w in timeline.sun_windows if w.is_recommended),
                key=lambda w: w.priority_score,
                reverse=True,
            )[:WINDOWS_PER_PATIO_IN_COMPARISON]
            for window in recommended:
                candidates.append((timeline, window))

        candidates.sort(key=lambda c: c[1].peak_exposure * c[1].confidence / 100.0, reverse=True)
        best_times = [
            RecommendedTime(
                rank=index + 1,
                patio_id=timeline.patio_id,
                venue_name=timeline.patio_name or "Unknown",
                time=self.solar_service.to_local(window.peak_time),
                sun_exposure=window.peak_exposure,
                confidence=window.confidence,
                reason=window.recommendation_reason,
            )
            for index, (timeline, window) in enumerate(candidates[:MAX_COMPARISON_RESULTS])
        ]

        best_patio_id = None
        if timelines:
            best = max(
                timelines,
                key=lambda t: (t.average_confidence, t.summary.average_exposure),
            )
            best_patio_id = best.patio_id

        return TimelineComparison(
            timelines=timelines,
            best_times=best_times,
            best_patio_id=best_patio_id,
            average_confidence=(
                float(np.mean([t.average_confidence for t in timelines])) if timelines else 0.0
            ),
            total_sun_windows=sum(len(t.sun_windows) for t in timelines),
            generated_at=self.clock(),
        )

    @staticmethod
    def summarize(timeline: SunExposureTimeline) -> TimelineSummary:
        return summarize_points(timeline.points, timeline.interval)

    @staticmethod
    def validate_timeline_quality(timeline: SunExposureTimeline) -> TimelineQualityAssessment:
        """Completeness and confidence reliability of a generated timeline."""
        issues = []
        improvements = []
        point_count = len(timeline.points)

        expected = int((timeline.end - timeline.start) / timeline.interval) + 1
        completeness = point_count / expected * 100.0 if expected else 0.0
        if completeness < COMPLETENESS_TARGET:
            issues.append(f"Timeline is only {completeness:.1f}% complete")
            improvements.append("Run precomputation pipeline to fill data gaps")

        low_confidence = sum(1 for p in timeline.points if p.confidence < LOW_POINT_CONFIDENCE)
        reliability = (1.0 - low_confidence / point_count) * 100.0 if point_count else 0.0
        if reliability < CONFIDENCE_RELIABILITY_TARGET:
            issues.append(f"Low confidence data ({low_confidence} points below 60% confidence)")
            improvements.append("Improve building height data quality")

        return TimelineQualityAssessment(
            quality_score=min(completeness * 0.5 + reliability * 0.5, 100.0),
            completeness_percent=completeness,
            confidence_reliability=reliability,
            precomputed_percent=(
                timeline.precomputed_points / point_count * 100.0 if point_count else 0.0
            ),
            quality_issues=issues,
            improvements=improvements,
        )
