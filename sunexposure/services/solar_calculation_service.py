"""
Solar Position Engine.

Computes sun azimuth/elevation for a place and UTC instant, solar
timelines, and sunrise / sunset / solar noon by bisection.

All calculations are synchronous CPU work; only the patio convenience
lookup awaits a repository.
"""
import logging
import time
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from sunexposure.config import get_settings
from sunexposure.errors import InvalidArgumentError, NotFoundError
from sunexposure.repositories.base import PatioRepository
from sunexposure.services import solar_math
from sunexposure.services.entities import SolarPosition, SunTimes
from sunexposure.services.geometry_ops import GeometryOps, get_geometry_ops

logger = logging.getLogger(__name__)

# Timeline limits
MAX_TIMELINE_POINTS = 10000
MAX_TIMELINE_INTERVAL = timedelta(days=1)

# Bisection windows (hours after UTC midnight) and tolerances
SOLAR_NOON_WINDOW = (10, 16)
SUNRISE_WINDOW = (2, 10)
SUNSET_WINDOW = (16, 22)
SOLAR_NOON_TOLERANCE = timedelta(seconds=1)
SUN_EVENT_TOLERANCE = timedelta(seconds=10)
SOLAR_NOON_PROBE = timedelta(minutes=5)

# Warn when a single calculation is unexpectedly slow
SLOW_CALCULATION_MS = 100.0


def validate_coordinates(latitude: float, longitude: float) -> None:
    if not -90.0 <= latitude <= 90.0:
        raise InvalidArgumentError(f"Latitude must be between -90 and 90 degrees, got {latitude}")
    if not -180.0 <= longitude <= 180.0:
        raise InvalidArgumentError(f"Longitude must be between -180 and 180 degrees, got {longitude}")


def validate_utc_timestamp(timestamp: datetime) -> None:
    """Reject naive or non-UTC timestamps and years outside 1000-3000."""
    if timestamp.tzinfo is None or timestamp.utcoffset() != timedelta(0):
        raise InvalidArgumentError(f"Timestamp must be in UTC, got {timestamp.isoformat()}")
    if not 1000 <= timestamp.year <= 3000:
        raise InvalidArgumentError(f"Timestamp year must be between 1000 and 3000, got {timestamp.year}")


def validate_timeline_request(start: datetime, end: datetime, interval: timedelta) -> int:
    """
    Validate a [start, end] / interval request before computing anything.

    Returns the number of points the timeline will contain (end inclusive).
    """
    validate_utc_timestamp(start)
    validate_utc_timestamp(end)

    if end <= start:
        raise InvalidArgumentError("End time must be after start time")
    if interval <= timedelta(0):
        raise InvalidArgumentError("Interval must be positive")
    if interval > MAX_TIMELINE_INTERVAL:
        raise InvalidArgumentError("Interval cannot exceed 1 day")

    points = (end - start) // interval + 1
    if points > MAX_TIMELINE_POINTS:
        raise InvalidArgumentError(
            f"Timeline would generate {points} points, maximum is {MAX_TIMELINE_POINTS}. "
            f"Increase interval or reduce time range."
        )
    return points


class SolarCalculationService:
    """
    Solar Position Engine.

    The patio repository is an optional capability; without it
    calculate_for_patio is unavailable.
    """

    def __init__(
        self,
        patio_repository: Optional[PatioRepository] = None,
        geometry_ops: Optional[GeometryOps] = None,
        local_timezone: Optional[str] = None,
    ):
        self.patio_repository = patio_repository
        self.geometry_ops = geometry_ops or get_geometry_ops()
        self.local_tz = ZoneInfo(local_timezone or get_settings().local_timezone)

    def to_local(self, utc: datetime) -> datetime:
        return utc.astimezone(self.local_tz)

    def calculate_position(
        self,
        timestamp: datetime,
        latitude: float,
        longitude: float,
    ) -> SolarPosition:
        """
        Solar position for a UTC instant.

        Raises:
            InvalidArgumentError: coordinates out of range or timestamp not UTC
        """
        validate_coordinates(latitude, longitude)
        validate_utc_timestamp(timestamp)

        started = time.perf_counter()
        coords = solar_math.solar_coordinates(timestamp, latitude, longitude)

        position = SolarPosition(
            azimuth=coords["azimuth"],
            elevation=coords["elevation"],
            declination=coords["declination"],
            hour_angle=coords["hour_angle"],
            earth_distance_au=coords["earth_distance_au"],
            timestamp=timestamp,
            local_time=self.to_local(timestamp),
            latitude=latitude,
            longitude=longitude,
        )

        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms > SLOW_CALCULATION_MS:
            logger.warning(f"Solar calculation took {elapsed_ms:.1f}ms (target {SLOW_CALCULATION_MS}ms)")

        logger.debug(
            f"Solar position at ({latitude:.5f}, {longitude:.5f}) {timestamp.isoformat()}: "
            f"azimuth={position.azimuth:.3f}, elevation={position.elevation:.3f}"
        )
        return position

    @staticmethod
    def is_sun_visible(position: SolarPosition) -> bool:
        return position.elevation > 0

    def calculate_timeline(
        self,
        start: datetime,
        end: datetime,
        interval: timedelta,
        latitude: float,
        longitude: float,
    ) -> list[SolarPosition]:
        """Positions from start to end inclusive, every ``interval``."""
        validate_timeline_request(start, end, interval)
        validate_coordinates(latitude, longitude)

        positions = []
        current = start
        while current <= end:
            positions.append(self.calculate_position(current, latitude, longitude))
            current += interval

        logger.info(
            f"Calculated solar timeline: {len(positions)} positions from "
            f"{start.isoformat()} to {end.isoformat()}"
        )
        return positions

    def find_solar_noon(self, day: date, latitude: float, longitude: float) -> datetime:
        """
        Instant of maximum elevation, by bisection over 10:00-16:00 UTC.

        Each step compares elevation five minutes either side of the
        midpoint and keeps the half containing the maximum.
        """
        midnight = _utc_midnight(day)
        start = midnight + timedelta(hours=SOLAR_NOON_WINDOW[0])
        end = midnight + timedelta(hours=SOLAR_NOON_WINDOW[1])

        while end - start > SOLAR_NOON_TOLERANCE:
            mid = start + (end - start) / 2
            before = self.calculate_position(mid - SOLAR_NOON_PROBE, latitude, longitude)
            after = self.calculate_position(mid + SOLAR_NOON_PROBE, latitude, longitude)
            if before.elevation > after.elevation:
                end = mid
            else:
                start = mid

        return start + (end - start) / 2

    def find_sun_event(
        self,
        day: date,
        latitude: float,
        longitude: float,
        target_elevation: float = solar_math.SUNRISE_SUNSET_ELEVATION,
        rising: bool = True,
    ) -> datetime:
        """
        Instant the sun crosses ``target_elevation``, by bisection.

        Sunrise is searched in 02:00-10:00 UTC, sunset in 16:00-22:00 UTC.
        On days with no crossing inside the window the result converges to
        a window edge.
        """
        midnight = _utc_midnight(day)
        window = SUNRISE_WINDOW if rising else SUNSET_WINDOW
        start = midnight + timedelta(hours=window[0])
        end = midnight + timedelta(hours=window[1])

        while end - start > SUN_EVENT_TOLERANCE:
            mid = start + (end - start) / 2
            elevation = self.calculate_position(mid, latitude, longitude).elevation
            if (rising and elevation < target_elevation) or (not rising and elevation > target_elevation):
                start = mid
            else:
                end = mid

        return start + (end - start) / 2

    def get_sun_times(self, day: date, latitude: float, longitude: float) -> SunTimes:
        validate_coordinates(latitude, longitude)

        solar_noon = self.find_solar_noon(day, latitude, longitude)
        noon_position = self.calculate_position(solar_noon, latitude, longitude)
        sunrise = self.find_sun_event(day, latitude, longitude, rising=True)
        sunset = self.find_sun_event(day, latitude, longitude, rising=False)

        return SunTimes(
            date=day,
            latitude=latitude,
            longitude=longitude,
            sunrise_utc=sunrise,
            sunset_utc=sunset,
            sunrise_local=self.to_local(sunrise),
            sunset_local=self.to_local(sunset),
            solar_noon_utc=solar_noon,
            solar_noon_local=self.to_local(solar_noon),
            max_elevation=noon_position.elevation,
        )

    async def calculate_for_patio(self, patio_id: UUID, timestamp: datetime) -> SolarPosition:
        """
        Solar position at the patio centroid.

        Raises:
            NotFoundError: patio unknown or has no geometry
            RuntimeError: no patio repository configured
        """
        if self.patio_repository is None:
            raise RuntimeError("Patio lookup is not available for patio-based calculations")

        patio = await self.patio_repository.get_by_id(patio_id)
        if patio is None or self.geometry_ops.is_empty(patio.geometry):
            raise NotFoundError("Patio", patio_id)

        lon, lat = self.geometry_ops.centroid(patio.geometry)
        return self.calculate_position(timestamp, lat, lon)


def _utc_midnight(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


_solar_service: Optional[SolarCalculationService] = None


def get_solar_calculation_service() -> SolarCalculationService:
    """Get the shared SolarCalculationService (no patio lookup)."""
    global _solar_service
    if _solar_service is None:
        _solar_service = SolarCalculationService()
    return _solar_service
