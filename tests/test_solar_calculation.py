"""
Unit tests for the solar position engine.

Tests cover:
- Position sanity at solar noon and at night
- Input validation (coordinates, UTC-only timestamps)
- Inclusive timelines and their limits
- Sunrise / sunset / solar noon bisection
"""
from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest

from sunexposure.errors import InvalidArgumentError, NotFoundError
from sunexposure.services.solar_calculation_service import (
    SolarCalculationService,
    validate_timeline_request,
)

GOTHENBURG = (57.7089, 11.9746)


class TestSolarPosition:
    """Tests for single-instant positions."""

    @pytest.fixture
    def service(self):
        return SolarCalculationService(local_timezone="Europe/Stockholm")

    def test_midsummer_noon_is_high_and_south(self, service):
        position = service.calculate_position(
            datetime(2026, 6, 21, 11, 14, tzinfo=timezone.utc), *GOTHENBURG
        )

        # 90 - 57.7 + 23.44
        assert position.elevation == pytest.approx(55.8, abs=0.5)
        assert position.azimuth == pytest.approx(180.0, abs=3.0)
        assert service.is_sun_visible(position)

    def test_morning_sun_is_east_of_south(self, service):
        position = service.calculate_position(
            datetime(2026, 6, 21, 7, 0, tzinfo=timezone.utc), *GOTHENBURG
        )
        assert 60.0 < position.azimuth < 180.0
        assert position.hour_angle < 0

    def test_midwinter_night_is_below_horizon(self, service):
        position = service.calculate_position(
            datetime(2026, 12, 21, 22, 0, tzinfo=timezone.utc), *GOTHENBURG
        )
        assert position.elevation < -30.0
        assert not service.is_sun_visible(position)
        assert not position.is_above_horizon

    def test_local_time_uses_configured_zone(self, service):
        position = service.calculate_position(
            datetime(2026, 6, 21, 11, 0, tzinfo=timezone.utc), *GOTHENBURG
        )
        assert position.local_time.hour == 13
        assert position.local_time.utcoffset() == timedelta(hours=2)

    def test_earth_distance_near_aphelion(self, service):
        position = service.calculate_position(
            datetime(2026, 7, 4, 12, 0, tzinfo=timezone.utc), *GOTHENBURG
        )
        assert position.earth_distance_au == pytest.approx(1.0167, abs=0.001)

    def test_to_dict_rounds_angles(self, service):
        data = service.calculate_position(
            datetime(2026, 6, 21, 11, 0, tzinfo=timezone.utc), *GOTHENBURG
        ).to_dict()
        assert data["latitude"] == GOTHENBURG[0]
        assert data["timestamp"] == "2026-06-21T11:00:00+00:00"
        assert len(str(data["azimuth"]).split(".")[-1]) <= 4

    @pytest.mark.parametrize("latitude,longitude", [(91.0, 0.0), (-90.5, 0.0), (0.0, 180.5), (0.0, -181.0)])
    def test_rejects_out_of_range_coordinates(self, service, latitude, longitude):
        with pytest.raises(InvalidArgumentError):
            service.calculate_position(datetime(2026, 6, 21, 12, tzinfo=timezone.utc), latitude, longitude)

    def test_accepts_coordinate_bounds(self, service):
        service.calculate_position(datetime(2026, 6, 21, 12, tzinfo=timezone.utc), 90.0, -180.0)
        service.calculate_position(datetime(2026, 6, 21, 12, tzinfo=timezone.utc), -90.0, 180.0)

    def test_rejects_naive_timestamp(self, service):
        with pytest.raises(InvalidArgumentError, match="UTC"):
            service.calculate_position(datetime(2026, 6, 21, 12), *GOTHENBURG)

    def test_rejects_non_utc_offset(self, service):
        cest = timezone(timedelta(hours=2))
        with pytest.raises(InvalidArgumentError, match="UTC"):
            service.calculate_position(datetime(2026, 6, 21, 13, tzinfo=cest), *GOTHENBURG)

    def test_rejects_year_out_of_range(self, service):
        with pytest.raises(InvalidArgumentError, match="year"):
            service.calculate_position(datetime(999, 6, 21, 12, tzinfo=timezone.utc), *GOTHENBURG)


class TestSolarTimeline:
    """Tests for sampled timelines."""

    @pytest.fixture
    def service(self):
        return SolarCalculationService(local_timezone="Europe/Stockholm")

    def test_timeline_is_end_inclusive(self, service):
        start = datetime(2026, 6, 21, 6, 0, tzinfo=timezone.utc)
        end = datetime(2026, 6, 21, 18, 0, tzinfo=timezone.utc)

        positions = service.calculate_timeline(start, end, timedelta(hours=1), *GOTHENBURG)

        assert len(positions) == 13
        assert positions[0].timestamp == start
        assert positions[-1].timestamp == end

    def test_elevation_peaks_mid_timeline(self, service):
        positions = service.calculate_timeline(
            datetime(2026, 6, 21, 6, 0, tzinfo=timezone.utc),
            datetime(2026, 6, 21, 16, 0, tzinfo=timezone.utc),
            timedelta(hours=1),
            *GOTHENBURG,
        )
        peak = max(positions, key=lambda p: p.elevation)
        assert peak.timestamp.hour == 11

    def test_rejects_end_before_start(self):
        start = datetime(2026, 6, 21, 12, tzinfo=timezone.utc)
        with pytest.raises(InvalidArgumentError, match="after start"):
            validate_timeline_request(start, start, timedelta(minutes=10))

    def test_rejects_non_positive_interval(self):
        start = datetime(2026, 6, 21, 12, tzinfo=timezone.utc)
        with pytest.raises(InvalidArgumentError, match="positive"):
            validate_timeline_request(start, start + timedelta(hours=1), timedelta(0))

    def test_rejects_interval_over_one_day(self):
        start = datetime(2026, 6, 1, tzinfo=timezone.utc)
        with pytest.raises(InvalidArgumentError, match="1 day"):
            validate_timeline_request(start, start + timedelta(days=5), timedelta(days=2))

    def test_rejects_too_many_points(self):
        start = datetime(2026, 6, 1, tzinfo=timezone.utc)
        with pytest.raises(InvalidArgumentError, match="maximum is 10000"):
            validate_timeline_request(start, start + timedelta(days=10), timedelta(minutes=1))

    def test_counts_points(self):
        start = datetime(2026, 6, 1, tzinfo=timezone.utc)
        assert validate_timeline_request(start, start + timedelta(hours=2), timedelta(minutes=10)) == 13


class TestSunTimes:
    """Tests for sunrise, sunset and solar noon."""

    @pytest.fixture
    def service(self):
        return SolarCalculationService(local_timezone="Europe/Stockholm")

    def test_equinox_sun_times(self, service):
        times = service.get_sun_times(date(2026, 3, 20), *GOTHENBURG)

        assert times.sunrise_utc < times.solar_noon_utc < times.sunset_utc
        # 12:00 - 48 min of longitude + ~7.5 min equation of time
        noon = times.solar_noon_utc
        assert datetime(2026, 3, 20, 11, 5, tzinfo=timezone.utc) < noon < datetime(2026, 3, 20, 11, 35, tzinfo=timezone.utc)
        assert 11.9 < times.day_length.total_seconds() / 3600 < 12.6
        assert times.max_elevation == pytest.approx(32.3, abs=0.7)

    def test_midwinter_sun_stays_low(self, service):
        times = service.get_sun_times(date(2026, 12, 21), *GOTHENBURG)
        assert times.max_elevation == pytest.approx(8.9, abs=0.5)
        assert datetime(2026, 12, 21, 7, 30, tzinfo=timezone.utc) < times.sunrise_utc < times.solar_noon_utc

    def test_sunrise_elevation_matches_standard_horizon(self, service):
        times = service.get_sun_times(date(2026, 3, 20), *GOTHENBURG)
        at_sunrise = service.calculate_position(times.sunrise_utc, *GOTHENBURG)
        assert at_sunrise.elevation == pytest.approx(-0.833, abs=0.1)

    def test_local_fields_are_converted(self, service):
        times = service.get_sun_times(date(2026, 6, 21), *GOTHENBURG)
        assert times.sunset_local == times.sunset_utc.astimezone(service.local_tz)
        assert times.to_dict()["date"] == "2026-06-21"


class TestPatioLookup:
    """Tests for solar position at a stored patio."""

    @pytest.mark.asyncio
    async def test_uses_patio_centroid(self, patio_repository, patio):
        service = SolarCalculationService(patio_repository, local_timezone="Europe/Stockholm")
        position = await service.calculate_for_patio(patio.id, datetime(2026, 6, 21, 11, tzinfo=timezone.utc))

        assert position.latitude == pytest.approx(57.7089, abs=1e-6)
        assert position.longitude == pytest.approx(11.9746, abs=1e-6)

    @pytest.mark.asyncio
    async def test_unknown_patio(self, patio_repository):
        service = SolarCalculationService(patio_repository)
        with pytest.raises(NotFoundError):
            await service.calculate_for_patio(uuid4(), datetime(2026, 6, 21, 11, tzinfo=timezone.utc))

    @pytest.mark.asyncio
    async def test_requires_repository(self):
        service = SolarCalculationService()
        with pytest.raises(RuntimeError):
            await service.calculate_for_patio(uuid4(), datetime(2026, 6, 21, 11, tzinfo=timezone.utc))
