"""
Unit tests for confidence scoring.

Tests cover:
- Weather freshness decay and source reliability
- Category boundaries
- Caps for missing weather, forecasts, nowcasts and poor building data
- Canonical and legacy formulas
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from sunexposure.services.clock import FixedClock
from sunexposure.services.confidence_calculator import (
    ConfidenceCalculator,
    confidence_category,
    weather_freshness_factor,
    weather_source_reliability,
)
from sunexposure.services.entities import (
    ConfidenceCategory,
    PatioFootprint,
    PatioShadowInfo,
    ShadowProjection,
    SolarPosition,
    WeatherSnapshot,
)

NOW = datetime(2026, 6, 21, 11, 0, tzinfo=timezone.utc)


def make_position(elevation: float = 55.0) -> SolarPosition:
    return SolarPosition(
        azimuth=175.0,
        elevation=elevation,
        declination=23.4,
        hour_angle=-3.5,
        earth_distance_au=1.016,
        timestamp=NOW,
        local_time=NOW,
        latitude=57.7089,
        longitude=11.9746,
    )


def make_shadow_info(patio_id, shadows=(), confidence: float = 1.0) -> PatioShadowInfo:
    return PatioShadowInfo(
        patio_id=patio_id,
        shadowed_area_percent=0.0,
        sunlit_area_percent=100.0,
        shadows=list(shadows),
        shadowed_geometry=None,
        sunlit_geometry=None,
        confidence=confidence,
        solar_position=make_position(),
        timestamp=NOW,
    )


def make_shadow(confidence: float) -> ShadowProjection:
    return ShadowProjection(
        building_id=uuid4(),
        geometry=None,
        length_m=20.0,
        direction_deg=355.0,
        building_height_m=30.0,
        solar_position=make_position(),
        confidence=confidence,
    )


def make_weather(age: timedelta, is_forecast: bool = False, source: str = "yr.no") -> WeatherSnapshot:
    return WeatherSnapshot(
        timestamp=NOW - age,
        cloud_cover=20.0,
        precipitation_probability=5.0,
        is_forecast=is_forecast,
        source=source,
        created_at=NOW - age,
    )


class TestWeatherFactors:
    """Tests for weather freshness and source reliability."""

    @pytest.mark.parametrize("age,expected", [
        (timedelta(0), 1.0),
        (timedelta(minutes=4, seconds=59), 1.0),
        (timedelta(minutes=5), 0.95),
        (timedelta(minutes=20), 0.90),
        (timedelta(minutes=45), 0.85),
        (timedelta(minutes=90), 0.75),
        (timedelta(minutes=180), 0.60),
        (timedelta(hours=6), 0.40),
        (timedelta(minutes=420), 0.40),
    ])
    def test_freshness_steps(self, age, expected):
        assert weather_freshness_factor(age) == expected

    def test_freshness_never_increases_with_age(self):
        factors = [weather_freshness_factor(timedelta(minutes=m)) for m in range(0, 600, 5)]
        assert all(a >= b for a, b in zip(factors, factors[1:]))

    @pytest.mark.parametrize("source,expected", [
        ("yr.no", 0.95),
        ("YR.NO", 0.95),
        ("metno", 0.95),
        ("OpenWeatherMap", 0.85),
        ("smhi", 0.80),
        (None, 0.80),
    ])
    def test_source_reliability(self, source, expected):
        assert weather_source_reliability(source) == expected


class TestCategories:
    """Tests for category boundaries."""

    @pytest.mark.parametrize("overall,expected", [
        (0.95, ConfidenceCategory.HIGH),
        (0.75, ConfidenceCategory.HIGH),
        (0.70, ConfidenceCategory.HIGH),
        (0.60, ConfidenceCategory.MEDIUM),
        (0.45, ConfidenceCategory.MEDIUM),
        (0.6999, ConfidenceCategory.MEDIUM),
        (0.40, ConfidenceCategory.MEDIUM),
        (0.3999, ConfidenceCategory.LOW),
        (0.0, ConfidenceCategory.LOW),
    ])
    def test_boundaries(self, overall, expected):
        assert confidence_category(overall) == expected


class TestConfidenceCalculator:
    """Tests for ConfidenceCalculator.score and friends."""

    @pytest.fixture
    def calculator(self):
        return ConfidenceCalculator(clock=FixedClock(NOW))

    @pytest.fixture
    def patio(self, local_box):
        return PatioFootprint(id=uuid4(), name="Terrace", geometry=local_box(-5, -5, 5, 5), polygon_quality=0.5)

    def test_caps(self, calculator):
        assert calculator.apply_caps(0.9, None, 1.0) == 0.60
        assert calculator.apply_caps(0.99, make_weather(timedelta(0), is_forecast=True), 1.0) == 0.90
        assert calculator.apply_caps(0.99, make_weather(timedelta(0)), 1.0) == 0.95
        assert calculator.apply_caps(0.9, make_weather(timedelta(0)), 0.5) == 0.70
        assert calculator.apply_caps(0.3, None, 0.5) == 0.3

    def test_no_weather_is_capped_at_60(self, calculator, patio):
        factors = calculator.score(patio, make_shadow_info(patio.id), make_position())

        # 0.85 * 0.6 + 0.5 * 0.4 = 0.71 before the cap
        assert factors.geometry_quality == pytest.approx(0.85)
        assert factors.cloud_certainty == 0.5
        assert factors.overall_confidence == pytest.approx(0.60)
        assert factors.category == ConfidenceCategory.MEDIUM
        assert "No weather data available - confidence capped at 60%" in factors.quality_issues
        assert "Integrate weather data for higher confidence scores" in factors.improvements

    def test_fresh_nowcast(self, calculator, patio):
        factors = calculator.score(patio, make_shadow_info(patio.id), make_position(), make_weather(timedelta(0)))

        # cloud certainty 0.95 * 1.0 * 0.95
        assert factors.cloud_certainty == pytest.approx(0.9025)
        assert factors.overall_confidence == pytest.approx(0.871)
        assert factors.category == ConfidenceCategory.HIGH
        assert calculator.display_confidence(factors) == 87.1

    def test_stale_forecast(self, calculator, patio):
        weather = make_weather(timedelta(hours=7), is_forecast=True, source="openweathermap")

        factors = calculator.score(patio, make_shadow_info(patio.id), make_position(), weather)

        assert factors.cloud_certainty == pytest.approx(0.9 * 0.4 * 0.85)
        assert factors.overall_confidence == pytest.approx(0.85 * 0.6 + 0.306 * 0.4)
        assert "Weather data is 7.0 hours old - reduced confidence" in factors.quality_issues
        assert "Using forecast data - confidence capped at 90%" in factors.quality_issues
        assert "Refresh weather data for improved confidence" in factors.improvements

    def test_poor_building_data_cap(self, calculator, local_box):
        patio = PatioFootprint(id=uuid4(), name="Terrace", geometry=local_box(-5, -5, 5, 5), polygon_quality=1.0)
        shadow_info = make_shadow_info(patio.id, shadows=[make_shadow(0.5)], confidence=1.0)

        factors = calculator.score(patio, shadow_info, make_position(), make_weather(timedelta(0)))

        assert factors.building_data_quality == 0.5
        assert factors.overall_confidence == pytest.approx(0.70)
        assert "Building height data has low reliability" in factors.quality_issues

    def test_low_sun_and_small_patio_issues(self, calculator, local_box):
        patio = PatioFootprint(id=uuid4(), name="Balcony", geometry=local_box(0, 0, 2, 2), polygon_quality=0.9)

        factors = calculator.score(patio, make_shadow_info(patio.id), make_position(elevation=7.0))

        assert "Sun at low angle - shadow calculations less reliable" in factors.quality_issues
        assert "Very small patio - geometric precision more critical" in factors.quality_issues

    def test_overall_stays_in_unit_interval(self, calculator, patio):
        for confidence in (0.0, 0.3, 1.0):
            info = make_shadow_info(patio.id, shadows=[make_shadow(confidence)], confidence=confidence)
            factors = calculator.score(patio, info, make_position(), make_weather(timedelta(0)))
            assert 0.0 <= factors.overall_confidence <= 1.0

    def test_legacy_formula(self, calculator, patio):
        factors = calculator.score_legacy(patio, make_shadow_info(patio.id), make_position())

        # 1.0 * 0.40 + 0.5 * 0.25 + 0.98 * 0.20 + 1.0 * 0.15
        assert factors.overall_confidence == pytest.approx(0.871)
        assert factors.solar_accuracy == 0.98
        assert not any("weather" in issue.lower() for issue in factors.quality_issues)

    def test_sufficiency(self, calculator, patio):
        assert calculator.is_sufficient(calculator.score(patio, make_shadow_info(patio.id), make_position()))
        weak = calculator.score(
            patio,
            make_shadow_info(patio.id, shadows=[make_shadow(0.2)], confidence=0.2),
            make_position(),
        )
        assert not calculator.is_sufficient(weak)

    def test_factors_to_dict(self, calculator, patio):
        data = calculator.score(patio, make_shadow_info(patio.id), make_position()).to_dict()
        assert data["category"] == "medium"
        assert isinstance(data["quality_issues"], list)
