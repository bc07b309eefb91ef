"""
Unit tests for shadow projection and building heights.

Tests cover:
- Shadow length, direction and polygon projection
- Per-shadow confidence
- Patio partitioning into shadowed / sunlit parts
- Low-sun and sun-down short cuts
- Height resolution and admin overrides
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from sunexposure.errors import InvalidArgumentError, NotFoundError
from sunexposure.models.building import HeightSource
from sunexposure.services.building_heights import BuildingHeightManager
from sunexposure.services.entities import BuildingFootprint, PatioFootprint, SolarPosition
from sunexposure.services.geometry_ops import get_geometry_ops
from sunexposure.services.shadow_calculation_service import ShadowCalculationService
from sunexposure.services.shadow_geometry import (
    project_shadow_polygon,
    shadow_confidence,
    shadow_direction,
    shadow_length,
    shadow_vector,
)
from sunexposure.services.solar_calculation_service import SolarCalculationService

MIDSUMMER_NOON = datetime(2026, 6, 21, 11, 0, tzinfo=timezone.utc)
MIDWINTER_MORNING = datetime(2026, 12, 21, 8, 45, tzinfo=timezone.utc)  # ~3.5 deg elevation
MIDWINTER_NIGHT = datetime(2026, 12, 21, 22, 0, tzinfo=timezone.utc)


def make_position(elevation: float, azimuth: float = 180.0) -> SolarPosition:
    ts = datetime(2026, 6, 21, 11, tzinfo=timezone.utc)
    return SolarPosition(
        azimuth=azimuth,
        elevation=elevation,
        declination=23.4,
        hour_angle=0.0,
        earth_distance_au=1.016,
        timestamp=ts,
        local_time=ts,
        latitude=57.7089,
        longitude=11.9746,
    )


class TestShadowGeometry:
    """Tests for single-building shadow math."""

    def test_shadow_length_at_45_degrees_equals_height(self):
        assert shadow_length(10.0, 45.0) == pytest.approx(10.0)

    def test_shadow_length_zero_when_sun_down(self):
        assert shadow_length(10.0, 0.0) == 0.0
        assert shadow_length(10.0, -5.0) == 0.0

    def test_shadow_points_away_from_sun(self):
        assert shadow_direction(180.0) == 0.0
        assert shadow_direction(90.0) == 270.0
        assert shadow_direction(300.0) == 120.0

    def test_shadow_vector_components(self):
        east, north = shadow_vector(10.0, 0.0)
        assert east == pytest.approx(0.0, abs=1e-9)
        assert north == pytest.approx(10.0)

        east, north = shadow_vector(10.0, 90.0)
        assert east == pytest.approx(10.0)
        assert north == pytest.approx(0.0, abs=1e-9)

    def test_projection_skipped_for_low_sun_or_short_building(self, local_box):
        ops = get_geometry_ops()
        footprint = local_box(0, 0, 10, 10)
        assert project_shadow_polygon(ops, footprint, 10.0, make_position(4.9)) is None
        assert project_shadow_polygon(ops, footprint, 2.9, make_position(45.0)) is None

    def test_projection_clamps_length(self, local_box):
        ops = get_geometry_ops()
        _, length, direction = project_shadow_polygon(ops, local_box(0, 0, 10, 10), 100.0, make_position(10.0))
        assert length == 200.0
        assert direction == 0.0

    def test_projected_polygon_extends_north(self, local_box):
        ops = get_geometry_ops()
        footprint = local_box(0, 0, 10, 10)
        polygon, length, _ = project_shadow_polygon(ops, footprint, 10.0, make_position(45.0))

        assert length == pytest.approx(10.0)
        assert polygon.contains(footprint)
        # Footprint plus a 10 m sweep north
        assert ops.area_m2(polygon) == pytest.approx(200.0, rel=0.01)

    @pytest.mark.parametrize("elevation,length,source,expected", [
        (45.0, 10.0, HeightSource.SURVEYED, 1.0),
        (15.0, 10.0, HeightSource.SURVEYED, 0.9),
        (8.0, 120.0, HeightSource.HEURISTIC, 0.7 * 0.8 * 0.7),
        (45.0, 60.0, HeightSource.OSM, 0.9 * 0.85),
        (45.0, 10.0, HeightSource.ADMIN_OVERRIDE, 1.0),
    ])
    def test_shadow_confidence(self, elevation, length, source, expected):
        assert shadow_confidence(elevation, length, source) == pytest.approx(expected)


class TestPatioShadow:
    """Tests for ShadowCalculationService patio coverage."""

    @pytest.fixture
    def service(self, building_repository, patio_repository):
        return ShadowCalculationService(
            building_repository,
            patio_repository,
            SolarCalculationService(patio_repository, local_timezone="Europe/Stockholm"),
        )

    @pytest.mark.asyncio
    async def test_open_patio_is_fully_sunlit(self, service, patio):
        info = await service.calculate_patio_shadow(patio.id, MIDSUMMER_NOON)

        assert info.shadowed_area_percent == 0.0
        assert info.sunlit_area_percent == 100.0
        assert info.shadows == []
        assert info.confidence == 1.0
        assert info.is_reliable

    @pytest.mark.asyncio
    async def test_block_to_the_south_shades_patio(self, service, patio, southern_block):
        info = await service.calculate_patio_shadow(patio.id, MIDSUMMER_NOON)

        assert info.shadowed_area_percent == pytest.approx(100.0, abs=0.5)
        assert info.shadowed_area_percent + info.sunlit_area_percent == pytest.approx(100.0)
        assert [s.building_id for s in info.shadows] == [southern_block.id]
        assert info.shadows[0].building_height_m == 30.0

    @pytest.mark.asyncio
    async def test_block_to_the_north_casts_no_shadow_on_patio(
        self, service, patio, building_repository, local_box
    ):
        building_repository.add(BuildingFootprint(
            id=uuid4(),
            footprint=local_box(-25, 8, 25, 22),
            height_m=30.0,
            height_source=HeightSource.SURVEYED,
        ))

        info = await service.calculate_patio_shadow(patio.id, MIDSUMMER_NOON)

        assert info.sunlit_area_percent == 100.0
        assert info.shadows == []

    @pytest.mark.asyncio
    async def test_partial_shadow_splits_area(self, service, patio, building_repository, local_box):
        # Narrow block covering roughly the western half
        building_repository.add(BuildingFootprint(
            id=uuid4(),
            footprint=local_box(-25, -22, 1.5, -8),
            height_m=30.0,
            height_source=HeightSource.SURVEYED,
        ))

        info = await service.calculate_patio_shadow(patio.id, MIDSUMMER_NOON)

        assert 20.0 < info.shadowed_area_percent < 80.0
        assert info.shadowed_area_percent + info.sunlit_area_percent == pytest.approx(100.0)
        assert info.shadowed_geometry is not None
        assert info.sunlit_geometry is not None

    @pytest.mark.asyncio
    async def test_short_buildings_are_ignored(self, service, patio, building_repository, local_box):
        building_repository.add(BuildingFootprint(
            id=uuid4(),
            footprint=local_box(-25, -10, 25, -6),
            height_m=2.5,
            height_source=HeightSource.SURVEYED,
        ))

        info = await service.calculate_patio_shadow(patio.id, MIDSUMMER_NOON)
        assert info.shadowed_area_percent == 0.0

    @pytest.mark.asyncio
    async def test_sun_down_is_fully_shadowed(self, service, patio, southern_block):
        info = await service.calculate_patio_shadow(patio.id, MIDWINTER_NIGHT)

        assert info.shadowed_area_percent == 100.0
        assert info.sunlit_area_percent == 0.0
        assert info.confidence == 1.0

    @pytest.mark.asyncio
    async def test_low_sun_uses_estimate(self, service, patio, southern_block):
        info = await service.calculate_patio_shadow(patio.id, MIDWINTER_MORNING)

        assert 0 < info.solar_position.elevation < 5
        assert info.shadowed_area_percent == 75.0
        assert info.sunlit_area_percent == 25.0
        assert info.confidence == 0.3
        assert info.is_reliable is False
        assert info.shadows == []

    @pytest.mark.asyncio
    async def test_unknown_patio(self, service):
        with pytest.raises(NotFoundError):
            await service.calculate_patio_shadow(uuid4(), MIDSUMMER_NOON)

    @pytest.mark.asyncio
    async def test_non_utc_timestamp(self, service, patio):
        with pytest.raises(InvalidArgumentError):
            await service.calculate_patio_shadow(
                patio.id, datetime(2026, 6, 21, 13, tzinfo=timezone(timedelta(hours=2)))
            )

    @pytest.mark.asyncio
    async def test_batch_omits_unknown_patios(self, service, patio, patio_repository, southern_block, local_box):
        neighbour = patio_repository.add(PatioFootprint(
            id=uuid4(),
            name="Corner cafe",
            geometry=local_box(30, -5, 40, 5),
        ))

        results = await service.calculate_patio_batch_shadow([patio.id, neighbour.id, uuid4()], MIDSUMMER_NOON)

        assert set(results) == {patio.id, neighbour.id}
        assert results[patio.id].shadowed_area_percent == pytest.approx(100.0, abs=0.5)
        assert results[neighbour.id].shadowed_area_percent == 0.0
        assert results[patio.id].solar_position is results[neighbour.id].solar_position

    @pytest.mark.asyncio
    async def test_batch_empty(self, service):
        assert await service.calculate_patio_batch_shadow([], MIDSUMMER_NOON) == {}

    @pytest.mark.asyncio
    async def test_failing_building_is_skipped(self, service, patio, southern_block, building_repository, monkeypatch):
        broken = building_repository.add(BuildingFootprint(
            id=uuid4(),
            footprint=southern_block.footprint,
            height_m=12.0,
            height_source=HeightSource.OSM,
        ))
        original = service.project_building_shadow

        def project(building, position):
            if building.id == broken.id:
                raise ValueError("invalid footprint")
            return original(building, position)

        monkeypatch.setattr(service, "project_building_shadow", project)

        info = await service.calculate_patio_shadow(patio.id, MIDSUMMER_NOON)
        assert [s.building_id for s in info.shadows] == [southern_block.id]

    @pytest.mark.asyncio
    async def test_shadow_timeline_records_each_tick(self, service, patio):
        result = await service.calculate_patio_shadow_timeline(
            patio.id,
            datetime(2026, 6, 21, 10, tzinfo=timezone.utc),
            datetime(2026, 6, 21, 12, tzinfo=timezone.utc),
            timedelta(hours=1),
        )
        assert len(result["points"]) == 3
        assert all(p["is_sun_visible"] for p in result["points"])
        assert result["average_confidence"] == 1.0


class TestBuildingHeights:
    """Tests for height resolution and overrides."""

    @pytest.fixture
    def manager(self):
        return BuildingHeightManager()

    def test_override_wins(self, manager, local_box):
        building = BuildingFootprint(
            id=uuid4(), footprint=local_box(0, 0, 10, 10), height_m=12.0,
            height_source=HeightSource.OSM, admin_height_override_m=18.0,
        )
        assert manager.get_effective_height(building) == 18.0
        assert manager.effective_source(building) == HeightSource.ADMIN_OVERRIDE
        assert manager.calculate_height_confidence(building) == 1.0

    def test_stored_height(self, manager, local_box):
        building = BuildingFootprint(
            id=uuid4(), footprint=local_box(0, 0, 10, 10), height_m=12.0, height_source=HeightSource.OSM,
        )
        assert manager.get_effective_height(building) == 12.0
        assert manager.calculate_height_confidence(building) == 0.80

    def test_heuristic_from_area(self, manager, local_box):
        # 20 m x 20 m = 400 m2 -> 3 floors
        building = BuildingFootprint(id=uuid4(), footprint=local_box(0, 0, 20, 20), height_m=0.0)

        height = manager.get_effective_height(building)

        assert 9.0 <= height <= 9.5
        assert manager.effective_source(building) == HeightSource.HEURISTIC
        info = manager.get_height_info(building)
        assert info.is_heuristic
        assert info.can_cast_shadow

    def test_heuristic_is_clamped(self, manager, local_box):
        tiny = BuildingFootprint(id=uuid4(), footprint=local_box(0, 0, 1, 1), height_m=0.0)
        huge = BuildingFootprint(id=uuid4(), footprint=local_box(0, 0, 200, 200), height_m=0.0)
        assert manager.get_effective_height(tiny) == pytest.approx(3.0, abs=0.01)
        assert manager.get_effective_height(huge) <= 30.0

    @pytest.mark.parametrize("height", [0.0, -1.0, 200.1])
    def test_rejects_invalid_override(self, manager, height):
        with pytest.raises(InvalidArgumentError):
            manager.validate_height_override(height)

    def test_accepts_override_bounds(self, manager):
        assert manager.validate_height_override(200.0) == 200.0
        assert manager.validate_height_override(0.5) == 0.5

    @pytest.mark.asyncio
    async def test_update_and_remove_override(self, building_repository, patio_repository, southern_block):
        service = ShadowCalculationService(building_repository, patio_repository, SolarCalculationService())

        info = await service.update_building_height(southern_block.id, 45.0)
        assert info.effective_height_m == 45.0
        assert info.height_source == HeightSource.ADMIN_OVERRIDE
        assert (await building_repository.get_by_id(southern_block.id)).admin_height_override_m == 45.0

        info = await service.remove_building_height_override(southern_block.id)
        assert info.effective_height_m == 30.0
        assert info.height_source == HeightSource.SURVEYED

    @pytest.mark.asyncio
    async def test_update_unknown_building(self, building_repository, patio_repository):
        service = ShadowCalculationService(building_repository, patio_repository, SolarCalculationService())
        with pytest.raises(NotFoundError):
            await service.update_building_height(uuid4(), 10.0)
