"""
Shared fixtures: a pinned clock, footprints laid out in metres around a
point in central Gothenburg, and a service container over the in-memory
repositories.
"""
from datetime import datetime, timezone
from uuid import uuid4

import pytest
from shapely.geometry import box

from sunexposure.dependencies import build_container
from sunexposure.models.building import HeightSource
from sunexposure.repositories.memory import (
    InMemoryBuildingRepository,
    InMemoryCacheEntryRepository,
    InMemoryPatioRepository,
    InMemoryPrecomputationRepository,
    InMemoryWeatherRepository,
)
from sunexposure.services.clock import FixedClock
from sunexposure.services.entities import BuildingFootprint, PatioFootprint
from sunexposure.services.geometry_ops import METERS_PER_DEGREE, meters_per_degree_lon

ORIGIN_LON = 11.9746
ORIGIN_LAT = 57.7089


@pytest.fixture
def local_box():
    """Build an axis-aligned box from metre offsets (west, south, east, north) of the origin."""
    lon_scale = meters_per_degree_lon(ORIGIN_LAT)

    def _box(west_m: float, south_m: float, east_m: float, north_m: float):
        return box(
            ORIGIN_LON + west_m / lon_scale,
            ORIGIN_LAT + south_m / METERS_PER_DEGREE,
            ORIGIN_LON + east_m / lon_scale,
            ORIGIN_LAT + north_m / METERS_PER_DEGREE,
        )

    return _box


@pytest.fixture
def clock():
    """Midsummer, 13:00 local time."""
    return FixedClock(datetime(2026, 6, 21, 11, 0, tzinfo=timezone.utc))


@pytest.fixture
def patio_repository():
    return InMemoryPatioRepository()


@pytest.fixture
def building_repository():
    return InMemoryBuildingRepository()


@pytest.fixture
def weather_repository():
    return InMemoryWeatherRepository()


@pytest.fixture
def precomputation_repository():
    return InMemoryPrecomputationRepository()


@pytest.fixture
def cache_entry_repository():
    return InMemoryCacheEntryRepository()


@pytest.fixture
def container(
    clock,
    patio_repository,
    building_repository,
    weather_repository,
    precomputation_repository,
    cache_entry_repository,
):
    return build_container(
        building_repository=building_repository,
        patio_repository=patio_repository,
        precomputation_repository=precomputation_repository,
        cache_entry_repository=cache_entry_repository,
        weather_repository=weather_repository,
        clock=clock,
    )


@pytest.fixture
def patio(patio_repository, local_box):
    """A 10 m x 10 m patio centred on the origin."""
    return patio_repository.add(
        PatioFootprint(
            id=uuid4(),
            name="Hamnkrogen terrace",
            geometry=local_box(-5, -5, 5, 5),
            polygon_quality=0.5,
        )
    )


@pytest.fixture
def southern_block(building_repository, local_box):
    """
    A 30 m surveyed block just south of the patio.

    At midsummer noon its shadow reaches about 20 m north, covering the
    whole patio.
    """
    return building_repository.add(
        BuildingFootprint(
            id=uuid4(),
            footprint=local_box(-25, -22, 25, -8),
            height_m=30.0,
            height_source=HeightSource.SURVEYED,
            quality_score=0.9,
        )
    )
