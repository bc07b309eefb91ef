"""
Service wiring.

Builds the engine services over either the PostGIS repositories or the
in-memory ones and exposes a process-wide container for FastAPI routes
and the precomputation worker.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sunexposure.config import get_settings
from sunexposure.repositories.base import (
    BuildingRepository,
    CacheEntryRepository,
    PatioRepository,
    PrecomputationRepository,
    WeatherRepository,
)
from sunexposure.services.cache_service import (
    CachedSunExposureService,
    DistributedCacheTier,
    MemoryCacheTier,
    MultiLayerCacheService,
)
from sunexposure.services.clock import Clock, utc_now
from sunexposure.services.confidence_calculator import ConfidenceCalculator
from sunexposure.services.geometry_ops import GeometryOps, get_geometry_ops
from sunexposure.services.precomputation_service import PrecomputationService
from sunexposure.services.shadow_calculation_service import ShadowCalculationService
from sunexposure.services.solar_calculation_service import SolarCalculationService
from sunexposure.services.sun_exposure_service import SunExposureService
from sunexposure.services.sun_timeline_service import SunTimelineService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Repositories and services sharing one clock and one geometry backend."""

    building_repository: BuildingRepository
    patio_repository: PatioRepository
    weather_repository: Optional[WeatherRepository]
    precomputation_repository: PrecomputationRepository
    cache_entry_repository: CacheEntryRepository
    solar_service: SolarCalculationService
    shadow_service: ShadowCalculationService
    confidence_calculator: ConfidenceCalculator
    exposure_service: SunExposureService
    cache: MultiLayerCacheService
    cached_exposure_service: CachedSunExposureService
    timeline_service: SunTimelineService
    precomputation_service: PrecomputationService
    clock: Clock


def build_container(
    building_repository: BuildingRepository,
    patio_repository: PatioRepository,
    precomputation_repository: PrecomputationRepository,
    cache_entry_repository: CacheEntryRepository,
    weather_repository: Optional[WeatherRepository] = None,
    geometry_ops: Optional[GeometryOps] = None,
    clock: Clock = utc_now,
) -> ServiceContainer:
    """Wire services over the given repositories."""
    geometry_ops = geometry_ops or get_geometry_ops()

    solar_service = SolarCalculationService(patio_repository, geometry_ops)
    shadow_service = ShadowCalculationService(
        building_repository,
        patio_repository,
        solar_service,
        geometry_ops=geometry_ops,
    )
    confidence_calculator = ConfidenceCalculator(geometry_ops, clock)
    exposure_service = SunExposureService(
        patio_repository,
        solar_service,
        shadow_service,
        confidence_calculator=confidence_calculator,
        weather_repository=weather_repository,
        geometry_ops=geometry_ops,
        clock=clock,
    )
    cache = MultiLayerCacheService(
        MemoryCacheTier(clock=clock),
        DistributedCacheTier(cache_entry_repository, clock=clock),
        precomputation_repository=precomputation_repository,
        clock=clock,
    )
    cached_exposure_service = CachedSunExposureService(cache, exposure_service)
    timeline_service = SunTimelineService(
        cached_exposure_service,
        patio_repository,
        solar_service,
        precomputation_repository=precomputation_repository,
        geometry_ops=geometry_ops,
        clock=clock,
    )
    # Precomputation writes its own rows, so it must not read back through the cache
    precomputation_service = PrecomputationService(
        exposure_service,
        patio_repository,
        precomputation_repository,
        cache_invalidator=cache,
        clock=clock,
    )

    return ServiceContainer(
        building_repository=building_repository,
        patio_repository=patio_repository,
        weather_repository=weather_repository,
        precomputation_repository=precomputation_repository,
        cache_entry_repository=cache_entry_repository,
        solar_service=solar_service,
        shadow_service=shadow_service,
        confidence_calculator=confidence_calculator,
        exposure_service=exposure_service,
        cache=cache,
        cached_exposure_service=cached_exposure_service,
        timeline_service=timeline_service,
        precomputation_service=precomputation_service,
        clock=clock,
    )


def build_in_memory_container(clock: Clock = utc_now) -> ServiceContainer:
    """Container over empty in-memory repositories."""
    from sunexposure.repositories.memory import (
        InMemoryBuildingRepository,
        InMemoryCacheEntryRepository,
        InMemoryPatioRepository,
        InMemoryPrecomputationRepository,
        InMemoryWeatherRepository,
    )

    return build_container(
        building_repository=InMemoryBuildingRepository(),
        patio_repository=InMemoryPatioRepository(),
        precomputation_repository=InMemoryPrecomputationRepository(),
        cache_entry_repository=InMemoryCacheEntryRepository(),
        weather_repository=InMemoryWeatherRepository(),
        clock=clock,
    )


def build_sql_container(clock: Clock = utc_now) -> ServiceContainer:
    """Container over the PostGIS repositories."""
    # Imported here so in-memory runs never create an engine
    from sunexposure.database import async_session_maker
    from sunexposure.repositories.sql import (
        SqlBuildingRepository,
        SqlCacheEntryRepository,
        SqlPatioRepository,
        SqlPrecomputationRepository,
        SqlWeatherRepository,
    )

    return build_container(
        building_repository=SqlBuildingRepository(async_session_maker),
        patio_repository=SqlPatioRepository(async_session_maker),
        precomputation_repository=SqlPrecomputationRepository(async_session_maker),
        cache_entry_repository=SqlCacheEntryRepository(async_session_maker),
        weather_repository=SqlWeatherRepository(async_session_maker),
        clock=clock,
    )


_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """Get or create the process-wide service container."""
    global _container
    if _container is None:
        if get_settings().use_in_memory_store:
            logger.info("Wiring in-memory repositories")
            _container = build_in_memory_container()
        else:
            logger.info("Wiring PostGIS repositories")
            _container = build_sql_container()
    return _container
