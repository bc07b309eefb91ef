"""
Sun Exposure Orchestrator.

Point query:
1. Resolve patio
2. Solar position at the patio centroid
3. Sun down -> fixed NoSun result (confidence 95)
4. Shadow coverage -> sunlit percent -> state
5. Confidence scoring, weather-aware when a weather lookup is configured

Batch query computes the solar position and the shadow set once and maps
every patio from them. A patio that fails to map gets a zero-confidence
placeholder instead of failing the batch.
"""
import logging
import math
import time
from datetime import datetime
from typing import Optional
from uuid import UUID

from sunexposure.config import get_settings
from sunexposure.errors import InvalidArgumentError, NotFoundError
from sunexposure.repositories.base import PatioRepository, WeatherRepository
from sunexposure.services.clock import Clock, utc_now
from sunexposure.services.confidence_calculator import ConfidenceCalculator
from sunexposure.services.entities import (
    CalculationSource,
    ConfidenceCategory,
    ConfidenceFactors,
    ExposureState,
    PatioFootprint,
    PatioShadowInfo,
    PatioSunExposure,
    SolarPosition,
    WeatherSnapshot,
    classify_exposure,
)
from sunexposure.services.geometry_ops import GeometryOps, get_geometry_ops
from sunexposure.services.results import InvalidArgument, NotFound, Ok, Result, Unreliable
from sunexposure.services.shadow_calculation_service import ShadowCalculationService
from sunexposure.services.solar_calculation_service import SolarCalculationService

logger = logging.getLogger(__name__)

NO_SUN_CONFIDENCE = 95.0
EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad, lat2_rad = math.radians(lat1), math.radians(lat2)
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def no_sun_confidence_factors(patio: PatioFootprint) -> ConfidenceFactors:
    """Fixed breakdown for the sun-below-horizon result."""
    return ConfidenceFactors(
        building_data_quality=1.0,
        geometry_precision=patio.polygon_quality,
        solar_accuracy=0.98,
        shadow_accuracy=1.0,
        geometry_quality=1.0,
        cloud_certainty=1.0,
        overall_confidence=0.95,
        category=ConfidenceCategory.HIGH,
        quality_issues=("Sun below horizon - no direct sunlight available",),
        improvements=("Wait for sunrise for sun exposure data",),
    )


class SunExposureService:
    """
    Point and batch sun exposure queries.

    The weather repository is optional; without it confidence is scored
    as "no weather data" and capped at 60%.
    """

    def __init__(
        self,
        patio_repository: PatioRepository,
        solar_service: SolarCalculationService,
        shadow_service: ShadowCalculationService,
        confidence_calculator: Optional[ConfidenceCalculator] = None,
        weather_repository: Optional[WeatherRepository] = None,
        geometry_ops: Optional[GeometryOps] = None,
        max_batch_patios: Optional[int] = None,
        clock: Clock = utc_now,
    ):
        self.patio_repository = patio_repository
        self.solar_service = solar_service
        self.shadow_service = shadow_service
        self.geometry_ops = geometry_ops or get_geometry_ops()
        self.confidence_calculator = confidence_calculator or ConfidenceCalculator(self.geometry_ops, clock)
        self.weather_repository = weather_repository
        self.max_batch_patios = max_batch_patios or get_settings().max_batch_patios
        self.clock = clock

    # -------------------------------------------------------------------------
    # Point query
    # -------------------------------------------------------------------------

    async def calculate_patio_sun_exposure(self, patio_id: UUID, timestamp: datetime) -> PatioSunExposure:
        """
        Sun exposure of one patio at a UTC instant.

        Raises:
            NotFoundError: unknown patio
            InvalidArgumentError: timestamp not UTC
        """
        exposure, _ = await self._calculate(patio_id, timestamp)
        return exposure

    async def get_current_sun_exposure(self, patio_id: UUID) -> PatioSunExposure:
        return await self.calculate_patio_sun_exposure(patio_id, self.clock())

    async def evaluate(self, patio_id: UUID, timestamp: datetime) -> Result:
        """
        Point query as a tagged result.

        Ok for a normal result, Unreliable when the sun is too low for
        geometry or overall confidence is low, NotFound / InvalidArgument
        for bad requests.
        """
        try:
            exposure, reliable = await self._calculate(patio_id, timestamp)
        except InvalidArgumentError as e:
            return InvalidArgument(str(e))
        except NotFoundError as e:
            return NotFound(e.entity, e.entity_id)

        factors = exposure.confidence_factors
        if not reliable or (factors and factors.category == ConfidenceCategory.LOW):
            reasons = factors.quality_issues if factors else ()
            return Unreliable(exposure, tuple(reasons))
        return Ok(exposure)

    async def _calculate(self, patio_id: UUID, timestamp: datetime) -> tuple[PatioSunExposure, bool]:
        started = time.perf_counter()
        logger.debug(f"Calculating sun exposure for patio {patio_id} at {timestamp}")

        patio = await self.patio_repository.get_by_id(patio_id)
        if patio is None or self.geometry_ops.is_empty(patio.geometry):
            raise NotFoundError("Patio", patio_id)

        solar_position = self.shadow_service.position_for_patio(patio, timestamp)

        if not self.solar_service.is_sun_visible(solar_position):
            return self._no_sun_exposure(patio, solar_position, CalculationSource.REALTIME, started), True

        shadow_info = await self.shadow_service.shadow_for_patio(patio, solar_position)
        weather = await self._get_weather(timestamp)

        exposure = self._exposure_from_shadows(
            patio, shadow_info, solar_position, weather, CalculationSource.REALTIME, started
        )
        logger.debug(
            f"Sun exposure for patio {patio_id}: {exposure.sun_exposure_percent:.1f}% "
            f"{exposure.state.value}, confidence {exposure.confidence}"
        )
        return exposure, shadow_info.is_reliable

    async def _get_weather(self, timestamp: datetime) -> Optional[WeatherSnapshot]:
        if self.weather_repository is None:
            return None
        try:
            return await self.weather_repository.get_latest_weather(timestamp)
        except Exception as e:
            logger.warning(f"Failed to retrieve weather data, proceeding without it: {e}")
            return None

    # -------------------------------------------------------------------------
    # Batch query
    # -------------------------------------------------------------------------

    async def calculate_batch_sun_exposure(
        self,
        patio_ids: list[UUID],
        timestamp: datetime,
    ) -> dict[UUID, PatioSunExposure]:
        """
        Sun exposure for up to ``max_batch_patios`` patios at one instant.

        Unknown patio ids are omitted from the result.

        Raises:
            InvalidArgumentError: too many patios or timestamp not UTC
        """
        if len(patio_ids) > self.max_batch_patios:
            raise InvalidArgumentError(
                f"Batch contains {len(patio_ids)} patios, maximum is {self.max_batch_patios}"
            )
        if not patio_ids:
            return {}

        started = time.perf_counter()
        patios = [
            p for p in await self.patio_repository.get_by_ids(list(dict.fromkeys(patio_ids)))
            if not self.geometry_ops.is_empty(p.geometry)
        ]
        if not patios:
            return {}

        envelope = self.geometry_ops.envelope([p.geometry for p in patios])
        lon, lat = self.geometry_ops.centroid(envelope)
        solar_position = self.solar_service.calculate_position(timestamp, lat, lon)

        if not self.solar_service.is_sun_visible(solar_position):
            return {
                p.id: self._no_sun_exposure(p, solar_position, CalculationSource.REALTIME_BATCH, started)
                for p in patios
            }

        shadow_infos = await self.shadow_service.shadows_for_patios(patios, solar_position, envelope)
        weather = await self._get_weather(timestamp)

        results = {}
        for patio in patios:
            try:
                results[patio.id] = self._exposure_from_shadows(
                    patio,
                    shadow_infos[patio.id],
                    solar_position,
                    weather,
                    CalculationSource.REALTIME_BATCH,
                    started,
                )
            except Exception as e:
                logger.error(f"Error processing patio {patio.id} in batch calculation: {e}")
                results[patio.id] = self._placeholder_exposure(patio, solar_position)

        logger.debug(f"Completed batch sun exposure for {len(results)}/{len(patio_ids)} patios")
        return results

    async def get_sunny_patios_near(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        timestamp: Optional[datetime] = None,
    ) -> list[PatioSunExposure]:
        """Sunny patios within radius_km, sunniest first."""
        if radius_km <= 0:
            raise InvalidArgumentError("Radius must be positive")
        when = timestamp or self.clock()

        nearby = []
        for patio in await self.patio_repository.get_all_with_geometry():
            lon, lat = self.geometry_ops.centroid(patio.geometry)
            if haversine_km(latitude, longitude, lat, lon) <= radius_km:
                nearby.append(patio.id)

        results: list[PatioSunExposure] = []
        for start in range(0, len(nearby), self.max_batch_patios):
            chunk = nearby[start:start + self.max_batch_patios]
            results.extend((await self.calculate_batch_sun_exposure(chunk, when)).values())

        sunny = [e for e in results if e.state == ExposureState.SUNNY]
        sunny.sort(key=lambda e: (e.sun_exposure_percent, e.confidence), reverse=True)
        logger.debug(f"Found {len(sunny)} sunny patios among {len(nearby)} nearby")
        return sunny

    def is_calculation_reliable(self, solar_position: SolarPosition, factors: ConfidenceFactors) -> bool:
        return (
            self.solar_service.is_sun_visible(solar_position)
            and self.confidence_calculator.is_sufficient(factors)
        )

    # -------------------------------------------------------------------------
    # Result builders
    # -------------------------------------------------------------------------

    def _exposure_from_shadows(
        self,
        patio: PatioFootprint,
        shadow_info: PatioShadowInfo,
        solar_position: SolarPosition,
        weather: Optional[WeatherSnapshot],
        source: CalculationSource,
        started: float,
    ) -> PatioSunExposure:
        sunlit_percent = shadow_info.sunlit_area_percent
        patio_area = self.geometry_ops.area_m2(patio.geometry)

        factors = self.confidence_calculator.score(patio, shadow_info, solar_position, weather)
        return PatioSunExposure(
            patio_id=patio.id,
            timestamp=solar_position.timestamp,
            local_time=solar_position.local_time,
            sun_exposure_percent=sunlit_percent,
            state=classify_exposure(sunlit_percent, solar_position.elevation),
            confidence=self.confidence_calculator.display_confidence(factors),
            sunlit_area_m2=patio_area * sunlit_percent / 100.0,
            shaded_area_m2=patio_area * shadow_info.shadowed_area_percent / 100.0,
            solar_elevation=solar_position.elevation,
            solar_azimuth=solar_position.azimuth,
            source=source,
            solar_position=solar_position,
            sunlit_geometry=shadow_info.sunlit_geometry,
            shaded_geometry=shadow_info.shadowed_geometry,
            shadows=shadow_info.shadows,
            confidence_factors=factors,
            weather=weather,
            calculation_duration_ms=(time.perf_counter() - started) * 1000,
        )

    def _no_sun_exposure(
        self,
        patio: PatioFootprint,
        solar_position: SolarPosition,
        source: CalculationSource,
        started: float,
    ) -> PatioSunExposure:
        return PatioSunExposure(
            patio_id=patio.id,
            timestamp=solar_position.timestamp,
            local_time=solar_position.local_time,
            sun_exposure_percent=0.0,
            state=ExposureState.NO_SUN,
            confidence=NO_SUN_CONFIDENCE,
            sunlit_area_m2=0.0,
            shaded_area_m2=self.geometry_ops.area_m2(patio.geometry),
            solar_elevation=solar_position.elevation,
            solar_azimuth=solar_position.azimuth,
            source=source,
            solar_position=solar_position,
            sunlit_geometry=None,
            shaded_geometry=patio.geometry,
            confidence_factors=no_sun_confidence_factors(patio),
            calculation_duration_ms=(time.perf_counter() - started) * 1000,
        )

    def _placeholder_exposure(self, patio: PatioFootprint, solar_position: SolarPosition) -> PatioSunExposure:
        state = ExposureState.SHADED if solar_position.elevation > 0 else ExposureState.NO_SUN
        return PatioSunExposure(
            patio_id=patio.id,
            timestamp=solar_position.timestamp,
            local_time=solar_position.local_time,
            sun_exposure_percent=0.0,
            state=state,
            confidence=0.0,
            sunlit_area_m2=0.0,
            shaded_area_m2=0.0,
            solar_elevation=solar_position.elevation,
            solar_azimuth=solar_position.azimuth,
            source=CalculationSource.REALTIME_BATCH,
            solar_position=solar_position,
        )
