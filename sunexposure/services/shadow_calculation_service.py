"""
Shadow Projection Engine.

Projects building shadows for a solar position and computes the shadowed
and sunlit parts of patio polygons.

Flow for one patio:
1. Solar position at the patio centroid
2. Sun down -> fully shadowed; sun below the reliable elevation -> low
   confidence estimate
3. Buffer the patio by the maximum shadow distance and fetch buildings in it
4. Project each building, keep shadows intersecting the patio
5. Union shadows, intersect / difference with the patio

The batch variant computes one solar position and one shadow set for all
requested patios, then partitions per patio.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sunexposure.errors import InvalidArgumentError, NotFoundError
from sunexposure.repositories.base import BuildingRepository, PatioRepository
from sunexposure.services.building_heights import (
    MIN_MEANINGFUL_HEIGHT_M,
    BuildingHeightInfo,
    BuildingHeightManager,
)
from sunexposure.services.entities import (
    BuildingFootprint,
    PatioFootprint,
    PatioShadowInfo,
    ShadowProjection,
    SolarPosition,
)
from sunexposure.services.geometry_ops import GeometryOps, get_geometry_ops
from sunexposure.services.shadow_geometry import (
    MAX_SHADOW_DISTANCE_M,
    MIN_RELIABLE_ELEVATION_DEG,
    project_shadow_polygon,
    shadow_confidence,
)
from sunexposure.services.solar_calculation_service import (
    SolarCalculationService,
    validate_timeline_request,
)

logger = logging.getLogger(__name__)

# Low-sun estimate used when geometry is not trustworthy
LOW_CONFIDENCE_SHADOWED_PERCENT = 75.0
LOW_CONFIDENCE_SHADOW_CONFIDENCE = 0.3

# Shadow timeline placeholder for failed ticks
TIMELINE_FAILURE_SHADOWED_PERCENT = 50.0
TIMELINE_FAILURE_CONFIDENCE = 0.2


class ShadowCalculationService:
    """Shadow Projection Engine."""

    def __init__(
        self,
        building_repository: BuildingRepository,
        patio_repository: PatioRepository,
        solar_service: SolarCalculationService,
        height_manager: Optional[BuildingHeightManager] = None,
        geometry_ops: Optional[GeometryOps] = None,
    ):
        self.building_repository = building_repository
        self.patio_repository = patio_repository
        self.solar_service = solar_service
        self.geometry_ops = geometry_ops or get_geometry_ops()
        self.height_manager = height_manager or BuildingHeightManager(self.geometry_ops)

    @staticmethod
    def is_shadow_calculation_reliable(solar_position: SolarPosition) -> bool:
        return solar_position.elevation >= MIN_RELIABLE_ELEVATION_DEG

    # -------------------------------------------------------------------------
    # Buildings
    # -------------------------------------------------------------------------

    def project_building_shadow(
        self,
        building: BuildingFootprint,
        solar_position: SolarPosition,
    ) -> Optional[ShadowProjection]:
        """
        Shadow of one building, or None when the sun is too low or the
        building too short to cast a meaningful shadow.
        """
        if not self.is_shadow_calculation_reliable(solar_position):
            return None
        if not self.height_manager.can_cast_meaningful_shadow(building):
            return None

        height = self.height_manager.get_effective_height(building)
        projected = project_shadow_polygon(self.geometry_ops, building.footprint, height, solar_position)
        if projected is None:
            return None

        polygon, length, direction = projected
        confidence = shadow_confidence(
            solar_position.elevation,
            length,
            self.height_manager.effective_source(building),
        )

        logger.debug(
            f"Shadow for building {building.id}: length {length:.1f}m, "
            f"direction {direction:.1f}, confidence {confidence:.2f}"
        )
        return ShadowProjection(
            building_id=building.id,
            geometry=polygon,
            length_m=length,
            direction_deg=direction,
            building_height_m=height,
            solar_position=solar_position,
            confidence=confidence,
        )

    async def calculate_building_shadow(
        self,
        building_id: UUID,
        solar_position: SolarPosition,
    ) -> Optional[ShadowProjection]:
        building = await self.building_repository.get_by_id(building_id)
        if building is None:
            raise NotFoundError("Building", building_id)
        return self.project_building_shadow(building, solar_position)

    async def calculate_all_shadows(
        self,
        solar_position: SolarPosition,
        bounding_area: Any,
    ) -> list[ShadowProjection]:
        """
        Shadows of all buildings in ``bounding_area``.

        Each building is projected independently; a failing building is
        logged and skipped.
        """
        if not self.is_shadow_calculation_reliable(solar_position):
            logger.debug("Solar position unreliable, returning empty shadow list")
            return []

        buildings = await self.building_repository.get_in_bounds(bounding_area, MIN_MEANINGFUL_HEIGHT_M)

        shadows = []
        for building in buildings:
            try:
                shadow = self.project_building_shadow(building, solar_position)
            except Exception as e:
                logger.warning(f"Failed to calculate shadow for building {building.id}: {e}")
                continue
            if shadow is not None:
                shadows.append(shadow)

        logger.debug(f"Generated {len(shadows)} shadows from {len(buildings)} buildings")
        return shadows

    # -------------------------------------------------------------------------
    # Patios
    # -------------------------------------------------------------------------

    async def _get_patio(self, patio_id: UUID) -> PatioFootprint:
        patio = await self.patio_repository.get_by_id(patio_id)
        if patio is None or self.geometry_ops.is_empty(patio.geometry):
            logger.warning(f"Patio {patio_id} not found")
            raise NotFoundError("Patio", patio_id)
        return patio

    def position_for_patio(self, patio: PatioFootprint, timestamp: datetime) -> SolarPosition:
        lon, lat = self.geometry_ops.centroid(patio.geometry)
        return self.solar_service.calculate_position(timestamp, lat, lon)

    async def calculate_patio_shadow(self, patio_id: UUID, timestamp: datetime) -> PatioShadowInfo:
        """
        Shadow coverage of one patio.

        Raises:
            NotFoundError: unknown patio
            InvalidArgumentError: timestamp not UTC
        """
        patio = await self._get_patio(patio_id)
        solar_position = self.position_for_patio(patio, timestamp)
        return await self.shadow_for_patio(patio, solar_position)

    async def shadow_for_patio(self, patio: PatioFootprint, solar_position: SolarPosition) -> PatioShadowInfo:
        """Shadow coverage of an already-loaded patio at a known solar position."""
        if not self.solar_service.is_sun_visible(solar_position):
            return self._no_sun_shadow_info(patio, solar_position)

        if not self.is_shadow_calculation_reliable(solar_position):
            logger.debug(f"Solar position unreliable for patio {patio.id}, assuming partial shadow")
            return self._low_confidence_shadow_info(patio, solar_position)

        search_area = self.geometry_ops.buffer_meters(patio.geometry, MAX_SHADOW_DISTANCE_M)
        all_shadows = await self.calculate_all_shadows(solar_position, search_area)
        return self._partition_for_patio(patio, all_shadows, solar_position)

    async def calculate_patio_batch_shadow(
        self,
        patio_ids: list[UUID],
        timestamp: datetime,
    ) -> dict[UUID, PatioShadowInfo]:
        """
        Shadow coverage for many patios sharing one shadow computation.

        Unknown patio ids are omitted. A patio whose partitioning fails gets
        the low-confidence estimate instead of failing the batch.
        """
        if not patio_ids:
            return {}

        patios = [
            p for p in await self.patio_repository.get_by_ids(list(patio_ids))
            if not self.geometry_ops.is_empty(p.geometry)
        ]
        if not patios:
            return {}

        envelope = self.geometry_ops.envelope([p.geometry for p in patios])
        lon, lat = self.geometry_ops.centroid(envelope)
        solar_position = self.solar_service.calculate_position(timestamp, lat, lon)
        return await self.shadows_for_patios(patios, solar_position, envelope)

    async def shadows_for_patios(
        self,
        patios: list[PatioFootprint],
        solar_position: SolarPosition,
        envelope: Optional[Any] = None,
    ) -> dict[UUID, PatioShadowInfo]:
        if not self.solar_service.is_sun_visible(solar_position):
            return {p.id: self._no_sun_shadow_info(p, solar_position) for p in patios}

        if not self.is_shadow_calculation_reliable(solar_position):
            return {p.id: self._low_confidence_shadow_info(p, solar_position) for p in patios}

        if envelope is None:
            envelope = self.geometry_ops.envelope([p.geometry for p in patios])
        search_area = self.geometry_ops.buffer_meters(envelope, MAX_SHADOW_DISTANCE_M)
        all_shadows = await self.calculate_all_shadows(solar_position, search_area)

        logger.debug(f"Calculated {len(all_shadows)} total shadows for {len(patios)} patios")

        results = {}
        for patio in patios:
            try:
                results[patio.id] = self._partition_for_patio(patio, all_shadows, solar_position)
            except Exception as e:
                logger.warning(f"Failed to calculate shadow for patio {patio.id}: {e}")
                results[patio.id] = self._low_confidence_shadow_info(patio, solar_position)
        return results

    def _partition_for_patio(
        self,
        patio: PatioFootprint,
        shadows: list[ShadowProjection],
        solar_position: SolarPosition,
    ) -> PatioShadowInfo:
        ops = self.geometry_ops
        affecting = [s for s in shadows if ops.intersects(s.geometry, patio.geometry)]

        if affecting:
            combined = ops.union([s.geometry for s in affecting])
            shadowed = ops.intersection(patio.geometry, combined)
            sunlit = ops.difference(patio.geometry, combined)
        else:
            shadowed = None
            sunlit = patio.geometry

        patio_area = ops.area_m2(patio.geometry)
        shadowed_area = ops.area_m2(shadowed)
        shadowed_percent = min(100.0, shadowed_area / patio_area * 100.0) if patio_area > 0 else 0.0
        sunlit_percent = max(0.0, 100.0 - shadowed_percent)

        confidence = (
            sum(s.confidence for s in affecting) / len(affecting) if affecting else 1.0
        )

        logger.debug(
            f"Patio {patio.id}: {shadowed_percent:.1f}% shadowed by {len(affecting)} shadows, "
            f"confidence {confidence:.2f}"
        )
        return PatioShadowInfo(
            patio_id=patio.id,
            shadowed_area_percent=shadowed_percent,
            sunlit_area_percent=sunlit_percent,
            shadows=affecting,
            shadowed_geometry=None if ops.is_empty(shadowed) else shadowed,
            sunlit_geometry=None if ops.is_empty(sunlit) else sunlit,
            confidence=confidence,
            solar_position=solar_position,
            timestamp=solar_position.timestamp,
        )

    @staticmethod
    def _no_sun_shadow_info(patio: PatioFootprint, solar_position: SolarPosition) -> PatioShadowInfo:
        return PatioShadowInfo(
            patio_id=patio.id,
            shadowed_area_percent=100.0,
            sunlit_area_percent=0.0,
            shadows=[],
            shadowed_geometry=patio.geometry,
            sunlit_geometry=None,
            confidence=1.0,
            solar_position=solar_position,
            timestamp=solar_position.timestamp,
        )

    @staticmethod
    def _low_confidence_shadow_info(patio: PatioFootprint, solar_position: SolarPosition) -> PatioShadowInfo:
        return PatioShadowInfo(
            patio_id=patio.id,
            shadowed_area_percent=LOW_CONFIDENCE_SHADOWED_PERCENT,
            sunlit_area_percent=100.0 - LOW_CONFIDENCE_SHADOWED_PERCENT,
            shadows=[],
            shadowed_geometry=None,
            sunlit_geometry=None,
            confidence=LOW_CONFIDENCE_SHADOW_CONFIDENCE,
            solar_position=solar_position,
            timestamp=solar_position.timestamp,
            is_reliable=False,
        )

    async def calculate_patio_shadow_timeline(
        self,
        patio_id: UUID,
        start: datetime,
        end: datetime,
        interval: timedelta,
    ) -> dict:
        """
        Shadow coverage of one patio over time.

        A failed tick is recorded as 50% shadowed with confidence 0.2.
        """
        validate_timeline_request(start, end, interval)
        patio = await self._get_patio(patio_id)

        points = []
        current = start
        while current <= end:
            try:
                info = await self.shadow_for_patio(patio, self.position_for_patio(patio, current))
                points.append({
                    "timestamp": current.isoformat(),
                    "shadowed_area_percent": info.shadowed_area_percent,
                    "sunlit_area_percent": info.sunlit_area_percent,
                    "confidence": info.confidence,
                    "is_sun_visible": self.solar_service.is_sun_visible(info.solar_position),
                })
            except InvalidArgumentError:
                raise
            except Exception as e:
                logger.warning(f"Failed to calculate shadow for patio {patio_id} at {current}: {e}")
                points.append({
                    "timestamp": current.isoformat(),
                    "shadowed_area_percent": TIMELINE_FAILURE_SHADOWED_PERCENT,
                    "sunlit_area_percent": 100.0 - TIMELINE_FAILURE_SHADOWED_PERCENT,
                    "confidence": TIMELINE_FAILURE_CONFIDENCE,
                    "is_sun_visible": True,
                })
            current += interval

        average_confidence = sum(p["confidence"] for p in points) / len(points) if points else 0.0
        return {
            "patio_id": str(patio_id),
            "start": start.isoformat(),
            "end": end.isoformat(),
            "interval_minutes": interval.total_seconds() / 60,
            "points": points,
            "average_confidence": average_confidence,
        }

    # -------------------------------------------------------------------------
    # Height overrides
    # -------------------------------------------------------------------------

    async def get_building_height_info(self, building_id: UUID) -> BuildingHeightInfo:
        building = await self.building_repository.get_by_id(building_id)
        if building is None:
            raise NotFoundError("Building", building_id)
        return self.height_manager.get_height_info(building)

    async def update_building_height(self, building_id: UUID, height_m: float) -> BuildingHeightInfo:
        """
        Raises:
            NotFoundError: unknown building
            InvalidArgumentError: height not in (0, 200] metres
        """
        building = await self.building_repository.get_by_id(building_id)
        if building is None:
            raise NotFoundError("Building", building_id)

        self.height_manager.apply_height_override(building, height_m)
        await self.building_repository.update(building)
        return self.height_manager.get_height_info(building)

    async def remove_building_height_override(self, building_id: UUID) -> BuildingHeightInfo:
        building = await self.building_repository.get_by_id(building_id)
        if building is None:
            raise NotFoundError("Building", building_id)

        self.height_manager.remove_height_override(building)
        await self.building_repository.update(building)
        logger.info(f"Removed height override from building {building_id}")
        return self.height_manager.get_height_info(building)
