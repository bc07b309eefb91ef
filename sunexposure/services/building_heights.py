"""
Building height resolution.

Decides which height a building casts its shadow with, estimates a height
from footprint area when none is known, and validates manual overrides.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sunexposure.errors import InvalidArgumentError
from sunexposure.models.building import HeightSource
from sunexposure.services.entities import BuildingFootprint
from sunexposure.services.geometry_ops import GeometryOps, get_geometry_ops

logger = logging.getLogger(__name__)

MIN_MEANINGFUL_HEIGHT_M = 3.0
DEFAULT_BUILDING_HEIGHT_M = 7.0  # Two storeys plus roof
MAX_OVERRIDE_HEIGHT_M = 200.0
METERS_PER_FLOOR = 3.0
HEURISTIC_HEIGHT_RANGE = (3.0, 30.0)

# Footprint area upper bounds (m2) -> estimated floors
FLOORS_BY_AREA = [
    (100, 1),    # Sheds, garages
    (300, 2),    # Small houses
    (600, 3),    # Typical houses
    (1200, 4),   # Large houses, small apartment blocks
    (2400, 5),   # Apartment buildings
]
MAX_ESTIMATED_FLOORS = 6

HEIGHT_CONFIDENCE = {
    HeightSource.ADMIN_OVERRIDE: 1.0,
    HeightSource.SURVEYED: 0.95,
    HeightSource.OSM: 0.80,
    HeightSource.HEURISTIC: 0.60,
}


@dataclass
class BuildingHeightInfo:
    effective_height_m: float
    original_height_m: float
    admin_override_m: Optional[float]
    height_source: HeightSource
    confidence: float
    can_cast_shadow: bool
    is_heuristic: bool

    def to_dict(self) -> dict:
        return {
            "effective_height_m": round(self.effective_height_m, 2),
            "original_height_m": round(self.original_height_m, 2),
            "admin_override_m": self.admin_override_m,
            "height_source": self.height_source.value,
            "confidence": self.confidence,
            "can_cast_shadow": self.can_cast_shadow,
            "is_heuristic": self.is_heuristic,
        }


class BuildingHeightManager:
    """Resolves the height used for shadow projection."""

    def __init__(self, geometry_ops: Optional[GeometryOps] = None):
        self.geometry_ops = geometry_ops or get_geometry_ops()

    def effective_source(self, building: BuildingFootprint) -> HeightSource:
        if building.admin_height_override_m is not None:
            return HeightSource.ADMIN_OVERRIDE
        if building.height_m is None or building.height_m <= 0:
            return HeightSource.HEURISTIC
        return HeightSource(building.height_source)

    def get_effective_height(self, building: BuildingFootprint) -> float:
        """Override, else stored height, else an area-based estimate."""
        if building.admin_height_override_m is not None:
            return building.admin_height_override_m
        if building.height_m is not None and building.height_m > 0:
            return building.height_m
        return self.calculate_heuristic_height(building)

    def calculate_heuristic_height(self, building: BuildingFootprint) -> float:
        """
        Estimate height from footprint area: floors by area band at 3 m per
        floor, plus up to 0.5 m of area-derived variation, clamped to 3-30 m.
        """
        if self.geometry_ops.is_empty(building.footprint):
            return DEFAULT_BUILDING_HEIGHT_M

        area_m2 = self.geometry_ops.area_m2(building.footprint)
        floors = MAX_ESTIMATED_FLOORS
        for upper_bound, band_floors in FLOORS_BY_AREA:
            if area_m2 < upper_bound:
                floors = band_floors
                break

        height = floors * METERS_PER_FLOOR + (area_m2 % 100) / 100.0 * 0.5
        low, high = HEURISTIC_HEIGHT_RANGE
        return max(low, min(high, height))

    @staticmethod
    def get_default_height() -> float:
        return DEFAULT_BUILDING_HEIGHT_M

    def can_cast_meaningful_shadow(self, building: BuildingFootprint) -> bool:
        return self.get_effective_height(building) >= MIN_MEANINGFUL_HEIGHT_M

    def calculate_height_confidence(self, building: BuildingFootprint) -> float:
        return HEIGHT_CONFIDENCE.get(self.effective_source(building), 0.5)

    def get_height_info(self, building: BuildingFootprint) -> BuildingHeightInfo:
        source = self.effective_source(building)
        return BuildingHeightInfo(
            effective_height_m=self.get_effective_height(building),
            original_height_m=building.height_m or 0.0,
            admin_override_m=building.admin_height_override_m,
            height_source=source,
            confidence=self.calculate_height_confidence(building),
            can_cast_shadow=self.can_cast_meaningful_shadow(building),
            is_heuristic=source == HeightSource.HEURISTIC,
        )

    @staticmethod
    def validate_height_override(height_m: float) -> float:
        """
        Raises:
            InvalidArgumentError: height not in (0, 200] metres
        """
        if height_m <= 0:
            raise InvalidArgumentError("Height override must be positive")
        if height_m > MAX_OVERRIDE_HEIGHT_M:
            raise InvalidArgumentError(
                f"Height override exceeds reasonable limit ({MAX_OVERRIDE_HEIGHT_M:.0f}m)"
            )
        return height_m

    def apply_height_override(self, building: BuildingFootprint, height_m: float) -> BuildingFootprint:
        building.admin_height_override_m = self.validate_height_override(height_m)
        logger.info(f"Applied height override {height_m}m to building {building.id}")
        return building

    def remove_height_override(self, building: BuildingFootprint) -> BuildingFootprint:
        building.admin_height_override_m = None
        return building
