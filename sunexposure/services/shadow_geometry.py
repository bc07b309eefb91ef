"""
Shadow geometry for a single building.

A building's ground shadow is the convex hull of its footprint and the
footprint translated along the anti-sun vector by height / tan(elevation).
"""
import math
from typing import Any, Optional

from sunexposure.models.building import HeightSource
from sunexposure.services.building_heights import MIN_MEANINGFUL_HEIGHT_M
from sunexposure.services.entities import SolarPosition
from sunexposure.services.geometry_ops import GeometryOps

MAX_SHADOW_DISTANCE_M = 200.0
MIN_RELIABLE_ELEVATION_DEG = 5.0

HEIGHT_SOURCE_FACTOR = {
    HeightSource.ADMIN_OVERRIDE: 1.0,
    HeightSource.SURVEYED: 1.0,
    HeightSource.OSM: 0.85,
    HeightSource.HEURISTIC: 0.7,
}
UNKNOWN_SOURCE_FACTOR = 0.6


def shadow_length(building_height_m: float, elevation_deg: float) -> float:
    """Unclamped shadow length in metres; 0 when the sun is down."""
    if elevation_deg <= 0:
        return 0.0
    return building_height_m / math.tan(math.radians(elevation_deg))


def shadow_direction(azimuth_deg: float) -> float:
    """Direction the shadow points, clockwise from north."""
    return (azimuth_deg + 180.0) % 360.0


def shadow_vector(distance_m: float, direction_deg: float) -> tuple[float, float]:
    """(east, north) offset in metres for a compass direction."""
    direction_rad = -(direction_deg - 90.0) * math.pi / 180.0
    return distance_m * math.cos(direction_rad), distance_m * math.sin(direction_rad)


def project_footprint(
    ops: GeometryOps,
    footprint: Any,
    distance_m: float,
    direction_deg: float,
) -> Any:
    dx, dy = shadow_vector(distance_m, direction_deg)
    moved = ops.translate_meters(footprint, dx, dy)
    return ops.convex_hull([footprint, moved])


def project_shadow_polygon(
    ops: GeometryOps,
    footprint: Any,
    building_height_m: float,
    solar_position: SolarPosition,
) -> Optional[tuple[Any, float, float]]:
    """
    Shadow polygon, length and direction, or None when the sun is below
    the reliable elevation or the building is too short to matter.
    """
    if solar_position.elevation < MIN_RELIABLE_ELEVATION_DEG:
        return None
    if building_height_m < MIN_MEANINGFUL_HEIGHT_M:
        return None

    length = min(shadow_length(building_height_m, solar_position.elevation), MAX_SHADOW_DISTANCE_M)
    direction = shadow_direction(solar_position.azimuth)
    return project_footprint(ops, footprint, length, direction), length, direction


def shadow_confidence(
    elevation_deg: float,
    length_m: float,
    height_source: HeightSource,
) -> float:
    """Per-shadow confidence from sun angle, shadow length and height provenance."""
    confidence = 1.0

    if elevation_deg < 10.0:
        confidence *= 0.7
    elif elevation_deg < 20.0:
        confidence *= 0.9

    # Long shadows amplify height and footprint error
    if length_m > 100.0:
        confidence *= 0.8
    elif length_m > 50.0:
        confidence *= 0.9

    confidence *= HEIGHT_SOURCE_FACTOR.get(height_source, UNKNOWN_SOURCE_FACTOR)
    return max(0.0, min(1.0, confidence))
