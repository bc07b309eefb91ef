"""
Building model - footprint and height of a structure that can cast shadows.
"""
from enum import Enum
from typing import Optional

from geoalchemy2 import Geometry
from sqlalchemy import Float, String
from sqlalchemy.orm import Mapped, mapped_column

from sunexposure.models.base import Base, TimestampMixin, UUIDMixin


class HeightSource(str, Enum):
    """Where a building height value came from."""
    SURVEYED = "surveyed"            # Measured (lidar, survey)
    OSM = "osm"                      # OpenStreetMap height / levels tag
    HEURISTIC = "heuristic"          # Estimated from footprint area
    ADMIN_OVERRIDE = "admin_override"


class Building(Base, UUIDMixin, TimestampMixin):
    """
    Building model.

    The footprint is stored as a PostGIS POLYGON geometry. Height is in
    metres above ground.
    """

    __tablename__ = "buildings"

    name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    # Footprint as PostGIS POLYGON (SRID 4326 = WGS84)
    footprint: Mapped[str] = mapped_column(
        Geometry(geometry_type="POLYGON", srid=4326),
        nullable=False,
    )

    height_m: Mapped[float] = mapped_column(
        Float,
        nullable=False,
    )

    height_source: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=HeightSource.HEURISTIC.value,
    )

    # Import quality score 0-1
    quality_score: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.5,
    )

    # Manual correction, takes precedence over height_m when set
    admin_height_override_m: Mapped[Optional[float]] = mapped_column(
        Float,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Building {self.id} ({self.height_m} m, {self.height_source})>"
