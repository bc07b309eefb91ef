"""
Patio model - an outdoor seating area whose sun exposure is estimated.
"""
import uuid
from typing import Optional

from geoalchemy2 import Geometry
from sqlalchemy import Float, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from sunexposure.models.base import Base, TimestampMixin, UUIDMixin


class Patio(Base, UUIDMixin, TimestampMixin):
    """
    Patio model.

    Venue data is owned by another service; only the id and display name
    are carried here.
    """

    __tablename__ = "patios"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Patio outline as PostGIS POLYGON (SRID 4326 = WGS84).
    # Unmapped patios have no geometry and are skipped by precomputation.
    geometry: Mapped[Optional[str]] = mapped_column(
        Geometry(geometry_type="POLYGON", srid=4326),
        nullable=True,
    )

    # Digitisation quality 0-1
    polygon_quality: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.5,
    )

    venue_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True,
        index=True,
    )

    venue_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Patio {self.name}>"
