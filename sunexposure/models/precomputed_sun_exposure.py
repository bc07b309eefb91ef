"""
PrecomputedSunExposure model - materialized exposure result for one
patio and one daily time slot.

Rows are appended per computation run and never updated in place except
for the is_stale flag set on invalidation.
"""
import uuid
from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Time
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from sunexposure.models.base import Base, UUIDMixin


class PrecomputedSunExposure(Base, UUIDMixin):
    """Materialized PatioSunExposure snapshot."""

    __tablename__ = "precomputed_sun_exposure"
    __table_args__ = (
        Index("ix_precomputed_patio_timestamp", "patio_id", "timestamp"),
    )

    patio_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("patios.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    slot_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )

    time_slot: Mapped[time] = mapped_column(
        Time,
        nullable=False,
    )

    # UTC instant of the slot (date + time_slot)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    local_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    sun_exposure_percent: Mapped[float] = mapped_column(Float, nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False)
    # Display confidence 0-100
    confidence: Mapped[float] = mapped_column(Float, nullable=False)

    sunlit_area_m2: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    shaded_area_m2: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    solar_elevation: Mapped[float] = mapped_column(Float, nullable=False)
    solar_azimuth: Mapped[float] = mapped_column(Float, nullable=False)

    affecting_buildings_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    calculation_duration_ms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    computation_version: Mapped[str] = mapped_column(String(40), nullable=False)
    is_stale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<PrecomputedSunExposure {self.patio_id} {self.timestamp} {self.sun_exposure_percent:.1f}%>"
