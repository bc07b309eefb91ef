"""
PrecomputationSchedule model - one precomputation run per target date.
"""
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Date, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from sunexposure.models.base import Base, TimestampMixin, UUIDMixin


class ScheduleStatus(str, Enum):
    """Status of a precomputation run."""
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PrecomputationSchedule(Base, UUIDMixin, TimestampMixin):
    """
    PrecomputationSchedule model.

    Lifecycle: scheduled -> running -> completed | failed | cancelled.
    patios_processed is the checkpoint written after each batch.
    """

    __tablename__ = "precomputation_schedules"

    target_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        unique=True,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=ScheduleStatus.SCHEDULED.value,
        index=True,
    )

    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    patios_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    patios_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Error message if status is FAILED
    error_message: Mapped[Optional[str]] = mapped_column(
        String(1024),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<PrecomputationSchedule {self.target_date} ({self.status})>"
