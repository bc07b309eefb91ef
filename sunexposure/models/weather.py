"""
WeatherSlice model - one stored weather observation or forecast.
"""
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from sunexposure.models.base import Base, TimestampMixin, UUIDMixin


class WeatherSlice(Base, UUIDMixin, TimestampMixin):
    """
    WeatherSlice model.

    Written by the weather ingestion job; read here only to scale
    confidence.
    """

    __tablename__ = "weather_slices"

    # Instant the slice describes
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    cloud_cover: Mapped[float] = mapped_column(
        Float,
        nullable=False,
    )

    precipitation_probability: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
    )

    # False for nowcast / observed conditions
    is_forecast: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    # Provider name, e.g. "metno", "openweathermap"
    source: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    def __repr__(self) -> str:
        kind = "forecast" if self.is_forecast else "nowcast"
        return f"<WeatherSlice {self.timestamp} {self.cloud_cover}% ({kind}, {self.source})>"
