"""
SQLAlchemy models for the sun exposure engine.

Footprints and patio outlines use PostGIS geometry types.
"""
from sunexposure.models.base import Base, TimestampMixin, UUIDMixin
from sunexposure.models.building import Building, HeightSource
from sunexposure.models.cache_entry import CacheEntry
from sunexposure.models.patio import Patio
from sunexposure.models.precomputation_schedule import PrecomputationSchedule, ScheduleStatus
from sunexposure.models.precomputed_sun_exposure import PrecomputedSunExposure
from sunexposure.models.weather import WeatherSlice

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # Models
    "Building",
    "Patio",
    "WeatherSlice",
    "PrecomputedSunExposure",
    "PrecomputationSchedule",
    "CacheEntry",
    # Enums
    "HeightSource",
    "ScheduleStatus",
]
