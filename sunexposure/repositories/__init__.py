"""
Repository contracts and implementations.
"""
from sunexposure.repositories.base import (
    BuildingRepository,
    CacheEntryRepository,
    PatioRepository,
    PrecomputationRepository,
    WeatherRepository,
)

__all__ = [
    "BuildingRepository",
    "CacheEntryRepository",
    "PatioRepository",
    "PrecomputationRepository",
    "WeatherRepository",
]
