"""
Collaborator contracts consumed by the engine.

Two implementations exist: SQL (PostGIS via SQLAlchemy async) in
``repositories.sql`` and in-memory in ``repositories.memory``. Buildings,
patios and weather come back as engine dataclasses; precomputed rows and
schedules come back as detached ORM instances.
"""
from abc import ABC, abstractmethod
from datetime import date, datetime, time
from typing import Any, Optional
from uuid import UUID

from sunexposure.models.precomputation_schedule import PrecomputationSchedule
from sunexposure.models.precomputed_sun_exposure import PrecomputedSunExposure
from sunexposure.services.entities import BuildingFootprint, PatioFootprint, WeatherSnapshot


class BuildingRepository(ABC):

    @abstractmethod
    async def get_by_id(self, building_id: UUID) -> Optional[BuildingFootprint]:
        pass

    @abstractmethod
    async def get_in_bounds(self, area: Any, min_height_m: float) -> list[BuildingFootprint]:
        """Buildings intersecting ``area`` whose effective height is at least min_height_m."""

    @abstractmethod
    async def update(self, building: BuildingFootprint) -> None:
        """Persist height fields (override) of an existing building."""


class PatioRepository(ABC):

    @abstractmethod
    async def get_by_id(self, patio_id: UUID) -> Optional[PatioFootprint]:
        pass

    @abstractmethod
    async def get_by_ids(self, patio_ids: list[UUID]) -> list[PatioFootprint]:
        """Existing patios among ``patio_ids``; unknown ids are omitted."""

    @abstractmethod
    async def get_all_with_geometry(self) -> list[PatioFootprint]:
        pass


class WeatherRepository(ABC):
    """Optional capability. Absence of weather is a valid state."""

    @abstractmethod
    async def get_latest_weather(self, timestamp: datetime) -> Optional[WeatherSnapshot]:
        """Most recent slice at or before ``timestamp``, if any."""


class PrecomputationRepository(ABC):

    @abstractmethod
    async def get_precomputed(
        self,
        patio_id: UUID,
        timestamp: datetime,
        tolerance_minutes: int,
        now: datetime,
    ) -> Optional[PrecomputedSunExposure]:
        """Closest non-stale row within +/- tolerance of timestamp that has not expired by ``now``."""

    @abstractmethod
    async def bulk_insert(self, rows: list[PrecomputedSunExposure]) -> int:
        pass

    @abstractmethod
    async def supersede(
        self,
        patio_id: UUID,
        slot_date: date,
        time_slots: list[time],
        computation_version: str,
    ) -> int:
        """
        Mark the patio's rows for these slots stale unless they carry
        ``computation_version``. Returns rows touched.
        """

    @abstractmethod
    async def count_for_date(self, target_date: date) -> int:
        pass

    @abstractmethod
    async def mark_patio_stale(self, patio_id: UUID, from_date: date) -> int:
        """Flag rows for the patio on or after from_date as stale. Returns rows touched."""

    @abstractmethod
    async def delete_expired(self, before: datetime) -> int:
        """Delete rows whose expires_at is earlier than ``before``."""

    @abstractmethod
    async def get_schedule(self, target_date: date) -> Optional[PrecomputationSchedule]:
        pass

    @abstractmethod
    async def create_schedule(self, schedule: PrecomputationSchedule) -> PrecomputationSchedule:
        pass

    @abstractmethod
    async def update_schedule(self, schedule: PrecomputationSchedule) -> None:
        pass

    @abstractmethod
    async def get_recent_schedules(self, since: date) -> list[PrecomputationSchedule]:
        """Schedules with target_date >= since, newest first."""


class CacheEntryRepository(ABC):
    """Key/value store behind the distributed cache tier."""

    @abstractmethod
    async def get(self, key: str, now: datetime) -> Optional[str]:
        """Value for key unless it expired before ``now``."""

    @abstractmethod
    async def set(self, key: str, value: str, expires_at: datetime) -> None:
        pass

    @abstractmethod
    async def delete_many(self, keys: list[str]) -> int:
        pass
