"""
In-memory repositories.

Used by the test suite and by local runs with USE_IN_MEMORY_STORE=true.
They mirror the SQL implementations' filtering and ordering rules.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Optional
from uuid import UUID

from sunexposure.models.precomputation_schedule import PrecomputationSchedule
from sunexposure.models.precomputed_sun_exposure import PrecomputedSunExposure
from sunexposure.repositories.base import (
    BuildingRepository,
    CacheEntryRepository,
    PatioRepository,
    PrecomputationRepository,
    WeatherRepository,
)
from sunexposure.services.building_heights import BuildingHeightManager
from sunexposure.services.entities import BuildingFootprint, PatioFootprint, WeatherSnapshot
from sunexposure.services.geometry_ops import GeometryOps, get_geometry_ops

logger = logging.getLogger(__name__)


class InMemoryBuildingRepository(BuildingRepository):

    def __init__(
        self,
        buildings: Iterable[BuildingFootprint] = (),
        geometry_ops: Optional[GeometryOps] = None,
    ):
        self.geometry_ops = geometry_ops or get_geometry_ops()
        self.height_manager = BuildingHeightManager(self.geometry_ops)
        self.buildings: dict[UUID, BuildingFootprint] = {b.id: b for b in buildings}

    def add(self, building: BuildingFootprint) -> BuildingFootprint:
        self.buildings[building.id] = building
        return building

    async def get_by_id(self, building_id: UUID) -> Optional[BuildingFootprint]:
        return self.buildings.get(building_id)

    async def get_in_bounds(self, area: Any, min_height_m: float) -> list[BuildingFootprint]:
        return [
            b for b in self.buildings.values()
            if self.geometry_ops.intersects(b.footprint, area)
            and self.height_manager.get_effective_height(b) >= min_height_m
        ]

    async def update(self, building: BuildingFootprint) -> None:
        self.buildings[building.id] = building


class InMemoryPatioRepository(PatioRepository):

    def __init__(self, patios: Iterable[PatioFootprint] = ()):
        self.patios: dict[UUID, PatioFootprint] = {p.id: p for p in patios}

    def add(self, patio: PatioFootprint) -> PatioFootprint:
        self.patios[patio.id] = patio
        return patio

    async def get_by_id(self, patio_id: UUID) -> Optional[PatioFootprint]:
        return self.patios.get(patio_id)

    async def get_by_ids(self, patio_ids: list[UUID]) -> list[PatioFootprint]:
        return [self.patios[pid] for pid in patio_ids if pid in self.patios]

    async def get_all_with_geometry(self) -> list[PatioFootprint]:
        return [p for p in self.patios.values() if p.geometry is not None and not p.geometry.is_empty]


class InMemoryWeatherRepository(WeatherRepository):

    def __init__(self, snapshots: Iterable[WeatherSnapshot] = ()):
        self.snapshots: list[WeatherSnapshot] = list(snapshots)

    def add(self, snapshot: WeatherSnapshot) -> WeatherSnapshot:
        self.snapshots.append(snapshot)
        return snapshot

    async def get_latest_weather(self, timestamp: datetime) -> Optional[WeatherSnapshot]:
        candidates = [s for s in self.snapshots if s.timestamp <= timestamp]
        if not candidates:
            return None
        return max(candidates, key=lambda s: s.timestamp)


class InMemoryPrecomputationRepository(PrecomputationRepository):

    def __init__(self):
        self.rows: list[PrecomputedSunExposure] = []
        self.schedules: dict[date, PrecomputationSchedule] = {}

    async def get_precomputed(
        self,
        patio_id: UUID,
        timestamp: datetime,
        tolerance_minutes: int,
        now: datetime,
    ) -> Optional[PrecomputedSunExposure]:
        tolerance = timedelta(minutes=tolerance_minutes)
        candidates = [
            r for r in self.rows
            if r.patio_id == patio_id
            and not r.is_stale
            and r.expires_at > now
            and abs(r.timestamp - timestamp) <= tolerance
        ]
        if not candidates:
            return None
        # Closest slot first, newest computation on ties
        return min(candidates, key=lambda r: (abs(r.timestamp - timestamp), -r.computed_at.timestamp()))

    async def bulk_insert(self, rows: list[PrecomputedSunExposure]) -> int:
        self.rows.extend(rows)
        return len(rows)

    async def supersede(
        self,
        patio_id: UUID,
        slot_date: date,
        time_slots: list[time],
        computation_version: str,
    ) -> int:
        slots = set(time_slots)
        touched = 0
        for row in self.rows:
            if (
                row.patio_id == patio_id
                and row.slot_date == slot_date
                and row.time_slot in slots
                and row.computation_version != computation_version
                and not row.is_stale
            ):
                row.is_stale = True
                touched += 1
        return touched

    async def count_for_date(self, target_date: date) -> int:
        return len({
            (r.patio_id, r.time_slot)
            for r in self.rows
            if r.slot_date == target_date and not r.is_stale
        })

    async def mark_patio_stale(self, patio_id: UUID, from_date: date) -> int:
        touched = 0
        for row in self.rows:
            if row.patio_id == patio_id and row.slot_date >= from_date and not row.is_stale:
                row.is_stale = True
                touched += 1
        return touched

    async def delete_expired(self, before: datetime) -> int:
        kept = [r for r in self.rows if r.expires_at >= before]
        deleted = len(self.rows) - len(kept)
        self.rows = kept
        return deleted

    async def get_schedule(self, target_date: date) -> Optional[PrecomputationSchedule]:
        return self.schedules.get(target_date)

    async def create_schedule(self, schedule: PrecomputationSchedule) -> PrecomputationSchedule:
        self.schedules[schedule.target_date] = schedule
        return schedule

    async def update_schedule(self, schedule: PrecomputationSchedule) -> None:
        self.schedules[schedule.target_date] = schedule

    async def get_recent_schedules(self, since: date) -> list[PrecomputationSchedule]:
        return sorted(
            (s for s in self.schedules.values() if s.target_date >= since),
            key=lambda s: s.target_date,
            reverse=True,
        )


class InMemoryCacheEntryRepository(CacheEntryRepository):

    def __init__(self):
        self.entries: dict[str, tuple[str, datetime]] = {}

    async def get(self, key: str, now: datetime) -> Optional[str]:
        entry = self.entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= now:
            del self.entries[key]
            return None
        return value

    async def set(self, key: str, value: str, expires_at: datetime) -> None:
        self.entries[key] = (value, expires_at)

    async def delete_many(self, keys: list[str]) -> int:
        deleted = 0
        for key in keys:
            if self.entries.pop(key, None) is not None:
                deleted += 1
        return deleted
