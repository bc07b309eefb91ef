"""
PostGIS-backed repositories (SQLAlchemy async + GeoAlchemy2).

Each repository takes an ``async_sessionmaker`` and opens a short-lived
session per call, the same way the worker does.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Optional
from uuid import UUID

from geoalchemy2.shape import from_shape, to_shape
from sqlalchemy import delete, distinct, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sunexposure.models.building import Building, HeightSource
from sunexposure.models.cache_entry import CacheEntry
from sunexposure.models.patio import Patio
from sunexposure.models.precomputation_schedule import PrecomputationSchedule
from sunexposure.models.precomputed_sun_exposure import PrecomputedSunExposure
from sunexposure.models.weather import WeatherSlice
from sunexposure.repositories.base import (
    BuildingRepository,
    CacheEntryRepository,
    PatioRepository,
    PrecomputationRepository,
    WeatherRepository,
)
from sunexposure.services.entities import BuildingFootprint, PatioFootprint, WeatherSnapshot

logger = logging.getLogger(__name__)

SRID = 4326


def building_from_row(row: Building) -> BuildingFootprint:
    return BuildingFootprint(
        id=row.id,
        footprint=to_shape(row.footprint),
        height_m=row.height_m,
        height_source=HeightSource(row.height_source),
        quality_score=row.quality_score,
        admin_height_override_m=row.admin_height_override_m,
    )


def patio_from_row(row: Patio) -> PatioFootprint:
    return PatioFootprint(
        id=row.id,
        name=row.name,
        geometry=to_shape(row.geometry) if row.geometry is not None else None,
        polygon_quality=row.polygon_quality,
        venue_id=row.venue_id,
        venue_name=row.venue_name,
    )


def weather_from_row(row: WeatherSlice) -> WeatherSnapshot:
    return WeatherSnapshot(
        timestamp=row.timestamp,
        cloud_cover=row.cloud_cover,
        precipitation_probability=row.precipitation_probability,
        is_forecast=row.is_forecast,
        source=row.source,
        created_at=row.created_at,
    )


class _SqlRepository:

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker


class SqlBuildingRepository(_SqlRepository, BuildingRepository):

    async def get_by_id(self, building_id: UUID) -> Optional[BuildingFootprint]:
        async with self.session_maker() as session:
            row = await session.get(Building, building_id)
            return building_from_row(row) if row else None

    async def get_in_bounds(self, area: Any, min_height_m: float) -> list[BuildingFootprint]:
        effective_height = func.coalesce(Building.admin_height_override_m, Building.height_m)
        stmt = select(Building).where(
            func.ST_Intersects(Building.footprint, from_shape(area, srid=SRID)),
            # Heightless buildings get a heuristic height later
            or_(effective_height >= min_height_m, Building.height_m <= 0),
        )
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            return [building_from_row(row) for row in result.scalars().all()]

    async def update(self, building: BuildingFootprint) -> None:
        async with self.session_maker() as session:
            await session.execute(
                update(Building)
                .where(Building.id == building.id)
                .values(
                    height_m=building.height_m,
                    height_source=HeightSource(building.height_source).value,
                    admin_height_override_m=building.admin_height_override_m,
                )
            )
            await session.commit()


class SqlPatioRepository(_SqlRepository, PatioRepository):

    async def get_by_id(self, patio_id: UUID) -> Optional[PatioFootprint]:
        async with self.session_maker() as session:
            row = await session.get(Patio, patio_id)
            return patio_from_row(row) if row else None

    async def get_by_ids(self, patio_ids: list[UUID]) -> list[PatioFootprint]:
        if not patio_ids:
            return []
        async with self.session_maker() as session:
            result = await session.execute(select(Patio).where(Patio.id.in_(patio_ids)))
            return [patio_from_row(row) for row in result.scalars().all()]

    async def get_all_with_geometry(self) -> list[PatioFootprint]:
        async with self.session_maker() as session:
            result = await session.execute(select(Patio).where(Patio.geometry.is_not(None)))
            return [patio_from_row(row) for row in result.scalars().all()]


class SqlWeatherRepository(_SqlRepository, WeatherRepository):

    async def get_latest_weather(self, timestamp: datetime) -> Optional[WeatherSnapshot]:
        stmt = (
            select(WeatherSlice)
            .where(WeatherSlice.timestamp <= timestamp)
            .order_by(WeatherSlice.timestamp.desc())
            .limit(1)
        )
        async with self.session_maker() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return weather_from_row(row) if row else None


class SqlPrecomputationRepository(_SqlRepository, PrecomputationRepository):

    async def get_precomputed(
        self,
        patio_id: UUID,
        timestamp: datetime,
        tolerance_minutes: int,
        now: datetime,
    ) -> Optional[PrecomputedSunExposure]:
        tolerance = timedelta(minutes=tolerance_minutes)
        distance = func.abs(func.extract("epoch", PrecomputedSunExposure.timestamp - timestamp))
        stmt = (
            select(PrecomputedSunExposure)
            .where(
                PrecomputedSunExposure.patio_id == patio_id,
                PrecomputedSunExposure.is_stale.is_(False),
                PrecomputedSunExposure.expires_at > now,
                PrecomputedSunExposure.timestamp >= timestamp - tolerance,
                PrecomputedSunExposure.timestamp <= timestamp + tolerance,
            )
            .order_by(distance, PrecomputedSunExposure.computed_at.desc())
            .limit(1)
        )
        async with self.session_maker() as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    async def bulk_insert(self, rows: list[PrecomputedSunExposure]) -> int:
        if not rows:
            return 0
        async with self.session_maker() as session:
            session.add_all(rows)
            await session.commit()
        return len(rows)

    async def supersede(
        self,
        patio_id: UUID,
        slot_date: date,
        time_slots: list[time],
        computation_version: str,
    ) -> int:
        if not time_slots:
            return 0
        stmt = (
            update(PrecomputedSunExposure)
            .where(
                PrecomputedSunExposure.patio_id == patio_id,
                PrecomputedSunExposure.slot_date == slot_date,
                PrecomputedSunExposure.time_slot.in_(time_slots),
                PrecomputedSunExposure.computation_version != computation_version,
                PrecomputedSunExposure.is_stale.is_(False),
            )
            .values(is_stale=True)
        )
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount

    async def count_for_date(self, target_date: date) -> int:
        slots = (
            select(distinct(PrecomputedSunExposure.patio_id), PrecomputedSunExposure.time_slot)
            .where(
                PrecomputedSunExposure.slot_date == target_date,
                PrecomputedSunExposure.is_stale.is_(False),
            )
            .subquery()
        )
        async with self.session_maker() as session:
            return (await session.execute(select(func.count()).select_from(slots))).scalar_one()

    async def mark_patio_stale(self, patio_id: UUID, from_date: date) -> int:
        stmt = (
            update(PrecomputedSunExposure)
            .where(
                PrecomputedSunExposure.patio_id == patio_id,
                PrecomputedSunExposure.slot_date >= from_date,
                PrecomputedSunExposure.is_stale.is_(False),
            )
            .values(is_stale=True)
        )
        async with self.session_maker() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount

    async def delete_expired(self, before: datetime) -> int:
        async with self.session_maker() as session:
            result = await session.execute(
                delete(PrecomputedSunExposure).where(PrecomputedSunExposure.expires_at < before)
            )
            await session.commit()
            return result.rowcount

    async def get_schedule(self, target_date: date) -> Optional[PrecomputationSchedule]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(PrecomputationSchedule).where(PrecomputationSchedule.target_date == target_date)
            )
            return result.scalar_one_or_none()

    async def create_schedule(self, schedule: PrecomputationSchedule) -> PrecomputationSchedule:
        async with self.session_maker() as session:
            session.add(schedule)
            await session.commit()
        return schedule

    async def update_schedule(self, schedule: PrecomputationSchedule) -> None:
        async with self.session_maker() as session:
            await session.merge(schedule)
            await session.commit()

    async def get_recent_schedules(self, since: date) -> list[PrecomputationSchedule]:
        stmt = (
            select(PrecomputationSchedule)
            .where(PrecomputationSchedule.target_date >= since)
            .order_by(PrecomputationSchedule.target_date.desc())
        )
        async with self.session_maker() as session:
            return list((await session.execute(stmt)).scalars().all())


class SqlCacheEntryRepository(_SqlRepository, CacheEntryRepository):

    async def get(self, key: str, now: datetime) -> Optional[str]:
        stmt = select(CacheEntry.value).where(CacheEntry.key == key, CacheEntry.expires_at > now)
        async with self.session_maker() as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    async def set(self, key: str, value: str, expires_at: datetime) -> None:
        stmt = pg_insert(CacheEntry).values(key=key, value=value, expires_at=expires_at)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CacheEntry.key],
            set_={"value": value, "expires_at": expires_at, "updated_at": func.now()},
        )
        async with self.session_maker() as session:
            await session.execute(stmt)
            await session.commit()

    async def delete_many(self, keys: list[str]) -> int:
        if not keys:
            return 0
        async with self.session_maker() as session:
            result = await session.execute(delete(CacheEntry).where(CacheEntry.key.in_(keys)))
            await session.commit()
            return result.rowcount
