"""
Multi-Layer Cache for point query results.

Tiers, fastest first:
1. Memory: in-process dict with per-entry expiry (5 min)
2. Distributed: cache_entries table, JSON payloads (2 h)
3. Precomputed: read-only lookup of precomputed rows (+/- 5 min, not stale)

A hit at a lower tier warms every tier above it. A tier that raises is
logged and treated as a miss.

Keys are ``sun_exposure:{patio_id}:{YYYYMMDDHHMM}`` with the timestamp
rounded to the nearest 5 minutes.
"""
import asyncio
import json
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sunexposure.config import get_settings
from sunexposure.errors import InvalidArgumentError
from sunexposure.models.precomputed_sun_exposure import PrecomputedSunExposure
from sunexposure.repositories.base import CacheEntryRepository, PrecomputationRepository
from sunexposure.services.clock import Clock, utc_now
from sunexposure.services.entities import CalculationSource, ExposureState, PatioSunExposure
from sunexposure.services.solar_calculation_service import validate_utc_timestamp

logger = logging.getLogger(__name__)

KEY_PREFIX = "sun_exposure"
KEY_ROUNDING_MINUTES = 5

# Key set swept by invalidation when no date is given
INVALIDATION_DAYS = 3
INVALIDATION_START_HOUR = 8
INVALIDATION_END_HOUR = 20
INVALIDATION_STEP = timedelta(minutes=5)

MEMORY_MAX_ENTRIES = 10000


class CacheLayer(str, Enum):
    MEMORY = "memory"
    DISTRIBUTED = "distributed"
    PRECOMPUTED = "precomputed"


class CacheHealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


def round_to_nearest(timestamp: datetime, minutes: int = KEY_ROUNDING_MINUTES) -> datetime:
    """Round to the nearest multiple of ``minutes``; halfway rounds up."""
    step = timedelta(minutes=minutes)
    floor = timestamp - (timestamp - datetime.min.replace(tzinfo=timestamp.tzinfo)) % step
    return floor + step if timestamp - floor >= step / 2 else floor


def cache_key(patio_id: UUID, timestamp: datetime) -> str:
    rounded = round_to_nearest(timestamp.astimezone(timezone.utc))
    return f"{KEY_PREFIX}:{patio_id}:{rounded:%Y%m%d%H%M}"


def invalidation_keys(patio_id: UUID, target_date: Optional[date], today: date) -> list[str]:
    """
    Keys to drop for a patio: the given date, or today plus the next two
    days, every 5 minutes from 08:00 to 20:00 UTC.
    """
    if target_date is not None:
        dates = [target_date]
    else:
        dates = [today + timedelta(days=offset) for offset in range(INVALIDATION_DAYS)]

    keys = []
    for day in dates:
        current = datetime(day.year, day.month, day.day, INVALIDATION_START_HOUR, tzinfo=timezone.utc)
        end = datetime(day.year, day.month, day.day, INVALIDATION_END_HOUR, tzinfo=timezone.utc)
        while current <= end:
            keys.append(cache_key(patio_id, current))
            current += INVALIDATION_STEP
    return keys


def exposure_from_precomputed(row: PrecomputedSunExposure) -> PatioSunExposure:
    return PatioSunExposure(
        patio_id=row.patio_id,
        timestamp=row.timestamp,
        local_time=row.local_time,
        sun_exposure_percent=row.sun_exposure_percent,
        state=ExposureState(row.state),
        confidence=row.confidence,
        sunlit_area_m2=row.sunlit_area_m2,
        shaded_area_m2=row.shaded_area_m2,
        solar_elevation=row.solar_elevation,
        solar_azimuth=row.solar_azimuth,
        source=CalculationSource.PRECOMPUTED,
        calculation_duration_ms=row.calculation_duration_ms or 0.0,
    )


# =============================================================================
# Tiers
# =============================================================================

class CacheTier(ABC):
    """A key/value tier with expiry. Implementations may raise on outage."""

    layer: CacheLayer

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    async def remove(self, keys: list[str]) -> int:
        pass

    async def probe(self) -> bool:
        """Write, read back and remove a throwaway key."""
        key = f"health_check_{uuid.uuid4().hex}"
        await self.set(key, "ok")
        try:
            return (await self.get(key)) == "ok"
        finally:
            await self.remove([key])


class MemoryCacheTier(CacheTier):
    """In-process tier. Values are stored as-is, geometries included."""

    layer = CacheLayer.MEMORY

    def __init__(
        self,
        ttl: Optional[timedelta] = None,
        clock: Clock = utc_now,
        max_entries: int = MEMORY_MAX_ENTRIES,
    ):
        self.ttl = ttl or timedelta(seconds=get_settings().memory_cache_ttl_seconds)
        self.clock = clock
        self.max_entries = max_entries
        self._entries: dict[str, tuple[Any, datetime]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self.clock():
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Any) -> None:
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self._evict()
        self._entries[key] = (value, self.clock() + self.ttl)

    async def remove(self, keys: list[str]) -> int:
        removed = 0
        for key in keys:
            if self._entries.pop(key, None) is not None:
                removed += 1
        return removed

    def _evict(self) -> None:
        now = self.clock()
        for key in [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]:
            del self._entries[key]
        # Still full: drop the oldest insertions
        while len(self._entries) >= self.max_entries:
            del self._entries[next(iter(self._entries))]


class DistributedCacheTier(CacheTier):
    """Shared tier over the cache_entries table. Values must be JSON-serializable."""

    layer = CacheLayer.DISTRIBUTED

    def __init__(
        self,
        repository: CacheEntryRepository,
        ttl: Optional[timedelta] = None,
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.ttl = ttl or timedelta(seconds=get_settings().distributed_cache_ttl_seconds)
        self.clock = clock

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.repository.get(key, self.clock())
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any) -> None:
        await self.repository.set(key, json.dumps(value), self.clock() + self.ttl)

    async def remove(self, keys: list[str]) -> int:
        return await self.repository.delete_many(keys)


# =============================================================================
# Metrics / health
# =============================================================================

@dataclass
class CacheMetrics:
    total_requests: int
    cache_hits: int
    cache_misses: int
    hit_rate: float
    hit_rate_by_layer: dict[CacheLayer, float]
    tier_errors: int
    collected_at: datetime

    def to_dict(self) -> dict:
        return {
            "total_requests": self.total_requests,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "hit_rate": round(self.hit_rate, 4),
            "hit_rate_by_layer": {layer.value: round(rate, 4) for layer, rate in self.hit_rate_by_layer.items()},
            "tier_errors": self.tier_errors,
            "collected_at": self.collected_at.isoformat(),
        }


@dataclass
class CacheLayerHealth:
    is_available: bool
    response_time_ms: float
    status_message: str
    error_count: int = 0

    def to_dict(self) -> dict:
        return {
            "is_available": self.is_available,
            "response_time_ms": round(self.response_time_ms, 3),
            "status_message": self.status_message,
            "error_count": self.error_count,
        }


@dataclass
class CacheHealth:
    status: CacheHealthStatus
    memory: CacheLayerHealth
    distributed: CacheLayerHealth
    issues: list[str] = field(default_factory=list)

    @property
    def is_configured_correctly(self) -> bool:
        return self.status != CacheHealthStatus.CRITICAL

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "memory": self.memory.to_dict(),
            "distributed": self.distributed.to_dict(),
            "issues": self.issues,
            "is_configured_correctly": self.is_configured_correctly,
        }


# =============================================================================
# Layered cache
# =============================================================================

class MultiLayerCacheService:
    """
    Memory -> distributed -> precomputed lookup with warming.

    The precomputation repository is optional; without it the cache has
    two tiers.
    """

    def __init__(
        self,
        memory_tier: CacheTier,
        distributed_tier: CacheTier,
        precomputation_repository: Optional[PrecomputationRepository] = None,
        clock: Clock = utc_now,
        tolerance_minutes: Optional[int] = None,
    ):
        self.memory = memory_tier
        self.distributed = distributed_tier
        self.precomputation_repository = precomputation_repository
        self.clock = clock
        self.tolerance_minutes = tolerance_minutes or get_settings().precomputed_tolerance_minutes
        # Single event loop, so plain increments are atomic between awaits
        self._counters: Counter = Counter()

    async def _tier_get(self, tier: CacheTier, key: str) -> Optional[Any]:
        try:
            return await tier.get(key)
        except Exception as e:
            self._counters["tier_errors"] += 1
            logger.warning(f"Cache tier {tier.layer.value} get failed for {key}: {e}")
            return None

    async def _tier_set(self, tier: CacheTier, key: str, value: Any) -> None:
        try:
            await tier.set(key, value)
        except Exception as e:
            self._counters["tier_errors"] += 1
            logger.warning(f"Cache tier {tier.layer.value} set failed for {key}: {e}")

    async def get(self, patio_id: UUID, timestamp: datetime) -> Optional[PatioSunExposure]:
        self._counters["requests"] += 1
        key = cache_key(patio_id, timestamp)

        cached = await self._tier_get(self.memory, key)
        if cached is not None:
            self._counters[CacheLayer.MEMORY] += 1
            logger.debug(f"Cache hit (memory) for {key}")
            return cached

        payload = await self._tier_get(self.distributed, key)
        if payload is not None:
            try:
                exposure = PatioSunExposure.from_dict(payload)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Discarding unreadable distributed cache entry {key}: {e}")
            else:
                await self._tier_set(self.memory, key, exposure)
                self._counters[CacheLayer.DISTRIBUTED] += 1
                logger.debug(f"Cache hit (distributed) for {key}")
                return exposure

        row = await self._get_precomputed(patio_id, timestamp)
        if row is not None:
            exposure = exposure_from_precomputed(row)
            await self.set(exposure)
            self._counters[CacheLayer.PRECOMPUTED] += 1
            logger.debug(f"Cache hit (precomputed) for {key}")
            return exposure

        self._counters["misses"] += 1
        logger.debug(f"Cache miss for {key}")
        return None

    async def _get_precomputed(self, patio_id: UUID, timestamp: datetime) -> Optional[PrecomputedSunExposure]:
        if self.precomputation_repository is None:
            return None
        try:
            row = await self.precomputation_repository.get_precomputed(
                patio_id, timestamp, self.tolerance_minutes, now=self.clock()
            )
        except Exception as e:
            self._counters["tier_errors"] += 1
            logger.warning(f"Precomputed lookup failed for patio {patio_id} at {timestamp}: {e}")
            return None
        if row is None or row.is_stale:
            return None
        return row

    async def set(self, exposure: PatioSunExposure) -> None:
        key = cache_key(exposure.patio_id, exposure.timestamp)
        await self._tier_set(self.memory, key, exposure)
        await self._tier_set(self.distributed, key, exposure.to_dict())

    async def get_batch(self, patio_ids: list[UUID], timestamp: datetime) -> dict[UUID, PatioSunExposure]:
        """Found entries only; misses are simply absent."""
        found = await asyncio.gather(*(self.get(pid, timestamp) for pid in patio_ids))
        results = {pid: exposure for pid, exposure in zip(patio_ids, found) if exposure is not None}
        logger.debug(f"Batch cache lookup returned {len(results)}/{len(patio_ids)} results")
        return results

    async def set_batch(self, exposures: list[PatioSunExposure]) -> None:
        await asyncio.gather(*(self.set(e) for e in exposures))

    async def invalidate(self, patio_id: UUID, target_date: Optional[date] = None) -> int:
        """Drop a patio's keys from the memory and distributed tiers."""
        keys = invalidation_keys(patio_id, target_date, self.clock().date())
        removed = 0
        for tier in (self.memory, self.distributed):
            try:
                removed += await tier.remove(keys)
            except Exception as e:
                self._counters["tier_errors"] += 1
                logger.error(f"Error invalidating {tier.layer.value} cache for patio {patio_id}: {e}")

        logger.info(f"Invalidated cache for patio {patio_id} (date={target_date}): {removed} entries removed")
        return removed

    async def invalidate_batch(self, patio_ids: list[UUID], target_date: Optional[date] = None) -> int:
        removed = await asyncio.gather(*(self.invalidate(pid, target_date) for pid in patio_ids))
        return sum(removed)

    def get_metrics(self) -> CacheMetrics:
        total = self._counters["requests"]
        layers = (CacheLayer.MEMORY, CacheLayer.DISTRIBUTED, CacheLayer.PRECOMPUTED)
        hits = sum(self._counters[layer] for layer in layers)
        return CacheMetrics(
            total_requests=total,
            cache_hits=hits,
            cache_misses=self._counters["misses"],
            hit_rate=hits / total if total else 0.0,
            hit_rate_by_layer={
                layer: self._counters[layer] / total if total else 0.0 for layer in layers
            },
            tier_errors=self._counters["tier_errors"],
            collected_at=self.clock(),
        )

    async def _probe(self, tier: CacheTier) -> CacheLayerHealth:
        started = time.perf_counter()
        try:
            available = await tier.probe()
        except Exception as e:
            return CacheLayerHealth(
                is_available=False,
                response_time_ms=(time.perf_counter() - started) * 1000,
                status_message=f"Error: {e}",
                error_count=1,
            )
        return CacheLayerHealth(
            is_available=available,
            response_time_ms=(time.perf_counter() - started) * 1000,
            status_message="Healthy" if available else "Unavailable",
        )

    async def health(self) -> CacheHealth:
        memory = await self._probe(self.memory)
        distributed = await self._probe(self.distributed)

        if memory.is_available and distributed.is_available:
            status = CacheHealthStatus.HEALTHY
        elif memory.is_available or distributed.is_available:
            status = CacheHealthStatus.DEGRADED
        else:
            status = CacheHealthStatus.CRITICAL

        issues = [
            f"{name} cache unavailable: {layer.status_message}"
            for name, layer in (("Memory", memory), ("Distributed", distributed))
            if not layer.is_available
        ]
        if status != CacheHealthStatus.HEALTHY:
            logger.warning(f"Cache health is {status.value}: {'; '.join(issues)}")
        return CacheHealth(status=status, memory=memory, distributed=distributed, issues=issues)


class CachedSunExposureService:
    """Point and batch queries served from the cache, computed and written back on a miss."""

    def __init__(self, cache: MultiLayerCacheService, exposure_service):
        self.cache = cache
        self.exposure_service = exposure_service

    async def calculate_patio_sun_exposure(self, patio_id: UUID, timestamp: datetime) -> PatioSunExposure:
        # Validate before the lookup; cache keys normalize to UTC
        validate_utc_timestamp(timestamp)
        cached = await self.cache.get(patio_id, timestamp)
        if cached is not None:
            return cached
        exposure = await self.exposure_service.calculate_patio_sun_exposure(patio_id, timestamp)
        await self.cache.set(exposure)
        return exposure

    async def calculate_batch_sun_exposure(
        self,
        patio_ids: list[UUID],
        timestamp: datetime,
    ) -> dict[UUID, PatioSunExposure]:
        max_batch = get_settings().max_batch_patios
        if len(patio_ids) > max_batch:
            raise InvalidArgumentError(f"Batch contains {len(patio_ids)} patios, maximum is {max_batch}")
        validate_utc_timestamp(timestamp)
        results = await self.cache.get_batch(patio_ids, timestamp)
        missing = [pid for pid in patio_ids if pid not in results]
        if missing:
            computed = await self.exposure_service.calculate_batch_sun_exposure(missing, timestamp)
            await self.cache.set_batch(list(computed.values()))
            results.update(computed)
        return results
