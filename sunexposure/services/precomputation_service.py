"""
Precomputation Scheduler.

Materializes sun exposure for every mapped patio on a fixed daily grid
(08:00-20:00 UTC every 10 minutes, 73 slots) ahead of demand.

One schedule row per target date, driven through an explicit state
machine:

    scheduled -> running -> completed | failed | cancelled

Terminal states may be re-run (back to running). A running schedule older
than the lease is treated as abandoned and may be taken over. The
scheduler never sleeps or polls; the worker (or an API call) triggers it.

Each run writes rows under its own computation version and marks the
rows of earlier runs stale as it goes.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Optional, Protocol
from uuid import UUID, uuid4

from sunexposure.config import get_settings
from sunexposure.errors import SchedulerError
from sunexposure.models.precomputation_schedule import PrecomputationSchedule, ScheduleStatus
from sunexposure.models.precomputed_sun_exposure import PrecomputedSunExposure
from sunexposure.repositories.base import PatioRepository, PrecomputationRepository
from sunexposure.services.clock import Clock, utc_now
from sunexposure.services.entities import PatioFootprint, PatioSunExposure

logger = logging.getLogger(__name__)

SLOT_START = time(8, 0)
SLOT_END = time(20, 0)
SLOT_INTERVAL = timedelta(minutes=10)

COMPLETION_THRESHOLD = 0.95

# Rough per-slot cost used before any throughput has been measured
ESTIMATED_SECONDS_PER_SLOT = 0.5

ALLOWED_TRANSITIONS = {
    ScheduleStatus.SCHEDULED: {ScheduleStatus.RUNNING, ScheduleStatus.CANCELLED},
    ScheduleStatus.RUNNING: {ScheduleStatus.COMPLETED, ScheduleStatus.FAILED, ScheduleStatus.CANCELLED},
    ScheduleStatus.COMPLETED: {ScheduleStatus.RUNNING},
    ScheduleStatus.FAILED: {ScheduleStatus.RUNNING},
    ScheduleStatus.CANCELLED: {ScheduleStatus.RUNNING},
}


def generate_time_slots() -> list[time]:
    slots = []
    current = datetime.combine(date.min, SLOT_START)
    end = datetime.combine(date.min, SLOT_END)
    while current <= end:
        slots.append(current.time())
        current += SLOT_INTERVAL
    return slots


TIME_SLOTS = generate_time_slots()


def slot_timestamp(day: date, slot: time) -> datetime:
    return datetime.combine(day, slot, tzinfo=timezone.utc)


class ExposureCalculator(Protocol):

    async def calculate_patio_sun_exposure(self, patio_id: UUID, timestamp: datetime) -> PatioSunExposure:
        ...


class CacheInvalidator(Protocol):

    async def invalidate(self, patio_id: UUID, target_date: Optional[date] = None) -> int:
        ...


@dataclass
class PrecomputationProgress:
    patios_processed: int
    patios_total: int
    current_patio_id: Optional[UUID]
    processing_rate: float  # patios per minute
    estimated_completion: Optional[datetime]

    @property
    def percent_complete(self) -> float:
        if self.patios_total == 0:
            return 100.0
        return self.patios_processed / self.patios_total * 100.0

    def to_dict(self) -> dict:
        return {
            "patios_processed": self.patios_processed,
            "patios_total": self.patios_total,
            "current_patio_id": str(self.current_patio_id) if self.current_patio_id else None,
            "processing_rate": round(self.processing_rate, 3),
            "estimated_completion": (
                self.estimated_completion.isoformat() if self.estimated_completion else None
            ),
            "percent_complete": round(self.percent_complete, 2),
        }


@dataclass
class DataIntegrityValidation:
    date: date
    expected_points: int
    actual_points: int

    @property
    def completeness_percent(self) -> float:
        if self.expected_points == 0:
            return 100.0
        return round(self.actual_points / self.expected_points * 100.0, 2)

    @property
    def is_valid(self) -> bool:
        return self.actual_points >= self.expected_points * COMPLETION_THRESHOLD

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "expected_points": self.expected_points,
            "actual_points": self.actual_points,
            "completeness_percent": self.completeness_percent,
            "is_valid": self.is_valid,
        }


ProgressCallback = Callable[[PrecomputationProgress], Any]


class PrecomputationService:
    """
    Precomputation Scheduler.

    The cache invalidator is optional; without it invalidation only marks
    precomputed rows stale.
    """

    def __init__(
        self,
        exposure_service: ExposureCalculator,
        patio_repository: PatioRepository,
        precomputation_repository: PrecomputationRepository,
        cache_invalidator: Optional[CacheInvalidator] = None,
        clock: Clock = utc_now,
        batch_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
    ):
        settings = get_settings()
        self.exposure_service = exposure_service
        self.patio_repository = patio_repository
        self.precomputation_repository = precomputation_repository
        self.cache_invalidator = cache_invalidator
        self.clock = clock
        self.batch_size = batch_size or settings.precomputation_batch_size
        self.retention = timedelta(days=settings.precomputation_retention_days)
        self.computation_version = settings.precomputation_version
        self.lease = timedelta(minutes=settings.precomputation_lease_minutes)
        self._semaphore = asyncio.Semaphore(max_concurrency or settings.precomputation_max_concurrency)

    @staticmethod
    def time_slots() -> list[time]:
        return list(TIME_SLOTS)

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    @staticmethod
    def _transition(schedule: PrecomputationSchedule, target: ScheduleStatus) -> None:
        current = ScheduleStatus(schedule.status)
        if target not in ALLOWED_TRANSITIONS[current]:
            raise SchedulerError(
                f"Cannot move precomputation for {schedule.target_date} from {current.value} to {target.value}"
            )
        schedule.status = target.value

    def is_abandoned(self, schedule: PrecomputationSchedule) -> bool:
        """Running, but started longer ago than the lease allows."""
        if ScheduleStatus(schedule.status) != ScheduleStatus.RUNNING or schedule.started_at is None:
            return False
        return self.clock() - schedule.started_at > self.lease

    def run_version(self, started_at: datetime) -> str:
        """Computation version for one run; rows of older runs are superseded."""
        return f"{self.computation_version}.{started_at:%Y%m%d%H%M%S}.{uuid4().hex[:6]}"

    async def schedule(self, target_date: date) -> PrecomputationSchedule:
        """Idempotent: returns the existing schedule for the date if there is one."""
        existing = await self.precomputation_repository.get_schedule(target_date)
        if existing is not None:
            logger.info(f"Precomputation for {target_date} already scheduled with status {existing.status}")
            return existing

        schedule = PrecomputationSchedule(
            id=uuid4(),
            target_date=target_date,
            status=ScheduleStatus.SCHEDULED.value,
            scheduled_at=self.clock(),
            patios_total=0,
            patios_processed=0,
        )
        created = await self.precomputation_repository.create_schedule(schedule)
        logger.info(f"Created precomputation schedule for {target_date}")
        return created

    async def execute(
        self,
        target_date: date,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> PrecomputationSchedule:
        """
        Run precomputation for a date.

        Patios are processed in batches; the processed count is written
        after every batch. cancel_event is checked before each batch. Any
        unexpected exception marks the schedule failed and is re-raised.

        Raises:
            SchedulerError: the schedule is already running within its lease
        """
        schedule = await self.precomputation_repository.get_schedule(target_date)
        if schedule is None:
            schedule = await self.schedule(target_date)

        if self.is_abandoned(schedule):
            logger.warning(
                f"Precomputation for {target_date} running since {schedule.started_at.isoformat()} "
                f"exceeded its lease, restarting"
            )
            self._transition(schedule, ScheduleStatus.FAILED)

        self._transition(schedule, ScheduleStatus.RUNNING)
        schedule.started_at = self.clock()
        version = self.run_version(schedule.started_at)
        schedule.completed_at = None
        schedule.error_message = None
        schedule.patios_processed = 0
        await self.precomputation_repository.update_schedule(schedule)

        logger.info(f"Starting precomputation for {target_date}")

        try:
            patios = await self.patio_repository.get_all_with_geometry()
            schedule.patios_total = len(patios)
            await self.precomputation_repository.update_schedule(schedule)

            logger.info(
                f"Processing {len(patios)} patios for {target_date} with {len(TIME_SLOTS)} time slots"
            )

            processed = 0
            for start in range(0, len(patios), self.batch_size):
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning(f"Precomputation cancelled for {target_date}")
                    self._transition(schedule, ScheduleStatus.CANCELLED)
                    await self.precomputation_repository.update_schedule(schedule)
                    return schedule

                batch = patios[start:start + self.batch_size]
                outcomes = await asyncio.gather(
                    *(self._precompute_guarded(patio, target_date, version) for patio in batch)
                )
                processed += sum(outcomes)

                # Checkpoint
                schedule.patios_processed = processed
                await self.precomputation_repository.update_schedule(schedule)

                if progress_callback is not None:
                    await self._report(progress_callback, schedule, batch[-1].id)

            self._transition(schedule, ScheduleStatus.COMPLETED)
            schedule.completed_at = self.clock()
            await self.precomputation_repository.update_schedule(schedule)

            logger.info(
                f"Completed precomputation for {target_date}: "
                f"{processed}/{schedule.patios_total} patios"
            )
            return schedule

        except asyncio.CancelledError:
            logger.warning(f"Precomputation task for {target_date} was cancelled")
            self._transition(schedule, ScheduleStatus.CANCELLED)
            await self.precomputation_repository.update_schedule(schedule)
            raise
        except Exception as e:
            logger.exception(f"Precomputation failed for {target_date}: {e}")
            if ScheduleStatus(schedule.status) == ScheduleStatus.RUNNING:
                self._transition(schedule, ScheduleStatus.FAILED)
            schedule.error_message = str(e)[:1024]
            await self.precomputation_repository.update_schedule(schedule)
            raise

    async def _report(
        self,
        callback: ProgressCallback,
        schedule: PrecomputationSchedule,
        current_patio_id: UUID,
    ) -> None:
        progress = PrecomputationProgress(
            patios_processed=schedule.patios_processed,
            patios_total=schedule.patios_total,
            current_patio_id=current_patio_id,
            processing_rate=self.processing_rate(schedule.patios_processed, schedule.started_at),
            estimated_completion=self.estimate_completion(
                schedule.patios_processed, schedule.patios_total, schedule.started_at
            ),
        )
        result = callback(progress)
        if inspect.isawaitable(result):
            await result

    async def _precompute_guarded(self, patio: PatioFootprint, target_date: date, version: str) -> int:
        """1 if the patio was precomputed, 0 if it failed."""
        async with self._semaphore:
            try:
                await self.precompute_patio(patio.id, target_date, version)
                return 1
            except Exception as e:
                logger.error(f"Error precomputing patio {patio.id} for {target_date}: {e}")
                return 0

    async def precompute_patio(
        self,
        patio_id: UUID,
        target_date: date,
        computation_version: Optional[str] = None,
    ) -> int:
        """
        Compute every slot for one patio and append them in one insert.

        Earlier-version rows for the slots written here are superseded;
        slots that failed keep whatever was there before.
        """
        version = computation_version or self.run_version(self.clock())
        rows = []
        for slot in TIME_SLOTS:
            timestamp = slot_timestamp(target_date, slot)
            try:
                exposure = await self.exposure_service.calculate_patio_sun_exposure(patio_id, timestamp)
            except Exception as e:
                logger.warning(f"Failed to precompute patio {patio_id} at {target_date} {slot}: {e}")
                continue
            rows.append(self._row_from_exposure(exposure, target_date, slot, version))

        inserted = await self.precomputation_repository.bulk_insert(rows)
        superseded = await self.precomputation_repository.supersede(
            patio_id, target_date, [row.time_slot for row in rows], version
        )
        if superseded:
            logger.debug(f"Superseded {superseded} earlier rows for patio {patio_id} on {target_date}")
        logger.debug(f"Precomputed {inserted} slots for patio {patio_id} on {target_date}")
        return inserted

    def _row_from_exposure(
        self,
        exposure: PatioSunExposure,
        target_date: date,
        slot: time,
        computation_version: str,
    ) -> PrecomputedSunExposure:
        computed_at = self.clock()
        return PrecomputedSunExposure(
            id=uuid4(),
            patio_id=exposure.patio_id,
            slot_date=target_date,
            time_slot=slot,
            timestamp=exposure.timestamp,
            local_time=exposure.local_time,
            sun_exposure_percent=exposure.sun_exposure_percent,
            state=exposure.state.value,
            confidence=exposure.confidence,
            sunlit_area_m2=exposure.sunlit_area_m2,
            shaded_area_m2=exposure.shaded_area_m2,
            solar_elevation=exposure.solar_elevation,
            solar_azimuth=exposure.solar_azimuth,
            affecting_buildings_count=exposure.affecting_buildings_count,
            calculation_duration_ms=exposure.calculation_duration_ms,
            computed_at=computed_at,
            expires_at=computed_at + self.retention,
            computation_version=computation_version,
            is_stale=False,
        )

    # -------------------------------------------------------------------------
    # Status and integrity
    # -------------------------------------------------------------------------

    async def get_status(self, target_date: date) -> Optional[PrecomputationSchedule]:
        return await self.precomputation_repository.get_schedule(target_date)

    async def is_complete(self, target_date: date) -> bool:
        schedule = await self.precomputation_repository.get_schedule(target_date)
        if schedule is None or schedule.status != ScheduleStatus.COMPLETED.value:
            return False
        if schedule.patios_total == 0:
            return True
        return schedule.patios_processed >= schedule.patios_total * COMPLETION_THRESHOLD

    async def validate_data_integrity(self, target_date: date) -> DataIntegrityValidation:
        patios = await self.patio_repository.get_all_with_geometry()
        actual = await self.precomputation_repository.count_for_date(target_date)
        return DataIntegrityValidation(
            date=target_date,
            expected_points=len(patios) * len(TIME_SLOTS),
            actual_points=actual,
        )

    async def get_recent_schedules(self, days: int = 7) -> list[PrecomputationSchedule]:
        since = self.clock().date() - timedelta(days=days)
        return await self.precomputation_repository.get_recent_schedules(since)

    def processing_rate(self, processed: int, started_at: Optional[datetime]) -> float:
        if started_at is None:
            return 0.0
        elapsed_minutes = (self.clock() - started_at).total_seconds() / 60
        return processed / elapsed_minutes if elapsed_minutes > 0 else 0.0

    def estimate_completion(
        self,
        processed: int,
        total: int,
        started_at: Optional[datetime],
    ) -> Optional[datetime]:
        """Extrapolate from measured throughput, or a per-slot guess before any."""
        if started_at is None:
            return None
        now = self.clock()
        rate = self.processing_rate(processed, started_at)
        if processed > 0 and rate > 0:
            return now + timedelta(minutes=max(0, total - processed) / rate)
        return started_at + timedelta(seconds=total * len(TIME_SLOTS) * ESTIMATED_SECONDS_PER_SLOT)

    # -------------------------------------------------------------------------
    # Invalidation and cleanup
    # -------------------------------------------------------------------------

    async def invalidate(self, patio_id: UUID, target_date: Optional[date] = None) -> int:
        """
        Mark a patio's precomputed rows stale from target_date (default
        today) onward and drop its cache entries. Returns rows marked.
        """
        from_date = target_date or self.clock().date()
        logger.info(f"Invalidating precomputed data for patio {patio_id} from {from_date}")

        marked = await self.precomputation_repository.mark_patio_stale(patio_id, from_date)
        if self.cache_invalidator is not None:
            await self.cache_invalidator.invalidate(patio_id, target_date)
        return marked

    async def invalidate_many(self, patio_ids: list[UUID], target_date: Optional[date] = None) -> int:
        results = await asyncio.gather(*(self.invalidate(pid, target_date) for pid in patio_ids))
        return sum(results)

    async def cleanup_expired_data(self) -> int:
        """Delete rows that expired more than the retention period ago."""
        cutoff = self.clock() - self.retention
        deleted = await self.precomputation_repository.delete_expired(cutoff)
        logger.info(f"Deleted {deleted} expired precomputed rows (expired before {cutoff.isoformat()})")
        return deleted
