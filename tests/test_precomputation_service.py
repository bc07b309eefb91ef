"""
Unit tests for the precomputation scheduler.

Tests cover:
- The daily slot grid
- Schedule lifecycle (scheduled, running, completed, failed, cancelled)
- Batch checkpoints and progress reporting
- Integrity validation, invalidation and cleanup
"""
import asyncio
from datetime import date, datetime, time, timedelta, timezone
from uuid import uuid4

import pytest

from sunexposure.errors import SchedulerError
from sunexposure.models.precomputation_schedule import ScheduleStatus
from sunexposure.models.precomputed_sun_exposure import PrecomputedSunExposure
from sunexposure.services.entities import PatioFootprint
from sunexposure.services.precomputation_service import (
    TIME_SLOTS,
    DataIntegrityValidation,
    PrecomputationService,
)

TARGET_DATE = date(2026, 6, 22)


def stored_row(patio_id, slot_date: date, expires_at: datetime) -> PrecomputedSunExposure:
    ts = datetime.combine(slot_date, time(12, 0), tzinfo=timezone.utc)
    return PrecomputedSunExposure(
        id=uuid4(),
        patio_id=patio_id,
        slot_date=slot_date,
        time_slot=time(12, 0),
        timestamp=ts,
        local_time=ts,
        sun_exposure_percent=100.0,
        state="sunny",
        confidence=60.0,
        sunlit_area_m2=100.0,
        shaded_area_m2=0.0,
        solar_elevation=55.0,
        solar_azimuth=190.0,
        affecting_buildings_count=0,
        calculation_duration_ms=2.0,
        computed_at=expires_at - timedelta(days=3),
        expires_at=expires_at,
        computation_version="1.0",
        is_stale=False,
    )


class DummyCacheInvalidator:
    def __init__(self):
        self.calls = []

    async def invalidate(self, patio_id, target_date=None):
        self.calls.append((patio_id, target_date))
        return 0


class TestTimeSlots:

    def test_grid(self):
        assert len(TIME_SLOTS) == 73
        assert TIME_SLOTS[0] == time(8, 0)
        assert TIME_SLOTS[1] == time(8, 10)
        assert TIME_SLOTS[-1] == time(20, 0)


class TestScheduling:
    """Tests for schedule creation and the state machine."""

    @pytest.fixture
    def second_patio(self, patio_repository, local_box):
        return patio_repository.add(
            PatioFootprint(id=uuid4(), name="Quay bar", geometry=local_box(30, -5, 40, 5), polygon_quality=0.5)
        )

    @pytest.mark.asyncio
    async def test_schedule_is_idempotent(self, container):
        service = container.precomputation_service

        first = await service.schedule(TARGET_DATE)
        second = await service.schedule(TARGET_DATE)

        assert first is second
        assert first.status == ScheduleStatus.SCHEDULED.value
        assert first.scheduled_at == container.clock()

    @pytest.mark.asyncio
    async def test_execute_materializes_every_slot(self, container, patio, second_patio, precomputation_repository):
        service = container.precomputation_service

        schedule = await service.execute(TARGET_DATE)

        assert schedule.status == ScheduleStatus.COMPLETED.value
        assert schedule.patios_total == 2
        assert schedule.patios_processed == 2
        assert schedule.completed_at == container.clock()
        assert len(precomputation_repository.rows) == 2 * 73
        assert await service.is_complete(TARGET_DATE)

        integrity = await service.validate_data_integrity(TARGET_DATE)
        assert integrity.expected_points == 146
        assert integrity.actual_points == 146
        assert integrity.completeness_percent == 100.0
        assert integrity.is_valid

    @pytest.mark.asyncio
    async def test_rows_carry_slot_metadata(self, container, patio, precomputation_repository):
        await container.precomputation_service.execute(TARGET_DATE)

        row = next(r for r in precomputation_repository.rows if r.time_slot == time(12, 0))
        assert row.slot_date == TARGET_DATE
        assert row.timestamp == datetime(2026, 6, 22, 12, 0, tzinfo=timezone.utc)
        assert row.state == "sunny"
        assert row.expires_at - row.computed_at == timedelta(days=3)
        assert row.computation_version.startswith("1.0.20260621110000.")
        assert not row.is_stale

    @pytest.mark.asyncio
    async def test_running_schedule_cannot_start_again(self, container, patio):
        service = container.precomputation_service
        schedule = await service.schedule(TARGET_DATE)
        schedule.status = ScheduleStatus.RUNNING.value

        with pytest.raises(SchedulerError, match="running"):
            await service.execute(TARGET_DATE)

    @pytest.mark.asyncio
    async def test_completed_schedule_can_rerun(self, container, patio):
        service = container.precomputation_service
        await service.execute(TARGET_DATE)

        again = await service.execute(TARGET_DATE)

        assert again.status == ScheduleStatus.COMPLETED.value
        assert again.patios_processed == 1

    @pytest.mark.asyncio
    async def test_rerun_supersedes_earlier_rows(self, container, patio, precomputation_repository):
        service = container.precomputation_service
        await service.execute(TARGET_DATE)
        first_version = precomputation_repository.rows[0].computation_version

        await service.execute(TARGET_DATE)

        live = [r for r in precomputation_repository.rows if not r.is_stale]
        stale = [r for r in precomputation_repository.rows if r.is_stale]
        assert len(live) == 73
        assert len(stale) == 73
        assert {r.computation_version for r in stale} == {first_version}
        assert len({r.computation_version for r in live}) == 1
        assert live[0].computation_version != first_version

        integrity = await service.validate_data_integrity(TARGET_DATE)
        assert integrity.actual_points == 73

    @pytest.mark.asyncio
    async def test_failed_slots_keep_previous_rows(self, container, patio, precomputation_repository, monkeypatch):
        service = container.precomputation_service
        await service.execute(TARGET_DATE)

        exposure_service = container.exposure_service
        original = exposure_service.calculate_patio_sun_exposure

        async def flaky(patio_id, timestamp):
            if timestamp.hour >= 14:
                raise RuntimeError("shadow engine unavailable")
            return await original(patio_id, timestamp)

        monkeypatch.setattr(exposure_service, "calculate_patio_sun_exposure", flaky)
        await service.execute(TARGET_DATE)

        # 36 slots rewritten, the 37 afternoon slots still served by the first run
        live = [r for r in precomputation_repository.rows if not r.is_stale]
        assert len(live) == 73
        assert len({r.computation_version for r in live}) == 2
        assert (await service.validate_data_integrity(TARGET_DATE)).is_valid

    @pytest.mark.asyncio
    async def test_abandoned_run_is_taken_over(self, container, patio, clock):
        service = container.precomputation_service
        schedule = await service.schedule(TARGET_DATE)
        schedule.status = ScheduleStatus.RUNNING.value
        schedule.started_at = clock() - timedelta(minutes=61)

        assert service.is_abandoned(schedule)
        recovered = await service.execute(TARGET_DATE)

        assert recovered.status == ScheduleStatus.COMPLETED.value
        assert recovered.started_at == clock()
        assert recovered.patios_processed == 1

    @pytest.mark.asyncio
    async def test_run_within_lease_is_not_abandoned(self, container, patio, clock):
        service = container.precomputation_service
        schedule = await service.schedule(TARGET_DATE)
        schedule.status = ScheduleStatus.RUNNING.value
        schedule.started_at = clock() - timedelta(minutes=30)

        assert not service.is_abandoned(schedule)
        with pytest.raises(SchedulerError, match="running"):
            await service.execute(TARGET_DATE)

    @pytest.mark.asyncio
    async def test_failure_marks_schedule_failed(self, container, patio, patio_repository, monkeypatch):
        async def broken():
            raise RuntimeError("patio store unavailable")

        monkeypatch.setattr(patio_repository, "get_all_with_geometry", broken)
        service = container.precomputation_service

        with pytest.raises(RuntimeError):
            await service.execute(TARGET_DATE)

        status = await service.get_status(TARGET_DATE)
        assert status.status == ScheduleStatus.FAILED.value
        assert status.error_message == "patio store unavailable"
        assert not await service.is_complete(TARGET_DATE)

        monkeypatch.undo()
        recovered = await service.execute(TARGET_DATE)
        assert recovered.status == ScheduleStatus.COMPLETED.value
        assert recovered.error_message is None

    @pytest.mark.asyncio
    async def test_cancel_before_first_batch(self, container, patio, precomputation_repository):
        cancel = asyncio.Event()
        cancel.set()

        schedule = await container.precomputation_service.execute(TARGET_DATE, cancel_event=cancel)

        assert schedule.status == ScheduleStatus.CANCELLED.value
        assert precomputation_repository.rows == []

    @pytest.mark.asyncio
    async def test_cancel_mid_run_keeps_checkpoint(self, container, patio, local_box, precomputation_repository, clock):
        container.patio_repository.add(
            PatioFootprint(id=uuid4(), name="Quay bar", geometry=local_box(30, -5, 40, 5), polygon_quality=0.5)
        )
        service = PrecomputationService(
            container.exposure_service,
            container.patio_repository,
            precomputation_repository,
            clock=clock,
            batch_size=1,
        )
        cancel = asyncio.Event()

        def cancel_after_first_batch(progress):
            cancel.set()

        schedule = await service.execute(
            TARGET_DATE, progress_callback=cancel_after_first_batch, cancel_event=cancel
        )

        assert schedule.status == ScheduleStatus.CANCELLED.value
        assert schedule.patios_total == 2
        assert schedule.patios_processed == 1
        assert schedule.completed_at is None
        assert len(precomputation_repository.rows) == 73
        assert not await service.is_complete(TARGET_DATE)

    @pytest.mark.asyncio
    async def test_progress_after_each_batch(self, container, patio, second_patio, precomputation_repository, clock):
        service = PrecomputationService(
            container.exposure_service,
            container.patio_repository,
            precomputation_repository,
            clock=clock,
            batch_size=1,
        )
        reports = []

        await service.execute(TARGET_DATE, progress_callback=reports.append)

        assert [r.patios_processed for r in reports] == [1, 2]
        assert [r.percent_complete for r in reports] == [50.0, 100.0]
        assert reports[-1].patios_total == 2
        assert reports[0].to_dict()["current_patio_id"] is not None

    @pytest.mark.asyncio
    async def test_async_progress_callback(self, container, patio, precomputation_repository, clock):
        service = PrecomputationService(
            container.exposure_service,
            container.patio_repository,
            precomputation_repository,
            clock=clock,
        )
        seen = []

        async def record(progress):
            seen.append(progress.patios_processed)

        await service.execute(TARGET_DATE, progress_callback=record)
        assert seen == [1]

    @pytest.mark.asyncio
    async def test_slot_failures_show_up_in_integrity(self, container, patio, monkeypatch):
        exposure_service = container.exposure_service
        original = exposure_service.calculate_patio_sun_exposure

        async def flaky(patio_id, timestamp):
            if timestamp.hour >= 14:
                raise RuntimeError("shadow engine unavailable")
            return await original(patio_id, timestamp)

        monkeypatch.setattr(exposure_service, "calculate_patio_sun_exposure", flaky)
        service = container.precomputation_service

        schedule = await service.execute(TARGET_DATE)
        integrity = await service.validate_data_integrity(TARGET_DATE)

        # The patio still counts as processed; the missing slots are a data gap
        assert schedule.patios_processed == 1
        assert integrity.actual_points == 36
        assert not integrity.is_valid

    @pytest.mark.asyncio
    async def test_recent_schedules(self, container):
        service = container.precomputation_service
        await service.schedule(date(2026, 6, 10))
        await service.schedule(date(2026, 6, 20))
        await service.schedule(TARGET_DATE)

        recent = await service.get_recent_schedules(days=7)

        assert [s.target_date for s in recent] == [TARGET_DATE, date(2026, 6, 20)]


class TestProgressEstimates:

    @pytest.fixture
    def service(self, container):
        return container.precomputation_service

    def test_rate_without_start(self, service):
        assert service.processing_rate(10, None) == 0.0
        assert service.estimate_completion(10, 20, None) is None

    def test_rate_from_elapsed_time(self, service, clock):
        started = clock() - timedelta(minutes=5)
        assert service.processing_rate(10, started) == 2.0
        assert service.estimate_completion(10, 20, started) == clock() + timedelta(minutes=5)

    def test_estimate_before_any_throughput(self, service, clock):
        started = clock()
        assert service.estimate_completion(0, 2, started) == started + timedelta(seconds=2 * 73 * 0.5)

    def test_integrity_below_threshold(self):
        validation = DataIntegrityValidation(date=TARGET_DATE, expected_points=730, actual_points=584)
        assert validation.completeness_percent == 80.0
        assert not validation.is_valid

    def test_integrity_without_patios(self):
        validation = DataIntegrityValidation(date=TARGET_DATE, expected_points=0, actual_points=0)
        assert validation.completeness_percent == 100.0
        assert validation.is_valid


class TestInvalidationAndCleanup:
    """Tests for invalidate and cleanup_expired_data."""

    @pytest.mark.asyncio
    async def test_invalidate_marks_rows_stale_and_clears_cache(
        self, container, patio, precomputation_repository, clock
    ):
        invalidator = DummyCacheInvalidator()
        service = PrecomputationService(
            container.exposure_service,
            container.patio_repository,
            precomputation_repository,
            cache_invalidator=invalidator,
            clock=clock,
        )
        expires = clock() + timedelta(days=3)
        precomputation_repository.rows.extend([
            stored_row(patio.id, date(2026, 6, 20), expires),
            stored_row(patio.id, date(2026, 6, 21), expires),
            stored_row(patio.id, date(2026, 6, 22), expires),
            stored_row(uuid4(), date(2026, 6, 22), expires),
        ])

        marked = await service.invalidate(patio.id)

        # From today (2026-06-21) onward, this patio only
        assert marked == 2
        assert [r.is_stale for r in precomputation_repository.rows] == [False, True, True, False]
        assert invalidator.calls == [(patio.id, None)]

    @pytest.mark.asyncio
    async def test_invalidate_many(self, container, patio, precomputation_repository, clock):
        other = uuid4()
        expires = clock() + timedelta(days=3)
        precomputation_repository.rows.extend([
            stored_row(patio.id, TARGET_DATE, expires),
            stored_row(other, TARGET_DATE, expires),
        ])

        marked = await container.precomputation_service.invalidate_many([patio.id, other], TARGET_DATE)

        assert marked == 2
        assert await precomputation_repository.count_for_date(TARGET_DATE) == 0

    @pytest.mark.asyncio
    async def test_cleanup_deletes_rows_expired_beyond_retention(self, container, patio, precomputation_repository, clock):
        now = clock()
        keep_recent = stored_row(patio.id, date(2026, 6, 19), now - timedelta(days=1))
        keep_live = stored_row(patio.id, date(2026, 6, 21), now + timedelta(days=2))
        drop = stored_row(patio.id, date(2026, 6, 14), now - timedelta(days=4))
        precomputation_repository.rows.extend([keep_recent, keep_live, drop])

        deleted = await container.precomputation_service.cleanup_expired_data()

        assert deleted == 1
        assert precomputation_repository.rows == [keep_recent, keep_live]
