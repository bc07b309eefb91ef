"""
Precomputation Worker

Runs as a separate process next to the API. On every poll it:
1. Checks the precomputation schedule for today and tomorrow (UTC)
2. Schedules and executes any date that is not already complete or running
   (a run that outlived its lease counts as not running)
3. Deletes precomputed rows past their retention period

The scheduler itself never sleeps; this loop is the only timer.

Run with: python -m sunexposure.worker
"""
import asyncio
import logging
import signal
import sys
from datetime import date, datetime, timedelta
from typing import Optional

from sunexposure.config import get_settings
from sunexposure.dependencies import ServiceContainer, get_container
from sunexposure.models.precomputation_schedule import ScheduleStatus

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()

# Today and tomorrow
LOOKAHEAD_DAYS = 2


class PrecomputationWorker:
    """Keeps precomputed sun exposure available for the coming days."""

    def __init__(
        self,
        container: Optional[ServiceContainer] = None,
        poll_interval_seconds: Optional[int] = None,
        install_signal_handlers: bool = True,
    ):
        """Initialize worker."""
        self.container = container or get_container()
        self.precomputation_service = self.container.precomputation_service
        self.poll_interval = poll_interval_seconds or settings.worker_poll_interval_seconds
        self.should_shutdown = False
        if install_signal_handlers:
            self._setup_signal_handlers()

    def _setup_signal_handlers(self):
        """Set up signal handlers for graceful shutdown."""
        def handle_signal(signum, frame):
            logger.info(f"Received signal {signum}, gracefully shutting down...")
            self.should_shutdown = True

        signal.signal(signal.SIGTERM, handle_signal)
        signal.signal(signal.SIGINT, handle_signal)

    async def run(self):
        """
        Main worker loop.

        Runs indefinitely until SIGTERM/SIGINT received.
        """
        logger.info(f"Precomputation worker started (poll interval {self.poll_interval}s)")

        while not self.should_shutdown:
            try:
                await self.run_once(self.container.clock())
            except Exception as e:
                logger.exception(f"Error in worker main loop: {e}")
                # Continue processing despite errors
                await asyncio.sleep(5)
                continue
            await asyncio.sleep(self.poll_interval)

        logger.info("Worker shutdown complete")

    async def run_once(self, now: datetime) -> list[date]:
        """
        One poll: precompute the dates that need it, then clean up.

        A failed date is logged and left in the failed state; the next
        poll retries it. Returns the dates that were executed.
        """
        executed = []
        for offset in range(LOOKAHEAD_DAYS):
            target_date = now.date() + timedelta(days=offset)
            if not await self._needs_run(target_date):
                continue

            await self.precomputation_service.schedule(target_date)
            try:
                schedule = await self.precomputation_service.execute(target_date)
                logger.info(
                    f"Precomputation for {target_date} finished with status {schedule.status} "
                    f"({schedule.patios_processed}/{schedule.patios_total} patios)"
                )
            except Exception as e:
                logger.error(f"Precomputation for {target_date} failed: {e}")
            executed.append(target_date)

        await self.precomputation_service.cleanup_expired_data()
        return executed

    async def _needs_run(self, target_date: date) -> bool:
        schedule = await self.precomputation_service.get_status(target_date)
        if schedule is not None and ScheduleStatus(schedule.status) == ScheduleStatus.RUNNING:
            if self.precomputation_service.is_abandoned(schedule):
                logger.warning(f"Precomputation for {target_date} looks abandoned, taking it over")
                return True
            logger.info(f"Precomputation for {target_date} is already running")
            return False
        if await self.precomputation_service.is_complete(target_date):
            logger.debug(f"Precomputation for {target_date} is complete")
            return False
        return True

    async def shutdown(self):
        """Clean shutdown."""
        self.should_shutdown = True

        if not settings.use_in_memory_store:
            from sunexposure.database import engine

            # Close database connections
            await engine.dispose()
            logger.info("Database connections closed")


async def main():
    """Main entry point for worker."""
    worker = PrecomputationWorker()

    try:
        await worker.run()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        await worker.shutdown()
        sys.exit(0)


if __name__ == "__main__":
    asyncio.run(main())
