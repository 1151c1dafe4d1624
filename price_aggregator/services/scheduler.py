# price_aggregator/services/scheduler.py

"""Interval scheduler with a single-flight guard."""

import asyncio
import logging
from datetime import datetime
from enum import Enum

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from price_aggregator.config.settings import Settings
from price_aggregator.services.aggregator import AggregationService

logger = logging.getLogger("price_aggregator.scheduler")

JOB_ID = "aggregation"


class SchedulerState(Enum):
    """Single-flight guard states."""

    IDLE = "idle"
    RUNNING = "running"


class AggregationScheduler:
    """Drives one aggregation cycle per interval, never overlapping.

    A tick that fires while a cycle is still running is skipped, not
    queued.  The guard always returns to ``IDLE`` when a cycle ends,
    whether it succeeded or raised.
    """

    def __init__(
        self,
        service: AggregationService,
        interval_ms: int | None = None,
    ) -> None:
        interval = (
            interval_ms
            if interval_ms is not None
            else Settings.FETCH_INTERVAL_MS
        )
        if interval <= 0:
            raise ValueError("interval_ms must be > 0")
        self.service = service
        self.interval_ms = interval
        self.state = SchedulerState.IDLE
        self.completed_cycles = 0
        self.skipped_ticks = 0
        self._scheduler = AsyncIOScheduler()
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def running(self) -> bool:
        """True while the interval timer is active."""
        return bool(self._scheduler.running)

    async def tick(self) -> bool:
        """Run one guarded cycle.  Returns False if the tick was skipped."""
        # No await between the check and the transition
        if self.state is SchedulerState.RUNNING:
            self.skipped_ticks += 1
            logger.warning(
                "Skipping aggregation: previous job still running."
            )
            return False

        self.state = SchedulerState.RUNNING
        self._idle.clear()
        try:
            logger.info("Starting periodic data aggregation...")
            await self.service.aggregate_data()
            logger.info("Data aggregation completed.")
        except Exception:
            logger.error("Aggregation failed", exc_info=True)
        finally:
            self.state = SchedulerState.IDLE
            self._idle.set()
            self.completed_cycles += 1
        return True

    def start(self, run_immediately: bool = False) -> None:
        """Register the interval job and start the timer.

        Must be called from within a running event loop.
        """
        logger.info(
            "Configuring aggregation job every %.0f seconds",
            self.interval_ms / 1000,
        )
        # The guard, not APScheduler, decides whether a tick runs
        job_kwargs: dict[str, object] = {
            "id": JOB_ID,
            "max_instances": 2,
            "coalesce": True,
            "replace_existing": True,
        }
        if run_immediately:
            job_kwargs["next_run_time"] = datetime.now()
        self._scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.interval_ms / 1000,
            **job_kwargs,
        )
        self._scheduler.start()

    def stop(self) -> None:
        """Stop the timer.  A cycle already in flight is not cancelled."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Aggregation scheduler stopped")

    async def shutdown(self) -> None:
        """Stop the timer and wait for an in-flight cycle to finish."""
        self.stop()
        if self.state is SchedulerState.RUNNING:
            logger.info("Waiting for the running cycle to finish")
        await self._idle.wait()
