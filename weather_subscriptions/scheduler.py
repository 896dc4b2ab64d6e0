"""
Scheduler module for the Weather Subscriptions service.

Triggers the notification dispatcher on wall-clock cadences:
- Hourly tier: top of every hour
- Daily tier: once a day at a fixed local hour (08:00 by default)
"""

import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .database import Frequency
from .dispatcher import BatchResult, NotificationDispatcher

logger = logging.getLogger(__name__)

DAILY_SEND_HOUR = 8

JOB_IDS = {
    Frequency.HOURLY: "hourly_job",
    Frequency.DAILY: "daily_job",
}


class WeatherScheduler:
    """
    Manages the two recurring delivery jobs.

    Both jobs run in the background scheduler's thread pool, concurrently
    with HTTP traffic. A job never overlaps with itself: APScheduler keeps
    max_instances=1 and the dispatcher holds a run-lock per tier.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        daily_send_hour: int = DAILY_SEND_HOUR,
        timezone: Optional[Any] = None
    ):
        self.dispatcher = dispatcher
        self.daily_send_hour = daily_send_hour
        if timezone is not None:
            self.scheduler = BackgroundScheduler(timezone=timezone)
        else:
            self.scheduler = BackgroundScheduler()
        self._is_running = False

    def _run_hourly(self) -> BatchResult:
        return self.dispatcher.run_batch(Frequency.HOURLY)

    def _run_daily(self) -> BatchResult:
        return self.dispatcher.run_batch(Frequency.DAILY)

    def add_jobs(self) -> None:
        """Register both cron jobs (idempotent)."""
        # Hourly job (minute 0 of every hour)
        self.scheduler.add_job(
            self._run_hourly,
            trigger=CronTrigger(minute=0),
            id=JOB_IDS[Frequency.HOURLY],
            name='Hourly weather update',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

        # Daily job (server local time)
        self.scheduler.add_job(
            self._run_daily,
            trigger=CronTrigger(hour=self.daily_send_hour, minute=0),
            id=JOB_IDS[Frequency.DAILY],
            name='Daily weather update',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )

    def start(self) -> None:
        """Start the scheduler."""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.add_jobs()
        self.scheduler.start()
        self._is_running = True

        logger.info(f"Scheduler started: hourly at minute 0, "
                    f"daily at {self.daily_send_hour:02d}:00")

    def stop(self) -> None:
        """Stop the scheduler, waiting for running batches to finish."""
        if not self._is_running:
            return
        self.scheduler.shutdown(wait=True)
        self._is_running = False
        logger.info("Scheduler stopped")

    def trigger_immediate_dispatch(self, frequency: Frequency) -> BatchResult:
        """Run one batch now, in the calling thread."""
        return self.dispatcher.run_batch(frequency)

    def get_last_results(self) -> List[BatchResult]:
        return self.dispatcher.get_last_results()

    def get_next_run_times(self) -> Dict[str, Optional[str]]:
        next_runs = {}
        for frequency, job_id in JOB_IDS.items():
            job = self.scheduler.get_job(job_id)
            next_run = getattr(job, "next_run_time", None) if job else None
            next_runs[frequency.value] = next_run.isoformat() if next_run else None
        return next_runs

    def get_scheduler_status(self) -> dict:
        """Get scheduler status information."""
        return {
            "is_running": self._is_running,
            "daily_send_hour": self.daily_send_hour,
            "next_runs": self.get_next_run_times(),
            "last_results": [asdict(r) for r in self.get_last_results()],
        }

    @property
    def is_running(self) -> bool:
        return self._is_running
