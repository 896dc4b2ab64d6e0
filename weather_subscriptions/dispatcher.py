"""
Notification dispatcher for the Weather Subscriptions service.

Runs one batch per frequency tier: every confirmed subscriber of the tier
gets a fresh weather email. Each subscriber is processed on its own; a
failed lookup or send is logged and the batch moves on. Nothing is retried
inside a batch, the subscriber is simply picked up again by the next run.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .database import Frequency, SubscriptionStore
from .errors import StorageError
from .fetcher import FetchError, WeatherFetcher
from .mailer import Mailer, MailError, build_forecast_email

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome of one dispatcher run."""
    frequency: str
    started_at: str
    finished_at: Optional[str] = None
    total: int = 0
    sent: int = 0
    failed: int = 0
    skipped: bool = False
    errors: List[str] = field(default_factory=list)


def send_forecast(fetcher: WeatherFetcher, mailer: Mailer, email: str, city: str) -> None:
    """
    Fetch current conditions for a city and mail them.

    Raises:
        FetchError: weather lookup failed
        MailError: transport refused the message
    """
    conditions = fetcher.fetch(city)
    mailer.send_email(email, build_forecast_email(conditions))


class NotificationDispatcher:
    """Sends scheduled weather updates to confirmed subscribers."""

    def __init__(self, store: SubscriptionStore, fetcher: WeatherFetcher, mailer: Mailer):
        self.store = store
        self.fetcher = fetcher
        self.mailer = mailer
        self._run_locks: Dict[Frequency, threading.Lock] = {
            frequency: threading.Lock() for frequency in Frequency
        }
        self._last_results: Dict[Frequency, BatchResult] = {}

    def run_batch(self, frequency: Frequency) -> BatchResult:
        """Process every confirmed subscriber of one tier. Never raises."""
        frequency = Frequency(frequency)
        result = BatchResult(
            frequency=frequency.value,
            started_at=datetime.utcnow().isoformat()
        )

        run_lock = self._run_locks[frequency]
        if not run_lock.acquire(blocking=False):
            logger.warning(f"Skipping {frequency.value} batch: previous run still in progress")
            result.skipped = True
            result.finished_at = datetime.utcnow().isoformat()
            return result

        try:
            logger.info(f"Running {frequency.value} weather update...")
            self._process(frequency, result)
        finally:
            result.finished_at = datetime.utcnow().isoformat()
            self._last_results[frequency] = result
            run_lock.release()

        logger.info(f"{frequency.value.capitalize()} batch complete: "
                    f"{result.sent}/{result.total} sent, {result.failed} failed")
        return result

    def _process(self, frequency: Frequency, result: BatchResult) -> None:
        try:
            subscribers = self.store.list_confirmed_by_frequency(frequency)
        except StorageError as e:
            logger.error(f"Could not load {frequency.value} subscribers: {e}")
            result.errors.append(str(e))
            return

        result.total = len(subscribers)

        for sub in subscribers:
            try:
                send_forecast(self.fetcher, self.mailer, sub.email, sub.city)
                result.sent += 1
                logger.info(f"Email sent to {sub.email} for {sub.city}")
            except (FetchError, MailError) as e:
                result.failed += 1
                result.errors.append(f"{sub.email}: {e}")
                logger.error(f"Failed to send email to {sub.email}: {e}")
            except Exception as e:
                result.failed += 1
                result.errors.append(f"{sub.email}: {e}")
                logger.exception(f"Unexpected error sending to {sub.email}: {e}")

    def is_running(self, frequency: Frequency) -> bool:
        return self._run_locks[Frequency(frequency)].locked()

    def get_last_results(self) -> List[BatchResult]:
        """Get the most recent result for each tier that has run."""
        return [self._last_results[f] for f in Frequency if f in self._last_results]
