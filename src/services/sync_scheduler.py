from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, time, timedelta, timezone

from .tariff_sync import TariffSyncService

logger = logging.getLogger(__name__)


def next_run_at(now: datetime, hour: int, minute: int) -> datetime:
    """Next UTC occurrence of ``hour:minute`` strictly after ``now``."""
    now_utc = now.astimezone(timezone.utc)
    candidate = datetime.combine(now_utc.date(), time(hour, minute), tzinfo=timezone.utc)
    if candidate <= now_utc:
        candidate += timedelta(days=1)
    return candidate


class DailySyncScheduler:
    def __init__(
        self,
        sync_service: TariffSyncService,
        *,
        hour: int,
        minute: int,
        run_on_startup: bool = True,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.sync_service = sync_service
        self.hour = hour
        self.minute = minute
        self.run_on_startup = run_on_startup
        self._clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.next_run: datetime | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="tariff-sync", daemon=True)
        self._thread.start()
        logger.info("Tariff sync scheduler started")

    def stop(self, timeout: float | None = 10.0) -> None:
        """Stop the loop; a run in flight is cancelled at its next checkpoint."""
        logger.info("Tariff sync scheduler is stopping")
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Tariff sync thread did not stop within %ss", timeout)
            self._thread = None

    def _loop(self) -> None:
        if self.run_on_startup:
            logger.info("Executing initial sync on startup")
            self._run_once()

        while not self._stop.is_set():
            now = self._clock()
            self.next_run = next_run_at(now, self.hour, self.minute)
            delay = (self.next_run - now).total_seconds()
            logger.info("Next scheduled sync will run at %s UTC (%s from now)", self.next_run, self.next_run - now)
            if self._stop.wait(max(delay, 0.0)):
                break
            self._run_once()

    def _run_once(self) -> None:
        result = self.sync_service.run(cancel=self._stop)
        logger.info("Tariff sync finished with status %s", result.status)


__all__ = ["DailySyncScheduler", "next_run_at"]
