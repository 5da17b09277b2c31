from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import cast

import pytest

from services.sync_scheduler import DailySyncScheduler, next_run_at
from services.tariff_sync import SyncResult, SyncStatus, TariffSyncService
from tests.helpers.tariffs import TODAY, FixedClock


class _RecordingSync:
    def __init__(self, *, block: bool = False) -> None:
        self.block = block
        self.started = threading.Event()
        self.cancels: list[threading.Event] = []

    def run(self, cancel: threading.Event | None = None) -> SyncResult:
        assert cancel is not None
        self.cancels.append(cancel)
        self.started.set()
        if self.block and cancel.wait(5):
            return SyncResult(status=SyncStatus.CANCELLED, effective_date=TODAY)
        return SyncResult(status=SyncStatus.COMPLETED, effective_date=TODAY)


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (datetime(2025, 11, 10, 1, 30, tzinfo=timezone.utc), datetime(2025, 11, 10, 3, 0, tzinfo=timezone.utc)),
        (datetime(2025, 11, 10, 3, 0, tzinfo=timezone.utc), datetime(2025, 11, 11, 3, 0, tzinfo=timezone.utc)),
        (datetime(2025, 11, 10, 23, 59, tzinfo=timezone.utc), datetime(2025, 11, 11, 3, 0, tzinfo=timezone.utc)),
        (datetime(2025, 12, 31, 4, 0, tzinfo=timezone.utc), datetime(2026, 1, 1, 3, 0, tzinfo=timezone.utc)),
    ],
)
def test_next_run_at_picks_next_occurrence(now: datetime, expected: datetime) -> None:
    assert next_run_at(now, 3, 0) == expected


def test_next_run_at_converts_to_utc() -> None:
    plus_two = timezone(timedelta(hours=2))

    # 03:30 UTC, already past today's slot
    assert next_run_at(datetime(2025, 11, 10, 5, 30, tzinfo=plus_two), 3, 0) == datetime(
        2025, 11, 11, 3, 0, tzinfo=timezone.utc
    )
    # 02:30 UTC, today's slot is still ahead
    assert next_run_at(datetime(2025, 11, 10, 4, 30, tzinfo=plus_two), 3, 0) == datetime(
        2025, 11, 10, 3, 0, tzinfo=timezone.utc
    )


def test_scheduler_runs_on_startup_then_waits_for_next_slot() -> None:
    sync = _RecordingSync()
    scheduler = DailySyncScheduler(cast(TariffSyncService, sync), hour=3, minute=0, clock=FixedClock())

    scheduler.start()
    try:
        assert sync.started.wait(5)
        assert scheduler.running
    finally:
        scheduler.stop(timeout=5)

    assert not scheduler.running
    assert len(sync.cancels) == 1


def test_scheduler_without_startup_run_does_not_sync_before_slot() -> None:
    sync = _RecordingSync()
    scheduler = DailySyncScheduler(
        cast(TariffSyncService, sync), hour=3, minute=0, run_on_startup=False, clock=FixedClock()
    )

    scheduler.start()
    scheduler.stop(timeout=5)

    assert sync.cancels == []


def test_stop_cancels_run_in_flight() -> None:
    sync = _RecordingSync(block=True)
    scheduler = DailySyncScheduler(cast(TariffSyncService, sync), hour=3, minute=0, clock=FixedClock())

    scheduler.start()
    assert sync.started.wait(5)
    scheduler.stop(timeout=5)

    assert not scheduler.running
    assert sync.cancels[0].is_set()
