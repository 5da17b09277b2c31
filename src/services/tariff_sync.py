"""Daily rebuild of the tariff matrix from the rate source.

A run replaces the active generation of tariffs in one database transaction:
previous rows are flagged inactive (never deleted) and the freshly fetched
pairs are inserted for today's date. Readers therefore see either the old or
the new generation, never both and never a partially written one. Cached
pages are invalidated once the new generation is committed.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from time import perf_counter

from pydantic import ValidationError
from sqlalchemy.orm import Session, sessionmaker

from db.repositories import TariffRepository
from domain.errors import PartialSyncFailure, StoreFailureError
from domain.tariffs import Tariff, normalize_currency

from .cache_providers import CacheProvider
from .rate_sources import RateSource
from .tariff_service import CACHE_KEY_PREFIX

logger = logging.getLogger(__name__)

RATE_QUANTUM = Decimal("0.000001")
INVALIDATION_PATTERN = f"{CACHE_KEY_PREFIX}:*"


class SyncStatus(StrEnum):
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"
    BUSY = "BUSY"
    ABORTED = "ABORTED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


@dataclass
class SyncResult:
    status: SyncStatus
    effective_date: date
    currencies: int = 0
    deactivated: int = 0
    inserted: int = 0
    duplicates: int = 0
    failed_currencies: list[str] = field(default_factory=list)
    invalidated_keys: int = 0

    def raise_for_partial_failure(self) -> None:
        if self.failed_currencies:
            raise PartialSyncFailure(list(self.failed_currencies))


class SyncCancelled(Exception):
    pass


class SyncAborted(Exception):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def deduplicate(tariffs: list[Tariff]) -> list[Tariff]:
    """Keep the first tariff seen for each (base, target, effective date)."""
    seen: set[tuple[str, str, date]] = set()
    unique: list[Tariff] = []
    for tariff in tariffs:
        if tariff.pair_key in seen:
            continue
        seen.add(tariff.pair_key)
        unique.append(tariff)
    return unique


class TariffSyncService:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        rate_source: RateSource,
        cache: CacheProvider,
        *,
        request_delay_seconds: float = 0.1,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.rate_source = rate_source
        self.cache = cache
        self.request_delay_seconds = request_delay_seconds
        self._clock = clock
        self._run_lock = threading.Lock()

    def run(self, cancel: threading.Event | None = None) -> SyncResult:
        cancel = cancel or threading.Event()
        today = self._clock().date()
        if not self._run_lock.acquire(blocking=False):
            logger.info("Tariff synchronization already in progress. Skipping")
            return SyncResult(status=SyncStatus.BUSY, effective_date=today)
        try:
            return self._run(today, cancel)
        finally:
            self._run_lock.release()

    def _run(self, today: date, cancel: threading.Event) -> SyncResult:
        result = SyncResult(status=SyncStatus.FAILED, effective_date=today)
        started = perf_counter()
        logger.info("Starting tariff synchronization for %s", today)

        try:
            with self.session_factory.begin() as session:
                self._sync_in_transaction(TariffRepository(session), result, cancel)
        except SyncCancelled:
            logger.warning("Tariff synchronization for %s cancelled, changes rolled back", today)
            result.status = SyncStatus.CANCELLED
            result.deactivated = 0
            result.inserted = 0
            return result
        except SyncAborted:
            result.status = SyncStatus.ABORTED
            result.deactivated = 0
            return result
        except StoreFailureError:
            logger.exception("Tariff store failed during synchronization. Will retry on next scheduled run")
            result.status = SyncStatus.FAILED
            return result
        except Exception:
            logger.exception("Error occurred during tariff synchronization. Will retry on next scheduled run")
            result.status = SyncStatus.FAILED
            return result

        if result.status is not SyncStatus.COMPLETED:
            return result

        # Runs after commit regardless of cancellation.
        logger.info("Invalidating cache with pattern '%s'", INVALIDATION_PATTERN)
        result.invalidated_keys = self.cache.delete_pattern(INVALIDATION_PATTERN)

        if result.failed_currencies:
            logger.warning(
                "Synchronization finished without rates for %d currencies: %s",
                len(result.failed_currencies),
                ", ".join(result.failed_currencies),
            )
        logger.info(
            "Successfully synchronized %d tariff records for date %s across %d currencies in %.2fs",
            result.inserted,
            today,
            result.currencies,
            perf_counter() - started,
        )
        return result

    def _check_cancelled(self, cancel: threading.Event) -> None:
        if cancel.is_set():
            raise SyncCancelled

    def _sync_in_transaction(self, repository: TariffRepository, result: SyncResult, cancel: threading.Event) -> None:
        today = result.effective_date

        self._check_cancelled(cancel)
        if repository.has_active_for_date(today):
            logger.info("Active tariffs already synced for %s. Skipping synchronization", today)
            result.status = SyncStatus.SKIPPED
            return

        self._check_cancelled(cancel)
        currencies = self._fetch_currencies()
        if not currencies:
            raise SyncAborted
        result.currencies = len(currencies)
        logger.info("Found %d currencies to process", len(currencies))

        self._check_cancelled(cancel)
        logger.info("Deactivating previous active tariff records")
        result.deactivated = repository.deactivate_active(updated_at=self._clock())
        logger.info("Deactivated %d previous tariff records", result.deactivated)

        fetched = self._fetch_tariffs(currencies, today, result, cancel)
        if not fetched:
            logger.warning("No rates fetched for any currency. Keeping previous tariffs")
            raise SyncAborted

        self._check_cancelled(cancel)
        unique = deduplicate(fetched)
        result.duplicates = len(fetched) - len(unique)
        logger.info(
            "Inserting %d unique tariff records (removed %d duplicates)", len(unique), result.duplicates
        )
        repository.create_many(unique)
        result.inserted = len(unique)

        self._check_cancelled(cancel)
        result.status = SyncStatus.COMPLETED

    def _fetch_currencies(self) -> list[str]:
        logger.info("Fetching available currencies from rate source")
        try:
            codes = self.rate_source.list_currencies()
        except Exception:
            logger.exception("Could not fetch currencies from rate source. Aborting synchronization")
            return []
        currencies = sorted({normalize_currency(code) for code in codes if code and code.strip()})
        if not currencies:
            logger.warning("No currencies returned from rate source. Aborting synchronization")
        return currencies

    def _fetch_tariffs(
        self, currencies: list[str], today: date, result: SyncResult, cancel: threading.Event
    ) -> list[Tariff]:
        tariffs: list[Tariff] = []
        for index, base in enumerate(currencies, start=1):
            self._check_cancelled(cancel)
            if index > 1 and self.request_delay_seconds and cancel.wait(self.request_delay_seconds):
                raise SyncCancelled

            logger.info("Fetching rates for base currency: %s (%d/%d)", base, index, len(currencies))
            try:
                latest = self.rate_source.get_latest_rates(base)
                built = self._build_tariffs(base, latest.rates, today)
            except Exception:
                logger.exception("Error fetching rates for base currency %s", base)
                result.failed_currencies.append(base)
                continue

            if not built:
                logger.warning("No rates returned for base currency %s", base)
                continue
            tariffs.extend(built)
        return tariffs

    def _build_tariffs(self, base: str, rates: dict[str, Decimal], today: date) -> list[Tariff]:
        created_at = self._clock()
        tariffs: list[Tariff] = []
        for target, rate in rates.items():
            try:
                tariff = Tariff(
                    base_currency=base,
                    target_currency=target,
                    rate=Decimal(rate).quantize(RATE_QUANTUM),
                    effective_date=today,
                    is_active=True,
                    created_at=created_at,
                )
            except (ValidationError, InvalidOperation) as exc:
                logger.warning("Skipping invalid rate %s -> %s (%s): %s", base, target, rate, exc)
                continue
            tariffs.append(tariff)
        return tariffs


__all__ = ["SyncResult", "SyncStatus", "TariffSyncService", "deduplicate"]
