from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from db.repositories import TariffRepository
from domain.errors import InvalidArgumentError
from domain.tariffs import TariffsResponse, TariffView, normalize_currency

from .cache_providers import CacheProvider

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "tariffs"
UNFILTERED_NAMESPACE = f"{CACHE_KEY_PREFIX}:all"
BASE_NAMESPACE = f"{CACHE_KEY_PREFIX}:base"
DEFAULT_CACHE_TTL = timedelta(minutes=5)


def build_cache_key(base_currency: str | None, limit: int, offset: int) -> str:
    if base_currency is None:
        return f"{UNFILTERED_NAMESPACE}:{limit}:{offset}"
    return f"{BASE_NAMESPACE}:{base_currency}:{limit}:{offset}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TariffService:
    """Read side of the tariff store: a direct path and a cache-aside path."""

    def __init__(
        self,
        repository: TariffRepository,
        cache: CacheProvider,
        *,
        cache_ttl: timedelta = DEFAULT_CACHE_TTL,
        direct_read_delay_seconds: float = 0.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.repository = repository
        self.cache = cache
        self.cache_ttl = cache_ttl
        self.direct_read_delay_seconds = direct_read_delay_seconds
        self._clock = clock

    def get_tariffs(self, base_currency: str | None = None, limit: int = 500, offset: int = 0) -> TariffsResponse:
        base = self._validate(base_currency, limit, offset)
        if self.direct_read_delay_seconds:
            # Simulated database latency of the uncached endpoint.
            time.sleep(self.direct_read_delay_seconds)

        data, total = self._load_page(base, limit, offset)
        return TariffsResponse(data=data, total=total, timestamp=self._clock(), from_cache=False)

    def get_tariffs_cached(
        self, base_currency: str | None = None, limit: int = 500, offset: int = 0
    ) -> TariffsResponse:
        base = self._validate(base_currency, limit, offset)
        key = build_cache_key(base, limit, offset)

        cached = self._read_cache(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return cached.model_copy(update={"from_cache": True})

        logger.debug("Cache miss for %s", key)
        data, total = self._load_page(base, limit, offset)
        now = self._clock()
        response = TariffsResponse(data=data, total=total, timestamp=now, from_cache=False)

        entry = response.model_copy(update={"from_cache": True, "cached_at": now})
        self.cache.set(key, entry.model_dump_json(), self.cache_ttl)
        return response

    def _load_page(self, base: str | None, limit: int, offset: int) -> tuple[list[TariffView], int]:
        if base is not None:
            matching = self.repository.list_active_by_base(base)
            page = matching[offset : offset + limit]
            total = len(matching)
        else:
            page = self.repository.list_active(limit=limit, offset=offset)
            total = self.repository.count_active()
        return [TariffView.from_tariff(tariff) for tariff in page], total

    def _read_cache(self, key: str) -> TariffsResponse | None:
        raw = self.cache.get(key)
        if raw is None:
            return None
        try:
            return TariffsResponse.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable cache entry %s: %s", key, exc)
            return None

    @staticmethod
    def _validate(base_currency: str | None, limit: int, offset: int) -> str | None:
        if limit <= 0:
            raise InvalidArgumentError(f"limit must be > 0, got {limit}")
        if offset < 0:
            raise InvalidArgumentError(f"offset must be >= 0, got {offset}")
        if base_currency is None:
            return None
        base = normalize_currency(base_currency)
        return base or None


__all__ = [
    "BASE_NAMESPACE",
    "CACHE_KEY_PREFIX",
    "TariffService",
    "UNFILTERED_NAMESPACE",
    "build_cache_key",
]
