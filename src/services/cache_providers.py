from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from fnmatch import fnmatchcase
from typing import Protocol

import redis

from config import AppSettings

logger = logging.getLogger(__name__)

DELETE_BATCH_SIZE = 500
SWEEP_INTERVAL = timedelta(minutes=1)


class CacheProvider(Protocol):
    """String key-value cache with expiry.

    Implementations never raise: a backend failure reads as a miss and writes
    become no-ops.
    """

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl: timedelta) -> None: ...

    def delete(self, key: str) -> None: ...

    def delete_pattern(self, pattern: str) -> int: ...

    def ping(self) -> bool: ...


class NullCacheProvider(CacheProvider):
    def get(self, key: str) -> str | None:
        return None

    def set(self, key: str, value: str, ttl: timedelta) -> None:
        return None

    def delete(self, key: str) -> None:
        return None

    def delete_pattern(self, pattern: str) -> int:
        return 0

    def ping(self) -> bool:
        return True


class InMemoryCacheProvider(CacheProvider):
    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        sweep_interval: timedelta = SWEEP_INTERVAL,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._entries: dict[str, tuple[str, datetime]] = {}
        self._lock = threading.Lock()
        self._sweep_interval = sweep_interval
        self._next_sweep = self._clock() + sweep_interval

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: timedelta) -> None:
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._sweep_expired(now)
            self._entries[key] = (value, now + ttl)

    def _sweep_expired(self, now: datetime) -> None:
        # Caller holds the lock.
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self._sweep_interval
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_pattern(self, pattern: str) -> int:
        with self._lock:
            matched = [key for key in self._entries if fnmatchcase(key, pattern)]
            for key in matched:
                del self._entries[key]
        return len(matched)

    def ping(self) -> bool:
        return True


class RedisCacheProvider(CacheProvider):
    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float = 5.0) -> RedisCacheProvider:
        client = redis.Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            decode_responses=True,
        )
        return cls(client)

    def get(self, key: str) -> str | None:
        try:
            value = self._client.get(key)
        except redis.RedisError as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            return None
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    def set(self, key: str, value: str, ttl: timedelta) -> None:
        try:
            self._client.set(key, value, ex=ttl)
        except redis.RedisError as exc:
            logger.warning("Cache write failed for %s: %s", key, exc)

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as exc:
            logger.warning("Cache delete failed for %s: %s", key, exc)

    def delete_pattern(self, pattern: str) -> int:
        deleted = 0
        batch: list[str] = []
        try:
            for key in self._client.scan_iter(match=pattern, count=DELETE_BATCH_SIZE):
                batch.append(key)
                if len(batch) >= DELETE_BATCH_SIZE:
                    deleted += int(self._client.delete(*batch))
                    batch = []
            if batch:
                deleted += int(self._client.delete(*batch))
        except redis.RedisError as exc:
            logger.warning("Cache pattern delete failed for %s after %d keys: %s", pattern, deleted, exc)
        return deleted

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as exc:
            logger.warning("Cache backend ping failed: %s", exc)
            return False


def build_cache_provider(settings: AppSettings) -> CacheProvider:
    if settings.cache_backend == "none":
        logger.info("Cache disabled by configuration")
        return NullCacheProvider()
    if settings.cache_backend == "memory":
        logger.info("Using in-process cache")
        return InMemoryCacheProvider()

    provider = RedisCacheProvider.from_url(settings.redis_url)
    if not provider.ping():
        logger.warning("Redis is unreachable, continuing without cache")
        return NullCacheProvider()
    logger.info("Using Redis cache")
    return provider


__all__ = [
    "CacheProvider",
    "InMemoryCacheProvider",
    "NullCacheProvider",
    "RedisCacheProvider",
    "build_cache_provider",
]
