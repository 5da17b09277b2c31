from __future__ import annotations

from datetime import timedelta
from fnmatch import fnmatchcase
from typing import Any, Iterator, cast

import pytest
import redis

import services.cache_providers as cache_providers
from config import AppSettings
from services.cache_providers import (
    InMemoryCacheProvider,
    NullCacheProvider,
    RedisCacheProvider,
    build_cache_provider,
)
from tests.helpers.tariffs import FixedClock

TTL = timedelta(minutes=5)


class _DictRedis:
    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.expiries: dict[str, timedelta] = {}
        self.delete_calls: list[tuple[str, ...]] = []

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str, ex: timedelta | None = None) -> bool:
        self.values[key] = value
        if ex is not None:
            self.expiries[key] = ex
        return True

    def delete(self, *keys: str) -> int:
        self.delete_calls.append(keys)
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                removed += 1
        return removed

    def scan_iter(self, match: str | None = None, count: int | None = None) -> Iterator[str]:
        for key in list(self.values):
            if match is None or fnmatchcase(key, match):
                yield key

    def ping(self) -> bool:
        return True


class _BrokenRedis:
    def _fail(self, *args: Any, **kwargs: Any) -> Any:
        raise redis.ConnectionError("connection refused")

    get = set = delete = scan_iter = ping = _fail


def test_in_memory_entry_expires_after_ttl() -> None:
    clock = FixedClock()
    cache = InMemoryCacheProvider(clock=clock)
    cache.set("tariffs:all:10:0", "payload", TTL)

    clock.advance(TTL - timedelta(microseconds=1))
    assert cache.get("tariffs:all:10:0") == "payload"

    clock.advance(timedelta(microseconds=1))
    assert cache.get("tariffs:all:10:0") is None


def test_in_memory_writes_evict_expired_entries() -> None:
    clock = FixedClock()
    cache = InMemoryCacheProvider(clock=clock)
    for offset in range(1000):
        cache.set(f"tariffs:all:10:{offset}", "page", TTL)
    assert len(cache) == 1000

    clock.advance(timedelta(hours=6))
    cache.set("tariffs:all:10:0", "fresh", TTL)

    assert len(cache) == 1
    assert cache.get("tariffs:all:10:0") == "fresh"


def test_in_memory_sweep_keeps_live_entries() -> None:
    clock = FixedClock()
    cache = InMemoryCacheProvider(clock=clock, sweep_interval=timedelta(seconds=30))
    cache.set("short", "x", timedelta(seconds=10))
    cache.set("long", "y", timedelta(hours=1))

    clock.advance(timedelta(seconds=30))
    cache.set("new", "z", TTL)

    assert len(cache) == 2
    assert cache.get("long") == "y"


def test_in_memory_pattern_delete_only_matches_prefix() -> None:
    cache = InMemoryCacheProvider(clock=FixedClock())
    for key in ("tariffs:all:10:0", "tariffs:all:10:10", "tariffs:base:EUR:10:0", "other:all:1:0"):
        cache.set(key, "x", TTL)

    assert cache.delete_pattern("tariffs:all:*") == 2
    assert cache.get("tariffs:all:10:0") is None
    assert cache.get("tariffs:base:EUR:10:0") == "x"
    assert cache.get("other:all:1:0") == "x"


def test_null_cache_discards_writes() -> None:
    cache = NullCacheProvider()
    cache.set("key", "value", TTL)

    assert cache.get("key") is None
    assert cache.delete_pattern("*") == 0
    assert cache.ping() is True


def test_redis_provider_writes_with_ttl_and_deletes_by_pattern_in_batches(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(cache_providers, "DELETE_BATCH_SIZE", 2)
    client = _DictRedis()
    cache = RedisCacheProvider(cast(redis.Redis, client))
    for offset in range(0, 50, 10):
        cache.set(f"tariffs:all:10:{offset}", "page", TTL)
    cache.set("tariffs:base:EUR:10:0", "page", TTL)

    assert cache.get("tariffs:all:10:0") == "page"
    assert client.expiries["tariffs:all:10:0"] == TTL

    assert cache.delete_pattern("tariffs:all:*") == 5
    assert [len(call) for call in client.delete_calls] == [2, 2, 1]
    assert list(client.values) == ["tariffs:base:EUR:10:0"]


def test_redis_provider_contains_backend_failures(caplog: pytest.LogCaptureFixture) -> None:
    cache = RedisCacheProvider(cast(redis.Redis, _BrokenRedis()))

    assert cache.get("tariffs:all:10:0") is None
    cache.set("tariffs:all:10:0", "payload", TTL)
    cache.delete("tariffs:all:10:0")
    assert cache.delete_pattern("tariffs:*") == 0
    assert cache.ping() is False
    assert "Cache read failed" in caplog.text


def test_build_cache_provider_falls_back_to_null_when_redis_unreachable(monkeypatch: pytest.MonkeyPatch) -> None:
    broken = RedisCacheProvider(cast(redis.Redis, _BrokenRedis()))
    monkeypatch.setattr(RedisCacheProvider, "from_url", classmethod(lambda cls, url, **kwargs: broken))

    provider = build_cache_provider(AppSettings(cache_backend="redis", redis_url="redis://unreachable:6379/0"))

    assert isinstance(provider, NullCacheProvider)


def test_build_cache_provider_keeps_reachable_redis(monkeypatch: pytest.MonkeyPatch) -> None:
    healthy = RedisCacheProvider(cast(redis.Redis, _DictRedis()))
    monkeypatch.setattr(RedisCacheProvider, "from_url", classmethod(lambda cls, url, **kwargs: healthy))

    assert build_cache_provider(AppSettings(cache_backend="redis")) is healthy


@pytest.mark.parametrize(
    ("backend", "expected"), [("memory", InMemoryCacheProvider), ("none", NullCacheProvider)]
)
def test_build_cache_provider_honours_configured_backend(backend: str, expected: type) -> None:
    assert isinstance(build_cache_provider(AppSettings(cache_backend=backend)), expected)
