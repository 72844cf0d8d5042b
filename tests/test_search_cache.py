from __future__ import annotations

import logging

import pytest
from _fakes import FakeClock

from chatcortex.services.search.cache import TTLCache, build_cache

TTL = 600


def test_entry_is_returned_before_ttl_and_dropped_at_ttl() -> None:
    clock = FakeClock()
    cache: TTLCache[str, str] = TTLCache(4, TTL, clock=clock)
    cache.set("k", "v")

    clock.advance(TTL - 0.001)
    assert cache.get("k") == "v"

    clock.advance(0.001)
    assert cache.get("k") is None
    assert "k" not in cache


def test_reads_refresh_recency_but_not_age() -> None:
    clock = FakeClock()
    cache: TTLCache[str, int] = TTLCache(4, TTL, clock=clock)
    cache.set("k", 1)

    clock.advance(TTL / 2)
    assert cache.get("k") == 1
    clock.advance(TTL / 2)
    assert cache.get("k") is None


def test_overflow_evicts_least_recently_used_key() -> None:
    cache: TTLCache[str, int] = TTLCache(2, TTL, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.get("a") == 1

    cache.set("c", 3)

    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3
    assert len(cache) == 2


def test_set_resets_age_of_existing_key() -> None:
    clock = FakeClock()
    cache: TTLCache[str, int] = TTLCache(2, TTL, clock=clock)
    cache.set("a", 1)
    clock.advance(TTL - 1)
    cache.set("a", 2)
    clock.advance(TTL - 1)

    assert cache.get("a") == 2


def test_evict_expired_counts_removed_entries() -> None:
    clock = FakeClock()
    cache: TTLCache[str, int] = TTLCache(4, TTL, clock=clock)
    cache.set("old", 1)
    clock.advance(TTL)
    cache.set("new", 2)

    assert cache.evict_expired() == 1
    assert len(cache) == 1


@pytest.mark.parametrize(
    ("max_entries", "ttl"),
    [(0, TTL), (-1, TTL), (True, TTL), (1.5, TTL), (4, 0)],
)
def test_invalid_sizing_is_rejected(max_entries: object, ttl: float) -> None:
    with pytest.raises(ValueError, match="must be"):
        TTLCache(max_entries, ttl)  # type: ignore[arg-type]


def test_build_cache_falls_back_to_none_and_logs(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.ERROR):
        cache = build_cache("search", "lots", TTL)  # type: ignore[arg-type]

    assert cache is None
    assert "continuing uncached" in caplog.text
    assert "cache='search'" in caplog.text


def test_build_cache_returns_working_cache() -> None:
    cache = build_cache("deep", 8, TTL)
    assert cache is not None
    cache.set("q", ("r",))
    assert cache.get("q") == ("r",)
