"""Tests for the bounded in-memory cache."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from leadsync.storage import BoundedCache, get_cache


class FakeClock:
    """Manually advanced clock."""

    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def test_get_returns_value_before_ttl_and_nothing_after(clock: FakeClock) -> None:
    cache = BoundedCache(max_size=10, default_ttl_seconds=300, clock=clock)
    cache.set("k", "v", ttl_seconds=10)

    clock.advance(9.999)
    assert cache.get("k") == "v"
    assert cache.has("k")

    clock.advance(0.001)
    assert cache.get("k") is None
    assert not cache.has("k")


def test_expired_entry_is_removed_on_read(clock: FakeClock) -> None:
    cache = BoundedCache(max_size=10, clock=clock)
    cache.set("k", "v", ttl_seconds=1)
    clock.advance(5)

    assert cache.get("k") is None
    # The read removed the entry, so delete has nothing left to remove.
    assert cache.delete("k") is False


def test_default_ttl_applies_when_not_given(clock: FakeClock) -> None:
    cache = BoundedCache(max_size=10, default_ttl_seconds=60, clock=clock)
    cache.set("k", 1)

    clock.advance(59)
    assert cache.get("k") == 1
    clock.advance(1)
    assert cache.get("k") is None


def test_insert_beyond_capacity_evicts_only_the_oldest(clock: FakeClock) -> None:
    cache = BoundedCache(max_size=3, clock=clock)
    for key in ("a", "b", "c"):
        cache.set(key, key.upper())

    cache.get("a")  # reads do not refresh insertion order
    cache.set("d", "D")

    assert cache.keys() == ["b", "c", "d"]
    assert cache.size() == 3
    assert cache.get("a") is None


def test_expired_entries_are_purged_before_evicting(clock: FakeClock) -> None:
    cache = BoundedCache(max_size=2, clock=clock)
    cache.set("old", 1, ttl_seconds=1)
    cache.set("fresh", 2, ttl_seconds=100)
    clock.advance(2)

    cache.set("new", 3)

    assert cache.keys() == ["fresh", "new"]


def test_resetting_existing_key_does_not_evict(clock: FakeClock) -> None:
    cache = BoundedCache(max_size=2, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)

    assert cache.keys() == ["a", "b"]
    assert cache.get("a") == 10


def test_delete_clear_and_stats(clock: FakeClock) -> None:
    cache = BoundedCache(max_size=4, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)

    assert cache.delete("a") is True
    assert cache.delete("a") is False

    stats = cache.stats()
    assert stats.size == 1
    assert stats.max_size == 4
    assert stats.utilization == pytest.approx(25.0)

    cache.clear()
    assert cache.size() == 0


def test_invalidate_drops_keys_under_prefix(clock: FakeClock) -> None:
    cache = BoundedCache(max_size=10, clock=clock)
    cache.set("threads:1", 1)
    cache.set("threads:2", 2)
    cache.set("users:threads", 3)

    assert cache.invalidate("threads:") == 2
    assert cache.keys() == ["users:threads"]
    assert cache.invalidate("missing") == 0


def test_get_default_distinguishes_stored_none(clock: FakeClock) -> None:
    cache = BoundedCache(max_size=10, clock=clock)
    missing = object()
    cache.set("empty", None)

    assert cache.get("empty", missing) is None
    assert cache.get("absent", missing) is missing
    assert cache.get("absent") is None


def test_make_key_is_stable() -> None:
    assert BoundedCache.make_key("GET", "a", None) == BoundedCache.make_key(
        "GET", "a", None
    )
    assert BoundedCache.make_key("GET", "a") != BoundedCache.make_key("GET", "b")


def test_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        BoundedCache(max_size=0)


def test_get_cache_is_a_lazy_singleton(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEADSYNC_CACHE__MAX_SIZE", "7")

    first = get_cache()
    assert first is get_cache()
    assert first.max_size == 7
