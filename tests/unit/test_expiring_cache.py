from __future__ import annotations

import pytest

from chat_moderation.infrastructure.cache.expiring_cache import ExpiringCache


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: int) -> None:
        self.now += ms / 1000


def test_get_returns_value_before_ttl_elapses() -> None:
    clock = FakeClock()
    cache: ExpiringCache[str] = ExpiringCache(clock=clock)

    cache.set("group:1", "value", ttl_ms=5_000)
    clock.advance_ms(4_999)

    assert cache.get("group:1") == "value"
    assert cache.has("group:1") is True


def test_get_evicts_entry_once_ttl_elapsed() -> None:
    clock = FakeClock()
    cache: ExpiringCache[str] = ExpiringCache(clock=clock)

    cache.set("punishment:1", "active", ttl_ms=5_000)
    clock.advance_ms(5_000)

    assert cache.get("punishment:1") is None
    assert cache.size() == 0


def test_entries_keep_independent_ttls() -> None:
    clock = FakeClock()
    cache: ExpiringCache[str] = ExpiringCache(clock=clock)

    cache.set("punishment:1", "short", ttl_ms=1_000)
    cache.set("group:1", "long", ttl_ms=60_000)
    clock.advance_ms(2_000)

    assert cache.get("punishment:1") is None
    assert cache.get("group:1") == "long"


def test_set_replaces_value_and_restarts_ttl() -> None:
    clock = FakeClock()
    cache: ExpiringCache[str] = ExpiringCache(clock=clock)

    cache.set("member:1", "old", ttl_ms=1_000)
    clock.advance_ms(900)
    cache.set("member:1", "new", ttl_ms=1_000)
    clock.advance_ms(900)

    assert cache.get("member:1") == "new"


def test_sweep_removes_only_expired_entries() -> None:
    clock = FakeClock()
    cache: ExpiringCache[int] = ExpiringCache(clock=clock)

    cache.set("a", 1, ttl_ms=100)
    cache.set("b", 2, ttl_ms=100)
    cache.set("c", 3, ttl_ms=10_000)
    clock.advance_ms(200)

    assert cache.sweep() == 2
    assert cache.size() == 1


def test_delete_and_clear() -> None:
    cache: ExpiringCache[int] = ExpiringCache(clock=FakeClock())
    cache.set("a", 1, ttl_ms=1_000)
    cache.set("b", 2, ttl_ms=1_000)

    cache.delete("a")
    cache.delete("missing")
    assert cache.get("a") is None
    assert cache.size() == 1

    cache.clear()
    assert cache.size() == 0


def test_non_positive_ttl_is_rejected() -> None:
    cache: ExpiringCache[int] = ExpiringCache(clock=FakeClock())

    with pytest.raises(ValueError):
        cache.set("a", 1, ttl_ms=0)
