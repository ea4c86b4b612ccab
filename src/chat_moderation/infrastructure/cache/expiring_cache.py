"""Generic in-memory key/value cache with independent per-entry time-to-live."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

ValueT = TypeVar("ValueT")
ClockCallable = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[ValueT]):
    """Cached value plus the monotonic second it was written and its TTL."""

    value: ValueT
    written_at: float
    ttl_ms: int

    def is_expired(self, now: float) -> bool:
        return (now - self.written_at) * 1000 >= self.ttl_ms


class ExpiringCache(Generic[ValueT]):
    """Advisory cache: absence only means "unknown locally", never "does not exist"."""

    def __init__(self, *, clock: ClockCallable = time.monotonic) -> None:
        self._entries: dict[str, CacheEntry[ValueT]] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def get(self, key: str) -> ValueT | None:
        """Return the live value for ``key``, evicting it when expired."""

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: ValueT, *, ttl_ms: int) -> None:
        """Insert or replace ``key``, restarting its time-to-live."""

        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        with self._lock:
            self._entries[key] = CacheEntry(value=value, written_at=self._clock(), ttl_ms=ttl_ms)

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Physically remove every expired entry and return how many were removed."""

        with self._lock:
            now = self._clock()
            expired_keys = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired_keys:
                del self._entries[key]
        return len(expired_keys)

    def size(self) -> int:
        """Return the number of live entries after sweeping expired ones."""

        self.sweep()
        with self._lock:
            return len(self._entries)
