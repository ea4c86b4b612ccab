"""Keyed timer debounce that coalesces bursts of writes into one flush per key."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

KeyT = TypeVar("KeyT", bound=Hashable)
ValueT = TypeVar("ValueT")


class KeyedDebouncer(Generic[KeyT, ValueT]):
    """Merge values pushed for the same key and flush them after a quiet period.

    Every push restarts the key's timer. Values pushed while a key is pending
    are folded together with ``merge`` so nothing is lost when coalescing.
    A non-positive delay flushes each push on the next loop iteration.
    """

    def __init__(
        self,
        *,
        delay_ms: int,
        flush: Callable[[KeyT, ValueT], Awaitable[None]],
        merge: Callable[[ValueT, ValueT], ValueT],
    ) -> None:
        self._delay_seconds = max(delay_ms, 0) / 1000
        self._flush = flush
        self._merge = merge
        self._pending: dict[KeyT, ValueT] = {}
        self._timers: dict[KeyT, asyncio.TimerHandle] = {}
        self._running: set[asyncio.Task[None]] = set()

    @property
    def pending_keys(self) -> int:
        return len(self._pending)

    def push(self, key: KeyT, value: ValueT) -> None:
        """Record ``value`` for ``key`` and (re)start its timer."""

        existing = self._pending.get(key)
        self._pending[key] = value if existing is None else self._merge(existing, value)

        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(self._delay_seconds, self._fire, key)

    async def flush_all(self) -> None:
        """Flush every pending key immediately and wait for in-flight flushes."""

        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        for key in list(self._pending):
            self._fire(key)
        while self._running:
            await asyncio.gather(*tuple(self._running), return_exceptions=True)

    def _fire(self, key: KeyT) -> None:
        self._timers.pop(key, None)
        if key not in self._pending:
            return
        value = self._pending.pop(key)
        task = asyncio.get_running_loop().create_task(self._run(key, value))
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, key: KeyT, value: ValueT) -> None:
        try:
            await self._flush(key, value)
        except Exception:  # noqa: BLE001
            logger.exception("debounced_flush_failed key=%s", key)
