"""Delivery gate that forwards SEND_MESSAGE events and drops rapid identical repeats."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from chat_moderation.application.events.domain_events import (
    DomainEvent,
    DomainEventType,
    OutboundMessagePayload,
)
from chat_moderation.application.events.event_bus import EventBus, Subscription

logger = logging.getLogger(__name__)

DeliverCallable = Callable[[OutboundMessagePayload], Awaitable[None]]
ClockCallable = Callable[[], float]


class OutboundDeliveryGate:
    """Forward outbound messages unless the same text went to the same chat recently."""

    def __init__(
        self,
        *,
        event_bus: EventBus,
        deliver: DeliverCallable,
        window_seconds: float,
        clock: ClockCallable = time.monotonic,
    ) -> None:
        self._event_bus = event_bus
        self._deliver = deliver
        self._window_seconds = window_seconds
        self._clock = clock
        self._last_sent: dict[tuple[str, str], float] = {}

    def register(self) -> Subscription:
        return self._event_bus.subscribe(
            DomainEventType.SEND_MESSAGE,
            self._handle_send_message,
            name="outbound_delivery_gate",
        )

    async def deliver(self, payload: OutboundMessagePayload) -> bool:
        """Deliver ``payload`` and return False when it was dropped as a repeat."""

        now = self._clock()
        self._forget_older_than(now - self._window_seconds)

        key = (payload.destination_chat_id, payload.text)
        last = self._last_sent.get(key)
        if last is not None and now - last < self._window_seconds:
            logger.info(
                "outbound_message_deduplicated destination_chat_id=%s",
                payload.destination_chat_id,
            )
            return False

        self._last_sent[key] = now
        await self._deliver(payload)
        return True

    async def _handle_send_message(self, event: DomainEvent[Any]) -> None:
        await self.deliver(event.payload)

    def _forget_older_than(self, cutoff: float) -> None:
        stale = [key for key, sent_at in self._last_sent.items() if sent_at <= cutoff]
        for key in stale:
            del self._last_sent[key]
