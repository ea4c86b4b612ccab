"""In-process typed publish/subscribe bus with isolated asynchronous handlers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

from chat_moderation.application.events.domain_events import DomainEvent, DomainEventType

EventHandler = Callable[[DomainEvent[Any]], Awaitable[None]]
EventPredicate = Callable[[DomainEvent[Any]], bool]
NowCallable = Callable[[], datetime]
logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class Subscription:
    """Live registration of one handler for one event type."""

    event_type: DomainEventType
    handler: EventHandler
    predicate: EventPredicate | None
    name: str
    active: bool = True

    def matches(self, event: DomainEvent[Any]) -> bool:
        return self.predicate is None or self.predicate(event)


class EventBus:
    """Deliver each published event to the subscribers registered at publish time.

    Handlers run as independent asyncio tasks. A failing handler is logged and
    never affects the publisher or other subscribers of the same event.
    """

    def __init__(self, *, now: NowCallable = _utc_now) -> None:
        self._subscriptions: dict[DomainEventType, list[Subscription]] = {}
        self._pending: set[asyncio.Task[None]] = set()
        self._now = now

    def subscribe(
        self,
        event_type: DomainEventType,
        handler: EventHandler,
        *,
        predicate: EventPredicate | None = None,
        name: str | None = None,
    ) -> Subscription:
        """Register ``handler`` for ``event_type`` and return the live subscription."""

        subscription = Subscription(
            event_type=event_type,
            handler=handler,
            predicate=predicate,
            name=name or getattr(handler, "__qualname__", repr(handler)),
        )
        self._subscriptions.setdefault(event_type, []).append(subscription)
        logger.debug("bus_subscribed event_type=%s handler=%s", event_type, subscription.name)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Stop delivering events to ``subscription``; unknown subscriptions are ignored."""

        subscription.active = False
        subscribers = self._subscriptions.get(subscription.event_type, [])
        if subscription in subscribers:
            subscribers.remove(subscription)

    def publish(self, event: DomainEvent[Any]) -> DomainEvent[Any]:
        """Stamp ``emitted_at`` and schedule delivery in subscription order.

        Must be called from a running event loop. Returns the stamped event.
        """

        stamped = replace(event, metadata=replace(event.metadata, emitted_at=self._now()))
        loop = asyncio.get_running_loop()
        for subscription in tuple(self._subscriptions.get(stamped.type, ())):
            task = loop.create_task(self._deliver_safely(subscription, stamped))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return stamped

    @property
    def pending_deliveries(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every scheduled delivery, including cascaded ones, has finished."""

        while self._pending:
            await asyncio.gather(*tuple(self._pending), return_exceptions=True)

    async def _deliver_safely(
        self,
        subscription: Subscription,
        event: DomainEvent[Any],
    ) -> None:
        if not subscription.active:
            return
        try:
            if not subscription.matches(event):
                return
            await subscription.handler(event)
        except Exception:  # noqa: BLE001
            logger.exception(
                "bus_handler_failed event_type=%s handler=%s group_id=%s member_id=%s",
                event.type,
                subscription.name,
                event.metadata.group_id,
                event.metadata.member_id,
            )
