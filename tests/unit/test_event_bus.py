from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

import pytest

from chat_moderation.application.events.domain_events import (
    DomainEvent,
    DomainEventType,
    EventMetadata,
    OutboundMessagePayload,
)
from chat_moderation.application.events.event_bus import EventBus

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _message_event(text: str = "hello", **metadata: Any) -> DomainEvent[OutboundMessagePayload]:
    return DomainEvent(
        type=DomainEventType.SEND_MESSAGE,
        payload=OutboundMessagePayload(destination_chat_id="group-1", text=text),
        metadata=EventMetadata(**metadata),
    )


@pytest.mark.asyncio
async def test_publish_stamps_emitted_at_overwriting_caller_value() -> None:
    bus = EventBus(now=lambda: FIXED_NOW)
    received: list[DomainEvent[Any]] = []

    async def handler(event: DomainEvent[Any]) -> None:
        received.append(event)

    bus.subscribe(DomainEventType.SEND_MESSAGE, handler)
    stamped = bus.publish(_message_event(emitted_at=datetime(2000, 1, 1, tzinfo=UTC)))
    await bus.drain()

    assert stamped.metadata.emitted_at == FIXED_NOW
    assert received[0].metadata.emitted_at == FIXED_NOW


@pytest.mark.asyncio
async def test_handlers_start_in_subscription_order() -> None:
    bus = EventBus()
    order: list[str] = []

    def make_handler(name: str):
        async def handler(event: DomainEvent[Any]) -> None:
            order.append(name)

        return handler

    for name in ("first", "second", "third"):
        bus.subscribe(DomainEventType.SEND_MESSAGE, make_handler(name))

    bus.publish(_message_event())
    await bus.drain()

    assert order == ["first", "second", "third"]


@pytest.mark.asyncio
async def test_publish_does_not_wait_for_slow_handlers() -> None:
    bus = EventBus()
    release = asyncio.Event()
    finished: list[bool] = []

    async def slow_handler(event: DomainEvent[Any]) -> None:
        await release.wait()
        finished.append(True)

    bus.subscribe(DomainEventType.SEND_MESSAGE, slow_handler)
    bus.publish(_message_event())

    assert finished == []
    assert bus.pending_deliveries == 1

    release.set()
    await bus.drain()
    assert finished == [True]


@pytest.mark.asyncio
async def test_failing_handler_does_not_block_other_subscribers(
    caplog: pytest.LogCaptureFixture,
) -> None:
    bus = EventBus()
    delivered: list[str] = []

    async def broken(event: DomainEvent[Any]) -> None:
        raise RuntimeError("boom")

    async def healthy(event: DomainEvent[Any]) -> None:
        delivered.append(event.payload.text)

    bus.subscribe(DomainEventType.SEND_MESSAGE, broken, name="broken")
    bus.subscribe(DomainEventType.SEND_MESSAGE, healthy)

    with caplog.at_level(logging.ERROR):
        bus.publish(_message_event("still delivered"))
        await bus.drain()

    assert delivered == ["still delivered"]
    assert "bus_handler_failed" in caplog.text
    assert "handler=broken" in caplog.text


@pytest.mark.asyncio
async def test_late_subscriber_never_sees_earlier_events() -> None:
    bus = EventBus()
    received: list[str] = []

    async def handler(event: DomainEvent[Any]) -> None:
        received.append(event.payload.text)

    bus.publish(_message_event("before"))
    bus.subscribe(DomainEventType.SEND_MESSAGE, handler)
    bus.publish(_message_event("after"))
    await bus.drain()

    assert received == ["after"]


@pytest.mark.asyncio
async def test_predicate_filters_and_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    received: list[str] = []

    async def handler(event: DomainEvent[Any]) -> None:
        received.append(event.payload.text)

    subscription = bus.subscribe(
        DomainEventType.SEND_MESSAGE,
        handler,
        predicate=lambda event: event.payload.text.startswith("keep"),
    )
    bus.publish(_message_event("keep-1"))
    bus.publish(_message_event("drop"))
    await bus.drain()

    bus.unsubscribe(subscription)
    bus.publish(_message_event("keep-2"))
    await bus.drain()

    assert received == ["keep-1"]


@pytest.mark.asyncio
async def test_events_of_other_types_are_not_delivered() -> None:
    bus = EventBus()
    received: list[DomainEvent[Any]] = []

    async def handler(event: DomainEvent[Any]) -> None:
        received.append(event)

    bus.subscribe(DomainEventType.PUNISHMENT_LIFTED, handler)
    bus.publish(_message_event())
    await bus.drain()

    assert received == []


@pytest.mark.asyncio
async def test_drain_waits_for_cascaded_publications() -> None:
    bus = EventBus()
    received: list[str] = []

    async def relay(event: DomainEvent[Any]) -> None:
        bus.publish(
            DomainEvent(
                type=DomainEventType.SEND_MESSAGE,
                payload=OutboundMessagePayload(destination_chat_id="group-1", text="relayed"),
            )
        )

    async def sink(event: DomainEvent[Any]) -> None:
        received.append(event.payload.text)

    bus.subscribe(DomainEventType.PUNISHMENT_LIFTED, relay)
    bus.subscribe(DomainEventType.SEND_MESSAGE, sink)
    bus.publish(DomainEvent(type=DomainEventType.PUNISHMENT_LIFTED, payload=None))
    await bus.drain()

    assert received == ["relayed"]
