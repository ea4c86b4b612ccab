from __future__ import annotations

import pytest

from chat_moderation.application.events.domain_events import (
    DomainEvent,
    DomainEventType,
    OutboundMessagePayload,
)
from chat_moderation.application.events.event_bus import EventBus
from chat_moderation.application.services.outbound_delivery_gate import OutboundDeliveryGate


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _gate(window_seconds: float = 3.0) -> tuple[OutboundDeliveryGate, list[str], _Clock]:
    delivered: list[str] = []
    clock = _Clock()

    async def deliver(payload: OutboundMessagePayload) -> None:
        delivered.append(f"{payload.destination_chat_id}:{payload.text}")

    gate = OutboundDeliveryGate(
        event_bus=EventBus(),
        deliver=deliver,
        window_seconds=window_seconds,
        clock=clock,
    )
    return gate, delivered, clock


@pytest.mark.asyncio
async def test_identical_message_inside_window_is_dropped() -> None:
    gate, delivered, clock = _gate()
    payload = OutboundMessagePayload(destination_chat_id="group-1", text="BOT: Pong")

    assert await gate.deliver(payload) is True
    clock.now += 2.9
    assert await gate.deliver(payload) is False

    assert delivered == ["group-1:BOT: Pong"]


@pytest.mark.asyncio
async def test_identical_message_after_window_is_delivered_again() -> None:
    gate, delivered, clock = _gate()
    payload = OutboundMessagePayload(destination_chat_id="group-1", text="BOT: Pong")

    await gate.deliver(payload)
    clock.now += 3.0
    await gate.deliver(payload)

    assert delivered == ["group-1:BOT: Pong", "group-1:BOT: Pong"]


@pytest.mark.asyncio
async def test_different_text_or_destination_is_not_deduplicated() -> None:
    gate, delivered, _ = _gate()

    await gate.deliver(OutboundMessagePayload(destination_chat_id="group-1", text="a"))
    await gate.deliver(OutboundMessagePayload(destination_chat_id="group-1", text="b"))
    await gate.deliver(OutboundMessagePayload(destination_chat_id="group-2", text="a"))

    assert delivered == ["group-1:a", "group-1:b", "group-2:a"]


@pytest.mark.asyncio
async def test_registered_gate_delivers_send_message_events() -> None:
    bus = EventBus()
    delivered: list[OutboundMessagePayload] = []

    async def deliver(payload: OutboundMessagePayload) -> None:
        delivered.append(payload)

    gate = OutboundDeliveryGate(event_bus=bus, deliver=deliver, window_seconds=3.0)
    gate.register()

    payload = OutboundMessagePayload(destination_chat_id="group-1", text="BOT: hello")
    bus.publish(DomainEvent(type=DomainEventType.SEND_MESSAGE, payload=payload))
    bus.publish(DomainEvent(type=DomainEventType.SEND_MESSAGE, payload=payload))
    await bus.drain()

    assert delivered == [payload]
