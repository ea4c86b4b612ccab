"""Stand-in transport that logs outbound messages and enforcement requests."""

from __future__ import annotations

import logging
from typing import Any

from chat_moderation.application.events.domain_events import (
    DomainEvent,
    DomainEventType,
    EnforcementRequestedPayload,
    OutboundMessagePayload,
)
from chat_moderation.application.events.event_bus import EventBus, Subscription

logger = logging.getLogger(__name__)


class LoggingTransport:
    """Used when no chat network adapter is attached to the process."""

    async def send(self, payload: OutboundMessagePayload) -> None:
        logger.info(
            "outbound_message destination_chat_id=%s mentions=%s text=%s",
            payload.destination_chat_id,
            ",".join(payload.mention_ids),
            payload.text,
        )

    async def enforce(self, payload: EnforcementRequestedPayload) -> None:
        logger.info(
            "enforcement_requested action=%s destination_chat_id=%s member_id=%s",
            payload.action,
            payload.destination_chat_id,
            payload.member_id,
        )

    def register_enforcement(self, event_bus: EventBus) -> Subscription:
        async def handle(event: DomainEvent[Any]) -> None:
            await self.enforce(event.payload)

        return event_bus.subscribe(
            DomainEventType.ENFORCEMENT_REQUESTED,
            handle,
            name="logging_transport.enforce",
        )
