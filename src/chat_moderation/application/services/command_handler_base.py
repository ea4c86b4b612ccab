"""Base class for self-registering slash-command handlers."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from chat_moderation.application.events.domain_events import (
    CommandExecutedPayload,
    DomainEvent,
    DomainEventType,
    EnforcementAction,
    EnforcementRequestedPayload,
    EventMetadata,
    OutboundMessagePayload,
)
from chat_moderation.application.events.event_bus import EventBus, Subscription
from chat_moderation.application.services.punishment_lifecycle_service import (
    GroupNotRegisteredError,
)
from chat_moderation.infrastructure.chat.message_templates import (
    build_action_failed_message,
    build_group_not_registered_message,
)

logger = logging.getLogger(__name__)


class CommandHandler:
    """Handle the COMMAND_EXECUTED events whose command is in ``commands``.

    Failures are logged and answered with a best-effort notification so a
    command is never dropped silently.
    """

    commands: ClassVar[frozenset[str]] = frozenset()

    def __init__(self, *, event_bus: EventBus) -> None:
        self._event_bus = event_bus

    def register(self) -> Subscription:
        return self._event_bus.subscribe(
            DomainEventType.COMMAND_EXECUTED,
            self.handle,
            predicate=self.owns,
            name=type(self).__name__,
        )

    def owns(self, event: DomainEvent[Any]) -> bool:
        return event.payload.command in self.commands

    async def handle(self, event: DomainEvent[Any]) -> None:
        payload: CommandExecutedPayload = event.payload
        try:
            await self.execute(payload)
        except GroupNotRegisteredError:
            logger.info(
                "command_rejected_group_not_registered command=%s group_id=%s",
                payload.command,
                payload.group_id,
            )
            self.reply(payload, build_group_not_registered_message())
        except Exception:  # noqa: BLE001
            logger.exception(
                "command_failed command=%s group_id=%s invoker_member_id=%s",
                payload.command,
                payload.group_id,
                payload.invoker_member_id,
            )
            self.reply(payload, build_action_failed_message(payload.command))

    async def execute(self, payload: CommandExecutedPayload) -> None:
        raise NotImplementedError

    def reply(
        self,
        payload: CommandExecutedPayload,
        text: str,
        *,
        mention_ids: tuple[str, ...] = (),
    ) -> None:
        self._event_bus.publish(
            DomainEvent(
                type=DomainEventType.SEND_MESSAGE,
                payload=OutboundMessagePayload(
                    destination_chat_id=payload.group_id,
                    text=text,
                    original_message_handle=payload.invoking_message_handle,
                    mention_ids=mention_ids,
                ),
                metadata=EventMetadata(
                    group_id=payload.group_id,
                    member_id=payload.invoker_member_id,
                ),
            )
        )

    def request_member_removal(self, payload: CommandExecutedPayload, *, member_id: str) -> None:
        self._event_bus.publish(
            DomainEvent(
                type=DomainEventType.ENFORCEMENT_REQUESTED,
                payload=EnforcementRequestedPayload(
                    action=EnforcementAction.REMOVE_MEMBER,
                    destination_chat_id=payload.group_id,
                    member_id=member_id,
                    chat_handle=payload.chat_handle,
                ),
                metadata=EventMetadata(group_id=payload.group_id, member_id=member_id),
            )
        )


def resolve_target(payload: CommandExecutedPayload) -> tuple[str, str] | None:
    """Return (member id, display name) of the command target, else None."""

    member_id = payload.target_member_id or payload.target_author_id
    if not member_id:
        return None
    return member_id, payload.target_display_name or member_id
