"""Service that turns slash-command messages into COMMAND_EXECUTED events."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Final

from chat_moderation.application.events.domain_events import (
    CommandExecutedPayload,
    DomainEvent,
    DomainEventType,
    EventMetadata,
    MemberMessagePayload,
    OutboundMessagePayload,
)
from chat_moderation.application.events.event_bus import EventBus, Subscription
from chat_moderation.domain.command_parser import parse_command
from chat_moderation.domain.punishment_state import evaluate_expiry
from chat_moderation.infrastructure.cache.cached_member_repository import CachedMemberRepository
from chat_moderation.infrastructure.cache.cached_punishment_repository import (
    CachedPunishmentRepository,
)
from chat_moderation.infrastructure.chat.message_templates import (
    build_command_not_allowed_message,
    build_invalid_command_message,
)

logger = logging.getLogger(__name__)

KNOWN_COMMANDS: Final[tuple[str, ...]] = (
    "/timeout",
    "/mute",
    "/ban",
    "/unban",
    "/setfree",
    "/kick",
    "/warn",
    "/registergroup",
    "/ping",
)
OPEN_COMMANDS: Final[frozenset[str]] = frozenset({"/ping"})

NowCallable = Callable[[], datetime]


@dataclass(frozen=True)
class CommandRouteResult:
    """Outcome model for command routing."""

    routed: bool
    reason: str | None = None
    command: str | None = None


def _is_command_message(event: DomainEvent[Any]) -> bool:
    return parse_command(event.payload.text) is not None


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class CommandRouterService:
    """Validate slash commands and dispatch the allowed ones to command handlers."""

    def __init__(
        self,
        *,
        event_bus: EventBus,
        members: CachedMemberRepository,
        punishments: CachedPunishmentRepository,
        commands_require_admin: bool,
        now: NowCallable = _utc_now,
    ) -> None:
        self._event_bus = event_bus
        self._members = members
        self._punishments = punishments
        self._commands_require_admin = commands_require_admin
        self._now = now

    def register(self) -> Subscription:
        return self._event_bus.subscribe(
            DomainEventType.MEMBER_MESSAGE_RECEIVED,
            self._handle_member_message,
            predicate=_is_command_message,
            name="command_router",
        )

    async def route(self, payload: MemberMessagePayload) -> CommandRouteResult:
        """Route one inbound message, replying with help for unknown commands."""

        parsed = parse_command(payload.text)
        if parsed is None:
            return CommandRouteResult(routed=False, reason="not_command")

        if parsed.name not in KNOWN_COMMANDS:
            logger.info(
                "command_unknown group_id=%s member_id=%s command=%s",
                payload.group_id,
                payload.member_id,
                parsed.name,
            )
            self._reply(payload, build_invalid_command_message(KNOWN_COMMANDS))
            return CommandRouteResult(routed=False, reason="unknown_command", command=parsed.name)

        invoker = await self._members.get_by_external_id(external_member_id=payload.member_id)
        if invoker is not None:
            active = await self._punishments.get_active_by_member(member_id=invoker.member_id)
            # An expired punishment is lifted by the concurrent check on this same message.
            if active is not None and not evaluate_expiry(
                expires_at=active.expires_at,
                now=self._now(),
            ).expired:
                logger.info(
                    "command_ignored_invoker_punished member_id=%s command=%s",
                    payload.member_id,
                    parsed.name,
                )
                return CommandRouteResult(
                    routed=False,
                    reason="invoker_punished",
                    command=parsed.name,
                )

        if (
            self._commands_require_admin
            and not payload.is_admin
            and parsed.name not in OPEN_COMMANDS
        ):
            logger.info(
                "command_refused_not_admin member_id=%s command=%s",
                payload.member_id,
                parsed.name,
            )
            self._reply(payload, build_command_not_allowed_message(parsed.name))
            return CommandRouteResult(routed=False, reason="not_admin", command=parsed.name)

        self._event_bus.publish(
            DomainEvent(
                type=DomainEventType.COMMAND_EXECUTED,
                payload=CommandExecutedPayload(
                    command=parsed.name,
                    group_id=payload.group_id,
                    invoker_member_id=payload.member_id,
                    invoker_is_admin=payload.is_admin,
                    message_text=payload.text,
                    invoking_message_handle=payload.message_handle,
                    chat_handle=payload.chat_handle,
                    target_member_id=payload.target_member_id,
                    target_display_name=payload.target_display_name,
                    target_author_id=payload.target_author_id,
                    group_name=payload.group_name,
                    group_description=payload.group_description,
                ),
                metadata=EventMetadata(group_id=payload.group_id, member_id=payload.member_id),
            )
        )
        logger.info(
            "command_dispatched group_id=%s member_id=%s command=%s",
            payload.group_id,
            payload.member_id,
            parsed.name,
        )
        return CommandRouteResult(routed=True, command=parsed.name)

    async def _handle_member_message(self, event: DomainEvent[Any]) -> None:
        await self.route(event.payload)

    def _reply(self, payload: MemberMessagePayload, text: str) -> None:
        self._event_bus.publish(
            DomainEvent(
                type=DomainEventType.SEND_MESSAGE,
                payload=OutboundMessagePayload(
                    destination_chat_id=payload.group_id,
                    text=text,
                    original_message_handle=payload.message_handle,
                ),
                metadata=EventMetadata(group_id=payload.group_id, member_id=payload.member_id),
            )
        )
