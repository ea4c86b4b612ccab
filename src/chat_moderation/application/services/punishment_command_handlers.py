"""Handlers for the commands that punish, release and remove members."""

from __future__ import annotations

import logging

from chat_moderation.application.events.domain_events import CommandExecutedPayload
from chat_moderation.application.events.event_bus import EventBus
from chat_moderation.application.ports.blacklist_repository_port import (
    BlacklistCreateInput,
    DuplicateBlacklistEntryError,
)
from chat_moderation.application.services.command_handler_base import (
    CommandHandler,
    resolve_target,
)
from chat_moderation.application.services.punishment_lifecycle_service import (
    ApplyPunishmentInput,
    PunishmentLifecycleService,
)
from chat_moderation.domain.punishment_type import PunishmentType
from chat_moderation.domain.time_arguments import extract_time_argument, parse_time_to_ms
from chat_moderation.infrastructure.cache.cached_blacklist_repository import (
    CachedBlacklistRepository,
)
from chat_moderation.infrastructure.cache.cached_member_repository import CachedMemberRepository
from chat_moderation.infrastructure.chat.message_templates import (
    build_already_blacklisted_message,
    build_kick_message,
    build_punishment_applied_message,
    build_set_free_message,
    build_target_not_identified_message,
    build_unban_message,
    build_warn_message,
)

logger = logging.getLogger(__name__)


class TimedPunishmentCommand(CommandHandler):
    """``/timeout`` and ``/mute`` with an optional ``<n><s|m|h|d>`` duration."""

    commands = frozenset({"/timeout", "/mute"})

    def __init__(
        self,
        *,
        event_bus: EventBus,
        lifecycle: PunishmentLifecycleService,
        default_duration_ms: int,
    ) -> None:
        super().__init__(event_bus=event_bus)
        self._lifecycle = lifecycle
        self._default_duration_ms = default_duration_ms

    async def execute(self, payload: CommandExecutedPayload) -> None:
        target = resolve_target(payload)
        if target is None:
            self.reply(payload, build_target_not_identified_message())
            return
        target_id, target_name = target

        punishment_type = (
            PunishmentType.MUTE if payload.command == "/mute" else PunishmentType.TIMEOUT
        )
        duration_ms = parse_time_to_ms(
            extract_time_argument(payload.message_text),
            default_ms=self._default_duration_ms,
        )
        result = await self._lifecycle.apply(
            ApplyPunishmentInput(
                external_group_id=payload.group_id,
                external_member_id=target_id,
                punishment_type=punishment_type,
                duration_ms=duration_ms,
                reason=f"{payload.command} by {payload.invoker_member_id}",
                display_name=payload.target_display_name,
            )
        )
        self.reply(
            payload,
            build_punishment_applied_message(
                punishment_type=punishment_type,
                target_name=target_name,
                duration_ms=result.punishment.duration_ms,
            ),
            mention_ids=(target_id,),
        )


class BanCommand(CommandHandler):
    """``/ban``: permanent ban, blacklist entry and removal from the group."""

    commands = frozenset({"/ban"})

    def __init__(
        self,
        *,
        event_bus: EventBus,
        lifecycle: PunishmentLifecycleService,
        members: CachedMemberRepository,
        blacklist: CachedBlacklistRepository,
    ) -> None:
        super().__init__(event_bus=event_bus)
        self._lifecycle = lifecycle
        self._members = members
        self._blacklist = blacklist

    async def execute(self, payload: CommandExecutedPayload) -> None:
        target = resolve_target(payload)
        if target is None:
            self.reply(payload, build_target_not_identified_message())
            return
        target_id, target_name = target

        known = await self._members.get_by_external_id(external_member_id=target_id)
        if known is not None and await self._blacklist.is_blacklisted(member_id=known.member_id):
            self.reply(payload, build_already_blacklisted_message(target_name))
            return

        result = await self._lifecycle.apply(
            ApplyPunishmentInput(
                external_group_id=payload.group_id,
                external_member_id=target_id,
                punishment_type=PunishmentType.BAN,
                duration_ms=0,
                reason=f"/ban by {payload.invoker_member_id}",
                display_name=payload.target_display_name,
            )
        )
        try:
            await self._blacklist.create(
                BlacklistCreateInput(
                    member_id=result.member.member_id,
                    reason="Banned by group admin",
                    banned_by=payload.invoker_member_id,
                    banned_from_group_id=payload.group_id,
                )
            )
        except DuplicateBlacklistEntryError:
            logger.info("ban_blacklist_entry_exists member_id=%s", target_id)

        self.request_member_removal(payload, member_id=target_id)
        self.reply(
            payload,
            build_punishment_applied_message(
                punishment_type=PunishmentType.BAN,
                target_name=target_name,
                duration_ms=0,
            ),
            mention_ids=(target_id,),
        )


class UnbanCommand(CommandHandler):
    """``/unban``: remove the blacklist entry and lift any active punishment."""

    commands = frozenset({"/unban"})

    def __init__(
        self,
        *,
        event_bus: EventBus,
        lifecycle: PunishmentLifecycleService,
        members: CachedMemberRepository,
        blacklist: CachedBlacklistRepository,
    ) -> None:
        super().__init__(event_bus=event_bus)
        self._lifecycle = lifecycle
        self._members = members
        self._blacklist = blacklist

    async def execute(self, payload: CommandExecutedPayload) -> None:
        target = resolve_target(payload)
        if target is None:
            self.reply(payload, build_target_not_identified_message())
            return
        target_id, target_name = target

        member = await self._members.get_by_external_id(external_member_id=target_id)
        was_blacklisted = False
        if member is not None:
            was_blacklisted = await self._blacklist.delete_by_member_id(member_id=member.member_id)
        await self._lifecycle.lift(external_group_id=payload.group_id, external_member_id=target_id)
        self.reply(
            payload,
            build_unban_message(target_name=target_name, was_blacklisted=was_blacklisted),
        )


class SetFreeCommand(CommandHandler):
    """``/setfree``: lift the target's active punishment unconditionally."""

    commands = frozenset({"/setfree"})

    def __init__(self, *, event_bus: EventBus, lifecycle: PunishmentLifecycleService) -> None:
        super().__init__(event_bus=event_bus)
        self._lifecycle = lifecycle

    async def execute(self, payload: CommandExecutedPayload) -> None:
        target = resolve_target(payload)
        if target is None:
            self.reply(payload, build_target_not_identified_message())
            return
        target_id, target_name = target

        result = await self._lifecycle.lift(
            external_group_id=payload.group_id,
            external_member_id=target_id,
        )
        self.reply(
            payload,
            build_set_free_message(target_name=target_name, was_punished=result.was_punished),
            mention_ids=(target_id,),
        )


class KickCommand(CommandHandler):
    """``/kick``: record the kick and ask the transport to remove the member."""

    commands = frozenset({"/kick"})

    def __init__(self, *, event_bus: EventBus, lifecycle: PunishmentLifecycleService) -> None:
        super().__init__(event_bus=event_bus)
        self._lifecycle = lifecycle

    async def execute(self, payload: CommandExecutedPayload) -> None:
        target = resolve_target(payload)
        if target is None:
            self.reply(payload, build_target_not_identified_message())
            return
        target_id, target_name = target

        await self._lifecycle.apply(
            ApplyPunishmentInput(
                external_group_id=payload.group_id,
                external_member_id=target_id,
                punishment_type=PunishmentType.KICK,
                duration_ms=0,
                reason=f"/kick by {payload.invoker_member_id}",
                display_name=payload.target_display_name,
            )
        )
        self.request_member_removal(payload, member_id=target_id)
        self.reply(payload, build_kick_message(target_name))


class WarnCommand(CommandHandler):
    """``/warn``: record a warning and report the member's total in this group."""

    commands = frozenset({"/warn"})

    def __init__(self, *, event_bus: EventBus, lifecycle: PunishmentLifecycleService) -> None:
        super().__init__(event_bus=event_bus)
        self._lifecycle = lifecycle

    async def execute(self, payload: CommandExecutedPayload) -> None:
        target = resolve_target(payload)
        if target is None:
            self.reply(payload, build_target_not_identified_message())
            return
        target_id, target_name = target

        result = await self._lifecycle.apply(
            ApplyPunishmentInput(
                external_group_id=payload.group_id,
                external_member_id=target_id,
                punishment_type=PunishmentType.WARN,
                duration_ms=0,
                reason=f"/warn by {payload.invoker_member_id}",
                display_name=payload.target_display_name,
            )
        )
        self.reply(
            payload,
            build_warn_message(target_name=target_name, warn_count=result.membership.warn_count),
            mention_ids=(target_id,),
        )
