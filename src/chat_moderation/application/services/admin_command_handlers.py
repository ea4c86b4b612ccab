"""Handlers for group administration and liveness commands."""

from __future__ import annotations

from chat_moderation.application.events.domain_events import CommandExecutedPayload
from chat_moderation.application.events.event_bus import EventBus
from chat_moderation.application.ports.group_repository_port import GroupUpdateInput
from chat_moderation.application.services.command_handler_base import CommandHandler
from chat_moderation.infrastructure.cache.cached_group_repository import CachedGroupRepository
from chat_moderation.infrastructure.chat.message_templates import (
    build_group_already_registered_message,
    build_group_registered_message,
    build_pong_message,
)


class PingCommand(CommandHandler):
    commands = frozenset({"/ping"})

    async def execute(self, payload: CommandExecutedPayload) -> None:
        self.reply(payload, build_pong_message())


class RegisterGroupCommand(CommandHandler):
    """``/registergroup``: create the group or refresh its name and description."""

    commands = frozenset({"/registergroup"})

    def __init__(self, *, event_bus: EventBus, groups: CachedGroupRepository) -> None:
        super().__init__(event_bus=event_bus)
        self._groups = groups

    async def execute(self, payload: CommandExecutedPayload) -> None:
        name = payload.group_name or payload.group_id
        description = payload.group_description or ""

        existing = await self._groups.get_by_external_id(external_group_id=payload.group_id)
        if existing is not None:
            await self._groups.update(
                group_id=existing.group_id,
                payload=GroupUpdateInput(name=name, description=description),
            )
            self.reply(payload, build_group_already_registered_message(name))
            return

        await self._groups.get_or_create(
            external_group_id=payload.group_id,
            name=name,
            description=description,
        )
        self.reply(payload, build_group_registered_message(name))
