"""Outbound chat texts produced by the moderation engine."""

from __future__ import annotations

from collections.abc import Iterable

from chat_moderation.domain.punishment_type import PunishmentType
from chat_moderation.domain.time_arguments import format_duration

BOT_PREFIX = "BOT:"


def _bot(text: str) -> str:
    return f"{BOT_PREFIX} {text}"


def build_invalid_command_message(valid_commands: Iterable[str]) -> str:
    """Build the help text sent for an unknown slash command."""

    listing = "\n".join(valid_commands)
    return _bot(f"Unknown command. Valid commands are:\n{listing}")


def build_command_not_allowed_message(command: str) -> str:
    return _bot(f"Only group admins can use {command}")


def build_target_not_identified_message() -> str:
    return _bot("Could not identify the target member")


def build_group_not_registered_message() -> str:
    return _bot("This group is not registered. Use /registergroup first")


def build_action_failed_message(command: str) -> str:
    return _bot(f"Could not complete the action {command}")


def build_punishment_applied_message(
    *,
    punishment_type: PunishmentType,
    target_name: str,
    duration_ms: int,
) -> str:
    """Build the confirmation posted after a timed or permanent punishment is applied."""

    if punishment_type == PunishmentType.MUTE:
        return _bot(f"{target_name} is muted for {format_duration(duration_ms)}")
    if punishment_type == PunishmentType.TIMEOUT:
        return _bot(f"{target_name} is timed out for {format_duration(duration_ms)}")
    return _bot(f"{target_name} was banned permanently and added to the blacklist")


def build_punishment_remaining_message(
    *,
    punishment_type: PunishmentType,
    display_name: str,
    remaining_ms: int | None,
) -> str:
    """Build the reminder sent when a punished member writes before expiry."""

    if remaining_ms is None:
        return _bot(f"{display_name.upper()} is banned from this group")
    remaining = format_duration(remaining_ms)
    if punishment_type == PunishmentType.MUTE:
        return _bot(f"{display_name.upper()}, you are muted, {remaining} left")
    return _bot(f"CALM DOWN {display_name.upper()}, you are in timeout, {remaining} left")


def build_blacklisted_member_message(display_name: str) -> str:
    return _bot(f"{display_name} is blacklisted and will be removed")


def build_already_blacklisted_message(target_name: str) -> str:
    return _bot(f"{target_name} is already on the blacklist")


def build_unban_message(*, target_name: str, was_blacklisted: bool) -> str:
    if was_blacklisted:
        return _bot(f"{target_name} was removed from the blacklist")
    return _bot(f"{target_name} was not on the blacklist")


def build_set_free_message(*, target_name: str, was_punished: bool) -> str:
    """Build the confirmation for an explicit lift; sent even when nothing was active."""

    if was_punished:
        return _bot(f"{target_name.upper()} is free again")
    return _bot(f"{target_name} has no active punishment")


def build_kick_message(target_name: str) -> str:
    return _bot(f"{target_name} was kicked from the group")


def build_warn_message(*, target_name: str, warn_count: int) -> str:
    plural = "warning" if warn_count == 1 else "warnings"
    return _bot(f"{target_name} was warned ({warn_count} {plural} in this group)")


def build_group_registered_message(group_name: str) -> str:
    return _bot(f"Group {group_name} registered successfully")


def build_group_already_registered_message(group_name: str) -> str:
    return _bot(f"Group {group_name} is already registered, details refreshed")


def build_pong_message() -> str:
    return _bot("Pong")
