"""Punishment type enum and per-type lifecycle traits."""

from __future__ import annotations

from enum import StrEnum
from typing import Final


class PunishmentType(StrEnum):
    """All punishment kinds a moderator can apply to a member."""

    TIMEOUT = "timeout"
    MUTE = "mute"
    BAN = "ban"
    PERMANENT_BAN = "permanentBan"
    KICK = "kick"
    WARN = "warn"


_PERMANENT_TYPES: Final[frozenset[PunishmentType]] = frozenset(
    {PunishmentType.BAN, PunishmentType.PERMANENT_BAN}
)
_INSTANTANEOUS_TYPES: Final[frozenset[PunishmentType]] = frozenset(
    {PunishmentType.KICK, PunishmentType.WARN}
)
_MESSAGE_SUPPRESSING_TYPES: Final[frozenset[PunishmentType]] = frozenset(
    {PunishmentType.TIMEOUT, PunishmentType.MUTE}
)


def is_permanent(punishment_type: PunishmentType) -> bool:
    """Return whether the punishment never expires on its own."""

    return punishment_type in _PERMANENT_TYPES


def is_instantaneous(punishment_type: PunishmentType) -> bool:
    """Return whether the punishment is recorded as history only, never active."""

    return punishment_type in _INSTANTANEOUS_TYPES


def suppresses_messages(punishment_type: PunishmentType) -> bool:
    """Return whether an active punishment of this type deletes new messages."""

    return punishment_type in _MESSAGE_SUPPRESSING_TYPES
