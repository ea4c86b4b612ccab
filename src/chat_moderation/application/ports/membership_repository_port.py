"""Port for group membership persistence operations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Final, Protocol
from uuid import UUID

from chat_moderation.application.ports.store_errors import ConflictError, NotFoundError
from chat_moderation.domain.punishment_type import PunishmentType

PUNISHMENT_COUNTER_FIELDS: Final[dict[PunishmentType, str]] = {
    PunishmentType.TIMEOUT: "timeout_count",
    PunishmentType.MUTE: "mute_count",
    PunishmentType.BAN: "ban_count",
    PunishmentType.PERMANENT_BAN: "permanent_ban_count",
    PunishmentType.KICK: "kick_count",
    PunishmentType.WARN: "warn_count",
}


class DuplicateMembershipError(ConflictError):
    """Raised when a membership already exists for the (group, member) pair."""


class MembershipNotFoundError(NotFoundError):
    """Raised when an update targets a membership that does not exist."""


@dataclass(frozen=True)
class MembershipCreateInput:
    """Input payload for creating a membership row."""

    group_id: UUID
    member_id: UUID
    is_admin: bool = False
    message_count: int = 0


@dataclass(frozen=True)
class MembershipUpdateInput:
    """Partial update for membership flags; None leaves a field unchanged."""

    is_admin: bool | None = None
    note: str | None = None


@dataclass(frozen=True)
class MembershipRecord:
    """Membership persistence model with per-type punishment counters."""

    membership_id: UUID
    group_id: UUID
    member_id: UUID
    is_admin: bool
    message_count: int
    timeout_count: int
    mute_count: int
    ban_count: int
    permanent_ban_count: int
    kick_count: int
    warn_count: int
    note: str
    created_at: datetime
    updated_at: datetime

    def punishment_count(self, punishment_type: PunishmentType) -> int:
        """Return the counter tracked for one punishment type."""

        return int(getattr(self, PUNISHMENT_COUNTER_FIELDS[punishment_type]))


class MembershipRepositoryPort(Protocol):
    """Membership repository contract."""

    async def get(self, *, group_id: UUID, member_id: UUID) -> MembershipRecord | None:
        """Return the membership for a (group, member) pair when present."""

    async def get_by_id(self, *, membership_id: UUID) -> MembershipRecord | None:
        """Return membership by internal id when present."""

    async def create(self, payload: MembershipCreateInput) -> MembershipRecord:
        """Insert a membership, raising DuplicateMembershipError when the pair exists."""

    async def update(
        self,
        *,
        membership_id: UUID,
        payload: MembershipUpdateInput,
    ) -> MembershipRecord:
        """Update flags, raising MembershipNotFoundError when absent."""

    async def increment_message_count(
        self,
        *,
        membership_id: UUID,
        by: int = 1,
    ) -> MembershipRecord:
        """Atomically add ``by`` to the message counter."""

    async def increment_punishment_count(
        self,
        *,
        membership_id: UUID,
        punishment_type: PunishmentType,
    ) -> MembershipRecord:
        """Atomically add one to the counter of ``punishment_type``."""

    async def delete(self, *, membership_id: UUID) -> bool:
        """Delete the membership and return whether a row was removed."""
