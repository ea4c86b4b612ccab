"""Port for punishment persistence operations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from chat_moderation.application.ports.store_errors import ConflictError, NotFoundError
from chat_moderation.domain.punishment_type import PunishmentType


class DuplicateActivePunishmentError(ConflictError):
    """Raised when a concurrent writer inserted another active punishment first."""


class PunishmentNotFoundError(NotFoundError):
    """Raised when a punishment id does not exist."""


@dataclass(frozen=True)
class PunishmentCreateInput:
    """Input payload for inserting a punishment row."""

    member_id: UUID
    membership_id: UUID
    group_id: UUID
    punishment_type: PunishmentType
    duration_ms: int
    reason: str
    applied_at: datetime
    expires_at: datetime | None
    is_active: bool = True


@dataclass(frozen=True)
class PunishmentRecord:
    """Punishment persistence model; only ``is_active`` ever changes after insert."""

    punishment_id: UUID
    member_id: UUID
    membership_id: UUID
    group_id: UUID
    punishment_type: PunishmentType
    duration_ms: int
    reason: str
    applied_at: datetime
    expires_at: datetime | None
    is_active: bool


class PunishmentRepositoryPort(Protocol):
    """Punishment repository contract."""

    async def get_active_by_member(self, *, member_id: UUID) -> PunishmentRecord | None:
        """Return the single active punishment for a member when present."""

    async def get_by_id(self, *, punishment_id: UUID) -> PunishmentRecord | None:
        """Return punishment by internal id when present."""

    async def list_by_member(self, *, member_id: UUID) -> list[PunishmentRecord]:
        """Return every punishment of a member ordered by application time."""

    async def create_superseding(self, payload: PunishmentCreateInput) -> PunishmentRecord:
        """Deactivate any active punishment of the member and insert the new one atomically."""

    async def deactivate_active(self, *, member_id: UUID) -> int:
        """Deactivate active punishments of a member and return how many changed."""

    async def delete(self, *, punishment_id: UUID) -> bool:
        """Delete a punishment row and return whether a row was removed."""
