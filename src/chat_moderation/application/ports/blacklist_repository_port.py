"""Port for cross-group blacklist persistence operations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from chat_moderation.application.ports.store_errors import ConflictError, NotFoundError


class DuplicateBlacklistEntryError(ConflictError):
    """Raised when the member is already blacklisted."""


class BlacklistEntryNotFoundError(NotFoundError):
    """Raised when an update targets a member that is not blacklisted."""


@dataclass(frozen=True)
class BlacklistCreateInput:
    """Input payload for adding a member to the blacklist."""

    member_id: UUID
    reason: str
    banned_by: str | None = None
    banned_from_group_id: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class BlacklistRecord:
    """Blacklist persistence model."""

    blacklist_id: UUID
    member_id: UUID
    reason: str
    banned_by: str | None
    banned_from_group_id: str | None
    notes: str | None
    created_at: datetime


class BlacklistRepositoryPort(Protocol):
    """Blacklist repository contract."""

    async def get_by_member_id(self, *, member_id: UUID) -> BlacklistRecord | None:
        """Return the blacklist entry of a member when present."""

    async def create(self, payload: BlacklistCreateInput) -> BlacklistRecord:
        """Insert an entry, raising DuplicateBlacklistEntryError when present."""

    async def update_notes(self, *, member_id: UUID, notes: str | None) -> BlacklistRecord:
        """Replace administrative notes, raising BlacklistEntryNotFoundError when absent."""

    async def delete_by_member_id(self, *, member_id: UUID) -> bool:
        """Remove the entry of a member and return whether a row was removed."""

    async def list_all(self) -> list[BlacklistRecord]:
        """Return all entries ordered by creation time."""
