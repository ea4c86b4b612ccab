"""Port for member persistence operations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from chat_moderation.application.ports.store_errors import ConflictError, NotFoundError

PLACEHOLDER_DISPLAY_NAME = "[UNKNOWN]"


class DuplicateMemberError(ConflictError):
    """Raised when a member with the same external member id already exists."""


class MemberNotFoundError(NotFoundError):
    """Raised when an update targets a member that does not exist."""


@dataclass(frozen=True)
class MemberCreateInput:
    """Input payload for creating a member row."""

    external_member_id: str
    display_name: str = PLACEHOLDER_DISPLAY_NAME


@dataclass(frozen=True)
class MemberRecord:
    """Member persistence model."""

    member_id: UUID
    external_member_id: str
    display_name: str
    created_at: datetime
    updated_at: datetime

    @property
    def has_placeholder_name(self) -> bool:
        return self.display_name == PLACEHOLDER_DISPLAY_NAME


class MemberRepositoryPort(Protocol):
    """Member repository contract."""

    async def get_by_external_id(self, *, external_member_id: str) -> MemberRecord | None:
        """Return member by chat-network id when present."""

    async def get_by_id(self, *, member_id: UUID) -> MemberRecord | None:
        """Return member by internal id when present."""

    async def create(self, payload: MemberCreateInput) -> MemberRecord:
        """Insert a new member, raising DuplicateMemberError on external id collision."""

    async def update_display_name(self, *, member_id: UUID, display_name: str) -> MemberRecord:
        """Replace the display name, raising MemberNotFoundError when absent."""

    async def delete(self, *, member_id: UUID) -> bool:
        """Delete the member and return whether a row was removed."""
