"""Port for group persistence operations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol
from uuid import UUID

from chat_moderation.application.ports.store_errors import ConflictError, NotFoundError


class DuplicateGroupError(ConflictError):
    """Raised when a group with the same external group id already exists."""


class GroupNotFoundError(NotFoundError):
    """Raised when an update targets a group that does not exist."""


@dataclass(frozen=True)
class GroupCreateInput:
    """Input payload for creating a group row."""

    external_group_id: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class GroupUpdateInput:
    """Partial update for mutable group metadata; None leaves a field unchanged."""

    name: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class GroupRecord:
    """Group persistence model used across repository boundaries."""

    group_id: UUID
    external_group_id: str
    name: str
    description: str
    created_at: datetime
    updated_at: datetime


class GroupRepositoryPort(Protocol):
    """Group repository contract."""

    async def get_by_external_id(self, *, external_group_id: str) -> GroupRecord | None:
        """Return group by its chat-network id when present."""

    async def get_by_id(self, *, group_id: UUID) -> GroupRecord | None:
        """Return group by internal id when present."""

    async def create(self, payload: GroupCreateInput) -> GroupRecord:
        """Insert a new group, raising DuplicateGroupError on external id collision."""

    async def update(self, *, group_id: UUID, payload: GroupUpdateInput) -> GroupRecord:
        """Update mutable metadata, raising GroupNotFoundError when absent."""

    async def delete(self, *, group_id: UUID) -> bool:
        """Delete the group and return whether a row was removed."""
