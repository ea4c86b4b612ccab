"""Per-entity cache time-to-live settings and deterministic cache keys."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from chat_moderation.config.settings import Settings


@dataclass(frozen=True)
class CacheTtls:
    """TTL in milliseconds for each cached entity kind."""

    group_ms: int = 5 * 60 * 1000
    member_ms: int = 2 * 60 * 1000
    membership_ms: int = 3 * 60 * 1000
    punishment_ms: int = 30 * 1000
    blacklist_ms: int = 10 * 60 * 1000

    @classmethod
    def from_settings(cls, settings: Settings) -> CacheTtls:
        return cls(
            group_ms=settings.cache_ttl_group_ms,
            member_ms=settings.cache_ttl_member_ms,
            membership_ms=settings.cache_ttl_membership_ms,
            punishment_ms=settings.cache_ttl_punishment_ms,
            blacklist_ms=settings.cache_ttl_blacklist_ms,
        )


def group_key(external_group_id: str) -> str:
    return f"group:{external_group_id}"


def member_key(external_member_id: str) -> str:
    return f"member:{external_member_id}"


def membership_key(group_id: UUID, member_id: UUID) -> str:
    return f"membership:{group_id}:{member_id}"


def punishment_key(member_id: UUID) -> str:
    return f"punishment:{member_id}"


def blacklist_key(member_id: UUID) -> str:
    return f"blacklist:{member_id}"
