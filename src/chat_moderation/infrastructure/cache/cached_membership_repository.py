"""Read-through cache in front of the membership store."""

from __future__ import annotations

import logging
from uuid import UUID

from chat_moderation.application.ports.membership_repository_port import (
    DuplicateMembershipError,
    MembershipCreateInput,
    MembershipRecord,
    MembershipRepositoryPort,
    MembershipUpdateInput,
)
from chat_moderation.domain.punishment_type import PunishmentType
from chat_moderation.infrastructure.cache.cache_config import CacheTtls, membership_key
from chat_moderation.infrastructure.cache.expiring_cache import ExpiringCache

logger = logging.getLogger(__name__)


class CachedMembershipRepository(MembershipRepositoryPort):
    """Membership repository keyed in the cache by (group id, member id)."""

    def __init__(
        self,
        *,
        store: MembershipRepositoryPort,
        cache: ExpiringCache[object],
        ttls: CacheTtls,
    ) -> None:
        self._store = store
        self._cache = cache
        self._ttl_ms = ttls.membership_ms

    async def get(self, *, group_id: UUID, member_id: UUID) -> MembershipRecord | None:
        cached = self._cache.get(membership_key(group_id, member_id))
        if isinstance(cached, MembershipRecord):
            return cached

        record = await self._store.get(group_id=group_id, member_id=member_id)
        if record is not None:
            self._remember(record)
        return record

    async def get_by_id(self, *, membership_id: UUID) -> MembershipRecord | None:
        record = await self._store.get_by_id(membership_id=membership_id)
        if record is not None:
            self._remember(record)
        return record

    async def create(self, payload: MembershipCreateInput) -> MembershipRecord:
        record = await self._store.create(payload)
        self._remember(record)
        return record

    async def get_or_create(
        self,
        *,
        group_id: UUID,
        member_id: UUID,
        is_admin: bool = False,
    ) -> MembershipRecord:
        """Return the (group, member) membership, creating it at most once.

        A caller that loses a concurrent create re-reads the row the winner
        inserted instead of surfacing the conflict.
        """

        existing = await self.get(group_id=group_id, member_id=member_id)
        if existing is not None:
            return existing

        try:
            return await self.create(
                MembershipCreateInput(group_id=group_id, member_id=member_id, is_admin=is_admin)
            )
        except DuplicateMembershipError:
            logger.info(
                "membership_create_race_resolved group_id=%s member_id=%s",
                group_id,
                member_id,
            )
            record = await self._store.get(group_id=group_id, member_id=member_id)
            if record is None:
                raise
            self._remember(record)
            return record

    async def update(
        self,
        *,
        membership_id: UUID,
        payload: MembershipUpdateInput,
    ) -> MembershipRecord:
        record = await self._store.update(membership_id=membership_id, payload=payload)
        self._remember(record)
        return record

    async def increment_message_count(
        self,
        *,
        membership_id: UUID,
        by: int = 1,
    ) -> MembershipRecord:
        record = await self._store.increment_message_count(membership_id=membership_id, by=by)
        self._remember(record)
        return record

    async def increment_punishment_count(
        self,
        *,
        membership_id: UUID,
        punishment_type: PunishmentType,
    ) -> MembershipRecord:
        record = await self._store.increment_punishment_count(
            membership_id=membership_id,
            punishment_type=punishment_type,
        )
        self._remember(record)
        return record

    async def delete(self, *, membership_id: UUID) -> bool:
        record = await self._store.get_by_id(membership_id=membership_id)
        deleted = await self._store.delete(membership_id=membership_id)
        if record is not None:
            self._cache.delete(membership_key(record.group_id, record.member_id))
        return deleted

    def _remember(self, record: MembershipRecord) -> None:
        self._cache.set(
            membership_key(record.group_id, record.member_id),
            record,
            ttl_ms=self._ttl_ms,
        )
