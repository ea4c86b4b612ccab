"""Read-through cache in front of the member store."""

from __future__ import annotations

import logging
from uuid import UUID

from chat_moderation.application.ports.member_repository_port import (
    PLACEHOLDER_DISPLAY_NAME,
    DuplicateMemberError,
    MemberCreateInput,
    MemberRecord,
    MemberRepositoryPort,
)
from chat_moderation.infrastructure.cache.cache_config import CacheTtls, member_key
from chat_moderation.infrastructure.cache.expiring_cache import ExpiringCache

logger = logging.getLogger(__name__)


class CachedMemberRepository(MemberRepositoryPort):
    """Member repository that keeps records cached by external member id."""

    def __init__(
        self,
        *,
        store: MemberRepositoryPort,
        cache: ExpiringCache[object],
        ttls: CacheTtls,
    ) -> None:
        self._store = store
        self._cache = cache
        self._ttl_ms = ttls.member_ms

    async def get_by_external_id(self, *, external_member_id: str) -> MemberRecord | None:
        cached = self._cache.get(member_key(external_member_id))
        if isinstance(cached, MemberRecord):
            return cached

        record = await self._store.get_by_external_id(external_member_id=external_member_id)
        if record is not None:
            self._remember(record)
        return record

    async def get_by_id(self, *, member_id: UUID) -> MemberRecord | None:
        record = await self._store.get_by_id(member_id=member_id)
        if record is not None:
            self._remember(record)
        return record

    async def create(self, payload: MemberCreateInput) -> MemberRecord:
        record = await self._store.create(payload)
        self._remember(record)
        return record

    async def get_or_create(
        self,
        *,
        external_member_id: str,
        display_name: str | None = None,
    ) -> MemberRecord:
        """Return the member, creating it when unknown and tolerating a concurrent create."""

        existing = await self.get_by_external_id(external_member_id=external_member_id)
        if existing is not None:
            return existing

        try:
            return await self.create(
                MemberCreateInput(
                    external_member_id=external_member_id,
                    display_name=display_name or PLACEHOLDER_DISPLAY_NAME,
                )
            )
        except DuplicateMemberError:
            logger.info("member_create_race_resolved external_member_id=%s", external_member_id)
            record = await self._store.get_by_external_id(external_member_id=external_member_id)
            if record is None:
                raise
            self._remember(record)
            return record

    async def update_display_name(self, *, member_id: UUID, display_name: str) -> MemberRecord:
        record = await self._store.update_display_name(
            member_id=member_id,
            display_name=display_name,
        )
        self._remember(record)
        return record

    async def delete(self, *, member_id: UUID) -> bool:
        record = await self._store.get_by_id(member_id=member_id)
        deleted = await self._store.delete(member_id=member_id)
        if record is not None:
            self._cache.delete(member_key(record.external_member_id))
        return deleted

    def _remember(self, record: MemberRecord) -> None:
        self._cache.set(member_key(record.external_member_id), record, ttl_ms=self._ttl_ms)
