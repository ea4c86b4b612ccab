"""Read-through cache in front of the group store."""

from __future__ import annotations

import logging
from uuid import UUID

from chat_moderation.application.ports.group_repository_port import (
    DuplicateGroupError,
    GroupCreateInput,
    GroupRecord,
    GroupRepositoryPort,
    GroupUpdateInput,
)
from chat_moderation.infrastructure.cache.cache_config import CacheTtls, group_key
from chat_moderation.infrastructure.cache.expiring_cache import ExpiringCache

logger = logging.getLogger(__name__)


class CachedGroupRepository(GroupRepositoryPort):
    """Group repository that keeps records cached by external group id."""

    def __init__(
        self,
        *,
        store: GroupRepositoryPort,
        cache: ExpiringCache[object],
        ttls: CacheTtls,
    ) -> None:
        self._store = store
        self._cache = cache
        self._ttl_ms = ttls.group_ms

    async def get_by_external_id(self, *, external_group_id: str) -> GroupRecord | None:
        cached = self._cache.get(group_key(external_group_id))
        if isinstance(cached, GroupRecord):
            return cached

        record = await self._store.get_by_external_id(external_group_id=external_group_id)
        if record is not None:
            self._remember(record)
        return record

    async def get_by_id(self, *, group_id: UUID) -> GroupRecord | None:
        record = await self._store.get_by_id(group_id=group_id)
        if record is not None:
            self._remember(record)
        return record

    async def create(self, payload: GroupCreateInput) -> GroupRecord:
        record = await self._store.create(payload)
        self._remember(record)
        return record

    async def get_or_create(
        self,
        *,
        external_group_id: str,
        name: str,
        description: str = "",
    ) -> GroupRecord:
        """Return the group, creating it when unknown and tolerating a concurrent create."""

        existing = await self.get_by_external_id(external_group_id=external_group_id)
        if existing is not None:
            return existing

        try:
            return await self.create(
                GroupCreateInput(
                    external_group_id=external_group_id,
                    name=name,
                    description=description,
                )
            )
        except DuplicateGroupError:
            logger.info("group_create_race_resolved external_group_id=%s", external_group_id)
            record = await self._store.get_by_external_id(external_group_id=external_group_id)
            if record is None:
                raise
            self._remember(record)
            return record

    async def update(self, *, group_id: UUID, payload: GroupUpdateInput) -> GroupRecord:
        record = await self._store.update(group_id=group_id, payload=payload)
        self._remember(record)
        return record

    async def delete(self, *, group_id: UUID) -> bool:
        record = await self._store.get_by_id(group_id=group_id)
        deleted = await self._store.delete(group_id=group_id)
        if record is not None:
            self._cache.delete(group_key(record.external_group_id))
        return deleted

    def _remember(self, record: GroupRecord) -> None:
        self._cache.set(group_key(record.external_group_id), record, ttl_ms=self._ttl_ms)
