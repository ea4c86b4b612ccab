"""Read-through cache in front of the blacklist store."""

from __future__ import annotations

from uuid import UUID

from chat_moderation.application.ports.blacklist_repository_port import (
    BlacklistCreateInput,
    BlacklistRecord,
    BlacklistRepositoryPort,
)
from chat_moderation.infrastructure.cache.cache_config import CacheTtls, blacklist_key
from chat_moderation.infrastructure.cache.expiring_cache import ExpiringCache


class CachedBlacklistRepository(BlacklistRepositoryPort):
    """Blacklist repository keyed in the cache by member id."""

    def __init__(
        self,
        *,
        store: BlacklistRepositoryPort,
        cache: ExpiringCache[object],
        ttls: CacheTtls,
    ) -> None:
        self._store = store
        self._cache = cache
        self._ttl_ms = ttls.blacklist_ms

    async def get_by_member_id(self, *, member_id: UUID) -> BlacklistRecord | None:
        cached = self._cache.get(blacklist_key(member_id))
        if isinstance(cached, BlacklistRecord):
            return cached

        record = await self._store.get_by_member_id(member_id=member_id)
        if record is not None:
            self._remember(record)
        return record

    async def is_blacklisted(self, *, member_id: UUID) -> bool:
        return await self.get_by_member_id(member_id=member_id) is not None

    async def create(self, payload: BlacklistCreateInput) -> BlacklistRecord:
        record = await self._store.create(payload)
        self._remember(record)
        return record

    async def update_notes(self, *, member_id: UUID, notes: str | None) -> BlacklistRecord:
        record = await self._store.update_notes(member_id=member_id, notes=notes)
        self._remember(record)
        return record

    async def delete_by_member_id(self, *, member_id: UUID) -> bool:
        deleted = await self._store.delete_by_member_id(member_id=member_id)
        self._cache.delete(blacklist_key(member_id))
        return deleted

    async def list_all(self) -> list[BlacklistRecord]:
        return await self._store.list_all()

    def _remember(self, record: BlacklistRecord) -> None:
        self._cache.set(blacklist_key(record.member_id), record, ttl_ms=self._ttl_ms)
