"""Read-through cache in front of the punishment store.

Only the active punishment of a member is cached, under ``punishment:<member id>``.
"""

from __future__ import annotations

import logging
from uuid import UUID

from chat_moderation.application.ports.punishment_repository_port import (
    DuplicateActivePunishmentError,
    PunishmentCreateInput,
    PunishmentRecord,
    PunishmentRepositoryPort,
)
from chat_moderation.infrastructure.cache.cache_config import CacheTtls, punishment_key
from chat_moderation.infrastructure.cache.expiring_cache import ExpiringCache

logger = logging.getLogger(__name__)


class CachedPunishmentRepository(PunishmentRepositoryPort):
    """Punishment repository keeping each member's active punishment cached."""

    def __init__(
        self,
        *,
        store: PunishmentRepositoryPort,
        cache: ExpiringCache[object],
        ttls: CacheTtls,
    ) -> None:
        self._store = store
        self._cache = cache
        self._ttl_ms = ttls.punishment_ms

    async def get_active_by_member(self, *, member_id: UUID) -> PunishmentRecord | None:
        cached = self._cache.get(punishment_key(member_id))
        if isinstance(cached, PunishmentRecord) and cached.is_active:
            return cached

        record = await self._store.get_active_by_member(member_id=member_id)
        if record is not None:
            self._remember(record)
        return record

    async def get_by_id(self, *, punishment_id: UUID) -> PunishmentRecord | None:
        return await self._store.get_by_id(punishment_id=punishment_id)

    async def list_by_member(self, *, member_id: UUID) -> list[PunishmentRecord]:
        return await self._store.list_by_member(member_id=member_id)

    async def create_superseding(self, payload: PunishmentCreateInput) -> PunishmentRecord:
        """Create a punishment, retrying once when a concurrent writer won the active slot."""

        try:
            record = await self._store.create_superseding(payload)
        except DuplicateActivePunishmentError:
            logger.warning(
                "punishment_supersede_race_retry member_id=%s type=%s",
                payload.member_id,
                payload.punishment_type,
            )
            self._cache.delete(punishment_key(payload.member_id))
            record = await self._store.create_superseding(payload)

        if record.is_active:
            self._remember(record)
        return record

    async def deactivate_active(self, *, member_id: UUID) -> int:
        changed = await self._store.deactivate_active(member_id=member_id)
        self._cache.delete(punishment_key(member_id))
        return changed

    async def delete(self, *, punishment_id: UUID) -> bool:
        record = await self._store.get_by_id(punishment_id=punishment_id)
        deleted = await self._store.delete(punishment_id=punishment_id)
        if record is not None:
            self._cache.delete(punishment_key(record.member_id))
        return deleted

    def _remember(self, record: PunishmentRecord) -> None:
        self._cache.set(punishment_key(record.member_id), record, ttl_ms=self._ttl_ms)
