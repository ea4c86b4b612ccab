"""SQLAlchemy adapter for punishment persistence."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, cast
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.engine import CursorResult, RowMapping
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chat_moderation.application.ports.punishment_repository_port import (
    DuplicateActivePunishmentError,
    PunishmentCreateInput,
    PunishmentRecord,
    PunishmentRepositoryPort,
)
from chat_moderation.domain.punishment_type import PunishmentType
from chat_moderation.infrastructure.db.errors import (
    as_utc,
    is_constraint_violation,
    translate_store_errors,
)
from chat_moderation.infrastructure.db.metadata import punishments

logger = logging.getLogger(__name__)

_PUNISHMENT_COLUMNS = (
    punishments.c.id,
    punishments.c.member_id,
    punishments.c.membership_id,
    punishments.c.group_id,
    punishments.c.punishment_type,
    punishments.c.duration_ms,
    punishments.c.reason,
    punishments.c.applied_at,
    punishments.c.expires_at,
    punishments.c.is_active,
)


def _to_punishment_record(row: RowMapping) -> PunishmentRecord:
    expires_at = cast(datetime | None, row["expires_at"])
    return PunishmentRecord(
        punishment_id=cast(UUID, row["id"]),
        member_id=cast(UUID, row["member_id"]),
        membership_id=cast(UUID, row["membership_id"]),
        group_id=cast(UUID, row["group_id"]),
        punishment_type=PunishmentType(cast(str, row["punishment_type"])),
        duration_ms=int(row["duration_ms"]),
        reason=cast(str, row["reason"]),
        applied_at=as_utc(cast(datetime, row["applied_at"])),
        expires_at=as_utc(expires_at) if expires_at is not None else None,
        is_active=bool(row["is_active"]),
    )


class SqlAlchemyPunishmentRepository(PunishmentRepositoryPort):
    """Punishment repository backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_active_by_member(self, *, member_id: UUID) -> PunishmentRecord | None:
        """Return the single active punishment for a member when present."""

        statement = (
            sa.select(*_PUNISHMENT_COLUMNS)
            .where(punishments.c.member_id == member_id, punishments.c.is_active.is_(True))
            .order_by(punishments.c.applied_at.desc())
            .limit(1)
        )
        with translate_store_errors("punishment_get_active_by_member"):
            async with self._session_factory() as session:
                result = await session.execute(statement)

        row = result.mappings().first()
        if row is None:
            return None
        return _to_punishment_record(row)

    async def get_by_id(self, *, punishment_id: UUID) -> PunishmentRecord | None:
        statement = sa.select(*_PUNISHMENT_COLUMNS).where(punishments.c.id == punishment_id)
        with translate_store_errors("punishment_get_by_id"):
            async with self._session_factory() as session:
                result = await session.execute(statement)

        row = result.mappings().first()
        if row is None:
            return None
        return _to_punishment_record(row)

    async def list_by_member(self, *, member_id: UUID) -> list[PunishmentRecord]:
        statement = (
            sa.select(*_PUNISHMENT_COLUMNS)
            .where(punishments.c.member_id == member_id)
            .order_by(punishments.c.applied_at.asc())
        )
        with translate_store_errors("punishment_list_by_member"):
            async with self._session_factory() as session:
                result = await session.execute(statement)

        return [_to_punishment_record(row) for row in result.mappings().all()]

    async def create_superseding(self, payload: PunishmentCreateInput) -> PunishmentRecord:
        """Deactivate any active punishment of the member and insert the new one atomically.

        History-only rows (``is_active=False``) never supersede the active punishment.
        """

        deactivate_statement = (
            sa.update(punishments)
            .where(
                punishments.c.member_id == payload.member_id,
                punishments.c.is_active.is_(True),
            )
            .values(is_active=False)
        )
        insert_statement = (
            sa.insert(punishments)
            .values(
                id=uuid4(),
                member_id=payload.member_id,
                membership_id=payload.membership_id,
                group_id=payload.group_id,
                punishment_type=payload.punishment_type.value,
                duration_ms=payload.duration_ms,
                reason=payload.reason,
                applied_at=payload.applied_at,
                expires_at=payload.expires_at,
                is_active=payload.is_active,
            )
            .returning(*_PUNISHMENT_COLUMNS)
        )

        superseded = 0
        with translate_store_errors("punishment_create_superseding"):
            async with self._session_factory() as session:
                try:
                    if payload.is_active:
                        deactivated = cast(
                            CursorResult[Any],
                            await session.execute(deactivate_statement),
                        )
                        superseded = int(deactivated.rowcount or 0)
                    result = await session.execute(insert_statement)
                    row = result.mappings().one()
                    await session.commit()
                except IntegrityError as error:
                    await session.rollback()
                    if is_constraint_violation(
                        error,
                        "uq_punishments_active_member",
                        "punishments.member_id",
                    ):
                        raise DuplicateActivePunishmentError(
                            f"Concurrent active punishment for member {payload.member_id}"
                        ) from error
                    raise

        record = _to_punishment_record(row)
        logger.info(
            (
                "punishment_inserted punishment_id=%s member_id=%s type=%s "
                "is_active=%s expires_at=%s superseded=%s"
            ),
            record.punishment_id,
            record.member_id,
            record.punishment_type,
            record.is_active,
            record.expires_at.isoformat() if record.expires_at else None,
            superseded,
        )
        return record

    async def deactivate_active(self, *, member_id: UUID) -> int:
        """Deactivate active punishments of a member and return how many changed."""

        statement = (
            sa.update(punishments)
            .where(punishments.c.member_id == member_id, punishments.c.is_active.is_(True))
            .values(is_active=False)
        )
        with translate_store_errors("punishment_deactivate_active"):
            async with self._session_factory() as session:
                result = cast(CursorResult[Any], await session.execute(statement))
                await session.commit()

        changed = int(result.rowcount or 0)
        logger.info("punishment_deactivated member_id=%s count=%s", member_id, changed)
        return changed

    async def delete(self, *, punishment_id: UUID) -> bool:
        statement = sa.delete(punishments).where(punishments.c.id == punishment_id)
        with translate_store_errors("punishment_delete"):
            async with self._session_factory() as session:
                result = cast(CursorResult[Any], await session.execute(statement))
                await session.commit()
        return int(result.rowcount or 0) == 1
