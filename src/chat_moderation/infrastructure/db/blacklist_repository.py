"""SQLAlchemy adapter for the cross-group blacklist."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, cast
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.engine import CursorResult, RowMapping
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chat_moderation.application.ports.blacklist_repository_port import (
    BlacklistCreateInput,
    BlacklistEntryNotFoundError,
    BlacklistRecord,
    BlacklistRepositoryPort,
    DuplicateBlacklistEntryError,
)
from chat_moderation.infrastructure.db.errors import (
    as_utc,
    is_constraint_violation,
    translate_store_errors,
)
from chat_moderation.infrastructure.db.metadata import blacklist

logger = logging.getLogger(__name__)

_BLACKLIST_COLUMNS = (
    blacklist.c.id,
    blacklist.c.member_id,
    blacklist.c.reason,
    blacklist.c.banned_by,
    blacklist.c.banned_from_group_id,
    blacklist.c.notes,
    blacklist.c.created_at,
)


def _to_blacklist_record(row: RowMapping) -> BlacklistRecord:
    return BlacklistRecord(
        blacklist_id=cast(UUID, row["id"]),
        member_id=cast(UUID, row["member_id"]),
        reason=cast(str, row["reason"]),
        banned_by=cast(str | None, row["banned_by"]),
        banned_from_group_id=cast(str | None, row["banned_from_group_id"]),
        notes=cast(str | None, row["notes"]),
        created_at=as_utc(cast(datetime, row["created_at"])),
    )


class SqlAlchemyBlacklistRepository(BlacklistRepositoryPort):
    """Blacklist repository backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_by_member_id(self, *, member_id: UUID) -> BlacklistRecord | None:
        statement = sa.select(*_BLACKLIST_COLUMNS).where(blacklist.c.member_id == member_id)
        with translate_store_errors("blacklist_get_by_member_id"):
            async with self._session_factory() as session:
                result = await session.execute(statement)

        row = result.mappings().first()
        if row is None:
            return None
        return _to_blacklist_record(row)

    async def create(self, payload: BlacklistCreateInput) -> BlacklistRecord:
        if not payload.reason.strip():
            raise ValueError("reason must not be empty")

        statement = (
            sa.insert(blacklist)
            .values(
                id=uuid4(),
                member_id=payload.member_id,
                reason=payload.reason,
                banned_by=payload.banned_by,
                banned_from_group_id=payload.banned_from_group_id,
                notes=payload.notes,
                created_at=datetime.now(tz=UTC),
            )
            .returning(*_BLACKLIST_COLUMNS)
        )

        with translate_store_errors("blacklist_create"):
            async with self._session_factory() as session:
                try:
                    result = await session.execute(statement)
                    await session.commit()
                except IntegrityError as error:
                    await session.rollback()
                    if is_constraint_violation(
                        error,
                        "uq_blacklist_member_id",
                        "blacklist.member_id",
                    ):
                        raise DuplicateBlacklistEntryError(
                            f"Member {payload.member_id} is already blacklisted"
                        ) from error
                    raise

        record = _to_blacklist_record(result.mappings().one())
        logger.info(
            "blacklist_entry_created member_id=%s banned_from_group_id=%s",
            record.member_id,
            record.banned_from_group_id,
        )
        return record

    async def update_notes(self, *, member_id: UUID, notes: str | None) -> BlacklistRecord:
        statement = (
            sa.update(blacklist)
            .where(blacklist.c.member_id == member_id)
            .values(notes=notes)
            .returning(*_BLACKLIST_COLUMNS)
        )
        with translate_store_errors("blacklist_update_notes"):
            async with self._session_factory() as session:
                result = await session.execute(statement)
                row = result.mappings().first()
                await session.commit()

        if row is None:
            raise BlacklistEntryNotFoundError(f"Member {member_id} is not blacklisted")
        return _to_blacklist_record(row)

    async def delete_by_member_id(self, *, member_id: UUID) -> bool:
        statement = sa.delete(blacklist).where(blacklist.c.member_id == member_id)
        with translate_store_errors("blacklist_delete"):
            async with self._session_factory() as session:
                result = cast(CursorResult[Any], await session.execute(statement))
                await session.commit()

        removed = int(result.rowcount or 0) == 1
        if removed:
            logger.info("blacklist_entry_deleted member_id=%s", member_id)
        return removed

    async def list_all(self) -> list[BlacklistRecord]:
        statement = sa.select(*_BLACKLIST_COLUMNS).order_by(blacklist.c.created_at.asc())
        with translate_store_errors("blacklist_list_all"):
            async with self._session_factory() as session:
                result = await session.execute(statement)

        return [_to_blacklist_record(row) for row in result.mappings().all()]
