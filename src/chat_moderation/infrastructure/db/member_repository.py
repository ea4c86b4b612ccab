"""SQLAlchemy adapter for member persistence."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, cast
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.engine import CursorResult, RowMapping
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chat_moderation.application.ports.member_repository_port import (
    DuplicateMemberError,
    MemberCreateInput,
    MemberNotFoundError,
    MemberRecord,
    MemberRepositoryPort,
)
from chat_moderation.infrastructure.db.errors import (
    as_utc,
    is_constraint_violation,
    translate_store_errors,
)
from chat_moderation.infrastructure.db.metadata import members

logger = logging.getLogger(__name__)

_MEMBER_COLUMNS = (
    members.c.id,
    members.c.external_member_id,
    members.c.display_name,
    members.c.created_at,
    members.c.updated_at,
)


def _to_member_record(row: RowMapping) -> MemberRecord:
    return MemberRecord(
        member_id=cast(UUID, row["id"]),
        external_member_id=cast(str, row["external_member_id"]),
        display_name=cast(str, row["display_name"]),
        created_at=as_utc(cast(datetime, row["created_at"])),
        updated_at=as_utc(cast(datetime, row["updated_at"])),
    )


class SqlAlchemyMemberRepository(MemberRepositoryPort):
    """Member repository backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_by_external_id(self, *, external_member_id: str) -> MemberRecord | None:
        statement = sa.select(*_MEMBER_COLUMNS).where(
            members.c.external_member_id == external_member_id
        )
        return await self._fetch_one(statement, operation="member_get_by_external_id")

    async def get_by_id(self, *, member_id: UUID) -> MemberRecord | None:
        statement = sa.select(*_MEMBER_COLUMNS).where(members.c.id == member_id)
        return await self._fetch_one(statement, operation="member_get_by_id")

    async def create(self, payload: MemberCreateInput) -> MemberRecord:
        """Insert a new member, raising DuplicateMemberError on external id collision."""

        now = datetime.now(tz=UTC)
        statement = (
            sa.insert(members)
            .values(
                id=uuid4(),
                external_member_id=payload.external_member_id,
                display_name=payload.display_name,
                created_at=now,
                updated_at=now,
            )
            .returning(*_MEMBER_COLUMNS)
        )

        with translate_store_errors("member_create"):
            async with self._session_factory() as session:
                try:
                    result = await session.execute(statement)
                    await session.commit()
                except IntegrityError as error:
                    await session.rollback()
                    if is_constraint_violation(
                        error,
                        "uq_members_external_member_id",
                        "members.external_member_id",
                    ):
                        raise DuplicateMemberError(
                            f"Duplicate external_member_id {payload.external_member_id}"
                        ) from error
                    raise

        record = _to_member_record(result.mappings().one())
        logger.info(
            "member_created member_id=%s external_member_id=%s",
            record.member_id,
            record.external_member_id,
        )
        return record

    async def update_display_name(self, *, member_id: UUID, display_name: str) -> MemberRecord:
        """Replace the display name, raising MemberNotFoundError when absent."""

        statement = (
            sa.update(members)
            .where(members.c.id == member_id)
            .values(display_name=display_name, updated_at=datetime.now(tz=UTC))
            .returning(*_MEMBER_COLUMNS)
        )
        with translate_store_errors("member_update_display_name"):
            async with self._session_factory() as session:
                result = await session.execute(statement)
                row = result.mappings().first()
                await session.commit()

        if row is None:
            raise MemberNotFoundError(f"Member {member_id} not found")
        return _to_member_record(row)

    async def delete(self, *, member_id: UUID) -> bool:
        statement = sa.delete(members).where(members.c.id == member_id)
        with translate_store_errors("member_delete"):
            async with self._session_factory() as session:
                result = cast(CursorResult[Any], await session.execute(statement))
                await session.commit()
        return int(result.rowcount or 0) == 1

    async def _fetch_one(
        self,
        statement: sa.Select[Any],
        *,
        operation: str,
    ) -> MemberRecord | None:
        with translate_store_errors(operation):
            async with self._session_factory() as session:
                result = await session.execute(statement.limit(1))

        row = result.mappings().first()
        if row is None:
            return None
        return _to_member_record(row)
