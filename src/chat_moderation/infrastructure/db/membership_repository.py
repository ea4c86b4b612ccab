"""SQLAlchemy adapter for group membership persistence."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, cast
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.engine import CursorResult, RowMapping
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chat_moderation.application.ports.membership_repository_port import (
    PUNISHMENT_COUNTER_FIELDS,
    DuplicateMembershipError,
    MembershipCreateInput,
    MembershipNotFoundError,
    MembershipRecord,
    MembershipRepositoryPort,
    MembershipUpdateInput,
)
from chat_moderation.domain.punishment_type import PunishmentType
from chat_moderation.infrastructure.db.errors import (
    as_utc,
    is_constraint_violation,
    translate_store_errors,
)
from chat_moderation.infrastructure.db.metadata import group_memberships

logger = logging.getLogger(__name__)

_MEMBERSHIP_COLUMNS = (
    group_memberships.c.id,
    group_memberships.c.group_id,
    group_memberships.c.member_id,
    group_memberships.c.is_admin,
    group_memberships.c.message_count,
    group_memberships.c.timeout_count,
    group_memberships.c.mute_count,
    group_memberships.c.ban_count,
    group_memberships.c.permanent_ban_count,
    group_memberships.c.kick_count,
    group_memberships.c.warn_count,
    group_memberships.c.note,
    group_memberships.c.created_at,
    group_memberships.c.updated_at,
)


def _to_membership_record(row: RowMapping) -> MembershipRecord:
    return MembershipRecord(
        membership_id=cast(UUID, row["id"]),
        group_id=cast(UUID, row["group_id"]),
        member_id=cast(UUID, row["member_id"]),
        is_admin=bool(row["is_admin"]),
        message_count=int(row["message_count"]),
        timeout_count=int(row["timeout_count"]),
        mute_count=int(row["mute_count"]),
        ban_count=int(row["ban_count"]),
        permanent_ban_count=int(row["permanent_ban_count"]),
        kick_count=int(row["kick_count"]),
        warn_count=int(row["warn_count"]),
        note=cast(str, row["note"]),
        created_at=as_utc(cast(datetime, row["created_at"])),
        updated_at=as_utc(cast(datetime, row["updated_at"])),
    )


class SqlAlchemyMembershipRepository(MembershipRepositoryPort):
    """Membership repository backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, *, group_id: UUID, member_id: UUID) -> MembershipRecord | None:
        """Return the membership for a (group, member) pair when present."""

        statement = sa.select(*_MEMBERSHIP_COLUMNS).where(
            group_memberships.c.group_id == group_id,
            group_memberships.c.member_id == member_id,
        )
        return await self._fetch_one(statement, operation="membership_get")

    async def get_by_id(self, *, membership_id: UUID) -> MembershipRecord | None:
        statement = sa.select(*_MEMBERSHIP_COLUMNS).where(
            group_memberships.c.id == membership_id
        )
        return await self._fetch_one(statement, operation="membership_get_by_id")

    async def create(self, payload: MembershipCreateInput) -> MembershipRecord:
        """Insert a membership, raising DuplicateMembershipError when the pair exists."""

        now = datetime.now(tz=UTC)
        statement = (
            sa.insert(group_memberships)
            .values(
                id=uuid4(),
                group_id=payload.group_id,
                member_id=payload.member_id,
                is_admin=payload.is_admin,
                message_count=payload.message_count,
                created_at=now,
                updated_at=now,
            )
            .returning(*_MEMBERSHIP_COLUMNS)
        )

        with translate_store_errors("membership_create"):
            async with self._session_factory() as session:
                try:
                    result = await session.execute(statement)
                    await session.commit()
                except IntegrityError as error:
                    await session.rollback()
                    if is_constraint_violation(
                        error,
                        "uq_group_memberships_group_member",
                        "group_memberships.group_id, group_memberships.member_id",
                    ):
                        raise DuplicateMembershipError(
                            f"Membership already exists group_id={payload.group_id} "
                            f"member_id={payload.member_id}"
                        ) from error
                    raise

        record = _to_membership_record(result.mappings().one())
        logger.info(
            "membership_created membership_id=%s group_id=%s member_id=%s",
            record.membership_id,
            record.group_id,
            record.member_id,
        )
        return record

    async def update(
        self,
        *,
        membership_id: UUID,
        payload: MembershipUpdateInput,
    ) -> MembershipRecord:
        """Update flags, raising MembershipNotFoundError when absent."""

        values: dict[str, Any] = {"updated_at": datetime.now(tz=UTC)}
        if payload.is_admin is not None:
            values["is_admin"] = payload.is_admin
        if payload.note is not None:
            values["note"] = payload.note
        return await self._update_returning(
            membership_id=membership_id,
            values=values,
            operation="membership_update",
        )

    async def increment_message_count(
        self,
        *,
        membership_id: UUID,
        by: int = 1,
    ) -> MembershipRecord:
        """Atomically add ``by`` to the message counter."""

        return await self._update_returning(
            membership_id=membership_id,
            values={
                "message_count": group_memberships.c.message_count + by,
                "updated_at": datetime.now(tz=UTC),
            },
            operation="membership_increment_message_count",
        )

    async def increment_punishment_count(
        self,
        *,
        membership_id: UUID,
        punishment_type: PunishmentType,
    ) -> MembershipRecord:
        """Atomically add one to the counter of ``punishment_type``."""

        counter = PUNISHMENT_COUNTER_FIELDS[punishment_type]
        return await self._update_returning(
            membership_id=membership_id,
            values={
                counter: group_memberships.c[counter] + 1,
                "updated_at": datetime.now(tz=UTC),
            },
            operation="membership_increment_punishment_count",
        )

    async def delete(self, *, membership_id: UUID) -> bool:
        statement = sa.delete(group_memberships).where(group_memberships.c.id == membership_id)
        with translate_store_errors("membership_delete"):
            async with self._session_factory() as session:
                result = cast(CursorResult[Any], await session.execute(statement))
                await session.commit()
        return int(result.rowcount or 0) == 1

    async def _update_returning(
        self,
        *,
        membership_id: UUID,
        values: dict[str, Any],
        operation: str,
    ) -> MembershipRecord:
        statement = (
            sa.update(group_memberships)
            .where(group_memberships.c.id == membership_id)
            .values(**values)
            .returning(*_MEMBERSHIP_COLUMNS)
        )
        with translate_store_errors(operation):
            async with self._session_factory() as session:
                result = await session.execute(statement)
                row = result.mappings().first()
                await session.commit()

        if row is None:
            raise MembershipNotFoundError(f"Membership {membership_id} not found")
        return _to_membership_record(row)

    async def _fetch_one(
        self,
        statement: sa.Select[Any],
        *,
        operation: str,
    ) -> MembershipRecord | None:
        with translate_store_errors(operation):
            async with self._session_factory() as session:
                result = await session.execute(statement.limit(1))

        row = result.mappings().first()
        if row is None:
            return None
        return _to_membership_record(row)
