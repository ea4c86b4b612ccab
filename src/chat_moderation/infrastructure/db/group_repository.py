"""SQLAlchemy adapter for group persistence."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, cast
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.engine import CursorResult, RowMapping
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chat_moderation.application.ports.group_repository_port import (
    DuplicateGroupError,
    GroupCreateInput,
    GroupNotFoundError,
    GroupRecord,
    GroupRepositoryPort,
    GroupUpdateInput,
)
from chat_moderation.infrastructure.db.errors import (
    as_utc,
    is_constraint_violation,
    translate_store_errors,
)
from chat_moderation.infrastructure.db.metadata import groups

logger = logging.getLogger(__name__)

_GROUP_COLUMNS = (
    groups.c.id,
    groups.c.external_group_id,
    groups.c.name,
    groups.c.description,
    groups.c.created_at,
    groups.c.updated_at,
)


def _to_group_record(row: RowMapping) -> GroupRecord:
    return GroupRecord(
        group_id=cast(UUID, row["id"]),
        external_group_id=cast(str, row["external_group_id"]),
        name=cast(str, row["name"]),
        description=cast(str, row["description"]),
        created_at=as_utc(cast(datetime, row["created_at"])),
        updated_at=as_utc(cast(datetime, row["updated_at"])),
    )


class SqlAlchemyGroupRepository(GroupRepositoryPort):
    """Group repository backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_by_external_id(self, *, external_group_id: str) -> GroupRecord | None:
        """Return group by its chat-network id when present."""

        statement = sa.select(*_GROUP_COLUMNS).where(
            groups.c.external_group_id == external_group_id
        )
        return await self._fetch_one(statement, operation="group_get_by_external_id")

    async def get_by_id(self, *, group_id: UUID) -> GroupRecord | None:
        """Return group by internal id when present."""

        statement = sa.select(*_GROUP_COLUMNS).where(groups.c.id == group_id)
        return await self._fetch_one(statement, operation="group_get_by_id")

    async def create(self, payload: GroupCreateInput) -> GroupRecord:
        """Insert a new group, raising DuplicateGroupError on external id collision."""

        external_group_id = payload.external_group_id.strip()
        name = payload.name.strip()
        if not external_group_id:
            raise ValueError("external_group_id must not be empty")
        if not name:
            raise ValueError("name must not be empty")

        now = datetime.now(tz=UTC)
        statement = (
            sa.insert(groups)
            .values(
                id=uuid4(),
                external_group_id=external_group_id,
                name=name,
                description=payload.description.strip(),
                created_at=now,
                updated_at=now,
            )
            .returning(*_GROUP_COLUMNS)
        )

        with translate_store_errors("group_create"):
            async with self._session_factory() as session:
                try:
                    result = await session.execute(statement)
                    await session.commit()
                except IntegrityError as error:
                    await session.rollback()
                    if is_constraint_violation(
                        error,
                        "uq_groups_external_group_id",
                        "groups.external_group_id",
                    ):
                        raise DuplicateGroupError(
                            f"Duplicate external_group_id {external_group_id}"
                        ) from error
                    raise

        record = _to_group_record(result.mappings().one())
        logger.info(
            "group_created group_id=%s external_group_id=%s",
            record.group_id,
            record.external_group_id,
        )
        return record

    async def update(self, *, group_id: UUID, payload: GroupUpdateInput) -> GroupRecord:
        """Update mutable metadata, raising GroupNotFoundError when absent."""

        values: dict[str, Any] = {"updated_at": datetime.now(tz=UTC)}
        if payload.name is not None:
            values["name"] = payload.name.strip()
        if payload.description is not None:
            values["description"] = payload.description.strip()

        statement = (
            sa.update(groups)
            .where(groups.c.id == group_id)
            .values(**values)
            .returning(*_GROUP_COLUMNS)
        )
        with translate_store_errors("group_update"):
            async with self._session_factory() as session:
                result = await session.execute(statement)
                row = result.mappings().first()
                await session.commit()

        if row is None:
            raise GroupNotFoundError(f"Group {group_id} not found")
        return _to_group_record(row)

    async def delete(self, *, group_id: UUID) -> bool:
        """Delete the group and return whether a row was removed."""

        statement = sa.delete(groups).where(groups.c.id == group_id)
        with translate_store_errors("group_delete"):
            async with self._session_factory() as session:
                result = cast(CursorResult[Any], await session.execute(statement))
                await session.commit()

        deleted = int(result.rowcount or 0) == 1
        logger.info("group_deleted=%s group_id=%s", deleted, group_id)
        return deleted

    async def _fetch_one(self, statement: sa.Select[Any], *, operation: str) -> GroupRecord | None:
        with translate_store_errors(operation):
            async with self._session_factory() as session:
                result = await session.execute(statement.limit(1))

        row = result.mappings().first()
        if row is None:
            return None
        return _to_group_record(row)
