"""Repository adapters over the single JSON document store.

Reads go straight to the committed document. Mutations are submitted to the
write serializer as synchronous operations, so uniqueness checks and the write
that depends on them run as one step with no interleaving writer.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from chat_moderation.application.ports.blacklist_repository_port import (
    BlacklistCreateInput,
    BlacklistEntryNotFoundError,
    BlacklistRecord,
    DuplicateBlacklistEntryError,
)
from chat_moderation.application.ports.group_repository_port import (
    DuplicateGroupError,
    GroupCreateInput,
    GroupNotFoundError,
    GroupRecord,
    GroupUpdateInput,
)
from chat_moderation.application.ports.member_repository_port import (
    DuplicateMemberError,
    MemberCreateInput,
    MemberNotFoundError,
    MemberRecord,
)
from chat_moderation.application.ports.membership_repository_port import (
    PUNISHMENT_COUNTER_FIELDS,
    DuplicateMembershipError,
    MembershipCreateInput,
    MembershipNotFoundError,
    MembershipRecord,
    MembershipUpdateInput,
)
from chat_moderation.application.ports.punishment_repository_port import (
    PunishmentCreateInput,
    PunishmentRecord,
)
from chat_moderation.domain.punishment_type import PunishmentType
from chat_moderation.infrastructure.document_store.write_serializer import WriteSerializer

logger = logging.getLogger(__name__)

Document = dict[str, Any]


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _dump_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def _load_datetime(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def _require_datetime(value: str) -> datetime:
    parsed = _load_datetime(value)
    assert parsed is not None
    return parsed


def _to_group_record(row: dict[str, Any]) -> GroupRecord:
    return GroupRecord(
        group_id=UUID(row["id"]),
        external_group_id=row["external_group_id"],
        name=row["name"],
        description=row["description"],
        created_at=_require_datetime(row["created_at"]),
        updated_at=_require_datetime(row["updated_at"]),
    )


def _to_member_record(row: dict[str, Any]) -> MemberRecord:
    return MemberRecord(
        member_id=UUID(row["id"]),
        external_member_id=row["external_member_id"],
        display_name=row["display_name"],
        created_at=_require_datetime(row["created_at"]),
        updated_at=_require_datetime(row["updated_at"]),
    )


def _to_membership_record(row: dict[str, Any]) -> MembershipRecord:
    counters = {field: int(row.get(field, 0)) for field in PUNISHMENT_COUNTER_FIELDS.values()}
    return MembershipRecord(
        membership_id=UUID(row["id"]),
        group_id=UUID(row["group_id"]),
        member_id=UUID(row["member_id"]),
        is_admin=bool(row["is_admin"]),
        message_count=int(row["message_count"]),
        note=row.get("note", ""),
        created_at=_require_datetime(row["created_at"]),
        updated_at=_require_datetime(row["updated_at"]),
        **counters,
    )


def _to_punishment_record(row: dict[str, Any]) -> PunishmentRecord:
    return PunishmentRecord(
        punishment_id=UUID(row["id"]),
        member_id=UUID(row["member_id"]),
        membership_id=UUID(row["membership_id"]),
        group_id=UUID(row["group_id"]),
        punishment_type=PunishmentType(row["punishment_type"]),
        duration_ms=int(row["duration_ms"]),
        reason=row["reason"],
        applied_at=_require_datetime(row["applied_at"]),
        expires_at=_load_datetime(row.get("expires_at")),
        is_active=bool(row["is_active"]),
    )


def _to_blacklist_record(row: dict[str, Any]) -> BlacklistRecord:
    return BlacklistRecord(
        blacklist_id=UUID(row["id"]),
        member_id=UUID(row["member_id"]),
        reason=row["reason"],
        banned_by=row.get("banned_by"),
        banned_from_group_id=row.get("banned_from_group_id"),
        notes=row.get("notes"),
        created_at=_require_datetime(row["created_at"]),
    )


def _find_group_by_id(document: Document, group_id: UUID) -> dict[str, Any] | None:
    key = str(group_id)
    for group in document["groups"].values():
        if group["id"] == key:
            return group
    return None


def _iter_memberships(document: Document) -> Iterator[dict[str, Any]]:
    for group in document["groups"].values():
        yield from group.get("members", {}).values()


def _find_membership_by_id(document: Document, membership_id: UUID) -> dict[str, Any] | None:
    key = str(membership_id)
    for membership in _iter_memberships(document):
        if membership["id"] == key:
            return membership
    return None


class DocumentGroupRepository:
    """Groups keyed by external group id, each embedding its memberships."""

    def __init__(self, serializer: WriteSerializer) -> None:
        self._serializer = serializer

    async def get_by_external_id(self, *, external_group_id: str) -> GroupRecord | None:
        def reader(document: Document) -> GroupRecord | None:
            row = document["groups"].get(external_group_id)
            return _to_group_record(row) if row is not None else None

        return self._serializer.read(reader)

    async def get_by_id(self, *, group_id: UUID) -> GroupRecord | None:
        def reader(document: Document) -> GroupRecord | None:
            row = _find_group_by_id(document, group_id)
            return _to_group_record(row) if row is not None else None

        return self._serializer.read(reader)

    async def create(self, payload: GroupCreateInput) -> GroupRecord:
        external_group_id = payload.external_group_id.strip()
        name = payload.name.strip()
        if not external_group_id:
            raise ValueError("external_group_id must not be empty")
        if not name:
            raise ValueError("name must not be empty")

        def operation(document: Document) -> GroupRecord:
            if external_group_id in document["groups"]:
                raise DuplicateGroupError(f"Duplicate external_group_id {external_group_id}")
            now = _dump_datetime(_utc_now())
            row = {
                "id": str(uuid4()),
                "external_group_id": external_group_id,
                "name": name,
                "description": payload.description.strip(),
                "created_at": now,
                "updated_at": now,
                "members": {},
            }
            document["groups"][external_group_id] = row
            return _to_group_record(row)

        record = await self._serializer.submit(operation, name="group_create")
        logger.info(
            "group_created group_id=%s external_group_id=%s",
            record.group_id,
            record.external_group_id,
        )
        return record

    async def update(self, *, group_id: UUID, payload: GroupUpdateInput) -> GroupRecord:
        def operation(document: Document) -> GroupRecord:
            row = _find_group_by_id(document, group_id)
            if row is None:
                raise GroupNotFoundError(f"Group {group_id} not found")
            if payload.name is not None:
                row["name"] = payload.name.strip()
            if payload.description is not None:
                row["description"] = payload.description.strip()
            row["updated_at"] = _dump_datetime(_utc_now())
            return _to_group_record(row)

        return await self._serializer.submit(operation, name="group_update")

    async def delete(self, *, group_id: UUID) -> bool:
        def operation(document: Document) -> bool:
            row = _find_group_by_id(document, group_id)
            if row is None:
                return False
            del document["groups"][row["external_group_id"]]
            return True

        deleted = await self._serializer.submit(operation, name="group_delete")
        logger.info("group_deleted=%s group_id=%s", deleted, group_id)
        return deleted


class DocumentMemberRepository:
    """Members keyed by internal id."""

    def __init__(self, serializer: WriteSerializer) -> None:
        self._serializer = serializer

    async def get_by_external_id(self, *, external_member_id: str) -> MemberRecord | None:
        def reader(document: Document) -> MemberRecord | None:
            for row in document["members"].values():
                if row["external_member_id"] == external_member_id:
                    return _to_member_record(row)
            return None

        return self._serializer.read(reader)

    async def get_by_id(self, *, member_id: UUID) -> MemberRecord | None:
        def reader(document: Document) -> MemberRecord | None:
            row = document["members"].get(str(member_id))
            return _to_member_record(row) if row is not None else None

        return self._serializer.read(reader)

    async def create(self, payload: MemberCreateInput) -> MemberRecord:
        def operation(document: Document) -> MemberRecord:
            for existing in document["members"].values():
                if existing["external_member_id"] == payload.external_member_id:
                    raise DuplicateMemberError(
                        f"Duplicate external_member_id {payload.external_member_id}"
                    )
            now = _dump_datetime(_utc_now())
            row = {
                "id": str(uuid4()),
                "external_member_id": payload.external_member_id,
                "display_name": payload.display_name,
                "created_at": now,
                "updated_at": now,
            }
            document["members"][row["id"]] = row
            return _to_member_record(row)

        record = await self._serializer.submit(operation, name="member_create")
        logger.info(
            "member_created member_id=%s external_member_id=%s",
            record.member_id,
            record.external_member_id,
        )
        return record

    async def update_display_name(self, *, member_id: UUID, display_name: str) -> MemberRecord:
        def operation(document: Document) -> MemberRecord:
            row = document["members"].get(str(member_id))
            if row is None:
                raise MemberNotFoundError(f"Member {member_id} not found")
            row["display_name"] = display_name
            row["updated_at"] = _dump_datetime(_utc_now())
            return _to_member_record(row)

        return await self._serializer.submit(operation, name="member_update_display_name")

    async def delete(self, *, member_id: UUID) -> bool:
        def operation(document: Document) -> bool:
            return document["members"].pop(str(member_id), None) is not None

        return await self._serializer.submit(operation, name="member_delete")


class DocumentMembershipRepository:
    """Memberships nested under their group, keyed by member id."""

    def __init__(self, serializer: WriteSerializer) -> None:
        self._serializer = serializer

    async def get(self, *, group_id: UUID, member_id: UUID) -> MembershipRecord | None:
        def reader(document: Document) -> MembershipRecord | None:
            group = _find_group_by_id(document, group_id)
            if group is None:
                return None
            row = group.get("members", {}).get(str(member_id))
            return _to_membership_record(row) if row is not None else None

        return self._serializer.read(reader)

    async def get_by_id(self, *, membership_id: UUID) -> MembershipRecord | None:
        def reader(document: Document) -> MembershipRecord | None:
            row = _find_membership_by_id(document, membership_id)
            return _to_membership_record(row) if row is not None else None

        return self._serializer.read(reader)

    async def create(self, payload: MembershipCreateInput) -> MembershipRecord:
        def operation(document: Document) -> MembershipRecord:
            group = _find_group_by_id(document, payload.group_id)
            if group is None:
                raise GroupNotFoundError(f"Group {payload.group_id} not found")
            memberships = group.setdefault("members", {})
            key = str(payload.member_id)
            if key in memberships:
                raise DuplicateMembershipError(
                    f"Membership already exists group_id={payload.group_id} "
                    f"member_id={payload.member_id}"
                )
            now = _dump_datetime(_utc_now())
            row: dict[str, Any] = {
                "id": str(uuid4()),
                "group_id": str(payload.group_id),
                "member_id": key,
                "is_admin": payload.is_admin,
                "message_count": payload.message_count,
                "note": "",
                "created_at": now,
                "updated_at": now,
            }
            row.update({field: 0 for field in PUNISHMENT_COUNTER_FIELDS.values()})
            memberships[key] = row
            return _to_membership_record(row)

        record = await self._serializer.submit(operation, name="membership_create")
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
        def change(row: dict[str, Any]) -> None:
            if payload.is_admin is not None:
                row["is_admin"] = payload.is_admin
            if payload.note is not None:
                row["note"] = payload.note

        return await self._mutate(membership_id, change, name="membership_update")

    async def increment_message_count(
        self,
        *,
        membership_id: UUID,
        by: int = 1,
    ) -> MembershipRecord:
        def change(row: dict[str, Any]) -> None:
            row["message_count"] = int(row["message_count"]) + by

        return await self._mutate(
            membership_id,
            change,
            name="membership_increment_message_count",
        )

    async def increment_punishment_count(
        self,
        *,
        membership_id: UUID,
        punishment_type: PunishmentType,
    ) -> MembershipRecord:
        counter = PUNISHMENT_COUNTER_FIELDS[punishment_type]

        def change(row: dict[str, Any]) -> None:
            row[counter] = int(row.get(counter, 0)) + 1

        return await self._mutate(
            membership_id,
            change,
            name="membership_increment_punishment_count",
        )

    async def delete(self, *, membership_id: UUID) -> bool:
        def operation(document: Document) -> bool:
            row = _find_membership_by_id(document, membership_id)
            if row is None:
                return False
            group = _find_group_by_id(document, UUID(row["group_id"]))
            assert group is not None
            del group["members"][row["member_id"]]
            return True

        return await self._serializer.submit(operation, name="membership_delete")

    async def _mutate(
        self,
        membership_id: UUID,
        change: Callable[[dict[str, Any]], None],
        *,
        name: str,
    ) -> MembershipRecord:
        def operation(document: Document) -> MembershipRecord:
            row = _find_membership_by_id(document, membership_id)
            if row is None:
                raise MembershipNotFoundError(f"Membership {membership_id} not found")
            change(row)
            row["updated_at"] = _dump_datetime(_utc_now())
            return _to_membership_record(row)

        return await self._serializer.submit(operation, name=name)


class DocumentPunishmentRepository:
    """Punishments keyed by internal id."""

    def __init__(self, serializer: WriteSerializer) -> None:
        self._serializer = serializer

    async def get_active_by_member(self, *, member_id: UUID) -> PunishmentRecord | None:
        def reader(document: Document) -> PunishmentRecord | None:
            key = str(member_id)
            active = [
                row
                for row in document["punishments"].values()
                if row["member_id"] == key and row["is_active"]
            ]
            if not active:
                return None
            latest = max(active, key=lambda row: row["applied_at"])
            return _to_punishment_record(latest)

        return self._serializer.read(reader)

    async def get_by_id(self, *, punishment_id: UUID) -> PunishmentRecord | None:
        def reader(document: Document) -> PunishmentRecord | None:
            row = document["punishments"].get(str(punishment_id))
            return _to_punishment_record(row) if row is not None else None

        return self._serializer.read(reader)

    async def list_by_member(self, *, member_id: UUID) -> list[PunishmentRecord]:
        def reader(document: Document) -> list[PunishmentRecord]:
            key = str(member_id)
            rows = [row for row in document["punishments"].values() if row["member_id"] == key]
            rows.sort(key=lambda row: row["applied_at"])
            return [_to_punishment_record(row) for row in rows]

        return self._serializer.read(reader)

    async def create_superseding(self, payload: PunishmentCreateInput) -> PunishmentRecord:
        def operation(document: Document) -> tuple[PunishmentRecord, int]:
            key = str(payload.member_id)
            superseded = 0
            if payload.is_active:
                for row in document["punishments"].values():
                    if row["member_id"] == key and row["is_active"]:
                        row["is_active"] = False
                        superseded += 1
            row = {
                "id": str(uuid4()),
                "member_id": key,
                "membership_id": str(payload.membership_id),
                "group_id": str(payload.group_id),
                "punishment_type": payload.punishment_type.value,
                "duration_ms": payload.duration_ms,
                "reason": payload.reason,
                "applied_at": _dump_datetime(payload.applied_at),
                "expires_at": _dump_datetime(payload.expires_at),
                "is_active": payload.is_active,
            }
            document["punishments"][row["id"]] = row
            return _to_punishment_record(row), superseded

        record, superseded = await self._serializer.submit(
            operation,
            name="punishment_create_superseding",
        )
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
        def operation(document: Document) -> int:
            key = str(member_id)
            changed = 0
            for row in document["punishments"].values():
                if row["member_id"] == key and row["is_active"]:
                    row["is_active"] = False
                    changed += 1
            return changed

        changed = await self._serializer.submit(operation, name="punishment_deactivate_active")
        logger.info("punishment_deactivated member_id=%s count=%s", member_id, changed)
        return changed

    async def delete(self, *, punishment_id: UUID) -> bool:
        def operation(document: Document) -> bool:
            return document["punishments"].pop(str(punishment_id), None) is not None

        return await self._serializer.submit(operation, name="punishment_delete")


class DocumentBlacklistRepository:
    """Blacklist entries keyed by member id."""

    def __init__(self, serializer: WriteSerializer) -> None:
        self._serializer = serializer

    async def get_by_member_id(self, *, member_id: UUID) -> BlacklistRecord | None:
        def reader(document: Document) -> BlacklistRecord | None:
            row = document["blacklist"].get(str(member_id))
            return _to_blacklist_record(row) if row is not None else None

        return self._serializer.read(reader)

    async def create(self, payload: BlacklistCreateInput) -> BlacklistRecord:
        if not payload.reason.strip():
            raise ValueError("reason must not be empty")

        def operation(document: Document) -> BlacklistRecord:
            key = str(payload.member_id)
            if key in document["blacklist"]:
                raise DuplicateBlacklistEntryError(
                    f"Member {payload.member_id} is already blacklisted"
                )
            row = {
                "id": str(uuid4()),
                "member_id": key,
                "reason": payload.reason,
                "banned_by": payload.banned_by,
                "banned_from_group_id": payload.banned_from_group_id,
                "notes": payload.notes,
                "created_at": _dump_datetime(_utc_now()),
            }
            document["blacklist"][key] = row
            return _to_blacklist_record(row)

        record = await self._serializer.submit(operation, name="blacklist_create")
        logger.info(
            "blacklist_entry_created member_id=%s banned_from_group_id=%s",
            record.member_id,
            record.banned_from_group_id,
        )
        return record

    async def update_notes(self, *, member_id: UUID, notes: str | None) -> BlacklistRecord:
        def operation(document: Document) -> BlacklistRecord:
            row = document["blacklist"].get(str(member_id))
            if row is None:
                raise BlacklistEntryNotFoundError(f"Member {member_id} is not blacklisted")
            row["notes"] = notes
            return _to_blacklist_record(row)

        return await self._serializer.submit(operation, name="blacklist_update_notes")

    async def delete_by_member_id(self, *, member_id: UUID) -> bool:
        def operation(document: Document) -> bool:
            return document["blacklist"].pop(str(member_id), None) is not None

        removed = await self._serializer.submit(operation, name="blacklist_delete")
        if removed:
            logger.info("blacklist_entry_deleted member_id=%s", member_id)
        return removed

    async def list_all(self) -> list[BlacklistRecord]:
        def reader(document: Document) -> list[BlacklistRecord]:
            rows = sorted(document["blacklist"].values(), key=lambda row: row["created_at"])
            return [_to_blacklist_record(row) for row in rows]

        return self._serializer.read(reader)
