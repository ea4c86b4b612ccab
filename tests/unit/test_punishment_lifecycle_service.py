from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from chat_moderation.application.events.domain_events import (
    DomainEvent,
    DomainEventType,
    EnforcementAction,
    LiftReason,
    MemberMessagePayload,
)
from chat_moderation.application.events.event_bus import EventBus
from chat_moderation.application.ports.blacklist_repository_port import BlacklistCreateInput
from chat_moderation.application.services.punishment_lifecycle_service import (
    ApplyPunishmentInput,
    CheckOutcome,
    GroupNotRegisteredError,
    PunishmentLifecycleService,
)
from chat_moderation.domain.punishment_type import PunishmentType
from chat_moderation.infrastructure.cache.cache_config import CacheTtls
from chat_moderation.infrastructure.cache.cached_blacklist_repository import (
    CachedBlacklistRepository,
)
from chat_moderation.infrastructure.cache.cached_group_repository import CachedGroupRepository
from chat_moderation.infrastructure.cache.cached_member_repository import CachedMemberRepository
from chat_moderation.infrastructure.cache.cached_membership_repository import (
    CachedMembershipRepository,
)
from chat_moderation.infrastructure.cache.cached_punishment_repository import (
    CachedPunishmentRepository,
)
from chat_moderation.infrastructure.cache.expiring_cache import ExpiringCache
from chat_moderation.infrastructure.document_store.document_file import DocumentFile
from chat_moderation.infrastructure.document_store.document_repositories import (
    DocumentBlacklistRepository,
    DocumentGroupRepository,
    DocumentMemberRepository,
    DocumentMembershipRepository,
    DocumentPunishmentRepository,
)
from chat_moderation.infrastructure.document_store.write_serializer import WriteSerializer

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
FIVE_MINUTES_MS = 5 * 60 * 1000


class MutableClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@dataclass
class Harness:
    bus: EventBus
    clock: MutableClock
    serializer: WriteSerializer
    groups: CachedGroupRepository
    members: CachedMemberRepository
    memberships: CachedMembershipRepository
    punishments: CachedPunishmentRepository
    blacklist: CachedBlacklistRepository
    service: PunishmentLifecycleService
    events: list[DomainEvent[Any]]

    def of_type(self, event_type: DomainEventType) -> list[DomainEvent[Any]]:
        return [event for event in self.events if event.type is event_type]


async def _harness(tmp_path: Path) -> Harness:
    serializer = WriteSerializer(DocumentFile(tmp_path / "state.json"))
    await serializer.start()
    cache: ExpiringCache[object] = ExpiringCache()
    ttls = CacheTtls()
    bus = EventBus()
    clock = MutableClock(T0)

    groups = CachedGroupRepository(
        store=DocumentGroupRepository(serializer),
        cache=cache,
        ttls=ttls,
    )
    members = CachedMemberRepository(
        store=DocumentMemberRepository(serializer),
        cache=cache,
        ttls=ttls,
    )
    memberships = CachedMembershipRepository(
        store=DocumentMembershipRepository(serializer),
        cache=cache,
        ttls=ttls,
    )
    punishments = CachedPunishmentRepository(
        store=DocumentPunishmentRepository(serializer),
        cache=cache,
        ttls=ttls,
    )
    blacklist = CachedBlacklistRepository(
        store=DocumentBlacklistRepository(serializer),
        cache=cache,
        ttls=ttls,
    )
    service = PunishmentLifecycleService(
        event_bus=bus,
        groups=groups,
        members=members,
        memberships=memberships,
        punishments=punishments,
        blacklist=blacklist,
        now=clock,
    )

    events: list[DomainEvent[Any]] = []

    async def record(event: DomainEvent[Any]) -> None:
        events.append(event)

    for event_type in (
        DomainEventType.PUNISHMENT_APPLIED,
        DomainEventType.PUNISHMENT_CHECKED,
        DomainEventType.PUNISHMENT_LIFTED,
        DomainEventType.ENFORCEMENT_REQUESTED,
        DomainEventType.SEND_MESSAGE,
    ):
        bus.subscribe(event_type, record)

    await groups.get_or_create(external_group_id="group-1", name="Group One")
    return Harness(
        bus=bus,
        clock=clock,
        serializer=serializer,
        groups=groups,
        members=members,
        memberships=memberships,
        punishments=punishments,
        blacklist=blacklist,
        service=service,
        events=events,
    )


def _apply_input(
    punishment_type: PunishmentType,
    *,
    duration_ms: int = 0,
    group_id: str = "group-1",
    member_id: str = "member-x",
) -> ApplyPunishmentInput:
    return ApplyPunishmentInput(
        external_group_id=group_id,
        external_member_id=member_id,
        punishment_type=punishment_type,
        duration_ms=duration_ms,
        reason=f"{punishment_type} in test",
        display_name="Xavier",
    )


def _message(*, group_id: str = "group-1", member_id: str = "member-x") -> MemberMessagePayload:
    return MemberMessagePayload(
        group_id=group_id,
        member_id=member_id,
        display_name="Xavier",
        is_admin=False,
        text="hello there",
        message_handle="msg-1",
    )


@pytest.mark.asyncio
async def test_timeout_is_enforced_before_expiry_and_lifted_after(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)
    applied = await harness.service.apply(
        _apply_input(PunishmentType.TIMEOUT, duration_ms=FIVE_MINUTES_MS)
    )

    assert applied.punishment.expires_at == T0 + timedelta(minutes=5)

    harness.clock.now = T0 + timedelta(minutes=4)
    early = await harness.service.check(_message())

    assert early.outcome is CheckOutcome.ENFORCED
    assert early.remaining_ms == 60_000
    still_active = await harness.punishments.get_active_by_member(
        member_id=applied.member.member_id
    )
    assert still_active is not None

    harness.clock.now = T0 + timedelta(minutes=6)
    late = await harness.service.check(_message())

    assert late.outcome is CheckOutcome.EXPIRED
    assert (
        await harness.punishments.get_active_by_member(member_id=applied.member.member_id)
        is None
    )
    after = await harness.service.check(_message())
    assert after.outcome is CheckOutcome.UNPUNISHED

    await harness.bus.drain()
    lifted = harness.of_type(DomainEventType.PUNISHMENT_LIFTED)
    assert len(lifted) == 1
    assert lifted[0].payload.reason is LiftReason.EXPIRED
    enforcement = harness.of_type(DomainEventType.ENFORCEMENT_REQUESTED)
    assert [event.payload.action for event in enforcement] == [EnforcementAction.DELETE_MESSAGE]
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_new_active_punishment_supersedes_existing_ban(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)
    ban = await harness.service.apply(_apply_input(PunishmentType.BAN))

    harness.clock.now = T0 + timedelta(seconds=1)
    timeout = await harness.service.apply(
        _apply_input(PunishmentType.TIMEOUT, duration_ms=FIVE_MINUTES_MS)
    )

    member_id = ban.member.member_id
    active = await harness.punishments.get_active_by_member(member_id=member_id)
    history = await harness.punishments.list_by_member(member_id=member_id)

    assert timeout.superseded is not None
    assert timeout.superseded.punishment_id == ban.punishment.punishment_id
    assert active is not None
    assert active.punishment_id == timeout.punishment.punishment_id
    assert [record.is_active for record in history] == [False, True]
    assert [record.punishment_type for record in history] == [
        PunishmentType.BAN,
        PunishmentType.TIMEOUT,
    ]
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_concurrent_membership_get_or_create_creates_one_row(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)
    group = await harness.groups.get_by_external_id(external_group_id="group-1")
    member = await harness.members.get_or_create(external_member_id="member-x")
    assert group is not None

    first, second = await asyncio.gather(
        harness.memberships.get_or_create(group_id=group.group_id, member_id=member.member_id),
        harness.memberships.get_or_create(group_id=group.group_id, member_id=member.member_id),
    )

    stored = harness.serializer.read(
        lambda document: list(document["groups"]["group-1"]["members"].values())
    )
    assert first.membership_id == second.membership_id
    assert len(stored) == 1
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_lift_without_active_punishment_is_a_quiet_no_op(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)
    await harness.members.get_or_create(external_member_id="member-x", display_name="Xavier")

    result = await harness.service.lift(
        external_group_id="group-1",
        external_member_id="member-x",
    )
    unknown = await harness.service.lift(
        external_group_id="group-1",
        external_member_id="member-never-seen",
    )
    await harness.bus.drain()

    assert result.deactivated_count == 0
    assert result.was_punished is False
    assert unknown.member is None
    assert harness.of_type(DomainEventType.PUNISHMENT_LIFTED) == []
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_lift_deactivates_permanent_ban(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)
    applied = await harness.service.apply(_apply_input(PunishmentType.PERMANENT_BAN))

    result = await harness.service.lift(
        external_group_id="group-1",
        external_member_id="member-x",
    )
    await harness.bus.drain()

    assert result.was_punished is True
    assert (
        await harness.punishments.get_active_by_member(member_id=applied.member.member_id)
        is None
    )
    lifted = harness.of_type(DomainEventType.PUNISHMENT_LIFTED)
    assert lifted[0].payload.reason is LiftReason.LIFTED
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_kick_and_warn_are_history_only_and_keep_active_timeout(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)
    timeout = await harness.service.apply(
        _apply_input(PunishmentType.TIMEOUT, duration_ms=FIVE_MINUTES_MS)
    )

    kick = await harness.service.apply(_apply_input(PunishmentType.KICK))
    first_warn = await harness.service.apply(_apply_input(PunishmentType.WARN))
    second_warn = await harness.service.apply(_apply_input(PunishmentType.WARN))

    active = await harness.punishments.get_active_by_member(member_id=timeout.member.member_id)
    assert kick.punishment.is_active is False
    assert kick.superseded is None
    assert active is not None
    assert active.punishment_id == timeout.punishment.punishment_id
    assert first_warn.membership.warn_count == 1
    assert second_warn.membership.warn_count == 2
    assert second_warn.membership.kick_count == 1
    assert second_warn.membership.timeout_count == 1
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_apply_in_unregistered_group_is_rejected(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)

    with pytest.raises(GroupNotRegisteredError):
        await harness.service.apply(
            _apply_input(PunishmentType.MUTE, duration_ms=1000, group_id="group-unknown")
        )

    assert await harness.members.get_by_external_id(external_member_id="member-x") is None
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_permanent_ban_check_requests_removal_without_remaining_time(
    tmp_path: Path,
) -> None:
    harness = await _harness(tmp_path)
    await harness.service.apply(_apply_input(PunishmentType.BAN))

    harness.clock.now = T0 + timedelta(days=400)
    result = await harness.service.check(_message())
    await harness.bus.drain()

    assert result.outcome is CheckOutcome.ENFORCED
    assert result.remaining_ms is None
    enforcement = harness.of_type(DomainEventType.ENFORCEMENT_REQUESTED)
    assert enforcement[0].payload.action is EnforcementAction.REMOVE_MEMBER
    checked = harness.of_type(DomainEventType.PUNISHMENT_CHECKED)
    assert checked[0].payload.remaining_ms is None
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_punishment_from_other_group_is_not_enforced_here(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)
    await harness.groups.get_or_create(external_group_id="group-2", name="Group Two")
    await harness.service.apply(_apply_input(PunishmentType.MUTE, duration_ms=FIVE_MINUTES_MS))

    result = await harness.service.check(_message(group_id="group-2"))
    await harness.bus.drain()

    assert result.outcome is CheckOutcome.OTHER_GROUP
    assert harness.of_type(DomainEventType.ENFORCEMENT_REQUESTED) == []
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_blacklisted_member_is_removed_on_message(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)
    member = await harness.members.get_or_create(external_member_id="member-x")
    await harness.blacklist.create(
        BlacklistCreateInput(member_id=member.member_id, reason="spam")
    )

    result = await harness.service.check(_message())
    await harness.bus.drain()

    assert result.outcome is CheckOutcome.BLACKLISTED
    enforcement = harness.of_type(DomainEventType.ENFORCEMENT_REQUESTED)
    assert enforcement[0].payload.action is EnforcementAction.REMOVE_MEMBER
    sent = harness.of_type(DomainEventType.SEND_MESSAGE)
    assert "blacklisted" in sent[0].payload.text
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_apply_publishes_punishment_applied(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)

    applied = await harness.service.apply(
        _apply_input(PunishmentType.TIMEOUT, duration_ms=FIVE_MINUTES_MS)
    )
    await harness.bus.drain()

    events = harness.of_type(DomainEventType.PUNISHMENT_APPLIED)
    assert len(events) == 1
    assert events[0].payload.punishment == applied.punishment
    assert events[0].metadata.member_id == "member-x"
    await harness.serializer.close()
