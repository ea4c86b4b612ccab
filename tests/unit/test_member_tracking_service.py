from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from chat_moderation.application.events.domain_events import (
    DomainEvent,
    DomainEventType,
    MemberMessagePayload,
)
from chat_moderation.application.events.event_bus import EventBus
from chat_moderation.application.ports.member_repository_port import PLACEHOLDER_DISPLAY_NAME
from chat_moderation.application.services.member_tracking_service import (
    MemberTrackingService,
    MembershipActivity,
    merge_activity,
)
from chat_moderation.infrastructure.cache.cache_config import CacheTtls
from chat_moderation.infrastructure.cache.cached_group_repository import CachedGroupRepository
from chat_moderation.infrastructure.cache.cached_member_repository import CachedMemberRepository
from chat_moderation.infrastructure.cache.cached_membership_repository import (
    CachedMembershipRepository,
)
from chat_moderation.infrastructure.cache.expiring_cache import ExpiringCache
from chat_moderation.infrastructure.document_store.document_file import DocumentFile
from chat_moderation.infrastructure.document_store.document_repositories import (
    DocumentGroupRepository,
    DocumentMemberRepository,
    DocumentMembershipRepository,
)
from chat_moderation.infrastructure.document_store.write_serializer import WriteSerializer


@dataclass
class TrackingHarness:
    bus: EventBus
    serializer: WriteSerializer
    groups: CachedGroupRepository
    members: CachedMemberRepository
    memberships: CachedMembershipRepository
    service: MemberTrackingService


async def _harness(tmp_path: Path, *, auto_register_groups: bool = True) -> TrackingHarness:
    serializer = WriteSerializer(DocumentFile(tmp_path / "state.json"))
    await serializer.start()
    cache: ExpiringCache[object] = ExpiringCache()
    ttls = CacheTtls()
    bus = EventBus()
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
    service = MemberTrackingService(
        event_bus=bus,
        groups=groups,
        members=members,
        memberships=memberships,
        activity_debounce_ms=60_000,
        auto_register_groups=auto_register_groups,
    )
    return TrackingHarness(
        bus=bus,
        serializer=serializer,
        groups=groups,
        members=members,
        memberships=memberships,
        service=service,
    )


def _message(
    *,
    display_name: str = "Alice",
    is_admin: bool = False,
    group_name: str | None = "Book Club",
) -> MemberMessagePayload:
    return MemberMessagePayload(
        group_id="group-1",
        member_id="member-a",
        display_name=display_name,
        is_admin=is_admin,
        text="hello",
        message_handle="msg-1",
        group_name=group_name,
    )


def test_merge_activity_sums_counts_and_keeps_latest_admin_flag() -> None:
    merged = merge_activity(
        MembershipActivity(message_count=2, is_admin=False),
        MembershipActivity(message_count=1, is_admin=True),
    )

    assert merged == MembershipActivity(message_count=3, is_admin=True)


@pytest.mark.asyncio
async def test_first_message_registers_group_member_and_membership(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)

    result = await harness.service.track(_message())

    group = await harness.groups.get_by_external_id(external_group_id="group-1")
    member = await harness.members.get_by_external_id(external_member_id="member-a")
    assert result.tracked is True
    assert group is not None
    assert group.name == "Book Club"
    assert member is not None
    assert member.display_name == "Alice"
    assert result.membership is not None
    assert result.membership.group_id == group.group_id
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_message_burst_is_coalesced_into_one_counter_write(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)

    for _ in range(4):
        result = await harness.service.track(_message())
    await harness.service.flush()

    assert result.membership is not None
    stored = await harness.memberships.get_by_id(membership_id=result.membership.membership_id)
    assert stored is not None
    assert stored.message_count == 4
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_unregistered_group_is_skipped_when_auto_registration_is_off(
    tmp_path: Path,
) -> None:
    harness = await _harness(tmp_path, auto_register_groups=False)

    result = await harness.service.track(_message())

    assert result.tracked is False
    assert result.reason == "group_not_registered"
    assert await harness.members.get_by_external_id(external_member_id="member-a") is None
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_placeholder_display_name_is_replaced_once_known(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)
    created = await harness.members.get_or_create(external_member_id="member-a")
    assert created.display_name == PLACEHOLDER_DISPLAY_NAME

    await harness.service.track(_message(display_name="Alice"))
    await harness.service.track(_message(display_name="Alice Renamed"))

    member = await harness.members.get_by_external_id(external_member_id="member-a")
    assert member is not None
    assert member.display_name == "Alice"
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_admin_flag_follows_latest_message(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)

    first = await harness.service.track(_message(is_admin=False))
    await harness.service.flush()
    await harness.service.track(_message(is_admin=True))
    await harness.service.flush()

    assert first.membership is not None
    stored = await harness.memberships.get_by_id(membership_id=first.membership.membership_id)
    assert stored is not None
    assert stored.is_admin is True
    assert stored.message_count == 2
    await harness.serializer.close()


@pytest.mark.asyncio
async def test_registered_service_tracks_published_messages(tmp_path: Path) -> None:
    harness = await _harness(tmp_path)
    harness.service.register()

    harness.bus.publish(
        DomainEvent(type=DomainEventType.MEMBER_MESSAGE_RECEIVED, payload=_message())
    )
    await harness.bus.drain()
    await harness.service.flush()

    member = await harness.members.get_by_external_id(external_member_id="member-a")
    group = await harness.groups.get_by_external_id(external_group_id="group-1")
    assert member is not None
    assert group is not None
    membership = await harness.memberships.get(group_id=group.group_id, member_id=member.member_id)
    assert membership is not None
    assert membership.message_count == 1
    await harness.serializer.close()
