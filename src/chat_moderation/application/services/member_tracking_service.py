"""Service that records groups, members and membership activity from inbound messages."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from chat_moderation.application.events.domain_events import (
    DomainEvent,
    DomainEventType,
    MemberMessagePayload,
)
from chat_moderation.application.events.event_bus import EventBus, Subscription
from chat_moderation.application.ports.member_repository_port import PLACEHOLDER_DISPLAY_NAME
from chat_moderation.application.ports.membership_repository_port import (
    MembershipRecord,
    MembershipUpdateInput,
)
from chat_moderation.application.services.debounce import KeyedDebouncer
from chat_moderation.infrastructure.cache.cached_group_repository import CachedGroupRepository
from chat_moderation.infrastructure.cache.cached_member_repository import CachedMemberRepository
from chat_moderation.infrastructure.cache.cached_membership_repository import (
    CachedMembershipRepository,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MembershipActivity:
    """Pending activity for one membership; counts add up, the admin flag keeps the latest."""

    message_count: int
    is_admin: bool


def merge_activity(earlier: MembershipActivity, later: MembershipActivity) -> MembershipActivity:
    return MembershipActivity(
        message_count=earlier.message_count + later.message_count,
        is_admin=later.is_admin,
    )


@dataclass(frozen=True)
class TrackingResult:
    """Outcome model for one tracked inbound message."""

    tracked: bool
    reason: str | None = None
    membership: MembershipRecord | None = None


class MemberTrackingService:
    """Get-or-create the entities referenced by a message and count its activity."""

    def __init__(
        self,
        *,
        event_bus: EventBus,
        groups: CachedGroupRepository,
        members: CachedMemberRepository,
        memberships: CachedMembershipRepository,
        activity_debounce_ms: int,
        auto_register_groups: bool,
    ) -> None:
        self._event_bus = event_bus
        self._groups = groups
        self._members = members
        self._memberships = memberships
        self._auto_register_groups = auto_register_groups
        self._activity: KeyedDebouncer[UUID, MembershipActivity] = KeyedDebouncer(
            delay_ms=activity_debounce_ms,
            flush=self._record_activity,
            merge=merge_activity,
        )

    def register(self) -> Subscription:
        return self._event_bus.subscribe(
            DomainEventType.MEMBER_MESSAGE_RECEIVED,
            self._handle_member_message,
            name="member_tracking",
        )

    async def track(self, payload: MemberMessagePayload) -> TrackingResult:
        """Persist what one inbound message tells us about its group and author."""

        group = await self._groups.get_by_external_id(external_group_id=payload.group_id)
        if group is None:
            if not self._auto_register_groups:
                logger.debug("tracking_skipped_unregistered_group group_id=%s", payload.group_id)
                return TrackingResult(tracked=False, reason="group_not_registered")
            group = await self._groups.get_or_create(
                external_group_id=payload.group_id,
                name=payload.group_name or payload.group_id,
                description=payload.group_description or "",
            )

        display_name = payload.display_name.strip()
        member = await self._members.get_or_create(
            external_member_id=payload.member_id,
            display_name=display_name or None,
        )
        resolves_placeholder = display_name and display_name != PLACEHOLDER_DISPLAY_NAME
        if member.has_placeholder_name and resolves_placeholder:
            member = await self._members.update_display_name(
                member_id=member.member_id,
                display_name=display_name,
            )
            logger.info(
                "member_display_name_resolved member_id=%s external_member_id=%s",
                member.member_id,
                member.external_member_id,
            )

        membership = await self._memberships.get_or_create(
            group_id=group.group_id,
            member_id=member.member_id,
            is_admin=payload.is_admin,
        )
        self._activity.push(
            membership.membership_id,
            MembershipActivity(message_count=1, is_admin=payload.is_admin),
        )
        return TrackingResult(tracked=True, membership=membership)

    async def flush(self) -> None:
        """Write every coalesced activity update now."""

        await self._activity.flush_all()

    async def _handle_member_message(self, event: DomainEvent[Any]) -> None:
        await self.track(event.payload)

    async def _record_activity(self, membership_id: UUID, activity: MembershipActivity) -> None:
        membership = await self._memberships.increment_message_count(
            membership_id=membership_id,
            by=activity.message_count,
        )
        if membership.is_admin != activity.is_admin:
            await self._memberships.update(
                membership_id=membership_id,
                payload=MembershipUpdateInput(is_admin=activity.is_admin),
            )
            logger.info(
                "membership_admin_flag_changed membership_id=%s is_admin=%s",
                membership_id,
                activity.is_admin,
            )
        logger.debug(
            "membership_activity_recorded membership_id=%s added=%s total=%s",
            membership_id,
            activity.message_count,
            membership.message_count,
        )
