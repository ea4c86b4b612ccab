"""Punishment lifecycle engine: apply, re-check on every message, and lift.

Expiry is evaluated lazily. A punishment is only found to be expired when the
punished member writes again; no background timer deactivates it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from chat_moderation.application.events.domain_events import (
    DomainEvent,
    DomainEventType,
    EnforcementAction,
    EnforcementRequestedPayload,
    EventMetadata,
    LiftReason,
    MemberMessagePayload,
    OutboundMessagePayload,
    PunishmentAppliedPayload,
    PunishmentCheckedPayload,
    PunishmentLiftedPayload,
)
from chat_moderation.application.events.event_bus import EventBus, Subscription
from chat_moderation.application.ports.member_repository_port import MemberRecord
from chat_moderation.application.ports.membership_repository_port import MembershipRecord
from chat_moderation.application.ports.punishment_repository_port import (
    PunishmentCreateInput,
    PunishmentRecord,
)
from chat_moderation.application.ports.store_errors import NotFoundError, StoreError
from chat_moderation.domain.punishment_state import (
    PunishmentTransition,
    assert_transition,
    compute_window,
    evaluate_expiry,
    state_of,
)
from chat_moderation.domain.punishment_type import (
    PunishmentType,
    is_permanent,
    suppresses_messages,
)
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
from chat_moderation.infrastructure.chat.message_templates import (
    build_blacklisted_member_message,
    build_punishment_remaining_message,
)

logger = logging.getLogger(__name__)

NowCallable = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class GroupNotRegisteredError(NotFoundError):
    """Raised when a punishment targets a group the store does not know."""


class CheckOutcome(StrEnum):
    """Result of re-checking a member on an inbound message."""

    UNPUNISHED = "unpunished"
    EXPIRED = "expired"
    ENFORCED = "enforced"
    OTHER_GROUP = "other_group"
    BLACKLISTED = "blacklisted"


@dataclass(frozen=True)
class ApplyPunishmentInput:
    """Request to punish one member of one group."""

    external_group_id: str
    external_member_id: str
    punishment_type: PunishmentType
    duration_ms: int
    reason: str
    display_name: str | None = None


@dataclass(frozen=True)
class ApplyPunishmentResult:
    """Written punishment plus the member and membership it was attached to."""

    punishment: PunishmentRecord
    member: MemberRecord
    membership: MembershipRecord
    superseded: PunishmentRecord | None = None


@dataclass(frozen=True)
class PunishmentCheckResult:
    """Outcome model for a punishment check."""

    outcome: CheckOutcome
    punishment: PunishmentRecord | None = None
    remaining_ms: int | None = None


@dataclass(frozen=True)
class LiftPunishmentResult:
    """Outcome model for an explicit lift."""

    deactivated_count: int
    member: MemberRecord | None = None

    @property
    def was_punished(self) -> bool:
        return self.deactivated_count > 0


class PunishmentLifecycleService:
    """Create, re-check and lift punishments while keeping one active per member."""

    def __init__(
        self,
        *,
        event_bus: EventBus,
        groups: CachedGroupRepository,
        members: CachedMemberRepository,
        memberships: CachedMembershipRepository,
        punishments: CachedPunishmentRepository,
        blacklist: CachedBlacklistRepository,
        now: NowCallable = _utc_now,
    ) -> None:
        self._event_bus = event_bus
        self._groups = groups
        self._members = members
        self._memberships = memberships
        self._punishments = punishments
        self._blacklist = blacklist
        self._now = now

    def register(self) -> Subscription:
        return self._event_bus.subscribe(
            DomainEventType.MEMBER_MESSAGE_RECEIVED,
            self._handle_member_message,
            name="punishment_lifecycle.check",
        )

    async def apply(self, request: ApplyPunishmentInput) -> ApplyPunishmentResult:
        """Write a punishment, superseding the member's active one when it is itself active.

        The membership counter increment is a second write; its failure is logged
        and does not undo the punishment.
        """

        group = await self._groups.get_by_external_id(external_group_id=request.external_group_id)
        if group is None:
            raise GroupNotRegisteredError(f"Group {request.external_group_id} is not registered")

        member = await self._members.get_or_create(
            external_member_id=request.external_member_id,
            display_name=request.display_name,
        )
        membership = await self._memberships.get_or_create(
            group_id=group.group_id,
            member_id=member.member_id,
        )

        applied_at = self._now()
        window = compute_window(
            punishment_type=request.punishment_type,
            duration_ms=request.duration_ms,
            applied_at=applied_at,
        )

        superseded: PunishmentRecord | None = None
        if window.is_active:
            superseded = await self._punishments.get_active_by_member(member_id=member.member_id)
            current_state = state_of(
                is_active=superseded is not None,
                expires_at=superseded.expires_at if superseded is not None else None,
            )
            assert_transition(current_state, PunishmentTransition.APPLY)

        punishment = await self._punishments.create_superseding(
            PunishmentCreateInput(
                member_id=member.member_id,
                membership_id=membership.membership_id,
                group_id=group.group_id,
                punishment_type=request.punishment_type,
                duration_ms=window.duration_ms,
                reason=request.reason,
                applied_at=applied_at,
                expires_at=window.expires_at,
                is_active=window.is_active,
            )
        )

        try:
            membership = await self._memberships.increment_punishment_count(
                membership_id=membership.membership_id,
                punishment_type=request.punishment_type,
            )
        except StoreError:
            logger.exception(
                "punishment_counter_increment_failed membership_id=%s type=%s",
                membership.membership_id,
                request.punishment_type,
            )

        logger.info(
            (
                "punishment_applied punishment_id=%s group_id=%s member_id=%s type=%s "
                "duration_ms=%s superseded_id=%s"
            ),
            punishment.punishment_id,
            request.external_group_id,
            request.external_member_id,
            punishment.punishment_type,
            punishment.duration_ms,
            superseded.punishment_id if superseded is not None else None,
        )
        self._event_bus.publish(
            DomainEvent(
                type=DomainEventType.PUNISHMENT_APPLIED,
                payload=PunishmentAppliedPayload(
                    group_id=request.external_group_id,
                    member_id=request.external_member_id,
                    punishment=punishment,
                ),
                metadata=EventMetadata(
                    group_id=request.external_group_id,
                    member_id=request.external_member_id,
                ),
            )
        )
        return ApplyPunishmentResult(
            punishment=punishment,
            member=member,
            membership=membership,
            superseded=superseded,
        )

    async def check(self, payload: MemberMessagePayload) -> PunishmentCheckResult:
        """Re-check the author of an inbound message against their active punishment."""

        member = await self._members.get_by_external_id(external_member_id=payload.member_id)
        if member is None:
            return PunishmentCheckResult(outcome=CheckOutcome.UNPUNISHED)

        if await self._blacklist.is_blacklisted(member_id=member.member_id):
            logger.info(
                "blacklisted_member_seen group_id=%s member_id=%s",
                payload.group_id,
                payload.member_id,
            )
            self._request_enforcement(
                payload,
                action=EnforcementAction.REMOVE_MEMBER,
            )
            self._send(payload, build_blacklisted_member_message(payload.display_name))
            return PunishmentCheckResult(outcome=CheckOutcome.BLACKLISTED)

        punishment = await self._punishments.get_active_by_member(member_id=member.member_id)
        if punishment is None:
            return PunishmentCheckResult(outcome=CheckOutcome.UNPUNISHED)

        expiry = evaluate_expiry(expires_at=punishment.expires_at, now=self._now())
        if expiry.expired:
            assert_transition(
                state_of(is_active=punishment.is_active, expires_at=punishment.expires_at),
                PunishmentTransition.EXPIRE,
            )
            deactivated = await self._punishments.deactivate_active(member_id=member.member_id)
            logger.info(
                "punishment_expired punishment_id=%s member_id=%s deactivated=%s",
                punishment.punishment_id,
                payload.member_id,
                deactivated,
            )
            self._publish_lifted(
                group_id=payload.group_id,
                member_id=payload.member_id,
                reason=LiftReason.EXPIRED,
                deactivated_count=deactivated,
            )
            return PunishmentCheckResult(outcome=CheckOutcome.EXPIRED, punishment=punishment)

        group = await self._groups.get_by_external_id(external_group_id=payload.group_id)
        if group is None or group.group_id != punishment.group_id:
            return PunishmentCheckResult(
                outcome=CheckOutcome.OTHER_GROUP,
                punishment=punishment,
                remaining_ms=expiry.remaining_ms,
            )

        if suppresses_messages(punishment.punishment_type):
            self._request_enforcement(payload, action=EnforcementAction.DELETE_MESSAGE)
        elif is_permanent(punishment.punishment_type):
            self._request_enforcement(payload, action=EnforcementAction.REMOVE_MEMBER)

        self._send(
            payload,
            build_punishment_remaining_message(
                punishment_type=punishment.punishment_type,
                display_name=payload.display_name,
                remaining_ms=expiry.remaining_ms,
            ),
        )
        self._event_bus.publish(
            DomainEvent(
                type=DomainEventType.PUNISHMENT_CHECKED,
                payload=PunishmentCheckedPayload(
                    group_id=payload.group_id,
                    member_id=payload.member_id,
                    display_name=payload.display_name,
                    punishment=punishment,
                    remaining_ms=expiry.remaining_ms,
                    message_handle=payload.message_handle,
                ),
                metadata=EventMetadata(group_id=payload.group_id, member_id=payload.member_id),
            )
        )
        logger.info(
            "punishment_enforced punishment_id=%s member_id=%s type=%s remaining_ms=%s",
            punishment.punishment_id,
            payload.member_id,
            punishment.punishment_type,
            expiry.remaining_ms,
        )
        return PunishmentCheckResult(
            outcome=CheckOutcome.ENFORCED,
            punishment=punishment,
            remaining_ms=expiry.remaining_ms,
        )

    async def lift(
        self,
        *,
        external_group_id: str,
        external_member_id: str,
    ) -> LiftPunishmentResult:
        """Deactivate the member's active punishment regardless of its expiry."""

        member = await self._members.get_by_external_id(external_member_id=external_member_id)
        if member is None:
            return LiftPunishmentResult(deactivated_count=0)

        current = await self._punishments.get_active_by_member(member_id=member.member_id)
        assert_transition(
            state_of(
                is_active=current is not None,
                expires_at=current.expires_at if current is not None else None,
            ),
            PunishmentTransition.LIFT,
        )
        deactivated = await self._punishments.deactivate_active(member_id=member.member_id)
        logger.info(
            "punishment_lifted group_id=%s member_id=%s deactivated=%s",
            external_group_id,
            external_member_id,
            deactivated,
        )
        if deactivated:
            self._publish_lifted(
                group_id=external_group_id,
                member_id=external_member_id,
                reason=LiftReason.LIFTED,
                deactivated_count=deactivated,
            )
        return LiftPunishmentResult(deactivated_count=deactivated, member=member)

    async def _handle_member_message(self, event: DomainEvent[Any]) -> None:
        await self.check(event.payload)

    def _publish_lifted(
        self,
        *,
        group_id: str,
        member_id: str,
        reason: LiftReason,
        deactivated_count: int,
    ) -> None:
        self._event_bus.publish(
            DomainEvent(
                type=DomainEventType.PUNISHMENT_LIFTED,
                payload=PunishmentLiftedPayload(
                    group_id=group_id,
                    member_id=member_id,
                    reason=reason,
                    deactivated_count=deactivated_count,
                ),
                metadata=EventMetadata(group_id=group_id, member_id=member_id),
            )
        )

    def _request_enforcement(
        self,
        payload: MemberMessagePayload,
        *,
        action: EnforcementAction,
    ) -> None:
        self._event_bus.publish(
            DomainEvent(
                type=DomainEventType.ENFORCEMENT_REQUESTED,
                payload=EnforcementRequestedPayload(
                    action=action,
                    destination_chat_id=payload.group_id,
                    member_id=payload.member_id,
                    message_handle=payload.message_handle,
                    chat_handle=payload.chat_handle,
                ),
                metadata=EventMetadata(group_id=payload.group_id, member_id=payload.member_id),
            )
        )

    def _send(self, payload: MemberMessagePayload, text: str) -> None:
        self._event_bus.publish(
            DomainEvent(
                type=DomainEventType.SEND_MESSAGE,
                payload=OutboundMessagePayload(
                    destination_chat_id=payload.group_id,
                    text=text,
                    mention_ids=(payload.member_id,),
                ),
                metadata=EventMetadata(group_id=payload.group_id, member_id=payload.member_id),
            )
        )
