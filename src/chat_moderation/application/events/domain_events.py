"""Typed domain events exchanged over the in-process event bus."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Generic, TypeVar

from chat_moderation.application.ports.punishment_repository_port import PunishmentRecord

PayloadT = TypeVar("PayloadT")


class DomainEventType(StrEnum):
    """All event types routed by the bus."""

    MEMBER_MESSAGE_RECEIVED = "MEMBER_MESSAGE_RECEIVED"
    COMMAND_EXECUTED = "COMMAND_EXECUTED"
    PUNISHMENT_APPLIED = "PUNISHMENT_APPLIED"
    PUNISHMENT_CHECKED = "PUNISHMENT_CHECKED"
    PUNISHMENT_LIFTED = "PUNISHMENT_LIFTED"
    ENFORCEMENT_REQUESTED = "ENFORCEMENT_REQUESTED"
    SEND_MESSAGE = "SEND_MESSAGE"


class EnforcementAction(StrEnum):
    """Actions the transport collaborator performs on behalf of the engine."""

    DELETE_MESSAGE = "delete_message"
    REMOVE_MEMBER = "remove_member"


class LiftReason(StrEnum):
    """Why an active punishment stopped being active."""

    EXPIRED = "expired"
    LIFTED = "lifted"


@dataclass(frozen=True)
class EventMetadata:
    """Routing metadata; ``emitted_at`` is always stamped by the bus."""

    group_id: str | None = None
    member_id: str | None = None
    emitted_at: datetime | None = None


@dataclass(frozen=True)
class DomainEvent(Generic[PayloadT]):
    """Envelope carrying one typed payload."""

    type: DomainEventType
    payload: PayloadT
    metadata: EventMetadata = field(default_factory=EventMetadata)


@dataclass(frozen=True)
class MemberMessagePayload:
    """Inbound message observed by the transport in a group chat."""

    group_id: str
    member_id: str
    display_name: str
    is_admin: bool
    text: str
    message_handle: Any
    chat_handle: Any = None
    target_member_id: str | None = None
    target_display_name: str | None = None
    target_author_id: str | None = None
    group_name: str | None = None
    group_description: str | None = None


@dataclass(frozen=True)
class CommandExecutedPayload:
    """A recognized slash command issued by an allowed member."""

    command: str
    group_id: str
    invoker_member_id: str
    invoker_is_admin: bool
    message_text: str
    invoking_message_handle: Any
    chat_handle: Any = None
    target_member_id: str | None = None
    target_display_name: str | None = None
    target_author_id: str | None = None
    group_name: str | None = None
    group_description: str | None = None


@dataclass(frozen=True)
class PunishmentAppliedPayload:
    """A punishment row was written for a member."""

    group_id: str
    member_id: str
    punishment: PunishmentRecord


@dataclass(frozen=True)
class PunishmentCheckedPayload:
    """An active, unexpired punishment was re-checked on a new message."""

    group_id: str
    member_id: str
    display_name: str
    punishment: PunishmentRecord
    remaining_ms: int | None
    message_handle: Any = None


@dataclass(frozen=True)
class PunishmentLiftedPayload:
    """A member transitioned back to unpunished."""

    group_id: str
    member_id: str
    reason: LiftReason
    deactivated_count: int


@dataclass(frozen=True)
class EnforcementRequestedPayload:
    """Side effect the transport must perform against the chat network."""

    action: EnforcementAction
    destination_chat_id: str
    member_id: str
    message_handle: Any = None
    chat_handle: Any = None


@dataclass(frozen=True)
class OutboundMessagePayload:
    """Text the delivery collaborator must transmit to a chat."""

    destination_chat_id: str
    text: str
    original_message_handle: Any = None
    mention_ids: tuple[str, ...] = ()
    edit_existing: bool = False
