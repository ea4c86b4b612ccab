"""Deterministic state machine for one member's punishment lifecycle."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Final

from chat_moderation.domain.punishment_type import (
    PunishmentType,
    is_instantaneous,
    is_permanent,
)


class PunishmentState(StrEnum):
    """States a member can be in with respect to punishments."""

    UNPUNISHED = "UNPUNISHED"
    ACTIVE = "ACTIVE"
    ACTIVE_PERMANENT = "ACTIVE_PERMANENT"


class PunishmentTransition(StrEnum):
    """Transitions driving the punishment state machine."""

    APPLY = "APPLY"
    EXPIRE = "EXPIRE"
    LIFT = "LIFT"


class InvalidPunishmentTransitionError(ValueError):
    """Raised when a punishment transition is not allowed from the current state."""


_ALLOWED_TRANSITIONS: Final[dict[PunishmentState, frozenset[PunishmentTransition]]] = {
    PunishmentState.UNPUNISHED: frozenset({PunishmentTransition.APPLY, PunishmentTransition.LIFT}),
    PunishmentState.ACTIVE: frozenset(
        {PunishmentTransition.APPLY, PunishmentTransition.EXPIRE, PunishmentTransition.LIFT}
    ),
    # Permanent punishments leave only through an explicit lift.
    PunishmentState.ACTIVE_PERMANENT: frozenset(
        {PunishmentTransition.APPLY, PunishmentTransition.LIFT}
    ),
}


@dataclass(frozen=True)
class PunishmentWindow:
    """Computed timing of a punishment at the moment it is applied."""

    duration_ms: int
    expires_at: datetime | None
    is_active: bool


@dataclass(frozen=True)
class ExpiryCheck:
    """Outcome of evaluating an active punishment against the current time."""

    expired: bool
    remaining_ms: int | None


def state_of(*, is_active: bool, expires_at: datetime | None) -> PunishmentState:
    """Return the state represented by a punishment row (or its absence)."""

    if not is_active:
        return PunishmentState.UNPUNISHED
    if expires_at is None:
        return PunishmentState.ACTIVE_PERMANENT
    return PunishmentState.ACTIVE


def can_transition(state: PunishmentState, transition: PunishmentTransition) -> bool:
    """Return whether the transition is valid from the given state."""

    return transition in _ALLOWED_TRANSITIONS[state]


def assert_transition(state: PunishmentState, transition: PunishmentTransition) -> None:
    """Assert a transition is allowed, else raise a deterministic domain error."""

    if not can_transition(state, transition):
        raise InvalidPunishmentTransitionError(
            f"Invalid punishment transition: {transition.value} from {state.value}"
        )


def compute_window(
    *,
    punishment_type: PunishmentType,
    duration_ms: int,
    applied_at: datetime,
) -> PunishmentWindow:
    """Compute duration, expiry and activity for a punishment applied at ``applied_at``."""

    if is_instantaneous(punishment_type):
        return PunishmentWindow(duration_ms=0, expires_at=None, is_active=False)
    if is_permanent(punishment_type):
        return PunishmentWindow(duration_ms=0, expires_at=None, is_active=True)
    if duration_ms <= 0:
        return PunishmentWindow(duration_ms=0, expires_at=applied_at, is_active=True)
    return PunishmentWindow(
        duration_ms=duration_ms,
        expires_at=applied_at + timedelta(milliseconds=duration_ms),
        is_active=True,
    )


def evaluate_expiry(*, expires_at: datetime | None, now: datetime) -> ExpiryCheck:
    """Evaluate expiry strictly against the punishment's own ``expires_at``."""

    if expires_at is None:
        return ExpiryCheck(expired=False, remaining_ms=None)
    if expires_at <= now:
        return ExpiryCheck(expired=True, remaining_ms=0)
    remaining = expires_at - now
    return ExpiryCheck(expired=False, remaining_ms=int(remaining.total_seconds() * 1000))
