"""Vesting event status graph and operation preconditions."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Mapping

from backend.db.enums import VestingEventStatus
from settlement.errors import IllegalTransitionError, PreconditionError
from settlement.records import VestingEventRecord

logger = logging.getLogger(__name__)

PENDING = VestingEventStatus.PENDING.value
DUE = VestingEventStatus.DUE.value
VESTED = VestingEventStatus.VESTED.value
TRANSFERRED = VestingEventStatus.TRANSFERRED.value
EXERCISED = VestingEventStatus.EXERCISED.value
FORFEITED = VestingEventStatus.FORFEITED.value
CANCELLED = VestingEventStatus.CANCELLED.value

ALL_STATUSES: tuple[str, ...] = tuple(status.value for status in VestingEventStatus)

TRANSITIONS: Mapping[str, frozenset[str]] = {
    PENDING: frozenset({DUE, FORFEITED, CANCELLED}),
    DUE: frozenset({VESTED, FORFEITED, CANCELLED}),
    VESTED: frozenset({TRANSFERRED, EXERCISED, FORFEITED, CANCELLED}),
    TRANSFERRED: frozenset(),
    EXERCISED: frozenset(),
    FORFEITED: frozenset(),
    CANCELLED: frozenset(),
}

TERMINAL_STATUSES: frozenset[str] = frozenset(
    status for status, targets in TRANSITIONS.items() if not targets
)
SETTLEABLE_PLAN_TYPES: frozenset[str] = frozenset({"LTIP_RSU", "LTIP_RSA"})
EXERCISABLE_PLAN_TYPES: frozenset[str] = frozenset({"ESOP"})
PERFORMANCE_EVENT_TYPES: frozenset[str] = frozenset({"performance", "performance_based", "hybrid"})


@dataclass(frozen=True)
class TransitionCheck:
    """Precondition evaluation result."""

    allowed: bool
    reason_code: str
    detail: str


def _require_known(status: str) -> None:
    if status not in TRANSITIONS:
        raise PreconditionError(f"Unknown vesting event status: {status}.", reason_code="UNKNOWN_STATUS")


def is_terminal(status: str) -> bool:
    _require_known(status)
    return status in TERMINAL_STATUSES


def can_transition(current_status: str, target_status: str) -> bool:
    _require_known(current_status)
    _require_known(target_status)
    return target_status in TRANSITIONS[current_status]


def enforce_transition(current_status: str, target_status: str) -> None:
    """Raise unless current -> target is an edge of the status graph."""
    if not can_transition(current_status, target_status):
        raise IllegalTransitionError(current_status, target_status)


def check_settlement(event: VestingEventRecord) -> TransitionCheck:
    if event.plan_type not in SETTLEABLE_PLAN_TYPES:
        return TransitionCheck(
            allowed=False,
            reason_code="PLAN_TYPE_NOT_SETTLEABLE",
            detail=f"Transfer is only available for RSU/RSA plans (plan_type={event.plan_type}).",
        )
    if event.status != VESTED:
        return TransitionCheck(
            allowed=False,
            reason_code="EVENT_NOT_VESTED",
            detail=f"Event must be vested before transfer (status={event.status}).",
        )
    return TransitionCheck(allowed=True, reason_code="OK", detail="Event is eligible for transfer.")


def check_exercise(event: VestingEventRecord) -> TransitionCheck:
    if event.plan_type not in EXERCISABLE_PLAN_TYPES:
        return TransitionCheck(
            allowed=False,
            reason_code="PLAN_TYPE_NOT_EXERCISABLE",
            detail=f"Exercise is only available for ESOP plans (plan_type={event.plan_type}).",
        )
    if event.status != VESTED:
        return TransitionCheck(
            allowed=False,
            reason_code="EVENT_NOT_VESTED",
            detail=f"Event must be vested before exercise (status={event.status}).",
        )
    return TransitionCheck(allowed=True, reason_code="OK", detail="Event is eligible for exercise.")


def check_confirmation(event: VestingEventRecord) -> TransitionCheck:
    if event.status != DUE:
        return TransitionCheck(
            allowed=False,
            reason_code="EVENT_NOT_DUE",
            detail=f"Only due events can be confirmed as vested (status={event.status}).",
        )
    return TransitionCheck(allowed=True, reason_code="OK", detail="Event is eligible for vesting.")


def _raise_if_denied(check: TransitionCheck) -> None:
    if not check.allowed:
        raise PreconditionError(check.detail, reason_code=check.reason_code)


def require_settleable(event: VestingEventRecord) -> None:
    _raise_if_denied(check_settlement(event))


def require_exercisable(event: VestingEventRecord) -> None:
    _raise_if_denied(check_exercise(event))


def require_confirmable(event: VestingEventRecord) -> None:
    _raise_if_denied(check_confirmation(event))


def requires_performance_confirmation(event_type: str, has_linked_metrics: bool) -> bool:
    return has_linked_metrics and event_type in PERFORMANCE_EVENT_TYPES
