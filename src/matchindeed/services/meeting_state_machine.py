"""Meeting state machine: validates lifecycle and charge transitions.

Two status fields move independently:

    status:         pending -> confirmed -> completed
                    pending | confirmed -> canceled
    charge_status:  pending -> captured | refunded | pending_review
                    pending_review -> captured | refunded   (admin resolution only)

The checks here are pure. Persisting a transition, and guarding it against
concurrent writers, is the settlement service's job.
"""

from datetime import datetime, timezone
from typing import Optional

from matchindeed.domain.enums import (
    ChargeDecision,
    ChargeStatus,
    InvestigationResolution,
    MeetingStatus,
)
from matchindeed.services.errors import StateConflictError

S = MeetingStatus
C = ChargeStatus

# ---------------------------------------------------------------------------
# Transition maps
# ---------------------------------------------------------------------------

TRANSITION_MAP: dict[MeetingStatus, set[MeetingStatus]] = {
    S.PENDING: {S.CONFIRMED, S.CANCELED},
    S.CONFIRMED: {S.COMPLETED, S.CANCELED},
    S.CANCELED: set(),
    S.COMPLETED: set(),
}

CHARGE_TRANSITION_MAP: dict[ChargeStatus, set[ChargeStatus]] = {
    C.PENDING: {C.CAPTURED, C.REFUNDED, C.PENDING_REVIEW},
    C.PENDING_REVIEW: {C.CAPTURED, C.REFUNDED},
    C.CAPTURED: set(),
    C.REFUNDED: set(),
}

TERMINAL_STATES: set[MeetingStatus] = {S.CANCELED, S.COMPLETED}

TERMINAL_CHARGE_STATES: set[ChargeStatus] = {C.CAPTURED, C.REFUNDED}

CANCELLABLE_STATES: set[MeetingStatus] = {S.PENDING, S.CONFIRMED}

DECISION_CHARGE_STATUS: dict[ChargeDecision, ChargeStatus] = {
    ChargeDecision.CAPTURE: C.CAPTURED,
    ChargeDecision.REFUND: C.REFUNDED,
    ChargeDecision.PENDING_REVIEW: C.PENDING_REVIEW,
}

R = InvestigationResolution

RESOLUTION_CHARGE_STATUS: dict[InvestigationResolution, ChargeStatus] = {
    R.CHARGE_REQUESTER: C.CAPTURED,
    R.REFUND_REQUESTER: C.REFUNDED,
    R.CHARGE_ACCEPTER: C.CAPTURED,
    R.NO_CHARGE: C.REFUNDED,
    R.SPLIT: C.CAPTURED,
}


def _as_status(value) -> MeetingStatus:
    return value if isinstance(value, MeetingStatus) else MeetingStatus(value)


def _as_charge(value) -> ChargeStatus:
    return value if isinstance(value, ChargeStatus) else ChargeStatus(value)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MeetingStateMachine:
    """Validates meeting transitions and the preconditions of each operation."""

    def validate_transition(self, current, target, meeting_id: Optional[str] = None) -> bool:
        """Return True if ``current -> target`` is allowed. Raise StateConflictError if not."""
        current, target = _as_status(current), _as_status(target)
        if target not in TRANSITION_MAP.get(current, set()):
            raise StateConflictError(
                f"Meeting cannot move from {current.value} to {target.value}",
                meeting_id,
                current_status=current.value,
            )
        return True

    def validate_charge_transition(self, current, target, meeting_id: Optional[str] = None) -> bool:
        current, target = _as_charge(current), _as_charge(target)
        if target not in CHARGE_TRANSITION_MAP.get(current, set()):
            raise StateConflictError(
                f"Charge cannot move from {current.value} to {target.value}",
                meeting_id,
                current_charge_status=current.value,
            )
        return True

    def check_can_respond(self, meeting) -> None:
        status = _as_status(meeting.status)
        if status != S.PENDING:
            raise StateConflictError(
                f"Meeting is {status.value}; responses are closed",
                meeting.id,
                current_status=status.value,
            )

    def check_can_cancel(self, meeting) -> None:
        status = _as_status(meeting.status)
        if status not in CANCELLABLE_STATES:
            raise StateConflictError(
                f"Meeting is {status.value} and can no longer be canceled",
                meeting.id,
                current_status=status.value,
            )

    def check_can_complete(self, meeting, now: datetime) -> None:
        status = _as_status(meeting.status)
        self.validate_transition(status, S.COMPLETED, meeting.id)
        if _aware(meeting.scheduled_at) > _aware(now):
            raise StateConflictError(
                "Meeting has not started yet",
                meeting.id,
                current_status=status.value,
            )

    def check_can_finalize(self, meeting, now: datetime) -> bool:
        """Validate a host finalization.

        Returns True when the meeting is still ``confirmed`` but its start
        time has passed, meaning finalization also completes it.
        """
        status = _as_status(meeting.status)
        charge = _as_charge(meeting.charge_status)

        if meeting.finalized_at is not None or charge in TERMINAL_CHARGE_STATES:
            raise StateConflictError(
                "Meeting already finalized",
                meeting.id,
                current_status=status.value,
                current_charge_status=charge.value,
            )
        if charge == C.PENDING_REVIEW:
            raise StateConflictError(
                "Meeting is under investigation; an admin must resolve it",
                meeting.id,
                current_status=status.value,
                current_charge_status=charge.value,
            )
        if status == S.COMPLETED:
            return False
        if status == S.CONFIRMED and _aware(meeting.scheduled_at) <= _aware(now):
            return True
        raise StateConflictError(
            "Meeting not yet completed",
            meeting.id,
            current_status=status.value,
            current_charge_status=charge.value,
        )

    def check_can_resolve(self, meeting) -> None:
        charge = _as_charge(meeting.charge_status)
        if charge != C.PENDING_REVIEW:
            raise StateConflictError(
                f"Meeting is not under investigation (charge status {charge.value})",
                meeting.id,
                current_charge_status=charge.value,
            )


# ---------------------------------------------------------------------------
# Read-time derived properties
# ---------------------------------------------------------------------------


def days_in_review(meeting, now: datetime) -> Optional[float]:
    """Days since the meeting entered review, or None when it is not in review."""
    if _as_charge(meeting.charge_status) != C.PENDING_REVIEW:
        return None
    started = meeting.review_started_at or meeting.updated_at
    if started is None:
        return None
    return (_aware(now) - _aware(started)).total_seconds() / 86400


def is_investigation_urgent(meeting, now: datetime, urgent_after_days: int = 2) -> bool:
    """True once a pending_review meeting has been open ``urgent_after_days`` or more."""
    days = days_in_review(meeting, now)
    return days is not None and days >= urgent_after_days
