"""Unit tests for the MeetingStateMachine."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from matchindeed.domain.enums import ChargeStatus, MeetingStatus
from matchindeed.services.errors import StateConflictError
from matchindeed.services.meeting_state_machine import (
    CHARGE_TRANSITION_MAP,
    RESOLUTION_CHARGE_STATUS,
    TERMINAL_CHARGE_STATES,
    TERMINAL_STATES,
    TRANSITION_MAP,
    MeetingStateMachine,
    days_in_review,
    is_investigation_urgent,
)

S = MeetingStatus
C = ChargeStatus

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sm():
    return MeetingStateMachine()


def _make_meeting(**kwargs):
    """Create a simple namespace that acts like a meeting row."""
    defaults = {
        "id": "m-1",
        "status": S.CONFIRMED.value,
        "charge_status": C.PENDING.value,
        "scheduled_at": NOW - timedelta(hours=1),
        "finalized_at": None,
        "review_started_at": None,
        "updated_at": None,
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


# ---------------------------------------------------------------------------
# Transition maps
# ---------------------------------------------------------------------------


class TestTransitionMaps:
    @pytest.mark.parametrize(
        "from_status,to_status",
        [(f, t) for f, targets in TRANSITION_MAP.items() for t in targets],
    )
    def test_all_valid_transitions(self, sm, from_status, to_status):
        assert sm.validate_transition(from_status, to_status) is True

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES, key=lambda s: s.value))
    def test_terminal_states_have_no_exits(self, sm, terminal):
        for target in S:
            with pytest.raises(StateConflictError):
                sm.validate_transition(terminal, target)

    def test_pending_cannot_skip_to_completed(self, sm):
        with pytest.raises(StateConflictError) as exc:
            sm.validate_transition("pending", "completed", "m-9")
        assert exc.value.current_status == "pending"
        assert exc.value.meeting_id == "m-9"

    @pytest.mark.parametrize(
        "from_charge,to_charge",
        [(f, t) for f, targets in CHARGE_TRANSITION_MAP.items() for t in targets],
    )
    def test_valid_charge_transitions(self, sm, from_charge, to_charge):
        assert sm.validate_charge_transition(from_charge, to_charge) is True

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_CHARGE_STATES, key=lambda s: s.value))
    def test_terminal_charge_states_are_final(self, sm, terminal):
        for target in C:
            with pytest.raises(StateConflictError):
                sm.validate_charge_transition(terminal, target)

    def test_every_resolution_lands_on_a_terminal_charge(self):
        assert set(RESOLUTION_CHARGE_STATUS.values()) <= TERMINAL_CHARGE_STATES


# ---------------------------------------------------------------------------
# Operation preconditions
# ---------------------------------------------------------------------------


class TestRespondAndCancel:
    def test_respond_only_while_pending(self, sm):
        sm.check_can_respond(_make_meeting(status="pending"))
        with pytest.raises(StateConflictError):
            sm.check_can_respond(_make_meeting(status="confirmed"))

    @pytest.mark.parametrize("status", ["pending", "confirmed"])
    def test_cancel_allowed(self, sm, status):
        sm.check_can_cancel(_make_meeting(status=status))

    @pytest.mark.parametrize("status", ["canceled", "completed"])
    def test_cancel_rejected(self, sm, status):
        with pytest.raises(StateConflictError):
            sm.check_can_cancel(_make_meeting(status=status))


class TestComplete:
    def test_complete_after_start(self, sm):
        sm.check_can_complete(_make_meeting(), NOW)

    def test_complete_before_start_rejected(self, sm):
        meeting = _make_meeting(scheduled_at=NOW + timedelta(hours=2))
        with pytest.raises(StateConflictError, match="not started"):
            sm.check_can_complete(meeting, NOW)

    def test_naive_scheduled_at_is_treated_as_utc(self, sm):
        meeting = _make_meeting(scheduled_at=(NOW - timedelta(minutes=5)).replace(tzinfo=None))
        sm.check_can_complete(meeting, NOW)


class TestFinalize:
    def test_completed_meeting_does_not_need_completing(self, sm):
        assert sm.check_can_finalize(_make_meeting(status="completed"), NOW) is False

    def test_confirmed_past_start_completes_implicitly(self, sm):
        assert sm.check_can_finalize(_make_meeting(status="confirmed"), NOW) is True

    def test_confirmed_future_meeting_rejected(self, sm):
        meeting = _make_meeting(scheduled_at=NOW + timedelta(days=1))
        with pytest.raises(StateConflictError, match="not yet completed"):
            sm.check_can_finalize(meeting, NOW)

    def test_pending_meeting_rejected(self, sm):
        with pytest.raises(StateConflictError):
            sm.check_can_finalize(_make_meeting(status="pending"), NOW)

    def test_finalized_at_set_rejected(self, sm):
        meeting = _make_meeting(status="completed", finalized_at=NOW)
        with pytest.raises(StateConflictError, match="already finalized"):
            sm.check_can_finalize(meeting, NOW)

    @pytest.mark.parametrize("charge", ["captured", "refunded"])
    def test_terminal_charge_rejected(self, sm, charge):
        with pytest.raises(StateConflictError, match="already finalized") as exc:
            sm.check_can_finalize(_make_meeting(status="completed", charge_status=charge), NOW)
        assert exc.value.current_charge_status == charge

    def test_under_review_rejected(self, sm):
        meeting = _make_meeting(status="completed", charge_status="pending_review")
        with pytest.raises(StateConflictError, match="investigation"):
            sm.check_can_finalize(meeting, NOW)


class TestResolve:
    def test_resolve_requires_pending_review(self, sm):
        sm.check_can_resolve(_make_meeting(charge_status="pending_review"))
        for charge in ("pending", "captured", "refunded"):
            with pytest.raises(StateConflictError):
                sm.check_can_resolve(_make_meeting(charge_status=charge))


# ---------------------------------------------------------------------------
# Derived investigation properties
# ---------------------------------------------------------------------------


class TestInvestigationAge:
    def test_not_in_review(self):
        meeting = _make_meeting(charge_status="captured", review_started_at=NOW - timedelta(days=5))
        assert days_in_review(meeting, NOW) is None
        assert is_investigation_urgent(meeting, NOW) is False

    def test_recent_review_is_not_urgent(self):
        meeting = _make_meeting(charge_status="pending_review", review_started_at=NOW - timedelta(days=1))
        assert days_in_review(meeting, NOW) == pytest.approx(1.0)
        assert is_investigation_urgent(meeting, NOW) is False

    def test_two_days_is_urgent(self):
        meeting = _make_meeting(charge_status="pending_review", review_started_at=NOW - timedelta(days=2))
        assert is_investigation_urgent(meeting, NOW) is True

    def test_custom_threshold(self):
        meeting = _make_meeting(charge_status="pending_review", review_started_at=NOW - timedelta(days=3))
        assert is_investigation_urgent(meeting, NOW, urgent_after_days=5) is False

    def test_falls_back_to_updated_at(self):
        meeting = _make_meeting(
            charge_status="pending_review",
            updated_at=(NOW - timedelta(days=3)).replace(tzinfo=None),
        )
        assert days_in_review(meeting, NOW) == pytest.approx(3.0)
