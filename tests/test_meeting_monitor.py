"""Tests for the background meeting monitor and reminder delivery."""

from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from matchindeed.domain.models import MeetingReminder, Notification
from matchindeed.services.meeting_monitor import (
    complete_elapsed_meetings,
    dispatch_due_reminders,
    log_urgent_investigations,
    run_monitor_pass,
)
from matchindeed.services.notification_service import NotificationService, build_reminder_message
from matchindeed.services.settlement_service import MeetingSettlementService

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
START = NOW + timedelta(days=1)


async def _reminder_notifications(db) -> list[str]:
    result = await db.execute(
        select(Notification.user_id).where(Notification.kind == "meeting_reminder")
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------


async def test_completes_meetings_once_their_slot_has_ended(db_session, confirmed_meeting):
    meeting, _, _ = await confirmed_meeting()
    meeting_id = meeting.id

    assert await complete_elapsed_meetings(db_session, START + timedelta(minutes=10), duration_minutes=30) == 0
    assert await complete_elapsed_meetings(db_session, START + timedelta(minutes=31), duration_minutes=30) == 1

    meeting, _ = await MeetingSettlementService().get_meeting_detail(db_session, meeting_id)
    assert meeting.status == "completed"


async def test_canceled_meetings_are_left_alone(db_session, confirmed_meeting):
    meeting, host, _ = await confirmed_meeting()
    await MeetingSettlementService().cancel(db_session, meeting.id, host.id, now=NOW)

    assert await complete_elapsed_meetings(db_session, START + timedelta(hours=2), duration_minutes=30) == 0


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


async def test_due_reminders_are_sent_once(db_session, confirmed_meeting):
    _, host, guest = await confirmed_meeting()
    host_id, guest_id = host.id, guest.id

    assert await dispatch_due_reminders(db_session, NOW) == 0
    assert await dispatch_due_reminders(db_session, START - timedelta(minutes=30)) == 2
    assert await dispatch_due_reminders(db_session, START - timedelta(minutes=20)) == 0

    assert sorted(await _reminder_notifications(db_session)) == sorted([host_id, guest_id])
    result = await db_session.execute(select(MeetingReminder.sent_at))
    assert all(sent is not None for sent in result.scalars().all())


async def test_reminders_for_canceled_meetings_are_not_sent(db_session, confirmed_meeting):
    meeting, host, _ = await confirmed_meeting()
    await MeetingSettlementService().cancel(db_session, meeting.id, host.id, now=NOW)

    assert await dispatch_due_reminders(db_session, START) == 0
    assert await _reminder_notifications(db_session) == []


async def test_only_future_reminders_are_scheduled(db_session, make_account):
    user = await make_account()
    created = await NotificationService().schedule_meeting_reminders(
        db_session, "m-1", START, [user.id], START - timedelta(minutes=90), [1440, 60]
    )
    assert created == 1


def test_reminder_message_lead_time():
    assert "about an hour" in build_reminder_message(START, START - timedelta(minutes=60))
    assert "in 15 minutes" in build_reminder_message(START, START - timedelta(minutes=15))
    assert "about 24 hours" in build_reminder_message(START, START - timedelta(days=1))


# ---------------------------------------------------------------------------
# Investigation escalation
# ---------------------------------------------------------------------------


async def test_urgent_investigations_are_reported(db_session, confirmed_meeting):
    meeting, host, _ = await confirmed_meeting()
    meeting_id = meeting.id
    review_at = START + timedelta(hours=1)
    await MeetingSettlementService().finalize(
        db_session, meeting_id, "no_show", "accepter_fault", "pending_review", None, host.id, now=review_at
    )

    assert await log_urgent_investigations(db_session, review_at + timedelta(days=1)) == []
    assert await log_urgent_investigations(db_session, review_at + timedelta(days=3)) == [meeting_id]


async def test_monitor_pass_summary(db_session, confirmed_meeting):
    await confirmed_meeting()

    summary = await run_monitor_pass(db_session, START + timedelta(hours=1))

    assert summary == {"completed": 1, "reminders_sent": 0, "urgent_investigations": 0}
