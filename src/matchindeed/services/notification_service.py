"""In-app notifications and meeting reminders.

Notifications are best-effort: the settlement service builds them while a
transition runs, then dispatches them after that transition has committed.
A failed insert is logged and dropped; it never undoes the transition.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from matchindeed.domain.enums import (
    ChargeDecision,
    InvestigationResolution,
    MeetingOutcome,
    MeetingStatus,
    NotificationKind,
)
from matchindeed.domain.models import Meeting, MeetingReminder, Notification

logger = logging.getLogger(__name__)


@dataclass
class OutboundNotification:
    """A notification waiting for its transition to commit."""

    user_id: str
    kind: NotificationKind
    title: str
    message: str
    data: dict = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Message builders
# ---------------------------------------------------------------------------


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def format_meeting_date(value: datetime) -> str:
    return _aware(value).strftime("%B %d, %Y")


def format_meeting_time(value: datetime) -> str:
    return _aware(value).strftime("%B %d, %Y at %H:%M UTC")


def build_request_message(requester_name: str, scheduled_at: datetime) -> str:
    return f"{requester_name} has requested a video meeting with you on {format_meeting_time(scheduled_at)}."


def build_confirmed_message(scheduled_at: datetime) -> str:
    return (
        f"Your video meeting on {format_meeting_time(scheduled_at)} is confirmed. "
        "All participants have accepted."
    )


def build_declined_message(decliner_name: str, scheduled_at: datetime) -> str:
    return (
        f"{decliner_name} declined the video meeting requested for "
        f"{format_meeting_date(scheduled_at)}. No charges have been applied."
    )


def build_canceled_message(canceller_name: str, scheduled_at: datetime) -> str:
    return f"{canceller_name} has canceled the video meeting scheduled for {format_meeting_time(scheduled_at)}."


def build_cancellation_receipt(scheduled_at: datetime, fee_cents: int) -> str:
    message = f"You have canceled the video meeting scheduled for {format_meeting_date(scheduled_at)}."
    if fee_cents:
        message += f" A cancellation fee of {fee_cents / 100:.2f} has been charged to your wallet."
    return message


_OUTCOME_OPENERS = {
    MeetingOutcome.COMPLETED: "Your video dating meeting has been concluded. ",
    MeetingOutcome.NO_SHOW: "The video dating meeting has been concluded due to a no-show. ",
    MeetingOutcome.EARLY_LEAVE: "The video dating meeting has been concluded due to an early departure. ",
    MeetingOutcome.NETWORK_DISCONNECT: (
        "The video dating meeting has been concluded due to a network disconnection. "
    ),
}

_DECISION_CLOSERS = {
    ChargeDecision.CAPTURE: "The meeting charges have been finalized.",
    ChargeDecision.REFUND: "Your credits have been refunded to your account.",
    ChargeDecision.PENDING_REVIEW: (
        "The charges are under review by MatchIndeed. This may take 1-2 business days. "
        "You will be notified of the outcome."
    ),
}


def build_finalize_message(outcome: MeetingOutcome, decision: ChargeDecision) -> str:
    """Message for the requester once the host has concluded a meeting."""
    return _OUTCOME_OPENERS.get(outcome, "") + _DECISION_CLOSERS.get(decision, "")


def build_investigation_notice(name: str, scheduled_at: datetime) -> str:
    return (
        f"Dear {name}, in your video dating meeting held on {format_meeting_date(scheduled_at)}, "
        "the meeting will be reviewed to determine if there is irregularity or inconsistency "
        "which determines the charges. This review may take 1-2 business days."
    )


R = InvestigationResolution

# (resolution, recipient is the requester) -> outcome sentence
_RESOLUTION_TEXT: dict[tuple[InvestigationResolution, bool], str] = {
    (R.CHARGE_REQUESTER, True): "the meeting charge stands as applied to your account.",
    (R.CHARGE_REQUESTER, False): "the meeting charge stands. No charges have been applied to your account.",
    (R.REFUND_REQUESTER, True): (
        "we have determined that a refund is warranted. Your credits have been returned to your account."
    ),
    (R.REFUND_REQUESTER, False): (
        "we have determined that a refund is warranted. No charges have been applied to your account."
    ),
    (R.CHARGE_ACCEPTER, True): (
        "we have determined that a refund is warranted. Your credits have been returned to your account."
    ),
    (R.CHARGE_ACCEPTER, False): "charges have been applied to your account based on our investigation findings.",
    (R.NO_CHARGE, True): "no charges have been applied. Your credits have been refunded.",
    (R.NO_CHARGE, False): "no charges have been applied.",
    (R.SPLIT, True): "both parties share responsibility. Charges remain as finalized.",
    (R.SPLIT, False): "both parties share responsibility. Charges remain as finalized.",
}


def build_resolution_message(
    name: str,
    resolution: InvestigationResolution,
    scheduled_at: datetime,
    is_requester: bool,
) -> str:
    outcome = _RESOLUTION_TEXT.get(
        (resolution, is_requester),
        "the investigation has been concluded. Please check your account for details.",
    )
    return (
        f"Dear {name}, after reviewing your video dating meeting held on "
        f"{format_meeting_date(scheduled_at)}, {outcome}"
    )


def build_reminder_message(scheduled_at: datetime, now: datetime) -> str:
    minutes = max(int((_aware(scheduled_at) - _aware(now)).total_seconds() // 60), 0)
    if minutes >= 120:
        lead = f"Your video meeting starts in about {round(minutes / 60)} hours"
    elif minutes >= 60:
        lead = "Your video meeting starts in about an hour"
    else:
        lead = f"Your video meeting starts in {minutes} minutes"
    return f"{lead}. Meeting scheduled for {format_meeting_time(scheduled_at)}."


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class NotificationService:
    """Writes notification rows and manages meeting reminders."""

    async def notify(
        self,
        db: AsyncSession,
        user_id: str,
        kind: NotificationKind,
        title: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[Notification]:
        """Insert and commit one notification. Returns None on failure."""
        notification = Notification(
            user_id=user_id,
            kind=kind.value if isinstance(kind, NotificationKind) else kind,
            title=title,
            message=message,
            data=data or {},
        )
        try:
            db.add(notification)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.warning(
                "Notification %s to user %s failed", kind, user_id, exc_info=True
            )
            return None
        return notification

    async def dispatch(self, db: AsyncSession, outbox: Iterable[OutboundNotification]) -> int:
        """Send each queued notification independently. Returns how many were stored."""
        sent = 0
        for item in outbox:
            if await self.notify(db, item.user_id, item.kind, item.title, item.message, item.data):
                sent += 1
        return sent

    async def schedule_meeting_reminders(
        self,
        db: AsyncSession,
        meeting_id: str,
        scheduled_at: datetime,
        user_ids: Iterable[str],
        now: datetime,
        offsets_minutes: Iterable[int],
    ) -> int:
        """Create reminder rows at each offset before the meeting that is still ahead."""
        scheduled = _aware(scheduled_at)
        now = _aware(now)
        user_ids = list(user_ids)
        created = 0
        for offset in offsets_minutes:
            remind_at = scheduled - timedelta(minutes=offset)
            if remind_at <= now:
                continue
            for user_id in user_ids:
                db.add(MeetingReminder(meeting_id=meeting_id, user_id=user_id, remind_at=remind_at))
                created += 1
        await db.commit()
        logger.info("Scheduled %d reminders for meeting %s", created, meeting_id)
        return created

    async def dispatch_due_reminders(self, db: AsyncSession, now: Optional[datetime] = None) -> int:
        """Turn due reminders for confirmed meetings into notifications."""
        now = _aware(now or datetime.now(timezone.utc))
        result = await db.execute(
            select(MeetingReminder, Meeting.scheduled_at)
            .join(Meeting, Meeting.id == MeetingReminder.meeting_id)
            .where(
                MeetingReminder.sent_at.is_(None),
                MeetingReminder.remind_at <= now,
                Meeting.status == MeetingStatus.CONFIRMED.value,
            )
            .order_by(MeetingReminder.remind_at)
        )
        due = [(r.id, r.user_id, r.meeting_id, scheduled_at) for r, scheduled_at in result.all()]

        sent = 0
        for reminder_id, user_id, meeting_id, scheduled_at in due:
            await db.execute(
                update(MeetingReminder)
                .where(MeetingReminder.id == reminder_id)
                .values(sent_at=now)
                .execution_options(synchronize_session=False)
            )
            # Committed together with the notification, so a failed insert is retried next sweep
            stored = await self.notify(
                db,
                user_id,
                NotificationKind.MEETING_REMINDER,
                "Meeting Reminder",
                build_reminder_message(scheduled_at, now),
                {"meeting_id": meeting_id},
            )
            if stored:
                sent += 1
        return sent
