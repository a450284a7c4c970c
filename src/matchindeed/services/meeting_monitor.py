"""Background jobs: meeting completion, reminder delivery, investigation escalation."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchindeed.app.config import get_settings
from matchindeed.domain.enums import ChargeStatus, MeetingStatus
from matchindeed.domain.models import Meeting
from matchindeed.services.errors import SettlementError
from matchindeed.services.meeting_state_machine import days_in_review, is_investigation_urgent
from matchindeed.services.notification_service import NotificationService
from matchindeed.services.settlement_service import MeetingSettlementService

logger = logging.getLogger(__name__)


async def complete_elapsed_meetings(
    db: AsyncSession,
    now: Optional[datetime] = None,
    duration_minutes: Optional[int] = None,
) -> int:
    """Complete confirmed meetings whose scheduled slot has ended."""
    now = now or datetime.now(timezone.utc)
    if duration_minutes is None:
        duration_minutes = get_settings().meeting_duration_minutes
    cutoff = now - timedelta(minutes=duration_minutes)

    result = await db.execute(
        select(Meeting.id).where(
            Meeting.status == MeetingStatus.CONFIRMED.value,
            Meeting.scheduled_at <= cutoff,
        )
    )
    meeting_ids = list(result.scalars().all())

    service = MeetingSettlementService()
    completed = 0
    for meeting_id in meeting_ids:
        try:
            await service.complete(db, meeting_id, now=now)
            completed += 1
        except SettlementError as e:
            # Someone else moved it first (canceled, finalized, ...)
            logger.info("Skipped completing meeting %s: %s", meeting_id, e.message)
    return completed


async def dispatch_due_reminders(db: AsyncSession, now: Optional[datetime] = None) -> int:
    return await NotificationService().dispatch_due_reminders(db, now)


async def log_urgent_investigations(db: AsyncSession, now: Optional[datetime] = None) -> list[str]:
    """Warn about meetings that have sat in review past the urgency threshold."""
    now = now or datetime.now(timezone.utc)
    threshold = get_settings().investigation_urgent_after_days

    result = await db.execute(
        select(Meeting).where(Meeting.charge_status == ChargeStatus.PENDING_REVIEW.value)
    )
    urgent = []
    for meeting in result.scalars().all():
        if is_investigation_urgent(meeting, now, threshold):
            urgent.append(meeting.id)
            logger.warning(
                "Urgent investigation: meeting=%s in review for %.1f days",
                meeting.id, days_in_review(meeting, now),
            )
    return urgent


async def run_monitor_pass(db: AsyncSession, now: Optional[datetime] = None) -> dict:
    """One sweep of every job. Returns per-job counts for logging."""
    now = now or datetime.now(timezone.utc)
    completed = await complete_elapsed_meetings(db, now)
    reminders = await dispatch_due_reminders(db, now)
    urgent = await log_urgent_investigations(db, now)
    summary = {"completed": completed, "reminders_sent": reminders, "urgent_investigations": len(urgent)}
    if completed or reminders or urgent:
        logger.info("Meeting monitor: %s", summary)
    return summary
