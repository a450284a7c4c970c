"""Meeting Settlement Service - Handles the meeting lifecycle and its money.

This is the single place where meeting state and ledger balances change:
request, respond, cancel, complete, finalize and investigation resolution.
Routes and background jobs are thin callers.

TRANSACTIONS: each public operation runs as one unit of work. The meeting
row is claimed with ``UPDATE ... WHERE version = :read_version``; a writer
that lost the race gets ``StateConflictError``. Any error (including a
failed ledger posting) rolls the whole operation back. Notifications are
queued while the operation runs and only sent after it has committed.

MONEY: the fee (credits, plus cents when the meeting carries a cash fee)
is taken from the requester when the meeting is confirmed. From then on a
refund gives back exactly what was taken and a capture posts nothing more.
A pending meeting holds nothing, so declining or cancelling it is free; a
confirmed meeting that is canceled keeps the fee.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from matchindeed.app.config import get_settings
from matchindeed.domain.enums import (
    AccountStatus,
    ChargeDecision,
    ChargeStatus,
    FaultDetermination,
    InvestigationResolution,
    LedgerReason,
    MeetingEventType,
    MeetingOutcome,
    MeetingStatus,
    MeetingType,
    NotificationKind,
    ParticipantResponse,
    ParticipantRole,
)
from matchindeed.domain.models import Account, Meeting, MeetingEvent, MeetingParticipant
from matchindeed.services import ledger_service, profile_reader
from matchindeed.services.errors import (
    CancellationFeeConfirmationRequired,
    InsufficientCreditsError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from matchindeed.services.meeting_state_machine import (
    DECISION_CHARGE_STATUS,
    RESOLUTION_CHARGE_STATUS,
    MeetingStateMachine,
    days_in_review,
    is_investigation_urgent,
)
from matchindeed.services.notification_service import (
    NotificationService,
    OutboundNotification,
    build_canceled_message,
    build_cancellation_receipt,
    build_confirmed_message,
    build_declined_message,
    build_finalize_message,
    build_investigation_notice,
    build_request_message,
    build_resolution_message,
)

logger = logging.getLogger(__name__)

R = InvestigationResolution

# Resolutions that return the fee to the requester
REFUNDING_RESOLUTIONS = {R.REFUND_REQUESTER, R.NO_CHARGE, R.CHARGE_ACCEPTER}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _dt(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _aware(value).isoformat()
    return str(value)


def _coerce(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"Invalid {field} '{value}' (allowed: {allowed})")


def serialize_participant(participant: MeetingParticipant) -> dict:
    return {
        "user_id": participant.user_id,
        "role": participant.role,
        "response": participant.response,
        "responded_at": _dt(participant.responded_at),
    }


def serialize_meeting(
    meeting: Meeting,
    participants: Optional[Sequence[MeetingParticipant]] = None,
    now: Optional[datetime] = None,
) -> dict:
    """API view of a meeting, including the read-time investigation flags."""
    now = now or _utcnow()
    review_days = days_in_review(meeting, now)
    data = {
        "id": meeting.id,
        "host_id": meeting.host_id,
        "requester_id": meeting.requester_id,
        "type": meeting.type,
        "status": meeting.status,
        "scheduled_at": _dt(meeting.scheduled_at),
        "fee_credits": meeting.fee_credits,
        "fee_cents": meeting.fee_cents,
        "cancellation_fee_cents": meeting.cancellation_fee_cents,
        "charge_status": meeting.charge_status,
        "confirmed_at": _dt(meeting.confirmed_at),
        "canceled_at": _dt(meeting.canceled_at),
        "canceled_by": meeting.canceled_by,
        "cancel_reason": meeting.cancel_reason,
        "completed_at": _dt(meeting.completed_at),
        "outcome": meeting.outcome,
        "fault_determination": meeting.fault_determination,
        "host_notes": meeting.host_notes,
        "finalized_at": _dt(meeting.finalized_at),
        "finalized_by": meeting.finalized_by,
        "review_started_at": _dt(meeting.review_started_at),
        "resolution": meeting.resolution,
        "resolution_notes": meeting.resolution_notes,
        "days_in_review": round(review_days, 1) if review_days is not None else None,
        "is_urgent": is_investigation_urgent(
            meeting, now, get_settings().investigation_urgent_after_days
        ),
        "version": meeting.version,
        "created_at": _dt(meeting.created_at),
    }
    if participants is not None:
        data["participants"] = [serialize_participant(p) for p in participants]
    return data


class MeetingSettlementService:
    """Owns every meeting state transition and its paired ledger effect."""

    def __init__(self, notifications: Optional[NotificationService] = None):
        self.notifications = notifications or NotificationService()
        self.state_machine = MeetingStateMachine()

    # ------------------------------------------------------------------
    # Loading and claiming
    # ------------------------------------------------------------------

    async def _load(self, db: AsyncSession, meeting_id: str) -> Meeting:
        result = await db.execute(
            select(Meeting)
            .where(Meeting.id == meeting_id)
            .execution_options(populate_existing=True)
        )
        meeting = result.scalar_one_or_none()
        if meeting is None:
            raise NotFoundError(f"Meeting {meeting_id} not found", meeting_id)
        return meeting

    async def get_participants(self, db: AsyncSession, meeting_id: str) -> list[MeetingParticipant]:
        result = await db.execute(
            select(MeetingParticipant)
            .where(MeetingParticipant.meeting_id == meeting_id)
            .order_by(MeetingParticipant.role, MeetingParticipant.user_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _claim(self, db: AsyncSession, meeting: Meeting, now: datetime, **values) -> None:
        """Apply ``values`` only if nobody changed the meeting since it was read."""
        expected = meeting.version
        result = await db.execute(
            update(Meeting)
            .where(Meeting.id == meeting.id, Meeting.version == expected)
            .values(version=expected + 1, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StateConflictError(
                "Meeting was modified by another request; reload and try again",
                meeting.id,
                current_status=meeting.status,
                current_charge_status=meeting.charge_status,
            )
        await db.refresh(meeting)

    def _record_event(
        self,
        db: AsyncSession,
        meeting_id: str,
        event_type: MeetingEventType,
        actor_id: Optional[str],
        from_status: str,
        to_status: str,
        from_charge_status: str,
        to_charge_status: str,
        data: Optional[dict] = None,
    ) -> None:
        db.add(
            MeetingEvent(
                meeting_id=meeting_id,
                event_type=event_type.value,
                actor_id=actor_id,
                from_status=from_status,
                to_status=to_status,
                from_charge_status=from_charge_status,
                to_charge_status=to_charge_status,
                data=data or {},
            )
        )

    async def _commit_and_notify(
        self,
        db: AsyncSession,
        meeting: Meeting,
        outbox: list[OutboundNotification],
    ) -> Meeting:
        await db.commit()
        await self.notifications.dispatch(db, outbox)
        await db.refresh(meeting)
        return meeting

    async def _pending_commitments(self, db: AsyncSession, requester_id: str) -> int:
        """Credits promised to this requester's unconfirmed meetings.

        Confirmed meetings (and everything after, including pending_review)
        have already taken their fee, so the balance reflects them.
        """
        result = await db.execute(
            select(func.coalesce(func.sum(Meeting.fee_credits), 0)).where(
                Meeting.requester_id == requester_id,
                Meeting.status == MeetingStatus.PENDING.value,
            )
        )
        return int(result.scalar_one())

    async def _take_fee(self, db: AsyncSession, meeting: Meeting) -> None:
        """Debit the requester for a meeting that has just been confirmed."""
        requester = meeting.requester_id
        if meeting.fee_credits:
            balance = await ledger_service.credit_balance(db, requester) or 0
            if balance < meeting.fee_credits:
                raise InsufficientCreditsError(meeting.fee_credits, balance)
            await ledger_service.post_credit(
                db, requester, -meeting.fee_credits, LedgerReason.MEETING_CHARGE, meeting.id,
                description="Meeting fee taken on confirmation",
            )
        if meeting.fee_cents:
            await ledger_service.post_wallet_adjustment(
                db, requester, -meeting.fee_cents, LedgerReason.MEETING_CHARGE, meeting.id,
                description="Meeting fee taken on confirmation",
            )

    async def _return_fee(
        self, db: AsyncSession, meeting: Meeting, reason: LedgerReason, description: str
    ) -> None:
        """Give the requester back what ``_take_fee`` debited."""
        if meeting.fee_credits:
            await ledger_service.post_credit(
                db, meeting.requester_id, meeting.fee_credits, reason, meeting.id,
                description=description,
            )
        if meeting.fee_cents:
            await ledger_service.post_wallet_adjustment(
                db, meeting.requester_id, meeting.fee_cents, reason, meeting.id,
                description=description,
            )

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    async def request_meeting(
        self,
        db: AsyncSession,
        host_id: str,
        guest_id: str,
        scheduled_at: datetime,
        fee_credits: int,
        *,
        fee_cents: int = 0,
        cancellation_fee_cents: Optional[int] = None,
        meeting_type: MeetingType = MeetingType.ONE_ON_ONE,
        extra_guest_ids: Sequence[str] = (),
        coordinator_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Meeting:
        """Create a pending meeting requested (and paid for) by ``guest_id``.

        The requester is implicitly accepted; the host and any extra guests
        start as ``requested`` and must answer. Nothing is posted to the
        ledger yet, but the requester's credits minus those promised to their
        other unconfirmed meetings must cover the fee.

        Raises:
            ValidationError: past start time, identical or duplicate
                participants, unknown/inactive users, blocked pair,
                negative fees.
            InsufficientCreditsError: the requester cannot cover the fee.
        """
        now = _aware(now) or _utcnow()
        meeting_type = _coerce(MeetingType, meeting_type, "meeting type")

        try:
            scheduled = _aware(scheduled_at)
            if not isinstance(scheduled, datetime):
                raise ValidationError("scheduled_at must be a datetime")
            if scheduled <= now:
                raise ValidationError("Meeting must be scheduled in the future")
            if host_id == guest_id:
                raise ValidationError("Host and guest must be different users")
            if fee_credits < 0 or fee_cents < 0 or (cancellation_fee_cents or 0) < 0:
                raise ValidationError("Fees cannot be negative")

            extra_guest_ids = list(extra_guest_ids)
            if meeting_type == MeetingType.ONE_ON_ONE and (extra_guest_ids or coordinator_id):
                raise ValidationError("A one-on-one meeting has exactly one guest and no coordinator")

            participant_ids = [host_id, guest_id, *extra_guest_ids]
            if coordinator_id:
                participant_ids.append(coordinator_id)
            if len(set(participant_ids)) != len(participant_ids):
                raise ValidationError("Duplicate participant")

            result = await db.execute(
                select(Account.id, Account.account_status).where(Account.id.in_(participant_ids))
            )
            statuses = dict(result.all())
            for user_id in participant_ids:
                if user_id not in statuses:
                    raise ValidationError(f"Unknown user {user_id}")
                if statuses[user_id] != AccountStatus.ACTIVE.value:
                    raise ValidationError(f"User {user_id} is not active")

            for other_id in participant_ids:
                if other_id != guest_id and await profile_reader.is_blocked_pair(db, guest_id, other_id):
                    raise ValidationError("You cannot request a meeting with this user")

            if fee_credits > 0:
                balance = await ledger_service.credit_balance(db, guest_id) or 0
                available = balance - await self._pending_commitments(db, guest_id)
                if fee_credits > available:
                    raise InsufficientCreditsError(fee_credits, max(available, 0))

            meeting = Meeting(
                host_id=host_id,
                requester_id=guest_id,
                type=meeting_type.value,
                status=MeetingStatus.PENDING.value,
                scheduled_at=scheduled,
                fee_credits=fee_credits,
                fee_cents=fee_cents,
                cancellation_fee_cents=fee_cents if cancellation_fee_cents is None else cancellation_fee_cents,
                charge_status=ChargeStatus.PENDING.value,
                version=1,
            )
            db.add(meeting)
            await db.flush()

            db.add(MeetingParticipant(
                meeting_id=meeting.id,
                user_id=host_id,
                role=ParticipantRole.HOST.value,
                response=ParticipantResponse.REQUESTED.value,
            ))
            db.add(MeetingParticipant(
                meeting_id=meeting.id,
                user_id=guest_id,
                role=ParticipantRole.GUEST.value,
                response=ParticipantResponse.ACCEPTED.value,
                responded_at=now,
            ))
            for user_id in extra_guest_ids:
                db.add(MeetingParticipant(
                    meeting_id=meeting.id,
                    user_id=user_id,
                    role=ParticipantRole.GUEST.value,
                    response=ParticipantResponse.REQUESTED.value,
                ))
            if coordinator_id:
                db.add(MeetingParticipant(
                    meeting_id=meeting.id,
                    user_id=coordinator_id,
                    role=ParticipantRole.COORDINATOR.value,
                    response=ParticipantResponse.ACCEPTED.value,
                    responded_at=now,
                ))

            self._record_event(
                db, meeting.id, MeetingEventType.REQUESTED, guest_id,
                None, MeetingStatus.PENDING.value, None, ChargeStatus.PENDING.value,
                {"fee_credits": fee_credits, "fee_cents": fee_cents, "type": meeting_type.value},
            )

            names = await profile_reader.get_display_names(db, [guest_id])
            outbox = [
                OutboundNotification(
                    user_id=user_id,
                    kind=NotificationKind.MEETING_REQUEST,
                    title="New Meeting Request",
                    message=build_request_message(names[guest_id], scheduled),
                    data={"meeting_id": meeting.id, "requester_id": guest_id},
                )
                for user_id in participant_ids
                if user_id != guest_id
            ]
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Meeting requested: meeting=%s host=%s requester=%s fee=%d",
            meeting.id, host_id, guest_id, fee_credits,
        )
        return await self._commit_and_notify(db, meeting, outbox)

    # ------------------------------------------------------------------
    # Respond
    # ------------------------------------------------------------------

    async def respond(
        self,
        db: AsyncSession,
        meeting_id: str,
        user_id: str,
        accept: bool,
        now: Optional[datetime] = None,
    ) -> Meeting:
        """Record a participant's accept or decline.

        A decline cancels the meeting at once. The last outstanding accept
        confirms it, takes the fee from the requester and schedules
        reminders; reminder failures are logged and do not undo the
        confirmation. The requester accepted by asking, so only the host and
        any invited guests answer here.

        Raises:
            InsufficientCreditsError: the requester can no longer cover the
                fee when the meeting would be confirmed.
        """
        now = _aware(now) or _utcnow()
        confirmed = False
        try:
            meeting = await self._load(db, meeting_id)
            self.state_machine.check_can_respond(meeting)

            participants = await self.get_participants(db, meeting_id)
            mine = next((p for p in participants if p.user_id == user_id), None)
            if mine is None:
                raise ValidationError(f"User {user_id} is not a participant", meeting_id)
            if mine.response != ParticipantResponse.REQUESTED.value:
                raise StateConflictError(
                    "Already responded", meeting_id, current_status=meeting.status
                )

            response = ParticipantResponse.ACCEPTED if accept else ParticipantResponse.DECLINED
            result = await db.execute(
                update(MeetingParticipant)
                .where(
                    MeetingParticipant.id == mine.id,
                    MeetingParticipant.response == ParticipantResponse.REQUESTED.value,
                )
                .values(response=response.value, responded_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise StateConflictError("Already responded", meeting_id, current_status=meeting.status)

            from_status = meeting.status
            charge = meeting.charge_status
            others = [p.user_id for p in participants if p.user_id != user_id]
            names = await profile_reader.get_display_names(db, [user_id])
            outbox: list[OutboundNotification] = []

            if not accept:
                self.state_machine.validate_transition(from_status, MeetingStatus.CANCELED, meeting_id)
                await self._claim(
                    db, meeting, now,
                    status=MeetingStatus.CANCELED.value,
                    canceled_at=now,
                    canceled_by=user_id,
                    cancel_reason="declined",
                )
                self._record_event(
                    db, meeting_id, MeetingEventType.DECLINED, user_id,
                    from_status, meeting.status, charge, charge,
                )
                outbox = [
                    OutboundNotification(
                        user_id=other,
                        kind=NotificationKind.MEETING_DECLINED,
                        title="Meeting Declined",
                        message=build_declined_message(names[user_id], meeting.scheduled_at),
                        data={"meeting_id": meeting_id},
                    )
                    for other in others
                ]
            else:
                pending = [
                    p for p in participants
                    if p.user_id != user_id
                    and p.response != ParticipantResponse.ACCEPTED.value
                ]
                self._record_event(
                    db, meeting_id, MeetingEventType.ACCEPTED, user_id,
                    from_status, from_status, charge, charge,
                )
                if pending:
                    # Still claim so concurrent accepts serialize on the version.
                    await self._claim(db, meeting, now)
                else:
                    self.state_machine.validate_transition(from_status, MeetingStatus.CONFIRMED, meeting_id)
                    await self._claim(
                        db, meeting, now,
                        status=MeetingStatus.CONFIRMED.value,
                        confirmed_at=now,
                    )
                    await self._take_fee(db, meeting)
                    self._record_event(
                        db, meeting_id, MeetingEventType.CONFIRMED, user_id,
                        from_status, meeting.status, charge, charge,
                        {"fee_credits": meeting.fee_credits, "fee_cents": meeting.fee_cents},
                    )
                    confirmed = True
                    outbox = [
                        OutboundNotification(
                            user_id=p.user_id,
                            kind=NotificationKind.MEETING_CONFIRMED,
                            title="Meeting Confirmed",
                            message=build_confirmed_message(meeting.scheduled_at),
                            data={"meeting_id": meeting_id},
                        )
                        for p in participants
                    ]
            participant_ids = [p.user_id for p in participants]
            scheduled_at = meeting.scheduled_at
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Meeting response: meeting=%s user=%s accept=%s status=%s",
            meeting_id, user_id, accept, meeting.status,
        )
        await db.commit()

        if confirmed:
            try:
                await self.notifications.schedule_meeting_reminders(
                    db, meeting_id, scheduled_at, participant_ids, now,
                    get_settings().reminder_offsets,
                )
            except Exception:
                await db.rollback()
                logger.warning("Reminder scheduling failed for meeting %s", meeting_id, exc_info=True)

        await self.notifications.dispatch(db, outbox)
        await db.refresh(meeting)
        return meeting

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    async def cancellation_preview(
        self,
        db: AsyncSession,
        meeting_id: str,
        user_id: str,
    ) -> dict:
        """What cancelling would do for this user, without changing anything."""
        meeting = await self._load(db, meeting_id)
        participants = await self.get_participants(db, meeting_id)
        if user_id not in {p.user_id for p in participants}:
            raise ValidationError(f"User {user_id} is not a participant", meeting_id)

        can_cancel = meeting.status in (MeetingStatus.PENDING.value, MeetingStatus.CONFIRMED.value)
        is_confirmed = meeting.status == MeetingStatus.CONFIRMED.value
        fee = meeting.cancellation_fee_cents if (can_cancel and is_confirmed) else 0

        forfeited = can_cancel and is_confirmed and bool(meeting.fee_credits or meeting.fee_cents)

        if not can_cancel:
            message = f"This meeting is {meeting.status} and can no longer be canceled."
        elif fee:
            message = (
                f"Cancelling this confirmed meeting will charge a fee of {fee / 100:.2f} "
                "with no credit refund. Please confirm to proceed."
            )
        elif forfeited:
            message = "This meeting has been confirmed. Cancelling it will not refund the meeting fee."
        else:
            message = "This meeting can be canceled at no charge."

        return {
            "meeting_id": meeting.id,
            "status": meeting.status,
            "can_cancel": can_cancel,
            "cancellation_fee_cents": fee,
            "requires_confirmation": bool(fee),
            "meeting_fee_forfeited": forfeited,
            "message": message,
        }

    async def cancel(
        self,
        db: AsyncSession,
        meeting_id: str,
        by_user_id: str,
        *,
        confirm_fee: bool = False,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Meeting:
        """Cancel a pending or confirmed meeting.

        A pending meeting is released with no ledger effect: nothing was
        taken from the requester yet. A confirmed meeting keeps the fee taken
        at confirmation (charge_status becomes ``captured``), and a
        cancellation fee, if any, is charged to the canceller's wallet once
        acknowledged via ``confirm_fee``.
        """
        now = _aware(now) or _utcnow()
        try:
            meeting = await self._load(db, meeting_id)
            participants = await self.get_participants(db, meeting_id)
            if by_user_id not in {p.user_id for p in participants}:
                raise ValidationError(f"User {by_user_id} is not a participant", meeting_id)
            self.state_machine.check_can_cancel(meeting)

            from_status = meeting.status
            charge = meeting.charge_status
            fee = meeting.cancellation_fee_cents if from_status == MeetingStatus.CONFIRMED.value else 0
            if fee and not confirm_fee:
                raise CancellationFeeConfirmationRequired(meeting_id, fee)

            self.state_machine.validate_transition(from_status, MeetingStatus.CANCELED, meeting_id)
            values = {
                "status": MeetingStatus.CANCELED.value,
                "canceled_at": now,
                "canceled_by": by_user_id,
                "cancel_reason": reason,
            }
            if from_status == MeetingStatus.CONFIRMED.value:
                self.state_machine.validate_charge_transition(charge, ChargeStatus.CAPTURED, meeting_id)
                values["charge_status"] = ChargeStatus.CAPTURED.value
            await self._claim(db, meeting, now, **values)
            if fee:
                await ledger_service.post_wallet_adjustment(
                    db, by_user_id, -fee, LedgerReason.CANCELLATION_FEE, meeting_id,
                    description="Cancellation fee for confirmed meeting",
                )
            self._record_event(
                db, meeting_id, MeetingEventType.CANCELED, by_user_id,
                from_status, meeting.status, charge, meeting.charge_status,
                {"cancellation_fee_cents": fee, "reason": reason},
            )

            names = await profile_reader.get_display_names(db, [by_user_id])
            outbox = [
                OutboundNotification(
                    user_id=p.user_id,
                    kind=NotificationKind.MEETING_CANCELED,
                    title="Meeting Canceled",
                    message=build_canceled_message(names[by_user_id], meeting.scheduled_at),
                    data={"meeting_id": meeting_id, "canceled_by": by_user_id},
                )
                for p in participants
                if p.user_id != by_user_id
            ]
            outbox.append(
                OutboundNotification(
                    user_id=by_user_id,
                    kind=NotificationKind.MEETING_CANCELED,
                    title="Meeting Cancellation Confirmed",
                    message=build_cancellation_receipt(meeting.scheduled_at, fee),
                    data={"meeting_id": meeting_id, "cancellation_fee_cents": fee},
                )
            )
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Meeting canceled: meeting=%s by=%s from=%s fee_cents=%d",
            meeting_id, by_user_id, from_status, fee,
        )
        return await self._commit_and_notify(db, meeting, outbox)

    # ------------------------------------------------------------------
    # Complete
    # ------------------------------------------------------------------

    async def complete(
        self,
        db: AsyncSession,
        meeting_id: str,
        now: Optional[datetime] = None,
        actor_id: Optional[str] = None,
    ) -> Meeting:
        """Mark a confirmed meeting whose start time has passed as completed."""
        now = _aware(now) or _utcnow()
        try:
            meeting = await self._load(db, meeting_id)
            self.state_machine.check_can_complete(meeting, now)
            from_status = meeting.status
            await self._claim(
                db, meeting, now,
                status=MeetingStatus.COMPLETED.value,
                completed_at=now,
            )
            self._record_event(
                db, meeting_id, MeetingEventType.COMPLETED, actor_id,
                from_status, meeting.status, meeting.charge_status, meeting.charge_status,
            )
        except Exception:
            await db.rollback()
            raise

        logger.info("Meeting completed: meeting=%s", meeting_id)
        return await self._commit_and_notify(db, meeting, [])

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    async def finalize(
        self,
        db: AsyncSession,
        meeting_id: str,
        outcome,
        fault_determination,
        charge_decision,
        notes: Optional[str],
        by_user_id: str,
        now: Optional[datetime] = None,
    ) -> Meeting:
        """Record the host's conclusion and settle the fee.

        ``capture`` keeps the fee taken at confirmation, ``refund`` returns
        it to the requester, and ``pending_review`` opens an investigation
        (the fee stays taken) without setting ``finalized_at``. A meeting
        already finalized is rejected with ``StateConflictError`` and
        nothing is posted.
        """
        now = _aware(now) or _utcnow()
        outcome = _coerce(MeetingOutcome, outcome, "outcome")
        fault = _coerce(FaultDetermination, fault_determination, "fault determination")
        decision = _coerce(ChargeDecision, charge_decision, "charge decision")

        try:
            meeting = await self._load(db, meeting_id)
            if meeting.status == MeetingStatus.CANCELED.value:
                raise StateConflictError(
                    "Meeting was canceled", meeting_id, current_status=meeting.status
                )
            completes_now = self.state_machine.check_can_finalize(meeting, now)

            from_status = meeting.status
            from_charge = meeting.charge_status
            target_charge = DECISION_CHARGE_STATUS[decision]
            self.state_machine.validate_charge_transition(from_charge, target_charge, meeting_id)

            values = {
                "outcome": outcome.value,
                "fault_determination": fault.value,
                "host_notes": notes,
                "charge_status": target_charge.value,
            }
            if completes_now:
                values.update(status=MeetingStatus.COMPLETED.value, completed_at=now)
            if decision == ChargeDecision.PENDING_REVIEW:
                values["review_started_at"] = now
            else:
                values.update(finalized_at=now, finalized_by=by_user_id)
            await self._claim(db, meeting, now, **values)

            requester = meeting.requester_id
            if decision == ChargeDecision.REFUND:
                await self._return_fee(db, meeting, LedgerReason.MEETING_REFUND, "Meeting fee refunded")

            event_type = (
                MeetingEventType.REVIEW_OPENED
                if decision == ChargeDecision.PENDING_REVIEW
                else MeetingEventType.FINALIZED
            )
            self._record_event(
                db, meeting_id, event_type, by_user_id,
                from_status, meeting.status, from_charge, meeting.charge_status,
                {"outcome": outcome.value, "fault": fault.value, "decision": decision.value},
            )

            outbox: list[OutboundNotification] = []
            if decision == ChargeDecision.PENDING_REVIEW:
                participants = await self.get_participants(db, meeting_id)
                names = await profile_reader.get_display_names(db, [p.user_id for p in participants])
                outbox = [
                    OutboundNotification(
                        user_id=p.user_id,
                        kind=NotificationKind.MEETING_INVESTIGATION,
                        title="Meeting Under Review",
                        message=build_investigation_notice(names[p.user_id], meeting.scheduled_at),
                        data={"meeting_id": meeting_id, "fault": fault.value},
                    )
                    for p in participants
                ]
            else:
                outbox = [
                    OutboundNotification(
                        user_id=requester,
                        kind=NotificationKind.MEETING_FINALIZED,
                        title="Meeting Review Complete",
                        message=build_finalize_message(outcome, decision),
                        data={
                            "meeting_id": meeting_id,
                            "charge_status": meeting.charge_status,
                            "refund_issued": decision == ChargeDecision.REFUND,
                        },
                    )
                ]
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Meeting finalized: meeting=%s decision=%s status=%s->%s charge=%s->%s",
            meeting_id, decision.value, from_status, meeting.status, from_charge, meeting.charge_status,
        )
        return await self._commit_and_notify(db, meeting, outbox)

    # ------------------------------------------------------------------
    # Investigation
    # ------------------------------------------------------------------

    async def resolve_investigation(
        self,
        db: AsyncSession,
        meeting_id: str,
        resolution,
        admin_notes: Optional[str],
        by_admin_id: str,
        now: Optional[datetime] = None,
    ) -> Meeting:
        """Settle a meeting held in ``pending_review``. Allowed exactly once.

        charge_requester / split: captured, the fee taken at confirmation
        stands and nothing more is posted.
        refund_requester / no_charge: refunded, fee returned to the requester.
        charge_accepter: captured, fee returned to the requester and charged
        to the host instead.
        """
        now = _aware(now) or _utcnow()
        resolution = _coerce(InvestigationResolution, resolution, "resolution")

        try:
            meeting = await self._load(db, meeting_id)
            self.state_machine.check_can_resolve(meeting)

            from_charge = meeting.charge_status
            target_charge = RESOLUTION_CHARGE_STATUS[resolution]
            self.state_machine.validate_charge_transition(from_charge, target_charge, meeting_id)

            await self._claim(
                db, meeting, now,
                charge_status=target_charge.value,
                resolution=resolution.value,
                resolution_notes=admin_notes,
                finalized_at=now,
                finalized_by=by_admin_id,
            )

            requester, host = meeting.requester_id, meeting.host_id
            if resolution in REFUNDING_RESOLUTIONS:
                await self._return_fee(
                    db, meeting, LedgerReason.INVESTIGATION_REFUND,
                    f"Investigation resolved: {resolution.value}",
                )
            if resolution == R.CHARGE_ACCEPTER:
                if meeting.fee_credits:
                    await ledger_service.post_credit(
                        db, host, -meeting.fee_credits, LedgerReason.INVESTIGATION_CHARGE, meeting_id,
                        description="Investigation resolved: charge_accepter",
                    )
                if meeting.fee_cents:
                    await ledger_service.post_wallet_adjustment(
                        db, host, -meeting.fee_cents, LedgerReason.INVESTIGATION_CHARGE, meeting_id,
                        description="Investigation resolved: charge_accepter",
                    )

            self._record_event(
                db, meeting_id, MeetingEventType.INVESTIGATION_RESOLVED, by_admin_id,
                meeting.status, meeting.status, from_charge, meeting.charge_status,
                {"resolution": resolution.value, "notes": admin_notes},
            )

            participants = await self.get_participants(db, meeting_id)
            names = await profile_reader.get_display_names(db, [p.user_id for p in participants])
            outbox = []
            for p in participants:
                is_requester = p.user_id == requester
                outbox.append(
                    OutboundNotification(
                        user_id=p.user_id,
                        kind=NotificationKind.INVESTIGATION_RESOLVED,
                        title="Investigation Complete",
                        message=build_resolution_message(
                            names[p.user_id], resolution, meeting.scheduled_at, is_requester
                        ),
                        data={
                            "meeting_id": meeting_id,
                            "resolution": resolution.value,
                            "refunded": is_requester and resolution in REFUNDING_RESOLUTIONS,
                            "charged": (
                                (is_requester and resolution in (R.CHARGE_REQUESTER, R.SPLIT))
                                or (p.user_id == host and resolution == R.CHARGE_ACCEPTER)
                            ),
                        },
                    )
                )
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Investigation resolved: meeting=%s resolution=%s charge=%s->%s admin=%s",
            meeting_id, resolution.value, from_charge, meeting.charge_status, by_admin_id,
        )
        return await self._commit_and_notify(db, meeting, outbox)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_meeting_detail(
        self, db: AsyncSession, meeting_id: str
    ) -> tuple[Meeting, list[MeetingParticipant]]:
        meeting = await self._load(db, meeting_id)
        return meeting, await self.get_participants(db, meeting_id)

    async def list_meetings_by_charge_status(
        self,
        db: AsyncSession,
        charge_status,
        now: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict]:
        """Admin queue (pending_review, oldest first) and resolved history views."""
        charge_status = _coerce(ChargeStatus, charge_status, "charge status")
        now = _aware(now) or _utcnow()

        query = select(Meeting).where(Meeting.charge_status == charge_status.value)
        if charge_status == ChargeStatus.PENDING_REVIEW:
            query = query.order_by(Meeting.review_started_at.asc(), Meeting.id)
        else:
            query = query.order_by(Meeting.finalized_at.desc(), Meeting.id)
        result = await db.execute(query.offset(offset).limit(limit))
        return [serialize_meeting(m, now=now) for m in result.scalars().all()]

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: str,
        status: Optional[str] = None,
        upcoming: bool = False,
        now: Optional[datetime] = None,
    ) -> list[Meeting]:
        """Meetings the user takes part in, soonest first."""
        query = (
            select(Meeting)
            .join(MeetingParticipant, MeetingParticipant.meeting_id == Meeting.id)
            .where(MeetingParticipant.user_id == user_id)
        )
        if status:
            query = query.where(Meeting.status == _coerce(MeetingStatus, status, "status").value)
        if upcoming:
            query = query.where(Meeting.scheduled_at > (_aware(now) or _utcnow()))
        result = await db.execute(query.order_by(Meeting.scheduled_at.asc(), Meeting.id))
        return list(result.scalars().all())
