"""Member-facing meeting endpoints.

Request, respond, cancel (with fee preview), complete and finalize. All
state changes go through ``MeetingSettlementService``; this module only
authorizes the caller and maps service errors to HTTP responses.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from matchindeed.app.config import get_settings
from matchindeed.app.routes.auth import get_current_account_dep, is_admin
from matchindeed.domain.models import Account
from matchindeed.domain.schemas import (
    CancellationPreview,
    MeetingCancel,
    MeetingFinalize,
    MeetingRequest,
    MeetingRespond,
    MeetingResponse,
)
from matchindeed.infra.database import get_db
from matchindeed.services.errors import (
    CancellationFeeConfirmationRequired,
    InsufficientCreditsError,
    LedgerError,
    NotFoundError,
    SettlementError,
    StateConflictError,
    ValidationError,
)
from matchindeed.services.settlement_service import MeetingSettlementService, serialize_meeting

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/meetings", tags=["meetings"])
settlement = MeetingSettlementService()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def http_error(exc: SettlementError) -> HTTPException:
    """Translate a settlement error into the HTTP response shown to the user."""
    if isinstance(exc, CancellationFeeConfirmationRequired):
        return HTTPException(
            status_code=422,
            detail={
                "message": exc.message,
                "requires_confirmation": True,
                "cancellation_fee_cents": exc.fee_cents,
            },
        )
    if isinstance(exc, InsufficientCreditsError):
        return HTTPException(
            status_code=400,
            detail={"message": exc.message, "required": exc.required, "available": exc.available},
        )
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=exc.message)
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=exc.message)
    if isinstance(exc, StateConflictError):
        return HTTPException(status_code=409, detail=exc.message)
    if isinstance(exc, LedgerError):
        logger.error("Ledger failure on meeting %s: %s", exc.meeting_id, exc.message)
        return HTTPException(
            status_code=503,
            detail="We could not update your balance. Nothing was changed; please retry.",
        )
    return HTTPException(status_code=500, detail="Internal server error")


def _caller(account: Account) -> tuple[str, bool]:
    # Plain values: a rolled-back session expires the Account instance.
    return account.id, is_admin(account)


async def _detail_for(db: AsyncSession, meeting_id: str, caller_id: str, caller_is_admin: bool) -> dict:
    try:
        meeting, participants = await settlement.get_meeting_detail(db, meeting_id)
    except SettlementError as e:
        raise http_error(e)
    if not caller_is_admin and caller_id not in {p.user_id for p in participants}:
        raise HTTPException(status_code=403, detail="Not a participant of this meeting")
    return serialize_meeting(meeting, participants)


async def _check_host_or_admin(
    db: AsyncSession, meeting_id: str, caller_id: str, caller_is_admin: bool
) -> None:
    try:
        meeting, _ = await settlement.get_meeting_detail(db, meeting_id)
    except SettlementError as e:
        raise http_error(e)
    if meeting.host_id != caller_id and not caller_is_admin:
        raise HTTPException(status_code=403, detail="Only the host or an admin can do this")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", response_model=MeetingResponse, status_code=201)
async def request_meeting(
    data: MeetingRequest,
    account: Account = Depends(get_current_account_dep),
    db: AsyncSession = Depends(get_db),
):
    """Caller requests a meeting with a host and becomes its paying requester.

    The fee comes from settings; the caller cannot choose it.
    """
    caller_id, caller_is_admin = _caller(account)
    settings = get_settings()
    try:
        meeting = await settlement.request_meeting(
            db,
            host_id=data.host_id,
            guest_id=caller_id,
            scheduled_at=data.scheduled_at,
            fee_credits=settings.meeting_fee_credits,
            fee_cents=settings.meeting_fee_cents,
            meeting_type=data.meeting_type,
            extra_guest_ids=data.extra_guest_ids,
            coordinator_id=data.coordinator_id,
        )
    except SettlementError as e:
        raise http_error(e)
    return await _detail_for(db, meeting.id, caller_id, caller_is_admin)


@router.get("", response_model=list[MeetingResponse])
async def list_my_meetings(
    account: Account = Depends(get_current_account_dep),
    db: AsyncSession = Depends(get_db),
    status: Optional[str] = Query(None),
    upcoming: bool = Query(False),
):
    try:
        meetings = await settlement.list_for_user(db, account.id, status=status, upcoming=upcoming)
    except SettlementError as e:
        raise http_error(e)
    return [serialize_meeting(m) for m in meetings]


@router.get("/{meeting_id}", response_model=MeetingResponse)
async def get_meeting(
    meeting_id: str,
    account: Account = Depends(get_current_account_dep),
    db: AsyncSession = Depends(get_db),
):
    caller_id, caller_is_admin = _caller(account)
    return await _detail_for(db, meeting_id, caller_id, caller_is_admin)


@router.post("/{meeting_id}/respond", response_model=MeetingResponse)
async def respond_to_meeting(
    meeting_id: str,
    data: MeetingRespond,
    account: Account = Depends(get_current_account_dep),
    db: AsyncSession = Depends(get_db),
):
    """The host (or an invited guest) accepts or declines. The requester cannot answer their own request."""
    caller_id, caller_is_admin = _caller(account)
    try:
        await settlement.respond(db, meeting_id, caller_id, data.accept)
    except SettlementError as e:
        raise http_error(e)
    return await _detail_for(db, meeting_id, caller_id, caller_is_admin)


@router.get("/{meeting_id}/cancel", response_model=CancellationPreview)
async def preview_cancellation(
    meeting_id: str,
    account: Account = Depends(get_current_account_dep),
    db: AsyncSession = Depends(get_db),
):
    """What cancelling would cost the caller, before they commit to it."""
    try:
        return await settlement.cancellation_preview(db, meeting_id, account.id)
    except SettlementError as e:
        raise http_error(e)


@router.post("/{meeting_id}/cancel", response_model=MeetingResponse)
async def cancel_meeting(
    meeting_id: str,
    data: MeetingCancel,
    account: Account = Depends(get_current_account_dep),
    db: AsyncSession = Depends(get_db),
):
    caller_id, caller_is_admin = _caller(account)
    try:
        await settlement.cancel(
            db, meeting_id, caller_id, confirm_fee=data.confirm_fee, reason=data.reason
        )
    except SettlementError as e:
        raise http_error(e)
    return await _detail_for(db, meeting_id, caller_id, caller_is_admin)


@router.post("/{meeting_id}/complete", response_model=MeetingResponse)
async def complete_meeting(
    meeting_id: str,
    account: Account = Depends(get_current_account_dep),
    db: AsyncSession = Depends(get_db),
):
    caller_id, caller_is_admin = _caller(account)
    await _check_host_or_admin(db, meeting_id, caller_id, caller_is_admin)
    try:
        await settlement.complete(db, meeting_id, actor_id=caller_id)
    except SettlementError as e:
        raise http_error(e)
    return await _detail_for(db, meeting_id, caller_id, caller_is_admin)


@router.post("/{meeting_id}/finalize", response_model=MeetingResponse)
async def finalize_meeting(
    meeting_id: str,
    data: MeetingFinalize,
    account: Account = Depends(get_current_account_dep),
    db: AsyncSession = Depends(get_db),
):
    """Host (or admin) records the outcome and the charge decision."""
    caller_id, caller_is_admin = _caller(account)
    await _check_host_or_admin(db, meeting_id, caller_id, caller_is_admin)
    try:
        await settlement.finalize(
            db,
            meeting_id,
            outcome=data.outcome,
            fault_determination=data.fault_determination,
            charge_decision=data.charge_decision,
            notes=data.notes,
            by_user_id=caller_id,
        )
    except SettlementError as e:
        raise http_error(e)
    return await _detail_for(db, meeting_id, caller_id, caller_is_admin)
