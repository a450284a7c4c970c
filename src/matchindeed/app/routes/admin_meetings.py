"""Admin portal API endpoints for meeting investigations.

Provides the investigation queue (charge_status=pending_review, oldest
first, with the derived urgent flag), resolved history, the audit trail of
a meeting, and investigation resolution.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchindeed.app.routes.auth import require_admin
from matchindeed.app.routes.meetings import http_error
from matchindeed.domain.models import Account, MeetingEvent
from matchindeed.domain.schemas import InvestigationResolve, MeetingResponse
from matchindeed.infra.database import get_db
from matchindeed.services import ledger_service
from matchindeed.services.errors import SettlementError
from matchindeed.services.settlement_service import MeetingSettlementService, serialize_meeting

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/meetings", tags=["admin-meetings"])
settlement = MeetingSettlementService()


def _serialize_event(event: MeetingEvent) -> dict:
    return {
        "id": event.id,
        "event_type": event.event_type,
        "actor_id": event.actor_id,
        "from_status": event.from_status,
        "to_status": event.to_status,
        "from_charge_status": event.from_charge_status,
        "to_charge_status": event.to_charge_status,
        "data": event.data,
        "created_at": event.created_at.isoformat() if event.created_at else None,
    }


@router.get("", response_model=list[MeetingResponse])
async def list_meetings_by_charge_status(
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    charge_status: str = Query("pending_review"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
):
    """Investigation queue (pending_review) or resolved history (captured/refunded)."""
    try:
        return await settlement.list_meetings_by_charge_status(
            db, charge_status, limit=per_page, offset=(page - 1) * per_page
        )
    except SettlementError as e:
        raise http_error(e)


@router.get("/{meeting_id}")
async def admin_get_meeting(
    meeting_id: str,
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Full admin view: meeting, participants, ledger postings and audit trail."""
    try:
        meeting, participants = await settlement.get_meeting_detail(db, meeting_id)
    except SettlementError as e:
        raise http_error(e)

    events = await db.execute(
        select(MeetingEvent)
        .where(MeetingEvent.meeting_id == meeting_id)
        .order_by(MeetingEvent.created_at, MeetingEvent.id)
    )
    postings = await ledger_service.postings_for_meeting(db, meeting_id)
    return {
        "meeting": serialize_meeting(meeting, participants),
        "postings": [ledger_service.serialize_posting(p) for p in postings],
        "events": [_serialize_event(e) for e in events.scalars().all()],
    }


@router.post("/{meeting_id}/resolve", response_model=MeetingResponse)
async def resolve_investigation(
    meeting_id: str,
    data: InvestigationResolve,
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    admin_id = admin.id
    try:
        meeting = await settlement.resolve_investigation(
            db, meeting_id, data.resolution, data.admin_notes, admin_id
        )
        _, participants = await settlement.get_meeting_detail(db, meeting_id)
    except SettlementError as e:
        raise http_error(e)
    logger.info("Admin %s resolved meeting %s as %s", admin_id, meeting_id, data.resolution.value)
    return serialize_meeting(meeting, participants)
