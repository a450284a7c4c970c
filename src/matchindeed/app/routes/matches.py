"""Match endpoints: top picks and a single compatibility score."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from matchindeed.app.routes.auth import get_current_account_dep
from matchindeed.domain.models import Account
from matchindeed.domain.schemas import MatchScoreResponse, TopPick
from matchindeed.infra.database import get_db
from matchindeed.services import compatibility, profile_reader
from matchindeed.services.top_picks import TopPicksService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/matches", tags=["matches"])
top_picks_service = TopPicksService()


@router.get("/top-picks", response_model=list[TopPick])
async def top_picks(
    account: Account = Depends(get_current_account_dep),
    db: AsyncSession = Depends(get_db),
    limit: Optional[int] = Query(None, ge=1),
):
    picks = await top_picks_service.generate(db, account.id, limit=limit)
    return [p.to_dict() for p in picks]


@router.get("/{candidate_id}/score", response_model=MatchScoreResponse)
async def match_score(
    candidate_id: str,
    account: Account = Depends(get_current_account_dep),
    db: AsyncSession = Depends(get_db),
):
    """Caller's compatibility with one candidate. Blocked or rejected users are hidden."""
    if candidate_id == account.id:
        raise HTTPException(status_code=400, detail="Cannot score your own profile")
    excluded = await profile_reader.get_blocked_or_rejected(db, account.id)
    candidate = None if candidate_id in excluded else await profile_reader.get_profile(db, candidate_id)
    if candidate is None:
        raise HTTPException(status_code=404, detail="Profile not found")

    preferences = await profile_reader.get_preferences(db, account.id)
    signals = await profile_reader.get_interaction_signals(db, account.id, [candidate_id])
    result = compatibility.score(
        preferences,
        candidate,
        interaction=signals.get(candidate_id),
        now=datetime.now(timezone.utc),
    )
    return {"candidate_id": candidate_id, **result.to_dict()}
