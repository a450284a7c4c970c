"""Top picks: rank candidates for a viewer with the compatibility scorer.

``rank_candidates`` is pure and does the exclusion and ordering;
``TopPicksService`` loads the inputs from the database.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from matchindeed.app.config import get_settings
from matchindeed.services import compatibility, profile_reader
from matchindeed.services.compatibility import (
    CompatibilityScore,
    InteractionSignals,
    PartnerPreferences,
    Profile,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedCandidate:
    profile: Profile
    score: CompatibilityScore
    completeness: int
    interaction: InteractionSignals

    def to_dict(self) -> dict:
        return {
            "user_id": self.profile.user_id,
            "first_name": self.profile.first_name,
            "location": self.profile.location,
            "score": self.score.value,
            "label": self.score.label,
            "band": self.score.band,
            "color": self.score.color,
            "show_badge": self.score.show_badge,
            "profile_completeness": self.completeness,
            "liked": self.interaction.liked,
            "mutual": self.interaction.mutual,
        }


def _in_blocked_location(preferences: Optional[PartnerPreferences], candidate: Profile) -> bool:
    if preferences is None or not isinstance(candidate.location, str):
        return False
    where = candidate.location.strip().lower()
    if not where:
        return False
    for blocked in preferences.blocked_locations or ():
        if not isinstance(blocked, str) or not blocked.strip():
            continue
        blocked = blocked.strip().lower()
        if blocked in where or where in blocked:
            return True
    return False


def rank_candidates(
    viewer_id: str,
    preferences: Optional[PartnerPreferences],
    candidates: Iterable[Profile],
    excluded: Iterable[str] = (),
    interactions: Optional[Mapping[str, InteractionSignals]] = None,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> list[RankedCandidate]:
    """Score and order candidates for one viewer.

    Drops the viewer, excluded users (rejections and blocks) and anyone in
    a blocked location before scoring. Sorted by score, then profile
    completeness, then user id, so the order is stable.
    """
    excluded = set(excluded)
    interactions = interactions or {}
    ranked: list[RankedCandidate] = []

    for candidate in candidates:
        if candidate.user_id == viewer_id or candidate.user_id in excluded:
            continue
        if _in_blocked_location(preferences, candidate):
            continue
        signals = interactions.get(candidate.user_id, InteractionSignals())
        result = compatibility.score(preferences, candidate, interaction=signals, now=now)
        ranked.append(
            RankedCandidate(
                profile=candidate,
                score=result,
                completeness=compatibility.profile_completeness(candidate),
                interaction=signals,
            )
        )

    ranked.sort(key=lambda r: (-r.score.value, -r.completeness, r.profile.user_id))
    if limit is not None:
        ranked = ranked[: max(limit, 0)]
    return ranked


class TopPicksService:
    """Loads a viewer's inputs and returns their best-ranked candidates."""

    async def generate(
        self,
        db: AsyncSession,
        viewer_id: str,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[RankedCandidate]:
        settings = get_settings()
        if limit is None:
            limit = settings.top_picks_default_limit
        limit = max(1, min(limit, settings.top_picks_max_limit))
        now = now or datetime.now(timezone.utc)

        preferences = await profile_reader.get_preferences(db, viewer_id)
        excluded = await profile_reader.get_blocked_or_rejected(db, viewer_id)
        candidates = [
            c for c in await profile_reader.list_active_candidates(db, viewer_id)
            if c.user_id not in excluded
        ]
        interactions = await profile_reader.get_interaction_signals(
            db, viewer_id, [c.user_id for c in candidates]
        )

        picks = rank_candidates(
            viewer_id,
            preferences,
            candidates,
            excluded=excluded,
            interactions=interactions,
            limit=limit,
            now=now,
        )
        logger.info(
            "Top picks for %s: %d candidates, %d excluded, %d returned",
            viewer_id, len(candidates), len(excluded), len(picks),
        )
        return picks
