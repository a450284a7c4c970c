"""Tests for top picks ranking and the profile reader queries behind it."""

from datetime import datetime, timezone

from matchindeed.services import profile_reader
from matchindeed.services.compatibility import InteractionSignals, PartnerPreferences, Profile
from matchindeed.services.top_picks import TopPicksService, rank_candidates

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Pure ranking
# ---------------------------------------------------------------------------


class TestRankCandidates:
    def test_viewer_and_excluded_users_are_dropped(self):
        candidates = [Profile(user_id="viewer"), Profile(user_id="a"), Profile(user_id="b")]
        ranked = rank_candidates("viewer", None, candidates, excluded={"b"})
        assert [r.profile.user_id for r in ranked] == ["a"]

    def test_blocked_location_is_dropped(self):
        prefs = PartnerPreferences(blocked_locations=("Kano",))
        candidates = [
            Profile(user_id="a", location="Kano, Nigeria"),
            Profile(user_id="b", location="Lagos, Nigeria"),
            Profile(user_id="c"),
        ]
        ranked = rank_candidates("viewer", prefs, candidates)
        assert [r.profile.user_id for r in ranked] == ["b", "c"]

    def test_sorted_by_score_then_completeness_then_id(self):
        prefs = PartnerPreferences(religion="Christian")
        candidates = [
            Profile(user_id="d"),
            Profile(user_id="c"),
            Profile(user_id="b", first_name="Bola", photo_count=3),
            Profile(user_id="a", religion="Muslim"),
            Profile(user_id="e", religion="Christian"),
        ]
        ranked = rank_candidates("viewer", prefs, candidates)
        # e: match; b: neutral but fuller; c, d: neutral, by id; a: mismatch
        assert [r.profile.user_id for r in ranked] == ["e", "b", "c", "d", "a"]

    def test_interest_signals_lift_a_candidate(self):
        candidates = [Profile(user_id="a"), Profile(user_id="b")]
        ranked = rank_candidates(
            "viewer", None, candidates, interactions={"b": InteractionSignals(liked=True, mutual=True)}
        )
        assert ranked[0].profile.user_id == "b"
        assert ranked[0].score.value == 57
        assert ranked[0].to_dict()["mutual"] is True

    def test_limit(self):
        candidates = [Profile(user_id=str(i)) for i in range(10)]
        assert len(rank_candidates("viewer", None, candidates, limit=3)) == 3


# ---------------------------------------------------------------------------
# Database-backed generation
# ---------------------------------------------------------------------------


async def test_generate_excludes_rejected_blocked_and_inactive(
    db_session, make_account, make_profile, make_preferences, make_activity, make_block
):
    viewer = await make_account()
    liked = await make_account()
    other = await make_account()
    rejected = await make_account()
    blocker = await make_account()
    far_away = await make_account()
    await make_account(account_status="suspended")

    await make_preferences(viewer.id, partner_religion=["Christian"], blocked_locations=["Kano"])
    await make_profile(liked.id, first_name="Ada", religion="Christian", location="Lagos")
    await make_profile(other.id, first_name="Bisi", religion="Muslim", location="Lagos")
    await make_profile(rejected.id, religion="Christian")
    await make_profile(blocker.id, religion="Christian")
    await make_profile(far_away.id, religion="Christian", location="Kano, Nigeria")

    await make_activity(viewer.id, rejected.id, "rejected")
    await make_activity(viewer.id, liked.id, "like")
    await make_activity(liked.id, viewer.id, "wink")
    await make_block(blocker.id, viewer.id)

    picks = await TopPicksService().generate(db_session, viewer.id, limit=10, now=NOW)

    assert [p.profile.user_id for p in picks] == [liked.id, other.id]
    assert picks[0].interaction == InteractionSignals(liked=True, mutual=True)
    assert picks[0].score.value > picks[1].score.value


async def test_generate_clamps_limit(db_session, make_account):
    viewer = await make_account()
    for _ in range(3):
        await make_account()

    picks = await TopPicksService().generate(db_session, viewer.id, limit=0, now=NOW)
    assert len(picks) == 1


async def test_blocked_or_rejected_covers_both_block_directions(
    db_session, make_account, make_activity, make_block
):
    viewer = await make_account()
    blocked = await make_account()
    blocker = await make_account()
    rejected = await make_account()
    await make_block(viewer.id, blocked.id)
    await make_block(blocker.id, viewer.id)
    await make_activity(viewer.id, rejected.id, "rejected")

    excluded = await profile_reader.get_blocked_or_rejected(db_session, viewer.id)

    assert excluded == {blocked.id, blocker.id, rejected.id}
    assert await profile_reader.is_blocked_pair(db_session, blocked.id, viewer.id)


async def test_preferences_are_parsed_from_form_values(db_session, make_account, make_preferences):
    viewer = await make_account()
    await make_preferences(viewer.id, partner_age_range="28 - 35", partner_height_min_cm=165)

    prefs = await profile_reader.get_preferences(db_session, viewer.id)

    assert (prefs.age_min, prefs.age_max) == (28, 35)
    assert prefs.height_min_cm == 165
    assert await profile_reader.get_preferences(db_session, "nobody") is None
