"""Unit tests for the deterministic compatibility scorer."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from matchindeed.services.compatibility import (
    BASELINE,
    InteractionSignals,
    PartnerPreferences,
    Profile,
    candidate_age,
    label_for,
    parse_age_range,
    profile_completeness,
    score,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _dims(result) -> dict:
    return {d.name: d.credit for d in result.dimensions}


# ---------------------------------------------------------------------------
# Reference scenarios
# ---------------------------------------------------------------------------


class TestReferenceScenarios:
    def test_in_range_age_and_shared_religion_is_a_great_match(self):
        prefs = PartnerPreferences(age_min=30, age_max=40, religion="Christian")
        cand = Profile(user_id="c1", age=35, religion="Christian")

        result = score(prefs, cand)

        assert result.value >= 70
        assert result.label in ("Great Match", "Excellent Match")

    def test_far_out_of_range_age_drops_below_baseline(self):
        prefs = PartnerPreferences(age_min=30, age_max=40)
        cand = Profile(user_id="c1", age=60)

        result = score(prefs, cand)

        assert result.value < 50
        assert result.label in ("Fair Match", "Discover")


# ---------------------------------------------------------------------------
# Neutral fallbacks
# ---------------------------------------------------------------------------


class TestNeutralFallbacks:
    def test_no_preferences_gives_baseline(self):
        result = score(None, Profile(user_id="c1", age=30, religion="Muslim"))
        assert result.value == BASELINE
        assert result.dimensions == ()

    def test_empty_preferences_gives_baseline(self):
        result = score(PartnerPreferences(), Profile(user_id="c1", age=30))
        assert result.value == BASELINE
        assert all(d.credit is None for d in result.dimensions)

    def test_open_values_are_not_scored(self):
        prefs = PartnerPreferences(location="Any", smoking="doesnt_matter", have_children="doesnt_matter")
        cand = Profile(user_id="c1", location="Lagos", smoking_habits="never", have_children=True)
        dims = _dims(score(prefs, cand))
        assert dims["location"] is None
        assert dims["smoking"] is None
        assert dims["has_children"] is None

    def test_candidate_missing_attribute_is_neutral(self):
        prefs = PartnerPreferences(religion=["Christian"], height_min_cm=170)
        result = score(prefs, Profile(user_id="c1"))
        assert result.value == BASELINE

    def test_undisclosed_ethnicity_is_neutral(self):
        prefs = PartnerPreferences(ethnicity=["Yoruba"])
        cand = Profile(user_id="c1", ethnicity="I'd rather not say")
        assert _dims(score(prefs, cand))["ethnicity"] is None


# ---------------------------------------------------------------------------
# Malformed input never raises
# ---------------------------------------------------------------------------


class TestMalformedInput:
    @pytest.mark.parametrize(
        "cand",
        [
            Profile(user_id="c1", height_cm="tall"),
            Profile(user_id="c1", date_of_birth="not-a-date"),
            Profile(user_id="c1", ethnicity=42),
            Profile(user_id="c1", languages={"en": True}),
            Profile(user_id="c1", age=-4),
            Profile(user_id="c1", have_children="perhaps"),
        ],
    )
    def test_uninterpretable_candidate_fields_are_unscored(self, cand):
        prefs = PartnerPreferences(
            age_min=25, age_max=35, height_min_cm=160, ethnicity=["Igbo"],
            languages=["English"], have_children="no",
        )
        result = score(prefs, cand, now=None)
        assert result.value == BASELINE

    def test_garbage_preference_bounds_are_unscored(self):
        prefs = PartnerPreferences(age_min="abc", height_max_cm=object())
        result = score(prefs, Profile(user_id="c1", age=30, height_cm=180))
        assert _dims(result)["age"] is None
        assert _dims(result)["height"] is None


# ---------------------------------------------------------------------------
# Dimension rules
# ---------------------------------------------------------------------------


class TestDimensions:
    def test_blocked_location_scores_minus_one(self):
        prefs = PartnerPreferences(location="Lagos", blocked_locations=("Abuja",))
        result = score(prefs, Profile(user_id="c1", location="Abuja, Nigeria"))
        assert _dims(result)["location"] == -1.0
        assert result.value == 0

    def test_same_country_different_city_is_half_credit(self):
        prefs = PartnerPreferences(location="Abuja, Nigeria")
        result = score(prefs, Profile(user_id="c1", location="Lagos, Nigeria"))
        assert _dims(result)["location"] == 0.5
        assert result.value == BASELINE

    def test_location_substring_matches(self):
        prefs = PartnerPreferences(location="london")
        result = score(prefs, Profile(user_id="c1", location="North London, UK"))
        assert _dims(result)["location"] == 1.0

    def test_age_just_outside_range_decays_linearly(self):
        prefs = PartnerPreferences(age_min=30, age_max=40)
        result = score(prefs, Profile(user_id="c1", age=42))
        assert _dims(result)["age"] == pytest.approx(0.6)
        assert result.value == 59

    def test_reversed_height_bounds_are_swapped(self):
        prefs = PartnerPreferences(height_min_cm=190, height_max_cm=170)
        assert _dims(score(prefs, Profile(user_id="c1", height_cm=180)))["height"] == 1.0

    def test_smoking_habit_maps_to_yes_no(self):
        prefs = PartnerPreferences(smoking="no")
        assert _dims(score(prefs, Profile(user_id="c1", smoking_habits="never")))["smoking"] == 1.0
        assert _dims(score(prefs, Profile(user_id="c2", smoking_habits="regularly")))["smoking"] == 0.0

    def test_undecided_about_children_is_half_credit(self):
        prefs = PartnerPreferences(want_children="yes")
        result = score(prefs, Profile(user_id="c1", want_children="maybe"))
        assert _dims(result)["wants_children"] == 0.5

    def test_has_children_accepts_bool_candidate(self):
        prefs = PartnerPreferences(have_children="no")
        assert _dims(score(prefs, Profile(user_id="c1", have_children=False)))["has_children"] == 1.0

    def test_language_overlap(self):
        prefs = PartnerPreferences(languages=["French", "English"])
        result = score(prefs, Profile(user_id="c1", languages=["english", "yoruba"]))
        assert _dims(result)["languages"] == 1.0

    def test_age_from_date_of_birth(self):
        cand = Profile(user_id="c1", date_of_birth="1990-06-15")
        assert candidate_age(cand, NOW) == 35


# ---------------------------------------------------------------------------
# Bonuses and bounds
# ---------------------------------------------------------------------------


class TestBonuses:
    def test_score_is_clamped_to_100(self):
        prefs = PartnerPreferences(age_min=30, age_max=40, religion="Christian")
        cand = Profile(user_id="c1", age=35, religion="Christian")
        result = score(prefs, cand, interaction=InteractionSignals(liked=True, mutual=True))
        assert result.value == 100
        assert result.bonus == 7

    def test_mutual_interest_adds_bonus(self):
        result = score(None, Profile(user_id="c1"), interaction=InteractionSignals(mutual=True))
        assert result.value == BASELINE + 5

    def test_recency_bonus_is_capped(self):
        cand = Profile(
            user_id="c1",
            account_status="active",
            last_active_at=NOW - timedelta(hours=1),
            updated_at=NOW - timedelta(days=2),
        )
        result = score(None, cand, now=NOW)
        assert result.bonus == 5
        assert result.value == BASELINE + 5

    def test_no_recency_bonus_without_clock(self):
        cand = Profile(user_id="c1", last_active_at=NOW)
        assert score(None, cand).bonus == 0

    def test_inactive_account_gets_no_recency_bonus(self):
        cand = Profile(user_id="c1", account_status="suspended", last_active_at=NOW)
        assert score(None, cand, now=NOW).bonus == 0

    def test_deterministic(self):
        prefs = PartnerPreferences(age_min=25, age_max=32, location="Accra", religion=["Christian"])
        cand = Profile(user_id="c1", age=34, location="Accra, Ghana", religion="Catholic")
        assert score(prefs, cand, now=NOW) == score(prefs, cand, now=NOW)

    def test_to_dict_lists_every_dimension(self):
        data = score(PartnerPreferences(religion="Christian"), Profile(user_id="c1", religion="Christian")).to_dict()
        assert data["dimensions"]["religion"] == 1.0
        assert data["dimensions"]["age"] is None
        assert len(data["dimensions"]) == 11


# ---------------------------------------------------------------------------
# Labels and parsing helpers
# ---------------------------------------------------------------------------


class TestLabels:
    @pytest.mark.parametrize(
        "value,label",
        [
            (100, "Excellent Match"),
            (85, "Excellent Match"),
            (84, "Great Match"),
            (70, "Great Match"),
            (69, "Good Match"),
            (50, "Good Match"),
            (49, "Fair Match"),
            (30, "Fair Match"),
            (29, "Discover"),
            (0, "Discover"),
        ],
    )
    def test_thresholds(self, value, label):
        assert label_for(value).label == label

    def test_discover_has_no_badge(self):
        assert label_for(10).show_badge is False
        assert label_for(60).show_badge is True


class TestParseAgeRange:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("30 - 40", (30, 40)),
            ("40-30", (30, 40)),
            ("30+", (30, None)),
            ([25, "35"], (25, 35)),
            ("whenever", (None, None)),
            (None, (None, None)),
        ],
    )
    def test_parse(self, raw, expected):
        assert parse_age_range(raw) == expected


class TestCompleteness:
    def test_empty_profile(self):
        assert profile_completeness(Profile(user_id="c1")) == 0

    def test_full_profile(self):
        cand = Profile(
            user_id="c1", first_name="Ada", location="Lagos", age=30, height_cm=170,
            ethnicity=["Igbo"], religion="Christian", education_level="Masters",
            employment="Engineer", smoking_habits="never", have_children=False,
            want_children="yes", languages=["English"], photo_count=5,
        )
        assert profile_completeness(cand) == 100
