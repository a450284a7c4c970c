"""Deterministic compatibility scorer.

Pure-function module: NO database access, NO clock reads unless ``now`` is
passed in (or a date of birth has to be turned into an age).

Scores a candidate profile against a viewer's partner preferences across
eleven weighted dimensions:
    - Location        (20)  substring match, blocked locations score -1
    - Age             (15)  range with linear decay outside it
    - Height          (10)  range with linear decay outside it
    - Ethnicity       (10)  any overlap
    - Religion        (10)  any overlap
    - Education        (8)  any overlap
    - Has children     (7)  yes / no
    - Wants children   (7)  exact, "maybe" earns half credit
    - Smoking          (5)  habit folded into yes / no
    - Employment       (4)  substring match
    - Languages        (4)  any overlap

Only dimensions stated on BOTH sides are scored; everything else is neutral.
Interaction signals and recency add small bounded bonuses on top.

Rejections and blocks are NOT handled here. Callers filter those out before
ranking (see ``top_picks.rank_candidates``).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Optional, Sequence

logger = logging.getLogger(__name__)

# ── Weights ──────────────────────────────────────────────────────────────────

W_LOCATION = 20
W_AGE = 15
W_HEIGHT = 10
W_ETHNICITY = 10
W_RELIGION = 10
W_EDUCATION = 8
W_HAS_CHILDREN = 7
W_WANTS_CHILDREN = 7
W_SMOKING = 5
W_EMPLOYMENT = 4
W_LANGUAGES = 4

# Score before any dimension is applied; also the result for empty preferences
BASELINE = 50

# Full credit on every scored dimension moves the score SPREAD/2 above baseline
SPREAD = 90

AGE_TOLERANCE_YEARS = 5
HEIGHT_TOLERANCE_CM = 10

LIKED_BONUS = 2
MUTUAL_BONUS = 5
MAX_RECENCY_BONUS = 5

OPEN_VALUES = frozenset({
    "",
    "any",
    "open",
    "doesnt_matter",
    "doesn't matter",
    "doesnt matter",
    "no preference",
    "no_preference",
})

# Candidate-side ethnicity answers that carry no information
UNDISCLOSED_ETHNICITY = frozenset({"i'd rather not say", "rather not say", "prefer not to say"})

NON_SMOKER_HABITS = frozenset({"never", "no", "non-smoker", "non_smoker", "trying_to_quit", "trying to quit"})
SMOKER_HABITS = frozenset({"occasionally", "regularly", "socially", "yes", "smoker"})

UNDECIDED_CHILDREN = frozenset({"maybe", "not sure", "not_sure", "undecided", "open"})

_AGE_RANGE_RE = re.compile(r"(\d+)\s*[-–]\s*(\d+)")
_AGE_FLOOR_RE = re.compile(r"(\d+)\s*\+")


# ── Value objects ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Profile:
    """Read-only snapshot of a candidate. Only ``user_id`` is required."""

    user_id: str
    first_name: Optional[str] = None
    location: Optional[str] = None
    date_of_birth: Any = None
    age: Optional[int] = None
    height_cm: Any = None
    ethnicity: Any = None  # single value or list
    religion: Optional[str] = None
    education_level: Optional[str] = None
    employment: Optional[str] = None
    smoking_habits: Optional[str] = None
    have_children: Any = None  # bool or "yes" / "no"
    want_children: Optional[str] = None
    languages: Any = None
    photo_count: int = 0
    account_status: Optional[str] = None
    last_active_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class PartnerPreferences:
    """A viewer's desired-partner filters. ``None`` means "no preference"."""

    location: Optional[str] = None
    blocked_locations: Sequence[str] = ()
    age_min: Optional[int] = None
    age_max: Optional[int] = None
    height_min_cm: Optional[int] = None
    height_max_cm: Optional[int] = None
    ethnicity: Any = None
    religion: Any = None
    education: Any = None
    languages: Any = None
    employment: Optional[str] = None
    have_children: Optional[str] = None
    want_children: Optional[str] = None
    smoking: Optional[str] = None


@dataclass(frozen=True)
class InteractionSignals:
    """Soft interest between viewer and candidate.

    ``liked``: the viewer sent a wink, like or interest to the candidate.
    ``mutual``: the candidate sent one back to the viewer.
    """

    liked: bool = False
    mutual: bool = False


@dataclass(frozen=True)
class DimensionResult:
    name: str
    weight: int
    credit: Optional[float]  # None = not scored


@dataclass(frozen=True)
class MatchBand:
    label: str
    band: str
    color: str
    show_badge: bool


@dataclass(frozen=True)
class CompatibilityScore:
    value: int
    label: str
    band: str
    color: str
    show_badge: bool
    dimensions: tuple[DimensionResult, ...] = field(default_factory=tuple)
    bonus: int = 0

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "label": self.label,
            "band": self.band,
            "color": self.color,
            "show_badge": self.show_badge,
            "bonus": self.bonus,
            "dimensions": {
                d.name: None if d.credit is None else round(d.credit, 3)
                for d in self.dimensions
            },
        }


# ── Bands ────────────────────────────────────────────────────────────────────

# (min score, label, band, color). Checked top-down; first hit wins.
BANDS: tuple[tuple[int, str, str, str], ...] = (
    (85, "Excellent Match", "excellent", "emerald"),
    (70, "Great Match", "great", "blue"),
    (50, "Good Match", "good", "amber"),
    (30, "Fair Match", "fair", "orange"),
)
DISCOVER_BAND = MatchBand("Discover", "discover", "gray", False)


def label_for(value: int) -> MatchBand:
    """Map a 0-100 score to its label and presentation band."""
    for threshold, label, band, color in BANDS:
        if value >= threshold:
            return MatchBand(label, band, color, True)
    return DISCOVER_BAND


# ── Helpers ──────────────────────────────────────────────────────────────────

def _norm(value) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip().lower()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _is_open(value) -> bool:
    return _norm(value) in OPEN_VALUES


def _as_list(value) -> list[str]:
    """Normalise a single value or a collection into lowercased strings."""
    if value is None:
        return []
    if isinstance(value, str):
        items = [value]
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        return []
    return [n for n in (_norm(v) for v in items) if n]


def _to_number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _parse_date(value) -> Optional[date]:
    """Best-effort parse of a date-like value into a ``date`` object.

    Accepts ``date``, ``datetime``, ISO-format strings, or ``None``.
    Returns ``None`` when the value cannot be interpreted as a date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        try:
            return date.fromisoformat(cleaned[:10])
        except (ValueError, TypeError):
            return None
    return None


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _overlaps(wanted: list[str], have: list[str]) -> bool:
    """True when any wanted value equals or contains (or is contained by) a held one."""
    for w in wanted:
        for h in have:
            if w == h or w in h or h in w:
                return True
    return False


def _range_credit(value: float, low: Optional[float], high: Optional[float], tolerance: float) -> float:
    """1 inside the range, decaying to 0 at ``tolerance`` and -1 at twice that."""
    if low is not None and high is not None and low > high:
        low, high = high, low
    if low is not None and value < low:
        distance = low - value
    elif high is not None and value > high:
        distance = value - high
    else:
        return 1.0
    if distance <= tolerance:
        return 1.0 - distance / tolerance
    return max(-1.0, -(distance - tolerance) / tolerance)


def parse_age_range(value) -> tuple[Optional[int], Optional[int]]:
    """Parse an age range as entered in the preferences form.

    ``"30 - 40"`` -> (30, 40); ``"30+"`` -> (30, None); a two-item
    list or tuple is taken as-is. Anything else yields (None, None).
    """
    if isinstance(value, (list, tuple)) and len(value) == 2:
        low, high = (_to_number(v) for v in value)
        return (
            int(low) if low is not None else None,
            int(high) if high is not None else None,
        )
    if not isinstance(value, str):
        return None, None
    match = _AGE_RANGE_RE.search(value)
    if match:
        low, high = int(match.group(1)), int(match.group(2))
        return min(low, high), max(low, high)
    match = _AGE_FLOOR_RE.search(value)
    if match:
        return int(match.group(1)), None
    return None, None


def candidate_age(profile: Profile, now: Optional[datetime] = None) -> Optional[int]:
    """Age in whole years from ``profile.age`` or ``profile.date_of_birth``."""
    explicit = _to_number(profile.age)
    if explicit is not None:
        return int(explicit) if 0 <= explicit <= 130 else None

    born = _parse_date(profile.date_of_birth)
    if born is None:
        return None
    today = now.date() if isinstance(now, datetime) else date.today()
    years = today.year - born.year - ((today.month, today.day) < (born.month, born.day))
    return years if 0 <= years <= 130 else None


def profile_completeness(profile: Profile) -> int:
    """0-100 estimate of how filled-in a profile is. Photos count for 20."""
    fields = (
        profile.first_name,
        profile.location,
        profile.date_of_birth or profile.age,
        profile.height_cm,
        _as_list(profile.ethnicity),
        profile.religion,
        profile.education_level,
        profile.employment,
        profile.smoking_habits,
        profile.have_children,
        profile.want_children,
        _as_list(profile.languages),
    )
    filled = sum(1 for f in fields if f not in (None, "", []))
    photos = _to_number(profile.photo_count) or 0
    photo_points = min(max(photos, 0), 3) / 3 * 20
    return int(round(filled / len(fields) * 80 + photo_points))


# ── Dimension rules ──────────────────────────────────────────────────────────
#
# Each rule returns a credit in [-1, 1], or None when the dimension is not
# stated on both sides.

def _location_credit(prefs: PartnerPreferences, cand: Profile) -> Optional[float]:
    where = _norm(cand.location)
    if not where:
        return None

    for blocked in _as_list(prefs.blocked_locations):
        if blocked in where or where in blocked:
            return -1.0

    wanted = _norm(prefs.location)
    if _is_open(wanted):
        return None
    if wanted in where or where in wanted:
        return 1.0

    # "Lagos, Nigeria" vs "Abuja, Nigeria": same country, different city
    wanted_parts = {p.strip() for p in wanted.split(",") if p.strip()}
    where_parts = {p.strip() for p in where.split(",") if p.strip()}
    if wanted_parts & where_parts:
        return 0.5
    return 0.0


def _age_credit(prefs: PartnerPreferences, cand: Profile, now: Optional[datetime]) -> Optional[float]:
    low, high = _to_number(prefs.age_min), _to_number(prefs.age_max)
    if low is None and high is None:
        return None
    age = candidate_age(cand, now)
    if age is None:
        return None
    return _range_credit(age, low, high, AGE_TOLERANCE_YEARS)


def _height_credit(prefs: PartnerPreferences, cand: Profile) -> Optional[float]:
    low, high = _to_number(prefs.height_min_cm), _to_number(prefs.height_max_cm)
    if low is None and high is None:
        return None
    height = _to_number(cand.height_cm)
    if height is None or height <= 0:
        return None
    return _range_credit(height, low, high, HEIGHT_TOLERANCE_CM)


def _categorical_credit(wanted_raw, have_raw, undisclosed: frozenset = frozenset()) -> Optional[float]:
    wanted = [w for w in _as_list(wanted_raw) if w not in OPEN_VALUES]
    if not wanted:
        return None
    have = [h for h in _as_list(have_raw) if h not in undisclosed]
    if not have:
        return None
    return 1.0 if _overlaps(wanted, have) else 0.0


def _yes_no(value) -> Optional[str]:
    if isinstance(value, bool):
        return "yes" if value else "no"
    text = _norm(value)
    if text in ("yes", "true", "y"):
        return "yes"
    if text in ("no", "false", "n"):
        return "no"
    return None


def _has_children_credit(prefs: PartnerPreferences, cand: Profile) -> Optional[float]:
    if _is_open(prefs.have_children):
        return None
    wanted = _yes_no(prefs.have_children)
    have = _yes_no(cand.have_children)
    if wanted is None or have is None:
        return None
    return 1.0 if wanted == have else 0.0


def _wants_children_credit(prefs: PartnerPreferences, cand: Profile) -> Optional[float]:
    wanted = _norm(prefs.want_children)
    have = _norm(cand.want_children)
    if wanted in OPEN_VALUES or not have:
        return None
    if wanted == have:
        return 1.0
    if wanted in UNDECIDED_CHILDREN or have in UNDECIDED_CHILDREN:
        return 0.5
    return 0.0


def _smoking_credit(prefs: PartnerPreferences, cand: Profile) -> Optional[float]:
    if _is_open(prefs.smoking):
        return None
    wanted = _yes_no(prefs.smoking)
    habit = _norm(cand.smoking_habits)
    if habit in NON_SMOKER_HABITS:
        have = "no"
    elif habit in SMOKER_HABITS:
        have = "yes"
    else:
        have = None
    if wanted is None or have is None:
        return None
    return 1.0 if wanted == have else 0.0


def _employment_credit(prefs: PartnerPreferences, cand: Profile) -> Optional[float]:
    return _categorical_credit(prefs.employment, cand.employment)


def _recency_bonus(cand: Profile, now: Optional[datetime]) -> int:
    """Small bonus for recently active or updated profiles, capped."""
    if not isinstance(now, datetime):
        return 0
    if _norm(cand.account_status) not in ("", "active"):
        return 0
    now = _aware(now)
    bonus = 0

    last_active = _aware(cand.last_active_at)
    if last_active is not None:
        days = max((now - last_active).total_seconds() / 86400, 0)
        if days <= 1:
            bonus += 3
        elif days <= 7:
            bonus += 2
        elif days <= 30:
            bonus += 1

    updated = _aware(cand.updated_at)
    if updated is not None:
        days = max((now - updated).total_seconds() / 86400, 0)
        if days <= 7:
            bonus += 2
        elif days <= 30:
            bonus += 1

    return min(bonus, MAX_RECENCY_BONUS)


# ── Main scorer ──────────────────────────────────────────────────────────────

def _dimensions(prefs: PartnerPreferences, cand: Profile, now: Optional[datetime]):
    return (
        ("location", W_LOCATION, lambda: _location_credit(prefs, cand)),
        ("age", W_AGE, lambda: _age_credit(prefs, cand, now)),
        ("height", W_HEIGHT, lambda: _height_credit(prefs, cand)),
        ("ethnicity", W_ETHNICITY, lambda: _categorical_credit(prefs.ethnicity, cand.ethnicity, UNDISCLOSED_ETHNICITY)),
        ("religion", W_RELIGION, lambda: _categorical_credit(prefs.religion, cand.religion)),
        ("education", W_EDUCATION, lambda: _categorical_credit(prefs.education, cand.education_level)),
        ("has_children", W_HAS_CHILDREN, lambda: _has_children_credit(prefs, cand)),
        ("wants_children", W_WANTS_CHILDREN, lambda: _wants_children_credit(prefs, cand)),
        ("smoking", W_SMOKING, lambda: _smoking_credit(prefs, cand)),
        ("employment", W_EMPLOYMENT, lambda: _employment_credit(prefs, cand)),
        ("languages", W_LANGUAGES, lambda: _categorical_credit(prefs.languages, cand.languages)),
    )


def score(
    preferences: Optional[PartnerPreferences],
    candidate: Profile,
    *,
    interaction: Optional[InteractionSignals] = None,
    now: Optional[datetime] = None,
) -> CompatibilityScore:
    """Compute a deterministic compatibility score for one candidate.

    Parameters
    ----------
    preferences
        The viewer's partner preferences, or ``None`` when the viewer has
        not set any. Missing preferences yield the neutral baseline.
    candidate
        Snapshot of the candidate's profile.
    interaction
        Optional soft-interest signals between viewer and candidate.
    now
        Reference time for the recency bonus and for deriving age from a
        date of birth. No recency bonus is given without it.

    Returns
    -------
    CompatibilityScore
        Value clamped to [0, 100] with its label and band. Never raises:
        a dimension whose inputs cannot be interpreted is left unscored.
    """
    results: list[DimensionResult] = []
    if preferences is not None:
        for name, weight, rule in _dimensions(preferences, candidate, now):
            try:
                credit = rule()
            except (TypeError, ValueError, AttributeError, OverflowError):
                logger.debug("Unscorable %s for candidate %s", name, candidate.user_id, exc_info=True)
                credit = None
            results.append(DimensionResult(name, weight, credit))

    scored = [r for r in results if r.credit is not None]
    total_weight = sum(r.weight for r in scored)

    value = float(BASELINE)
    if total_weight:
        value += sum(SPREAD * r.weight * (r.credit - 0.5) for r in scored) / total_weight

    bonus = 0
    if interaction is not None:
        if interaction.liked:
            bonus += LIKED_BONUS
        if interaction.mutual:
            bonus += MUTUAL_BONUS
    bonus += _recency_bonus(candidate, now)

    final = max(0, min(100, int(round(value + bonus))))
    band = label_for(final)
    return CompatibilityScore(
        value=final,
        label=band.label,
        band=band.band,
        color=band.color,
        show_badge=band.show_badge,
        dimensions=tuple(results),
        bonus=bonus,
    )
