"""Read-side access to profiles, preferences, activities and blocks.

Converts ORM rows into the plain value objects the compatibility scorer
works on, so the scorer never touches the database.
"""

from typing import Iterable, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from matchindeed.domain.enums import SOFT_INTEREST_ACTIVITIES, AccountStatus, ActivityType
from matchindeed.domain.models import (
    Account,
    BlockedUser,
    UserActivity,
    UserPreferences,
    UserProfile,
)
from matchindeed.services.compatibility import (
    InteractionSignals,
    PartnerPreferences,
    Profile,
    parse_age_range,
)

_SOFT_VALUES = [a.value for a in SOFT_INTEREST_ACTIVITIES]


def to_profile(account: Account, row: Optional[UserProfile]) -> Profile:
    if row is None:
        return Profile(
            user_id=account.id,
            first_name=account.display_name,
            account_status=account.account_status,
            last_active_at=account.last_active_at,
        )
    return Profile(
        user_id=account.id,
        first_name=row.first_name or account.display_name,
        location=row.location,
        date_of_birth=row.date_of_birth,
        height_cm=row.height_cm,
        ethnicity=row.ethnicity,
        religion=row.religion,
        education_level=row.education_level,
        employment=row.employment,
        smoking_habits=row.smoking_habits,
        have_children=row.have_children,
        want_children=row.want_children,
        languages=row.languages,
        photo_count=row.photo_count or 0,
        account_status=account.account_status,
        last_active_at=account.last_active_at,
        updated_at=row.updated_at,
    )


def to_preferences(row: UserPreferences) -> PartnerPreferences:
    age_min, age_max = parse_age_range(row.partner_age_range)
    return PartnerPreferences(
        location=row.partner_location,
        blocked_locations=tuple(row.blocked_locations or ()),
        age_min=age_min,
        age_max=age_max,
        height_min_cm=row.partner_height_min_cm,
        height_max_cm=row.partner_height_max_cm,
        ethnicity=row.partner_ethnicity,
        religion=row.partner_religion,
        education=row.partner_education,
        languages=row.partner_languages,
        employment=row.partner_employment,
        have_children=row.partner_have_children,
        want_children=row.partner_want_children,
        smoking=row.partner_smoking,
    )


async def get_account(db: AsyncSession, user_id: str) -> Optional[Account]:
    result = await db.execute(select(Account).where(Account.id == user_id))
    return result.scalar_one_or_none()


async def get_profile(db: AsyncSession, user_id: str) -> Optional[Profile]:
    """Profile snapshot for a user, or None when the account does not exist."""
    result = await db.execute(
        select(Account, UserProfile)
        .outerjoin(UserProfile, UserProfile.user_id == Account.id)
        .where(Account.id == user_id)
    )
    row = result.first()
    if row is None:
        return None
    return to_profile(row[0], row[1])


async def get_preferences(db: AsyncSession, user_id: str) -> Optional[PartnerPreferences]:
    """The user's partner preferences, or None if they never set any."""
    result = await db.execute(select(UserPreferences).where(UserPreferences.user_id == user_id))
    row = result.scalar_one_or_none()
    return to_preferences(row) if row else None


async def get_blocked_or_rejected(db: AsyncSession, user_id: str) -> set[str]:
    """Users this viewer must never see: their rejections plus blocks either way."""
    excluded: set[str] = set()

    result = await db.execute(
        select(UserActivity.target_user_id).where(
            UserActivity.user_id == user_id,
            UserActivity.activity_type == ActivityType.REJECTED.value,
        )
    )
    excluded.update(result.scalars().all())

    result = await db.execute(
        select(BlockedUser.blocker_id, BlockedUser.blocked_id).where(
            or_(BlockedUser.blocker_id == user_id, BlockedUser.blocked_id == user_id)
        )
    )
    for blocker_id, blocked_id in result.all():
        excluded.add(blocked_id if blocker_id == user_id else blocker_id)

    excluded.discard(user_id)
    return excluded


async def is_blocked_pair(db: AsyncSession, user_a: str, user_b: str) -> bool:
    result = await db.execute(
        select(BlockedUser.id).where(
            or_(
                (BlockedUser.blocker_id == user_a) & (BlockedUser.blocked_id == user_b),
                (BlockedUser.blocker_id == user_b) & (BlockedUser.blocked_id == user_a),
            )
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def get_interaction_signals(
    db: AsyncSession,
    viewer_id: str,
    candidate_ids: Optional[Iterable[str]] = None,
) -> dict[str, InteractionSignals]:
    """Soft-interest signals between the viewer and each candidate that has any."""
    sent_query = select(UserActivity.target_user_id).where(
        UserActivity.user_id == viewer_id,
        UserActivity.activity_type.in_(_SOFT_VALUES),
    )
    received_query = select(UserActivity.user_id).where(
        UserActivity.target_user_id == viewer_id,
        UserActivity.activity_type.in_(_SOFT_VALUES),
    )
    if candidate_ids is not None:
        ids = list(candidate_ids)
        sent_query = sent_query.where(UserActivity.target_user_id.in_(ids))
        received_query = received_query.where(UserActivity.user_id.in_(ids))

    liked = set((await db.execute(sent_query)).scalars().all())
    received = set((await db.execute(received_query)).scalars().all())

    return {
        user_id: InteractionSignals(liked=user_id in liked, mutual=user_id in received)
        for user_id in liked | received
    }


async def list_active_candidates(db: AsyncSession, viewer_id: str) -> list[Profile]:
    """Active accounts other than the viewer, with whatever profile data they have."""
    result = await db.execute(
        select(Account, UserProfile)
        .outerjoin(UserProfile, UserProfile.user_id == Account.id)
        .where(
            Account.id != viewer_id,
            Account.account_status == AccountStatus.ACTIVE.value,
        )
        .order_by(Account.id)
    )
    return [to_profile(account, profile) for account, profile in result.all()]


async def get_display_names(db: AsyncSession, user_ids: Iterable[str]) -> dict[str, str]:
    """First name (or display name) per user, falling back to "User"."""
    ids = list(user_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(Account.id, Account.display_name, UserProfile.first_name)
        .outerjoin(UserProfile, UserProfile.user_id == Account.id)
        .where(Account.id.in_(ids))
    )
    names = {uid: first or display or "User" for uid, display, first in result.all()}
    for uid in ids:
        names.setdefault(uid, "User")
    return names
