"""SQLAlchemy ORM models for MatchIndeed.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from matchindeed.infra.database import Base


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


class Account(Base):
    """Platform account. Role decides access to host and admin surfaces."""

    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=True)
    display_name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="user")  # AccountRole
    account_status = Column(String(20), nullable=False, default="active", index=True)  # AccountStatus
    last_active_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())


class UserProfile(Base):
    """Attributes other members are matched against."""

    __tablename__ = "user_profiles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("accounts.id"), unique=True, nullable=False)
    first_name = Column(String(100))
    location = Column(String(255))
    date_of_birth = Column(Date)
    height_cm = Column(Integer)
    ethnicity = Column(JSON, default=list)
    religion = Column(String(100))
    education_level = Column(String(100))
    employment = Column(String(100))
    smoking_habits = Column(String(50))
    have_children = Column(Boolean, nullable=True)
    want_children = Column(String(50))
    languages = Column(JSON, default=list)
    photo_count = Column(Integer, default=0)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class UserPreferences(Base):
    """A member's desired-partner filters. Every field is optional."""

    __tablename__ = "user_preferences"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("accounts.id"), unique=True, nullable=False)
    partner_location = Column(String(255))
    blocked_locations = Column(JSON, default=list)
    partner_age_range = Column(String(20))  # e.g. "30 - 40", as entered in the form
    partner_height_min_cm = Column(Integer)
    partner_height_max_cm = Column(Integer)
    partner_ethnicity = Column(JSON, default=list)
    partner_religion = Column(JSON, default=list)
    partner_education = Column(JSON, default=list)
    partner_languages = Column(JSON, default=list)
    partner_employment = Column(String(100))
    partner_have_children = Column(String(20))  # yes / no / doesnt_matter
    partner_want_children = Column(String(50))
    partner_smoking = Column(String(20))  # yes / no / doesnt_matter
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class UserActivity(Base):
    """Wink, like, interest or rejection from one member toward another."""

    __tablename__ = "user_activities"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    target_user_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    activity_type = Column(String(20), nullable=False)  # ActivityType
    created_at = Column(DateTime, default=func.now())


class BlockedUser(Base):
    """One member blocking another. Applies in both directions for matching."""

    __tablename__ = "blocked_users"
    __table_args__ = (UniqueConstraint("blocker_id", "blocked_id"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    blocker_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    blocked_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=func.now())


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class CreditAccount(Base):
    """Meeting credits held by a member."""

    __tablename__ = "credit_accounts"

    user_id = Column(String(36), ForeignKey("accounts.id"), primary_key=True)
    balance = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class Wallet(Base):
    """Monetary balance in cents. May go negative when fees are owed."""

    __tablename__ = "wallets"

    user_id = Column(String(36), ForeignKey("accounts.id"), primary_key=True)
    balance_cents = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class LedgerPosting(Base):
    """Immutable signed posting against a credit or wallet balance."""

    __tablename__ = "ledger_postings"
    __table_args__ = (UniqueConstraint("meeting_id", "user_id", "account", "reason"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    meeting_id = Column(String(36), ForeignKey("meetings.id"), nullable=True, index=True)
    account = Column(String(20), nullable=False)  # LedgerAccount
    amount = Column(Integer, nullable=False)
    balance_before = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    reason = Column(String(50), nullable=False)  # LedgerReason
    description = Column(Text)
    created_at = Column(DateTime, default=func.now())


# ---------------------------------------------------------------------------
# Meetings
# ---------------------------------------------------------------------------


class Meeting(Base):
    """A scheduled video meeting and its financial settlement."""

    __tablename__ = "meetings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    host_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    requester_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False, default="one_on_one")  # MeetingType
    status = Column(String(20), nullable=False, default="pending", index=True)  # MeetingStatus
    scheduled_at = Column(DateTime, nullable=False)

    # Fees
    fee_credits = Column(Integer, nullable=False, default=0)
    fee_cents = Column(Integer, nullable=False, default=0)
    cancellation_fee_cents = Column(Integer, nullable=False, default=0)
    charge_status = Column(String(20), nullable=False, default="pending", index=True)  # ChargeStatus

    # Lifecycle
    confirmed_at = Column(DateTime, nullable=True)
    canceled_at = Column(DateTime, nullable=True)
    canceled_by = Column(String(36), nullable=True)
    cancel_reason = Column(String(500), nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Host conclusion
    outcome = Column(String(30), nullable=True)  # MeetingOutcome
    fault_determination = Column(String(30), nullable=True)  # FaultDetermination
    host_notes = Column(Text, nullable=True)
    finalized_at = Column(DateTime, nullable=True)
    finalized_by = Column(String(36), nullable=True)

    # Investigation
    review_started_at = Column(DateTime, nullable=True)
    resolution = Column(String(30), nullable=True)  # InvestigationResolution
    resolution_notes = Column(Text, nullable=True)

    # Bumped by every transition; updates are conditional on the value read.
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())


class MeetingParticipant(Base):
    """A member's seat in a meeting and their response to it."""

    __tablename__ = "meeting_participants"
    __table_args__ = (UniqueConstraint("meeting_id", "user_id"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    meeting_id = Column(String(36), ForeignKey("meetings.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False)  # ParticipantRole
    response = Column(String(20), nullable=False, default="requested")  # ParticipantResponse
    responded_at = Column(DateTime, nullable=True)


class MeetingEvent(Base):
    """Immutable audit trail entry for meeting state transitions."""

    __tablename__ = "meeting_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    meeting_id = Column(String(36), ForeignKey("meetings.id"), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)  # MeetingEventType
    actor_id = Column(String(36), nullable=True)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=True)
    from_charge_status = Column(String(20), nullable=True)
    to_charge_status = Column(String(20), nullable=True)
    data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=func.now())


class MeetingReminder(Base):
    """Reminder scheduled when a meeting is confirmed."""

    __tablename__ = "meeting_reminders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    meeting_id = Column(String(36), ForeignKey("meetings.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    remind_at = Column(DateTime, nullable=False, index=True)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """In-app notification shown in the member's dashboard bell."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("accounts.id"), nullable=False, index=True)
    kind = Column(String(50), nullable=False)  # NotificationKind
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
