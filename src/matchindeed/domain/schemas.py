"""Pydantic v2 schemas for API request/response validation."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from matchindeed.domain.enums import (
    ChargeDecision,
    FaultDetermination,
    InvestigationResolution,
    MeetingOutcome,
    MeetingType,
)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class AccountCreate(BaseModel):
    """Schema for creating a new account."""

    email: str
    password: str = Field(min_length=8)
    display_name: str | None = None


class AccountLogin(BaseModel):
    """Schema for account login."""

    email: str
    password: str


class AccountResponse(BaseModel):
    """Schema for account API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    display_name: str | None = None
    role: str
    account_status: str


class TokenResponse(BaseModel):
    """Schema for JWT token responses."""

    access_token: str
    token_type: str = "bearer"
    account: AccountResponse


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str


# ---------------------------------------------------------------------------
# Meetings
# ---------------------------------------------------------------------------


class MeetingRequest(BaseModel):
    """Caller (the requester) asks ``host_id`` for a meeting.

    Fees are not part of the request; the server sets them from settings.
    """

    host_id: str
    scheduled_at: datetime
    meeting_type: MeetingType = MeetingType.ONE_ON_ONE
    extra_guest_ids: list[str] = Field(default_factory=list)
    coordinator_id: str | None = None


class MeetingRespond(BaseModel):
    accept: bool


class MeetingCancel(BaseModel):
    confirm_fee: bool = False
    reason: str | None = Field(None, max_length=500)


class MeetingFinalize(BaseModel):
    """Host's conclusion of a meeting."""

    outcome: MeetingOutcome
    fault_determination: FaultDetermination = FaultDetermination.NO_FAULT
    charge_decision: ChargeDecision
    notes: str | None = None


class InvestigationResolve(BaseModel):
    resolution: InvestigationResolution
    admin_notes: str | None = None


class ParticipantResponse(BaseModel):
    user_id: str
    role: str
    response: str
    responded_at: str | None = None


class MeetingResponse(BaseModel):
    """Serialized meeting. Investigation flags are derived at read time."""

    id: str
    host_id: str
    requester_id: str
    type: str
    status: str
    scheduled_at: str | None = None
    fee_credits: int
    fee_cents: int
    cancellation_fee_cents: int
    charge_status: str
    confirmed_at: str | None = None
    canceled_at: str | None = None
    canceled_by: str | None = None
    cancel_reason: str | None = None
    completed_at: str | None = None
    outcome: str | None = None
    fault_determination: str | None = None
    host_notes: str | None = None
    finalized_at: str | None = None
    finalized_by: str | None = None
    review_started_at: str | None = None
    resolution: str | None = None
    resolution_notes: str | None = None
    days_in_review: float | None = None
    is_urgent: bool = False
    version: int
    created_at: str | None = None
    participants: list[ParticipantResponse] | None = None


class CancellationPreview(BaseModel):
    meeting_id: str
    status: str
    can_cancel: bool
    cancellation_fee_cents: int
    requires_confirmation: bool
    meeting_fee_forfeited: bool
    message: str


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------


class TopPick(BaseModel):
    user_id: str
    first_name: str | None = None
    location: str | None = None
    score: int
    label: str
    band: str
    color: str
    show_badge: bool
    profile_completeness: int
    liked: bool
    mutual: bool


class MatchScoreResponse(BaseModel):
    candidate_id: str
    value: int
    label: str
    band: str
    color: str
    show_badge: bool
    bonus: int
    dimensions: dict[str, float | None]
