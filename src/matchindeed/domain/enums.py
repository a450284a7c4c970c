"""Domain enumerations for MatchIndeed.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class AccountRole(str, Enum):
    """Role attached to an account."""

    USER = "user"
    HOST = "host"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"
    MODERATOR = "moderator"


ADMIN_ROLES: set[str] = {
    AccountRole.ADMIN.value,
    AccountRole.SUPERADMIN.value,
    AccountRole.MODERATOR.value,
}


class AccountStatus(str, Enum):
    """Whether an account may be shown to other members."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DEACTIVATED = "deactivated"


class ActivityType(str, Enum):
    """Activity one member records toward another."""

    WINK = "wink"
    LIKE = "like"
    INTERESTED = "interested"
    REJECTED = "rejected"


# Soft signals feed scoring; REJECTED is an exclusion and never scored.
SOFT_INTEREST_ACTIVITIES: frozenset[ActivityType] = frozenset({
    ActivityType.WINK,
    ActivityType.LIKE,
    ActivityType.INTERESTED,
})


class MeetingType(str, Enum):
    """Kind of video meeting."""

    ONE_ON_ONE = "one_on_one"
    GROUP = "group"


class MeetingStatus(str, Enum):
    """Lifecycle status of a meeting."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    COMPLETED = "completed"


class ChargeStatus(str, Enum):
    """Financial disposition of a meeting's fee."""

    PENDING = "pending"
    CAPTURED = "captured"
    REFUNDED = "refunded"
    PENDING_REVIEW = "pending_review"


class ParticipantRole(str, Enum):
    """Role of a participant within a meeting."""

    HOST = "host"
    GUEST = "guest"
    COORDINATOR = "coordinator"


class ParticipantResponse(str, Enum):
    """A participant's answer to a meeting request."""

    REQUESTED = "requested"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class MeetingOutcome(str, Enum):
    """How a meeting actually went, as reported by the host."""

    COMPLETED = "completed"
    NO_SHOW = "no_show"
    EARLY_LEAVE = "early_leave"
    NETWORK_DISCONNECT = "network_disconnect"


class FaultDetermination(str, Enum):
    """Which participant caused a non-ideal outcome."""

    NO_FAULT = "no_fault"
    REQUESTER_FAULT = "requester_fault"
    ACCEPTER_FAULT = "accepter_fault"
    BOTH_FAULT = "both_fault"


class ChargeDecision(str, Enum):
    """Host's decision when finalizing a meeting."""

    CAPTURE = "capture"
    REFUND = "refund"
    PENDING_REVIEW = "pending_review"


class InvestigationResolution(str, Enum):
    """Admin's ruling on a meeting under review."""

    CHARGE_REQUESTER = "charge_requester"
    REFUND_REQUESTER = "refund_requester"
    CHARGE_ACCEPTER = "charge_accepter"
    NO_CHARGE = "no_charge"
    SPLIT = "split"


class LedgerAccount(str, Enum):
    """Balance a posting applies to."""

    CREDITS = "credits"
    WALLET = "wallet"


class LedgerReason(str, Enum):
    """Why a ledger posting was made."""

    MEETING_CHARGE = "meeting_charge"
    MEETING_REFUND = "meeting_refund"
    CANCELLATION_FEE = "cancellation_fee"
    INVESTIGATION_REFUND = "investigation_refund"
    INVESTIGATION_CHARGE = "investigation_charge"


class MeetingEventType(str, Enum):
    """Audit event types recorded for meeting transitions."""

    REQUESTED = "requested"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    COMPLETED = "completed"
    FINALIZED = "finalized"
    REVIEW_OPENED = "review_opened"
    INVESTIGATION_RESOLVED = "investigation_resolved"


class NotificationKind(str, Enum):
    """Notification types delivered to members."""

    MEETING_REQUEST = "meeting_request"
    MEETING_CONFIRMED = "meeting_confirmed"
    MEETING_DECLINED = "meeting_declined"
    MEETING_CANCELED = "meeting_canceled"
    MEETING_REMINDER = "meeting_reminder"
    MEETING_FINALIZED = "meeting_finalized"
    MEETING_INVESTIGATION = "meeting_investigation"
    INVESTIGATION_RESOLVED = "investigation_resolved"
