"""Typed errors raised by the meeting settlement services.

Routes translate these into HTTP responses; see ``app/routes/meetings.py``.
"""

from typing import Optional


class SettlementError(Exception):
    """Base class for expected business failures."""

    def __init__(self, message: str, meeting_id: Optional[str] = None):
        self.message = message
        self.meeting_id = meeting_id
        super().__init__(message)


class ValidationError(SettlementError):
    """Malformed input: bad date, unknown participant, duplicate participant."""


class NotFoundError(SettlementError):
    """Unknown meeting or user id."""


class StateConflictError(SettlementError):
    """Transition attempted from an incompatible state, or a concurrent write won."""

    def __init__(
        self,
        message: str,
        meeting_id: Optional[str] = None,
        current_status: Optional[str] = None,
        current_charge_status: Optional[str] = None,
    ):
        self.current_status = current_status
        self.current_charge_status = current_charge_status
        super().__init__(message, meeting_id)


class LedgerError(SettlementError):
    """A balance posting failed. The enclosing transition is rolled back."""


class InsufficientCreditsError(ValidationError):
    """The requester cannot cover the meeting fee."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient credits: {required} required, {available} available"
        )


class CancellationFeeConfirmationRequired(ValidationError):
    """Cancelling would charge a fee the caller has not acknowledged."""

    def __init__(self, meeting_id: str, fee_cents: int):
        self.fee_cents = fee_cents
        super().__init__(
            f"Cancelling this confirmed meeting charges a fee of {fee_cents} cents. "
            "Resubmit with confirm_fee to proceed.",
            meeting_id,
        )
