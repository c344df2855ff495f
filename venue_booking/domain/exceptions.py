from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    INVALID_TRANSITION = "invalid_transition"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    RECONCILIATION = "reconciliation"


@dataclass(frozen=True)
class ConflictingEntity:
    """A record that blocks the requested operation."""

    kind: str
    id: str
    label: str


class VenueBookingError(Exception):
    """
    Base exception for all domain-level errors
    inside the venue booking engine.
    """

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(VenueBookingError):
    """Raised for malformed input: bad interval, negative amount, missing field."""

    kind = ErrorKind.VALIDATION


class InvalidStateTransitionError(ValidationError):
    """
    Raised when an illegal booking state transition is attempted.
    """

    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class ConflictError(VenueBookingError):
    """Raised when a slot overlaps a blackout or another booking."""

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str, conflicts: list[ConflictingEntity]):
        self.conflicts = list(conflicts)
        super().__init__(message)


class NotFoundError(VenueBookingError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id: str, message: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} not found: {entity_id}")


class PermissionDeniedError(VenueBookingError):
    """Raised when the access policy refuses an action."""

    kind = ErrorKind.PERMISSION

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Not permitted to perform {action}")


class ReconciliationInvariantError(VenueBookingError):
    """Raised when the ledger sum for a booking cannot be computed consistently."""

    kind = ErrorKind.RECONCILIATION

    def __init__(self, booking_id: str, reason: str):
        self.booking_id = booking_id
        super().__init__(
            f"Cannot reconcile payments for booking {booking_id}: {reason}"
        )
