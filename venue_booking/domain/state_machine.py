# venue_booking/domain/state_machine.py

from enum import Enum
from typing import Dict, FrozenSet, Union

from venue_booking.domain.exceptions import InvalidStateTransitionError, ValidationError


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


# Bookings in these states occupy their slot.
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

StatusLike = Union[BookingStatus, str]


class BookingStateMachine:
    """
    Lifecycle rules for a venue booking.

    Soft deletion is a flag on the booking, orthogonal to these states:
    a deleted booking keeps its status and gets it back on restore.
    """

    _NEXT: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
        BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
        BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
        BookingStatus.CANCELLED: frozenset(),
    }

    @classmethod
    def can_transition(cls, from_status: StatusLike, to_status: StatusLike) -> bool:
        return cls.coerce(to_status) in cls._NEXT[cls.coerce(from_status)]

    @classmethod
    def advance(cls, from_status: StatusLike, to_status: StatusLike) -> BookingStatus:
        """Return ``to_status`` if the move is legal, else raise InvalidStateTransitionError."""
        current, target = cls.coerce(from_status), cls.coerce(to_status)
        if target not in cls._NEXT[current]:
            raise InvalidStateTransitionError(
                from_state=current.value,
                to_state=target.value,
            )
        return target

    @classmethod
    def is_terminal(cls, status: StatusLike) -> bool:
        return not cls._NEXT[cls.coerce(status)]

    @classmethod
    def occupies_slot(cls, status: StatusLike) -> bool:
        return cls.coerce(status) in ACTIVE_BOOKING_STATUSES

    @classmethod
    def next_statuses(cls, status: StatusLike) -> FrozenSet[BookingStatus]:
        return cls._NEXT[cls.coerce(status)]

    @staticmethod
    def coerce(status: StatusLike) -> BookingStatus:
        # Stored rows and request bodies carry plain strings.
        try:
            return BookingStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown booking status: {status}") from exc
