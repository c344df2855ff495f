# tests/unit/test_state_machine.py

import pytest

from venue_booking.domain.state_machine import BookingStateMachine, BookingStatus
from venue_booking.domain.exceptions import (
    ErrorKind,
    InvalidStateTransitionError,
    ValidationError,
)


# ---------------------
# VALID TRANSITIONS
# ---------------------

def test_pending_booking_is_confirmed_then_cancelled():
    confirmed = BookingStateMachine.advance(BookingStatus.PENDING, BookingStatus.CONFIRMED)
    cancelled = BookingStateMachine.advance(confirmed, BookingStatus.CANCELLED)

    assert confirmed is BookingStatus.CONFIRMED
    assert cancelled is BookingStatus.CANCELLED


def test_pending_booking_can_be_cancelled():
    assert BookingStateMachine.can_transition(
        BookingStatus.PENDING,
        BookingStatus.CANCELLED,
    )


def test_stored_string_values_are_accepted():
    assert BookingStateMachine.advance("pending", "confirmed") is BookingStatus.CONFIRMED


# ---------------------
# INVALID TRANSITIONS
# ---------------------

@pytest.mark.parametrize(
    "from_status, to_status",
    [
        (BookingStatus.CONFIRMED, BookingStatus.PENDING),
        (BookingStatus.CONFIRMED, BookingStatus.CONFIRMED),
        (BookingStatus.CANCELLED, BookingStatus.CONFIRMED),
        (BookingStatus.CANCELLED, BookingStatus.CANCELLED),
    ],
)
def test_illegal_moves_are_rejected(from_status, to_status):
    assert not BookingStateMachine.can_transition(from_status, to_status)
    with pytest.raises(InvalidStateTransitionError):
        BookingStateMachine.advance(from_status, to_status)


def test_transition_error_carries_states_and_kind():
    with pytest.raises(InvalidStateTransitionError) as exc_info:
        BookingStateMachine.advance(BookingStatus.CANCELLED, BookingStatus.PENDING)

    exc = exc_info.value
    assert exc.from_state == "cancelled"
    assert exc.to_state == "pending"
    assert exc.kind is ErrorKind.INVALID_TRANSITION
    assert isinstance(exc, ValidationError)


def test_unknown_status_is_a_validation_error():
    with pytest.raises(ValidationError) as exc_info:
        BookingStateMachine.can_transition("archived", BookingStatus.CONFIRMED)

    assert exc_info.value.kind is ErrorKind.VALIDATION


# ---------------------
# QUERIES
# ---------------------

def test_only_cancelled_is_terminal():
    assert BookingStateMachine.is_terminal(BookingStatus.CANCELLED)
    assert not BookingStateMachine.is_terminal(BookingStatus.CONFIRMED)


def test_next_statuses_from_pending():
    assert BookingStateMachine.next_statuses(BookingStatus.PENDING) == {
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    }


def test_cancelled_bookings_free_their_slot():
    assert BookingStateMachine.occupies_slot(BookingStatus.PENDING)
    assert BookingStateMachine.occupies_slot(BookingStatus.CONFIRMED)
    assert not BookingStateMachine.occupies_slot(BookingStatus.CANCELLED)
