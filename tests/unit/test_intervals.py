from datetime import datetime, timedelta, timezone
from itertools import product

import pytest

from venue_booking.domain.intervals import (
    as_utc,
    closed_overlap,
    half_open_overlap,
    slot_conflict,
)


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 3, 1, hour, minute, tzinfo=timezone.utc)


def test_back_to_back_slots_do_not_conflict():
    assert not slot_conflict(at(10), at(11), at(11), at(12))
    assert not slot_conflict(at(11), at(12), at(10), at(11))
    assert not half_open_overlap(at(10), at(11), at(11), at(12))


def test_partial_overlap_conflicts():
    assert slot_conflict(at(10), at(11), at(10, 30), at(11, 30))
    assert slot_conflict(at(10, 30), at(11, 30), at(10), at(11))


def test_candidate_enclosing_existing_conflicts():
    assert slot_conflict(at(10), at(11), at(9), at(12))


def test_candidate_inside_existing_conflicts():
    assert slot_conflict(at(9), at(12), at(10), at(11))


def test_identical_slots_conflict():
    assert slot_conflict(at(10), at(11), at(10), at(11))


def test_overlap_is_symmetric():
    points = [at(8), at(9), at(10), at(11), at(12)]
    intervals = [(s, e) for s, e in product(points, points) if s < e]

    for (a_start, a_end), (b_start, b_end) in product(intervals, intervals):
        assert half_open_overlap(a_start, a_end, b_start, b_end) == half_open_overlap(
            b_start, b_end, a_start, a_end
        )
        assert closed_overlap(a_start, a_end, b_start, b_end) == closed_overlap(
            b_start, b_end, a_start, a_end
        )
        assert bool(slot_conflict(a_start, a_end, b_start, b_end)) == bool(
            slot_conflict(b_start, b_end, a_start, a_end)
        )


def test_slot_conflict_agrees_with_half_open_overlap():
    points = [at(8), at(9), at(10), at(11), at(12)]
    intervals = [(s, e) for s, e in product(points, points) if s < e]

    for (a_start, a_end), (b_start, b_end) in product(intervals, intervals):
        assert bool(slot_conflict(a_start, a_end, b_start, b_end)) == half_open_overlap(
            a_start, a_end, b_start, b_end
        )


def test_closed_overlap_counts_touching_endpoints():
    assert closed_overlap(at(10), at(11), at(11), at(12))


@pytest.mark.parametrize(
    "value",
    [
        datetime(2025, 3, 1, 10, 0),
        datetime(2025, 3, 1, 15, 30, tzinfo=timezone(timedelta(hours=5, minutes=30))),
    ],
)
def test_as_utc_normalizes(value):
    assert as_utc(value) == datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert as_utc(value).tzinfo == timezone.utc
