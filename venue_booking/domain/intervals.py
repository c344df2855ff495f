"""
Interval predicates shared by slot availability and blackout checks.

The slot predicates combine comparisons with ``&`` and ``|`` so the same
function works on datetimes (returning a bool) and on SQLAlchemy column
expressions (returning a WHERE clause).
"""

from datetime import datetime, timezone


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def half_open_overlap(a_start, a_end, b_start, b_end) -> bool:
    """True if [a_start, a_end) and [b_start, b_end) share an instant."""
    return a_start < b_end and b_start < a_end


def closed_overlap(a_start, a_end, b_start, b_end) -> bool:
    """True if [a_start, a_end] and [b_start, b_end] share an instant."""
    return a_start <= b_end and a_end >= b_start


def starts_during(existing_start, existing_end, candidate_start, candidate_end):
    return (existing_start <= candidate_start) & (existing_end > candidate_start)


def ends_during(existing_start, existing_end, candidate_start, candidate_end):
    return (existing_start < candidate_end) & (existing_end >= candidate_end)


def encloses(existing_start, existing_end, candidate_start, candidate_end):
    """The candidate covers the whole existing interval."""
    return (existing_start >= candidate_start) & (existing_end <= candidate_end)


def slot_conflict(existing_start, existing_end, candidate_start, candidate_end):
    args = (existing_start, existing_end, candidate_start, candidate_end)
    return starts_during(*args) | ends_during(*args) | encloses(*args)
