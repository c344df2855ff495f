"""
Recurrence expansion for blackout days.

A recurring blackout is described by its template occurrence
``[start, end]`` and a rule. Occurrence ``k`` starts at
``start + k * step``; it is always computed from the template start so
month-end clamping never drifts (Jan 31 -> Feb 29 -> Mar 31).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterator

from dateutil.relativedelta import relativedelta

from venue_booking.domain.exceptions import ValidationError
from venue_booking.domain.intervals import closed_overlap


class Frequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: Frequency
    interval: int = 1
    end_recurrence: datetime | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.frequency, Frequency):
            raise ValidationError(f"Unknown recurrence frequency: {self.frequency!r}")
        if self.interval < 1:
            raise ValidationError("Recurrence interval must be at least 1")

    def shift(self, start: datetime, index: int) -> datetime:
        """Start of occurrence ``index`` for a template starting at ``start``."""
        steps = self.interval * index
        if self.frequency is Frequency.WEEKLY:
            return start + timedelta(weeks=steps)
        if self.frequency is Frequency.MONTHLY:
            return start + relativedelta(months=steps)
        return start + relativedelta(years=steps)

    def first_relevant_index(self, start: datetime, not_before: datetime) -> int:
        """
        Index of an occurrence no later than every occurrence starting at or
        after ``not_before``. Everything before it starts strictly earlier.
        """
        if not_before <= start:
            return 0
        if self.frequency is Frequency.WEEKLY:
            return (not_before - start) // timedelta(weeks=self.interval)
        if self.frequency is Frequency.MONTHLY:
            months = (not_before.year - start.year) * 12 + (not_before.month - start.month)
        else:
            months = (not_before.year - start.year) * 12
        unit = self.interval if self.frequency is Frequency.MONTHLY else self.interval * 12
        return max(0, months // unit - 1)


def occurrences(
    template_start: datetime,
    template_end: datetime,
    rule: RecurrenceRule,
    window_start: datetime,
    window_end: datetime,
) -> Iterator[tuple[datetime, datetime]]:
    """
    Yield occurrences that may touch ``[window_start, window_end]``.

    Iteration starts near the window and stops once an occurrence starts
    after ``window_end`` or after ``rule.end_recurrence``.
    """
    duration = template_end - template_start
    index = rule.first_relevant_index(template_start, window_start - duration)

    while True:
        cursor = rule.shift(template_start, index)
        if cursor > window_end:
            return
        if rule.end_recurrence is not None and cursor > rule.end_recurrence:
            return
        yield cursor, cursor + duration
        index += 1


def recurs_within(
    template_start: datetime,
    template_end: datetime,
    rule: RecurrenceRule,
    window_start: datetime,
    window_end: datetime,
) -> bool:
    return any(
        closed_overlap(start, end, window_start, window_end)
        for start, end in occurrences(
            template_start, template_end, rule, window_start, window_end
        )
    )
