from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging

from sqlalchemy.orm import Session

from venue_booking.application.ports import AccessPolicy, AllowAllPolicy
from venue_booking.domain.exceptions import (
    ConflictError,
    ConflictingEntity,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from venue_booking.domain.intervals import as_utc
from venue_booking.domain.recurrence import Frequency, RecurrenceRule, recurs_within
from venue_booking.infrastructure.db.models import BlackoutDay
from venue_booking.infrastructure.repositories.blackout_repository import BlackoutRepository
from venue_booking.infrastructure.repositories.venue_repository import VenueRepository

logger = logging.getLogger(__name__)

BLACKOUT_STATUSES = ("active", "inactive")


@dataclass
class BlackoutConflict:
    has_conflict: bool
    conflicting: list[BlackoutDay] = field(default_factory=list)


@dataclass
class BlackoutPatch:
    """Fields left as None are not changed."""

    title: str | None = None
    reason: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: str | None = None
    is_recurring: bool | None = None
    frequency: Frequency | None = None
    interval: int | None = None
    end_recurrence: datetime | None = None
    clear_end_recurrence: bool = False
    updated_by: str | None = None


def _label(blackout: BlackoutDay) -> str:
    return (
        f"{blackout.title} "
        f"({blackout.start_date:%Y-%m-%d} - {blackout.end_date:%Y-%m-%d})"
    )


def recurrence_rule_of(blackout: BlackoutDay) -> RecurrenceRule:
    return RecurrenceRule(
        frequency=Frequency(blackout.frequency),
        interval=blackout.recurrence_interval,
        end_recurrence=(
            as_utc(blackout.end_recurrence) if blackout.end_recurrence else None
        ),
    )


def _validate_window(
    start_date: datetime,
    end_date: datetime,
    is_recurring: bool,
    frequency: Frequency | None,
    interval: int,
    end_recurrence: datetime | None,
) -> None:
    if end_date < start_date:
        raise ValidationError("Blackout end date must not be before its start date")
    if not is_recurring:
        return
    if frequency is None:
        raise ValidationError("Recurring blackout days need a frequency")
    try:
        frequency = Frequency(frequency)
    except ValueError as exc:
        raise ValidationError(f"Unknown recurrence frequency: {frequency}") from exc
    RecurrenceRule(frequency=frequency, interval=interval)
    if end_recurrence is not None and end_recurrence < start_date:
        raise ValidationError("Recurrence end must not be before the blackout start date")


class BlackoutService:
    """Blackout day management and the blackout side of slot checks."""

    def __init__(self, db: Session, access_policy: AccessPolicy | None = None):
        self.db = db
        self.access_policy = access_policy or AllowAllPolicy()
        self.blackout_repository = BlackoutRepository(db)
        self.venue_repository = VenueRepository(db)

    # -----------------------------
    # Conflict checks
    # -----------------------------
    def check_conflict(
        self,
        venue_id: str,
        start: datetime,
        end: datetime,
    ) -> BlackoutConflict:
        start, end = as_utc(start), as_utc(end)

        found: dict[str, BlackoutDay] = {}
        for blackout in self.blackout_repository.find_fixed_overlapping(venue_id, start, end):
            found[blackout.id] = blackout

        for blackout in self.blackout_repository.list_active_recurring(venue_id):
            if blackout.id in found or blackout.frequency is None:
                continue
            if recurs_within(
                as_utc(blackout.start_date),
                as_utc(blackout.end_date),
                recurrence_rule_of(blackout),
                start,
                end,
            ):
                found[blackout.id] = blackout

        conflicting = sorted(found.values(), key=lambda b: as_utc(b.start_date))
        return BlackoutConflict(has_conflict=bool(conflicting), conflicting=conflicting)

    def ensure_no_conflict(self, venue_id: str, start: datetime, end: datetime) -> None:
        result = self.check_conflict(venue_id, start, end)
        if not result.has_conflict:
            return

        labels = [_label(blackout) for blackout in result.conflicting]
        raise ConflictError(
            "Cannot create booking. The selected dates conflict with blackout days: "
            + ", ".join(labels),
            conflicts=[
                ConflictingEntity(kind="blackout_day", id=blackout.id, label=label)
                for blackout, label in zip(result.conflicting, labels)
            ],
        )

    # -----------------------------
    # CRUD
    # -----------------------------
    def create_blackout_day(
        self,
        venue_id: str,
        title: str,
        start_date: datetime,
        end_date: datetime,
        reason: str = "",
        is_recurring: bool = False,
        frequency: Frequency | None = None,
        interval: int = 1,
        end_recurrence: datetime | None = None,
        created_by: str | None = None,
    ) -> BlackoutDay:
        self._authorize("blackout:create")

        if not title or not title.strip():
            raise ValidationError("Blackout title is required")
        if not self.venue_repository.get_by_id(venue_id):
            raise NotFoundError("Venue", venue_id)

        start_date, end_date = as_utc(start_date), as_utc(end_date)
        end_recurrence = as_utc(end_recurrence) if end_recurrence else None
        _validate_window(start_date, end_date, is_recurring, frequency, interval, end_recurrence)

        blackout = BlackoutDay(
            venue_id=venue_id,
            title=title.strip(),
            reason=reason or "",
            start_date=start_date,
            end_date=end_date,
            status="active",
            is_recurring=is_recurring,
            frequency=Frequency(frequency) if is_recurring else None,
            recurrence_interval=interval if is_recurring else 1,
            end_recurrence=end_recurrence if is_recurring else None,
            created_by=created_by,
            updated_by=created_by,
        )
        self.blackout_repository.add(blackout)

        logger.info("Created blackout day %s for venue %s", blackout.id, venue_id)
        return blackout

    def get_blackout_day(self, blackout_id: str) -> BlackoutDay:
        blackout = self.blackout_repository.get_by_id(blackout_id)
        if not blackout:
            raise NotFoundError("BlackoutDay", blackout_id)
        return blackout

    def list_blackout_days(
        self,
        venue_id: str,
        status: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> tuple[list[BlackoutDay], int]:
        if status is not None and status not in BLACKOUT_STATUSES:
            raise ValidationError(f"Unknown blackout status: {status}")
        return self.blackout_repository.list_by_venue(
            venue_id,
            status=status,
            start_date=as_utc(start_date) if start_date else None,
            end_date=as_utc(end_date) if end_date else None,
            limit=limit,
            skip=skip,
        )

    def update_blackout_day(self, blackout_id: str, patch: BlackoutPatch) -> BlackoutDay:
        self._authorize("blackout:update")
        blackout = self.get_blackout_day(blackout_id)

        if patch.status is not None and patch.status not in BLACKOUT_STATUSES:
            raise ValidationError(f"Unknown blackout status: {patch.status}")
        if patch.title is not None and not patch.title.strip():
            raise ValidationError("Blackout title is required")

        start_date = as_utc(patch.start_date or blackout.start_date)
        end_date = as_utc(patch.end_date or blackout.end_date)
        is_recurring = blackout.is_recurring if patch.is_recurring is None else patch.is_recurring
        frequency = patch.frequency or blackout.frequency
        interval = blackout.recurrence_interval if patch.interval is None else patch.interval
        if patch.clear_end_recurrence:
            end_recurrence = None
        else:
            end_recurrence = patch.end_recurrence or blackout.end_recurrence
        end_recurrence = as_utc(end_recurrence) if end_recurrence else None

        _validate_window(start_date, end_date, is_recurring, frequency, interval, end_recurrence)

        if patch.title is not None:
            blackout.title = patch.title.strip()
        if patch.reason is not None:
            blackout.reason = patch.reason
        if patch.status is not None:
            blackout.status = patch.status
        blackout.start_date = start_date
        blackout.end_date = end_date
        blackout.is_recurring = is_recurring
        blackout.frequency = Frequency(frequency) if is_recurring else None
        blackout.recurrence_interval = interval if is_recurring else 1
        blackout.end_recurrence = end_recurrence if is_recurring else None
        blackout.updated_by = patch.updated_by

        self.db.flush()
        return blackout

    def delete_blackout_day(self, blackout_id: str) -> None:
        self._authorize("blackout:delete")
        blackout = self.get_blackout_day(blackout_id)
        self.blackout_repository.delete(blackout)
        logger.info("Deleted blackout day %s", blackout_id)

    def get_upcoming_blackout_days(
        self,
        venue_id: str,
        limit: int = 10,
        now: datetime | None = None,
    ) -> list[BlackoutDay]:
        since = as_utc(now) if now else datetime.now(timezone.utc)
        return self.blackout_repository.list_upcoming(venue_id, since, limit)

    def get_blackout_days_by_date_range(
        self,
        start: datetime,
        end: datetime,
        venue_id: str | None = None,
    ) -> list[BlackoutDay]:
        start, end = as_utc(start), as_utc(end)
        if end < start:
            raise ValidationError("End date must not be before start date")
        return self.blackout_repository.list_in_range(start, end, venue_id)

    def bulk_update_status(
        self,
        blackout_ids: list[str],
        status: str,
        updated_by: str | None = None,
    ) -> int:
        self._authorize("blackout:update")
        if status not in BLACKOUT_STATUSES:
            raise ValidationError(f"Unknown blackout status: {status}")
        if not blackout_ids:
            raise ValidationError("At least one blackout day id is required")

        modified = self.blackout_repository.update_status(blackout_ids, status, updated_by)
        logger.info("Set %s blackout days to %s", modified, status)
        return modified

    def _authorize(self, action: str) -> None:
        if not self.access_policy.is_allowed(action):
            raise PermissionDeniedError(action)
