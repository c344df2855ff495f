# venue_booking/infrastructure/repositories/blackout_repository.py

from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import func, select, update

from venue_booking.infrastructure.db.models import BlackoutDay

ACTIVE = "active"


class BlackoutRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, blackout_id: str) -> BlackoutDay | None:
        stmt = select(BlackoutDay).where(BlackoutDay.id == blackout_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def add(self, blackout: BlackoutDay) -> BlackoutDay:
        self.db.add(blackout)
        self.db.flush()
        return blackout

    def delete(self, blackout: BlackoutDay) -> None:
        self.db.delete(blackout)
        self.db.flush()

    def find_fixed_overlapping(
        self,
        venue_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BlackoutDay]:
        """Active non-recurring windows intersecting the closed range [start, end]."""
        stmt = (
            select(BlackoutDay)
            .where(BlackoutDay.venue_id == venue_id)
            .where(BlackoutDay.status == ACTIVE)
            .where(BlackoutDay.is_recurring.is_(False))
            .where(BlackoutDay.start_date <= end)
            .where(BlackoutDay.end_date >= start)
            .order_by(BlackoutDay.start_date)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_active_recurring(self, venue_id: str) -> list[BlackoutDay]:
        stmt = (
            select(BlackoutDay)
            .where(BlackoutDay.venue_id == venue_id)
            .where(BlackoutDay.status == ACTIVE)
            .where(BlackoutDay.is_recurring.is_(True))
            .order_by(BlackoutDay.start_date)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_by_venue(
        self,
        venue_id: str,
        status: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> tuple[list[BlackoutDay], int]:
        conditions = [BlackoutDay.venue_id == venue_id]
        if status:
            conditions.append(BlackoutDay.status == status)
        if start_date:
            conditions.append(BlackoutDay.end_date >= start_date)
        if end_date:
            conditions.append(BlackoutDay.start_date <= end_date)

        total = self.db.execute(
            select(func.count()).select_from(BlackoutDay).where(*conditions)
        ).scalar_one()
        stmt = (
            select(BlackoutDay)
            .where(*conditions)
            .order_by(BlackoutDay.start_date)
            .limit(limit)
            .offset(skip)
        )
        return list(self.db.execute(stmt).scalars().all()), total

    def list_upcoming(
        self,
        venue_id: str,
        since: datetime,
        limit: int = 10,
    ) -> list[BlackoutDay]:
        stmt = (
            select(BlackoutDay)
            .where(BlackoutDay.venue_id == venue_id)
            .where(BlackoutDay.status == ACTIVE)
            .where(BlackoutDay.end_date >= since)
            .order_by(BlackoutDay.start_date)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_in_range(
        self,
        start: datetime,
        end: datetime,
        venue_id: str | None = None,
    ) -> list[BlackoutDay]:
        stmt = (
            select(BlackoutDay)
            .where(BlackoutDay.status == ACTIVE)
            .where(BlackoutDay.start_date <= end)
            .where(BlackoutDay.end_date >= start)
            .order_by(BlackoutDay.start_date)
        )
        if venue_id:
            stmt = stmt.where(BlackoutDay.venue_id == venue_id)
        return list(self.db.execute(stmt).scalars().all())

    def update_status(self, blackout_ids: list[str], status: str, updated_by: str | None) -> int:
        stmt = (
            update(BlackoutDay)
            .where(BlackoutDay.id.in_(blackout_ids))
            .where(BlackoutDay.status != status)
            .values(status=status, updated_by=updated_by)
            .execution_options(synchronize_session="fetch")
        )
        return self.db.execute(stmt).rowcount
