# venue_booking/infrastructure/repositories/booking_repository.py

from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import func, select

from venue_booking.domain.intervals import slot_conflict
from venue_booking.domain.payments import PaymentStatus
from venue_booking.domain.state_machine import ACTIVE_BOOKING_STATUSES, BookingStatus
from venue_booking.infrastructure.db.models import Booking


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
        include_deleted: bool = False,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        if not include_deleted:
            stmt = stmt.where(Booking.is_deleted.is_(False))
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_by_id(self, booking_id: str) -> Booking | None:
        """
        SELECT ... FOR UPDATE
        Serializes ledger appends for one booking.
        """
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.is_deleted.is_(False))
            .with_for_update()
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_deleted(self, booking_id: str) -> Booking | None:
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.is_deleted.is_(True))
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def add(self, booking: Booking) -> Booking:
        self.db.add(booking)
        self.db.flush()
        return booking

    def find_conflicting(
        self,
        venue_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: str | None = None,
    ) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.venue_id == venue_id)
            .where(Booking.is_deleted.is_(False))
            .where(Booking.status.in_(ACTIVE_BOOKING_STATUSES))
            .where(slot_conflict(Booking.event_start, Booking.event_end, start, end))
            .order_by(Booking.event_start)
        )
        if exclude_booking_id:
            stmt = stmt.where(Booking.id != exclude_booking_id)
        return list(self.db.execute(stmt).scalars().all())

    def list_by_venue(
        self,
        venue_id: str,
        status: BookingStatus | None = None,
        payment_status: PaymentStatus | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> tuple[list[Booking], int]:
        conditions = [
            Booking.venue_id == venue_id,
            Booking.is_deleted.is_(False),
        ]
        if status:
            conditions.append(Booking.status == status)
        if payment_status:
            conditions.append(Booking.payment_status == payment_status)
        if start_date:
            conditions.append(Booking.event_start >= start_date)
        if end_date:
            conditions.append(Booking.event_start <= end_date)

        total = self.db.execute(
            select(func.count()).select_from(Booking).where(*conditions)
        ).scalar_one()
        stmt = (
            select(Booking)
            .where(*conditions)
            .order_by(Booking.event_start)
            .limit(limit)
            .offset(skip)
        )
        return list(self.db.execute(stmt).scalars().all()), total

    def list_deleted(self, limit: int = 50, skip: int = 0) -> tuple[list[Booking], int]:
        total = self.db.execute(
            select(func.count()).select_from(Booking).where(Booking.is_deleted.is_(True))
        ).scalar_one()
        stmt = (
            select(Booking)
            .where(Booking.is_deleted.is_(True))
            .order_by(Booking.deleted_at.desc())
            .limit(limit)
            .offset(skip)
        )
        return list(self.db.execute(stmt).scalars().all()), total
