# venue_booking/infrastructure/repositories/transaction_repository.py

from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import func, select

from venue_booking.domain.payments import (
    PaymentMode,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
)
from venue_booking.infrastructure.db.models import PaymentTransaction


class TransactionRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, transaction_id: str) -> PaymentTransaction | None:
        stmt = select(PaymentTransaction).where(PaymentTransaction.id == transaction_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def add(self, transaction: PaymentTransaction) -> PaymentTransaction:
        self.db.add(transaction)
        self.db.flush()
        return transaction

    def settled_inbound(self, booking_id: str) -> list[PaymentTransaction]:
        stmt = (
            select(PaymentTransaction)
            .where(PaymentTransaction.booking_id == booking_id)
            .where(PaymentTransaction.direction == TransactionDirection.INBOUND)
            .where(PaymentTransaction.status == TransactionStatus.SUCCESS)
        )
        return list(self.db.execute(stmt).scalars().all())

    def settled_for_purchase_order(self, purchase_order_id: str) -> list[PaymentTransaction]:
        stmt = (
            select(PaymentTransaction)
            .where(PaymentTransaction.purchase_order_id == purchase_order_id)
            .where(PaymentTransaction.direction == TransactionDirection.OUTBOUND)
            .where(PaymentTransaction.status == TransactionStatus.SUCCESS)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_for_booking(
        self,
        booking_id: str,
        direction: TransactionDirection | None = None,
    ) -> list[PaymentTransaction]:
        stmt = (
            select(PaymentTransaction)
            .where(PaymentTransaction.booking_id == booking_id)
            .order_by(PaymentTransaction.paid_at, PaymentTransaction.created_at)
        )
        if direction:
            stmt = stmt.where(PaymentTransaction.direction == direction)
        return list(self.db.execute(stmt).scalars().all())

    def count_for_booking(self, booking_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(PaymentTransaction)
            .where(PaymentTransaction.booking_id == booking_id)
        )
        return self.db.execute(stmt).scalar_one()

    def search(
        self,
        booking_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        mode: PaymentMode | None = None,
        status: TransactionStatus | None = None,
        type: TransactionType | None = None,
        direction: TransactionDirection | None = None,
        purchase_order_id: str | None = None,
        min_amount: Decimal | None = None,
        max_amount: Decimal | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[PaymentTransaction], int]:
        conditions = []
        if booking_id:
            conditions.append(PaymentTransaction.booking_id == booking_id)
        if start_date:
            conditions.append(PaymentTransaction.paid_at >= start_date)
        if end_date:
            conditions.append(PaymentTransaction.paid_at <= end_date)
        if mode:
            conditions.append(PaymentTransaction.mode == mode)
        if status:
            conditions.append(PaymentTransaction.status == status)
        if type:
            conditions.append(PaymentTransaction.type == type)
        if direction:
            conditions.append(PaymentTransaction.direction == direction)
        if purchase_order_id:
            conditions.append(PaymentTransaction.purchase_order_id == purchase_order_id)
        if min_amount is not None:
            conditions.append(PaymentTransaction.amount >= min_amount)
        if max_amount is not None:
            conditions.append(PaymentTransaction.amount <= max_amount)

        total = self.db.execute(
            select(func.count()).select_from(PaymentTransaction).where(*conditions)
        ).scalar_one()
        stmt = (
            select(PaymentTransaction)
            .where(*conditions)
            .order_by(PaymentTransaction.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all()), total

    def in_period(
        self,
        booking_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[PaymentTransaction]:
        stmt = select(PaymentTransaction)
        if booking_id:
            stmt = stmt.where(PaymentTransaction.booking_id == booking_id)
        if start_date:
            stmt = stmt.where(PaymentTransaction.paid_at >= start_date)
        if end_date:
            stmt = stmt.where(PaymentTransaction.paid_at <= end_date)
        return list(self.db.execute(stmt).scalars().all())
