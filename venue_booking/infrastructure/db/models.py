# venue_booking/infrastructure/db/models.py

from sqlalchemy import (
    String,
    Integer,
    Boolean,
    DateTime,
    Enum,
    Numeric,
    Text,
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from venue_booking.infrastructure.db.session import Base
from venue_booking.domain.state_machine import BookingStatus
from venue_booking.domain.payments import (
    PaymentMode,
    PaymentStatus,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    VendorType,
)
from venue_booking.domain.recurrence import Frequency

MONEY = Numeric(12, 2)


def _enum(enum_cls, name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
    )


class Venue(Base):
    """
    Catalog entry read by the booking engine.
    Package templates are stored as JSON documents.
    """

    __tablename__ = "venues"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    business_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    food_packages: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class Booking(Base):
    """
    Booking table reflecting domain state.
    Payment fields are derived from the transactions ledger.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    venue_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("venues.id"),
        nullable=False,
    )
    lead_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_name: Mapped[str] = mapped_column(String(128), nullable=False)
    contact_no: Mapped[str | None] = mapped_column(String(32), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    occasion_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False)
    event_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    event_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        _enum(BookingStatus, "booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    food_package: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    food_cost_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    services: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    advance_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    payment_status: Mapped[PaymentStatus] = mapped_column(
        _enum(PaymentStatus, "payment_status"),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )
    payment_mode: Mapped[PaymentMode] = mapped_column(
        _enum(PaymentMode, "payment_mode"),
        nullable=False,
        default=PaymentMode.CASH,
    )
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "guest_count > 0",
            name="ck_booking_guest_count_positive",
        ),
        CheckConstraint(
            "event_end > event_start",
            name="ck_booking_interval_ordered",
        ),
        CheckConstraint(
            "advance_amount >= 0",
            name="ck_booking_advance_nonnegative",
        ),
        Index("ix_bookings_venue_slot", "venue_id", "event_start", "event_end"),
    )


class BlackoutDay(Base):
    __tablename__ = "blackout_days"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    venue_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("venues.id"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    frequency: Mapped[Frequency | None] = mapped_column(
        _enum(Frequency, "recurrence_frequency"),
        nullable=True,
    )
    recurrence_interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    end_recurrence: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_blackout_end_after_start"),
        CheckConstraint("recurrence_interval >= 1", name="ck_blackout_interval_positive"),
        CheckConstraint(
            "status IN ('active', 'inactive')",
            name="ck_blackout_status",
        ),
        Index("ix_blackout_venue_status_start", "venue_id", "status", "start_date"),
    )


class PaymentTransaction(Base):
    """
    Ledger row. Rows are never deleted; corrections go through
    the ledger service which re-runs reconciliation.
    """

    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    mode: Mapped[PaymentMode] = mapped_column(
        _enum(PaymentMode, "transaction_mode"),
        nullable=False,
    )
    status: Mapped[TransactionStatus] = mapped_column(
        _enum(TransactionStatus, "transaction_status"),
        nullable=False,
        default=TransactionStatus.SUCCESS,
    )
    type: Mapped[TransactionType] = mapped_column(
        _enum(TransactionType, "transaction_type"),
        nullable=False,
    )
    direction: Mapped[TransactionDirection] = mapped_column(
        _enum(TransactionDirection, "transaction_direction"),
        nullable=False,
        default=TransactionDirection.INBOUND,
    )
    vendor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vendor_type: Mapped[VendorType | None] = mapped_column(
        _enum(VendorType, "vendor_type"),
        nullable=True,
    )
    # PO store is a separate collaborator; ids are not enforced by the ledger table.
    purchase_order_id: Mapped[str | None] = mapped_column(
        String(36),
        index=True,
        nullable=True,
    )
    reference_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    paid_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_transaction_amount_nonnegative"),
        Index("ix_transactions_booking_status", "booking_id", "direction", "status"),
    )


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    po_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
        index=True,
    )
    venue_id: Mapped[str] = mapped_column(String(36), nullable=False)
    vendor_type: Mapped[VendorType] = mapped_column(
        _enum(VendorType, "po_vendor_type"),
        nullable=False,
    )
    vendor_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    vendor_reference: Mapped[str | None] = mapped_column(String(160), nullable=True)
    line_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    paid_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    balance_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
