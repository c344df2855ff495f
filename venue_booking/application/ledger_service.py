from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
import logging

from sqlalchemy.orm import Session

from venue_booking.application.ports import (
    AccessPolicy,
    AllowAllPolicy,
    PurchaseOrderGateway,
)
from venue_booking.domain.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    ReconciliationInvariantError,
    ValidationError,
)
from venue_booking.domain.intervals import as_utc
from venue_booking.domain.payments import (
    ZERO,
    PaymentMode,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    VendorType,
    classify_inbound_payment,
    derive_payment_status,
)
from venue_booking.infrastructure.db.models import Booking, PaymentTransaction
from venue_booking.infrastructure.repositories.booking_repository import BookingRepository
from venue_booking.infrastructure.repositories.purchase_order_repository import (
    SqlPurchaseOrderGateway,
)
from venue_booking.infrastructure.repositories.transaction_repository import (
    TransactionRepository,
)

logger = logging.getLogger(__name__)


def positive_amount(value, field_name: str = "Amount") -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field_name} must be a number") from exc
    if not amount.is_finite() or amount <= ZERO:
        raise ValidationError(f"{field_name} must be greater than zero")
    return amount


def coerce_enum(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown {field_name}: {value}") from exc


@dataclass
class TransactionPatch:
    """Correctable ledger fields. None leaves a field unchanged."""

    amount: Decimal | None = None
    mode: PaymentMode | None = None
    status: TransactionStatus | None = None
    notes: str | None = None
    reference_id: str | None = None
    paid_at: datetime | None = None
    updated_by: str | None = None


@dataclass
class ModeTotals:
    count: int = 0
    amount: Decimal = ZERO


@dataclass
class TransactionSummary:
    total_transactions: int = 0
    successful_transactions: int = 0
    failed_transactions: int = 0
    pending_transactions: int = 0
    total_successful_amount: Decimal = ZERO
    total_received: Decimal = ZERO
    total_paid_out: Decimal = ZERO
    advance_payments: int = 0
    partial_payments: int = 0
    full_payments: int = 0
    vendor_payments: int = 0
    by_payment_mode: dict[str, ModeTotals] = field(
        default_factory=lambda: {mode.value: ModeTotals() for mode in PaymentMode}
    )


class LedgerService:
    """
    Append-only payment ledger.

    A booking's advance amount and payment status are always recomputed
    from its successful inbound rows, never adjusted incrementally.
    """

    def __init__(
        self,
        db: Session,
        purchase_orders: PurchaseOrderGateway | None = None,
        access_policy: AccessPolicy | None = None,
    ):
        self.db = db
        self.purchase_orders = purchase_orders or SqlPurchaseOrderGateway(db)
        self.access_policy = access_policy or AllowAllPolicy()
        self.booking_repository = BookingRepository(db)
        self.transaction_repository = TransactionRepository(db)

    def append_transaction(
        self,
        booking_id: str,
        amount: Decimal,
        mode: PaymentMode = PaymentMode.CASH,
        direction: TransactionDirection = TransactionDirection.INBOUND,
        status: TransactionStatus = TransactionStatus.SUCCESS,
        paid_at: datetime | None = None,
        reference_id: str | None = None,
        notes: str = "",
        vendor_id: str | None = None,
        vendor_type: VendorType | None = None,
        purchase_order_id: str | None = None,
        created_by: str | None = None,
    ) -> PaymentTransaction:
        self._authorize("transaction:create")

        amount = positive_amount(amount)
        mode = coerce_enum(PaymentMode, mode, "payment mode")
        direction = coerce_enum(TransactionDirection, direction, "transaction direction")
        status = coerce_enum(TransactionStatus, status, "transaction status")

        booking = self._lock_booking(booking_id)

        if direction is TransactionDirection.INBOUND:
            settled_before = self._settled_total(booking)
            # Failed and pending payments do not move the running total.
            counted = amount if status is TransactionStatus.SUCCESS else ZERO
            transaction_type = classify_inbound_payment(
                settled_before,
                settled_before + counted,
                Decimal(booking.total_amount),
            )
            vendor_type = None
            purchase_order_id = None
        elif direction is TransactionDirection.OUTBOUND:
            if vendor_type is None:
                raise ValidationError("Outbound transactions need a vendor type")
            vendor_type = coerce_enum(VendorType, vendor_type, "vendor type")
            transaction_type = TransactionType.VENDOR_PAYMENT
        else:
            raise ValidationError(f"Unknown transaction direction: {direction}")

        transaction = PaymentTransaction(
            booking_id=booking.id,
            amount=amount,
            mode=mode,
            status=status,
            type=transaction_type,
            direction=direction,
            vendor_id=vendor_id,
            vendor_type=vendor_type,
            purchase_order_id=purchase_order_id,
            reference_id=reference_id,
            notes=notes or "",
            paid_at=as_utc(paid_at) if paid_at else datetime.now(timezone.utc),
            created_by=created_by,
            updated_by=created_by,
        )
        self.transaction_repository.add(transaction)

        logger.info(
            "Recorded %s %s transaction %s of %s for booking %s",
            direction.value,
            transaction_type.value,
            transaction.id,
            amount,
            booking.id,
        )

        if direction is TransactionDirection.INBOUND and status is TransactionStatus.SUCCESS:
            self._reconcile(booking)
        elif purchase_order_id and status is TransactionStatus.SUCCESS:
            self._refresh_purchase_order(purchase_order_id)

        return transaction

    def update_transaction(
        self,
        transaction_id: str,
        patch: TransactionPatch,
    ) -> PaymentTransaction:
        self._authorize("transaction:update")

        transaction = self.get_transaction(transaction_id)
        booking = self._lock_booking(transaction.booking_id)

        if patch.amount is not None:
            transaction.amount = positive_amount(patch.amount)
        if patch.mode is not None:
            transaction.mode = coerce_enum(PaymentMode, patch.mode, "payment mode")
        if patch.status is not None:
            transaction.status = coerce_enum(
                TransactionStatus, patch.status, "transaction status"
            )
        if patch.notes is not None:
            transaction.notes = patch.notes
        if patch.reference_id is not None:
            transaction.reference_id = patch.reference_id
        if patch.paid_at is not None:
            transaction.paid_at = as_utc(patch.paid_at)
        transaction.updated_by = patch.updated_by
        self.db.flush()

        self._reconcile(booking)
        if (
            transaction.direction is TransactionDirection.OUTBOUND
            and transaction.purchase_order_id
        ):
            self._refresh_purchase_order(transaction.purchase_order_id)

        logger.info("Corrected transaction %s of booking %s", transaction.id, booking.id)
        return transaction

    def reconcile(self, booking_id: str) -> Booking:
        booking = self._lock_booking(booking_id)
        return self._reconcile(booking)

    # -----------------------------
    # Queries
    # -----------------------------
    def get_transaction(self, transaction_id: str) -> PaymentTransaction:
        transaction = self.transaction_repository.get_by_id(transaction_id)
        if not transaction:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    def list_transactions_for_booking(
        self,
        booking_id: str,
        direction: TransactionDirection | None = None,
    ) -> list[PaymentTransaction]:
        return self.transaction_repository.list_for_booking(booking_id, direction)

    def transaction_trail(self, booking_id: str) -> list[PaymentTransaction]:
        """Inbound rows of a booking in payment order."""
        return self.transaction_repository.list_for_booking(
            booking_id, TransactionDirection.INBOUND
        )

    def list_transactions(self, page: int = 1, limit: int = 50, **filters):
        if page < 1 or limit < 1:
            raise ValidationError("Page and limit must be positive")
        for key in ("start_date", "end_date"):
            if filters.get(key):
                filters[key] = as_utc(filters[key])
        return self.transaction_repository.search(page=page, limit=limit, **filters)

    def summarize(
        self,
        booking_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> TransactionSummary:
        rows = self.transaction_repository.in_period(
            booking_id=booking_id,
            start_date=as_utc(start_date) if start_date else None,
            end_date=as_utc(end_date) if end_date else None,
        )

        summary = TransactionSummary()
        type_counters = {
            TransactionType.ADVANCE: "advance_payments",
            TransactionType.PARTIAL: "partial_payments",
            TransactionType.FULL: "full_payments",
            TransactionType.VENDOR_PAYMENT: "vendor_payments",
        }
        status_counters = {
            TransactionStatus.SUCCESS: "successful_transactions",
            TransactionStatus.FAILED: "failed_transactions",
            TransactionStatus.PENDING: "pending_transactions",
        }

        for row in rows:
            amount = Decimal(row.amount)
            summary.total_transactions += 1
            counter = status_counters[row.status]
            setattr(summary, counter, getattr(summary, counter) + 1)
            counter = type_counters[row.type]
            setattr(summary, counter, getattr(summary, counter) + 1)

            mode_totals = summary.by_payment_mode[row.mode.value]
            mode_totals.count += 1

            if row.status is not TransactionStatus.SUCCESS:
                continue
            mode_totals.amount += amount
            summary.total_successful_amount += amount
            if row.direction is TransactionDirection.INBOUND:
                summary.total_received += amount
            else:
                summary.total_paid_out += amount

        return summary

    # -----------------------------
    # Internals
    # -----------------------------
    def _lock_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.lock_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    def _settled_total(self, booking: Booking) -> Decimal:
        total = ZERO
        for row in self.transaction_repository.settled_inbound(booking.id):
            if row.amount is None:
                raise ReconciliationInvariantError(
                    booking.id, f"transaction {row.id} has no amount"
                )
            amount = Decimal(row.amount)
            if not amount.is_finite() or amount <= ZERO:
                raise ReconciliationInvariantError(
                    booking.id, f"transaction {row.id} has invalid amount {amount}"
                )
            total += amount
        return total

    def _reconcile(self, booking: Booking) -> Booking:
        advance = self._settled_total(booking)

        booking.advance_amount = advance
        booking.payment_status = derive_payment_status(advance, Decimal(booking.total_amount))
        self.db.flush()

        logger.info(
            "Reconciled booking %s: advance=%s status=%s",
            booking.id,
            advance,
            booking.payment_status.value,
        )
        return booking

    def _refresh_purchase_order(self, purchase_order_id: str) -> None:
        try:
            with self.db.begin_nested():
                self.purchase_orders.refresh_payment_status(purchase_order_id)
        except Exception:
            logger.exception(
                "Failed to refresh payment status of purchase order %s",
                purchase_order_id,
            )

    def _authorize(self, action: str) -> None:
        if not self.access_policy.is_allowed(action):
            raise PermissionDeniedError(action)
