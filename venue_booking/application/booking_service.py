from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
import logging

from sqlalchemy.orm import Session

from venue_booking.application.blackout_service import BlackoutService
from venue_booking.application.ledger_service import (
    LedgerService,
    coerce_enum,
    positive_amount,
)
from venue_booking.application.ports import (
    AccessPolicy,
    AllowAllPolicy,
    PackageCatalog,
    PurchaseOrderGateway,
)
from venue_booking.domain.exceptions import (
    ConflictError,
    ConflictingEntity,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from venue_booking.domain.intervals import as_utc
from venue_booking.domain.payments import (
    ZERO,
    PaymentMode,
    PaymentStatus,
    derive_payment_status,
)
from venue_booking.domain.pricing import (
    FoodPackage,
    FoodPackageRequest,
    PricingTotals,
    ServiceLine,
    compute_totals,
    recalculate_food_package,
    to_decimal,
)
from venue_booking.domain.state_machine import (
    BookingStateMachine,
    BookingStatus,
)
from venue_booking.infrastructure.db.models import Booking
from venue_booking.infrastructure.repositories.booking_repository import BookingRepository
from venue_booking.infrastructure.repositories.purchase_order_repository import (
    SqlPurchaseOrderGateway,
)
from venue_booking.infrastructure.repositories.transaction_repository import (
    TransactionRepository,
)
from venue_booking.infrastructure.repositories.venue_repository import VenueRepository

logger = logging.getLogger(__name__)


@dataclass
class NewBooking:
    venue_id: str
    client_name: str
    guest_count: int
    event_start: datetime
    event_end: datetime
    food_package: FoodPackageRequest | None = None
    services: list[ServiceLine] = field(default_factory=list)
    advance_amount: Decimal = ZERO
    payment_mode: PaymentMode = PaymentMode.CASH
    lead_id: str | None = None
    contact_no: str | None = None
    email: str | None = None
    occasion_type: str | None = None
    notes: str = ""
    created_by: str | None = None


@dataclass
class BookingPatch:
    """Fields left as None are not changed."""

    client_name: str | None = None
    contact_no: str | None = None
    email: str | None = None
    occasion_type: str | None = None
    lead_id: str | None = None
    notes: str | None = None
    guest_count: int | None = None
    event_start: datetime | None = None
    event_end: datetime | None = None
    food_package: FoodPackageRequest | None = None
    services: list[ServiceLine] | None = None
    payment_mode: PaymentMode | None = None
    updated_by: str | None = None


def _validate_interval(start: datetime, end: datetime) -> tuple[datetime, datetime]:
    start, end = as_utc(start), as_utc(end)
    if start >= end:
        raise ValidationError("Event start must be before event end")
    return start, end


def _validate_guest_count(guest_count: int) -> None:
    if guest_count is None or guest_count < 1:
        raise ValidationError("Guest count must be at least 1")


class BookingService:
    """Application service coordinating the booking lifecycle."""

    def __init__(
        self,
        db: Session,
        catalog: PackageCatalog | None = None,
        purchase_orders: PurchaseOrderGateway | None = None,
        access_policy: AccessPolicy | None = None,
    ):
        self.db = db
        self.access_policy = access_policy or AllowAllPolicy()
        self.booking_repository = BookingRepository(db)
        self.transaction_repository = TransactionRepository(db)
        self.venue_repository = VenueRepository(db)
        self.catalog = catalog or self.venue_repository
        self.purchase_orders = purchase_orders or SqlPurchaseOrderGateway(db)
        self.blackout_service = BlackoutService(db, self.access_policy)
        self.ledger = LedgerService(db, self.purchase_orders, self.access_policy)

    # -----------------------------
    # Lifecycle
    # -----------------------------
    def create_booking(self, request: NewBooking) -> Booking:
        self._authorize("booking:create")

        if not request.client_name or not request.client_name.strip():
            raise ValidationError("Client name is required")
        _validate_guest_count(request.guest_count)
        start, end = _validate_interval(request.event_start, request.event_end)
        advance = to_decimal(request.advance_amount or ZERO, "Advance amount")
        payment_mode = coerce_enum(PaymentMode, request.payment_mode, "payment mode")

        self.venue_repository.lock_venue(request.venue_id)
        self.blackout_service.ensure_no_conflict(request.venue_id, start, end)
        self._ensure_slot_available(request.venue_id, start, end)

        package = self._price_package(request.venue_id, request.food_package)
        totals = compute_totals(package, request.guest_count, request.services)

        booking = Booking(
            venue_id=request.venue_id,
            lead_id=request.lead_id,
            client_name=request.client_name.strip(),
            contact_no=request.contact_no,
            email=request.email,
            occasion_type=request.occasion_type,
            guest_count=request.guest_count,
            event_start=start,
            event_end=end,
            status=BookingStatus.PENDING,
            food_package=package.to_document() if package else None,
            food_cost_total=totals.food_cost_total,
            services=[service.to_document() for service in request.services],
            total_amount=totals.total_amount,
            advance_amount=ZERO,
            payment_status=PaymentStatus.UNPAID,
            payment_mode=payment_mode,
            notes=request.notes or "",
            created_by=request.created_by,
            updated_by=request.created_by,
        )
        self.booking_repository.add(booking)

        logger.info(
            "Created booking %s for venue %s (%s - %s)",
            booking.id,
            booking.venue_id,
            start.isoformat(),
            end.isoformat(),
        )

        if advance > ZERO:
            self.ledger.append_transaction(
                booking.id,
                advance,
                mode=payment_mode,
                notes="Advance received at booking",
                created_by=request.created_by,
            )

        return booking

    def update_booking(self, booking_id: str, patch: BookingPatch) -> Booking:
        self._authorize("booking:update")
        booking = self.get_booking(booking_id)

        # Every check runs before the first field is written.
        if patch.client_name is not None and not patch.client_name.strip():
            raise ValidationError("Client name is required")
        if patch.guest_count is not None:
            _validate_guest_count(patch.guest_count)
        payment_mode = (
            None
            if patch.payment_mode is None
            else coerce_enum(PaymentMode, patch.payment_mode, "payment mode")
        )

        new_interval = None
        if patch.event_start is not None or patch.event_end is not None:
            start, end = _validate_interval(
                patch.event_start or booking.event_start,
                patch.event_end or booking.event_end,
            )
            if start != as_utc(booking.event_start) or end != as_utc(booking.event_end):
                self.venue_repository.lock_venue(booking.venue_id)
                self.blackout_service.ensure_no_conflict(booking.venue_id, start, end)
                self._ensure_slot_available(booking.venue_id, start, end, booking.id)
                new_interval = (start, end)

        repriced = None
        if (
            patch.guest_count is not None
            or patch.food_package is not None
            or patch.services is not None
        ):
            repriced = self._price_patch(booking, patch)

        guest_count_changed = (
            patch.guest_count is not None and patch.guest_count != booking.guest_count
        )

        if patch.client_name is not None:
            booking.client_name = patch.client_name.strip()
        for name in ("contact_no", "email", "occasion_type", "lead_id", "notes"):
            value = getattr(patch, name)
            if value is not None:
                setattr(booking, name, value)
        if payment_mode is not None:
            booking.payment_mode = payment_mode
        if new_interval is not None:
            booking.event_start, booking.event_end = new_interval

        if repriced is not None:
            guest_count, package, services, totals = repriced
            booking.guest_count = guest_count
            booking.food_package = package.to_document() if package else None
            booking.services = [service.to_document() for service in services]
            booking.food_cost_total = totals.food_cost_total
            booking.total_amount = totals.total_amount
            booking.payment_status = derive_payment_status(
                Decimal(booking.advance_amount), totals.total_amount
            )
        elif booking.food_package:
            package = FoodPackage.from_document(booking.food_package)
        else:
            package = None

        booking.updated_by = patch.updated_by
        self.db.flush()

        if guest_count_changed:
            self._sync_purchase_orders(booking, package)

        logger.info("Updated booking %s", booking.id)
        return booking

    def confirm_booking(self, booking_id: str, confirmed_by: str | None = None) -> Booking:
        self._authorize("booking:confirm")
        booking = self.get_booking(booking_id)

        self._transition(booking, BookingStatus.CONFIRMED)
        booking.confirmed_at = datetime.now(timezone.utc)
        booking.updated_by = confirmed_by
        self.db.flush()

        logger.info("Confirmed booking %s", booking.id)
        return booking

    def cancel_booking(
        self,
        booking_id: str,
        reason: str | None = None,
        cancelled_by: str | None = None,
    ) -> Booking:
        self._authorize("booking:cancel")
        booking = self.get_booking(booking_id)

        self._transition(booking, BookingStatus.CANCELLED)
        booking.cancelled_at = datetime.now(timezone.utc)
        booking.cancellation_reason = reason or ""
        booking.updated_by = cancelled_by
        self.db.flush()

        logger.info("Cancelled booking %s", booking.id)
        return booking

    def soft_delete_booking(self, booking_id: str, deleted_by: str | None = None) -> Booking:
        self._authorize("booking:delete")
        booking = self.get_booking(booking_id)

        transactions = self.transaction_repository.count_for_booking(booking.id)
        purchase_orders = self.purchase_orders.count_for_booking(booking.id)
        if transactions or purchase_orders:
            logger.warning(
                "Soft-deleting booking %s which still has %s transactions and %s purchase orders",
                booking.id,
                transactions,
                purchase_orders,
            )

        booking.is_deleted = True
        booking.deleted_at = datetime.now(timezone.utc)
        booking.deleted_by = deleted_by
        self.db.flush()

        logger.info("Soft-deleted booking %s", booking.id)
        return booking

    def restore_booking(self, booking_id: str, restored_by: str | None = None) -> Booking:
        self._authorize("booking:restore")
        booking = self.booking_repository.get_deleted(booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id, f"Deleted booking not found: {booking_id}")

        if BookingStateMachine.occupies_slot(booking.status):
            self.venue_repository.lock_venue(booking.venue_id)
            self._ensure_slot_available(
                booking.venue_id,
                as_utc(booking.event_start),
                as_utc(booking.event_end),
                booking.id,
            )

        booking.is_deleted = False
        booking.deleted_at = None
        booking.deleted_by = None
        booking.updated_by = restored_by
        self.db.flush()

        logger.info("Restored booking %s", booking.id)
        return booking

    def update_payment(
        self,
        booking_id: str,
        advance_amount: Decimal,
        mode: PaymentMode | None = None,
        updated_by: str | None = None,
    ) -> Booking:
        """
        Move the advance to ``advance_amount`` by recording the difference
        as a new inbound payment. Lowering the advance is refused; that
        needs a correction of the ledger row instead.
        """
        self._authorize("booking:payment")
        booking = self.get_booking(booking_id)

        target = to_decimal(advance_amount, "Advance amount")
        delta = target - Decimal(booking.advance_amount)
        if delta < ZERO:
            raise ValidationError(
                "Advance amount cannot be reduced; correct the transaction instead"
            )
        if delta == ZERO:
            return booking

        self.ledger.append_transaction(
            booking.id,
            positive_amount(delta),
            mode=mode or booking.payment_mode,
            notes="Payment recorded via booking update",
            created_by=updated_by,
        )
        return booking

    def generate_catering_purchase_order(
        self,
        booking_id: str,
        vendor_name: str | None = None,
    ) -> str:
        self._authorize("purchase_order:create")
        booking = self.get_booking(booking_id)
        if booking.status is BookingStatus.CANCELLED:
            raise ValidationError("Cannot raise purchase orders for a cancelled booking")

        package = (
            FoodPackage.from_document(booking.food_package) if booking.food_package else None
        )
        return self.purchase_orders.create_catering_order(
            booking.id,
            booking.venue_id,
            booking.guest_count,
            package,
            vendor_name,
        )

    def generate_service_purchase_orders(self, booking_id: str) -> list[str]:
        """One draft PO per booked service that names a vendor."""
        self._authorize("purchase_order:create")
        booking = self.get_booking(booking_id)
        if booking.status is BookingStatus.CANCELLED:
            raise ValidationError("Cannot raise purchase orders for a cancelled booking")

        services = [ServiceLine.from_document(doc) for doc in booking.services or []]
        return self.purchase_orders.create_service_orders(
            booking.id,
            booking.venue_id,
            services,
        )

    # -----------------------------
    # Queries
    # -----------------------------
    def get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking", booking_id)
        return booking

    def list_bookings(
        self,
        venue_id: str,
        status: BookingStatus | None = None,
        payment_status: PaymentStatus | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        limit: int = 50,
        skip: int = 0,
    ) -> tuple[list[Booking], int]:
        return self.booking_repository.list_by_venue(
            venue_id,
            status=status,
            payment_status=payment_status,
            start_date=as_utc(start_date) if start_date else None,
            end_date=as_utc(end_date) if end_date else None,
            limit=limit,
            skip=skip,
        )

    def list_deleted_bookings(self, limit: int = 50, skip: int = 0) -> tuple[list[Booking], int]:
        return self.booking_repository.list_deleted(limit=limit, skip=skip)

    def is_slot_available(
        self,
        venue_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: str | None = None,
    ) -> bool:
        start, end = _validate_interval(start, end)
        return not self.booking_repository.find_conflicting(
            venue_id, start, end, exclude_booking_id
        )

    # -----------------------------
    # Internals
    # -----------------------------
    def _ensure_slot_available(
        self,
        venue_id: str,
        start: datetime,
        end: datetime,
        exclude_booking_id: str | None = None,
    ) -> None:
        conflicting = self.booking_repository.find_conflicting(
            venue_id, start, end, exclude_booking_id
        )
        if not conflicting:
            return

        conflicts = [
            ConflictingEntity(
                kind="booking",
                id=other.id,
                label=(
                    f"{other.client_name} "
                    f"({as_utc(other.event_start):%Y-%m-%d %H:%M} - "
                    f"{as_utc(other.event_end):%Y-%m-%d %H:%M})"
                ),
            )
            for other in conflicting
        ]
        raise ConflictError(
            "The selected time slot is already booked: "
            + ", ".join(conflict.label for conflict in conflicts),
            conflicts=conflicts,
        )

    def _price_package(
        self,
        venue_id: str,
        request: FoodPackageRequest | None,
    ) -> FoodPackage | None:
        if request is None:
            return None

        template = None
        if request.source_package_id:
            template = self.catalog.get_venue_package_template(
                venue_id, request.source_package_id
            )
            if template is None:
                raise NotFoundError("FoodPackage", request.source_package_id)
        return recalculate_food_package(request, template)

    def _price_patch(
        self,
        booking: Booking,
        patch: BookingPatch,
    ) -> tuple[int, FoodPackage | None, list[ServiceLine], PricingTotals]:
        """Price the patched booking without touching it."""
        if patch.food_package is not None:
            package = self._price_package(booking.venue_id, patch.food_package)
        elif booking.food_package:
            package = FoodPackage.from_document(booking.food_package)
        else:
            package = None

        if patch.services is not None:
            services = list(patch.services)
        else:
            services = [ServiceLine.from_document(doc) for doc in booking.services or []]

        guest_count = booking.guest_count if patch.guest_count is None else patch.guest_count
        return guest_count, package, services, compute_totals(package, guest_count, services)

    def _sync_purchase_orders(self, booking: Booking, package: FoodPackage | None) -> None:
        try:
            with self.db.begin_nested():
                self.purchase_orders.sync_catering_line_items(
                    booking.id, booking.guest_count, package
                )
        except Exception:
            logger.exception("Failed to sync purchase orders for booking %s", booking.id)

    def _transition(self, booking: Booking, to_status: BookingStatus) -> None:
        booking.status = BookingStateMachine.advance(booking.status, to_status)

    def _authorize(self, action: str) -> None:
        if not self.access_policy.is_allowed(action):
            raise PermissionDeniedError(action)
