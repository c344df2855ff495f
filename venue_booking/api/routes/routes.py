from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from venue_booking.api.schemas.schemas import (
    AvailabilityResponse,
    BlackoutBulkStatusRequest,
    BlackoutBulkStatusResponse,
    BlackoutConflictResponse,
    BlackoutCreateRequest,
    BlackoutListResponse,
    BlackoutResponse,
    BlackoutUpdateRequest,
    BookingCancelRequest,
    BookingCreateRequest,
    BookingListResponse,
    BookingPaymentRequest,
    BookingResponse,
    BookingUpdateRequest,
    FoodPackageRequestSchema,
    ModeTotalsResponse,
    PurchaseOrderCreatedResponse,
    PurchaseOrderRequest,
    ServiceLineSchema,
    ServicePurchaseOrdersResponse,
    TransactionCreateRequest,
    TransactionListResponse,
    TransactionResponse,
    TransactionSummaryResponse,
    TransactionUpdateRequest,
)
from venue_booking.application.blackout_service import BlackoutPatch, BlackoutService
from venue_booking.application.booking_service import BookingPatch, BookingService, NewBooking
from venue_booking.application.ledger_service import LedgerService, TransactionPatch
from venue_booking.application.ports import AccessPolicy, AllowAllPolicy
from venue_booking.domain.exceptions import ErrorKind, VenueBookingError
from venue_booking.domain.intervals import as_utc
from venue_booking.domain.payments import (
    PaymentMode,
    PaymentStatus,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
)
from venue_booking.domain.pricing import (
    FoodItem,
    FoodPackageRequest,
    SectionOverride,
    ServiceLine,
)
from venue_booking.domain.state_machine import BookingStatus
from venue_booking.infrastructure.db.models import BlackoutDay, Booking, PaymentTransaction


router = APIRouter()
logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.PERMISSION: status.HTTP_403_FORBIDDEN,
    ErrorKind.RECONCILIATION: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_access_policy(request: Request) -> AccessPolicy:
    return getattr(request.app.state, "access_policy", None) or AllowAllPolicy()


def _http_error(exc: VenueBookingError) -> HTTPException:
    if exc.kind is ErrorKind.RECONCILIATION:
        logger.error("Ledger invariant violated: %s", exc.message)
    return HTTPException(
        status_code=_STATUS_BY_KIND[exc.kind],
        detail={
            "kind": exc.kind.value,
            "message": exc.message,
            "conflicts": [asdict(entity) for entity in getattr(exc, "conflicts", [])],
        },
    )


def _iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None


# -----------------------------
# Request / response mapping
# -----------------------------
def _package_request(schema: FoodPackageRequestSchema | None) -> FoodPackageRequest | None:
    if schema is None:
        return None
    return FoodPackageRequest(
        source_package_id=schema.source_package_id,
        name=schema.name,
        price_type=schema.price_type,
        price=schema.price,
        sections=tuple(
            SectionOverride(
                name=section.name,
                price_per_person=section.price_per_person,
                selection_type=section.selection_type,
                max_selectable=section.max_selectable,
                default_price=section.default_price,
                items=(
                    None
                    if section.items is None
                    else tuple(FoodItem(**item.model_dump()) for item in section.items)
                ),
                remove=section.remove,
            )
            for section in schema.sections
        ),
        inclusions=None if schema.inclusions is None else tuple(schema.inclusions),
        add_inclusions=tuple(schema.add_inclusions),
        drop_inclusions=tuple(schema.drop_inclusions),
    )


def _services(schemas: list[ServiceLineSchema]) -> list[ServiceLine]:
    return [ServiceLine(**service.model_dump()) for service in schemas]


def _booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        venue_id=booking.venue_id,
        lead_id=booking.lead_id,
        client_name=booking.client_name,
        contact_no=booking.contact_no,
        email=booking.email,
        occasion_type=booking.occasion_type,
        guest_count=booking.guest_count,
        event_start=_iso(booking.event_start),
        event_end=_iso(booking.event_end),
        status=booking.status,
        food_package=booking.food_package,
        food_cost_total=float(booking.food_cost_total),
        services=booking.services or [],
        total_amount=float(booking.total_amount),
        advance_amount=float(booking.advance_amount),
        payment_status=booking.payment_status,
        payment_mode=booking.payment_mode,
        notes=booking.notes,
        confirmed_at=_iso(booking.confirmed_at),
        cancelled_at=_iso(booking.cancelled_at),
        cancellation_reason=booking.cancellation_reason,
        is_deleted=booking.is_deleted,
        deleted_at=_iso(booking.deleted_at),
        deleted_by=booking.deleted_by,
    )


def _blackout_response(blackout: BlackoutDay) -> BlackoutResponse:
    return BlackoutResponse(
        id=blackout.id,
        venue_id=blackout.venue_id,
        title=blackout.title,
        reason=blackout.reason,
        start_date=_iso(blackout.start_date),
        end_date=_iso(blackout.end_date),
        status=blackout.status,
        is_recurring=blackout.is_recurring,
        frequency=blackout.frequency,
        interval=blackout.recurrence_interval,
        end_recurrence=_iso(blackout.end_recurrence),
    )


def _transaction_response(transaction: PaymentTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=transaction.id,
        booking_id=transaction.booking_id,
        amount=float(transaction.amount),
        mode=transaction.mode,
        status=transaction.status,
        type=transaction.type,
        direction=transaction.direction,
        vendor_id=transaction.vendor_id,
        vendor_type=transaction.vendor_type,
        purchase_order_id=transaction.purchase_order_id,
        reference_id=transaction.reference_id,
        notes=transaction.notes,
        paid_at=_iso(transaction.paid_at),
    )


@router.get("/health")
def health():
    return {"message": "Venue booking engine is running"}


# -----------------------------
# Blackout days
# -----------------------------
@router.post("/blackout-days", response_model=BlackoutResponse)
def create_blackout_day(
    request: BlackoutCreateRequest,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    service = BlackoutService(db, policy)
    try:
        blackout = service.create_blackout_day(
            venue_id=request.venue_id,
            title=request.title,
            start_date=request.start_date,
            end_date=request.end_date,
            reason=request.reason,
            is_recurring=request.is_recurring,
            frequency=request.frequency,
            interval=request.interval,
            end_recurrence=request.end_recurrence,
            created_by=request.created_by,
        )
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _blackout_response(blackout)


@router.get("/blackout-days", response_model=list[BlackoutResponse])
def get_blackout_days_by_date_range(
    start_date: datetime,
    end_date: datetime,
    venue_id: str | None = None,
    db: Session = Depends(get_db),
):
    service = BlackoutService(db)
    try:
        blackouts = service.get_blackout_days_by_date_range(start_date, end_date, venue_id)
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return [_blackout_response(blackout) for blackout in blackouts]


@router.post("/blackout-days/bulk-status", response_model=BlackoutBulkStatusResponse)
def bulk_update_blackout_status(
    request: BlackoutBulkStatusRequest,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    service = BlackoutService(db, policy)
    try:
        modified = service.bulk_update_status(request.ids, request.status, request.updated_by)
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return BlackoutBulkStatusResponse(modified_count=modified)


@router.get("/blackout-days/{blackout_id}", response_model=BlackoutResponse)
def get_blackout_day(blackout_id: str, db: Session = Depends(get_db)):
    try:
        blackout = BlackoutService(db).get_blackout_day(blackout_id)
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _blackout_response(blackout)


@router.patch("/blackout-days/{blackout_id}", response_model=BlackoutResponse)
def update_blackout_day(
    blackout_id: str,
    request: BlackoutUpdateRequest,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    service = BlackoutService(db, policy)
    try:
        blackout = service.update_blackout_day(
            blackout_id,
            BlackoutPatch(**request.model_dump()),
        )
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _blackout_response(blackout)


@router.delete("/blackout-days/{blackout_id}")
def delete_blackout_day(
    blackout_id: str,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    try:
        BlackoutService(db, policy).delete_blackout_day(blackout_id)
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return {"message": "Blackout day deleted", "id": blackout_id}


@router.get("/venues/{venue_id}/blackout-days", response_model=BlackoutListResponse)
def list_blackout_days(
    venue_id: str,
    status_filter: str | None = Query(default=None, alias="status"),
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    skip: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    service = BlackoutService(db)
    try:
        items, total = service.list_blackout_days(
            venue_id,
            status=status_filter,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            skip=skip,
        )
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return BlackoutListResponse(
        items=[_blackout_response(blackout) for blackout in items],
        total=total,
    )


@router.get("/venues/{venue_id}/blackout-days/upcoming", response_model=list[BlackoutResponse])
def get_upcoming_blackout_days(
    venue_id: str,
    limit: int = Query(default=10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    blackouts = BlackoutService(db).get_upcoming_blackout_days(venue_id, limit)
    return [_blackout_response(blackout) for blackout in blackouts]


@router.get("/venues/{venue_id}/blackout-days/conflicts", response_model=BlackoutConflictResponse)
def check_blackout_conflict(
    venue_id: str,
    start: datetime,
    end: datetime,
    db: Session = Depends(get_db),
):
    result = BlackoutService(db).check_conflict(venue_id, start, end)
    return BlackoutConflictResponse(
        has_conflict=result.has_conflict,
        conflicting=[_blackout_response(blackout) for blackout in result.conflicting],
    )


# -----------------------------
# Bookings
# -----------------------------
@router.post("/bookings", response_model=BookingResponse)
def create_booking(
    request: BookingCreateRequest,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    service = BookingService(db, access_policy=policy)
    try:
        booking = service.create_booking(
            NewBooking(
                venue_id=request.venue_id,
                client_name=request.client_name,
                guest_count=request.guest_count,
                event_start=request.event_start,
                event_end=request.event_end,
                food_package=_package_request(request.food_package),
                services=_services(request.services),
                advance_amount=request.advance_amount,
                payment_mode=request.payment_mode,
                lead_id=request.lead_id,
                contact_no=request.contact_no,
                email=request.email,
                occasion_type=request.occasion_type,
                notes=request.notes,
                created_by=request.created_by,
            )
        )
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _booking_response(booking)


@router.get("/bookings/deleted", response_model=BookingListResponse)
def list_deleted_bookings(
    limit: int = Query(default=50, ge=1, le=200),
    skip: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    items, total = BookingService(db).list_deleted_bookings(limit=limit, skip=skip)
    return BookingListResponse(items=[_booking_response(b) for b in items], total=total)


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
def get_booking(booking_id: str, db: Session = Depends(get_db)):
    try:
        booking = BookingService(db).get_booking(booking_id)
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _booking_response(booking)


@router.patch("/bookings/{booking_id}", response_model=BookingResponse)
def update_booking(
    booking_id: str,
    request: BookingUpdateRequest,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    service = BookingService(db, access_policy=policy)
    patch = BookingPatch(
        client_name=request.client_name,
        contact_no=request.contact_no,
        email=request.email,
        occasion_type=request.occasion_type,
        lead_id=request.lead_id,
        notes=request.notes,
        guest_count=request.guest_count,
        event_start=request.event_start,
        event_end=request.event_end,
        food_package=_package_request(request.food_package),
        services=None if request.services is None else _services(request.services),
        payment_mode=request.payment_mode,
        updated_by=request.updated_by,
    )
    try:
        booking = service.update_booking(booking_id, patch)
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _booking_response(booking)


@router.post("/bookings/{booking_id}/confirm", response_model=BookingResponse)
def confirm_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    try:
        booking = BookingService(db, access_policy=policy).confirm_booking(booking_id)
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _booking_response(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: str,
    request: BookingCancelRequest,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    service = BookingService(db, access_policy=policy)
    try:
        booking = service.cancel_booking(booking_id, request.reason, request.cancelled_by)
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _booking_response(booking)


@router.delete("/bookings/{booking_id}", response_model=BookingResponse)
def delete_booking(
    booking_id: str,
    deleted_by: str | None = None,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    service = BookingService(db, access_policy=policy)
    try:
        booking = service.soft_delete_booking(booking_id, deleted_by)
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _booking_response(booking)


@router.post("/bookings/{booking_id}/restore", response_model=BookingResponse)
def restore_booking(
    booking_id: str,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    try:
        booking = BookingService(db, access_policy=policy).restore_booking(booking_id)
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _booking_response(booking)


@router.post("/bookings/{booking_id}/payment", response_model=BookingResponse)
def update_booking_payment(
    booking_id: str,
    request: BookingPaymentRequest,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    service = BookingService(db, access_policy=policy)
    try:
        booking = service.update_payment(
            booking_id,
            request.advance_amount,
            mode=request.mode,
            updated_by=request.updated_by,
        )
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _booking_response(booking)


@router.post(
    "/bookings/{booking_id}/purchase-orders/catering",
    response_model=PurchaseOrderCreatedResponse,
)
def generate_catering_purchase_order(
    booking_id: str,
    request: PurchaseOrderRequest,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    service = BookingService(db, access_policy=policy)
    try:
        purchase_order_id = service.generate_catering_purchase_order(
            booking_id, request.vendor_name
        )
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return PurchaseOrderCreatedResponse(
        booking_id=booking_id,
        purchase_order_id=purchase_order_id,
    )


@router.post(
    "/bookings/{booking_id}/purchase-orders/services",
    response_model=ServicePurchaseOrdersResponse,
)
def generate_service_purchase_orders(
    booking_id: str,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    service = BookingService(db, access_policy=policy)
    try:
        purchase_order_ids = service.generate_service_purchase_orders(booking_id)
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return ServicePurchaseOrdersResponse(
        booking_id=booking_id,
        purchase_order_ids=purchase_order_ids,
    )


@router.get("/bookings/{booking_id}/transactions", response_model=list[TransactionResponse])
def list_booking_transactions(
    booking_id: str,
    direction: TransactionDirection | None = None,
    db: Session = Depends(get_db),
):
    rows = LedgerService(db).list_transactions_for_booking(booking_id, direction)
    return [_transaction_response(row) for row in rows]


@router.get(
    "/bookings/{booking_id}/transactions/trail",
    response_model=list[TransactionResponse],
)
def booking_transaction_trail(booking_id: str, db: Session = Depends(get_db)):
    rows = LedgerService(db).transaction_trail(booking_id)
    return [_transaction_response(row) for row in rows]


@router.get("/venues/{venue_id}/bookings", response_model=BookingListResponse)
def list_bookings(
    venue_id: str,
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    payment_status: PaymentStatus | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    skip: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    items, total = BookingService(db).list_bookings(
        venue_id,
        status=status_filter,
        payment_status=payment_status,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        skip=skip,
    )
    return BookingListResponse(items=[_booking_response(b) for b in items], total=total)


@router.get("/venues/{venue_id}/availability", response_model=AvailabilityResponse)
def check_availability(
    venue_id: str,
    start: datetime,
    end: datetime,
    exclude_booking_id: str | None = None,
    db: Session = Depends(get_db),
):
    try:
        available = BookingService(db).is_slot_available(
            venue_id, start, end, exclude_booking_id
        )
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return AvailabilityResponse(venue_id=venue_id, available=available)


# -----------------------------
# Transactions
# -----------------------------
@router.post("/transactions", response_model=TransactionResponse)
def append_transaction(
    request: TransactionCreateRequest,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    service = LedgerService(db, access_policy=policy)
    try:
        transaction = service.append_transaction(**request.model_dump())
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _transaction_response(transaction)


@router.get("/transactions", response_model=TransactionListResponse)
def list_transactions(
    booking_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    mode: PaymentMode | None = None,
    status_filter: TransactionStatus | None = Query(default=None, alias="status"),
    type_filter: TransactionType | None = Query(default=None, alias="type"),
    direction: TransactionDirection | None = None,
    purchase_order_id: str | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    try:
        items, total = LedgerService(db).list_transactions(
            page=page,
            limit=limit,
            booking_id=booking_id,
            start_date=start_date,
            end_date=end_date,
            mode=mode,
            status=status_filter,
            type=type_filter,
            direction=direction,
            purchase_order_id=purchase_order_id,
            min_amount=min_amount,
            max_amount=max_amount,
        )
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return TransactionListResponse(
        items=[_transaction_response(row) for row in items],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/transactions/summary", response_model=TransactionSummaryResponse)
def transaction_summary(
    booking_id: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    db: Session = Depends(get_db),
):
    summary = LedgerService(db).summarize(booking_id, start_date, end_date)
    return TransactionSummaryResponse(
        total_transactions=summary.total_transactions,
        successful_transactions=summary.successful_transactions,
        failed_transactions=summary.failed_transactions,
        pending_transactions=summary.pending_transactions,
        total_successful_amount=float(summary.total_successful_amount),
        total_received=float(summary.total_received),
        total_paid_out=float(summary.total_paid_out),
        advance_payments=summary.advance_payments,
        partial_payments=summary.partial_payments,
        full_payments=summary.full_payments,
        vendor_payments=summary.vendor_payments,
        by_payment_mode={
            mode: ModeTotalsResponse(count=totals.count, amount=float(totals.amount))
            for mode, totals in summary.by_payment_mode.items()
        },
    )


@router.get("/transactions/{transaction_id}", response_model=TransactionResponse)
def get_transaction(transaction_id: str, db: Session = Depends(get_db)):
    try:
        transaction = LedgerService(db).get_transaction(transaction_id)
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _transaction_response(transaction)


@router.patch("/transactions/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: str,
    request: TransactionUpdateRequest,
    db: Session = Depends(get_db),
    policy: AccessPolicy = Depends(get_access_policy),
):
    service = LedgerService(db, access_policy=policy)
    try:
        transaction = service.update_transaction(
            transaction_id,
            TransactionPatch(**request.model_dump()),
        )
    except VenueBookingError as exc:
        raise _http_error(exc) from exc
    return _transaction_response(transaction)
