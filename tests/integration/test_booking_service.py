from datetime import datetime, timezone
from decimal import Decimal
import logging

import pytest

from venue_booking.application.blackout_service import BlackoutService
from venue_booking.application.booking_service import BookingPatch, BookingService, NewBooking
from venue_booking.domain.exceptions import (
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from venue_booking.domain.payments import PaymentMode, PaymentStatus, VendorType
from venue_booking.domain.pricing import FoodPackageRequest, ServiceLine
from venue_booking.domain.recurrence import Frequency
from venue_booking.domain.state_machine import BookingStatus
from venue_booking.infrastructure.repositories.purchase_order_repository import (
    SqlPurchaseOrderGateway,
)
from venue_booking.infrastructure.repositories.transaction_repository import (
    TransactionRepository,
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def new_booking(venue_id: str, start: datetime, end: datetime, **overrides) -> NewBooking:
    fields = {
        "venue_id": venue_id,
        "client_name": "Asha Rao",
        "guest_count": 100,
        "event_start": start,
        "event_end": end,
        "food_package": FoodPackageRequest(source_package_id="pkg-gold"),
    }
    fields.update(overrides)
    return NewBooking(**fields)


@pytest.fixture
def service(db_session, purchase_orders):
    return BookingService(db_session, purchase_orders=purchase_orders)


# ---------------------
# CREATE
# ---------------------

def test_create_prices_from_venue_template(service, venue):
    booking = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 18), utc(2025, 6, 1, 23)))

    assert booking.status is BookingStatus.PENDING
    assert booking.food_cost_total == Decimal("50000")
    assert booking.total_amount == Decimal("50000")
    assert booking.advance_amount == Decimal("0")
    assert booking.payment_status is PaymentStatus.UNPAID
    assert booking.food_package["source_package_id"] == "pkg-gold"


def test_create_with_advance_records_ledger_row(service, venue, db_session):
    booking = service.create_booking(
        new_booking(
            venue.id,
            utc(2025, 6, 1, 18),
            utc(2025, 6, 1, 23),
            advance_amount=Decimal("10000"),
            payment_mode=PaymentMode.UPI,
        )
    )

    rows = TransactionRepository(db_session).list_for_booking(booking.id)
    assert len(rows) == 1
    assert rows[0].amount == Decimal("10000")
    assert rows[0].mode is PaymentMode.UPI
    assert booking.advance_amount == Decimal("10000")
    assert booking.payment_status is PaymentStatus.PARTIALLY_PAID


def test_services_are_added_to_total(service, venue):
    booking = service.create_booking(
        new_booking(
            venue.id,
            utc(2025, 6, 1, 18),
            utc(2025, 6, 1, 23),
            services=[ServiceLine("Decoration", Decimal("15000"), vendor_name="Bloom")],
        )
    )

    assert booking.total_amount == Decimal("65000")
    assert booking.services[0]["vendor_name"] == "Bloom"


def test_overlapping_booking_is_rejected(service, venue):
    first = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 11)))

    with pytest.raises(ConflictError) as exc_info:
        service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 10, 30), utc(2025, 6, 1, 11, 30)))

    assert [(c.kind, c.id) for c in exc_info.value.conflicts] == [("booking", first.id)]


def test_back_to_back_bookings_are_allowed(service, venue):
    service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 11)))
    second = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 11), utc(2025, 6, 1, 12)))

    assert second.id


def test_cancelled_booking_frees_its_slot(service, venue):
    first = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 11)))
    service.cancel_booking(first.id, "Client postponed")

    assert service.is_slot_available(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 11))


def test_soft_deleted_booking_frees_its_slot(service, venue):
    first = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 11)))
    service.soft_delete_booking(first.id)

    assert service.is_slot_available(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 11))


def test_recurring_blackout_rejects_booking(service, venue, db_session):
    BlackoutService(db_session).create_blackout_day(
        venue.id,
        "Christmas",
        utc(2024, 12, 24),
        utc(2024, 12, 26),
        is_recurring=True,
        frequency=Frequency.YEARLY,
    )

    with pytest.raises(ConflictError) as exc_info:
        service.create_booking(new_booking(venue.id, utc(2025, 12, 25, 18), utc(2025, 12, 25, 22)))

    assert "Christmas" in exc_info.value.message


@pytest.mark.parametrize(
    "overrides",
    [
        {"event_start": utc(2025, 6, 1, 12), "event_end": utc(2025, 6, 1, 12)},
        {"event_start": utc(2025, 6, 1, 13), "event_end": utc(2025, 6, 1, 12)},
        {"guest_count": 0},
        {"client_name": "  "},
        {"advance_amount": Decimal("-5")},
    ],
)
def test_invalid_requests_are_rejected(service, venue, overrides):
    request = new_booking(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 11))
    for key, value in overrides.items():
        setattr(request, key, value)

    with pytest.raises(ValidationError):
        service.create_booking(request)


def test_unknown_package_is_not_found(service, venue):
    request = new_booking(
        venue.id,
        utc(2025, 6, 1, 10),
        utc(2025, 6, 1, 11),
        food_package=FoodPackageRequest(source_package_id="pkg-missing"),
    )

    with pytest.raises(NotFoundError):
        service.create_booking(request)


def test_unknown_venue_is_not_found(service, venue):
    with pytest.raises(NotFoundError):
        service.create_booking(new_booking("missing", utc(2025, 6, 1, 10), utc(2025, 6, 1, 11)))


# ---------------------
# UPDATE
# ---------------------

def test_guest_count_change_reprices_and_syncs_purchase_orders(service, venue, purchase_orders):
    booking = service.create_booking(
        new_booking(
            venue.id,
            utc(2025, 6, 1, 18),
            utc(2025, 6, 1, 23),
            advance_amount=Decimal("20000"),
        )
    )

    updated = service.update_booking(booking.id, BookingPatch(guest_count=150))

    assert updated.food_cost_total == Decimal("75000")
    assert updated.total_amount == Decimal("75000")
    assert updated.advance_amount == Decimal("20000")
    assert updated.payment_status is PaymentStatus.PARTIALLY_PAID
    assert purchase_orders.synced == [(booking.id, 150)]


def test_purchase_order_failure_does_not_fail_update(
    db_session, venue, failing_purchase_orders, caplog
):
    service = BookingService(db_session, purchase_orders=failing_purchase_orders)
    booking = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 18), utc(2025, 6, 1, 23)))

    with caplog.at_level(logging.ERROR):
        updated = service.update_booking(booking.id, BookingPatch(guest_count=120))

    assert updated.guest_count == 120
    assert updated.food_cost_total == Decimal("60000")
    assert "Failed to sync purchase orders" in caplog.text


def test_price_change_can_mark_booking_paid(service, venue):
    booking = service.create_booking(
        new_booking(
            venue.id,
            utc(2025, 6, 1, 18),
            utc(2025, 6, 1, 23),
            advance_amount=Decimal("30000"),
        )
    )

    updated = service.update_booking(booking.id, BookingPatch(guest_count=50))

    assert updated.total_amount == Decimal("25000")
    assert updated.payment_status is PaymentStatus.PAID


def test_switching_package_reprices(service, venue):
    booking = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 18), utc(2025, 6, 1, 23)))

    updated = service.update_booking(
        booking.id,
        BookingPatch(food_package=FoodPackageRequest(source_package_id="pkg-buffet")),
    )

    # 100 + 150 + 250 per guest
    assert updated.food_cost_total == Decimal("50000")
    assert updated.food_package["source_package_id"] == "pkg-buffet"
    assert [s["name"] for s in updated.food_package["sections"]] == ["Starters", "Mains"]


def test_moving_into_taken_slot_is_rejected(service, venue):
    service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 12)))
    second = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 14), utc(2025, 6, 1, 16)))

    with pytest.raises(ConflictError):
        service.update_booking(
            second.id,
            BookingPatch(event_start=utc(2025, 6, 1, 11), event_end=utc(2025, 6, 1, 13)),
        )


def test_extending_own_slot_is_allowed(service, venue):
    booking = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 12)))

    updated = service.update_booking(booking.id, BookingPatch(event_end=utc(2025, 6, 1, 13)))

    assert updated.event_end == utc(2025, 6, 1, 13)


@pytest.mark.parametrize(
    "recurring, start, end",
    [
        (False, utc(2025, 5, 5, 10), utc(2025, 5, 5, 12)),
        # weekly from Monday 2025-05-05; 2025-06-09 is a later Monday
        (True, utc(2025, 6, 9, 10), utc(2025, 6, 9, 12)),
    ],
)
def test_moving_into_blackout_is_rejected(service, venue, db_session, recurring, start, end):
    booking = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 12)))
    BlackoutService(db_session).create_blackout_day(
        venue.id,
        "Deep cleaning",
        utc(2025, 5, 5),
        utc(2025, 5, 5, 23),
        is_recurring=recurring,
        frequency=Frequency.WEEKLY if recurring else None,
    )

    with pytest.raises(ConflictError) as exc_info:
        service.update_booking(booking.id, BookingPatch(event_start=start, event_end=end))

    assert exc_info.value.conflicts[0].kind == "blackout_day"
    assert booking.event_start == utc(2025, 6, 1, 10)


def test_rejected_move_leaves_booking_unchanged(service, venue):
    service.create_booking(new_booking(venue.id, utc(2025, 11, 9, 18), utc(2025, 11, 9, 23)))
    booking = service.create_booking(
        new_booking(venue.id, utc(2025, 11, 8, 18), utc(2025, 11, 8, 23), client_name="Anil")
    )

    with pytest.raises(ConflictError):
        service.update_booking(
            booking.id,
            BookingPatch(
                client_name="Bhavna",
                notes="changed",
                guest_count=120,
                event_start=utc(2025, 11, 9, 19),
                event_end=utc(2025, 11, 9, 20),
            ),
        )

    assert (booking.client_name, booking.notes) == ("Anil", "")
    assert booking.guest_count == 100
    assert booking.total_amount == Decimal("50000")
    assert booking.event_start == utc(2025, 11, 8, 18)


def test_invalid_guest_count_leaves_booking_unchanged(service, venue):
    booking = service.create_booking(
        new_booking(venue.id, utc(2025, 11, 8, 18), utc(2025, 11, 8, 23), client_name="Anil")
    )

    with pytest.raises(ValidationError):
        service.update_booking(
            booking.id,
            BookingPatch(client_name="Bhavna", payment_mode=PaymentMode.UPI, guest_count=0),
        )

    assert booking.client_name == "Anil"
    assert booking.payment_mode is PaymentMode.CASH
    assert booking.guest_count == 100


# ---------------------
# LIFECYCLE
# ---------------------

def test_confirm_then_cancel(service, venue):
    booking = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 12)))

    confirmed = service.confirm_booking(booking.id)
    assert confirmed.status is BookingStatus.CONFIRMED
    assert confirmed.confirmed_at is not None

    cancelled = service.cancel_booking(booking.id, "Venue flooded")
    assert cancelled.status is BookingStatus.CANCELLED
    assert cancelled.cancellation_reason == "Venue flooded"


def test_cancelled_booking_cannot_be_confirmed(service, venue):
    booking = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 12)))
    service.cancel_booking(booking.id)

    with pytest.raises(InvalidStateTransitionError):
        service.confirm_booking(booking.id)


def test_soft_delete_keeps_ledger_rows(service, venue, db_session, caplog):
    booking = service.create_booking(
        new_booking(
            venue.id,
            utc(2025, 6, 1, 10),
            utc(2025, 6, 1, 12),
            advance_amount=Decimal("5000"),
        )
    )

    with caplog.at_level(logging.WARNING):
        deleted = service.soft_delete_booking(booking.id, deleted_by="manager-1")

    assert deleted.is_deleted
    assert deleted.deleted_by == "manager-1"
    assert TransactionRepository(db_session).count_for_booking(booking.id) == 1
    assert "still has 1 transactions" in caplog.text

    with pytest.raises(NotFoundError):
        service.get_booking(booking.id)


def test_restore_brings_booking_back(service, venue):
    booking = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 12)))
    service.soft_delete_booking(booking.id)

    restored = service.restore_booking(booking.id)

    assert not restored.is_deleted
    assert restored.deleted_at is None
    assert service.get_booking(booking.id).id == booking.id


def test_restore_requires_deleted_booking(service, venue):
    booking = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 12)))

    with pytest.raises(NotFoundError):
        service.restore_booking(booking.id)


def test_restore_into_taken_slot_is_rejected(service, venue):
    booking = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 10), utc(2025, 6, 1, 12)))
    service.soft_delete_booking(booking.id)
    service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 11), utc(2025, 6, 1, 13)))

    with pytest.raises(ConflictError):
        service.restore_booking(booking.id)


# ---------------------
# LEGACY PAYMENT UPDATE
# ---------------------

def test_update_payment_appends_the_difference(service, venue, db_session):
    booking = service.create_booking(
        new_booking(
            venue.id,
            utc(2025, 6, 1, 10),
            utc(2025, 6, 1, 12),
            advance_amount=Decimal("10000"),
        )
    )

    updated = service.update_payment(booking.id, Decimal("25000"))

    rows = TransactionRepository(db_session).list_for_booking(booking.id)
    assert sorted(row.amount for row in rows) == [Decimal("10000"), Decimal("15000")]
    assert updated.advance_amount == Decimal("25000")


def test_update_payment_to_same_amount_is_noop(service, venue, db_session):
    booking = service.create_booking(
        new_booking(
            venue.id,
            utc(2025, 6, 1, 10),
            utc(2025, 6, 1, 12),
            advance_amount=Decimal("10000"),
        )
    )

    service.update_payment(booking.id, Decimal("10000"))

    assert TransactionRepository(db_session).count_for_booking(booking.id) == 1


def test_update_payment_cannot_lower_advance(service, venue):
    booking = service.create_booking(
        new_booking(
            venue.id,
            utc(2025, 6, 1, 10),
            utc(2025, 6, 1, 12),
            advance_amount=Decimal("10000"),
        )
    )

    with pytest.raises(ValidationError):
        service.update_payment(booking.id, Decimal("5000"))


# ---------------------
# PURCHASE ORDERS & QUERIES
# ---------------------

def test_catering_purchase_order_follows_guest_count(db_session, venue):
    service = BookingService(db_session)
    booking = service.create_booking(new_booking(venue.id, utc(2025, 6, 1, 18), utc(2025, 6, 1, 23)))

    purchase_order_id = service.generate_catering_purchase_order(booking.id, "Spice Route")
    gateway = SqlPurchaseOrderGateway(db_session)
    purchase_order = gateway.get_by_id(purchase_order_id)

    assert purchase_order.po_number.startswith("PO-")
    assert purchase_order.total_amount == Decimal("50000")
    assert purchase_order.status == "draft"

    service.update_booking(booking.id, BookingPatch(guest_count=150))

    purchase_order = gateway.get_by_id(purchase_order_id)
    assert purchase_order.total_amount == Decimal("75000")
    assert purchase_order.balance_amount == Decimal("75000")


def test_service_purchase_orders_for_vendor_backed_services(db_session, venue):
    service = BookingService(db_session)
    booking = service.create_booking(
        new_booking(
            venue.id,
            utc(2025, 6, 1, 18),
            utc(2025, 6, 1, 23),
            services=[
                ServiceLine(service="Decoration", price=Decimal("15000"), vendor_name="Petal Works"),
                ServiceLine(service="DJ", price=Decimal("8000"), vendor_name="Beat Box"),
                ServiceLine(service="Valet", price=Decimal("2000")),
            ],
        )
    )

    purchase_order_ids = service.generate_service_purchase_orders(booking.id)
    gateway = SqlPurchaseOrderGateway(db_session)
    orders = [gateway.get_by_id(purchase_order_id) for purchase_order_id in purchase_order_ids]

    assert [order.vendor_reference for order in orders] == ["service_Decoration", "service_DJ"]
    assert [order.total_amount for order in orders] == [Decimal("15000"), Decimal("8000")]
    assert all(order.vendor_type is VendorType.SERVICE for order in orders)
    assert orders[0].po_number != orders[1].po_number
    assert gateway.count_for_booking(booking.id) == 2


def test_cancelled_booking_gets_no_service_purchase_orders(service, venue, purchase_orders):
    booking = service.create_booking(
        new_booking(
            venue.id,
            utc(2025, 6, 1, 18),
            utc(2025, 6, 1, 23),
            services=[ServiceLine(service="DJ", price=Decimal("8000"), vendor_name="Beat Box")],
        )
    )
    service.cancel_booking(booking.id)

    with pytest.raises(ValidationError):
        service.generate_service_purchase_orders(booking.id)
    assert purchase_orders.created == []


def test_list_bookings_filters_and_counts(service, venue):
    for hour in (8, 10, 12):
        service.create_booking(new_booking(venue.id, utc(2025, 6, 1, hour), utc(2025, 6, 1, hour + 1)))
    items, _ = service.list_bookings(venue.id)
    service.confirm_booking(items[0].id)
    service.soft_delete_booking(items[2].id)

    all_items, total = service.list_bookings(venue.id)
    confirmed, confirmed_total = service.list_bookings(venue.id, status=BookingStatus.CONFIRMED)
    deleted, deleted_total = service.list_deleted_bookings()

    assert total == 2
    assert [b.id for b in all_items] == [items[0].id, items[1].id]
    assert confirmed_total == 1 and confirmed[0].id == items[0].id
    assert deleted_total == 1 and deleted[0].id == items[2].id
