from decimal import Decimal

import pytest

from venue_booking.domain.payments import (
    PaymentStatus,
    TransactionType,
    classify_inbound_payment,
    derive_payment_status,
)


@pytest.mark.parametrize(
    "advance, total, expected",
    [
        ("0", "10000", PaymentStatus.UNPAID),
        ("2500", "10000", PaymentStatus.PARTIALLY_PAID),
        ("10000", "10000", PaymentStatus.PAID),
        ("12000", "10000", PaymentStatus.PAID),
    ],
)
def test_payment_status_follows_advance(advance, total, expected):
    assert derive_payment_status(Decimal(advance), Decimal(total)) is expected


def test_first_payment_below_total_is_advance():
    assert (
        classify_inbound_payment(Decimal("0"), Decimal("3000"), Decimal("10000"))
        is TransactionType.ADVANCE
    )


def test_later_payment_below_total_is_partial():
    assert (
        classify_inbound_payment(Decimal("3000"), Decimal("6000"), Decimal("10000"))
        is TransactionType.PARTIAL
    )


def test_payment_reaching_total_is_full():
    assert (
        classify_inbound_payment(Decimal("6000"), Decimal("10000"), Decimal("10000"))
        is TransactionType.FULL
    )


def test_single_payment_of_whole_total_is_full():
    assert (
        classify_inbound_payment(Decimal("0"), Decimal("10000"), Decimal("10000"))
        is TransactionType.FULL
    )
