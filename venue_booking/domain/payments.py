"""Payment vocabulary and the pure rules the ledger reconciles with."""

from decimal import Decimal
from enum import Enum


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


class PaymentMode(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    OTHER = "other"


class TransactionDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class TransactionType(str, Enum):
    ADVANCE = "advance"
    PARTIAL = "partial"
    FULL = "full"
    VENDOR_PAYMENT = "vendor_payment"


class TransactionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class VendorType(str, Enum):
    CATERING = "catering"
    SERVICE = "service"


ZERO = Decimal("0")


def derive_payment_status(advance_amount: Decimal, total_amount: Decimal) -> PaymentStatus:
    if advance_amount <= ZERO:
        return PaymentStatus.UNPAID
    if advance_amount >= total_amount:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIALLY_PAID


def classify_inbound_payment(
    settled_before: Decimal,
    settled_after: Decimal,
    total_amount: Decimal,
) -> TransactionType:
    """
    Classify an inbound payment from the running settled total.

    A payment that brings the running total to the booking total is FULL,
    even when it is the first one.
    """
    if settled_after >= total_amount:
        return TransactionType.FULL
    if settled_before <= ZERO:
        return TransactionType.ADVANCE
    return TransactionType.PARTIAL
