from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from venue_booking.domain.payments import (
    PaymentMode,
    PaymentStatus,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    VendorType,
)
from venue_booking.domain.pricing import PriceType, SelectionType
from venue_booking.domain.recurrence import Frequency
from venue_booking.domain.state_machine import BookingStatus


# -----------------------------
# Food packages & services
# -----------------------------
class FoodItemSchema(BaseModel):
    name: str
    price_per_person: Decimal = Field(default=Decimal("0"), ge=0)
    description: str | None = None
    is_custom: bool = False


class SectionOverrideSchema(BaseModel):
    name: str
    price_per_person: Decimal | None = Field(default=None, ge=0)
    selection_type: SelectionType | None = None
    max_selectable: int | None = Field(default=None, ge=0)
    default_price: Decimal | None = Field(default=None, ge=0)
    items: list[FoodItemSchema] | None = None
    remove: bool = False


class FoodPackageRequestSchema(BaseModel):
    source_package_id: str | None = None
    name: str | None = None
    price_type: PriceType | None = None
    price: Decimal | None = Field(default=None, ge=0)
    sections: list[SectionOverrideSchema] = []
    inclusions: list[str] | None = None
    add_inclusions: list[str] = []
    drop_inclusions: list[str] = []


class ServiceLineSchema(BaseModel):
    service: str
    price: Decimal = Field(default=Decimal("0"), ge=0)
    vendor_name: str | None = None


# -----------------------------
# Bookings
# -----------------------------
class BookingCreateRequest(BaseModel):
    venue_id: str
    client_name: str
    guest_count: int = Field(gt=0)
    event_start: datetime
    event_end: datetime
    food_package: FoodPackageRequestSchema | None = None
    services: list[ServiceLineSchema] = []
    advance_amount: Decimal = Field(default=Decimal("0"), ge=0)
    payment_mode: PaymentMode = PaymentMode.CASH
    lead_id: str | None = None
    contact_no: str | None = None
    email: str | None = None
    occasion_type: str | None = None
    notes: str = ""
    created_by: str | None = None


class BookingUpdateRequest(BaseModel):
    client_name: str | None = None
    contact_no: str | None = None
    email: str | None = None
    occasion_type: str | None = None
    lead_id: str | None = None
    notes: str | None = None
    guest_count: int | None = Field(default=None, gt=0)
    event_start: datetime | None = None
    event_end: datetime | None = None
    food_package: FoodPackageRequestSchema | None = None
    services: list[ServiceLineSchema] | None = None
    payment_mode: PaymentMode | None = None
    updated_by: str | None = None


class BookingCancelRequest(BaseModel):
    reason: str | None = None
    cancelled_by: str | None = None


class BookingPaymentRequest(BaseModel):
    advance_amount: Decimal = Field(ge=0)
    mode: PaymentMode | None = None
    updated_by: str | None = None


class BookingResponse(BaseModel):
    id: str
    venue_id: str
    lead_id: str | None
    client_name: str
    contact_no: str | None
    email: str | None
    occasion_type: str | None
    guest_count: int
    event_start: str
    event_end: str
    status: BookingStatus
    food_package: dict | None
    food_cost_total: float
    services: list[dict]
    total_amount: float
    advance_amount: float
    payment_status: PaymentStatus
    payment_mode: PaymentMode
    notes: str
    confirmed_at: str | None
    cancelled_at: str | None
    cancellation_reason: str
    is_deleted: bool
    deleted_at: str | None
    deleted_by: str | None


class BookingListResponse(BaseModel):
    items: list[BookingResponse]
    total: int


class AvailabilityResponse(BaseModel):
    venue_id: str
    available: bool


class PurchaseOrderRequest(BaseModel):
    vendor_name: str | None = None


class PurchaseOrderCreatedResponse(BaseModel):
    booking_id: str
    purchase_order_id: str


class ServicePurchaseOrdersResponse(BaseModel):
    booking_id: str
    purchase_order_ids: list[str]


# -----------------------------
# Blackout days
# -----------------------------
class BlackoutCreateRequest(BaseModel):
    venue_id: str
    title: str
    reason: str = ""
    start_date: datetime
    end_date: datetime
    is_recurring: bool = False
    frequency: Frequency | None = None
    interval: int = Field(default=1, ge=1)
    end_recurrence: datetime | None = None
    created_by: str | None = None


class BlackoutUpdateRequest(BaseModel):
    title: str | None = None
    reason: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: Literal["active", "inactive"] | None = None
    is_recurring: bool | None = None
    frequency: Frequency | None = None
    interval: int | None = Field(default=None, ge=1)
    end_recurrence: datetime | None = None
    clear_end_recurrence: bool = False
    updated_by: str | None = None


class BlackoutResponse(BaseModel):
    id: str
    venue_id: str
    title: str
    reason: str
    start_date: str
    end_date: str
    status: str
    is_recurring: bool
    frequency: Frequency | None
    interval: int
    end_recurrence: str | None


class BlackoutListResponse(BaseModel):
    items: list[BlackoutResponse]
    total: int


class BlackoutConflictResponse(BaseModel):
    has_conflict: bool
    conflicting: list[BlackoutResponse]


class BlackoutBulkStatusRequest(BaseModel):
    ids: list[str] = Field(min_length=1)
    status: Literal["active", "inactive"]
    updated_by: str | None = None


class BlackoutBulkStatusResponse(BaseModel):
    modified_count: int


# -----------------------------
# Transactions
# -----------------------------
class TransactionCreateRequest(BaseModel):
    booking_id: str
    amount: Decimal = Field(gt=0)
    mode: PaymentMode = PaymentMode.CASH
    direction: TransactionDirection = TransactionDirection.INBOUND
    status: TransactionStatus = TransactionStatus.SUCCESS
    paid_at: datetime | None = None
    reference_id: str | None = None
    notes: str = ""
    vendor_id: str | None = None
    vendor_type: VendorType | None = None
    purchase_order_id: str | None = None
    created_by: str | None = None


class TransactionUpdateRequest(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0)
    mode: PaymentMode | None = None
    status: TransactionStatus | None = None
    notes: str | None = None
    reference_id: str | None = None
    paid_at: datetime | None = None
    updated_by: str | None = None


class TransactionResponse(BaseModel):
    id: str
    booking_id: str
    amount: float
    mode: PaymentMode
    status: TransactionStatus
    type: TransactionType
    direction: TransactionDirection
    vendor_id: str | None
    vendor_type: VendorType | None
    purchase_order_id: str | None
    reference_id: str | None
    notes: str
    paid_at: str


class TransactionListResponse(BaseModel):
    items: list[TransactionResponse]
    total: int
    page: int
    limit: int


class ModeTotalsResponse(BaseModel):
    count: int
    amount: float


class TransactionSummaryResponse(BaseModel):
    total_transactions: int
    successful_transactions: int
    failed_transactions: int
    pending_transactions: int
    total_successful_amount: float
    total_received: float
    total_paid_out: float
    advance_payments: int
    partial_payments: int
    full_payments: int
    vendor_payments: int
    by_payment_mode: dict[str, ModeTotalsResponse]
