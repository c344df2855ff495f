# venue_booking/infrastructure/repositories/purchase_order_repository.py

from datetime import datetime, timezone
from decimal import Decimal
import logging

from sqlalchemy.orm import Session
from sqlalchemy import func, select

from venue_booking.application.ports import PurchaseOrderGateway
from venue_booking.domain.exceptions import NotFoundError
from venue_booking.domain.payments import ZERO, VendorType
from venue_booking.domain.pricing import FoodPackage, PriceType, ServiceLine
from venue_booking.infrastructure.db.models import PurchaseOrder
from venue_booking.infrastructure.repositories.transaction_repository import (
    TransactionRepository,
)

logger = logging.getLogger(__name__)


def _line(description: str, quantity: int, unit_price: Decimal) -> dict:
    return {
        "description": description,
        "quantity": quantity,
        "unit_price": str(unit_price),
        "total_price": str(unit_price * quantity),
    }


def catering_line_items(guest_count: int, food_package: FoodPackage | None) -> list[dict]:
    """Lines of a catering PO; their totals add up to the booking's food cost."""
    if food_package is None:
        return [_line("Catering Services", guest_count, ZERO)]

    if food_package.price_type is PriceType.PER_GUEST:
        lines = [_line(f"Catering Services - {food_package.name}", guest_count, food_package.price)]
    else:
        lines = [_line(f"Catering Services - {food_package.name}", 1, food_package.price)]

    for section in food_package.sections:
        lines.append(_line(section.name, guest_count, section.price_per_person))

    if food_package.inclusions:
        lines.append(_line("Inclusions: " + ", ".join(food_package.inclusions), 1, ZERO))
    return lines


def _po_status(total: Decimal, paid: Decimal) -> str:
    if paid <= ZERO:
        return "draft"
    if paid >= total:
        return "paid"
    return "partially_paid"


class SqlPurchaseOrderGateway(PurchaseOrderGateway):
    """Purchase orders stored next to bookings in the same database."""

    def __init__(self, db: Session):
        self.db = db
        self.transaction_repository = TransactionRepository(db)

    def get_by_id(self, purchase_order_id: str) -> PurchaseOrder | None:
        stmt = select(PurchaseOrder).where(PurchaseOrder.id == purchase_order_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_for_booking(
        self,
        booking_id: str,
        vendor_type: VendorType | None = None,
    ) -> list[PurchaseOrder]:
        stmt = (
            select(PurchaseOrder)
            .where(PurchaseOrder.booking_id == booking_id)
            .order_by(PurchaseOrder.po_number)
        )
        if vendor_type:
            stmt = stmt.where(PurchaseOrder.vendor_type == vendor_type)
        return list(self.db.execute(stmt).scalars().all())

    def count_for_booking(self, booking_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(PurchaseOrder)
            .where(PurchaseOrder.booking_id == booking_id)
        )
        return self.db.execute(stmt).scalar_one()

    def next_po_number(self, now: datetime | None = None) -> str:
        """PO-YYYY-MM-NNNN, numbered per calendar month."""
        now = now or datetime.now(timezone.utc)
        prefix = f"PO-{now.year}-{now.month:02d}-"
        stmt = (
            select(PurchaseOrder.po_number)
            .where(PurchaseOrder.po_number.like(f"{prefix}%"))
            .order_by(PurchaseOrder.po_number.desc())
            .limit(1)
        )
        last = self.db.execute(stmt).scalar_one_or_none()
        sequence = int(last.rsplit("-", 1)[-1]) + 1 if last else 1
        return f"{prefix}{sequence:04d}"

    def create_catering_order(
        self,
        booking_id: str,
        venue_id: str,
        guest_count: int,
        food_package: FoodPackage | None,
        vendor_name: str | None = None,
    ) -> str:
        line_items = catering_line_items(guest_count, food_package)
        total = sum((Decimal(line["total_price"]) for line in line_items), ZERO)

        purchase_order = PurchaseOrder(
            po_number=self.next_po_number(),
            booking_id=booking_id,
            venue_id=venue_id,
            vendor_type=VendorType.CATERING,
            vendor_reference="catering",
            vendor_name=vendor_name,
            line_items=line_items,
            total_amount=total,
            paid_amount=ZERO,
            balance_amount=total,
            status="draft",
        )
        self.db.add(purchase_order)
        self.db.flush()

        logger.info(
            "Created catering purchase order %s for booking %s",
            purchase_order.po_number,
            booking_id,
        )
        return purchase_order.id

    def create_service_orders(
        self,
        booking_id: str,
        venue_id: str,
        services: list[ServiceLine],
    ) -> list[str]:
        created = []
        for service in services:
            if not service.vendor_name:
                continue

            purchase_order = PurchaseOrder(
                po_number=self.next_po_number(),
                booking_id=booking_id,
                venue_id=venue_id,
                vendor_type=VendorType.SERVICE,
                vendor_name=service.vendor_name,
                vendor_reference=f"service_{service.service}",
                line_items=[_line(service.service, 1, service.price)],
                total_amount=service.price,
                paid_amount=ZERO,
                balance_amount=service.price,
                status="draft",
            )
            self.db.add(purchase_order)
            # next_po_number reads the previous row
            self.db.flush()
            created.append(purchase_order.id)

            logger.info(
                "Created service purchase order %s (%s) for booking %s",
                purchase_order.po_number,
                service.service,
                booking_id,
            )
        return created

    def sync_catering_line_items(
        self,
        booking_id: str,
        guest_count: int,
        food_package: FoodPackage | None,
    ) -> None:
        for purchase_order in self.list_for_booking(booking_id, VendorType.CATERING):
            line_items = catering_line_items(guest_count, food_package)
            total = sum((Decimal(line["total_price"]) for line in line_items), ZERO)
            paid = Decimal(purchase_order.paid_amount)

            purchase_order.line_items = line_items
            purchase_order.total_amount = total
            purchase_order.balance_amount = total - paid
            purchase_order.status = _po_status(total, paid)

            logger.info(
                "Synced purchase order %s to %s guests",
                purchase_order.po_number,
                guest_count,
            )
        self.db.flush()

    def refresh_payment_status(self, purchase_order_id: str) -> None:
        purchase_order = self.get_by_id(purchase_order_id)
        if not purchase_order:
            raise NotFoundError("PurchaseOrder", purchase_order_id)

        paid = sum(
            (
                Decimal(row.amount)
                for row in self.transaction_repository.settled_for_purchase_order(
                    purchase_order_id
                )
            ),
            ZERO,
        )
        total = Decimal(purchase_order.total_amount)

        purchase_order.paid_amount = paid
        purchase_order.balance_amount = total - paid
        purchase_order.status = _po_status(total, paid)
        self.db.flush()
