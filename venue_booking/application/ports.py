"""Collaborator interfaces consumed by the booking engine.

Implementations must be swappable; the SQLAlchemy-backed ones live in
``venue_booking.infrastructure.repositories``.
"""

from abc import ABC, abstractmethod

from venue_booking.domain.pricing import FoodPackage, ServiceLine, VenuePackageTemplate


class PackageCatalog(ABC):
    """Read access to venue-defined food package templates."""

    @abstractmethod
    def get_venue_package_template(
        self, venue_id: str, package_id: str
    ) -> VenuePackageTemplate | None:
        """Return the template, or None if the venue has no such package."""
        ...


class PurchaseOrderGateway(ABC):
    """Vendor purchase orders kept in sync with bookings."""

    @abstractmethod
    def sync_catering_line_items(
        self,
        booking_id: str,
        guest_count: int,
        food_package: FoodPackage | None,
    ) -> None:
        """Rewrite the booking's catering PO lines for a new guest count."""
        ...

    @abstractmethod
    def refresh_payment_status(self, purchase_order_id: str) -> None:
        """Recompute a PO's paid amount from its settled outbound payments."""
        ...

    @abstractmethod
    def create_catering_order(
        self,
        booking_id: str,
        venue_id: str,
        guest_count: int,
        food_package: FoodPackage | None,
        vendor_name: str | None = None,
    ) -> str:
        """Open a catering PO for the booking and return its id."""
        ...

    @abstractmethod
    def create_service_orders(
        self,
        booking_id: str,
        venue_id: str,
        services: list[ServiceLine],
    ) -> list[str]:
        """Open one service PO per vendor-backed service line; return their ids."""
        ...

    @abstractmethod
    def count_for_booking(self, booking_id: str) -> int:
        ...


class AccessPolicy(ABC):
    """Authorization decision supplied by the identity collaborator."""

    @abstractmethod
    def is_allowed(self, action: str) -> bool:
        ...


class AllowAllPolicy(AccessPolicy):
    def is_allowed(self, action: str) -> bool:
        return True
