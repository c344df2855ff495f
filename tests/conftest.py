"""Pytest configuration and fixtures."""

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from venue_booking.application.ports import PurchaseOrderGateway
from venue_booking.infrastructure.db.models import Venue
from venue_booking.infrastructure.db.session import (
    Base,
    DatabaseConfig,
    build_engine,
    build_session_factory,
    session_scope,
)
from venue_booking.main import create_app

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

GOLD_PACKAGE = {
    "id": "pkg-gold",
    "name": "Gold",
    "description": "Veg buffet",
    "price": "500",
    "price_type": "per_guest",
    "inclusions": ["Welcome drink"],
    "sections": [],
}

BUFFET_PACKAGE = {
    "id": "pkg-buffet",
    "name": "Buffet",
    "price": "100",
    "price_type": "per_guest",
    "inclusions": ["Welcome drink", "Dessert counter"],
    "sections": [
        {"name": "Starters", "price_per_person": "150", "selection_type": "limit", "max_selectable": 3},
        {"name": "Mains", "default_price": "250"},
    ],
}


class RecordingPurchaseOrders(PurchaseOrderGateway):
    """Purchase order collaborator that only records calls."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.synced: list[tuple[str, int]] = []
        self.refreshed: list[str] = []
        self.created: list[str] = []

    def sync_catering_line_items(self, booking_id, guest_count, food_package):
        if self.fail:
            raise RuntimeError("purchase order store unavailable")
        self.synced.append((booking_id, guest_count))

    def refresh_payment_status(self, purchase_order_id):
        if self.fail:
            raise RuntimeError("purchase order store unavailable")
        self.refreshed.append(purchase_order_id)

    def create_catering_order(self, booking_id, venue_id, guest_count, food_package, vendor_name=None):
        self.created.append(booking_id)
        return f"po-{len(self.created)}"

    def create_service_orders(self, booking_id, venue_id, services):
        ids = []
        for service in services:
            if service.vendor_name:
                self.created.append(booking_id)
                ids.append(f"po-{len(self.created)}")
        return ids

    def count_for_booking(self, booking_id):
        return self.created.count(booking_id)


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = build_engine(DatabaseConfig(url=TEST_DATABASE_URL))
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    session = build_session_factory(db_engine)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def venue(db_session: Session) -> Venue:
    venue = Venue(
        business_id="biz-1",
        name="Lakeside Hall",
        food_packages=[GOLD_PACKAGE, BUFFET_PACKAGE],
    )
    db_session.add(venue)
    db_session.flush()
    return venue


@pytest.fixture
def purchase_orders() -> RecordingPurchaseOrders:
    return RecordingPurchaseOrders()


@pytest.fixture
def failing_purchase_orders() -> RecordingPurchaseOrders:
    return RecordingPurchaseOrders(fail=True)


@pytest.fixture(scope="function")
def app():
    return create_app(DatabaseConfig(url=TEST_DATABASE_URL, connect_max_retries=1))


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """Test client backed by the application's own in-memory database."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_venue_id(app, client) -> str:
    with session_scope(app.state.session_factory) as session:
        venue = Venue(
            business_id="biz-1",
            name="Lakeside Hall",
            food_packages=[GOLD_PACKAGE, BUFFET_PACKAGE],
        )
        session.add(venue)
        session.flush()
        return venue.id
