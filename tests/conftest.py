"""Pytest fixtures for testing"""

import itertools
from datetime import datetime, timedelta
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from groupbuy_gateway.api.dependencies import get_clock, get_notifier
from groupbuy_gateway.api.main import create_app
from groupbuy_gateway.domain.models import OrderLine
from groupbuy_gateway.infrastructure.database.models import Base, Buyer, Product, Supplier
from groupbuy_gateway.infrastructure.database.session import get_db, init_db, make_engine, make_session_factory
from groupbuy_gateway.infrastructure.notifications.notifier import BROADCAST_CHANNEL
from groupbuy_gateway.services.bidding import BiddingService
from groupbuy_gateway.services.credit import CreditLedgerService
from groupbuy_gateway.services.groups import GroupService
from groupbuy_gateway.services.orders import OrderService

START = datetime(2025, 3, 1, 9, 0, 0)


class RecordingNotifier:
    """Notifier double that keeps every delivered event"""

    def __init__(self):
        self.events = []

    def notify_channel(self, channel_id, event, payload):
        self.events.append((str(channel_id), event, payload))

    def broadcast(self, event, payload):
        self.events.append((BROADCAST_CHANNEL, event, payload))

    def names(self) -> list:
        return [event for _, event, _ in self.events]


class FakeClock:
    """Settable clock; services call it like utcnow()"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so concurrent sessions share one database"""
    engine = make_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    """Create test database and session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def group_service(db, notifier, clock) -> GroupService:
    return GroupService(db, notifier, clock=clock)


@pytest.fixture
def order_service(db, notifier, clock) -> OrderService:
    return OrderService(db, notifier, clock=clock)


@pytest.fixture
def bidding_service(db, notifier, clock) -> BiddingService:
    return BiddingService(db, notifier, clock=clock)


@pytest.fixture
def credit_service(db, notifier, clock) -> CreditLedgerService:
    return CreditLedgerService(db, notifier, clock=clock)


@pytest.fixture
def make_buyer(db):
    """Factory for committed buyers"""
    counter = itertools.count(1)

    def factory(**fields) -> Buyer:
        n = next(counter)
        values = {
            "name": f"Vendor {n}",
            "phone": f"98200{n:05d}",
            "area": "Dadar",
            "latitude": 19.0178,
            "longitude": 72.8478,
            "trust_score": 50,
            "available_credit_cents": 500_000,
            "used_credit_cents": 0,
        }
        values.update(fields)
        buyer = Buyer(**values)
        db.add(buyer)
        db.commit()
        return buyer

    return factory


@pytest.fixture
def make_supplier(db):
    """Factory for committed suppliers"""
    counter = itertools.count(1)

    def factory(**fields) -> Supplier:
        n = next(counter)
        values = {
            "business_name": f"Wholesale Traders {n}",
            "phone": f"99300{n:05d}",
            "delivery_areas": ["Dadar", "Parel"],
            "product_categories": ["vegetables", "oil"],
            "rating": 4.5,
        }
        values.update(fields)
        supplier = Supplier(**values)
        db.add(supplier)
        db.commit()
        return supplier

    return factory


@pytest.fixture
def products(db) -> dict:
    """Small catalog keyed by name"""
    catalog = {
        "onion": Product(name="Onion", category="vegetables", unit="kg", market_price_cents=3_000),
        "oil": Product(name="Groundnut oil", category="oil", unit="l", market_price_cents=12_000),
        "rice": Product(name="Basmati rice", category="grains", unit="kg", market_price_cents=8_000),
    }
    db.add_all(catalog.values())
    db.commit()
    return catalog


@pytest.fixture
def line(products):
    """Build an OrderLine for a catalog product"""

    def build(name: str, quantity: float, price_per_unit_cents: int) -> OrderLine:
        product = products[name]
        return OrderLine(
            product_id=product.id,
            quantity=quantity,
            unit=product.unit,
            price_per_unit_cents=price_per_unit_cents,
        )

    return build


@pytest.fixture
def forming_group(group_service, make_buyer, clock):
    """FORMING group (min 3, max 5) with its creator as only member"""
    creator = make_buyer(name="Ramesh")
    return group_service.create(
        name="Dadar morning market",
        pickup_location="Dadar station east",
        target_pickup_time=clock() + timedelta(days=1),
        creator_id=creator.id,
        min_members=3,
        max_members=5,
    )


@pytest.fixture
def client(db: Session, notifier, clock) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: clock
    return TestClient(app)
