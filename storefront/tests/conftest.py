"""Shared fixtures: a throwaway SQLite database, catalog data and auth headers."""
import os
from datetime import datetime, timedelta
from decimal import Decimal

# Must be set before storefront.core.database creates its engine
TEST_DATABASE_URL = "sqlite:///./test_storefront.db"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront.core.database import Base, get_db
from storefront.core.security import Principal, create_access_token
from storefront.models.database import (
    DeliveryMethod,
    DeliveryOption,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    ProductionSchedule,
    ScheduleDelivery,
    ScheduleProduct,
    ScheduleStatus,
)
from storefront.services.slot_service import start_of_next_day


@pytest.fixture
def test_engine():
    engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def test_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(session_factory):
    from main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def catalog(test_db):
    """Beef and pork meatballs, as on the menu"""
    products = [
        Product(
            id="beef",
            name={"en": "Beef Meatballs", "zh": "牛肉丸"},
            description={"en": "Hand rolled"},
            price=Decimal("10.00"),
        ),
        Product(
            id="pork",
            name={"en": "Pork Meatballs", "zh": "猪肉丸"},
            price=Decimal("8.50"),
        ),
    ]
    test_db.add_all(products)
    test_db.commit()
    return {p.id: p for p in products}


@pytest.fixture
def pickup_option(test_db):
    option = DeliveryOption(
        label="Sage Hill pickup",
        address="1 Sage Hill Dr",
        delivery_method=DeliveryMethod.PICKUP,
    )
    test_db.add(option)
    test_db.commit()
    test_db.refresh(option)
    return option


@pytest.fixture
def tomorrow_noon():
    return start_of_next_day(datetime.utcnow()) + timedelta(hours=12)


@pytest.fixture
def make_schedule(test_db, catalog, pickup_option, tomorrow_noon):
    """Build a schedule with one slot; returns (schedule, slot)"""

    def _make(products=None, status=ScheduleStatus.PUBLISHED, delivery_time=None, cutoff_time=None):
        schedule = ProductionSchedule(status=status, notes="test batch")
        for product_id, quantity in (products if products is not None else {"beef": 10}).items():
            schedule.products.append(ScheduleProduct(product_id=product_id, quantity=quantity))
        slot = ScheduleDelivery(
            delivery_option_id=pickup_option.id,
            delivery_time=delivery_time or tomorrow_noon,
            cutoff_time=cutoff_time,
        )
        schedule.deliveries.append(slot)
        test_db.add(schedule)
        test_db.commit()
        test_db.refresh(schedule)
        test_db.refresh(slot)
        return schedule, slot

    return _make


@pytest.fixture
def customer():
    return Principal(id="user-1", email="customer@example.com", role="user")


@pytest.fixture
def user_headers():
    token = create_access_token("user-1", email="customer@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_user_headers():
    token = create_access_token("user-2", email="other@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    token = create_access_token("admin-1", email="owner@example.com", role="admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_order(test_db, catalog):
    """Insert an order directly, bypassing admission"""
    counter = {"n": 0}

    def _make(slot, items, status=OrderStatus.PENDING, user_id="user-1", reference_number=None):
        counter["n"] += 1
        lines = [
            OrderItem(
                product_id=product_id,
                name=catalog[product_id].display_name(),
                quantity=quantity,
                price=catalog[product_id].price,
            )
            for product_id, quantity in items.items()
        ]
        order = Order(
            reference_number=reference_number or f"CRAFT_TEST{counter['n']:02d}",
            customer_name="Test Customer",
            phone_number="555-0100",
            schedule_delivery_id=slot.id if slot is not None else None,
            total_amount=sum(line.price * line.quantity for line in lines),
            status=status,
            user_id=user_id,
            items=lines,
        )
        test_db.add(order)
        test_db.commit()
        test_db.refresh(order)
        return order

    return _make
