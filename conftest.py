from datetime import datetime

import pytest

import db
from models import Actor, Product, ProductCategory, UserRole
from services import DriverAvailabilityTracker, OrderStore


STORE_ID = "store-1"
STORE_LOCATION = (13.4887, 144.7797)

PRODUCTS = [
    Product(product_id="p-milk", name="Whole Milk", category=ProductCategory.DAIRY,
            unit="gallon", price=4.00),
    Product(product_id="p-eggs", name="Large Eggs", category=ProductCategory.DAIRY,
            unit="dozen", price=6.00),
    Product(product_id="p-bananas", name="Bananas", category=ProductCategory.PRODUCE,
            unit="lb", price=0.89, weight_based=True, price_per_unit=0.89, weight_unit="lb"),
    Product(product_id="p-chicken", name="Chicken Thighs", category=ProductCategory.MEAT,
            unit="lb", price=3.50, weight_based=True, price_per_unit=3.50, weight_unit="lb",
            min_weight=1.0, max_weight=8.0),
    Product(product_id="p-tuna", name="Tuna Steak", category=ProductCategory.SEAFOOD,
            unit="lb", price=16.00, weight_based=True, price_per_unit=16.00, weight_unit="lb",
            min_weight=0.5, max_weight=3.0),
]

DRIVERS = [
    ("drv-1", "Ben Santos", True),
    ("drv-2", "Cara Reyes", True),
    ("drv-3", "Dee Aguon", False),
]

CUSTOMERS = [
    ("cust-1", "Ana Cruz", "123 Marine Corps Dr, Tamuning", 13.4950, 144.7800),
    ("cust-2", "Joe Perez", "45 Chalan Lujuna, Tamuning", 13.5100, 144.8100),
]


@pytest.fixture(autouse=True)
def database(tmp_path, monkeypatch):
    """Fresh SQLite file per test."""
    monkeypatch.setattr(db, "DATABASE_PATH", tmp_path / "dispatch.db")
    db.init_database()
    yield db.DATABASE_PATH


@pytest.fixture
def seeded(database):
    created = datetime(2024, 1, 1, 8, 0).isoformat()
    with db.get_cursor() as cursor:
        cursor.execute(
            """INSERT INTO stores (store_id, name, address, village, latitude, longitude, is_active, created_at)
               VALUES (?, 'Harbor Market', '1 Harbor Rd', 'Tamuning', ?, ?, 1, ?)""",
            (STORE_ID, *STORE_LOCATION, created)
        )
        cursor.executemany(
            """INSERT INTO customers (customer_id, name, email, phone, address, village, latitude, longitude, created_at)
               VALUES (?, ?, ?, '671-555-0100', ?, 'Tamuning', ?, ?, ?)""",
            [(cid, name, f"{cid}@example.com", address, lat, lon, created)
             for cid, name, address, lat, lon in CUSTOMERS]
        )
        cursor.executemany(
            """INSERT INTO drivers (driver_id, name, email, phone, vehicle_type, is_online, created_at)
               VALUES (?, ?, ?, '671-555-0199', 'sedan', ?, ?)""",
            [(did, name, f"{did}@example.com", online, created) for did, name, online in DRIVERS]
        )
        cursor.executemany(
            """INSERT INTO products (product_id, name, category, unit, price, weight_based,
                                     price_per_unit, weight_unit, min_weight, max_weight, in_stock)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)""",
            [(p.product_id, p.name, p.category.value, p.unit, p.price, p.weight_based,
              p.price_per_unit, p.weight_unit, p.min_weight, p.max_weight) for p in PRODUCTS]
        )
    return database


@pytest.fixture
def products():
    return {p.product_id: p for p in PRODUCTS}


@pytest.fixture
def order_store(seeded):
    return OrderStore()


@pytest.fixture
def tracker(order_store):
    return DriverAvailabilityTracker(order_store)


@pytest.fixture
def make_order(order_store):
    """Place a pending order for cust-1 at the test store."""
    def _make(lines=None, tip_amount=0.0, delivery_fee=None, customer_id="cust-1",
              latitude=13.4950, longitude=144.7800, created_at=None, store=None):
        return (store or order_store).create_order(
            customer_id=customer_id,
            lines=lines or [{"product_id": "p-milk", "quantity": 2}, {"product_id": "p-bananas", "selected_weight": 1.5}],
            store_id=STORE_ID,
            delivery_fee=delivery_fee,
            tip_amount=tip_amount,
            delivery_latitude=latitude,
            delivery_longitude=longitude,
            created_at=created_at,
        )
    return _make


def driver(driver_id: str = "drv-1") -> Actor:
    names = {did: name for did, name, _ in DRIVERS}
    return Actor(user_id=driver_id, role=UserRole.DRIVER, name=names.get(driver_id))


ADMIN = Actor(user_id="admin-1", role=UserRole.ADMIN, name="Ops")
CUSTOMER = Actor(user_id="cust-1", role=UserRole.CUSTOMER, name="Ana Cruz")


@pytest.fixture
def actors():
    return {"driver": driver, "admin": ADMIN, "customer": CUSTOMER}
