from collections import Counter

from db import get_cursor, get_table_counts
from generators import OrderGenerator, ProductGenerator, seed_reference_data
from models import OrderStatus
from services import OrderStore


def test_seed_fills_empty_tables_once():
    created = seed_reference_data(num_customers=10, num_drivers=4, num_stores=3)
    assert created["customers"] == 10
    assert created["drivers"] == 4
    assert created["stores"] == 3

    assert seed_reference_data(num_customers=10, num_drivers=4, num_stores=3) == {}
    assert get_table_counts()["customers"] == 10


def test_catalog_weight_products_have_consistent_pricing():
    catalog = ProductGenerator(seed=7).generate_catalog()
    weighted = [p for p in catalog if p.weight_based]
    assert weighted
    for product in weighted:
        assert product.unit == "lb"
        assert product.price_per_unit == product.price
        if product.min_weight is not None and product.max_weight is not None:
            assert product.min_weight <= product.max_weight


def test_live_orders_are_pending_and_unclaimed():
    seed_reference_data(num_customers=10, num_drivers=4, num_stores=3)
    gen = OrderGenerator(seed=3)
    orders = gen.save_to_db([gen.generate_one() for _ in range(5)])

    assert len(orders) == 5
    assert all(o.status == OrderStatus.PENDING and o.driver_id is None for o in orders)
    assert len(OrderStore().list_available_orders()) == 5


def test_history_respects_driver_exclusivity():
    seed_reference_data(num_customers=20, num_drivers=8, num_stores=3)
    orders = OrderGenerator(seed=11).generate_history(40)

    assert len(orders) == 40
    with get_cursor() as cursor:
        cursor.execute(
            """SELECT driver_id, COUNT(*) FROM orders
               WHERE driver_id IS NOT NULL AND status IN ('pending', 'shopping', 'delivering')
               GROUP BY driver_id"""
        )
        assert all(count == 1 for _, count in cursor.fetchall())


def test_history_orders_carry_consistent_timestamps():
    seed_reference_data(num_customers=20, num_drivers=8, num_stores=3)
    orders = OrderGenerator(seed=5).generate_history(30)
    statuses = Counter(o.status for o in orders)
    assert set(statuses) <= set(OrderStatus)

    for order in orders:
        if order.status == OrderStatus.DELIVERED:
            assert order.created_at <= order.accepted_at <= order.shopping_started_at
            assert order.delivery_started_at <= order.delivered_at
            assert order.actual_delivery_fee == order.delivery_fee
        if order.status == OrderStatus.CANCELLED:
            assert order.cancelled_at is not None
        if order.status in (OrderStatus.SHOPPING, OrderStatus.DELIVERING):
            assert order.driver_id is not None
