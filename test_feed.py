from datetime import datetime, timedelta

import pytest

from models import FeedFilter, FeedSort, Order, OrderStatus, Urgency
from services.feed import build_feed, to_available_order, urgency_for

NOW = datetime(2024, 5, 1, 12, 0)


def _order(order_id, minutes_old=10, fee=5.0, tip=0.0, distance=2.0, estimate=30,
           status=OrderStatus.PENDING, driver_id=None):
    return Order(
        order_id=order_id,
        customer_id="cust-1",
        driver_id=driver_id,
        status=status,
        subtotal=20.0,
        delivery_fee=fee,
        tip_amount=tip,
        total=20.0 + fee + tip,
        created_at=NOW - timedelta(minutes=minutes_old),
        delivery_distance=distance,
        estimated_time=estimate,
    )


@pytest.mark.parametrize("minutes_old, urgency", [
    (0, Urgency.ASAP),
    (59, Urgency.ASAP),
    (60, Urgency.TODAY),
    (239, Urgency.TODAY),
    (240, Urgency.TODAY_EVENING),
])
def test_urgency_buckets(minutes_old, urgency):
    assert urgency_for(NOW - timedelta(minutes=minutes_old), NOW) == urgency


def test_card_payout_is_fee_plus_tip():
    card = to_available_order(_order("a", fee=5.99, tip=4.01), NOW)
    assert card.estimated_payout == 10.00
    assert card.customer_name == "Customer"


def test_missing_estimate_uses_default():
    card = to_available_order(_order("a", estimate=None, distance=None), NOW)
    assert card.estimated_time == 30
    assert card.delivery_distance == 0.0


def test_default_feed_is_oldest_first():
    orders = [_order("new", minutes_old=5), _order("old", minutes_old=50), _order("mid", minutes_old=20)]
    assert [c.order_id for c in build_feed(orders, now=NOW)] == ["old", "mid", "new"]


def test_newest_sort():
    orders = [_order("new", minutes_old=5), _order("old", minutes_old=50)]
    cards = build_feed(orders, sort=FeedSort.NEWEST, now=NOW)
    assert [c.order_id for c in cards] == ["new", "old"]


def test_taken_and_terminal_orders_never_appear():
    orders = [
        _order("open"),
        _order("claimed", driver_id="drv-1"),
        _order("shopping", status=OrderStatus.SHOPPING, driver_id="drv-2"),
        _order("cancelled", status=OrderStatus.CANCELLED),
    ]
    assert [c.order_id for c in build_feed(orders, now=NOW)] == ["open"]


def test_high_pay_filter_threshold_is_inclusive():
    orders = [_order("exact", fee=10.0, tip=5.0), _order("low", fee=5.0, tip=2.0)]
    cards = build_feed(orders, FeedFilter.HIGH_PAY, now=NOW)
    assert [c.order_id for c in cards] == ["exact"]


def test_nearby_filter():
    orders = [_order("near", distance=3.0), _order("far", distance=3.1)]
    assert [c.order_id for c in build_feed(orders, FeedFilter.NEARBY, now=NOW)] == ["near"]


def test_urgent_filter():
    orders = [_order("fresh", minutes_old=10), _order("stale", minutes_old=90)]
    assert [c.order_id for c in build_feed(orders, FeedFilter.URGENT, now=NOW)] == ["fresh"]


def test_payout_sort_breaks_ties_oldest_first():
    orders = [
        _order("young-rich", minutes_old=5, tip=10.0),
        _order("old-rich", minutes_old=30, tip=10.0),
        _order("poor", minutes_old=60, tip=0.0),
    ]
    cards = build_feed(orders, sort=FeedSort.PAYOUT, now=NOW)
    assert [c.order_id for c in cards] == ["old-rich", "young-rich", "poor"]


def test_distance_and_time_sorts():
    orders = [
        _order("a", distance=4.0, estimate=20),
        _order("b", distance=1.0, estimate=45),
        _order("c", distance=2.5, estimate=30),
    ]
    assert [c.order_id for c in build_feed(orders, sort=FeedSort.DISTANCE, now=NOW)] == ["b", "c", "a"]
    assert [c.order_id for c in build_feed(orders, sort=FeedSort.TIME, now=NOW)] == ["a", "c", "b"]


def test_filter_then_sort():
    orders = [
        _order("far-rich", distance=8.0, tip=20.0),
        _order("near-mid", distance=1.0, tip=5.0),
        _order("near-rich", distance=2.0, tip=12.0),
    ]
    cards = build_feed(orders, FeedFilter.NEARBY, FeedSort.PAYOUT, now=NOW)
    assert [c.order_id for c in cards] == ["near-rich", "near-mid"]


def test_offline_driver_sees_empty_feed(tracker, make_order):
    make_order()
    assert tracker.visible_orders("drv-3") == []
    tracker.set_online("drv-3", True)
    assert len(tracker.visible_orders("drv-3")) == 1


def test_busy_driver_sees_empty_feed(order_store, tracker, make_order):
    first = make_order()
    make_order()
    order_store.claim_order(first.order_id, "drv-1")
    assert tracker.visible_orders("drv-1") == []
    assert len(tracker.visible_orders("drv-2")) == 1


def test_toggle_online(tracker):
    assert tracker.toggle_online("drv-1").is_online is False
    assert tracker.toggle_online("drv-1").is_online is True
