from datetime import datetime, timedelta

from conftest import driver
from models import Actor, EventType, ItemStatus, Order, OrderStatus, TimelineEvent, UserRole
from services.timeline import (
    DEFAULT_COLOR,
    DEFAULT_ICON,
    EMPTY_TIMELINE_MESSAGE,
    build_timeline_view,
    derive_metrics,
    format_time,
    minutes_between,
    render_entry,
    render_timeline,
    time_ago,
)

T0 = datetime(2024, 5, 1, 9, 0)


def _event(event_type, minutes, actor=None, event_id=None):
    return TimelineEvent(
        event_id=event_id or f"{event_type.value}-{minutes}",
        order_id="o-1",
        event_type=event_type,
        actor=actor,
        description=event_type.value,
        occurred_at=T0 + timedelta(minutes=minutes),
    )


def _order(**stamps):
    return Order(
        order_id="o-1", customer_id="cust-1", status=OrderStatus.DELIVERED,
        subtotal=10.0, delivery_fee=5.0, total=15.0, created_at=T0, **stamps,
    )


def test_minutes_between():
    assert minutes_between(T0, T0 + timedelta(minutes=90)) == 90
    assert minutes_between(None, T0) is None


def test_metrics_from_events_only():
    events = [
        _event(EventType.CREATED, 0),
        _event(EventType.ACCEPTED, 5),
        _event(EventType.SHOPPING_STARTED, 10),
        _event(EventType.SHOPPING_COMPLETED, 35),
        _event(EventType.DELIVERY_STARTED, 40),
        _event(EventType.DELIVERED, 65),
    ]
    metrics = derive_metrics(None, events)
    assert metrics.total_processing_time == 60
    assert metrics.shopping_duration == 25
    assert metrics.delivery_duration == 25


def test_shopping_ends_at_delivery_start_without_checkout():
    events = [_event(EventType.SHOPPING_STARTED, 10), _event(EventType.DELIVERY_STARTED, 40)]
    assert derive_metrics(None, events).shopping_duration == 30


def test_admin_assignment_counts_as_acceptance():
    events = [_event(EventType.ASSIGNED, 3), _event(EventType.DELIVERED, 63)]
    assert derive_metrics(None, events).total_processing_time == 60


def test_order_timestamps_take_precedence_over_events():
    order = _order(accepted_at=T0 + timedelta(minutes=2), delivered_at=T0 + timedelta(minutes=32))
    events = [_event(EventType.ACCEPTED, 20), _event(EventType.DELIVERED, 40)]
    assert derive_metrics(order, events).total_processing_time == 30


def test_missing_phases_are_none():
    metrics = derive_metrics(None, [_event(EventType.ACCEPTED, 5)])
    assert metrics.total_processing_time is None
    assert metrics.shopping_duration is None
    assert metrics.delivery_duration is None


def test_time_ago():
    assert time_ago(T0, T0 + timedelta(seconds=30)) == "just now"
    assert time_ago(T0, T0 + timedelta(minutes=1)) == "1 minute ago"
    assert time_ago(T0, T0 + timedelta(minutes=5)) == "5 minutes ago"
    assert time_ago(T0, T0 + timedelta(hours=2)) == "2 hours ago"
    assert time_ago(T0, T0 + timedelta(days=1)) == "1 day ago"


def test_format_time():
    assert format_time(datetime(2024, 5, 1, 14, 5)) == "May 01, 2024 02:05 PM"


def test_entry_without_actor_shows_system():
    entry = render_entry(_event(EventType.CANCELLED, 5), T0 + timedelta(minutes=10))
    assert entry.user_name == "System"
    assert entry.time_ago == "5 minutes ago"


def test_entry_uses_actor_name_and_icon():
    actor = Actor(user_id="drv-1", role=UserRole.DRIVER, name="Ben Santos")
    entry = render_entry(_event(EventType.DELIVERED, 5, actor), T0)
    assert entry.user_name == "Ben Santos"
    assert entry.icon != DEFAULT_ICON
    assert entry.color != DEFAULT_COLOR


def test_render_timeline_sorts_by_time():
    events = [_event(EventType.DELIVERED, 30), _event(EventType.CREATED, 0), _event(EventType.ACCEPTED, 10)]
    entries = render_timeline(events, T0)
    assert [e.event_type for e in entries] == [EventType.CREATED, EventType.ACCEPTED, EventType.DELIVERED]


def test_empty_timeline_view_has_message():
    view = build_timeline_view([], derive_metrics(None, []))
    assert view.entries == []
    assert view.error == EMPTY_TIMELINE_MESSAGE


def test_metrics_for_stored_order(order_store, make_order):
    order = make_order()
    order_store.claim_order(order.order_id, "drv-1")
    order_store.start_shopping(order.order_id, driver())
    for item in order.items:
        order_store.update_item_status(item.order_item_id, ItemStatus.FOUND, driver())
    order_store.start_delivery(order.order_id, driver())
    delivered = order_store.mark_delivered(order.order_id, driver())

    metrics = derive_metrics(delivered, order_store.get_events(order.order_id))
    assert metrics.total_processing_time >= 0
    assert metrics.shopping_duration >= 0
    assert metrics.delivered_at == delivered.delivered_at
