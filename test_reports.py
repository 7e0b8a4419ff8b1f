from datetime import datetime

from conftest import driver
from generators import SimClock
from models import ItemStatus
from services import OrderStore
from services.reports import export_tables, phase_durations, phase_summary


def _deliver(make_order, driver_id="drv-1"):
    """Walk one order through the lifecycle with known phase gaps."""
    clock = SimClock(datetime(2024, 5, 1, 9, 0))
    store = OrderStore(clock=clock)
    order = make_order(store=store, created_at=clock())
    actor = driver(driver_id)

    clock.advance(5)
    store.claim_order(order.order_id, driver_id)
    clock.advance(10)
    store.start_shopping(order.order_id, actor)
    for item in order.items:
        store.update_item_status(item.order_item_id, ItemStatus.FOUND, actor)
    clock.advance(20)
    store.complete_shopping(order.order_id, actor)
    clock.advance(5)
    store.start_delivery(order.order_id, actor)
    clock.advance(15)
    return store.mark_delivered(order.order_id, actor)


def test_empty_report(seeded):
    assert phase_durations().empty
    assert phase_summary() == []


def test_phase_durations_for_delivered_order(make_order):
    _deliver(make_order)
    make_order()  # pending orders are not reported

    df = phase_durations()
    assert len(df) == 1
    row = df.iloc[0]
    assert row["wait_minutes"] == 5
    assert row["shopping_minutes"] == 20
    assert row["delivery_minutes"] == 15
    assert row["total_minutes"] == 50
    assert row["store_name"] == "Harbor Market"


def test_summary_grouped_by_driver(make_order):
    _deliver(make_order, "drv-1")
    _deliver(make_order, "drv-2")

    overall = phase_summary()
    assert overall[0]["orders"] == 2
    assert overall[0]["total_minutes"] == 50.0

    by_driver = phase_summary("driver_id")
    assert sorted(row["driver_id"] for row in by_driver) == ["drv-1", "drv-2"]
    assert all(row["orders"] == 1 for row in by_driver)


def test_export_tables(make_order, tmp_path):
    _deliver(make_order)
    written = export_tables(tmp_path / "exports")

    assert written["orders"] == 1
    assert written["drivers"] == 3
    assert written["phase_durations"] == 1
    assert (tmp_path / "exports" / "timeline_events.csv").exists()
