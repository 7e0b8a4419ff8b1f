import threading

import pytest

from conftest import ADMIN, CUSTOMER, driver
from models import EventType, OrderStatus
from services import OrderStore
from services.errors import (
    ClaimConflictError,
    DriverBusyError,
    DriverNotFoundError,
    DriverOfflineError,
    InvalidTransitionError,
    OrderNotFoundError,
)


def test_claim_assigns_driver_and_records_acceptance(order_store, make_order):
    order = make_order()
    claimed = order_store.claim_order(order.order_id, "drv-1")

    assert claimed.status == OrderStatus.PENDING
    assert claimed.driver_id == "drv-1"
    assert claimed.accepted_at is not None
    event = order_store.get_events(order.order_id)[-1]
    assert event.event_type == EventType.ACCEPTED
    assert event.actor.user_id == "drv-1"
    assert event.description == "Ben Santos accepted the order"


def test_claimed_order_leaves_the_pool(order_store, make_order):
    first = make_order()
    second = make_order()
    order_store.claim_order(first.order_id, "drv-1")
    assert [o.order_id for o in order_store.list_available_orders()] == [second.order_id]


def test_second_claim_on_same_order_conflicts(order_store, make_order):
    order = make_order()
    order_store.claim_order(order.order_id, "drv-1")
    with pytest.raises(ClaimConflictError) as exc:
        order_store.claim_order(order.order_id, "drv-2")
    assert not isinstance(exc.value, DriverBusyError)
    assert order_store.get_order(order.order_id).driver_id == "drv-1"


def test_busy_driver_cannot_claim_another(order_store, make_order):
    first = make_order()
    second = make_order()
    order_store.claim_order(first.order_id, "drv-1")
    with pytest.raises(DriverBusyError):
        order_store.claim_order(second.order_id, "drv-1")
    assert order_store.get_order(second.order_id).driver_id is None


def test_driver_busy_while_shopping(order_store, make_order):
    first = make_order()
    second = make_order()
    order_store.claim_order(first.order_id, "drv-1")
    order_store.start_shopping(first.order_id, driver())
    with pytest.raises(DriverBusyError):
        order_store.claim_order(second.order_id, "drv-1")


def test_driver_free_again_after_cancellation(order_store, make_order):
    first = make_order()
    second = make_order()
    order_store.claim_order(first.order_id, "drv-1")
    order_store.cancel(first.order_id, CUSTOMER)
    assert order_store.claim_order(second.order_id, "drv-1").driver_id == "drv-1"


def test_offline_driver_cannot_claim(order_store, make_order):
    order = make_order()
    with pytest.raises(DriverOfflineError) as exc:
        order_store.claim_order(order.order_id, "drv-3")
    assert str(exc.value) == "You must be online to accept orders."
    assert order_store.get_events(order.order_id)[-1].event_type == EventType.CREATED


def test_unknown_order_and_driver(order_store, make_order):
    order = make_order()
    with pytest.raises(OrderNotFoundError):
        order_store.claim_order("missing", "drv-1")
    with pytest.raises(DriverNotFoundError):
        order_store.claim_order(order.order_id, "nobody")


def test_cancelled_order_cannot_be_claimed(order_store, make_order):
    order = make_order()
    order_store.cancel(order.order_id, CUSTOMER)
    with pytest.raises(ClaimConflictError):
        order_store.claim_order(order.order_id, "drv-1")


def test_admin_assignment_ignores_online_flag(order_store, make_order):
    order = make_order()
    assigned = order_store.assign_driver(order.order_id, "drv-3", ADMIN)
    assert assigned.driver_id == "drv-3"
    event = order_store.get_events(order.order_id)[-1]
    assert event.event_type == EventType.ASSIGNED
    assert event.description == "Order assigned to Dee Aguon"


def test_assignment_requires_admin(order_store, make_order):
    order = make_order()
    with pytest.raises(InvalidTransitionError):
        order_store.assign_driver(order.order_id, "drv-1", CUSTOMER)


def test_assignment_respects_one_active_order(order_store, make_order):
    first = make_order()
    second = make_order()
    order_store.assign_driver(first.order_id, "drv-3", ADMIN)
    with pytest.raises(DriverBusyError):
        order_store.assign_driver(second.order_id, "drv-3", ADMIN)


def test_active_order_survives_going_offline(order_store, tracker, make_order):
    order = make_order()
    order_store.claim_order(order.order_id, "drv-1")
    tracker.set_online("drv-1", False)
    assert order_store.get_active_order("drv-1").order_id == order.order_id
    assert tracker.get_driver("drv-1").active_order_id == order.order_id


def test_concurrent_claims_have_exactly_one_winner(seeded, make_order):
    order = make_order()
    contenders = ["drv-1", "drv-2"]
    barrier = threading.Barrier(len(contenders))
    winners, losers = [], []

    def attempt(driver_id):
        store = OrderStore()
        barrier.wait()
        try:
            store.claim_order(order.order_id, driver_id)
            winners.append(driver_id)
        except ClaimConflictError:
            losers.append(driver_id)

    threads = [threading.Thread(target=attempt, args=(d,)) for d in contenders]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(winners) == 1
    assert len(losers) == 1
    final = OrderStore().get_order(order.order_id)
    assert final.driver_id == winners[0]
    accepted = [e for e in OrderStore().get_events(order.order_id) if e.event_type == EventType.ACCEPTED]
    assert len(accepted) == 1


def test_concurrent_claims_by_one_driver_take_one_order(seeded, make_order):
    orders = [make_order(), make_order()]
    barrier = threading.Barrier(len(orders))
    outcomes = []

    def attempt(order_id):
        store = OrderStore()
        barrier.wait()
        try:
            store.claim_order(order_id, "drv-1")
            outcomes.append("won")
        except DriverBusyError:
            outcomes.append("busy")

    threads = [threading.Thread(target=attempt, args=(o.order_id,)) for o in orders]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["busy", "won"]
    assert OrderStore().get_active_order("drv-1") is not None
