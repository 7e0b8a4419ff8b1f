import asyncio
from datetime import datetime

from conftest import CUSTOMER
from models import FeedSort, ItemStatus, OrderStatus
from services import ClaimOutcome, DriverSession, FeedPoller, LocalOrderService
from services.dispatch import BUSY_MESSAGE, CLAIM_FAILED_MESSAGE, CONFLICT_MESSAGE, OFFLINE_MESSAGE
from services.errors import TransportError
from services.views import OrderDetailLoader, active_order_summary, elapsed_minutes, order_progress


def _session(order_store, driver_id="drv-1"):
    session = DriverSession(LocalOrderService(order_store), driver_id)
    asyncio.run(session.load())
    return session


def test_load_populates_feed(order_store, make_order):
    order = make_order()
    session = _session(order_store)
    assert session.driver_name == "Ben Santos"
    assert session.is_online
    assert [c.order_id for c in session.feed] == [order.order_id]


def test_claim_success_sets_active_order_and_empties_feed(order_store, make_order):
    order = make_order()
    make_order()
    session = _session(order_store)

    result = asyncio.run(session.claim(order.order_id))

    assert result.outcome == ClaimOutcome.CLAIMED
    assert session.active_order.order_id == order.order_id
    assert session.feed == []


def test_claim_conflict_refreshes_feed_and_keeps_active_empty(order_store, make_order):
    order = make_order()
    other = make_order()
    session = _session(order_store)
    order_store.claim_order(order.order_id, "drv-2")

    result = asyncio.run(session.claim(order.order_id))

    assert result.outcome == ClaimOutcome.CONFLICT
    assert result.message == CONFLICT_MESSAGE
    assert session.active_order is None
    assert [c.order_id for c in session.feed] == [other.order_id]


def test_claim_while_offline_is_rejected_without_request(order_store, make_order):
    order = make_order()
    session = _session(order_store, "drv-3")
    result = asyncio.run(session.claim(order.order_id))
    assert result.outcome == ClaimOutcome.REJECTED
    assert result.message == OFFLINE_MESSAGE
    assert order_store.get_order(order.order_id).driver_id is None


def test_server_side_busy_refreshes_active_order(order_store, make_order):
    first = make_order()
    second = make_order()
    session = _session(order_store)
    # Claimed from another device after this session loaded
    order_store.claim_order(first.order_id, "drv-1")

    result = asyncio.run(session.claim(second.order_id))

    assert result.outcome == ClaimOutcome.REJECTED
    assert result.message == BUSY_MESSAGE
    assert session.active_order.order_id == first.order_id
    assert session.feed == []


def test_server_side_offline_updates_session(order_store, tracker, make_order):
    order = make_order()
    session = _session(order_store)
    tracker.set_online("drv-1", False)

    result = asyncio.run(session.claim(order.order_id))

    assert result.outcome == ClaimOutcome.REJECTED
    assert result.message == OFFLINE_MESSAGE
    assert session.is_online is False
    assert session.feed == []


def test_claim_in_flight_blocks_second_tap(order_store, make_order):
    order = make_order()
    session = _session(order_store)
    session.claim_in_flight = True
    result = asyncio.run(session.claim(order.order_id))
    assert result.outcome == ClaimOutcome.IN_FLIGHT
    assert order_store.get_order(order.order_id).driver_id is None


class FlakyService(LocalOrderService):
    fail_claims = False
    fail_feed = False

    async def claim_order(self, order_id, driver_id):
        if self.fail_claims:
            raise TransportError("Network error: connection reset")
        return await super().claim_order(order_id, driver_id)

    async def list_available_orders(self, driver_id):
        if self.fail_feed:
            raise TransportError("Network error: timed out")
        return await super().list_available_orders(driver_id)


def test_transport_failure_is_not_retried(order_store, make_order):
    order = make_order()
    service = FlakyService(order_store)
    session = DriverSession(service, "drv-1")
    asyncio.run(session.load())
    service.fail_claims = True

    result = asyncio.run(session.claim(order.order_id))

    assert result.outcome == ClaimOutcome.FAILED
    assert result.message == CLAIM_FAILED_MESSAGE
    assert session.claim_in_flight is False
    assert order_store.get_order(order.order_id).driver_id is None


def test_feed_failure_keeps_previous_feed(order_store, make_order):
    make_order()
    service = FlakyService(order_store)
    session = DriverSession(service, "drv-1")
    asyncio.run(session.load())
    service.fail_feed = True

    feed = asyncio.run(session.refresh_feed())

    assert len(feed) == 1
    assert "timed out" in session.last_error


class SlowFeedService(LocalOrderService):
    """First feed request resolves after the second one."""

    def __init__(self, store):
        super().__init__(store)
        self.calls = 0
        self.release_first = asyncio.Event()

    async def list_available_orders(self, driver_id):
        self.calls += 1
        call = self.calls
        orders = await super().list_available_orders(driver_id)
        if call == 1:
            await self.release_first.wait()
        return orders


def test_stale_feed_response_is_discarded(order_store, make_order):
    make_order()

    async def scenario():
        service = SlowFeedService(order_store)
        session = DriverSession(service, "drv-1")
        session.is_online = True
        first = asyncio.create_task(session.refresh_feed())
        await asyncio.sleep(0)
        make_order()
        await session.refresh_feed()
        service.release_first.set()
        await first
        return session

    session = asyncio.run(scenario())
    assert len(session.feed) == 2


def test_projection_changes_without_refetch(order_store, make_order):
    cheap = make_order(tip_amount=0.0)
    rich = make_order(tip_amount=12.0)
    session = _session(order_store)
    feed = session.set_projection(sort=FeedSort.PAYOUT)
    assert [c.order_id for c in feed] == [rich.order_id, cheap.order_id]


def test_driver_works_order_to_delivery(order_store, make_order):
    order = make_order()
    session = _session(order_store)

    async def work():
        await session.claim(order.order_id)
        await session.start_shopping()
        for item in session.active_order.items:
            await session.update_item(item.order_item_id, ItemStatus.FOUND)
        summary = session.active_summary()
        await session.complete_shopping()
        await session.start_delivery()
        delivered = await session.mark_delivered()
        return summary, delivered

    summary, delivered = asyncio.run(work())
    assert summary.items_processed == summary.items_total == 2
    assert delivered.status == OrderStatus.DELIVERED
    assert session.active_order is None
    assert session.feed == []


def test_toggle_online_hides_feed(order_store, make_order):
    make_order()
    session = _session(order_store)
    assert asyncio.run(session.toggle_online()) is False
    assert session.feed == []
    assert asyncio.run(session.toggle_online()) is True
    assert len(session.feed) == 1


def test_feed_poller_refreshes_until_stopped(order_store, make_order):
    session = _session(order_store)

    async def scenario():
        poller = FeedPoller(session, interval_seconds=0.01)
        poller.start()
        make_order()
        await asyncio.sleep(0.05)
        await poller.stop()
        return poller

    poller = asyncio.run(scenario())
    assert not poller.running
    assert len(session.feed) == 1


def test_order_progress_for_cancelled(order_store, make_order):
    order = order_store.cancel(make_order().order_id, CUSTOMER)
    progress = order_progress(order)
    assert progress["step"] == 0
    assert progress["is_cancelled"]
    assert not any(step["completed"] for step in progress["steps"])


def test_elapsed_minutes_never_negative():
    assert elapsed_minutes(datetime(2024, 1, 1, 10, 0), datetime(2024, 1, 1, 9, 0)) == 0


def test_active_summary_counts_processed_items(order_store, make_order):
    order = make_order()
    summary = active_order_summary(order, order.created_at)
    assert summary.items_processed == 0
    assert summary.items_total == 2
    assert summary.progress_step == 1


def test_detail_loader_discards_superseded_order(order_store, make_order):
    first = make_order()
    second = make_order()

    class SlowService(LocalOrderService):
        gate = None

        async def get_order(self, order_id):
            order = await super().get_order(order_id)
            if order_id == first.order_id:
                await self.gate.wait()
            return order

    async def scenario():
        service = SlowService(order_store)
        service.gate = asyncio.Event()
        loader = OrderDetailLoader(service)
        stale = asyncio.create_task(loader.open(first.order_id))
        await asyncio.sleep(0)
        assert await loader.open(second.order_id)
        service.gate.set()
        assert await stale is False
        return loader

    loader = asyncio.run(scenario())
    assert loader.order.order_id == second.order_id
    assert loader.timeline.entries


def test_detail_loader_degrades_when_timeline_fails(order_store, make_order):
    order = make_order()

    class NoTimeline(LocalOrderService):
        async def get_timeline(self, order_id):
            raise TransportError("Network error: 503")

    loader = OrderDetailLoader(NoTimeline(order_store))
    assert asyncio.run(loader.open(order.order_id))
    assert loader.order.order_id == order.order_id
    assert loader.timeline.entries == []
    assert loader.timeline.error is not None


def test_summary_counts_items_by_status(order_store, make_order):
    order = make_order()
    picked = order.items[0].model_copy(update={"status": ItemStatus.FOUND, "found_quantity": None})
    order = order.model_copy(update={"items": [picked, *order.items[1:]]})
    assert active_order_summary(order, order.created_at).items_processed == 1


def test_claim_on_vanished_order_is_a_conflict(order_store, make_order):
    other = make_order()
    session = _session(order_store)

    result = asyncio.run(session.claim("o-missing"))

    assert result.outcome == ClaimOutcome.CONFLICT
    assert result.message == CONFLICT_MESSAGE
    assert session.claim_in_flight is False
    assert session.active_order is None
    assert [c.order_id for c in session.feed] == [other.order_id]


class SlowItemService(LocalOrderService):
    async def update_item_status(self, order_item_id, status, driver_id, found_quantity=None):
        item = await super().update_item_status(order_item_id, status, driver_id, found_quantity)
        await asyncio.sleep(0.01)
        return item


def test_overlapping_item_updates_keep_both_picks(order_store, make_order):
    order = make_order()

    async def work():
        session = DriverSession(SlowItemService(order_store), "drv-1")
        await session.load()
        await session.claim(order.order_id)
        await session.start_shopping()
        await asyncio.gather(*(
            session.update_item(item.order_item_id, ItemStatus.FOUND)
            for item in session.active_order.items
        ))
        return session

    session = asyncio.run(work())
    assert [i.status for i in session.active_order.items] == [ItemStatus.FOUND, ItemStatus.FOUND]
    stored = order_store.get_order(order.order_id)
    assert [i.status for i in stored.items] == [ItemStatus.FOUND, ItemStatus.FOUND]
