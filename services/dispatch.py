"""
Driver session - the driver's view of dispatch.

Holds the driver's online flag, feed and active order, and drives the claim
flow. Every remote call takes a ticket on its channel (feed, active order);
a response whose ticket has been superseded is discarded instead of
overwriting newer state. Claims are never retried: a conflict refreshes the
feed, a transport failure is reported back for a manual retry.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

import config
from models import (
    Actor,
    ActiveOrderSummary,
    AvailableOrder,
    FeedFilter,
    FeedSort,
    ItemStatus,
    Order,
    OrderItem,
    OrderStatus,
    UserRole,
)
from services.errors import (
    ClaimConflictError,
    DriverBusyError,
    DriverOfflineError,
    OrderNotFoundError,
    TransportError,
)
from services.feed import build_feed
from services.order_service import OrderService
from services.views import active_order_summary

logger = logging.getLogger(__name__)

OFFLINE_MESSAGE = "You must be online to accept orders."
BUSY_MESSAGE = "Finish your current order before accepting another."
CONFLICT_MESSAGE = "This order was just taken by another driver."
CLAIM_FAILED_MESSAGE = "Failed to accept order. Please try again."


class ClaimOutcome(str, Enum):
    CLAIMED = "claimed"
    CONFLICT = "conflict"
    REJECTED = "rejected"
    FAILED = "failed"
    IN_FLIGHT = "in_flight"


@dataclass
class ClaimResult:
    outcome: ClaimOutcome
    order: Optional[Order] = None
    message: Optional[str] = None


class DriverSession:
    def __init__(
        self,
        service: OrderService,
        driver_id: str,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.service = service
        self.driver_id = driver_id
        self.clock = clock

        self.driver_name: Optional[str] = None
        self.is_online = False
        self.active_order: Optional[Order] = None
        self.feed: list[AvailableOrder] = []
        self.feed_filter = FeedFilter.ALL
        self.feed_sort = FeedSort(config.DEFAULT_FEED_SORT)
        self.claim_in_flight = False
        self.last_error: Optional[str] = None

        self._pool: list[Order] = []
        self._tickets = {"feed": 0, "active": 0}

    # =========================================================================
    # Tickets
    # =========================================================================

    def _issue(self, channel: str) -> int:
        self._tickets[channel] += 1
        return self._tickets[channel]

    def _is_current(self, channel: str, ticket: int) -> bool:
        return self._tickets[channel] == ticket

    @property
    def actor(self) -> Actor:
        return Actor(user_id=self.driver_id, role=UserRole.DRIVER, name=self.driver_name)

    @property
    def can_see_feed(self) -> bool:
        return self.is_online and self.active_order is None

    # =========================================================================
    # Loading
    # =========================================================================

    async def load(self):
        driver = await self.service.get_driver(self.driver_id)
        self.driver_name = driver.name
        self.is_online = driver.is_online
        await self.refresh_active_order()
        await self.refresh_feed()

    async def refresh_active_order(self) -> Optional[Order]:
        ticket = self._issue("active")
        try:
            order = await self.service.get_active_order(self.driver_id)
        except TransportError as e:
            if self._is_current("active", ticket):
                self.last_error = str(e)
            return self.active_order
        if not self._is_current("active", ticket):
            logger.debug(f"Discarding stale active order response for driver {self.driver_id}")
            return self.active_order
        self.active_order = order
        return order

    async def refresh_feed(self) -> list[AvailableOrder]:
        ticket = self._issue("feed")
        if not self.can_see_feed:
            self._pool = []
            self.feed = []
            return self.feed
        try:
            orders = await self.service.list_available_orders(self.driver_id)
        except TransportError as e:
            if self._is_current("feed", ticket):
                self.last_error = str(e)
            return self.feed
        if not self._is_current("feed", ticket) or not self.can_see_feed:
            logger.debug(f"Discarding stale feed response for driver {self.driver_id}")
            return self.feed
        self.last_error = None
        self._pool = orders
        self._project()
        return self.feed

    def set_projection(self, feed_filter: FeedFilter | None = None, sort: FeedSort | None = None) -> list[AvailableOrder]:
        """Change filter/sort without refetching."""
        if feed_filter is not None:
            self.feed_filter = FeedFilter(feed_filter)
        if sort is not None:
            self.feed_sort = FeedSort(sort)
        self._project()
        return self.feed

    def _project(self):
        self.feed = build_feed(self._pool, self.feed_filter, self.feed_sort, self.clock())

    # =========================================================================
    # Availability
    # =========================================================================

    async def set_online(self, online: bool) -> bool:
        driver = await self.service.set_online(self.driver_id, online)
        self.is_online = driver.is_online
        await self.refresh_feed()
        return self.is_online

    async def toggle_online(self) -> bool:
        return await self.set_online(not self.is_online)

    # =========================================================================
    # Claim
    # =========================================================================

    async def claim(self, order_id: str) -> ClaimResult:
        if self.claim_in_flight:
            return ClaimResult(ClaimOutcome.IN_FLIGHT)
        if not self.is_online:
            return ClaimResult(ClaimOutcome.REJECTED, message=OFFLINE_MESSAGE)
        if self.active_order is not None:
            return ClaimResult(ClaimOutcome.REJECTED, message=BUSY_MESSAGE)

        self.claim_in_flight = True
        try:
            try:
                order = await self.service.claim_order(order_id, self.driver_id)
            except DriverBusyError:
                await self.refresh_active_order()
                await self.refresh_feed()
                return ClaimResult(ClaimOutcome.REJECTED, message=BUSY_MESSAGE)
            except OrderNotFoundError:
                logger.info(f"Order {order_id} vanished before driver {self.driver_id} could claim it")
                await self.refresh_feed()
                return ClaimResult(ClaimOutcome.CONFLICT, message=CONFLICT_MESSAGE)
            except ClaimConflictError:
                logger.info(f"Driver {self.driver_id} lost the claim on order {order_id}")
                await self.refresh_feed()
                return ClaimResult(ClaimOutcome.CONFLICT, message=CONFLICT_MESSAGE)
            except DriverOfflineError:
                self.is_online = False
                await self.refresh_feed()
                return ClaimResult(ClaimOutcome.REJECTED, message=OFFLINE_MESSAGE)
            except TransportError as e:
                self.last_error = str(e)
                return ClaimResult(ClaimOutcome.FAILED, message=CLAIM_FAILED_MESSAGE)
        finally:
            self.claim_in_flight = False

        # Any feed or active-order fetch still in flight predates the claim
        self._issue("active")
        self.active_order = order
        await self.refresh_feed()
        return ClaimResult(ClaimOutcome.CLAIMED, order=order)

    # =========================================================================
    # Working the active order
    # =========================================================================

    def _require_active(self) -> Order:
        if self.active_order is None:
            raise ValueError("No active order")
        return self.active_order

    async def _advance(self, status: OrderStatus) -> Order:
        order = self._require_active()
        self._issue("active")
        updated = await self.service.update_status(order.order_id, status, self.actor)
        if updated.is_terminal:
            self.active_order = None
            await self.refresh_feed()
        else:
            self.active_order = updated
        return updated

    async def start_shopping(self) -> Order:
        return await self._advance(OrderStatus.SHOPPING)

    async def update_item(self, order_item_id: str, status: ItemStatus, found_quantity: float | None = None) -> OrderItem:
        order_id = self._require_active().order_id
        self._issue("active")
        item = await self.service.update_item_status(order_item_id, status, self.driver_id, found_quantity)
        # Merge into the current order, not the pre-await snapshot
        current = self.active_order
        if current is None or current.order_id != order_id:
            logger.debug(f"Dropping item update for order {order_id}, no longer active")
            return item
        self.active_order = current.model_copy(update={
            "items": [item if i.order_item_id == item.order_item_id else i for i in current.items]
        })
        return item

    async def complete_shopping(self) -> Order:
        order = self._require_active()
        self._issue("active")
        self.active_order = await self.service.complete_shopping(order.order_id, self.driver_id)
        return self.active_order

    async def start_delivery(self) -> Order:
        return await self._advance(OrderStatus.DELIVERING)

    async def mark_delivered(self) -> Order:
        return await self._advance(OrderStatus.DELIVERED)

    def active_summary(self) -> Optional[ActiveOrderSummary]:
        if self.active_order is None:
            return None
        return active_order_summary(self.active_order, self.clock())


class FeedPoller:
    """Optional interval refresh for a driver session, run as an asyncio task."""

    def __init__(self, session: DriverSession, interval_seconds: float = config.FEED_REFRESH_SECONDS):
        self.session = session
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.session.refresh_feed()

    async def stop(self):
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
