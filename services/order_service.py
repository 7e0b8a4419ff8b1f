"""
Order service contract consumed by driver and customer sessions.

LocalOrderService runs against the SQLite store in-process (used by the
API and the CLI). HttpOrderService in services.client talks to the API.
"""
from abc import ABC, abstractmethod
from typing import Optional

from models import (
    Actor,
    Driver,
    ItemStatus,
    Order,
    OrderItem,
    OrderStatus,
    PerformanceMetrics,
    TimelineEvent,
    UserRole,
)
from services.availability import DriverAvailabilityTracker
from services.orders import OrderStore
from services.timeline import derive_metrics


class OrderService(ABC):
    @abstractmethod
    async def list_available_orders(self, driver_id: str) -> list[Order]:
        """Pending, unassigned orders; empty for offline or busy drivers."""

    @abstractmethod
    async def claim_order(self, order_id: str, driver_id: str) -> Order:
        """Raise ClaimConflictError when the order is no longer claimable."""

    @abstractmethod
    async def get_active_order(self, driver_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_order(self, order_id: str) -> Order:
        pass

    @abstractmethod
    async def get_timeline(self, order_id: str) -> dict:
        """{"events": list[TimelineEvent], "metrics": PerformanceMetrics}"""

    @abstractmethod
    async def update_item_status(
        self,
        order_item_id: str,
        status: ItemStatus,
        driver_id: str,
        found_quantity: float | None = None,
    ) -> OrderItem:
        pass

    @abstractmethod
    async def update_status(self, order_id: str, status: OrderStatus, actor: Actor) -> Order:
        pass

    @abstractmethod
    async def complete_shopping(self, order_id: str, driver_id: str) -> Order:
        pass

    @abstractmethod
    async def set_online(self, driver_id: str, online: bool) -> Driver:
        pass

    @abstractmethod
    async def get_driver(self, driver_id: str) -> Driver:
        pass


class LocalOrderService(OrderService):
    def __init__(self, store: OrderStore | None = None, tracker: DriverAvailabilityTracker | None = None):
        self.store = store or OrderStore()
        self.tracker = tracker or DriverAvailabilityTracker(self.store)

    def _driver_actor(self, driver_id: str) -> Actor:
        return Actor(user_id=driver_id, role=UserRole.DRIVER, name=self.tracker.get_driver(driver_id).name)

    async def list_available_orders(self, driver_id: str) -> list[Order]:
        return self.tracker.visible_orders(driver_id)

    async def claim_order(self, order_id: str, driver_id: str) -> Order:
        return self.store.claim_order(order_id, driver_id)

    async def get_active_order(self, driver_id: str) -> Optional[Order]:
        return self.store.get_active_order(driver_id)

    async def get_order(self, order_id: str) -> Order:
        return self.store.get_order(order_id)

    async def get_timeline(self, order_id: str) -> dict:
        order = self.store.get_order(order_id)
        events: list[TimelineEvent] = self.store.get_events(order_id)
        metrics: PerformanceMetrics = derive_metrics(order, events)
        return {"events": events, "metrics": metrics}

    async def update_item_status(
        self,
        order_item_id: str,
        status: ItemStatus,
        driver_id: str,
        found_quantity: float | None = None,
    ) -> OrderItem:
        return self.store.update_item_status(
            order_item_id, status, self._driver_actor(driver_id), found_quantity=found_quantity
        )

    async def update_status(self, order_id: str, status: OrderStatus, actor: Actor) -> Order:
        return self.store.transition(order_id, status, actor)

    async def complete_shopping(self, order_id: str, driver_id: str) -> Order:
        return self.store.complete_shopping(order_id, self._driver_actor(driver_id))

    async def set_online(self, driver_id: str, online: bool) -> Driver:
        return self.tracker.set_online(driver_id, online)

    async def get_driver(self, driver_id: str) -> Driver:
        return self.tracker.get_driver(driver_id)
