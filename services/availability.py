"""
Driver Availability Tracker

A driver owns exactly one piece of state, the online flag. Going offline
never touches the driver's open order: a driver can finish a delivery
while offline. The feed is hidden from offline drivers and from drivers
who already hold an open order; the claim in the order store is still
the authoritative guard against double-booking.
"""
from typing import Optional

from db import get_cursor
from models import Driver, Order
from services.errors import DriverNotFoundError
from services.orders import OPEN_STATUSES_SQL, OrderStore
from services.upstream import parse_driver


def can_see_feed(driver: Driver) -> bool:
    return driver.is_online and driver.active_order_id is None


class DriverAvailabilityTracker:
    def __init__(self, order_store: OrderStore | None = None):
        self.order_store = order_store or OrderStore()

    def get_driver(self, driver_id: str) -> Driver:
        with get_cursor() as cursor:
            cursor.execute(
                f"""SELECT d.*, (
                        SELECT o.order_id FROM orders o
                        WHERE o.driver_id = d.driver_id AND o.status IN {OPEN_STATUSES_SQL}
                        ORDER BY o.accepted_at DESC LIMIT 1
                    ) AS active_order_id
                    FROM drivers d WHERE d.driver_id = ?""",
                (driver_id,)
            )
            row = cursor.fetchone()
            if not row:
                raise DriverNotFoundError(driver_id)
            return parse_driver(dict(row))

    def is_online(self, driver_id: str) -> bool:
        return self.get_driver(driver_id).is_online

    def set_online(self, driver_id: str, online: bool) -> Driver:
        with get_cursor() as cursor:
            cursor.execute(
                "UPDATE drivers SET is_online = ? WHERE driver_id = ?",
                (bool(online), driver_id)
            )
            if cursor.rowcount == 0:
                raise DriverNotFoundError(driver_id)
        return self.get_driver(driver_id)

    def toggle_online(self, driver_id: str) -> Driver:
        with get_cursor() as cursor:
            cursor.execute(
                "UPDATE drivers SET is_online = NOT is_online WHERE driver_id = ?",
                (driver_id,)
            )
            if cursor.rowcount == 0:
                raise DriverNotFoundError(driver_id)
        return self.get_driver(driver_id)

    def visible_orders(self, driver_id: str) -> list[Order]:
        """Claimable orders for this driver; empty when offline or already busy."""
        driver = self.get_driver(driver_id)
        if not can_see_feed(driver):
            return []
        return self.order_store.list_available_orders()

    def active_order(self, driver_id: str) -> Optional[Order]:
        return self.order_store.get_active_order(driver_id)
