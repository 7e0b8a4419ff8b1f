"""
Order Store - the authoritative order aggregate backed by SQLite.

Every state change runs inside a single BEGIN IMMEDIATE transaction and is
guarded by a compare-and-set UPDATE on the fields it depends on. The claim
in particular is one UPDATE conditioned on (status = pending,
driver_id IS NULL, driver holds no other open order); a zero rowcount is
a conflict, never a partial assignment.

Each status change appends exactly one timeline event. Event timestamps
are strictly increasing per order even when the clock does not advance.
"""
import json
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

import config
from db import get_cursor
from models import (
    Actor,
    EventType,
    ItemStatus,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    TimelineEvent,
    UserRole,
)
from services.errors import (
    ClaimConflictError,
    DriverBusyError,
    DriverNotFoundError,
    DriverOfflineError,
    InvalidTransitionError,
    OrderItemNotFoundError,
    OrderNotFoundError,
    QuantityValidationError,
)
from services.geo import estimate_delivery_minutes, haversine_distance
from services.pricing import Cart, unit_price_for
from services.state_machine import OrderStateMachine
from services.upstream import parse_events, parse_order

logger = logging.getLogger(__name__)

OPEN_STATUSES_SQL = "('pending', 'shopping', 'delivering')"

ITEM_EVENTS = {
    ItemStatus.FOUND: EventType.ITEM_FOUND,
    ItemStatus.SUBSTITUTED: EventType.ITEM_SUBSTITUTED,
    ItemStatus.UNAVAILABLE: EventType.ITEM_UNAVAILABLE,
}

ORDER_SELECT = """
    SELECT o.*, c.name AS customer_name, s.name AS store_name
    FROM orders o
    LEFT JOIN customers c ON o.customer_id = c.customer_id
    LEFT JOIN stores s ON o.store_id = s.store_id
"""

ITEM_SELECT = """
    SELECT oi.*,
           p.product_id AS p_product_id, p.name AS p_name, p.category AS p_category,
           p.unit AS p_unit, p.price AS p_price, p.weight_based AS p_weight_based,
           p.price_per_unit AS p_price_per_unit, p.weight_unit AS p_weight_unit,
           p.min_weight AS p_min_weight, p.max_weight AS p_max_weight,
           p.in_stock AS p_in_stock
    FROM order_items oi
    LEFT JOIN products p ON oi.product_id = p.product_id
"""


def _iso(dt: datetime) -> str:
    return dt.isoformat(timespec="microseconds")


def _row_to_product(row: sqlite3.Row) -> Product:
    return Product(
        product_id=row["product_id"],
        name=row["name"],
        category=row["category"],
        unit=row["unit"],
        price=row["price"],
        weight_based=bool(row["weight_based"]),
        price_per_unit=row["price_per_unit"],
        weight_unit=row["weight_unit"],
        min_weight=row["min_weight"],
        max_weight=row["max_weight"],
        in_stock=bool(row["in_stock"]),
    )


def _item_payload(row: sqlite3.Row) -> dict:
    product = None
    if row["p_product_id"]:
        product = {
            "product_id": row["p_product_id"],
            "name": row["p_name"],
            "category": row["p_category"],
            "unit": row["p_unit"],
            "price": row["p_price"],
            "weight_based": bool(row["p_weight_based"]),
            "price_per_unit": row["p_price_per_unit"],
            "weight_unit": row["p_weight_unit"],
            "min_weight": row["p_min_weight"],
            "max_weight": row["p_max_weight"],
            "in_stock": bool(row["p_in_stock"]),
        }
    return {
        "order_item_id": row["order_item_id"],
        "product_id": row["product_id"],
        "product": product,
        "quantity": row["quantity"],
        "selected_weight": row["selected_weight"],
        "unit_price": row["unit_price"],
        "price": row["price"],
        "status": row["status"],
        "found_quantity": row["found_quantity"],
        "notes": row["notes"],
    }


def _event_payload(row: sqlite3.Row) -> dict:
    actor = None
    if row["actor_id"]:
        actor = {"user_id": row["actor_id"], "role": row["actor_role"], "name": row["actor_name"]}
    return {
        "event_id": row["event_id"],
        "order_id": row["order_id"],
        "event_type": row["event_type"],
        "actor": actor,
        "description": row["description"],
        "occurred_at": row["occurred_at"],
        "data": json.loads(row["data"]) if row["data"] else {},
    }


class OrderStore:
    """Authoritative order aggregate. All writes go through here."""

    def __init__(
        self,
        state_machine: OrderStateMachine | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.state_machine = state_machine or OrderStateMachine()
        self.clock = clock

    # =========================================================================
    # Reads
    # =========================================================================

    def _load(self, cursor: sqlite3.Cursor, order_id: str) -> Order:
        cursor.execute(ORDER_SELECT + " WHERE o.order_id = ?", (order_id,))
        row = cursor.fetchone()
        if not row:
            raise OrderNotFoundError(order_id)
        cursor.execute(ITEM_SELECT + " WHERE oi.order_id = ? ORDER BY oi.position", (order_id,))
        payload = dict(row)
        payload["items"] = [_item_payload(r) for r in cursor.fetchall()]
        return parse_order(payload)

    def get_order(self, order_id: str) -> Order:
        with get_cursor() as cursor:
            return self._load(cursor, order_id)

    def list_available_orders(self) -> list[Order]:
        """Pending, unassigned orders, oldest first."""
        with get_cursor() as cursor:
            cursor.execute(
                """SELECT order_id FROM orders
                   WHERE status = 'pending' AND driver_id IS NULL
                   ORDER BY created_at, order_id"""
            )
            order_ids = [row[0] for row in cursor.fetchall()]
            return [self._load(cursor, order_id) for order_id in order_ids]

    def get_active_order(self, driver_id: str) -> Optional[Order]:
        """The driver's single open order, claimed but not yet delivered or cancelled."""
        with get_cursor() as cursor:
            cursor.execute(
                f"""SELECT order_id FROM orders
                    WHERE driver_id = ? AND status IN {OPEN_STATUSES_SQL}
                    ORDER BY accepted_at DESC""",
                (driver_id,)
            )
            rows = cursor.fetchall()
            if not rows:
                return None
            if len(rows) > 1:
                logger.warning(f"Driver {driver_id} holds {len(rows)} open orders")
            return self._load(cursor, rows[0][0])

    def list_orders(self, status: OrderStatus | None = None, limit: int = 50, offset: int = 0) -> list[Order]:
        query = "SELECT order_id FROM orders"
        params: list = []
        if status:
            query += " WHERE status = ?"
            params.append(OrderStatus(status).value)
        query += " ORDER BY created_at DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        with get_cursor() as cursor:
            cursor.execute(query, params)
            order_ids = [row[0] for row in cursor.fetchall()]
            return [self._load(cursor, order_id) for order_id in order_ids]

    def get_events(self, order_id: str) -> list[TimelineEvent]:
        with get_cursor() as cursor:
            cursor.execute("SELECT 1 FROM orders WHERE order_id = ?", (order_id,))
            if not cursor.fetchone():
                raise OrderNotFoundError(order_id)
            cursor.execute(
                "SELECT * FROM timeline_events WHERE order_id = ? ORDER BY occurred_at, rowid",
                (order_id,)
            )
            return parse_events([_event_payload(r) for r in cursor.fetchall()])

    def get_products(self, product_ids: list[str]) -> dict[str, Product]:
        if not product_ids:
            return {}
        placeholders = ",".join("?" for _ in product_ids)
        with get_cursor() as cursor:
            cursor.execute(f"SELECT * FROM products WHERE product_id IN ({placeholders})", product_ids)
            return {row["product_id"]: _row_to_product(row) for row in cursor.fetchall()}

    # =========================================================================
    # Timeline
    # =========================================================================

    def _next_timestamp(self, cursor: sqlite3.Cursor, order_id: str) -> datetime:
        now = self.clock()
        cursor.execute(
            "SELECT MAX(occurred_at) FROM timeline_events WHERE order_id = ?", (order_id,)
        )
        last = cursor.fetchone()[0]
        if last:
            last_dt = datetime.fromisoformat(last)
            if now <= last_dt:
                now = last_dt + timedelta(microseconds=1)
        return now

    def _append_event(
        self,
        cursor: sqlite3.Cursor,
        order_id: str,
        event_type: EventType,
        actor: Optional[Actor],
        description: str,
        occurred_at: datetime,
        data: dict | None = None,
    ):
        cursor.execute(
            """INSERT INTO timeline_events
               (event_id, order_id, event_type, actor_id, actor_role, actor_name,
                description, occurred_at, data)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                str(uuid.uuid4()), order_id, event_type.value,
                actor.user_id if actor else None,
                actor.role.value if actor else None,
                actor.name if actor else None,
                description, _iso(occurred_at),
                json.dumps(data) if data else None,
            )
        )

    # =========================================================================
    # Order creation
    # =========================================================================

    def create_order(
        self,
        customer_id: str,
        lines: list[dict],
        store_id: str | None = None,
        delivery_fee: float | None = None,
        tip_amount: float = 0.0,
        delivery_address: str | None = None,
        delivery_latitude: float | None = None,
        delivery_longitude: float | None = None,
        created_at: datetime | None = None,
    ) -> Order:
        """Price checkout lines with the valuator and persist a new pending order."""
        if not lines:
            raise QuantityValidationError("An order needs at least one item")

        products = self.get_products([line["product_id"] for line in lines])
        cart = Cart()
        for line in lines:
            product = products.get(line["product_id"])
            if product is None:
                raise QuantityValidationError(f"Unknown product {line['product_id']}")
            if product.weight_based:
                cart.add(product, weight=line.get("selected_weight"))
            else:
                quantity = line.get("quantity")
                cart.add(product, quantity=1 if quantity is None else quantity)

        subtotal = cart.subtotal
        fee = config.BASE_DELIVERY_FEE if delivery_fee is None else round(delivery_fee, 2)
        tip = round(tip_amount or 0.0, 2)
        total = round(subtotal + fee + tip, 2)
        order_id = str(uuid.uuid4())
        created = created_at or self.clock()

        with get_cursor() as cursor:
            cursor.execute("SELECT name, address FROM customers WHERE customer_id = ?", (customer_id,))
            customer = cursor.fetchone()
            if customer and not delivery_address:
                delivery_address = customer["address"]

            distance = None
            if store_id and delivery_latitude is not None and delivery_longitude is not None:
                cursor.execute("SELECT latitude, longitude FROM stores WHERE store_id = ?", (store_id,))
                store = cursor.fetchone()
                if store:
                    distance = round(haversine_distance(
                        store["latitude"], store["longitude"], delivery_latitude, delivery_longitude
                    ), 2)
            estimated_time = estimate_delivery_minutes(len(cart.lines), distance or 0.0)

            cursor.execute(
                """INSERT INTO orders
                   (order_id, customer_id, store_id, status, subtotal, delivery_fee,
                    tip_amount, total, created_at, delivery_address, delivery_latitude,
                    delivery_longitude, delivery_distance, estimated_time)
                   VALUES (?, ?, ?, 'pending', ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (order_id, customer_id, store_id, subtotal, fee, tip, total, _iso(created),
                 delivery_address, delivery_latitude, delivery_longitude, distance, estimated_time)
            )
            cursor.executemany(
                """INSERT INTO order_items
                   (order_item_id, order_id, product_id, position, quantity,
                    selected_weight, unit_price, price, status)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'pending')""",
                [
                    (str(uuid.uuid4()), order_id, line.product.product_id, position,
                     line.quantity, line.selected_weight,
                     unit_price_for(line.product),
                     line.estimated_price)
                    for position, line in enumerate(cart.lines)
                ]
            )
            actor = Actor(
                user_id=customer_id,
                role=UserRole.CUSTOMER,
                name=customer["name"] if customer else None,
            )
            self._append_event(
                cursor, order_id, EventType.CREATED, actor, "Order placed", created,
                {"item_count": len(cart.lines), "total": total},
            )
            return self._load(cursor, order_id)

    # =========================================================================
    # Claim
    # =========================================================================

    def _claim(self, order_id: str, driver_id: str, admin: Optional[Actor] = None) -> Order:
        with get_cursor() as cursor:
            cursor.execute("SELECT name, is_online FROM drivers WHERE driver_id = ?", (driver_id,))
            driver = cursor.fetchone()
            if not driver:
                raise DriverNotFoundError(driver_id)
            if admin is None and not driver["is_online"]:
                raise DriverOfflineError(driver_id)

            now = self._next_timestamp(cursor, order_id)
            cursor.execute(
                f"""UPDATE orders SET driver_id = ?, accepted_at = ?
                    WHERE order_id = ?
                      AND status = 'pending'
                      AND driver_id IS NULL
                      AND NOT EXISTS (
                          SELECT 1 FROM orders held
                          WHERE held.driver_id = ? AND held.status IN {OPEN_STATUSES_SQL}
                      )""",
                (driver_id, _iso(now), order_id, driver_id)
            )
            if cursor.rowcount == 0:
                cursor.execute("SELECT status, driver_id FROM orders WHERE order_id = ?", (order_id,))
                current = cursor.fetchone()
                if not current:
                    raise OrderNotFoundError(order_id)
                if current["status"] != OrderStatus.PENDING.value or current["driver_id"] is not None:
                    logger.info(f"Claim conflict on order {order_id} for driver {driver_id}")
                    raise ClaimConflictError(order_id)
                raise DriverBusyError(order_id, driver_id)

            if admin is None:
                event_type = EventType.ACCEPTED
                actor = Actor(user_id=driver_id, role=UserRole.DRIVER, name=driver["name"])
                description = f"{driver['name']} accepted the order"
            else:
                event_type = EventType.ASSIGNED
                actor = admin
                description = f"Order assigned to {driver['name']}"
            self._append_event(
                cursor, order_id, event_type, actor, description, now,
                {"driver_id": driver_id, "driver_name": driver["name"]},
            )
            return self._load(cursor, order_id)

    def claim_order(self, order_id: str, driver_id: str) -> Order:
        """Driver self-assignment from the available feed. Requires the driver to be online."""
        return self._claim(order_id, driver_id)

    def assign_driver(self, order_id: str, driver_id: str, actor: Actor) -> Order:
        """Admin assignment. Same exclusivity rules as a claim; online status not required."""
        if actor.role != UserRole.ADMIN:
            raise InvalidTransitionError("Only admins can assign drivers")
        return self._claim(order_id, driver_id, admin=actor)

    # =========================================================================
    # Status progression
    # =========================================================================

    def transition(self, order_id: str, target: OrderStatus, actor: Optional[Actor]) -> Order:
        with get_cursor() as cursor:
            order = self._load(cursor, order_id)
            plan = self.state_machine.plan_transition(order, target, actor)
            now = self._next_timestamp(cursor, order_id)

            assignments = f"status = ?, {plan.timestamp_field} = ?"
            if plan.finalize_delivery_fee:
                assignments += ", actual_delivery_fee = delivery_fee"
            cursor.execute(
                f"""UPDATE orders SET {assignments}
                    WHERE order_id = ? AND status = ? AND {plan.timestamp_field} IS NULL""",
                (plan.target.value, _iso(now), order_id, plan.source.value)
            )
            if cursor.rowcount == 0:
                raise InvalidTransitionError(f"Order {order_id} changed while updating its status")

            data = {"from": plan.source.value, "to": plan.target.value}
            if plan.target == OrderStatus.CANCELLED and order.driver_id:
                data["driver_id"] = order.driver_id
            self._append_event(cursor, order_id, plan.event_type, actor, plan.description, now, data)
            updated = self._load(cursor, order_id)

        self.state_machine.notify(updated, plan)
        return updated

    def start_shopping(self, order_id: str, actor: Actor) -> Order:
        return self.transition(order_id, OrderStatus.SHOPPING, actor)

    def start_delivery(self, order_id: str, actor: Actor) -> Order:
        return self.transition(order_id, OrderStatus.DELIVERING, actor)

    def mark_delivered(self, order_id: str, actor: Actor) -> Order:
        return self.transition(order_id, OrderStatus.DELIVERED, actor)

    def cancel(self, order_id: str, actor: Optional[Actor]) -> Order:
        return self.transition(order_id, OrderStatus.CANCELLED, actor)

    def complete_shopping(self, order_id: str, actor: Actor) -> Order:
        """Record checkout at the store. Not a status change."""
        with get_cursor() as cursor:
            order = self._load(cursor, order_id)
            self.state_machine.check_shopping_completion(order, actor)
            now = self._next_timestamp(cursor, order_id)
            cursor.execute(
                """UPDATE orders SET shopping_completed_at = ?
                   WHERE order_id = ? AND status = 'shopping' AND shopping_completed_at IS NULL""",
                (_iso(now), order_id)
            )
            if cursor.rowcount == 0:
                raise InvalidTransitionError(f"Order {order_id} changed while completing shopping")
            self._append_event(
                cursor, order_id, EventType.SHOPPING_COMPLETED, actor, "Shopping completed", now,
                {"items_total": len(order.items)},
            )
            return self._load(cursor, order_id)

    # =========================================================================
    # Item picking
    # =========================================================================

    def update_item_status(
        self,
        order_item_id: str,
        status: ItemStatus,
        actor: Actor,
        found_quantity: float | None = None,
        notes: str | None = None,
    ) -> OrderItem:
        status = ItemStatus(status)
        if status == ItemStatus.PENDING:
            raise InvalidTransitionError("Items cannot be reset to pending")
        if found_quantity is not None and found_quantity < 0:
            raise QuantityValidationError("Found quantity cannot be negative")

        with get_cursor() as cursor:
            cursor.execute("SELECT order_id FROM order_items WHERE order_item_id = ?", (order_item_id,))
            row = cursor.fetchone()
            if not row:
                raise OrderItemNotFoundError(order_item_id)
            order = self._load(cursor, row["order_id"])
            self.state_machine.check_item_update(order, actor)
            item = next(i for i in order.items if i.order_item_id == order_item_id)

            if status == ItemStatus.UNAVAILABLE:
                found_quantity = 0
            elif found_quantity is None:
                found_quantity = item.selected_weight if item.selected_weight is not None else item.quantity

            now = self._next_timestamp(cursor, order.order_id)
            cursor.execute(
                """UPDATE order_items SET status = ?, found_quantity = ?, notes = COALESCE(?, notes)
                   WHERE order_item_id = ?""",
                (status.value, found_quantity, notes, order_item_id)
            )
            descriptions = {
                ItemStatus.FOUND: f"Found {item.name}",
                ItemStatus.SUBSTITUTED: f"Substituted {item.name}",
                ItemStatus.UNAVAILABLE: f"{item.name} unavailable",
            }
            self._append_event(
                cursor, order.order_id, ITEM_EVENTS[status], actor, descriptions[status], now,
                {"order_item_id": order_item_id, "found_quantity": found_quantity},
            )
            updated = self._load(cursor, order.order_id)
            return next(i for i in updated.items if i.order_item_id == order_item_id)
