"""
Defensive parsing of order payloads.

Orders reach the core either as SQLite rows from the local store or as JSON
from the dispatch API. Both paths go through these functions so that one
malformed item or event degrades to a placeholder instead of failing the
whole order view. Every substitution is logged.
"""
import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from models import (
    Actor,
    Driver,
    EventType,
    ItemStatus,
    Order,
    OrderItem,
    OrderStatus,
    PerformanceMetrics,
    Product,
    TimelineEvent,
)

logger = logging.getLogger(__name__)

UNKNOWN_ITEM_NAME = "Unknown Item"


def _as_float(value: Any, default: float, field: str, owner: str) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"{owner}: invalid {field} {value!r}, using {default}")
        return default


def parse_product(payload: Optional[dict]) -> Optional[Product]:
    if not payload or not payload.get("product_id"):
        return None
    try:
        return Product.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Dropping malformed product {payload.get('product_id')}: {e.error_count()} error(s)")
        return None


def parse_item(payload: dict) -> OrderItem:
    """Build an OrderItem, substituting defaults for anything unusable."""
    item_id = str(payload.get("order_item_id") or payload.get("id") or "unknown")
    owner = f"Order item {item_id}"
    product = parse_product(payload.get("product"))

    if product is None:
        if payload.get("product_id"):
            logger.warning(f"{owner}: product {payload.get('product_id')} could not be resolved")
        else:
            logger.warning(f"{owner}: no product reference")
        name = payload.get("name") or UNKNOWN_ITEM_NAME
        unit_price = 0.0
        price = 0.0
    else:
        name = payload.get("name") or product.name
        unit_price = _as_float(payload.get("unit_price"), product.price, "unit_price", owner)
        price = _as_float(payload.get("price"), 0.0, "price", owner)

    status = payload.get("status") or ItemStatus.PENDING.value
    try:
        status = ItemStatus(status)
    except ValueError:
        logger.warning(f"{owner}: unknown status {status!r}, treating as pending")
        status = ItemStatus.PENDING

    quantity = payload.get("quantity")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        if quantity is not None:
            logger.warning(f"{owner}: invalid quantity {quantity!r}, using 1")
        quantity = 1

    selected_weight = payload.get("selected_weight")
    if selected_weight is not None:
        selected_weight = _as_float(selected_weight, None, "selected_weight", owner)

    found_quantity = payload.get("found_quantity")
    if found_quantity is not None:
        found_quantity = _as_float(found_quantity, None, "found_quantity", owner)

    return OrderItem(
        order_item_id=item_id,
        product_id=payload.get("product_id"),
        product=product,
        name=name,
        quantity=quantity,
        selected_weight=selected_weight,
        unit_price=unit_price,
        price=price,
        status=status,
        found_quantity=found_quantity,
        notes=payload.get("notes"),
    )


def parse_order(payload: dict) -> Order:
    """Build an Order. Identity, status and created_at are required; items are best effort."""
    order_id = payload["order_id"]
    owner = f"Order {order_id}"

    status = payload.get("status")
    try:
        status = OrderStatus(status)
    except ValueError:
        # An order whose lifecycle position is unknown cannot be acted upon safely
        raise ValueError(f"{owner}: unknown status {status!r}")

    items = []
    for raw in payload.get("items") or []:
        if not isinstance(raw, dict):
            logger.warning(f"{owner}: skipping non-object item {raw!r}")
            continue
        items.append(parse_item(raw))

    fields = {
        key: payload.get(key)
        for key in (
            "customer_id", "store_id", "driver_id", "actual_delivery_fee", "created_at",
            "accepted_at", "shopping_started_at", "shopping_completed_at",
            "delivery_started_at", "delivered_at", "cancelled_at",
            "customer_name", "store_name", "delivery_address",
            "delivery_distance", "estimated_time",
        )
    }
    fields["customer_id"] = fields["customer_id"] or "unknown"
    return Order(
        order_id=order_id,
        status=status,
        items=items,
        subtotal=_as_float(payload.get("subtotal"), 0.0, "subtotal", owner),
        delivery_fee=_as_float(payload.get("delivery_fee"), 0.0, "delivery_fee", owner),
        tip_amount=_as_float(payload.get("tip_amount"), 0.0, "tip_amount", owner),
        total=_as_float(payload.get("total"), 0.0, "total", owner),
        **fields,
    )


def parse_event(payload: dict) -> Optional[TimelineEvent]:
    """Return None (and log) for events that cannot be placed on the timeline."""
    try:
        event_type = EventType(payload.get("event_type"))
    except ValueError:
        logger.warning(f"Skipping timeline event with unknown type {payload.get('event_type')!r}")
        return None

    actor = None
    raw_actor = payload.get("actor")
    if raw_actor:
        try:
            actor = Actor.model_validate(raw_actor)
        except ValidationError:
            logger.warning(f"Timeline event {payload.get('event_id')}: unreadable actor, showing as system")

    occurred_at = payload.get("occurred_at")
    if isinstance(occurred_at, str):
        try:
            occurred_at = datetime.fromisoformat(occurred_at)
        except ValueError:
            occurred_at = None
    if not isinstance(occurred_at, datetime):
        logger.warning(f"Skipping timeline event {payload.get('event_id')} without a usable timestamp")
        return None

    return TimelineEvent(
        event_id=str(payload.get("event_id") or ""),
        order_id=str(payload.get("order_id") or ""),
        event_type=event_type,
        actor=actor,
        description=payload.get("description") or event_type.value.replace("_", " ").capitalize(),
        occurred_at=occurred_at,
        data=payload.get("data") or {},
    )


def parse_events(payloads: list) -> list[TimelineEvent]:
    events = [parse_event(p) for p in payloads if isinstance(p, dict)]
    return [e for e in events if e is not None]


def parse_orders(payloads: list) -> list[Order]:
    """Parse a list of orders, skipping (and logging) any that cannot be built."""
    orders = []
    for raw in payloads:
        if not isinstance(raw, dict):
            logger.warning(f"Skipping non-object order {raw!r}")
            continue
        try:
            orders.append(parse_order(raw))
        except (KeyError, ValueError, ValidationError) as e:
            logger.warning(f"Skipping malformed order {raw.get('order_id', '?')}: {e}")
    return orders


def parse_metrics(payload: Optional[dict]) -> PerformanceMetrics:
    if not payload:
        return PerformanceMetrics()
    try:
        return PerformanceMetrics.model_validate(payload)
    except ValidationError:
        logger.warning("Discarding malformed performance metrics")
        return PerformanceMetrics()


def parse_driver(payload: dict) -> Driver:
    return Driver(
        driver_id=payload["driver_id"],
        name=payload.get("name") or "Driver",
        email=payload.get("email"),
        phone=payload.get("phone"),
        vehicle_type=payload.get("vehicle_type"),
        is_online=bool(payload.get("is_online")),
        active_order_id=payload.get("active_order_id"),
        created_at=payload.get("created_at"),
    )
