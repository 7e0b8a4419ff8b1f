"""
Order Status State Machine

    pending -> shopping -> delivering -> delivered
    pending | shopping | delivering -> cancelled

Transitions are planned here and executed by the order store, which
applies the declared side effects (phase timestamp, one timeline event)
inside the same transaction as the status change. Presentation layers
subscribe to executed transitions instead of polling status fields.
"""
from dataclasses import dataclass
from typing import Callable, Optional

from models import (
    Actor,
    EventType,
    Order,
    OrderStatus,
    TERMINAL_STATUSES,
    UserRole,
)
from services.errors import InvalidTransitionError


@dataclass(frozen=True)
class TransitionPlan:
    """Side effects of one status change."""
    source: OrderStatus
    target: OrderStatus
    event_type: EventType
    timestamp_field: str
    description: str
    finalize_delivery_fee: bool = False


# (source, target) -> (event, timestamp column, description)
TRANSITIONS = {
    (OrderStatus.PENDING, OrderStatus.SHOPPING): (
        EventType.SHOPPING_STARTED, "shopping_started_at", "Driver started shopping"),
    (OrderStatus.SHOPPING, OrderStatus.DELIVERING): (
        EventType.DELIVERY_STARTED, "delivery_started_at", "Order is out for delivery"),
    (OrderStatus.DELIVERING, OrderStatus.DELIVERED): (
        EventType.DELIVERED, "delivered_at", "Order delivered"),
    (OrderStatus.PENDING, OrderStatus.CANCELLED): (
        EventType.CANCELLED, "cancelled_at", "Order cancelled"),
    (OrderStatus.SHOPPING, OrderStatus.CANCELLED): (
        EventType.CANCELLED, "cancelled_at", "Order cancelled"),
    (OrderStatus.DELIVERING, OrderStatus.CANCELLED): (
        EventType.CANCELLED, "cancelled_at", "Order cancelled"),
}

STATUS_STEPS = {
    OrderStatus.PENDING: 1,
    OrderStatus.SHOPPING: 2,
    OrderStatus.DELIVERING: 3,
    OrderStatus.DELIVERED: 4,
    OrderStatus.CANCELLED: 0,
}

STATUS_LABELS = {
    OrderStatus.PENDING: "Order Placed",
    OrderStatus.SHOPPING: "Shopping in Progress",
    OrderStatus.DELIVERING: "Out for Delivery",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
}

STEP_LABELS = ["Placed", "Shopping", "Delivery", "Done"]


def _coerce_status(status) -> Optional[OrderStatus]:
    try:
        return OrderStatus(status)
    except ValueError:
        return None


def progress_step(status) -> int:
    """Progress bar position 1-4. Cancelled is 0; unrecognised statuses show as placed."""
    parsed = _coerce_status(status)
    if parsed is None:
        return 1
    return STATUS_STEPS[parsed]


def status_label(status) -> str:
    parsed = _coerce_status(status)
    if parsed is None:
        return str(status).replace("_", " ").title()
    return STATUS_LABELS[parsed]


def can_transition(source: OrderStatus, target: OrderStatus) -> bool:
    return (source, target) in TRANSITIONS


def _require_assigned_driver(order: Order, actor: Optional[Actor], action: str):
    if order.driver_id is None:
        raise InvalidTransitionError(f"Order {order.order_id} has not been claimed")
    if actor is None or actor.role != UserRole.DRIVER or actor.user_id != order.driver_id:
        raise InvalidTransitionError(f"Only the assigned driver can {action}")


def _require_items_processed(order: Order, action: str):
    pending = [item.name for item in order.items if not item.is_processed]
    if pending:
        raise InvalidTransitionError(
            f"Cannot {action}: {len(pending)} item(s) still pending ({', '.join(pending[:3])})"
        )


class OrderStateMachine:
    def __init__(self):
        self._subscribers: list[Callable[[Order, TransitionPlan], None]] = []

    def subscribe(self, callback: Callable[[Order, TransitionPlan], None]) -> Callable[[], None]:
        """Register a transition observer. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def notify(self, order: Order, plan: TransitionPlan):
        for callback in list(self._subscribers):
            callback(order, plan)

    def plan_transition(self, order: Order, target: OrderStatus, actor: Optional[Actor]) -> TransitionPlan:
        """Check guards for moving `order` to `target` and return the side effects to apply."""
        target = OrderStatus(target)
        if order.status in TERMINAL_STATUSES:
            raise InvalidTransitionError(
                f"Order {order.order_id} is {order.status.value}; no further changes are allowed"
            )
        if not can_transition(order.status, target):
            raise InvalidTransitionError(
                f"Cannot move order from {order.status.value} to {target.value}"
            )

        if target == OrderStatus.SHOPPING:
            _require_assigned_driver(order, actor, "start shopping")
        elif target == OrderStatus.DELIVERING:
            _require_assigned_driver(order, actor, "start delivery")
            _require_items_processed(order, "start delivery")
        elif target == OrderStatus.DELIVERED:
            _require_assigned_driver(order, actor, "complete delivery")

        event_type, timestamp_field, description = TRANSITIONS[(order.status, target)]
        return TransitionPlan(
            source=order.status,
            target=target,
            event_type=event_type,
            timestamp_field=timestamp_field,
            description=description,
            finalize_delivery_fee=target == OrderStatus.DELIVERED,
        )

    def check_shopping_completion(self, order: Order, actor: Optional[Actor]):
        """Checkout at the store. Recorded once, while shopping, after every item is processed."""
        if order.status != OrderStatus.SHOPPING:
            raise InvalidTransitionError("Shopping can only be completed while the order is being shopped")
        _require_assigned_driver(order, actor, "complete shopping")
        if order.shopping_completed_at is not None:
            raise InvalidTransitionError("Shopping has already been completed for this order")
        _require_items_processed(order, "complete shopping")

    def check_item_update(self, order: Order, actor: Optional[Actor]):
        if order.status != OrderStatus.SHOPPING:
            raise InvalidTransitionError("Items can only be updated after shopping has started")
        _require_assigned_driver(order, actor, "update items")
