"""
Read-views for order screens: progress, active order summary and the
order detail loader used by customer, driver and admin screens.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from models import ActiveOrderSummary, Order, OrderStatus, TimelineView
from services.errors import DispatchError
from services.order_service import OrderService
from services.state_machine import STEP_LABELS, progress_step, status_label
from services.timeline import EMPTY_TIMELINE_MESSAGE, build_timeline_view, derive_metrics

logger = logging.getLogger(__name__)


def order_progress(order: Order) -> dict:
    step = progress_step(order.status)
    return {
        "step": step,
        "label": status_label(order.status),
        "is_cancelled": order.status == OrderStatus.CANCELLED,
        "steps": [
            {"label": label, "completed": step >= index, "current": step == index}
            for index, label in enumerate(STEP_LABELS, start=1)
        ],
    }


def elapsed_minutes(created_at: datetime, now: datetime) -> int:
    return max(0, int((now - created_at).total_seconds() // 60))


def active_order_summary(order: Order, now: Optional[datetime] = None) -> ActiveOrderSummary:
    now = now or datetime.now()
    return ActiveOrderSummary(
        order_id=order.order_id,
        status=order.status,
        status_label=status_label(order.status),
        progress_step=progress_step(order.status),
        is_cancelled=order.status == OrderStatus.CANCELLED,
        items_processed=sum(1 for item in order.items if item.is_processed),
        items_total=len(order.items),
        elapsed_minutes=elapsed_minutes(order.created_at, now),
        customer_name=order.customer_name,
        store_name=order.store_name,
        estimated_payout=order.estimated_payout,
    )


class OrderDetailLoader:
    """Loads an order and its timeline for one screen.

    Opening another order (or closing the screen) supersedes any request
    still in flight; late responses for the old order are dropped. A failed
    timeline fetch only blanks the timeline section.
    """

    def __init__(self, service: OrderService, clock: Callable[[], datetime] = datetime.now):
        self.service = service
        self.clock = clock
        self.order_id: Optional[str] = None
        self.order: Optional[Order] = None
        self.timeline = TimelineView()
        self._generation = 0

    def close(self):
        self._generation += 1
        self.order_id = None
        self.order = None
        self.timeline = TimelineView()

    async def open(self, order_id: str) -> bool:
        """Returns False when the response was discarded as stale."""
        self._generation += 1
        generation = self._generation
        self.order_id = order_id

        order = await self.service.get_order(order_id)
        if generation != self._generation:
            logger.debug(f"Discarding stale order response for {order_id}")
            return False

        try:
            data = await self.service.get_timeline(order_id)
            view = build_timeline_view(data["events"], data["metrics"], self.clock())
        except DispatchError as e:
            logger.warning(f"Timeline for order {order_id} unavailable: {e}")
            view = TimelineView(metrics=derive_metrics(order), error=EMPTY_TIMELINE_MESSAGE)

        if generation != self._generation:
            logger.debug(f"Discarding stale timeline response for {order_id}")
            return False

        self.order = order
        self.timeline = view
        return True

    @property
    def progress(self) -> Optional[dict]:
        return order_progress(self.order) if self.order else None
