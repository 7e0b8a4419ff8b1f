from .availability import DriverAvailabilityTracker
from .dispatch import ClaimOutcome, ClaimResult, DriverSession, FeedPoller
from .order_service import LocalOrderService, OrderService
from .orders import OrderStore
from .pricing import Cart
from .state_machine import OrderStateMachine, progress_step

__all__ = [
    "Cart",
    "ClaimOutcome",
    "ClaimResult",
    "DriverAvailabilityTracker",
    "DriverSession",
    "FeedPoller",
    "LocalOrderService",
    "OrderService",
    "OrderStateMachine",
    "OrderStore",
    "progress_step",
]
