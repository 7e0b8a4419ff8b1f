"""
Error taxonomy for the dispatch core.

Claim conflicts and validation errors need acknowledgment from the user.
Transport errors are retryable on request. Everything else is a
programming or data error surfaced by the API as a 4xx.
"""


class DispatchError(Exception):
    """Base class for all dispatch-core errors."""


class ClaimConflictError(DispatchError):
    """The order was no longer pending and unassigned when the claim reached the store."""

    def __init__(self, order_id: str, message: str | None = None):
        self.order_id = order_id
        super().__init__(message or f"Order {order_id} is no longer available")


class DriverBusyError(ClaimConflictError):
    """The driver already holds a non-terminal order."""

    def __init__(self, order_id: str, driver_id: str):
        self.driver_id = driver_id
        super().__init__(order_id, f"Driver {driver_id} already has an active order")


class DriverOfflineError(DispatchError):
    """Claims require the driver to be online."""

    def __init__(self, driver_id: str):
        self.driver_id = driver_id
        super().__init__("You must be online to accept orders.")


class InvalidTransitionError(DispatchError):
    """Requested status change is not allowed from the order's current state."""


class TransportError(DispatchError):
    """Network or HTTP failure talking to the order service. Never retried automatically."""


class ValidationError(DispatchError):
    """Cart input rejected before any mutation."""


class WeightValidationError(ValidationError):
    def __init__(self, bound: str, limit: float, unit: str):
        self.bound = bound
        self.limit = limit
        self.unit = unit
        super().__init__(f"{bound.capitalize()} weight is {limit:g} {unit}")


class QuantityValidationError(ValidationError):
    pass


class OrderNotFoundError(DispatchError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class OrderItemNotFoundError(DispatchError):
    def __init__(self, order_item_id: str):
        self.order_item_id = order_item_id
        super().__init__(f"Order item {order_item_id} not found")


class DriverNotFoundError(DispatchError):
    def __init__(self, driver_id: str):
        self.driver_id = driver_id
        super().__init__(f"Driver {driver_id} not found")
