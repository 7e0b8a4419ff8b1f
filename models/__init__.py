from .schemas import (
    Actor,
    ActiveOrderSummary,
    AvailableOrder,
    CartLine,
    Customer,
    Driver,
    EventType,
    FeedFilter,
    FeedSort,
    ItemStatus,
    NON_TERMINAL_STATUSES,
    Order,
    OrderItem,
    OrderStatus,
    PerformanceMetrics,
    Product,
    ProductCategory,
    TERMINAL_ITEM_STATUSES,
    TERMINAL_STATUSES,
    TimelineEntry,
    TimelineEvent,
    TimelineView,
    Urgency,
    UserRole,
)

__all__ = [
    "Actor",
    "ActiveOrderSummary",
    "AvailableOrder",
    "CartLine",
    "Customer",
    "Driver",
    "EventType",
    "FeedFilter",
    "FeedSort",
    "ItemStatus",
    "NON_TERMINAL_STATUSES",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PerformanceMetrics",
    "Product",
    "ProductCategory",
    "TERMINAL_ITEM_STATUSES",
    "TERMINAL_STATUSES",
    "TimelineEntry",
    "TimelineEvent",
    "TimelineView",
    "Urgency",
    "UserRole",
]
