from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Optional
from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    SHOPPING = "shopping"
    DELIVERING = "delivering"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})
NON_TERMINAL_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.SHOPPING, OrderStatus.DELIVERING})


class ItemStatus(str, Enum):
    PENDING = "pending"
    FOUND = "found"
    SUBSTITUTED = "substituted"
    UNAVAILABLE = "unavailable"


TERMINAL_ITEM_STATUSES = frozenset({ItemStatus.FOUND, ItemStatus.SUBSTITUTED, ItemStatus.UNAVAILABLE})


class EventType(str, Enum):
    CREATED = "created"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    SHOPPING_STARTED = "shopping_started"
    ITEM_FOUND = "item_found"
    ITEM_SUBSTITUTED = "item_substituted"
    ITEM_UNAVAILABLE = "item_unavailable"
    SHOPPING_COMPLETED = "shopping_completed"
    DELIVERY_STARTED = "delivery_started"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class UserRole(str, Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"
    ADMIN = "admin"


class Urgency(str, Enum):
    ASAP = "ASAP"
    TODAY = "Today"
    TODAY_EVENING = "Today Evening"


class FeedFilter(str, Enum):
    ALL = "all"
    HIGH_PAY = "high_pay"
    NEARBY = "nearby"
    URGENT = "urgent"


class FeedSort(str, Enum):
    OLDEST = "oldest"
    PAYOUT = "payout"
    DISTANCE = "distance"
    TIME = "time"
    NEWEST = "newest"


class ProductCategory(str, Enum):
    PRODUCE = "produce"
    MEAT = "meat"
    SEAFOOD = "seafood"
    DAIRY = "dairy"
    BAKERY = "bakery"
    PANTRY = "pantry"
    BEVERAGES = "beverages"
    SNACKS = "snacks"
    HOUSEHOLD = "household"


class Actor(BaseModel):
    user_id: str
    role: UserRole
    name: Optional[str] = None


class Customer(BaseModel):
    customer_id: str
    name: str
    email: str
    phone: str
    address: str
    village: str
    latitude: float
    longitude: float
    created_at: datetime


class Product(BaseModel):
    product_id: str
    name: str
    category: ProductCategory = ProductCategory.PANTRY
    unit: str = "each"  # e.g., "each", "dozen", "lb"
    price: float = Field(ge=0)
    weight_based: bool = False
    price_per_unit: Optional[float] = None
    weight_unit: Optional[str] = None
    min_weight: Optional[float] = None
    max_weight: Optional[float] = None
    in_stock: bool = True


class OrderItem(BaseModel):
    order_item_id: str
    product_id: Optional[str] = None
    product: Optional[Product] = None
    name: str
    quantity: int = Field(default=1, ge=1)
    selected_weight: Optional[float] = None
    unit_price: float = 0.0
    price: float = 0.0
    status: ItemStatus = ItemStatus.PENDING
    found_quantity: Optional[float] = None
    notes: Optional[str] = None

    @property
    def is_processed(self) -> bool:
        return self.status in TERMINAL_ITEM_STATUSES


class Order(BaseModel):
    order_id: str
    customer_id: str
    store_id: Optional[str] = None
    driver_id: Optional[str] = None
    status: OrderStatus
    items: list[OrderItem] = Field(default_factory=list)
    subtotal: float
    delivery_fee: float
    actual_delivery_fee: Optional[float] = None
    tip_amount: float = 0.0
    total: float
    created_at: datetime
    accepted_at: Optional[datetime] = None
    shopping_started_at: Optional[datetime] = None
    shopping_completed_at: Optional[datetime] = None
    delivery_started_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    customer_name: Optional[str] = None
    store_name: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_distance: Optional[float] = None
    estimated_time: Optional[int] = None

    @property
    def estimated_payout(self) -> float:
        return round(self.delivery_fee + self.tip_amount, 2)

    @property
    def is_claimed(self) -> bool:
        return self.driver_id is not None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class Driver(BaseModel):
    driver_id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    vehicle_type: Optional[str] = None
    is_online: bool = False
    active_order_id: Optional[str] = None
    created_at: Optional[datetime] = None


class TimelineEvent(BaseModel):
    event_id: str
    order_id: str
    event_type: EventType
    actor: Optional[Actor] = None
    description: str
    occurred_at: datetime
    data: dict[str, Any] = Field(default_factory=dict)


class CartLine(BaseModel):
    line_id: str
    product: Product
    quantity: int = Field(default=1, ge=1)
    selected_weight: Optional[float] = None
    estimated_price: float = 0.0


class AvailableOrder(BaseModel):
    """Feed card shown to drivers. Built per request, never persisted."""
    order_id: str
    customer_name: str
    store_name: Optional[str] = None
    delivery_address: Optional[str] = None
    item_count: int
    estimated_payout: float
    delivery_distance: float
    estimated_time: int
    created_at: datetime
    urgency: Urgency


class PerformanceMetrics(BaseModel):
    """Phase durations in minutes. A field is None when its inputs are missing."""
    total_processing_time: Optional[float] = None
    shopping_duration: Optional[float] = None
    delivery_duration: Optional[float] = None
    accepted_at: Optional[datetime] = None
    shopping_started_at: Optional[datetime] = None
    delivery_started_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class TimelineEntry(BaseModel):
    event_id: str
    event_type: EventType
    icon: str
    color: str
    description: str
    user_name: str
    occurred_at: datetime
    formatted_time: str
    time_ago: str
    data: dict[str, Any] = Field(default_factory=dict)


class TimelineView(BaseModel):
    entries: list[TimelineEntry] = Field(default_factory=list)
    metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    error: Optional[str] = None


class ActiveOrderSummary(BaseModel):
    order_id: str
    status: OrderStatus
    status_label: str
    progress_step: int
    is_cancelled: bool = False
    items_processed: int
    items_total: int
    elapsed_minutes: int
    customer_name: Optional[str] = None
    store_name: Optional[str] = None
    estimated_payout: float
