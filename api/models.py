from pydantic import BaseModel, Field

from models import Actor, ItemStatus, OrderStatus


class GenerationResponse(BaseModel):
    entity: str
    count: int
    ids: list[str]


class CheckoutLine(BaseModel):
    product_id: str
    quantity: int = 1
    selected_weight: float | None = None


class CheckoutRequest(BaseModel):
    customer_id: str
    store_id: str | None = None
    lines: list[CheckoutLine]
    tip_amount: float = Field(default=0.0, ge=0)
    delivery_fee: float | None = Field(default=None, ge=0)
    delivery_address: str | None = None
    delivery_latitude: float | None = None
    delivery_longitude: float | None = None


class DriverRef(BaseModel):
    driver_id: str


class AssignRequest(BaseModel):
    driver_id: str
    actor: Actor


class StatusUpdate(BaseModel):
    status: OrderStatus
    actor: Actor | None = None


class ItemStatusUpdate(BaseModel):
    status: ItemStatus
    driver_id: str
    found_quantity: float | None = None
    notes: str | None = None


class OnlineUpdate(BaseModel):
    is_online: bool


class StatsResponse(BaseModel):
    stores: int = 0
    customers: int
    drivers: int
    products: int = 0
    orders: int
    order_items: int
    timeline_events: int = 0
    favorites: int = 0


class ServiceStatus(BaseModel):
    order_generation_active: bool
    order_interval_seconds: float


class ConfigUpdate(BaseModel):
    order_interval_seconds: float | None = None
