"""
Grocery Dispatch API

Thin HTTP surface over the order store:
- Checkout, driver feed and the atomic accept
- Status progression, item picking and the order timeline
- Favorites, demo data and admin reports
- Optional live order generation in the background
"""

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import asyncio
import random
import sqlite3
from datetime import datetime

from db import init_database, get_cursor, get_table_counts
from generators import (
    CustomerGenerator,
    DriverGenerator,
    OrderGenerator,
    StoreGenerator,
    seed_reference_data,
)
from models import Actor, FeedFilter, FeedSort, Order, OrderStatus, ProductCategory, UserRole
from services import DriverAvailabilityTracker, OrderStore
from services.errors import (
    ClaimConflictError,
    DispatchError,
    DriverBusyError,
    DriverNotFoundError,
    DriverOfflineError,
    InvalidTransitionError,
    OrderItemNotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from services.favorites import SqliteFavoritesBackend
from services.feed import build_feed
from services.reports import phase_summary
from services.timeline import build_timeline_view, derive_metrics
from services.views import active_order_summary, order_progress
from api.models import (
    AssignRequest,
    CheckoutRequest,
    ConfigUpdate,
    DriverRef,
    GenerationResponse,
    ItemStatusUpdate,
    OnlineUpdate,
    ServiceStatus,
    StatsResponse,
    StatusUpdate,
)


# Global state for background tasks
class AppState:
    def __init__(self):
        self.order_generation_active = False
        self.order_interval_seconds = 10.0  # New order every N seconds
        self.order_task: asyncio.Task | None = None

        # Lazy init after DB ready
        self._customer_gen = None
        self._driver_gen = None
        self._store_gen = None
        self._order_gen = None
        self._order_store = None
        self._tracker = None
        self._favorites = None

    @property
    def customer_gen(self):
        if not self._customer_gen:
            self._customer_gen = CustomerGenerator(seed=None)  # No seed = random
        return self._customer_gen

    @property
    def driver_gen(self):
        if not self._driver_gen:
            self._driver_gen = DriverGenerator(seed=None)
        return self._driver_gen

    @property
    def store_gen(self):
        if not self._store_gen:
            self._store_gen = StoreGenerator(seed=None)
        return self._store_gen

    @property
    def order_gen(self):
        if not self._order_gen:
            self._order_gen = OrderGenerator(seed=None)
        return self._order_gen

    @property
    def order_store(self) -> OrderStore:
        if not self._order_store:
            self._order_store = OrderStore()
        return self._order_store

    @property
    def tracker(self) -> DriverAvailabilityTracker:
        if not self._tracker:
            self._tracker = DriverAvailabilityTracker(self.order_store)
        return self._tracker

    @property
    def favorites(self) -> SqliteFavoritesBackend:
        if not self._favorites:
            self._favorites = SqliteFavoritesBackend()
        return self._favorites


state = AppState()


def _timestamp() -> str:
    return datetime.now().strftime('%H:%M:%S')


async def random_order_generator():
    """Background task: places orders at random intervals."""
    while state.order_generation_active:
        jitter = random.uniform(0.5, 1.5)
        await asyncio.sleep(state.order_interval_seconds * jitter)
        if not state.order_generation_active:
            break
        try:
            plan = state.order_gen.generate_one()
            order = state.order_gen.save_to_db([plan])[0]
            print(f"[{_timestamp()}] Generated order {order.order_id[:8]}... (${order.total:.2f})")
        except (DispatchError, ValueError, sqlite3.Error) as e:
            print(f"[{_timestamp()}] Error generating order: {e}")
            await asyncio.sleep(5)


@asynccontextmanager
async def lifespan(app: FastAPI):
    print("🚀 Starting Grocery Dispatch API...")
    init_database()
    seed_reference_data(seed=None)
    print("✅ API ready!")
    yield

    state.order_generation_active = False
    if state.order_task:
        state.order_task.cancel()
    print("👋 Shutting down...")


app = FastAPI(
    title="Grocery Dispatch API",
    description="Order lifecycle and driver dispatch for grocery delivery",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error mapping
# =============================================================================

# Most specific first: DriverBusyError is a ClaimConflictError
ERROR_RESPONSES = [
    (DriverBusyError, 409, "driver_busy"),
    (ClaimConflictError, 409, "claim_conflict"),
    (DriverOfflineError, 403, "driver_offline"),
    (InvalidTransitionError, 409, "invalid_transition"),
    (OrderNotFoundError, 404, "order_not_found"),
    (OrderItemNotFoundError, 404, "order_item_not_found"),
    (DriverNotFoundError, 404, "driver_not_found"),
    (ValidationError, 422, "validation_error"),
]


@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError):
    status_code, code = 500, "dispatch_error"
    for error_type, error_status, error_code in ERROR_RESPONSES:
        if isinstance(exc, error_type):
            status_code, code = error_status, error_code
            break
    body = {"detail": str(exc), "code": code}
    resource_id = (
        getattr(exc, "order_id", None)
        or getattr(exc, "order_item_id", None)
        or (exc.driver_id if isinstance(exc, DriverNotFoundError) else None)
    )
    if resource_id:
        body["id"] = resource_id
    if getattr(exc, "driver_id", None):
        body["driver_id"] = exc.driver_id
    return JSONResponse(status_code=status_code, content=body)


def order_json(order: Order) -> dict:
    data = order.model_dump(mode="json")
    data["estimated_payout"] = order.estimated_payout
    data["progress"] = order_progress(order)
    return data


# =============================================================================
# Health & Status
# =============================================================================

@app.get("/", tags=["Health"])
async def root():
    return {"status": "ok", "service": "grocery-dispatch-api"}


@app.get("/stats", response_model=StatsResponse, tags=["Health"])
async def get_stats():
    """Get current database statistics."""
    counts = get_table_counts()
    return StatsResponse(**counts)


@app.get("/status", response_model=ServiceStatus, tags=["Health"])
async def get_service_status():
    """Get background service status."""
    return ServiceStatus(
        order_generation_active=state.order_generation_active,
        order_interval_seconds=state.order_interval_seconds,
    )


# =============================================================================
# Customers & Favorites
# =============================================================================

@app.post("/customers/generate", response_model=GenerationResponse, tags=["Customers"])
async def generate_customers(count: int = Query(default=1, ge=1, le=100)):
    """Generate new customers."""
    customers = state.customer_gen.generate_batch(count)
    state.customer_gen.save_to_db(customers)
    return GenerationResponse(
        entity="customers",
        count=len(customers),
        ids=[c.customer_id for c in customers],
    )


@app.get("/customers", tags=["Customers"])
async def list_customers(limit: int = 20, offset: int = 0):
    with get_cursor() as cursor:
        cursor.execute(
            "SELECT * FROM customers ORDER BY created_at DESC LIMIT ? OFFSET ?",
            (limit, offset)
        )
        return [dict(row) for row in cursor.fetchall()]


@app.get("/customers/{customer_id}", tags=["Customers"])
async def get_customer(customer_id: str):
    with get_cursor() as cursor:
        cursor.execute("SELECT * FROM customers WHERE customer_id = ?", (customer_id,))
        row = cursor.fetchone()
    if not row:
        raise HTTPException(status_code=404, detail="Customer not found")
    return dict(row)


@app.get("/customers/{customer_id}/favorites", tags=["Customers"])
async def list_favorites(customer_id: str):
    return {"customer_id": customer_id, "product_ids": state.favorites.list_favorites(customer_id)}


@app.put("/customers/{customer_id}/favorites/{product_id}", tags=["Customers"])
async def add_favorite(customer_id: str, product_id: str):
    await state.favorites.add_favorite(customer_id, product_id)
    return {"customer_id": customer_id, "product_id": product_id, "favorite": True}


@app.delete("/customers/{customer_id}/favorites/{product_id}", tags=["Customers"])
async def remove_favorite(customer_id: str, product_id: str):
    await state.favorites.remove_favorite(customer_id, product_id)
    return {"customer_id": customer_id, "product_id": product_id, "favorite": False}


# =============================================================================
# Drivers
# =============================================================================

@app.post("/drivers/generate", response_model=GenerationResponse, tags=["Drivers"])
async def generate_drivers(count: int = Query(default=1, ge=1, le=50)):
    """Generate new drivers."""
    drivers = state.driver_gen.generate_batch(count)
    state.driver_gen.save_to_db(drivers)
    return GenerationResponse(
        entity="drivers",
        count=len(drivers),
        ids=[d.driver_id for d in drivers],
    )


@app.get("/drivers", tags=["Drivers"])
async def list_drivers(limit: int = 20, offset: int = 0, online_only: bool = False):
    query = "SELECT * FROM drivers"
    if online_only:
        query += " WHERE is_online = 1"
    query += " ORDER BY created_at DESC LIMIT ? OFFSET ?"
    with get_cursor() as cursor:
        cursor.execute(query, (limit, offset))
        return [dict(row) for row in cursor.fetchall()]


@app.get("/drivers/{driver_id}", tags=["Drivers"])
async def get_driver(driver_id: str):
    return state.tracker.get_driver(driver_id).model_dump(mode="json")


@app.put("/drivers/{driver_id}/online", tags=["Drivers"])
async def set_driver_online(driver_id: str, update: OnlineUpdate):
    """Set the online flag. Going offline leaves any open order with the driver."""
    return state.tracker.set_online(driver_id, update.is_online).model_dump(mode="json")


@app.put("/drivers/{driver_id}/toggle_online", tags=["Drivers"])
async def toggle_driver_online(driver_id: str):
    return state.tracker.toggle_online(driver_id).model_dump(mode="json")


# =============================================================================
# Stores & Products
# =============================================================================

@app.post("/stores/generate", response_model=GenerationResponse, tags=["Stores"])
async def generate_stores(count: int = Query(default=1, ge=1, le=20)):
    stores = state.store_gen.generate_batch(count)
    state.store_gen.save_to_db(stores)
    return GenerationResponse(
        entity="stores",
        count=len(stores),
        ids=[s.store_id for s in stores],
    )


@app.get("/stores", tags=["Stores"])
async def list_stores(limit: int = 20, offset: int = 0):
    with get_cursor() as cursor:
        cursor.execute(
            "SELECT * FROM stores ORDER BY name LIMIT ? OFFSET ?",
            (limit, offset)
        )
        return [dict(row) for row in cursor.fetchall()]


@app.get("/products", tags=["Products"])
async def list_products(
    category: ProductCategory | None = None,
    in_stock_only: bool = True,
    limit: int = 100,
    offset: int = 0,
):
    query = "SELECT * FROM products WHERE 1 = 1"
    params: list = []
    if category:
        query += " AND category = ?"
        params.append(category.value)
    if in_stock_only:
        query += " AND in_stock = 1"
    query += " ORDER BY category, name LIMIT ? OFFSET ?"
    params.extend([limit, offset])
    with get_cursor() as cursor:
        cursor.execute(query, params)
        rows = [dict(row) for row in cursor.fetchall()]
    for row in rows:
        row["weight_based"] = bool(row["weight_based"])
        row["in_stock"] = bool(row["in_stock"])
    return rows


@app.get("/products/categories", tags=["Products"])
async def list_categories():
    with get_cursor() as cursor:
        cursor.execute(
            "SELECT category, COUNT(*) AS product_count FROM products GROUP BY category ORDER BY category"
        )
        return [dict(row) for row in cursor.fetchall()]


# =============================================================================
# Orders
# =============================================================================

@app.post("/orders", status_code=201, tags=["Orders"])
async def create_order(checkout: CheckoutRequest):
    """Checkout: price the cart lines and place a pending order."""
    order = state.order_store.create_order(
        customer_id=checkout.customer_id,
        lines=[line.model_dump() for line in checkout.lines],
        store_id=checkout.store_id,
        delivery_fee=checkout.delivery_fee,
        tip_amount=checkout.tip_amount,
        delivery_address=checkout.delivery_address,
        delivery_latitude=checkout.delivery_latitude,
        delivery_longitude=checkout.delivery_longitude,
    )
    return order_json(order)


@app.post("/orders/generate", tags=["Orders"])
async def generate_order():
    """Place a single random order."""
    plan = state.order_gen.generate_one()
    order = state.order_gen.save_to_db([plan])[0]
    return order_json(order)


@app.get("/orders", tags=["Orders"])
async def list_orders(
    status: OrderStatus | None = None,
    limit: int = Query(default=20, le=200),
    offset: int = 0,
):
    return [order_json(o) for o in state.order_store.list_orders(status, limit, offset)]


@app.get("/orders/available", tags=["Orders"])
async def list_available_orders(driver_id: str | None = None):
    """Claimable orders. With a driver, empty while that driver is offline or busy."""
    if driver_id:
        orders = state.tracker.visible_orders(driver_id)
    else:
        orders = state.order_store.list_available_orders()
    return [order_json(o) for o in orders]


@app.get("/orders/feed", tags=["Orders"])
async def get_order_feed(
    driver_id: str,
    feed_filter: FeedFilter = Query(default=FeedFilter.ALL, alias="filter"),
    sort: FeedSort = FeedSort.OLDEST,
):
    """Feed cards for a driver, filtered then sorted."""
    cards = build_feed(state.tracker.visible_orders(driver_id), feed_filter, sort)
    return [card.model_dump(mode="json") for card in cards]


@app.get("/orders/active", tags=["Orders"])
async def get_active_order(driver_id: str):
    order = state.order_store.get_active_order(driver_id)
    if order is None:
        return {"order": None, "summary": None}
    return {
        "order": order_json(order),
        "summary": active_order_summary(order).model_dump(mode="json"),
    }


@app.get("/orders/{order_id}", tags=["Orders"])
async def get_order(order_id: str):
    return order_json(state.order_store.get_order(order_id))


@app.get("/orders/{order_id}/timeline", tags=["Orders"])
async def get_order_timeline(order_id: str):
    order = state.order_store.get_order(order_id)
    events = state.order_store.get_events(order_id)
    metrics = derive_metrics(order, events)
    view = build_timeline_view(events, metrics)
    return {
        "events": [e.model_dump(mode="json") for e in events],
        "metrics": metrics.model_dump(mode="json", exclude_none=True),
        "entries": [entry.model_dump(mode="json") for entry in view.entries],
        "error": view.error,
    }


@app.put("/orders/{order_id}/accept", tags=["Orders"])
async def accept_order(order_id: str, claim: DriverRef):
    """Atomic claim. 409 when another driver got there first or this driver is busy."""
    return order_json(state.order_store.claim_order(order_id, claim.driver_id))


@app.put("/orders/{order_id}/assign_driver", tags=["Orders"])
async def assign_driver(order_id: str, assignment: AssignRequest):
    order = state.order_store.assign_driver(order_id, assignment.driver_id, assignment.actor)
    return order_json(order)


@app.put("/orders/{order_id}/status", tags=["Orders"])
async def update_order_status(order_id: str, update: StatusUpdate):
    return order_json(state.order_store.transition(order_id, update.status, update.actor))


@app.post("/orders/{order_id}/complete_shopping", tags=["Orders"])
async def complete_shopping(order_id: str, body: DriverRef):
    driver = state.tracker.get_driver(body.driver_id)
    actor = Actor(user_id=driver.driver_id, role=UserRole.DRIVER, name=driver.name)
    return order_json(state.order_store.complete_shopping(order_id, actor))


@app.put("/order_items/{order_item_id}/status", tags=["Orders"])
async def update_item_status(order_item_id: str, update: ItemStatusUpdate):
    driver = state.tracker.get_driver(update.driver_id)
    actor = Actor(user_id=driver.driver_id, role=UserRole.DRIVER, name=driver.name)
    item = state.order_store.update_item_status(
        order_item_id, update.status, actor,
        found_quantity=update.found_quantity, notes=update.notes,
    )
    return item.model_dump(mode="json")


# =============================================================================
# Background Services
# =============================================================================

@app.post("/services/orders/start", tags=["Services"])
async def start_order_generation():
    """Start generating random orders in the background."""
    if state.order_generation_active:
        return {"status": "already_running"}

    state.order_generation_active = True
    state.order_task = asyncio.create_task(random_order_generator())
    return {"status": "started", "interval_seconds": state.order_interval_seconds}


@app.post("/services/orders/stop", tags=["Services"])
async def stop_order_generation():
    state.order_generation_active = False
    if state.order_task:
        state.order_task.cancel()
        state.order_task = None
    return {"status": "stopped"}


@app.patch("/services/config", tags=["Services"])
async def update_service_config(update: ConfigUpdate):
    if update.order_interval_seconds is not None:
        if update.order_interval_seconds < 1:
            raise HTTPException(status_code=400, detail="Interval must be at least 1 second")
        state.order_interval_seconds = update.order_interval_seconds
    return {"order_interval_seconds": state.order_interval_seconds}


# =============================================================================
# Demo & Admin
# =============================================================================

@app.post("/demo/seed", tags=["Demo"])
async def seed_demo_data(
    orders: int = Query(default=10, ge=0, le=200),
    history: int = Query(default=0, ge=0, le=1000),
):
    """Fill empty reference tables, then place live orders and replay historical ones."""
    created = seed_reference_data(seed=None)
    if history:
        created["history"] = len(state.order_gen.generate_history(history))
    if orders:
        plans = [state.order_gen.generate_one() for _ in range(orders)]
        created["orders"] = len(state.order_gen.save_to_db(plans))
    return {"created": created, "counts": get_table_counts()}


@app.get("/admin/reports/phase-durations", tags=["Admin"])
async def get_phase_durations(group_by: str | None = Query(default=None, pattern="^(store_name|village|driver_id)$")):
    """Mean wait, shopping, delivery and total minutes for delivered orders."""
    return {"group_by": group_by, "rows": phase_summary(group_by)}


@app.post("/admin/reset", tags=["Admin"])
async def reset_database(confirm: bool = Query(default=False)):
    """Drop all data and recreate the schema. Requires confirm=true."""
    if not confirm:
        raise HTTPException(status_code=400, detail="Pass confirm=true to reset the database")

    state.order_generation_active = False
    if state.order_task:
        state.order_task.cancel()
        state.order_task = None

    init_database(reset=True)
    return {"status": "reset", "counts": get_table_counts()}
