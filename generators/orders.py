import random
from datetime import datetime, timedelta
from dataclasses import dataclass
from .base import BaseGenerator
from .customers import CustomerGenerator
from .drivers import DriverGenerator
from .products import ProductGenerator
from .stores import StoreGenerator
from .geofence import get_zone_for_coordinates
from models import Actor, ItemStatus, Order, OrderStatus, Product, UserRole
from services.geo import haversine_distance
from services.orders import OrderStore
import config


DISPATCH_ADMIN = Actor(user_id="admin-dispatch", role=UserRole.ADMIN, name="Dispatch")


class SimClock:
    """Manually advanced clock so historical orders get realistic phase gaps."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float):
        self.now += timedelta(minutes=minutes)


@dataclass
class OrderPlan:
    """Checkout that has been drafted but not yet placed."""
    customer_id: str
    store_id: str
    lines: list[dict]
    tip_amount: float
    delivery_fee: float
    delivery_latitude: float
    delivery_longitude: float
    created_at: datetime
    target_status: OrderStatus = OrderStatus.PENDING
    cancel_from: OrderStatus | None = None
    claimed: bool = False


class OrderGenerator(BaseGenerator):
    """Generates checkouts and plays them through the order lifecycle."""

    HOUR_WEIGHTS = [
        0.01, 0.01, 0.01, 0.01, 0.01, 0.02,
        0.03, 0.04, 0.05, 0.06, 0.07, 0.08,
        0.08, 0.07, 0.06, 0.06, 0.07, 0.08,
        0.09, 0.08, 0.06, 0.04, 0.02, 0.01,
    ]

    # Where historical orders end up
    HISTORY_STATUSES = [
        (OrderStatus.DELIVERED, 0.70),
        (OrderStatus.CANCELLED, 0.10),
        (OrderStatus.DELIVERING, 0.05),
        (OrderStatus.SHOPPING, 0.05),
        (OrderStatus.PENDING, 0.10),
    ]

    ITEM_OUTCOMES = [
        (ItemStatus.FOUND, 0.85),
        (ItemStatus.SUBSTITUTED, 0.08),
        (ItemStatus.UNAVAILABLE, 0.07),
    ]

    def __init__(self, seed: int | None = 42):
        super().__init__(seed)
        self.customer_gen = CustomerGenerator(seed)
        self.driver_gen = DriverGenerator(seed)
        self.product_gen = ProductGenerator(seed)
        self.store_gen = StoreGenerator(seed)

        self._customers = []
        self._stores = []
        self._products: list[Product] = []

    def _load_dependencies(self):
        """Load existing customers, stores and catalog from the database."""
        self._customers = self.customer_gen.get_all()
        self._stores = self.store_gen.get_all()
        self._products = self.product_gen.get_in_stock()

        if not self._customers:
            raise ValueError("No customers found. Generate customers first.")
        if not self._stores:
            raise ValueError("No stores found. Generate stores first.")
        if not self._products:
            raise ValueError("No products found. Generate the catalog first.")

    def _weighted_choice(self, choices: list[tuple]):
        items, weights = zip(*choices)
        return random.choices(items, weights=weights)[0]

    def _generate_order_time(self, days_back_max: int = 30) -> datetime:
        """Generate realistic order timestamp."""
        days_ago = random.randint(1, days_back_max)
        order_date = datetime.now() - timedelta(days=days_ago)
        hour = random.choices(range(24), weights=self.HOUR_WEIGHTS)[0]
        return order_date.replace(hour=hour, minute=random.randint(0, 59), second=random.randint(0, 59))

    def _calculate_tip(self, subtotal: float) -> float:
        tip_pct = random.choices(
            [0, 0.10, 0.15, 0.18, 0.20, 0.25],
            weights=[0.05, 0.15, 0.30, 0.25, 0.20, 0.05]
        )[0]
        return round(subtotal * tip_pct, 2)

    def _get_delivery_fee(self, subtotal: float) -> float:
        return config.BASE_DELIVERY_FEE if subtotal < 35 else 3.99

    def _select_store_for_customer(self, customer_lat: float, customer_lon: float) -> dict:
        """Pick a store in the customer's village, weighted by proximity."""
        zone = get_zone_for_coordinates(customer_lat, customer_lon)
        stores = self._stores
        if zone is not None:
            stores = [s for s in self._stores if s["village"] == zone["village"]] or self._stores

        distances = [
            max(0.1, haversine_distance(customer_lat, customer_lon, s["latitude"], s["longitude"]))
            for s in stores
        ]
        weights = [1.0 / (d ** 2) for d in distances]
        return random.choices(stores, weights=weights)[0]

    def _pick_weight(self, product: Product) -> float:
        """A selected weight on the 0.5 step grid inside the product's bounds."""
        low = max(product.min_weight or config.MIN_WEIGHT, config.MIN_WEIGHT)
        high = product.max_weight or 5.0
        steps = int((high - low) / config.WEIGHT_STEP)
        return round(low + config.WEIGHT_STEP * random.randint(0, max(steps, 0)), 2)

    def _generate_lines(self) -> tuple[list[dict], float]:
        count = random.choices([1, 2, 3, 4, 5, 6, 8], weights=[0.10, 0.15, 0.20, 0.20, 0.15, 0.12, 0.08])[0]
        chosen = random.sample(self._products, min(count, len(self._products)))
        lines = []
        subtotal = 0.0
        for product in chosen:
            if product.weight_based:
                weight = self._pick_weight(product)
                lines.append({"product_id": product.product_id, "quantity": 1, "selected_weight": weight})
                subtotal += product.price_per_unit * weight
            else:
                quantity = random.choices([1, 2, 3, 4], weights=[0.60, 0.25, 0.10, 0.05])[0]
                lines.append({"product_id": product.product_id, "quantity": quantity})
                subtotal += product.price * quantity
        return lines, round(subtotal, 2)

    def generate_one(self, live_mode: bool = True) -> OrderPlan:
        """Draft a single checkout.

        Args:
            live_mode: If True, the order is placed now and stays pending for drivers to claim.
                       If False, it gets a past timestamp and a lifecycle outcome to replay.
        """
        if not self._customers:
            self._load_dependencies()

        customer = random.choice(self._customers)
        store = self._select_store_for_customer(customer["latitude"], customer["longitude"])
        lines, subtotal = self._generate_lines()

        plan = OrderPlan(
            customer_id=customer["customer_id"],
            store_id=store["store_id"],
            lines=lines,
            tip_amount=self._calculate_tip(subtotal),
            delivery_fee=self._get_delivery_fee(subtotal),
            delivery_latitude=customer["latitude"],
            delivery_longitude=customer["longitude"],
            created_at=datetime.now(),
        )
        if live_mode:
            return plan

        plan.target_status = self._weighted_choice(self.HISTORY_STATUSES)
        if plan.target_status == OrderStatus.CANCELLED:
            plan.cancel_from = random.choice(
                [OrderStatus.PENDING, OrderStatus.PENDING, OrderStatus.SHOPPING, OrderStatus.DELIVERING]
            )
            plan.tip_amount = 0.0
        if plan.target_status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
            plan.created_at = self._generate_order_time()
        else:
            # Open orders are recent so they still show up on the live feed
            plan.created_at = datetime.now() - timedelta(minutes=random.randint(5, 240))
        plan.claimed = plan.target_status != OrderStatus.PENDING or random.random() < 0.3
        if plan.cancel_from == OrderStatus.PENDING:
            plan.claimed = random.random() < 0.5
        return plan

    def _place(self, store: OrderStore, plan: OrderPlan) -> Order:
        return store.create_order(
            customer_id=plan.customer_id,
            lines=plan.lines,
            store_id=plan.store_id,
            delivery_fee=plan.delivery_fee,
            tip_amount=plan.tip_amount,
            delivery_latitude=plan.delivery_latitude,
            delivery_longitude=plan.delivery_longitude,
            created_at=plan.created_at,
        )

    def save_to_db(self, records: list[OrderPlan]) -> list[Order]:
        """Place live checkouts as pending orders."""
        store = OrderStore()
        orders = [self._place(store, plan) for plan in records]
        print(f"Saved {len(orders)} orders")
        return orders

    def _claim(self, store: OrderStore, order: Order, driver_id: str) -> Order:
        """Online drivers claim from the feed; offline ones are assigned by dispatch."""
        driver = self.driver_gen.get_driver(driver_id)
        if driver["is_online"]:
            return store.claim_order(order.order_id, driver_id)
        return store.assign_driver(order.order_id, driver_id, DISPATCH_ADMIN)

    def _shop(self, store: OrderStore, clock: SimClock, order: Order, driver: Actor) -> Order:
        for item in order.items:
            clock.advance(random.uniform(1, 4))
            outcome = self._weighted_choice(self.ITEM_OUTCOMES)
            found = None
            if outcome != ItemStatus.UNAVAILABLE and item.selected_weight is not None:
                found = round(item.selected_weight * random.uniform(0.9, 1.1), 2)
            notes = "Closest brand available" if outcome == ItemStatus.SUBSTITUTED else None
            store.update_item_status(item.order_item_id, outcome, driver, found_quantity=found, notes=notes)
        clock.advance(random.uniform(3, 10))
        return store.complete_shopping(order.order_id, driver)

    def replay(self, plan: OrderPlan, driver_id: str | None) -> Order:
        """Place a drafted order on a simulated clock and walk it to its target status."""
        clock = SimClock(plan.created_at)
        store = OrderStore(clock=clock)
        order = self._place(store, plan)
        stop_at = plan.cancel_from or plan.target_status

        if plan.claimed and driver_id:
            clock.advance(random.uniform(2, 15))
            order = self._claim(store, order, driver_id)
            driver = Actor(user_id=driver_id, role=UserRole.DRIVER,
                           name=self.driver_gen.get_driver(driver_id)["name"])

            if stop_at != OrderStatus.PENDING:
                clock.advance(random.uniform(10, 40))
                order = store.start_shopping(order.order_id, driver)
                if stop_at != OrderStatus.SHOPPING:
                    order = self._shop(store, clock, order, driver)
                    clock.advance(random.uniform(2, 8))
                    order = store.start_delivery(order.order_id, driver)
                    if stop_at == OrderStatus.DELIVERED:
                        clock.advance(random.uniform(10, 35))
                        order = store.mark_delivered(order.order_id, driver)
                elif plan.cancel_from is None:
                    # Leave some items mid-pick
                    for item in order.items[:random.randint(0, len(order.items))]:
                        clock.advance(random.uniform(1, 4))
                        store.update_item_status(item.order_item_id, ItemStatus.FOUND, driver)
                    order = store.get_order(order.order_id)
        elif stop_at != OrderStatus.PENDING:
            # Nobody free to take it; it stays on the feed
            return order

        if plan.cancel_from is not None:
            clock.advance(random.uniform(5, 30))
            canceller = Actor(user_id=plan.customer_id, role=UserRole.CUSTOMER)
            if random.random() < 0.3:
                canceller = DISPATCH_ADMIN
            order = store.cancel(order.order_id, canceller)
        return order

    def generate_history(self, count: int) -> list[Order]:
        """Generate orders spread over the past month at every lifecycle stage."""
        self._load_dependencies()
        plans = [self.generate_one(live_mode=False) for _ in range(count)]
        # Terminal orders first, oldest first, so drivers are free again before open ones are handed out
        plans.sort(key=lambda p: (p.target_status not in (OrderStatus.DELIVERED, OrderStatus.CANCELLED), p.created_at))

        orders = []
        for plan in plans:
            candidates = self.driver_gen.get_free_ids() if plan.claimed else []
            driver_id = random.choice(candidates) if candidates else None
            orders.append(self.replay(plan, driver_id))
        print(f"Generated {len(orders)} historical orders")
        return orders
