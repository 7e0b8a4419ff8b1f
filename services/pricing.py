"""
Pricing Valuator - line prices for unit-based and weight-based cart entries.

Unit-based lines are priced unit_price * quantity. Weight-based lines always
carry quantity 1 and are priced price_per_unit * selected_weight, falling
back to the flat price when the product has no per-unit price.
"""
import json
import uuid
from typing import Optional

import config
from models import CartLine, Product
from services.errors import QuantityValidationError, WeightValidationError
from services.storage import KeyValueStore


CART_STORAGE_KEY = "cart"


def unit_price_for(product: Product) -> float:
    if product.weight_based and product.price_per_unit is not None:
        return product.price_per_unit
    return product.price


def weight_unit_for(product: Product) -> str:
    return product.weight_unit or config.DEFAULT_WEIGHT_UNIT


def line_price(product: Product, quantity: int = 1, selected_weight: Optional[float] = None) -> float:
    if product.weight_based:
        weight = selected_weight if selected_weight is not None else config.MIN_WEIGHT
        return round(unit_price_for(product) * weight, 2)
    return round(product.price * quantity, 2)


def validate_weight(product: Product, weight: float):
    """Raise WeightValidationError naming the violated bound; return None when the weight is acceptable."""
    unit = weight_unit_for(product)
    if product.min_weight is not None and weight < product.min_weight:
        raise WeightValidationError("minimum", product.min_weight, unit)
    if weight < config.MIN_WEIGHT:
        raise WeightValidationError("minimum", config.MIN_WEIGHT, unit)
    if product.max_weight is not None and weight > product.max_weight:
        raise WeightValidationError("maximum", product.max_weight, unit)


def step_weight(product: Product, previous: float, delta: float) -> float:
    """Stepper semantics: floor at the minimum weight, then clamp to the product's bounds."""
    weight = max(config.MIN_WEIGHT, round(previous + delta, 2))
    if product.min_weight is not None:
        weight = max(weight, product.min_weight)
    if product.max_weight is not None:
        weight = min(weight, product.max_weight)
    return weight


def _validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise QuantityValidationError(f"Quantity must be a whole number, got {quantity!r}")
    return quantity


class Cart:
    """Pre-order cart keyed by product. One line per product.

    When a storage backend is given, the cart is written through to it after
    every successful mutation. Rejected edits never touch the stored copy.
    """

    def __init__(self, storage: KeyValueStore | None = None):
        self.storage = storage
        self._lines: dict[str, CartLine] = {}

    @classmethod
    def load(cls, storage: KeyValueStore) -> "Cart":
        cart = cls(storage)
        raw = storage.get(CART_STORAGE_KEY)
        if raw:
            for line in json.loads(raw):
                parsed = CartLine.model_validate(line)
                cart._lines[parsed.product.product_id] = parsed
        return cart

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    @property
    def subtotal(self) -> float:
        return round(sum(line.estimated_price for line in self._lines.values()), 2)

    def get_line(self, product_id: str) -> Optional[CartLine]:
        return self._lines.get(product_id)

    def add(self, product: Product, quantity: int = 1, weight: Optional[float] = None) -> CartLine:
        """Add a product. Re-adding merges into the existing line."""
        existing = self._lines.get(product.product_id)

        if product.weight_based:
            added = weight if weight is not None else config.MIN_WEIGHT
            if added <= 0:
                raise WeightValidationError("minimum", product.min_weight or config.MIN_WEIGHT, weight_unit_for(product))
            previous = (existing.selected_weight or 0.0) if existing else 0.0
            total = round(added + previous, 2)
            validate_weight(product, total)
            line = CartLine(
                line_id=existing.line_id if existing else str(uuid.uuid4()),
                product=product,
                quantity=1,
                selected_weight=total,
                estimated_price=line_price(product, selected_weight=total),
            )
        else:
            added = _validate_quantity(quantity)
            if added < 1:
                raise QuantityValidationError("Quantity must be at least 1")
            total = added + (existing.quantity if existing else 0)
            line = CartLine(
                line_id=existing.line_id if existing else str(uuid.uuid4()),
                product=product,
                quantity=total,
                estimated_price=line_price(product, quantity=total),
            )

        self._lines[product.product_id] = line
        self._persist()
        return line

    def set_quantity(self, product_id: str, quantity: int) -> Optional[CartLine]:
        """Set a unit-based line's quantity. Zero or less removes the line."""
        quantity = _validate_quantity(quantity)
        line = self._require(product_id)
        if line.product.weight_based:
            raise QuantityValidationError("Weight-based items have a fixed quantity of 1")
        if quantity <= 0:
            self.remove(product_id)
            return None
        updated = line.model_copy(update={
            "quantity": quantity,
            "estimated_price": line_price(line.product, quantity=quantity),
        })
        self._lines[product_id] = updated
        self._persist()
        return updated

    def adjust_weight(self, product_id: str, delta: float) -> CartLine:
        line = self._require_weighted(product_id)
        weight = step_weight(line.product, line.selected_weight or config.MIN_WEIGHT, delta)
        return self._store_weight(line, weight)

    def increment_weight(self, product_id: str) -> CartLine:
        return self.adjust_weight(product_id, config.WEIGHT_STEP)

    def decrement_weight(self, product_id: str) -> CartLine:
        return self.adjust_weight(product_id, -config.WEIGHT_STEP)

    def set_weight(self, product_id: str, weight: float) -> CartLine:
        line = self._require_weighted(product_id)
        validate_weight(line.product, weight)
        return self._store_weight(line, round(weight, 2))

    def remove(self, product_id: str):
        if self._lines.pop(product_id, None) is not None:
            self._persist()

    def clear(self):
        self._lines.clear()
        self._persist()

    def to_checkout_lines(self) -> list[dict]:
        """Lines in the shape accepted by order creation."""
        return [
            {
                "product_id": line.product.product_id,
                "quantity": line.quantity,
                "selected_weight": line.selected_weight,
            }
            for line in self._lines.values()
        ]

    def _store_weight(self, line: CartLine, weight: float) -> CartLine:
        updated = line.model_copy(update={
            "selected_weight": weight,
            "estimated_price": line_price(line.product, selected_weight=weight),
        })
        self._lines[line.product.product_id] = updated
        self._persist()
        return updated

    def _require(self, product_id: str) -> CartLine:
        line = self._lines.get(product_id)
        if line is None:
            raise KeyError(f"Product {product_id} is not in the cart")
        return line

    def _require_weighted(self, product_id: str) -> CartLine:
        line = self._require(product_id)
        if not line.product.weight_based:
            raise QuantityValidationError(f"{line.product.name} is not sold by weight")
        return line

    def _persist(self):
        if self.storage is None:
            return
        payload = [line.model_dump(mode="json") for line in self._lines.values()]
        self.storage.set(CART_STORAGE_KEY, json.dumps(payload))
