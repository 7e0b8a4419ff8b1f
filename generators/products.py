import uuid
import random
from .base import BaseGenerator
from models import Product, ProductCategory
from db import get_cursor


class ProductGenerator(BaseGenerator):
    """
    Catalog generator. Two kinds of products:
    1. Unit-based - sold per each/pack/bottle at a flat price
    2. Weight-based - sold per lb, with optional min/max weight per order line
    """

    # (name, price, unit)
    UNIT_PRODUCTS = {
        ProductCategory.PRODUCE: [
            ("Avocado", 1.99, "each"),
            ("Coconut", 2.49, "each"),
            ("Lemons", 0.79, "each"),
            ("Bok Choy Bunch", 2.29, "bunch"),
            ("Cilantro", 1.19, "bunch"),
        ],
        ProductCategory.DAIRY: [
            ("Whole Milk", 7.49, "gallon"),
            ("Large Eggs", 6.99, "dozen"),
            ("Butter Salted", 5.99, "16oz"),
            ("Cheddar Cheese Block", 6.49, "8oz"),
            ("Greek Yogurt", 1.69, "5.3oz"),
        ],
        ProductCategory.BAKERY: [
            ("Pan de Sal", 4.99, "dozen"),
            ("Sourdough Loaf", 6.49, "each"),
            ("Hawaiian Sweet Rolls", 5.49, "12ct"),
        ],
        ProductCategory.PANTRY: [
            ("Calrose Rice", 18.99, "20lb bag"),
            ("Soy Sauce", 4.29, "bottle"),
            ("Spam Classic", 4.49, "12oz"),
            ("Coconut Milk", 2.79, "13.5oz"),
            ("Finadene Vinegar", 3.49, "bottle"),
            ("Instant Ramen", 0.99, "pack"),
        ],
        ProductCategory.BEVERAGES: [
            ("Bottled Water", 5.99, "24pk"),
            ("Orange Juice", 5.49, "52oz"),
            ("Iced Coffee", 3.99, "bottle"),
        ],
        ProductCategory.SNACKS: [
            ("Potato Chips", 4.49, "8oz"),
            ("Dried Mango", 5.99, "bag"),
        ],
        ProductCategory.HOUSEHOLD: [
            ("Paper Towels", 11.99, "6 rolls"),
            ("Dish Soap", 3.99, "bottle"),
        ],
    }

    # (name, price per lb, min weight, max weight)
    WEIGHT_PRODUCTS = {
        ProductCategory.PRODUCE: [
            ("Bananas", 0.89, None, None),
            ("Roma Tomatoes", 2.49, None, 5.0),
            ("Sweet Potatoes", 1.99, None, None),
            ("Yellow Onions", 1.49, None, 10.0),
            ("Red Grapes", 3.99, None, 4.0),
        ],
        ProductCategory.MEAT: [
            ("Chicken Thighs", 3.49, 1.0, 8.0),
            ("Pork Belly", 6.99, 1.0, 6.0),
            ("Beef Short Ribs", 11.99, 1.5, 6.0),
            ("Ground Beef 80/20", 5.99, 1.0, 5.0),
        ],
        ProductCategory.SEAFOOD: [
            ("Yellowfin Tuna Steak", 16.99, 0.5, 3.0),
            ("Reef Fish Whole", 8.99, 1.0, 6.0),
            ("Shrimp Large", 12.99, 0.5, 4.0),
        ],
    }

    def __init__(self, seed: int | None = 42, price_variance: float = 0.05):
        super().__init__(seed)
        self.price_variance = price_variance

    def _vary(self, price: float) -> float:
        return round(price * random.uniform(1 - self.price_variance, 1 + self.price_variance), 2)

    def generate_catalog(self) -> list[Product]:
        """Generate the complete catalog."""
        products = []
        for category, entries in self.UNIT_PRODUCTS.items():
            for name, price, unit in entries:
                products.append(Product(
                    product_id=str(uuid.uuid4()),
                    name=name,
                    category=category,
                    unit=unit,
                    price=self._vary(price),
                    in_stock=random.random() < 0.95,
                ))
        for category, entries in self.WEIGHT_PRODUCTS.items():
            for name, per_lb, min_weight, max_weight in entries:
                per_lb = self._vary(per_lb)
                products.append(Product(
                    product_id=str(uuid.uuid4()),
                    name=name,
                    category=category,
                    unit="lb",
                    price=per_lb,
                    weight_based=True,
                    price_per_unit=per_lb,
                    weight_unit="lb",
                    min_weight=min_weight,
                    max_weight=max_weight,
                    in_stock=random.random() < 0.95,
                ))
        return products

    def generate_one(self) -> Product:
        """Generate a single random product from the catalog templates."""
        return random.choice(self.generate_catalog())

    def save_to_db(self, records: list[Product]):
        with get_cursor() as cursor:
            cursor.executemany(
                """
                INSERT OR IGNORE INTO products
                (product_id, name, category, unit, price, weight_based,
                 price_per_unit, weight_unit, min_weight, max_weight, in_stock)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (p.product_id, p.name, p.category.value, p.unit, p.price, p.weight_based,
                     p.price_per_unit, p.weight_unit, p.min_weight, p.max_weight, p.in_stock)
                    for p in records
                ]
            )
        print(f"Saved {len(records)} products")

    def get_in_stock(self) -> list[Product]:
        with get_cursor() as cursor:
            cursor.execute("SELECT * FROM products WHERE in_stock = 1 ORDER BY category, name")
            return [
                Product(
                    product_id=row["product_id"],
                    name=row["name"],
                    category=row["category"],
                    unit=row["unit"],
                    price=row["price"],
                    weight_based=bool(row["weight_based"]),
                    price_per_unit=row["price_per_unit"],
                    weight_unit=row["weight_unit"],
                    min_weight=row["min_weight"],
                    max_weight=row["max_weight"],
                    in_stock=True,
                )
                for row in cursor.fetchall()
            ]
