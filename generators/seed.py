from db import get_table_counts
from .customers import CustomerGenerator
from .drivers import DriverGenerator
from .products import ProductGenerator
from .stores import StoreGenerator


def seed_reference_data(
    num_customers: int = 50,
    num_drivers: int = 20,
    num_stores: int = 6,
    seed: int | None = 42,
) -> dict[str, int]:
    """Fill any empty reference table. Tables that already have rows are left alone."""
    counts = get_table_counts()
    created = {}

    if counts.get("stores", 0) == 0:
        print("🏪 Generating store locations...")
        store_gen = StoreGenerator(seed)
        stores = store_gen.generate_batch(num_stores)
        store_gen.save_to_db(stores)
        created["stores"] = len(stores)

    if counts.get("products", 0) == 0:
        print("🛒 Generating product catalog...")
        product_gen = ProductGenerator(seed)
        catalog = product_gen.generate_catalog()
        product_gen.save_to_db(catalog)
        created["products"] = len(catalog)

    if counts.get("customers", 0) == 0:
        print("👥 Generating customers...")
        customer_gen = CustomerGenerator(seed)
        customers = customer_gen.generate_batch(num_customers)
        customer_gen.save_to_db(customers)
        created["customers"] = len(customers)

    if counts.get("drivers", 0) == 0:
        print("🚗 Generating drivers...")
        driver_gen = DriverGenerator(seed)
        drivers = driver_gen.generate_batch(num_drivers)
        driver_gen.save_to_db(drivers)
        created["drivers"] = len(drivers)

    return created
