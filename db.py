import sqlite3
from contextlib import contextmanager

import config

DATABASE_PATH = config.DATABASE_PATH

TABLES = [
    "stores", "customers", "drivers", "products",
    "orders", "order_items", "timeline_events", "favorites",
]


def get_connection() -> sqlite3.Connection:
    DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)
    # Claims rely on BEGIN IMMEDIATE, so transactions are managed explicitly
    conn = sqlite3.connect(DATABASE_PATH, timeout=30.0, isolation_level=None)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def get_cursor():
    """Yield a cursor inside a write transaction; commit on success, roll back on error."""
    conn = get_connection()
    cursor = conn.cursor()
    try:
        cursor.execute("BEGIN IMMEDIATE")
        yield cursor
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_database(reset: bool = False):
    if reset and DATABASE_PATH.exists():
        DATABASE_PATH.unlink()

    conn = get_connection()
    cursor = conn.cursor()

    # Stores table
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS stores (
            store_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            address TEXT NOT NULL,
            village TEXT NOT NULL,
            latitude REAL NOT NULL,
            longitude REAL NOT NULL,
            is_active BOOLEAN DEFAULT TRUE,
            created_at TIMESTAMP NOT NULL
        )
    """)

    # Customers table
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS customers (
            customer_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT UNIQUE NOT NULL,
            phone TEXT NOT NULL,
            address TEXT NOT NULL,
            village TEXT NOT NULL,
            latitude REAL NOT NULL,
            longitude REAL NOT NULL,
            created_at TIMESTAMP NOT NULL
        )
    """)

    # Drivers table (is_online is the only state a driver owns)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS drivers (
            driver_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT UNIQUE NOT NULL,
            phone TEXT NOT NULL,
            vehicle_type TEXT NOT NULL,
            is_online BOOLEAN DEFAULT FALSE,
            created_at TIMESTAMP NOT NULL
        )
    """)

    # Catalog products
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS products (
            product_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            category TEXT NOT NULL,
            unit TEXT NOT NULL,
            price REAL NOT NULL,
            weight_based BOOLEAN DEFAULT FALSE,
            price_per_unit REAL,
            weight_unit TEXT,
            min_weight REAL,
            max_weight REAL,
            in_stock BOOLEAN DEFAULT TRUE
        )
    """)

    # Orders table
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS orders (
            order_id TEXT PRIMARY KEY,
            customer_id TEXT NOT NULL,
            store_id TEXT,
            driver_id TEXT,
            status TEXT NOT NULL,
            subtotal REAL NOT NULL,
            delivery_fee REAL NOT NULL,
            actual_delivery_fee REAL,
            tip_amount REAL NOT NULL DEFAULT 0,
            total REAL NOT NULL,
            created_at TIMESTAMP NOT NULL,
            accepted_at TIMESTAMP,
            shopping_started_at TIMESTAMP,
            shopping_completed_at TIMESTAMP,
            delivery_started_at TIMESTAMP,
            delivered_at TIMESTAMP,
            cancelled_at TIMESTAMP,
            delivery_address TEXT,
            delivery_latitude REAL,
            delivery_longitude REAL,
            delivery_distance REAL,
            estimated_time INTEGER,
            FOREIGN KEY (customer_id) REFERENCES customers(customer_id),
            FOREIGN KEY (store_id) REFERENCES stores(store_id),
            FOREIGN KEY (driver_id) REFERENCES drivers(driver_id)
        )
    """)

    # Order items table
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS order_items (
            order_item_id TEXT PRIMARY KEY,
            order_id TEXT NOT NULL,
            product_id TEXT,
            position INTEGER NOT NULL,
            quantity INTEGER NOT NULL,
            selected_weight REAL,
            unit_price REAL NOT NULL,
            price REAL NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            found_quantity REAL,
            notes TEXT,
            FOREIGN KEY (order_id) REFERENCES orders(order_id),
            FOREIGN KEY (product_id) REFERENCES products(product_id)
        )
    """)

    # Append-only order history
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS timeline_events (
            event_id TEXT PRIMARY KEY,
            order_id TEXT NOT NULL,
            event_type TEXT NOT NULL,
            actor_id TEXT,
            actor_role TEXT,
            actor_name TEXT,
            description TEXT NOT NULL,
            occurred_at TIMESTAMP NOT NULL,
            data TEXT,
            FOREIGN KEY (order_id) REFERENCES orders(order_id)
        )
    """)

    # Customer favorites
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS favorites (
            customer_id TEXT NOT NULL,
            product_id TEXT NOT NULL,
            created_at TIMESTAMP NOT NULL,
            PRIMARY KEY (customer_id, product_id)
        )
    """)

    # Create indexes for common queries
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_orders_driver ON orders(driver_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_orders_created ON orders(created_at)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_order_items_order ON order_items(order_id)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_timeline_order ON timeline_events(order_id, occurred_at)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_products_category ON products(category)")

    conn.close()
    print(f"Database initialized at {DATABASE_PATH}")


def get_table_counts() -> dict:
    counts = {}
    with get_cursor() as cursor:
        for table in TABLES:
            try:
                cursor.execute(f"SELECT COUNT(*) FROM {table}")
                counts[table] = cursor.fetchone()[0]
            except sqlite3.OperationalError:
                counts[table] = 0
    return counts
