import uuid
import random
from datetime import datetime, timedelta
from .base import BaseGenerator
from .geofence import choose_zone, random_point_in_zone
from models import Customer
from db import get_cursor


class CustomerGenerator(BaseGenerator):
    def generate_one(self) -> Customer:
        zone = choose_zone()
        lat, lon = random_point_in_zone(zone)

        # Random signup date within last 2 years
        days_ago = random.randint(0, 730)
        created_at = datetime.now() - timedelta(days=days_ago)

        return Customer(
            customer_id=str(uuid.uuid4()),
            name=self.fake.name(),
            email=self.fake.unique.email(),
            phone=self.fake.phone_number(),
            address=f"{self.fake.street_address()}, {zone['village']}",
            village=zone["village"],
            latitude=lat,
            longitude=lon,
            created_at=created_at,
        )

    def save_to_db(self, records: list[Customer]):
        with get_cursor() as cursor:
            # Same seed twice yields the same emails; keep the first copy
            cursor.executemany(
                """
                INSERT OR IGNORE INTO customers
                (customer_id, name, email, phone, address, village,
                 latitude, longitude, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (c.customer_id, c.name, c.email, c.phone, c.address, c.village,
                     c.latitude, c.longitude, c.created_at.isoformat())
                    for c in records
                ]
            )
        print(f"Saved {len(records)} customers")

    def get_all(self) -> list[dict]:
        with get_cursor() as cursor:
            cursor.execute("SELECT customer_id, latitude, longitude FROM customers")
            return [dict(row) for row in cursor.fetchall()]
