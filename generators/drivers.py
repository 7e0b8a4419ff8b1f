import uuid
import random
from datetime import datetime, timedelta
from .base import BaseGenerator
from models import Driver
from db import get_cursor


class DriverGenerator(BaseGenerator):
    VEHICLE_TYPES = [
        ("sedan", 0.40),
        ("suv", 0.25),
        ("hatchback", 0.20),
        ("truck", 0.10),
        ("scooter", 0.05),
    ]

    def __init__(self, seed: int | None = 42, online_rate: float = 0.6):
        super().__init__(seed)
        self.online_rate = online_rate

    def _weighted_choice(self, choices: list[tuple]) -> str:
        items, weights = zip(*choices)
        return random.choices(items, weights=weights)[0]

    def generate_one(self) -> Driver:
        # Random signup date within last 3 years
        days_ago = random.randint(0, 1095)
        created_at = datetime.now() - timedelta(days=days_ago)

        return Driver(
            driver_id=str(uuid.uuid4()),
            name=self.fake.name(),
            email=self.fake.unique.email(),
            phone=self.fake.phone_number(),
            vehicle_type=self._weighted_choice(self.VEHICLE_TYPES),
            is_online=random.random() < self.online_rate,
            created_at=created_at,
        )

    def save_to_db(self, records: list[Driver]):
        with get_cursor() as cursor:
            cursor.executemany(
                """
                INSERT OR IGNORE INTO drivers
                (driver_id, name, email, phone, vehicle_type, is_online, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (d.driver_id, d.name, d.email, d.phone, d.vehicle_type,
                     d.is_online, d.created_at.isoformat())
                    for d in records
                ]
            )
        print(f"Saved {len(records)} drivers")

    def get_all_ids(self) -> list[str]:
        with get_cursor() as cursor:
            cursor.execute("SELECT driver_id FROM drivers ORDER BY created_at")
            return [row[0] for row in cursor.fetchall()]

    def get_driver(self, driver_id: str) -> dict:
        with get_cursor() as cursor:
            cursor.execute("SELECT name, is_online FROM drivers WHERE driver_id = ?", (driver_id,))
            return dict(cursor.fetchone())

    def get_free_ids(self) -> list[str]:
        """Drivers with no open order."""
        with get_cursor() as cursor:
            cursor.execute(
                """SELECT driver_id FROM drivers d
                   WHERE NOT EXISTS (
                       SELECT 1 FROM orders o
                       WHERE o.driver_id = d.driver_id
                         AND o.status IN ('pending', 'shopping', 'delivering')
                   )"""
            )
            return [row[0] for row in cursor.fetchall()]
