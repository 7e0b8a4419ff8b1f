import uuid
import random
from datetime import datetime, timedelta
from dataclasses import dataclass
from .base import BaseGenerator
from .geofence import get_all_zones, random_point_in_zone
from db import get_cursor


@dataclass
class Store:
    store_id: str
    name: str
    address: str
    village: str
    latitude: float
    longitude: float
    is_active: bool
    created_at: datetime


class StoreGenerator(BaseGenerator):
    # Store name patterns
    STORE_PREFIXES = [
        "Island", "Fresh", "Local", "Village", "Harbor", "Sunrise",
        "Reef", "Coconut", "Daily", "Corner", "Family", "Pacific",
    ]

    STORE_SUFFIXES = [
        "Market", "Grocery", "Foods", "Mart", "Provisions", "Pantry", "Store",
    ]

    def __init__(self, seed: int | None = 42):
        super().__init__(seed)
        self._used_names = set()
        self._zone_cycle = 0

    def _generate_unique_name(self) -> str:
        """Generate a unique store name."""
        for _ in range(100):  # Max attempts
            name = f"{random.choice(self.STORE_PREFIXES)} {random.choice(self.STORE_SUFFIXES)}"
            if name not in self._used_names:
                self._used_names.add(name)
                return name
        # Fallback: numbered name
        name = f"{random.choice(self.STORE_PREFIXES)} Market #{len(self._used_names) + 1}"
        self._used_names.add(name)
        return name

    def generate_one(self) -> Store:
        # Round-robin over villages so every zone gets a store before any gets two
        zones = get_all_zones()
        zone = zones[self._zone_cycle % len(zones)]
        self._zone_cycle += 1

        # Stores sit near the village center
        lat, lon = random_point_in_zone(zone, spread=0.4)
        days_ago = random.randint(30, 1825)

        return Store(
            store_id=str(uuid.uuid4()),
            name=self._generate_unique_name(),
            address=f"{self.fake.building_number()} {self.fake.street_name()}, {zone['village']}",
            village=zone["village"],
            latitude=lat,
            longitude=lon,
            is_active=True,
            created_at=datetime.now() - timedelta(days=days_ago),
        )

    def save_to_db(self, records: list[Store]):
        with get_cursor() as cursor:
            cursor.executemany(
                """
                INSERT OR IGNORE INTO stores
                (store_id, name, address, village, latitude, longitude, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (s.store_id, s.name, s.address, s.village,
                     s.latitude, s.longitude, s.is_active, s.created_at.isoformat())
                    for s in records
                ]
            )
        print(f"Saved {len(records)} stores")

    def get_all(self) -> list[dict]:
        with get_cursor() as cursor:
            cursor.execute(
                "SELECT store_id, village, latitude, longitude FROM stores WHERE is_active = 1"
            )
            return [dict(row) for row in cursor.fetchall()]
