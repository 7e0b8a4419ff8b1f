"""
Delivery zones for demo data.

The service area is split into village zones. Stores, customers and drivers
are placed inside a zone so that generated orders stay within realistic
delivery distances (mostly 1-8 km).
"""

import math
import random
from typing import Optional

from services.geo import haversine_distance


# Village delivery zones with geofence boundaries
DELIVERY_ZONES = [
    {
        "village": "Hagåtña",
        "lat": 13.4757,
        "lon": 144.7489,
        "radius_km": 2.5,
        "weight": 0.12,
    },
    {
        "village": "Tamuning",
        "lat": 13.4887,
        "lon": 144.7797,
        "radius_km": 4.0,
        "weight": 0.25,
    },
    {
        "village": "Dededo",
        "lat": 13.5178,
        "lon": 144.8391,
        "radius_km": 6.0,
        "weight": 0.28,
    },
    {
        "village": "Mangilao",
        "lat": 13.4476,
        "lon": 144.8019,
        "radius_km": 4.0,
        "weight": 0.15,
    },
    {
        "village": "Yigo",
        "lat": 13.5360,
        "lon": 144.8886,
        "radius_km": 6.0,
        "weight": 0.12,
    },
    {
        "village": "Barrigada",
        "lat": 13.4683,
        "lon": 144.8003,
        "radius_km": 3.0,
        "weight": 0.08,
    },
]


def get_zone_for_coordinates(lat: float, lon: float) -> Optional[dict]:
    """Find which delivery zone contains the given coordinates."""
    for zone in DELIVERY_ZONES:
        if haversine_distance(lat, lon, zone["lat"], zone["lon"]) <= zone["radius_km"]:
            return zone
    return None


def get_all_zones() -> list[dict]:
    return DELIVERY_ZONES


def get_zone_weights() -> list[float]:
    return [zone["weight"] for zone in DELIVERY_ZONES]


def choose_zone() -> dict:
    return random.choices(DELIVERY_ZONES, weights=get_zone_weights())[0]


def random_point_in_zone(zone: dict, spread: float = 1.0) -> tuple[float, float]:
    """Uniform point within `spread` of the zone radius."""
    r = zone["radius_km"] * spread * math.sqrt(random.random())
    theta = random.uniform(0, 2 * math.pi)

    # Convert to lat/lon offset
    lat_offset = (r * math.cos(theta)) / 111.0
    lon_offset = (r * math.sin(theta)) / (111.0 * math.cos(math.radians(zone["lat"])))

    return zone["lat"] + lat_offset, zone["lon"] + lon_offset
