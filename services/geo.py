import math

import config


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points in kilometers using Haversine formula."""
    R = 6371  # Earth's radius in km
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)
    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def estimate_delivery_minutes(item_count: int, distance_km: float) -> int:
    """Shopping time per item, drive time at average speed, plus the handover stop."""
    shopping = item_count * config.MINUTES_PER_ITEM
    driving = (distance_km / config.AVG_SPEED_KMH) * 60
    return int(round(shopping + driving + config.STOP_TIME_MINUTES))
