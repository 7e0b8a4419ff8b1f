"""
Configuration for the grocery dispatch core.

Centralizes the tunable parameters used by the driver feed, the pricing
valuator and the API client. Deployment-specific values can be overridden
through environment variables.
"""

import os
from pathlib import Path
from typing import Final

# =============================================================================
# STORAGE AND TRANSPORT
# =============================================================================

DATABASE_PATH: Path = Path(
    os.environ.get(
        "GROCERY_DISPATCH_DB",
        Path(__file__).parent / "database" / "grocery_dispatch.db",
    )
)
"""SQLite file holding the authoritative order store."""

API_BASE_URL: str = os.environ.get("GROCERY_DISPATCH_API_URL", "http://localhost:8000")
"""Base URL of the dispatch API used by the HTTP order service client."""

API_TIMEOUT_SECONDS: float = float(os.environ.get("GROCERY_DISPATCH_API_TIMEOUT", "10"))
"""Network timeout for a single API request. Timeouts surface as transport errors."""

# =============================================================================
# AVAILABLE ORDER FEED
# =============================================================================

HIGH_PAY_THRESHOLD: Final[float] = 15.0
"""Minimum estimated payout (dollars) for the high_pay filter."""

NEARBY_DISTANCE_KM: Final[float] = 3.0
"""Maximum store-to-customer distance for the nearby filter."""

ASAP_HOURS: Final[float] = 1.0
"""Orders younger than this are banded ASAP."""

TODAY_HOURS: Final[float] = 4.0
"""Orders younger than this (but not ASAP) are banded Today; older ones Today Evening."""

DEFAULT_FEED_SORT: Final[str] = "oldest"
"""Default feed ordering. Oldest first keeps claiming first-come first-served."""

FEED_REFRESH_SECONDS: float = float(os.environ.get("GROCERY_DISPATCH_FEED_REFRESH", "30"))
"""Interval for the optional background feed poller."""

# =============================================================================
# DELIVERY ESTIMATES
# =============================================================================

AVG_SPEED_KMH: Final[float] = 25.0
"""Average driving speed used to estimate drive time."""

STOP_TIME_MINUTES: Final[float] = 5.0
"""Time spent at the customer's door for handover."""

MINUTES_PER_ITEM: Final[float] = 2.0
"""Shopping time budget per order line."""

DEFAULT_ESTIMATED_MINUTES: Final[int] = 30
"""Estimate shown when an order carries no usable estimate."""

BASE_DELIVERY_FEE: Final[float] = 5.99
"""Delivery fee charged when checkout does not specify one."""

# =============================================================================
# WEIGHT-BASED PRICING
# =============================================================================

WEIGHT_STEP: Final[float] = 0.5
"""Increment used by the weight stepper."""

MIN_WEIGHT: Final[float] = 0.5
"""Hard floor for any selected weight."""

DEFAULT_WEIGHT_UNIT: Final[str] = "lb"
"""Unit shown for weight-based products without an explicit unit."""
