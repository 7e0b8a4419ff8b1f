from .main import app
from .models import (
    AssignRequest,
    CheckoutLine,
    CheckoutRequest,
    ConfigUpdate,
    DriverRef,
    GenerationResponse,
    ItemStatusUpdate,
    OnlineUpdate,
    ServiceStatus,
    StatsResponse,
    StatusUpdate,
)

__all__ = [
    "app",
    "AssignRequest",
    "CheckoutLine",
    "CheckoutRequest",
    "ConfigUpdate",
    "DriverRef",
    "GenerationResponse",
    "ItemStatusUpdate",
    "OnlineUpdate",
    "ServiceStatus",
    "StatsResponse",
    "StatusUpdate",
]
