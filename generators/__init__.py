from .customers import CustomerGenerator
from .drivers import DriverGenerator
from .products import ProductGenerator
from .stores import StoreGenerator
from .orders import OrderGenerator, OrderPlan, SimClock
from .seed import seed_reference_data

__all__ = [
    "CustomerGenerator",
    "DriverGenerator",
    "ProductGenerator",
    "StoreGenerator",
    "OrderGenerator",
    "OrderPlan",
    "SimClock",
    "seed_reference_data",
]
