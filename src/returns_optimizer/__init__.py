"""Return Optimization Engine.

Recommends, for every product a pharmacy holds, the reverse distributor
that historically paid the highest per-unit credit, and groups products
into per-distributor shipment packages.
"""

from returns_optimizer.config import Settings
from returns_optimizer.errors import ConfigurationError, OptimizerError, ValidationError
from returns_optimizer.models import (
    InventoryLine,
    LookupItem,
    PriceObservation,
    Recommendation,
)
from returns_optimizer.service import ReturnOptimizer

__version__ = "0.1.0"
__all__ = [
    "Settings",
    "ReturnOptimizer",
    "InventoryLine",
    "PriceObservation",
    "Recommendation",
    "LookupItem",
    "OptimizerError",
    "ConfigurationError",
    "ValidationError",
]
