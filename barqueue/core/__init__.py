"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from barqueue.core.config import get_settings, setup_logging, Settings, EnvironmentMode, QueueBackend
from barqueue.core.exceptions import (
    BarQueueError,
    UnresolvedDrink,
    OutOfStock,
    OrderNotFound,
    DrinkNotFound,
    DuplicateDrink,
    InvalidStockValue,
    Unauthorized,
    CatalogError,
    TransportFailure,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "QueueBackend",
    "BarQueueError",
    "UnresolvedDrink",
    "OutOfStock",
    "OrderNotFound",
    "DrinkNotFound",
    "DuplicateDrink",
    "InvalidStockValue",
    "Unauthorized",
    "CatalogError",
    "TransportFailure",
]
