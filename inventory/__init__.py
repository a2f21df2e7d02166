"""
Inventory module: matching, shareable links and stock import.
"""

from .matcher import (
    InventoryMatcher,
    MOCK_INVENTORY,
    criteria_from_profile,
    criteria_from_tool_args,
    seed_inventory,
)
from .links import ShareableLinkService
from .loader import InventoryLoader, InventoryRecord

__all__ = [
    "InventoryMatcher",
    "MOCK_INVENTORY",
    "criteria_from_profile",
    "criteria_from_tool_args",
    "seed_inventory",
    "ShareableLinkService",
    "InventoryLoader",
    "InventoryRecord",
]
