"""
API Routes for the dealership squad.
"""

from . import communications, inventory, squads, tools

__all__ = ["communications", "inventory", "squads", "tools"]
