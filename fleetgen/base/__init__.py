"""
fleetgen CLI Base Command Classes

Abstract base classes for consistent command structure.
"""

from .base_command import BaseCommand
from .fleet_command import FleetCommand

__all__ = [
    "BaseCommand",
    "FleetCommand",
]
