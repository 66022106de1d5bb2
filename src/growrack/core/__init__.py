"""
Core components of the growrack kernel.

This package contains:
- bus: Event Bus implementation
- rack: Rack dataclass
- manager: RackManager for racks, rules and module config
"""

from growrack.core.rack import Rack
from growrack.core.bus import Event, EventBus, EventFilter
from growrack.core.manager import RackManager

__all__ = [
    "Rack",
    "Event",
    "EventBus",
    "EventFilter",
    "RackManager",
]
