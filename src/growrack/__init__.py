"""
growrack: automation engine for growing racks.

This library turns periodic sensor readings into actuator commands:
- Rack registry and rule storage
- Rack-aware Event Bus
- Module-based behavior plug-ins
- Threshold rules with cooldowns and per-channel conflict resolution
"""

from growrack.core.rack import Rack
from growrack.core.bus import Event, EventBus, EventFilter
from growrack.core.manager import RackManager

__version__ = "0.1.0"

__all__ = [
    "Rack",
    "Event",
    "EventBus",
    "EventFilter",
    "RackManager",
]
