"""
Rack dataclass.

A Rack is a physical growing unit: sensors plus a watering pump and a grow light.
"""

from dataclasses import dataclass, field
from typing import Dict


@dataclass
class Rack:
    """
    A growing rack known to the system.

    Attributes:
        id: Unique identifier for this rack
        name: Human-readable name
        is_active: False once the rack is deactivated or deleted
        modules: Per-module configuration blobs
    """

    id: str
    name: str
    is_active: bool = True
    modules: Dict[str, Dict] = field(default_factory=dict)
