"""
RackModule: the plug-in contract for behavior attached to racks.
"""

from abc import ABC, abstractmethod
from typing import Dict


class RackModule(ABC):
    """
    Base class for rack modules.

    A module subscribes to the EventBus when attached, reads racks and rules
    through the RackManager, keeps whatever runtime state it needs, and
    publishes its own events back onto the bus.

    Each module owns one config blob per rack (rack.modules[module.id]),
    versioned by CURRENT_CONFIG_VERSION.
    """

    @property
    @abstractmethod
    def id(self) -> str:
        """Key under which the module's per-rack config is stored."""

    @property
    @abstractmethod
    def CURRENT_CONFIG_VERSION(self) -> int:
        """Version written into new per-rack config blobs."""

    @abstractmethod
    def attach(self, bus, rack_manager) -> None:
        """
        Wire the module into a running system.

        Args:
            bus: EventBus to subscribe and publish on
            rack_manager: RackManager holding racks, rules and module config
        """

    @abstractmethod
    def default_config(self) -> Dict:
        """Per-rack config used when a rack has none stored."""

    @abstractmethod
    def rack_config_schema(self) -> Dict:
        """JSON-schema-like description of the per-rack config, for UIs."""

    def migrate_config(self, config: Dict) -> Dict:
        """
        Bring a stored per-rack config up to CURRENT_CONFIG_VERSION.

        The base implementation assumes there is only one version so far.
        """
        return config

    def on_rack_config_changed(self, rack_id: str, config: Dict) -> None:
        """Called after a rack's config for this module was replaced."""

    def dump_state(self) -> Dict:
        """
        Runtime state worth keeping across restarts.

        The host decides where it is stored.
        """
        return {}

    def restore_state(self, state: Dict) -> None:
        """Load state previously returned by dump_state()."""
