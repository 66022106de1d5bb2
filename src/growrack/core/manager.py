"""
RackManager for racks, automation rules and module configuration.

The RackManager owns the rack registry and the rule definitions, not the behavior.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional
import logging

from growrack.core.rack import Rack

if TYPE_CHECKING:
    from growrack.modules.automation.models import AutomationRule

logger = logging.getLogger(__name__)


class RackManager:
    """
    Manages the rack registry and the rules attached to each rack.

    Responsibilities:
    - Store racks and their active flag
    - Store automation rules per rack in a stable order
    - Record rule trigger timestamps written back by the engine
    - Store per-rack module config

    Does NOT evaluate rules or talk to devices.
    """

    def __init__(self) -> None:
        """Initialize an empty rack manager."""
        self._racks: Dict[str, Rack] = {}
        self._rules: Dict[str, "AutomationRule"] = {}

    # =========================================================================
    # Racks
    # =========================================================================

    def create_rack(
        self,
        id: str,
        name: str,
    ) -> Rack:
        """
        Register a new rack.

        Args:
            id: Unique identifier
            name: Human-readable name

        Returns:
            The created Rack

        Raises:
            ValueError: If rack ID already exists
        """
        if id in self._racks:
            raise ValueError(f"Rack with id '{id}' already exists")

        rack = Rack(id=id, name=name)
        self._racks[id] = rack
        logger.info(f"Created rack: {id} ({name})")

        return rack

    def get_rack(self, rack_id: str) -> Optional[Rack]:
        """Get a rack by ID, or None if not found."""
        return self._racks.get(rack_id)

    def all_racks(self) -> List[Rack]:
        """Get all racks, active or not."""
        return list(self._racks.values())

    def active_racks(self) -> List[Rack]:
        """Get racks that are currently active."""
        return [rack for rack in self._racks.values() if rack.is_active]

    def is_active(self, rack_id: str) -> bool:
        """True if the rack exists and is active."""
        rack = self._racks.get(rack_id)
        return rack is not None and rack.is_active

    def deactivate_rack(self, rack_id: str) -> None:
        """
        Mark a rack as inactive.

        Rules are kept so the rack can be reactivated later.

        Raises:
            ValueError: If rack doesn't exist
        """
        rack = self.get_rack(rack_id)
        if not rack:
            raise ValueError(f"Rack '{rack_id}' does not exist")

        rack.is_active = False
        logger.info(f"Deactivated rack: {rack_id}")

    def activate_rack(self, rack_id: str) -> None:
        """
        Mark a rack as active again.

        Raises:
            ValueError: If rack doesn't exist
        """
        rack = self.get_rack(rack_id)
        if not rack:
            raise ValueError(f"Rack '{rack_id}' does not exist")

        rack.is_active = True
        logger.info(f"Activated rack: {rack_id}")

    def delete_rack(self, rack_id: str) -> List[str]:
        """
        Delete a rack and all of its rules.

        Returns:
            IDs of the rules that were deleted with the rack

        Raises:
            ValueError: If rack doesn't exist
        """
        if rack_id not in self._racks:
            raise ValueError(f"Rack '{rack_id}' does not exist")

        removed = [rule_id for rule_id, rule in self._rules.items() if rule.rack_id == rack_id]
        for rule_id in removed:
            del self._rules[rule_id]

        del self._racks[rack_id]
        logger.info(f"Deleted rack: {rack_id} ({len(removed)} rules removed)")
        return removed

    # =========================================================================
    # Rules
    # =========================================================================

    def add_rule(self, rule: "AutomationRule") -> None:
        """
        Store a rule, replacing any existing rule with the same ID.

        Args:
            rule: An already-validated automation rule

        Raises:
            ValueError: If the rule's rack doesn't exist
        """
        if rule.rack_id not in self._racks:
            raise ValueError(f"Rack '{rule.rack_id}' does not exist")

        self._rules[rule.id] = rule
        logger.debug(f"Stored rule {rule.id} ({rule.name}) for rack {rule.rack_id}")

    def get_rule(self, rule_id: str) -> Optional["AutomationRule"]:
        """Get a rule by ID, or None if not found."""
        return self._rules.get(rule_id)

    def remove_rule(self, rule_id: str) -> bool:
        """
        Remove a rule.

        Returns:
            True if the rule was removed, False if not found
        """
        if self._rules.pop(rule_id, None) is None:
            return False
        logger.debug(f"Removed rule {rule_id}")
        return True

    def rules_for_rack(self, rack_id: str) -> List["AutomationRule"]:
        """
        Get the rules attached to a rack in evaluation order.

        Order is creation time, then rule ID. Rules without a creation
        time sort before timestamped ones, by ID.
        """
        rules = [rule for rule in self._rules.values() if rule.rack_id == rack_id]
        return sorted(rules, key=_rule_order_key)

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> None:
        """
        Enable or disable a rule.

        Raises:
            ValueError: If rule doesn't exist
        """
        rule = self.get_rule(rule_id)
        if not rule:
            raise ValueError(f"Rule '{rule_id}' does not exist")
        rule.is_enabled = enabled

    def record_trigger(self, rule_id: str, timestamp: datetime) -> bool:
        """
        Write back a rule's last trigger time and bump its trigger count.

        lastTriggeredAt never moves backwards: an older timestamp is ignored
        but still reported as a successful write.

        Returns:
            True on success, False if the rule no longer exists
        """
        rule = self._rules.get(rule_id)
        if rule is None:
            logger.warning(f"Cannot record trigger for unknown rule {rule_id}")
            return False

        if rule.last_triggered_at is None or timestamp > rule.last_triggered_at:
            rule.last_triggered_at = timestamp
        rule.trigger_count += 1
        return True

    # =========================================================================
    # Module config
    # =========================================================================

    def set_module_config(
        self,
        rack_id: str,
        module_id: str,
        config: Dict,
    ) -> None:
        """
        Set module configuration for a rack.

        Args:
            rack_id: The rack ID
            module_id: The module ID
            config: Module configuration dict

        Raises:
            ValueError: If rack doesn't exist
        """
        rack = self.get_rack(rack_id)
        if not rack:
            raise ValueError(f"Rack '{rack_id}' does not exist")

        rack.modules[module_id] = config
        logger.debug(f"Set config for module '{module_id}' on rack '{rack_id}'")

    def get_module_config(
        self,
        rack_id: str,
        module_id: str,
    ) -> Optional[Dict]:
        """
        Get module configuration for a rack.

        Returns:
            Module configuration dict or None if not set
        """
        rack = self.get_rack(rack_id)
        if not rack:
            return None
        return rack.modules.get(module_id)


def _rule_order_key(rule: "AutomationRule") -> tuple:
    if rule.created_at is None:
        return (0, "", rule.id)
    return (1, rule.created_at, rule.id)
