"""
AutomationModule implementation.

Feeds sensor readings from the event bus into the automation engine and
publishes what the engine executed.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from growrack.modules.base import RackModule
from growrack.core.bus import Event, EventBus, EventFilter
from growrack.core.manager import RackManager

from .adapter import (
    ActuatorChannel,
    BusEventSink,
    CompositeEventSink,
    EventSink,
    MemoryEventSink,
    RackManagerRuleStore,
)
from .engine import AutomationEngine
from .models import AutomationConfig, AutomationRule, SensorReading
from .validation import parse_rule, validate_rule
from .worker import Clock, CycleResult

logger = logging.getLogger(__name__)


class AutomationModule(RackModule):
    """
    Module that runs rack automation rules.

    Subscribes to:
    - sensor.reading: payload is a device reading, rack_id on the event
    - rack.deactivated: tears down the rack's worker

    Publishes:
    - automation.executed: one per cycle that executed actions
    - automation.dispatch_failed: one per command the channel did not take
    """

    def __init__(
        self,
        actuator: Optional[ActuatorChannel] = None,
        config: Optional[AutomationConfig] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Initialize the automation module.

        Args:
            actuator: Command channel to the racks. Required for the engine
                to start; can be set later via set_actuator().
            config: Engine configuration (defaults apply if omitted)
            clock: Time source for cooldown math (for testing)
        """
        self._bus: Optional[EventBus] = None
        self._rack_manager: Optional[RackManager] = None
        self._actuator: Optional[ActuatorChannel] = actuator
        self._config = config or AutomationConfig()
        self._clock = clock
        self._history = MemoryEventSink(self._config.history_size)
        self._engine: Optional[AutomationEngine] = None
        self._teardowns: Set[asyncio.Task] = set()

    @property
    def id(self) -> str:
        return "automation"

    @property
    def CURRENT_CONFIG_VERSION(self) -> int:
        return 1

    @property
    def engine(self) -> Optional[AutomationEngine]:
        return self._engine

    @property
    def config(self) -> AutomationConfig:
        return self._config

    def set_actuator(self, actuator: ActuatorChannel) -> None:
        """
        Set the actuator channel.

        Must be called before readings can be processed if not provided in
        the constructor.
        """
        self._actuator = actuator
        if self._bus and self._rack_manager and not self._engine:
            self._build_engine()

    def attach(self, bus: EventBus, rack_manager: RackManager) -> None:
        """
        Attach the automation module to the kernel.

        Subscribes to reading and rack lifecycle events and builds the engine.
        """
        logger.info("Attaching AutomationModule")
        self._bus = bus
        self._rack_manager = rack_manager

        bus.subscribe(
            self._on_sensor_reading,
            EventFilter(event_type="sensor.reading", active_only=True),
        )
        bus.subscribe(
            self._on_rack_deactivated,
            EventFilter(event_type="rack.deactivated"),
        )

        if not self._actuator:
            logger.warning(
                "AutomationModule attached without actuator channel. "
                "Readings will be ignored until set_actuator() is called."
            )
            return

        self._build_engine()
        logger.info("AutomationModule ready")

    def _build_engine(self) -> None:
        sinks: List[EventSink] = [self._history]
        if self._bus:
            sinks.append(BusEventSink(self._bus))

        self._engine = AutomationEngine(
            rule_store=RackManagerRuleStore(self._rack_manager),
            actuator=self._actuator,
            event_sink=CompositeEventSink(sinks),
            config=self._config,
            clock=self._clock,
        )

    # =========================================================================
    # Event Handlers
    # =========================================================================

    def _on_sensor_reading(self, event: Event) -> None:
        """Handle sensor reading events."""
        if not self._engine or not self._config.enabled:
            logger.debug("Automation disabled or no engine, skipping reading")
            return

        rack_id = event.rack_id
        if not rack_id or not self._rack_manager.is_active(rack_id):
            logger.debug(f"Dropping reading for unknown or inactive rack {rack_id}")
            return

        if not self.is_enabled_for(rack_id):
            logger.debug(f"Automation disabled for rack {rack_id}")
            return

        observed_at = None if "observedAt" in event.payload else event.timestamp
        try:
            reading = SensorReading.from_dict(event.payload, rack_id=rack_id, observed_at=observed_at)
        except ValueError as e:
            logger.warning(f"Ignoring malformed reading for rack {rack_id}: {e}")
            return

        self._engine.submit(reading)

    def _on_rack_deactivated(self, event: Event) -> None:
        """Handle rack deactivation events."""
        if not self._engine or not event.rack_id:
            return
        self._schedule_teardown(event.rack_id)

    def _schedule_teardown(self, rack_id: str) -> None:
        # Called from sync bus handlers; the teardown itself must be awaited
        task = asyncio.get_running_loop().create_task(self._engine.deactivate_rack(rack_id))
        self._teardowns.add(task)
        task.add_done_callback(self._teardowns.discard)

    # =========================================================================
    # Public API
    # =========================================================================

    def is_enabled_for(self, rack_id: str) -> bool:
        """Check the per-rack enabled flag (default: enabled)."""
        if not self._rack_manager:
            return False
        config = self._rack_manager.get_module_config(rack_id, self.id)
        if not config:
            return True
        return self.migrate_config(config).get("enabled", True)

    def add_rule(self, rule: AutomationRule) -> None:
        """
        Validate and store a rule.

        Raises:
            RuleValidationError: If the rule is malformed
            RuntimeError: If the module is not attached
        """
        if not self._rack_manager:
            raise RuntimeError("Module not attached")

        validate_rule(rule)
        self._rack_manager.add_rule(rule)
        logger.info(f"Added rule {rule.id} ({rule.name!r}) to rack {rule.rack_id}")

    def add_rule_from_dict(self, data: Dict[str, Any]) -> AutomationRule:
        """Parse, validate and store a rule document."""
        rule = parse_rule(data)
        self.add_rule(rule)
        return rule

    def remove_rule(self, rule_id: str) -> bool:
        """
        Remove a rule.

        Returns:
            True if rule was removed, False if not found
        """
        if not self._rack_manager:
            raise RuntimeError("Module not attached")

        removed = self._rack_manager.remove_rule(rule_id)
        if removed:
            if self._engine:
                self._engine.tracker.forget(rule_id)
            logger.info(f"Removed rule {rule_id}")
        return removed

    def get_rules(self, rack_id: str) -> List[AutomationRule]:
        """Get all rules for a rack in evaluation order."""
        if not self._rack_manager:
            return []
        return self._rack_manager.rules_for_rack(rack_id)

    async def process_reading(self, reading: SensorReading) -> Optional[CycleResult]:
        """Run a reading through the engine and wait for the result."""
        if not self._engine:
            logger.debug("No engine, skipping reading")
            return None
        return await self._engine.process_reading(reading)

    async def shutdown(self) -> None:
        """Stop all rack workers."""
        if self._teardowns:
            await asyncio.gather(*self._teardowns, return_exceptions=True)
        if self._engine:
            await self._engine.shutdown()

    def get_history(
        self,
        rack_id: Optional[str] = None,
        limit: int = 20,
    ) -> List[Dict]:
        """
        Get recent automation events.

        Args:
            rack_id: Filter by rack (optional)
            limit: Maximum entries to return

        Returns:
            List of event dicts (newest first)
        """
        return [event.to_dict() for event in self._history.get_history(rack_id, limit)]

    # =========================================================================
    # RackModule Interface
    # =========================================================================

    def default_config(self) -> Dict:
        """Get default per-rack automation configuration."""
        return {
            "version": self.CURRENT_CONFIG_VERSION,
            "enabled": True,
        }

    def rack_config_schema(self) -> Dict:
        """
        Get configuration schema for the automation module.

        Returns a JSON-schema-like structure for UI rendering.
        """
        return {
            "type": "object",
            "properties": {
                "version": {
                    "type": "integer",
                    "title": "Config Version",
                    "readOnly": True,
                },
                "enabled": {
                    "type": "boolean",
                    "title": "Enable Automation",
                    "description": "Run automation rules for this rack",
                    "default": True,
                },
            },
            "required": ["version", "enabled"],
        }

    def on_rack_config_changed(self, rack_id: str, config: Dict) -> None:
        """
        Tear the rack's worker down when automation is switched off for it.

        Must be called from the event loop's thread.
        """
        if self._engine and not self.migrate_config(config).get("enabled", True):
            self._schedule_teardown(rack_id)

    def dump_state(self) -> Dict:
        """Export module state for persistence."""
        if not self._engine:
            return {}
        return self._engine.export_state()

    def restore_state(self, state: Dict) -> None:
        """Restore module state from persistence."""
        if not self._engine:
            logger.warning("Cannot restore state: engine not initialized")
            return
        self._engine.restore_state(state)
        logger.info("Restored automation module state")
