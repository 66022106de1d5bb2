"""
Automation engine - routes readings to per-rack workers.

The engine owns one RackWorker per rack that has sent a reading, plus the
cooldown tracker all workers share. Workers for different racks run in
parallel on the event loop; each one is strictly sequential.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .adapter import ActuatorChannel, EventSink, RuleStore
from .cooldown import CooldownTracker
from .models import AutomationConfig, SensorReading
from .worker import Clock, CycleResult, RackWorker

logger = logging.getLogger(__name__)


class AutomationEngine:
    """
    Top-level rack automation engine.

    Responsibilities:
    - Route each reading to the worker for its rack
    - Create workers on a rack's first reading
    - Tear workers down when a rack is deactivated
    - Own the shared cooldown tracker and its persistence
    """

    STATE_VERSION = 1

    def __init__(
        self,
        rule_store: RuleStore,
        actuator: ActuatorChannel,
        event_sink: EventSink,
        config: Optional[AutomationConfig] = None,
        tracker: Optional[CooldownTracker] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = rule_store
        self._actuator = actuator
        self._sink = event_sink
        self._config = config or AutomationConfig()
        self._tracker = tracker or CooldownTracker()
        self._clock = clock

        self._workers: Dict[str, RackWorker] = {}

    @property
    def tracker(self) -> CooldownTracker:
        return self._tracker

    @property
    def active_racks(self) -> List[str]:
        """IDs of racks that currently have a worker."""
        return list(self._workers)

    def get_worker(self, rack_id: str) -> Optional[RackWorker]:
        return self._workers.get(rack_id)

    # =========================================================================
    # Reading Ingress
    # =========================================================================

    def submit(self, reading: SensorReading) -> bool:
        """
        Queue a reading on its rack's worker.

        Must be called from the event loop's thread. Never raises for
        processing problems; those stay inside the rack's worker.

        Returns:
            True if the reading was queued
        """
        return self._worker_for(reading.rack_id).submit(reading)

    async def process_reading(
        self,
        reading: SensorReading,
        now: Optional[datetime] = None,
    ) -> CycleResult:
        """
        Process a reading and wait for the cycle to finish.

        Args:
            reading: The sensor reading
            now: Current time (for testing)
        """
        return await self._worker_for(reading.rack_id).process(reading, now)

    def _worker_for(self, rack_id: str) -> RackWorker:
        worker = self._workers.get(rack_id)
        if worker is None:
            worker = RackWorker(
                rack_id=rack_id,
                rule_store=self._store,
                actuator=self._actuator,
                event_sink=self._sink,
                tracker=self._tracker,
                config=self._config,
                clock=self._clock,
            )
            self._workers[rack_id] = worker
            worker.start()
        return worker

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def deactivate_rack(self, rack_id: str) -> bool:
        """
        Tear down a rack's worker.

        Pending readings for the rack are dropped, never carried over to a
        later worker. Cooldown entries for the rack's rules are forgotten;
        stored trigger times re-seed them if the rack comes back.

        Returns:
            True if a worker existed
        """
        worker = self._workers.pop(rack_id, None)
        if worker is None:
            return False

        await worker.stop()
        # A reading during the stop may have started a new worker for this rack
        replacement = self._workers.get(rack_id)
        still_loaded = replacement.known_rule_ids if replacement else set()
        for rule_id in worker.known_rule_ids - still_loaded:
            self._tracker.forget(rule_id)
        logger.info(f"Deactivated automation for rack {rack_id}")
        return True

    async def shutdown(self) -> None:
        """Stop every worker."""
        workers = list(self._workers.values())
        self._workers.clear()
        await asyncio.gather(*(worker.stop() for worker in workers))
        logger.info(f"Automation engine stopped ({len(workers)} workers)")

    # =========================================================================
    # State Export/Import
    # =========================================================================

    def export_state(self) -> Dict[str, Any]:
        """Export engine state for persistence."""
        return {
            "version": self.STATE_VERSION,
            "cooldowns": self._tracker.export_state(),
        }

    def restore_state(self, state: Dict[str, Any]) -> None:
        """Restore engine state from persistence."""
        if state.get("version") != self.STATE_VERSION:
            logger.warning("Unknown state version, skipping restore")
            return

        self._tracker.restore_state(state.get("cooldowns", {}))
