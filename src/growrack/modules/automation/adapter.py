"""
Collaborator interfaces for the rack automation engine.

The engine talks to three things it does not own:
- RuleStore: reads a rack's rules and writes back trigger times
- ActuatorChannel: carries commands to the rack's device gateway
- EventSink: receives audit events and dispatch failures

Loading rules and dispatching commands are the engine's only suspension
points, so those two are coroutines. Recording to the sink is synchronous
and must not block.

Concrete in-process implementations and test doubles live here too.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from typing import Deque, List, Optional, Sequence

from growrack.core.bus import Event, EventBus
from growrack.core.manager import RackManager

from .models import (
    ActuatorCommand,
    AutomatedEvent,
    AutomationRule,
    DispatchError,
    DispatchFailure,
    DispatchResult,
)

logger = logging.getLogger(__name__)


class RuleStore(ABC):
    """Read/write contract of the rule-storage collaborator."""

    @abstractmethod
    async def list_rules_for_rack(self, rack_id: str) -> Sequence[AutomationRule]:
        """
        Get a rack's rules in a stable order.

        Raises:
            StorageError (or any exception): If the rules cannot be read
        """
        pass

    @abstractmethod
    async def update_last_triggered(self, rule_id: str, timestamp: datetime) -> bool:
        """
        Persist a rule's last trigger time.

        Returns:
            True on success, False on failure
        """
        pass


class ActuatorChannel(ABC):
    """Outbound command channel to a rack's actuators."""

    @abstractmethod
    async def dispatch(self, rack_id: str, command: ActuatorCommand) -> DispatchResult:
        """
        Hand a command to the device gateway.

        Returns:
            ACCEPTED or REJECTED. May also raise or time out.
        """
        pass


class EventSink(ABC):
    """Append-only destination for automation audit records."""

    @abstractmethod
    def record_event(self, event: AutomatedEvent) -> None:
        pass

    @abstractmethod
    def record_failure(self, failure: DispatchFailure) -> None:
        pass


# =============================================================================
# In-process implementations
# =============================================================================


class RackManagerRuleStore(RuleStore):
    """RuleStore backed by the in-process RackManager."""

    def __init__(self, rack_manager: RackManager) -> None:
        self._manager = rack_manager

    async def list_rules_for_rack(self, rack_id: str) -> Sequence[AutomationRule]:
        return self._manager.rules_for_rack(rack_id)

    async def update_last_triggered(self, rule_id: str, timestamp: datetime) -> bool:
        return self._manager.record_trigger(rule_id, timestamp)


class MemoryEventSink(EventSink):
    """
    Keeps the most recent events and failures in ring buffers.

    Useful as a debugging history and in tests.
    """

    def __init__(self, history_size: int = 100) -> None:
        self._events: Deque[AutomatedEvent] = deque(maxlen=history_size)
        self._failures: Deque[DispatchFailure] = deque(maxlen=history_size)

    def record_event(self, event: AutomatedEvent) -> None:
        self._events.append(event)

    def record_failure(self, failure: DispatchFailure) -> None:
        self._failures.append(failure)

    @property
    def events(self) -> List[AutomatedEvent]:
        return list(self._events)

    @property
    def failures(self) -> List[DispatchFailure]:
        return list(self._failures)

    def get_history(
        self,
        rack_id: Optional[str] = None,
        limit: int = 20,
    ) -> List[AutomatedEvent]:
        """
        Get recorded events, newest first.

        Args:
            rack_id: Filter by rack (optional)
            limit: Maximum entries to return
        """
        result = []
        for event in reversed(self._events):
            if rack_id and event.rack_id != rack_id:
                continue
            result.append(event)
            if len(result) >= limit:
                break
        return result


class BusEventSink(EventSink):
    """Publishes automation records on the EventBus."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus

    def record_event(self, event: AutomatedEvent) -> None:
        self._bus.publish(
            Event(
                type="automation.executed",
                source="automation",
                rack_id=event.rack_id,
                payload=event.to_dict(),
                timestamp=event.timestamp,
            )
        )

    def record_failure(self, failure: DispatchFailure) -> None:
        self._bus.publish(
            Event(
                type="automation.dispatch_failed",
                source="automation",
                rack_id=failure.rack_id,
                payload=failure.to_dict(),
                timestamp=failure.timestamp,
            )
        )


class MockActuatorChannel(ActuatorChannel):
    """
    Mock channel for testing.

    Records dispatched commands and can be told to reject, raise, or stall.
    """

    def __init__(self) -> None:
        self._commands: list[tuple[str, ActuatorCommand]] = []
        self._reject = False
        self._error: Optional[Exception] = None
        self._delay: float = 0.0
        self._failures_left = 0

    def set_reject(self, reject: bool = True) -> None:
        """Reject every command."""
        self._reject = reject

    def set_error(self, error: Optional[Exception] = None) -> None:
        """Raise this error for every command (default: DispatchError)."""
        self._error = error if error is not None else DispatchError("gateway unreachable")

    def clear_error(self) -> None:
        self._error = None

    def fail_next(self, count: int = 1) -> None:
        """Reject only the next `count` dispatches."""
        self._failures_left = count

    def set_delay(self, seconds: float) -> None:
        """Stall each dispatch (for timeout and concurrency tests)."""
        self._delay = seconds

    def get_commands(self) -> list[tuple[str, ActuatorCommand]]:
        """Get dispatched commands as (rack_id, command) pairs."""
        return self._commands.copy()

    def clear_commands(self) -> None:
        self._commands.clear()

    # ActuatorChannel implementation

    async def dispatch(self, rack_id: str, command: ActuatorCommand) -> DispatchResult:
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        if self._reject:
            return DispatchResult.REJECTED
        if self._failures_left > 0:
            self._failures_left -= 1
            return DispatchResult.REJECTED
        self._commands.append((rack_id, command))
        return DispatchResult.ACCEPTED


class CompositeEventSink(EventSink):
    """Fans records out to several sinks; one failing sink does not stop the rest."""

    def __init__(self, sinks: Sequence[EventSink]) -> None:
        self._sinks = list(sinks)

    def record_event(self, event: AutomatedEvent) -> None:
        for sink in self._sinks:
            try:
                sink.record_event(event)
            except Exception as e:
                logger.error(f"Event sink {type(sink).__name__} failed: {e}", exc_info=True)

    def record_failure(self, failure: DispatchFailure) -> None:
        for sink in self._sinks:
            try:
                sink.record_failure(failure)
            except Exception as e:
                logger.error(f"Event sink {type(sink).__name__} failed: {e}", exc_info=True)
