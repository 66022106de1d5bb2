"""
Rack-aware event bus.

Events are delivered synchronously, in subscription order, on the caller's
thread. Sensor ingress publishes readings here; modules publish what they did.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Callable, Dict, List, Optional, Tuple
import logging

from growrack.core.manager import RackManager

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class Event:
    """
    A domain event in the growrack system.

    Attributes:
        type: Dotted event type (e.g., "sensor.reading", "automation.executed")
        source: Who published it (e.g., "mqtt", "automation")
        rack_id: Rack the event concerns, if any
        payload: Type-specific data
        timestamp: When it happened (UTC)
    """

    type: str
    source: str
    rack_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utc_now)


class EventFilter:
    """
    Selects which events reach a subscriber.

    event_type matches exactly, or by prefix when it ends in ".*"
    ("automation.*" matches "automation.executed"). With active_only set,
    events for racks that are unknown or deactivated are dropped.
    """

    def __init__(
        self,
        event_type: Optional[str] = None,
        rack_id: Optional[str] = None,
        active_only: bool = False,
    ):
        self.event_type = event_type
        self.rack_id = rack_id
        self.active_only = active_only

    def _type_matches(self, event_type: str) -> bool:
        if self.event_type is None:
            return True
        if self.event_type.endswith(".*"):
            return event_type.startswith(self.event_type[:-1])
        return event_type == self.event_type

    def matches(self, event: Event, rack_manager: Optional[RackManager] = None) -> bool:
        """
        Check an event against this filter.

        Args:
            event: Candidate event
            rack_manager: Needed for active_only; without it that check is skipped
        """
        if not self._type_matches(event.type):
            return False

        if self.rack_id is not None and event.rack_id != self.rack_id:
            return False

        if self.active_only and rack_manager is not None and event.rack_id:
            return rack_manager.is_active(event.rack_id)

        return True

    def __repr__(self) -> str:
        return (
            f"EventFilter(event_type={self.event_type!r}, rack_id={self.rack_id!r}, "
            f"active_only={self.active_only})"
        )


EventHandler = Callable[[Event], None]


class EventBus:
    """
    Synchronous publish/subscribe for rack events.

    A handler that raises is logged and skipped; delivery to the remaining
    handlers continues.
    """

    def __init__(self) -> None:
        self._subscriptions: List[Tuple[EventFilter, EventHandler]] = []
        self._rack_manager: Optional[RackManager] = None

    def set_rack_manager(self, rack_manager: RackManager) -> None:
        """Give the bus the RackManager that active_only filters consult."""
        self._rack_manager = rack_manager

    def subscribe(
        self,
        handler: EventHandler,
        event_filter: Optional[EventFilter] = None,
    ) -> Callable[[], None]:
        """
        Register a handler.

        Args:
            handler: Called with each matching Event
            event_filter: Which events to deliver (None = everything)

        Returns:
            A callable that removes this subscription
        """
        subscription = (event_filter or EventFilter(), handler)
        self._subscriptions.append(subscription)
        logger.debug(f"Subscribed {_name(handler)} with {subscription[0]}")

        def _remove() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return _remove

    def publish(self, event: Event) -> int:
        """
        Deliver an event to every matching handler.

        Returns:
            Number of handlers the event was delivered to
        """
        logger.debug(f"Publishing {event.type} from {event.source} (rack {event.rack_id})")

        delivered = 0
        for event_filter, handler in list(self._subscriptions):
            if not event_filter.matches(event, self._rack_manager):
                continue
            delivered += 1
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Handler {_name(handler)} failed on {event.type}: {e}",
                    exc_info=True,
                )
        return delivered

    def unsubscribe(self, handler: EventHandler) -> None:
        """Remove every subscription of a handler."""
        self._subscriptions = [s for s in self._subscriptions if s[1] != handler]
        logger.debug(f"Unsubscribed {_name(handler)}")


def _name(handler: EventHandler) -> str:
    return getattr(handler, "__name__", repr(handler))
