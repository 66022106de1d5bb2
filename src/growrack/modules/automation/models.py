"""
Data models for the rack automation engine.

Defines sensor readings, rule conditions and actions, actuator commands,
and the audit records the engine produces.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


# Default pump run time applied at the input boundary when a start action omits it
DEFAULT_WATERING_DURATION_MS = 5000

MIN_WATERING_DURATION_MS = 1000
MAX_WATERING_DURATION_MS = 60000


# =============================================================================
# Errors
# =============================================================================


class RuleValidationError(ValueError):
    """A rule definition is malformed (bad threshold, duration, or empty rule)."""


class StorageError(RuntimeError):
    """Rule storage could not be read or written."""


class DispatchError(RuntimeError):
    """The actuator channel failed to take a command."""


# =============================================================================
# Enums
# =============================================================================


class Metric(Enum):
    """Sensor metrics a rule can put a threshold on."""

    MOISTURE = "moisture"  # Soil moisture, %
    TEMPERATURE = "temperature"  # Air temperature, °C
    HUMIDITY = "humidity"  # Relative humidity, %
    LIGHT_LEVEL = "lightLevel"  # Light, lux


class Channel(Enum):
    """Actuator channels on a rack. Declaration order is dispatch order."""

    WATERING = "watering"
    GROW_LIGHT = "growLight"


class WateringMode(Enum):
    START = "start"
    STOP = "stop"


class LightMode(Enum):
    ON = "on"
    OFF = "off"


class DispatchResult(Enum):
    """Outcome reported by the actuator channel."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"


class DispatchPolicy(Enum):
    """How the worker treats the outcome of a dispatch."""

    FIRE_AND_FORGET = "fire_and_forget"  # Failures logged, action still reported
    ACKNOWLEDGED = "acknowledged"  # Only accepted commands count as executed


# =============================================================================
# Sensor Reading
# =============================================================================


def _utc_now() -> datetime:
    """Get current UTC time (for default factory)."""
    return datetime.now(UTC)


@dataclass(frozen=True)
class SensorReading:
    """One environmental observation from a rack."""

    rack_id: str
    temperature: float  # °C, [-50, 100]
    humidity: float  # %, [0, 100]
    moisture: float  # %, [0, 100]
    light_level: float  # lux, >= 0
    observed_at: datetime = field(default_factory=_utc_now)

    def value_of(self, metric: Metric) -> float:
        """Get the reading's value for a metric."""
        if metric is Metric.MOISTURE:
            return self.moisture
        elif metric is Metric.TEMPERATURE:
            return self.temperature
        elif metric is Metric.HUMIDITY:
            return self.humidity
        elif metric is Metric.LIGHT_LEVEL:
            return self.light_level
        raise TypeError(f"Unknown metric: {metric!r}")

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        rack_id: Optional[str] = None,
        observed_at: Optional[datetime] = None,
    ) -> "SensorReading":
        """
        Parse a device payload.

        Args:
            data: Payload with temperature, humidity, moisture and lightLevel
            rack_id: Rack the payload came from (overrides data["rackId"])
            observed_at: Observation time (overrides data["observedAt"])

        Raises:
            ValueError: If the rack ID or a metric is missing
        """
        rack = rack_id or data.get("rackId")
        if not rack:
            raise ValueError("Sensor reading has no rack ID")

        if observed_at is None:
            raw = data.get("observedAt")
            observed_at = datetime.fromisoformat(raw) if raw else _utc_now()
        observed_at = _as_utc(observed_at)

        try:
            return cls(
                rack_id=rack,
                temperature=float(data["temperature"]),
                humidity=float(data["humidity"]),
                moisture=float(data["moisture"]),
                light_level=float(data["lightLevel"]),
                observed_at=observed_at,
            )
        except KeyError as e:
            raise ValueError(f"Sensor reading is missing {e.args[0]}") from e


# =============================================================================
# Conditions
# =============================================================================


@dataclass(frozen=True)
class Threshold:
    """Strict bounds on one metric. A missing bound is unconstrained."""

    less_than: Optional[float] = None  # Value must be < this
    greater_than: Optional[float] = None  # Value must be > this

    @property
    def is_unbounded(self) -> bool:
        return self.less_than is None and self.greater_than is None

    def to_dict(self) -> Dict[str, float]:
        result: Dict[str, float] = {}
        if self.less_than is not None:
            result["lessThan"] = self.less_than
        if self.greater_than is not None:
            result["greaterThan"] = self.greater_than
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Threshold":
        if not isinstance(data, dict):
            raise RuleValidationError(f"Threshold must be an object, got {data!r}")
        return cls(
            less_than=data.get("lessThan"),
            greater_than=data.get("greaterThan"),
        )


class RuleCondition:
    """
    Thresholds per metric, combined with AND.

    Metrics without a threshold are not constrained. An empty condition
    set never matches.
    """

    __slots__ = ("_thresholds",)

    def __init__(self, thresholds: Optional[Mapping[Metric, Threshold]] = None) -> None:
        ordered = {m: thresholds[m] for m in Metric if thresholds and m in thresholds}
        self._thresholds: Mapping[Metric, Threshold] = MappingProxyType(ordered)

    @classmethod
    def of(
        cls,
        *,
        moisture: Optional[Threshold] = None,
        temperature: Optional[Threshold] = None,
        humidity: Optional[Threshold] = None,
        light_level: Optional[Threshold] = None,
    ) -> "RuleCondition":
        """Build a condition set from keyword thresholds."""
        given = {
            Metric.MOISTURE: moisture,
            Metric.TEMPERATURE: temperature,
            Metric.HUMIDITY: humidity,
            Metric.LIGHT_LEVEL: light_level,
        }
        return cls({m: t for m, t in given.items() if t is not None})

    @property
    def thresholds(self) -> Mapping[Metric, Threshold]:
        return self._thresholds

    @property
    def is_empty(self) -> bool:
        """True when no metric carries a bound."""
        return all(t.is_unbounded for t in self._thresholds.values())

    def items(self) -> List[Tuple[Metric, Threshold]]:
        return list(self._thresholds.items())

    def get(self, metric: Metric) -> Optional[Threshold]:
        return self._thresholds.get(metric)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RuleCondition):
            return NotImplemented
        return dict(self._thresholds) == dict(other._thresholds)

    def __hash__(self) -> int:
        return hash(tuple(self._thresholds.items()))

    def __repr__(self) -> str:
        inner = ", ".join(f"{m.value}={t!r}" for m, t in self._thresholds.items())
        return f"RuleCondition({inner})"

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {m.value: t.to_dict() for m, t in self._thresholds.items()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuleCondition":
        thresholds = {}
        for key, value in data.items():
            try:
                metric = Metric(key)
            except ValueError:
                raise RuleValidationError(f"Unknown condition metric: {key}") from None
            if value is None:
                continue
            thresholds[metric] = Threshold.from_dict(value)
        return cls(thresholds)


# =============================================================================
# Actions
# =============================================================================


@dataclass(frozen=True)
class WateringAction:
    """Start the pump for a duration, or stop it."""

    action: WateringMode
    duration_ms: Optional[int] = None  # Required for START, absent for STOP

    @property
    def channel(self) -> Channel:
        return Channel.WATERING

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"action": self.action.value}
        if self.duration_ms is not None:
            result["duration"] = self.duration_ms
        return result


@dataclass(frozen=True)
class GrowLightAction:
    """Switch the grow light."""

    action: LightMode

    @property
    def channel(self) -> Channel:
        return Channel.GROW_LIGHT

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action.value}


ActionConfig = WateringAction | GrowLightAction


@dataclass(frozen=True)
class RuleActions:
    """At most one action per actuator channel."""

    watering: Optional[WateringAction] = None
    grow_light: Optional[GrowLightAction] = None

    @property
    def is_empty(self) -> bool:
        return self.watering is None and self.grow_light is None

    def by_channel(self) -> List[Tuple[Channel, ActionConfig]]:
        """Configured actions as (channel, action) pairs in channel order."""
        result: List[Tuple[Channel, ActionConfig]] = []
        for channel in Channel:
            if channel is Channel.WATERING:
                action: Optional[ActionConfig] = self.watering
            elif channel is Channel.GROW_LIGHT:
                action = self.grow_light
            else:
                raise TypeError(f"Unhandled channel: {channel!r}")
            if action is not None:
                result.append((channel, action))
        return result

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.watering is not None:
            result["watering"] = self.watering.to_dict()
        if self.grow_light is not None:
            result["growLight"] = self.grow_light.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuleActions":
        """
        Parse actions from the rule document.

        This is the input boundary, so defaults are applied here: a start
        without a duration gets the device default, and a duration sent
        with stop is dropped.
        """
        watering = None
        grow_light = None

        if data.get("watering"):
            raw = _action_object(data["watering"], "Watering")
            try:
                mode = WateringMode(raw.get("action"))
            except ValueError:
                raise RuleValidationError('Watering action must be "start" or "stop"') from None
            duration = raw.get("duration")
            if mode is WateringMode.START and duration is None:
                duration = DEFAULT_WATERING_DURATION_MS
            elif mode is WateringMode.STOP:
                duration = None
            watering = WateringAction(action=mode, duration_ms=duration)

        if data.get("growLight"):
            raw = _action_object(data["growLight"], "Grow light")
            try:
                grow_light = GrowLightAction(action=LightMode(raw.get("action")))
            except ValueError:
                raise RuleValidationError('Grow light action must be "on" or "off"') from None

        return cls(watering=watering, grow_light=grow_light)


def _action_object(raw: Any, label: str) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise RuleValidationError(f"{label} action must be an object, got {raw!r}")
    return raw


# =============================================================================
# Automation Rule
# =============================================================================


@dataclass
class AutomationRule:
    """A threshold rule attached to one rack.

    Consists of:
    - conditions: thresholds that must all hold for the rule to fire
    - actions: what to send to the rack's actuators when it fires
    - cooldown_minutes: minimum time between firings (0 = no gating)
    - last_triggered_at: written only by the engine
    """

    id: str
    rack_id: str
    name: str
    conditions: RuleCondition
    actions: RuleActions
    description: str = ""
    cooldown_minutes: float = 0
    is_enabled: bool = True
    last_triggered_at: Optional[datetime] = None
    trigger_count: int = 0
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the rule document format."""
        return {
            "id": self.id,
            "rackId": self.rack_id,
            "name": self.name,
            "description": self.description,
            "conditions": self.conditions.to_dict(),
            "actions": self.actions.to_dict(),
            "cooldownMinutes": self.cooldown_minutes,
            "isEnabled": self.is_enabled,
            "lastTriggeredAt": _iso(self.last_triggered_at),
            "triggerCount": self.trigger_count,
            "createdAt": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutomationRule":
        """
        Deserialize a rule document.

        Only the shape is checked here; use validation.parse_rule for input
        that has not been validated yet.

        Raises:
            RuleValidationError: If a required field or enum value is missing
        """
        try:
            return cls(
                id=data["id"],
                rack_id=data["rackId"],
                name=data["name"],
                description=data.get("description") or "",
                conditions=RuleCondition.from_dict(data.get("conditions") or {}),
                actions=RuleActions.from_dict(data.get("actions") or {}),
                cooldown_minutes=data.get("cooldownMinutes") or 0,
                is_enabled=data.get("isEnabled", True),
                last_triggered_at=_parse_iso(data.get("lastTriggeredAt")),
                trigger_count=data.get("triggerCount", 0),
                created_at=_parse_iso(data.get("createdAt")),
            )
        except KeyError as e:
            raise RuleValidationError(f"Rule is missing {e.args[0]}") from e


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return _as_utc(datetime.fromisoformat(value))
    except (TypeError, ValueError):
        raise RuleValidationError(f"Invalid timestamp: {value!r}") from None


def _as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# =============================================================================
# Actuator Commands
# =============================================================================


@dataclass(frozen=True)
class WateringCommand:
    """Concrete pump instruction for one rack."""

    rack_id: str
    mode: WateringMode
    duration_ms: Optional[int] = None

    @property
    def channel(self) -> Channel:
        return Channel.WATERING

    @property
    def command_type(self) -> str:
        """Device command topic suffix."""
        return "watering"

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"action": self.mode.value}
        if self.mode is WateringMode.START:
            payload["duration"] = self.duration_ms
        return payload

    def describe(self) -> str:
        if self.mode is WateringMode.START:
            return f"watering:start for {self.duration_ms}ms"
        return "watering:stop"


@dataclass(frozen=True)
class GrowLightCommand:
    """Concrete grow-light instruction for one rack."""

    rack_id: str
    mode: LightMode

    @property
    def channel(self) -> Channel:
        return Channel.GROW_LIGHT

    @property
    def command_type(self) -> str:
        """Device command topic suffix."""
        return "lighting"

    def to_payload(self) -> Dict[str, Any]:
        return {"action": self.mode.value}

    def describe(self) -> str:
        return f"growLight:{self.mode.value}"


ActuatorCommand = WateringCommand | GrowLightCommand


# =============================================================================
# Audit Records
# =============================================================================


@dataclass(frozen=True)
class AutomatedEvent:
    """Append-only record of one dispatch cycle that executed actions."""

    rack_id: str
    rule_name: str
    executed_actions: Tuple[str, ...]
    timestamp: datetime
    rule_ids: Tuple[str, ...] = ()  # Rules whose actions survived resolution

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rackId": self.rack_id,
            "ruleName": self.rule_name,
            "executedActions": list(self.executed_actions),
            "timestamp": self.timestamp.isoformat(),
            "ruleIds": list(self.rule_ids),
        }


@dataclass(frozen=True)
class DispatchFailure:
    """A command the actuator channel rejected, timed out on, or raised for."""

    rack_id: str
    rule_name: str
    command: ActuatorCommand
    reason: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rackId": self.rack_id,
            "ruleName": self.rule_name,
            "commandType": self.command.command_type,
            "payload": self.command.to_payload(),
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


# =============================================================================
# Engine Config
# =============================================================================


@dataclass
class AutomationConfig:
    """Configuration for the automation engine and module."""

    version: int = 1
    enabled: bool = True
    dispatch_policy: DispatchPolicy = DispatchPolicy.FIRE_AND_FORGET
    dispatch_timeout: float = 5.0  # Seconds to wait for the channel per attempt
    dispatch_retries: int = 0  # Extra attempts under ACKNOWLEDGED
    queue_size: int = 16  # Pending readings per rack before new ones are dropped
    history_size: int = 100  # Events kept by the in-memory sink

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict."""
        return {
            "version": self.version,
            "enabled": self.enabled,
            "dispatch_policy": self.dispatch_policy.value,
            "dispatch_timeout": self.dispatch_timeout,
            "dispatch_retries": self.dispatch_retries,
            "queue_size": self.queue_size,
            "history_size": self.history_size,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AutomationConfig":
        """Deserialize from dict."""
        return cls(
            version=data.get("version", 1),
            enabled=data.get("enabled", True),
            dispatch_policy=DispatchPolicy(data.get("dispatch_policy", "fire_and_forget")),
            dispatch_timeout=data.get("dispatch_timeout", 5.0),
            dispatch_retries=data.get("dispatch_retries", 0),
            queue_size=data.get("queue_size", 16),
            history_size=data.get("history_size", 100),
        )
