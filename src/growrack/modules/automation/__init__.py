"""
Rack automation engine for growrack.

Evaluates threshold rules against each rack's sensor readings and sends
the resulting commands to the rack's actuators.

Features:
- Threshold conditions on moisture, temperature, humidity and light level
- Watering and grow-light actions, one command per channel per cycle
- Last-wins conflict resolution between rules that fire together
- Per-rule cooldowns with atomic check-and-reserve
- One sequential worker per rack, racks processed in parallel
- Fire-and-forget or acknowledged dispatch with timeouts and retries
- Audit events and dispatch failures recorded to pluggable sinks

Architecture:

    sensor.reading ─▶ AutomationEngine ─▶ RackWorker (one per rack)
                                              │
                     evaluate ▶ reserve ▶ resolve ▶ dispatch ▶ record ▶ persist
                                              │
                       RuleStore   CooldownTracker   ActuatorChannel   EventSink
"""

from .module import AutomationModule
from .models import (
    # Constants
    DEFAULT_WATERING_DURATION_MS,
    MIN_WATERING_DURATION_MS,
    MAX_WATERING_DURATION_MS,
    # Errors
    RuleValidationError,
    StorageError,
    DispatchError,
    # Enums
    Metric,
    Channel,
    WateringMode,
    LightMode,
    DispatchResult,
    DispatchPolicy,
    # Readings and conditions
    SensorReading,
    Threshold,
    RuleCondition,
    # Actions
    WateringAction,
    GrowLightAction,
    ActionConfig,
    RuleActions,
    # Rule
    AutomationRule,
    # Commands
    WateringCommand,
    GrowLightCommand,
    ActuatorCommand,
    # Records
    AutomatedEvent,
    DispatchFailure,
    AutomationConfig,
)
from .adapter import (
    RuleStore,
    ActuatorChannel,
    EventSink,
    RackManagerRuleStore,
    MemoryEventSink,
    BusEventSink,
    CompositeEventSink,
    MockActuatorChannel,
)
from .cooldown import CooldownTracker
from .engine import AutomationEngine
from .evaluators import ConditionEvaluator, check_threshold, evaluate
from .resolver import ActionResolver, Resolution, build_command
from .validation import METRIC_RANGES, parse_rule, validate_rule
from .worker import CycleResult, RackWorker, WorkerState

from .presets import (
    water_when_dry,
    stop_watering_when_wet,
    lights_on_when_dark,
    lights_off_when_bright,
    cool_down_when_hot,
)

__all__ = [
    # Main module
    "AutomationModule",
    # Engine
    "AutomationEngine",
    "RackWorker",
    "WorkerState",
    "CycleResult",
    "CooldownTracker",
    "ActionResolver",
    "Resolution",
    "build_command",
    # Adapters
    "RuleStore",
    "ActuatorChannel",
    "EventSink",
    "RackManagerRuleStore",
    "MemoryEventSink",
    "BusEventSink",
    "CompositeEventSink",
    "MockActuatorChannel",
    # Evaluators
    "ConditionEvaluator",
    "evaluate",
    "check_threshold",
    # Validation
    "METRIC_RANGES",
    "validate_rule",
    "parse_rule",
    # Constants
    "DEFAULT_WATERING_DURATION_MS",
    "MIN_WATERING_DURATION_MS",
    "MAX_WATERING_DURATION_MS",
    # Errors
    "RuleValidationError",
    "StorageError",
    "DispatchError",
    # Enums
    "Metric",
    "Channel",
    "WateringMode",
    "LightMode",
    "DispatchResult",
    "DispatchPolicy",
    # Models
    "SensorReading",
    "Threshold",
    "RuleCondition",
    "WateringAction",
    "GrowLightAction",
    "ActionConfig",
    "RuleActions",
    "AutomationRule",
    "WateringCommand",
    "GrowLightCommand",
    "ActuatorCommand",
    "AutomatedEvent",
    "DispatchFailure",
    "AutomationConfig",
    # Presets
    "water_when_dry",
    "stop_watering_when_wet",
    "lights_on_when_dark",
    "lights_off_when_bright",
    "cool_down_when_hot",
]
