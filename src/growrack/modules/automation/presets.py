"""
Preset rule builders for common rack automations.

Each helper returns a validated AutomationRule ready for
AutomationModule.add_rule().
"""

from datetime import datetime
from typing import Optional

from .models import (
    DEFAULT_WATERING_DURATION_MS,
    AutomationRule,
    GrowLightAction,
    LightMode,
    RuleActions,
    RuleCondition,
    Threshold,
    WateringAction,
    WateringMode,
)
from .validation import validate_rule


def water_when_dry(
    rule_id: str,
    rack_id: str,
    *,
    below_moisture: float = 30,
    duration_ms: int = DEFAULT_WATERING_DURATION_MS,
    cooldown_minutes: float = 60,
    name: str = "Water when dry",
    enabled: bool = True,
    created_at: Optional[datetime] = None,
) -> AutomationRule:
    """
    Create a rule that runs the pump when the soil dries out.

    Args:
        rule_id: Unique rule ID
        rack_id: Rack the rule belongs to
        below_moisture: Fire when moisture drops below this (%)
        duration_ms: Pump run time
        cooldown_minutes: Minimum time between waterings
        name: Display name
        enabled: Whether rule is active
        created_at: Creation time (controls evaluation order)

    Returns:
        Configured AutomationRule

    Raises:
        RuleValidationError: If an option is out of range
    """
    rule = AutomationRule(
        id=rule_id,
        rack_id=rack_id,
        name=name,
        conditions=RuleCondition.of(moisture=Threshold(less_than=below_moisture)),
        actions=RuleActions(
            watering=WateringAction(action=WateringMode.START, duration_ms=duration_ms),
        ),
        cooldown_minutes=cooldown_minutes,
        is_enabled=enabled,
        created_at=created_at,
    )
    validate_rule(rule)
    return rule


def stop_watering_when_wet(
    rule_id: str,
    rack_id: str,
    *,
    above_moisture: float = 80,
    cooldown_minutes: float = 0,
    name: str = "Stop watering when wet",
    enabled: bool = True,
    created_at: Optional[datetime] = None,
) -> AutomationRule:
    """
    Create a rule that stops the pump once the soil is saturated.

    No cooldown by default, so a stop is sent on every wet reading.
    """
    rule = AutomationRule(
        id=rule_id,
        rack_id=rack_id,
        name=name,
        conditions=RuleCondition.of(moisture=Threshold(greater_than=above_moisture)),
        actions=RuleActions(watering=WateringAction(action=WateringMode.STOP)),
        cooldown_minutes=cooldown_minutes,
        is_enabled=enabled,
        created_at=created_at,
    )
    validate_rule(rule)
    return rule


def lights_on_when_dark(
    rule_id: str,
    rack_id: str,
    *,
    below_lux: float = 200,
    cooldown_minutes: float = 30,
    name: str = "Lights on when dark",
    enabled: bool = True,
    created_at: Optional[datetime] = None,
) -> AutomationRule:
    """Create a rule that switches the grow light on in low light."""
    rule = AutomationRule(
        id=rule_id,
        rack_id=rack_id,
        name=name,
        conditions=RuleCondition.of(light_level=Threshold(less_than=below_lux)),
        actions=RuleActions(grow_light=GrowLightAction(action=LightMode.ON)),
        cooldown_minutes=cooldown_minutes,
        is_enabled=enabled,
        created_at=created_at,
    )
    validate_rule(rule)
    return rule


def lights_off_when_bright(
    rule_id: str,
    rack_id: str,
    *,
    above_lux: float = 10000,
    cooldown_minutes: float = 30,
    name: str = "Lights off when bright",
    enabled: bool = True,
    created_at: Optional[datetime] = None,
) -> AutomationRule:
    """Create a rule that switches the grow light off in strong ambient light."""
    rule = AutomationRule(
        id=rule_id,
        rack_id=rack_id,
        name=name,
        conditions=RuleCondition.of(light_level=Threshold(greater_than=above_lux)),
        actions=RuleActions(grow_light=GrowLightAction(action=LightMode.OFF)),
        cooldown_minutes=cooldown_minutes,
        is_enabled=enabled,
        created_at=created_at,
    )
    validate_rule(rule)
    return rule


def cool_down_when_hot(
    rule_id: str,
    rack_id: str,
    *,
    above_temperature: float = 32,
    duration_ms: int = 10000,
    cooldown_minutes: float = 30,
    name: str = "Cool down when hot",
    enabled: bool = True,
    created_at: Optional[datetime] = None,
) -> AutomationRule:
    """
    Create a rule for heat stress: water briefly and cut the grow light.

    Both channels fire together, so a later rule on either channel still
    overrides this one.
    """
    rule = AutomationRule(
        id=rule_id,
        rack_id=rack_id,
        name=name,
        conditions=RuleCondition.of(temperature=Threshold(greater_than=above_temperature)),
        actions=RuleActions(
            watering=WateringAction(action=WateringMode.START, duration_ms=duration_ms),
            grow_light=GrowLightAction(action=LightMode.OFF),
        ),
        cooldown_minutes=cooldown_minutes,
        is_enabled=enabled,
        created_at=created_at,
    )
    validate_rule(rule)
    return rule
