"""
Rule validation.

Rules are validated where they enter the system (parse_rule, AutomationModule.add_rule)
and again by the worker before evaluation, where a failure is treated as a
data-integrity error for that single rule.
"""

from typing import Any, Dict, Optional, Tuple

from .models import (
    MAX_WATERING_DURATION_MS,
    MIN_WATERING_DURATION_MS,
    AutomationRule,
    Metric,
    RuleValidationError,
    WateringMode,
)

# Allowed threshold range per metric (None = unbounded on that side)
METRIC_RANGES: Dict[Metric, Tuple[Optional[float], Optional[float]]] = {
    Metric.MOISTURE: (0, 100),
    Metric.TEMPERATURE: (-50, 100),
    Metric.HUMIDITY: (0, 100),
    Metric.LIGHT_LEVEL: (0, None),
}

_RANGE_MESSAGES = {
    Metric.MOISTURE: "Moisture threshold must be between 0 and 100",
    Metric.TEMPERATURE: "Temperature threshold must be between -50 and 100",
    Metric.HUMIDITY: "Humidity threshold must be between 0 and 100",
    Metric.LIGHT_LEVEL: "Light level threshold must be non-negative",
}


def validate_rule(rule: AutomationRule) -> None:
    """
    Check a rule against the data contract.

    Args:
        rule: The rule to check

    Raises:
        RuleValidationError: Describing the first problem found
    """
    if rule.conditions.is_empty:
        raise RuleValidationError("At least one condition must be specified")

    for metric, threshold in rule.conditions.items():
        low, high = METRIC_RANGES[metric]
        for bound in (threshold.less_than, threshold.greater_than):
            if bound is None:
                continue
            if not _is_number(bound):
                raise RuleValidationError(f"Threshold for {metric.value} must be a number")
            if (low is not None and bound < low) or (high is not None and bound > high):
                raise RuleValidationError(_RANGE_MESSAGES[metric])

    if rule.actions.is_empty:
        raise RuleValidationError("At least one action must be specified")

    watering = rule.actions.watering
    if watering is not None:
        if watering.action is WateringMode.START:
            if watering.duration_ms is None:
                raise RuleValidationError("Watering start requires a duration")
            if not _is_number(watering.duration_ms):
                raise RuleValidationError("Watering duration must be a number")
            if not MIN_WATERING_DURATION_MS <= watering.duration_ms <= MAX_WATERING_DURATION_MS:
                raise RuleValidationError(
                    f"Watering duration must be between {MIN_WATERING_DURATION_MS} "
                    f"and {MAX_WATERING_DURATION_MS} milliseconds"
                )
        elif watering.duration_ms is not None:
            raise RuleValidationError("Watering stop does not take a duration")

    if not _is_number(rule.cooldown_minutes):
        raise RuleValidationError("Cooldown minutes must be a number")
    if rule.cooldown_minutes < 0:
        raise RuleValidationError("Cooldown minutes must be non-negative")

    for label, stamp in (("lastTriggeredAt", rule.last_triggered_at), ("createdAt", rule.created_at)):
        if stamp is not None and stamp.tzinfo is None:
            raise RuleValidationError(f"{label} must carry a timezone")


def parse_rule(data: Dict[str, Any]) -> AutomationRule:
    """
    Build a rule from an external rule document and validate it.

    Raises:
        RuleValidationError: If the document describes an invalid rule
    """
    rule = AutomationRule.from_dict(data)
    validate_rule(rule)
    return rule


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
