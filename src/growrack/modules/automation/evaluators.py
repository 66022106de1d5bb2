"""
Condition evaluation for automation rules.

Evaluation is a pure function of a reading and a rule's conditions: no state,
no I/O, safe to call from any task or thread.
"""

import logging

from .models import RuleCondition, SensorReading, Threshold

logger = logging.getLogger(__name__)


def evaluate(reading: SensorReading, conditions: RuleCondition) -> bool:
    """
    Check whether a reading satisfies a rule's conditions.

    Every metric with a threshold must be inside it (AND across metrics).
    Metrics without a threshold are not constrained. A condition set with
    no bounds at all never matches.

    Args:
        reading: The sensor reading
        conditions: The rule's thresholds

    Returns:
        True if all thresholds hold
    """
    if conditions.is_empty:
        return False

    for metric, threshold in conditions.items():
        if not check_threshold(reading.value_of(metric), threshold):
            logger.debug(f"Condition not met: {metric.value}={reading.value_of(metric)} vs {threshold}")
            return False
    return True


def check_threshold(value: float, threshold: Threshold) -> bool:
    """Strict comparison against both bounds; an empty band never matches."""
    if threshold.less_than is not None and not value < threshold.less_than:
        return False
    if threshold.greater_than is not None and not value > threshold.greater_than:
        return False
    return True


class ConditionEvaluator:
    """
    Evaluates rule conditions against readings.

    Thin object wrapper around evaluate() so collaborators can be handed
    an evaluator instance and tests can substitute one.
    """

    def evaluate(self, reading: SensorReading, conditions: RuleCondition) -> bool:
        return evaluate(reading, conditions)
