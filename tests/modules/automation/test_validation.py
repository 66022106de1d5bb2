"""Tests for rule validation."""

from datetime import datetime, UTC

import pytest

from growrack.modules.automation import (
    AutomationRule,
    GrowLightAction,
    LightMode,
    RuleActions,
    RuleCondition,
    RuleValidationError,
    Threshold,
    WateringAction,
    WateringMode,
    parse_rule,
    validate_rule,
)


def make_rule(
    conditions=None,
    actions=None,
    cooldown_minutes=0,
) -> AutomationRule:
    """Helper to build a rule that is valid unless overridden."""
    return AutomationRule(
        id="rule-1",
        rack_id="R1",
        name="Test rule",
        conditions=conditions or RuleCondition.of(moisture=Threshold(less_than=30)),
        actions=actions or RuleActions(grow_light=GrowLightAction(action=LightMode.ON)),
        cooldown_minutes=cooldown_minutes,
    )


def rule_document(**overrides) -> dict:
    """Helper for an external rule document."""
    doc = {
        "id": "rule-1",
        "rackId": "R1",
        "name": "Water when dry",
        "conditions": {"moisture": {"lessThan": 30}},
        "actions": {"watering": {"action": "start"}},
        "cooldownMinutes": 10,
    }
    doc.update(overrides)
    return doc


class TestConditionRanges:
    """Tests for per-metric threshold ranges."""

    def test_valid_rule_passes(self):
        validate_rule(make_rule())

    @pytest.mark.parametrize(
        "conditions, message",
        [
            (RuleCondition.of(moisture=Threshold(less_than=101)), "Moisture"),
            (RuleCondition.of(moisture=Threshold(greater_than=-1)), "Moisture"),
            (RuleCondition.of(temperature=Threshold(less_than=101)), "Temperature"),
            (RuleCondition.of(temperature=Threshold(greater_than=-51)), "Temperature"),
            (RuleCondition.of(humidity=Threshold(greater_than=100.5)), "Humidity"),
            (RuleCondition.of(light_level=Threshold(less_than=-1)), "Light level"),
        ],
    )
    def test_out_of_range_threshold(self, conditions, message):
        with pytest.raises(RuleValidationError, match=message):
            validate_rule(make_rule(conditions=conditions))

    def test_range_edges_are_allowed(self):
        validate_rule(
            make_rule(
                conditions=RuleCondition.of(
                    moisture=Threshold(less_than=100, greater_than=0),
                    temperature=Threshold(less_than=100, greater_than=-50),
                    light_level=Threshold(greater_than=0, less_than=150000),
                )
            )
        )

    def test_empty_conditions_rejected(self):
        with pytest.raises(RuleValidationError, match="condition"):
            validate_rule(make_rule(conditions=RuleCondition()))

    def test_unbounded_threshold_counts_as_empty(self):
        with pytest.raises(RuleValidationError, match="condition"):
            validate_rule(make_rule(conditions=RuleCondition.of(moisture=Threshold())))


class TestActions:
    """Tests for action validation."""

    def test_no_actions_rejected(self):
        rule = make_rule()
        rule.actions = RuleActions()

        with pytest.raises(RuleValidationError, match="action"):
            validate_rule(rule)

    @pytest.mark.parametrize("duration", [999, 60001, 0])
    def test_duration_out_of_range(self, duration):
        actions = RuleActions(watering=WateringAction(action=WateringMode.START, duration_ms=duration))

        with pytest.raises(RuleValidationError, match="between 1000 and 60000"):
            validate_rule(make_rule(actions=actions))

    @pytest.mark.parametrize("duration", [1000, 60000])
    def test_duration_edges_allowed(self, duration):
        actions = RuleActions(watering=WateringAction(action=WateringMode.START, duration_ms=duration))
        validate_rule(make_rule(actions=actions))

    def test_start_without_duration_rejected(self):
        """Defaults are applied at parse time, never during validation."""
        actions = RuleActions(watering=WateringAction(action=WateringMode.START))

        with pytest.raises(RuleValidationError, match="requires a duration"):
            validate_rule(make_rule(actions=actions))

    def test_stop_with_duration_rejected(self):
        actions = RuleActions(watering=WateringAction(action=WateringMode.STOP, duration_ms=2000))

        with pytest.raises(RuleValidationError, match="stop"):
            validate_rule(make_rule(actions=actions))

    def test_negative_cooldown_rejected(self):
        with pytest.raises(RuleValidationError, match="Cooldown"):
            validate_rule(make_rule(cooldown_minutes=-1))


class TestParseRule:
    """Tests for parse_rule at the input boundary."""

    def test_parse_valid_document(self):
        rule = parse_rule(rule_document())

        assert rule.actions.watering.duration_ms == 5000
        assert rule.cooldown_minutes == 10

    def test_parse_rejects_bad_duration(self):
        doc = rule_document(actions={"watering": {"action": "start", "duration": 500}})

        with pytest.raises(RuleValidationError):
            parse_rule(doc)

    def test_parse_rejects_empty_conditions(self):
        with pytest.raises(RuleValidationError):
            parse_rule(rule_document(conditions={}))

    def test_parse_rejects_missing_actions(self):
        with pytest.raises(RuleValidationError):
            parse_rule(rule_document(actions={}))

    def test_rule_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_rule(rule_document(cooldownMinutes=-5))

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"conditions": {"moisture": {"lessThan": "30"}}}, "Threshold for moisture must be a number"),
            ({"conditions": {"humidity": {"greaterThan": True}}}, "Threshold for humidity must be a number"),
            ({"conditions": {"moisture": 30}}, "Threshold must be an object"),
            ({"actions": {"watering": "start"}}, "Watering action must be an object"),
            ({"actions": {"growLight": ["on"]}}, "Grow light action must be an object"),
            ({"actions": {"watering": {"action": "start", "duration": "5000"}}}, "Watering duration must be a number"),
            ({"cooldownMinutes": "10"}, "Cooldown minutes must be a number"),
            ({"lastTriggeredAt": "yesterday"}, "Invalid timestamp"),
        ],
    )
    def test_parse_rejects_wrong_types(self, overrides, message):
        with pytest.raises(RuleValidationError, match=message):
            parse_rule(rule_document(**overrides))

    def test_parse_treats_naive_timestamps_as_utc(self):
        rule = parse_rule(rule_document(lastTriggeredAt="2025-05-01T00:00:00"))

        assert rule.last_triggered_at == datetime(2025, 5, 1, tzinfo=UTC)

    def test_naive_timestamp_on_built_rule_rejected(self):
        rule = make_rule()
        rule.created_at = datetime(2025, 5, 1)

        with pytest.raises(RuleValidationError, match="createdAt"):
            validate_rule(rule)
