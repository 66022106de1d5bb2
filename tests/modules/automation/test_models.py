"""Tests for automation models."""

from datetime import datetime, UTC

import pytest

from growrack.modules.automation import (
    DEFAULT_WATERING_DURATION_MS,
    AutomatedEvent,
    AutomationConfig,
    AutomationRule,
    Channel,
    DispatchFailure,
    DispatchPolicy,
    GrowLightAction,
    GrowLightCommand,
    LightMode,
    Metric,
    RuleActions,
    RuleCondition,
    RuleValidationError,
    SensorReading,
    Threshold,
    WateringAction,
    WateringCommand,
    WateringMode,
)

T0 = datetime(2025, 6, 1, 12, 0, 0, tzinfo=UTC)


class TestSensorReading:
    """Tests for SensorReading parsing."""

    def test_from_dict(self):
        """Test parsing a device payload."""
        reading = SensorReading.from_dict(
            {
                "rackId": "R1",
                "temperature": 24.5,
                "humidity": 60,
                "moisture": 35,
                "lightLevel": 1200,
                "observedAt": "2025-06-01T12:00:00+00:00",
            }
        )

        assert reading.rack_id == "R1"
        assert reading.temperature == 24.5
        assert reading.humidity == 60.0
        assert reading.moisture == 35.0
        assert reading.light_level == 1200.0
        assert reading.observed_at == T0

    def test_explicit_rack_and_time_override_payload(self):
        reading = SensorReading.from_dict(
            {
                "rackId": "other",
                "temperature": 20,
                "humidity": 50,
                "moisture": 40,
                "lightLevel": 0,
            },
            rack_id="R1",
            observed_at=T0,
        )

        assert reading.rack_id == "R1"
        assert reading.observed_at == T0

    def test_naive_observed_at_is_utc(self):
        reading = SensorReading.from_dict(
            {"temperature": 20, "humidity": 50, "moisture": 40, "lightLevel": 0,
             "observedAt": "2025-06-01T12:00:00"},
            rack_id="R1",
        )

        assert reading.observed_at == T0

    def test_missing_metric_raises(self):
        with pytest.raises(ValueError, match="lightLevel"):
            SensorReading.from_dict(
                {"temperature": 20, "humidity": 50, "moisture": 40},
                rack_id="R1",
            )

    def test_missing_rack_raises(self):
        with pytest.raises(ValueError, match="rack"):
            SensorReading.from_dict(
                {"temperature": 20, "humidity": 50, "moisture": 40, "lightLevel": 0}
            )

    def test_value_of(self):
        reading = SensorReading(
            rack_id="R1",
            temperature=22,
            humidity=55,
            moisture=30,
            light_level=800,
        )

        assert reading.value_of(Metric.TEMPERATURE) == 22
        assert reading.value_of(Metric.HUMIDITY) == 55
        assert reading.value_of(Metric.MOISTURE) == 30
        assert reading.value_of(Metric.LIGHT_LEVEL) == 800


class TestRuleCondition:
    """Tests for RuleCondition."""

    def test_from_dict(self):
        conditions = RuleCondition.from_dict(
            {
                "moisture": {"lessThan": 30},
                "temperature": {"greaterThan": 15, "lessThan": 30},
            }
        )

        assert conditions.get(Metric.MOISTURE) == Threshold(less_than=30)
        assert conditions.get(Metric.TEMPERATURE) == Threshold(less_than=30, greater_than=15)
        assert conditions.get(Metric.HUMIDITY) is None

    def test_unknown_metric_raises(self):
        with pytest.raises(RuleValidationError, match="pressure"):
            RuleCondition.from_dict({"pressure": {"lessThan": 1000}})

    def test_metrics_kept_in_fixed_order(self):
        """Test that iteration order does not depend on input order."""
        conditions = RuleCondition.of(
            light_level=Threshold(greater_than=100),
            moisture=Threshold(less_than=30),
        )

        assert [m for m, _ in conditions.items()] == [Metric.MOISTURE, Metric.LIGHT_LEVEL]

    def test_is_empty(self):
        assert RuleCondition().is_empty is True
        assert RuleCondition.of(moisture=Threshold()).is_empty is True
        assert RuleCondition.of(moisture=Threshold(less_than=30)).is_empty is False

    def test_equality(self):
        a = RuleCondition.of(moisture=Threshold(less_than=30))
        b = RuleCondition.from_dict({"moisture": {"lessThan": 30}})

        assert a == b
        assert hash(a) == hash(b)

    def test_to_dict(self):
        conditions = RuleCondition.of(humidity=Threshold(greater_than=80))
        assert conditions.to_dict() == {"humidity": {"greaterThan": 80}}


class TestRuleActions:
    """Tests for RuleActions parsing and defaulting."""

    def test_start_without_duration_gets_default(self):
        actions = RuleActions.from_dict({"watering": {"action": "start"}})

        assert actions.watering == WateringAction(
            action=WateringMode.START,
            duration_ms=DEFAULT_WATERING_DURATION_MS,
        )
        assert DEFAULT_WATERING_DURATION_MS == 5000

    def test_start_keeps_explicit_duration(self):
        actions = RuleActions.from_dict({"watering": {"action": "start", "duration": 12000}})
        assert actions.watering.duration_ms == 12000

    def test_stop_drops_duration(self):
        actions = RuleActions.from_dict({"watering": {"action": "stop", "duration": 3000}})
        assert actions.watering == WateringAction(action=WateringMode.STOP)

    def test_grow_light(self):
        actions = RuleActions.from_dict({"growLight": {"action": "off"}})

        assert actions.grow_light == GrowLightAction(action=LightMode.OFF)
        assert actions.watering is None

    def test_bad_watering_action_raises(self):
        with pytest.raises(RuleValidationError, match="start"):
            RuleActions.from_dict({"watering": {"action": "flood"}})

    def test_bad_light_action_raises(self):
        with pytest.raises(RuleValidationError, match="on"):
            RuleActions.from_dict({"growLight": {"action": "dim"}})

    def test_by_channel_in_channel_order(self):
        actions = RuleActions(
            grow_light=GrowLightAction(action=LightMode.ON),
            watering=WateringAction(action=WateringMode.STOP),
        )

        assert [c for c, _ in actions.by_channel()] == [Channel.WATERING, Channel.GROW_LIGHT]

    def test_is_empty(self):
        assert RuleActions().is_empty is True
        assert RuleActions.from_dict({}).is_empty is True


class TestAutomationRule:
    """Tests for AutomationRule serialization."""

    def test_from_dict(self):
        rule = AutomationRule.from_dict(
            {
                "id": "rule-1",
                "rackId": "R1",
                "name": "Water when dry",
                "conditions": {"moisture": {"lessThan": 30}},
                "actions": {"watering": {"action": "start"}},
                "cooldownMinutes": 10,
                "isEnabled": True,
                "lastTriggeredAt": "2025-06-01T12:00:00+00:00",
                "createdAt": "2025-05-01T08:00:00+00:00",
            }
        )

        assert rule.id == "rule-1"
        assert rule.rack_id == "R1"
        assert rule.cooldown_minutes == 10
        assert rule.last_triggered_at == T0
        assert rule.actions.watering.duration_ms == 5000
        assert rule.description == ""
        assert rule.trigger_count == 0

    def test_defaults(self):
        rule = AutomationRule.from_dict(
            {
                "id": "rule-1",
                "rackId": "R1",
                "name": "Minimal",
                "conditions": {"moisture": {"lessThan": 30}},
                "actions": {"growLight": {"action": "on"}},
            }
        )

        assert rule.cooldown_minutes == 0
        assert rule.is_enabled is True
        assert rule.last_triggered_at is None
        assert rule.created_at is None

    def test_naive_timestamps_are_utc(self):
        rule = AutomationRule.from_dict(
            {
                "id": "rule-1",
                "rackId": "R1",
                "name": "Water when dry",
                "conditions": {"moisture": {"lessThan": 30}},
                "actions": {"watering": {"action": "start"}},
                "cooldownMinutes": 5,
                "lastTriggeredAt": "2025-06-01T12:00:00",
                "createdAt": "2025-05-01T08:00:00",
            }
        )

        assert rule.last_triggered_at == T0
        assert rule.created_at.tzinfo is UTC

    def test_threshold_must_be_mapping(self):
        with pytest.raises(RuleValidationError, match="Threshold must be an object"):
            Threshold.from_dict(30)

    def test_missing_field_raises(self):
        with pytest.raises(RuleValidationError, match="rackId"):
            AutomationRule.from_dict({"id": "rule-1", "name": "No rack"})

    def test_to_dict(self):
        rule = AutomationRule(
            id="rule-1",
            rack_id="R1",
            name="Lights on",
            conditions=RuleCondition.of(light_level=Threshold(less_than=200)),
            actions=RuleActions(grow_light=GrowLightAction(action=LightMode.ON)),
            cooldown_minutes=30,
            last_triggered_at=T0,
        )

        data = rule.to_dict()

        assert data["rackId"] == "R1"
        assert data["conditions"] == {"lightLevel": {"lessThan": 200}}
        assert data["actions"] == {"growLight": {"action": "on"}}
        assert data["cooldownMinutes"] == 30
        assert data["lastTriggeredAt"] == "2025-06-01T12:00:00+00:00"
        assert data["createdAt"] is None
        assert AutomationRule.from_dict(data) == rule


class TestCommands:
    """Tests for actuator commands."""

    def test_watering_start(self):
        command = WateringCommand(rack_id="R1", mode=WateringMode.START, duration_ms=5000)

        assert command.channel is Channel.WATERING
        assert command.command_type == "watering"
        assert command.to_payload() == {"action": "start", "duration": 5000}
        assert command.describe() == "watering:start for 5000ms"

    def test_watering_stop(self):
        command = WateringCommand(rack_id="R1", mode=WateringMode.STOP)

        assert command.to_payload() == {"action": "stop"}
        assert command.describe() == "watering:stop"

    def test_grow_light(self):
        command = GrowLightCommand(rack_id="R1", mode=LightMode.ON)

        assert command.channel is Channel.GROW_LIGHT
        assert command.command_type == "lighting"
        assert command.to_payload() == {"action": "on"}
        assert command.describe() == "growLight:on"


class TestRecords:
    """Tests for audit records and config."""

    def test_automated_event_to_dict(self):
        event = AutomatedEvent(
            rack_id="R1",
            rule_name="Stop watering",
            executed_actions=("watering:stop",),
            timestamp=T0,
            rule_ids=("b",),
        )

        assert event.to_dict() == {
            "rackId": "R1",
            "ruleName": "Stop watering",
            "executedActions": ["watering:stop"],
            "timestamp": "2025-06-01T12:00:00+00:00",
            "ruleIds": ["b"],
        }

    def test_dispatch_failure_to_dict(self):
        failure = DispatchFailure(
            rack_id="R1",
            rule_name="Lights on",
            command=GrowLightCommand(rack_id="R1", mode=LightMode.ON),
            reason="rejected",
            timestamp=T0,
        )

        data = failure.to_dict()

        assert data["commandType"] == "lighting"
        assert data["payload"] == {"action": "on"}
        assert data["reason"] == "rejected"

    def test_config_from_dict(self):
        config = AutomationConfig.from_dict(
            {"dispatch_policy": "acknowledged", "dispatch_retries": 2}
        )

        assert config.dispatch_policy is DispatchPolicy.ACKNOWLEDGED
        assert config.dispatch_retries == 2
        assert config.dispatch_timeout == 5.0
        assert config.enabled is True

    def test_config_to_dict(self):
        data = AutomationConfig().to_dict()

        assert data["dispatch_policy"] == "fire_and_forget"
        assert data["queue_size"] == 16
