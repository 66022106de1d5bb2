"""Tests for action resolution."""

import pytest

from growrack.modules.automation import (
    ActionResolver,
    AutomationRule,
    Channel,
    GrowLightAction,
    GrowLightCommand,
    LightMode,
    RuleActions,
    RuleCondition,
    Threshold,
    WateringAction,
    WateringCommand,
    WateringMode,
    build_command,
)

START = WateringAction(action=WateringMode.START, duration_ms=5000)
STOP = WateringAction(action=WateringMode.STOP)
LIGHT_ON = GrowLightAction(action=LightMode.ON)
LIGHT_OFF = GrowLightAction(action=LightMode.OFF)


def make_rule(rule_id: str, watering=None, grow_light=None) -> AutomationRule:
    """Helper to create a rule for rack R1 with the given actions."""
    return AutomationRule(
        id=rule_id,
        rack_id="R1",
        name=f"Rule {rule_id}",
        conditions=RuleCondition.of(moisture=Threshold(less_than=30)),
        actions=RuleActions(watering=watering, grow_light=grow_light),
    )


@pytest.fixture
def resolver():
    return ActionResolver()


class TestResolve:
    """Tests for conflict resolution."""

    def test_no_rules(self, resolver):
        resolution = resolver.resolve([])

        assert resolution.commands == []
        assert resolution.trigger_rule is None

    def test_single_rule(self, resolver):
        rule = make_rule("a", watering=START)

        resolution = resolver.resolve([rule])

        assert resolution.commands == [
            WateringCommand(rack_id="R1", mode=WateringMode.START, duration_ms=5000)
        ]
        assert resolution.winners == {Channel.WATERING: rule}
        assert resolution.trigger_rule is rule

    def test_last_rule_wins_channel(self, resolver):
        """Test that a later rule overrides an earlier one on the same channel."""
        a = make_rule("a", watering=START)
        b = make_rule("b", watering=STOP)

        resolution = resolver.resolve([a, b])

        assert resolution.commands == [WateringCommand(rack_id="R1", mode=WateringMode.STOP)]
        assert resolution.discarded == [(a, Channel.WATERING)]
        assert resolution.trigger_rule is b

    def test_order_decides_winner(self, resolver):
        a = make_rule("a", watering=START)
        b = make_rule("b", watering=STOP)

        resolution = resolver.resolve([b, a])

        assert resolution.commands[0].mode is WateringMode.START

    def test_channels_resolved_independently(self, resolver):
        a = make_rule("a", watering=START, grow_light=LIGHT_ON)
        b = make_rule("b", grow_light=LIGHT_OFF)

        resolution = resolver.resolve([a, b])

        assert resolution.commands == [
            WateringCommand(rack_id="R1", mode=WateringMode.START, duration_ms=5000),
            GrowLightCommand(rack_id="R1", mode=LightMode.OFF),
        ]
        assert resolution.winners == {Channel.WATERING: a, Channel.GROW_LIGHT: b}
        assert resolution.discarded == [(a, Channel.GROW_LIGHT)]
        assert resolution.trigger_rule is b

    def test_commands_in_channel_order(self, resolver):
        """Test that watering is dispatched before the light regardless of rule order."""
        a = make_rule("a", grow_light=LIGHT_ON)
        b = make_rule("b", watering=STOP)

        resolution = resolver.resolve([a, b])

        assert [c.channel for c in resolution.commands] == [Channel.WATERING, Channel.GROW_LIGHT]

    def test_at_most_one_command_per_channel(self, resolver):
        rules = [make_rule(str(i), watering=START if i % 2 else STOP) for i in range(5)]

        resolution = resolver.resolve(rules)

        assert len(resolution.commands) == 1
        assert len(resolution.discarded) == 4

    def test_rule_for(self, resolver):
        a = make_rule("a", watering=START)
        b = make_rule("b", grow_light=LIGHT_ON)

        resolution = resolver.resolve([a, b])

        assert resolution.rule_for(resolution.commands[0]) is a
        assert resolution.rule_for(resolution.commands[1]) is b


class TestBuildCommand:
    """Tests for action to command mapping."""

    def test_watering(self):
        command = build_command("R1", START)
        assert command == WateringCommand(rack_id="R1", mode=WateringMode.START, duration_ms=5000)

    def test_grow_light(self):
        assert build_command("R1", LIGHT_OFF) == GrowLightCommand(rack_id="R1", mode=LightMode.OFF)

    def test_unknown_action_raises(self):
        with pytest.raises(TypeError):
            build_command("R1", object())
