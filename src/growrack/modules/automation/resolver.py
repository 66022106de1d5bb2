"""
Action resolution - turns the rules that fired into one command per actuator.

Conflict policy: rules are taken in evaluation order and, within a channel,
the last rule wins. Earlier actions on that channel are discarded. Channels
nobody asked for get no command, which leaves the actuator as it is.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .models import (
    ActionConfig,
    ActuatorCommand,
    AutomationRule,
    Channel,
    GrowLightAction,
    GrowLightCommand,
    WateringAction,
    WateringCommand,
)

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    """Result of resolving a set of reserved rules for one rack."""

    commands: List[ActuatorCommand] = field(default_factory=list)
    winners: Dict[Channel, AutomationRule] = field(default_factory=dict)
    discarded: List[Tuple[AutomationRule, Channel]] = field(default_factory=list)
    trigger_rule: Optional[AutomationRule] = None  # Winner latest in evaluation order

    def rule_for(self, command: ActuatorCommand) -> AutomationRule:
        """Get the rule whose action produced a command."""
        return self.winners[command.channel]


class ActionResolver:
    """Resolves per-channel conflicts between rules that fired together."""

    def resolve(self, fired_rules: Sequence[AutomationRule]) -> Resolution:
        """
        Produce at most one command per channel.

        Args:
            fired_rules: Rules whose conditions held and whose cooldown was
                reserved, in evaluation order

        Returns:
            Resolution with commands in channel order
        """
        resolution = Resolution()
        chosen: Dict[Channel, Tuple[int, AutomationRule, ActionConfig]] = {}

        for position, rule in enumerate(fired_rules):
            for channel, action in rule.actions.by_channel():
                previous = chosen.get(channel)
                if previous is not None:
                    loser = previous[1]
                    resolution.discarded.append((loser, channel))
                    logger.debug(
                        f"Rule {rule.name!r} overrides {loser.name!r} on {channel.value}"
                    )
                chosen[channel] = (position, rule, action)

        last_position = -1
        for channel in Channel:
            if channel not in chosen:
                continue
            position, rule, action = chosen[channel]
            resolution.commands.append(build_command(rule.rack_id, action))
            resolution.winners[channel] = rule
            if position > last_position:
                last_position = position
                resolution.trigger_rule = rule

        return resolution


def build_command(rack_id: str, action: ActionConfig) -> ActuatorCommand:
    """
    Build the concrete command for a rule action.

    Raises:
        TypeError: For an action type with no command mapping
    """
    if isinstance(action, WateringAction):
        return WateringCommand(
            rack_id=rack_id,
            mode=action.action,
            duration_ms=action.duration_ms,
        )
    elif isinstance(action, GrowLightAction):
        return GrowLightCommand(rack_id=rack_id, mode=action.action)
    raise TypeError(f"Unknown action type: {type(action)}")
