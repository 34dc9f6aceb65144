"""RuleEligibility — does a snapshot satisfy every enabled condition of a rule?

Pure and total: missing data yields False for the dependent condition and
nothing here raises.  A disabled condition is vacuously satisfied.
"""

from __future__ import annotations

from dataclasses import dataclass

from arrival_engine.domain.geo import distance_meters
from arrival_engine.domain.network import matches_network
from arrival_engine.domain.rule import MIN_RADIUS_METERS, Rule
from arrival_engine.domain.snapshot import SignalSnapshot


@dataclass(frozen=True)
class ConditionChecks:
    """Per-condition outcome for one rule against one snapshot."""

    position: bool
    network: bool
    charging: bool

    @property
    def all_satisfied(self) -> bool:
        return self.position and self.network and self.charging


def position_matches(rule: Rule, snapshot: SignalSnapshot) -> bool:
    if snapshot.coords is None:
        return False
    distance = distance_meters(snapshot.coords, rule.center)
    return distance <= max(MIN_RADIUS_METERS, rule.radius_meters)


def check_conditions(rule: Rule, snapshot: SignalSnapshot) -> ConditionChecks:
    trigger = rule.trigger
    return ConditionChecks(
        position=position_matches(rule, snapshot) if trigger.by_position else True,
        network=matches_network(trigger, snapshot.network) if trigger.by_network else True,
        charging=snapshot.charging is True if trigger.by_charging else True,
    )


def is_eligible(rule: Rule, snapshot: SignalSnapshot) -> bool:
    """True iff *rule* is active and every one of its enabled conditions holds."""
    if not rule.is_active:
        return False
    return check_conditions(rule, snapshot).all_satisfied
