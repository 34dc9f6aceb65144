"""HysteresisCooldownTracker — turns raw eligibility into single arrival events.

Per rule, each tick is classified from (was eligible last tick, is
eligible now):

    OUTSIDE    not eligible now.  Nothing fires; if it was eligible, the
               rule is re-armed for a future entry.
    ENTERING   rising edge.  Fires unless the cooldown gate blocks it.
    SUSTAINED  still eligible.  Never fires: at most one fire per
               continuous eligible interval.

Cooldown gate (rising edges only): fire iff the rule never fired, or at
least ``max(1, cooldown_minutes)`` minutes passed since its last fire.  A
blocked edge still marks the rule eligible, so it is NOT retried on the
next tick; a full exit and re-entry is needed.

The tracker performs no I/O.  Its only effects are the returned state and
the list of fired rules the caller must dispatch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from arrival_engine.core.eligibility import is_eligible
from arrival_engine.domain.enums import RuleTransition
from arrival_engine.domain.rule import Rule
from arrival_engine.domain.snapshot import SignalSnapshot
from arrival_engine.domain.state import DetectorState

logger = logging.getLogger(__name__)

MS_PER_MINUTE = 60_000


@dataclass(frozen=True)
class TrackerResult:
    fired_rules: list[Rule]
    next_state: DetectorState
    transitions: dict[str, RuleTransition] = field(default_factory=dict)


def classify(was_eligible: bool, eligible_now: bool) -> RuleTransition:
    if not eligible_now:
        return RuleTransition.OUTSIDE
    if was_eligible:
        return RuleTransition.SUSTAINED
    return RuleTransition.ENTERING


def cooldown_ms(rule: Rule) -> int:
    return max(1, rule.cooldown_minutes) * MS_PER_MINUTE


def cooldown_elapsed(rule: Rule, state: DetectorState, now_ms: int) -> bool:
    last = state.last_fired_at(rule.id)
    if last is None:
        return True
    return now_ms - last >= cooldown_ms(rule)


class HysteresisCooldownTracker:
    """Stateless evaluator; all memory travels in :class:`DetectorState`."""

    def evaluate(
        self,
        rules: Iterable[Rule],
        snapshot: SignalSnapshot,
        state: DetectorState,
        now_ms: int,
    ) -> TrackerResult:
        """Evaluate one tick and return the fired rules plus the next state.

        The eligible set is rebuilt from scratch from *snapshot*; only
        ``last_fired_at_by_rule`` carries over from *state*.
        """
        eligible_now: set[str] = set()
        last_fired = dict(state.last_fired_at_by_rule)
        fired: list[Rule] = []
        transitions: dict[str, RuleTransition] = {}

        for rule in rules:
            if not rule.is_active:
                continue

            eligible = is_eligible(rule, snapshot)
            transition = classify(state.was_eligible(rule.id), eligible)
            transitions[rule.id] = transition

            if eligible:
                eligible_now.add(rule.id)
            if transition is not RuleTransition.ENTERING:
                continue

            if not cooldown_elapsed(rule, state, now_ms):
                logger.debug(
                    "Rule %s entered but is cooling down (last fire %s, now %d)",
                    rule.id,
                    state.last_fired_at(rule.id),
                    now_ms,
                )
                continue

            last_fired[rule.id] = now_ms
            fired.append(rule)

        return TrackerResult(
            fired_rules=fired,
            next_state=DetectorState(
                eligible_rule_ids=frozenset(eligible_now),
                last_fired_at_by_rule=last_fired,
            ),
            transitions=transitions,
        )
