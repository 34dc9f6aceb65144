"""Tests for the hysteresis + cooldown state machine.

Covers single-fire-per-visit, re-arming only after exit, cooldown gating
measured from the original fire, and inert rules.
"""

from __future__ import annotations

from arrival_engine.core.tracker import HysteresisCooldownTracker, classify
from arrival_engine.domain.enums import RuleTransition
from arrival_engine.domain.geo import Coords
from arrival_engine.domain.rule import Rule
from arrival_engine.domain.snapshot import SignalSnapshot
from arrival_engine.domain.state import DetectorState

from tests.test_rule import _rule

# ── Helpers ──────────────────────────────────────────────────────────────────

_MINUTE = 60_000
_T0 = 1000

_tracker = HysteresisCooldownTracker()


def _inside(rule: Rule) -> SignalSnapshot:
    return SignalSnapshot(coords=Coords(latitude=rule.latitude, longitude=rule.longitude))


def _outside(rule: Rule) -> SignalSnapshot:
    # About 1.4 km from the rule centre.
    return SignalSnapshot(coords=Coords(latitude=rule.latitude + 0.01, longitude=rule.longitude + 0.01))


def _step(rule: Rule, snapshot: SignalSnapshot, state: DetectorState, now_ms: int):
    return _tracker.evaluate([rule], snapshot, state, now_ms)


# ── Transition classification ────────────────────────────────────────────────


class TestClassify:
    def test_outside(self) -> None:
        assert classify(False, False) is RuleTransition.OUTSIDE
        assert classify(True, False) is RuleTransition.OUTSIDE

    def test_entering(self) -> None:
        assert classify(False, True) is RuleTransition.ENTERING

    def test_sustained(self) -> None:
        assert classify(True, True) is RuleTransition.SUSTAINED


# ── Single fire per visit ────────────────────────────────────────────────────


class TestSingleFirePerVisit:
    def test_entering_fires_and_records_time(self) -> None:
        rule = _rule()
        result = _step(rule, _inside(rule), DetectorState(), _T0)
        assert [r.id for r in result.fired_rules] == [rule.id]
        assert rule.id in result.next_state.eligible_rule_ids
        assert result.next_state.last_fired_at_by_rule[rule.id] == _T0
        assert result.transitions[rule.id] is RuleTransition.ENTERING

    def test_staying_inside_never_refires(self) -> None:
        rule = _rule(radius_meters=120, cooldown_minutes=10)
        state = _step(rule, _inside(rule), DetectorState(), _T0).next_state
        fired = 0
        for i in range(1, 50):
            result = _step(rule, _inside(rule), state, _T0 + i * 30_000)
            fired += len(result.fired_rules)
            state = result.next_state
            assert result.transitions[rule.id] is RuleTransition.SUSTAINED
        assert fired == 0

    def test_rearm_requires_exit_regardless_of_elapsed_time(self) -> None:
        rule = _rule(cooldown_minutes=1)
        state = _step(rule, _inside(rule), DetectorState(), _T0).next_state
        result = _step(rule, _inside(rule), state, _T0 + 24 * 60 * _MINUTE)
        assert result.fired_rules == []

    def test_last_fire_untouched_when_not_firing(self) -> None:
        rule = _rule()
        state = _step(rule, _inside(rule), DetectorState(), _T0).next_state
        result = _step(rule, _inside(rule), state, _T0 + 1000)
        assert result.next_state.last_fired_at_by_rule == {rule.id: _T0}


# ── Cooldown ─────────────────────────────────────────────────────────────────


class TestCooldown:
    def test_rapid_reentry_blocked_then_allowed_after_cooldown(self) -> None:
        rule = _rule(cooldown_minutes=10)
        enter = _step(rule, _inside(rule), DetectorState(), _T0)
        exit_ = _step(rule, _outside(rule), enter.next_state, _T0 + 1000)
        assert rule.id not in exit_.next_state.eligible_rule_ids

        too_soon = _step(rule, _inside(rule), exit_.next_state, _T0 + 5 * _MINUTE)
        assert too_soon.fired_rules == []

        exit_again = _step(rule, _outside(rule), too_soon.next_state, _T0 + 6 * _MINUTE)
        after = _step(rule, _inside(rule), exit_again.next_state, _T0 + 11 * _MINUTE)
        assert [r.id for r in after.fired_rules] == [rule.id]
        assert after.next_state.last_fired_at_by_rule[rule.id] == _T0 + 11 * _MINUTE

    def test_blocked_edge_is_not_retried_while_inside(self) -> None:
        rule = _rule(cooldown_minutes=10)
        enter = _step(rule, _inside(rule), DetectorState(), _T0)
        exit_ = _step(rule, _outside(rule), enter.next_state, _T0 + 1000)
        blocked = _step(rule, _inside(rule), exit_.next_state, _T0 + 2 * _MINUTE)
        assert blocked.fired_rules == []
        assert rule.id in blocked.next_state.eligible_rule_ids

        # Cooldown has long passed, but the user never left.
        later = _step(rule, _inside(rule), blocked.next_state, _T0 + 60 * _MINUTE)
        assert later.fired_rules == []

    def test_cooldown_boundary_is_inclusive(self) -> None:
        rule = _rule(cooldown_minutes=10)
        state = DetectorState(last_fired_at_by_rule={rule.id: _T0})
        result = _step(rule, _inside(rule), state, _T0 + 10 * _MINUTE)
        assert len(result.fired_rules) == 1

    def test_cooldown_measured_from_original_fire(self) -> None:
        rule = _rule(cooldown_minutes=60)
        enter = _step(rule, _inside(rule), DetectorState(), 1000)
        assert enter.next_state.last_fired_at_by_rule[rule.id] == 1000

        stay = _step(rule, _inside(rule), enter.next_state, 2000)
        assert stay.fired_rules == []

        away = _step(rule, _outside(rule), stay.next_state, 3000)
        back = _step(rule, _inside(rule), away.next_state, 30 * _MINUTE)
        assert back.fired_rules == []

        away_again = _step(rule, _outside(rule), back.next_state, 50 * _MINUTE)
        back_again = _step(rule, _inside(rule), away_again.next_state, 1000 + 60 * _MINUTE)
        assert [r.id for r in back_again.fired_rules] == [rule.id]


# ── Inert rules and multiple rules ───────────────────────────────────────────


class TestRuleSets:
    def test_inert_rules_never_fire(self) -> None:
        silent = _rule(id="silent", recipient_ids=[])
        off = _rule(id="off", enabled=False)
        result = _tracker.evaluate([silent, off], _inside(silent), DetectorState(), _T0)
        assert result.fired_rules == []
        assert result.next_state.eligible_rule_ids == frozenset()

    def test_rules_are_independent(self) -> None:
        home = _rule(id="home")
        work = _rule(id="work", latitude=48.8566, longitude=2.3522)
        result = _tracker.evaluate([home, work], _inside(home), DetectorState(), _T0)
        assert [r.id for r in result.fired_rules] == ["home"]
        assert result.next_state.eligible_rule_ids == frozenset({"home"})

    def test_eligible_set_rebuilt_from_scratch(self) -> None:
        rule = _rule()
        stale = DetectorState(eligible_rule_ids=frozenset({"deleted-rule", rule.id}))
        result = _tracker.evaluate([rule], _outside(rule), stale, _T0)
        assert result.next_state.eligible_rule_ids == frozenset()

    def test_input_state_is_not_mutated(self) -> None:
        rule = _rule()
        state = DetectorState()
        _step(rule, _inside(rule), state, _T0)
        assert state == DetectorState()

    def test_missing_coords_count_as_exit(self) -> None:
        rule = _rule(cooldown_minutes=1)
        enter = _step(rule, _inside(rule), DetectorState(), _T0)
        lost = _step(rule, SignalSnapshot(), enter.next_state, _T0 + 1000)
        assert rule.id not in lost.next_state.eligible_rule_ids
        back = _step(rule, _inside(rule), lost.next_state, _T0 + 2 * _MINUTE)
        assert len(back.fired_rules) == 1
