"""DetectionCycle — one polling tick of arrival detection.

Each tick:
    1. loads the rules to evaluate (cached for ``rule_refresh``);
    2. acquires only the signals those rules need;
    3. loads the committed DetectorState, evaluates, saves the next state;
    4. hands every fired rule to the dispatcher.

At most one tick is in flight: a tick requested while another is running
is skipped, not queued.  A failing tick commits nothing, so the previous
state carries over to the next one.  Dispatch happens after the commit;
a dispatcher failure never rolls the state back.

The cycle holds no detector state of its own.  Everything is threaded
through the injected stores.

``DepartureCycle`` drives the departure watch under the same contract.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, TypeVar

from arrival_engine.core.departure import DepartureDetector, select_places
from arrival_engine.core.tracker import HysteresisCooldownTracker
from arrival_engine.domain.departure import DepartureConfig, DepartureState, PreferredPlace
from arrival_engine.domain.enums import RuleTransition
from arrival_engine.domain.rule import Rule
from arrival_engine.domain.snapshot import SignalSnapshot
from arrival_engine.domain.state import DetectorState
from arrival_engine.foundation.clock import now_ms as clock_now_ms
from arrival_engine.foundation.clock import utc_now
from arrival_engine.store.protocols import (
    DepartureNotifier,
    DepartureStore,
    Dispatcher,
    ErrorReporter,
    RuleStore,
    SignalProvider,
    StateStore,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CycleOutcome:
    """What a completed tick evaluated and fired."""

    now_ms: int
    evaluated_rules: int
    fired_rules: list[Rule] = field(default_factory=list)
    transitions: dict[str, RuleTransition] = field(default_factory=dict)
    state: Optional[DetectorState] = None

    @property
    def fired_rule_ids(self) -> list[str]:
        return [rule.id for rule in self.fired_rules]


async def read_signal(kind: str, provider: Callable[[], Awaitable[Optional[T]]]) -> Optional[T]:
    # An unavailable signal is absent, never an engine error.
    try:
        return await provider()
    except Exception as exc:
        logger.warning("Signal '%s' unavailable: %s", kind, exc)
        return None


class CycleStats:
    """Running counters for observability endpoints."""

    __slots__ = (
        "ticks",
        "skipped",
        "failed",
        "fired",
        "dispatch_failures",
        "last_tick_at",
        "last_error",
    )

    def __init__(self) -> None:
        self.ticks: int = 0
        self.skipped: int = 0
        self.failed: int = 0
        self.fired: int = 0
        self.dispatch_failures: int = 0
        self.last_tick_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "ticks": self.ticks,
            "skipped": self.skipped,
            "failed": self.failed,
            "fired": self.fired,
            "dispatch_failures": self.dispatch_failures,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
            "last_error": self.last_error,
        }


class DetectionCycle:
    """Orchestrates providers → tracker → dispatcher for one tick at a time.

    Args:
        rule_store: Source of the rules to evaluate.
        state_store: Where the committed DetectorState lives.
        signals: Platform signal provider.
        dispatcher: Receives every fired rule.
        reporter: Optional sink for unexpected tick failures.
        rule_refresh: How long loaded rules are reused before reloading.
        tracker: Hysteresis/cooldown evaluator.
    """

    def __init__(
        self,
        rule_store: RuleStore,
        state_store: StateStore,
        signals: SignalProvider,
        dispatcher: Dispatcher,
        reporter: ErrorReporter | None = None,
        rule_refresh: timedelta = timedelta(minutes=3),
        tracker: HysteresisCooldownTracker | None = None,
    ) -> None:
        self._rule_store = rule_store
        self._state_store = state_store
        self._signals = signals
        self._dispatcher = dispatcher
        self._reporter = reporter
        self._rule_refresh_ms = int(rule_refresh.total_seconds() * 1000)
        self._tracker = tracker or HysteresisCooldownTracker()
        self._running = False
        self._cached_rules: list[Rule] = []
        self._rules_loaded_at_ms: Optional[int] = None
        self.stats = CycleStats()

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def in_flight(self) -> bool:
        return self._running

    def invalidate_rules(self) -> None:
        """Force the next tick to reload rules (after an edit)."""
        self._rules_loaded_at_ms = None

    async def tick(self, now_ms: int | None = None) -> CycleOutcome | None:
        """Run one detection tick.

        Returns the outcome, or None when the tick was skipped because
        another one is in flight or failed before committing.
        """
        if self._running:
            self.stats.skipped += 1
            logger.debug("Detection tick skipped: previous tick still in flight")
            return None

        self._running = True
        try:
            outcome = await self._run(now_ms if now_ms is not None else clock_now_ms())
        except Exception as exc:
            self.stats.failed += 1
            self.stats.last_error = f"{type(exc).__name__}: {exc}"
            logger.exception("Detection tick failed; keeping previous state")
            if self._reporter is not None:
                self._reporter.report(exc)
            return None
        finally:
            self._running = False
            self.stats.ticks += 1
            self.stats.last_tick_at = utc_now()

        await self._dispatch(outcome.fired_rules)
        return outcome

    # ── Internals ────────────────────────────────────────────────────────

    async def _run(self, now_ms: int) -> CycleOutcome:
        rules = await self._load_rules(now_ms)
        if not rules:
            return CycleOutcome(now_ms=now_ms, evaluated_rules=0)

        snapshot = await self._acquire(rules)
        state = await self._state_store.load_state()
        result = self._tracker.evaluate(rules, snapshot, state, now_ms)
        await self._state_store.save_state(result.next_state)

        self.stats.fired += len(result.fired_rules)
        for rule in result.fired_rules:
            logger.info("Arrival detected for rule %s (%s)", rule.id, rule.label)

        return CycleOutcome(
            now_ms=now_ms,
            evaluated_rules=len(rules),
            fired_rules=result.fired_rules,
            transitions=result.transitions,
            state=result.next_state,
        )

    async def _load_rules(self, now_ms: int) -> list[Rule]:
        fresh = (
            self._rules_loaded_at_ms is not None
            and now_ms - self._rules_loaded_at_ms < self._rule_refresh_ms
        )
        if not fresh:
            self._cached_rules = [rule for rule in await self._rule_store.load_rules() if rule.is_active]
            self._rules_loaded_at_ms = now_ms
            logger.info("Detector loaded %d active rule(s)", len(self._cached_rules))
        return self._cached_rules

    async def _acquire(self, rules: list[Rule]) -> SignalSnapshot:
        """Read only the signals at least one rule depends on."""
        needs_position = any(rule.trigger.by_position for rule in rules)
        needs_network = any(rule.trigger.by_network for rule in rules)
        needs_charging = any(rule.trigger.by_charging for rule in rules)

        return SignalSnapshot(
            coords=await read_signal("position", self._signals.get_coords) if needs_position else None,
            network=await read_signal("network", self._signals.get_network_identity) if needs_network else None,
            charging=await read_signal("charging", self._signals.is_charging) if needs_charging else None,
        )

    async def _dispatch(self, rules: list[Rule]) -> None:
        for rule in rules:
            try:
                await self._dispatcher.notify(rule)
            except Exception:
                self.stats.dispatch_failures += 1
                logger.exception("Dispatcher failed for rule %s", rule.id)


# ── Departure watch ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DepartureOutcome:
    """What a completed departure tick watched and whether it alerted."""

    now_ms: int
    watched_places: int
    notified: bool = False
    place_label: Optional[str] = None
    state: Optional[DepartureState] = None


class DepartureCycle:
    """One departure-watch tick at a time: position → detector → notifier.

    Same contract as :class:`DetectionCycle`: overlapping ticks are
    skipped, a failing tick commits nothing, and the notifier runs after
    the state is saved.  Without watched places or a position fix the tick
    changes nothing.

    Args:
        store: Watched places, settings, active trip and committed state.
        signals: Platform signal provider; only the position is read.
        notifier: Receives every forgotten-trip alert.
        reporter: Optional sink for unexpected tick failures.
        place_refresh: How long loaded places and settings are reused.
        detector: Departure hysteresis evaluator.
    """

    def __init__(
        self,
        store: DepartureStore,
        signals: SignalProvider,
        notifier: DepartureNotifier,
        reporter: ErrorReporter | None = None,
        place_refresh: timedelta = timedelta(minutes=3),
        detector: DepartureDetector | None = None,
    ) -> None:
        self._store = store
        self._signals = signals
        self._notifier = notifier
        self._reporter = reporter
        self._place_refresh_ms = int(place_refresh.total_seconds() * 1000)
        self._detector = detector or DepartureDetector()
        self._running = False
        self._cached_config = DepartureConfig()
        self._cached_places: list[PreferredPlace] = []
        self._places_loaded_at_ms: Optional[int] = None
        self.stats = CycleStats()

    @property
    def in_flight(self) -> bool:
        return self._running

    def invalidate_places(self) -> None:
        """Force the next tick to reload places and settings."""
        self._places_loaded_at_ms = None

    async def tick(self, now_ms: int | None = None) -> DepartureOutcome | None:
        """Run one departure tick; None when skipped or failed."""
        if self._running:
            self.stats.skipped += 1
            logger.debug("Departure tick skipped: previous tick still in flight")
            return None

        self._running = True
        try:
            outcome, place = await self._run(now_ms if now_ms is not None else clock_now_ms())
        except Exception as exc:
            self.stats.failed += 1
            self.stats.last_error = f"{type(exc).__name__}: {exc}"
            logger.exception("Departure tick failed; keeping previous state")
            if self._reporter is not None:
                self._reporter.report(exc)
            return None
        finally:
            self._running = False
            self.stats.ticks += 1
            self.stats.last_tick_at = utc_now()

        if outcome.notified and outcome.place_label:
            try:
                await self._notifier.notify_departure(outcome.place_label, place)
            except Exception:
                self.stats.dispatch_failures += 1
                logger.exception("Departure notifier failed for %s", outcome.place_label)
        return outcome

    async def _run(self, now_ms: int) -> tuple[DepartureOutcome, Optional[PreferredPlace]]:
        config, places = await self._load_places(now_ms)
        if not places:
            return DepartureOutcome(now_ms=now_ms, watched_places=0), None

        coords = await read_signal("position", self._signals.get_coords)
        if coords is None:
            return DepartureOutcome(now_ms=now_ms, watched_places=len(places)), None

        has_active_trip = await self._store.has_active_trip()
        state = await self._store.load_state()
        result = self._detector.evaluate(coords, places, config, state, has_active_trip, now_ms)
        await self._store.save_state(result.next_state)

        if result.should_notify:
            self.stats.fired += 1
            logger.info("Possible forgotten trip after leaving %s", result.place_label)

        outcome = DepartureOutcome(
            now_ms=now_ms,
            watched_places=len(places),
            notified=result.should_notify,
            place_label=result.place_label,
            state=result.next_state,
        )
        return outcome, result.place

    async def _load_places(self, now_ms: int) -> tuple[DepartureConfig, list[PreferredPlace]]:
        fresh = (
            self._places_loaded_at_ms is not None
            and now_ms - self._places_loaded_at_ms < self._place_refresh_ms
        )
        if not fresh:
            self._cached_config = await self._store.load_config()
            self._cached_places = select_places(await self._store.load_places(), self._cached_config)
            self._places_loaded_at_ms = now_ms
            logger.info("Departure watch loaded %d place(s)", len(self._cached_places))
        return self._cached_config, self._cached_places
