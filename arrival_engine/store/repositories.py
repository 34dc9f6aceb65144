"""Repositories mapping domain objects onto a key-value store.

The repositories satisfy the collaborator protocols used by the cycles
(``RuleStore``, ``StateStore`` and ``DepartureStore``).  Reads are forgiving: a missing
or corrupt record yields the documented default instead of an error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError

from arrival_engine.domain.departure import (
    ActiveTrip,
    DepartureConfig,
    DepartureState,
    PlaceBook,
    PreferredPlace,
)
from arrival_engine.domain.escalation import EscalationConfig
from arrival_engine.domain.rule import Rule, RuleDraft, RuleSet
from arrival_engine.domain.state import DetectorState
from arrival_engine.foundation.clock import utc_now
from arrival_engine.foundation.identifiers import new_rule_id
from arrival_engine.store.kv import KeyValueStore

logger = logging.getLogger(__name__)

RULE_SET_KEY = "arrival_rules"
ESCALATION_CONFIG_KEY = "escalation_config"
DETECTOR_STATE_KEY = "detector_state"
DEPARTURE_CONFIG_KEY = "departure_config"
PLACES_KEY = "preferred_places"
DEPARTURE_STATE_KEY = "departure_state"
ACTIVE_TRIP_KEY = "active_trip"

M = TypeVar("M", bound=BaseModel)


class RuleNotFoundError(Exception):
    """Raised when an operation targets a rule id that is not stored."""

    def __init__(self, rule_id: str) -> None:
        self.rule_id = rule_id
        super().__init__(f"Rule '{rule_id}' not found")


async def _load(kv: KeyValueStore, key: str, model: type[M], default: M) -> M:
    raw = await kv.get(key)
    if not raw:
        return default
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning("Ignoring corrupt '%s' record: %s", key, exc.errors()[:1])
        return default


class RuleRepository:
    """Rules, the master switch, and the escalation config."""

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv
        self._lock = asyncio.Lock()

    # ── RuleStore protocol ───────────────────────────────────────────────

    async def load_rules(self) -> list[Rule]:
        """Active rules only; empty while the master switch is off."""
        return (await self.load_rule_set()).active_rules

    async def load_config(self) -> EscalationConfig:
        return await _load(self._kv, ESCALATION_CONFIG_KEY, EscalationConfig, EscalationConfig())

    # ── Rule set ─────────────────────────────────────────────────────────

    async def load_rule_set(self) -> RuleSet:
        return await _load(self._kv, RULE_SET_KEY, RuleSet, RuleSet())

    async def save_rule_set(self, rule_set: RuleSet) -> RuleSet:
        # Round-trip through validation so ordering and clamping are re-applied.
        normalised = RuleSet.model_validate(rule_set.model_dump())
        await self._kv.set(RULE_SET_KEY, normalised.model_dump_json())
        return normalised

    async def set_enabled(self, enabled: bool) -> RuleSet:
        async with self._lock:
            current = await self.load_rule_set()
            return await self.save_rule_set(current.model_copy(update={"enabled": enabled}))

    async def add_rule(self, draft: RuleDraft) -> Rule:
        now = utc_now()
        payload = draft.model_dump(exclude_none=True)
        rule = Rule.model_validate({
            **payload,
            "id": new_rule_id(),
            "enabled": True,
            "created_at": now,
            "updated_at": now,
        })
        async with self._lock:
            current = await self.load_rule_set()
            await self.save_rule_set(
                current.model_copy(update={"rules": [rule, *current.rules]})
            )
        logger.info("Added rule %s (%s)", rule.id, rule.label)
        return rule

    async def delete_rule(self, rule_id: str) -> None:
        async with self._lock:
            current = await self.load_rule_set()
            if current.find(rule_id) is None:
                raise RuleNotFoundError(rule_id)
            remaining = [rule for rule in current.rules if rule.id != rule_id]
            await self.save_rule_set(current.model_copy(update={"rules": remaining}))
        logger.info("Deleted rule %s", rule_id)

    async def toggle_rule(self, rule_id: str, enabled: bool) -> Rule:
        async with self._lock:
            current = await self.load_rule_set()
            existing = current.find(rule_id)
            if existing is None:
                raise RuleNotFoundError(rule_id)
            updated = existing.model_copy(update={"enabled": enabled, "updated_at": utc_now()})
            rules = [updated if rule.id == rule_id else rule for rule in current.rules]
            await self.save_rule_set(current.model_copy(update={"rules": rules}))
        return updated

    # ── Escalation config ────────────────────────────────────────────────

    async def save_config(self, config: EscalationConfig) -> EscalationConfig:
        normalised = EscalationConfig.model_validate(config.model_dump())
        await self._kv.set(ESCALATION_CONFIG_KEY, normalised.model_dump_json())
        return normalised

    async def reset_config(self) -> EscalationConfig:
        return await self.save_config(EscalationConfig())


class DetectorStateRepository:
    """Persists the flat, versionless DetectorState record."""

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    async def load_state(self) -> DetectorState:
        return await _load(self._kv, DETECTOR_STATE_KEY, DetectorState, DetectorState())

    async def save_state(self, state: DetectorState) -> None:
        await self._kv.set(DETECTOR_STATE_KEY, state.model_dump_json())

    async def clear(self) -> None:
        await self._kv.delete(DETECTOR_STATE_KEY)


class DepartureRepository:
    """Favourite places, departure settings, the active trip and watch state."""

    def __init__(self, kv: KeyValueStore) -> None:
        self._kv = kv

    # ── DepartureStore protocol ──────────────────────────────────────────

    async def load_config(self) -> DepartureConfig:
        return await _load(self._kv, DEPARTURE_CONFIG_KEY, DepartureConfig, DepartureConfig())

    async def load_places(self) -> list[PreferredPlace]:
        return (await _load(self._kv, PLACES_KEY, PlaceBook, PlaceBook())).places

    async def has_active_trip(self) -> bool:
        return await self.load_active_trip() is not None

    async def load_state(self) -> DepartureState:
        return await _load(self._kv, DEPARTURE_STATE_KEY, DepartureState, DepartureState())

    async def save_state(self, state: DepartureState) -> None:
        await self._kv.set(DEPARTURE_STATE_KEY, state.model_dump_json())

    # ── Settings & places ────────────────────────────────────────────────

    async def save_config(self, config: DepartureConfig) -> DepartureConfig:
        normalised = DepartureConfig.model_validate(config.model_dump())
        await self._kv.set(DEPARTURE_CONFIG_KEY, normalised.model_dump_json())
        return normalised

    async def reset_config(self) -> DepartureConfig:
        return await self.save_config(DepartureConfig())

    async def save_places(self, places: list[PreferredPlace]) -> list[PreferredPlace]:
        book = PlaceBook(places=places)
        await self._kv.set(PLACES_KEY, book.model_dump_json())
        logger.info("Stored %d favourite place(s)", len(book.places))
        return book.places

    # ── Trip & state ─────────────────────────────────────────────────────

    async def load_active_trip(self) -> Optional[ActiveTrip]:
        raw = await self._kv.get(ACTIVE_TRIP_KEY)
        if not raw:
            return None
        try:
            return ActiveTrip.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("Ignoring corrupt '%s' record: %s", ACTIVE_TRIP_KEY, exc.errors()[:1])
            return None

    async def start_trip(self, trip_id: str) -> ActiveTrip:
        trip = ActiveTrip(trip_id=trip_id)
        await self._kv.set(ACTIVE_TRIP_KEY, trip.model_dump_json())
        return trip

    async def end_trip(self) -> None:
        await self._kv.delete(ACTIVE_TRIP_KEY)

    async def clear_state(self) -> None:
        await self._kv.delete(DEPARTURE_STATE_KEY)
