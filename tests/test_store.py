"""Tests for the key-value stores and the repositories built on them."""

from __future__ import annotations

import json

import pytest

from arrival_engine.domain.departure import DepartureConfig, DepartureState
from arrival_engine.domain.escalation import EscalationConfig
from arrival_engine.domain.rule import RuleDraft, RuleSet
from arrival_engine.domain.state import DetectorState
from arrival_engine.store.kv import InMemoryKeyValueStore, JsonFileKeyValueStore
from arrival_engine.store.repositories import (
    ACTIVE_TRIP_KEY,
    DEPARTURE_STATE_KEY,
    DETECTOR_STATE_KEY,
    ESCALATION_CONFIG_KEY,
    PLACES_KEY,
    RULE_SET_KEY,
    DepartureRepository,
    DetectorStateRepository,
    RuleNotFoundError,
    RuleRepository,
)

from tests.test_departure import _place
from tests.test_rule import _valid_rule


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def rules(kv: InMemoryKeyValueStore) -> RuleRepository:
    return RuleRepository(kv)


@pytest.fixture
def states(kv: InMemoryKeyValueStore) -> DetectorStateRepository:
    return DetectorStateRepository(kv)


def _draft(**overrides) -> RuleDraft:
    base = {
        "label": "Home",
        "address": "1 test street",
        "latitude": 49.4178,
        "longitude": 2.8261,
        "recipient_ids": ["friend-1"],
    }
    base.update(overrides)
    return RuleDraft.model_validate(base)


class TestJsonFileKeyValueStore:
    @pytest.mark.asyncio
    async def test_missing_key_is_none(self, tmp_path) -> None:
        store = JsonFileKeyValueStore(tmp_path)
        assert await store.get("nothing") is None

    @pytest.mark.asyncio
    async def test_set_then_get(self, tmp_path) -> None:
        store = JsonFileKeyValueStore(tmp_path / "nested")
        await store.set("detector_state", '{"a": 1}')
        assert await store.get("detector_state") == '{"a": 1}'
        assert (tmp_path / "nested" / "detector_state.json").exists()

    @pytest.mark.asyncio
    async def test_unsafe_key_characters_are_replaced(self, tmp_path) -> None:
        store = JsonFileKeyValueStore(tmp_path)
        await store.set("../escape:me", "x")
        assert await store.get("../escape:me") == "x"
        assert not (tmp_path.parent / "escape_me.json").exists()

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, tmp_path) -> None:
        store = JsonFileKeyValueStore(tmp_path)
        await store.set("k", "v")
        await store.delete("k")
        await store.delete("k")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_no_temp_files_left_behind(self, tmp_path) -> None:
        store = JsonFileKeyValueStore(tmp_path)
        await store.set("k", "v1")
        await store.set("k", "v2")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["k.json"]


class TestRuleRepository:
    @pytest.mark.asyncio
    async def test_empty_store_gives_default_rule_set(self, rules: RuleRepository) -> None:
        assert await rules.load_rule_set() == RuleSet()
        assert await rules.load_rules() == []

    @pytest.mark.asyncio
    async def test_add_rule_assigns_id_and_normalises(self, rules: RuleRepository) -> None:
        rule = await rules.add_rule(_draft(radius_meters=5, cooldown_minutes=0))
        assert rule.id
        assert rule.radius_meters == 40
        assert rule.cooldown_minutes == 1
        assert rule.enabled
        stored = await rules.load_rule_set()
        assert [r.id for r in stored.rules] == [rule.id]

    @pytest.mark.asyncio
    async def test_load_rules_respects_master_switch(self, rules: RuleRepository) -> None:
        await rules.add_rule(_draft())
        assert await rules.load_rules() == []
        await rules.set_enabled(True)
        assert len(await rules.load_rules()) == 1

    @pytest.mark.asyncio
    async def test_load_rules_skips_rules_without_recipients(self, rules: RuleRepository) -> None:
        await rules.add_rule(_draft(recipient_ids=[]))
        await rules.set_enabled(True)
        assert await rules.load_rules() == []

    @pytest.mark.asyncio
    async def test_toggle_rule(self, rules: RuleRepository) -> None:
        rule = await rules.add_rule(_draft())
        toggled = await rules.toggle_rule(rule.id, False)
        assert toggled.enabled is False
        assert toggled.updated_at >= rule.updated_at
        stored = (await rules.load_rule_set()).find(rule.id)
        assert stored is not None and stored.enabled is False

    @pytest.mark.asyncio
    async def test_delete_rule(self, rules: RuleRepository) -> None:
        rule = await rules.add_rule(_draft())
        await rules.delete_rule(rule.id)
        assert (await rules.load_rule_set()).rules == []

    @pytest.mark.asyncio
    async def test_unknown_rule_raises(self, rules: RuleRepository) -> None:
        with pytest.raises(RuleNotFoundError):
            await rules.delete_rule("ghost")
        with pytest.raises(RuleNotFoundError):
            await rules.toggle_rule("ghost", True)

    @pytest.mark.asyncio
    async def test_corrupt_rule_set_falls_back_to_default(self, kv, rules: RuleRepository) -> None:
        await kv.set(RULE_SET_KEY, "{not json")
        assert await rules.load_rule_set() == RuleSet()

    @pytest.mark.asyncio
    async def test_invalid_stored_rules_are_skipped(self, kv, rules: RuleRepository) -> None:
        payload = {"enabled": True, "rules": [_valid_rule(), _valid_rule(id="", label="")]}
        await kv.set(RULE_SET_KEY, json.dumps(payload))
        rule_set = await rules.load_rule_set()
        assert [r.id for r in rule_set.rules] == ["rule-1"]

    @pytest.mark.asyncio
    async def test_escalation_config_defaults_and_save(self, kv, rules: RuleRepository) -> None:
        assert await rules.load_config() == EscalationConfig()
        saved = await rules.save_config(
            EscalationConfig.model_validate({"stages": [{"delay_minutes": 60}, {"delay_minutes": 10}]})
        )
        assert [s.delay_minutes for s in saved.stages] == [60, 60, 240]
        assert await rules.load_config() == saved
        assert await kv.get(ESCALATION_CONFIG_KEY) is not None

    @pytest.mark.asyncio
    async def test_reset_config(self, rules: RuleRepository) -> None:
        await rules.save_config(EscalationConfig(enabled=False))
        assert await rules.reset_config() == EscalationConfig()


class TestDetectorStateRepository:
    @pytest.mark.asyncio
    async def test_default_state_when_empty(self, states: DetectorStateRepository) -> None:
        assert await states.load_state() == DetectorState()

    @pytest.mark.asyncio
    async def test_save_and_load(self, states: DetectorStateRepository) -> None:
        state = DetectorState(eligible_rule_ids=frozenset({"a"}), last_fired_at_by_rule={"a": 1000})
        await states.save_state(state)
        assert await states.load_state() == state

    @pytest.mark.asyncio
    async def test_corrupt_state_falls_back_to_default(self, kv, states: DetectorStateRepository) -> None:
        await kv.set(DETECTOR_STATE_KEY, "[1, 2, 3]")
        assert await states.load_state() == DetectorState()

    @pytest.mark.asyncio
    async def test_legacy_record_is_migrated(self, kv, states: DetectorStateRepository) -> None:
        await kv.set(DETECTOR_STATE_KEY, json.dumps({"inside_rule_ids": ["home"], "last_fired_at_by_rule": {"home": 5}}))
        state = await states.load_state()
        assert state.eligible_rule_ids == frozenset({"home"})
        assert state.last_fired_at("home") == 5

    @pytest.mark.asyncio
    async def test_clear(self, states: DetectorStateRepository) -> None:
        await states.save_state(DetectorState(last_fired_at_by_rule={"a": 1}))
        await states.clear()
        assert await states.load_state() == DetectorState()

    @pytest.mark.asyncio
    async def test_clear_removes_the_record(self, kv, states: DetectorStateRepository) -> None:
        await states.save_state(DetectorState(last_fired_at_by_rule={"a": 1}))
        await states.clear()
        assert await kv.get(DETECTOR_STATE_KEY) is None

    @pytest.mark.asyncio
    async def test_file_backed_round_trip(self, tmp_path) -> None:
        repo = DetectorStateRepository(JsonFileKeyValueStore(tmp_path))
        state = DetectorState(eligible_rule_ids=frozenset({"x"}), last_fired_at_by_rule={"x": 42})
        await repo.save_state(state)
        assert await DetectorStateRepository(JsonFileKeyValueStore(tmp_path)).load_state() == state


class TestDepartureRepository:
    @pytest.fixture
    def departures(self, kv: InMemoryKeyValueStore) -> DepartureRepository:
        return DepartureRepository(kv)

    @pytest.mark.asyncio
    async def test_defaults_when_empty(self, departures: DepartureRepository) -> None:
        assert await departures.load_config() == DepartureConfig()
        assert await departures.load_places() == []
        assert await departures.load_state() == DepartureState()
        assert await departures.has_active_trip() is False

    @pytest.mark.asyncio
    async def test_config_normalised_and_reset(self, departures: DepartureRepository) -> None:
        saved = await departures.save_config(DepartureConfig(cooldown_minutes=5, selected_place_ids=("a",)))
        assert (await departures.load_config()) == saved
        assert (await departures.reset_config()) == DepartureConfig()

    @pytest.mark.asyncio
    async def test_places_round_trip_without_duplicates(self, departures: DepartureRepository) -> None:
        home = _place()
        stored = await departures.save_places([home, _place(label="Copy"), _place(id="job", label="Office")])
        assert [place.id for place in stored] == ["fav-home", "job"]
        assert await departures.load_places() == stored

    @pytest.mark.asyncio
    async def test_corrupt_places_fall_back_to_empty(self, kv, departures: DepartureRepository) -> None:
        await kv.set(PLACES_KEY, "[oops")
        assert await departures.load_places() == []

    @pytest.mark.asyncio
    async def test_trip_lifecycle(self, departures: DepartureRepository) -> None:
        trip = await departures.start_trip("trip-7")
        assert await departures.has_active_trip() is True
        assert (await departures.load_active_trip()).trip_id == trip.trip_id
        await departures.end_trip()
        assert await departures.has_active_trip() is False

    @pytest.mark.asyncio
    async def test_corrupt_trip_is_no_trip(self, kv, departures: DepartureRepository) -> None:
        await kv.set(ACTIVE_TRIP_KEY, json.dumps({"trip_id": ""}))
        assert await departures.has_active_trip() is False

    @pytest.mark.asyncio
    async def test_state_save_and_clear(self, kv, departures: DepartureRepository) -> None:
        state = DepartureState(inside_place_id="fav-home", last_alert_at_ms=12)
        await departures.save_state(state)
        assert await departures.load_state() == state
        await departures.clear_state()
        assert await kv.get(DEPARTURE_STATE_KEY) is None
        assert await departures.load_state() == DepartureState()
