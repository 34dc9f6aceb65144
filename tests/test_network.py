"""Tests for local-network identity cleaning and precedence matching."""

from __future__ import annotations

import pytest

from arrival_engine.domain.network import (
    NetworkIdentity,
    clean_network_value,
    extract_ipv4_prefix,
    matches_network,
)
from arrival_engine.domain.rule import TriggerConditions


def _expected(**fields) -> TriggerConditions:
    return TriggerConditions(by_position=False, by_network=True, **fields)


def _observed(**overrides) -> NetworkIdentity:
    base = {
        "on_local_network": True,
        "name": "Home-5G",
        "hardware_id": "aa:bb:cc:dd:ee:ff",
        "address": "192.168.1.37",
    }
    base.update(overrides)
    return NetworkIdentity(**base)


class TestHelpers:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("192.168.1.37", "192.168.1"),
            ("192.168.1", "192.168.1"),
            ("  10.0.0.1 ", "10.0.0"),
            ("fe80::1", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extract_ipv4_prefix(self, raw, expected) -> None:
        assert extract_ipv4_prefix(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "  ", "<unknown ssid>", "NULL", "(null)"])
    def test_clean_network_value_rejects_placeholders(self, raw) -> None:
        assert clean_network_value(raw) is None

    def test_clean_network_value_strips(self) -> None:
        assert clean_network_value("  Home ") == "Home"

    def test_from_raw_cleans_fields(self) -> None:
        identity = NetworkIdentity.from_raw(True, "<unknown ssid>", "AA:BB", " 10.0.0.4 ")
        assert identity.name is None
        assert identity.hardware_id == "aa:bb"
        assert identity.address_prefix == "10.0.0"

    def test_from_raw_off_network_drops_fields(self) -> None:
        identity = NetworkIdentity.from_raw(False, "Home-5G", "aa:bb", "10.0.0.4")
        assert identity == NetworkIdentity(on_local_network=False)


class TestMatchesNetwork:
    def test_absent_identity_never_matches(self) -> None:
        assert not matches_network(_expected(network_name="Home-5G"), None)

    def test_off_network_never_matches(self) -> None:
        observed = _observed(on_local_network=False)
        assert not matches_network(_expected(network_name="Home-5G"), observed)

    def test_name_match_is_case_insensitive(self) -> None:
        assert matches_network(_expected(network_name="home-5g"), _observed())

    def test_name_takes_precedence_over_other_fields(self) -> None:
        # Hardware id and prefix agree, but the recorded name does not.
        expected = _expected(
            network_name="Office",
            network_hardware_id="aa:bb:cc:dd:ee:ff",
            network_address_prefix="192.168.1",
        )
        assert not matches_network(expected, _observed())

    def test_name_recorded_but_not_observed_fails(self) -> None:
        expected = _expected(network_name="Home-5G", network_address_prefix="192.168.1")
        assert not matches_network(expected, _observed(name=None))

    def test_hardware_id_used_when_no_name(self) -> None:
        expected = _expected(network_hardware_id="AA:BB:CC:DD:EE:FF")
        assert matches_network(expected, _observed(name=None))

    def test_hardware_id_mismatch(self) -> None:
        expected = _expected(network_hardware_id="11:22:33:44:55:66", network_address_prefix="192.168.1")
        assert not matches_network(expected, _observed())

    def test_prefix_used_as_last_resort(self) -> None:
        expected = _expected(network_address_prefix="192.168.1")
        assert matches_network(expected, _observed(name=None, hardware_id=None))

    def test_prefix_mismatch(self) -> None:
        expected = _expected(network_address_prefix="10.0.0")
        assert not matches_network(expected, _observed())

    def test_nothing_recorded_never_matches(self) -> None:
        assert not matches_network(_expected(), _observed())
