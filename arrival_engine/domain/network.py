"""Local-network identity and the precedence rules used to compare it.

A rule records what its "home" network looked like when it was created:
a human-readable name, a hardware identifier, or an address prefix.  The
live signal is compared against exactly one of them, in that precedence
order.  Once a higher-precedence field is recorded, lower ones are never
consulted, even when the live signal cannot report the higher one.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from arrival_engine.domain.rule import TriggerConditions

_IPV4_PREFIX = re.compile(r"^(\d{1,3}\.\d{1,3}\.\d{1,3})(?:\.\d{1,3})?$")

# Placeholders some platforms return instead of a real value.
_PLACEHOLDERS = frozenset({"<unknown ssid>", "unknown ssid", "null", "(null)"})


def clean_network_value(value: object) -> Optional[str]:
    """Strip *value* and map blanks and platform placeholders to None."""
    if value is None:
        return None
    raw = str(value).strip()
    if not raw or raw.lower() in _PLACEHOLDERS:
        return None
    return raw


def extract_ipv4_prefix(value: object) -> Optional[str]:
    """Return the first three octets of an IPv4 address or prefix.

    Accepts either a full address (``192.168.1.37``) or a bare prefix
    (``192.168.1``).  Anything else yields None.
    """
    if value is None:
        return None
    match = _IPV4_PREFIX.match(str(value).strip())
    return match.group(1) if match else None


class NetworkIdentity(BaseModel):
    """What the device currently reports about its local network."""

    on_local_network: bool = Field(..., description="True when attached to a local (wifi) network")
    name: Optional[str] = Field(None, description="Human-readable network name")
    hardware_id: Optional[str] = Field(None, description="Access point hardware identifier")
    address: Optional[str] = Field(None, description="Device address on the local network")

    model_config = {"frozen": True}

    @classmethod
    def from_raw(
        cls,
        on_local_network: bool,
        name: object = None,
        hardware_id: object = None,
        address: object = None,
    ) -> "NetworkIdentity":
        """Build a cleaned identity from raw platform readings.

        Off-network readings carry no identifying fields.
        """
        if not on_local_network:
            return cls(on_local_network=False)
        bssid = clean_network_value(hardware_id)
        return cls(
            on_local_network=True,
            name=clean_network_value(name),
            hardware_id=bssid.lower() if bssid else None,
            address=clean_network_value(address),
        )

    @property
    def address_prefix(self) -> Optional[str]:
        return extract_ipv4_prefix(self.address)


def matches_network(expected: "TriggerConditions", observed: Optional[NetworkIdentity]) -> bool:
    """Compare the rule's recorded network against the live identity."""
    if observed is None or not observed.on_local_network:
        return False

    if expected.network_name:
        return expected.network_name.lower() == (observed.name or "").strip().lower()

    if expected.network_hardware_id:
        return expected.network_hardware_id.lower() == (observed.hardware_id or "").strip().lower()

    if expected.network_address_prefix:
        return expected.network_address_prefix == observed.address_prefix

    return False
