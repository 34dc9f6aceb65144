"""Rule — a user-defined place and the conditions that mean "arrived".

Rules are created and edited by the user and owned by the rule store.  The
engine only reads them.  All normalisation happens here, at construction
time, so evaluation code never has to re-check ranges or formats.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from arrival_engine.domain.geo import Coords
from arrival_engine.domain.network import clean_network_value, extract_ipv4_prefix
from arrival_engine.foundation.clock import ensure_utc, utc_now
from arrival_engine.foundation.numbers import clamped_int

logger = logging.getLogger(__name__)

MIN_RADIUS_METERS = 40
MAX_RADIUS_METERS = 1200
DEFAULT_RADIUS_METERS = 140

MIN_COOLDOWN_MINUTES = 1
MAX_COOLDOWN_MINUTES = 24 * 60
DEFAULT_COOLDOWN_MINUTES = 60


# ── Trigger Conditions ───────────────────────────────────────────────────────

class TriggerConditions(BaseModel):
    """Which signals must agree before a rule counts as eligible.

    Each condition is an explicit optional switch with its comparison data
    alongside.  At least one switch is always on: when none is, position
    is turned on.
    """

    by_position: bool = True
    by_network: bool = False
    by_charging: bool = False

    network_name: Optional[str] = None
    network_hardware_id: Optional[str] = None
    network_address_prefix: Optional[str] = None

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def at_least_one_condition(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        by_position = data.get("by_position", True)
        if not (by_position or data.get("by_network") or data.get("by_charging")):
            data = {**data, "by_position": True}
        return data

    @field_validator("network_name", mode="before")
    @classmethod
    def clean_name(cls, v: object) -> Optional[str]:
        return clean_network_value(v)

    @field_validator("network_hardware_id", mode="before")
    @classmethod
    def clean_hardware_id(cls, v: object) -> Optional[str]:
        cleaned = clean_network_value(v)
        return cleaned.lower() if cleaned else None

    @field_validator("network_address_prefix", mode="before")
    @classmethod
    def clean_prefix(cls, v: object) -> Optional[str]:
        return extract_ipv4_prefix(v)


def _unique_recipients(v: object) -> tuple[str, ...]:
    if v is None:
        return ()
    if isinstance(v, str):
        v = [v]
    seen: dict[str, None] = {}
    for item in v:  # type: ignore[union-attr]
        value = str(item).strip()
        if value:
            seen.setdefault(value, None)
    return tuple(seen)


# ── Rule ─────────────────────────────────────────────────────────────────────

class Rule(BaseModel):
    """A place (geofence) plus the recipients to tell when the user arrives."""

    id: str = Field(..., min_length=1, max_length=128)
    label: str = Field(..., min_length=1, max_length=256)
    address: str = Field(..., min_length=1, max_length=512, description="Display only")
    latitude: float = Field(..., ge=-90.0, le=90.0, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180.0, le=180.0, allow_inf_nan=False)
    radius_meters: int = DEFAULT_RADIUS_METERS
    cooldown_minutes: int = DEFAULT_COOLDOWN_MINUTES
    recipient_ids: tuple[str, ...] = ()
    trigger: TriggerConditions = Field(default_factory=TriggerConditions)
    enabled: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True, "str_strip_whitespace": True}

    @field_validator("radius_meters", mode="before")
    @classmethod
    def clamp_radius(cls, v: object) -> int:
        return clamped_int(v, DEFAULT_RADIUS_METERS, MIN_RADIUS_METERS, MAX_RADIUS_METERS)

    @field_validator("cooldown_minutes", mode="before")
    @classmethod
    def clamp_cooldown(cls, v: object) -> int:
        return clamped_int(v, DEFAULT_COOLDOWN_MINUTES, MIN_COOLDOWN_MINUTES, MAX_COOLDOWN_MINUTES)

    @field_validator("trigger", mode="before")
    @classmethod
    def default_trigger(cls, v: object) -> object:
        # A missing or malformed trigger means position only.
        if isinstance(v, (dict, TriggerConditions)):
            return v
        return {}

    @field_validator("recipient_ids", mode="before")
    @classmethod
    def dedupe_recipients(cls, v: object) -> tuple[str, ...]:
        return _unique_recipients(v)

    @field_validator("created_at", "updated_at")
    @classmethod
    def timestamps_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def center(self) -> Coords:
        return Coords(latitude=self.latitude, longitude=self.longitude)

    @property
    def is_active(self) -> bool:
        """Only enabled rules with someone to notify are ever evaluated."""
        return self.enabled and len(self.recipient_ids) > 0


class RuleDraft(BaseModel):
    """User input for a new rule; the repository assigns id and timestamps."""

    label: str = Field(..., min_length=1, max_length=256)
    address: str = Field(..., min_length=1, max_length=512)
    latitude: float = Field(..., ge=-90.0, le=90.0, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180.0, le=180.0, allow_inf_nan=False)
    recipient_ids: list[str] = Field(default_factory=list)
    trigger: Optional[TriggerConditions] = None
    radius_meters: Optional[float] = None
    cooldown_minutes: Optional[float] = None

    model_config = {"str_strip_whitespace": True}


# ── Rule Set ─────────────────────────────────────────────────────────────────

class RuleSet(BaseModel):
    """Every stored rule plus the master on/off switch.

    Loading is forgiving: a stored rule that no longer validates is dropped
    with a warning instead of poisoning the whole set.  Rules are kept most
    recently updated first.
    """

    enabled: bool = False
    rules: list[Rule] = Field(default_factory=list)

    model_config = {"frozen": True}

    @field_validator("rules", mode="before")
    @classmethod
    def drop_invalid_rules(cls, v: object) -> list[Rule]:
        if not isinstance(v, (list, tuple)):
            return []
        rules: list[Rule] = []
        for raw in v:
            if isinstance(raw, Rule):
                rules.append(raw)
                continue
            try:
                rules.append(Rule.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Dropping invalid stored rule: %s", exc.errors()[:1])
        rules.sort(key=lambda rule: rule.updated_at, reverse=True)
        return rules

    @property
    def active_rules(self) -> list[Rule]:
        """Rules the detector should evaluate; none while switched off."""
        if not self.enabled:
            return []
        return [rule for rule in self.rules if rule.is_active]

    def find(self, rule_id: str) -> Optional[Rule]:
        return next((rule for rule in self.rules if rule.id == rule_id), None)
