"""DetectorState — the engine's only mutable memory, fully serializable.

The state is replaced wholesale at the end of every cycle; nothing patches
it in place.  ``DetectorState()`` (empty set, empty map) is the documented
starting point and a valid input to the very first cycle.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

from arrival_engine.foundation.numbers import finite_or_none


class DetectorState(BaseModel):
    """Which rules were eligible last tick, and when each one last fired."""

    eligible_rule_ids: frozenset[str] = Field(
        default_factory=frozenset,
        description="Rules satisfying all of their active conditions on the last tick",
    )
    last_fired_at_by_rule: dict[str, int] = Field(
        default_factory=dict,
        description="Rule id → epoch milliseconds of its last fire",
    )

    model_config = {"frozen": True}

    # ── Validators ───────────────────────────────────────────────────────

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_inside_ids(cls, data: Any) -> Any:
        # Older records only tracked geofence membership under this name.
        if isinstance(data, dict) and "eligible_rule_ids" not in data and "inside_rule_ids" in data:
            data = {**data, "eligible_rule_ids": data["inside_rule_ids"]}
        return data

    @field_validator("eligible_rule_ids", mode="before")
    @classmethod
    def drop_blank_ids(cls, v: object) -> frozenset[str]:
        if not isinstance(v, (list, tuple, set, frozenset)):
            return frozenset()
        return frozenset(str(item).strip() for item in v if str(item).strip())

    @field_validator("last_fired_at_by_rule", mode="before")
    @classmethod
    def drop_invalid_timestamps(cls, v: object) -> dict[str, int]:
        if not isinstance(v, dict):
            return {}
        cleaned: dict[str, int] = {}
        for rule_id, raw in v.items():
            ts = finite_or_none(raw)
            if ts is not None and str(rule_id).strip():
                cleaned[str(rule_id).strip()] = int(ts)
        return cleaned

    @field_serializer("eligible_rule_ids")
    def serialize_ids(self, ids: frozenset[str]) -> list[str]:
        return sorted(ids)

    # ── Queries ──────────────────────────────────────────────────────────

    def was_eligible(self, rule_id: str) -> bool:
        return rule_id in self.eligible_rule_ids

    def last_fired_at(self, rule_id: str) -> Optional[int]:
        return self.last_fired_at_by_rule.get(rule_id)
