"""Escalation configuration and the schedule computed from it.

An escalation is the "are you back yet?" sequence started with a trip:
three ordered stages, each with a delay after the base time and a delivery
channel.  The ordering invariant (stage 1 ≤ stage 2 ≤ stage 3) and the
one-week cap on each delay are enforced when the config is built, never at
schedule time.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from arrival_engine.domain.enums import DeliveryChannel
from arrival_engine.foundation.numbers import finite_or_none, round_half_up

STAGE_COUNT = 3
MAX_STAGE_DELAY_MINUTES = 7 * 24 * 60

DEFAULT_STAGES: tuple[tuple[int, DeliveryChannel], ...] = (
    (30, DeliveryChannel.LOCAL),
    (120, DeliveryChannel.PUSH),
    (240, DeliveryChannel.SMS),
)


class EscalationStage(BaseModel):
    delay_minutes: int = Field(..., ge=0, le=MAX_STAGE_DELAY_MINUTES, description="Minutes after the base time")
    channel: DeliveryChannel

    model_config = {"frozen": True}


def _default_stages() -> tuple[EscalationStage, ...]:
    return tuple(
        EscalationStage(delay_minutes=delay, channel=channel)
        for delay, channel in DEFAULT_STAGES
    )


def _field(raw: Any, name: str) -> Any:
    if isinstance(raw, EscalationStage):
        return getattr(raw, name)
    if isinstance(raw, dict):
        return raw.get(name)
    return None


class EscalationConfig(BaseModel):
    """Three escalation stages, normalised so they never go backwards."""

    enabled: bool = True
    stages: tuple[EscalationStage, ...] = Field(
        default_factory=_default_stages,
        min_length=STAGE_COUNT,
        max_length=STAGE_COUNT,
    )

    model_config = {"frozen": True}

    @field_validator("stages", mode="before")
    @classmethod
    def normalise_stages(cls, v: object) -> tuple[EscalationStage, ...]:
        raw_stages = list(v) if isinstance(v, (list, tuple)) else []
        stages: list[EscalationStage] = []
        floor = 0
        for index, (default_delay, default_channel) in enumerate(DEFAULT_STAGES):
            raw = raw_stages[index] if index < len(raw_stages) else None

            delay = finite_or_none(_field(raw, "delay_minutes"))
            minutes = default_delay if delay is None or delay < 0 else round_half_up(delay)
            minutes = max(floor, min(MAX_STAGE_DELAY_MINUTES, minutes))
            floor = minutes

            try:
                channel = DeliveryChannel(_field(raw, "channel"))
            except ValueError:
                channel = default_channel

            stages.append(EscalationStage(delay_minutes=minutes, channel=channel))
        return tuple(stages)

    def stage(self, level: int) -> EscalationStage:
        """1-based stage accessor."""
        return self.stages[level - 1]


class ScheduledStage(BaseModel):
    level: int = Field(..., ge=1, le=STAGE_COUNT)
    channel: DeliveryChannel
    at: datetime
    delay_seconds: int = Field(..., description="Seconds from now until this stage, at least the timer floor")
    label: str = Field("", description="Human-readable stage delay, e.g. '1 h 30 min'")

    model_config = {"frozen": True}


class EscalationSchedule(BaseModel):
    """Computed, never stored: a base time and its three derived stages."""

    base_at: datetime
    stages: tuple[ScheduledStage, ...]

    model_config = {"frozen": True}

    def stage_at(self, level: int) -> datetime:
        return self.stages[level - 1].at
