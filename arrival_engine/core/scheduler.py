"""EscalationScheduler — when should each "are you back yet?" stage happen?

Base-time selection, in priority order:
    1. a valid expected arrival time;
    2. now + estimated trip duration;
    3. now.
The base is then clamped to ``max(base, now)``: an arrival that already
elapsed anchors the escalation to the present moment instead.  Durations
are capped at one week, and an expected arrival too close to the end of
the calendar to carry a full stage delay is ignored like an invalid one.

Stage N happens ``config.stage(N).delay_minutes`` after the base.  Timer
delays are whole seconds from now, never below ``min_delay_seconds`` so a
timer is never due at the moment it is registered.

Pure and deterministic: no I/O, no clock access unless ``now`` is omitted.
It never raises on validated input.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Union

from pydantic import TypeAdapter, ValidationError

from arrival_engine.domain.escalation import (
    MAX_STAGE_DELAY_MINUTES,
    EscalationConfig,
    EscalationSchedule,
    ScheduledStage,
)
from arrival_engine.foundation.clock import ensure_utc, utc_now
from arrival_engine.foundation.numbers import finite_or_none, round_half_up

logger = logging.getLogger(__name__)

MIN_TIMER_DELAY_SECONDS = 5
MAX_TRIP_DURATION_MINUTES = 7 * 24 * 60

_timestamp = TypeAdapter(datetime)

Timestamp = Union[datetime, str]


def parse_timestamp(value: Optional[Timestamp]) -> Optional[datetime]:
    """Return *value* as a UTC-aware datetime, or None if it is not one."""
    if value is None or value == "":
        return None
    try:
        return ensure_utc(_timestamp.validate_python(value))
    except ValidationError:
        return None


def shifted(at: datetime, minutes: int) -> Optional[datetime]:
    """*at* plus *minutes*, or None when that leaves the datetime range."""
    try:
        return at + timedelta(minutes=minutes)
    except OverflowError:
        return None


def format_delay(minutes: int) -> str:
    """Render a stage delay for humans: ``30 min``, ``1 h``, ``1 h 30 min``."""
    if minutes < 60:
        return f"{minutes} min"
    hours, rest = divmod(minutes, 60)
    if rest == 0:
        return f"{hours} h"
    return f"{hours} h {rest} min"


class EscalationScheduler:
    """Computes escalation schedules relative to an expected arrival."""

    def __init__(self, min_delay_seconds: int = MIN_TIMER_DELAY_SECONDS) -> None:
        self._min_delay_seconds = min_delay_seconds

    def base_time(
        self,
        now: datetime,
        expected_arrival_at: Optional[Timestamp] = None,
        estimated_duration_minutes: Optional[float] = None,
    ) -> datetime:
        expected = parse_timestamp(expected_arrival_at)
        duration = finite_or_none(estimated_duration_minutes)

        if expected is not None and shifted(expected, MAX_STAGE_DELAY_MINUTES) is None:
            logger.warning("Ignoring out-of-range expected arrival %s", expected.isoformat())
            expected = None

        if expected is not None:
            base = expected
        elif duration is not None:
            minutes = min(MAX_TRIP_DURATION_MINUTES, max(0, round_half_up(duration)))
            base = shifted(now, minutes) or now
        else:
            base = now

        return max(base, now)

    def compute(
        self,
        config: EscalationConfig,
        now: Optional[datetime] = None,
        expected_arrival_at: Optional[Timestamp] = None,
        estimated_duration_minutes: Optional[float] = None,
    ) -> EscalationSchedule:
        now = ensure_utc(now) if now is not None else utc_now()
        base = self.base_time(now, expected_arrival_at, estimated_duration_minutes)

        stages = []
        for level, stage in enumerate(config.stages, start=1):
            at = shifted(base, stage.delay_minutes) or base
            seconds = round_half_up((at - now).total_seconds())
            stages.append(
                ScheduledStage(
                    level=level,
                    channel=stage.channel,
                    at=at,
                    delay_seconds=max(self._min_delay_seconds, seconds),
                    label=format_delay(stage.delay_minutes),
                )
            )

        return EscalationSchedule(base_at=base, stages=tuple(stages))


def compute_schedule(
    config: EscalationConfig,
    now: Optional[datetime] = None,
    expected_arrival_at: Optional[Timestamp] = None,
    estimated_duration_minutes: Optional[float] = None,
) -> EscalationSchedule:
    """Module-level shortcut using the default timer floor."""
    return EscalationScheduler().compute(
        config,
        now=now,
        expected_arrival_at=expected_arrival_at,
        estimated_duration_minutes=estimated_duration_minutes,
    )
