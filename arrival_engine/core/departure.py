"""DepartureDetector — enter/exit hysteresis around favourite places.

Per position fix:

    * inside a watched place       remember it; never alert.
    * outside, remembered a place  alert once the user is at least
                                   ``max(departure_distance, round(radius * 1.2))``
                                   from it and the cooldown has elapsed; the
                                   remembered place is forgotten either way.
    * outside, remembered nothing  nothing changes.

While a trip is active no alert is raised, but the current place is still
tracked so that ending the trip away from it does not alert later.

The detector performs no I/O.  Its only effects are the returned state and
the should-notify flag the caller must act on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from arrival_engine.domain.departure import (
    DepartureConfig,
    DepartureState,
    PreferredPlace,
    is_usual_departure_point,
)
from arrival_engine.domain.geo import Coords, distance_meters
from arrival_engine.foundation.numbers import round_half_up

logger = logging.getLogger(__name__)

MIN_INSIDE_RADIUS_METERS = 30
DEPARTURE_RADIUS_FACTOR = 1.2
FALLBACK_PLACE_LABEL = "a favourite place"
MS_PER_MINUTE = 60_000


@dataclass(frozen=True)
class DepartureResult:
    next_state: DepartureState
    should_notify: bool = False
    place_label: Optional[str] = None
    place: Optional[PreferredPlace] = None


def select_places(places: Iterable[PreferredPlace], config: DepartureConfig) -> list[PreferredPlace]:
    """Places to watch: the selected ones, else every usual departure point."""
    if not config.enabled:
        return []
    if config.selected_place_ids:
        selected = set(config.selected_place_ids)
        return [place for place in places if place.id in selected]
    return [place for place in places if is_usual_departure_point(place.type)]


def inside_radius(place: PreferredPlace, default_radius_meters: int) -> int:
    radius = place.radius_meters if place.radius_meters is not None else default_radius_meters
    return max(MIN_INSIDE_RADIUS_METERS, round_half_up(radius))


def find_current_place(
    coords: Coords,
    places: Iterable[PreferredPlace],
    default_radius_meters: int,
) -> Optional[PreferredPlace]:
    """The place containing *coords* whose center is nearest, if any."""
    best: Optional[PreferredPlace] = None
    best_distance = float("inf")
    for place in places:
        dist = distance_meters(coords, place.center)
        if dist <= inside_radius(place, default_radius_meters) and dist < best_distance:
            best, best_distance = place, dist
    return best


def departure_distance(place: Optional[PreferredPlace], config: DepartureConfig) -> int:
    radius = place.radius_meters if place and place.radius_meters is not None else config.place_radius_meters
    return max(config.departure_distance_meters, round_half_up(radius * DEPARTURE_RADIUS_FACTOR))


class DepartureDetector:
    """Stateless evaluator; all memory travels in :class:`DepartureState`."""

    def evaluate(
        self,
        coords: Coords,
        places: list[PreferredPlace],
        config: DepartureConfig,
        state: DepartureState,
        has_active_trip: bool,
        now_ms: int,
    ) -> DepartureResult:
        current = find_current_place(coords, places, config.place_radius_meters)

        if has_active_trip or current is not None:
            return DepartureResult(
                next_state=DepartureState(
                    inside_place_id=current.id if current else None,
                    last_alert_at_ms=state.last_alert_at_ms,
                ),
            )

        if state.inside_place_id is None:
            return DepartureResult(next_state=state)

        previous = next((place for place in places if place.id == state.inside_place_id), None)
        # A place that is no longer watched counts as left.
        left_enough = previous is None or (
            distance_meters(coords, previous.center) >= departure_distance(previous, config)
        )
        cooldown_passed = (
            state.last_alert_at_ms is None
            or now_ms - state.last_alert_at_ms >= max(1, config.cooldown_minutes) * MS_PER_MINUTE
        )

        if left_enough and cooldown_passed:
            return DepartureResult(
                next_state=DepartureState(inside_place_id=None, last_alert_at_ms=now_ms),
                should_notify=True,
                place_label=previous.label if previous else FALLBACK_PLACE_LABEL,
                place=previous,
            )

        if left_enough:
            logger.debug("Departure from %s suppressed by cooldown", state.inside_place_id)
        return DepartureResult(
            next_state=DepartureState(inside_place_id=None, last_alert_at_ms=state.last_alert_at_ms),
        )
