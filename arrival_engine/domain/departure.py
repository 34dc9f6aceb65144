"""Departure watch — noticing that the user left a favourite place without a trip.

A favourite place the user usually travels from (home, work, friends) is
watched.  Leaving one far enough while no trip is running means a trip
was probably forgotten, so the user is nudged to start one.

This module only holds the value types.  Detection lives in
``arrival_engine.core.departure``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from arrival_engine.domain.enums import PlaceType
from arrival_engine.domain.geo import Coords
from arrival_engine.foundation.clock import ensure_utc, utc_now
from arrival_engine.foundation.numbers import clamped_int, finite_or_none

logger = logging.getLogger(__name__)

MIN_PLACE_RADIUS_METERS = 40
DEFAULT_PLACE_RADIUS_METERS = 140
MIN_DEPARTURE_DISTANCE_METERS = 80
DEFAULT_DEPARTURE_DISTANCE_METERS = 260
MIN_DEPARTURE_COOLDOWN_MINUTES = 1
DEFAULT_DEPARTURE_COOLDOWN_MINUTES = 30

_KEYWORDS: tuple[tuple[PlaceType, tuple[str, ...]], ...] = (
    (PlaceType.HOME, ("maison", "home", "domicile", "chez moi")),
    (PlaceType.WORK, ("travail", "bureau", "work", "office")),
    (PlaceType.FRIENDS, ("ami", "amis", "friend", "friends", "famille")),
)


def infer_place_type(label: str) -> PlaceType:
    """Guess the kind of place from its label; first matching kind wins."""
    value = label.strip().lower()
    for place_type, keywords in _KEYWORDS:
        if any(keyword in value for keyword in keywords):
            return place_type
    return PlaceType.OTHER


def is_usual_departure_point(place_type: PlaceType) -> bool:
    return place_type is not PlaceType.OTHER


# ── Preferred Place ──────────────────────────────────────────────────────────

class PreferredPlace(BaseModel):
    """A favourite place with resolved coordinates."""

    id: str = Field(..., min_length=1, max_length=128)
    label: str = Field(..., min_length=1, max_length=256)
    address: str = Field("", max_length=512)
    latitude: float = Field(..., ge=-90.0, le=90.0, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180.0, le=180.0, allow_inf_nan=False)
    type: PlaceType = PlaceType.OTHER
    radius_meters: Optional[int] = Field(None, description="Overrides the configured place radius")

    model_config = {"frozen": True, "str_strip_whitespace": True}

    @model_validator(mode="before")
    @classmethod
    def infer_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("type"):
            data = {**data, "type": infer_place_type(str(data.get("label") or ""))}
        return data

    @field_validator("radius_meters", mode="before")
    @classmethod
    def round_radius(cls, v: object) -> Optional[int]:
        number = finite_or_none(v)
        return None if number is None else clamped_int(number, DEFAULT_PLACE_RADIUS_METERS, 0)

    @property
    def center(self) -> Coords:
        return Coords(latitude=self.latitude, longitude=self.longitude)


class PlaceBook(BaseModel):
    """Every stored favourite place; invalid or duplicate entries are dropped."""

    places: list[PreferredPlace] = Field(default_factory=list)

    model_config = {"frozen": True}

    @field_validator("places", mode="before")
    @classmethod
    def drop_invalid_places(cls, v: object) -> list[PreferredPlace]:
        if not isinstance(v, (list, tuple)):
            return []
        places: dict[str, PreferredPlace] = {}
        for raw in v:
            try:
                place = raw if isinstance(raw, PreferredPlace) else PreferredPlace.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Dropping invalid stored place: %s", exc.errors()[:1])
                continue
            places.setdefault(place.id, place)
        return list(places.values())

    def find(self, place_id: str) -> Optional[PreferredPlace]:
        return next((place for place in self.places if place.id == place_id), None)


# ── Config & State ───────────────────────────────────────────────────────────

class DepartureConfig(BaseModel):
    """Departure watch settings.

    ``selected_place_ids`` empty means "watch every home, work or friends
    place".  Distances and cooldown only have lower bounds.
    """

    enabled: bool = True
    selected_place_ids: tuple[str, ...] = ()
    place_radius_meters: int = DEFAULT_PLACE_RADIUS_METERS
    departure_distance_meters: int = DEFAULT_DEPARTURE_DISTANCE_METERS
    cooldown_minutes: int = DEFAULT_DEPARTURE_COOLDOWN_MINUTES

    model_config = {"frozen": True}

    @field_validator("enabled", mode="before")
    @classmethod
    def strict_enabled(cls, v: object) -> bool:
        return v if isinstance(v, bool) else True

    @field_validator("selected_place_ids", mode="before")
    @classmethod
    def clean_ids(cls, v: object) -> tuple[str, ...]:
        if not isinstance(v, (list, tuple)):
            return ()
        return tuple(item.strip() for item in v if isinstance(item, str) and item.strip())

    @field_validator("place_radius_meters", mode="before")
    @classmethod
    def floor_radius(cls, v: object) -> int:
        return clamped_int(v, DEFAULT_PLACE_RADIUS_METERS, MIN_PLACE_RADIUS_METERS)

    @field_validator("departure_distance_meters", mode="before")
    @classmethod
    def floor_distance(cls, v: object) -> int:
        return clamped_int(v, DEFAULT_DEPARTURE_DISTANCE_METERS, MIN_DEPARTURE_DISTANCE_METERS)

    @field_validator("cooldown_minutes", mode="before")
    @classmethod
    def floor_cooldown(cls, v: object) -> int:
        return clamped_int(v, DEFAULT_DEPARTURE_COOLDOWN_MINUTES, MIN_DEPARTURE_COOLDOWN_MINUTES)


class DepartureState(BaseModel):
    """Which watched place the user was last inside, and the last alert time."""

    inside_place_id: Optional[str] = None
    last_alert_at_ms: Optional[int] = None

    model_config = {"frozen": True}

    @field_validator("inside_place_id", mode="before")
    @classmethod
    def blank_is_none(cls, v: object) -> Optional[str]:
        if v is None:
            return None
        value = str(v).strip()
        return value or None

    @field_validator("last_alert_at_ms", mode="before")
    @classmethod
    def finite_timestamp(cls, v: object) -> Optional[int]:
        number = finite_or_none(v)
        return None if number is None else int(number)


class ActiveTrip(BaseModel):
    """A trip in progress; its presence suppresses departure alerts."""

    trip_id: str = Field(..., min_length=1, max_length=128)
    started_at: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True, "str_strip_whitespace": True}

    @field_validator("started_at")
    @classmethod
    def started_at_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)
