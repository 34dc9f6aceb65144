"""Departure watch endpoints: favourite places, settings, trips, state.

Place and settings edits invalidate the departure cycle's cache so the
next tick sees them.  Starting a trip suppresses departure alerts until
the trip ends.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from arrival_engine.core.cycle import DepartureCycle
from arrival_engine.core.departure import select_places
from arrival_engine.domain.departure import DepartureConfig, PreferredPlace
from arrival_engine.store.repositories import DepartureRepository

logger = logging.getLogger(__name__)


class TripStart(BaseModel):
    trip_id: str = Field(..., min_length=1, max_length=128)


def create_departure_router(repository: DepartureRepository, cycle: DepartureCycle) -> APIRouter:
    router = APIRouter(prefix="/api/departure", tags=["departure"])

    # ── Settings ─────────────────────────────────────────────────────────

    @router.get("/config")
    async def get_config() -> DepartureConfig:
        return await repository.load_config()

    @router.put("/config")
    async def put_config(config: DepartureConfig) -> DepartureConfig:
        saved = await repository.save_config(config)
        cycle.invalidate_places()
        return saved

    @router.delete("/config")
    async def reset_config() -> DepartureConfig:
        saved = await repository.reset_config()
        cycle.invalidate_places()
        return saved

    # ── Places ───────────────────────────────────────────────────────────

    @router.get("/places")
    async def list_places() -> dict[str, Any]:
        places = await repository.load_places()
        watched = select_places(places, await repository.load_config())
        return {
            "places": [place.model_dump(mode="json") for place in places],
            "watched_place_ids": [place.id for place in watched],
        }

    @router.put("/places")
    async def put_places(places: list[PreferredPlace]) -> dict[str, Any]:
        stored = await repository.save_places(places)
        cycle.invalidate_places()
        return {"count": len(stored)}

    # ── Trip ─────────────────────────────────────────────────────────────

    @router.get("/trip")
    async def get_trip() -> dict[str, Any]:
        trip = await repository.load_active_trip()
        return {"active": trip is not None, "trip": trip.model_dump(mode="json") if trip else None}

    @router.put("/trip")
    async def start_trip(body: TripStart) -> dict[str, Any]:
        trip = await repository.start_trip(body.trip_id)
        logger.info("Trip %s started; departure alerts suppressed", trip.trip_id)
        return {"active": True, "trip": trip.model_dump(mode="json")}

    @router.delete("/trip", status_code=204)
    async def end_trip() -> None:
        await repository.end_trip()
        logger.info("Trip ended; departure alerts resumed")

    # ── Watch state ──────────────────────────────────────────────────────

    @router.get("/state")
    async def get_state() -> dict[str, Any]:
        return (await repository.load_state()).model_dump(mode="json")

    @router.delete("/state", status_code=204)
    async def reset_state() -> None:
        await repository.clear_state()

    @router.post("/tick")
    async def run_tick() -> dict[str, Any]:
        outcome = await cycle.tick()
        if outcome is None:
            status = "skipped" if cycle.in_flight else "failed"
            return {"status": status, "stats": cycle.stats.to_dict()}
        return {
            "status": "completed",
            "watched_places": outcome.watched_places,
            "notified": outcome.notified,
            "place_label": outcome.place_label,
        }

    return router
