"""Detector inspection and control endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from arrival_engine.core.cycle import DetectionCycle
from arrival_engine.store.repositories import DetectorStateRepository


def create_detector_router(cycle: DetectionCycle, states: DetectorStateRepository) -> APIRouter:
    router = APIRouter(prefix="/api/detector", tags=["detector"])

    @router.get("/state")
    async def get_state() -> dict[str, Any]:
        state = await states.load_state()
        return state.model_dump(mode="json")

    @router.delete("/state", status_code=204)
    async def reset_state() -> None:
        await states.clear()

    @router.post("/tick")
    async def run_tick() -> dict[str, Any]:
        """Run a tick now; reports 'skipped' if one is already in flight."""
        outcome = await cycle.tick()
        if outcome is None:
            status = "skipped" if cycle.in_flight else "failed"
            return {"status": status, "stats": cycle.stats.to_dict()}
        return {
            "status": "completed",
            "evaluated_rules": outcome.evaluated_rules,
            "fired_rule_ids": outcome.fired_rule_ids,
            "transitions": {rid: t.value for rid, t in outcome.transitions.items()},
        }

    return router
