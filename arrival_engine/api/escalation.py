"""Escalation config and trip-start schedule computation.

POST /api/escalation/schedule is called once when a trip starts; the
returned delays are handed to the device's own timer facility.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from arrival_engine.core.scheduler import EscalationScheduler
from arrival_engine.domain.escalation import EscalationConfig, EscalationSchedule
from arrival_engine.store.repositories import RuleRepository


class ScheduleRequest(BaseModel):
    # Kept as text: an unparsable value falls back to the duration, it is not rejected.
    expected_arrival_at: Optional[str] = Field(None, description="ISO-8601 expected arrival")
    estimated_duration_minutes: Optional[float] = Field(None, description="Estimated trip duration")
    now: Optional[datetime] = Field(None, description="Override for the current time")


class ScheduleResponse(BaseModel):
    enabled: bool
    schedule: EscalationSchedule


def create_escalation_router(repository: RuleRepository, scheduler: EscalationScheduler) -> APIRouter:
    router = APIRouter(prefix="/api/escalation", tags=["escalation"])

    @router.get("/config")
    async def get_config() -> EscalationConfig:
        return await repository.load_config()

    @router.put("/config")
    async def put_config(config: EscalationConfig) -> EscalationConfig:
        return await repository.save_config(config)

    @router.delete("/config")
    async def reset_config() -> EscalationConfig:
        return await repository.reset_config()

    @router.post("/schedule")
    async def compute(request: ScheduleRequest) -> ScheduleResponse:
        config = await repository.load_config()
        schedule = scheduler.compute(
            config,
            now=request.now,
            expected_arrival_at=request.expected_arrival_at,
            estimated_duration_minutes=request.estimated_duration_minutes,
        )
        return ScheduleResponse(enabled=config.enabled, schedule=schedule)

    return router
