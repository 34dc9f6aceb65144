"""REST endpoints for managing arrival rules.

Edits invalidate the detector's rule cache so the next tick sees them.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from arrival_engine.core.cycle import DetectionCycle
from arrival_engine.domain.rule import Rule, RuleDraft
from arrival_engine.store.repositories import RuleNotFoundError, RuleRepository

logger = logging.getLogger(__name__)


class EnabledToggle(BaseModel):
    enabled: bool


def create_rules_router(repository: RuleRepository, cycle: DetectionCycle) -> APIRouter:
    """Factory that wires rule CRUD to a repository and the live cycle."""

    router = APIRouter(prefix="/api/rules", tags=["rules"])

    @router.get("")
    async def list_rules() -> dict[str, Any]:
        rule_set = await repository.load_rule_set()
        return {
            "enabled": rule_set.enabled,
            "rules": [rule.model_dump(mode="json") for rule in rule_set.rules],
            "count": len(rule_set.rules),
            "active_count": len(rule_set.active_rules),
        }

    @router.post("", status_code=201)
    async def create_rule(draft: RuleDraft) -> Rule:
        rule = await repository.add_rule(draft)
        cycle.invalidate_rules()
        return rule

    @router.put("/enabled")
    async def set_detection_enabled(body: EnabledToggle) -> dict[str, Any]:
        rule_set = await repository.set_enabled(body.enabled)
        cycle.invalidate_rules()
        logger.info("Arrival detection %s", "enabled" if body.enabled else "disabled")
        return {"enabled": rule_set.enabled}

    @router.patch("/{rule_id}")
    async def toggle_rule(rule_id: str, body: EnabledToggle) -> Rule:
        try:
            rule = await repository.toggle_rule(rule_id, body.enabled)
        except RuleNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        cycle.invalidate_rules()
        return rule

    @router.delete("/{rule_id}", status_code=204)
    async def delete_rule(rule_id: str) -> None:
        try:
            await repository.delete_rule(rule_id)
        except RuleNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        cycle.invalidate_rules()

    return router
