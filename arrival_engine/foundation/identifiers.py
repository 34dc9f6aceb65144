"""ID generation for user-defined rules."""

from __future__ import annotations

from uuid import uuid4

from arrival_engine.foundation.clock import now_ms


def new_rule_id() -> str:
    """Time-prefixed random id, sortable by creation time."""
    return f"{now_ms()}-{uuid4().hex[:8]}"
