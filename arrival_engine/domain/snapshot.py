"""SignalSnapshot — an immutable, ephemeral view of the environment.

Any absent field means "that condition cannot be evaluated", which the
eligibility layer treats as not satisfied.  Snapshots are never persisted.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from arrival_engine.domain.geo import Coords
from arrival_engine.domain.network import NetworkIdentity


class SignalSnapshot(BaseModel):
    coords: Optional[Coords] = Field(None, description="Current position fix, if any")
    network: Optional[NetworkIdentity] = Field(None, description="Current local-network identity, if known")
    charging: Optional[bool] = Field(None, description="True when charging or full, if known")

    model_config = {"frozen": True}
