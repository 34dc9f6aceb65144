"""SignalBoard — the latest readings reported by the device.

The device pushes readings (position fix, local-network identity, charging
state) whenever it has them.  The board keeps the newest reading of each
kind with its timestamp and serves it through the ``SignalProvider``
protocol only while it is fresh.  A stale or never-reported reading is
served as None, which the engine treats as "not satisfied".
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator

from arrival_engine.domain.geo import Coords
from arrival_engine.domain.network import NetworkIdentity
from arrival_engine.foundation.clock import ensure_utc, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SignalReport(BaseModel):
    """One push from the device; any subset of signals may be present."""

    coords: Optional[Coords] = None
    network: Optional[NetworkIdentity] = None
    charging: Optional[bool] = None
    reported_at: datetime = Field(default_factory=utc_now)

    @field_validator("reported_at")
    @classmethod
    def reported_at_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def is_empty(self) -> bool:
        return self.coords is None and self.network is None and self.charging is None


class _Reading(Generic[T]):
    __slots__ = ("value", "observed_at")

    def __init__(self, value: T, observed_at: datetime) -> None:
        self.value = value
        self.observed_at = observed_at


class SignalBoard:
    """Freshness-aware holder of the latest device readings.

    Args:
        max_age: How long a reading stays usable after it was observed.
    """

    def __init__(self, max_age: timedelta = timedelta(seconds=120)) -> None:
        self._max_age = max_age
        self._coords: Optional[_Reading[Coords]] = None
        self._network: Optional[_Reading[NetworkIdentity]] = None
        self._charging: Optional[_Reading[bool]] = None

    # ── Ingestion ────────────────────────────────────────────────────────

    def record(self, report: SignalReport) -> None:
        """Keep each reading in *report* unless a newer one is already held."""
        at = min(report.reported_at, utc_now())
        if report.coords is not None:
            self._coords = self._newer(self._coords, report.coords, at)
        if report.network is not None:
            identity = NetworkIdentity.from_raw(**report.network.model_dump())
            self._network = self._newer(self._network, identity, at)
        if report.charging is not None:
            self._charging = self._newer(self._charging, report.charging, at)
        logger.debug("Recorded signal report at %s", at.isoformat())

    def clear(self) -> None:
        self._coords = None
        self._network = None
        self._charging = None

    # ── SignalProvider protocol ──────────────────────────────────────────

    async def get_coords(self) -> Optional[Coords]:
        return self._fresh(self._coords)

    async def get_network_identity(self) -> Optional[NetworkIdentity]:
        return self._fresh(self._network)

    async def is_charging(self) -> Optional[bool]:
        return self._fresh(self._charging)

    # ── Observability ────────────────────────────────────────────────────

    @property
    def last_report_at(self) -> Optional[datetime]:
        times = [r.observed_at for r in (self._coords, self._network, self._charging) if r is not None]
        return max(times) if times else None

    # ── Internals ────────────────────────────────────────────────────────

    @staticmethod
    def _newer(current: Optional[_Reading[T]], value: T, at: datetime) -> _Reading[T]:
        if current is not None and current.observed_at > at:
            return current
        return _Reading(value, at)

    def _fresh(self, reading: Optional[_Reading[T]]) -> Optional[T]:
        if reading is None:
            return None
        if utc_now() - reading.observed_at > self._max_age:
            return None
        return reading.value
