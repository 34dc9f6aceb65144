"""Collaborator protocols consumed by the detection and departure cycles.

The engine depends only on these shapes.  Any concrete storage, signal
source or delivery mechanism that satisfies them can be swapped in without
touching evaluation logic.
"""

from __future__ import annotations

from typing import Optional, Protocol

from arrival_engine.domain.departure import DepartureConfig, DepartureState, PreferredPlace
from arrival_engine.domain.escalation import EscalationConfig
from arrival_engine.domain.geo import Coords
from arrival_engine.domain.network import NetworkIdentity
from arrival_engine.domain.rule import Rule
from arrival_engine.domain.state import DetectorState


class RuleStore(Protocol):
    """Source of user-defined rules and the escalation config."""

    async def load_rules(self) -> list[Rule]:
        """Return the rules the detector should evaluate."""
        ...

    async def load_config(self) -> EscalationConfig:
        ...


class StateStore(Protocol):
    """Persistence for the detector's memory between process runs."""

    async def load_state(self) -> DetectorState:
        ...

    async def save_state(self, state: DetectorState) -> None:
        ...


class SignalProvider(Protocol):
    """Platform signal acquisition.  None means "unknown right now"."""

    async def get_coords(self) -> Optional[Coords]:
        ...

    async def get_network_identity(self) -> Optional[NetworkIdentity]:
        ...

    async def is_charging(self) -> Optional[bool]:
        ...


class Dispatcher(Protocol):
    """Delivers an arrival to a rule's recipients; failures are its own concern."""

    async def notify(self, rule: Rule) -> None:
        ...


class DepartureStore(Protocol):
    """Watched places, departure settings and the departure watch memory."""

    async def load_config(self) -> DepartureConfig:
        ...

    async def load_places(self) -> list[PreferredPlace]:
        ...

    async def has_active_trip(self) -> bool:
        ...

    async def load_state(self) -> DepartureState:
        ...

    async def save_state(self, state: DepartureState) -> None:
        ...


class DepartureNotifier(Protocol):
    """Nudges the user to start the trip they seem to have forgotten."""

    async def notify_departure(self, place_label: str, place: Optional[PreferredPlace]) -> None:
        ...


class Tickable(Protocol):
    """Anything the periodic runner can drive."""

    async def tick(self) -> object:
        ...


class ErrorReporter(Protocol):
    """Observability sink for unexpected cycle failures."""

    def report(self, exc: BaseException) -> None:
        ...
