"""Controlled enumerations for the arrival-engine domain.

Every categorical field in the domain MUST reference an enum defined here.
"""

from __future__ import annotations

from enum import Enum


class DeliveryChannel(str, Enum):
    """How an escalation stage reaches its audience."""

    LOCAL = "local"
    PUSH = "push"
    SMS = "sms"


class RuleTransition(str, Enum):
    """Per-tick hysteresis state of a rule."""

    OUTSIDE = "outside"
    ENTERING = "entering"
    SUSTAINED = "sustained"


class StorageBackend(str, Enum):
    MEMORY = "memory"
    FILE = "file"


class PlaceType(str, Enum):
    """Kind of favourite place, inferred from its label when not given."""

    HOME = "home"
    WORK = "work"
    FRIENDS = "friends"
    OTHER = "other"
