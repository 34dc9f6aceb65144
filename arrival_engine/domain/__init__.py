from arrival_engine.domain.departure import ActiveTrip, DepartureConfig, DepartureState, PlaceBook, PreferredPlace
from arrival_engine.domain.escalation import EscalationConfig, EscalationSchedule, EscalationStage
from arrival_engine.domain.geo import Coords, distance_meters
from arrival_engine.domain.network import NetworkIdentity, matches_network
from arrival_engine.domain.rule import Rule, RuleDraft, RuleSet, TriggerConditions
from arrival_engine.domain.snapshot import SignalSnapshot
from arrival_engine.domain.state import DetectorState

__all__ = [
    "ActiveTrip",
    "Coords",
    "DepartureConfig",
    "DepartureState",
    "DetectorState",
    "EscalationConfig",
    "EscalationSchedule",
    "EscalationStage",
    "NetworkIdentity",
    "PlaceBook",
    "PreferredPlace",
    "Rule",
    "RuleDraft",
    "RuleSet",
    "SignalSnapshot",
    "TriggerConditions",
    "distance_meters",
    "matches_network",
]
