"""Dispatchers — what happens to a rule once it fires, or a departure is seen.

Delivery to recipients is owned by whatever listens on ``/ws/arrivals``;
the engine only publishes arrival and departure events.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from arrival_engine.domain.departure import PreferredPlace
from arrival_engine.domain.rule import Rule
from arrival_engine.foundation.clock import utc_now
from arrival_engine.services.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


def arrival_event(rule: Rule) -> dict[str, Any]:
    """JSON payload announcing that *rule* fired."""
    return {
        "type": "arrival",
        "rule_id": rule.id,
        "label": rule.label,
        "address": rule.address,
        "latitude": rule.latitude,
        "longitude": rule.longitude,
        "recipient_ids": list(rule.recipient_ids),
        "checks": {
            "by_position": rule.trigger.by_position,
            "by_network": rule.trigger.by_network,
            "by_charging": rule.trigger.by_charging,
        },
        "fired_at": utc_now().isoformat(),
    }


def departure_event(place_label: str, place: Optional[PreferredPlace]) -> dict[str, Any]:
    """JSON payload suggesting a trip after leaving a favourite place."""
    return {
        "type": "departure",
        "place_id": place.id if place else None,
        "place_label": place_label,
        "place_type": place.type.value if place else None,
        "detected_at": utc_now().isoformat(),
    }


class ArrivalBroadcaster:
    """Dispatcher and departure notifier broadcasting to WebSocket subscribers."""

    def __init__(self, manager: ConnectionManager) -> None:
        self._manager = manager
        self.sent_count: int = 0

    async def notify(self, rule: Rule) -> None:
        delivered = await self._manager.broadcast_json(arrival_event(rule))
        self.sent_count += 1
        if delivered == 0:
            logger.warning("Arrival for rule %s had no connected subscriber", rule.id)
        else:
            logger.info(
                "Arrival for rule %s sent to %d subscriber(s), %d recipient(s)",
                rule.id,
                delivered,
                len(rule.recipient_ids),
            )

    async def notify_departure(self, place_label: str, place: Optional[PreferredPlace]) -> None:
        delivered = await self._manager.broadcast_json(departure_event(place_label, place))
        self.sent_count += 1
        logger.info("Departure from %s sent to %d subscriber(s)", place_label, delivered)
