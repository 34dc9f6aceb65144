"""Manages active WebSocket connections for broadcasting arrivals to clients."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks subscriber sockets; drops any that fail during a broadcast."""

    def __init__(self) -> None:
        self._connections: list[WebSocket] = []

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.append(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._connections:
            self._connections.remove(websocket)

    @property
    def active_count(self) -> int:
        return len(self._connections)

    async def broadcast_json(self, data: dict[str, Any]) -> int:
        """Send *data* to every client; return how many received it."""
        delivered = 0
        for ws in list(self._connections):
            try:
                await ws.send_json(data)
                delivered += 1
            except Exception as exc:
                logger.info("Dropping subscriber after send failure: %s", exc)
                self.disconnect(ws)
        return delivered
