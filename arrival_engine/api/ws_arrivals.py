"""WebSocket endpoint for arrival subscribers.

Path: /ws/arrivals

Subscribers receive one JSON event per fired rule.  Incoming messages are
ignored; the socket stays open until the client leaves.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from arrival_engine.services.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


def create_arrivals_router(manager: ConnectionManager) -> APIRouter:
    router = APIRouter(tags=["arrivals"])

    @router.websocket("/ws/arrivals")
    async def subscribe(websocket: WebSocket) -> None:
        await manager.connect(websocket)
        logger.info("Arrival subscriber connected (%d active)", manager.active_count)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            manager.disconnect(websocket)
            logger.info("Arrival subscriber disconnected")

    return router
