"""Signal ingestion from the device.

Paths:
    POST   /api/signals  one report per request
    DELETE /api/signals  forget every held reading
    WS     /ws/signals   a stream of reports, each acknowledged

Reports are validated at the boundary and recorded on the SignalBoard.
No evaluation happens on this path; the detector reads the board on its
own schedule.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from arrival_engine.signals.board import SignalBoard, SignalReport

logger = logging.getLogger(__name__)


def create_signals_router(board: SignalBoard) -> APIRouter:
    router = APIRouter(tags=["signals"])

    @router.post("/api/signals", status_code=202)
    async def report_signals(report: SignalReport) -> dict[str, Any]:
        board.record(report)
        return {"status": "accepted", "empty": report.is_empty}

    @router.delete("/api/signals", status_code=204)
    async def clear_signals() -> None:
        board.clear()
        logger.info("Signal board cleared")

    @router.websocket("/ws/signals")
    async def stream_signals(websocket: WebSocket) -> None:
        await websocket.accept()
        logger.info("Signal source connected")
        try:
            while True:
                raw = await websocket.receive_json()
                try:
                    report = SignalReport.model_validate(raw)
                except ValidationError as exc:
                    await websocket.send_json({
                        "status": "error",
                        "detail": exc.errors(include_url=False, include_context=False),
                    })
                    continue
                board.record(report)
                await websocket.send_json({"status": "accepted"})
        except WebSocketDisconnect:
            logger.info("Signal source disconnected")

    return router
