"""arrival-engine — arrival detection and escalation scheduling service.

This is the application entry point.  It wires the stores, SignalBoard,
DetectionCycle, DepartureCycle, DetectorRunner, and HTTP/WebSocket
endpoints together.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

from fastapi import FastAPI

from arrival_engine.api.departure import create_departure_router
from arrival_engine.api.detector import create_detector_router
from arrival_engine.api.escalation import create_escalation_router
from arrival_engine.api.rules import create_rules_router
from arrival_engine.api.signals import create_signals_router
from arrival_engine.api.ws_arrivals import create_arrivals_router
from arrival_engine.config import Settings, settings
from arrival_engine.core.cycle import DepartureCycle, DetectionCycle
from arrival_engine.core.scheduler import EscalationScheduler
from arrival_engine.domain.enums import StorageBackend
from arrival_engine.services.connection_manager import ConnectionManager
from arrival_engine.services.dispatcher import ArrivalBroadcaster
from arrival_engine.services.runner import DetectorRunner
from arrival_engine.signals.board import SignalBoard
from arrival_engine.store.kv import InMemoryKeyValueStore, JsonFileKeyValueStore, KeyValueStore
from arrival_engine.store.repositories import (
    DepartureRepository,
    DetectorStateRepository,
    RuleRepository,
)

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


def _key_value_store(config: Settings) -> KeyValueStore:
    if StorageBackend(config.storage_backend) is StorageBackend.MEMORY:
        return InMemoryKeyValueStore()
    return JsonFileKeyValueStore(config.data_dir)


def create_app(
    config: Settings = settings,
    kv: KeyValueStore | None = None,
    run_detector: bool = True,
) -> FastAPI:
    """Build the service.

    Args:
        config: Settings to wire from.
        kv: Key-value store override (tests pass an in-memory one).
        run_detector: Start the periodic detector in the app lifespan.
    """
    kv = kv or _key_value_store(config)

    # ── State ────────────────────────────────────────────────────────────
    rules = RuleRepository(kv)
    states = DetectorStateRepository(kv)
    departures = DepartureRepository(kv)
    board = SignalBoard(max_age=timedelta(seconds=config.signal_max_age_seconds))
    subscribers = ConnectionManager()
    dispatcher = ArrivalBroadcaster(subscribers)

    # ── Engine ───────────────────────────────────────────────────────────
    cycle = DetectionCycle(
        rule_store=rules,
        state_store=states,
        signals=board,
        dispatcher=dispatcher,
        rule_refresh=timedelta(minutes=config.rule_refresh_minutes),
    )
    departure_cycle = DepartureCycle(
        store=departures,
        signals=board,
        notifier=dispatcher,
        place_refresh=timedelta(minutes=config.rule_refresh_minutes),
    )
    runner = DetectorRunner(cycle, departure_cycle, interval_seconds=config.poll_interval_seconds)
    scheduler = EscalationScheduler()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if run_detector:
            runner.start()
        try:
            yield
        finally:
            await runner.stop()

    app = FastAPI(
        title=config.app_name,
        description="Arrival detection and escalation scheduling",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.cycle = cycle
    app.state.departure_cycle = departure_cycle
    app.state.board = board
    app.state.subscribers = subscribers

    # ── Routes ───────────────────────────────────────────────────────────
    app.include_router(create_rules_router(rules, cycle))
    app.include_router(create_signals_router(board))
    app.include_router(create_detector_router(cycle, states))
    app.include_router(create_departure_router(departures, departure_cycle))
    app.include_router(create_escalation_router(rules, scheduler))
    app.include_router(create_arrivals_router(subscribers))

    # ── Health ───────────────────────────────────────────────────────────
    @app.get("/health")
    async def health() -> dict:
        last_report = board.last_report_at
        return {
            "status": "ok",
            "detector_running": runner.running,
            "cycle": cycle.stats.to_dict(),
            "departure_cycle": departure_cycle.stats.to_dict(),
            "arrival_subscribers": subscribers.active_count,
            "arrivals_dispatched": dispatcher.sent_count,
            "last_signal_at": last_report.isoformat() if last_report else None,
        }

    return app


app = create_app()
