"""FastAPI application exposing the tracker's message port on localhost."""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import suppress
from pathlib import Path
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .bus import tab_context
from .config import TrackerSettings, default_db_path
from .messages import UnknownActionError, parse_message
from .models import DomainStatsEntry
from .reporting import category_totals
from .service import TrackerService
from .storage import SqliteStore

logger = logging.getLogger(__name__)


def create_app(
    *,
    service: Optional[TrackerService] = None,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    if service is None:
        store = SqliteStore(Path(db_path or default_db_path()))
        service = TrackerService(store, settings)
    resolved_service = service

    app = FastAPI(title="Focus Tracker", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.service = resolved_service

    @app.on_event("startup")
    async def _startup() -> None:
        await resolved_service.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await resolved_service.stop()
        resolved_service.store.close()

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        service: TrackerService = request.app.state.service
        session = service.tracker.context.session
        return {
            "running": service.is_running(),
            "active_domain": session.domain if session else None,
            "active_category": session.category if session else None,
            "idle_state": service.idle_watcher.state,
            "clients": len(service.bus.contexts),
            "check_seconds": service.settings.check_interval_ms / 1000,
        }

    @app.get("/api/summary")
    async def summary(request: Request) -> Dict[str, Any]:
        service: TrackerService = request.app.state.service
        data = await service.tracker.get_summary()
        entries = [
            DomainStatsEntry(
                domain=domain,
                accumulated_ms=payload["time"],
                category=payload["category"],
                last_active_at=payload["lastActive"],
            )
            for domain, payload in data["domainStats"].items()
        ]
        return {
            "categories": [
                {"category": category, "ms": ms} for category, ms in category_totals(entries)
            ],
            "productiveAccumulated": data["productiveAccumulated"],
            "domainStats": data["domainStats"],
        }

    @app.post("/api/messages")
    async def post_message(payload: Dict[str, Any], request: Request) -> Dict[str, Any]:
        service: TrackerService = request.app.state.service
        try:
            message = parse_message(payload)
            response = await service.handle(message)
        except UnknownActionError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return response or {}

    @app.websocket("/ws")
    async def client_socket(websocket: WebSocket, tab_id: Optional[int] = None) -> None:
        service: TrackerService = websocket.app.state.service
        context_id = tab_context(tab_id) if tab_id is not None else f"client:{uuid.uuid4().hex}"
        await websocket.accept()
        outbox: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()

        async def deliver(payload: Dict[str, Any]) -> None:
            outbox.put_nowait(payload)

        async def pump() -> None:
            while True:
                await websocket.send_json(await outbox.get())

        service.bus.subscribe(context_id, deliver)
        sender = asyncio.create_task(pump())
        try:
            while True:
                payload = await websocket.receive_json()
                try:
                    reply = await service.handle(parse_message(payload), context_id)
                except UnknownActionError as exc:
                    reply = {"ok": False, "error": str(exc)}
                if reply is not None:
                    outbox.put_nowait({"reply": reply})
        except WebSocketDisconnect:
            logger.debug("Client %s disconnected.", context_id)
        finally:
            service.bus.unsubscribe(context_id)
            await close_pump(sender, context_id)

    return app


async def close_pump(task: asyncio.Task[None], context_id: str) -> None:
    """Cancel a websocket's outbound pump and collect its outcome."""
    task.cancel()
    try:
        with suppress(asyncio.CancelledError, WebSocketDisconnect):
            await task
    except Exception:
        logger.exception("Outbound pump for %s failed.", context_id)


def run(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    log_level: str = "info",
) -> None:
    """Serve the tracker on ``host:port`` until interrupted."""
    app = create_app(db_path=db_path, settings=settings)
    logger.info("Serving focus tracker on http://%s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level=log_level)
