from __future__ import annotations

from typing import Any, Dict

import socketio
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from . import __version__
from .database import settings
from .engine.events import EngineEvent
from .errors import AllocationError, InfrastructureError
from .routers import allocation, oracle, organs, registry, waitlist
from .services import Services, build_services, load_persisted_state


class LiveUpdateHub:
    def __init__(self, sio_server: socketio.AsyncServer) -> None:
        self.sio = sio_server
        self.websockets: set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.websockets.add(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        self.websockets.discard(websocket)

    async def notify(self, event: str, payload: Dict[str, Any]) -> None:
        message = {"event": event, "payload": payload}
        stale = []
        for connection in self.websockets:
            try:
                await connection.send_json(message)
            except (WebSocketDisconnect, RuntimeError):
                stale.append(connection)
        for connection in stale:
            self.disconnect(connection)
        await self.sio.emit(event, payload)

    async def engine_event(self, event: EngineEvent) -> None:
        await self.notify(event.type, event.payload)


sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins="*")
app = FastAPI(title="OrganLink API", version=__version__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

hub = LiveUpdateHub(sio)

ROUTERS = (registry, organs, waitlist, allocation, oracle)

for module in ROUTERS:
    app.include_router(module.router)


def configure(services: Services) -> Services:
    """Bind a service bundle to every router and to the app state."""
    for module in ROUTERS:
        module.init_router(services)
    app.state.services = services
    return services


services = configure(build_services(settings, hub.engine_event))


@app.on_event("startup")
async def restore_persisted_state() -> None:
    await load_persisted_state(app.state.services)


@app.exception_handler(AllocationError)
async def allocation_error_handler(_: Request, exc: AllocationError) -> JSONResponse:
    return JSONResponse({"detail": exc.message, "error": exc.code}, status_code=exc.status_code)


@app.exception_handler(InfrastructureError)
async def infrastructure_error_handler(_: Request, exc: InfrastructureError) -> JSONResponse:
    logger.error("Infrastructure failure: {}", exc)
    return JSONResponse({"detail": str(exc), "error": type(exc).__name__}, status_code=exc.status_code)


@app.get("/health")
async def healthcheck() -> Dict[str, str]:
    return {"status": "ok", "registry": settings.registry_backend}


@app.get("/events")
async def event_history(request: Request, limit: int = 20) -> Dict[str, Any]:
    entries = await request.app.state.services.memory.history(limit)
    return {"history": entries}


@app.websocket("/ws/events")
async def events_websocket(websocket: WebSocket) -> None:
    await hub.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        hub.disconnect(websocket)


@sio.event
async def connect(sid, environ):  # pragma: no cover - socket handshake
    await hub.notify("socket_connected", {"sid": sid})


@sio.event
async def disconnect(sid):  # pragma: no cover - socket handshake
    await hub.notify("socket_disconnected", {"sid": sid})


socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
