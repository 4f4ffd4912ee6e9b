from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Tuple

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import JSONResponse

from .bridge.transport import WebSocketTransport
from .config import get_settings
from .errors import EmulatorError, InvalidArgumentError, NotFoundError
from .host.app import HostApp
from .storage import bot_store
from .storage.db import get_db_info


logger = logging.getLogger("emulator-shell")

# Close code sent to a second presentation peer while one is connected.
PEER_CONFLICT_CLOSE_CODE = 4409

_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (InvalidArgumentError, 400),
)


def new_request_id() -> str:
    return str(uuid.uuid4())


def build_error_envelope(
    *,
    request_id: str,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> Tuple[int, Dict[str, Any]]:
    body = {
        "error": {
            "code": code,
            "message": message,
            "details": details,
        },
        "meta": {
            "request_id": request_id,
            "service": get_settings().service_name,
        },
    }
    return status_code, body


def get_host(app: FastAPI) -> HostApp:
    """Return the app's HostApp, creating it on first use."""
    host = getattr(app.state, "host", None)
    if host is None:
        host = HostApp()
        app.state.host = host
    return host


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize DB and the host on startup."""
    bot_store.init_db()
    get_host(app)
    yield
    client = app.state.host.context.client
    if client is not None:
        await client.close()


app = FastAPI(title="Emulator Shell", version="0.1.0", lifespan=lifespan)


@app.exception_handler(EmulatorError)
async def emulator_error_handler(request: Request, exc: EmulatorError) -> JSONResponse:
    status = next((code for kind, code in _STATUS_BY_ERROR if isinstance(exc, kind)), 500)
    status_code, body = build_error_envelope(
        request_id=new_request_id(),
        status_code=status,
        code=exc.code,
        message=str(exc),
        details=exc.details,
    )
    return JSONResponse(status_code=status_code, content=body)


@app.get("/")
async def root() -> Dict[str, Any]:
    """
    Service metadata endpoint.
    """
    settings = get_settings()
    return {
        "service": settings.service_name,
        "version": app.version,
        "bridge": "/bridge",
        "commands": "/commands",
        "health": "/health",
        "docs": "/docs",
    }


@app.get("/health")
async def health(request: Request) -> JSONResponse:
    """
    Health check. Returns 200 when the state database is reachable.
    """
    try:
        bot_store.init_db()
    except sqlite3.Error as exc:
        status_code, body = build_error_envelope(
            request_id=new_request_id(),
            status_code=500,
            code="INTERNAL_ERROR",
            message=f"State database unavailable: {exc}",
            details={"db_path": get_db_info().db_path},
        )
        return JSONResponse(status_code=status_code, content=body)

    host = get_host(request.app)
    payload = {
        "status": "ok",
        "service": get_settings().service_name,
        "presentation_connected": host.connected,
    }
    return JSONResponse(status_code=200, content=payload)


@app.get("/commands")
async def commands(request: Request) -> Dict[str, Any]:
    """
    Names of every command the host currently exposes over the bridge.
    """
    return {"commands": get_host(request.app).registry.names()}


@app.websocket("/bridge")
async def bridge(websocket: WebSocket) -> None:
    """
    The presentation transport. One peer at a time; frames are bridge JSON text.
    """
    host = get_host(websocket.app)
    if host.connected:
        logger.warning("Rejecting second presentation connection")
        await websocket.close(code=PEER_CONFLICT_CLOSE_CODE)
        return

    await websocket.accept()
    service = host.connect(WebSocketTransport(websocket))
    try:
        await service.run()
    finally:
        await service.close()
        host.disconnect(service)


def get_app() -> FastAPI:
    """Convenience accessor for external runners."""
    return app
