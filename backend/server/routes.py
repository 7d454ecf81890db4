"""
Route registration for the realtime relay.

Responsibilities:
- Liveness endpoint
- WebSocket endpoint: one RelaySession per accepted connection
- Pull dependencies from app.state
"""

from __future__ import annotations

from fastapi import FastAPI, WebSocket
from fastapi.responses import PlainTextResponse

from constants import LIVENESS_BODY, REALTIME_WS_PATH
from observability.logger import log_event
from session.relay_session import RelaySession


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/", response_class=PlainTextResponse)
    async def liveness() -> str: # pyright: ignore[reportUnusedFunction]
        return LIVENESS_BODY

    @app.websocket(REALTIME_WS_PATH)
    async def realtime_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        session = RelaySession(
            config=app.state.config,
            websocket=ws,
            adapter_factory=app.state.adapter_factory,
        )

        log_event({
            "event_type": "WS_ACCEPTED",
            "session_id": session.session_id,
            "client": f"{ws.client.host}:{ws.client.port}" if ws.client else None,
        })

        await session.run()
