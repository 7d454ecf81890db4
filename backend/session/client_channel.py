"""
Client socket wrapper.

Every write to a closing or closed client socket is silently dropped,
never queued. Write failures are logged and swallowed: the receive loop is
the single place that notices a dead client and triggers cleanup.
"""

from __future__ import annotations

import json
from typing import Any

from starlette.websockets import WebSocket, WebSocketState

from observability.logger import log_event


class ClientChannel:
    """Fire-and-forget writer for one client WebSocket."""

    def __init__(self, ws: WebSocket, *, session_id: str) -> None:
        self._ws = ws
        self._session_id = session_id
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._ws.client_state == WebSocketState.CONNECTED
            and self._ws.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        """Called once the client has gone away; later writes are dropped."""
        self._closed = True

    async def send_json(self, payload: Any) -> None:
        if not self.is_open:
            return
        try:
            text = json.dumps(payload)
        except (TypeError, ValueError) as e:
            log_event({
                "event_type": "CLIENT_SERIALIZE_FAILED",
                "session_id": self._session_id,
                "error": str(e),
            })
            return
        await self._send(text=text)

    async def send_bytes(self, data: bytes) -> None:
        if not self.is_open:
            return
        await self._send(data=data)

    async def close(self, code: int, reason: str) -> None:
        if not self.is_open:
            self._closed = True
            return
        self._closed = True
        try:
            await self._ws.close(code=code, reason=reason)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "CLIENT_CLOSE_FAILED",
                "session_id": self._session_id,
                "exception": type(e).__name__,
                "message": str(e),
            })

    async def _send(self, *, text: str | None = None, data: bytes | None = None) -> None:
        try:
            if text is not None:
                await self._ws.send_text(text)
            elif data is not None:
                await self._ws.send_bytes(data)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._closed = True
            log_event({
                "event_type": "CLIENT_SEND_FAILED",
                "session_id": self._session_id,
                "exception": type(e).__name__,
                "message": str(e),
            })
