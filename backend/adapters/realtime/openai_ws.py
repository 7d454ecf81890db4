"""
OpenAI Realtime API adapter (WebSocket transport).

Core model:
- One adapter == one upstream realtime session. Never reconnects; a lost
  connection is reported as connection_change "disconnected" and the
  adapter becomes CLOSED.
- Handshake = socket open + session.update (agent instructions) + wait for
  session.created. An upstream "error" event during the handshake fails it.
- One receive task per connection. Every server event is dispatched to "*"
  first, then to its specific kind ("error", "audio") if it has one.

Handshake backlog:
- Events produced before the receive task starts (connection_change
  "connecting"/"connected", session.created) are held and delivered, in
  order, as the first thing the receive task does. The task is created at
  the end of connect() and cannot run before the caller's next await, so
  subscriptions registered right after `await connect(...)` see them.

Design constraints:
- Adapter must not know about the client socket or the relay session.
- close() never awaits; the socket close runs as a background task.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import urllib.parse
from typing import Any

from websockets.asyncio.client import ClientConnection, connect as ws_connect

from adapters.realtime.base import (
    AdapterState,
    AudioChunk,
    ConnectFailed,
    ForwardFailed,
    RealtimeAdapter,
)
from adapters.realtime.registry import Disposer, EventCallback, SubscriptionRegistry
from constants import (
    DEFAULT_AGENT_INSTRUCTIONS,
    DEFAULT_AGENT_NAME,
    EVENT_KIND_ALL,
    EVENT_KIND_AUDIO,
    EVENT_KIND_CONNECTION_CHANGE,
    EVENT_KIND_ERROR,
    OPENAI_REALTIME_URL,
    REALTIME_CONNECT_TIMEOUT_S,
    REALTIME_MAX_MESSAGE_BYTES,
    STATUS_CONNECTED,
    STATUS_CONNECTING,
    STATUS_DISCONNECTED,
    UPSTREAM_AUDIO_APPEND,
    UPSTREAM_AUDIO_DELTA_TYPES,
    UPSTREAM_ERROR,
    UPSTREAM_SESSION_CREATED,
    UPSTREAM_SESSION_UPDATE,
)
from observability.logger import log_event


class OpenAIRealtimeAdapter(RealtimeAdapter):
    """
    OpenAI Realtime session over a single WebSocket.

    Public interface (see RealtimeAdapter):
    - connect(credential, model)
    - subscribe(kind, callback) -> disposer
    - send_audio(bytes) / send_event(dict)
    - close()
    """

    def __init__(
        self,
        *,
        instructions: str = DEFAULT_AGENT_INSTRUCTIONS,
        agent_name: str = DEFAULT_AGENT_NAME,
        session_id: str | None = None,
        url: str = OPENAI_REALTIME_URL,
        connect_timeout_s: float = REALTIME_CONNECT_TIMEOUT_S,
    ) -> None:
        self._instructions = instructions
        self._agent_name = agent_name
        self._session_id = session_id
        self._url = url
        self._connect_timeout_s = connect_timeout_s

        self._registry = SubscriptionRegistry(owner=session_id)
        self._state = AdapterState.IDLE

        self._ws: ClientConnection | None = None
        self._recv_task: asyncio.Task[None] | None = None
        self._close_task: asyncio.Task[None] | None = None

        self._backlog: list[tuple[str, Any]] = []
        self._live: bool = False
        self._audio_dropped: int = 0

    # -------------------------------------------------------------------------
    # Public interface
    # -------------------------------------------------------------------------

    @property
    def state(self) -> AdapterState:
        return self._state

    def subscribe(self, kind: str, callback: EventCallback) -> Disposer:
        return self._registry.subscribe(kind, callback)

    async def connect(self, credential: str, model: str) -> None:
        if self._state is not AdapterState.IDLE:
            raise ConnectFailed(f"adapter cannot connect from state {self._state.value}")

        self._state = AdapterState.CONNECTING
        await self._emit(EVENT_KIND_CONNECTION_CHANGE, STATUS_CONNECTING)

        try:
            await asyncio.wait_for(
                self._handshake(credential, model),
                timeout=self._connect_timeout_s,
            )
        except asyncio.CancelledError:
            self.close()
            raise
        except asyncio.TimeoutError as e:
            self.close()
            raise ConnectFailed(
                f"realtime handshake timed out after {self._connect_timeout_s}s"
            ) from e
        except ConnectFailed:
            self.close()
            raise
        except Exception as e:  # pylint: disable=broad-exception-caught
            self.close()
            raise ConnectFailed(str(e) or type(e).__name__) from e

        # close() may have run while the last handshake read was pending
        if self._state is AdapterState.CLOSED:
            raise ConnectFailed("adapter closed during connect")

        self._state = AdapterState.OPEN
        await self._emit(EVENT_KIND_CONNECTION_CHANGE, STATUS_CONNECTED)

        log_event({
            "event_type": "UPSTREAM_CONNECTED",
            "session_id": self._session_id,
            "model": model,
            "agent_name": self._agent_name,
        })

        self._recv_task = asyncio.create_task(self._recv_loop())

    async def send_audio(self, data: bytes) -> None:
        ws = self._ws
        if self._state is not AdapterState.OPEN or ws is None:
            self._audio_dropped += 1
            if self._audio_dropped == 1:
                log_event({
                    "event_type": "UPSTREAM_AUDIO_DROPPED",
                    "session_id": self._session_id,
                    "adapter_state": self._state.value,
                    "payload_len": len(data),
                })
            return

        message = json.dumps({
            "type": UPSTREAM_AUDIO_APPEND,
            "audio": base64.b64encode(data).decode("ascii"),
        })
        try:
            await ws.send(message)
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "UPSTREAM_AUDIO_SEND_FAILED",
                "session_id": self._session_id,
                "exception": type(e).__name__,
                "message": str(e),
            })

    async def send_event(self, event: dict[str, Any]) -> None:
        ws = self._ws
        if self._state is not AdapterState.OPEN or ws is None:
            raise ForwardFailed(f"realtime adapter is {self._state.value}")

        try:
            message = json.dumps(event)
        except (TypeError, ValueError) as e:
            raise ForwardFailed(f"event is not serializable: {e}") from e

        try:
            await ws.send(message)
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise ForwardFailed(str(e) or type(e).__name__) from e

    def close(self) -> None:
        if self._state is AdapterState.CLOSED:
            return
        self._state = AdapterState.CLOSED

        self._registry.clear()
        self._backlog.clear()

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        rt = self._recv_task
        self._recv_task = None
        # The receive task may itself be running close() via a subscriber;
        # it exits on its own after the current dispatch.
        if rt is not None and not rt.done() and rt is not current:
            rt.cancel()

        ws = self._ws
        self._ws = None
        if ws is not None:
            try:
                self._close_task = asyncio.create_task(self._close_ws(ws))
            except RuntimeError:
                # No running loop; nothing left that could drive the socket.
                pass

        log_event({
            "event_type": "UPSTREAM_CLOSED",
            "session_id": self._session_id,
            "audio_dropped": self._audio_dropped,
        })

    async def wait_closed(self) -> None:
        """Wait until the background socket close (if any) has finished."""
        task = self._close_task
        if task is not None:
            await asyncio.shield(task)

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    def _build_url(self, model: str) -> str:
        qs = urllib.parse.urlencode({"model": model})
        return f"{self._url}?{qs}"

    def _session_update(self, model: str) -> dict[str, Any]:
        return {
            "type": UPSTREAM_SESSION_UPDATE,
            "session": {
                "type": "realtime",
                "model": model,
                "instructions": self._instructions,
            },
        }

    async def _handshake(self, credential: str, model: str) -> None:
        headers = {"Authorization": f"Bearer {credential}"}

        ws = await ws_connect(
            self._build_url(model),
            additional_headers=headers,
            max_size=REALTIME_MAX_MESSAGE_BYTES,
        )

        if self._state is AdapterState.CLOSED:
            # close() ran before the socket existed; it could not close it.
            await self._close_ws(ws)
            raise ConnectFailed("adapter closed during connect")
        self._ws = ws

        await ws.send(json.dumps(self._session_update(model)))

        # ConnectionClosed from recv() surfaces as ConnectFailed in connect()
        while True:
            event = self._parse(await ws.recv())
            if event is None:
                continue

            self._backlog.append((EVENT_KIND_ALL, event))
            event_type = event.get("type")

            if event_type == UPSTREAM_ERROR:
                raise ConnectFailed(_describe_upstream_error(event.get("error", event)))

            if event_type == UPSTREAM_SESSION_CREATED:
                return

    async def _close_ws(self, ws: ClientConnection) -> None:
        try:
            await ws.close()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "UPSTREAM_CLOSE_FAILED",
                "session_id": self._session_id,
                "exception": type(e).__name__,
                "message": str(e),
            })

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    async def _recv_loop(self) -> None:
        """
        Deliver the handshake backlog, then every upstream event in arrival
        order until the socket ends or close() is called.
        """
        ws = self._ws
        if ws is None:
            return

        try:
            backlog, self._backlog = self._backlog, []
            for kind, payload in backlog:
                await self._registry.dispatch(kind, payload)
            self._live = True

            async for raw in ws:
                if self._state is AdapterState.CLOSED:
                    return
                event = self._parse(raw)
                if event is None:
                    continue
                await self._route(event)
        except asyncio.CancelledError:
            return
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "UPSTREAM_RECV_FAILED",
                "session_id": self._session_id,
                "exception": type(e).__name__,
                "message": str(e),
            })
            await self._emit(EVENT_KIND_ERROR, {
                "type": "transport_error",
                "message": str(e) or type(e).__name__,
            })

        if self._state is AdapterState.OPEN:
            # Transport ended on its own: report, then tear down.
            await self._emit(EVENT_KIND_CONNECTION_CHANGE, STATUS_DISCONNECTED)
            self.close()

    async def _route(self, event: dict[str, Any]) -> None:
        await self._emit(EVENT_KIND_ALL, event)

        event_type = event.get("type")
        if event_type == UPSTREAM_ERROR:
            await self._emit(EVENT_KIND_ERROR, event.get("error", event))
        elif event_type in UPSTREAM_AUDIO_DELTA_TYPES:
            chunk = self._decode_audio(event)
            if chunk is not None:
                await self._emit(EVENT_KIND_AUDIO, chunk)

    async def _emit(self, kind: str, payload: Any) -> None:
        if self._state is AdapterState.CLOSED:
            return
        if not self._live:
            self._backlog.append((kind, payload))
            return
        await self._registry.dispatch(kind, payload)

    # -------------------------------------------------------------------------
    # Decoding
    # -------------------------------------------------------------------------

    def _parse(self, raw: str | bytes) -> dict[str, Any] | None:
        try:
            event = json.loads(raw)
        except (TypeError, ValueError) as e:
            log_event({
                "event_type": "UPSTREAM_PARSE_FAILED",
                "session_id": self._session_id,
                "error": str(e),
            })
            return None

        if not isinstance(event, dict):
            log_event({
                "event_type": "UPSTREAM_PARSE_FAILED",
                "session_id": self._session_id,
                "error": f"expected JSON object, got {type(event).__name__}",
            })
            return None

        return event

    def _decode_audio(self, event: dict[str, Any]) -> AudioChunk | None:
        delta = event.get("delta")
        if not isinstance(delta, str):
            return None
        try:
            data = base64.b64decode(delta, validate=True)
        except (binascii.Error, ValueError) as e:
            log_event({
                "event_type": "UPSTREAM_AUDIO_DECODE_FAILED",
                "session_id": self._session_id,
                "error": str(e),
            })
            return None

        return AudioChunk(
            data=data,
            response_id=event.get("response_id"),
            item_id=event.get("item_id"),
        )


def _describe_upstream_error(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message")
        code = error.get("code")
        if message and code:
            return f"{code}: {message}"
        if message:
            return str(message)
    return str(error)
