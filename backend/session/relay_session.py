"""
Relay session (one per client WebSocket).

Responsibilities:
- Owns one upstream realtime adapter for the lifetime of the connection
- Routes inbound client frames: audio -> send_audio, control -> send_event
- Routes upstream events back to the client (JSON passthrough + binary audio)
- Owns cleanup: every subscription disposed once, adapter closed once

Lifecycle:
    CONNECTING -> ACTIVE -> CLOSING -> CLOSED
    CONNECTING -> CLOSING -> CLOSED   (connect failure or early disconnect)

The client receive loop starts before the upstream connect, which runs as a
separate task, so a client that leaves mid-handshake still reaches cleanup.
Frames that arrive while CONNECTING are not buffered: control events are
answered with a client.error, audio is dropped.

Ordering:
- Client -> upstream: frames are forwarded one at a time, in arrival order.
- Upstream -> client: the adapter's delivery order. For one upstream event,
  the wildcard callback runs before the kind-specific one because it is
  registered first; nothing stronger is promised across kinds.

Still NOT responsible for:
- Upstream protocol details (adapter)
- Frame parsing rules (protocol.frames)
- Retrying anything
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, TYPE_CHECKING
from uuid import uuid4

from starlette.websockets import WebSocket, WebSocketDisconnect

from adapters.realtime.base import (
    AudioChunk,
    ConnectFailed,
    ForwardFailed,
    RealtimeAdapter,
)
from adapters.realtime.openai_ws import OpenAIRealtimeAdapter
from adapters.realtime.registry import Disposer
from constants import (
    CLOSE_CODE_SERVER_ERROR,
    CLOSE_REASON_CONNECT_FAILED,
    CLOSE_REASON_INTERNAL_ERROR,
    CLOSE_REASON_UPSTREAM_LOST,
    EVENT_KIND_ALL,
    EVENT_KIND_AUDIO,
    EVENT_KIND_CONNECTION_CHANGE,
    EVENT_KIND_ERROR,
    STATUS_DISCONNECTED,
    TEXT_CONNECT_FAILED,
    TEXT_FORWARD_FAILED,
    TEXT_NOT_READY,
    TEXT_UPSTREAM_ERROR,
)
from observability.logger import log_event
from observability.metrics import timed
from protocol.envelopes import (
    client_error,
    connection_change,
    realtime_connected,
    realtime_error,
)
from protocol.frames import (
    AudioFrame,
    ControlEvent,
    FrameClassificationError,
    classify_frame,
)
from session.client_channel import ClientChannel

if TYPE_CHECKING:
    from config import AppConfig


AdapterFactory = Callable[["AppConfig", str], RealtimeAdapter]


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


def default_adapter_factory(config: AppConfig, session_id: str) -> RealtimeAdapter:
    """Build the production OpenAI adapter from process configuration."""
    return OpenAIRealtimeAdapter(
        instructions=config.agent_instructions,
        agent_name=config.agent_name,
        session_id=session_id,
    )


class RelayState(str, Enum):
    """Relay session lifecycle. CLOSED is the only terminal state."""

    CONNECTING = "CONNECTING"
    ACTIVE = "ACTIVE"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


@dataclass
class RelayStats:
    """Per-session counters, emitted once at cleanup."""
    audio_in: int = 0
    events_in: int = 0
    audio_out: int = 0
    events_out: int = 0
    client_errors: int = 0
    forward_failures: int = 0


# ------------------------------------------------------------------
# RelaySession
# ------------------------------------------------------------------

class RelaySession:
    """
    One relay session == one client socket == one upstream adapter.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        websocket: WebSocket,
        adapter_factory: AdapterFactory = default_adapter_factory,
    ) -> None:
        self.session_id = _new_session_id()
        self.created_at = time.monotonic()
        self.state = RelayState.CONNECTING
        self.stats = RelayStats()

        self._config = config
        self._ws = websocket
        self.channel = ClientChannel(websocket, session_id=self.session_id)
        self.adapter = adapter_factory(config, self.session_id)

        self._disposers: list[Disposer] = []
        self._connect_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """
        Drive the session until the client goes away.

        The socket must already be accepted. Always ends in cleanup().
        """
        reason = "client_disconnect"
        self._connect_task = asyncio.create_task(self.open_upstream())

        try:
            while True:
                msg = await self._ws.receive()

                if msg["type"] == "websocket.disconnect":
                    break

                if msg.get("bytes") is not None:
                    await self.on_frame(msg["bytes"], is_binary=True)
                elif msg.get("text") is not None:
                    await self.on_frame(msg["text"], is_binary=False)

        except WebSocketDisconnect:
            pass

        except Exception as exc:  # pylint: disable=broad-exception-caught
            reason = "client_error"
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "session_id": self.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            self.cleanup(reason=reason)
            await self.channel.close(CLOSE_CODE_SERVER_ERROR, CLOSE_REASON_INTERNAL_ERROR)

        finally:
            self.channel.mark_closed()
            self.cleanup(reason=reason)
            await self._settle_connect()

    async def open_upstream(self) -> None:
        """
        Connect the adapter and, on success, wire every subscription.

        Subscriptions are registered with no await between connect()
        returning and the last subscribe() call.
        """
        with timed("realtime_connect", session_id=self.session_id) as detail:
            try:
                await self.adapter.connect(
                    self._config.openai_ephemeral_key,
                    self._config.realtime_model,
                )
            except ConnectFailed as e:
                detail["outcome"] = "failed"
                await self._fail_connect(e)
                return
            detail["outcome"] = "ok"

        if self.state is not RelayState.CONNECTING:
            # Client left while the handshake was in flight.
            self.adapter.close()
            return

        self._subscribe(EVENT_KIND_ALL, self._on_upstream_event)
        self._subscribe(EVENT_KIND_CONNECTION_CHANGE, self._on_connection_change)
        self._subscribe(EVENT_KIND_ERROR, self._on_upstream_error)
        self._subscribe(EVENT_KIND_AUDIO, self._on_upstream_audio)

        self.state = RelayState.ACTIVE
        log_event({
            "event_type": "REALTIME_CONNECTED",
            "session_id": self.session_id,
            "model": self._config.realtime_model,
            "agent_name": self._config.agent_name,
        })
        await self.channel.send_json(realtime_connected())

    def cleanup(self, reason: str = "unspecified") -> None:
        """
        Dispose every subscription and close the adapter.

        Idempotent and synchronous: racing triggers (client close, client
        error, upstream disconnect) cannot interleave, and only the first
        has any effect. Never raises.
        """
        if self.state in (RelayState.CLOSING, RelayState.CLOSED):
            return
        self.state = RelayState.CLOSING

        disposers, self._disposers = self._disposers, []
        for dispose in disposers:
            try:
                dispose()
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "event_type": "DISPOSE_FAILED",
                    "session_id": self.session_id,
                    "exception": type(e).__name__,
                    "message": str(e),
                })

        try:
            self.adapter.close()
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "ADAPTER_CLOSE_FAILED",
                "session_id": self.session_id,
                "exception": type(e).__name__,
                "message": str(e),
            })

        self.state = RelayState.CLOSED
        log_event({
            "event_type": "SESSION_CLEANUP",
            "session_id": self.session_id,
            "reason": reason,
            "subscriptions_disposed": len(disposers),
            "duration_ms": int((time.monotonic() - self.created_at) * 1000),
            "stats": vars(self.stats),
        })

    # ------------------------------------------------------------------
    # Client -> upstream
    # ------------------------------------------------------------------

    async def on_frame(self, data: bytes | str, *, is_binary: bool) -> None:
        """Classify one client frame and forward it if the session is ready."""
        if self.state in (RelayState.CLOSING, RelayState.CLOSED):
            return

        try:
            msg = classify_frame(data, is_binary=is_binary)
        except FrameClassificationError as e:
            self.stats.client_errors += 1
            log_event({
                "event_type": "CLIENT_FRAME_REJECTED",
                "session_id": self.session_id,
                "error_kind": type(e).__name__,
                "error": str(e),
            })
            await self.channel.send_json(client_error(e.client_message))
            return

        if msg is None:
            return

        if self.state is RelayState.CONNECTING:
            log_event({
                "event_type": "FRAME_BEFORE_READY",
                "session_id": self.session_id,
                "frame": "audio" if isinstance(msg, AudioFrame) else msg.type,
            })
            if isinstance(msg, ControlEvent):
                self.stats.client_errors += 1
                await self.channel.send_json(client_error(TEXT_NOT_READY))
            return

        if isinstance(msg, AudioFrame):
            self.stats.audio_in += 1
            await self.adapter.send_audio(msg.payload)
            return

        self.stats.events_in += 1
        try:
            await self.adapter.send_event(msg.event)
        except ForwardFailed as e:
            self.stats.forward_failures += 1
            log_event({
                "event_type": "CLIENT_EVENT_FORWARD_FAILED",
                "session_id": self.session_id,
                "client_event_type": msg.type,
                "error": str(e),
            })
            await self.channel.send_json(realtime_error(TEXT_FORWARD_FAILED, e))

    # ------------------------------------------------------------------
    # Upstream -> client
    # ------------------------------------------------------------------

    async def _on_upstream_event(self, event: dict[str, Any]) -> None:
        self.stats.events_out += 1
        await self.channel.send_json(event)

    async def _on_connection_change(self, status: Any) -> None:
        await self.channel.send_json(connection_change(status))

        if status == STATUS_DISCONNECTED and self.state is RelayState.ACTIVE:
            log_event({
                "event_type": "UPSTREAM_DISCONNECTED",
                "session_id": self.session_id,
            })
            self.cleanup(reason="upstream_disconnected")
            await self.channel.close(CLOSE_CODE_SERVER_ERROR, CLOSE_REASON_UPSTREAM_LOST)

    async def _on_upstream_error(self, error: Any) -> None:
        log_event({
            "event_type": "UPSTREAM_ERROR",
            "session_id": self.session_id,
            "error": error,
        })
        await self.channel.send_json(realtime_error(TEXT_UPSTREAM_ERROR, error))

    async def _on_upstream_audio(self, chunk: AudioChunk) -> None:
        self.stats.audio_out += 1
        await self.channel.send_bytes(chunk.data)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _subscribe(self, kind: str, callback: Callable[[Any], Any]) -> None:
        self._disposers.append(self.adapter.subscribe(kind, callback))

    async def _fail_connect(self, error: ConnectFailed) -> None:
        client_present = self.state is RelayState.CONNECTING

        log_event({
            "event_type": "REALTIME_CONNECT_FAILED",
            "session_id": self.session_id,
            "model": self._config.realtime_model,
            "error": str(error),
            "client_present": client_present,
        })

        if client_present:
            await self.channel.send_json(realtime_error(TEXT_CONNECT_FAILED, error))

        self.cleanup(reason="connect_failed")
        await self.channel.close(CLOSE_CODE_SERVER_ERROR, CLOSE_REASON_CONNECT_FAILED)

    async def _settle_connect(self) -> None:
        task = self._connect_task
        if task is None:
            return
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            return
        if task.cancelled():
            return

        exc = task.exception()
        if exc is not None:
            log_event({
                "event_type": "REALTIME_CONNECT_TASK_FAILED",
                "session_id": self.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
