# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring

from __future__ import annotations

import asyncio
import json
from collections import Counter
from typing import Any, Callable

import pytest
from starlette.websockets import WebSocketState
from websockets.exceptions import ConnectionClosedOK

from adapters.realtime.base import (
    AdapterState,
    ConnectFailed,
    RealtimeAdapter,
)
from adapters.realtime.registry import Disposer, EventCallback, SubscriptionRegistry
from config import AppConfig
from observability import logger


# ---------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------

@pytest.fixture(autouse=True)
def captured_logs(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Route JSONL log lines into a list instead of stdout."""
    lines: list[dict[str, Any]] = []
    monkeypatch.setattr(logger, "_print", lambda line: lines.append(json.loads(line)))
    monkeypatch.setattr(logger, "_enabled", True)
    return lines


# ---------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------

@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        openai_ephemeral_key="ek_test",
        realtime_model="gpt-realtime",
        agent_name="Coach",
        agent_instructions="Be brief.",
    )


# ---------------------------------------------------------------------
# Async helpers
# ---------------------------------------------------------------------

async def settle(rounds: int = 20) -> None:
    """Let every ready task run until the loop goes quiet."""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------
# Client socket
# ---------------------------------------------------------------------

class FakeClientSocket:
    """Minimal stand-in for starlette's WebSocket, post-accept."""

    def __init__(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.timeline: list[tuple[str, Any]] = []
        self._inbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    # inbound
    def push_text(self, text: str) -> None:
        self._inbox.put_nowait({"type": "websocket.receive", "text": text})

    def push_bytes(self, data: bytes) -> None:
        self._inbox.put_nowait({"type": "websocket.receive", "bytes": data})

    def push_disconnect(self, code: int = 1000) -> None:
        self._inbox.put_nowait({"type": "websocket.disconnect", "code": code})

    def push_error(self, exc: Exception) -> None:
        """Make the next receive() raise exc, like a broken transport."""
        self._inbox.put_nowait({"type": "test.raise", "exc": exc})

    async def receive(self) -> dict[str, Any]:
        msg = await self._inbox.get()
        if msg["type"] == "test.raise":
            raise msg["exc"]
        if msg["type"] == "websocket.disconnect":
            self.client_state = WebSocketState.DISCONNECTED
        return msg

    # outbound
    async def send_text(self, text: str) -> None:
        self.timeline.append(("json", json.loads(text)))

    async def send_bytes(self, data: bytes) -> None:
        self.timeline.append(("bytes", data))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.application_state = WebSocketState.DISCONNECTED
        self.timeline.append(("close", (code, reason)))

    @property
    def json_messages(self) -> list[dict[str, Any]]:
        return [payload for kind, payload in self.timeline if kind == "json"]

    @property
    def binary_frames(self) -> list[bytes]:
        return [payload for kind, payload in self.timeline if kind == "bytes"]

    @property
    def closed_with(self) -> tuple[int, str | None] | None:
        closes = [payload for kind, payload in self.timeline if kind == "close"]
        return closes[0] if closes else None


# ---------------------------------------------------------------------
# Upstream adapter
# ---------------------------------------------------------------------

class FakeRealtimeAdapter(RealtimeAdapter):
    """
    In-memory adapter.

    hold_connect=True makes connect() wait until release() is called.
    """

    def __init__(
        self,
        *,
        connect_error: Exception | None = None,
        forward_error: Exception | None = None,
        hold_connect: bool = False,
    ) -> None:
        self.registry = SubscriptionRegistry(owner="fake")
        self._state = AdapterState.IDLE
        self._connect_error = connect_error
        self._forward_error = forward_error
        self._gate: asyncio.Event | None = asyncio.Event() if hold_connect else None

        self.connect_calls: list[tuple[str, str]] = []
        self.audio: list[bytes] = []
        self.events: list[dict[str, Any]] = []
        self.close_calls = 0
        self.dispose_calls: Counter[str] = Counter()

    @property
    def state(self) -> AdapterState:
        return self._state

    def release(self) -> None:
        assert self._gate is not None
        self._gate.set()

    async def connect(self, credential: str, model: str) -> None:
        self.connect_calls.append((credential, model))
        if self._state is AdapterState.CLOSED:
            raise ConnectFailed("adapter is closed")
        self._state = AdapterState.CONNECTING
        if self._gate is not None:
            await self._gate.wait()
        if self._state is AdapterState.CLOSED:
            raise ConnectFailed("adapter closed during connect")
        if self._connect_error is not None:
            self._state = AdapterState.CLOSED
            raise self._connect_error
        self._state = AdapterState.OPEN

    def subscribe(self, kind: str, callback: EventCallback) -> Disposer:
        inner = self.registry.subscribe(kind, callback)

        def dispose() -> None:
            self.dispose_calls[kind] += 1
            inner()

        return dispose

    async def send_audio(self, data: bytes) -> None:
        self.audio.append(data)

    async def send_event(self, event: dict[str, Any]) -> None:
        if self._forward_error is not None:
            raise self._forward_error
        self.events.append(event)

    def close(self) -> None:
        self.close_calls += 1
        self._state = AdapterState.CLOSED
        self.registry.clear()

    async def emit(self, kind: str, payload: Any) -> None:
        await self.registry.dispatch(kind, payload)


def adapter_factory_for(adapter: RealtimeAdapter) -> Callable[[AppConfig, str], RealtimeAdapter]:
    return lambda _config, _session_id: adapter


# ---------------------------------------------------------------------
# Upstream WebSocket connection (for the OpenAI adapter)
# ---------------------------------------------------------------------

class FakeUpstreamConnection:
    """Stands in for websockets.asyncio.client.ClientConnection."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.fail_send: Exception | None = None
        self._incoming: asyncio.Queue[str | None] = asyncio.Queue()

    def feed(self, event: dict[str, Any] | str) -> None:
        self._incoming.put_nowait(event if isinstance(event, str) else json.dumps(event))

    def end(self) -> None:
        self._incoming.put_nowait(None)

    async def send(self, message: str) -> None:
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append(json.loads(message))

    async def recv(self) -> str:
        item = await self._incoming.get()
        if item is None:
            self._incoming.put_nowait(None)
            raise ConnectionClosedOK(None, None)
        return item

    def __aiter__(self) -> FakeUpstreamConnection:
        return self

    async def __anext__(self) -> str:
        try:
            return await self.recv()
        except ConnectionClosedOK as e:
            raise StopAsyncIteration from e

    async def close(self) -> None:
        self.closed = True
        self.end()
