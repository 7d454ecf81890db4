# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from adapters.realtime.base import ConnectFailed, RealtimeAdapter
from config import AppConfig
from constants import (
    CLOSE_CODE_SERVER_ERROR,
    TEXT_CONNECT_FAILED,
    TEXT_CONNECTED,
    TEXT_INVALID_SHAPE,
    TEXT_MALFORMED_PAYLOAD,
)
from server.app import create_app

from conftest import FakeRealtimeAdapter


class AdapterPool:
    """Adapter factory that remembers every adapter it built."""

    def __init__(self, **adapter_kwargs) -> None:
        self.built: list[FakeRealtimeAdapter] = []
        self.session_ids: list[str] = []
        self._kwargs = adapter_kwargs

    def __call__(self, _config: AppConfig, session_id: str) -> RealtimeAdapter:
        adapter = FakeRealtimeAdapter(**self._kwargs)
        self.built.append(adapter)
        self.session_ids.append(session_id)
        return adapter


def test_liveness_endpoint(config: AppConfig):
    client = TestClient(create_app(config, adapter_factory=AdapterPool()))

    response = client.get("/")

    assert response.status_code == 200
    assert response.text == "OK"


def test_create_app_fails_fast_without_credential(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("OPENAI_EPHEMERAL_KEY", raising=False)

    with pytest.raises(RuntimeError, match="OPENAI_EPHEMERAL_KEY"):
        create_app()


def test_websocket_relays_both_directions(config: AppConfig):
    pool = AdapterPool()
    app = create_app(config, adapter_factory=pool)

    with TestClient(app) as client:
        with client.websocket_connect("/realtime") as ws:
            assert ws.receive_json() == {"type": "realtime.connected", "message": TEXT_CONNECTED}

            ws.send_bytes(b"\x00\x01\x02\xff")
            ws.send_text('{"type":"response.create","response":{"modalities":["audio"]}}')

            ws.send_text("not json")
            assert ws.receive_json() == {"type": "client.error", "message": TEXT_MALFORMED_PAYLOAD}

            ws.send_text('{"foo": 1}')
            assert ws.receive_json() == {"type": "client.error", "message": TEXT_INVALID_SHAPE}

    adapter = pool.built[0]
    assert adapter.connect_calls == [("ek_test", "gpt-realtime")]
    assert adapter.audio == [b"\x00\x01\x02\xff"]
    assert adapter.events == [{"type": "response.create", "response": {"modalities": ["audio"]}}]
    assert adapter.close_calls == 1
    assert adapter.registry.count() == 0


def test_each_connection_gets_its_own_session(config: AppConfig):
    pool = AdapterPool()
    app = create_app(config, adapter_factory=pool)

    with TestClient(app) as client:
        with client.websocket_connect("/realtime") as first:
            first.receive_json()
            with client.websocket_connect("/realtime") as second:
                second.receive_json()

    assert len(pool.built) == 2
    assert pool.built[0] is not pool.built[1]
    assert len(set(pool.session_ids)) == 2
    assert all(a.close_calls == 1 for a in pool.built)


def test_connect_failure_reports_then_closes_with_server_error(config: AppConfig):
    pool = AdapterPool(connect_error=ConnectFailed("401 Unauthorized"))
    app = create_app(config, adapter_factory=pool)

    with TestClient(app) as client:
        with client.websocket_connect("/realtime") as ws:
            assert ws.receive_json() == {
                "type": "realtime.error",
                "message": TEXT_CONNECT_FAILED,
                "error": "401 Unauthorized",
            }
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

    assert exc_info.value.code == CLOSE_CODE_SERVER_ERROR
    assert pool.built[0].registry.count() == 0
