"""
tests/test_realtime.py -- WebSocket handshake guard and the heartbeat protocol.

A rejected handshake is closed before accept with 1008 / "Unauthorized";
TestClient surfaces that as WebSocketDisconnect on connect.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from auth.tokens import ACCESS_COOKIE, CredentialCodec
from core.config import get_settings


def _assert_rejected(client: TestClient, **kwargs) -> None:
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws", **kwargs):
            pass
    assert exc.value.code == 1008
    assert exc.value.reason == "Unauthorized"


class TestHandshake:
    def test_no_cookie(self, client: TestClient) -> None:
        _assert_rejected(client)

    def test_garbage_cookie(self, client: TestClient) -> None:
        client.cookies.set(ACCESS_COOKIE, "garbage")
        _assert_rejected(client)

    def test_expired_credential(self, client: TestClient) -> None:
        stale = CredentialCodec(get_settings().secret_key, ttl_seconds=60, clock=lambda: 1_000_000.0)
        client.cookies.set(ACCESS_COOKIE, stale.mint(1, "ghost"))
        _assert_rejected(client)

    def test_foreign_origin(self, client: TestClient, signup) -> None:
        signup()
        _assert_rejected(client, headers={"origin": "https://evil.example"})

    def test_allowed_origin(self, client: TestClient, signup) -> None:
        user = signup()
        origin = get_settings().cors_origins[0]
        with client.websocket_connect("/ws", headers={"origin": origin}) as ws:
            assert ws.receive_json()["user_id"] == user["id"]


class TestProtocol:
    def test_hello_then_ping(self, client: TestClient, signup) -> None:
        user = signup()
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json() == {"type": "hello", "message": "connected", "user_id": user["id"]}
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong", "user_id": user["id"]}

    def test_unknown_type(self, client: TestClient, signup) -> None:
        signup()
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "dance"})
            assert ws.receive_json() == {"type": "error", "code": "unknown_type"}

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", '"ping"'])
    def test_invalid_message(self, client: TestClient, signup, raw: str) -> None:
        signup()
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text(raw)
            assert ws.receive_json() == {"type": "error", "code": "invalid_message"}
