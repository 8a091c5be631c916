"""Tests for the FastAPI app: mock collaborator routes and the /ws/login driver."""

import asyncio
from types import SimpleNamespace

import httpx
import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from config import (
    MOCK_IMAGE_LABELS, MOCK_QR_USERNAME, MSG_NAME_REQUIRED, MSG_QR_REQUIRED, MSG_SERVICE_ERROR, SESSION_REDIRECT_PATH,
)
from main import app, login_session
from services.loader import load_all_services

from conftest import FakeVerification


@pytest.fixture
def client():
    """App client whose collaborator clients call back into the app's own mock routes."""
    app.state.services = load_all_services(
        base_url="http://testserver", transport=httpx.ASGITransport(app=app),
    )
    with TestClient(app) as test_client:
        yield test_client


def _receive_until(ws, step, limit=10):
    for _ in range(limit):
        message = ws.receive_json()
        if message.get("step") == step:
            return message
    raise AssertionError(f"never reached {step}")


class TestMockCollaborators:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_login_returns_six_pictures(self, client):
        response = client.post("/api/login", json={"inputUsername": "alice"})
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "next_step"
        assert data["img_name"] == MOCK_IMAGE_LABELS
        assert len(data["img_list"]) == len(data["img_name"]) == 6

    @pytest.mark.parametrize("body", [{}, {"inputUsername": ""}])
    def test_login_requires_name(self, client, body):
        response = client.post("/api/login", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": MSG_NAME_REQUIRED}

    @pytest.mark.parametrize("raw", [b"{not json", b"\xff\xfe{"])
    def test_login_bad_json(self, client, raw):
        response = client.post("/api/login", content=raw, headers={"Content-Type": "application/json"})
        assert response.status_code == 500
        assert response.json() == {"error": MSG_SERVICE_ERROR}

    def test_login_qr_direct_success(self, client):
        response = client.post("/api/login_qr", json={"qr_data": "student:42"})
        assert response.json() == {"status": "success", "password": True, "username": MOCK_QR_USERNAME}

    def test_login_qr_requires_data(self, client):
        response = client.post("/api/login_qr", json={})
        assert response.status_code == 400
        assert response.json() == {"error": MSG_QR_REQUIRED}

    def test_verify_three_pictures(self, client):
        response = client.post("/api/login_registrer", json={"username": "alice", "images": ["cat", "bear", "fox"]})
        assert response.json() == {"password": True}

    @pytest.mark.parametrize("images", [None, [], ["cat", "bear"]])
    def test_verify_wrong_count(self, client, images):
        response = client.post("/api/login_registrer", json={"username": "alice", "images": images})
        data = response.json()
        assert data["password"] is False
        assert data["error"]


class TestLoginWebSocket:
    def test_name_flow_end_to_end(self, client):
        with client.websocket_connect("/ws/login") as ws:
            assert ws.receive_json()["step"] == "IDLE"

            ws.send_json({"type": "submit_identity", "username": "alice"})
            assert ws.receive_json()["step"] == "AWAITING_CHALLENGE"
            state = _receive_until(ws, "CHALLENGE_PRESENTED")
            assert [image["label"] for image in state["images"]] == MOCK_IMAGE_LABELS

            for index in (4, 1, 3):
                ws.send_json({"type": "toggle", "index": index})
                state = ws.receive_json()
            assert state["selected"] == [4, 1, 3]

            ws.send_json({"type": "submit_challenge"})
            assert ws.receive_json()["step"] == "VERIFYING"
            state = _receive_until(ws, "VERIFIED")
            assert state["redirect_to"] == SESSION_REDIRECT_PATH
            assert state["via"] == "name"

    def test_qr_flow_end_to_end(self, client):
        with client.websocket_connect("/ws/login") as ws:
            ws.receive_json()
            ws.send_json({"type": "submit_qr", "qr_data": "student:42"})
            assert ws.receive_json()["step"] == "AWAITING_CHALLENGE"
            state = _receive_until(ws, "VERIFIED")
            assert state["via"] == "qr"

    def test_blank_name_reported_inline(self, client):
        with client.websocket_connect("/ws/login") as ws:
            ws.receive_json()
            ws.send_json({"type": "submit_identity", "username": "  "})
            state = ws.receive_json()
            assert state["step"] == "IDLE"
            assert state["error"] == MSG_NAME_REQUIRED

    def test_cancel_and_reset(self, client):
        with client.websocket_connect("/ws/login") as ws:
            ws.receive_json()
            ws.send_json({"type": "submit_identity", "username": "alice"})
            _receive_until(ws, "CHALLENGE_PRESENTED")
            ws.send_json({"type": "cancel"})
            state = ws.receive_json()
            assert state["step"] == "IDLE"
            assert state["images"] is None

            ws.send_json({"type": "reset"})
            assert ws.receive_json()["step"] == "IDLE"

    def test_bad_commands(self, client):
        with client.websocket_connect("/ws/login") as ws:
            ws.receive_json()
            ws.send_text("{oops")
            assert ws.receive_json() == {"type": "error", "message": "Could not parse command"}
            ws.send_json({"type": "dance"})
            assert ws.receive_json()["type"] == "error"
            ws.send_json({"type": "toggle"})
            assert ws.receive_json()["type"] == "error"


class StalledIdentity:
    """Lookup that never answers and notes when it gets cancelled."""

    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = False

    async def lookup_by_name(self, username):
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class ScriptedSocket:
    """Stand-in WebSocket: plays the given commands, then disconnects once the lookup is running."""

    def __init__(self, identity, commands):
        self.identity = identity
        self.commands = list(commands)
        self.sent = []
        self.app = SimpleNamespace(state=SimpleNamespace(
            services=SimpleNamespace(identity=identity, verification=FakeVerification()),
        ))

    async def accept(self):
        pass

    async def send_json(self, data):
        self.sent.append(data)

    async def receive_text(self):
        if self.commands:
            return self.commands.pop(0)
        await self.identity.started.wait()
        raise WebSocketDisconnect(code=1000)


class TestSessionCleanup:
    @pytest.mark.asyncio
    async def test_disconnect_mid_lookup_waits_for_cancelled_call(self):
        identity = StalledIdentity()
        socket = ScriptedSocket(identity, ['{"type": "submit_identity", "username": "alice"}'])

        await login_session(socket)

        assert identity.cancelled
        assert [message["step"] for message in socket.sent][:2] == ["IDLE", "AWAITING_CHALLENGE"]
