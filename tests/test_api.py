"""HTTP and WebSocket surface of the controller."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import STORE_KEY, MemoryStore, make_settings
from reaction_timer.main import create_app


@pytest.fixture
def api_store() -> MemoryStore:
    return MemoryStore({STORE_KEY: 321})


@pytest.fixture
def client(tmp_path, api_store):
    app = create_app(make_settings(tmp_path), store=api_store)
    with TestClient(app) as test_client:
        yield test_client


class TestHttpApi:
    def test_healthz(self, client):
        response = client.get("/healthz")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["state"] == "idle"
        assert body["storage"] == "memory"

    def test_state_frame(self, client):
        body = client.get("/state").json()
        assert body["state"] == "idle"
        assert body["status"] == "Press PTT to Start"

    def test_trigger_sequence(self, client):
        assert client.post("/trigger").json()["state"] == "waiting"
        penalty = client.post("/trigger").json()
        assert penalty["state"] == "penalty"
        assert penalty["readout"] == "PENALTY"
        assert client.post("/trigger").json()["state"] == "penalty"

    def test_start_only_from_idle(self, client):
        assert client.post("/start").json()["state"] == "waiting"
        assert client.post("/start").json()["state"] == "waiting"

    def test_reset_best(self, client, api_store):
        assert client.get("/state").json()["best"] == "0.321s"
        body = client.post("/best/reset").json()
        assert body["best"] == "---.---s"

    def test_uses_local_store_by_default(self, tmp_path):
        app = create_app(make_settings(tmp_path))
        with TestClient(app) as test_client:
            assert test_client.get("/healthz").json()["storage"] == "local"


class TestUiSocket:
    def test_pushes_frames_and_accepts_triggers(self, client):
        with client.websocket_connect("/ws/ui") as ws:
            first = ws.receive_json()
            assert first["type"] == "state"
            assert first["state"] == "idle"

            ws.send_json({"type": "trigger"})
            waiting = ws.receive_json()
            assert waiting["state"] == "waiting"
            assert waiting["data"]["status"] == "Wait for Green..."

            ws.send_json({"type": "trigger"})
            penalty = ws.receive_json()
            assert penalty["state"] == "penalty"
            assert penalty["data"]["status"] == "Too Early!"

    def test_ignores_bad_messages(self, client):
        with client.websocket_connect("/ws/ui") as ws:
            ws.receive_json()
            ws.send_text("not json")
            ws.send_json({"type": "dance"})
            ws.send_json({"type": "start"})
            assert ws.receive_json()["state"] == "waiting"

    def test_binary_frame_keeps_socket_open(self, client):
        with client.websocket_connect("/ws/ui") as ws:
            ws.receive_json()
            ws.send_bytes(b"\x01")
            ws.send_json({"type": "trigger"})
            waiting = ws.receive_json()
            assert waiting["state"] == "waiting"
