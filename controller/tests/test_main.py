"""Tests for the local FastAPI surface."""

from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import FakeAuthClient, FakeCapture, FakeFaceModel, SessionFactory, make_coordinator
from specs_kiosk.lifecycle import KioskLifecycle
from specs_kiosk.main import create_app
from specs_kiosk.sensors.frame_source import FrameSource
from specs_kiosk.sensors.presence_detector import PresenceDetector
from specs_kiosk.session_manager import KioskSessionManager


def build_app(settings, factory=None):
    coordinator = make_coordinator(FakeAuthClient(), factory or SessionFactory())
    kiosk = KioskLifecycle(
        settings=settings,
        frame_source=FrameSource(capture_factory=lambda camera_id: FakeCapture(opened=False)),
        detector=PresenceDetector(model=FakeFaceModel()),
        manager=KioskSessionManager(settings=settings, coordinator=coordinator),
    )
    return create_app(settings, lifecycle=kiosk, configure_logs=False), kiosk


def test_healthz_and_state(settings):
    app, _ = build_app(settings)
    with TestClient(app) as client:
        assert client.get("/healthz").json() == {"status": "ok", "session_state": "idle"}
        state = client.get("/state").json()
        assert state["camera_ready"] is False
        assert state["avatar_ready"] is False


def test_message_before_ready_is_rejected(settings):
    app, _ = build_app(settings)
    with TestClient(app) as client:
        response = client.post("/message", json={"text": "How much RAM?"})
        assert response.status_code == 409
        assert response.json()["status"] == "not_ready"

        blank = client.post("/message", json={"text": "   "})
        assert blank.status_code == 200
        assert blank.json() == {"status": "ignored"}


def test_debug_arrival_then_message(settings):
    factory = SessionFactory()
    app, kiosk = build_app(settings, factory)
    with TestClient(app) as client:
        assert client.post("/debug/arrival").json()["started"] is True
        assert client.get("/healthz").json()["session_state"] == "ready"
        assert client.post("/debug/arrival").json()["started"] is False

        response = client.post("/message", json={"text": " Is this good for gaming? "})
        assert response.json() == {"status": "sent"}
        assert factory.created[0].spoken[-1] == "Is this good for gaming?"

    assert kiosk.running is False
    assert factory.created[0].stop_calls == 1

