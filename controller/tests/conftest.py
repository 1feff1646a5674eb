"""Shared fakes for the kiosk controller tests."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, List, Optional

import numpy as np
import pytest

from specs_kiosk.config import Settings
from specs_kiosk.session_coordinator import SessionCoordinator
from specs_kiosk.state import Detection, Frame
from specs_kiosk.sensors.presence_detector import bucket_for_face_size


@pytest.fixture
def settings(tmp_path):
    return Settings(avatar_api_key="test-key", log_directory=tmp_path / "logs", _env_file=None)


def present(face_size: float = 0.35, ts: float = 0.0) -> Detection:
    return Detection(present=True, face_size=face_size, timestamp=ts, bucket=bucket_for_face_size(face_size))


def absent(ts: float = 0.0) -> Detection:
    return Detection(present=False, face_size=0.0, timestamp=ts)


def blank_frame(ts: float = 0.0) -> Frame:
    return Frame(image=np.zeros((4, 4, 3), dtype=np.uint8), timestamp=ts)


def face_result(*boxes):
    """Build a MediaPipe-shaped result from (width, height) pairs."""
    detections = [
        SimpleNamespace(location_data=SimpleNamespace(relative_bounding_box=SimpleNamespace(width=w, height=h)))
        for w, h in boxes
    ]
    return SimpleNamespace(detections=detections or None)


class FakeFaceModel:
    def __init__(self, results: Optional[List[Any]] = None, error: Optional[Exception] = None):
        self.results = list(results or [])
        self.error = error
        self.calls = 0
        self.closed = 0

    def process(self, image):
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.results:
            return self.results.pop(0)
        return face_result()

    def close(self):
        self.closed += 1


class FakeCapture:
    def __init__(self, opened: bool = True, log: Optional[list] = None):
        self.opened = opened
        self.released = 0
        self.reads = 0
        self.log = log

    def isOpened(self):
        return self.opened

    def set(self, prop, value):
        return True

    def read(self):
        self.reads += 1
        return True, np.zeros((4, 4, 3), dtype=np.uint8)

    def release(self):
        self.released += 1
        if self.log is not None:
            self.log.append("camera.release")


class FakeAuthClient:
    def __init__(self, token: str = "session-token", error: Optional[Exception] = None):
        self.token = token
        self.error = error
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[dict] = []
        self.closed = 0

    async def issue_session_token(self, persona_config):
        self.calls.append(persona_config)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.token

    async def aclose(self):
        self.closed += 1


class FakeAvatarSession:
    def __init__(
        self, token: str, *, stream_error=None, stop_error=None, stream_gate=None, stop_gate=None, log: Optional[list] = None
    ):
        self.token = token
        self.stream_gate = stream_gate
        self.stop_gate = stop_gate
        self.stopped = False
        self.stream_error = stream_error
        self.stop_error = stop_error
        self.log = log
        self.targets: List[str] = []
        self.spoken: List[str] = []
        self.stop_calls = 0

    async def stream_to(self, target):
        if self.stream_gate is not None:
            await self.stream_gate.wait()
        if self.stream_error is not None:
            raise self.stream_error
        self.targets.append(target)

    async def talk(self, text):
        self.spoken.append(text)

    async def stop_streaming(self):
        self.stop_calls += 1
        if self.log is not None:
            self.log.append("session.stop")
        if self.stop_gate is not None:
            await self.stop_gate.wait()
        if self.stop_error is not None:
            raise self.stop_error
        self.stopped = True


class SessionFactory:
    def __init__(self, **session_kwargs):
        self.session_kwargs = session_kwargs
        self.created: List[FakeAvatarSession] = []

    def __call__(self, token):
        session = FakeAvatarSession(token, **self.session_kwargs)
        self.created.append(session)
        return session


def make_coordinator(auth=None, factory=None, **kwargs) -> SessionCoordinator:
    return SessionCoordinator(
        auth_client=auth or FakeAuthClient(),
        session_factory=factory or SessionFactory(),
        persona_config={"name": "Ava"},
        video_target="persona-video",
        intro_text="Hello there",
        **kwargs,
    )


async def settle():
    """Let pending tasks run to their next suspension point."""
    for _ in range(5):
        await asyncio.sleep(0)
