"""Tests for the kiosk session manager (presence events to session and UI)."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeAuthClient, SessionFactory, absent, make_coordinator, present, settle
from specs_kiosk.errors import AuthError, NotReady
from specs_kiosk.session_manager import (
    STATUS_COME_CLOSER,
    STATUS_CUSTOMER_LEFT,
    STATUS_WAITING,
    KioskSessionManager,
)
from specs_kiosk.state import SessionState


def make_manager(settings, auth=None, factory=None):
    coordinator = make_coordinator(auth or FakeAuthClient(), factory or SessionFactory())
    return KioskSessionManager(settings=settings, coordinator=coordinator)


async def test_scenario_one_arrival_one_departure_one_bootstrap(settings):
    auth = FakeAuthClient()
    manager = make_manager(settings, auth)

    for _ in range(40):
        manager.on_frame(absent())
    events = manager.on_frame(present(0.35))
    for _ in range(35):
        events += manager.on_frame(absent())
    await settle()

    kinds = [e.kind.value for e in events]
    assert kinds.count("arrived") == 1
    assert kinds.count("departed") == 1
    assert len(auth.calls) == 1
    assert manager.session_state is SessionState.READY
    assert manager.customer_detected is False


async def test_repeated_arrivals_while_connecting_start_once(settings):
    auth = FakeAuthClient()
    auth.gate = asyncio.Event()
    manager = make_manager(settings, auth)

    for _ in range(3):
        manager.on_frame(present(0.45))
        for _ in range(31):
            manager.on_frame(absent())
    await settle()
    assert len(auth.calls) == 1
    assert manager.session_state is SessionState.CONNECTING

    auth.gate.set()
    await settle()
    assert manager.session_state is SessionState.READY
    assert len(auth.calls) == 1


async def test_out_of_range_customer_is_asked_to_come_closer(settings):
    auth = FakeAuthClient()
    manager = make_manager(settings, auth)
    manager.mark_camera_ready()
    assert manager.status == STATUS_WAITING

    manager.on_frame(present(0.25))
    await settle()
    assert manager.status == STATUS_COME_CLOSER
    assert manager.customer_detected is True
    assert auth.calls == []

    manager.on_frame(present(0.35))
    await settle()
    assert len(auth.calls) == 1
    assert manager.session_state is SessionState.READY


async def test_moving_between_in_range_buckets_does_not_retrigger(settings):
    auth = FakeAuthClient(error=AuthError())
    manager = make_manager(settings, auth)

    manager.on_frame(present(0.35))
    await settle()
    assert manager.session_state is SessionState.FAILED

    manager.on_frame(present(0.45))
    await settle()
    assert len(auth.calls) == 1


async def test_auth_failure_then_new_arrival_retries(settings):
    auth = FakeAuthClient(error=AuthError())
    manager = make_manager(settings, auth)

    manager.on_frame(present(0.35))
    await settle()
    assert manager.session_state is SessionState.FAILED
    assert "Error connecting" in manager.status

    for _ in range(31):
        manager.on_frame(absent())
    assert manager.status == STATUS_CUSTOMER_LEFT

    auth.error = None
    manager.on_frame(present(0.35))
    await settle()
    assert len(auth.calls) == 2
    assert manager.session_state is SessionState.READY


async def test_departure_after_ready_keeps_assistant_status(settings):
    manager = make_manager(settings)
    manager.on_frame(present(0.35))
    await settle()
    ready_status = manager.status

    for _ in range(31):
        manager.on_frame(absent())
    assert manager.status == ready_status
    assert manager.snapshot()["avatar_ready"] is True


async def test_backing_away_mid_session_keeps_assistant_status(settings):
    manager = make_manager(settings)
    manager.on_frame(present(0.35))
    await settle()
    ready_status = manager.status

    manager.on_frame(present(0.15))
    assert manager.status == ready_status
    assert manager.status != STATUS_COME_CLOSER
    assert manager.snapshot()["distance"] == "far"


async def test_ui_subscribers_receive_snapshot_and_updates(settings):
    manager = make_manager(settings)
    queue = manager.register_ui()
    first = queue.get_nowait()
    assert first.type == "state"
    assert first.data["session_state"] == "idle"

    manager.on_frame(present(0.35))
    await settle()
    received = []
    while not queue.empty():
        received.append(queue.get_nowait())
    # Bounded queue keeps only the freshest events.
    assert len(received) <= 4
    assert received[-1].data["avatar_ready"] is True

    manager.unregister_ui(queue)
    manager.on_frame(present(0.45))
    assert queue.empty()


async def test_send_message_sets_listening_indicator(settings):
    settings.session.listening_indicator_s = 0.01
    manager = make_manager(settings)

    with pytest.raises(NotReady):
        await manager.send_message("hello")
    assert await manager.send_message("   ") is False

    manager.on_frame(present(0.35))
    await settle()
    assert await manager.send_message(" hello ") is True
    assert manager.listening is True
    await asyncio.sleep(0.05)
    assert manager.listening is False


async def test_close_is_idempotent_and_stops_session(settings):
    factory = SessionFactory()
    manager = make_manager(settings, factory=factory)
    manager.on_frame(present(0.35))
    await settle()

    await manager.close()
    await manager.close()
    assert factory.created[0].stop_calls == 1
    assert manager.on_frame(present(0.35)) == []
    assert manager.trigger_arrival() is None


async def test_trigger_arrival_starts_once(settings):
    auth = FakeAuthClient()
    manager = make_manager(settings, auth)
    assert manager.trigger_arrival() is not None
    assert manager.trigger_arrival() is None
    await settle()
    assert len(auth.calls) == 1
