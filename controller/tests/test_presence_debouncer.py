"""Tests for the presence debouncer (fast arrival, slow departure)."""

from __future__ import annotations

from conftest import absent, present
from specs_kiosk.sensors.presence_debouncer import PresenceDebouncer
from specs_kiosk.state import DistanceBucket, PresenceEventKind


def kinds(events):
    return [e.kind for e in events]


def test_single_present_frame_declares_arrival():
    debouncer = PresenceDebouncer()
    events = debouncer.update(present(0.35))
    assert kinds(events) == [PresenceEventKind.ARRIVED, PresenceEventKind.DISTANCE_CHANGED]
    assert events[0].bucket is DistanceBucket.CLOSE
    assert debouncer.state.is_present is True


def test_departure_needs_31_absent_frames():
    debouncer = PresenceDebouncer()
    debouncer.update(present())
    for _ in range(30):
        assert debouncer.update(absent()) == []
    assert debouncer.state.is_present is True
    assert debouncer.state.consecutive_absent_frames == 30

    events = debouncer.update(absent())
    assert kinds(events) == [PresenceEventKind.DEPARTED]
    assert debouncer.state.is_present is False
    assert debouncer.state.bucket is None


def test_present_frame_resets_absent_streak():
    debouncer = PresenceDebouncer()
    debouncer.update(present())
    for _ in range(29):
        debouncer.update(absent())
    debouncer.update(present())
    assert debouncer.state.consecutive_absent_frames == 0
    for _ in range(30):
        assert debouncer.update(absent()) == []
    assert debouncer.state.is_present is True


def test_absent_frames_without_presence_emit_nothing():
    debouncer = PresenceDebouncer()
    for _ in range(100):
        assert debouncer.update(absent()) == []
    assert debouncer.state.is_present is False


def test_distance_change_while_present():
    debouncer = PresenceDebouncer()
    debouncer.update(present(0.25))
    assert debouncer.update(present(0.26)) == []
    events = debouncer.update(present(0.45))
    assert kinds(events) == [PresenceEventKind.DISTANCE_CHANGED]
    assert events[0].bucket is DistanceBucket.VERY_CLOSE
    assert events[0].in_range


def test_arrival_departure_scenario():
    debouncer = PresenceDebouncer()
    all_events = []
    for _ in range(40):
        all_events += debouncer.update(absent())
    all_events += debouncer.update(present(0.35))
    departed_at = None
    for i in range(35):
        events = debouncer.update(absent())
        if events:
            departed_at = i + 1
        all_events += events

    assert kinds(all_events).count(PresenceEventKind.ARRIVED) == 1
    assert kinds(all_events).count(PresenceEventKind.DEPARTED) == 1
    assert departed_at == 31


def test_custom_threshold_and_reset():
    debouncer = PresenceDebouncer(absent_frame_threshold=2)
    debouncer.update(present())
    debouncer.update(absent())
    debouncer.update(absent())
    assert kinds(debouncer.update(absent())) == [PresenceEventKind.DEPARTED]

    debouncer.update(present())
    debouncer.reset()
    assert debouncer.state.is_present is False
    assert debouncer.state.consecutive_absent_frames == 0
