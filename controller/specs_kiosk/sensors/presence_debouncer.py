"""Presence debounce: fast arrival, slow departure."""
from __future__ import annotations

import logging
from typing import List

from ..state import Detection, PresenceEvent, PresenceEventKind, PresenceState

logger = logging.getLogger(__name__)


class PresenceDebouncer:
    """Turns per-frame detections into arrival/departure/distance events.

    A single positive frame declares arrival. Departure needs more than
    ``absent_frame_threshold`` consecutive absent frames (31 at the default,
    roughly one second at 30 Hz).
    """

    def __init__(self, *, absent_frame_threshold: int = 30) -> None:
        if absent_frame_threshold < 0:
            raise ValueError("absent_frame_threshold must be >= 0")
        self.absent_frame_threshold = absent_frame_threshold
        self._state = PresenceState()

    @property
    def state(self) -> PresenceState:
        return self._state

    def reset(self) -> None:
        self._state = PresenceState()

    def update(self, detection: Detection) -> List[PresenceEvent]:
        state = self._state
        events: List[PresenceEvent] = []

        if detection.present:
            state.consecutive_absent_frames = 0
            if not state.is_present:
                state.is_present = True
                events.append(
                    PresenceEvent(
                        kind=PresenceEventKind.ARRIVED,
                        timestamp=detection.timestamp,
                        bucket=detection.bucket,
                        face_size=detection.face_size,
                    )
                )
                logger.info("Customer arrived (bucket=%s, size=%.3f)", _name(detection), detection.face_size)
            if state.bucket != detection.bucket:
                state.bucket = detection.bucket
                events.append(
                    PresenceEvent(
                        kind=PresenceEventKind.DISTANCE_CHANGED,
                        timestamp=detection.timestamp,
                        bucket=detection.bucket,
                        face_size=detection.face_size,
                    )
                )
                logger.debug("Distance changed to %s (size=%.3f)", _name(detection), detection.face_size)
            return events

        state.consecutive_absent_frames += 1
        if state.is_present and state.consecutive_absent_frames > self.absent_frame_threshold:
            state.is_present = False
            state.bucket = None
            events.append(PresenceEvent(kind=PresenceEventKind.DEPARTED, timestamp=detection.timestamp))
            logger.info("Customer left after %d absent frames", state.consecutive_absent_frames)
        return events


def _name(detection: Detection) -> str:
    return detection.bucket.value if detection.bucket is not None else "none"


__all__ = ["PresenceDebouncer"]
