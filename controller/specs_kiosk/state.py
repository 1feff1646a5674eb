"""Shared controller state definitions for the smart-specs kiosk."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np


class DistanceBucket(str, enum.Enum):
    """Approximate customer distance derived from the face bounding box size."""

    VERY_CLOSE = "very_close"
    CLOSE = "close"
    MEDIUM = "medium"
    FAR = "far"

    @property
    def in_range(self) -> bool:
        return self in (DistanceBucket.VERY_CLOSE, DistanceBucket.CLOSE)


class SessionState(str, enum.Enum):
    """
    Remote avatar session states:

    IDLE        - never started, or released after teardown
    CONNECTING  - bootstrap in flight (latched)
    READY       - avatar streaming, manual messages accepted (latched)
    FAILED      - last bootstrap failed; next arrival retries via IDLE
    """
    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"


class PresenceEventKind(str, enum.Enum):
    ARRIVED = "arrived"
    DEPARTED = "departed"
    DISTANCE_CHANGED = "distance_changed"


@dataclass
class Frame:
    """Single camera sample (BGR, as delivered by OpenCV)."""

    image: np.ndarray
    timestamp: float


@dataclass(frozen=True)
class Detection:
    """Per-frame face presence result."""

    present: bool
    face_size: float
    timestamp: float
    bucket: Optional[DistanceBucket] = None

    @property
    def in_range(self) -> bool:
        return bool(self.present and self.bucket is not None and self.bucket.in_range)


@dataclass
class PresenceState:
    """Debounced presence, mutated only by the presence debouncer."""

    is_present: bool = False
    bucket: Optional[DistanceBucket] = None
    consecutive_absent_frames: int = 0


@dataclass(frozen=True)
class PresenceEvent:
    kind: PresenceEventKind
    timestamp: float
    bucket: Optional[DistanceBucket] = None
    face_size: float = 0.0

    @property
    def in_range(self) -> bool:
        return self.bucket is not None and self.bucket.in_range


@dataclass
class ControllerEvent:
    """Event payload distributed to UI clients over the local WebSocket."""

    type: str
    data: Dict[str, Any]
    state: SessionState
    error: Optional[str] = None


__all__ = [
    "ControllerEvent",
    "Detection",
    "DistanceBucket",
    "Frame",
    "PresenceEvent",
    "PresenceEventKind",
    "PresenceState",
    "SessionState",
]
