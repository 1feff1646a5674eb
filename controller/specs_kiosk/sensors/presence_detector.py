"""
Face presence detection for the kiosk camera.

Runs MediaPipe face detection on a single frame and turns the first face's
relative bounding box into a normalized size and a distance bucket. The
detector keeps no memory between frames; debouncing happens downstream.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Protocol

# Optional deps
try:
    import cv2  # type: ignore
except Exception:
    cv2 = None

try:
    import mediapipe as mp  # type: ignore
except Exception:
    mp = None

from ..errors import DetectionError
from ..state import Detection, DistanceBucket, Frame

logger = logging.getLogger(__name__)


class FaceModel(Protocol):
    def process(self, image: Any) -> Any: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class BucketThresholds:
    very_close: float = 0.4
    close: float = 0.3
    medium: float = 0.2


DEFAULT_THRESHOLDS = BucketThresholds()


def bucket_for_face_size(face_size: float, thresholds: BucketThresholds = DEFAULT_THRESHOLDS) -> DistanceBucket:
    """Map a normalized face size to a distance bucket (larger face = closer)."""
    if face_size > thresholds.very_close:
        return DistanceBucket.VERY_CLOSE
    if face_size > thresholds.close:
        return DistanceBucket.CLOSE
    if face_size > thresholds.medium:
        return DistanceBucket.MEDIUM
    return DistanceBucket.FAR


def face_size_from_box(width: float, height: float) -> float:
    """Diagonal of the relative bounding box."""
    return math.sqrt(width * width + height * height)


class PresenceDetector:
    """Stateless single-face presence detector."""

    def __init__(
        self,
        *,
        min_confidence: float = 0.5,
        model_selection: int = 0,
        thresholds: BucketThresholds = DEFAULT_THRESHOLDS,
        model: Optional[FaceModel] = None,
    ) -> None:
        self.min_confidence = min_confidence
        self.model_selection = model_selection
        self.thresholds = thresholds
        self._model: Optional[FaceModel] = model

    def open(self) -> bool:
        """Create the face model if needed; returns availability."""
        if self._model is not None:
            return True
        if mp is None:
            logger.warning("MediaPipe not available - presence detection disabled")
            return False
        try:
            self._model = mp.solutions.face_detection.FaceDetection(
                model_selection=self.model_selection,
                min_detection_confidence=self.min_confidence,
            )
        except Exception as exc:
            logger.error("Failed to create face detection model: %s", exc)
            self._model = None
            return False
        logger.info(
            "Face detection model ready (confidence=%.2f, model=%d)",
            self.min_confidence,
            self.model_selection,
        )
        return True

    def is_available(self) -> bool:
        return self._model is not None

    def close(self) -> None:
        model, self._model = self._model, None
        if model is None:
            return
        try:
            model.close()
        except Exception as exc:
            logger.warning("Error closing face detection model: %s", exc)

    def detect(self, frame: Frame) -> Detection:
        if self._model is None:
            raise DetectionError(log_message="face detection model is not open")

        try:
            rgb = cv2.cvtColor(frame.image, cv2.COLOR_BGR2RGB)
            result = self._model.process(rgb)
        except Exception as exc:
            raise DetectionError(log_message=f"face detection failed: {exc}") from exc

        detections = getattr(result, "detections", None) if result is not None else None
        if not detections:
            return Detection(present=False, face_size=0.0, timestamp=frame.timestamp)

        # Single-face mode: the first detection wins.
        try:
            box = detections[0].location_data.relative_bounding_box
            face_size = face_size_from_box(float(box.width), float(box.height))
        except (AttributeError, TypeError, ValueError) as exc:
            raise DetectionError(log_message=f"malformed face detection result: {exc}") from exc

        return Detection(
            present=True,
            face_size=face_size,
            timestamp=frame.timestamp,
            bucket=bucket_for_face_size(face_size, self.thresholds),
        )


__all__ = [
    "BucketThresholds",
    "DEFAULT_THRESHOLDS",
    "FaceModel",
    "PresenceDetector",
    "bucket_for_face_size",
    "face_size_from_box",
]
