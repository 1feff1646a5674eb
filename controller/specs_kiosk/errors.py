"""Error taxonomy shared by the kiosk pipeline."""
from __future__ import annotations

from typing import Optional


class KioskError(RuntimeError):
    """Base error carrying a message suitable for the kiosk status line."""

    default_user_message = "Something went wrong. Please try again."

    def __init__(self, user_message: Optional[str] = None, *, log_message: Optional[str] = None) -> None:
        self.user_message = user_message or self.default_user_message
        super().__init__(log_message or self.user_message)


class CameraUnavailable(KioskError):
    """Camera permission denied or no device present; fatal to the frame pipeline."""

    default_user_message = "Camera or face detection failed. Please check permissions and reload."


class DetectionError(KioskError):
    """Face model failed on a single frame; the frame is skipped."""

    default_user_message = "Face detection failed for a frame."


class AuthError(KioskError):
    """Session token request was rejected or never completed."""

    default_user_message = "Error connecting to assistant. Check internet connection or API key."

    def __init__(
        self,
        user_message: Optional[str] = None,
        *,
        log_message: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(user_message, log_message=log_message)
        self.status_code = status_code


class SessionStartError(KioskError):
    """Token was issued but the avatar stream could not be bound."""

    default_user_message = "Error connecting to assistant. Check internet connection or API key."


class NotReady(KioskError):
    """Manual message sent while no avatar session is ready."""

    default_user_message = "Assistant is not ready yet."


__all__ = [
    "AuthError",
    "CameraUnavailable",
    "DetectionError",
    "KioskError",
    "NotReady",
    "SessionStartError",
]
