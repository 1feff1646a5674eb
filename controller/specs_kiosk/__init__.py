"""Smart-specs kiosk controller: camera presence to avatar session."""
from .lifecycle import KioskLifecycle
from .session_coordinator import SessionCoordinator
from .session_manager import KioskSessionManager
from .state import Detection, DistanceBucket, PresenceEvent, SessionState

__all__ = [
    "Detection",
    "DistanceBucket",
    "KioskLifecycle",
    "KioskSessionManager",
    "PresenceEvent",
    "SessionCoordinator",
    "SessionState",
]
