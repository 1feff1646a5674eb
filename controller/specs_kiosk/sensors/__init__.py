"""Camera capture and face presence sensing."""
from .frame_source import FrameSource
from .presence_debouncer import PresenceDebouncer
from .presence_detector import PresenceDetector, bucket_for_face_size

__all__ = ["FrameSource", "PresenceDebouncer", "PresenceDetector", "bucket_for_face_size"]
