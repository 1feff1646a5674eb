"""
Camera frame source for the kiosk.

Owns the OpenCV capture device exclusively, feeds frames to a single async
subscriber at the nominal rate, and mirrors JPEG previews to any number of
preview subscribers.
"""

from __future__ import annotations

import asyncio
from asyncio import QueueEmpty
import base64
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, AsyncIterator, Optional

# Optional deps
try:
    import cv2  # type: ignore
except Exception:
    cv2 = None

from ..errors import CameraUnavailable
from ..state import Frame

logger = logging.getLogger(__name__)

FrameSubscriber = Callable[[Frame], Awaitable[None]]
CaptureFactory = Callable[[int], Any]

_PLACEHOLDER_JPEG = base64.b64decode(
    b"/9j/4AAQSkZJRgABAQAAAQABAAD/2wBDAAgGBgcGBQgHBwcJCQgKDBQNDAsLDBkSEw8UHRofHh0aHBwgJC4nICIsIxwcKDcpLDAxNDQ0Hyc5PTgyPC4zNDL/2wBDAQkJCQwLDBgNDRgyIRwhMjIyMjIyMjIyMjIyMjIyMjIyMjIyMjIyMjIyMjIyMjIyMjIyMjIyMjIyMjIyMjIyMjL/wAARCAABAAEDASIAAhEBAxEB/8QAHwAAAQUBAQEBAQEAAAAAAAAAAAECAwQFBgcICQoL/8QAtRAAAgEDAwIEAwUFBAQAAAF9AQIDAAQRBRIhMUEGE1FhByJxFDKBkaEII0KxwRVS0fAkM2JyggkKFhcYGRolJicoKSo0NTY3ODk6Q0RFRkdISUpTVFVWV1hZWmNkZWZnaGlqc3R1dnd4eXqDhIWGh4iJipKTlJWWl5iZmqKjpKWmp6ipqrKztLW2t7i5usLDxMXGx8jJytLT1NXW19jZ2uHi4+Tl5ufo6erx8vP09fb3+Pn6/8QAHwEAAwEBAQEBAQEBAQAAAAAAAAECAwQFBgcICQoL/8QAtREAAgECBAQDBAcFBAQAAQJ3AAECAxEEBSExBhJBUQdhcRMiMoEIFEKRobHBCSMzUvAVYnLRChYkNOEl8RcYGRomJygpKjU2Nzg5OkNERUZHSElKU1RVVldYWVpjZGVmZ2hpanN0dXZ3eHl6goOEhYaHiImKkpOUlZaXmJmaoqOkpaanqKmqsrO0tba3uLm6wsPExcbHyMnK0tPU1dbX2Nna4uPk5ebn6Onq8vP09fb3+Pn6/9oADAMBAAIRAxEAPwD5/ooooA//2Q=="
)


def _open_cv_capture(camera_id: int) -> Any:
    if cv2 is None:
        raise CameraUnavailable(log_message="OpenCV not available")
    return cv2.VideoCapture(camera_id)


class FrameSource:
    """Exclusive camera owner driving the per-frame pipeline."""

    def __init__(
        self,
        *,
        camera_id: int = 0,
        width: int = 640,
        height: int = 480,
        fps: int = 30,
        preview_target: str = "camera-preview",
        preview_queue_size: int = 2,
        capture_factory: Optional[CaptureFactory] = None,
    ) -> None:
        self.camera_id = camera_id
        self.width = width
        self.height = height
        self.fps = max(int(fps), 1)
        self.preview_target = preview_target
        self._preview_queue_size = preview_queue_size
        self._capture_factory = capture_factory or _open_cv_capture
        self._cap: Any = None
        self._subscriber: Optional[FrameSubscriber] = None
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        self._lock = asyncio.Lock()
        self._closed = False
        self._preview_subscribers: list[asyncio.Queue[bytes]] = []
        self.frames_delivered = 0

    @property
    def active(self) -> bool:
        return self._loop_task is not None

    async def start(self, subscriber: FrameSubscriber) -> None:
        """Acquire the camera and begin feeding ``subscriber``."""
        async with self._lock:
            if self._loop_task:
                return
            if self._closed:
                logger.info("Camera %d closed - not starting", self.camera_id)
                return
            await self._open_locked()
            self._subscriber = subscriber
            self._stop_event.clear()
            self._loop_task = asyncio.create_task(self._capture_loop(), name="camera-frame-loop")
        logger.info(
            "Camera %d streaming %dx%d@%d to '%s'",
            self.camera_id,
            self.width,
            self.height,
            self.fps,
            self.preview_target,
        )

    async def stop(self) -> None:
        """Stop frame delivery and release the device. Safe to call repeatedly."""
        async with self._lock:
            task, self._loop_task = self._loop_task, None
            if task is not None:
                self._stop_event.set()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            await self._release_locked()
            self._subscriber = None

    async def close(self) -> None:
        """Stop for good; later ``start()`` calls are ignored."""
        self._closed = True
        await self.stop()

    async def restart(self, subscriber: FrameSubscriber) -> None:
        await self.stop()
        await self.start(subscriber)

    async def _open_locked(self) -> None:
        loop = asyncio.get_running_loop()

        def _open() -> Any:
            cap = self._capture_factory(self.camera_id)
            if cap is None or not cap.isOpened():
                if cap is not None:
                    cap.release()
                raise CameraUnavailable(log_message=f"camera {self.camera_id} could not be opened")
            if cv2 is not None:
                cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
                cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
                cap.set(cv2.CAP_PROP_FPS, self.fps)
            return cap

        pending = loop.run_in_executor(None, _open)
        try:
            self._cap = await asyncio.shield(pending)
        except asyncio.CancelledError:
            # The executor keeps opening the device; release whatever it returns.
            await asyncio.wait({pending})
            if not pending.cancelled() and pending.exception() is None:
                self._cap = pending.result()
                await self._release_locked()
            raise
        except CameraUnavailable:
            logger.error("Failed to open camera %d", self.camera_id)
            raise
        except Exception as exc:
            logger.error("Failed to open camera %d: %s", self.camera_id, exc)
            raise CameraUnavailable(log_message=str(exc)) from exc

    async def _release_locked(self) -> None:
        cap, self._cap = self._cap, None
        if cap is None:
            return
        try:
            cap.release()
            logger.info("Camera %d released", self.camera_id)
        except Exception as exc:
            logger.warning("Error releasing camera: %s", exc)

    def _read_frame(self) -> Optional[Frame]:
        cap = self._cap
        if cap is None:
            return None
        ret, image = cap.read()
        if not ret or image is None:
            return None
        return Frame(image=image, timestamp=time.time())

    async def _capture_loop(self) -> None:
        loop = asyncio.get_running_loop()
        interval = 1.0 / self.fps
        try:
            while not self._stop_event.is_set():
                started = time.monotonic()
                frame = await loop.run_in_executor(None, self._read_frame)
                if frame is None:
                    self._broadcast_preview(_PLACEHOLDER_JPEG)
                    await asyncio.sleep(0.1)
                    continue

                subscriber = self._subscriber
                if subscriber is not None:
                    try:
                        await subscriber(frame)
                    except Exception:
                        logger.exception("Frame subscriber failed")
                self.frames_delivered += 1

                if self._preview_subscribers:
                    self._broadcast_preview(self._encode_preview(frame))

                elapsed = time.monotonic() - started
                await asyncio.sleep(max(0.0, interval - elapsed))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Camera frame loop crashed")
        finally:
            logger.info("Camera frame loop stopped after %d frames", self.frames_delivered)

    def _encode_preview(self, frame: Frame) -> bytes:
        if cv2 is None:
            return _PLACEHOLDER_JPEG
        try:
            ret, enc = cv2.imencode(".jpg", frame.image, [cv2.IMWRITE_JPEG_QUALITY, 80])
            return enc.tobytes() if ret else _PLACEHOLDER_JPEG
        except Exception as e:
            logger.warning(f"Preview encoding error: {e}")
            return _PLACEHOLDER_JPEG

    def _broadcast_preview(self, frame: bytes) -> None:
        for q in list(self._preview_subscribers):
            if q.full():
                try:
                    q.get_nowait()
                except QueueEmpty:
                    pass
            q.put_nowait(frame)

    async def preview_stream(self) -> AsyncIterator[bytes]:
        """Stream JPEG preview frames for the camera-preview surface."""
        q: asyncio.Queue[bytes] = asyncio.Queue(maxsize=self._preview_queue_size)
        self._preview_subscribers.append(q)
        try:
            if not self.active:
                yield _PLACEHOLDER_JPEG
            while True:
                frame = await q.get()
                yield frame
        finally:
            self._preview_subscribers.remove(q)


__all__ = ["FrameSource", "FrameSubscriber"]
