"""Scoped acquisition and release of the camera pipeline and avatar session."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .config import Settings, get_settings
from .errors import CameraUnavailable, DetectionError
from .sensors.frame_source import FrameSource
from .sensors.presence_detector import BucketThresholds, PresenceDetector
from .session_manager import KioskSessionManager
from .state import Frame

logger = logging.getLogger(__name__)


class KioskLifecycle:
    """Owns start/stop ordering for the whole kiosk pipeline.

    Teardown order: frame acquisition first (no further detections), then
    any fallback timer, then the avatar session, then the face model.
    ``stop()`` is idempotent and safe before ``start()``.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        frame_source: Optional[FrameSource] = None,
        detector: Optional[PresenceDetector] = None,
        manager: Optional[KioskSessionManager] = None,
    ) -> None:
        self.settings = settings or get_settings()
        camera = self.settings.camera
        presence = self.settings.presence
        self.frame_source = frame_source or FrameSource(
            camera_id=camera.camera_id,
            width=camera.resolution_width,
            height=camera.resolution_height,
            fps=camera.fps,
            preview_target=camera.preview_target,
            preview_queue_size=camera.preview_queue_size,
        )
        self.detector = detector or PresenceDetector(
            min_confidence=presence.min_confidence,
            model_selection=presence.model_selection,
            thresholds=BucketThresholds(
                very_close=presence.very_close_threshold,
                close=presence.close_threshold,
                medium=presence.medium_threshold,
            ),
        )
        self.manager = manager or KioskSessionManager(settings=self.settings)

        self._started = False
        self._stopped = False
        self._fallback_task: Optional[asyncio.Task[None]] = None
        self.detection_errors = 0

    @property
    def running(self) -> bool:
        return self._started and not self._stopped

    async def __aenter__(self) -> "KioskLifecycle":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def start(self) -> None:
        if self._started or self._stopped:
            return
        self._started = True
        logger.info("Starting kiosk lifecycle")
        self.manager.mark_camera_starting()

        loop = asyncio.get_running_loop()
        opening = loop.run_in_executor(None, self.detector.open)
        try:
            model_ready = await asyncio.shield(opening)
        except asyncio.CancelledError:
            await asyncio.wait({opening})
            self.detector.close()
            raise
        if self._stopped:
            # stop() ran while the model was loading and has already torn down.
            logger.info("Kiosk stopped during start-up - releasing face model")
            self.detector.close()
            return
        if not model_ready:
            self._schedule_fallback()

        try:
            await self.frame_source.start(self._on_frame)
        except CameraUnavailable as exc:
            logger.error("Camera unavailable: %s", exc)
            self.manager.mark_camera_failed(exc)
            return
        if self._stopped:
            await self.frame_source.close()
            return
        self.manager.mark_camera_ready()

    async def restart_camera(self) -> None:
        """Release the camera completely, then acquire it again."""
        if not self.running:
            return
        try:
            await self.frame_source.restart(self._on_frame)
        except CameraUnavailable as exc:
            logger.error("Camera unavailable on restart: %s", exc)
            self.manager.mark_camera_failed(exc)
            return
        if self.running:
            self.manager.mark_camera_ready()

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        logger.info("Stopping kiosk lifecycle")

        try:
            await self.frame_source.close()
        except Exception as e:
            logger.warning("Error stopping frame source: %s", e)

        task, self._fallback_task = self._fallback_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        try:
            await self.manager.close()
        except Exception as e:
            logger.warning("Error closing session manager: %s", e)

        self.detector.close()
        logger.info("Kiosk lifecycle stopped")

    async def _on_frame(self, frame: Frame) -> None:
        if self._stopped or not self.detector.is_available():
            return
        loop = asyncio.get_running_loop()
        try:
            detection = await loop.run_in_executor(None, self.detector.detect, frame)
        except DetectionError as exc:
            self.detection_errors += 1
            logger.warning("Skipping frame: %s", exc)
            return
        self.manager.on_frame(detection)

    def _schedule_fallback(self) -> None:
        delay = self.settings.presence.fallback_start_delay_s
        if delay is None:
            logger.warning("Face model unavailable and no fallback configured - kiosk will not auto-start")
            return
        logger.warning("Face model unavailable - assistant will auto-start in %.1fs", delay)
        self._fallback_task = asyncio.create_task(self._fallback_start(delay), name="presence-fallback")

    async def _fallback_start(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._stopped:
            return
        logger.info("Fallback timer elapsed - starting assistant without presence detection")
        self.manager.trigger_arrival()


__all__ = ["KioskLifecycle"]
