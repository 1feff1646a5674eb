"""Kiosk orchestration: presence events in, session lifecycle and UI state out."""
from __future__ import annotations

import asyncio
from asyncio import QueueEmpty
import logging
from typing import Any, Dict, List, Optional

from .backend.avatar_client import AvatarSessionClient
from .backend.http_client import AvatarAuthClient
from .config import Settings, get_settings
from .errors import KioskError
from .persona import build_persona_config
from .sensors.presence_debouncer import PresenceDebouncer
from .session_coordinator import SessionCoordinator
from .state import ControllerEvent, Detection, DistanceBucket, PresenceEvent, PresenceEventKind, SessionState

logger = logging.getLogger(__name__)

STATUS_INITIALIZING = "Initializing kiosk..."
STATUS_CAMERA_STARTING = "Initializing camera and face detection..."
STATUS_WAITING = "Camera access granted. Waiting for customer..."
STATUS_COME_CLOSER = "Customer detected, please come a bit closer."
STATUS_STARTING = "Customer in front of kiosk. Starting assistant..."
STATUS_CUSTOMER_LEFT = "Waiting for customer..."


class KioskSessionManager:
    """Coordinates presence debounce, the avatar session, and UI state updates."""

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        coordinator: Optional[SessionCoordinator] = None,
        debouncer: Optional[PresenceDebouncer] = None,
        auth_client: Optional[AvatarAuthClient] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._ui_subscribers: List[asyncio.Queue[ControllerEvent]] = []
        self._debouncer = debouncer or PresenceDebouncer(
            absent_frame_threshold=self.settings.presence.absent_frame_threshold
        )

        self._auth_client: Optional[AvatarAuthClient] = None
        if coordinator is None:
            self._auth_client = auth_client or AvatarAuthClient(self.settings)
            ws_url = self.settings.avatar_ws_url
            coordinator = SessionCoordinator(
                auth_client=self._auth_client,
                session_factory=lambda token: AvatarSessionClient(token, ws_url=ws_url),
                persona_config=build_persona_config(self.settings.persona),
                video_target=self.settings.session.video_target,
                intro_text=self.settings.session.intro_text,
            )
        self._coordinator = coordinator
        self._coordinator.set_observer(self._on_session_state)

        self._status = STATUS_INITIALIZING
        self._customer_detected = False
        self._camera_ready = False
        self._distance: Optional[DistanceBucket] = None
        self._listening = False
        self._listening_handle: Optional[asyncio.TimerHandle] = None
        self._closed = False

    @property
    def coordinator(self) -> SessionCoordinator:
        return self._coordinator

    @property
    def session_state(self) -> SessionState:
        return self._coordinator.state

    @property
    def status(self) -> str:
        return self._status

    @property
    def customer_detected(self) -> bool:
        return self._customer_detected

    @property
    def listening(self) -> bool:
        return self._listening

    def snapshot(self) -> Dict[str, Any]:
        """Current UI state."""
        return {
            "status": self._status,
            "session_state": self._coordinator.state.value,
            "camera_ready": self._camera_ready,
            "customer_detected": self._customer_detected,
            "avatar_ready": self._coordinator.state is SessionState.READY,
            "distance": self._distance.value if self._distance else None,
            "listening": self._listening,
        }

    # ============================================================
    # UI fan-out
    # ============================================================

    def register_ui(self) -> asyncio.Queue[ControllerEvent]:
        queue: asyncio.Queue[ControllerEvent] = asyncio.Queue(maxsize=4)
        self._ui_subscribers.append(queue)
        queue.put_nowait(ControllerEvent(type="state", data=self.snapshot(), state=self.session_state))
        return queue

    def unregister_ui(self, queue: asyncio.Queue[ControllerEvent]) -> None:
        if queue in self._ui_subscribers:
            self._ui_subscribers.remove(queue)

    def _broadcast(self, event_type: str, *, error: Optional[str] = None, **extra: Any) -> None:
        """Broadcast to every UI subscriber, dropping the oldest event when full."""
        data = self.snapshot()
        data.update(extra)
        event = ControllerEvent(type=event_type, data=data, state=self.session_state, error=error)
        for queue in list(self._ui_subscribers):
            try:
                if queue.full():
                    try:
                        queue.get_nowait()
                    except QueueEmpty:
                        pass
                queue.put_nowait(event)
            except Exception as e:
                logger.warning("Failed to broadcast event to subscriber: %s", e)

    def _set_status(self, status: str, *, error: Optional[str] = None) -> None:
        if status == self._status and error is None:
            return
        self._status = status
        logger.info("Status: %s", status)
        self._broadcast("status", error=error)

    # ============================================================
    # Camera lifecycle hooks
    # ============================================================

    def mark_camera_starting(self) -> None:
        self._set_status(STATUS_CAMERA_STARTING)

    def mark_camera_ready(self) -> None:
        self._camera_ready = True
        self._set_status(STATUS_WAITING)

    def mark_camera_failed(self, exc: KioskError) -> None:
        self._camera_ready = False
        self._set_status(exc.user_message, error=str(exc))

    # ============================================================
    # Frame pipeline
    # ============================================================

    def on_frame(self, detection: Detection) -> List[PresenceEvent]:
        """Single entry point per analysed frame."""
        if self._closed:
            return []
        events = self._debouncer.update(detection)
        for event in events:
            self._handle_presence_event(event)
        return events

    def trigger_arrival(self) -> Optional[asyncio.Task[None]]:
        """Start the assistant as if an in-range customer had arrived."""
        if self._closed:
            return None
        return self._start_if_idle()

    def _handle_presence_event(self, event: PresenceEvent) -> None:
        started = self._coordinator.state in (SessionState.CONNECTING, SessionState.READY)

        if event.kind is PresenceEventKind.ARRIVED:
            self._customer_detected = True
            if event.in_range:
                self._start_if_idle()
            elif not started:
                self._set_status(STATUS_COME_CLOSER)
            self._broadcast("presence", event=event.kind.value)
            return

        if event.kind is PresenceEventKind.DISTANCE_CHANGED:
            previous, self._distance = self._distance, event.bucket
            if event.in_range:
                # Walking into range counts as an in-range arrival.
                if previous is None or not previous.in_range:
                    self._start_if_idle()
            elif not started:
                self._set_status(STATUS_COME_CLOSER)
            self._broadcast("presence", event=event.kind.value, face_size=round(event.face_size, 3))
            return

        # departed
        self._customer_detected = False
        self._distance = None
        if not started:
            self._set_status(STATUS_CUSTOMER_LEFT)
        self._broadcast("presence", event=event.kind.value)

    def _start_if_idle(self) -> Optional[asyncio.Task[None]]:
        if self._coordinator.closed or self._coordinator.state in (SessionState.CONNECTING, SessionState.READY):
            return None
        self._set_status(STATUS_STARTING)
        return self._coordinator.on_arrival_in_range()

    def _on_session_state(self, state: SessionState, status: str, error: Optional[str]) -> None:
        self._status = status
        self._broadcast("state", error=error)

    # ============================================================
    # Manual message path
    # ============================================================

    async def send_message(self, text: str) -> bool:
        """Forward typed text to the avatar; raises NotReady when no session is live."""
        sent = await self._coordinator.send_message(text)
        if sent:
            self._show_listening()
        return sent

    def _show_listening(self) -> None:
        if self._listening_handle is not None:
            self._listening_handle.cancel()
        self._listening = True
        self._broadcast("listening")
        loop = asyncio.get_running_loop()
        self._listening_handle = loop.call_later(self.settings.session.listening_indicator_s, self._clear_listening)

    def _clear_listening(self) -> None:
        self._listening_handle = None
        self._listening = False
        self._broadcast("listening")

    # ============================================================
    # Teardown
    # ============================================================

    async def close(self, *, grace_s: Optional[float] = None) -> None:
        """Release the avatar session and HTTP client. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._listening_handle is not None:
            self._listening_handle.cancel()
            self._listening_handle = None
        self._listening = False

        await self._coordinator.close()
        if grace_s is None:
            grace_s = self.settings.session.teardown_grace_s
        await self._coordinator.wait_settled(grace_s)

        if self._auth_client is not None:
            await self._auth_client.aclose()
        self._debouncer.reset()
        logger.info("Kiosk session manager closed")


__all__ = ["KioskSessionManager"]
