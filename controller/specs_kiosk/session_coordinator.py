"""One-shot avatar session bootstrap driven by in-range arrivals."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Dict, Optional, Protocol

from .errors import AuthError, KioskError, NotReady, SessionStartError
from .state import SessionState

logger = logging.getLogger(__name__)

STATUS_CONNECTING = "Connecting to AI assistant..."
STATUS_READY = "Assistant ready. Speak and ask about this laptop's configuration."


class TokenIssuer(Protocol):
    async def issue_session_token(self, persona_config: Dict[str, Any]) -> str: ...


class AvatarSession(Protocol):
    async def stream_to(self, target: str) -> None: ...

    async def talk(self, text: str) -> None: ...

    async def stop_streaming(self) -> None: ...


SessionFactory = Callable[[str], AvatarSession]
StateObserver = Callable[[SessionState, str, Optional[str]], None]


class SessionCoordinator:
    """Owns the single avatar session of a kiosk.

    The session state doubles as the one-shot latch: ``IDLE`` and ``FAILED``
    accept a new arrival, ``CONNECTING`` and ``READY`` ignore it. The latch
    is taken before the first await, so near-simultaneous arrivals can never
    start two bootstraps.
    """

    _TRANSITIONS: Dict[SessionState, frozenset] = {
        SessionState.IDLE: frozenset({SessionState.CONNECTING}),
        SessionState.CONNECTING: frozenset({SessionState.READY, SessionState.FAILED, SessionState.IDLE}),
        SessionState.READY: frozenset({SessionState.IDLE}),
        SessionState.FAILED: frozenset({SessionState.IDLE}),
    }

    def __init__(
        self,
        *,
        auth_client: TokenIssuer,
        session_factory: SessionFactory,
        persona_config: Dict[str, Any],
        video_target: str,
        intro_text: str,
        observer: Optional[StateObserver] = None,
    ) -> None:
        self._auth_client = auth_client
        self._session_factory = session_factory
        self._persona_config = persona_config
        self._video_target = video_target
        self._intro_text = intro_text
        self._observer = observer

        self._state = SessionState.IDLE
        self._status = ""
        self._last_error: Optional[str] = None
        self._handle: Optional[AvatarSession] = None
        self._bootstrap_task: Optional[asyncio.Task[None]] = None
        self._closed = False
        self.bootstrap_attempts = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> str:
        return self._status

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def handle(self) -> Optional[AvatarSession]:
        return self._handle

    @property
    def closed(self) -> bool:
        return self._closed

    def set_observer(self, observer: Optional[StateObserver]) -> None:
        self._observer = observer

    def on_arrival_in_range(self) -> Optional[asyncio.Task[None]]:
        """Start the session unless one is already starting or running."""
        if self._closed:
            logger.debug("Arrival ignored - coordinator closed")
            return None
        if self._state in (SessionState.CONNECTING, SessionState.READY):
            logger.debug("Arrival ignored - session already %s", self._state.value)
            return None
        if self._state is SessionState.FAILED:
            self._transition(SessionState.IDLE, "Retrying assistant connection...")

        self._transition(SessionState.CONNECTING, STATUS_CONNECTING)
        self.bootstrap_attempts += 1
        self._bootstrap_task = asyncio.create_task(self._bootstrap(), name="avatar-bootstrap")
        return self._bootstrap_task

    async def send_message(self, text: str) -> bool:
        """Forward trimmed text to the live session.

        Blank text is ignored in every state. Raises ``NotReady`` when no
        session is ready; nothing is queued for later.
        """
        message = (text or "").strip()
        if not message:
            return False
        handle = self._handle
        if self._state is not SessionState.READY or handle is None:
            raise NotReady()
        await handle.talk(message)
        logger.info("Manual message forwarded (%d chars)", len(message))
        return True

    async def wait_settled(self, timeout: float) -> bool:
        """Give an in-flight bootstrap ``timeout`` seconds, then cancel it."""
        task = self._bootstrap_task
        if task is None or task.done():
            return True
        done, _ = await asyncio.wait({task}, timeout=max(timeout, 0.0))
        if done:
            return True
        logger.warning("Bootstrap still running after %.1fs - cancelling", timeout)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return False

    async def close(self) -> None:
        """Release the active session. Idempotent; never raises."""
        if self._closed:
            return
        self._closed = True
        handle, self._handle = self._handle, None
        if self._state is not SessionState.IDLE:
            self._transition(SessionState.IDLE, "Assistant stopped.")
        if handle is not None:
            await self._stop_quietly(handle)

    async def _bootstrap(self) -> None:
        client: Optional[AvatarSession] = None
        try:
            token = await self._auth_client.issue_session_token(self._persona_config)
            if self._closed:
                logger.info("Session token arrived after teardown - discarding")
                return
            client = self._session_factory(token)
            await client.stream_to(self._video_target)
        except asyncio.CancelledError:
            if client is not None:
                await asyncio.shield(self._stop_quietly(client))
            raise
        except (AuthError, SessionStartError) as exc:
            if client is not None:
                await self._stop_quietly(client)
            self._fail(exc)
            return
        except Exception as exc:
            logger.exception("Unexpected error starting avatar session")
            if client is not None:
                await self._stop_quietly(client)
            self._fail(SessionStartError(log_message=str(exc)))
            return

        if self._closed:
            logger.info("Avatar session came up after teardown - stopping it")
            # wait_settled() may cancel us here; the stop must still finish.
            await asyncio.shield(self._stop_quietly(client))
            return

        self._handle = client
        self._transition(SessionState.READY, STATUS_READY)
        logger.info("Avatar session ready on '%s'", self._video_target)

        try:
            await client.talk(self._intro_text)
        except Exception as exc:
            logger.warning("Intro utterance failed: %s", exc)

    def _fail(self, exc: KioskError) -> None:
        logger.error("Avatar session bootstrap failed: %s", exc)
        if self._closed:
            return
        self._transition(SessionState.FAILED, exc.user_message, error=str(exc))

    def _transition(self, state: SessionState, status: str, *, error: Optional[str] = None) -> None:
        if state not in self._TRANSITIONS[self._state]:
            raise RuntimeError(f"invalid session transition {self._state.value} -> {state.value}")
        logger.info("Session state %s -> %s", self._state.value, state.value)
        self._state = state
        self._status = status
        self._last_error = error
        if self._observer is not None:
            try:
                self._observer(state, status, error)
            except Exception:
                logger.exception("Session state observer failed")

    @staticmethod
    async def _stop_quietly(handle: AvatarSession) -> None:
        try:
            await handle.stop_streaming()
        except Exception as exc:
            logger.error("Error stopping avatar stream: %s", exc)


__all__ = [
    "AvatarSession",
    "STATUS_CONNECTING",
    "STATUS_READY",
    "SessionCoordinator",
    "SessionFactory",
    "StateObserver",
    "TokenIssuer",
]
