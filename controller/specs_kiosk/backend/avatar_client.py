"""Avatar streaming session client (one instance per session token)."""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional
from urllib.parse import urlencode

import websockets

from ..errors import NotReady, SessionStartError

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]


async def _default_connect(uri: str) -> Any:
    return await websockets.connect(uri, ping_interval=20, ping_timeout=20)


class AvatarSessionClient:
    """Streams a remote avatar into a named video surface and speaks on demand."""

    def __init__(self, session_token: str, *, ws_url: str, connect: Optional[Connector] = None) -> None:
        self._session_token = session_token
        self._ws_url = ws_url
        self._connect = connect or _default_connect
        self._conn: Any = None
        self._listener_task: Optional[asyncio.Task[None]] = None
        self._target: Optional[str] = None
        self._stopped = False

    @property
    def connected(self) -> bool:
        return self._conn is not None

    @property
    def target(self) -> Optional[str]:
        return self._target

    async def stream_to(self, target: str) -> None:
        """Open the stream and bind it to ``target``; raises SessionStartError."""
        if self._stopped:
            raise SessionStartError(log_message="avatar session already stopped")
        uri = self._build_uri()
        logger.info("Connecting avatar stream to '%s'", target)
        try:
            self._conn = await self._connect(uri)
            await self._conn.send(json.dumps({"type": "bind", "target": target}))
        except Exception as e:
            logger.error("Failed to start avatar stream: %s", e)
            await self._close_connection(self._conn)
            self._conn = None
            raise SessionStartError(log_message=f"avatar stream failed: {e}") from e
        self._target = target
        self._listener_task = asyncio.create_task(self._listen(), name="avatar-ws-listener")

    async def talk(self, text: str) -> None:
        if not self._conn:
            raise NotReady(log_message="avatar stream not connected")
        try:
            await self._conn.send(json.dumps({"type": "talk", "text": text}))
        except websockets.ConnectionClosed as e:
            logger.warning("Cannot send talk message - avatar stream closed")
            raise NotReady(log_message="avatar stream closed") from e

    async def stop_streaming(self) -> None:
        """Close the stream. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        conn, self._conn = self._conn, None
        listener, self._listener_task = self._listener_task, None
        if listener is not None:
            listener.cancel()
            try:
                await listener
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning("Error during listener task cleanup: %s", e)
        await self._close_connection(conn)
        logger.info("Avatar stream stopped")

    @staticmethod
    async def _close_connection(conn: Any) -> None:
        if conn is None:
            return
        try:
            await conn.close()
        except Exception as e:
            logger.warning("Error closing avatar websocket: %s", e)

    async def _listen(self) -> None:
        conn = self._conn
        if conn is None:
            return
        try:
            async for message in conn:
                try:
                    payload = json.loads(message)
                except (TypeError, json.JSONDecodeError):
                    continue
                if isinstance(payload, dict) and payload.get("type") == "error":
                    logger.warning("Avatar stream reported error: %s", payload.get("message"))
        except asyncio.CancelledError:
            raise
        except websockets.ConnectionClosedOK:
            logger.info("Avatar stream closed cleanly")
        except websockets.ConnectionClosedError as exc:
            logger.warning("Avatar stream closed: %s", exc)
        except Exception:
            logger.exception("Avatar stream listener crashed")
        finally:
            if self._conn is conn:
                self._conn = None

    def _build_uri(self) -> str:
        base = self._ws_url.rstrip("/")
        return f"{base}?{urlencode({'session_token': self._session_token})}"


__all__ = ["AvatarSessionClient", "Connector"]
