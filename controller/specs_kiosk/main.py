"""FastAPI entry-point for the smart-specs kiosk controller."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from pydantic import BaseModel

from .config import Settings, get_settings
from .errors import NotReady
from .lifecycle import KioskLifecycle
from .logging_config import configure_logging

logger = logging.getLogger(__name__)


class MessageRequest(BaseModel):
    text: str = ""


def create_app(
    settings: Optional[Settings] = None,
    *,
    lifecycle: Optional[KioskLifecycle] = None,
    configure_logs: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    if configure_logs:
        configure_logging(settings.log_level, settings.log_directory, settings.log_retention_days)
    kiosk = lifecycle or KioskLifecycle(settings=settings)
    manager = kiosk.manager

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            await kiosk.start()
            logger.info("Application started successfully")
        except Exception as e:
            logger.exception(f"Failed to start kiosk: {e}")
            logger.error("Application startup failed - running in degraded mode")
        try:
            yield
        finally:
            await kiosk.stop()
            logger.info("Application shutdown complete")

    app = FastAPI(title="specs-kiosk-controller", version="0.1.0", lifespan=lifespan)
    app.state.kiosk = kiosk

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
        """Catch-all exception handler to prevent application crashes."""
        logger.exception(f"Unhandled exception in {request.url.path}: {exc}")
        return PlainTextResponse(
            f"Internal server error: {str(exc)}",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning(f"Validation error in {request.url.path}: {exc}")
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/healthz")
    async def healthcheck() -> JSONResponse:
        return JSONResponse({"status": "ok", "session_state": manager.session_state.value})

    @app.get("/state")
    async def current_state() -> JSONResponse:
        return JSONResponse(manager.snapshot())

    @app.post("/message")
    async def send_message(payload: MessageRequest) -> JSONResponse:
        """Manual text path for the on-screen input box."""
        try:
            sent = await manager.send_message(payload.text)
        except NotReady as exc:
            return JSONResponse(
                {"status": "not_ready", "message": exc.user_message},
                status_code=status.HTTP_409_CONFLICT,
            )
        return JSONResponse({"status": "sent" if sent else "ignored"})

    @app.post("/debug/arrival")
    async def debug_arrival() -> JSONResponse:
        """Manual session trigger for testing (bypasses presence detection)."""
        task = manager.trigger_arrival()
        logger.info("Debug arrival trigger invoked (started=%s)", task is not None)
        return JSONResponse({"started": task is not None, "session_state": manager.session_state.value})

    @app.get("/preview")
    async def preview_stream() -> StreamingResponse:
        """MJPEG stream for the camera-preview surface."""
        boundary = "frame"

        async def frame_iterator() -> AsyncIterator[bytes]:
            try:
                async for frame in kiosk.frame_source.preview_stream():
                    header = (
                        f"--{boundary}\r\n"
                        f"Content-Type: image/jpeg\r\n"
                        f"Content-Length: {len(frame)}\r\n\r\n"
                    ).encode("ascii")
                    yield header + frame + b"\r\n"
            except Exception as e:
                logger.error(f"Preview stream error: {e}")

        media_type = f"multipart/x-mixed-replace; boundary={boundary}"
        return StreamingResponse(frame_iterator(), media_type=media_type)

    @app.websocket("/ws/ui")
    async def ui_socket(ws: WebSocket) -> None:
        await ws.accept()
        queue = manager.register_ui()
        try:
            while True:
                event = await queue.get()
                payload = {
                    "type": event.type,
                    "state": event.state.value,
                    "data": event.data,
                }
                if event.error:
                    payload["error"] = event.error
                await ws.send_json(payload)
        except WebSocketDisconnect:
            pass
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"UI websocket closed: {e}")
        finally:
            manager.unregister_ui(queue)

    return app


def run() -> None:
    """Console entry-point: serve the controller with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "specs_kiosk.main:create_app",
        factory=True,
        host=settings.controller_host,
        port=settings.controller_port,
    )


if __name__ == "__main__":
    run()
