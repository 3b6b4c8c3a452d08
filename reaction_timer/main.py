"""FastAPI entry-point for the reaction timer controller.

Run with ``uvicorn reaction_timer.main:create_app --factory``.
"""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import Settings, get_settings
from .game_manager import GameManager
from .inputs import PressedProvider, SideButton, sysfs_gpio_provider
from .logging_config import configure_logging
from .storage import KeyValueStore, select_store

logger = logging.getLogger(__name__)


def _build_button(settings: Settings, manager: GameManager, provider: Optional[PressedProvider]) -> Optional[SideButton]:
    if not settings.button.enabled:
        return None
    if provider is None and settings.button.gpio_value_path:
        provider = sysfs_gpio_provider(settings.button.gpio_value_path, active_low=settings.button.active_low)
    if provider is None:
        logger.warning("Side button enabled but no GPIO path configured - button input disabled")
        return None
    button = SideButton(
        pressed_provider=provider,
        debounce_ms=settings.button.debounce_ms,
        poll_interval_ms=settings.button.poll_interval_ms,
    )

    async def _on_press() -> None:
        await manager.on_trigger()

    button.register_callback(_on_press)
    return button


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[KeyValueStore] = None,
    pressed_provider: Optional[PressedProvider] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_directory, settings.log_retention_days)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        active_store = store if store is not None else await select_store(settings.storage)
        manager = GameManager(settings=settings, store=active_store)
        button = _build_button(settings, manager, pressed_provider)
        app.state.manager = manager
        app.state.button = button
        try:
            await manager.start()
            if not await manager.wait_hydrated(timeout=settings.storage.device_timeout):
                logger.warning("Best time still loading - accepting input anyway")
            if button:
                await button.start()
            logger.info("Application started successfully (storage=%s)", manager.store_name)
        except Exception as e:
            logger.exception(f"Failed to start services: {e}")
            logger.error("Application startup failed - some features may not work")
        yield
        try:
            if button:
                await button.stop()
            await manager.stop()
            logger.info("Application shutdown complete")
        except Exception as e:
            logger.exception(f"Error during shutdown: {e}")

    app = FastAPI(title="reaction-timer", version="0.1.0", lifespan=lifespan)

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

    def _manager(request: Request) -> GameManager:
        return request.app.state.manager

    @app.get("/healthz")
    async def healthcheck(request: Request) -> JSONResponse:
        manager = _manager(request)
        return JSONResponse({
            "status": "ok",
            "state": manager.state.value,
            "storage": manager.store_name,
            "hydrated": manager.hydrated,
        })

    @app.get("/state")
    async def current_state(request: Request) -> JSONResponse:
        return JSONResponse(_manager(request).frame())

    @app.post("/trigger")
    async def trigger(request: Request) -> JSONResponse:
        """Same as a side button press."""
        manager = _manager(request)
        await manager.on_trigger()
        return JSONResponse(manager.frame())

    @app.post("/start")
    async def start_round(request: Request) -> JSONResponse:
        manager = _manager(request)
        await manager.start_round()
        return JSONResponse(manager.frame())

    @app.post("/best/reset")
    async def reset_best(request: Request) -> JSONResponse:
        manager = _manager(request)
        await manager.reset_best()
        return JSONResponse(manager.frame())

    @app.websocket("/ws/ui")
    async def ui_socket(ws: WebSocket) -> None:
        await ws.accept()
        manager: GameManager = ws.app.state.manager
        queue = manager.register_ui()
        receiver = asyncio.create_task(_receive_commands(ws, manager), name="ui-socket-receiver")
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
                if getter not in done:
                    getter.cancel()
                    break
                try:
                    await ws.send_json(getter.result().to_payload())
                except Exception as e:
                    # WebSocket closed, break out of loop
                    logger.debug(f"WebSocket send failed (client disconnected): {e}")
                    break
        except WebSocketDisconnect:
            pass
        except asyncio.CancelledError:
            pass  # Clean shutdown
        except Exception as e:
            logger.error(f"Unexpected error in UI websocket: {e}")
        finally:
            manager.unregister_ui(queue)
            receiver.cancel()
            try:
                await receiver
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning(f"UI socket receiver failed: {e}")
            try:
                await ws.close()
            except Exception:
                pass

    return app


async def _receive_commands(ws: WebSocket, manager: GameManager) -> None:
    """Read ``{"type": "trigger"}`` style commands from a UI client."""
    while True:
        message = await ws.receive()
        if message["type"] == "websocket.disconnect":
            return
        text = message.get("text")
        if text is None:
            logger.warning("Ignoring non-text frame from UI client")
            continue
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON from UI client: %s", text)
            continue
        kind = payload.get("type") if isinstance(payload, dict) else None
        if kind == "trigger":
            await manager.on_trigger()
        elif kind == "start":
            await manager.start_round()
        elif kind == "reset_best":
            await manager.reset_best()
        else:
            logger.warning("Unknown UI command: %s", payload)


__all__ = ["create_app"]
