"""Side button abstraction with debounce logic."""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

PressedProvider = Callable[[], Awaitable[Optional[bool]]]
TriggerCallback = Callable[[], Awaitable[None]]


def sysfs_gpio_provider(value_path: Path, *, active_low: bool = True) -> PressedProvider:
    """Build a provider reading a sysfs GPIO ``value`` file."""

    path = Path(value_path)

    def _read() -> Optional[bool]:
        try:
            raw = path.read_text().strip()
        except OSError as exc:
            logger.debug("GPIO read failed (%s): %s", path, exc)
            return None
        if raw not in ("0", "1"):
            return None
        level = raw == "1"
        return not level if active_low else level

    async def _provider() -> Optional[bool]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _read)

    return _provider


class SideButton:
    """Async helper that polls a button and emits one trigger per press."""

    def __init__(
        self,
        *,
        pressed_provider: PressedProvider,
        debounce_ms: int = 50,
        poll_interval_ms: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.pressed_provider = pressed_provider
        self.debounce_ms = debounce_ms
        self.poll_interval_ms = poll_interval_ms
        self._clock = clock

        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        self._callbacks: list[TriggerCallback] = []
        self._is_pressed = False
        self._last_press_ts: Optional[float] = None

    def register_callback(self, callback: TriggerCallback) -> None:
        self._callbacks.append(callback)

    async def start(self) -> None:
        if self._task:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop(), name="side-button-poller")

    async def stop(self) -> None:
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None

    async def poll_once(self) -> bool:
        """Read the provider once; returns True when a trigger was emitted."""
        pressed = await self.pressed_provider()
        if pressed is None or pressed == self._is_pressed:
            return False

        self._is_pressed = pressed
        if not pressed:
            return False

        now = self._clock() * 1000
        if self._last_press_ts is not None and now - self._last_press_ts < self.debounce_ms:
            logger.debug("Side button bounce ignored (%.1fms)", now - self._last_press_ts)
            return False
        self._last_press_ts = now
        await self._emit()
        return True

    async def _run_loop(self) -> None:
        logger.info("Side button active (debounce=%dms, poll=%dms)", self.debounce_ms, self.poll_interval_ms)
        try:
            while not self._stop_event.is_set():
                await self.poll_once()
                await asyncio.sleep(self.poll_interval_ms / 1000)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Side button error: %s", exc)
            raise
        finally:
            self._stop_event.clear()

    async def _emit(self) -> None:
        """Emit trigger event to registered callbacks."""
        for callback in self._callbacks:
            try:
                await callback()
            except Exception:
                logger.exception("Side button callback failed")
