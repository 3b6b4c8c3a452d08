"""Reaction game orchestration: state machine, round timers and best-time persistence."""
from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
import random
import time
from asyncio import QueueEmpty
from typing import Any, Callable, Dict, List, Optional, Set

from .config import Settings, get_settings
from .display import render
from .state import GameEvent, GameSession, GameState, TimerHandle, TimerKind
from .storage import KeyValueStore, PersistenceError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class GameManager:
    """Owns the single game session and serializes every transition on it.

    Triggers and timer fires both go through ``self._lock``, so the state read
    and state write of one transition never interleave with another. Each
    state owns at most one timer; entering a state cancels the previous timer
    and a fire carrying an old token is dropped.
    """

    _TIMER_STATES: Dict[TimerKind, tuple[GameState, ...]] = {
        TimerKind.ARM: (GameState.WAITING,),
        TimerKind.REACTION_TIMEOUT: (GameState.ARMED,),
        TimerKind.RETURN: (GameState.RESULT, GameState.PENALTY),
    }

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        store: Optional[KeyValueStore] = None,
        clock: Clock = time.perf_counter,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._timings = self.settings.timings
        self._store = store
        self._clock = clock
        self._rng = rng or random.Random()

        self._lock = asyncio.Lock()
        self._persist_lock = asyncio.Lock()
        self._session = GameSession()
        self._ui_subscribers: List[asyncio.Queue[GameEvent]] = []

        self._timer: Optional[TimerHandle] = None
        self._timer_task: Optional[asyncio.Task[None]] = None
        self._timer_token = 0

        self._hydrated = asyncio.Event()
        self._best_cleared = False
        self._hydrate_task: Optional[asyncio.Task[None]] = None
        self._persist_tasks: Set[asyncio.Task[None]] = set()
        self._background_tasks: list[asyncio.Task[Any]] = []

    # ------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------

    @property
    def state(self) -> GameState:
        return self._session.state

    @property
    def session(self) -> GameSession:
        return dataclasses.replace(self._session)

    @property
    def best_ms(self) -> Optional[int]:
        return self._session.best_ms

    @property
    def pending_timer(self) -> Optional[TimerHandle]:
        return self._timer

    @property
    def store_name(self) -> Optional[str]:
        return self._store.name if self._store else None

    @property
    def hydrated(self) -> bool:
        return self._hydrated.is_set()

    def frame(self) -> Dict[str, Any]:
        """Current display fields for the UI."""
        data = render(self._session, trigger_label=self.settings.trigger_label)
        data["state"] = self._session.state.value
        return data

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    async def start(self) -> None:
        logger.info("Starting game manager (store=%s)", self.store_name or "none")
        if self._store is None:
            self._hydrated.set()
        elif not self._hydrate_task:
            self._hydrate_task = asyncio.create_task(self._hydrate(), name="best-time-hydrate")
        self._background_tasks.append(asyncio.create_task(self._heartbeat_loop(), name="game-heartbeat"))
        await self._publish_state()
        logger.info("Game manager started in IDLE state")

    async def stop(self) -> None:
        logger.info("Stopping game manager")
        self._cancel_timer()

        tasks = list(self._background_tasks)
        if self._hydrate_task and not self._hydrate_task.done():
            tasks.append(self._hydrate_task)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.warning("Error stopping background task: %s", e)
        self._background_tasks.clear()
        self._hydrate_task = None

        if self._persist_tasks and self._hydrated.is_set():
            await asyncio.gather(*self._persist_tasks, return_exceptions=True)
        for task in list(self._persist_tasks):
            task.cancel()

        if self._store is not None:
            try:
                await self._store.aclose()
            except Exception as e:
                logger.warning("Error closing store: %s", e)
        logger.info("Game manager stopped")

    async def wait_hydrated(self, timeout: Optional[float] = None) -> bool:
        try:
            await asyncio.wait_for(self._hydrated.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    # ------------------------------------------------------------
    # Display sink
    # ------------------------------------------------------------

    def register_ui(self) -> asyncio.Queue[GameEvent]:
        queue: asyncio.Queue[GameEvent] = asyncio.Queue(maxsize=self.settings.ui_event_queue_size)
        queue.put_nowait(GameEvent(type="state", state=self._session.state, data=self.frame()))
        self._ui_subscribers.append(queue)
        return queue

    def unregister_ui(self, queue: asyncio.Queue[GameEvent]) -> None:
        if queue in self._ui_subscribers:
            self._ui_subscribers.remove(queue)

    async def _broadcast(self, event: GameEvent) -> None:
        """Broadcast event to all UI subscribers; full queues drop their oldest event."""
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

    async def _publish_state(self) -> None:
        await self._broadcast(GameEvent(type="state", state=self._session.state, data=self.frame()))

    # ------------------------------------------------------------
    # Events
    # ------------------------------------------------------------

    async def on_trigger(self) -> GameState:
        """Apply one input event. Never raises."""
        try:
            async with self._lock:
                await self._handle_trigger()
        except Exception:
            logger.exception("Trigger handling failed in %s", self._session.state.value)
        return self._session.state

    async def start_round(self) -> GameState:
        """Explicit start; only valid from IDLE or RESULT."""
        try:
            async with self._lock:
                if self._session.state in (GameState.IDLE, GameState.RESULT):
                    await self._begin_round()
                else:
                    logger.info("Start ignored in %s", self._session.state.value)
        except Exception:
            logger.exception("Start handling failed")
        return self._session.state

    async def on_timer_fire(self, handle: TimerHandle) -> bool:
        """Apply a timer transition if ``handle`` is still the live timer."""
        try:
            async with self._lock:
                current = self._timer
                if current is None or current.token != handle.token or current.kind != handle.kind:
                    logger.debug("Stale %s timer fire ignored (token=%d)", handle.kind.value, handle.token)
                    return False
                self._cancel_timer()
                await self._handle_timer(handle.kind)
                return True
        except Exception:
            logger.exception("Timer %s handling failed", handle.kind.value)
            return False

    async def reset_best(self) -> None:
        """Forget the best time and persist the cleared value."""
        async with self._lock:
            self._session.best_ms = None
            if not self._hydrated.is_set():
                self._best_cleared = True
            logger.info("Best time reset")
            self._schedule_persist()
            await self._publish_state()

    # ------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------

    async def _handle_trigger(self) -> None:
        state = self._session.state
        if state in (GameState.IDLE, GameState.RESULT):
            await self._begin_round()
        elif state == GameState.WAITING:
            self._enter(GameState.PENALTY)
            self._schedule(TimerKind.RETURN, self._timings.penalty_duration_ms)
            await self._publish_state()
        elif state == GameState.ARMED:
            await self._score_reaction()
        else:
            logger.debug("Trigger ignored during penalty")

    async def _handle_timer(self, kind: TimerKind) -> None:
        state = self._session.state
        if state not in self._TIMER_STATES[kind]:
            logger.warning("Timer %s fired in unexpected state %s", kind.value, state.value)
            return

        if kind == TimerKind.ARM:
            self._enter(GameState.ARMED)
            self._session.armed_at = self._clock()
            self._schedule(TimerKind.REACTION_TIMEOUT, self._timings.reaction_timeout_ms)
        elif kind == TimerKind.REACTION_TIMEOUT:
            self._enter(GameState.RESULT)
            self._session.last_reaction_ms = None
            self._session.timed_out = True
            self._schedule(TimerKind.RETURN, self._timings.result_duration_ms)
        else:
            self._enter(GameState.IDLE)
        await self._publish_state()

    async def _begin_round(self) -> None:
        self._enter(GameState.WAITING)
        delay_ms = self._rng.uniform(self._timings.min_delay_ms, self._timings.max_delay_ms)
        logger.debug("Arming in %.0fms", delay_ms)
        self._schedule(TimerKind.ARM, delay_ms)
        await self._publish_state()

    async def _score_reaction(self) -> None:
        armed_at = self._session.armed_at
        if armed_at is None:
            raise RuntimeError("ARMED without armed_at")
        # Rounded once; comparison, display and storage share this value.
        reaction_ms = int(round((self._clock() - armed_at) * 1000))

        self._enter(GameState.RESULT)
        previous_best = self._session.best_ms
        new_best = previous_best is None or reaction_ms < previous_best
        self._session.last_reaction_ms = reaction_ms
        self._session.timed_out = False
        self._session.new_best = new_best
        logger.info("Reaction %dms (best=%s)", reaction_ms, previous_best)
        if new_best:
            self._session.best_ms = reaction_ms
            self._schedule_persist()

        self._schedule(TimerKind.RETURN, self._timings.result_duration_ms)
        await self._publish_state()

    def _enter(self, state: GameState) -> None:
        self._cancel_timer()
        previous = self._session.state
        self._session.state = state
        if state != GameState.ARMED:
            self._session.armed_at = None
        if state != GameState.RESULT:
            self._session.timed_out = False
            self._session.new_best = False
        logger.info("State changed: %s -> %s", previous.value, state.value)

    # ------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------

    def _schedule(self, kind: TimerKind, delay_ms: float) -> TimerHandle:
        self._timer_token += 1
        handle = TimerHandle(kind=kind, token=self._timer_token, delay_ms=delay_ms)
        self._timer = handle
        self._timer_task = asyncio.create_task(self._run_timer(handle), name=f"game-timer-{kind.value}")
        return handle

    async def _run_timer(self, handle: TimerHandle) -> None:
        await asyncio.sleep(handle.delay_ms / 1000)
        await self.on_timer_fire(handle)

    def _cancel_timer(self) -> None:
        task = self._timer_task
        self._timer = None
        self._timer_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------

    async def _hydrate(self) -> None:
        assert self._store is not None
        key = self.settings.storage.key
        loaded: Optional[int] = None
        try:
            loaded = self._coerce_best(await self._store.get(key))
            logger.info("Loaded best time from %s: %s", self._store.name, loaded)
        except PersistenceError as exc:
            logger.warning("Could not load best time: %s", exc)
        except Exception:
            logger.exception("Unexpected error loading best time")

        async with self._lock:
            current = self._session.best_ms
            stale_store = False
            if not self._best_cleared:
                if loaded is not None and (current is None or loaded < current):
                    self._session.best_ms = loaded
                    last = self._session.last_reaction_ms
                    if (
                        self._session.state == GameState.RESULT
                        and self._session.new_best
                        and last is not None
                        and last >= loaded
                    ):
                        self._session.new_best = False
                stale_store = current is not None and (loaded is None or current < loaded)
            self._hydrated.set()
            await self._publish_state()
        if stale_store:
            self._schedule_persist()

    def _schedule_persist(self) -> None:
        if self._store is None:
            return
        task = asyncio.create_task(self._persist_best(), name="best-time-persist")
        self._persist_tasks.add(task)
        task.add_done_callback(self._persist_tasks.discard)

    async def _persist_best(self) -> None:
        assert self._store is not None
        await self._hydrated.wait()
        async with self._persist_lock:
            value = self._session.best_ms
            try:
                await self._store.set(self.settings.storage.key, value)
                logger.info("Best time saved to %s: %s", self._store.name, value)
            except PersistenceError as exc:
                logger.error("Could not save best time: %s", exc)
            except Exception:
                logger.exception("Unexpected error saving best time")

    @staticmethod
    def _coerce_best(raw: Any) -> Optional[int]:
        if raw is None:
            return None
        if isinstance(raw, bool):
            raise PersistenceError(f"malformed best time: {raw!r}")
        if isinstance(raw, str):
            try:
                raw = float(raw)
            except ValueError as exc:
                raise PersistenceError(f"malformed best time: {raw!r}") from exc
        if not isinstance(raw, (int, float)) or not math.isfinite(raw) or raw < 0:
            raise PersistenceError(f"malformed best time: {raw!r}")
        return int(round(raw))

    # ------------------------------------------------------------
    # Background loops
    # ------------------------------------------------------------

    async def _heartbeat_loop(self) -> None:
        """Send periodic heartbeat to UI clients."""
        try:
            while True:
                await asyncio.sleep(self.settings.heartbeat_seconds)
                try:
                    await self._broadcast(GameEvent(type="heartbeat", state=self.state))
                except Exception as e:
                    logger.warning("Failed to send heartbeat: %s", e)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Heartbeat loop crashed: %s", e)


__all__ = ["GameManager"]
