"""Shared fixtures: fake clock, in-memory store and a quiet settings object."""
from __future__ import annotations

import asyncio
import random
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from reaction_timer.config import GameTimings, Settings, StorageSettings
from reaction_timer.game_manager import GameManager
from reaction_timer.state import GameEvent, GameState
from reaction_timer.storage import PersistenceError

STORE_KEY = "r1_reaction_timer_best"


class FakeClock:
    """Monotonic clock the tests move by hand (seconds, like perf_counter)."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


class MemoryStore:
    """KeyValueStore double that records writes and can fail or stall."""

    name = "memory"

    def __init__(self, values: Optional[Dict[str, Any]] = None) -> None:
        self.values: Dict[str, Any] = dict(values or {})
        self.writes: List[Any] = []
        self.fail_get = False
        self.fail_set = False
        self.get_gate: Optional[asyncio.Event] = None
        self.closed = False

    async def get(self, key: str) -> Optional[Any]:
        if self.get_gate is not None:
            await self.get_gate.wait()
        if self.fail_get:
            raise PersistenceError("read failed", key=key)
        return self.values.get(key)

    async def set(self, key: str, value: Any) -> None:
        if self.fail_set:
            raise PersistenceError("write failed", key=key)
        self.values[key] = value
        self.writes.append(value)

    async def aclose(self) -> None:
        self.closed = True


def make_settings(tmp_path: Path, **timings: int) -> Settings:
    return Settings(
        _env_file=None,
        log_directory=tmp_path / "logs",
        timings=GameTimings(**timings),
        storage=StorageSettings(local_path=tmp_path / "storage.json"),
    )


async def settle() -> None:
    """Let fire-and-forget persistence tasks run."""
    await asyncio.sleep(0.01)


async def next_state(queue: "asyncio.Queue[GameEvent]", state: GameState, timeout: float = 2.0) -> GameEvent:
    async def _wait() -> GameEvent:
        while True:
            event = await queue.get()
            if event.type == "state" and event.state == state:
                return event

    return await asyncio.wait_for(_wait(), timeout=timeout)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
async def manager(settings: Settings, store: MemoryStore, clock: FakeClock):
    game = GameManager(settings=settings, store=store, clock=clock, rng=random.Random(7))
    await game.start()
    await game.wait_hydrated(timeout=1.0)
    yield game
    await game.stop()
