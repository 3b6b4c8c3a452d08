"""Shared state definitions for the reaction timer controller."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class GameState(str, enum.Enum):
    """
    Round states:

    1. IDLE     - Waiting for the player to start
    2. WAITING  - Random delay running, pressing now is too early
    3. ARMED    - GO shown, reaction clock running
    4. RESULT   - Reaction time (or timeout) shown, then back to IDLE
    5. PENALTY  - Pressed too early, then back to IDLE
    """
    IDLE = "idle"
    WAITING = "waiting"
    ARMED = "armed"
    RESULT = "result"
    PENALTY = "penalty"


class TimerKind(str, enum.Enum):
    """Delayed transitions; each state owns at most one."""
    ARM = "arm"
    REACTION_TIMEOUT = "reaction_timeout"
    RETURN = "return"


@dataclass(frozen=True)
class TimerHandle:
    """Identifies one scheduled timer; stale once the token moves on."""

    kind: TimerKind
    token: int
    delay_ms: float


@dataclass
class GameSession:
    """Mutable round data owned by the game manager."""

    state: GameState = GameState.IDLE
    armed_at: Optional[float] = None
    last_reaction_ms: Optional[int] = None
    timed_out: bool = False
    best_ms: Optional[int] = None
    new_best: bool = False


@dataclass
class GameEvent:
    """Event payload distributed to UI clients over the local WebSocket."""

    type: str
    state: GameState
    data: Dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type, "state": self.state.value, "data": self.data}


__all__ = ["GameState", "TimerKind", "TimerHandle", "GameSession", "GameEvent"]
