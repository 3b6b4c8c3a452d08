"""Reaction timer controller for the R1 side-button reaction game."""
from .game_manager import GameManager
from .state import GameEvent, GameState, TimerHandle, TimerKind

__all__ = ["GameEvent", "GameManager", "GameState", "TimerHandle", "TimerKind"]
