"""Display fields derived from the current game session."""
from __future__ import annotations

from typing import Any, Dict, Optional

from .state import GameSession, GameState

NO_BEST_READOUT = "---.---s"


def format_seconds(ms: Optional[float]) -> str:
    """Render milliseconds as seconds with three decimals, e.g. ``0.180s``."""
    if ms is None:
        return NO_BEST_READOUT
    return f"{ms / 1000:.3f}s"


def render(session: GameSession, *, trigger_label: str = "PTT") -> Dict[str, Any]:
    """Build the status/readout/highlight frame for the display sink."""

    state = session.state
    frame: Dict[str, Any] = {"highlight": False, "best": format_seconds(session.best_ms)}

    if state == GameState.IDLE:
        frame.update(status=f"Press {trigger_label} to Start", readout="0.000s")
    elif state == GameState.WAITING:
        frame.update(status="Wait for Green...", readout="WAIT")
    elif state == GameState.ARMED:
        frame.update(status="REACT NOW!", readout="GO!", highlight=True)
    elif state == GameState.PENALTY:
        frame.update(status="Too Early!", readout="PENALTY")
    elif session.timed_out:
        frame.update(status="Too Slow!", readout="TIMEOUT", reaction_ms=None, timed_out=True, new_best=False)
    else:
        frame.update(
            status="NEW BEST!" if session.new_best else "Your Time:",
            readout=format_seconds(session.last_reaction_ms),
            highlight=True,
            reaction_ms=session.last_reaction_ms,
            timed_out=False,
            new_best=session.new_best,
        )
    return frame


__all__ = ["NO_BEST_READOUT", "format_seconds", "render"]
