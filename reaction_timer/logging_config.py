"""Logging bootstrap for the reaction timer controller: console plus a rotating runtime log in the log directory."""
from __future__ import annotations

from logging.config import dictConfig
from pathlib import Path
from typing import Optional


def configure_logging(level: str = "INFO", log_dir: Optional[Path] = None, retention_days: int = 14) -> None:
    """Route round transitions and storage failures to the console and reaction-timer.log."""

    if log_dir is None:
        log_dir = Path(__file__).resolve().parents[1] / "logs"
    log_dir = Path(log_dir).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": level,
                },
                "runtime_file": {
                    "class": "logging.handlers.TimedRotatingFileHandler",
                    "formatter": "default",
                    "level": level,
                    "filename": str(log_dir / "reaction-timer.log"),
                    "when": "midnight",
                    "backupCount": max(int(retention_days), 1),
                    "utc": True,
                    "delay": True,
                    "encoding": "utf-8",
                },
            },
            "loggers": {
                "httpx": {"level": "WARNING"},
            },
            "root": {"level": level, "handlers": ["console", "runtime_file"]},
        }
    )


__all__ = ["configure_logging"]
