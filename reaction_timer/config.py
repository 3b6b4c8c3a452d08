"""Central configuration for the reaction timer controller."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).resolve().parents[1]
DEFAULT_ENV_FILE = ROOT_DIR / ".env"


# ============================================================
# Nested Configuration Classes
# ============================================================

class GameTimings(BaseModel):
    """Round timing configuration (milliseconds)."""
    min_delay_ms: int = Field(1000, ge=0, description="Shortest random wait before GO")
    max_delay_ms: int = Field(4000, ge=0, description="Longest random wait before GO")
    reaction_timeout_ms: int = Field(2000, gt=0, description="Reaction window after GO")
    penalty_duration_ms: int = Field(1500, ge=0, description="Too-early screen duration")
    result_duration_ms: int = Field(3000, ge=0, description="Result screen duration")

    @model_validator(mode="after")
    def _check_delay_range(self) -> "GameTimings":
        if self.max_delay_ms < self.min_delay_ms:
            raise ValueError("max_delay_ms must be >= min_delay_ms")
        return self


class StorageSettings(BaseModel):
    """Best-time persistence configuration."""
    key: str = Field("r1_reaction_timer_best", description="Key holding the best time")
    device_url: Optional[str] = Field(None, description="Device storage base URL; unset disables it")
    device_timeout: float = Field(2.0, description="Device storage request timeout (seconds)")
    local_path: Path = Field(ROOT_DIR / "data" / "storage.json", description="Fallback JSON store")


class ButtonSettings(BaseModel):
    """Side button poller configuration."""
    enabled: bool = Field(False, description="Poll the side button")
    gpio_value_path: Optional[Path] = Field(None, description="sysfs GPIO value file for the button")
    active_low: bool = Field(True, description="Button reads 0 when pressed")
    debounce_ms: int = Field(50, ge=0, description="Minimum gap between accepted presses")
    poll_interval_ms: int = Field(10, gt=0, description="Provider polling period")


class Settings(BaseSettings):
    """Environment-driven settings for controller subsystems."""

    # Controller HTTP Server
    controller_host: str = Field("0.0.0.0", description="Host interface for local FastAPI server")
    controller_port: int = Field(5000, description="Port for FastAPI server")

    # UI
    trigger_label: str = Field("PTT", description="Name of the trigger shown on the idle screen")
    ui_event_queue_size: int = Field(8, description="Max buffered UI events per subscriber")
    heartbeat_seconds: float = Field(30.0, description="Interval between UI heartbeats")

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_directory: Path = Field(ROOT_DIR / "logs", description="Log directory path")
    log_retention_days: int = Field(14, description="Number of log files to retain")

    # Nested Configuration Objects
    timings: GameTimings = Field(default_factory=GameTimings, description="Round timings")
    storage: StorageSettings = Field(default_factory=StorageSettings, description="Best-time storage")
    button: ButtonSettings = Field(default_factory=ButtonSettings, description="Side button input")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    model_config = SettingsConfigDict(
        env_file=str(DEFAULT_ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings(override_env_file: Optional[Path] = None) -> Settings:
    """Cached Settings instance; accepts optional env override for tests."""

    if override_env_file:
        return Settings(_env_file=str(override_env_file))
    return Settings()
