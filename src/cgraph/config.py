"""Viewer settings loaded from ``.cgraph.json`` using Pydantic models."""

from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cgraph.graph import LayoutMode

SETTINGS_FILENAME = ".cgraph.json"


class LogLevel(str, Enum):
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"

    def to_logging(self) -> int:
        return {
            LogLevel.ERROR: logging.ERROR,
            LogLevel.WARN: logging.WARNING,
            LogLevel.INFO: logging.INFO,
            LogLevel.DEBUG: logging.DEBUG,
        }[self]


class LoggingSettings(BaseModel):
    level: LogLevel = LogLevel.INFO


class ViewerSettings(BaseModel):
    """Timing and layout knobs for the render session and document authority."""

    debounce_ms: int = Field(alias="debounceMs", default=300)
    guard_window_ms: int = Field(alias="guardWindowMs", default=100)
    layout_ready_delay_ms: int = Field(alias="layoutReadyDelayMs", default=150)
    solver_timeout_s: float = Field(alias="solverTimeoutS", default=5.0)
    layout_mode: LayoutMode | None = Field(alias="layoutMode", default=None)  # None: use the document's
    dimmed_edge_opacity: float = Field(alias="dimmedEdgeOpacity", default=0.15)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @field_validator("debounce_ms", "guard_window_ms", "layout_ready_delay_ms")
    @classmethod
    def validate_interval(cls, v):
        if v < 0:
            raise ValueError("intervals must be >= 0 ms")
        return v

    @field_validator("solver_timeout_s")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("solver timeout must be > 0 seconds")
        return v

    @field_validator("dimmed_edge_opacity")
    @classmethod
    def validate_opacity(cls, v):
        if not (0.0 <= v <= 1.0):
            raise ValueError(f"opacity must be between 0 and 1, got: {v}")
        return v

    @property
    def debounce_s(self) -> float:
        return self.debounce_ms / 1000

    @property
    def guard_window_s(self) -> float:
        return self.guard_window_ms / 1000

    @property
    def layout_ready_delay_s(self) -> float:
        return self.layout_ready_delay_ms / 1000


def load_settings(settings_path: str | Path | None = None) -> ViewerSettings:
    """Load settings from file with fallback to defaults.

    Args:
        settings_path: Optional path to a settings file. If None, searches the
            current directory and its parents for ``.cgraph.json``.

    Raises:
        ValueError: If the file exists but is not valid JSON or fails validation.
    """
    path = find_settings_file() if settings_path is None else Path(settings_path)

    if path is None or not path.exists():
        return ViewerSettings()

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return ViewerSettings(**data)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in settings file {path}: {e}") from e
    except ValidationError as e:
        raise ValueError(f"Invalid settings in {path}: {e}") from e


def find_settings_file(start_dir: Path | None = None) -> Path | None:
    """Find ``.cgraph.json`` by searching up the directory tree."""
    current = Path(start_dir or Path.cwd()).resolve()

    while True:
        candidate = current / SETTINGS_FILENAME
        if candidate.exists():
            return candidate
        if current.parent == current:
            return None
        current = current.parent


def configure_logging(settings: ViewerSettings) -> None:
    """Apply the configured level to the ``cgraph`` logger hierarchy."""
    logging.getLogger("cgraph").setLevel(settings.logging.level.to_logging())
