"""Tests for viewer settings loading and logging configuration."""

from __future__ import annotations

import json
import logging

import pytest

from cgraph.config import (
    SETTINGS_FILENAME,
    LogLevel,
    ViewerSettings,
    configure_logging,
    find_settings_file,
    load_settings,
)
from cgraph.graph import LayoutMode


class TestViewerSettings:
    def test_defaults(self):
        settings = ViewerSettings()
        assert settings.debounce_s == 0.3
        assert settings.guard_window_s == 0.1
        assert settings.solver_timeout_s == 5.0
        assert settings.layout_mode is None
        assert settings.dimmed_edge_opacity == 0.15
        assert settings.logging.level is LogLevel.INFO

    def test_aliases_and_field_names(self):
        by_alias = ViewerSettings(debounceMs=50, layoutMode="force")
        by_name = ViewerSettings(debounce_ms=50, layout_mode="force")
        assert by_alias == by_name
        assert by_alias.layout_mode is LayoutMode.FORCE

    @pytest.mark.parametrize(
        "values",
        [
            {"debounceMs": -1},
            {"solverTimeoutS": 0},
            {"dimmedEdgeOpacity": 1.5},
            {"unknownKnob": True},
        ],
    )
    def test_invalid(self, values):
        with pytest.raises(ValueError):
            ViewerSettings(**values)


class TestLoadSettings:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_settings(tmp_path / "absent.json") == ViewerSettings()

    def test_loads_file(self, tmp_path):
        path = tmp_path / SETTINGS_FILENAME
        path.write_text(json.dumps({"guardWindowMs": 250, "logging": {"level": "debug"}}))
        settings = load_settings(path)
        assert settings.guard_window_ms == 250
        assert settings.logging.level is LogLevel.DEBUG

    def test_invalid_json(self, tmp_path):
        path = tmp_path / SETTINGS_FILENAME
        path.write_text("{nope")
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_settings(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / SETTINGS_FILENAME
        path.write_text(json.dumps({"debounceMs": "soon"}))
        with pytest.raises(ValueError, match="Invalid settings"):
            load_settings(path)

    def test_found_in_parent(self, tmp_path):
        (tmp_path / SETTINGS_FILENAME).write_text("{}")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_settings_file(nested) == (tmp_path / SETTINGS_FILENAME).resolve()


def test_configure_logging():
    logger = logging.getLogger("cgraph")
    previous = logger.level
    try:
        configure_logging(ViewerSettings(logging={"level": "warn"}))
        assert logger.level == logging.WARNING
    finally:
        logger.setLevel(previous)
