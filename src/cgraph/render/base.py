"""Base renderer protocol."""

from __future__ import annotations

from typing import Protocol

from cgraph.render.scene import Scene


class Renderer(Protocol):
    """Protocol that all renderers must implement."""

    def render(self, scene: Scene) -> str:
        """Render an assembled scene to an output string."""
        ...
