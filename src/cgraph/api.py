"""Headless entry points: document text in, layout or SVG out.

These run their own event loop and so must not be called from inside one;
async callers use ``cgraph.layout.compile_layout`` directly.
"""

from __future__ import annotations

import asyncio

from cgraph.config import ViewerSettings
from cgraph.graph import parse_graph
from cgraph.layout.compiler import compile_layout
from cgraph.layout.solver import LayoutSolver
from cgraph.layout.types import CompiledLayout
from cgraph.render.base import Renderer
from cgraph.render.scene import build_scene
from cgraph.render.svg import SvgRenderer
from cgraph.selection import NOTHING, Selection


def compile_document(
    text: str,
    settings: ViewerSettings | None = None,
    solver: LayoutSolver | None = None,
) -> CompiledLayout:
    """Parse ``text`` and compute its layout.

    Raises:
        ParseError: ``text`` is not a valid document.
    """
    settings = settings or ViewerSettings()
    graph = parse_graph(text)
    return asyncio.run(
        compile_layout(graph, solver, timeout=settings.solver_timeout_s, mode=settings.layout_mode)
    )


def render_svg(
    text: str,
    selection: Selection | None = None,
    settings: ViewerSettings | None = None,
    solver: LayoutSolver | None = None,
    renderer: Renderer | None = None,
) -> str:
    """Render ``text`` as a standalone SVG document.

    ``renderer`` replaces the SVG renderer with any other ``Renderer``.

    Raises:
        ParseError: ``text`` is not a valid document.
    """
    settings = settings or ViewerSettings()
    graph = parse_graph(text)
    layout = asyncio.run(
        compile_layout(graph, solver, timeout=settings.solver_timeout_s, mode=settings.layout_mode)
    )
    scene = build_scene(
        graph,
        layout,
        selection or NOTHING,
        dimmed_edge_opacity=settings.dimmed_edge_opacity,
    )
    return (renderer or SvgRenderer()).render(scene)
