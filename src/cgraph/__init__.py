"""Interactive code-graph viewer: layout, rendering and document sync for ``.cgraph`` files."""

from cgraph.api import compile_document, render_svg
from cgraph.errors import CGraphError, EditApplyError, NavigationError, ParseError, SolverFailure, StaleLayout
from cgraph.graph import Graph, parse_graph

__version__ = "0.1.0"

__all__ = [
    "CGraphError",
    "EditApplyError",
    "Graph",
    "NavigationError",
    "ParseError",
    "SolverFailure",
    "StaleLayout",
    "compile_document",
    "parse_graph",
    "render_svg",
]
