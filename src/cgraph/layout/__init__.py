"""Layout: request tree types, bundled solver and the layout compiler."""

from cgraph.layout.compiler import LayoutCompiler, compile_layout, node_dimensions
from cgraph.layout.solver import LayoutSolver, NetworkxSolver
from cgraph.layout.types import CompiledLayout, Point, Rect, SolverEdge, SolverNode

__all__ = [
    "CompiledLayout",
    "LayoutCompiler",
    "LayoutSolver",
    "NetworkxSolver",
    "Point",
    "Rect",
    "SolverEdge",
    "SolverNode",
    "compile_layout",
    "node_dimensions",
]
