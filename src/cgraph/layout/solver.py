"""Layout solver — places a compound request tree.

The compiler only depends on the ``LayoutSolver`` contract: it hands over a
tree of ``SolverNode`` boxes (leaves sized, containers holding children) and
gets the same tree back with ``x``/``y`` relative to each node's parent and
container sizes filled in.

``NetworkxSolver`` is the bundled implementation. Containers are solved
bottom-up (children first, so a container's size is known before its parent
places it); at every level, edges are lifted to the child of that level that
holds each endpoint, the same way a collapsed subgraph stands in for its
members.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import math
import re
from typing import Callable, Protocol

import networkx as nx

from cgraph.layout.sugiyama import LAYER_GAP, NODE_GAP, layered_placement
from cgraph.layout.types import Direction, LayoutMode, Point, SolverEdge, SolverNode

logger = logging.getLogger(__name__)

# Layout option keys understood by the bundled solver.
OPT_ALGORITHM = "algorithm"
OPT_DIRECTION = "direction"
OPT_PADDING = "padding"
OPT_NODE_GAP = "spacing.nodeNode"
OPT_LAYER_GAP = "spacing.betweenLayers"

ROOT_PADDING = "[top=12,left=12,bottom=12,right=12]"

FORCE_SEED = 42  # fixed so force layouts are reproducible


class LayoutSolver(Protocol):
    """Contract of an external placement engine."""

    async def layout(self, root: SolverNode) -> SolverNode:
        """Return ``root`` annotated with parent-relative positions."""
        ...


# ─── Option Parsing ───────────────────────────────────────────────────────────

_PADDING_RE = re.compile(r"(top|left|bottom|right)\s*=\s*(-?\d+(?:\.\d+)?)")


def parse_padding(value: str) -> dict[str, float]:
    """Parse ``"[top=50,left=25,bottom=25,right=25]"``; missing sides are 0."""
    padding = dict.fromkeys(("top", "left", "bottom", "right"), 0.0)
    for side, amount in _PADDING_RE.findall(value):
        padding[side] = float(amount)
    return padding


def _resolved_options(node: SolverNode, inherited: dict[str, str]) -> dict[str, str]:
    merged = dict(inherited)
    merged.update(node.layout_options)
    return merged


# ─── Per-level Placement ──────────────────────────────────────────────────────


def _spread_to_boxes(
    centres: dict[str, tuple[float, float]],
    dims: dict[str, tuple[float, float]],
    node_gap: float,
) -> dict[str, Point]:
    """Scale unit-square centres from networkx into top-left pixel positions."""
    if len(dims) == 1:
        return {node_id: Point(0.0, 0.0) for node_id in dims}

    mean_diag = sum(math.hypot(w, h) for w, h in dims.values()) / len(dims)
    scale = (mean_diag + node_gap) * math.sqrt(len(dims))

    raw = {
        node_id: (float(cx) * scale - dims[node_id][0] / 2, float(cy) * scale - dims[node_id][1] / 2)
        for node_id, (cx, cy) in centres.items()
    }
    min_x = min(x for x, _ in raw.values())
    min_y = min(y for _, y in raw.values())
    return {node_id: Point(x - min_x, y - min_y) for node_id, (x, y) in raw.items()}


def _undirected(dims: dict[str, tuple[float, float]], edges: list[tuple[str, str]]) -> nx.Graph:
    g: nx.Graph = nx.Graph()
    g.add_nodes_from(dims)
    g.add_edges_from((s, t) for s, t in edges if s != t)
    return g


def force_placement(
    dims: dict[str, tuple[float, float]],
    edges: list[tuple[str, str]],
    node_gap: float = NODE_GAP,
) -> dict[str, Point]:
    """Fruchterman-Reingold placement (``networkx.spring_layout``)."""
    if not dims:
        return {}
    centres = nx.spring_layout(_undirected(dims, edges), seed=FORCE_SEED)
    return _spread_to_boxes(centres, dims, node_gap)


def stress_placement(
    dims: dict[str, tuple[float, float]],
    edges: list[tuple[str, str]],
    node_gap: float = NODE_GAP,
) -> dict[str, Point]:
    """Stress-majorising placement (``networkx.kamada_kawai_layout``)."""
    if not dims:
        return {}
    centres = nx.kamada_kawai_layout(_undirected(dims, edges))
    return _spread_to_boxes(centres, dims, node_gap)


def _place_level(
    mode: LayoutMode,
    direction: Direction,
    dims: dict[str, tuple[float, float]],
    edges: list[tuple[str, str]],
    node_gap: float,
    layer_gap: float,
) -> dict[str, Point]:
    if mode is LayoutMode.LAYERED:
        return layered_placement(dims, edges, direction, node_gap, layer_gap)
    if mode is LayoutMode.FORCE:
        return force_placement(dims, edges, node_gap)
    return stress_placement(dims, edges, node_gap)


# ─── Tree Walks ───────────────────────────────────────────────────────────────


def containers_bottom_up(root: SolverNode) -> list[tuple[SolverNode, dict[str, str]]]:
    """Root plus every container with its inherited options, children first."""
    pre_order: list[tuple[SolverNode, dict[str, str]]] = []
    stack: list[tuple[SolverNode, dict[str, str]]] = [(root, _resolved_options(root, {}))]
    while stack:
        node, options = stack.pop()
        pre_order.append((node, options))
        for child in node.children:
            if child.is_container:
                stack.append((child, _resolved_options(child, options)))
    pre_order.reverse()
    return pre_order


def _leaf_ids(node: SolverNode) -> list[str]:
    leaves: list[str] = []
    stack = [node]
    while stack:
        current = stack.pop()
        if current.is_container:
            stack.extend(current.children)
        else:
            leaves.append(current.id)
    return leaves


def _lift_edges(container: SolverNode, edges: list[SolverEdge]) -> list[tuple[str, str]]:
    """Edges between distinct children of ``container`` after lifting endpoints."""
    owner: dict[str, str] = {}
    for child in container.children:
        for leaf in _leaf_ids(child):
            owner[leaf] = child.id

    lifted: list[tuple[str, str]] = []
    seen: set[tuple[str, str]] = set()
    for edge in edges:
        src, tgt = owner.get(edge.source), owner.get(edge.target)
        if src is None or tgt is None or src == tgt:
            continue
        if (src, tgt) not in seen:
            seen.add((src, tgt))
            lifted.append((src, tgt))
    return lifted


# ─── Solver ───────────────────────────────────────────────────────────────────


class NetworkxSolver:
    """Bundled solver: layered / force / stress placement via networkx."""

    def __init__(self, runner: Callable[..., object] | None = None) -> None:
        # ``runner`` offloads the CPU-bound solve; defaults to a worker thread
        # so the event loop keeps serving messages while layout runs.
        self._runner = runner or asyncio.to_thread

    async def layout(self, root: SolverNode) -> SolverNode:
        return await self._runner(self.solve, root)

    def solve(self, root: SolverNode) -> SolverNode:
        """Synchronous placement of a copy of ``root``."""
        tree = copy.deepcopy(root)
        for container, options in containers_bottom_up(tree):
            self._place_children(container, tree.edges, options, is_root=container is tree)
        return tree

    def _place_children(
        self,
        container: SolverNode,
        edges: list[SolverEdge],
        options: dict[str, str],
        is_root: bool,
    ) -> None:
        mode = LayoutMode(options.get(OPT_ALGORITHM, LayoutMode.LAYERED.value))
        direction = Direction(options.get(OPT_DIRECTION, Direction.TB.value))
        node_gap = float(options.get(OPT_NODE_GAP, NODE_GAP))
        layer_gap = float(options.get(OPT_LAYER_GAP, LAYER_GAP))
        default_padding = ROOT_PADDING if is_root else "[]"
        padding = parse_padding(container.layout_options.get(OPT_PADDING, default_padding))

        dims = {child.id: (child.width, child.height) for child in container.children}
        placed = _place_level(mode, direction, dims, _lift_edges(container, edges), node_gap, layer_gap)

        right = bottom = 0.0
        for child in container.children:
            pos = placed[child.id]
            child.x = padding["left"] + pos.x
            child.y = padding["top"] + pos.y
            right = max(right, pos.x + child.width)
            bottom = max(bottom, pos.y + child.height)

        logger.debug("placed %d children of %s (%s, %s)", len(dims), container.id, mode.value, direction.value)

        if container.width <= 0 or container.height <= 0:
            container.width = padding["left"] + right + padding["right"]
            container.height = padding["top"] + bottom + padding["bottom"]
