"""Layout compiler — Graph → solver request → absolute, override-merged layout.

Pipeline:
  1. Size every node with the fixed dimension rule.
  2. Build a two-level request tree: populated groups become containers,
     everything else is a root-level leaf. Edges always name leaf ids.
  3. Solve (bounded by a timeout). Any solver failure falls back to a
     deterministic grid so the view is never blank.
  4. Un-flatten parent-relative coordinates into absolute ones.
  5. Substitute stored positions / sizes and round every coordinate.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import math
import time

from cgraph.errors import SolverFailure, StaleLayout
from cgraph.graph import Graph
from cgraph.layout.solver import (
    OPT_ALGORITHM,
    OPT_DIRECTION,
    OPT_LAYER_GAP,
    OPT_NODE_GAP,
    OPT_PADDING,
    LayoutSolver,
    NetworkxSolver,
    containers_bottom_up,
    parse_padding,
)
from cgraph.layout.types import (
    COMPOUND_PREFIX,
    CompiledLayout,
    Direction,
    LayoutMode,
    Point,
    Rect,
    SolverEdge,
    SolverNode,
)

logger = logging.getLogger(__name__)

DEFAULT_SOLVER_TIMEOUT = 5.0  # seconds

GROUP_PADDING = "[top=50,left=25,bottom=25,right=25]"
NODE_NODE_SPACING = "35"
BETWEEN_LAYERS_SPACING = "80"

# Grid fallback cell: widest node plus gutter, tallest node plus gutter.
FALLBACK_GUTTER = 40

# ─── Geometry Helpers ─────────────────────────────────────────────────────────


def node_dimensions(label: str, description: str | None = None) -> tuple[int, int]:
    """Box size of a node card.

    width  = clamp(220, 320, max(len(label) * 8 + 80, min(len(description) * 6, 280)))
    height = 90 with a description, 60 without
    """
    label_width = len(label) * 8 + 80
    desc_width = min(len(description) * 6, 280) if description else 0
    width = max(220, min(320, max(label_width, desc_width)))
    height = 90 if description else 60
    return (width, height)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from -inf (10.5 → 11)."""
    return math.floor(value + 0.5)


def container_id(group_id: str) -> str:
    return f"{COMPOUND_PREFIX}{group_id}"


# ─── Request Building ─────────────────────────────────────────────────────────


def _level_options(mode: LayoutMode, direction: Direction) -> dict[str, str]:
    return {
        OPT_ALGORITHM: mode.value,
        OPT_DIRECTION: direction.value,
        OPT_NODE_GAP: NODE_NODE_SPACING,
        OPT_LAYER_GAP: BETWEEN_LAYERS_SPACING,
    }


def build_request(graph: Graph, mode: LayoutMode | None = None) -> SolverNode:
    """Build the solver tree for ``graph``.

    Containers come first (in group order), then ungrouped leaves (in node
    order). A node whose ``groupId`` names an unknown group is a root leaf.
    Groups with a stored size pass it on so the solver reserves that room.
    Edges with a dangling endpoint are left out.
    """
    mode = mode or graph.layout_mode
    direction = graph.direction
    options = _level_options(mode, direction)

    def leaf(node) -> SolverNode:
        width, height = node_dimensions(node.label, node.description)
        return SolverNode(id=node.id, width=width, height=height)

    children: list[SolverNode] = []
    grouped: set[str] = set()
    for group in graph.populated_groups():
        members = graph.members_of(group.id)
        grouped.update(m.id for m in members)
        container = SolverNode(
            id=container_id(group.id),
            children=[leaf(m) for m in members],
            layout_options={**options, OPT_PADDING: GROUP_PADDING},
        )
        if group.size is not None:
            container.width = group.size.width
            container.height = group.size.height
        children.append(container)

    children.extend(leaf(n) for n in graph.nodes if n.id not in grouped)

    node_ids = {n.id for n in graph.nodes}
    edges: list[SolverEdge] = []
    for edge in graph.edges:
        if edge.source not in node_ids or edge.target not in node_ids:
            logger.warning("edge %s references a missing node; left out of layout", edge.id)
            continue
        edges.append(SolverEdge(id=edge.id, source=edge.source, target=edge.target))

    return SolverNode(id="root", children=children, edges=edges, layout_options=options)


# ─── Un-flatten ───────────────────────────────────────────────────────────────


def unflatten(
    tree: SolverNode,
    pinned_containers: dict[str, Point] | None = None,
) -> tuple[dict[str, Point], dict[str, Rect]]:
    """Turn parent-relative solver output into absolute coordinates.

    Walks the tree with an explicit stack carrying the accumulated parent
    offset. ``pinned_containers`` maps container ids to a fixed absolute
    position (a stored group position): the container's children are then
    offset from that position instead of the solved one.

    Returns (leaf id → absolute top-left, container id → absolute box).
    """
    pinned_containers = pinned_containers or {}
    leaves: dict[str, Point] = {}
    containers: dict[str, Rect] = {}

    stack: list[tuple[SolverNode, float, float]] = [(c, 0.0, 0.0) for c in reversed(tree.children)]
    while stack:
        node, off_x, off_y = stack.pop()
        absolute = pinned_containers.get(node.id) or Point(node.x + off_x, node.y + off_y)
        if node.is_container:
            containers[node.id] = Rect(absolute.x, absolute.y, node.width, node.height)
            stack.extend((c, absolute.x, absolute.y) for c in reversed(node.children))
        else:
            leaves[node.id] = absolute
    return leaves, containers


# ─── Overrides ────────────────────────────────────────────────────────────────


def apply_overrides(
    graph: Graph,
    positions: dict[str, Point],
    boxes: dict[str, Rect],
) -> tuple[dict[str, Point], dict[str, Rect]]:
    """Substitute stored positions/sizes and round everything to integers.

    ``boxes`` is keyed by container id; the result is keyed by group id.
    """
    final_positions: dict[str, Point] = {}
    for node in graph.nodes:
        pos = node.position or positions.get(node.id)
        if pos is None:
            continue
        final_positions[node.id] = Point(round_half_up(pos.x), round_half_up(pos.y))

    final_boxes: dict[str, Rect] = {}
    for group in graph.populated_groups():
        box = boxes.get(container_id(group.id))
        if box is None:
            continue
        x, y = (group.position.x, group.position.y) if group.position else (box.x, box.y)
        w, h = (group.size.width, group.size.height) if group.size else (box.width, box.height)
        final_boxes[group.id] = Rect(round_half_up(x), round_half_up(y), round_half_up(w), round_half_up(h))

    return final_positions, final_boxes


# ─── Fallback ─────────────────────────────────────────────────────────────────


def fallback_solve(request: SolverNode) -> SolverNode:
    """Deterministic grid placement used when the solver fails.

    Every level is laid out as a grid of ``ceil(sqrt(n))`` columns in request
    order, so grouped members stay together inside their container.
    """
    tree = copy.deepcopy(request)
    for container, _options in containers_bottom_up(tree):
        padding = parse_padding(container.layout_options.get(OPT_PADDING, ""))
        kids = container.children
        if not kids:
            continue
        columns = math.ceil(math.sqrt(len(kids)))
        cell_w = max(c.width for c in kids) + FALLBACK_GUTTER
        cell_h = max(c.height for c in kids) + FALLBACK_GUTTER
        for index, child in enumerate(kids):
            row, col = divmod(index, columns)
            child.x = padding["left"] + col * cell_w
            child.y = padding["top"] + row * cell_h
        if container.width <= 0 or container.height <= 0:
            rows = math.ceil(len(kids) / columns)
            container.width = padding["left"] + columns * cell_w - FALLBACK_GUTTER + padding["right"]
            container.height = padding["top"] + rows * cell_h - FALLBACK_GUTTER + padding["bottom"]
    return tree


def _check_solved(request: SolverNode, solved: SolverNode) -> None:
    """Reject solver output that lost leaves or carries non-finite numbers."""
    wanted = {c.id for c in request.children}
    got = {c.id for c in solved.children}
    if wanted != got:
        raise SolverFailure(f"solver returned {len(got)} top-level nodes, expected {len(wanted)}")
    stack = list(solved.children)
    while stack:
        node = stack.pop()
        if not all(math.isfinite(v) for v in (node.x, node.y, node.width, node.height)):
            raise SolverFailure(f"solver produced a non-finite coordinate for {node.id}")
        stack.extend(node.children)


async def solve_with_timeout(solver: LayoutSolver, request: SolverNode, timeout: float) -> SolverNode:
    """Run the solver with a deadline.

    Raises:
        SolverFailure: timeout, solver exception or malformed output.
    """
    try:
        solved = await asyncio.wait_for(solver.layout(request), timeout)
    except asyncio.TimeoutError as e:
        raise SolverFailure(f"layout solver timed out after {timeout}s") from e
    except Exception as e:  # the solver is an external engine; anything it raises is a failure
        raise SolverFailure(f"layout solver failed: {e}") from e
    _check_solved(request, solved)
    return solved


# ─── Compilation ──────────────────────────────────────────────────────────────


async def compile_layout(
    graph: Graph,
    solver: LayoutSolver | None = None,
    *,
    timeout: float = DEFAULT_SOLVER_TIMEOUT,
    mode: LayoutMode | None = None,
) -> CompiledLayout:
    """Compile ``graph`` into absolute node positions and group boxes."""
    solver = solver or NetworkxSolver()
    mode = mode or graph.layout_mode
    request = build_request(graph, mode)

    started = time.perf_counter()
    used_fallback = False
    try:
        solved = await solve_with_timeout(solver, request, timeout)
    except SolverFailure as e:
        logger.warning("%s; using grid fallback", e)
        solved = fallback_solve(request)
        used_fallback = True
    logger.debug("layout of %d nodes took %.3fs", len(graph.nodes), time.perf_counter() - started)

    pinned = {container_id(g.id): Point(g.position.x, g.position.y) for g in graph.groups if g.position is not None}
    positions, boxes = unflatten(solved, pinned)
    final_positions, final_boxes = apply_overrides(graph, positions, boxes)

    return CompiledLayout(
        positions=final_positions,
        group_boxes=final_boxes,
        sizes={n.id: node_dimensions(n.label, n.description) for n in graph.nodes},
        direction=graph.direction,
        mode=mode,
        used_fallback=used_fallback,
    )


class LayoutCompiler:
    """Stateful front of ``compile_layout`` with last-request-wins semantics.

    Every ``compile`` call supersedes the previous one; a superseded call
    raises ``StaleLayout`` when its result finally arrives so the caller never
    applies an outdated placement.
    """

    def __init__(
        self,
        solver: LayoutSolver | None = None,
        *,
        timeout: float = DEFAULT_SOLVER_TIMEOUT,
        mode: LayoutMode | None = None,
    ) -> None:
        self._solver = solver or NetworkxSolver()
        self._timeout = timeout
        self._mode = mode
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def invalidate(self) -> None:
        """Mark any in-flight compile as stale."""
        self._generation += 1

    async def compile(self, graph: Graph) -> CompiledLayout:
        self._generation += 1
        generation = self._generation
        layout = await compile_layout(graph, self._solver, timeout=self._timeout, mode=self._mode)
        if generation != self._generation:
            logger.debug("dropping layout %d, superseded by %d", generation, self._generation)
            raise StaleLayout(f"layout request {generation} superseded by {self._generation}")
        return layout
