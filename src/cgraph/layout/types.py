"""Layout IR — solver request tree and compiled layout result."""

from __future__ import annotations

from dataclasses import dataclass, field

from cgraph.graph import Direction, LayoutMode

__all__ = [
    "COMPOUND_PREFIX",
    "Direction",
    "LayoutMode",
    "Point",
    "Rect",
    "SolverEdge",
    "SolverNode",
    "CompiledLayout",
]

# Solver-tree id of a group container: this prefix plus the group id.
COMPOUND_PREFIX = "__group__:"


@dataclass(frozen=True)
class Point:
    """A point in diagram pixel coordinates."""

    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    """An axis-aligned box: top-left corner plus extent."""

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    def moved_to(self, point: Point) -> Rect:
        return Rect(point.x, point.y, self.width, self.height)


# ─── Solver Request Tree ──────────────────────────────────────────────────────


@dataclass
class SolverEdge:
    """An edge between two leaf ids, wherever they sit in the tree."""

    id: str
    source: str
    target: str


@dataclass
class SolverNode:
    """A node in the solver request tree.

    Leaves carry fixed ``width``/``height``. Containers (compound nodes) carry
    ``children`` and ``layout_options`` and are sized by the solver unless a
    size is already set. After solving, ``x``/``y`` are relative to the
    immediate parent; the root's own coordinates are ignored.
    """

    id: str
    width: float = 0.0
    height: float = 0.0
    x: float = 0.0
    y: float = 0.0
    children: list[SolverNode] = field(default_factory=list)
    edges: list[SolverEdge] = field(default_factory=list)
    layout_options: dict[str, str] = field(default_factory=dict)

    @property
    def is_container(self) -> bool:
        return bool(self.children)


# ─── Compiled Result ──────────────────────────────────────────────────────────


@dataclass
class CompiledLayout:
    """Absolute, integer-rounded placement of every node and populated group.

    ``sizes`` holds each node's box dimensions (from the dimension rule) so
    callers can build boxes for edge routing without recomputing them.
    """

    positions: dict[str, Point] = field(default_factory=dict)
    group_boxes: dict[str, Rect] = field(default_factory=dict)
    sizes: dict[str, tuple[int, int]] = field(default_factory=dict)
    direction: Direction = Direction.TB
    mode: LayoutMode = LayoutMode.LAYERED
    used_fallback: bool = False

    def node_box(self, node_id: str) -> Rect | None:
        pos = self.positions.get(node_id)
        dims = self.sizes.get(node_id)
        if pos is None or dims is None:
            return None
        return Rect(pos.x, pos.y, dims[0], dims[1])
