"""Selection & highlight engine.

A selection is exactly one of: nothing, a node, an edge, or a legend color.
``highlight`` maps it to the node and edge ids that stay fully visible; every
other node is dimmed and every other edge drops to ``DIMMED_EDGE_OPACITY``.
Group containers are dimmed whenever anything is selected.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Union

from cgraph.graph import Edge, EdgeKind

DIMMED_EDGE_OPACITY = 0.15

DEFAULT_EDGE_COLORS: dict[EdgeKind, str] = {
    EdgeKind.CALLS: "#61afef",
    EdgeKind.IMPORTS: "#abb2bf",
    EdgeKind.EXTENDS: "#98c379",
    EdgeKind.IMPLEMENTS: "#c678dd",
    EdgeKind.USES: "#abb2bf",
}
FALLBACK_EDGE_COLOR = "#abb2bf"


def effective_color(edge: Edge) -> str:
    """Explicit edge color, else the default for its kind."""
    return edge.color or DEFAULT_EDGE_COLORS.get(edge.kind, FALLBACK_EDGE_COLOR)


def _same_color(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


# ─── Selection Values ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class NoSelection:
    pass


@dataclass(frozen=True)
class NodeSelection:
    node_id: str


@dataclass(frozen=True)
class EdgeSelection:
    edge_id: str


@dataclass(frozen=True)
class LegendColorSelection:
    color: str


Selection = Union[NoSelection, NodeSelection, EdgeSelection, LegendColorSelection]

NOTHING = NoSelection()


@dataclass(frozen=True)
class Highlight:
    """Result of applying a selection to an edge list."""

    active: bool
    nodes: frozenset[str] = frozenset()
    edges: frozenset[str] = frozenset()

    def node_dimmed(self, node_id: str) -> bool:
        return self.active and node_id not in self.nodes

    def edge_opacity(self, edge_id: str, dimmed_opacity: float = DIMMED_EDGE_OPACITY) -> float:
        if not self.active or edge_id in self.edges:
            return 1.0
        return dimmed_opacity

    @property
    def groups_dimmed(self) -> bool:
        return self.active


def highlight(selection: Selection, edges: Iterable[Edge]) -> Highlight:
    """Compute highlighted node/edge ids for ``selection`` over ``edges``."""
    if isinstance(selection, NoSelection):
        return Highlight(active=False)

    if isinstance(selection, NodeSelection):
        touching = [e for e in edges if selection.node_id in (e.source, e.target)]
        nodes = {selection.node_id}
    elif isinstance(selection, EdgeSelection):
        touching = [e for e in edges if e.id == selection.edge_id]
        nodes = set()
    else:
        touching = [e for e in edges if _same_color(effective_color(e), selection.color)]
        nodes = set()

    for edge in touching:
        nodes.update((edge.source, edge.target))
    return Highlight(active=True, nodes=frozenset(nodes), edges=frozenset(e.id for e in touching))


# ─── Interactive State ────────────────────────────────────────────────────────


class SelectionState:
    """Holds the one current selection.

    Clicking the selected node, edge or legend color again clears it; picking
    anything else replaces whatever was selected before.
    """

    def __init__(self) -> None:
        self._current: Selection = NOTHING

    @property
    def current(self) -> Selection:
        return self._current

    def _toggle(self, selection: Selection) -> Selection:
        self._current = NOTHING if self._current == selection else selection
        return self._current

    def select_node(self, node_id: str) -> Selection:
        return self._toggle(NodeSelection(node_id))

    def select_edge(self, edge_id: str) -> Selection:
        return self._toggle(EdgeSelection(edge_id))

    def select_legend_color(self, color: str) -> Selection:
        return self._toggle(LegendColorSelection(color))

    def clear(self) -> None:
        self._current = NOTHING
