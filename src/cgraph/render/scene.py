"""Scene — the render-ready diagram a session displays.

``build_scene`` joins the parsed graph, a compiled layout, the current
selection and any optimistic positions the session is still waiting to see
confirmed. Everything a renderer needs (boxes, anchors, colors, opacity,
z-order) is resolved here so renderers stay dumb.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from cgraph.graph import Graph, Importance, Location, NodeKind
from cgraph.layout.types import CompiledLayout, Direction, Point, Rect
from cgraph.routing import Anchor, route
from cgraph.selection import DIMMED_EDGE_OPACITY, NOTHING, Selection, effective_color, highlight

logger = logging.getLogger(__name__)

# ─── Style Tables ─────────────────────────────────────────────────────────────

NODE_STYLES: dict[NodeKind, tuple[str, str]] = {
    NodeKind.FUNCTION: ("f", "#4fc1ff"),
    NodeKind.METHOD: ("m", "#dcdcaa"),
    NodeKind.CLASS: ("C", "#4ec9b0"),
    NodeKind.MODULE: ("M", "#c586c0"),
    NodeKind.FILE: ("F", "#ce9178"),
}

GROUP_COLORS = [
    "rgba(97, 175, 239, 0.15)",
    "rgba(152, 195, 121, 0.15)",
    "rgba(198, 120, 221, 0.15)",
    "rgba(224, 108, 117, 0.15)",
    "rgba(229, 192, 123, 0.15)",
]

STROKE_WIDTHS: dict[Importance, float] = {
    Importance.PRIMARY: 2.5,
    Importance.SECONDARY: 2.0,
    Importance.TERTIARY: 1.5,
}

SUMMARY_LIMIT = 60

_SENTENCE_END = re.compile(r"[.!?]")
_RGBA_ALPHA = re.compile(r"[\d.]+\)$")


def summarize(description: str) -> str:
    """First sentence if short enough, else a word-boundary cut with ``...``."""
    first = _SENTENCE_END.split(description)[0]
    if first and len(first) <= SUMMARY_LIMIT:
        return first + ("." if len(description) > len(first) else "")
    if len(description) <= SUMMARY_LIMIT:
        return description
    truncated = description[:SUMMARY_LIMIT]
    last_space = truncated.rfind(" ")
    return (truncated[:last_space] if last_space > 40 else truncated) + "..."


def location_ref(location: Location) -> tuple[str, str]:
    """(file basename, ``L12`` or ``L12-40``)"""
    file_name = location.file.split("/")[-1] or location.file
    if location.end_line:
        return file_name, f"L{location.start_line}-{location.end_line}"
    return file_name, f"L{location.start_line}"


def border_color(fill: str) -> str:
    """Same rgba color with alpha 0.5; non-rgba colors are returned as-is."""
    return _RGBA_ALPHA.sub("0.5)", fill) if fill.startswith("rgba") else fill


# ─── Scene Types ──────────────────────────────────────────────────────────────


@dataclass
class SceneNode:
    id: str
    label: str
    kind: NodeKind
    icon: str
    color: str
    box: Rect
    location: Location
    file_name: str
    line_ref: str
    summary: str = ""
    description: str | None = None
    dimmed: bool = False


@dataclass
class SceneGroup:
    id: str
    label: str
    color: str
    border_color: str
    box: Rect
    description: str | None = None
    dimmed: bool = False
    z_index: int = -1


@dataclass
class SceneEdge:
    id: str
    source: str
    target: str
    color: str
    stroke_width: float
    opacity: float
    source_anchor: Anchor
    target_anchor: Anchor
    source_point: Point
    target_point: Point
    is_back_edge: bool
    importance: Importance = Importance.SECONDARY
    label: str | None = None

    @property
    def animated(self) -> bool:
        return self.importance is Importance.PRIMARY and not self.is_back_edge

    @property
    def dashed(self) -> bool:
        return self.is_back_edge

    @property
    def z_index(self) -> int:
        return -1 if self.is_back_edge else 0


@dataclass
class Scene:
    title: str
    description: str | None
    direction: Direction
    nodes: list[SceneNode] = field(default_factory=list)
    groups: list[SceneGroup] = field(default_factory=list)
    edges: list[SceneEdge] = field(default_factory=list)
    legend: list[tuple[str, str]] = field(default_factory=list)  # (label, color)
    legend_title: str | None = None
    used_fallback: bool = False

    def node(self, node_id: str) -> SceneNode | None:
        return next((n for n in self.nodes if n.id == node_id), None)

    def edge(self, edge_id: str) -> SceneEdge | None:
        return next((e for e in self.edges if e.id == edge_id), None)


# ─── Assembly ─────────────────────────────────────────────────────────────────


def build_scene(
    graph: Graph,
    layout: CompiledLayout,
    selection: Selection = NOTHING,
    node_overlay: dict[str, Point] | None = None,
    group_overlay: dict[str, Rect] | None = None,
    dimmed_edge_opacity: float = DIMMED_EDGE_OPACITY,
) -> Scene:
    """Assemble the scene; overlay entries win over compiled positions."""
    node_overlay = node_overlay or {}
    group_overlay = group_overlay or {}
    lit = highlight(selection, graph.edges)

    scene = Scene(
        title=graph.metadata.title,
        description=graph.metadata.description,
        direction=graph.direction,
        used_fallback=layout.used_fallback,
    )
    if graph.legend is not None:
        scene.legend_title = graph.legend.title
        scene.legend = [(item.label, item.color) for item in graph.legend.items]

    groups = graph.group_map()
    for group_id, box in layout.group_boxes.items():
        group = groups[group_id]
        fill = group.color or GROUP_COLORS[graph.group_index(group_id) % len(GROUP_COLORS)]
        scene.groups.append(
            SceneGroup(
                id=group_id,
                label=group.label,
                description=group.description,
                color=fill,
                border_color=border_color(fill),
                box=group_overlay.get(group_id, box),
                dimmed=lit.groups_dimmed,
            )
        )

    boxes: dict[str, Rect] = {}
    for node in graph.nodes:
        box = layout.node_box(node.id)
        if box is None:
            continue
        if node.id in node_overlay:
            box = box.moved_to(node_overlay[node.id])
        boxes[node.id] = box
        icon, color = NODE_STYLES[node.kind]
        file_name, line_ref = location_ref(node.location)
        scene.nodes.append(
            SceneNode(
                id=node.id,
                label=node.label,
                kind=node.kind,
                icon=icon,
                color=color,
                box=box,
                location=node.location,
                file_name=file_name,
                line_ref=line_ref,
                summary=summarize(node.description) if node.description else "",
                description=node.description,
                dimmed=lit.node_dimmed(node.id),
            )
        )

    for edge in graph.edges:
        src_box, tgt_box = boxes.get(edge.source), boxes.get(edge.target)
        if src_box is None or tgt_box is None:
            logger.warning("skipping edge %s: endpoint %s not rendered", edge.id,
                           edge.source if src_box is None else edge.target)
            continue
        r = route(src_box, tgt_box, graph.direction)
        scene.edges.append(
            SceneEdge(
                id=edge.id,
                source=edge.source,
                target=edge.target,
                label=edge.label,
                importance=edge.importance or Importance.SECONDARY,
                color=effective_color(edge),
                stroke_width=STROKE_WIDTHS[edge.importance or Importance.SECONDARY],
                opacity=lit.edge_opacity(edge.id, dimmed_edge_opacity),
                source_anchor=r.source_anchor,
                target_anchor=r.target_anchor,
                source_point=r.source_anchor.point_on(src_box),
                target_point=r.target_anchor.point_on(tgt_box),
                is_back_edge=r.is_back_edge,
            )
        )

    return scene
