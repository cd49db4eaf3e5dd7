"""SVG renderer — renders a Scene to an SVG string."""

from __future__ import annotations

from cgraph.layout.types import Point
from cgraph.render.scene import Scene, SceneEdge, SceneGroup, SceneNode
from cgraph.routing import Anchor

# ─── Constants ──────────────────────────────────────────────────────────────

FONT_FAMILY = "sans-serif"
PADDING = 20  # canvas padding in pixels
HEADER_H = 56  # title + description band
DIMMED_NODE_OPACITY = 0.3

CARD_FILL = 'fill="#252526" stroke="#454545" stroke-width="1"'
TEXT_MAIN = "#d4d4d4"
TEXT_MUTED = "#8b8b8b"
TEXT_FAINT = "#6b6b6b"


def _escape(s: str) -> str:
    return s.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")


def _font(size: int, weight: str = "normal") -> str:
    return f'font-family="{FONT_FAMILY}" font-size="{size}" font-weight="{weight}"'


def _fmt(v: float) -> str:
    return f"{v:g}"


# ─── Shape Rendering ────────────────────────────────────────────────────────


def _render_group(group: SceneGroup) -> str:
    b = group.box
    opacity = f' opacity="{DIMMED_NODE_OPACITY}"' if group.dimmed else ""
    parts = [
        f'<g class="group" data-id="{_escape(group.id)}"{opacity}>',
        f'<rect x="{_fmt(b.x)}" y="{_fmt(b.y)}" width="{_fmt(b.width)}" height="{_fmt(b.height)}" rx="8" '
        f'fill="{_escape(group.color)}" stroke="{_escape(group.border_color)}" stroke-width="1.5"/>',
        f'<text x="{_fmt(b.x + 12)}" y="{_fmt(b.y + 22)}" {_font(13, "600")} fill="{TEXT_MAIN}">'
        f"{_escape(group.label)}</text>",
    ]
    if group.description:
        parts.append(
            f'<text x="{_fmt(b.x + 12)}" y="{_fmt(b.y + 40)}" {_font(11)} fill="{TEXT_MUTED}">'
            f"{_escape(group.description)}</text>"
        )
    parts.append("</g>")
    return "\n".join(parts)


def _render_node(node: SceneNode) -> str:
    b = node.box
    opacity = f' opacity="{DIMMED_NODE_OPACITY}"' if node.dimmed else ""
    parts = [
        f'<g class="node" data-id="{_escape(node.id)}" transform="translate({_fmt(b.x)},{_fmt(b.y)})"{opacity}>',
        f'<rect width="{_fmt(b.width)}" height="{_fmt(b.height)}" rx="8" {CARD_FILL}/>',
        f'<rect x="10" y="12" width="20" height="20" rx="4" fill="{_escape(node.color)}"/>',
        f'<text x="20" y="27" text-anchor="middle" {_font(12, "bold")} fill="#1e1e1e">{node.icon}</text>',
        f'<text x="40" y="27" {_font(13, "500")} fill="{TEXT_MAIN}">{_escape(node.label)}</text>',
    ]
    if node.summary:
        parts.append(f'<text x="10" y="52" {_font(11)} fill="{TEXT_MUTED}">{_escape(node.summary)}</text>')
    parts.append(
        f'<text x="10" y="{_fmt(b.height - 12)}" {_font(10)} fill="{TEXT_FAINT}">'
        f"{_escape(node.file_name)} · {node.line_ref}</text>"
    )
    parts.append("</g>")
    return "\n".join(parts)


# ─── Edge Rendering ─────────────────────────────────────────────────────────


def edge_waypoints(edge: SceneEdge) -> list[Point]:
    """Orthogonal path between the two anchor points, bending half-way."""
    s, t = edge.source_point, edge.target_point
    if edge.source_anchor in (Anchor.TOP, Anchor.BOTTOM):
        mid_y = (s.y + t.y) / 2
        return [s, Point(s.x, mid_y), Point(t.x, mid_y), t]
    mid_x = (s.x + t.x) / 2
    return [s, Point(mid_x, s.y), Point(mid_x, t.y), t]


def _marker_id(edge: SceneEdge) -> str:
    name = edge.color.lstrip("#").replace("(", "").replace(")", "").replace(",", "-").replace(" ", "")
    return _escape("arrow-" + name)


def _render_edge(edge: SceneEdge) -> str:
    pts = " ".join(f"{_fmt(p.x)},{_fmt(p.y)}" for p in edge_waypoints(edge))
    dash = ' stroke-dasharray="6 4"' if edge.dashed else ""
    parts = [
        f'<polyline class="edge" data-id="{_escape(edge.id)}" points="{pts}" fill="none" '
        f'stroke="{_escape(edge.color)}" stroke-width="{_fmt(edge.stroke_width)}" opacity="{_fmt(edge.opacity)}"'
        f'{dash} marker-end="url(#{_marker_id(edge)})"/>',
    ]
    if edge.label:
        mid = edge_waypoints(edge)[1]
        parts.append(
            f'<text x="{_fmt(mid.x)}" y="{_fmt(mid.y - 6)}" text-anchor="middle" {_font(11)} '
            f'fill="{TEXT_MUTED}" opacity="{_fmt(edge.opacity)}">{_escape(edge.label)}</text>'
        )
    return "\n".join(parts)


def _render_markers(edges: list[SceneEdge]) -> list[str]:
    seen: dict[str, str] = {}
    for e in edges:
        seen.setdefault(_marker_id(e), e.color)
    return [
        f'  <marker id="{mid}" markerWidth="10" markerHeight="10" refX="9" refY="3" orient="auto">'
        f'<path d="M0,0 L0,6 L9,3 z" fill="{_escape(color)}"/></marker>'
        for mid, color in seen.items()
    ]


def _render_legend(scene: Scene, x: float, y: float) -> str:
    parts = [f'<g class="legend" transform="translate({_fmt(x)},{_fmt(y)})">']
    row = 0
    if scene.legend_title:
        parts.append(f'<text x="0" y="12" {_font(12, "600")} fill="{TEXT_MAIN}">{_escape(scene.legend_title)}</text>')
        row = 1
    for label, color in scene.legend:
        cy = row * 20 + 8
        parts.append(f'<rect x="0" y="{cy}" width="24" height="4" rx="2" fill="{_escape(color)}"/>')
        parts.append(f'<text x="34" y="{cy + 6}" {_font(12)} fill="{TEXT_MUTED}">{_escape(label)}</text>')
        row += 1
    parts.append("</g>")
    return "\n".join(parts)


# ─── Public Renderer ────────────────────────────────────────────────────────


class SvgRenderer:
    """SVG renderer — consumes a Scene, produces an SVG string."""

    def render(self, scene: Scene) -> str:
        boxes = [n.box for n in scene.nodes] + [g.box for g in scene.groups]
        max_x = max((b.x + b.width for b in boxes), default=0)
        max_y = max((b.y + b.height for b in boxes), default=0)
        min_x = min((b.x for b in boxes), default=0)
        min_y = min((b.y for b in boxes), default=0)

        legend_h = (len(scene.legend) + (1 if scene.legend_title else 0)) * 20 + (PADDING if scene.legend else 0)
        svg_w = (max_x - min_x) + PADDING * 2
        svg_h = (max_y - min_y) + PADDING * 2 + HEADER_H + legend_h
        # Diagram coordinates can be negative after a drag; shift them into view.
        dx = PADDING - min_x
        dy = PADDING + HEADER_H - min_y

        parts = [
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{_fmt(svg_w)}" height="{_fmt(svg_h)}" '
            f'viewBox="0 0 {_fmt(svg_w)} {_fmt(svg_h)}">',
            "<defs>",
            *_render_markers(scene.edges),
            "</defs>",
            f'<rect width="{_fmt(svg_w)}" height="{_fmt(svg_h)}" fill="#1e1e1e"/>',
            f'<text x="{PADDING}" y="{PADDING + 8}" {_font(16, "500")} fill="{TEXT_MAIN}">{_escape(scene.title)}</text>',
        ]
        if scene.description:
            parts.append(
                f'<text x="{PADDING}" y="{PADDING + 28}" {_font(12)} fill="{TEXT_MUTED}">{_escape(scene.description)}</text>'
            )

        parts.append(f'<g transform="translate({_fmt(dx)},{_fmt(dy)})">')

        # z-order: groups, back edges, forward edges, nodes
        for group in scene.groups:
            parts.append(_render_group(group))
        for edge in sorted(scene.edges, key=lambda e: e.z_index):
            parts.append(_render_edge(edge))
        for node in scene.nodes:
            parts.append(_render_node(node))

        parts.append("</g>")

        if scene.legend:
            parts.append(_render_legend(scene, PADDING, svg_h - legend_h))

        parts.append("</svg>")
        return "\n".join(parts)
