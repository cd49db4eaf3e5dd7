"""Edge router — picks the box sides a connector attaches to.

No path search happens here: the side pair is a pure function of the two
endpoint boxes and the layout direction, so the same geometry always yields
the same anchors.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from cgraph.layout.types import Direction, Point, Rect

# Centre offsets within this many pixels count as the same rank.
SAME_RANK_TOLERANCE = 30


class Anchor(str, Enum):
    """Side of a node box where a connector attaches."""

    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"

    def point_on(self, box: Rect) -> Point:
        """Midpoint of this side of ``box``."""
        if self is Anchor.TOP:
            return Point(box.x + box.width / 2, box.y)
        if self is Anchor.BOTTOM:
            return Point(box.x + box.width / 2, box.y + box.height)
        if self is Anchor.LEFT:
            return Point(box.x, box.y + box.height / 2)
        return Point(box.x + box.width, box.y + box.height / 2)


@dataclass(frozen=True)
class Route:
    source_anchor: Anchor
    target_anchor: Anchor
    is_back_edge: bool


def route(source: Rect, target: Rect, direction: Direction) -> Route:
    """Choose anchors for an edge from ``source`` to ``target``.

    Along the flow axis (y for TB/BT, x for LR/RL), a centre offset beyond
    ``SAME_RANK_TOLERANCE`` toward larger coordinates is a forward edge
    leaving the bottom (or right) side of the source; beyond it toward
    smaller coordinates is a back edge leaving the top (or left) side. BT and
    RL route exactly like TB and LR. Within the tolerance both boxes share a
    rank and the edge runs sideways, toward the sign of the cross-axis offset.
    """
    src, tgt = source.center, target.center
    dx = tgt.x - src.x
    dy = tgt.y - src.y

    if direction.is_vertical:
        along, across = dy, dx
        downstream, upstream = Anchor.BOTTOM, Anchor.TOP
        after, before = Anchor.RIGHT, Anchor.LEFT
    else:
        along, across = dx, dy
        downstream, upstream = Anchor.RIGHT, Anchor.LEFT
        after, before = Anchor.BOTTOM, Anchor.TOP

    if along > SAME_RANK_TOLERANCE:
        return Route(downstream, upstream, is_back_edge=False)
    if along < -SAME_RANK_TOLERANCE:
        return Route(upstream, downstream, is_back_edge=True)
    if across > 0:
        return Route(after, before, is_back_edge=False)
    return Route(before, after, is_back_edge=False)
