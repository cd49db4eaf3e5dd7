"""Render session — parses, lays out and displays one open document.

The session never writes the document. Drag and resize results become
intents in a debounced buffer and go to the authority as one
``updatePositions`` batch; until the authority's next ``update`` arrives,
released entities are drawn at their predicted place. The entity under
the pointer is always drawn where the pointer put it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Hashable
from typing import Any

from cgraph.config import ViewerSettings
from cgraph.errors import ParseError, StaleLayout
from cgraph.graph import Graph, Location, parse_graph
from cgraph.layout.compiler import LayoutCompiler
from cgraph.layout.types import CompiledLayout, Point, Rect
from cgraph.render.scene import Scene, build_scene
from cgraph.selection import Selection, SelectionState
from cgraph.sync.debounce import DebounceScheduler
from cgraph.sync.messages import (
    WH,
    XY,
    Message,
    NavigateMessage,
    PositionChange,
    ReadyMessage,
    RedoMessage,
    ResetLayoutMessage,
    RevertToSavedMessage,
    SavedMessage,
    SizeChange,
    SourceLocation,
    UndoMessage,
    UpdateMessage,
    UpdatePositionsMessage,
)
from cgraph.sync.ports import MessagePort

logger = logging.getLogger(__name__)

# Intent / prediction keys: (kind, entity id)
NODE = "node"
GROUP = "group"
GROUP_SIZE = "groupSize"

Key = tuple[str, str]


class RenderSession:
    """Client side of the sync protocol for one document.

    Args:
        port: Where messages for the authority are posted.
        compiler: Layout compiler; one is built from ``settings`` if omitted.
        settings: Timing and layout knobs.
        on_render: Called with the new scene (or None on a parse error)
            every time the displayed diagram changes.
    """

    def __init__(
        self,
        port: MessagePort,
        compiler: LayoutCompiler | None = None,
        settings: ViewerSettings | None = None,
        on_render: Callable[[Scene | None], None] | None = None,
    ) -> None:
        self._settings = settings or ViewerSettings()
        self._port = port
        self._compiler = compiler or LayoutCompiler(
            timeout=self._settings.solver_timeout_s,
            mode=self._settings.layout_mode,
        )
        self._on_render = on_render
        self._debounce = DebounceScheduler(self._flush, self._settings.debounce_s)
        self.selection = SelectionState()

        self.graph: Graph | None = None
        self.layout: CompiledLayout | None = None
        self.scene: Scene | None = None
        self.error: str | None = None
        self.saved_content: str | None = None

        self._layout_ready = False
        self._ready_handle: asyncio.TimerHandle | None = None
        self._predictions: dict[Key, Any] = {}
        self._dragging: dict[Key, Any] = {}
        self._disposed = False

    @property
    def layout_ready(self) -> bool:
        return self._layout_ready

    @property
    def pending_intents(self) -> dict[Hashable, Any]:
        return self._debounce.pending

    @property
    def predictions(self) -> dict[Key, Any]:
        return dict(self._predictions)

    def start(self) -> None:
        """Ask the authority for the current document."""
        self._port.post(ReadyMessage())

    def dispose(self) -> None:
        """Tear down: pending intents are dropped, in-flight layouts discarded."""
        self._disposed = True
        self._debounce.cancel()
        if self._ready_handle is not None:
            self._ready_handle.cancel()
            self._ready_handle = None
        self._compiler.invalidate()

    # ─── Inbound ──────────────────────────────────────────────────────────────

    async def receive(self, message: Message) -> None:
        if self._disposed:
            return
        if isinstance(message, UpdateMessage):
            await self._on_update(message.content)
        elif isinstance(message, SavedMessage):
            self.saved_content = message.content
        else:
            logger.debug("session ignores %s", message.type)

    async def _on_update(self, content: str) -> None:
        try:
            graph = parse_graph(content)
        except ParseError as e:
            logger.warning("%s", e)
            # An older layout still in flight must not repaint over the error.
            self._compiler.invalidate()
            self.error = str(e)
            self.graph = None
            self.layout = None
            self.scene = None
            self._notify()
            return

        try:
            layout = await self._compiler.compile(graph)
        except StaleLayout:
            return
        if self._disposed:
            return

        self.error = None
        self.graph = graph
        self.layout = layout
        self._drop_confirmed_predictions()
        self._rebuild()
        self._arm_ready_gate()

    def _arm_ready_gate(self) -> None:
        if self._layout_ready or self._ready_handle is not None:
            return
        delay = self._settings.layout_ready_delay_s
        if delay <= 0:
            self._mark_ready()
            return
        self._ready_handle = asyncio.get_running_loop().call_later(delay, self._mark_ready)

    def _mark_ready(self) -> None:
        self._ready_handle = None
        self._layout_ready = True
        logger.debug("layout ready; accepting position changes")

    def _drop_confirmed_predictions(self) -> None:
        pending = self._debounce.pending
        self._predictions = {k: v for k, v in self._predictions.items() if k in pending}

    # ─── Pointer Interaction ──────────────────────────────────────────────────

    def drag_node(self, node_id: str, position: Point) -> None:
        """Pointer moved while dragging a node."""
        self._dragging[(NODE, node_id)] = position
        self._rebuild()

    def end_node_drag(self, node_id: str, position: Point) -> bool:
        """Node released at ``position``. Returns False if the intent was dropped."""
        return self._release((NODE, node_id), position)

    def drag_group(self, group_id: str, position: Point) -> None:
        """Pointer moved while dragging a group container."""
        self._dragging[(GROUP, group_id)] = position
        self._rebuild()

    def end_group_drag(self, group_id: str, position: Point) -> bool:
        return self._release((GROUP, group_id), position)

    def end_group_resize(self, group_id: str, width: float, height: float) -> bool:
        return self._release((GROUP_SIZE, group_id), (width, height))

    def _release(self, key: Key, value: Any) -> bool:
        self._dragging.pop(key, None)
        if not self._layout_ready:
            logger.debug("layout not ready; dropping %s change for %s", *key)
            self._rebuild()
            return False
        self._predictions[key] = value
        self._debounce.schedule({key: value})
        self._rebuild()
        return True

    def flush(self) -> None:
        """Send buffered intents now."""
        self._debounce.flush()

    def _flush(self, batch: dict[Hashable, Any]) -> None:
        nodes: list[PositionChange] = []
        groups: list[PositionChange] = []
        sizes: list[SizeChange] = []
        for (kind, entity_id), value in batch.items():
            if kind == GROUP_SIZE:
                sizes.append(SizeChange(id=entity_id, size=WH(width=value[0], height=value[1])))
            elif kind == GROUP:
                groups.append(PositionChange(id=entity_id, position=XY(x=value.x, y=value.y)))
            else:
                nodes.append(PositionChange(id=entity_id, position=XY(x=value.x, y=value.y)))
        logger.debug("flushing %d intent(s)", len(batch))
        self._port.post(
            UpdatePositionsMessage(
                node_positions=nodes or None,
                group_positions=groups or None,
                group_sizes=sizes or None,
            )
        )

    # ─── Selection ────────────────────────────────────────────────────────────

    def select_node(self, node_id: str) -> Selection:
        selection = self.selection.select_node(node_id)
        self._rebuild()
        return selection

    def select_edge(self, edge_id: str) -> Selection:
        selection = self.selection.select_edge(edge_id)
        self._rebuild()
        return selection

    def select_legend_color(self, color: str) -> Selection:
        selection = self.selection.select_legend_color(color)
        self._rebuild()
        return selection

    def clear_selection(self) -> None:
        self.selection.clear()
        self._rebuild()

    # ─── Requests ─────────────────────────────────────────────────────────────

    def request_reset(self) -> None:
        """Clear every stored position and size in the document."""
        self._discard_local_changes()
        self._port.post(ResetLayoutMessage())

    def request_revert(self) -> None:
        self._discard_local_changes()
        self._port.post(RevertToSavedMessage())

    def request_undo(self) -> None:
        # Pending intents are sent first so undo steps back over them.
        self._debounce.flush()
        self._port.post(UndoMessage())

    def request_redo(self) -> None:
        self._debounce.flush()
        self._port.post(RedoMessage())

    def navigate(self, node_id: str) -> bool:
        """Ask the authority to open the source of ``node_id``."""
        node = self.graph.node_map().get(node_id) if self.graph is not None else None
        if node is None:
            logger.debug("navigate: unknown node %s", node_id)
            return False
        self.navigate_to(node.location)
        return True

    def navigate_to(self, location: Location) -> None:
        self._port.post(
            NavigateMessage(
                location=SourceLocation(
                    file=location.file,
                    start_line=location.start_line,
                    end_line=location.end_line,
                )
            )
        )

    def _discard_local_changes(self) -> None:
        self._debounce.cancel()
        self._predictions.clear()
        self._rebuild()

    # ─── Scene ────────────────────────────────────────────────────────────────

    def _overlays(self) -> tuple[dict[str, Point], dict[str, Rect]]:
        """Optimistic node positions and group boxes over the compiled layout."""
        local = {**self._predictions, **self._dragging}
        node_overlay: dict[str, Point] = {
            entity_id: value for (kind, entity_id), value in local.items() if kind == NODE
        }
        group_overlay: dict[str, Rect] = {}
        for group_id, box in self.layout.group_boxes.items():
            moved = local.get((GROUP, group_id))
            size = local.get((GROUP_SIZE, group_id))
            if moved is None and size is None:
                continue
            new_box = box.moved_to(moved) if moved is not None else box
            if size is not None:
                new_box = Rect(new_box.x, new_box.y, size[0], size[1])
            group_overlay[group_id] = new_box
            if moved is None:
                continue
            # Members without a stored position travel with their container.
            dx, dy = moved.x - box.x, moved.y - box.y
            for member in self.graph.members_of(group_id):
                if member.position is not None or member.id in node_overlay:
                    continue
                pos = self.layout.positions.get(member.id)
                if pos is not None:
                    node_overlay[member.id] = Point(pos.x + dx, pos.y + dy)
        return node_overlay, group_overlay

    def _rebuild(self) -> None:
        if self.graph is None or self.layout is None:
            return
        node_overlay, group_overlay = self._overlays()
        self.scene = build_scene(
            self.graph,
            self.layout,
            self.selection.current,
            node_overlay=node_overlay,
            group_overlay=group_overlay,
            dimmed_edge_opacity=self._settings.dimmed_edge_opacity,
        )
        self._notify()

    def _notify(self) -> None:
        if self._on_render is not None:
            self._on_render(self.scene)
