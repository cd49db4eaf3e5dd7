"""Builders shared by the test modules: raw documents, graphs and fake collaborators."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from cgraph.config import ViewerSettings
from cgraph.graph import Graph, parse_graph
from cgraph.layout.solver import NetworkxSolver
from cgraph.layout.types import SolverNode

# ─── Documents ────────────────────────────────────────────────────────────────


def make_node(
    node_id: str,
    label: str | None = None,
    kind: str = "function",
    description: str | None = None,
    group: str | None = None,
    position: tuple[float, float] | None = None,
    file: str = "src/app.py",
    start_line: int = 1,
    end_line: int | None = None,
) -> dict[str, Any]:
    """Raw node object as it appears in a document."""
    node: dict[str, Any] = {
        "id": node_id,
        "label": label or node_id,
        "kind": kind,
        "location": {"file": file, "startLine": start_line},
    }
    if end_line is not None:
        node["location"]["endLine"] = end_line
    if description is not None:
        node["description"] = description
    if group is not None:
        node["groupId"] = group
    if position is not None:
        node["position"] = {"x": position[0], "y": position[1]}
    return node


def make_edge(edge_id: str, source: str, target: str, kind: str = "calls", **extra: Any) -> dict[str, Any]:
    return {"id": edge_id, "source": source, "target": target, "kind": kind, **extra}


def make_group(
    group_id: str,
    label: str | None = None,
    position: tuple[float, float] | None = None,
    size: tuple[float, float] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    group: dict[str, Any] = {"id": group_id, "label": label or group_id, **extra}
    if position is not None:
        group["position"] = {"x": position[0], "y": position[1]}
    if size is not None:
        group["size"] = {"width": size[0], "height": size[1]}
    return group


def make_document(
    nodes: list[dict[str, Any]] | None = None,
    edges: list[dict[str, Any]] | None = None,
    groups: list[dict[str, Any]] | None = None,
    direction: str | None = None,
    layout_type: str | None = None,
    legend: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Raw document dict with valid metadata."""
    doc: dict[str, Any] = {
        "version": "1.0",
        "metadata": {"title": "Test graph", "generated": "2024-01-01T00:00:00Z"},
        "nodes": nodes or [],
        "edges": edges or [],
    }
    if groups is not None:
        doc["groups"] = groups
    if direction is not None or layout_type is not None:
        doc["layout"] = {}
        if direction is not None:
            doc["layout"]["direction"] = direction
        if layout_type is not None:
            doc["layout"]["type"] = layout_type
    if legend is not None:
        doc["legend"] = legend
    return doc


def to_text(doc: dict[str, Any]) -> str:
    return json.dumps(doc, indent=2)


def make_graph(**kwargs: Any) -> Graph:
    """Parsed ``Graph`` built from ``make_document`` arguments."""
    return parse_graph(to_text(make_document(**kwargs)))


def chain_document(*ids: str, direction: str | None = None) -> dict[str, Any]:
    """Nodes ``ids`` joined by edges e0, e1, ... in order."""
    nodes = [make_node(i) for i in ids]
    edges = [make_edge(f"e{k}", a, b) for k, (a, b) in enumerate(zip(ids, ids[1:]))]
    return make_document(nodes=nodes, edges=edges, direction=direction)


# ─── Solvers ──────────────────────────────────────────────────────────────────


class FailingSolver:
    """Solver that always raises."""

    def __init__(self) -> None:
        self.calls = 0

    async def layout(self, root: SolverNode) -> SolverNode:
        self.calls += 1
        raise RuntimeError("engine exploded")


class DelayedSolver:
    """Networkx placement behind a per-call delay (seconds, consumed in order)."""

    def __init__(self, *delays: float) -> None:
        self._delays = list(delays)
        self._solver = NetworkxSolver()

    async def layout(self, root: SolverNode) -> SolverNode:
        delay = self._delays.pop(0) if self._delays else 0.0
        await asyncio.sleep(delay)
        return self._solver.solve(root)


class InlineSolver(NetworkxSolver):
    """Networkx placement run on the event loop thread."""

    async def layout(self, root: SolverNode) -> SolverNode:
        return self.solve(root)


# ─── Sync Collaborators ───────────────────────────────────────────────────────


class RecordingPort:
    """MessagePort that keeps every posted message."""

    def __init__(self) -> None:
        self.sent: list[Any] = []

    def post(self, message: Any) -> None:
        self.sent.append(message)

    def of_type(self, message_type: str) -> list[Any]:
        return [m for m in self.sent if m.type == message_type]


def fast_settings(**overrides: Any) -> ViewerSettings:
    """Settings with short timers so protocol tests finish quickly."""
    values: dict[str, Any] = {"debounceMs": 30, "guardWindowMs": 20, "layoutReadyDelayMs": 0}
    values.update(overrides)
    return ViewerSettings(**values)
