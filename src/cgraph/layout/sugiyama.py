"""Layered placement — Sugiyama-style pipeline on pixel-sized boxes.

Phases:
  1. Cycle removal  (greedy-FAS)
  2. Layer assignment (longest path on the cycle-free copy)
  3. Dummy node insertion for edges spanning several layers
  4. Crossing minimization (barycenter heuristic)
  5. Coordinate assignment (top-left pixel positions per direction)

Every phase iterates in insertion order so identical input always yields
identical coordinates.
"""

from __future__ import annotations

from dataclasses import dataclass

import networkx as nx

from cgraph.layout.types import Direction, Point

# ─── Cycle Removal (Greedy-FAS) ───────────────────────────────────────────────


def greedy_fas_ordering(graph: nx.DiGraph) -> list[str]:
    """Order nodes so that as few edges as possible point backwards.

    Eades-Lin-Smyth greedy feedback arc set: peel sinks onto the tail list
    and sources onto the head list; when only cycles remain, move the node
    with the largest out-degree minus in-degree to the head. The result is
    the head list followed by the reversed tail list.

    Ties are broken by insertion order, never by set iteration order.
    """
    active: dict[str, None] = dict.fromkeys(graph.nodes)

    out_deg: dict[str, int] = {n: graph.out_degree(n) for n in graph.nodes}
    in_deg: dict[str, int] = {n: graph.in_degree(n) for n in graph.nodes}

    head: list[str] = []
    tail: list[str] = []

    def drop(node: str) -> None:
        del active[node]
        for succ in graph.successors(node):
            if succ in active:
                in_deg[succ] -= 1
        for pred in graph.predecessors(node):
            if pred in active:
                out_deg[pred] -= 1

    while active:
        changed = True
        while changed:
            sinks = [n for n in active if out_deg[n] == 0]
            for sink in sinks:
                drop(sink)
                tail.append(sink)
            sources = [n for n in active if in_deg[n] == 0]
            for source in sources:
                drop(source)
                head.append(source)
            changed = bool(sinks or sources)

        if active:
            best = max(active, key=lambda n: out_deg[n] - in_deg[n])
            drop(best)
            head.append(best)

    tail.reverse()
    return head + tail


def remove_cycles(graph: nx.DiGraph) -> tuple[nx.DiGraph, set[tuple[str, str]]]:
    """Return a cycle-free copy of ``graph`` and the set of reversed edges.

    Back-edges (source after target in the greedy-FAS ordering) are reversed;
    self-loops are dropped from the copy but still reported as reversed.
    """
    if graph.number_of_nodes() == 0:
        return graph.copy(), set()

    position = {node: pos for pos, node in enumerate(greedy_fas_ordering(graph))}

    reversed_edges: set[tuple[str, str]] = set()
    dag: nx.DiGraph = nx.DiGraph()
    dag.add_nodes_from(graph.nodes(data=True))

    for src, tgt, attrs in graph.edges(data=True):
        if src == tgt:
            reversed_edges.add((src, tgt))
            continue
        if position[src] > position[tgt]:
            reversed_edges.add((src, tgt))
            dag.add_edge(tgt, src, **attrs)
        else:
            dag.add_edge(src, tgt, **attrs)

    return dag, reversed_edges


# ─── Layer Assignment ─────────────────────────────────────────────────────────


def assign_layers(dag: nx.DiGraph) -> dict[str, int]:
    """Longest-path layering: layer[v] = max(layer[u] + 1) over predecessors u."""
    order = {node: i for i, node in enumerate(dag.nodes)}
    layers: dict[str, int] = {}
    for node in nx.lexicographical_topological_sort(dag, key=order.__getitem__):
        layers[node] = max((layers[p] + 1 for p in dag.predecessors(node)), default=0)
    return layers


# ─── Dummy Node Insertion ─────────────────────────────────────────────────────

DUMMY_PREFIX = "__dummy_"


@dataclass
class AugmentedGraph:
    """A layered graph in which every edge joins adjacent layers."""

    graph: nx.DiGraph
    layers: dict[str, int]
    layer_count: int


def insert_dummy_nodes(dag: nx.DiGraph, layers: dict[str, int]) -> AugmentedGraph:
    """Replace each edge u → v spanning k > 1 layers with u → d₁ → … → dₖ₋₁ → v."""
    g: nx.DiGraph = nx.DiGraph()
    g.add_nodes_from(dag.nodes)
    layers = dict(layers)

    for edge_index, (src, tgt) in enumerate(list(dag.edges())):
        span = layers[tgt] - layers[src]
        if span <= 1:
            g.add_edge(src, tgt)
            continue

        prev = src
        for step in range(1, span):
            dummy_id = f"{DUMMY_PREFIX}{edge_index}_{step}"
            g.add_node(dummy_id)
            layers[dummy_id] = layers[src] + step
            g.add_edge(prev, dummy_id)
            prev = dummy_id
        g.add_edge(prev, tgt)

    layer_count = (max(layers.values()) + 1) if layers else 0
    return AugmentedGraph(graph=g, layers=layers, layer_count=layer_count)


# ─── Crossing Minimization (Barycenter) ───────────────────────────────────────


def minimise_crossings(aug: AugmentedGraph, max_passes: int = 24) -> list[list[str]]:
    """Order each layer to reduce crossings with alternating barycenter sweeps.

    The initial order of every layer is graph insertion order. Sweeps stop as
    soon as a pass fails to improve the crossing count.
    """
    ordering: list[list[str]] = [[] for _ in range(aug.layer_count)]
    for node_id in aug.graph.nodes:
        ordering[aug.layers[node_id]].append(node_id)

    best = count_crossings(ordering, aug.graph)
    best_ordering = [list(layer) for layer in ordering]

    for _pass in range(max_passes):
        for layer_idx in range(1, aug.layer_count):
            prev = {nid: float(i) for i, nid in enumerate(ordering[layer_idx - 1])}
            ordering[layer_idx].sort(key=lambda a, p=prev: _barycenter(a, aug.graph, p, "incoming"))

        for layer_idx in range(aug.layer_count - 2, -1, -1):
            nxt = {nid: float(i) for i, nid in enumerate(ordering[layer_idx + 1])}
            ordering[layer_idx].sort(key=lambda a, n=nxt: _barycenter(a, aug.graph, n, "outgoing"))

        crossings = count_crossings(ordering, aug.graph)
        if crossings >= best:
            break
        best = crossings
        best_ordering = [list(layer) for layer in ordering]

    return best_ordering


def _barycenter(node_id: str, graph: nx.DiGraph, neighbor_pos: dict[str, float], direction: str) -> float:
    """Average position of a node's neighbours in the adjacent layer.

    Nodes without neighbours there sort last (``inf``); ``list.sort`` is stable
    so their relative order is preserved.
    """
    neighbors = graph.predecessors(node_id) if direction == "incoming" else graph.successors(node_id)
    positions = [neighbor_pos[nb] for nb in neighbors if nb in neighbor_pos]
    if not positions:
        return float("inf")
    return sum(positions) / len(positions)


def count_crossings(ordering: list[list[str]], graph: nx.DiGraph) -> int:
    """Count edge crossings between consecutive layers (inversion count)."""
    total = 0
    for l_idx in range(len(ordering) - 1):
        tgt_pos = {nid: i for i, nid in enumerate(ordering[l_idx + 1])}
        pairs: list[tuple[int, int]] = []
        for sp, src_id in enumerate(ordering[l_idx]):
            for nb in graph.successors(src_id):
                if nb in tgt_pos:
                    pairs.append((sp, tgt_pos[nb]))
        for i in range(len(pairs)):
            for j in range(i + 1, len(pairs)):
                (a0, a1), (b0, b1) = pairs[i], pairs[j]
                if (a0 - b0) * (a1 - b1) < 0:
                    total += 1
    return total


# ─── Coordinate Assignment ────────────────────────────────────────────────────

NODE_GAP: float = 35.0  # gap between neighbours in the same layer
LAYER_GAP: float = 80.0  # gap between adjacent layers
DUMMY_WIDTH: float = 12.0  # cross-axis room reserved for a long edge


def assign_coordinates(
    ordering: list[list[str]],
    aug: AugmentedGraph,
    dims: dict[str, tuple[float, float]],
    direction: Direction,
    node_gap: float = NODE_GAP,
    layer_gap: float = LAYER_GAP,
) -> dict[str, Point]:
    """Assign top-left pixel positions to every real node of ``ordering``.

    Layers are stacked along the flow axis (y for TB/BT, x for LR/RL); nodes
    in a layer are centred along the cross axis and centred inside their
    layer band. BT and RL mirror the TB and LR results. Dummy nodes reserve
    cross-axis room but get no position.
    """
    vertical = direction.is_vertical

    def extent(node_id: str) -> tuple[float, float]:
        """(cross-axis size, flow-axis size)"""
        if node_id.startswith(DUMMY_PREFIX):
            return (DUMMY_WIDTH, 0.0)
        width, height = dims[node_id]
        return (width, height) if vertical else (height, width)

    layer_depth = [max((extent(n)[1] for n in layer), default=0.0) for layer in ordering]
    layer_start: list[float] = []
    along = 0.0
    for depth in layer_depth:
        layer_start.append(along)
        along += depth + layer_gap
    total_along = max(0.0, along - layer_gap)

    layer_width = [
        sum(extent(n)[0] for n in layer) + node_gap * max(0, len(layer) - 1) for layer in ordering
    ]
    mid = max(layer_width, default=0.0) / 2

    cross: dict[str, float] = {}
    for layer, width in zip(ordering, layer_width):
        c = mid - width / 2
        for node_id in layer:
            cross[node_id] = c
            c += extent(node_id)[0] + node_gap

    def centre(node_id: str) -> float:
        return cross[node_id] + extent(node_id)[0] / 2

    def align(layer_idx: int, neighbours_of) -> None:
        """Shift a whole layer toward its neighbours' centres (small shifts only)."""
        deltas = [
            centre(nb) - centre(node_id)
            for node_id in ordering[layer_idx]
            for nb in neighbours_of(node_id)
            if not nb.startswith(DUMMY_PREFIX)
        ]
        if not deltas:
            return
        shift = sum(deltas) / len(deltas)
        if abs(shift) > node_gap:
            return
        for node_id in ordering[layer_idx]:
            cross[node_id] += shift

    for layer_idx in range(1, len(ordering)):
        align(layer_idx, aug.graph.predecessors)
    for layer_idx in range(len(ordering) - 2, -1, -1):
        align(layer_idx, aug.graph.successors)

    min_cross = min(cross.values(), default=0.0)

    positions: dict[str, Point] = {}
    for layer_idx, layer in enumerate(ordering):
        for node_id in layer:
            if node_id.startswith(DUMMY_PREFIX):
                continue
            size_cross, size_along = extent(node_id)
            a = layer_start[layer_idx] + (layer_depth[layer_idx] - size_along) / 2
            if direction.is_reversed:
                a = total_along - a - size_along
            c = cross[node_id] - min_cross
            positions[node_id] = Point(x=c, y=a) if vertical else Point(x=a, y=c)
    return positions


# ─── Full Pipeline ────────────────────────────────────────────────────────────


def layered_placement(
    dims: dict[str, tuple[float, float]],
    edges: list[tuple[str, str]],
    direction: Direction,
    node_gap: float = NODE_GAP,
    layer_gap: float = LAYER_GAP,
) -> dict[str, Point]:
    """Place boxes ``dims`` (id → (width, height)) in layers along ``direction``.

    Edges whose endpoints are not in ``dims`` are ignored.
    """
    g: nx.DiGraph = nx.DiGraph()
    g.add_nodes_from(dims)
    g.add_edges_from((s, t) for s, t in edges if s in dims and t in dims)

    dag, _ = remove_cycles(g)
    aug = insert_dummy_nodes(dag, assign_layers(dag))
    ordering = minimise_crossings(aug)
    return assign_coordinates(ordering, aug, dims, direction, node_gap, layer_gap)
