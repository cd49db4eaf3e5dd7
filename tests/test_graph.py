"""Tests for the graph model: parsing, aliases, defaults and id checks."""

from __future__ import annotations

import json

import pytest
from helpers import make_document, make_edge, make_graph, make_group, make_node, to_text

from cgraph.errors import ParseError
from cgraph.graph import Direction, EdgeKind, Importance, LayoutMode, NodeKind, parse_graph

# ─── Parsing ──────────────────────────────────────────────────────────────────


class TestParseGraph:
    def test_minimal_document(self):
        """A document with metadata and no entities parses to an empty graph."""
        graph = make_graph()
        assert graph.version == "1.0"
        assert graph.metadata.title == "Test graph"
        assert graph.nodes == []
        assert graph.edges == []
        assert graph.groups == []

    def test_nodes_and_edges(self):
        """Node and edge fields are read with their enum types."""
        graph = make_graph(
            nodes=[make_node("a", kind="class", description="Does things", start_line=3, end_line=9), make_node("b")],
            edges=[make_edge("e1", "a", "b", kind="extends", importance="primary", label="base")],
        )
        a = graph.node_map()["a"]
        assert a.kind is NodeKind.CLASS
        assert a.description == "Does things"
        assert a.location.start_line == 3
        assert a.location.end_line == 9
        edge = graph.edges[0]
        assert edge.kind is EdgeKind.EXTENDS
        assert edge.importance is Importance.PRIMARY
        assert edge.label == "base"

    def test_invalid_json(self):
        """Malformed JSON raises ParseError with the parse prefix."""
        with pytest.raises(ParseError, match="Failed to parse .cgraph file"):
            parse_graph("{not json")

    def test_top_level_array_rejected(self):
        """A JSON array is not a document."""
        with pytest.raises(ParseError):
            parse_graph("[]")

    def test_missing_metadata_rejected(self):
        """Schema violations raise ParseError."""
        with pytest.raises(ParseError, match="Invalid .cgraph document"):
            parse_graph(json.dumps({"version": "1.0", "nodes": [], "edges": []}))

    def test_unknown_node_kind_rejected(self):
        """Only the five node kinds are accepted."""
        with pytest.raises(ParseError):
            make_graph(nodes=[make_node("a", kind="lambda")])

    def test_start_line_must_be_positive(self):
        """Lines are 1-based."""
        with pytest.raises(ParseError):
            make_graph(nodes=[make_node("a", start_line=0)])

    def test_unknown_keys_ignored(self):
        """Extra keys in the document do not fail parsing."""
        doc = make_document(nodes=[make_node("a")])
        doc["nodes"][0]["tags"] = ["x"]
        doc["generator"] = "tool"
        graph = parse_graph(to_text(doc))
        assert graph.nodes[0].id == "a"


# ─── Id Uniqueness ────────────────────────────────────────────────────────────


class TestUniqueIds:
    def test_duplicate_node_ids(self):
        """Two nodes with one id are rejected."""
        with pytest.raises(ParseError, match="duplicate node id"):
            make_graph(nodes=[make_node("a"), make_node("a")])

    def test_duplicate_edge_ids(self):
        with pytest.raises(ParseError, match="duplicate edge id"):
            make_graph(
                nodes=[make_node("a"), make_node("b")],
                edges=[make_edge("e", "a", "b"), make_edge("e", "b", "a")],
            )

    def test_duplicate_group_ids(self):
        with pytest.raises(ParseError, match="duplicate group id"):
            make_graph(groups=[make_group("g"), make_group("g")])

    def test_same_id_across_collections_allowed(self):
        """Ids only need to be unique within their own collection."""
        graph = make_graph(nodes=[make_node("x", group="x")], groups=[make_group("x")])
        assert graph.node_map()["x"].group_id == "x"

    def test_dangling_edge_accepted(self):
        """Edges to missing nodes parse; they are skipped later."""
        graph = make_graph(nodes=[make_node("a")], edges=[make_edge("e", "a", "ghost")])
        assert graph.edges[0].target == "ghost"


# ─── Aliases & Defaults ───────────────────────────────────────────────────────


class TestAliasesAndDefaults:
    def test_group_alias(self):
        """``group`` is accepted in place of ``groupId``."""
        node = make_node("a")
        node["group"] = "g"
        graph = make_graph(nodes=[node], groups=[make_group("g")])
        assert graph.nodes[0].group_id == "g"

    def test_type_alias(self):
        """``type`` is accepted in place of ``kind`` on nodes and edges."""
        node = make_node("a")
        node["type"] = node.pop("kind")
        edge = make_edge("e", "a", "a")
        edge["type"] = edge.pop("kind")
        graph = make_graph(nodes=[node], edges=[edge])
        assert graph.nodes[0].kind is NodeKind.FUNCTION
        assert graph.edges[0].kind is EdgeKind.CALLS

    def test_layout_defaults(self):
        """No layout block: TB direction, layered mode."""
        graph = make_graph()
        assert graph.direction is Direction.TB
        assert graph.layout_mode is LayoutMode.LAYERED

    def test_layout_options(self):
        graph = make_graph(direction="RL", layout_type="stress")
        assert graph.direction is Direction.RL
        assert graph.layout_mode is LayoutMode.STRESS

    def test_direction_properties(self):
        """Vertical and reversed flags of each direction."""
        assert Direction.TB.is_vertical and not Direction.TB.is_reversed
        assert Direction.BT.is_vertical and Direction.BT.is_reversed
        assert not Direction.LR.is_vertical and not Direction.LR.is_reversed
        assert not Direction.RL.is_vertical and Direction.RL.is_reversed

    def test_stored_overrides(self):
        """Positions and sizes are read from nodes and groups."""
        graph = make_graph(
            nodes=[make_node("a", group="g", position=(10, 20))],
            groups=[make_group("g", position=(1, 2), size=(300, 200))],
        )
        assert graph.nodes[0].position.x == 10
        group = graph.groups[0]
        assert (group.position.x, group.position.y) == (1, 2)
        assert (group.size.width, group.size.height) == (300, 200)


# ─── Group Helpers ────────────────────────────────────────────────────────────


class TestGroupHelpers:
    def test_members_in_document_order(self):
        graph = make_graph(
            nodes=[make_node("b", group="g"), make_node("x"), make_node("a", group="g")],
            groups=[make_group("g")],
        )
        assert [n.id for n in graph.members_of("g")] == ["b", "a"]

    def test_populated_groups_skip_empty(self):
        """Groups without members are not populated."""
        graph = make_graph(
            nodes=[make_node("a", group="g2")],
            groups=[make_group("g1"), make_group("g2")],
        )
        assert [g.id for g in graph.populated_groups()] == ["g2"]

    def test_group_index(self):
        graph = make_graph(groups=[make_group("g1"), make_group("g2")])
        assert graph.group_index("g2") == 1
        assert graph.group_index("missing") == 0

    def test_legend(self):
        graph = make_graph(legend={"title": "Edges", "items": [{"label": "Hot", "color": "#ff6b6b"}]})
        assert graph.legend.title == "Edges"
        assert graph.legend.items[0].color == "#ff6b6b"
