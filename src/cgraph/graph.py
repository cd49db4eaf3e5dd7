"""Graph model — typed view of a ``.cgraph`` document.

A ``Graph`` is rebuilt from document text on every change and never mutated
afterwards. Manual layout overrides (``position`` on nodes and groups,
``size`` on groups) live inside the document itself, which is what makes
"reset layout" a plain document edit.

Reads accept the older key spellings (``group`` for ``groupId``, ``type`` for
``kind``). Writes never go through this model: the sync layer edits the raw
JSON so unknown keys survive (see ``cgraph.sync.edits``).
"""

from __future__ import annotations

import json
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from cgraph.errors import ParseError

# ─── Enumerations ─────────────────────────────────────────────────────────────


class NodeKind(str, Enum):
    """Kind of code entity a node stands for."""

    FUNCTION = "function"
    METHOD = "method"
    CLASS = "class"
    MODULE = "module"
    FILE = "file"


class EdgeKind(str, Enum):
    """Relationship between two code entities."""

    CALLS = "calls"
    IMPORTS = "imports"
    EXTENDS = "extends"
    IMPLEMENTS = "implements"
    USES = "uses"


class Importance(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    TERTIARY = "tertiary"


class Direction(str, Enum):
    """Primary flow direction of the layout."""

    TB = "TB"
    BT = "BT"
    LR = "LR"
    RL = "RL"

    @property
    def is_vertical(self) -> bool:
        return self in (Direction.TB, Direction.BT)

    @property
    def is_reversed(self) -> bool:
        """True when the flow runs against increasing screen coordinates."""
        return self in (Direction.BT, Direction.RL)


class LayoutMode(str, Enum):
    """Placement algorithm requested from the layout solver."""

    LAYERED = "layered"
    FORCE = "force"
    STRESS = "stress"


# ─── Document Schema ──────────────────────────────────────────────────────────


class _DocumentModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class Position(_DocumentModel):
    x: float
    y: float


class Size(_DocumentModel):
    width: float
    height: float


class Location(_DocumentModel):
    """Source location of a code entity; lines are 1-based."""

    file: str
    start_line: int = Field(alias="startLine", ge=1)
    end_line: int | None = Field(default=None, alias="endLine", ge=1)


class Metadata(_DocumentModel):
    title: str
    description: str | None = None
    generated: str
    scope: str | None = None


class Node(_DocumentModel):
    id: str
    label: str
    kind: NodeKind = Field(validation_alias=AliasChoices("kind", "type"))
    description: str | None = None
    location: Location
    group_id: str | None = Field(default=None, validation_alias=AliasChoices("groupId", "group"))
    position: Position | None = None


class Edge(_DocumentModel):
    id: str
    source: str
    target: str
    kind: EdgeKind = Field(validation_alias=AliasChoices("kind", "type"))
    importance: Importance | None = None
    color: str | None = None
    label: str | None = None


class Group(_DocumentModel):
    id: str
    label: str
    description: str | None = None
    color: str | None = None
    position: Position | None = None
    size: Size | None = None


class LayoutOptions(_DocumentModel):
    type: LayoutMode = LayoutMode.LAYERED
    direction: Direction = Direction.TB


class LegendItem(_DocumentModel):
    label: str
    color: str


class Legend(_DocumentModel):
    title: str | None = None
    items: list[LegendItem] = Field(default_factory=list)


def _duplicates(ids: list[str]) -> list[str]:
    seen: set[str] = set()
    dupes: list[str] = []
    for item_id in ids:
        if item_id in seen and item_id not in dupes:
            dupes.append(item_id)
        seen.add(item_id)
    return dupes


class Graph(_DocumentModel):
    """Aggregate root of one document."""

    version: str
    metadata: Metadata
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    groups: list[Group] = Field(default_factory=list)
    layout: LayoutOptions | None = None
    legend: Legend | None = None

    @model_validator(mode="after")
    def check_unique_ids(self) -> Graph:
        for collection, items in (("node", self.nodes), ("edge", self.edges), ("group", self.groups)):
            dupes = _duplicates([item.id for item in items])
            if dupes:
                raise ValueError(f"duplicate {collection} id(s): {', '.join(dupes)}")
        return self

    @property
    def direction(self) -> Direction:
        return self.layout.direction if self.layout else Direction.TB

    @property
    def layout_mode(self) -> LayoutMode:
        return self.layout.type if self.layout else LayoutMode.LAYERED

    def node_map(self) -> dict[str, Node]:
        return {n.id: n for n in self.nodes}

    def group_map(self) -> dict[str, Group]:
        return {g.id: g for g in self.groups}

    def members_of(self, group_id: str) -> list[Node]:
        """Nodes referencing ``group_id``, in document order."""
        return [n for n in self.nodes if n.group_id == group_id]

    def populated_groups(self) -> list[Group]:
        """Groups with at least one member node; empty groups render nothing."""
        used = {n.group_id for n in self.nodes if n.group_id is not None}
        return [g for g in self.groups if g.id in used]

    def group_index(self, group_id: str) -> int:
        """Position of a group in the document (drives the default color)."""
        for index, group in enumerate(self.groups):
            if group.id == group_id:
                return index
        return 0


# ─── Parsing ──────────────────────────────────────────────────────────────────


def parse_graph(text: str) -> Graph:
    """Parse document text into a ``Graph``.

    Raises:
        ParseError: malformed JSON, schema violations or duplicate ids.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Failed to parse .cgraph file: {e}") from e

    if not isinstance(data, dict):
        raise ParseError("Failed to parse .cgraph file: top-level value must be an object")

    try:
        return Graph.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Invalid .cgraph document: {e}") from e
