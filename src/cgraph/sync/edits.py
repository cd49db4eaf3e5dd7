"""Whole-document edits of the layout overrides stored in a ``.cgraph`` file.

These functions take document text and return the complete replacement
text; they never touch a store. The document is edited as a raw JSON
object rather than through ``cgraph.graph``, so keys this package does not
model (and older key spellings) come back out exactly as they went in.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from cgraph.errors import EditApplyError, ParseError
from cgraph.layout.compiler import round_half_up
from cgraph.sync.messages import UpdatePositionsMessage

logger = logging.getLogger(__name__)

INDENT = 2


@dataclass
class PositionBatch:
    """Position/size changes keyed by entity id (one value per id)."""

    node_positions: dict[str, tuple[float, float]] = field(default_factory=dict)
    group_positions: dict[str, tuple[float, float]] = field(default_factory=dict)
    group_sizes: dict[str, tuple[float, float]] = field(default_factory=dict)

    @classmethod
    def from_message(cls, message: UpdatePositionsMessage) -> PositionBatch:
        # Later entries for the same id overwrite earlier ones.
        return cls(
            node_positions={c.id: (c.position.x, c.position.y) for c in message.node_positions or []},
            group_positions={c.id: (c.position.x, c.position.y) for c in message.group_positions or []},
            group_sizes={c.id: (c.size.width, c.size.height) for c in message.group_sizes or []},
        )

    @property
    def is_empty(self) -> bool:
        return not (self.node_positions or self.group_positions or self.group_sizes)

    def __len__(self) -> int:
        return len(self.node_positions) + len(self.group_positions) + len(self.group_sizes)


# ─── Raw Document Access ──────────────────────────────────────────────────────


def _load(text: str) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"Failed to parse .cgraph file: {e}") from e
    if not isinstance(data, dict):
        raise ParseError("Failed to parse .cgraph file: top-level value must be an object")
    return data


def _dump(data: dict[str, Any], original: str) -> str:
    text = json.dumps(data, indent=INDENT, ensure_ascii=False)
    return text + "\n" if original.endswith("\n") else text


def _entries(data: dict[str, Any], key: str) -> dict[str, dict[str, Any]]:
    """id → raw object for the ``key`` collection; first occurrence wins."""
    items = data.get(key, [])
    if not isinstance(items, list):
        raise EditApplyError(f"'{key}' must be a list")
    index: dict[str, dict[str, Any]] = {}
    for item in items:
        if isinstance(item, dict) and isinstance(item.get("id"), str):
            index.setdefault(item["id"], item)
    return index


def _xy(x: float, y: float) -> dict[str, int]:
    return {"x": round_half_up(x), "y": round_half_up(y)}


# ─── Edits ────────────────────────────────────────────────────────────────────


def apply_position_batch(text: str, batch: PositionBatch) -> str:
    """Write every change in ``batch`` into the document, rounded half-up.

    Ids that do not exist in the document are skipped with a warning.

    Raises:
        ParseError: ``text`` is not a JSON object.
        EditApplyError: ``nodes``/``groups`` is not a list.
    """
    data = _load(text)
    nodes = _entries(data, "nodes")
    groups = _entries(data, "groups")

    for node_id, (x, y) in batch.node_positions.items():
        if node_id not in nodes:
            logger.warning("position for unknown node %s ignored", node_id)
            continue
        nodes[node_id]["position"] = _xy(x, y)

    for group_id, (x, y) in batch.group_positions.items():
        if group_id not in groups:
            logger.warning("position for unknown group %s ignored", group_id)
            continue
        groups[group_id]["position"] = _xy(x, y)

    for group_id, (width, height) in batch.group_sizes.items():
        if group_id not in groups:
            logger.warning("size for unknown group %s ignored", group_id)
            continue
        groups[group_id]["size"] = {"width": round_half_up(width), "height": round_half_up(height)}

    return _dump(data, text)


def clear_layout_overrides(text: str) -> str:
    """Remove every stored ``position`` (nodes, groups) and ``size`` (groups).

    Raises:
        ParseError: ``text`` is not a JSON object.
        EditApplyError: ``nodes``/``groups`` is not a list.
    """
    data = _load(text)
    for node in _entries(data, "nodes").values():
        node.pop("position", None)
    for group in _entries(data, "groups").values():
        group.pop("position", None)
        group.pop("size", None)
    return _dump(data, text)
