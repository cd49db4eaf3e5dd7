"""Message envelopes exchanged between a render session and the document authority.

Every message is a JSON object with a ``type`` discriminator:

- Authority → Session: ``update``, ``saved``
- Session → Authority: ``ready``, ``navigate``, ``updatePositions``,
  ``resetLayout``, ``revertToSaved``, ``undo``, ``redo``
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _Envelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class XY(_Envelope):
    x: float
    y: float


class WH(_Envelope):
    width: float
    height: float


class SourceLocation(_Envelope):
    file: str
    start_line: int = Field(alias="startLine")
    end_line: int | None = Field(default=None, alias="endLine")


class PositionChange(_Envelope):
    id: str
    position: XY


class SizeChange(_Envelope):
    id: str
    size: WH


# ─── Authority → Session ──────────────────────────────────────────────────────


class UpdateMessage(_Envelope):
    """Current document text; the session re-parses and re-lays out."""

    type: Literal["update"] = "update"
    content: str


class SavedMessage(_Envelope):
    """The document was saved with this text."""

    type: Literal["saved"] = "saved"
    content: str


# ─── Session → Authority ──────────────────────────────────────────────────────


class ReadyMessage(_Envelope):
    type: Literal["ready"] = "ready"


class NavigateMessage(_Envelope):
    type: Literal["navigate"] = "navigate"
    location: SourceLocation


class UpdatePositionsMessage(_Envelope):
    """One debounced batch of drag/resize results."""

    type: Literal["updatePositions"] = "updatePositions"
    node_positions: list[PositionChange] | None = Field(default=None, alias="nodePositions")
    group_positions: list[PositionChange] | None = Field(default=None, alias="groupPositions")
    group_sizes: list[SizeChange] | None = Field(default=None, alias="groupSizes")


class ResetLayoutMessage(_Envelope):
    type: Literal["resetLayout"] = "resetLayout"


class RevertToSavedMessage(_Envelope):
    type: Literal["revertToSaved"] = "revertToSaved"


class UndoMessage(_Envelope):
    type: Literal["undo"] = "undo"


class RedoMessage(_Envelope):
    type: Literal["redo"] = "redo"


Message = Annotated[
    Union[
        UpdateMessage,
        SavedMessage,
        ReadyMessage,
        NavigateMessage,
        UpdatePositionsMessage,
        ResetLayoutMessage,
        RevertToSavedMessage,
        UndoMessage,
        RedoMessage,
    ],
    Field(discriminator="type"),
]

_MESSAGE_ADAPTER: TypeAdapter[Message] = TypeAdapter(Message)


def parse_message(data: dict[str, Any] | str) -> Message:
    """Validate a JSON envelope (dict or text) into a message model.

    Raises:
        pydantic.ValidationError: unknown ``type`` or malformed payload.
    """
    if isinstance(data, str):
        return _MESSAGE_ADAPTER.validate_json(data)
    return _MESSAGE_ADAPTER.validate_python(data)


def dump_message(message: BaseModel) -> dict[str, Any]:
    """Serialize a message to its JSON-ready envelope (camelCase, no nulls)."""
    return message.model_dump(mode="json", by_alias=True, exclude_none=True)
