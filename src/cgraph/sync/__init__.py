"""Position sync protocol between a render session and the document authority."""

from cgraph.sync.authority import DocumentAuthority
from cgraph.sync.debounce import DebounceScheduler
from cgraph.sync.edits import PositionBatch, apply_position_batch, clear_layout_overrides
from cgraph.sync.guard import SelfEditGuard
from cgraph.sync.messages import dump_message, parse_message
from cgraph.sync.navigation import LocalWorkspace, NavigationTarget, resolve_location
from cgraph.sync.ports import InMemoryDocument, LoggingNotifier, LoopbackChannel
from cgraph.sync.session import RenderSession

__all__ = [
    "DebounceScheduler",
    "DocumentAuthority",
    "InMemoryDocument",
    "LocalWorkspace",
    "LoggingNotifier",
    "LoopbackChannel",
    "NavigationTarget",
    "PositionBatch",
    "RenderSession",
    "SelfEditGuard",
    "apply_position_batch",
    "clear_layout_overrides",
    "dump_message",
    "parse_message",
    "resolve_location",
]
