"""Collaborator interfaces of the sync protocol, plus in-process implementations.

The authority and session never talk to a host directly: they get a
``MessagePort`` to post through, and the authority additionally gets a
``DocumentStore`` (durable text with undo history), a ``Notifier`` for
user-visible notices and a ``Workspace`` for opening source locations.

``LoopbackChannel`` and ``InMemoryDocument`` wire the two roles together in
one process (headless use and tests).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from cgraph.errors import EditApplyError
from cgraph.sync.messages import Message, dump_message, parse_message

if TYPE_CHECKING:
    from cgraph.sync.navigation import NavigationTarget

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class MessagePort(Protocol):
    """Outbound half of a message channel."""

    def post(self, message: Message) -> None: ...


class MessageHandler(Protocol):
    """Inbound half: whoever consumes messages posted by the peer."""

    async def receive(self, message: Message) -> None: ...


class DocumentStore(Protocol):
    """Durable, single-writer document text with native undo/redo.

    ``replace_all`` is one atomic, undoable whole-document edit; it raises
    ``EditApplyError`` when the edit is rejected and leaves the text as it was.
    """

    @property
    def text(self) -> str: ...

    def replace_all(self, text: str) -> None: ...

    def undo(self) -> bool: ...

    def redo(self) -> bool: ...

    def on_change(self, listener: Callable[[str], None]) -> Unsubscribe: ...

    def on_save(self, listener: Callable[[str], None]) -> Unsubscribe: ...


class Notifier(Protocol):
    """User-visible notices."""

    def info(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class Workspace(Protocol):
    """Host file navigation."""

    @property
    def root(self) -> Path | None: ...

    async def reveal(self, target: NavigationTarget) -> None:
        """Open the target file, select and briefly highlight its line range."""
        ...


# ─── Notifier ─────────────────────────────────────────────────────────────────


class LoggingNotifier:
    """Notifier that records notices and mirrors them to the log."""

    def __init__(self) -> None:
        self.notices: list[tuple[str, str]] = []

    def info(self, message: str) -> None:
        self.notices.append(("info", message))
        logger.info("notice: %s", message)

    def error(self, message: str) -> None:
        self.notices.append(("error", message))
        logger.error("notice: %s", message)


# ─── In-memory Document ───────────────────────────────────────────────────────


class InMemoryDocument:
    """Reference ``DocumentStore``: text plus linear undo/redo history.

    Listeners run synchronously inside the mutating call, which is the
    notification race the authority's self-edit guard has to absorb.
    """

    def __init__(self, text: str, path: Path | None = None, *, read_only: bool = False) -> None:
        self._text = text
        self._path = path
        self.read_only = read_only
        self._undo: list[str] = []
        self._redo: list[str] = []
        self._change_listeners: list[Callable[[str], None]] = []
        self._save_listeners: list[Callable[[str], None]] = []
        self._saved_text: str | None = None

    @classmethod
    def open(cls, path: str | Path) -> InMemoryDocument:
        path = Path(path)
        return cls(path.read_text(encoding="utf-8"), path)

    @property
    def text(self) -> str:
        return self._text

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def is_dirty(self) -> bool:
        return self._saved_text is not None and self._saved_text != self._text

    def replace_all(self, text: str) -> None:
        if self.read_only:
            raise EditApplyError("document is read-only")
        self._undo.append(self._text)
        self._redo.clear()
        self._set(text)

    def undo(self) -> bool:
        if not self._undo:
            return False
        self._redo.append(self._text)
        self._set(self._undo.pop())
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        self._undo.append(self._text)
        self._set(self._redo.pop())
        return True

    def save(self) -> None:
        if self._path is not None:
            self._path.write_text(self._text, encoding="utf-8")
        self._saved_text = self._text
        for listener in list(self._save_listeners):
            listener(self._text)

    def on_change(self, listener: Callable[[str], None]) -> Unsubscribe:
        self._change_listeners.append(listener)
        return lambda: self._change_listeners.remove(listener)

    def on_save(self, listener: Callable[[str], None]) -> Unsubscribe:
        self._save_listeners.append(listener)
        return lambda: self._save_listeners.remove(listener)

    def _set(self, text: str) -> None:
        self._text = text
        for listener in list(self._change_listeners):
            listener(text)


# ─── Loopback Channel ─────────────────────────────────────────────────────────


class _Side:
    """One end of a ``LoopbackChannel``; ``post`` delivers to the other end."""

    def __init__(self, channel: LoopbackChannel, name: str) -> None:
        self._channel = channel
        self.name = name

    def post(self, message: Message) -> None:
        self._channel._send(self.name, message)


class LoopbackChannel:
    """In-process transport between a session and an authority.

    Messages are serialized to JSON envelopes and parsed back, then handed to
    the receiving side on the running event loop in posting order. The
    authority is the single writer and takes one message at a time. Session
    deliveries overlap, so a newer ``update`` supersedes a layout that is
    still being computed for an older one.
    """

    def __init__(self) -> None:
        self.session_side = _Side(self, "session")
        self.authority_side = _Side(self, "authority")
        self.log: list[tuple[str, dict[str, Any]]] = []  # (sender, envelope)
        self._handlers: dict[str, MessageHandler] = {}
        self._authority_lock = asyncio.Lock()
        self._backlog: dict[str, list[dict[str, Any]]] = {"session": [], "authority": []}
        self._tasks: set[asyncio.Task[None]] = set()

    def attach(self, side: str, handler: MessageHandler) -> None:
        """Register the handler that receives messages addressed to ``side``."""
        self._handlers[side] = handler
        backlog, self._backlog[side] = self._backlog[side], []
        for envelope in backlog:
            self._deliver(side, envelope)

    def sent_by(self, sender: str) -> list[dict[str, Any]]:
        return [envelope for who, envelope in self.log if who == sender]

    async def drain(self) -> None:
        """Wait until every in-flight delivery (and what it triggered) is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _send(self, sender: str, message: Message) -> None:
        envelope = dump_message(message)
        self.log.append((sender, envelope))
        receiver = "authority" if sender == "session" else "session"
        logger.debug("%s -> %s: %s", sender, receiver, envelope.get("type"))
        if receiver not in self._handlers:
            self._backlog[receiver].append(envelope)
            return
        self._deliver(receiver, envelope)

    def _deliver(self, receiver: str, envelope: dict[str, Any]) -> None:
        task = asyncio.get_running_loop().create_task(self._handle(receiver, envelope))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _handle(self, receiver: str, envelope: dict[str, Any]) -> None:
        message = parse_message(envelope)
        handler = self._handlers[receiver]
        if receiver != "authority":
            await handler.receive(message)
            return
        async with self._authority_lock:
            await handler.receive(message)
