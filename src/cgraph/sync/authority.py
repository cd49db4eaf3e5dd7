"""Document authority — the single writer of a ``.cgraph`` document.

The authority owns a ``DocumentStore`` and answers one render session over a
``MessagePort``. Every document mutation it performs is one atomic
whole-document replace, run under a ``SelfEditGuard`` so the store's own
change notification is not pushed back to the session as if someone else
had edited the file:

- ``updatePositions``: not echoed; the session already shows the result.
- ``resetLayout`` / ``revertToSaved`` / ``undo`` / ``redo``: followed by one
  explicit ``update`` carrying the committed text.

Changes made by anyone else (typing in an editor, another tool) arrive
through ``on_document_changed`` outside the guard and are pushed as
``update``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from cgraph.config import ViewerSettings
from cgraph.errors import CGraphError, EditApplyError, NavigationError
from cgraph.sync.edits import PositionBatch, apply_position_batch, clear_layout_overrides
from cgraph.sync.guard import SelfEditGuard
from cgraph.sync.messages import (
    Message,
    NavigateMessage,
    SavedMessage,
    UpdateMessage,
    UpdatePositionsMessage,
)
from cgraph.sync.navigation import resolve_location
from cgraph.sync.ports import DocumentStore, LoggingNotifier, MessagePort, Notifier, Workspace

logger = logging.getLogger(__name__)

NO_SNAPSHOT_NOTICE = "No saved version to revert to"
ALREADY_SAVED_NOTICE = "Document already matches the saved version"


class DocumentAuthority:
    """Applies session requests to the document, one at a time."""

    def __init__(
        self,
        store: DocumentStore,
        port: MessagePort,
        notifier: Notifier | None = None,
        workspace: Workspace | None = None,
        settings: ViewerSettings | None = None,
    ) -> None:
        settings = settings or ViewerSettings()
        self._store = store
        self._port = port
        self._notifier = notifier or LoggingNotifier()
        self._workspace = workspace
        self._guard = SelfEditGuard(settings.guard_window_s)
        self._saved: str | None = None
        self._disposed = False
        self._handlers: dict[str, Callable[[Message], Awaitable[None]]] = {
            "ready": self._on_ready,
            "navigate": self._on_navigate,
            "updatePositions": self._on_update_positions,
            "resetLayout": self._on_reset_layout,
            "revertToSaved": self._on_revert_to_saved,
            "undo": self._on_undo,
            "redo": self._on_redo,
        }
        self._unsubscribe = [
            store.on_change(self.on_document_changed),
            store.on_save(self.on_document_saved),
        ]

    @property
    def saved_snapshot(self) -> str | None:
        """Text of the last save, or None if the document was never saved."""
        return self._saved

    @property
    def self_editing(self) -> bool:
        return self._guard.active

    # ─── Inbound ──────────────────────────────────────────────────────────────

    async def receive(self, message: Message) -> None:
        """Handle one session message. Only cancellation propagates."""
        if self._disposed:
            return
        handler = self._handlers.get(message.type)
        if handler is None:
            logger.debug("ignoring %s message", message.type)
            return
        logger.debug("handling %s", message.type)
        try:
            await handler(message)
        except asyncio.CancelledError:
            self._notifier.error(f"{message.type} was cancelled")
            raise
        except CGraphError as e:
            self._notifier.error(str(e))
        except Exception as e:  # keep the protocol alive whatever one request does
            logger.exception("%s failed", message.type)
            self._notifier.error(f"{message.type} failed: {e}")

    async def _on_ready(self, message: Message) -> None:
        self._push(self._store.text)

    async def _on_navigate(self, message: NavigateMessage) -> None:
        root = self._workspace.root if self._workspace is not None else None
        try:
            target = resolve_location(root, message.location)
        except NavigationError as e:
            logger.info("navigation to %s failed: %s", message.location.file, e)
            self._notifier.error(str(e))
            return
        await self._workspace.reveal(target)

    async def _on_update_positions(self, message: UpdatePositionsMessage) -> None:
        batch = PositionBatch.from_message(message)
        if batch.is_empty:
            return
        if self._commit(apply_position_batch(self._store.text, batch)):
            logger.info("stored %d position/size change(s)", len(batch))

    async def _on_reset_layout(self, message: Message) -> None:
        if self._commit(clear_layout_overrides(self._store.text)):
            logger.info("layout overrides cleared")
            self._push(self._store.text)

    async def _on_revert_to_saved(self, message: Message) -> None:
        if self._saved is None:
            self._notifier.info(NO_SNAPSHOT_NOTICE)
            return
        if self._store.text == self._saved:
            self._notifier.info(ALREADY_SAVED_NOTICE)
            return
        if self._commit(self._saved):
            logger.info("reverted to saved version")
            self._push(self._store.text)

    async def _on_undo(self, message: Message) -> None:
        self._history_step(self._store.undo, "undo")

    async def _on_redo(self, message: Message) -> None:
        self._history_step(self._store.redo, "redo")

    # ─── Store Notifications ──────────────────────────────────────────────────

    def on_document_changed(self, text: str) -> None:
        if self._disposed:
            return
        if self._guard.active:
            logger.debug("suppressing echo of own edit")
            return
        self._push(text)

    def on_document_saved(self, text: str) -> None:
        if self._disposed:
            return
        self._saved = text
        self._port.post(SavedMessage(content=text))

    def dispose(self) -> None:
        self._disposed = True
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []
        self._guard.close()

    # ─── Internals ────────────────────────────────────────────────────────────

    def _push(self, text: str) -> None:
        self._port.post(UpdateMessage(content=text))

    def _commit(self, text: str) -> bool:
        """Replace the whole document with ``text`` under the guard.

        Returns False when ``text`` equals the current content or the store
        rejected the edit; the document is unchanged in both cases. A
        rejection notifies the user and re-sends the current text so the
        session drops whatever it predicted for the edit.
        """
        if text == self._store.text:
            logger.debug("edit produces identical text; nothing to commit")
            return False
        with self._guard:
            try:
                self._store.replace_all(text)
            except EditApplyError as e:
                self._report_rejected(e)
                return False
            except Exception as e:  # the store belongs to the host; any failure is a rejection
                self._report_rejected(EditApplyError(str(e)))
                return False
        return True

    def _history_step(self, step: Callable[[], bool], name: str) -> None:
        with self._guard:
            changed = step()
        if not changed:
            logger.debug("nothing to %s", name)
            return
        self._push(self._store.text)

    def _report_rejected(self, error: EditApplyError) -> None:
        logger.warning("edit rejected: %s", error)
        self._notifier.error(f"Failed to update the document: {error}")
        self._push(self._store.text)
