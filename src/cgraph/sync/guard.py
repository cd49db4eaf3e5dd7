"""Feedback-loop suppression for the authority's own edits."""

from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 0.1  # seconds


class SelfEditGuard:
    """Scoped "self-editing" flag.

    Entering the guard marks the authority as editing; leaving it (normally
    or by exception) keeps the mark for ``window`` more seconds so a change
    notification delivered late by the store is still recognised as ours.
    Nested or overlapping uses are counted.

        with guard:
            store.replace_all(text)
    """

    def __init__(self, window: float = DEFAULT_WINDOW) -> None:
        self._window = window
        self._depth = 0
        self._timers: set[asyncio.TimerHandle] = set()

    @property
    def active(self) -> bool:
        return self._depth > 0

    def __enter__(self) -> SelfEditGuard:
        self._depth += 1
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._release(None)
            return
        if self._window <= 0:
            self._release(None)
            return
        handle: asyncio.TimerHandle | None = None

        def release() -> None:
            self._release(handle)

        handle = loop.call_later(self._window, release)
        self._timers.add(handle)

    def close(self) -> None:
        """Cancel pending releases and drop the mark immediately."""
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        self._depth = 0

    def _release(self, handle: asyncio.TimerHandle | None) -> None:
        if handle is not None:
            self._timers.discard(handle)
        self._depth = max(0, self._depth - 1)
        if not self._depth:
            logger.debug("self-edit window closed")
