"""Trailing debounce of keyed change intents."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Hashable, Mapping
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 0.3  # seconds


class DebounceScheduler:
    """Collects keyed intents and hands them to ``callback`` once things go quiet.

    Every ``schedule`` merges its entries into the pending buffer (last value
    per key wins) and restarts the timer. When ``delay`` seconds pass with no
    further ``schedule``, the whole buffer is passed to ``callback`` in one
    call and emptied. The buffer belongs to the scheduler alone.

    Must be used from inside a running event loop.
    """

    def __init__(self, callback: Callable[[dict[Hashable, Any]], None], delay: float = DEFAULT_DELAY) -> None:
        self._callback = callback
        self._delay = delay
        self._pending: dict[Hashable, Any] = {}
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> dict[Hashable, Any]:
        """Copy of the unflushed buffer."""
        return dict(self._pending)

    @property
    def scheduled(self) -> bool:
        return self._handle is not None

    def schedule(self, payload: Mapping[Hashable, Any]) -> None:
        self._pending.update(payload)
        if self._handle is not None:
            self._handle.cancel()
        self._handle = asyncio.get_running_loop().call_later(self._delay, self._fire)

    def cancel(self) -> None:
        """Drop the buffer without calling back."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._pending:
            logger.debug("discarding %d pending intent(s)", len(self._pending))
        self._pending = {}

    def flush(self) -> None:
        """Deliver the buffer now instead of waiting for the timer."""
        if self._handle is not None:
            self._handle.cancel()
        self._fire()

    def _fire(self) -> None:
        self._handle = None
        if not self._pending:
            return
        batch, self._pending = self._pending, {}
        self._callback(batch)
