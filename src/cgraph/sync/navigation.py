"""Source navigation: map a node's location to a line range in a workspace file."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from cgraph.errors import NavigationError
from cgraph.sync.messages import SourceLocation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NavigationTarget:
    """A file and an inclusive, 0-based line range inside it."""

    path: Path
    start_line: int
    end_line: int


def resolve_location(root: Path | None, location: SourceLocation) -> NavigationTarget:
    """Resolve ``location`` against the workspace ``root``.

    ``startLine``/``endLine`` are 1-based; the target is 0-based and clamped
    to the file. A missing ``endLine`` selects the start line only.

    Raises:
        NavigationError: no workspace root, or the file is missing or lies
            outside the root.
    """
    if root is None:
        raise NavigationError("No workspace folder open")

    root = root.resolve()
    path = (root / location.file).resolve()
    if not path.is_relative_to(root) or not path.is_file():
        raise NavigationError(f"Could not open file: {location.file}")

    try:
        line_count = len(path.read_text(encoding="utf-8", errors="replace").splitlines())
    except OSError as e:
        raise NavigationError(f"Could not open file: {location.file}") from e

    last = max(line_count - 1, 0)
    start = min(max(location.start_line - 1, 0), last)
    end = location.end_line - 1 if location.end_line is not None else start
    end = min(max(end, start), last)
    return NavigationTarget(path=path, start_line=start, end_line=end)


class LocalWorkspace:
    """Headless ``Workspace``: resolves against a directory and records reveals."""

    def __init__(self, root: str | Path | None) -> None:
        self._root = Path(root) if root is not None else None
        self.revealed: list[NavigationTarget] = []

    @property
    def root(self) -> Path | None:
        return self._root

    async def reveal(self, target: NavigationTarget) -> None:
        logger.info("reveal %s:%d-%d", target.path, target.start_line + 1, target.end_line + 1)
        self.revealed.append(target)
