"""Exception hierarchy shared by the layout, render and sync layers."""

from __future__ import annotations


class CGraphError(Exception):
    """Base class for every error raised by cgraph."""


class ParseError(CGraphError):
    """Document text is not valid JSON or does not match the graph schema."""


class EditApplyError(CGraphError):
    """A whole-document edit was rejected by the document store."""


class NavigationError(CGraphError):
    """A source location could not be opened (no workspace, missing file)."""


class SolverFailure(CGraphError):
    """The layout solver timed out or raised; callers fall back to grid placement."""


class StaleLayout(CGraphError):
    """A layout result was superseded by a newer request before it resolved."""
