"""Tests for the document authority: atomic edits, echo suppression,
reset / revert / undo / redo, error reporting and navigation.
"""

from __future__ import annotations

import asyncio
import json

import pytest
from helpers import RecordingPort, fast_settings, make_document, make_group, make_node, to_text

from cgraph.sync.authority import ALREADY_SAVED_NOTICE, NO_SNAPSHOT_NOTICE, DocumentAuthority
from cgraph.sync.messages import (
    NavigateMessage,
    ReadyMessage,
    RedoMessage,
    ResetLayoutMessage,
    RevertToSavedMessage,
    UndoMessage,
    UpdatePositionsMessage,
)
from cgraph.sync.navigation import LocalWorkspace
from cgraph.sync.ports import InMemoryDocument, LoggingNotifier

GUARD_WAIT = 0.1  # comfortably longer than the 20 ms test guard window


def document_text() -> str:
    return to_text(
        make_document(
            nodes=[make_node("n1", group="g"), make_node("n2", position=(5, 6))],
            groups=[make_group("g")],
        )
    )


def make_authority(text: str | None = None, workspace=None, **doc_kwargs):
    doc = InMemoryDocument(document_text() if text is None else text, **doc_kwargs)
    port = RecordingPort()
    notifier = LoggingNotifier()
    authority = DocumentAuthority(doc, port, notifier, workspace, fast_settings())
    return doc, port, notifier, authority


def move(node_id: str, x: float, y: float) -> UpdatePositionsMessage:
    return UpdatePositionsMessage(node_positions=[{"id": node_id, "position": {"x": x, "y": y}}])


def node_position(doc: InMemoryDocument, node_id: str):
    node = next(n for n in json.loads(doc.text)["nodes"] if n["id"] == node_id)
    return node.get("position")


# ─── Ready & External Edits ───────────────────────────────────────────────────


class TestReadyAndEcho:
    def test_ready_sends_current_text(self):
        doc, port, _, authority = make_authority()
        asyncio.run(authority.receive(ReadyMessage()))
        assert [m.type for m in port.sent] == ["update"]
        assert port.sent[0].content == doc.text

    def test_external_edit_pushed(self):
        doc, port, _, _ = make_authority()
        doc.replace_all(document_text() + " ")
        assert [m.content for m in port.of_type("update")] == [doc.text]

    def test_save_records_snapshot(self):
        doc, port, _, authority = make_authority()
        doc.save()
        assert authority.saved_snapshot == doc.text
        assert port.of_type("saved")[0].content == doc.text

    def test_dispose_stops_pushes(self):
        doc, port, _, authority = make_authority()
        authority.dispose()
        doc.replace_all("{}")
        doc.save()
        assert port.sent == []


# ─── Position Batches ─────────────────────────────────────────────────────────


class TestUpdatePositions:
    def test_scenario_rounding(self):
        """n1 at (10.6, 20.4) is stored as (11, 20)."""
        doc, _, _, authority = make_authority()
        asyncio.run(authority.receive(move("n1", 10.6, 20.4)))
        assert node_position(doc, "n1") == {"x": 11, "y": 20}

    def test_one_undo_step_and_no_echo(self):
        """A batch is one undoable edit and is not pushed back to the session."""

        async def scenario():
            doc, port, _, authority = make_authority()
            message = UpdatePositionsMessage(
                node_positions=[{"id": "n1", "position": {"x": 1, "y": 2}}, {"id": "n2", "position": {"x": 3, "y": 4}}],
                group_positions=[{"id": "g", "position": {"x": 7, "y": 8}}],
            )
            await authority.receive(message)
            return doc, port

        doc, port = asyncio.run(scenario())
        assert doc.undo_depth == 1
        assert port.sent == []

    def test_external_edit_inside_guard_window_suppressed(self):
        """A change notification right after our own edit is treated as ours."""

        async def scenario():
            doc, port, _, authority = make_authority()
            await authority.receive(move("n1", 1, 1))
            doc.replace_all(doc.text + " ")
            inside = list(port.sent)
            await asyncio.sleep(GUARD_WAIT)
            doc.replace_all(doc.text + " ")
            return inside, port.sent

        inside, after = asyncio.run(scenario())
        assert inside == []
        assert [m.type for m in after] == ["update"]

    def test_identical_batch_commits_nothing(self):
        async def scenario():
            doc, _, _, authority = make_authority()
            await authority.receive(move("n2", 5, 6))
            return doc

        assert asyncio.run(scenario()).undo_depth == 0

    def test_empty_batch_ignored(self):
        doc, _, _, authority = make_authority()
        asyncio.run(authority.receive(UpdatePositionsMessage()))
        assert doc.undo_depth == 0

    def test_unknown_ids_skipped(self):
        doc, _, notifier, authority = make_authority()
        asyncio.run(authority.receive(move("ghost", 1, 1)))
        assert doc.undo_depth == 0
        assert notifier.notices == []

    def test_rejected_edit_reported(self):
        """A store that refuses the edit leaves the document as it was and tells the user."""
        doc, port, notifier, authority = make_authority(read_only=True)
        before = doc.text
        asyncio.run(authority.receive(move("n1", 1, 1)))
        assert doc.text == before
        assert notifier.notices == [("error", "Failed to update the document: document is read-only")]
        assert [m.content for m in port.of_type("update")] == [before]

    def test_identical_batch_sends_nothing(self):
        """Only a rejection re-sends the document; a no-op edit stays silent."""
        _, port, _, authority = make_authority()
        asyncio.run(authority.receive(move("n2", 5, 6)))
        assert port.sent == []

    def test_malformed_document_reported(self):
        doc, _, notifier, authority = make_authority(text="{broken")
        asyncio.run(authority.receive(move("n1", 1, 1)))
        assert doc.text == "{broken"
        assert notifier.notices[0][0] == "error"
        assert "Failed to parse" in notifier.notices[0][1]

    def test_guard_released_after_failure(self):
        async def scenario():
            doc, port, _, authority = make_authority(read_only=True)
            await authority.receive(move("n1", 1, 1))
            await asyncio.sleep(GUARD_WAIT)
            return authority.self_editing

        assert asyncio.run(scenario()) is False


# ─── Reset / Revert ───────────────────────────────────────────────────────────


class TestResetLayout:
    def test_clears_overrides_and_pushes_once(self):
        async def scenario():
            doc, port, _, authority = make_authority()
            await authority.receive(move("n1", 40, 50))
            await authority.receive(ResetLayoutMessage())
            return doc, port

        doc, port = asyncio.run(scenario())
        assert node_position(doc, "n1") is None
        assert node_position(doc, "n2") is None
        assert [m.type for m in port.sent] == ["update"]
        assert port.sent[0].content == doc.text
        assert doc.undo_depth == 2

    def test_nothing_to_clear(self):
        async def scenario():
            text = to_text(make_document(nodes=[make_node("a")]))
            doc, port, _, authority = make_authority(text=text)
            await authority.receive(ResetLayoutMessage())
            return doc, port

        doc, port = asyncio.run(scenario())
        assert doc.undo_depth == 0
        assert port.sent == []


class TestRevertToSaved:
    def test_scenario_no_snapshot(self):
        """Revert without a save: document unchanged, a notice, no edit committed."""

        async def scenario():
            doc, port, notifier, authority = make_authority()
            before = doc.text
            await authority.receive(RevertToSavedMessage())
            return doc, port, notifier, before

        doc, port, notifier, before = asyncio.run(scenario())
        assert doc.text == before
        assert doc.undo_depth == 0
        assert port.sent == []
        assert notifier.notices == [("info", NO_SNAPSHOT_NOTICE)]

    def test_reverts_to_snapshot(self):
        async def scenario():
            doc, port, _, authority = make_authority()
            doc.save()
            saved = doc.text
            await authority.receive(move("n1", 99, 99))
            await authority.receive(RevertToSavedMessage())
            return doc, port, saved

        doc, port, saved = asyncio.run(scenario())
        assert doc.text == saved
        assert doc.undo_depth == 2
        assert [m.type for m in port.sent] == ["saved", "update"]
        assert port.sent[-1].content == saved

    def test_already_matching(self):
        async def scenario():
            doc, _, notifier, authority = make_authority()
            doc.save()
            await authority.receive(RevertToSavedMessage())
            return doc, notifier

        doc, notifier = asyncio.run(scenario())
        assert doc.undo_depth == 0
        assert notifier.notices == [("info", ALREADY_SAVED_NOTICE)]


# ─── Undo / Redo ──────────────────────────────────────────────────────────────


class TestHistory:
    def test_undo_redo_batch(self):
        """Undo steps back over one batch; redo re-applies it; each pushes one update."""

        async def scenario():
            doc, port, _, authority = make_authority()
            original = doc.text
            await authority.receive(move("n1", 10, 10))
            moved = doc.text
            await authority.receive(UndoMessage())
            undone = doc.text
            await authority.receive(RedoMessage())
            return original, moved, undone, doc.text, port

        original, moved, undone, redone, port = asyncio.run(scenario())
        assert undone == original
        assert redone == moved
        assert [m.content for m in port.sent] == [original, moved]

    def test_undo_without_history(self):
        doc, port, _, authority = make_authority()
        asyncio.run(authority.receive(UndoMessage()))
        assert port.sent == []


# ─── Navigation ───────────────────────────────────────────────────────────────


def navigate(file: str, start: int, end: int | None = None) -> NavigateMessage:
    location = {"file": file, "startLine": start}
    if end is not None:
        location["endLine"] = end
    return NavigateMessage(location=location)


class TestNavigate:
    def test_reveals_clamped_range(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "app.py").write_text("\n".join(f"line {i}" for i in range(10)))
        workspace = LocalWorkspace(tmp_path)
        _, _, notifier, authority = make_authority(workspace=workspace)
        asyncio.run(authority.receive(navigate("src/app.py", 3, 50)))
        (target,) = workspace.revealed
        assert target.path == (tmp_path / "src" / "app.py").resolve()
        assert (target.start_line, target.end_line) == (2, 9)
        assert notifier.notices == []

    def test_no_workspace(self):
        _, _, notifier, authority = make_authority()
        asyncio.run(authority.receive(navigate("src/app.py", 1)))
        assert notifier.notices == [("error", "No workspace folder open")]

    def test_missing_file(self, tmp_path):
        workspace = LocalWorkspace(tmp_path)
        _, _, notifier, authority = make_authority(workspace=workspace)
        asyncio.run(authority.receive(navigate("nope.py", 1)))
        assert notifier.notices == [("error", "Could not open file: nope.py")]
        assert workspace.revealed == []

    def test_path_outside_workspace(self, tmp_path):
        root = tmp_path / "ws"
        root.mkdir()
        (tmp_path / "secret.py").write_text("x\n")
        workspace = LocalWorkspace(root)
        _, _, notifier, authority = make_authority(workspace=workspace)
        asyncio.run(authority.receive(navigate("../secret.py", 1)))
        assert notifier.notices == [("error", "Could not open file: ../secret.py")]

    def test_cancellation_reported_and_raised(self, tmp_path):
        (tmp_path / "a.py").write_text("x\n")

        class CancellingWorkspace(LocalWorkspace):
            async def reveal(self, target):
                raise asyncio.CancelledError()

        _, _, notifier, authority = make_authority(workspace=CancellingWorkspace(tmp_path))

        async def scenario():
            with pytest.raises(asyncio.CancelledError):
                await authority.receive(navigate("a.py", 1))

        asyncio.run(scenario())
        assert notifier.notices == [("error", "navigate was cancelled")]
