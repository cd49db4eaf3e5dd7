"""Tests for the in-process collaborators: document store, loopback channel, navigation."""

from __future__ import annotations

import asyncio

import pytest

from cgraph.errors import EditApplyError, NavigationError
from cgraph.sync.messages import ReadyMessage, SourceLocation, UpdateMessage
from cgraph.sync.navigation import resolve_location
from cgraph.sync.ports import InMemoryDocument, LoopbackChannel


class TestInMemoryDocument:
    def test_history(self):
        doc = InMemoryDocument("a")
        doc.replace_all("b")
        doc.replace_all("c")
        assert doc.undo() and doc.text == "b"
        assert doc.redo() and doc.text == "c"
        assert not doc.redo()

    def test_new_edit_clears_redo(self):
        doc = InMemoryDocument("a")
        doc.replace_all("b")
        doc.undo()
        doc.replace_all("x")
        assert not doc.redo()
        assert doc.undo_depth == 1

    def test_listeners_and_unsubscribe(self):
        doc = InMemoryDocument("a")
        seen = []
        unsubscribe = doc.on_change(seen.append)
        doc.replace_all("b")
        unsubscribe()
        doc.replace_all("c")
        assert seen == ["b"]

    def test_save_writes_file(self, tmp_path):
        path = tmp_path / "g.cgraph"
        path.write_text("old", encoding="utf-8")
        doc = InMemoryDocument.open(path)
        saved = []
        doc.on_save(saved.append)
        doc.replace_all("new")
        assert doc.is_dirty is False  # never saved yet
        doc.save()
        assert path.read_text(encoding="utf-8") == "new"
        assert saved == ["new"]
        doc.replace_all("newer")
        assert doc.is_dirty

    def test_read_only(self):
        doc = InMemoryDocument("a", read_only=True)
        with pytest.raises(EditApplyError):
            doc.replace_all("b")
        assert doc.text == "a"


class Collector:
    """Handler that waits ``delays`` (consumed per message) before recording."""

    def __init__(self, *delays: float) -> None:
        self.received = []
        self._delays = list(delays)

    async def receive(self, message) -> None:
        await asyncio.sleep(self._delays.pop(0) if self._delays else 0.0)
        self.received.append(message)


class TestLoopbackChannel:
    def test_authority_takes_one_message_at_a_time(self):
        """A slow first request still finishes before the next one starts."""

        async def scenario():
            channel = LoopbackChannel()
            authority = Collector(0.1, 0.0, 0.0)
            channel.attach("authority", authority)
            for text in ("one", "two", "three"):
                channel.session_side.post(UpdateMessage(content=text))
            await channel.drain()
            return channel, authority

        channel, authority = asyncio.run(scenario())
        assert [m.content for m in authority.received] == ["one", "two", "three"]
        assert [e["content"] for e in channel.sent_by("session")] == ["one", "two", "three"]

    def test_session_deliveries_overlap(self):
        """A later message to the session does not wait for an earlier slow one."""

        async def scenario():
            channel = LoopbackChannel()
            session = Collector(0.1, 0.0)
            channel.attach("session", session)
            channel.authority_side.post(UpdateMessage(content="old"))
            channel.authority_side.post(UpdateMessage(content="new"))
            await channel.drain()
            return session

        assert [m.content for m in asyncio.run(scenario()).received] == ["new", "old"]

    def test_backlog_until_attached(self):
        async def scenario():
            channel = LoopbackChannel()
            channel.session_side.post(ReadyMessage())
            authority = Collector()
            channel.attach("authority", authority)
            await channel.drain()
            return authority

        (message,) = asyncio.run(scenario()).received
        assert isinstance(message, ReadyMessage)


class TestResolveLocation:
    def test_single_line(self, tmp_path):
        (tmp_path / "m.py").write_text("a\nb\nc\n")
        target = resolve_location(tmp_path, SourceLocation(file="m.py", startLine=2))
        assert (target.start_line, target.end_line) == (1, 1)

    def test_start_clamped(self, tmp_path):
        (tmp_path / "m.py").write_text("a\nb\n")
        target = resolve_location(tmp_path, SourceLocation(file="m.py", startLine=40, endLine=50))
        assert (target.start_line, target.end_line) == (1, 1)

    def test_empty_file(self, tmp_path):
        (tmp_path / "m.py").write_text("")
        target = resolve_location(tmp_path, SourceLocation(file="m.py", startLine=3))
        assert (target.start_line, target.end_line) == (0, 0)

    def test_directory_is_not_a_file(self, tmp_path):
        (tmp_path / "pkg").mkdir()
        with pytest.raises(NavigationError, match="Could not open file: pkg"):
            resolve_location(tmp_path, SourceLocation(file="pkg", startLine=1))
