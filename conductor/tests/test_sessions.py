"""Tests for file-backed sessions."""

import json
from pathlib import Path

import pytest

from conductor.models import SessionRequest
from conductor.paths import ConductorPaths
from conductor.sessions import FileSessionStore, SessionSettings


@pytest.fixture
def paths(tmp_path) -> ConductorPaths:
    return ConductorPaths.from_home(tmp_path)


def make_store(**settings) -> FileSessionStore:
    """Create a store with a fixed clock."""
    return FileSessionStore(settings=SessionSettings(**settings), clock=lambda: 1000.0)


def read_records(path: str) -> list[dict]:
    return [json.loads(line) for line in Path(path).read_text().splitlines() if line]


class TestPrepareRunSession:
    """Test session preparation."""

    @pytest.mark.asyncio
    async def test_disabled(self, paths):
        """Disabled sessions return no info and write nothing."""
        prepared = await make_store().prepare_run_session(
            paths, "writer", SessionRequest(user_message="hi", disable_session=True)
        )

        assert prepared.enabled is False
        assert prepared.info is None
        assert not paths.sessions_dir.exists()

    @pytest.mark.asyncio
    async def test_creates_main_session(self, paths):
        """The first turn creates the main session with a header and the message."""
        prepared = await make_store().prepare_run_session(
            paths, "writer", SessionRequest(user_message="hello")
        )

        info = prepared.info
        assert prepared.enabled is True
        assert info.session_key == "agent:writer:main"
        assert info.is_new_session is True
        assert prepared.context_prompt == ""

        records = read_records(info.transcript_path)
        assert records[0]["type"] == "session"
        assert records[0]["session_id"] == info.session_id
        assert records[1] == {
            "type": "message",
            "role": "user",
            "content": "hello",
            "timestamp": 1000.0,
        }

        store = json.loads((paths.sessions_dir / "writer" / "sessions.json").read_text())
        assert store["sessions"]["agent:writer:main"]["session_id"] == info.session_id

    @pytest.mark.asyncio
    async def test_continues_session_with_context(self, paths):
        """A later turn reuses the session and sees earlier messages as context."""
        store = make_store()
        first = await store.prepare_run_session(
            paths, "writer", SessionRequest(user_message="first question")
        )
        await store.record_assistant_reply(paths, first.info, "first answer")

        second = await store.prepare_run_session(
            paths, "writer", SessionRequest(user_message="second question")
        )

        assert second.info.session_id == first.info.session_id
        assert second.info.is_new_session is False
        assert "user: first question" in second.context_prompt
        assert "assistant: first answer" in second.context_prompt
        assert "second question" not in second.context_prompt

    @pytest.mark.asyncio
    async def test_force_new(self, paths):
        """force_new starts a fresh session under the same key."""
        store = make_store()
        first = await store.prepare_run_session(
            paths, "writer", SessionRequest(user_message="a")
        )
        second = await store.prepare_run_session(
            paths, "writer", SessionRequest(user_message="b", force_new=True)
        )

        assert second.info.session_key == first.info.session_key
        assert second.info.session_id != first.info.session_id
        assert second.context_prompt == ""

    @pytest.mark.asyncio
    async def test_task_session_ref(self, paths):
        """A full key reference gets its own session."""
        store = make_store()
        prepared = await store.prepare_run_session(
            paths,
            "writer",
            SessionRequest(user_message="a", session_ref="agent:writer:task:draft"),
        )

        assert prepared.info.session_key == "agent:writer:task:draft"


class TestListAndHistory:
    """Test reading sessions back."""

    @pytest.mark.asyncio
    async def test_list_sessions(self, paths):
        """Sessions are listed with their keys and ids, newest first."""
        now = [1.0]
        store = FileSessionStore(clock=lambda: now[0])
        main = await store.prepare_run_session(
            paths, "writer", SessionRequest(user_message="a")
        )
        now[0] = 5.0
        task = await store.prepare_run_session(
            paths,
            "writer",
            SessionRequest(user_message="b", session_ref="agent:writer:task:draft"),
        )

        sessions = await store.list_sessions(paths, "Writer")

        assert [s.session_key for s in sessions] == [
            "agent:writer:task:draft",
            "agent:writer:main",
        ]
        assert sessions[0].session_id == task.info.session_id
        assert sessions[1].session_id == main.info.session_id
        assert sessions[1].compaction_count == 0

    @pytest.mark.asyncio
    async def test_list_sessions_empty(self, paths):
        assert await make_store().list_sessions(paths, "writer") == []

    @pytest.mark.asyncio
    async def test_history_of_main_session(self, paths):
        """History returns the transcript messages in order."""
        store = make_store()
        prepared = await store.prepare_run_session(
            paths, "writer", SessionRequest(user_message="question")
        )
        await store.record_assistant_reply(paths, prepared.info, "answer")

        history = await store.get_history(paths, "writer")

        assert history.session_key == "agent:writer:main"
        assert history.session_id == prepared.info.session_id
        assert [(m["role"], m["content"]) for m in history.messages] == [
            ("user", "question"),
            ("assistant", "answer"),
        ]

        last = await store.get_history(paths, "writer", limit=1)
        assert [m["content"] for m in last.messages] == ["answer"]

    @pytest.mark.asyncio
    async def test_history_missing_session(self, paths):
        history = await make_store().get_history(paths, "writer", session_ref="nope")

        assert history.session_key == "agent:writer:nope"
        assert history.session_id is None
        assert history.messages == []


class TestResolveSessionKey:
    """Test session reference resolution."""

    def test_blank_and_main(self):
        store = make_store()
        assert store.resolve_session_key("writer", {}, None) == "agent:writer:main"
        assert store.resolve_session_key("writer", {}, "Main") == "agent:writer:main"

    def test_session_id_reference(self):
        store = make_store()
        sessions = {"agent:writer:task:x": {"session_id": "abc123"}}
        assert store.resolve_session_key("writer", sessions, "abc123") == (
            "agent:writer:task:x"
        )

    def test_short_name(self):
        store = make_store()
        assert store.resolve_session_key("writer", {}, "Bug Fix") == (
            "agent:writer:bug-fix"
        )


class TestCompaction:
    """Test transcript compaction."""

    @pytest.mark.asyncio
    async def test_compacts_old_messages(self, paths):
        """Past the trigger, older messages fold into a summary record."""
        store = make_store(compaction_trigger_messages=4, keep_recent_messages=2)
        prepared = await store.prepare_run_session(
            paths, "writer", SessionRequest(user_message="q1")
        )
        await store.record_assistant_reply(paths, prepared.info, "a1")
        await store.record_assistant_reply(paths, prepared.info, "a2")
        result = await store.record_assistant_reply(paths, prepared.info, "a3")

        assert result.applied is True
        assert result.compacted_messages == 2
        assert "- user: q1" in result.summary

        records = read_records(prepared.info.transcript_path)
        assert [r["type"] for r in records] == [
            "session",
            "compaction",
            "message",
            "message",
        ]
        assert [r["content"] for r in records[2:]] == ["a2", "a3"]

        index = json.loads((paths.sessions_dir / "writer" / "sessions.json").read_text())
        assert index["sessions"]["agent:writer:main"]["compaction_count"] == 1

    @pytest.mark.asyncio
    async def test_summary_in_context(self, paths):
        """The latest compaction summary is part of the next context prompt."""
        store = make_store(compaction_trigger_messages=3, keep_recent_messages=1)
        prepared = await store.prepare_run_session(
            paths, "writer", SessionRequest(user_message="q1")
        )
        await store.record_assistant_reply(paths, prepared.info, "a1")
        await store.record_assistant_reply(paths, prepared.info, "a2")

        nxt = await store.prepare_run_session(
            paths, "writer", SessionRequest(user_message="q2")
        )

        assert "Earlier summary:" in nxt.context_prompt
        assert "assistant: a2" in nxt.context_prompt

    @pytest.mark.asyncio
    async def test_below_trigger_not_applied(self, paths):
        store = make_store()
        prepared = await store.prepare_run_session(
            paths, "writer", SessionRequest(user_message="q")
        )
        result = await store.record_assistant_reply(paths, prepared.info, "a")

        assert result.applied is False
