"""Tests for per-run loop state."""

from conductor.actions import SessionEdge, SessionGraph, SessionNode
from conductor.state import LoopState
from conductor.text import TRUNCATION_MARKER


class TestNotesAndEvents:
    """Test shared notes and the recent event window."""

    def test_notes_joined(self):
        """Notes are joined with blank lines."""
        state = LoopState()
        state.add_note("first")
        state.add_note("second")

        assert state.shared_notes() == "first\n\nsecond"

    def test_notes_clamped(self):
        """Shared notes are clamped to the configured budget."""
        state = LoopState(shared_notes_max_chars=100)
        state.add_note("a" * 300)

        notes = state.shared_notes()
        assert TRUNCATION_MARKER in notes
        assert notes.startswith("a" * 70)

    def test_events_window(self):
        """Only the most recent events are kept."""
        state = LoopState(recent_events_window=3)
        for i in range(5):
            state.add_event(f"event {i}")

        assert state.events == ["event 2", "event 3", "event 4"]


class TestTaskThreads:
    """Test task thread bookkeeping."""

    def test_upsert_creates_thread(self):
        """A new key creates a thread created and updated at the same step."""
        state = LoopState()
        thread = state.upsert_thread(
            "draft", "writer", step=2, provider_id="command", provider_session_id="p1"
        )

        assert thread.created_step == 2
        assert thread.updated_step == 2
        assert state.find_thread("draft", "writer") is thread

    def test_upsert_keeps_created_step(self):
        """Updating a thread keeps its creation step and refreshes the rest."""
        state = LoopState()
        state.upsert_thread("draft", "writer", step=1, provider_session_id="p1")
        thread = state.upsert_thread(
            "draft", "writer", step=4, last_response="v2", session_key="k"
        )

        assert thread.created_step == 1
        assert thread.updated_step == 4
        assert thread.provider_session_id == "p1"
        assert thread.session_key == "k"
        assert thread.last_response == "v2"
        assert len(state.thread_list()) == 1

    def test_fresh_provider_session_clears_old_handle(self):
        """A fresh provider session with no handle back drops the old handle."""
        state = LoopState()
        state.upsert_thread("draft", "writer", step=1, provider_session_id="p1")
        thread = state.upsert_thread(
            "draft", "writer", step=2, fresh_provider_session=True
        )

        assert thread.created_step == 1
        assert thread.provider_session_id is None

    def test_find_thread_checks_agent(self):
        """A thread owned by another agent is not found."""
        state = LoopState()
        state.upsert_thread("draft", "writer", step=1)

        assert state.find_thread("draft", "reviewer") is None
        assert state.find_thread("other", "writer") is None

    def test_upsert_for_other_agent_replaces(self):
        """Re-binding a key to another agent starts a new thread."""
        state = LoopState()
        state.upsert_thread("draft", "writer", step=1, provider_session_id="p1")
        thread = state.upsert_thread("draft", "reviewer", step=3)

        assert thread.agent_id == "reviewer"
        assert thread.created_step == 3
        assert thread.provider_session_id is None


class TestSessionGraph:
    """Test session graph de-duplication."""

    def test_identical_nodes_deduplicated(self):
        """Adding the same node twice keeps one copy."""
        graph = SessionGraph()
        node = SessionNode(agent_id="writer", session_id="s1")

        assert graph.add_node(node) is True
        assert graph.add_node(SessionNode(agent_id="writer", session_id="s1")) is False
        assert graph.nodes == [node]

    def test_nodes_differing_in_any_field_are_kept(self):
        """Nodes that differ in any field are distinct."""
        graph = SessionGraph()
        graph.add_node(SessionNode(agent_id="writer", session_id="s1"))
        graph.add_node(SessionNode(agent_id="writer", session_id="s2"))

        assert len(graph.nodes) == 2

    def test_edges_appended(self):
        """Edges are appended once per delegation, duplicates included."""
        graph = SessionGraph()
        edge = SessionEdge(from_agent_id="orchestrator", to_agent_id="writer")
        graph.add_edge(edge)
        graph.add_edge(edge)

        assert len(graph.edges) == 2
