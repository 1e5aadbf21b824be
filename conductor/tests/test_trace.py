"""Tests for run trace persistence."""

import json

from conductor.actions import (
    AgentCall,
    ArtifactIO,
    DelegateToAgentAction,
    FinishAction,
    PlannerDecision,
    SessionEdge,
    SessionGraph,
    SessionNode,
    StepLog,
    TaskThreadState,
)
from conductor.models import ExecutionResult, RoutingCandidate, RoutingDecision
from conductor.trace import (
    TRACE_SCHEMA_VERSION,
    OrchestrationTrace,
    RunTrace,
    action_from_dict,
    list_traces,
)


def make_trace(
    run_id: str = "run-1",
    started_at: str = "2026-01-01T00:00:00+00:00",
    message: str = "Write X",
) -> RunTrace:
    """Create a test RunTrace with one delegation and one finish step."""
    delegate = DelegateToAgentAction(
        target_agent_id="writer", message="Draft", task_key="draft"
    )
    steps = [
        StepLog(
            step=1,
            timestamp=started_at,
            planner_raw_output="{...}",
            planner_decision=PlannerDecision(rationale="delegate", action=delegate),
            agent_call=AgentCall(
                target_agent_id="writer",
                request="Draft",
                response="X",
                code=0,
                provider_id="command",
                task_key="draft",
                session_policy="auto",
            ),
            artifact_io=ArtifactIO(write_path="/tmp/to.md", read_path="/tmp/from.md"),
        ),
        StepLog(
            step=2,
            timestamp=started_at,
            planner_raw_output="{...}",
            planner_decision=PlannerDecision(
                rationale="done", action=FinishAction(message="Done: X")
            ),
        ),
    ]
    return RunTrace(
        run_id=run_id,
        started_at=started_at,
        completed_at=started_at,
        entry_agent_id="orchestrator",
        user_message=message,
        routing=RoutingDecision(
            entry_agent_id="orchestrator",
            target_agent_id="orchestrator",
            confidence=0.9,
            reason="AI orchestration loop executed by orchestrator.",
            rewritten_message=message,
            candidates=[
                RoutingCandidate(
                    agent_id="writer",
                    agent_name="Writer",
                    score=3.0,
                    matched_terms=["write"],
                    reason="1 matched metadata terms.",
                )
            ],
        ),
        execution=ExecutionResult(
            agent_id="orchestrator",
            provider_id="command",
            code=0,
            stdout="Done: X\n",
            stderr="",
        ),
        orchestration=OrchestrationTrace(
            mode="ai-loop",
            steps=steps,
            final_message="Done: X",
            session_graph=SessionGraph(
                nodes=[SessionNode(agent_id="orchestrator"), SessionNode(agent_id="writer")],
                edges=[SessionEdge(from_agent_id="orchestrator", to_agent_id="writer")],
            ),
            task_threads=[
                TaskThreadState(
                    task_key="draft", agent_id="writer", created_step=1, updated_step=1
                )
            ],
        ),
    )


class TestRunTrace:
    """Test trace serialization."""

    def test_to_json_uses_snake_case(self):
        """Serialized traces use snake_case keys and carry the schema version."""
        data = json.loads(make_trace().to_json())

        assert data["schema_version"] == TRACE_SCHEMA_VERSION
        assert data["routing"]["target_agent_id"] == "orchestrator"
        step = data["orchestration"]["steps"][0]
        assert step["planner_decision"]["action"]["target_agent_id"] == "writer"
        assert step["agent_call"]["task_key"] == "draft"
        assert data["orchestration"]["session_graph"]["edges"][0] == {
            "from_agent_id": "orchestrator",
            "to_agent_id": "writer",
            "reason": None,
        }

    def test_to_json_ends_with_newline(self):
        assert make_trace().to_json().endswith("}\n")

    def test_load_round_trip(self, tmp_path):
        """A written trace loads back into equal dataclasses."""
        trace = make_trace()
        trace.path(tmp_path).write_text(trace.to_json())

        loaded = RunTrace.load(tmp_path, "run-1")

        assert loaded == trace

    def test_load_missing(self, tmp_path):
        """Loading an unknown run returns None."""
        assert RunTrace.load(tmp_path, "nope") is None

    def test_action_from_dict(self):
        """Actions are rebuilt by their type tag."""
        action = action_from_dict({"type": "finish", "message": "ok", "mode": "direct"})

        assert action == FinishAction(message="ok")


class TestListTraces:
    """Test run history listing."""

    def test_newest_first(self, tmp_path):
        """Summaries are ordered by start time, newest first."""
        for run_id, started in [
            ("old", "2026-01-01T00:00:00+00:00"),
            ("new", "2026-03-01T00:00:00+00:00"),
            ("mid", "2026-02-01T00:00:00+00:00"),
        ]:
            trace = make_trace(run_id=run_id, started_at=started)
            trace.path(tmp_path).write_text(trace.to_json())

        summaries = list_traces(tmp_path)

        assert [s.run_id for s in summaries] == ["new", "mid", "old"]
        assert summaries[0].steps == 2
        assert summaries[0].code == 0

    def test_limit(self, tmp_path):
        for run_id in ["a", "b", "c"]:
            trace = make_trace(run_id=run_id)
            trace.path(tmp_path).write_text(trace.to_json())

        assert len(list_traces(tmp_path, limit=2)) == 2

    def test_invalid_files_skipped(self, tmp_path):
        """Files that are not traces are ignored."""
        (tmp_path / "broken.json").write_text("{not json")
        (tmp_path / "other.json").write_text('{"hello": 1}')
        trace = make_trace()
        trace.path(tmp_path).write_text(trace.to_json())

        assert [s.run_id for s in list_traces(tmp_path)] == ["run-1"]

    def test_missing_directory(self, tmp_path):
        assert list_traces(tmp_path / "missing") == []
