"""Run trace persistence.

Every run produces one JSON trace at ``<runs_dir>/<run_id>.json``. The file
is created exactly once and never rewritten.
"""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from conductor.actions import (
    AgentCall,
    ArtifactIO,
    DelegateToAgentAction,
    FinishAction,
    InstallSkillAction,
    PlannerDecision,
    ReadWorkspaceFileAction,
    RespondUserAction,
    SessionEdge,
    SessionGraph,
    SessionNode,
    StepLog,
    TaskThreadState,
    WriteWorkspaceFileAction,
)
from conductor.models import (
    ExecutionResult,
    RoutingCandidate,
    RoutingDecision,
    RunSession,
    SessionCompactionResult,
    SessionRunInfo,
)

TRACE_SCHEMA_VERSION = 2

_ACTION_TYPES = {
    "delegate_to_agent": DelegateToAgentAction,
    "read_workspace_file": ReadWorkspaceFileAction,
    "write_workspace_file": WriteWorkspaceFileAction,
    "install_skill": InstallSkillAction,
    "respond_user": RespondUserAction,
    "finish": FinishAction,
}


@dataclass
class OrchestrationTrace:
    """What the planning loop did during a run."""

    mode: str
    steps: list[StepLog]
    final_message: str
    session_graph: SessionGraph = field(default_factory=SessionGraph)
    task_threads: list[TaskThreadState] = field(default_factory=list)


@dataclass
class RunTrace:
    """Immutable ledger of one run.

    Attributes:
        run_id: Random identifier, also the trace file name
        started_at: ISO timestamp when the run started
        completed_at: ISO timestamp when the run completed
        entry_agent_id: Agent the run was started against
        user_message: The original user request
        routing: Routing decision computed before the run
        execution: Final execution result returned to the caller
        session: Session details for single-agent runs
        orchestration: Loop details for orchestrator runs
        duration_seconds: Wall-clock duration of the run
        schema_version: Trace format version
    """

    run_id: str
    started_at: str
    completed_at: str
    entry_agent_id: str
    user_message: str
    routing: RoutingDecision
    execution: ExecutionResult
    session: RunSession | None = None
    orchestration: OrchestrationTrace | None = None
    duration_seconds: float = 0.0
    schema_version: int = TRACE_SCHEMA_VERSION

    def path(self, runs_dir: Path) -> Path:
        return Path(runs_dir) / f"{self.run_id}.json"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2) + "\n"

    @classmethod
    def load(cls, runs_dir: Path, run_id: str) -> "RunTrace | None":
        """Load a trace by run id.

        Args:
            runs_dir: Directory holding run traces
            run_id: Run to load

        Returns:
            RunTrace if the file exists, None otherwise
        """
        path = Path(runs_dir) / f"{run_id}.json"
        if not path.exists():
            return None

        with open(path, encoding="utf-8") as f:
            data = json.load(f)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RunTrace":
        routing = dict(data["routing"])
        routing["candidates"] = [
            RoutingCandidate(**candidate) for candidate in routing.get("candidates", [])
        ]

        session = None
        if data.get("session"):
            raw = data["session"]
            session = RunSession(
                info=SessionRunInfo(**raw["info"]),
                pre_run_compaction_applied=raw["pre_run_compaction_applied"],
                post_run_compaction=SessionCompactionResult(
                    **raw["post_run_compaction"]
                ),
            )

        orchestration = None
        if data.get("orchestration"):
            orchestration = _orchestration_from_dict(data["orchestration"])

        return cls(
            run_id=data["run_id"],
            started_at=data["started_at"],
            completed_at=data["completed_at"],
            entry_agent_id=data["entry_agent_id"],
            user_message=data["user_message"],
            routing=RoutingDecision(**routing),
            execution=ExecutionResult(**data["execution"]),
            session=session,
            orchestration=orchestration,
            duration_seconds=data.get("duration_seconds", 0.0),
            schema_version=data.get("schema_version", TRACE_SCHEMA_VERSION),
        )


@dataclass
class TraceSummary:
    """One row of run history."""

    run_id: str
    started_at: str
    entry_agent_id: str
    target_agent_id: str
    code: int
    steps: int
    user_message: str


def list_traces(runs_dir: Path, limit: int | None = None) -> list[TraceSummary]:
    """Summarize stored traces, most recent first.

    Files that are not valid traces are skipped.

    Args:
        runs_dir: Directory holding run traces
        limit: Maximum number of summaries to return

    Returns:
        Trace summaries ordered by start time, newest first
    """
    runs_dir = Path(runs_dir)
    if not runs_dir.exists():
        return []

    summaries: list[TraceSummary] = []
    for path in runs_dir.glob("*.json"):
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            orchestration = data.get("orchestration") or {}
            summaries.append(
                TraceSummary(
                    run_id=data["run_id"],
                    started_at=data["started_at"],
                    entry_agent_id=data["entry_agent_id"],
                    target_agent_id=data["routing"]["target_agent_id"],
                    code=data["execution"]["code"],
                    steps=len(orchestration.get("steps", [])),
                    user_message=data["user_message"],
                )
            )
        except (OSError, json.JSONDecodeError, KeyError, TypeError):
            continue

    summaries.sort(key=lambda s: s.started_at, reverse=True)
    if limit is not None:
        summaries = summaries[:limit]
    return summaries


def action_from_dict(data: dict[str, Any]):
    """Rebuild a typed action from its serialized form."""
    action_cls = _ACTION_TYPES[data["type"]]
    return action_cls(**data)


def _orchestration_from_dict(data: dict[str, Any]) -> OrchestrationTrace:
    steps = []
    for raw in data.get("steps", []):
        decision = raw["planner_decision"]
        steps.append(
            StepLog(
                step=raw["step"],
                timestamp=raw["timestamp"],
                planner_raw_output=raw["planner_raw_output"],
                planner_decision=PlannerDecision(
                    rationale=decision["rationale"],
                    action=action_from_dict(decision["action"]),
                ),
                agent_call=AgentCall(**raw["agent_call"]) if raw.get("agent_call") else None,
                artifact_io=ArtifactIO(**raw["artifact_io"]) if raw.get("artifact_io") else None,
                note=raw.get("note"),
            )
        )

    graph = data.get("session_graph") or {}
    return OrchestrationTrace(
        mode=data["mode"],
        steps=steps,
        final_message=data["final_message"],
        session_graph=SessionGraph(
            nodes=[SessionNode(**node) for node in graph.get("nodes", [])],
            edges=[SessionEdge(**edge) for edge in graph.get("edges", [])],
        ),
        task_threads=[TaskThreadState(**t) for t in data.get("task_threads", [])],
    )
