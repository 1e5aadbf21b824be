"""Planner actions and per-step records for the orchestration loop.

The planner replies with free text; ``conductor.planner`` turns it into one of
the closed set of action dataclasses below. Step logs, agent calls and the
session graph are the building blocks of the run trace.
"""

from dataclasses import dataclass, field
from typing import Literal, Union

CommunicationMode = Literal["direct", "artifacts", "hybrid"]
SessionPolicy = Literal["auto", "new", "reuse"]

COMMUNICATION_MODES: tuple[str, ...] = ("direct", "artifacts", "hybrid")
SESSION_POLICIES: tuple[str, ...] = ("auto", "new", "reuse")


@dataclass(frozen=True)
class DelegateToAgentAction:
    target_agent_id: str
    message: str
    mode: CommunicationMode = "hybrid"
    session_policy: SessionPolicy = "auto"
    expected_output: str | None = None
    task_key: str | None = None
    reason: str | None = None
    type: Literal["delegate_to_agent"] = "delegate_to_agent"


@dataclass(frozen=True)
class ReadWorkspaceFileAction:
    path: str
    mode: CommunicationMode = "hybrid"
    reason: str | None = None
    type: Literal["read_workspace_file"] = "read_workspace_file"


@dataclass(frozen=True)
class WriteWorkspaceFileAction:
    path: str
    content: str
    mode: CommunicationMode = "artifacts"
    reason: str | None = None
    type: Literal["write_workspace_file"] = "write_workspace_file"


@dataclass(frozen=True)
class InstallSkillAction:
    skill_name: str
    target_agent_id: str | None = None
    source_path: str | None = None
    description: str | None = None
    content: str | None = None
    mode: CommunicationMode = "artifacts"
    reason: str | None = None
    type: Literal["install_skill"] = "install_skill"


@dataclass(frozen=True)
class RespondUserAction:
    message: str
    mode: CommunicationMode = "direct"
    reason: str | None = None
    type: Literal["respond_user"] = "respond_user"


@dataclass(frozen=True)
class FinishAction:
    message: str
    mode: CommunicationMode = "direct"
    reason: str | None = None
    type: Literal["finish"] = "finish"


Action = Union[
    DelegateToAgentAction,
    ReadWorkspaceFileAction,
    WriteWorkspaceFileAction,
    InstallSkillAction,
    RespondUserAction,
    FinishAction,
]


@dataclass(frozen=True)
class PlannerDecision:
    """A validated planner reply: why, and what to do next."""

    rationale: str
    action: Action


@dataclass
class AgentCall:
    """Record of one delegation call made during a step."""

    target_agent_id: str
    request: str
    response: str
    code: int
    provider_id: str
    task_key: str | None = None
    session_policy: SessionPolicy | None = None
    session_key: str | None = None
    session_id: str | None = None
    provider_session_id: str | None = None


@dataclass
class ArtifactIO:
    """Workspace files touched during a step."""

    read_path: str | None = None
    write_path: str | None = None


@dataclass
class StepLog:
    """One loop iteration: planner output, decision, and what it caused."""

    step: int
    timestamp: str
    planner_raw_output: str
    planner_decision: PlannerDecision
    agent_call: AgentCall | None = None
    artifact_io: ArtifactIO | None = None
    note: str | None = None


@dataclass(frozen=True)
class SessionNode:
    agent_id: str
    provider_id: str | None = None
    session_key: str | None = None
    session_id: str | None = None
    provider_session_id: str | None = None


@dataclass(frozen=True)
class SessionEdge:
    from_agent_id: str
    to_agent_id: str
    reason: str | None = None


@dataclass
class SessionGraph:
    """Which agent sessions took part in a run and who delegated to whom.

    Nodes are unique by their full field tuple; edges are appended once per
    delegation and never removed.
    """

    nodes: list[SessionNode] = field(default_factory=list)
    edges: list[SessionEdge] = field(default_factory=list)

    def add_node(self, node: SessionNode) -> bool:
        """Add a node unless an identical one is already present.

        Returns:
            True if the node was added
        """
        if node in self.nodes:
            return False
        self.nodes.append(node)
        return True

    def add_edge(self, edge: SessionEdge) -> None:
        self.edges.append(edge)


@dataclass
class TaskThreadState:
    """Binds a task key to one agent's session and provider session.

    ``created_step`` is set once; later delegations on the same key only
    advance ``updated_step`` and refresh the session handles.
    """

    task_key: str
    agent_id: str
    created_step: int
    updated_step: int
    provider_id: str | None = None
    provider_session_id: str | None = None
    session_key: str | None = None
    session_id: str | None = None
    last_response: str | None = None
