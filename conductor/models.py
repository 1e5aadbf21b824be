"""Data models for Conductor.

Defines dataclasses for agent manifests, provider invocations, sessions,
skills, and routing decisions. All models are JSON serializable via
dataclasses.asdict() for trace persistence.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable


@dataclass
class AgentDelegation:
    """Delegation capabilities declared by an agent manifest."""

    can_receive: bool = True
    can_delegate: bool = False


@dataclass
class AgentMetadata:
    """Front matter of an agent manifest."""

    id: str
    name: str
    description: str = ""
    provider: str = "command"
    tags: list[str] = field(default_factory=list)
    priority: int = 50
    delegation: AgentDelegation = field(default_factory=AgentDelegation)


@dataclass
class AgentManifest:
    """An agent known to the roster.

    Attributes:
        agent_id: Normalized agent identifier (directory name)
        metadata: Parsed manifest front matter
        body: Markdown body of the manifest (free-form agent instructions)
        path: Location of the manifest file, if file-backed
    """

    agent_id: str
    metadata: AgentMetadata
    body: str = ""
    path: Path | None = None


@dataclass
class AgentProviderBinding:
    """Which provider backs an agent."""

    agent_id: str
    provider_id: str


@dataclass
class ExecutionResult:
    """Result of one agent turn against its provider.

    A non-zero ``code`` is data, not an exception: providers report failures
    here and callers decide what to do with them.
    """

    agent_id: str
    provider_id: str
    code: int
    stdout: str
    stderr: str
    provider_session_id: str | None = None


@dataclass
class InvokeOptions:
    """Options for invoking an agent.

    Session fields (session_ref, force_new_session, disable_session) are
    consumed by the session port; provider-session fields are passed through
    to the provider so a sub-agent can continue its own conversation.
    """

    message: str
    cwd: str | None = None
    env: dict[str, str] | None = None
    session_ref: str | None = None
    force_new_session: bool = False
    disable_session: bool = False
    provider_session_id: str | None = None
    force_new_provider_session: bool = False
    session_context: str | None = None
    model: str | None = None
    on_stdout: Callable[[str], None] | None = None
    on_stderr: Callable[[str], None] | None = None


@dataclass
class SessionRequest:
    """Request to prepare a conversational session for one agent turn."""

    user_message: str
    session_ref: str | None = None
    force_new: bool = False
    disable_session: bool = False


@dataclass
class SessionRunInfo:
    """Identifies the session an agent turn ran in."""

    agent_id: str
    session_key: str
    session_id: str
    transcript_path: str
    workspace_path: str
    is_new_session: bool


@dataclass
class SessionCompactionResult:
    """Outcome of a compaction pass over a session transcript."""

    session_key: str
    session_id: str
    transcript_path: str
    applied: bool
    compacted_messages: int = 0
    summary: str | None = None


@dataclass
class SessionSummary:
    """One entry of an agent's session store."""

    session_key: str
    session_id: str
    updated_at: float
    compaction_count: int
    transcript_path: str


@dataclass
class SessionHistory:
    """Transcript records of one session, oldest first."""

    session_key: str
    session_id: str | None = None
    transcript_path: str | None = None
    messages: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class PreparedSessionRun:
    """A session ready for an agent turn.

    When ``enabled`` is False the turn runs without session bookkeeping and
    ``info`` is None.
    """

    enabled: bool
    info: SessionRunInfo | None = None
    context_prompt: str = ""
    compaction_applied: bool = False


@dataclass
class RunSession:
    """Session details attached to a single-agent run result."""

    info: SessionRunInfo
    pre_run_compaction_applied: bool
    post_run_compaction: SessionCompactionResult


@dataclass
class SkillInstallRequest:
    """Request to install a skill for an agent."""

    skill_name: str
    agent_id: str | None = None
    source_path: str | None = None
    description: str | None = None
    content: str | None = None


@dataclass
class SkillInstallResult:
    """Result of installing a skill."""

    skill_id: str
    skill_name: str
    agent_id: str
    source: str
    installed_path: str
    replaced: bool = False


@dataclass
class RoutingCandidate:
    """A scored routing candidate."""

    agent_id: str
    agent_name: str
    score: float
    matched_terms: list[str]
    reason: str


@dataclass
class RoutingDecision:
    """Where a message should go and why."""

    entry_agent_id: str
    target_agent_id: str
    confidence: float
    reason: str
    rewritten_message: str
    candidates: list[RoutingCandidate] = field(default_factory=list)
