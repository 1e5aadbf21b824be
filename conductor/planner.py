"""Planner decision engine.

Renders the orchestrator's planning prompt and turns the orchestrator's free
text reply into a validated PlannerDecision. The reply is untrusted: anything
that does not parse into one of the known action shapes is replaced by a
fixed respond_user fallback instead of raising.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any

from conductor.actions import (
    COMMUNICATION_MODES,
    SESSION_POLICIES,
    Action,
    DelegateToAgentAction,
    FinishAction,
    InstallSkillAction,
    PlannerDecision,
    ReadWorkspaceFileAction,
    RespondUserAction,
    TaskThreadState,
    WriteWorkspaceFileAction,
)
from conductor.config import DEFAULT_AGENT_ID
from conductor.models import AgentManifest
from conductor.text import normalize_task_key

FALLBACK_RATIONALE = (
    "Planner output was not valid JSON. Falling back to direct user response."
)
FALLBACK_REASON = "planner_parse_failure"

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)

_OPTIONAL_STRING_FIELDS = (
    "expectedOutput",
    "taskKey",
    "sourcePath",
    "description",
    "content",
    "reason",
)


@dataclass
class PlannerInput:
    """Everything the planner sees on one step.

    Attributes:
        user_message: The original user request
        step: Current step number (1-based)
        max_steps: Step budget for the run
        shared_notes: Running notes, already clamped by the caller
        recent_events: Sliding window of recent one-line events
        agents: Full roster; the prompt filters it down to delegation targets
        task_threads: Task threads known so far in this run
    """

    user_message: str
    step: int
    max_steps: int
    shared_notes: str
    recent_events: list[str]
    agents: list[AgentManifest]
    task_threads: list[TaskThreadState] = field(default_factory=list)


class PlannerEngine:
    """Builds planner prompts and parses planner replies."""

    def build_prompt(self, planner_input: PlannerInput) -> str:
        """Render the planning prompt for one step.

        Args:
            planner_input: Current loop view for the planner

        Returns:
            The full prompt text, deterministic for a given input
        """
        agents = [
            manifest
            for manifest in planner_input.agents
            if manifest.agent_id != DEFAULT_AGENT_ID
            and manifest.metadata.delegation.can_receive
        ]

        lines: list[str] = [
            "You are the Conductor orchestrator decision engine.",
            "Decide the next best action to solve the user request.",
            "Use only the JSON format requested below; do not add extra text.",
            "",
            "Action policy:",
            "- Use delegate_to_agent when a specialized agent should execute the next step.",
            "- Use install_skill when a skill should be installed for an agent before continuing.",
            "- Use read_workspace_file / write_workspace_file when coordination artifacts are needed.",
            "- Use respond_user when you can directly answer with high confidence.",
            "- Use finish when the task is complete.",
            "- Prefer hybrid mode for important handoffs (direct + markdown artifact).",
            "- For delegate_to_agent, use taskKey to keep related work on the same task thread.",
            '- sessionPolicy controls thread behavior: "new" creates a new thread, '
            '"reuse" requires an existing thread, "auto" reuses when available or creates otherwise.',
            "",
            "Allowed agents:",
        ]
        if agents:
            for manifest in agents:
                meta = manifest.metadata
                lines.append(
                    f"- {manifest.agent_id}: name={meta.name}; description={meta.description}; "
                    f"provider={meta.provider}; canDelegate={str(meta.delegation.can_delegate).lower()}"
                )
        else:
            lines.append("- (none)")

        lines += [
            "",
            f"Step {planner_input.step}/{planner_input.max_steps}",
            "",
            "User request:",
            planner_input.user_message,
            "",
            "Shared notes:",
            planner_input.shared_notes or "(none)",
            "",
            "Recent events:",
        ]
        if planner_input.recent_events:
            lines += [f"- {event}" for event in planner_input.recent_events]
        else:
            lines.append("- (none)")

        lines += ["", "Known task threads:"]
        if planner_input.task_threads:
            lines += [
                f"- {summarize_task_thread(thread)}"
                for thread in planner_input.task_threads
            ]
        else:
            lines.append("- (none)")

        lines += [
            "",
            "Return JSON with shape:",
            "{",
            '  "rationale": "short reason",',
            '  "action": {',
            '    "type": "delegate_to_agent|read_workspace_file|write_workspace_file|install_skill|respond_user|finish",',
            '    "mode": "direct|artifacts|hybrid",',
            '    "reason": "optional short reason",',
            '    "targetAgentId": "required for delegate_to_agent",',
            '    "message": "required for delegate_to_agent/respond_user/finish",',
            '    "expectedOutput": "optional for delegate_to_agent",',
            '    "taskKey": "optional for delegate_to_agent (stable id like task-auth-fix)",',
            '    "sessionPolicy": "optional for delegate_to_agent: auto|new|reuse",',
            '    "path": "required for read_workspace_file/write_workspace_file",',
            '    "content": "required for write_workspace_file; optional for install_skill to create inline skill content",',
            '    "skillName": "required for install_skill",',
            '    "description": "optional for install_skill",',
            '    "sourcePath": "optional for install_skill"',
            "  }",
            "}",
        ]
        return "\n".join(lines)

    def parse_decision(self, raw: str, fallback_message: str) -> PlannerDecision:
        """Parse a planner reply into a validated decision.

        Candidates are tried in order: the whole reply, a fenced ```json
        block, then the span from the first "{" to the last "}". The first
        candidate that parses and validates wins.

        Args:
            raw: Raw planner output
            fallback_message: User-facing message used when nothing validates

        Returns:
            The normalized decision, or a respond_user fallback
        """
        for candidate in _json_candidates(raw):
            try:
                data = json.loads(candidate)
            except (ValueError, TypeError, RecursionError):
                continue
            decision = _to_decision(data)
            if decision is not None:
                return decision

        return PlannerDecision(
            rationale=FALLBACK_RATIONALE,
            action=RespondUserAction(
                message=fallback_message, mode="direct", reason=FALLBACK_REASON
            ),
        )


def summarize_task_thread(thread: TaskThreadState) -> str:
    """One-line description of a task thread for the planner prompt."""
    last_response = (thread.last_response or "").strip() or "(none)"
    return (
        f"{thread.task_key}: agent={thread.agent_id}; "
        f"provider={thread.provider_id or 'unknown'}; "
        f"providerSessionId={thread.provider_session_id or '(none)'}; "
        f"updatedStep={thread.updated_step}; lastResponse={last_response}"
    )


def is_fallback_decision(decision: PlannerDecision) -> bool:
    return (
        isinstance(decision.action, RespondUserAction)
        and decision.action.reason == FALLBACK_REASON
    )


def _json_candidates(raw: str) -> list[str]:
    """Candidate JSON strings in the order they should be tried."""
    text = (raw or "").strip()
    if not text:
        return []

    candidates = [text]

    match = _FENCED_JSON.search(text)
    if match:
        candidates.append(match.group(1).strip())

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    return candidates


def _to_decision(data: Any) -> PlannerDecision | None:
    """Validate a parsed JSON value and build a normalized decision."""
    if not isinstance(data, dict):
        return None

    rationale = data.get("rationale", "")
    if not isinstance(rationale, str):
        return None

    record = data.get("action")
    if not isinstance(record, dict) or not _is_valid_action(record):
        return None

    action, default_rationale = _build_action(record)
    return PlannerDecision(
        rationale=rationale.strip() or default_rationale, action=action
    )


def _is_valid_action(record: dict[str, Any]) -> bool:
    mode = record.get("mode")
    if mode is not None and mode not in COMMUNICATION_MODES:
        return False

    policy = record.get("sessionPolicy")
    if policy is not None and policy not in SESSION_POLICIES:
        return False

    for key in _OPTIONAL_STRING_FIELDS:
        value = record.get(key)
        if value is not None and not isinstance(value, str):
            return False

    action_type = record.get("type")
    if action_type == "delegate_to_agent":
        return _non_empty_string(record.get("targetAgentId")) and _non_empty_string(
            record.get("message")
        )
    if action_type == "read_workspace_file":
        return isinstance(record.get("path"), str)
    if action_type == "write_workspace_file":
        return isinstance(record.get("path"), str) and isinstance(
            record.get("content"), str
        )
    if action_type == "install_skill":
        target = record.get("targetAgentId")
        if target is not None and not isinstance(target, str):
            return False
        return _non_empty_string(record.get("skillName"))
    if action_type in ("respond_user", "finish"):
        return isinstance(record.get("message"), str)

    return False


def _build_action(record: dict[str, Any]) -> tuple[Action, str]:
    """Build a normalized action from a validated record.

    Returns:
        Tuple of (action, default rationale for this action type)
    """
    action_type = record["type"]
    mode = record.get("mode")
    reason = _optional_text(record.get("reason"))

    if action_type == "delegate_to_agent":
        return (
            DelegateToAgentAction(
                target_agent_id=record["targetAgentId"].strip().lower(),
                message=record["message"].strip(),
                mode=mode or "hybrid",
                session_policy=record.get("sessionPolicy") or "auto",
                expected_output=_optional_text(record.get("expectedOutput")),
                task_key=normalize_task_key(record.get("taskKey")),
                reason=reason,
            ),
            "Delegating to specialized agent.",
        )

    if action_type in ("respond_user", "finish"):
        action_cls = RespondUserAction if action_type == "respond_user" else FinishAction
        return (
            action_cls(
                message=record["message"].strip(), mode=mode or "direct", reason=reason
            ),
            "Responding directly to user.",
        )

    if action_type == "read_workspace_file":
        return (
            ReadWorkspaceFileAction(
                path=record["path"].strip(), mode=mode or "hybrid", reason=reason
            ),
            "Reading workspace file.",
        )

    if action_type == "install_skill":
        target = _optional_text(record.get("targetAgentId"))
        return (
            InstallSkillAction(
                skill_name=record["skillName"].strip(),
                target_agent_id=target.lower() if target else None,
                source_path=_optional_text(record.get("sourcePath")),
                description=_optional_text(record.get("description")),
                content=record.get("content"),
                mode=mode or "artifacts",
                reason=reason,
            ),
            "Installing skill.",
        )

    return (
        WriteWorkspaceFileAction(
            path=record["path"].strip(),
            content=record["content"],
            mode=mode or "artifacts",
            reason=reason,
        ),
        "Writing workspace file.",
    )


def _non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _optional_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None
